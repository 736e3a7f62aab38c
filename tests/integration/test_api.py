"""Integration tests for aivenger.api.main — FastAPI REST API endpoints.

All tests use the FastAPI TestClient with services wired to a temporary
database, a temporary artifact store and a provider answering through
``httpx.MockTransport``, so no real network access occurs.  Tests cover
every endpoint:

- ``GET /api/health`` — Liveness check.
- ``POST /api/generations`` — Generation workflow and its HTTP status mapping.
- ``GET /api/generations`` — Owner-scoped listing with filters.
- ``GET /api/generations/{id}`` — Single owned generation.
- ``DELETE /api/generations/{id}`` — Deletion of images and record.
- ``GET /api/user/stats`` — Credits and generation statistics.
- ``GET /api/provider/models`` — Image-capable provider models.
"""

from __future__ import annotations

import sqlite3

import httpx
import pytest

from aivenger.api.dependencies import build_services, get_services
from aivenger.api.main import app


def _upload(jpeg_bytes: bytes, name: str = "selfie.jpg", mime: str = "image/jpeg") -> dict:
    return {"image": (name, jpeg_bytes, mime)}


@pytest.fixture
def override_provider(test_client, test_config, make_provider):
    """Swap in services whose provider uses the given mock handler."""

    def apply(handler):
        services = build_services(test_config, provider=make_provider(handler))
        app.dependency_overrides[get_services] = lambda: services
        return services

    return apply


# ---------------------------------------------------------------------------
# Health endpoint tests.
# ---------------------------------------------------------------------------


class TestHealth:
    """Test GET /api/health — liveness check."""

    def test_health_needs_no_auth(self, test_client):
        resp = test_client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "version" in data


# ---------------------------------------------------------------------------
# Generation endpoint tests.
# ---------------------------------------------------------------------------


class TestCreateGeneration:
    """Test POST /api/generations — the generation workflow."""

    def test_success(self, test_client, auth_headers, jpeg_bytes):
        """A new account starts with 30 credits; one generation leaves 20."""
        resp = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["remaining_credits"] == 20
        assert data["generation"]["status"] == "completed"
        assert data["generation"]["user_id"] == "user-1"
        assert data["generation"]["generated_image_url"].startswith("/storage/avatars/")

    def test_unauthenticated_is_401_with_result_body(self, test_client, jpeg_bytes):
        resp = test_client.post("/api/generations", files=_upload(jpeg_bytes))
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "Unauthorized", "code": "UNAUTHORIZED"}

    def test_invalid_token_is_401(self, test_client, make_token, jpeg_bytes):
        token = make_token("user-1", secret="someone-else")
        resp = test_client.post(
            "/api/generations",
            files=_upload(jpeg_bytes),
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    def test_insufficient_credits_is_402(self, test_client, services, make_token, jpeg_bytes):
        services.ledger.ensure_account("poor-user", 5)
        token = make_token("poor-user")

        resp = test_client.post(
            "/api/generations",
            files=_upload(jpeg_bytes),
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 402
        assert resp.json()["code"] == "INSUFFICIENT_CREDITS"
        assert services.records.list_for_user("poor-user") == []

    def test_missing_image_is_400(self, test_client, auth_headers):
        resp = test_client.post("/api/generations", headers=auth_headers)
        assert resp.status_code == 400
        data = resp.json()
        assert data["code"] == "UPLOAD_FAILED"
        assert data["error"] == "No image provided"

    def test_wrong_file_type_is_400(self, test_client, auth_headers):
        resp = test_client.post(
            "/api/generations",
            files=_upload(b"%PDF-1.4", name="doc.pdf", mime="application/pdf"),
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "UPLOAD_FAILED"

    def test_provider_failure_is_502_and_keeps_charge(
        self, test_client, override_provider, auth_headers, jpeg_bytes
    ):
        services = override_provider(
            lambda request: httpx.Response(402, json={"error": {"message": "no credits"}})
        )

        resp = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        )
        assert resp.status_code == 502
        assert resp.json()["code"] == "AI_GENERATION_FAILED"
        assert services.ledger.get_balance("user-1") == 20

        (generation,) = services.records.list_for_user("user-1")
        assert generation.status.value == "failed"

    def test_database_failure_during_sign_in_keeps_result_shape(
        self, test_client, services, auth_headers, jpeg_bytes, monkeypatch
    ):
        """A database error while provisioning the account is a DATABASE_ERROR result."""

        def locked(user_id, starting_credits):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(services.ledger, "ensure_account", locked)

        resp = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        )
        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "An unexpected error occurred",
            "code": "DATABASE_ERROR",
        }

    def test_fourth_generation_is_refused(self, test_client, auth_headers, jpeg_bytes):
        statuses = [
            test_client.post(
                "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
            ).status_code
            for _ in range(4)
        ]
        assert statuses == [200, 200, 200, 402]


# ---------------------------------------------------------------------------
# Listing and lookup tests.
# ---------------------------------------------------------------------------


class TestListGenerations:
    """Test GET /api/generations — owner-scoped listing."""

    def test_requires_auth(self, test_client):
        resp = test_client.get("/api/generations")
        assert resp.status_code == 401

    def test_lists_only_own_generations(self, test_client, auth_headers, make_token, jpeg_bytes):
        test_client.post("/api/generations", files=_upload(jpeg_bytes), headers=auth_headers)
        other = {"Authorization": f"Bearer {make_token('user-2')}"}
        test_client.post("/api/generations", files=_upload(jpeg_bytes), headers=other)

        resp = test_client.get("/api/generations", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 1
        assert data["generations"][0]["user_id"] == "user-1"

    def test_newest_first_with_limit(self, test_client, auth_headers, jpeg_bytes):
        ids = [
            test_client.post(
                "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
            ).json()["generation"]["id"]
            for _ in range(3)
        ]

        resp = test_client.get("/api/generations?limit=2", headers=auth_headers)
        data = resp.json()
        assert data["count"] == 2
        assert [g["id"] for g in data["generations"]] == [ids[2], ids[1]]

    def test_status_filter(self, test_client, auth_headers, jpeg_bytes):
        test_client.post("/api/generations", files=_upload(jpeg_bytes), headers=auth_headers)

        completed = test_client.get("/api/generations?status=completed", headers=auth_headers)
        failed = test_client.get("/api/generations?status=failed", headers=auth_headers)
        assert completed.json()["count"] == 1
        assert failed.json()["count"] == 0

    @pytest.mark.parametrize("query", ["limit=0", "limit=101", "status=processing"])
    def test_invalid_query_rejected(self, test_client, auth_headers, query):
        resp = test_client.get(f"/api/generations?{query}", headers=auth_headers)
        assert resp.status_code == 422


class TestGetGeneration:
    """Test GET /api/generations/{id}."""

    def test_get_own(self, test_client, auth_headers, jpeg_bytes):
        created = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        ).json()["generation"]

        resp = test_client.get(f"/api/generations/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    def test_other_users_generation_is_404(
        self, test_client, auth_headers, make_token, jpeg_bytes
    ):
        created = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        ).json()["generation"]
        other = {"Authorization": f"Bearer {make_token('user-2')}"}

        resp = test_client.get(f"/api/generations/{created['id']}", headers=other)
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Deletion tests.
# ---------------------------------------------------------------------------


class TestDeleteGeneration:
    """Test DELETE /api/generations/{id}."""

    def test_delete_removes_record_and_images(
        self, test_client, services, auth_headers, jpeg_bytes
    ):
        created = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        ).json()["generation"]
        original = services.storage.path_for(created["original_image_url"])
        generated = services.storage.path_for(created["generated_image_url"])
        assert original.exists() and generated.exists()

        resp = test_client.delete(f"/api/generations/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "deleted": created["id"]}

        assert not original.exists()
        assert not generated.exists()
        assert test_client.get(
            f"/api/generations/{created['id']}", headers=auth_headers
        ).status_code == 404

    def test_delete_nonexistent_is_404(self, test_client, auth_headers):
        resp = test_client.delete("/api/generations/gen_missing", headers=auth_headers)
        assert resp.status_code == 404

    def test_delete_other_users_generation_is_404(
        self, test_client, services, auth_headers, make_token, jpeg_bytes
    ):
        created = test_client.post(
            "/api/generations", files=_upload(jpeg_bytes), headers=auth_headers
        ).json()["generation"]
        other = {"Authorization": f"Bearer {make_token('user-2')}"}

        resp = test_client.delete(f"/api/generations/{created['id']}", headers=other)
        assert resp.status_code == 404
        assert services.records.get(created["id"]) is not None
        assert services.storage.path_for(created["original_image_url"]).exists()

    def test_delete_failed_generation_without_result_image(
        self, test_client, override_provider, auth_headers, jpeg_bytes
    ):
        services = override_provider(lambda request: httpx.Response(500, json={}))

        test_client.post("/api/generations", files=_upload(jpeg_bytes), headers=auth_headers)
        (generation,) = services.records.list_for_user("user-1")

        resp = test_client.delete(f"/api/generations/{generation.id}", headers=auth_headers)
        assert resp.status_code == 200
        assert services.records.get(generation.id) is None


# ---------------------------------------------------------------------------
# Stats and provider model tests.
# ---------------------------------------------------------------------------


class TestUserStats:
    """Test GET /api/user/stats."""

    def test_new_user(self, test_client, auth_headers):
        resp = test_client.get("/api/user/stats", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {
            "credits": 30,
            "total_generations": 0,
            "last_generation_date": None,
        }

    def test_after_generation(self, test_client, auth_headers, jpeg_bytes):
        test_client.post("/api/generations", files=_upload(jpeg_bytes), headers=auth_headers)

        data = test_client.get("/api/user/stats", headers=auth_headers).json()
        assert data["credits"] == 20
        assert data["total_generations"] == 1
        assert data["last_generation_date"] is not None

    def test_requires_auth(self, test_client):
        assert test_client.get("/api/user/stats").status_code == 401


class TestProviderModels:
    """Test GET /api/provider/models."""

    def test_lists_image_models(self, test_client, auth_headers):
        resp = test_client.get("/api/provider/models", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 1
        assert data["models"][0]["id"] == "google/gemini-2.5-flash-image"

    def test_provider_unavailable_is_502(self, test_client, override_provider, auth_headers):
        override_provider(lambda request: httpx.Response(503, text="down"))
        resp = test_client.get("/api/provider/models", headers=auth_headers)
        assert resp.status_code == 502

    def test_non_json_listing_is_502(self, test_client, override_provider, auth_headers):
        override_provider(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        resp = test_client.get("/api/provider/models", headers=auth_headers)
        assert resp.status_code == 502

"""Shared pytest fixtures for AIVenger tests."""

import base64
import io
import random
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import httpx
import pytest
from jose import jwt
from PIL import Image

from aivenger.core.config import AivengerConfig, ProviderSettings
from aivenger.core.database import initialize_database
from aivenger.core.ledger import CreditLedger
from aivenger.core.models import Identity
from aivenger.core.orchestrator import GenerationOrchestrator
from aivenger.core.provider import ImageGenerationClient
from aivenger.core.records import GenerationStore
from aivenger.core.storage import LocalArtifactStore

TEST_SECRET = "test-session-secret"
PROVIDER_BASE_URL = "https://provider.test/api/v1"


def _image_bytes(fmt: str, color: tuple[int, int, int]) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (32, 32), color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> AivengerConfig:
    """Create a test configuration with temporary directories."""
    return AivengerConfig(
        _env_file=None,
        openrouter_api_key="test-provider-key",
        openrouter_base_url=PROVIDER_BASE_URL,
        data_dir=str(temp_dir / "data"),
        storage_dir=str(temp_dir / "storage"),
        session_secret=TEST_SECRET,
        provider_timeout=5.0,
    )


@pytest.fixture
def db_path(test_config: AivengerConfig) -> Path:
    """Initialized SQLite database inside the temp directory."""
    initialize_database(test_config.database_path)
    return test_config.database_path


@pytest.fixture
def ledger(db_path: Path) -> CreditLedger:
    return CreditLedger(db_path)


@pytest.fixture
def records(db_path: Path) -> GenerationStore:
    return GenerationStore(db_path)


@pytest.fixture
def storage(test_config: AivengerConfig) -> LocalArtifactStore:
    return LocalArtifactStore(test_config.storage_dir, test_config.storage_url_prefix)


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small valid JPEG."""
    return _image_bytes("JPEG", (200, 40, 40))


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG, used as the provider's generated image."""
    return _image_bytes("PNG", (40, 40, 200))


@pytest.fixture
def provider_settings() -> ProviderSettings:
    return ProviderSettings(
        api_key="test-provider-key",
        base_url=PROVIDER_BASE_URL,
        model="google/gemini-2.5-flash-image",
        timeout=5.0,
    )


@pytest.fixture
def provider_success_handler(png_bytes: bytes) -> Callable[[httpx.Request], httpx.Response]:
    """Mock transport handler answering like a healthy provider.

    Chat completions return the generated PNG as a data URI in the
    ``images`` array; ``/models`` returns a small model listing.
    """
    data_uri = "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/chat/completions"):
            return httpx.Response(
                200,
                json={
                    "choices": [
                        {
                            "message": {
                                "role": "assistant",
                                "content": "Here is your superhero!",
                                "images": [
                                    {"type": "image_url", "image_url": {"url": data_uri}}
                                ],
                            }
                        }
                    ]
                },
            )
        if request.url.path.endswith("/models"):
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"id": "google/gemini-2.5-flash-image", "name": "Gemini Image"},
                        {"id": "google/gemini-2.5-pro", "name": "Gemini Pro"},
                        {"id": "openai/gpt-image-1", "name": "GPT Image"},
                    ]
                },
            )
        return httpx.Response(404, json={"error": {"message": "not found"}})

    return handler


@pytest.fixture
def make_provider(
    provider_settings: ProviderSettings,
) -> Generator[Callable[..., ImageGenerationClient], None, None]:
    """Factory building an ImageGenerationClient on an httpx.MockTransport."""
    clients: list[httpx.Client] = []

    def factory(handler, settings: ProviderSettings | None = None) -> ImageGenerationClient:
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(http_client)
        return ImageGenerationClient(
            settings or provider_settings,
            rng=random.Random(1234),
            http_client=http_client,
        )

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def provider(make_provider, provider_success_handler) -> ImageGenerationClient:
    """Provider client backed by a healthy mock provider."""
    return make_provider(provider_success_handler)


@pytest.fixture
def make_orchestrator(ledger, records, storage) -> Callable[..., GenerationOrchestrator]:
    def factory(provider: ImageGenerationClient, **kwargs) -> GenerationOrchestrator:
        return GenerationOrchestrator(ledger, records, storage, provider, cost=10, **kwargs)

    return factory


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="user-1", email="hero@example.com")


@pytest.fixture
def make_token() -> Callable[[str], str]:
    """Mint a session token the credential gate accepts."""

    def factory(user_id: str, secret: str = TEST_SECRET, **claims) -> str:
        return jwt.encode({"sub": user_id, **claims}, secret, algorithm="HS256")

    return factory


@pytest.fixture
def services(test_config: AivengerConfig, provider: ImageGenerationClient):
    """Application services wired to the temp config and the mock provider."""
    from aivenger.api.dependencies import build_services

    return build_services(test_config, provider=provider)


@pytest.fixture
def test_client(services):
    """FastAPI TestClient whose routes use the test services.

    The lifespan handler is not run (the client isn't entered as a context
    manager), so the real global configuration never builds services.

    Yields:
        A TestClient bound to the application
    """
    from fastapi.testclient import TestClient

    from aivenger.api.dependencies import get_services
    from aivenger.api.main import app

    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    """Authorization header for ``user-1``."""
    return {"Authorization": f"Bearer {make_token('user-1', email='hero@example.com')}"}

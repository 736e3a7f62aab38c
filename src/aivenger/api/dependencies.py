"""Service wiring and FastAPI dependencies.

:func:`build_services` turns an :class:`AivengerConfig` into the concrete
collaborators the routes use.  Routes receive them through
:func:`get_services`, which tests replace via ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from aivenger.core.auth import bearer_token, resolve_identity
from aivenger.core.catalogs import load_catalogs
from aivenger.core.config import AivengerConfig
from aivenger.core.database import initialize_database
from aivenger.core.ledger import CreditLedger
from aivenger.core.models import Identity
from aivenger.core.orchestrator import GenerationOrchestrator
from aivenger.core.provider import ImageGenerationClient
from aivenger.core.records import GenerationStore
from aivenger.core.storage import LocalArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, built once per application."""

    config: AivengerConfig
    ledger: CreditLedger
    records: GenerationStore
    storage: LocalArtifactStore
    provider: ImageGenerationClient
    orchestrator: GenerationOrchestrator

    def close(self) -> None:
        self.provider.close()


def build_services(
    config: AivengerConfig,
    *,
    provider: ImageGenerationClient | None = None,
) -> Services:
    """Create the database schema and wire every collaborator from ``config``.

    Args:
        config: Application configuration.
        provider: Pre-built image client (tests pass one backed by a mock
            transport).  Built from ``config.provider_settings()`` when omitted.

    Returns:
        The wired services.

    Raises:
        ValueError: If the session secret is unset or the placeholder.
    """
    config.check_session_secret()
    initialize_database(config.database_path)

    ledger = CreditLedger(config.database_path)
    records = GenerationStore(config.database_path)
    storage = LocalArtifactStore(config.storage_dir, config.storage_url_prefix)

    if provider is None:
        provider = ImageGenerationClient(
            config.provider_settings(),
            catalogs=load_catalogs(config.prompt_catalog_file),
            rng=random.Random(),
        )

    orchestrator = GenerationOrchestrator(
        ledger,
        records,
        storage,
        provider,
        cost=config.generation_cost,
        max_upload_bytes=config.max_upload_bytes,
        accepted_mime_types=config.accepted_mime_types,
    )
    return Services(
        config=config,
        ledger=ledger,
        records=records,
        storage=storage,
        provider=provider,
        orchestrator=orchestrator,
    )


def get_services(request: Request) -> Services:
    """Return the services stored on the application during startup."""
    return request.app.state.services


def get_identity(
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> Identity | None:
    """Resolve the caller, provisioning an account on first sight.

    Returns None for anonymous or invalid credentials; the generation route
    turns that into an ``UNAUTHORIZED`` result.
    """
    identity = resolve_identity(
        bearer_token(authorization),
        services.config.session_secret,
        services.config.session_algorithm,
    )
    if identity is not None:
        services.ledger.ensure_account(identity.user_id, services.config.starting_credits)
    return identity


def require_identity(identity: Identity | None = Depends(get_identity)) -> Identity:
    """Like :func:`get_identity`, but reject anonymous callers with 401."""
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity

"""AIVenger — FastAPI Application.

This module is the single entry point for the web service.  It defines the
FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~aivenger.core.config.config`
  (``AIVENGER_*`` environment variables).
- **Services** (ledger, record store, artifact store, provider client,
  orchestrator) are built once in the lifespan handler and stored on
  ``app.state.services``.
- **Authentication** is a bearer session token resolved per request by
  :func:`~aivenger.api.dependencies.get_identity`.
- **Stored images** are served by FastAPI's ``StaticFiles`` mount at the
  configured storage URL prefix.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/health``               Liveness check
POST      ``/api/generations``          Generate a superhero image
GET       ``/api/generations``          List the caller's generations
GET       ``/api/generations/{id}``     Single owned generation
DELETE    ``/api/generations/{id}``     Delete images and record
GET       ``/api/user/stats``           Credits and generation statistics
GET       ``/api/provider/models``      Image-capable provider models
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    aivenger

Direct invocation::

    python -m aivenger.api.main
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from aivenger import __version__
from aivenger.api.dependencies import (
    Services,
    build_services,
    get_identity,
    get_services,
    require_identity,
)
from aivenger.api.models import (
    DeleteResponse,
    GenerationListResponse,
    HealthResponse,
    ProviderModelsResponse,
    UserStatsResponse,
)
from aivenger.core.config import config
from aivenger.core.models import ErrorCode, GenerateFailure, Generation, GenerationStatus, Identity
from aivenger.core.orchestrator import MSG_UNEXPECTED
from aivenger.core.provider import ProviderError

logger = logging.getLogger(__name__)

# HTTP status for each workflow failure code.  The body is always the
# workflow result, so clients can branch on ``success`` and ``code``.
_STATUS_FOR_CODE: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.INSUFFICIENT_CREDITS: 402,
    ErrorCode.UPLOAD_FAILED: 400,
    ErrorCode.AI_GENERATION_FAILED: 502,
    ErrorCode.DATABASE_ERROR: 500,
}


# ---------------------------------------------------------------------------
# Application lifecycle — service setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup and release the provider client on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.services = build_services(config)
    logger.info(f"Services initialised (database: {config.database_path}).")

    yield

    app.state.services.close()
    logger.info("Services closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="AIVenger",
    description="Credit-metered AI superhero avatar generation API.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(sqlite3.Error)
async def database_error_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    """Answer database failures outside the workflow with a ``DATABASE_ERROR`` result.

    Covers the identity dependency (account provisioning) and the listing
    routes, so no database error reaches the client as a bare 500.
    """
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    failure = GenerateFailure(error=MSG_UNEXPECTED, code=ErrorCode.DATABASE_ERROR)
    return JSONResponse(
        status_code=_STATUS_FOR_CODE[ErrorCode.DATABASE_ERROR],
        content=failure.model_dump(mode="json"),
    )


# Stored originals and generated images are served straight from disk.
app.mount(
    config.storage_url_prefix,
    StaticFiles(directory=str(config.storage_dir)),
    name="storage",
)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return service liveness and version."""
    return HealthResponse(version=__version__)


@app.post("/api/generations")
async def create_generation(
    image: UploadFile | None = File(default=None),
    identity: Identity | None = Depends(get_identity),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Transform an uploaded photo into a superhero image.

    Runs the full generation workflow.  The response body is always the
    workflow result: ``{"success": true, "generation", "remaining_credits"}``
    or ``{"success": false, "error", "code"}``.  The HTTP status mirrors the
    outcome (200, or 401/402/400/502/500 by failure code).

    Args:
        image: Multipart file field named ``image``.
        identity: Caller, or None when unauthenticated.
        services: Application services.

    Returns:
        The serialised workflow result.
    """
    image_bytes = await image.read() if image is not None else None
    mime_type = image.content_type if image is not None else None
    filename = (image.filename if image is not None else None) or "upload"

    result = await run_in_threadpool(
        services.orchestrator.generate,
        image_bytes,
        mime_type,
        identity,
        filename,
    )

    status_code = 200 if result.success else _STATUS_FOR_CODE[result.code]
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@app.get("/api/generations", response_model=GenerationListResponse)
def list_generations(
    status: GenerationStatus | None = None,
    limit: int | None = Query(default=None, ge=1, le=100),
    identity: Identity = Depends(require_identity),
    services: Services = Depends(get_services),
) -> GenerationListResponse:
    """List the caller's generations, newest first.

    Args:
        status: Keep only generations in this state.
        limit: Maximum number of generations to return (1–100).

    Returns:
        The matching generations and their count.
    """
    generations = services.records.list_for_user(identity.user_id, status=status, limit=limit)
    return GenerationListResponse(generations=generations, count=len(generations))


@app.get("/api/generations/{generation_id}", response_model=Generation)
def get_generation(
    generation_id: str,
    identity: Identity = Depends(require_identity),
    services: Services = Depends(get_services),
) -> Generation:
    """Return one of the caller's generations.

    Raises:
        HTTPException: 404 if the generation doesn't exist or belongs to
            someone else.
    """
    generation = services.records.find_for_user(generation_id, identity.user_id)
    if generation is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    return generation


@app.delete("/api/generations/{generation_id}", response_model=DeleteResponse)
def delete_generation(
    generation_id: str,
    identity: Identity = Depends(require_identity),
    services: Services = Depends(get_services),
) -> DeleteResponse:
    """Delete a generation together with its stored images.

    Ownership is checked against the record itself before anything is
    removed.

    Raises:
        HTTPException: 404 if the generation doesn't exist or belongs to
            someone else.
    """
    generation = services.records.find_for_user(generation_id, identity.user_id)
    if generation is None:
        raise HTTPException(status_code=404, detail="Generation not found")

    services.storage.delete(generation.original_image_url)
    if generation.generated_image_url:
        services.storage.delete(generation.generated_image_url)

    if not services.records.delete_for_user(generation_id, identity.user_id):
        raise HTTPException(status_code=404, detail="Generation not found")

    return DeleteResponse(deleted=generation_id)


@app.get("/api/user/stats", response_model=UserStatsResponse)
def get_user_stats(
    identity: Identity = Depends(require_identity),
    services: Services = Depends(get_services),
) -> UserStatsResponse:
    """Return the caller's credit balance and completed-generation stats."""
    credits = services.ledger.get_balance(identity.user_id)
    stats = services.records.stats_for_user(identity.user_id)
    return UserStatsResponse(
        credits=credits if credits is not None else services.config.starting_credits,
        total_generations=stats["total_generations"],
        last_generation_date=stats["last_generation_date"],
    )


@app.get("/api/provider/models", response_model=ProviderModelsResponse)
def list_provider_models(
    identity: Identity = Depends(require_identity),
    services: Services = Depends(get_services),
) -> ProviderModelsResponse:
    """List the image-capable models the provider currently offers.

    Raises:
        HTTPException: 502 if the provider can't be reached or rejects the
            request.
    """
    try:
        models = services.provider.list_image_models()
    except ProviderError as e:
        logger.error(f"Model listing failed: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e
    return ProviderModelsResponse(models=models, count=len(models))


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port, and log level from :data:`~aivenger.core.config.config`
    (``AIVENGER_SERVER_HOST``, ``AIVENGER_SERVER_PORT``,
    ``AIVENGER_LOG_LEVEL``).  Defaults to ``0.0.0.0:8000``.

    This function is registered as the ``aivenger`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "aivenger.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()

"""Pydantic response models for the AIVenger API.

These models define the JSON schema for the listing, deletion, and stats
endpoints.  FastAPI uses them for serialisation and OpenAPI documentation
generation.  The generation endpoint returns the workflow result types from
:mod:`aivenger.core.models` directly.

Models
------
GenerationListResponse
    Payload of ``GET /api/generations``.
DeleteResponse
    Payload of ``DELETE /api/generations/{id}``.
UserStatsResponse
    Payload of ``GET /api/user/stats``.
ProviderModelsResponse
    Payload of ``GET /api/provider/models``.
HealthResponse
    Payload of ``GET /api/health``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from aivenger.core.models import Generation


class GenerationListResponse(BaseModel):
    """The caller's generations, newest first.

    Attributes:
        generations: Matching records.
        count: Number of records returned.
    """

    generations: list[Generation] = Field(
        ...,
        description="Generation records ordered newest first.",
    )
    count: int = Field(
        ...,
        description="Number of records in this response.",
    )


class DeleteResponse(BaseModel):
    """Confirmation that a generation and its images were removed."""

    success: bool = True
    deleted: str = Field(
        ...,
        description="Identifier of the deleted generation.",
    )


class UserStatsResponse(BaseModel):
    """Credit balance and completed-generation statistics for the caller.

    Attributes:
        credits: Current credit balance.
        total_generations: Number of completed generations.
        last_generation_date: Creation time of the newest completed
            generation, or ``None``.
    """

    credits: int
    total_generations: int
    last_generation_date: datetime | None = None


class ProviderModelsResponse(BaseModel):
    """Image-capable models offered by the provider."""

    models: list[dict]
    count: int


class HealthResponse(BaseModel):
    """Liveness check payload."""

    status: str = "ok"
    version: str

"""Domain models shared by the generation workflow and the API layer.

Models
------
GenerationStatus
    Lifecycle state of a generation record (``pending`` → ``completed`` |
    ``failed``).
Generation
    The persisted record of one generation attempt.
Identity
    The caller resolved by the credential gate.
ErrorCode
    Machine-readable failure codes returned by the orchestrator.
GenerateSuccess / GenerateFailure
    The two branches of :data:`GenerateResult`, discriminated on ``success``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict


class GenerationStatus(str, Enum):
    """Lifecycle state of a generation record."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not GenerationStatus.PENDING


class Generation(BaseModel):
    """Persisted record of one generation attempt.

    Attributes:
        id: Opaque unique identifier (``gen_<timestamp>_<uuid>``).
        user_id: Owner of the record.
        original_image_url: Durable URL of the uploaded source image.
        generated_image_url: Durable URL of the generated image.  Set only
            once the record is ``completed``.
        status: Current lifecycle state.
        error_message: Failure detail.  Set only when ``failed``.
        credits_used: Credits debited for this attempt.
        created_at: Creation time (UTC).
        updated_at: Time of the last mutation (UTC).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    original_image_url: str
    generated_image_url: str | None = None
    status: GenerationStatus = GenerationStatus.PENDING
    error_message: str | None = None
    credits_used: int = 0
    created_at: datetime
    updated_at: datetime


class Identity(BaseModel):
    """Authenticated caller."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str | None = None


class ErrorCode(str, Enum):
    """Failure codes of the generation workflow."""

    UNAUTHORIZED = "UNAUTHORIZED"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    AI_GENERATION_FAILED = "AI_GENERATION_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"


class GenerateSuccess(BaseModel):
    """Successful generation: the finalized record and the new balance."""

    success: Literal[True] = True
    generation: Generation
    remaining_credits: int


class GenerateFailure(BaseModel):
    """Failed generation: a user-readable message and a machine-readable code."""

    success: Literal[False] = False
    error: str
    code: ErrorCode


GenerateResult = Union[GenerateSuccess, GenerateFailure]

"""Generation workflow: from an uploaded photo to a stored superhero image.

:class:`GenerationOrchestrator` sequences the credential gate, credit ledger,
artifact store, record store, and image provider into one synchronous
workflow.  Each step is a point of no return once passed:

1. Require an identity (``UNAUTHORIZED``).
2. Require a balance covering the cost (``INSUFFICIENT_CREDITS``).
3. Require a valid image payload (``UPLOAD_FAILED``).
4. Store the original image.
5. Create a ``pending`` generation record.
6. Deduct credits, before the provider is called.
7. Call the provider.  On failure the record becomes ``failed`` and the
   credits stay spent (``AI_GENERATION_FAILED``).
8. Fetch the provider image and store it under our own name.
9. Mark the record ``completed``.
10. Return the finalized record and the remaining balance.

Credits are charged before the provider call and a failed generation is
not refunded.  Step 2 rejects early without side effects; step 6 is the
atomic conditional decrement that guards the balance.  If step 6 loses a
race with a concurrent request, the record and the stored original are
removed and the request is rejected as if step 2 had caught it.

Nothing raises out of :meth:`GenerationOrchestrator.generate`.  Unexpected
errors are logged and returned as ``DATABASE_ERROR``, after moving any
pending record to ``failed`` with the exception message as its error, so
every workflow ends in a terminal state.
"""

from __future__ import annotations

import io
import logging
import time
import uuid
from collections.abc import Callable

from PIL import Image, UnidentifiedImageError

from aivenger.core.ledger import CreditLedger
from aivenger.core.models import (
    ErrorCode,
    GenerateFailure,
    GenerateResult,
    GenerateSuccess,
    Identity,
)
from aivenger.core.provider import ImageGenerationClient, ProviderError
from aivenger.core.records import GenerationStore
from aivenger.core.storage import LocalArtifactStore

logger = logging.getLogger(__name__)

ARTIFACT_NAMESPACE = "avatars"
DEFAULT_ACCEPTED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")

# User-facing messages, one per outcome.
MSG_UNAUTHORIZED = "Unauthorized"
MSG_INSUFFICIENT_CREDITS = "Insufficient credits. Upgrade your plan to continue."
MSG_NO_IMAGE = "No image provided"
MSG_AI_FAILED = "AI generation failed. Please try again later."
MSG_UNEXPECTED = "An unexpected error occurred"


def _failure(code: ErrorCode, message: str) -> GenerateFailure:
    return GenerateFailure(error=message, code=code)


class GenerationOrchestrator:
    """Run the generation workflow against injected collaborators.

    Attributes:
        ledger: Credit balances.
        records: Generation record store.
        storage: Artifact store for originals and results.
        provider: Image generation client.
        cost: Credits debited per accepted request.
        max_upload_bytes: Largest accepted source image.
        accepted_mime_types: MIME types accepted for the source image.
    """

    def __init__(
        self,
        ledger: CreditLedger,
        records: GenerationStore,
        storage: LocalArtifactStore,
        provider: ImageGenerationClient,
        *,
        cost: int = 10,
        max_upload_bytes: int = 10 * 1024 * 1024,
        accepted_mime_types: tuple[str, ...] | list[str] = DEFAULT_ACCEPTED_MIME_TYPES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.records = records
        self.storage = storage
        self.provider = provider
        self.cost = cost
        self.max_upload_bytes = max_upload_bytes
        self.accepted_mime_types = frozenset(accepted_mime_types)
        self._clock = clock

    def _validate_image(self, image: bytes | None, mime_type: str | None) -> str | None:
        """Return a user-facing problem with the upload, or None if it's usable."""
        if not image:
            return MSG_NO_IMAGE
        if mime_type not in self.accepted_mime_types:
            accepted = ", ".join(sorted(self.accepted_mime_types))
            return f"Invalid file type. Please upload: {accepted}"
        if len(image) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes / (1024 * 1024)
            return f"File size must be less than {limit_mb:g}MB"

        try:
            with Image.open(io.BytesIO(image)) as img:
                img.verify()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError):
            return "Uploaded file is not a valid image"
        return None

    def generate(
        self,
        image: bytes | None,
        mime_type: str | None,
        identity: Identity | None,
        filename: str = "upload",
    ) -> GenerateResult:
        """Run the full workflow for one uploaded photo.

        Args:
            image: Raw bytes of the uploaded photo, or None if absent.
            mime_type: MIME type reported for the upload.
            identity: Caller resolved by the credential gate, or None.
            filename: Client-supplied file name, used in the stored name.

        Returns:
            :class:`GenerateSuccess` with the completed record and the
            remaining balance, or :class:`GenerateFailure` with a message
            and an :class:`ErrorCode`.
        """
        # Step 1: identity
        if identity is None:
            return _failure(ErrorCode.UNAUTHORIZED, MSG_UNAUTHORIZED)

        user_id = identity.user_id
        generation_id: str | None = None

        try:
            # Step 2: early balance check, no side effects yet
            balance = self.ledger.get_balance(user_id)
            if balance is None or balance < self.cost:
                logger.info(f"Rejected generation for {user_id}: balance {balance}")
                return _failure(ErrorCode.INSUFFICIENT_CREDITS, MSG_INSUFFICIENT_CREDITS)

            # Step 3: payload
            problem = self._validate_image(image, mime_type)
            if problem:
                logger.info(f"Rejected upload from {user_id}: {problem}")
                return _failure(ErrorCode.UPLOAD_FAILED, problem)

            # Step 4: store the original
            timestamp = int(self._clock() * 1000)
            original = self.storage.upload(
                image,
                f"original_{user_id}_{timestamp}_{filename}",
                ARTIFACT_NAMESPACE,
            )

            # Step 5: pending record
            generation_id = f"gen_{timestamp}_{uuid.uuid4()}"
            self.records.create(generation_id, user_id, original.url, credits_used=self.cost)

            # Step 6: charge before calling the provider
            remaining = self.ledger.try_deduct(user_id, self.cost)
            if remaining is None:
                logger.warning(f"Credit deduction lost a race for {user_id}; undoing {generation_id}")
                self.records.discard_pending(generation_id)
                self.storage.delete(original.url)
                generation_id = None
                return _failure(ErrorCode.INSUFFICIENT_CREDITS, MSG_INSUFFICIENT_CREDITS)

            # Step 7: provider call, no refund on failure
            try:
                provider_url = self.provider.generate(image, mime_type)
            except ProviderError as e:
                logger.error(f"Generation {generation_id} failed at provider: {e}")
                self.records.mark_failed(generation_id, str(e))
                return _failure(ErrorCode.AI_GENERATION_FAILED, MSG_AI_FAILED)

            # Step 8: re-host the result under our own name
            generated_bytes = self.provider.fetch_image(provider_url)
            generated = self.storage.upload(
                generated_bytes,
                f"generated_{user_id}_{timestamp}.png",
                ARTIFACT_NAMESPACE,
            )

            # Step 9: finalize
            self.records.mark_completed(generation_id, generated.url)

            # Step 10: return the stored record
            final = self.records.get(generation_id)
            logger.info(f"Generation {generation_id} completed; {remaining} credits remaining")
            return GenerateSuccess(generation=final, remaining_credits=remaining)

        except Exception as e:
            logger.exception(f"Unexpected generation error for {user_id}")
            if generation_id is not None:
                self._fail_quietly(generation_id, str(e) or type(e).__name__)
            return _failure(ErrorCode.DATABASE_ERROR, MSG_UNEXPECTED)

    def _fail_quietly(self, generation_id: str, error_message: str) -> None:
        """Best-effort move of a pending record to ``failed`` with the captured error."""
        try:
            self.records.mark_failed(generation_id, error_message)
        except Exception:
            logger.exception(f"Could not mark generation {generation_id} as failed")

"""SQLite-backed store for generation records.

Records move through a one-way lifecycle::

    pending ──► completed
        └─────► failed

Terminal updates are guarded with ``WHERE status = 'pending'`` so that a
record can reach a terminal state exactly once and never leave it.  All
API-facing lookups take the requesting user id and filter on it, so a
record owned by someone else is indistinguishable from a missing one.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from aivenger.core.database import transaction
from aivenger.core.models import Generation, GenerationStatus

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, user_id, original_image_url, generated_image_url, status, "
    "error_message, credits_used, created_at, updated_at"
)


class InvalidTransitionError(RuntimeError):
    """Raised when a terminal update targets a record that isn't pending."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_generation(row: sqlite3.Row) -> Generation:
    return Generation(
        id=row["id"],
        user_id=row["user_id"],
        original_image_url=row["original_image_url"],
        generated_image_url=row["generated_image_url"],
        status=GenerationStatus(row["status"]),
        error_message=row["error_message"],
        credits_used=row["credits_used"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class GenerationStore:
    """CRUD over generation records.

    Attributes:
        db_path: Path to the SQLite database file
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def create(
        self,
        generation_id: str,
        user_id: str,
        original_image_url: str,
        credits_used: int,
    ) -> Generation:
        """Insert a new ``pending`` record and return it."""
        now = _now()
        with transaction(self.db_path) as conn:
            conn.execute(
                f"""
                INSERT INTO generations ({_COLUMNS})
                VALUES (?, ?, ?, NULL, ?, NULL, ?, ?, ?)
                """,
                (
                    generation_id,
                    user_id,
                    original_image_url,
                    GenerationStatus.PENDING.value,
                    credits_used,
                    now,
                    now,
                ),
            )
        logger.info(f"Created pending generation {generation_id} for {user_id}")
        return self.get(generation_id)

    def mark_completed(self, generation_id: str, generated_image_url: str) -> None:
        """Move a pending record to ``completed``.

        Raises:
            InvalidTransitionError: If the record is missing or already terminal
        """
        self._finish(
            generation_id,
            GenerationStatus.COMPLETED,
            generated_image_url=generated_image_url,
            error_message=None,
        )

    def mark_failed(self, generation_id: str, error_message: str) -> None:
        """Move a pending record to ``failed`` with the captured error.

        Raises:
            InvalidTransitionError: If the record is missing or already terminal
        """
        self._finish(
            generation_id,
            GenerationStatus.FAILED,
            generated_image_url=None,
            error_message=error_message or "Generation failed",
        )

    def _finish(
        self,
        generation_id: str,
        status: GenerationStatus,
        *,
        generated_image_url: str | None,
        error_message: str | None,
    ) -> None:
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE generations
                SET status = ?, generated_image_url = ?, error_message = ?,
                    updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    status.value,
                    generated_image_url,
                    error_message,
                    _now(),
                    generation_id,
                    GenerationStatus.PENDING.value,
                ),
            )
            if cursor.rowcount == 0:
                raise InvalidTransitionError(
                    f"Generation {generation_id} is not pending; cannot mark {status.value}"
                )
        logger.info(f"Generation {generation_id} marked {status.value}")

    def get(self, generation_id: str) -> Generation | None:
        """Fetch a record by id without an ownership check.

        Only the generation workflow uses this, for records it created itself.
        """
        with transaction(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM generations WHERE id = ?",
                (generation_id,),
            ).fetchone()
        return _row_to_generation(row) if row else None

    def find_for_user(self, generation_id: str, user_id: str) -> Generation | None:
        """Fetch a record only if ``user_id`` owns it."""
        with transaction(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM generations WHERE id = ? AND user_id = ?",
                (generation_id, user_id),
            ).fetchone()
        return _row_to_generation(row) if row else None

    def list_for_user(
        self,
        user_id: str,
        *,
        status: GenerationStatus | None = None,
        limit: int | None = None,
    ) -> list[Generation]:
        """List a user's records, newest first.

        Args:
            user_id: Owner to list for
            status: Keep only records in this state
            limit: Maximum number of records to return

        Returns:
            Records ordered by creation time, newest first
        """
        query = f"SELECT {_COLUMNS} FROM generations WHERE user_id = ?"
        params: list = [user_id]

        if status is not None:
            query += " AND status = ?"
            params.append(GenerationStatus(status).value)

        query += " ORDER BY created_at DESC, rowid DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with transaction(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_generation(row) for row in rows]

    def delete_for_user(self, generation_id: str, user_id: str) -> bool:
        """Delete a record owned by ``user_id``.

        Returns:
            True if a record was deleted, False if none matched
        """
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM generations WHERE id = ? AND user_id = ?",
                (generation_id, user_id),
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted generation {generation_id}")
        return deleted

    def discard_pending(self, generation_id: str) -> bool:
        """Remove a record that never left ``pending``.

        Used by the workflow to undo a record when the credit deduction is
        refused, so no trace of the rejected request remains.
        """
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM generations WHERE id = ? AND status = ?",
                (generation_id, GenerationStatus.PENDING.value),
            )
            return cursor.rowcount > 0

    def stats_for_user(self, user_id: str) -> dict:
        """Return completed-generation statistics for a user.

        Returns:
            Dictionary with ``total_generations`` (completed count) and
            ``last_generation_date`` (datetime of the newest completed
            record, or None)
        """
        with transaction(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total, MAX(created_at) AS latest
                FROM generations
                WHERE user_id = ? AND status = ?
                """,
                (user_id, GenerationStatus.COMPLETED.value),
            ).fetchone()

        latest = row["latest"]
        return {
            "total_generations": row["total"],
            "last_generation_date": datetime.fromisoformat(latest) if latest else None,
        }

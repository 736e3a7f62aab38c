"""Credit ledger: per-user credit balances backed by SQLite.

The only write path that lowers a balance is :meth:`CreditLedger.try_deduct`,
a single conditional ``UPDATE`` that succeeds only while the balance covers
the cost.  Two concurrent requests can both pass a read-only balance check,
but at most one of them can win the conditional update when the balance
covers a single charge.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from aivenger.core.database import transaction

logger = logging.getLogger(__name__)


class CreditLedger:
    """Read and decrement user credit balances.

    Attributes:
        db_path: Path to the SQLite database file
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def ensure_account(self, user_id: str, starting_credits: int) -> bool:
        """Provision an account with a starting balance if it doesn't exist.

        Existing balances are never touched.

        Args:
            user_id: Account owner
            starting_credits: Balance for a newly created account

        Returns:
            True if the account was created, False if it already existed
        """
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO users (id, credits, created_at)
                VALUES (?, ?, ?)
                """,
                (user_id, starting_credits, datetime.now(timezone.utc).isoformat()),
            )
            created = cursor.rowcount > 0

        if created:
            logger.info(f"Provisioned account {user_id} with {starting_credits} credits")
        return created

    def get_balance(self, user_id: str) -> int | None:
        """Return the current balance, or None if the account doesn't exist."""
        with transaction(self.db_path) as conn:
            row = conn.execute(
                "SELECT credits FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        return row["credits"] if row else None

    def try_deduct(self, user_id: str, cost: int) -> int | None:
        """Atomically debit ``cost`` credits if the balance covers it.

        The check and the decrement are one statement, so a concurrent
        deduction can never drive the balance below zero.

        Args:
            user_id: Account to debit
            cost: Credits to remove (positive)

        Returns:
            The balance after the deduction, or None if the account is missing
            or its balance is below ``cost``
        """
        if cost <= 0:
            raise ValueError(f"cost must be positive, got {cost}")

        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE users SET credits = credits - ?
                WHERE id = ? AND credits >= ?
                """,
                (cost, user_id, cost),
            )
            if cursor.rowcount == 0:
                logger.warning(f"Deduction of {cost} credits refused for {user_id}")
                return None

            # Still inside the write transaction, so no other writer has
            # touched the row since the update.
            row = conn.execute(
                "SELECT credits FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

        logger.info(f"Deducted {cost} credits from {user_id}, {row['credits']} remaining")
        return row["credits"]


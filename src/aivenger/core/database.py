"""SQLite schema and connection helper shared by the ledger and record store.

Every call opens its own short-lived connection, so concurrent requests
served from the FastAPI threadpool never share a connection object.  SQLite
serialises writers; ``busy_timeout`` makes a writer wait for the lock instead
of failing immediately.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_SECONDS = 30.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    credits INTEGER NOT NULL CHECK (credits >= 0),
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS generations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    original_image_url TEXT NOT NULL,
    generated_image_url TEXT,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'completed', 'failed')),
    error_message TEXT,
    credits_used INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_generations_user_created
ON generations(user_id, created_at DESC);
"""


def connect(db_path: Path) -> sqlite3.Connection:
    """Open a connection with row access by column name.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        A new connection.  Use it as a context manager to commit or roll back.
    """
    conn = sqlite3.connect(db_path, timeout=_BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a connection inside one transaction, then close it.

    The transaction commits when the block exits normally and rolls back if
    it raises.
    """
    conn = connect(db_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def initialize_database(db_path: Path) -> None:
    """Create the schema if it doesn't exist."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(db_path)
    try:
        conn.executescript(_SCHEMA)
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Initialized database at {db_path}")

"""SQLite-backed key-value store for persisted snapshots."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Schema for the key-value table
KV_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SnapshotStore:
    """Single-table JSON key-value store.

    Values are stored as JSON text in the same schema the sync API
    sends over the wire.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    @property
    def _in_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        if not self._in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(KV_SCHEMA)
        self._conn.commit()

        logger.info(f"SnapshotStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    def get(self, key: str) -> dict[str, Any] | None:
        """Get a stored value.

        Args:
            key: Key to look up.

        Returns:
            The decoded JSON value, or None if the key is not stored.
        """
        conn = self._ensure_connected()

        row = conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()

        if row is None:
            return None
        return json.loads(row["value"])

    def put(self, key: str, value: dict[str, Any]) -> None:
        """Store a value, replacing any previous one.

        Args:
            key: Key to store under.
            value: JSON-serializable value.
        """
        conn = self._ensure_connected()

        conn.execute(
            """
            INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), datetime.now().isoformat()),
        )
        conn.commit()

        logger.debug(f"Stored value under {key!r}")

    def delete(self, key: str) -> bool:
        """Delete a stored value.

        Returns:
            True if a value was deleted.
        """
        conn = self._ensure_connected()

        cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()

        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        """List stored keys in sorted order."""
        conn = self._ensure_connected()

        cursor = conn.execute("SELECT key FROM kv_store ORDER BY key")
        return [row["key"] for row in cursor]

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics.

        Returns:
            Dictionary with key count and last update time.
        """
        conn = self._ensure_connected()

        row = conn.execute(
            "SELECT COUNT(*), MAX(updated_at) FROM kv_store"
        ).fetchone()

        stats = {
            "db_path": str(self.db_path),
            "key_count": row[0],
            "last_updated": row[1],
        }

        if not self._in_memory and self.db_path.exists():
            stats["db_size_mb"] = round(
                self.db_path.stat().st_size / (1024 * 1024), 2
            )

        return stats

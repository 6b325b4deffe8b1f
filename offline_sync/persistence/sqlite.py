"""
SQLite key/value persistence for the offline queue.

Stores the whole snapshot as a JSON array under a single key, the same
shape a browser-style local key/value store would hold. Useful when the
host application already keeps its local state in SQLite.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import StorageIOError
from ..models import QueueItem
from .base import QueuePersistence, decode_items, encode_items

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "offline_sync_queue"


class SqliteQueuePersistence(QueuePersistence):
    """Persists the queue snapshot in a SQLite key/value table."""

    def __init__(
        self,
        db_path: Path | str = ":memory:",
        storage_key: str = DEFAULT_STORAGE_KEY,
    ):
        """Initialize the SQLite backend.

        Args:
            db_path: Database file (``:memory:`` keeps it for this instance only)
            storage_key: Key the snapshot is stored under
        """
        self.db_path = db_path
        self.storage_key = storage_key
        self.conn: Any = None  # aiosqlite.Connection, opened lazily

    async def _connect(self) -> Any:
        if self.conn is not None:
            return self.conn

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.conn = await aiosqlite.connect(str(self.db_path))
            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT NOT NULL PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                )
            """)
            await self.conn.commit()
        except (aiosqlite.Error, OSError) as e:
            self.conn = None
            raise StorageIOError("connect", str(self.db_path), e) from e

        return self.conn

    async def load(self) -> list[QueueItem]:
        """Load the queue, falling back to empty on any read or parse error."""
        try:
            conn = await self._connect()
            async with conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (self.storage_key,)
            ) as cursor:
                row = await cursor.fetchone()
            return decode_items(row[0] if row else None)
        except (StorageIOError, aiosqlite.Error, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load sync queue from {self.db_path}: {e}")
            return []

    async def save(self, items: list[QueueItem]) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (self.storage_key, encode_items(items)),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("save_queue", str(self.db_path), e) from e

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None

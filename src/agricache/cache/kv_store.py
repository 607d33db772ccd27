"""
Key-value store implementations.

- SQLiteKVStore: async SQLite-backed store using aiosqlite
- InMemoryKVStore: dict-backed store for tests and ephemeral caches
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import aiosqlite

from agricache.cache.base import KeyValueStore
from agricache.exceptions import StorageError
from agricache.logging import get_logger

logger = get_logger(__name__)


class SQLiteKVStore(KeyValueStore):
    """Key-value store in a single SQLite table.

    Every write commits immediately so the index and a payload written one
    after the other are both durable before the operation returns.
    """

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the store.

        Args:
            db_path: Path of the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)
            await self._db.commit()
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to open key-value store",
                context={"backend": "sqlite", "path": str(self.db_path), "error": str(e)},
            ) from e
        logger.debug("Key-value store initialized", path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("SQLiteKVStore not initialized. Call init() first.")
        return self._db

    async def get(self, key: str) -> bytes | None:
        db = self._conn()
        try:
            async with db.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(
                "Read failed", context={"backend": "sqlite", "key": key, "error": str(e)}
            ) from e
        return bytes(row[0]) if row else None

    async def set(self, key: str, value: bytes) -> None:
        db = self._conn()
        try:
            await db.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value)
            )
            await db.commit()
        except sqlite3.Error as e:
            raise StorageError(
                "Write failed", context={"backend": "sqlite", "key": key, "error": str(e)}
            ) from e

    async def delete(self, key: str) -> bool:
        db = self._conn()
        try:
            cursor = await db.execute("DELETE FROM kv WHERE key = ?", (key,))
            await db.commit()
        except sqlite3.Error as e:
            raise StorageError(
                "Delete failed", context={"backend": "sqlite", "key": key, "error": str(e)}
            ) from e
        return cursor.rowcount > 0

    async def delete_many(self, keys: list[str]) -> int:
        if not keys:
            return 0
        db = self._conn()
        try:
            cursor = await db.executemany(
                "DELETE FROM kv WHERE key = ?", [(key,) for key in keys]
            )
            await db.commit()
        except sqlite3.Error as e:
            raise StorageError(
                "Bulk delete failed",
                context={"backend": "sqlite", "count": len(keys), "error": str(e)},
            ) from e
        return cursor.rowcount

    async def keys(self, prefix: str = "") -> list[str]:
        db = self._conn()
        try:
            async with db.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                "Key scan failed",
                context={"backend": "sqlite", "prefix": prefix, "error": str(e)},
            ) from e
        return [row[0] for row in rows]


class InMemoryKVStore(KeyValueStore):
    """Dict-backed store. Nothing survives the process."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

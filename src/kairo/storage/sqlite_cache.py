"""Persistent cache provider backed by SQLite.

Values are stored as JSON, so only JSON-serializable results can be cached.
Expiry uses wall-clock time so entries survive restarts.
"""

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiosqlite
import orjson

from kairo.storage.cache import CacheProvider
from kairo.utils.telemetry import get_logger


class SQLiteCacheProvider(CacheProvider):
    """SQLite-based cache with TTL expiry.

    Call :meth:`initialize` before use and :meth:`close` when done.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize SQLite cache.

        Args:
            db_path: Path to SQLite database file (":memory:" for in-memory)
            default_ttl: TTL in seconds applied when ``write`` gets none
            clock: Wall-clock time source, injectable for tests
        """
        self.db_path = str(db_path)
        self.default_ttl = default_ttl
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._logger = get_logger("kairo.storage.sqlite")

    async def initialize(self) -> None:
        """Open the database connection and create the schema."""
        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA synchronous=NORMAL")

        await self._db.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL
            )
        """
        )

        await self._db.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_cache_entries_expires_at
            ON cache_entries(expires_at)
        """
        )

        await self._db.commit()

        self._logger.info("SQLite cache initialized", db_path=self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

        self._logger.info("SQLite cache closed")

    async def __aenter__(self) -> "SQLiteCacheProvider":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _connection(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("SQLiteCacheProvider not initialized")
        return self._db

    async def read(self, key: str) -> Any | None:
        db = self._connection()

        async with db.execute(
            "SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        value, expires_at = row
        if expires_at is not None and self._clock() >= expires_at:
            await db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            await db.commit()
            return None

        return orjson.loads(value)

    async def write(self, key: str, value: Any, ttl: float | None = None) -> None:
        db = self._connection()

        ttl = ttl if ttl is not None else self.default_ttl
        expires_at = self._clock() + ttl if ttl is not None else None

        await db.execute(
            """
            INSERT OR REPLACE INTO cache_entries (key, value, expires_at)
            VALUES (?, ?, ?)
        """,
            (key, orjson.dumps(value).decode(), expires_at),
        )
        await db.commit()

    async def delete(self, key: str) -> bool:
        db = self._connection()

        cursor = await db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        await db.commit()
        return cursor.rowcount > 0

    async def delete_matching(self, predicate: Callable[[str], bool]) -> int:
        db = self._connection()

        async with db.execute("SELECT key FROM cache_entries") as cursor:
            keys = [row[0] for row in await cursor.fetchall()]

        matched = [(key,) for key in keys if predicate(key)]
        if matched:
            await db.executemany("DELETE FROM cache_entries WHERE key = ?", matched)
            await db.commit()
        return len(matched)

    async def clear(self) -> None:
        db = self._connection()
        await db.execute("DELETE FROM cache_entries")
        await db.commit()

    async def evict_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        db = self._connection()

        cursor = await db.execute(
            "DELETE FROM cache_entries"
            " WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        await db.commit()

        removed = cursor.rowcount
        if removed:
            self._logger.debug("Evicted expired entries", count=removed)
        return removed

    async def count(self) -> int:
        """Number of stored entries, expired or not."""
        db = self._connection()

        async with db.execute("SELECT COUNT(*) FROM cache_entries") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

"""SQLite Markdown cache driver.

Durable key-value storage with per-entry TTL. Expiry is checked lazily at
read time: an expired row is deleted and reported as a miss.

All operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as cache miss by callers),
write and delete failures are logged and reported as ``False``.
Infrastructure errors never cross the driver boundary.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import aiosqlite
import structlog

from mdnegotiation.models.cache import CacheEntry

log = structlog.get_logger()

_CREATE_CACHE_TABLE = """
CREATE TABLE IF NOT EXISTS markdown_cache (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    created_at  REAL NOT NULL,
    ttl_seconds INTEGER NOT NULL DEFAULT 0,
    size        INTEGER NOT NULL DEFAULT 0
)
"""


class SqliteCacheDriver:
    """SQLite-backed cache implementing CacheDriverProtocol."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._clock = clock

    async def init_db(self) -> None:
        """Create the table and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_CACHE_TABLE)
        await self._db.commit()

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Read an entry. Returns ``None`` on miss, expiry or read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT key, value, created_at, ttl_seconds, size "
                "FROM markdown_cache WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            entry = CacheEntry(
                key=row[0],
                value=row[1],
                created_at=row[2],
                ttl_seconds=row[3],
                size=row[4],
            )
        except aiosqlite.Error:
            log.warning("cache_read_error", driver="sqlite", key=key, exc_info=True)
            return None

        if entry.is_expired(self._clock()):
            log.debug("cache_entry_expired", driver="sqlite", key=key)
            await self.delete(key)
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: str, ttl: int = 0) -> bool:
        """Write an entry. Non-fatal on failure."""
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO markdown_cache "
                "(key, value, created_at, ttl_seconds, size) VALUES (?, ?, ?, ?, ?)",
                (key, value, self._clock(), max(ttl, 0), len(value.encode("utf-8"))),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", driver="sqlite", key=key, exc_info=True)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._db.execute("DELETE FROM markdown_cache WHERE key = ?", (key,))
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_delete_error", driver="sqlite", key=key, exc_info=True)
            return False
        return True

    async def flush(self) -> bool:
        try:
            cursor = await self._db.execute("DELETE FROM markdown_cache")
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_flush_error", driver="sqlite", exc_info=True)
            return False
        log.info("cache_flushed", driver="sqlite", deleted=deleted)
        return True

    async def cleanup_expired(self) -> int:
        """Delete every expired row. Non-fatal on failure; returns rows removed."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM markdown_cache WHERE ttl_seconds > 0 AND ? - created_at > ttl_seconds",
                (self._clock(),),
            )
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_cleanup_error", driver="sqlite", exc_info=True)
            return 0
        log.info("cache_cleanup_complete", driver="sqlite", deleted=deleted)
        return deleted

    async def available(self) -> bool:
        try:
            await self._db.execute("SELECT 1 FROM markdown_cache LIMIT 1")
        except aiosqlite.Error:
            return False
        return True

    def name(self) -> str:
        return "sqlite"

"""In-process Markdown cache driver.

Entries live in a dict owned by one process. Used for tests, single-worker
deployments and when ``cache.driver`` is set to ``memory``.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from mdnegotiation.models.cache import CacheEntry


class MemoryCacheDriver:
    """Dict-backed cache implementing CacheDriverProtocol."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    async def set(self, key: str, value: str, ttl: int = 0) -> bool:
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl_seconds=max(ttl, 0),
            size=len(value.encode("utf-8")),
        )
        return True

    async def delete(self, key: str) -> bool:
        self._entries.pop(key, None)
        return True

    async def flush(self) -> bool:
        self._entries.clear()
        return True

    async def available(self) -> bool:
        return True

    def name(self) -> str:
        return "memory"

    def __len__(self) -> int:
        return len(self._entries)

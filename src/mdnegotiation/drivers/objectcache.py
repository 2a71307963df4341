"""Shared object-cache driver backed by Redis.

Fastest and shared across workers, but volatile and possibly unreachable:
``available()`` pings the server. Expiry is delegated to Redis (``EX``).
Every key is namespaced with a prefix so ``flush()`` only removes this
service's entries.
"""

from __future__ import annotations

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

log = structlog.get_logger()

DEFAULT_KEY_PREFIX = "mdnegotiation:"

# Network failures surface as RedisError or plain OSError depending on the stage.
_BACKEND_ERRORS = (RedisError, OSError)


def build_redis_client(url: str) -> Redis:
    """Create the shared Redis client. Called once at startup."""
    return from_url(
        url,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )


class ObjectCacheDriver:
    """Redis-backed cache implementing CacheDriverProtocol."""

    def __init__(self, client: Redis, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._client = client
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(self._key(key))
        except _BACKEND_ERRORS:
            log.warning("cache_read_error", driver="object", key=key, exc_info=True)
            return None
        return value

    async def set(self, key: str, value: str, ttl: int = 0) -> bool:
        try:
            await self._client.set(self._key(key), value, ex=ttl if ttl > 0 else None)
        except _BACKEND_ERRORS:
            log.warning("cache_write_error", driver="object", key=key, exc_info=True)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._client.delete(self._key(key))
        except _BACKEND_ERRORS:
            log.warning("cache_delete_error", driver="object", key=key, exc_info=True)
            return False
        return True

    async def flush(self) -> bool:
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{self._prefix}*")]
            if keys:
                await self._client.delete(*keys)
        except _BACKEND_ERRORS:
            log.warning("cache_flush_error", driver="object", exc_info=True)
            return False
        log.info("cache_flushed", driver="object", deleted=len(keys))
        return True

    async def available(self) -> bool:
        try:
            return bool(await self._client.ping())
        except _BACKEND_ERRORS:
            return False

    def name(self) -> str:
        return "object"

"""Markdown cache manager.

Owns cache key construction, the default TTL and invalidation. The CMS
collaborator calls ``invalidate()`` synchronously whenever a content item
changes; invalidation is best-effort and a failed delete never propagates
back to the content write that triggered it.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mdnegotiation.protocols import CacheDriverProtocol

log = structlog.get_logger()

KEY_PREFIX = "md_"

# Variant suffixes rendered for a content item; "" is the page rendering.
REST_VARIANT = "rest"
KNOWN_VARIANTS: tuple[str, ...] = ("", REST_VARIANT)


class InvalidationReason(StrEnum):
    SAVED = "saved"
    TRASHED = "trashed"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    TERMS_CHANGED = "terms_changed"
    META_CHANGED = "meta_changed"


class CacheManager:
    """High-level cache operations on top of a single driver."""

    def __init__(
        self,
        driver: CacheDriverProtocol,
        ttl_seconds: int = 3600,
        *,
        enabled: bool = True,
        ignored_meta_prefixes: Iterable[str] = (),
    ) -> None:
        self.driver = driver
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.ignored_meta_prefixes = tuple(ignored_meta_prefixes)

    def build_key(self, content_id: int, suffix: str = "") -> str:
        key = f"{KEY_PREFIX}{content_id}"
        if suffix:
            key = f"{key}_{suffix}"
        return key

    async def get(self, key: str) -> str | None:
        if not self.enabled:
            return None
        return await self.driver.get(key)

    async def set(self, key: str, value: str, ttl: int = 0) -> bool:
        """Store ``value``; ``ttl=0`` means use the configured default."""
        if not self.enabled:
            return False
        return await self.driver.set(key, value, ttl if ttl > 0 else self.ttl_seconds)

    def is_ignored_meta(self, meta_key: str) -> bool:
        return any(meta_key.startswith(prefix) for prefix in self.ignored_meta_prefixes)

    async def invalidate(
        self,
        content_id: int,
        reason: InvalidationReason = InvalidationReason.SAVED,
        *,
        meta_key: str | None = None,
    ) -> bool:
        """Drop every cached rendering of ``content_id``.

        Metadata changes whose key matches an ignored prefix (editor locks,
        ping bookkeeping) are skipped. Returns False only for skipped
        changes; driver delete failures are logged, not reported.
        """
        if reason == InvalidationReason.META_CHANGED and meta_key is not None:
            if self.is_ignored_meta(meta_key):
                log.debug(
                    "cache_invalidation_skipped",
                    content_id=content_id,
                    reason=reason,
                    meta_key=meta_key,
                )
                return False

        deleted = True
        for suffix in KNOWN_VARIANTS:
            deleted = await self.driver.delete(self.build_key(content_id, suffix)) and deleted

        log.info("cache_invalidated", content_id=content_id, reason=reason, success=deleted)
        return True

    async def flush_all(self) -> bool:
        result = await self.driver.flush()
        log.info("cache_flush_all", driver=self.driver.name(), success=result)
        return result

    async def get_stats(self) -> dict:
        return {
            "driver": self.driver.name(),
            "available": await self.driver.available(),
            "enabled": self.enabled,
            "ttl_seconds": self.ttl_seconds,
        }

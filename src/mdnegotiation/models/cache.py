from __future__ import annotations

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """A stored Markdown rendering, keyed by ``md_<id>[_<variant>]``."""

    key: str
    value: str
    created_at: float  # Unix timestamp
    ttl_seconds: int = 0  # 0 = no expiry
    size: int = 0

    def is_expired(self, now: float) -> bool:
        return self.ttl_seconds > 0 and now - self.created_at > self.ttl_seconds

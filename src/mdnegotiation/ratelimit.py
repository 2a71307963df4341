"""Per-client fixed-window rate limiting for Markdown requests.

Each client key owns one window. A request inside the window increments the
count; once the count would exceed ``max_requests`` the request is denied
and the window is left untouched. The first request after the window has
elapsed resets it to ``count=1``. Bursts straddling a window boundary can
briefly see up to twice the limit.
"""

from __future__ import annotations

import hashlib
import ipaddress
import time
from collections.abc import Callable, Iterable, Mapping

import structlog

from mdnegotiation.models.negotiation import RateWindow

log = structlog.get_logger()

DEFAULT_CLIENT_IP = "127.0.0.1"

# Expired windows are pruned once the table grows past this many keys.
_PRUNE_THRESHOLD = 10_000


def _valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def client_ip(
    headers: Mapping[str, str],
    peer_host: str | None,
    trusted_headers: Iterable[str],
) -> str:
    """Resolve the client address from proxy headers or the peer address.

    Proxy headers are checked in order; the first one whose first
    comma-separated value parses as an IP wins.
    """
    for header in trusted_headers:
        value = headers.get(header.lower(), "")
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if _valid_ip(candidate):
            return candidate

    return peer_host or DEFAULT_CLIENT_IP


def client_key(ip: str) -> str:
    """Opaque per-client key; raw addresses are never stored."""
    return hashlib.sha256(ip.encode()).hexdigest()[:32]


class RateLimiter:
    """In-process fixed-window limiter.

    Windows live in this process only. With several server workers each one
    keeps its own table, so a client may make up to ``max_requests`` per
    worker in one window.

    ``is_allowed`` does its read-modify-write without awaiting, so updates to
    a single key cannot interleave under the event loop.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}

    def is_allowed(self, key: str) -> bool:
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now - window.window_start >= self.window_seconds:
            if window is None and len(self._windows) >= _PRUNE_THRESHOLD:
                self._prune(now)
            self._windows[key] = RateWindow(client_key=key, count=1, window_start=now)
            return True

        if window.count + 1 > self.max_requests:
            log.info("rate_limited", client_key=key, count=window.count, limit=self.max_requests)
            return False

        window.count += 1
        return True

    def retry_after(self, key: str) -> int:
        """Seconds until ``key``'s window resets (full window if unknown)."""
        window = self._windows.get(key)
        if window is None:
            return self.window_seconds
        remaining = self.window_seconds - (self._clock() - window.window_start)
        return max(1, int(remaining + 0.999))

    def window_for(self, key: str) -> RateWindow | None:
        return self._windows.get(key)

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.window_start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        log.debug("rate_windows_pruned", pruned=len(expired), remaining=len(self._windows))

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MediaTypeCandidate:
    """One media range from an Accept header, with its quality value."""

    type: str  # lower-cased, e.g. "text/markdown"
    quality: float  # 0.0 to 1.0


@dataclass(frozen=True, slots=True)
class NegotiationResult:
    """Outcome of negotiating one request's Accept header."""

    wants_markdown: bool
    media_type: str


@dataclass(slots=True)
class RateWindow:
    """Fixed-window request counter for one client key."""

    client_key: str
    count: int
    window_start: float

"""Accept header parsing and Markdown negotiation.

Media ranges are ranked by quality with a stable sort, so entries of equal
quality keep the order the client sent them in. The Markdown decision then
walks that ranking: a Markdown type wins only if it appears before any
``text/html`` or ``*/*`` entry. Media-range specificity rules from RFC 7231
are not applied.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from mdnegotiation.models.negotiation import MediaTypeCandidate, NegotiationResult

if TYPE_CHECKING:
    from starlette.requests import Request

MARKDOWN_TYPES: tuple[str, ...] = ("text/markdown", "text/x-markdown")
DEFAULT_MEDIA_TYPE = "text/markdown"

# Entries that end the scan: browsers send these ahead of any Markdown range.
_STOP_TYPES = frozenset({"text/html", "*/*"})

_MEDIA_TYPE_RE = re.compile(r"^[a-z*]+/[a-z0-9.*+\-]+$")
_QUALITY_RE = re.compile(r"^q\s*=\s*([01](?:\.\d{0,3})?)$")


def parse_accept_header(accept_header: str) -> list[MediaTypeCandidate]:
    """Parse an Accept header into candidates ordered by quality, highest first.

    Malformed media ranges are dropped. A missing or malformed ``q``
    parameter means quality 1.0.
    """
    candidates: list[MediaTypeCandidate] = []

    for part in accept_header.split(","):
        part = part.strip()
        if not part:
            continue

        segments = [segment.strip() for segment in part.split(";")]
        media_type = segments[0].lower()
        if not _MEDIA_TYPE_RE.match(media_type):
            continue

        quality = 1.0
        for param in segments[1:]:
            match = _QUALITY_RE.match(param)
            if match:
                quality = min(float(match.group(1)), 1.0)
                break

        candidates.append(MediaTypeCandidate(type=media_type, quality=quality))

    # sorted() is stable: equal qualities keep header order
    return sorted(candidates, key=lambda c: c.quality, reverse=True)


def accept_mentions_markdown(accept_header: str) -> bool:
    """Cheap substring pre-check used to scope rate limiting."""
    header = accept_header.lower()
    return any(media_type in header for media_type in MARKDOWN_TYPES)


class ContentNegotiator:
    """Decides whether one request prefers Markdown.

    The result is computed lazily and memoised; ``reset()`` clears it so the
    same instance can be re-evaluated.
    """

    def __init__(self, accept_header: str) -> None:
        self.accept_header = accept_header
        self._result: NegotiationResult | None = None

    @staticmethod
    def parse(accept_header: str) -> list[MediaTypeCandidate]:
        return parse_accept_header(accept_header)

    def negotiate(self) -> NegotiationResult:
        if self._result is not None:
            return self._result

        result = NegotiationResult(wants_markdown=False, media_type=DEFAULT_MEDIA_TYPE)
        for candidate in parse_accept_header(self.accept_header):
            if candidate.type in MARKDOWN_TYPES:
                result = NegotiationResult(wants_markdown=True, media_type=candidate.type)
                break
            if candidate.type in _STOP_TYPES:
                break

        self._result = result
        return result

    def wants_markdown(self) -> bool:
        return self.negotiate().wants_markdown

    def negotiated_media_type(self) -> str:
        return self.negotiate().media_type

    def reset(self) -> None:
        self._result = None


def negotiator_for(request: Request) -> ContentNegotiator:
    """Return the negotiator memoised on the request, creating it on first use."""
    negotiator = getattr(request.state, "negotiator", None)
    if negotiator is None:
        negotiator = ContentNegotiator(request.headers.get("accept", ""))
        request.state.negotiator = negotiator
    return negotiator

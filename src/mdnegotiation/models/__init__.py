from __future__ import annotations

from mdnegotiation.models.api import (
    ContentSummary,
    ListMarkdownInput,
    ListMarkdownOutput,
    MarkdownItemOutput,
    StatusOutput,
)
from mdnegotiation.models.cache import CacheEntry
from mdnegotiation.models.content import ContentItem
from mdnegotiation.models.negotiation import MediaTypeCandidate, NegotiationResult, RateWindow

__all__ = [
    # content
    "ContentItem",
    # cache
    "CacheEntry",
    # negotiation
    "MediaTypeCandidate",
    "NegotiationResult",
    "RateWindow",
    # api
    "ListMarkdownInput",
    "MarkdownItemOutput",
    "ContentSummary",
    "ListMarkdownOutput",
    "StatusOutput",
]

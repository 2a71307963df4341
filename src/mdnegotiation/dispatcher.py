"""Request dispatcher: decides whether and how to answer with Markdown.

Per request:

    validate Accept ─ bad ──────────────▶ 400
    negotiate ─────── not Markdown ─────▶ passthrough (None)
    type allowed? ─── no ───────────────▶ passthrough (None)
    access control ── denied ───────────▶ 403
    rate limit ────── exceeded ─────────▶ 429
    cache lookup ──── hit / miss+convert ▶ 200, or 304 if the client copy is fresh

Terminal states are returned as starlette ``Response`` values; ``None``
hands control back to the regular HTML rendering path. The alternate
access paths (URL suffix, query parameter) enter at ``serve()`` and skip
Accept negotiation.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from email.utils import format_datetime, parsedate_to_datetime
from typing import TYPE_CHECKING

import structlog
from starlette.concurrency import run_in_threadpool
from starlette.responses import PlainTextResponse, Response

from mdnegotiation.cache import REST_VARIANT
from mdnegotiation.converter import estimate_tokens
from mdnegotiation.negotiator import DEFAULT_MEDIA_TYPE, accept_mentions_markdown, negotiator_for
from mdnegotiation.ratelimit import client_ip, client_key
from mdnegotiation.validator import validate_accept_header

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from datetime import datetime

    from starlette.requests import Request

    from mdnegotiation.access import AccessControl
    from mdnegotiation.cache import CacheManager
    from mdnegotiation.config import NegotiationSettings
    from mdnegotiation.models.content import ContentItem
    from mdnegotiation.protocols import ConverterProtocol
    from mdnegotiation.ratelimit import RateLimiter

log = structlog.get_logger()

SOURCE_HEADER = "X-Markdown-Source"
SOURCE_VALUE = "mdnegotiation"
VERSION_HEADER = "X-Markdown-Version"
TOKENS_HEADER = "X-Markdown-Tokens"
CACHE_CONTROL = "public, max-age=300, s-maxage=3600"


def merge_vary(existing: str | None, value: str = "Accept") -> str:
    """Add ``value`` to a Vary header without dropping what is already there."""
    parts = [part.strip() for part in (existing or "").split(",") if part.strip()]
    if "*" in parts or any(part.lower() == value.lower() for part in parts):
        return ", ".join(parts)
    parts.append(value)
    return ", ".join(parts)


def build_etag(content_id: int, markdown: str) -> str:
    digest = hashlib.md5(markdown.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f'W/"{content_id}-{digest}"'


def http_date(moment: datetime) -> str:
    return format_datetime(moment.replace(microsecond=0), usegmt=True)


def is_not_modified(headers: Mapping[str, str], etag: str, modified: datetime) -> bool:
    """Evaluate If-None-Match / If-Modified-Since against the representation."""
    if_none_match = headers.get("if-none-match", "")
    if if_none_match:
        tags = [tag.strip() for tag in if_none_match.split(",")]
        if etag in tags or "*" in tags:
            return True

    if_modified_since = headers.get("if-modified-since", "")
    if if_modified_since:
        try:
            since = parsedate_to_datetime(if_modified_since)
        except (TypeError, ValueError):
            return False
        if since.tzinfo is None:
            return False
        return since >= modified.replace(microsecond=0)

    return False


@dataclass
class Hooks:
    """Typed extension points around a Markdown response."""

    # Called with the outgoing header dict; may add or replace headers.
    header_mutators: list[Callable[[dict[str, str], ContentItem], None]] = field(
        default_factory=list
    )
    # Called with freshly converted Markdown before it is cached.
    text_mutators: list[Callable[[str, ContentItem], str]] = field(default_factory=list)


@dataclass(frozen=True)
class RenderedMarkdown:
    markdown: str
    tokens: int
    cached: bool


class RequestDispatcher:
    """Orchestrates validation, negotiation, gating, caching and headers."""

    def __init__(
        self,
        *,
        converter: ConverterProtocol,
        cache: CacheManager,
        access: AccessControl,
        settings: NegotiationSettings,
        version: str,
        rate_limiter: RateLimiter | None = None,
        trusted_proxy_headers: Iterable[str] = (),
        hooks: Hooks | None = None,
    ) -> None:
        self._converter = converter
        self._cache = cache
        self._access = access
        self._settings = settings
        self._version = version
        self._rate_limiter = rate_limiter
        self._trusted_proxy_headers = tuple(trusted_proxy_headers)
        self.hooks = hooks or Hooks()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def dispatch(self, request: Request, item: ContentItem | None) -> Response | None:
        """Handle a content request negotiated through the Accept header."""
        if not self._settings.enabled:
            return None

        if not self._accept_is_valid(request):
            return self._bad_request()

        negotiator = negotiator_for(request)
        if not negotiator.wants_markdown():
            return None

        if item is None or not self._access.is_type_allowed(item):
            return None

        return await self.serve(request, item, media_type=negotiator.negotiated_media_type())

    async def dispatch_forced(self, request: Request, item: ContentItem) -> Response:
        """Handle a request that asked for Markdown via URL suffix or query."""
        if not self._accept_is_valid(request):
            return self._bad_request()
        return await self.serve(request, item, forced=True)

    async def serve(
        self,
        request: Request,
        item: ContentItem,
        *,
        media_type: str = DEFAULT_MEDIA_TYPE,
        forced: bool = False,
    ) -> Response:
        """Gate, render and emit Markdown for ``item``."""
        req_log = log.bind(content_id=item.id, path=request.url.path, forced=forced)

        if not self._access.can_access(item, request.headers):
            req_log.info("markdown_access_denied")
            return PlainTextResponse("Access denied", status_code=403)

        limited = self._check_rate_limit(request, forced=forced)
        if limited is not None:
            return limited

        rendered = await self.render(item)
        headers = self._markdown_headers(item, rendered, media_type)

        if is_not_modified(request.headers, headers["ETag"], item.modified):
            req_log.info("markdown_not_modified")
            return Response(status_code=304, headers=headers)

        req_log.info("markdown_served", cached=rendered.cached, tokens=rendered.tokens)
        return Response(rendered.markdown, status_code=200, headers=headers)

    async def render(self, item: ContentItem, variant: str = "") -> RenderedMarkdown:
        """Return cached Markdown for ``item`` or convert and cache it.

        Cache failures fall through to conversion. Conversion failures
        propagate and leave the cache untouched.
        """
        key = self._cache.build_key(item.id, variant)
        markdown = await self._cache.get(key)
        if markdown is not None:
            log.debug("cache_hit", key=key)
            return RenderedMarkdown(markdown=markdown, tokens=estimate_tokens(markdown), cached=True)

        log.debug("cache_miss", key=key)
        markdown = await run_in_threadpool(self._converter.convert_item, item)
        for mutate in self.hooks.text_mutators:
            markdown = mutate(markdown, item)

        await self._cache.set(key, markdown)
        return RenderedMarkdown(markdown=markdown, tokens=estimate_tokens(markdown), cached=False)

    async def render_for_api(self, item: ContentItem) -> RenderedMarkdown:
        return await self.render(item, REST_VARIANT)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _accept_is_valid(self, request: Request) -> bool:
        # Starlette decodes header bytes as latin-1; re-encode to recover them.
        raw = request.headers.get("accept", "").encode("latin-1")
        if validate_accept_header(raw):
            return True
        log.info("accept_header_rejected", length=len(raw), path=request.url.path)
        return False

    @staticmethod
    def _bad_request() -> Response:
        return PlainTextResponse("Bad Request: malformed Accept header", status_code=400)

    def _check_rate_limit(self, request: Request, *, forced: bool) -> Response | None:
        limiter = self._rate_limiter
        if limiter is None:
            return None
        if not forced and not accept_mentions_markdown(request.headers.get("accept", "")):
            return None

        peer = request.client.host if request.client else None
        key = client_key(client_ip(request.headers, peer, self._trusted_proxy_headers))
        if limiter.is_allowed(key):
            return None

        return PlainTextResponse(
            "Rate limit exceeded. Please try again later.",
            status_code=429,
            headers={
                "Retry-After": str(limiter.retry_after(key)),
                "X-RateLimit-Limit": str(limiter.max_requests),
                "X-RateLimit-Remaining": "0",
            },
        )

    def _markdown_headers(
        self, item: ContentItem, rendered: RenderedMarkdown, media_type: str
    ) -> dict[str, str]:
        headers = {
            "Content-Type": f"{media_type}; charset=utf-8",
            "Vary": "Accept",
            SOURCE_HEADER: SOURCE_VALUE,
            VERSION_HEADER: self._version,
            "Last-Modified": http_date(item.modified),
            "ETag": build_etag(item.id, rendered.markdown),
            "Cache-Control": CACHE_CONTROL,
        }
        if self._settings.token_header and rendered.tokens > 0:
            headers[TOKENS_HEADER] = str(rendered.tokens)

        for mutate in self.hooks.header_mutators:
            mutate(headers, item)
        return headers

"""HTTP server entrypoint and composition root.

Responsibilities (and nothing more):
- Configure structlog
- Build AppState from Settings (``build_app_state`` / ``open_app_state``)
- Register routes and error handlers on the starlette app
- Start uvicorn
"""

from __future__ import annotations

import html
import logging
import sys
import time
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

import mdnegotiation.api as api
from mdnegotiation import __version__
from mdnegotiation.access import AccessControl
from mdnegotiation.cache import CacheManager
from mdnegotiation.config import Settings
from mdnegotiation.content import JsonContentSource
from mdnegotiation.converter import HtmlMarkdownConverter
from mdnegotiation.dispatcher import SOURCE_HEADER, SOURCE_VALUE, TOKENS_HEADER, RequestDispatcher
from mdnegotiation.drivers import SqliteCacheDriver, resolve_driver
from mdnegotiation.errors import ErrorCode, MarkdownNegotiationError
from mdnegotiation.ratelimit import RateLimiter
from mdnegotiation.router import AlternateAccessRouter
from mdnegotiation.state import AppState
from mdnegotiation.transport import VaryAcceptMiddleware, run_http_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from starlette.requests import Request

    from mdnegotiation.models.content import ContentItem
    from mdnegotiation.protocols import (
        CacheDriverProtocol,
        ContentSourceProtocol,
        ConverterProtocol,
    )

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout is reserved for CLI output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


def build_app_state(
    settings: Settings,
    driver: CacheDriverProtocol,
    *,
    content: ContentSourceProtocol | None = None,
    converter: ConverterProtocol | None = None,
    clock: Callable[[], float] = time.time,
) -> AppState:
    """Wire every component explicitly from one settings snapshot."""
    if content is None:
        content = JsonContentSource.from_file(Path(settings.content.source_path).expanduser())
    if converter is None:
        converter = HtmlMarkdownConverter()

    access = AccessControl(settings.negotiation)
    cache = CacheManager(
        driver,
        settings.cache.ttl_seconds,
        enabled=settings.cache.enabled,
        ignored_meta_prefixes=settings.cache.ignored_meta_prefixes,
    )

    rate_limiter: RateLimiter | None = None
    if settings.rate_limit.enabled:
        rate_limiter = RateLimiter(
            settings.rate_limit.max_requests,
            settings.rate_limit.window_seconds,
            clock=clock,
        )

    dispatcher = RequestDispatcher(
        converter=converter,
        cache=cache,
        access=access,
        settings=settings.negotiation,
        version=__version__,
        rate_limiter=rate_limiter,
        trusted_proxy_headers=settings.rate_limit.trusted_proxy_headers,
    )
    router = AlternateAccessRouter(
        suffix_enabled=settings.negotiation.suffix_endpoint,
        query_enabled=settings.negotiation.query_format,
    )

    return AppState(
        settings=settings,
        content=content,
        converter=converter,
        cache=cache,
        access=access,
        dispatcher=dispatcher,
        router=router,
        rate_limiter=rate_limiter,
        version=__version__,
    )


@asynccontextmanager
async def open_app_state(
    settings: Settings,
    *,
    content: ContentSourceProtocol | None = None,
) -> AsyncGenerator[AppState, None]:
    """Resolve the cache driver, build AppState, and release resources on exit."""
    async with AsyncExitStack() as stack:
        driver = await resolve_driver(settings.cache, stack)
        if isinstance(driver, SqliteCacheDriver):
            await driver.cleanup_expired()

        state = build_app_state(settings, driver, content=content)
        log.info(
            "app_state_ready",
            version=__version__,
            cache_driver=driver.name(),
            content_items=len(state.content),
            rate_limit=state.rate_limiter is not None,
        )
        yield state


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _state(request: Request) -> AppState:
    return request.app.state.app_state


def _int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise MarkdownNegotiationError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Query parameter {name!r} must be an integer, got {raw!r}",
            suggestion=f"Pass {name} as a whole number.",
        ) from exc


async def get_markdown_item(request: Request) -> Response:
    state = _state(request)
    data = await api.get_item(request.path_params["content_id"], state, request.headers)
    return JSONResponse(
        data,
        headers={SOURCE_HEADER: SOURCE_VALUE, TOKENS_HEADER: str(data["tokens"])},
    )


async def list_markdown_items(request: Request) -> Response:
    state = _state(request)
    data = await api.list_items(
        request.query_params.get("post_type", "post"),
        _int_param(request, "per_page", 10),
        _int_param(request, "page", 1),
        state,
    )
    return JSONResponse(
        data["items"],
        headers={"X-Total-Count": str(data["total"]), "X-Total-Pages": str(data["total_pages"])},
    )


async def get_status(request: Request) -> Response:
    return JSONResponse(await api.status(_state(request)))


async def content_page(request: Request) -> Response:
    """Serve one content item: Markdown when asked for, HTML otherwise."""
    state = _state(request)
    path = request.path_params["path"]

    match = None
    if state.settings.negotiation.enabled:
        match = state.router.match(request.url.path, request.query_params)

    if match is not None:
        item = state.content.get_by_path(match.path)
        if item is not None:
            return await state.dispatcher.dispatch_forced(request, item)

    item = state.content.get_by_path(path)
    if item is None:
        return PlainTextResponse("Not Found", status_code=404)

    response = await state.dispatcher.dispatch(request, item)
    if response is not None:
        return response

    if not item.is_published:
        return PlainTextResponse("Not Found", status_code=404)
    return _render_html(request, item, state)


def _markdown_url(request: Request, item: ContentItem) -> str:
    return item.permalink or str(request.url.replace(query=""))


def _discoverable(item: ContentItem, state: AppState) -> bool:
    return (
        state.settings.negotiation.enabled
        and state.settings.negotiation.discovery_links
        and not item.markdown_disabled
        and state.access.is_type_allowed(item)
    )


def _render_html(request: Request, item: ContentItem, state: AppState) -> Response:
    """Minimal HTML rendering standing in for the CMS theme."""
    head = [f"<title>{html.escape(item.title)}</title>"]
    headers: dict[str, str] = {}

    if _discoverable(item, state):
        url = _markdown_url(request, item)
        head.append(
            f'<link rel="alternate" type="text/markdown" href="{html.escape(url)}" '
            f'title="{html.escape(item.title)}" />'
        )
        headers["Link"] = f'<{url}>; rel="alternate"; type="text/markdown"'

    body = item.html if not item.password else "<p>This content is password protected.</p>"
    document = (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        + "\n".join(head)
        + f"\n</head>\n<body>\n<h1>{html.escape(item.title)}</h1>\n{body}\n</body>\n</html>\n"
    )
    return HTMLResponse(document, headers=headers)


async def _handle_error(request: Request, exc: MarkdownNegotiationError) -> Response:
    log.warning(
        "request_error",
        path=request.url.path,
        code=exc.code,
        message=exc.message,
        recoverable=exc.recoverable,
    )
    if request.url.path.startswith("/api/"):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(state: AppState | None = None, settings: Settings | None = None) -> Starlette:
    """Build the starlette app.

    Pass a prebuilt ``state`` (tests) or let the lifespan build one from
    ``settings``.
    """
    if state is not None:
        settings = state.settings
    elif settings is None:
        settings = Settings()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        if state is not None:
            yield
            return
        async with open_app_state(settings) as built:
            app.state.app_state = built
            yield
        log.info("server_stopping")

    routes: list[Route] = []
    if settings.negotiation.api_enabled:
        routes += [
            Route("/api/markdown/{content_id:int}", get_markdown_item, methods=["GET"]),
            Route("/api/markdown", list_markdown_items, methods=["GET"]),
            Route("/api/status", get_status, methods=["GET"]),
        ]
    routes.append(Route("/{path:path}", content_page, methods=["GET", "HEAD"]))

    app = Starlette(
        routes=routes,
        middleware=[Middleware(VaryAcceptMiddleware)],
        exception_handlers={MarkdownNegotiationError: _handle_error},
        lifespan=lifespan,
    )
    if state is not None:
        app.state.app_state = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    setup_logging(settings)
    log.info("server_starting", version=__version__)
    run_http_server(create_app(settings=settings), settings)


if __name__ == "__main__":
    main()

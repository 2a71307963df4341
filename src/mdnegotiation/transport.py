"""HTTP transport: Vary middleware and the uvicorn runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import MutableHeaders

from mdnegotiation.dispatcher import merge_vary

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from mdnegotiation.config import Settings

log = structlog.get_logger()


class VaryAcceptMiddleware:
    """Pure ASGI middleware that adds ``Accept`` to every response's Vary header.

    Responses for the same URL differ by Accept header (HTML vs Markdown), so
    shared caches must key on it. Existing Vary values are kept. Implemented
    as pure ASGI (not BaseHTTPMiddleware) so response bodies are never
    buffered by the middleware layer.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_vary(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                existing = ", ".join(headers.getlist("vary"))
                headers["vary"] = merge_vary(existing)
            await send(message)

        await self.app(scope, receive, send_with_vary)


def run_http_server(app: ASGIApp, settings: Settings) -> None:
    """Serve ``app`` with uvicorn."""
    log.bind(transport="http").info(
        "http_server_starting", host=settings.server.host, port=settings.server.port
    )
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )

"""Application state container.

AppState is built once by the composition root (``server.open_app_state``)
and passed explicitly to every HTTP handler and CLI command. There is no
process-wide singleton: tests build their own AppState from in-memory parts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mdnegotiation.access import AccessControl
    from mdnegotiation.cache import CacheManager
    from mdnegotiation.config import Settings
    from mdnegotiation.dispatcher import RequestDispatcher
    from mdnegotiation.protocols import ContentSourceProtocol, ConverterProtocol
    from mdnegotiation.ratelimit import RateLimiter
    from mdnegotiation.router import AlternateAccessRouter


@dataclass
class AppState:
    """Holds all shared runtime state."""

    settings: Settings
    content: ContentSourceProtocol
    converter: ConverterProtocol
    cache: CacheManager
    access: AccessControl
    dispatcher: RequestDispatcher
    router: AlternateAccessRouter
    rate_limiter: RateLimiter | None = None
    version: str = ""

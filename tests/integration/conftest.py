"""Integration test fixtures.

Provides a fully wired AppState over an in-memory cache driver and the
sample content from tests/conftest.py, plus an httpx client bound to the
starlette app through ASGITransport (no real server is started).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from mdnegotiation.config import Settings
from mdnegotiation.server import build_app_state, create_app

if TYPE_CHECKING:
    from mdnegotiation.content import JsonContentSource
    from mdnegotiation.drivers import MemoryCacheDriver
    from mdnegotiation.state import AppState
    from tests.conftest import CountingConverter, FakeClock

StateFactory = Callable[..., "AppState"]


@pytest.fixture()
def make_state(
    content: JsonContentSource,
    memory_driver: MemoryCacheDriver,
    converter: CountingConverter,
    clock: FakeClock,
) -> StateFactory:
    """Build an AppState; keyword arguments become Settings overrides."""

    def _make(**overrides: Any) -> AppState:
        return build_app_state(
            Settings(**overrides),
            memory_driver,
            content=content,
            converter=converter,
            clock=clock,
        )

    return _make


@pytest.fixture()
def app_state(make_state: StateFactory) -> AppState:
    return make_state()


def _asgi_client(state: AppState) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=create_app(state)),
        base_url="http://testserver",
    )


@pytest.fixture()
def client_for() -> Callable[[AppState], httpx.AsyncClient]:
    """Factory for clients bound to a custom AppState."""
    return _asgi_client


@pytest.fixture()
async def client(app_state: AppState) -> httpx.AsyncClient:
    async with _asgi_client(app_state) as c:
        yield c

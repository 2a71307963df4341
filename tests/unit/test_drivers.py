"""Unit tests for cache driver resolution."""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

import pytest

import mdnegotiation.drivers as drivers
from mdnegotiation.config import CacheSettings
from mdnegotiation.drivers import (
    FileCacheDriver,
    MemoryCacheDriver,
    SqliteCacheDriver,
    resolve_driver,
)

if TYPE_CHECKING:
    from pathlib import Path


def _settings(tmp_path: Path, **overrides: object) -> CacheSettings:
    return CacheSettings(
        db_path=str(tmp_path / "data" / "cache.db"),
        file_dir=str(tmp_path / "markdown"),
        **overrides,
    )


class TestExplicitDriver:
    async def test_memory(self, tmp_path: Path) -> None:
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(_settings(tmp_path, driver="memory"), stack)
        assert isinstance(driver, MemoryCacheDriver)

    async def test_file(self, tmp_path: Path) -> None:
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(_settings(tmp_path, driver="file"), stack)
        assert isinstance(driver, FileCacheDriver)
        assert driver.cache_dir == tmp_path / "markdown"

    async def test_sqlite_creates_database(self, tmp_path: Path) -> None:
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(_settings(tmp_path, driver="sqlite"), stack)
            assert isinstance(driver, SqliteCacheDriver)
            assert await driver.set("md_1", "body") is True
            assert await driver.get("md_1") == "body"
        assert (tmp_path / "data" / "cache.db").exists()

    async def test_object_requires_url(self, tmp_path: Path) -> None:
        async with AsyncExitStack() as stack:
            with pytest.raises(ValueError, match="redis_url"):
                await resolve_driver(_settings(tmp_path, driver="object"), stack)


class TestAutoDriver:
    async def test_prefers_sqlite_without_redis(self, tmp_path: Path) -> None:
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(_settings(tmp_path), stack)
            assert driver.name() == "sqlite"

    async def test_unreachable_redis_falls_back(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def unavailable(self) -> bool:
            return False

        monkeypatch.setattr(drivers.ObjectCacheDriver, "available", unavailable)
        settings = _settings(tmp_path, redis_url="redis://127.0.0.1:1/0")
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(settings, stack)
            assert driver.name() == "sqlite"

    async def test_reachable_redis_wins(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def available(self) -> bool:
            return True

        monkeypatch.setattr(drivers.ObjectCacheDriver, "available", available)
        settings = _settings(tmp_path, redis_url="redis://127.0.0.1:1/0")
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(settings, stack)
            assert driver.name() == "object"

    async def test_sqlite_failure_falls_back_to_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def broken(settings: CacheSettings, stack: AsyncExitStack) -> SqliteCacheDriver:
            raise OSError("read-only filesystem")

        monkeypatch.setattr(drivers, "_open_sqlite", broken)
        async with AsyncExitStack() as stack:
            driver = await resolve_driver(_settings(tmp_path), stack)
        assert isinstance(driver, FileCacheDriver)

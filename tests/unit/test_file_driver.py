"""Unit tests for the filesystem cache driver."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import pytest

from mdnegotiation.drivers import FileCacheDriver

if TYPE_CHECKING:
    from pathlib import Path

    from tests.conftest import FakeClock


@pytest.fixture()
def driver(tmp_path: Path, clock: FakeClock) -> FileCacheDriver:
    return FileCacheDriver(tmp_path / "markdown", clock=clock)


class TestLayout:
    def test_path_is_fanned_out_by_hash_prefix(self, driver: FileCacheDriver) -> None:
        path = driver.path_for("md_1")
        assert path.suffix == ".md"
        assert path.parent.name == path.stem[:2]
        assert path.parent.parent == driver.cache_dir

    async def test_sidecar_records_metadata(
        self, driver: FileCacheDriver, clock: FakeClock
    ) -> None:
        await driver.set("md_1", "héllo", ttl=60)
        path = driver.path_for("md_1")
        meta = json.loads(path.with_name(path.name + ".meta").read_text())
        assert meta == {"created_at": clock.now, "ttl": 60, "size": len("héllo".encode())}


class TestReadWrite:
    async def test_set_and_get(self, driver: FileCacheDriver) -> None:
        assert await driver.set("md_1", "# Title\n", ttl=60) is True
        assert await driver.get("md_1") == "# Title\n"

    async def test_missing_key(self, driver: FileCacheDriver) -> None:
        assert await driver.get("md_404") is None

    async def test_expired_entry_removes_both_files(
        self, driver: FileCacheDriver, clock: FakeClock
    ) -> None:
        await driver.set("md_1", "old", ttl=60)
        clock.advance(61)
        assert await driver.get("md_1") is None

        path = driver.path_for("md_1")
        assert not path.exists()
        assert not path.with_name(path.name + ".meta").exists()

    async def test_missing_sidecar_means_no_expiry(
        self, driver: FileCacheDriver, clock: FakeClock
    ) -> None:
        await driver.set("md_1", "body", ttl=60)
        path = driver.path_for("md_1")
        path.with_name(path.name + ".meta").unlink()
        clock.advance(10**6)
        assert await driver.get("md_1") == "body"

    async def test_corrupt_sidecar_is_a_miss(self, driver: FileCacheDriver) -> None:
        await driver.set("md_1", "body", ttl=60)
        path = driver.path_for("md_1")
        path.with_name(path.name + ".meta").write_text("{not json")
        assert await driver.get("md_1") is None

    @pytest.mark.parametrize("sidecar", ["[]", "1", '"x"', '{"created_at": [1]}'])
    async def test_sidecar_that_is_not_an_object_is_a_miss(
        self, driver: FileCacheDriver, sidecar: str
    ) -> None:
        await driver.set("md_1", "body", ttl=60)
        path = driver.path_for("md_1")
        path.with_name(path.name + ".meta").write_text(sidecar)
        assert await driver.get("md_1") is None

    async def test_delete(self, driver: FileCacheDriver) -> None:
        await driver.set("md_1", "body")
        assert await driver.delete("md_1") is True
        assert await driver.get("md_1") is None
        assert await driver.delete("md_1") is True

    async def test_flush_clears_every_subdirectory(self, driver: FileCacheDriver) -> None:
        for i in range(20):
            await driver.set(f"md_{i}", "body")
        assert await driver.flush() is True
        assert not any(p.is_file() for p in driver.cache_dir.rglob("*"))

    async def test_flush_without_directory(self, driver: FileCacheDriver) -> None:
        assert await driver.flush() is True


async def test_available_creates_directory(driver: FileCacheDriver) -> None:
    assert await driver.available() is True
    assert driver.cache_dir.is_dir()
    assert driver.name() == "file"


async def test_concurrent_writes_to_one_key_all_succeed(driver: FileCacheDriver) -> None:
    bodies = [f"{i}:" + "x" * 200_000 for i in range(8)]
    for _ in range(5):
        results = await asyncio.gather(*(driver.set("md_1", body, ttl=60) for body in bodies))
        assert results == [True] * len(bodies)

    path = driver.path_for("md_1")
    assert await driver.get("md_1") in bodies
    assert path.with_name(path.name + ".meta").is_file()
    assert sorted(p.name for p in path.parent.iterdir()) == [path.name, path.name + ".meta"]

"""Unit tests for the SQLite cache driver."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from mdnegotiation.drivers import SqliteCacheDriver

if TYPE_CHECKING:
    from tests.conftest import FakeClock


@pytest.fixture()
async def driver(clock: FakeClock) -> SqliteCacheDriver:
    async with aiosqlite.connect(":memory:") as db:
        sqlite_driver = SqliteCacheDriver(db, clock=clock)
        await sqlite_driver.init_db()
        yield sqlite_driver


def _fail(driver: SqliteCacheDriver) -> None:
    async def failing_execute(*args, **kwargs):
        raise aiosqlite.OperationalError("disk I/O error")

    driver._db.execute = failing_execute  # type: ignore[method-assign]


class TestReadWrite:
    async def test_set_and_get(self, driver: SqliteCacheDriver) -> None:
        assert await driver.set("md_1", "# Title\n", ttl=60) is True
        assert await driver.get("md_1") == "# Title\n"

    async def test_entry_records_size_and_ttl(self, driver: SqliteCacheDriver) -> None:
        await driver.set("md_1", "héllo", ttl=60)
        entry = await driver.get_entry("md_1")
        assert entry is not None
        assert entry.ttl_seconds == 60
        assert entry.size == len("héllo".encode())

    async def test_get_nonexistent_returns_none(self, driver: SqliteCacheDriver) -> None:
        assert await driver.get("missing") is None

    async def test_upsert_overwrites(self, driver: SqliteCacheDriver) -> None:
        await driver.set("md_1", "Version 1")
        await driver.set("md_1", "Version 2")
        assert await driver.get("md_1") == "Version 2"

    async def test_expired_entry_is_deleted_on_read(
        self, driver: SqliteCacheDriver, clock: FakeClock
    ) -> None:
        await driver.set("md_1", "old", ttl=60)
        clock.advance(61)
        assert await driver.get("md_1") is None

        cursor = await driver._db.execute("SELECT COUNT(*) FROM markdown_cache")
        row = await cursor.fetchone()
        assert row is not None
        assert row[0] == 0

    async def test_zero_ttl_never_expires(
        self, driver: SqliteCacheDriver, clock: FakeClock
    ) -> None:
        await driver.set("md_1", "forever", ttl=0)
        clock.advance(10**8)
        assert await driver.get("md_1") == "forever"

    async def test_delete_and_flush(self, driver: SqliteCacheDriver) -> None:
        await driver.set("md_1", "a")
        await driver.set("md_2", "b")
        assert await driver.delete("md_1") is True
        assert await driver.get("md_1") is None
        assert await driver.flush() is True
        assert await driver.get("md_2") is None


class TestCleanup:
    async def test_cleanup_removes_only_expired(
        self, driver: SqliteCacheDriver, clock: FakeClock
    ) -> None:
        await driver.set("short", "a", ttl=10)
        await driver.set("long", "b", ttl=1000)
        await driver.set("forever", "c", ttl=0)
        clock.advance(20)

        assert await driver.cleanup_expired() == 1
        assert await driver.get("long") == "b"
        assert await driver.get("forever") == "c"


class TestFailures:
    async def test_read_failure_returns_none(self, driver: SqliteCacheDriver) -> None:
        """Simulate a database read error; should return None, not raise."""
        await driver.set("md_1", "a")
        _fail(driver)
        assert await driver.get("md_1") is None

    async def test_write_failure_does_not_raise(self, driver: SqliteCacheDriver) -> None:
        _fail(driver)
        assert await driver.set("md_1", "a") is False

    async def test_delete_and_flush_failures_report_false(
        self, driver: SqliteCacheDriver
    ) -> None:
        _fail(driver)
        assert await driver.delete("md_1") is False
        assert await driver.flush() is False
        assert await driver.cleanup_expired() == 0

    async def test_available_reflects_database(self, driver: SqliteCacheDriver) -> None:
        assert driver.name() == "sqlite"
        assert await driver.available() is True
        _fail(driver)
        assert await driver.available() is False

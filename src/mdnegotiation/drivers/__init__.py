"""Cache driver selection.

The driver is resolved once at startup from ``cache.driver``. ``auto``
prefers the shared object cache (when a Redis URL is configured and
answers a ping), then the SQLite store, then the filesystem; it always
resolves to some backend.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from mdnegotiation.drivers.file import FileCacheDriver
from mdnegotiation.drivers.memory import MemoryCacheDriver
from mdnegotiation.drivers.objectcache import ObjectCacheDriver, build_redis_client
from mdnegotiation.drivers.sqlite import SqliteCacheDriver

if TYPE_CHECKING:
    from contextlib import AsyncExitStack

    from mdnegotiation.config import CacheSettings
    from mdnegotiation.protocols import CacheDriverProtocol

log = structlog.get_logger()

__all__ = [
    "FileCacheDriver",
    "MemoryCacheDriver",
    "ObjectCacheDriver",
    "SqliteCacheDriver",
    "resolve_driver",
]


async def _open_object(settings: CacheSettings, stack: AsyncExitStack) -> ObjectCacheDriver:
    if not settings.redis_url:
        raise ValueError("cache.redis_url must be set to use the object cache driver")
    client = build_redis_client(settings.redis_url)
    stack.push_async_callback(client.aclose)
    return ObjectCacheDriver(client)


async def _open_sqlite(settings: CacheSettings, stack: AsyncExitStack) -> SqliteCacheDriver:
    db_path = Path(settings.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    stack.push_async_callback(db.close)
    driver = SqliteCacheDriver(db)
    await driver.init_db()
    return driver


def _open_file(settings: CacheSettings) -> FileCacheDriver:
    return FileCacheDriver(Path(settings.file_dir).expanduser())


async def _resolve_auto(settings: CacheSettings, stack: AsyncExitStack) -> CacheDriverProtocol:
    if settings.redis_url:
        object_driver = await _open_object(settings, stack)
        if await object_driver.available():
            return object_driver
        log.info("cache_driver_unavailable", driver="object", fallback="sqlite")

    try:
        sqlite_driver = await _open_sqlite(settings, stack)
    except (aiosqlite.Error, OSError):
        log.warning("cache_driver_unavailable", driver="sqlite", fallback="file", exc_info=True)
    else:
        if await sqlite_driver.available():
            return sqlite_driver
        log.info("cache_driver_unavailable", driver="sqlite", fallback="file")

    return _open_file(settings)


async def resolve_driver(settings: CacheSettings, stack: AsyncExitStack) -> CacheDriverProtocol:
    """Build the configured cache driver.

    Resources the driver holds (database connection, Redis client) are
    registered on ``stack`` and released when it closes.
    """
    if settings.driver == "auto":
        driver = await _resolve_auto(settings, stack)
    elif settings.driver == "object":
        driver = await _open_object(settings, stack)
    elif settings.driver == "sqlite":
        driver = await _open_sqlite(settings, stack)
    elif settings.driver == "file":
        driver = _open_file(settings)
    else:
        driver = MemoryCacheDriver()

    log.info("cache_driver_resolved", requested=settings.driver, driver=driver.name())
    return driver

"""Filesystem Markdown cache driver.

Each key is hashed; the first two hex characters pick a subdirectory so no
single directory grows unbounded. Content lives in ``<hash>.md`` and a JSON
sidecar ``<hash>.md.meta`` records ``{created_at, ttl, size}``. Expired
entries are removed lazily when read.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path

import structlog

from mdnegotiation.models.cache import CacheEntry

log = structlog.get_logger()

_FANOUT_CHARS = 2
_META_SUFFIX = ".meta"


def _atomic_write(path: Path, data: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileCacheDriver:
    """File-backed cache implementing CacheDriverProtocol."""

    def __init__(
        self,
        cache_dir: Path,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = cache_dir
        self._clock = clock

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.cache_dir / digest[:_FANOUT_CHARS] / f"{digest}.md"

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read(self, key: str) -> CacheEntry | None:
        path = self.path_for(key)
        meta_path = path.with_name(path.name + _META_SUFFIX)
        if not path.is_file():
            return None

        created_at, ttl = self._clock(), 0
        if meta_path.is_file():
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            if not isinstance(meta, dict):
                raise ValueError(f"cache sidecar for {key!r} is not a JSON object")
            created_at = float(meta.get("created_at", 0))
            ttl = int(meta.get("ttl", 0))

        value = path.read_text(encoding="utf-8")
        return CacheEntry(
            key=key,
            value=value,
            created_at=created_at,
            ttl_seconds=ttl,
            size=len(value.encode("utf-8")),
        )

    def _write(self, key: str, value: str, ttl: int) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(path, value)
        meta = {
            "created_at": self._clock(),
            "ttl": max(ttl, 0),
            "size": len(value.encode("utf-8")),
        }
        _atomic_write(path.with_name(path.name + _META_SUFFIX), json.dumps(meta))

    def _remove(self, key: str) -> None:
        path = self.path_for(key)
        path.unlink(missing_ok=True)
        path.with_name(path.name + _META_SUFFIX).unlink(missing_ok=True)

    def _remove_all(self) -> int:
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*/*"):
            if path.is_file():
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    # ------------------------------------------------------------------
    # CacheDriverProtocol
    # ------------------------------------------------------------------

    async def get_entry(self, key: str) -> CacheEntry | None:
        try:
            entry = await asyncio.to_thread(self._read, key)
        except (OSError, ValueError, TypeError):
            log.warning("cache_read_error", driver="file", key=key, exc_info=True)
            return None

        if entry is not None and entry.is_expired(self._clock()):
            log.debug("cache_entry_expired", driver="file", key=key)
            await self.delete(key)
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: str, ttl: int = 0) -> bool:
        try:
            await asyncio.to_thread(self._write, key, value, ttl)
        except OSError:
            log.warning("cache_write_error", driver="file", key=key, exc_info=True)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._remove, key)
        except OSError:
            log.warning("cache_delete_error", driver="file", key=key, exc_info=True)
            return False
        return True

    async def flush(self) -> bool:
        try:
            removed = await asyncio.to_thread(self._remove_all)
        except OSError:
            log.warning("cache_flush_error", driver="file", exc_info=True)
            return False
        log.info("cache_flushed", driver="file", deleted=removed)
        return True

    async def available(self) -> bool:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(self.cache_dir, os.W_OK)

    def name(self) -> str:
        return "file"

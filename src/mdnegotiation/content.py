"""JSON-file content source.

Stands in for the CMS: loads content items from a JSON array on disk at
startup and serves lookups by id, by URL path and paginated listings.
A missing or invalid file yields an empty source.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from mdnegotiation.models.content import ContentItem

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

log = structlog.get_logger()


def load_content(path: Path) -> list[ContentItem]:
    """Load content items from ``path``. Returns [] if missing or invalid."""
    if not path.is_file():
        log.info("content_source_missing", path=str(path))
        return []

    try:
        raw_items = json.loads(path.read_text(encoding="utf-8"))
        items = [ContentItem(**raw) for raw in raw_items]
    except (OSError, ValueError, TypeError, ValidationError):
        log.warning("content_source_invalid", path=str(path), exc_info=True)
        return []

    log.info("content_loaded", items=len(items), path=str(path))
    return items


class JsonContentSource:
    """In-memory content store implementing ContentSourceProtocol."""

    def __init__(self, items: Iterable[ContentItem] = ()) -> None:
        self._by_id: dict[int, ContentItem] = {}
        self._by_path: dict[str, int] = {}
        for item in items:
            self.replace(item)

    @classmethod
    def from_file(cls, path: Path) -> JsonContentSource:
        return cls(load_content(path))

    def get(self, content_id: int) -> ContentItem | None:
        return self._by_id.get(content_id)

    def get_by_path(self, path: str) -> ContentItem | None:
        content_id = self._by_path.get(path.strip("/"))
        return self._by_id.get(content_id) if content_id is not None else None

    def list(
        self, content_type: str, *, per_page: int, page: int
    ) -> tuple[list[ContentItem], int]:
        """Published items of one type, newest first, with the total count."""
        matching = sorted(
            (i for i in self._by_id.values() if i.type == content_type and i.is_published),
            key=lambda i: (i.published or i.modified, i.id),
            reverse=True,
        )
        start = (page - 1) * per_page
        return matching[start : start + per_page], len(matching)

    def all(self) -> list[ContentItem]:
        return sorted(self._by_id.values(), key=lambda i: i.id)

    def replace(self, item: ContentItem) -> None:
        previous = self._by_id.get(item.id)
        if previous is not None:
            self._by_path.pop(previous.resolved_path, None)
        self._by_id[item.id] = item
        self._by_path[item.resolved_path] = item.id

    def remove(self, content_id: int) -> ContentItem | None:
        item = self._by_id.pop(content_id, None)
        if item is not None:
            self._by_path.pop(item.resolved_path, None)
        return item

    def __len__(self) -> int:
        return len(self._by_id)


def total_pages(total: int, per_page: int) -> int:
    return math.ceil(total / per_page) if total else 0

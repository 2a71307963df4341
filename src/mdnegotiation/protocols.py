"""Protocol interfaces for swappable components.

The dispatcher, cache manager and API handlers reference these protocols,
not the concrete implementations. This allows:
- Tests to use lightweight in-memory implementations
- Cache backends to be chosen once at startup from configuration
- The CMS and the HTML→Markdown converter to stay external collaborators
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from mdnegotiation.models.content import ContentItem


class CacheDriverProtocol(Protocol):
    """Interface for a Markdown cache backend.

    Implementations must never raise for backend failures: reads degrade
    to ``None`` and writes/deletes report ``False``.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int = 0) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def flush(self) -> bool: ...

    async def available(self) -> bool: ...

    def name(self) -> str: ...


class ConverterProtocol(Protocol):
    """Interface for the HTML→Markdown converter."""

    def convert(self, html: str) -> str: ...

    def convert_item(self, item: ContentItem) -> str: ...

    def available(self) -> bool: ...

    def name(self) -> str: ...


class ContentSourceProtocol(Protocol):
    """Read-only view of the CMS content store."""

    def get(self, content_id: int) -> ContentItem | None: ...

    def get_by_path(self, path: str) -> ContentItem | None: ...

    def list(
        self, content_type: str, *, per_page: int, page: int
    ) -> tuple[list[ContentItem], int]: ...

    def all(self) -> list[ContentItem]: ...

    def __len__(self) -> int: ...

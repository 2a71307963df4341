from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, field_validator


class ContentItem(BaseModel):
    """A single piece of CMS content, as read from the content source.

    The negotiation pipeline never mutates items; it reads the id, status,
    password, opt-out flag, type and modification time.
    """

    id: int
    title: str
    slug: str
    type: str = "post"
    status: str = "publish"
    password: str = ""
    markdown_disabled: bool = False
    modified: datetime
    published: datetime | None = None
    author: str = ""
    categories: list[str] = []
    tags: list[str] = []
    excerpt: str = ""
    html: str = ""  # Rendered body HTML
    path: str = ""  # URL path without leading/trailing slashes; defaults to slug
    permalink: str = ""
    meta: dict[str, str] = {}

    @field_validator("modified", "published")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @property
    def resolved_path(self) -> str:
        return (self.path or self.slug).strip("/")

    @property
    def is_published(self) -> bool:
        return self.status == "publish"

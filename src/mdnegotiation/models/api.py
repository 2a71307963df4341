from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ListMarkdownInput(BaseModel):
    post_type: str = Field(default="post", pattern=r"^[a-z0-9_-]+$", max_length=20)
    per_page: int = Field(default=10, ge=1, le=100)
    page: int = Field(default=1, ge=1)


class MarkdownItemOutput(BaseModel):
    id: int
    title: str
    slug: str
    permalink: str
    markdown: str
    tokens: int
    modified: datetime


class ContentSummary(BaseModel):
    id: int
    title: str
    slug: str
    permalink: str
    modified: datetime


class ListMarkdownOutput(BaseModel):
    items: list[ContentSummary]
    total: int
    total_pages: int


class StatusOutput(BaseModel):
    version: str
    enabled: bool
    converter_name: str
    cache_driver: str
    allowed_types: list[str]
    supported_media_types: list[str]

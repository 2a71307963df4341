"""Shared test fixtures for the mdnegotiation test suite."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from mdnegotiation.content import JsonContentSource
from mdnegotiation.converter import HtmlMarkdownConverter
from mdnegotiation.drivers import MemoryCacheDriver
from mdnegotiation.models.content import ContentItem


class FakeClock:
    """Manually advanced clock for TTL and rate-window tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingConverter(HtmlMarkdownConverter):
    """Real converter that records how often items were converted."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def convert_item(self, item: ContentItem) -> str:
        self.calls += 1
        return super().convert_item(item)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sample_items() -> list[ContentItem]:
    """One item per access-control case."""
    modified = datetime(2026, 1, 2, 10, 30, tzinfo=UTC)
    published = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)
    return [
        ContentItem(
            id=1,
            title="Hello World",
            slug="hello-world",
            modified=modified,
            published=published,
            author="Ada",
            categories=["News"],
            tags=["intro"],
            html="<p>Hello <strong>world</strong>.</p><script>alert(1)</script>",
            permalink="https://example.com/hello-world/",
        ),
        ContentItem(
            id=2,
            title="About",
            slug="about",
            type="page",
            modified=modified,
            published=published,
            html="<h2>Team</h2><ul><li>Ada</li><li>Grace</li></ul>",
            permalink="https://example.com/about/",
        ),
        ContentItem(
            id=3,
            title="Draft",
            slug="draft-post",
            status="draft",
            modified=modified,
            html="<p>Not yet.</p>",
        ),
        ContentItem(
            id=4,
            title="Secret",
            slug="secret",
            password="s3cret",
            modified=modified,
            published=published,
            html="<p>Members only.</p>",
        ),
        ContentItem(
            id=5,
            title="Opted Out",
            slug="opted-out",
            markdown_disabled=True,
            modified=modified,
            published=published,
            html="<p>HTML only.</p>",
        ),
        ContentItem(
            id=6,
            title="Widget",
            slug="widget",
            type="product",
            path="shop/widget",
            modified=modified,
            published=published,
            html="<p>A fine widget.</p>",
        ),
        ContentItem(
            id=7,
            title="Image",
            slug="image-1",
            type="attachment",
            modified=modified,
            published=published,
            html="<p><img src='a.png' alt='a'></p>",
        ),
    ]


@pytest.fixture()
def content(sample_items: list[ContentItem]) -> JsonContentSource:
    return JsonContentSource(sample_items)


@pytest.fixture()
def memory_driver(clock: FakeClock) -> MemoryCacheDriver:
    return MemoryCacheDriver(clock=clock)


@pytest.fixture()
def converter() -> CountingConverter:
    return CountingConverter()

"""Handlers for the read-only JSON API.

Each handler receives AppState, validates its input, and returns a
structured dict. No starlette imports; server.py handles the HTTP wiring
and serialises MarkdownNegotiationError into the error envelope.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from mdnegotiation.content import total_pages
from mdnegotiation.errors import ErrorCode, MarkdownNegotiationError
from mdnegotiation.models.api import (
    ContentSummary,
    ListMarkdownInput,
    ListMarkdownOutput,
    MarkdownItemOutput,
    StatusOutput,
)
from mdnegotiation.negotiator import MARKDOWN_TYPES

if TYPE_CHECKING:
    from mdnegotiation.models.content import ContentItem
    from mdnegotiation.state import AppState


async def get_item(
    content_id: int,
    state: AppState,
    headers: Mapping[str, str] | None = None,
) -> dict:
    """Return one content item rendered as Markdown."""
    log = structlog.get_logger().bind(handler="get_item", content_id=content_id)
    log.info("handler_called")

    item = state.content.get(content_id)
    if item is None:
        raise MarkdownNegotiationError(
            code=ErrorCode.CONTENT_NOT_FOUND,
            message=f"No content with id {content_id}",
            suggestion="List available items with GET /api/markdown.",
        )

    if not state.access.can_access(item, headers):
        raise MarkdownNegotiationError(
            code=ErrorCode.ACCESS_DENIED,
            message="You do not have permission to access this content.",
            suggestion="Only published, non-protected items of enabled types are available.",
        )

    rendered = await state.dispatcher.render_for_api(item)
    log.info("item_rendered", cached=rendered.cached, tokens=rendered.tokens)

    output = MarkdownItemOutput(
        id=item.id,
        title=item.title,
        slug=item.slug,
        permalink=item.permalink,
        markdown=rendered.markdown,
        tokens=rendered.tokens,
        modified=item.modified,
    )
    return output.model_dump(mode="json")


async def list_items(post_type: str, per_page: int, page: int, state: AppState) -> dict:
    """Return a page of published items of one enabled type."""
    log = structlog.get_logger().bind(handler="list_items", post_type=post_type)
    log.info("handler_called", per_page=per_page, page=page)

    try:
        validated = ListMarkdownInput(post_type=post_type, per_page=per_page, page=page)
    except ValidationError as exc:
        raise MarkdownNegotiationError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Use a lowercase type slug, per_page between 1 and 100, page >= 1.",
        ) from exc

    if validated.post_type not in state.access.allowed_types:
        raise MarkdownNegotiationError(
            code=ErrorCode.CONTENT_TYPE_NOT_ENABLED,
            message=f"Content type {validated.post_type!r} is not enabled for Markdown.",
            suggestion=f"Enabled types: {', '.join(state.access.allowed_types)}.",
        )

    items, total = state.content.list(
        validated.post_type, per_page=validated.per_page, page=validated.page
    )
    output = ListMarkdownOutput(
        items=[_summary(item) for item in items],
        total=total,
        total_pages=total_pages(total, validated.per_page),
    )
    return output.model_dump(mode="json")


async def status(state: AppState) -> dict:
    output = StatusOutput(
        version=state.version,
        enabled=state.settings.negotiation.enabled,
        converter_name=state.converter.name(),
        cache_driver=state.cache.driver.name(),
        allowed_types=state.access.allowed_types,
        supported_media_types=list(MARKDOWN_TYPES),
    )
    return output.model_dump(mode="json")


def _summary(item: ContentItem) -> ContentSummary:
    return ContentSummary(
        id=item.id,
        title=item.title,
        slug=item.slug,
        permalink=item.permalink,
        modified=item.modified,
    )

"""HTML→Markdown conversion.

Builds a self-contained HTML document for a content item (title, a short
byline, optional excerpt and body), strips non-content elements with
BeautifulSoup, converts with markdownify and tidies the result.
"""

from __future__ import annotations

import html
import math
import re
from typing import TYPE_CHECKING

import structlog
from bs4 import BeautifulSoup
from markdownify import ATX, markdownify

from mdnegotiation.errors import ErrorCode, MarkdownNegotiationError

if TYPE_CHECKING:
    from mdnegotiation.models.content import ContentItem

log = structlog.get_logger()

# Elements that are page chrome or interactive widgets, never content.
REMOVE_TAGS: tuple[str, ...] = (
    "script",
    "style",
    "nav",
    "footer",
    "header",
    "aside",
    "form",
    "input",
    "button",
    "select",
    "textarea",
    "noscript",
    "iframe",
)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_EMPTY_LINK = re.compile(r"\[([^\]]+)\]\(\s*\)")
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")


def estimate_tokens(markdown: str) -> int:
    """Rough token estimate: about four characters per token for English text."""
    return math.ceil(len(markdown) / 4)


def post_process(markdown: str) -> str:
    """Clean up common conversion artefacts."""
    markdown = _EXCESS_NEWLINES.sub("\n\n", markdown)
    markdown = _EMPTY_LINK.sub(r"\1", markdown)
    markdown = _HTML_COMMENT.sub("", markdown)
    markdown = html.unescape(markdown)
    return markdown.strip() + "\n"


class HtmlMarkdownConverter:
    """ConverterProtocol implementation built on markdownify."""

    def __init__(self, *, include_meta: bool = True, include_excerpt: bool = False) -> None:
        self.include_meta = include_meta
        self.include_excerpt = include_excerpt

    def name(self) -> str:
        return "markdownify"

    def available(self) -> bool:
        try:
            return self.convert("<p>ok</p>") == "ok\n"
        except MarkdownNegotiationError:
            return False

    def convert(self, source_html: str) -> str:
        """Convert an HTML fragment to Markdown.

        Raises MarkdownNegotiationError(CONVERSION_FAILED) if the parser or
        converter fails; nothing is cached in that case.
        """
        try:
            soup = BeautifulSoup(source_html, "html.parser")
            for element in soup.find_all(REMOVE_TAGS):
                element.decompose()
            markdown = markdownify(str(soup), heading_style=ATX, bullets="-")
        except Exception as exc:
            log.warning("conversion_failed", html_length=len(source_html), exc_info=True)
            raise MarkdownNegotiationError(
                code=ErrorCode.CONVERSION_FAILED,
                message=f"HTML to Markdown conversion failed: {exc}",
                suggestion="Retry later; the content may contain markup the converter cannot handle.",
                recoverable=False,
            ) from exc
        return post_process(markdown)

    def convert_item(self, item: ContentItem) -> str:
        return self.convert(self.extract_html(item))

    def extract_html(self, item: ContentItem) -> str:
        """Assemble the HTML document that is fed to the converter."""
        parts = [f"<h1>{html.escape(item.title)}</h1>"]

        if self.include_meta:
            meta = self._meta_html(item)
            if meta:
                parts.append(meta)

        if self.include_excerpt and item.excerpt:
            parts.append(f"<blockquote>{item.excerpt}</blockquote>")

        parts.append(item.html)
        return "\n".join(parts)

    def _meta_html(self, item: ContentItem) -> str:
        lines: list[str] = []
        if item.author:
            lines.append(f"Author: {html.escape(item.author)}")

        published = item.published.date().isoformat() if item.published else None
        modified = item.modified.date().isoformat()
        if published:
            lines.append(f"Published: {published}")
        if modified != published:
            lines.append(f"Modified: {modified}")

        if item.categories:
            lines.append(f"Categories: {html.escape(', '.join(item.categories))}")
        if item.tags:
            lines.append(f"Tags: {html.escape(', '.join(item.tags))}")

        if not lines:
            return ""
        return "<p>" + "<br>".join(lines) + "</p>"

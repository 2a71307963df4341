"""Alternate access paths that force a Markdown response.

Two triggers bypass Accept negotiation: a ``.md`` URL suffix (opt-in) and
``?format=markdown`` (on by default). Both resolve to the same content item
the plain URL would and are then served by the dispatcher, so access
control, rate limiting and caching still apply.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

log = structlog.get_logger()

MARKDOWN_SUFFIX = ".md"
FORMAT_PARAM = "format"
FORMAT_VALUE = "markdown"


@dataclass(frozen=True)
class AlternateMatch:
    path: str  # content path with the trigger removed
    trigger: str  # "suffix" | "query"


class AlternateAccessRouter:
    """Matches request paths and query strings against the alternate triggers.

    The suffix rule can be switched on and off at runtime with
    ``set_suffix_enabled()``; the compiled rule is rebuilt immediately.
    """

    def __init__(self, *, suffix_enabled: bool = False, query_enabled: bool = True) -> None:
        self.query_enabled = query_enabled
        self._suffix_rule: re.Pattern[str] | None = None
        self.set_suffix_enabled(suffix_enabled)

    @property
    def suffix_enabled(self) -> bool:
        return self._suffix_rule is not None

    def set_suffix_enabled(self, enabled: bool) -> None:
        if enabled:
            self._suffix_rule = re.compile(rf"^/*(?P<path>.+?){re.escape(MARKDOWN_SUFFIX)}/?$")
        else:
            self._suffix_rule = None
        log.info("suffix_rules_registered", enabled=enabled)

    def match(self, path: str, query: Mapping[str, str]) -> AlternateMatch | None:
        if self._suffix_rule is not None:
            m = self._suffix_rule.match(path)
            if m and m.group("path").strip("/"):
                return AlternateMatch(path=m.group("path").strip("/"), trigger="suffix")

        if self.query_enabled and query.get(FORMAT_PARAM) == FORMAT_VALUE:
            return AlternateMatch(path=path.strip("/"), trigger="query")

        return None

"""Content access policy.

Decides whether an item may be exposed as Markdown: it must be published,
its password (if any) must be supplied, it must not be opted out, and its
type must be enabled.
"""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mdnegotiation.config import NegotiationSettings
    from mdnegotiation.models.content import ContentItem

PRODUCT_TYPE = "product"

# Header API clients use to unlock password-protected items.
PASSWORD_HEADER = "x-content-password"


class AccessControl:
    def __init__(self, settings: NegotiationSettings) -> None:
        self._settings = settings

    @property
    def allowed_types(self) -> list[str]:
        types = list(self._settings.content_types)
        if self._settings.products_enabled and PRODUCT_TYPE not in types:
            types.append(PRODUCT_TYPE)
        return types

    def is_type_allowed(self, item: ContentItem) -> bool:
        if item.type == PRODUCT_TYPE:
            return self._settings.products_enabled
        return item.type in self._settings.content_types

    def can_access(self, item: ContentItem, headers: Mapping[str, str] | None = None) -> bool:
        if not item.is_published:
            return False

        if item.password and not self._password_provided(item, headers or {}):
            return False

        if item.markdown_disabled:
            return False

        return self.is_type_allowed(item)

    @staticmethod
    def _password_provided(item: ContentItem, headers: Mapping[str, str]) -> bool:
        supplied = headers.get(PASSWORD_HEADER, "")
        if not supplied:
            return False
        return hmac.compare_digest(supplied.encode(), item.password.encode())

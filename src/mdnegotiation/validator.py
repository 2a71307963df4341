"""Accept header validation.

Runs before negotiation so that malformed input yields a 400 instead of
reaching the Accept parser.
"""

from __future__ import annotations

import re

MAX_ACCEPT_LENGTH = 1024

_NON_PRINTABLE = re.compile(r"[^\x20-\x7e]")


def validate_accept_header(accept_header: str | bytes) -> bool:
    """Return True if the raw Accept header is safe to negotiate on.

    Rejects headers longer than 1024 bytes, headers containing a null byte
    and headers with any byte outside printable ASCII. An empty header is
    valid.
    """
    if isinstance(accept_header, bytes):
        raw = accept_header
    else:
        raw = accept_header.encode("utf-8", errors="surrogateescape")

    if len(raw) > MAX_ACCEPT_LENGTH:
        return False

    if b"\x00" in raw:
        return False

    return _NON_PRINTABLE.search(raw.decode("latin-1")) is None


class HeaderValidator:
    """Request-level wrapper around ``validate_accept_header``."""

    max_length = MAX_ACCEPT_LENGTH

    def validate(self, accept_header: str | bytes) -> bool:
        return validate_accept_header(accept_header)

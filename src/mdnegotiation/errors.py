from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    CONTENT_TYPE_NOT_ENABLED = "CONTENT_TYPE_NOT_ENABLED"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    INVALID_INPUT = "INVALID_INPUT"


# HTTP status used when an error surfaces through the JSON API.
ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.CONTENT_NOT_FOUND: 404,
    ErrorCode.ACCESS_DENIED: 403,
    ErrorCode.CONTENT_TYPE_NOT_ENABLED: 400,
    ErrorCode.CONVERSION_FAILED: 500,
    ErrorCode.INVALID_INPUT: 400,
}


class MarkdownNegotiationError(Exception):
    """Raised for expected failures that cross a component boundary.

    Request-path terminal states (400/403/429/304) are not raised: the
    dispatcher returns them as response values. This exception covers the
    JSON API, the CLI and converter failures, and is serialised by the HTTP
    layer with ``to_dict()``.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.code]

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }

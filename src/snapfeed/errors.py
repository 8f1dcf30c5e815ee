from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    UPSTREAM_UNREACHABLE = "UPSTREAM_UNREACHABLE"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_MALFORMED = "UPSTREAM_MALFORMED"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"


# Codes that make a producer fall back to the last cached envelope.
UPSTREAM_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.UPSTREAM_UNREACHABLE,
        ErrorCode.UPSTREAM_ERROR,
        ErrorCode.UPSTREAM_MALFORMED,
    }
)


class SnapfeedError(Exception):
    """Raised for all expected failure conditions.

    Upstream codes are caught by the feed procedure and turned into a stale
    fallback when a cached envelope exists; otherwise server.py serialises
    the error into a 502 response. ``CACHE_UNAVAILABLE`` never leaves the
    cache layer.
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def is_upstream(self) -> bool:
        return self.code in UPSTREAM_CODES

    def to_dict(self) -> dict:
        return {"error": self.message}

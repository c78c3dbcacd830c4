"""Canonical error-code taxonomy for the data-access and HTTP layers."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Bounded error codes surfaced to HTTP callers and logs."""

    NO_CONNECTION = "NO_CONNECTION"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    QUERY_FAILED = "QUERY_FAILED"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    ROW_NOT_FOUND = "ROW_NOT_FOUND"
    NO_PRIMARY_KEY = "NO_PRIMARY_KEY"
    COMPOSITE_PRIMARY_KEY = "COMPOSITE_PRIMARY_KEY"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_CODE_GROUPS: dict[ErrorCode, str] = {
    ErrorCode.NO_CONNECTION: "CONNECTION",
    ErrorCode.VERIFICATION_FAILED: "CONNECTION",
    ErrorCode.QUERY_FAILED: "DB",
    ErrorCode.CONVERSION_FAILED: "DB",
    ErrorCode.ROW_NOT_FOUND: "DB",
    ErrorCode.NO_PRIMARY_KEY: "SCHEMA",
    ErrorCode.COMPOSITE_PRIMARY_KEY: "SCHEMA",
    ErrorCode.VALIDATION_ERROR: "VALIDATION",
    ErrorCode.INTERNAL_ERROR: "INTERNAL",
}


def parse_error_code(
    value: Any,
    *,
    fallback: ErrorCode = ErrorCode.INTERNAL_ERROR,
) -> ErrorCode:
    """Parse string-like values to `ErrorCode` with safe fallback."""
    if isinstance(value, ErrorCode):
        return value
    if value is None:
        return fallback
    try:
        return ErrorCode(str(value).strip())
    except ValueError:
        return fallback


def error_code_group(value: Any) -> str:
    """Return a stable coarse grouping for log dimensions."""
    parsed = parse_error_code(value)
    return _CODE_GROUPS.get(parsed, "INTERNAL")

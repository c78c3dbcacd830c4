"""Error kinds raised by the data-access layer.

Every failure is local to one operation and surfaced immediately; nothing in
this package retries.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import asyncpg

from common.errors import ErrorCode

VERIFICATION_REASON_AUTH = "auth"
VERIFICATION_REASON_UNREACHABLE = "unreachable"
VERIFICATION_REASON_OTHER = "other"

_AUTH_MARKERS = ("authentication", "password")
_UNREACHABLE_MARKERS = (
    "no such host",
    "connection refused",
    "name or service not known",
    "nodename nor servname",
    "could not translate host name",
    "timed out",
    "timeout",
)


class DataAccessError(Exception):
    """Base class for data-access failures."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize error with message and optional details."""
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NoConnectionError(DataAccessError):
    """Raised when a data operation runs before any connect succeeded."""

    code = ErrorCode.NO_CONNECTION

    def __init__(self, message: str = "no database connection") -> None:
        """Initialize with the default message."""
        super().__init__(message)


class VerificationError(DataAccessError):
    """Raised when a newly opened connection fails its reachability check."""

    code = ErrorCode.VERIFICATION_FAILED

    def __init__(self, message: str, reason: str = VERIFICATION_REASON_OTHER) -> None:
        """Initialize with the classified failure reason."""
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class QueryError(DataAccessError):
    """Raised when the engine rejects a statement."""

    code = ErrorCode.QUERY_FAILED


class ConversionError(DataAccessError):
    """Raised when a value cannot be parsed into its declared type."""

    code = ErrorCode.CONVERSION_FAILED

    def __init__(self, column: str, data_type: str, value: Any) -> None:
        """Initialize with the offending column and raw value."""
        super().__init__(
            f"failed to convert value {value!r} of column '{column}' to {data_type}",
            details={"column": column, "data_type": data_type},
        )
        self.column = column
        self.data_type = data_type


class RowNotFoundError(DataAccessError):
    """Raised when an update or delete affected zero rows."""

    code = ErrorCode.ROW_NOT_FOUND

    def __init__(self, table: str, key_column: str, key_value: Any) -> None:
        """Initialize with the key that matched nothing."""
        super().__init__(
            f"no row in '{table}' where {key_column} = {key_value!r}",
            details={"table": table, "key_column": key_column},
        )


class NoPrimaryKeyError(DataAccessError):
    """Raised when a table has no primary-key column to address a cell by."""

    code = ErrorCode.NO_PRIMARY_KEY

    def __init__(self, table: str) -> None:
        """Initialize with the table lacking a primary key."""
        super().__init__(f"no primary key found for table '{table}'", details={"table": table})


class CompositePrimaryKeyError(DataAccessError):
    """Raised when a cell cannot be addressed because the primary key spans columns."""

    code = ErrorCode.COMPOSITE_PRIMARY_KEY

    def __init__(self, table: str, columns: List[str]) -> None:
        """Initialize with the participating key columns."""
        super().__init__(
            f"table '{table}' has a composite primary key ({', '.join(columns)})",
            details={"table": table, "primary_key_columns": list(columns)},
        )


def classify_verification_reason(message: str) -> str:
    """Map driver error text onto a verification failure reason."""
    lowered = (message or "").lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return VERIFICATION_REASON_AUTH
    if any(marker in lowered for marker in _UNREACHABLE_MARKERS):
        return VERIFICATION_REASON_UNREACHABLE
    return VERIFICATION_REASON_OTHER


@contextmanager
def translate_driver_errors(operation: str):
    """Re-raise asyncpg failures inside the block as QueryError."""
    try:
        yield
    except asyncpg.PostgresError as exc:
        raise QueryError(
            f"{operation}: {exc}", details={"sqlstate": getattr(exc, "sqlstate", None)}
        ) from exc
    except asyncpg.InterfaceError as exc:
        raise QueryError(f"{operation}: {exc}") from exc

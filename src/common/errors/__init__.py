"""Common error taxonomy helpers."""

from common.errors.error_codes import ErrorCode, error_code_group

__all__ = [
    "ErrorCode",
    "error_code_group",
]

"""Typed environment variable parsing helpers."""

import os
from typing import Callable, List, Optional, TypeVar

T = TypeVar("T")

_TRUTHY = ("true", "1", "yes", "on")
_FALSEY = ("false", "0", "no", "off", "")


def _read_env(
    name: str,
    default: Optional[T],
    required: bool,
    parse: Callable[[str], T],
    kind: str,
) -> Optional[T]:
    value = os.getenv(name)
    if value is None:
        if required:
            raise KeyError(f"Environment variable '{name}' is required but not set.")
        return default
    try:
        return parse(value)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be {kind}, got '{value}'.")


def get_env_str(name: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """Get an environment variable as a string."""
    return _read_env(name, default, required, str, "a string")


def get_env_int(name: str, default: Optional[int] = None, required: bool = False) -> Optional[int]:
    """Get an environment variable as an integer."""
    return _read_env(name, default, required, int, "an integer")


def get_env_float(
    name: str, default: Optional[float] = None, required: bool = False
) -> Optional[float]:
    """Get an environment variable as a float."""
    return _read_env(name, default, required, float, "a float")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSEY:
        return False
    raise ValueError(value)


def get_env_bool(
    name: str, default: Optional[bool] = None, required: bool = False
) -> Optional[bool]:
    """Get an environment variable as a boolean.

    Truthy: true, 1, yes, on
    Falsey: false, 0, no, off, (empty string)
    """
    return _read_env(name, default, required, _parse_bool, "a boolean")


def get_env_list(
    name: str, default: Optional[List[str]] = None, required: bool = False, separator: str = ","
) -> Optional[List[str]]:
    """Get an environment variable as a list of non-empty, stripped strings."""

    def _split(value: str) -> List[str]:
        return [item.strip() for item in value.split(separator) if item.strip()]

    return _read_env(name, default, required, _split, "a list")

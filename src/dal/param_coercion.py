"""Coerce JSON/URL-sourced values to the Python types asyncpg binds.

asyncpg encodes parameters in binary and rejects, for example, the string
``"1"`` for an ``int4`` placeholder. Request values arrive as JSON scalars or
URL path segments, so each value is coerced against the parameter type the
server reported for its placeholder when the statement was prepared.
"""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence

from dal.errors import QueryError

_TRUTHY = {"true", "t", "1", "yes", "y", "on"}
_FALSEY = {"false", "f", "0", "no", "n", "off"}

_OID_LOGICAL_TYPES = {
    16: "boolean",
    20: "integer",
    21: "integer",
    23: "integer",
    700: "float",
    701: "float",
    1700: "numeric",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamptz",
    114: "json",
    3802: "json",
    2950: "uuid",
    25: "string",
    1042: "string",
    1043: "string",
}


def logical_type_for_param(param_type: Any) -> str:
    """Map an asyncpg parameter ``Type`` (oid/name) to a coercion family."""
    oid = getattr(param_type, "oid", None)
    if oid is not None and int(oid) in _OID_LOGICAL_TYPES:
        return _OID_LOGICAL_TYPES[int(oid)]
    name = (getattr(param_type, "name", None) or "").lower()
    if name in {"int2", "int4", "int8"}:
        return "integer"
    if name in {"float4", "float8"}:
        return "float"
    if name == "numeric":
        return "numeric"
    if name == "bool":
        return "boolean"
    if name in {"text", "varchar", "bpchar", "name", "citext"}:
        return "string"
    return "unknown"


def _parse_iso_datetime(text: str) -> datetime:
    value = text.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _coerce_integer(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(value)


def _coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSEY:
            return False
    raise ValueError(value)


def _coerce_numeric(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        return Decimal(value.strip())
    raise ValueError(value)


def _coerce_timestamp(value: Any, aware: bool) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = _parse_iso_datetime(value)
    else:
        raise ValueError(value)
    if not aware and parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10:
            return _parse_iso_datetime(text).date()
        return date.fromisoformat(text)
    raise ValueError(value)


def _coerce_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        return time.fromisoformat(value.strip())
    raise ValueError(value)


def _coerce_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def coerce_value(value: Any, logical_type: str) -> Any:
    """Coerce one value; raises ValueError when it cannot fit the type."""
    if value is None:
        return None
    if logical_type == "integer":
        return _coerce_integer(value)
    if logical_type == "float":
        if isinstance(value, bool):
            raise ValueError(value)
        return float(value.strip() if isinstance(value, str) else value)
    if logical_type == "numeric":
        return _coerce_numeric(value)
    if logical_type == "boolean":
        return _coerce_boolean(value)
    if logical_type == "timestamp":
        return _coerce_timestamp(value, aware=False)
    if logical_type == "timestamptz":
        return _coerce_timestamp(value, aware=True)
    if logical_type == "date":
        return _coerce_date(value)
    if logical_type == "time":
        return _coerce_time(value)
    if logical_type == "uuid":
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value).strip())
    if logical_type == "json":
        return value if isinstance(value, str) else json.dumps(value)
    if logical_type == "string":
        return _coerce_string(value)
    return value


def coerce_params(
    param_types: Sequence[Any], values: Sequence[Any], sql: Optional[str] = None
) -> List[Any]:
    """Coerce positional values to the prepared statement's parameter types.

    Raises:
        QueryError: When a value cannot be represented as its placeholder type.
    """
    if len(param_types) != len(values):
        raise QueryError(
            f"statement expects {len(param_types)} parameters, got {len(values)}",
            details={"sql": sql} if sql else None,
        )

    coerced: List[Any] = []
    for index, (param_type, value) in enumerate(zip(param_types, values), start=1):
        logical_type = logical_type_for_param(param_type)
        try:
            coerced.append(coerce_value(value, logical_type))
        except (ValueError, TypeError, InvalidOperation):
            type_name = getattr(param_type, "name", logical_type)
            raise QueryError(
                f"invalid input for query argument ${index}: {value!r} (expected {type_name})",
                details={"argument": index, "expected_type": type_name},
            ) from None
    return coerced

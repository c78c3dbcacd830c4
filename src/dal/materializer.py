"""Schema-driven conversion of raw driver rows into JSON-safe rows.

Per column, in schema order:

1. A null stays null when the column is nullable. A null in a NOT NULL column
   (a driver or type-mapping edge case) becomes the type default for display
   only; it is never written back.
2. Otherwise the value is converted by declared type family: integers and
   numerics are parsed, temporals pass through as ISO text, everything else
   passes through with byte buffers decoded as text.
3. A table without any primary key gets a synthetic ``id`` equal to the row's
   zero-based position within the page, unless a real ``id`` field exists.

Columns present in the result but missing from the catalog answer are kept
and treated as nullable with an unknown type.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping

from dal.errors import ConversionError
from dal.models import CellValue, ColumnSchema, Row, TableSchema
from dal.type_normalization import (
    FAMILY_INTEGER,
    FAMILY_NUMERIC,
    FAMILY_TEMPORAL,
    default_for_type,
    type_family,
)

SYNTHETIC_ID_FIELD = "id"


def _decode(value: Any) -> Any:
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def _to_int(value: Any, column: ColumnSchema) -> int:
    raw = _decode(value)
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            raise ConversionError(column.name, column.data_type, value) from None
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, Decimal) and raw.is_finite() and raw == raw.to_integral_value():
        return int(raw)
    raise ConversionError(column.name, column.data_type, value)


def _to_float(value: Any, column: ColumnSchema) -> float:
    raw = _decode(value)
    try:
        if isinstance(raw, str):
            raw = raw.strip()
        result = float(raw)
    except (TypeError, ValueError, InvalidOperation, OverflowError):
        raise ConversionError(column.name, column.data_type, value) from None
    if not math.isfinite(result):
        raise ConversionError(column.name, column.data_type, value)
    return result


def _to_iso_text(value: Any) -> CellValue:
    raw = _decode(value)
    if isinstance(raw, (datetime, date, time)):
        return raw.isoformat()
    if isinstance(raw, str):
        return raw
    return str(raw)


def _passthrough(value: Any) -> CellValue:
    raw = _decode(value)
    if raw is None or isinstance(raw, (bool, int, str)):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else str(raw)
    if isinstance(raw, (datetime, date, time)):
        return raw.isoformat()
    if isinstance(raw, (list, tuple, dict)):
        return json.dumps(raw, default=str)
    return str(raw)


def convert_value(value: Any, column: ColumnSchema) -> CellValue:
    """Convert one non-null raw value according to its declared type."""
    family = type_family(column.data_type)
    if family == FAMILY_INTEGER:
        return _to_int(value, column)
    if family == FAMILY_NUMERIC:
        return _to_float(value, column)
    if family == FAMILY_TEMPORAL:
        return _to_iso_text(value)
    return _passthrough(value)


def _ordered_columns(raw_row: Mapping[str, Any], schema: TableSchema) -> List[ColumnSchema]:
    present = set(raw_row.keys())
    ordered = [col for col in schema.columns if col.name in present]
    known = {col.name for col in ordered}
    for name in raw_row.keys():
        if name not in known:
            ordered.append(ColumnSchema(name=name, data_type="", is_nullable=True))
            known.add(name)
    return ordered


def materialize_row(raw_row: Mapping[str, Any], schema: TableSchema, row_index: int) -> Row:
    """Materialize one raw row; raises ConversionError on unparsable values."""
    row: Row = {}
    for column in _ordered_columns(raw_row, schema):
        value = raw_row[column.name]
        if value is None:
            row[column.name] = None if column.is_nullable else default_for_type(column.data_type)
            continue
        row[column.name] = convert_value(value, column)

    if SYNTHETIC_ID_FIELD not in row and not schema.has_primary_key:
        row[SYNTHETIC_ID_FIELD] = row_index
    return row


def materialize_rows(raw_rows: Iterable[Mapping[str, Any]], schema: TableSchema) -> List[Row]:
    """Materialize a page of rows; the first failure aborts the whole page."""
    return [materialize_row(raw, schema, index) for index, raw in enumerate(raw_rows)]

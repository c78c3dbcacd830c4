"""Declared catalog type families and their display/default rules."""

from __future__ import annotations

from dal.models import CellValue

FAMILY_INTEGER = "integer"
FAMILY_NUMERIC = "numeric"
FAMILY_BOOLEAN = "boolean"
FAMILY_TEMPORAL = "temporal"
FAMILY_OTHER = "other"

_INTEGER_TYPES = {"integer", "bigint", "smallint"}
_NUMERIC_TYPES = {"numeric", "decimal"}
_TEMPORAL_TYPES = {
    "timestamp",
    "timestamp without time zone",
    "timestamp with time zone",
    "date",
}

_GRID_TYPES = {
    FAMILY_INTEGER: "number",
    FAMILY_BOOLEAN: "boolean",
    FAMILY_TEMPORAL: "dateTime",
}


def type_family(data_type: str) -> str:
    """Classify a catalog type name (e.g. ``timestamp with time zone``)."""
    normalized = (data_type or "").strip().lower()
    if normalized in _INTEGER_TYPES:
        return FAMILY_INTEGER
    if normalized in _NUMERIC_TYPES:
        return FAMILY_NUMERIC
    if normalized == "boolean":
        return FAMILY_BOOLEAN
    if normalized in _TEMPORAL_TYPES:
        return FAMILY_TEMPORAL
    return FAMILY_OTHER


def default_for_type(data_type: str) -> CellValue:
    """Return the display default substituted for a null in a NOT NULL column."""
    family = type_family(data_type)
    if family == FAMILY_INTEGER:
        return 0
    if family == FAMILY_NUMERIC:
        return 0.0
    if family == FAMILY_BOOLEAN:
        return False
    return ""


def grid_column_type(data_type: str) -> str:
    """Map a catalog type to a data-grid column type."""
    return _GRID_TYPES.get(type_family(data_type), "string")


def header_name_for(column_name: str) -> str:
    """Return a human header, e.g. ``created_at`` -> ``Created At``.

    Only the first letter of each space-separated word is raised, so
    ``2nd_col`` becomes ``2nd Col``.
    """
    words = column_name.replace("_", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)

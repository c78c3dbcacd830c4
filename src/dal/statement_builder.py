"""The single place where SQL text for table operations is assembled.

Identifiers from request input always go through ``quote_identifier``; values
are always positional ``$k`` placeholders carried in ``Statement.params``.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Tuple

from dal.quoting import quote_identifier

ROW_ID_COLUMN = "id"


@dataclass(frozen=True)
class Statement:
    """SQL text plus its positional parameters."""

    sql: str
    params: Tuple[Any, ...] = ()


def build_insert(table: str, data: Mapping[str, Any]) -> Statement:
    """INSERT one row; columns and placeholders come from a single pass over ``data``."""
    items = list(data.items())
    if not items:
        raise ValueError("insert requires at least one column")

    columns = ", ".join(quote_identifier(name) for name, _ in items)
    placeholders = ", ".join(f"${index}" for index in range(1, len(items) + 1))
    sql = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
    return Statement(sql, tuple(value for _, value in items))


def build_update(table: str, row_id: Any, data: Mapping[str, Any]) -> Statement:
    """UPDATE every non-``id`` field of the row whose ``id`` column matches."""
    items = [(name, value) for name, value in data.items() if name != ROW_ID_COLUMN]
    if not items:
        raise ValueError("update requires at least one column other than 'id'")

    assignments = ", ".join(
        f"{quote_identifier(name)} = ${index}" for index, (name, _) in enumerate(items, start=1)
    )
    sql = (
        f"UPDATE {quote_identifier(table)} SET {assignments} "
        f"WHERE {quote_identifier(ROW_ID_COLUMN)} = ${len(items) + 1}"
    )
    return Statement(sql, tuple(value for _, value in items) + (row_id,))


def build_delete(table: str, row_id: Any) -> Statement:
    """DELETE the row whose ``id`` column matches."""
    sql = f"DELETE FROM {quote_identifier(table)} WHERE {quote_identifier(ROW_ID_COLUMN)} = $1"
    return Statement(sql, (row_id,))


def build_update_cell(
    table: str, primary_key_column: str, primary_key_value: Any, column: str, value: Any
) -> Statement:
    """UPDATE a single cell addressed by the table's primary key."""
    sql = (
        f"UPDATE {quote_identifier(table)} SET {quote_identifier(column)} = $1 "
        f"WHERE {quote_identifier(primary_key_column)} = $2"
    )
    return Statement(sql, (value, primary_key_value))


def build_count(table: str) -> Statement:
    return Statement(f"SELECT COUNT(*) FROM {quote_identifier(table)}")


def build_select_page(
    table: str, limit: int, offset: int, order_by: Sequence[str] = ()
) -> Statement:
    """SELECT one page; ``order_by`` (usually the primary key) makes paging stable."""
    sql = f"SELECT * FROM {quote_identifier(table)}"
    if order_by:
        sql += " ORDER BY " + ", ".join(quote_identifier(name) for name in order_by)
    sql += " LIMIT $1 OFFSET $2"
    return Statement(sql, (limit, offset))


def affected_rows(status: str) -> int:
    """Parse the row count from a command tag such as ``UPDATE 3`` or ``INSERT 0 1``."""
    try:
        return int((status or "").rsplit(" ", 1)[-1])
    except ValueError:
        return 0

"""Row mutations against tables known only at runtime.

``update`` and ``delete`` address rows by a column literally named ``id``;
``update_cell`` resolves the real primary key from the catalog.
"""

import logging
from typing import Any, Mapping, Optional

from dal.connection_manager import ConnectionManager
from dal.errors import (
    CompositePrimaryKeyError,
    NoPrimaryKeyError,
    RowNotFoundError,
    translate_driver_errors,
)
from dal.param_coercion import coerce_params
from dal.schema_introspector import DEFAULT_SCHEMA, fetch_table_schema
from dal.statement_builder import (
    ROW_ID_COLUMN,
    Statement,
    affected_rows,
    build_delete,
    build_insert,
    build_update,
    build_update_cell,
)
from dal.tracing import trace_query_operation

logger = logging.getLogger(__name__)


async def execute_statement(conn: Any, statement: Statement, table: str, operation: str) -> int:
    """Prepare, coerce parameters to their server-side types, execute; return rows affected."""
    with translate_driver_errors(f"failed to {operation}"):
        prepared = await conn.prepare(statement.sql)
        params = coerce_params(prepared.get_parameters(), statement.params, statement.sql)
        status = await trace_query_operation(
            f"dal.{operation.replace(' ', '_')}",
            table,
            statement.sql,
            conn.execute(statement.sql, *params),
        )
    return affected_rows(status)


class MutationExecutor:
    """Insert, update and delete rows on the current connection."""

    def __init__(self, manager: ConnectionManager, schema: str = DEFAULT_SCHEMA) -> None:
        """Bind the executor to a connection manager and catalog schema."""
        self._manager = manager
        self._schema = schema

    async def create(self, table: str, data: Mapping[str, Any]) -> int:
        """Insert one row built from ``data``."""
        statement = build_insert(table, data)
        async with self._manager.connection() as conn:
            count = await execute_statement(conn, statement, table, "create row")
        logger.info("Created row in %s", table)
        return count

    async def update(self, table: str, row_id: Any, data: Mapping[str, Any]) -> int:
        """Update the row whose ``id`` column equals ``row_id``.

        Raises:
            RowNotFoundError: If no row matched.
        """
        statement = build_update(table, row_id, data)
        async with self._manager.connection() as conn:
            count = await execute_statement(conn, statement, table, "update row")
        if count == 0:
            raise RowNotFoundError(table, ROW_ID_COLUMN, row_id)
        logger.info("Updated row %s in %s", row_id, table)
        return count

    async def delete(self, table: str, row_id: Any) -> int:
        """Delete the row whose ``id`` column equals ``row_id``.

        Raises:
            RowNotFoundError: If no row matched.
        """
        statement = build_delete(table, row_id)
        async with self._manager.connection() as conn:
            count = await execute_statement(conn, statement, table, "delete row")
        if count == 0:
            raise RowNotFoundError(table, ROW_ID_COLUMN, row_id)
        logger.info("Deleted row %s from %s", row_id, table)
        return count

    async def update_cell(
        self,
        table: str,
        primary_key_column: Optional[str],
        primary_key_value: Any,
        column: str,
        value: Any,
    ) -> str:
        """Set one cell, addressing the row by the table's single primary-key column.

        The key column is always resolved from the catalog; a caller-supplied
        ``primary_key_column`` is only a hint. Returns the column name used.

        Raises:
            NoPrimaryKeyError: If the table declares no primary key.
            CompositePrimaryKeyError: If the primary key spans several columns.
            RowNotFoundError: If no row matched.
        """
        logger.info(
            "Attempting to update cell - Table: %s, Column: %s, PK Value: %s",
            table,
            column,
            primary_key_value,
        )
        async with self._manager.connection() as conn:
            schema = await fetch_table_schema(conn, table, self._schema)
            key_columns = schema.primary_key_columns
            if not key_columns:
                raise NoPrimaryKeyError(table)
            if len(key_columns) > 1:
                raise CompositePrimaryKeyError(table, [col.name for col in key_columns])

            resolved_column = key_columns[0].name
            if primary_key_column and primary_key_column != resolved_column:
                logger.warning(
                    "Ignoring key column %s for %s; primary key is %s",
                    primary_key_column,
                    table,
                    resolved_column,
                )
            primary_key_column = resolved_column
            statement = build_update_cell(
                table, primary_key_column, primary_key_value, column, value
            )
            count = await execute_statement(conn, statement, table, "update cell")

        if count == 0:
            raise RowNotFoundError(table, primary_key_column, primary_key_value)
        logger.info(
            "Updated cell - Table: %s, PK Column: %s, PK Value: %s, Column: %s",
            table,
            primary_key_column,
            primary_key_value,
            column,
        )
        return primary_key_column

"""Read paths: table listing, counts, paginated materialized rows, grid columns."""

import logging
from typing import List

from dal.connection_manager import ConnectionManager
from dal.errors import translate_driver_errors
from dal.materializer import materialize_rows
from dal.models import GridColumn, TablePage
from dal.schema_introspector import (
    DEFAULT_SCHEMA,
    LIST_TABLES_QUERY,
    fetch_table_names,
    fetch_table_schema,
)
from dal.statement_builder import build_count, build_select_page
from dal.tracing import trace_query_operation
from dal.type_normalization import grid_column_type, header_name_for

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 0
DEFAULT_PAGE_SIZE = 25
GRID_COLUMN_WIDTH = 150


class TableReader:
    """Schema-aware reads against the current connection."""

    def __init__(self, manager: ConnectionManager, schema: str = DEFAULT_SCHEMA) -> None:
        """Bind the reader to a connection manager and catalog schema."""
        self._manager = manager
        self._schema = schema

    async def list_tables(self) -> List[str]:
        """Return the base tables of the catalog schema, ordered by name."""
        async with self._manager.connection() as conn:
            return await trace_query_operation(
                "dal.list_tables", None, LIST_TABLES_QUERY, fetch_table_names(conn, self._schema)
            )

    async def count_rows(self, table: str) -> int:
        """Return the total number of rows in ``table``."""
        statement = build_count(table)
        async with self._manager.connection() as conn:
            with translate_driver_errors("failed to get table count"):
                return int(await conn.fetchval(statement.sql))

    async def read_page(
        self, table: str, page: int = DEFAULT_PAGE, page_size: int = DEFAULT_PAGE_SIZE
    ) -> TablePage:
        """Return one materialized page plus the table's total row count.

        Schema, count and rows are read on one connection snapshot. Rows are
        ordered by the primary key when the table has one.
        """
        if page < 0:
            raise ValueError(f"page must be >= 0, got {page}")
        if page_size <= 0:
            raise ValueError(f"pageSize must be > 0, got {page_size}")

        async with self._manager.connection() as conn:
            schema = await fetch_table_schema(conn, table, self._schema)

            count_statement = build_count(table)
            with translate_driver_errors("failed to get table count"):
                total_count = int(await conn.fetchval(count_statement.sql))

            statement = build_select_page(
                table,
                limit=page_size,
                offset=page * page_size,
                order_by=[col.name for col in schema.primary_key_columns],
            )
            with translate_driver_errors("failed to get data"):
                raw_rows = await trace_query_operation(
                    "dal.read_page",
                    table,
                    statement.sql,
                    conn.fetch(statement.sql, *statement.params),
                )

        rows = materialize_rows(raw_rows, schema)
        logger.debug("Read %d rows from %s (page=%d size=%d)", len(rows), table, page, page_size)
        return TablePage(rows=rows, total_count=total_count, page=page, page_size=page_size)

    async def grid_columns(self, table: str) -> List[GridColumn]:
        """Return data-grid display metadata for each column, in ordinal order."""
        async with self._manager.connection() as conn:
            schema = await fetch_table_schema(conn, table, self._schema)
        return [
            GridColumn(
                field=col.name,
                header_name=header_name_for(col.name),
                width=GRID_COLUMN_WIDTH,
                type=grid_column_type(col.data_type),
            )
            for col in schema.columns
        ]

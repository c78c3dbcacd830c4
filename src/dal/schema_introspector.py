from typing import Any, List

from dal.connection_manager import ConnectionManager
from dal.errors import translate_driver_errors
from dal.models import ColumnSchema, TableSchema
from dal.tracing import trace_query_operation

DEFAULT_SCHEMA = "public"

LIST_TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = $1
    AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

TABLE_SCHEMA_QUERY = """
    SELECT
        c.column_name,
        c.data_type,
        c.is_nullable = 'YES' AS is_nullable,
        pk.column_name IS NOT NULL AS is_primary
    FROM information_schema.columns c
    LEFT JOIN (
        SELECT kcu.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
            ON tc.constraint_name = kcu.constraint_name
            AND tc.table_schema = kcu.table_schema
            AND tc.table_name = kcu.table_name
        WHERE tc.table_name = $1
            AND tc.table_schema = $2
            AND tc.constraint_type = 'PRIMARY KEY'
    ) pk ON c.column_name = pk.column_name
    WHERE c.table_name = $1
        AND c.table_schema = $2
    ORDER BY c.ordinal_position
"""


async def fetch_table_names(conn: Any, schema: str = DEFAULT_SCHEMA) -> List[str]:
    """List base tables of ``schema`` on an already-acquired connection."""
    with translate_driver_errors("failed to query tables"):
        rows = await conn.fetch(LIST_TABLES_QUERY, schema)
    return [row["table_name"] for row in rows]


async def fetch_table_schema(
    conn: Any, table_name: str, schema: str = DEFAULT_SCHEMA
) -> TableSchema:
    """Introspect one table on an already-acquired connection.

    Names are matched verbatim against the catalog. An unknown table yields
    an empty TableSchema rather than an error.
    """
    with translate_driver_errors("failed to get schema"):
        rows = await conn.fetch(TABLE_SCHEMA_QUERY, table_name, schema)

    return TableSchema(
        columns=[
            ColumnSchema(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=bool(row["is_nullable"]),
                is_primary=bool(row["is_primary"]),
            )
            for row in rows
        ]
    )


class SchemaIntrospector:
    """Postgres catalog introspection against the current connection."""

    def __init__(self, manager: ConnectionManager, schema: str = DEFAULT_SCHEMA) -> None:
        """Bind the introspector to a connection manager and catalog schema."""
        self._manager = manager
        self._schema = schema

    async def get_table_schema(self, table_name: str) -> TableSchema:
        """Return the ordered column list for ``table_name``; never cached."""
        async with self._manager.connection() as conn:
            return await trace_query_operation(
                "dal.get_table_schema",
                table_name,
                TABLE_SCHEMA_QUERY,
                fetch_table_schema(conn, table_name, self._schema),
            )

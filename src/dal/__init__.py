"""Data Abstraction Layer (DAL) for the database viewer.

This package owns the current database connection and the schema-driven
read/write paths built on top of it: catalog introspection, typed row
materialization and dynamically parameterized mutations.
"""

from dal.connection_manager import ConnectionManager
from dal.mutations import MutationExecutor
from dal.schema_introspector import SchemaIntrospector
from dal.table_reader import TableReader

__all__ = [
    "ConnectionManager",
    "MutationExecutor",
    "SchemaIntrospector",
    "TableReader",
]

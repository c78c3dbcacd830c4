import hashlib
from typing import Awaitable, Optional

from common.config.env import get_env_bool


def trace_enabled() -> bool:
    """Return True when DAL query tracing is enabled."""
    return bool(get_env_bool("DAL_TRACE_QUERIES", False))


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    table: Optional[str],
    sql: Optional[str],
    operation: Awaitable,
):
    """Trace a DAL operation with OTEL when enabled."""
    if not trace_enabled():
        return await operation

    from opentelemetry import trace

    tracer = trace.get_tracer("dal")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.system", "postgresql")
        if table:
            span.set_attribute("db.sql.table", table)
        if sql:
            span.set_attribute("db.statement_hash", _hash_sql(sql))
        try:
            result = await operation
            span.set_attribute("db.status", "ok")
            return result
        except Exception:
            span.set_attribute("db.status", "error")
            raise

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from common.config.env import get_env_float, get_env_list
from common.config.resources import SystemResources
from common.errors import ErrorCode, error_code_group
from dal.connection_config import ConnectionConfig, parse_database_url
from dal.connection_manager import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_DRAIN_TIMEOUT_S,
    ConnectionManager,
)
from dal.errors import (
    VERIFICATION_REASON_AUTH,
    VERIFICATION_REASON_UNREACHABLE,
    DataAccessError,
    VerificationError,
)
from dal.models import GridColumn, TablePage, TableSchema
from dal.mutations import MutationExecutor
from dal.schema_introspector import SchemaIntrospector
from dal.table_reader import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, TableReader

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization"]
CORS_MAX_AGE_S = 3600


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


STATUS_BY_CODE = {
    ErrorCode.NO_CONNECTION: status.HTTP_409_CONFLICT,
    ErrorCode.QUERY_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONVERSION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.ROW_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NO_PRIMARY_KEY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.COMPOSITE_PRIMARY_KEY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
}

STATUS_BY_VERIFICATION_REASON = {
    VERIFICATION_REASON_AUTH: status.HTTP_401_UNAUTHORIZED,
    VERIFICATION_REASON_UNREACHABLE: status.HTTP_502_BAD_GATEWAY,
}


def status_for_error(exc: DataAccessError) -> int:
    """Map a data-access error kind onto an HTTP status code."""
    if isinstance(exc, VerificationError):
        return STATUS_BY_VERIFICATION_REASON.get(exc.reason, status.HTTP_400_BAD_REQUEST)
    return STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _build_error_response(exc: DataAccessError, request_id: Optional[str] = None) -> dict:
    """Build a standardized error response payload."""
    return {
        "error": {
            "message": exc.message,
            "code": exc.code.value,
            "details": exc.details,
            "request_id": request_id,
        }
    }


async def data_access_error_handler(request: Request, exc: DataAccessError) -> JSONResponse:
    """Translate DAL failures into JSON error responses."""
    status_code = status_for_error(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "%s %s failed [%s/%s]: %s",
        request.method,
        request.url.path,
        error_code_group(exc.code),
        exc.code.value,
        exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content=_build_error_response(exc, request.headers.get("X-Request-ID")),
    )


class InvalidRequestError(DataAccessError):
    """Raised for malformed request input (missing fields, bad paging, bad URLs)."""

    code = ErrorCode.VALIDATION_ERROR


def _bad_request(exc: ValueError) -> InvalidRequestError:
    return InvalidRequestError(str(exc))


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class ConnectPayload(BaseModel):
    """Tunnelled connect request."""

    url: str = ""
    username: str = ""
    password: str = ""
    database: str = ""


class DirectConnectPayload(BaseModel):
    """Direct connect request carrying a postgres:// URL."""

    url: str = ""


class CellUpdatePayload(BaseModel):
    """Single-cell update body."""

    value: Any = None


class TablesResponse(BaseModel):
    tables: List[str]


class MessageResponse(BaseModel):
    message: str


def _parse_int(raw: Optional[str], default: int) -> int:
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager


def get_reader(manager: ConnectionManager = Depends(get_manager)) -> TableReader:
    return TableReader(manager)


def get_introspector(manager: ConnectionManager = Depends(get_manager)) -> SchemaIntrospector:
    return SchemaIntrospector(manager)


def get_executor(manager: ConnectionManager = Depends(get_manager)) -> MutationExecutor:
    return MutationExecutor(manager)


def _default_manager() -> ConnectionManager:
    return ConnectionManager(
        resources=SystemResources.from_env(),
        connect_timeout_s=get_env_float("DB_CONNECT_TIMEOUT_S", DEFAULT_CONNECT_TIMEOUT_S),
        drain_timeout_s=get_env_float("DB_DRAIN_TIMEOUT_S", DEFAULT_DRAIN_TIMEOUT_S),
    )


def create_app(manager: Optional[ConnectionManager] = None) -> FastAPI:
    """Build the HTTP application around one connection manager."""
    connection_manager = manager or _default_manager()

    @asynccontextmanager
    async def lifespan(app):
        """Close the current database connection at shutdown."""
        yield
        await connection_manager.close()

    app = FastAPI(title="Database Viewer API", lifespan=lifespan)
    app.state.connection_manager = connection_manager
    app.add_exception_handler(DataAccessError, data_access_error_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_env_list("CORS_ALLOW_ORIGINS", ["*"]),
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        max_age=CORS_MAX_AGE_S,
    )

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    # --- Connection ---

    @app.get("/api/connection")
    async def connection_status(
        manager: ConnectionManager = Depends(get_manager),
    ) -> Dict[str, Any]:
        """Report the currently installed connection, if any."""
        return manager.status()

    @app.post("/api/connect")
    async def connect(
        payload: ConnectPayload, manager: ConnectionManager = Depends(get_manager)
    ) -> Dict[str, Any]:
        """Connect through a tunnel URL; replaces any current connection on success."""
        for field, value, label in (
            ("url", payload.url, "Database URL"),
            ("username", payload.username, "Username"),
            ("database", payload.database, "Database name"),
        ):
            if not value:
                logger.warning("Missing %s in connection request", label.lower())
                raise InvalidRequestError(f"{label} is required", details={"field": field})

        config = ConnectionConfig(
            url=payload.url,
            username=payload.username,
            password=payload.password,
            database=payload.database,
        )
        try:
            config.endpoint()
        except ValueError as exc:
            raise _bad_request(exc) from exc

        handle = await manager.connect(config)
        logger.info("Successfully connected to database %s via %s", handle.database, payload.url)
        return {"status": "connected", "database": payload.database, "host": payload.url}

    @app.post("/api/connect/direct", response_model=MessageResponse)
    async def connect_direct(
        payload: DirectConnectPayload, manager: ConnectionManager = Depends(get_manager)
    ) -> MessageResponse:
        """Connect straight to a postgres:// URL."""
        if not payload.url:
            raise InvalidRequestError("Database URL is required", details={"field": "url"})
        try:
            config = parse_database_url(payload.url)
            config.connect_kwargs()
        except ValueError as exc:
            raise _bad_request(exc) from exc

        await manager.connect_direct(config)
        return MessageResponse(message="Successfully connected to database")

    # --- Tables ---

    @app.get("/api/tables", response_model=TablesResponse)
    async def list_tables(reader: TableReader = Depends(get_reader)) -> TablesResponse:
        """List base tables of the connected database."""
        return TablesResponse(tables=await reader.list_tables())

    @app.get("/api/tables/{table}/schema", response_model=TableSchema)
    async def table_schema(
        table: str, introspector: SchemaIntrospector = Depends(get_introspector)
    ) -> TableSchema:
        """Return the introspected column list of one table."""
        return await introspector.get_table_schema(table)

    @app.get("/api/tables/{table}/columns", response_model=List[GridColumn])
    async def table_columns(
        table: str, reader: TableReader = Depends(get_reader)
    ) -> List[GridColumn]:
        """Return data-grid column metadata for one table."""
        return await reader.grid_columns(table)

    @app.get("/api/tables/{table}", response_model=TablePage)
    async def table_data(
        table: str,
        page: Optional[str] = None,
        pageSize: Optional[str] = None,
        reader: TableReader = Depends(get_reader),
    ) -> TablePage:
        """Return one page of schema-aware rows; bad paging values fall back to defaults."""
        try:
            return await reader.read_page(
                table,
                page=_parse_int(page, DEFAULT_PAGE),
                page_size=_parse_int(pageSize, DEFAULT_PAGE_SIZE),
            )
        except ValueError as exc:
            raise _bad_request(exc) from exc

    # --- Rows ---

    @app.post(
        "/api/tables/{table}/rows",
        response_model=MessageResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_row(
        table: str,
        data: Dict[str, Any] = Body(...),
        executor: MutationExecutor = Depends(get_executor),
    ) -> MessageResponse:
        try:
            await executor.create(table, data)
        except ValueError as exc:
            raise _bad_request(exc) from exc
        return MessageResponse(message="Row created successfully")

    @app.put("/api/tables/{table}/rows/{row_id}", response_model=MessageResponse)
    async def update_row(
        table: str,
        row_id: str,
        data: Dict[str, Any] = Body(...),
        executor: MutationExecutor = Depends(get_executor),
    ) -> MessageResponse:
        try:
            await executor.update(table, row_id, data)
        except ValueError as exc:
            raise _bad_request(exc) from exc
        return MessageResponse(message="Row updated successfully")

    @app.delete("/api/tables/{table}/rows/{row_id}", response_model=MessageResponse)
    async def delete_row(
        table: str, row_id: str, executor: MutationExecutor = Depends(get_executor)
    ) -> MessageResponse:
        await executor.delete(table, row_id)
        return MessageResponse(message="Row deleted successfully")

    @app.put("/api/tables/{table}/rows/{row_id}/cells/{column}", response_model=MessageResponse)
    async def update_cell(
        table: str,
        row_id: str,
        column: str,
        payload: CellUpdatePayload,
        executor: MutationExecutor = Depends(get_executor),
    ) -> MessageResponse:
        await executor.update_cell(table, None, row_id, column, payload.value)
        return MessageResponse(message="Cell updated successfully")

    return app

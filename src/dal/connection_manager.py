"""Ownership of the single "current" database connection pool.

Readers take a per-request snapshot with ``async with manager.connection()``.
The snapshot leases the handle it read. A connect that swaps the handle
retires the old pool in the background: the pool closes once its leases are
released, or is terminated if they outlive the drain timeout.
Reading ``_current`` and leasing it happen with no await in between, which
makes the snapshot atomic on the event loop.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

import asyncpg

from common.config.resources import SystemResources
from common.sanitization import redact_sensitive_info
from dal.connection_config import ConnectionConfig, DirectConnectionConfig
from dal.errors import (
    VERIFICATION_REASON_UNREACHABLE,
    NoConnectionError,
    VerificationError,
    classify_verification_reason,
)
from dal.util.timeouts import StepTimeoutError, within_deadline

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_S = 10.0
DEFAULT_DRAIN_TIMEOUT_S = 30.0
APPLICATION_NAME = "dbviewer"

IDENTITY_QUERY = "SELECT current_database()"
PING_QUERY = "SELECT 1"

_CONNECT_ERRORS = (
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    StepTimeoutError,
)


class ConnectionHandle:
    """A verified pool plus the bookkeeping needed to retire it safely."""

    def __init__(self, pool: Any, database: str, target: Dict[str, Any]) -> None:
        """Wrap an open pool confirmed to reach ``database``."""
        self.pool = pool
        self.database = database
        self.target = target
        self._leases = 0
        self._retired = False
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def leases(self) -> int:
        return self._leases

    @property
    def retired(self) -> bool:
        return self._retired

    def lease(self) -> None:
        if self._retired:
            raise NoConnectionError("database connection was replaced")
        self._leases += 1
        self._drained.clear()

    def release(self) -> None:
        self._leases -= 1
        if self._leases <= 0:
            self._leases = 0
            self._drained.set()

    async def retire(self, drain_timeout_s: Optional[float] = None) -> None:
        """Refuse new leases, wait for outstanding ones, then close the pool.

        Leases still held after ``drain_timeout_s`` are cut off by terminating
        the pool.
        """
        self._retired = True
        try:
            await within_deadline("connection drain", self._drained.wait, drain_timeout_s)
        except StepTimeoutError:
            logger.warning(
                "Terminating replaced pool for %s with %d leases outstanding",
                self.database,
                self._leases,
            )
            self.pool.terminate()
            return
        await self.pool.close()


class ConnectionManager:
    """Owns at most one current connection and swaps it on each connect."""

    def __init__(
        self,
        resources: Optional[SystemResources] = None,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        drain_timeout_s: float = DEFAULT_DRAIN_TIMEOUT_S,
    ) -> None:
        """Initialize in the Disconnected state."""
        self._resources = resources or SystemResources()
        self._connect_timeout_s = connect_timeout_s
        self._drain_timeout_s = drain_timeout_s
        self._retirements: Set[asyncio.Task] = set()
        self._current: Optional[ConnectionHandle] = None
        self._swap_lock = asyncio.Lock()

    @property
    def resources(self) -> SystemResources:
        return self._resources

    def is_connected(self) -> bool:
        return self._current is not None

    def status(self) -> Dict[str, Any]:
        """Report whether a connection is installed and what it points at."""
        handle = self._current
        if handle is None:
            return {"connected": False}
        return {"connected": True, **handle.target, "database": handle.database}

    async def connect(self, config: ConnectionConfig) -> ConnectionHandle:
        """Connect through a tunnel, verifying identity with current_database()."""
        target = config.describe()
        logger.info(
            "Connection attempt: database=%s user=%s host=%s:%s",
            config.database,
            config.username,
            target["host"],
            target["port"],
        )
        handle = await self._install(config.connect_kwargs(), target, IDENTITY_QUERY)
        if handle.database != config.database:
            logger.warning(
                "Connected to %s but requested database was %s",
                handle.database,
                config.database,
            )
        return handle

    async def connect_direct(self, config: DirectConnectionConfig) -> ConnectionHandle:
        """Connect directly, verifying reachability with a ping."""
        target = config.describe()
        logger.info(
            "Direct connection attempt: database=%s user=%s host=%s sslmode=%s",
            config.dbname,
            config.user,
            config.host,
            config.sslmode,
        )
        return await self._install(config.connect_kwargs(), target, PING_QUERY)

    async def _install(
        self, connect_kwargs: Dict[str, Any], target: Dict[str, Any], verify_query: str
    ) -> ConnectionHandle:
        async with self._swap_lock:
            handle = await self._open_verified(connect_kwargs, target, verify_query)
            previous = self._current
            self._current = handle
            logger.info("Connected to database %s", handle.database)

        if previous is not None:
            self._schedule_retire(previous)
        return handle

    async def _open_verified(
        self, connect_kwargs: Dict[str, Any], target: Dict[str, Any], verify_query: str
    ) -> ConnectionHandle:
        resources = self._resources
        max_size = max(1, resources.max_connections)
        min_size = min(resources.max_idle_connections, max_size)

        try:
            pool = await within_deadline(
                "database open",
                lambda: asyncpg.create_pool(
                    min_size=min_size,
                    max_size=max_size,
                    max_inactive_connection_lifetime=resources.max_connection_lifetime_s,
                    timeout=self._connect_timeout_s,
                    server_settings={"application_name": APPLICATION_NAME},
                    **connect_kwargs,
                ),
                self._connect_timeout_s,
            )
        except _CONNECT_ERRORS as exc:
            raise self._verification_error("failed to open database", exc) from exc

        try:
            try:
                database = await within_deadline(
                    "database verification",
                    lambda: self._verify(pool, verify_query),
                    self._connect_timeout_s,
                )
            except _CONNECT_ERRORS as exc:
                raise self._verification_error(
                    "failed to verify database connection", exc
                ) from exc
        except BaseException:
            pool.terminate()
            raise

        return ConnectionHandle(pool, database or connect_kwargs.get("database", ""), target)

    @staticmethod
    async def _verify(pool: Any, verify_query: str) -> str:
        async with pool.acquire() as conn:
            result = await conn.fetchval(verify_query)
            if verify_query == IDENTITY_QUERY:
                return result
            return await conn.fetchval(IDENTITY_QUERY)

    @staticmethod
    def _verification_error(prefix: str, exc: BaseException) -> VerificationError:
        detail = redact_sensitive_info(str(exc)) or exc.__class__.__name__
        if isinstance(exc, (StepTimeoutError, asyncio.TimeoutError)):
            reason = VERIFICATION_REASON_UNREACHABLE
        else:
            reason = classify_verification_reason(detail)
        logger.warning("%s: %s", prefix, detail)
        return VerificationError(f"{prefix}: {detail}", reason=reason)

    def _schedule_retire(self, handle: ConnectionHandle) -> None:
        """Retire ``handle`` in the background; ``close`` waits for it."""
        task = asyncio.get_running_loop().create_task(self._retire_quietly(handle))
        self._retirements.add(task)
        task.add_done_callback(self._retirements.discard)

    @property
    def pending_retirements(self) -> int:
        return len(self._retirements)

    async def _retire_quietly(self, handle: ConnectionHandle) -> None:
        try:
            await handle.retire(self._drain_timeout_s)
        except Exception as exc:
            logger.warning("failed to close previous connection: %s", exc)

    @asynccontextmanager
    async def connection(self):
        """Yield a pooled connection from a consistent snapshot of the current handle.

        Raises:
            NoConnectionError: If no connect has succeeded yet.
        """
        handle = self._current
        if handle is None:
            raise NoConnectionError()
        handle.lease()
        try:
            async with handle.pool.acquire() as conn:
                yield conn
        finally:
            handle.release()

    async def close(self) -> None:
        """Close the current connection at process shutdown."""
        async with self._swap_lock:
            handle: Optional[ConnectionHandle] = self._current
            self._current = None
        if handle is not None:
            self._schedule_retire(handle)
        if self._retirements:
            await asyncio.gather(*list(self._retirements))
        if handle is not None:
            logger.info("Database connection pool closed")

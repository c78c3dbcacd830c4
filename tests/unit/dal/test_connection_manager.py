"""Tests for connect, verification and safe swap of the current pool."""

import asyncio
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from common.config.resources import SystemResources
from dal.connection_config import ConnectionConfig, parse_database_url
from dal.connection_manager import PING_QUERY, ConnectionManager
from dal.errors import NoConnectionError, VerificationError
from tests._support.fake_db import FakeConnection, FakePool


def _config(database="appdb", url="tcp://0.tcp.ngrok.io:14123"):
    return ConnectionConfig(url=url, username="viewer", password="s3cret", database=database)


def _patch_pool(*pools):
    return patch(
        "dal.connection_manager.asyncpg.create_pool", AsyncMock(side_effect=list(pools))
    )


async def _settle(manager):
    for _ in range(200):
        if manager.pending_retirements == 0:
            return
        await asyncio.sleep(0)
    raise AssertionError("previous pool was never retired")


@pytest.mark.asyncio
async def test_operations_before_connect_fail_with_no_connection():
    manager = ConnectionManager()

    assert manager.status() == {"connected": False}
    with pytest.raises(NoConnectionError):
        async with manager.connection():
            pass


@pytest.mark.asyncio
async def test_connect_installs_verified_handle():
    pool = FakePool(FakeConnection(database="appdb"))
    resources = SystemResources(cpu_cores=2, max_connections=7, max_idle_connections=3)
    manager = ConnectionManager(resources=resources, connect_timeout_s=5)

    with _patch_pool(pool) as create_pool:
        handle = await manager.connect(_config())

    assert handle.database == "appdb"
    assert manager.is_connected()
    status = manager.status()
    assert status["connected"] is True
    assert status["host"] == "0.tcp.ngrok.io"
    assert "password" not in status

    kwargs = create_pool.call_args.kwargs
    assert kwargs["host"] == "0.tcp.ngrok.io"
    assert kwargs["port"] == 14123
    assert kwargs["ssl"] is False
    assert kwargs["max_size"] == 7
    assert kwargs["min_size"] == 3
    assert kwargs["max_inactive_connection_lifetime"] == 900
    assert kwargs["server_settings"] == {"application_name": "dbviewer"}


@pytest.mark.asyncio
async def test_database_mismatch_is_not_fatal():
    pool = FakePool(FakeConnection(database="postgres"))
    manager = ConnectionManager()

    with _patch_pool(pool):
        handle = await manager.connect(_config(database="appdb"))

    assert handle.database == "postgres"


@pytest.mark.asyncio
async def test_failed_connect_keeps_previous_connection():
    first = FakePool(FakeConnection(database="appdb"))
    manager = ConnectionManager()
    with _patch_pool(first):
        await manager.connect(_config())

    auth_failure = asyncpg.exceptions.InvalidPasswordError(
        'password authentication failed for user "viewer"'
    )
    with _patch_pool(auth_failure):
        with pytest.raises(VerificationError) as exc_info:
            await manager.connect(_config(database="other"))

    assert exc_info.value.reason == "auth"
    assert manager.status()["database"] == "appdb"
    assert first.closed is False
    async with manager.connection() as conn:
        assert conn is first.conn


@pytest.mark.asyncio
async def test_unreachable_host_is_classified():
    manager = ConnectionManager()
    with _patch_pool(OSError("Connection refused")):
        with pytest.raises(VerificationError) as exc_info:
            await manager.connect(_config())
    assert exc_info.value.reason == "unreachable"
    assert not manager.is_connected()


@pytest.mark.asyncio
async def test_connect_timeout_is_unreachable():
    async def _hang(**kwargs):
        await asyncio.sleep(1)

    manager = ConnectionManager(connect_timeout_s=0.01)
    with patch("dal.connection_manager.asyncpg.create_pool", _hang):
        with pytest.raises(VerificationError) as exc_info:
            await manager.connect(_config())
    assert exc_info.value.reason == "unreachable"


@pytest.mark.asyncio
async def test_failed_verification_terminates_new_pool():
    conn = FakeConnection()
    conn.fetchval = AsyncMock(side_effect=asyncpg.exceptions.InterfaceError("connection lost"))
    pool = FakePool(conn)
    manager = ConnectionManager()

    with _patch_pool(pool):
        with pytest.raises(VerificationError):
            await manager.connect(_config())

    assert pool.terminated is True
    assert not manager.is_connected()


@pytest.mark.asyncio
async def test_reconnect_closes_previous_pool():
    first = FakePool(FakeConnection(database="one"))
    second = FakePool(FakeConnection(database="two"))
    manager = ConnectionManager()

    with _patch_pool(first, second):
        await manager.connect(_config(database="one"))
        await manager.connect(_config(database="two"))

    await _settle(manager)
    assert first.closed is True
    assert second.closed is False
    assert manager.status()["database"] == "two"


@pytest.mark.asyncio
async def test_swap_waits_for_in_flight_reader():
    """A reader keeps its snapshot; the old pool closes only after it finishes."""
    first = FakePool(FakeConnection(database="one"))
    second = FakePool(FakeConnection(database="two"))
    manager = ConnectionManager()

    with _patch_pool(first, second):
        await manager.connect(_config(database="one"))

        async with manager.connection() as conn:
            swap = asyncio.create_task(manager.connect(_config(database="two")))
            for _ in range(50):
                if manager.status().get("database") == "two":
                    break
                await asyncio.sleep(0)

            assert manager.status()["database"] == "two"
            assert first.closed is False
            assert conn is first.conn

        await swap

    await _settle(manager)
    assert first.closed is True
    async with manager.connection() as conn:
        assert conn is second.conn


@pytest.mark.asyncio
async def test_connect_returns_while_old_lease_is_held():
    first = FakePool(FakeConnection(database="one"))
    second = FakePool(FakeConnection(database="two"))
    manager = ConnectionManager(connect_timeout_s=0.5)
    leased = asyncio.Event()
    finish = asyncio.Event()

    async def _slow_reader():
        async with manager.connection():
            leased.set()
            await finish.wait()

    with _patch_pool(first, second):
        await manager.connect(_config(database="one"))
        reader = asyncio.create_task(_slow_reader())
        await leased.wait()

        handle = await asyncio.wait_for(manager.connect(_config(database="two")), 2.0)

        assert handle.database == "two"
        assert manager.pending_retirements == 1
        assert first.closed is False

        finish.set()
        await reader
        await _settle(manager)

    assert first.closed is True
    assert first.terminated is False


@pytest.mark.asyncio
async def test_close_terminates_pool_when_leases_outlive_drain():
    pool = FakePool(FakeConnection())
    manager = ConnectionManager(drain_timeout_s=0.05)
    leased = asyncio.Event()
    never = asyncio.Event()

    async def _stuck_reader():
        async with manager.connection():
            leased.set()
            await never.wait()

    with _patch_pool(pool):
        await manager.connect(_config())
    reader = asyncio.create_task(_stuck_reader())
    await leased.wait()

    await asyncio.wait_for(manager.close(), 2.0)

    assert pool.terminated is True
    assert pool.closed is False
    assert not manager.is_connected()
    reader.cancel()
    with pytest.raises(asyncio.CancelledError):
        await reader


@pytest.mark.asyncio
async def test_unexpected_verification_error_terminates_new_pool():
    conn = FakeConnection()
    conn.fetchval = AsyncMock(side_effect=RuntimeError("driver bug"))
    pool = FakePool(conn)
    manager = ConnectionManager()

    with _patch_pool(pool):
        with pytest.raises(RuntimeError):
            await manager.connect(_config())

    assert pool.terminated is True
    assert not manager.is_connected()


@pytest.mark.asyncio
async def test_cancelled_connect_terminates_new_pool():
    verifying = asyncio.Event()
    conn = FakeConnection()

    async def _hang(sql, *args):
        verifying.set()
        await asyncio.Event().wait()

    conn.fetchval = _hang
    pool = FakePool(conn)
    manager = ConnectionManager(connect_timeout_s=5)

    with _patch_pool(pool):
        attempt = asyncio.create_task(manager.connect(_config()))
        await verifying.wait()
        attempt.cancel()
        with pytest.raises(asyncio.CancelledError):
            await attempt

    assert pool.terminated is True
    assert not manager.is_connected()


@pytest.mark.asyncio
async def test_direct_connect_pings_then_reads_database_name():
    conn = FakeConnection(database="analytics")
    pool = FakePool(conn)
    manager = ConnectionManager()
    config = parse_database_url("postgres://ro:pw@db.example.com:6543/analytics?sslmode=disable")

    with _patch_pool(pool) as create_pool:
        handle = await manager.connect_direct(config)

    assert handle.database == "analytics"
    assert conn.fetchval_calls[0][0] == PING_QUERY
    kwargs = create_pool.call_args.kwargs
    assert kwargs["port"] == 6543
    assert kwargs["ssl"] is False
    assert manager.status()["sslmode"] == "disable"


@pytest.mark.asyncio
async def test_close_releases_current_pool():
    pool = FakePool(FakeConnection())
    manager = ConnectionManager()
    with _patch_pool(pool):
        await manager.connect(_config())

    await manager.close()

    assert pool.closed is True
    assert not manager.is_connected()

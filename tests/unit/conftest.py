"""Unit test environment helpers."""

import pytest


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Keep unit tests independent of the developer's shell and .env."""
    for name in (
        "DAL_TRACE_QUERIES",
        "CPU_CORES",
        "DB_MAX_CONNECTIONS",
        "DB_MAX_IDLE_CONNECTIONS",
        "DB_MAX_CONNECTION_LIFETIME_S",
        "DB_CONNECT_TIMEOUT_S",
        "DB_DRAIN_TIMEOUT_S",
        "CORS_ALLOW_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield

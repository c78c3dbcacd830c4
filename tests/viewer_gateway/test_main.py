"""Tests for the server entrypoint."""

from unittest.mock import patch

from viewer_gateway import main as entrypoint


def test_main_bounds_concurrency_from_pool_size(monkeypatch):
    monkeypatch.setenv("CPU_CORES", "2")
    monkeypatch.delenv("DB_MAX_CONNECTIONS", raising=False)
    monkeypatch.setenv("SERVER_PORT", "9090")
    monkeypatch.delenv("DAL_TRACE_QUERIES", raising=False)

    with patch.object(entrypoint, "load_dotenv"), patch.object(
        entrypoint.uvicorn, "run"
    ) as run:
        entrypoint.main()

    kwargs = run.call_args.kwargs
    assert kwargs["port"] == 9090
    assert kwargs["limit_concurrency"] == 14
    assert kwargs["log_config"] is None

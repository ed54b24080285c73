"""Tests for lm_module_sync.mcp.lifespan: server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Loads config from env vars (with optional CLI overrides)
- Creates PortalClient and validates the bearer token
- Initializes concurrency semaphore
- Builds the sync engine around the configured portal
- Fails fast on config errors or connection failures
"""

from unittest.mock import MagicMock, patch

import pytest

from lm_module_sync.config import Config
from lm_module_sync.mcp.lifespan import server_lifespan
from lm_module_sync.sync.engine import ModuleSyncEngine
from lm_module_sync.sync.handles import DirectoryHandleStore

MODULE = "lm_module_sync.mcp.lifespan"


def _make_config(**overrides):
    defaults = {
        "portal_hostname": "acme.logicmonitor.com",
        "bearer_token": "token",
        "portal_id": "acme",
        "max_parallel_requests": 5,
        "state_dir": "/tmp/lm-state",
    }
    defaults.update(overrides)
    return Config(**defaults)


def _patches(config=None, client=None, run_sync=None, load_config=None):
    """Patch every external touch point of server_lifespan()."""
    if load_config is None:
        load_config = MagicMock(return_value=config or _make_config())
    if run_sync is None:
        run_sync = MagicMock(return_value="acme.logicmonitor.com")

    async def _run_sync(func, *args, **kwargs):
        return run_sync(func, *args, **kwargs)

    return (
        patch(f"{MODULE}.load_dotenv"),
        patch(f"{MODULE}.discover_config_files", return_value=[]),
        patch(f"{MODULE}.load_config", load_config),
        patch(f"{MODULE}.PortalClient", return_value=client or MagicMock()),
        patch(f"{MODULE}.run_sync", _run_sync),
        patch(f"{MODULE}.init_semaphore"),
        patch(f"{MODULE}._stderr_print"),
    )


class TestServerLifespanSuccess:
    async def test_yields_engine_and_handles(self):
        client = MagicMock()
        p = _patches(client=client)
        with p[0], p[1], p[2], p[3], p[4], p[5] as init_sem, p[6]:
            async with server_lifespan() as ctx:
                engine = ctx["engine"]
                assert isinstance(engine, ModuleSyncEngine)
                assert isinstance(ctx["handles"], DirectoryHandleStore)
                assert str(ctx["handles"].path) == "/tmp/lm-state/directories.json"
                init_sem.assert_called_once_with(5)

    async def test_configured_portal_is_selected(self):
        p = _patches()
        with p[0], p[1], p[2], p[3], p[4], p[5], p[6]:
            async with server_lifespan() as ctx:
                connections = ctx["engine"].connections
                assert connections.selected_portal_id == "acme"
                assert connections.get("acme").hostname == "acme.logicmonitor.com"

    async def test_validates_connection(self):
        client = MagicMock()
        run_sync = MagicMock(return_value="acme.logicmonitor.com")
        p = _patches(client=client, run_sync=run_sync)
        with p[0], p[1], p[2], p[3], p[4], p[5], p[6]:
            async with server_lifespan():
                run_sync.assert_called_once_with(client.validate_connection)

    async def test_overrides_passed_to_load_config(self):
        load_config = MagicMock(return_value=_make_config())
        p = _patches(load_config=load_config)
        with p[0], p[1], p[2], p[3], p[4], p[5], p[6]:
            async with server_lifespan(
                {"hostname": "beta.logicmonitor.com", "insecure": True}
            ):
                pass
        kwargs = load_config.call_args.kwargs
        assert kwargs["hostname"] == "beta.logicmonitor.com"
        assert kwargs["insecure"] is True
        assert kwargs["token"] is None
        assert kwargs["yaml_fallbacks"] is None


class TestServerLifespanConfigError:
    async def test_config_error_raises_runtime_error(self):
        load_config = MagicMock(side_effect=ValueError("LM_BEARER_TOKEN is empty"))
        p = _patches(load_config=load_config)
        with p[0], p[1], p[2], p[3], p[4], p[5] as init_sem, p[6]:
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with server_lifespan():
                    pass
            init_sem.assert_not_called()


class TestServerLifespanConnectionError:
    async def test_connection_error_raises_runtime_error(self):
        run_sync = MagicMock(side_effect=ConnectionError("401 Unauthorized"))
        p = _patches(run_sync=run_sync)
        with p[0], p[1], p[2], p[3], p[4], p[5] as init_sem, p[6]:
            with pytest.raises(
                RuntimeError, match="Portal connection failed: 401 Unauthorized"
            ):
                async with server_lifespan():
                    pass
            init_sem.assert_not_called()


class TestServerLifespanShutdown:
    async def test_shutdown_prints_message(self):
        p = _patches()
        with p[0], p[1], p[2], p[3], p[4], p[5], p[6] as stderr:
            async with server_lifespan():
                pass
        messages = [c.args[0] for c in stderr.call_args_list]
        assert messages[0] == "LogicModule Sync MCP Server starting..."
        assert messages[-1] == "LogicModule Sync MCP Server shutting down."

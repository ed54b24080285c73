"""Tests for mcp/server.py: ping, global accessors and CLI parsing."""

import mcp.types as types
import pytest

from lm_module_sync import __version__
from lm_module_sync.mcp import server as server_mod
from lm_module_sync.mcp.server import (
    PING_SPEC,
    build_overrides,
    build_parser,
    get_context,
    get_registry,
    handle_call_tool,
    set_context,
    set_registry,
)
from lm_module_sync.mcp.tools import ALL_SPECS, ToolContext, ToolRegistry
from lm_module_sync.sync.handles import DirectoryHandleStore


@pytest.fixture
def ctx(engine, tmp_path):
    return ToolContext(engine=engine, handles=DirectoryHandleStore(tmp_path / ".state"))


@pytest.fixture
def installed(ctx):
    set_context(ctx)
    set_registry(ToolRegistry([PING_SPEC] + ALL_SPECS))
    yield ctx
    set_context(None)
    set_registry(None)


class TestPing:
    async def test_reports_portal_and_views(self, ctx, binding):
        await ctx.engine.open_view(binding)
        result = await PING_SPEC.handler(ctx, {})
        assert result.structuredContent == {
            "version": __version__,
            "portal_id": "p1",
            "open_views": 1,
        }
        assert "Active portal: acme.logicmonitor.com" in result.content[0].text

    async def test_no_store_access(self, ctx, store):
        await PING_SPEC.handler(ctx, {})
        assert store.fetch_count == 0


class TestAccessors:
    def test_context_not_initialized(self):
        server_mod.set_context(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_context()

    def test_registry_not_initialized(self):
        server_mod.set_registry(None)
        with pytest.raises(RuntimeError):
            get_registry()


class TestHandleCallTool:
    async def test_dispatches(self, installed):
        result = await handle_call_tool("ping", {})
        assert not result.isError

    async def test_unknown_tool(self, installed):
        result = await handle_call_tool("wiki_get", {})
        assert isinstance(result, types.CallToolResult)
        assert result.isError
        assert "Error (unknown_tool)" in result.content[0].text


class TestCli:
    def test_only_given_flags_collected(self):
        args = build_parser().parse_args(
            ["--hostname", "acme.logicmonitor.com", "--debug"]
        )
        overrides = build_overrides(args)
        assert overrides == {
            "hostname": "acme.logicmonitor.com",
            "debug": True,
            "log_file": "/tmp/lm-module-sync.log",
        }

    def test_all_flags(self):
        args = build_parser().parse_args(
            [
                "--hostname",
                "acme.logicmonitor.com",
                "--token",
                "t",
                "--portal-id",
                "prod",
                "--insecure",
                "--log-file",
                "/var/log/sync.log",
                "--permissions-file",
                "view.permissions",
            ]
        )
        overrides = build_overrides(args)
        assert overrides["portal_id"] == "prod"
        assert overrides["insecure"] is True
        assert overrides["log_file"] == "/var/log/sync.log"
        assert overrides["permissions_file"] == "view.permissions"

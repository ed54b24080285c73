"""MCP Server for LogicModule synchronization using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents open LogicModules, edit their metadata drafts, detect portal
conflicts and keep exported module directories in sync.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import setup_logging
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolContext,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("lm-module-sync")

# Initialized in main() from the lifespan
_context: ToolContext | None = None

_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- report the active portal and open views."""
    connections = ctx.engine.connections
    selected = connections.selected_portal_id
    portal = connections.get(selected) if selected else None
    views = ctx.engine.views
    text = (
        f"LogicModule Sync server {__version__}. "
        f"Active portal: {portal.hostname if portal else '(none)'}. "
        f"Open views: {len(views)}."
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "version": __version__,
            "portal_id": selected,
            "open_views": len(views),
        },
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Report server version, active portal and open view count",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ToolContext:
    """Get the global ToolContext.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "ToolContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ToolContext | None) -> None:
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """Return all registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    portal connection via the lifespan manager, and serves JSON-RPC over
    stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (hostname, token, portal_id, insecure, log_file, permissions_file)
    """
    log_file = (
        config_overrides.get("log_file") if config_overrides else None
    )

    debug = bool(config_overrides and config_overrides.get("debug"))
    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", debug=debug, log_file=log_file)

    permissions_file = (
        config_overrides.get("permissions_file")
        if config_overrides
        else None
    )
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )

    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_context() is called here rather than inside the lifespan so that
    # running as ``python -m lm_module_sync.mcp.server`` updates this
    # module's globals and not a second imported copy.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_context(ToolContext(engine=ctx["engine"], handles=ctx["handles"]))
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="lm-module-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def build_overrides(args: argparse.Namespace) -> dict:
    """Collect the CLI flags that were actually given."""
    config_overrides = {}
    if args.hostname:
        config_overrides["hostname"] = args.hostname
    if args.token:
        config_overrides["token"] = args.token
    if args.portal_id:
        config_overrides["portal_id"] = args.portal_id
    if args.insecure:
        config_overrides["insecure"] = True
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file
    return config_overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="LogicModule Sync - MCP server for editing LogicMonitor modules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or config.yml)
  lm-module-sync

  # Override the portal
  lm-module-sync --hostname acme.logicmonitor.com

  # Inspect-only tool set
  lm-module-sync --permissions-file /etc/lm-module-sync/view.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--hostname",
        help="Portal hostname (takes precedence over LM_PORTAL_HOSTNAME and config files)",
    )
    parser.add_argument(
        "--token",
        help="API bearer token (visible in process list -- prefer LM_BEARER_TOKEN)",
    )
    parser.add_argument(
        "--portal-id",
        help="Identifier recorded in module bindings (default: the hostname)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/lm-module-sync.log",
        help="Log file path (default: /tmp/lm-module-sync.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "One of MODULE_VIEW, MODULE_EDIT, DIRECTORY_WRITE per line, # for comments. "
        "If not specified, all tools are available.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"lm-module-sync version {__version__}",
    )
    return parser


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()
    config_overrides = build_overrides(args)

    if config_overrides:
        override_keys = [k for k in config_overrides if k != "token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Already reported on stderr by the lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()

"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import PortalClient
from ..sync.binding import PortalConnections
from ..sync.engine import ModuleSyncEngine
from ..sync.handles import DirectoryHandleStore
from ..sync.models import PortalConnection

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create PortalClient and validate the bearer token
    - Register the portal as the selected connection and build the engine

    Args:
        config_overrides: Optional dict with config values from CLI
            (hostname, token, portal_id, insecure, debug)

    Yields:
        Dict with 'engine' (ModuleSyncEngine) and 'handles'
        (DirectoryHandleStore)

    Raises:
        RuntimeError: If configuration is invalid or the portal is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("LogicModule Sync MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can see its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            raw = load_hierarchical_config()
            unified = build_config(raw)
            yaml_fallbacks = {
                k: v
                for k, v in unified.portal.model_dump().items()
                if v is not None
            }
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            hostname=overrides.get("hostname"),
            token=overrides.get("token"),
            portal_id=overrides.get("portal_id"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info(
            "Portal: %s (id %s)", config.portal_hostname, config.portal_id
        )
        _stderr_print(f"  Portal: {config.portal_hostname}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure LM_PORTAL_HOSTNAME and LM_BEARER_TOKEN are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure LM_PORTAL_HOSTNAME and LM_BEARER_TOKEN are set."
        ) from e

    logger.info("Validating portal connection...")
    _stderr_print("  Validating portal connection...")
    try:
        client = PortalClient(config)
        hostname = await run_sync(client.validate_connection)
        logger.info("Connected to portal %s", hostname)
        _stderr_print(f"  Connected to {hostname}")
    except Exception as e:
        logger.error("Failed to connect to portal: %s", e)
        _stderr_print("ERROR: Portal connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check LM_PORTAL_HOSTNAME and LM_BEARER_TOKEN.")
        raise RuntimeError(
            f"Portal connection failed: {e}. Check LM_PORTAL_HOSTNAME and LM_BEARER_TOKEN."
        ) from e

    init_semaphore(config.max_parallel_requests)
    _stderr_print(f"  Parallel requests: {config.max_parallel_requests}")

    connections = PortalConnections(
        [PortalConnection(id=config.portal_id, hostname=config.portal_hostname)],
        selected_portal_id=config.portal_id,
    )
    engine = ModuleSyncEngine(client, connections)
    handles = DirectoryHandleStore(Path(config.state_dir))
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"engine": engine, "handles": handles}

    logger.info("MCP server shutting down")
    _stderr_print("LogicModule Sync MCP Server shutting down.")

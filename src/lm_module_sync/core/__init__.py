"""Portal client and async helpers shared between the engine and MCP server."""

from .async_utils import run_sync
from .client import PortalClient

__all__ = ["PortalClient", "run_sync"]

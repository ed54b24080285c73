"""MCP tool handlers for module sync operations.

Wraps the ``ModuleSyncEngine`` with async handlers and structured error
responses.
"""

from .directory import DIRECTORY_SPECS, DIRECTORY_TOOLS
from .errors import build_error_response, engine_error_response
from .modules import MODULE_SPECS, MODULE_TOOLS
from .registry import ToolContext, ToolRegistry, ToolSpec, load_permissions_file

ALL_SPECS: list[ToolSpec] = MODULE_SPECS + DIRECTORY_SPECS

__all__ = [
    "build_error_response",
    "engine_error_response",
    "ToolContext",
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    "ALL_SPECS",
    "MODULE_SPECS",
    "MODULE_TOOLS",
    "DIRECTORY_SPECS",
    "DIRECTORY_TOOLS",
]

"""Error response builders for MCP tool handlers.

Every failure reaches the agent as ``Error (<kind>): <message>`` followed
by a corrective action it can take without human help.
"""

import mcp.types as types

from ...sync.errors import EngineError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (remote_unreachable, permission_denied,
            binding_mismatch, config_corrupt, not_found, validation_error,
            server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "No open view 'abc'", "Open the module with module_open first.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


_TOOL_HINTS: dict[str, str] = {
    "not_found": "Open the module with module_open, or pass an existing directory.",
    "binding_mismatch": "Use module_binding_status to see which portal the module needs.",
    "config_corrupt": "Use module_dir_status to see which script files still exist.",
}


def engine_error_response(error: EngineError | None) -> types.CallToolResult:
    """Translate an engine failure into a tool error response.

    The engine's corrective action comes first; a tool-level hint naming
    the next tool to call is appended where one applies.
    """
    if error is None:
        return build_error_response(
            "server_error",
            "Operation failed without details",
            "Retry the operation.",
        )
    action = error.corrective_action
    hint = _TOOL_HINTS.get(error.kind.value)
    if hint:
        action = f"{action} {hint}"
    return build_error_response(error.kind.value, error.message, action)

"""MCP tool handlers for module directories.

A directory argument is either a remembered directory id (see
``module_dir_export``) or an absolute path.

Tools:

- ``module_dir_status`` -- present / modified / missing per script.
- ``module_dir_reexport`` -- overwrite one script with portal content.
- ``module_dir_persist`` -- save dirty metadata fields into module.json.
- ``module_dir_export`` -- first export of an open module into a directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

import mcp.types as types

from ...sync.directory import DirectoryHandle
from ...sync.errors import NotFoundError
from ...sync.models import ScriptRole
from .errors import engine_error_response
from .registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

_DIRECTORY = {
    "type": "string",
    "description": "Remembered directory id or absolute directory path",
}

DIRECTORY_TOOLS: list[types.Tool] = [
    types.Tool(
        name="module_dir_status",
        description=(
            "Show which script files in a module directory are unchanged, "
            "modified outside the editor, or missing."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"directory": _DIRECTORY},
            "required": ["directory"],
        },
    ),
    types.Tool(
        name="module_dir_reexport",
        description=(
            "Overwrite a script file with the current portal content. "
            "Local changes to that file are lost."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "directory": _DIRECTORY,
                "role": {
                    "type": "string",
                    "enum": [r.value for r in ScriptRole],
                    "description": "'collection' or 'ad' (active discovery)",
                },
            },
            "required": ["directory", "role"],
        },
    ),
    types.Tool(
        name="module_dir_persist",
        description=(
            "Save the view's dirty metadata fields into module.json "
            "(localDraft). The portal baseline is kept unchanged."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "directory": _DIRECTORY,
                "view_id": {"type": "string"},
            },
            "required": ["directory", "view_id"],
        },
    ),
    types.Tool(
        name="module_dir_export",
        description=(
            "Export the view's module into a directory: script files plus a "
            "new module.json. Returns an id for later directory tools."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "directory": {
                    "type": "string",
                    "description": "Absolute path of an existing directory",
                },
                "view_id": {"type": "string"},
                "roles": {
                    "type": "array",
                    "items": {
                        "type": "string",
                        "enum": [r.value for r in ScriptRole],
                    },
                },
                "overwrite": {
                    "type": "boolean",
                    "default": False,
                    "description": (
                        "Discard edits already persisted in module.json "
                        "instead of carrying them forward"
                    ),
                },
            },
            "required": ["directory", "view_id"],
        },
    ),
]


def resolve_directory(ctx: ToolContext, value: str | None) -> DirectoryHandle:
    """Return a handle for a remembered id or an absolute path.

    Raises:
        ValueError: If *value* is empty or a relative path.
        NotFoundError: If the directory does not exist.
    """
    if not value:
        raise ValueError("directory is required")
    path = Path(value)
    if not path.is_absolute():
        return ctx.handles.resolve(value)
    if not path.is_dir():
        raise NotFoundError(
            f"Directory not found: {value}", directory_name=path.name
        )
    return DirectoryHandle(path)


async def _handle_status(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_dir_status."""
    handle = resolve_directory(ctx, args.get("directory"))
    result = await ctx.engine.directories.scan_directory(handle)
    if not result.success and result.value is None:
        return engine_error_response(result.error)

    status = result.value
    lines = [f"Directory: {status.directory_name}"]
    if status.binding is not None:
        lines.append(
            f"Module: {status.binding.module_name} "
            f"({status.binding.identity.key})"
        )
    for script in status.scripts:
        lines.append(
            f"  {script.role}: {script.file_name} [{script.state.value}]"
        )
    if result.error is not None:
        lines.append("")
        lines.append(
            f"Warning ({result.error.kind.value}): {result.error.message}"
        )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=status.model_dump(mode="json"),
        isError=not result.success,
    )


async def _handle_reexport(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_dir_reexport."""
    handle = resolve_directory(ctx, args.get("directory"))
    role = ScriptRole(args.get("role"))
    result = await ctx.engine.directories.re_export_script(handle, role)
    if not result.success:
        return engine_error_response(result.error)
    descriptor = result.value
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Re-exported {role.value} script to {descriptor.file_name}",
            )
        ],
        structuredContent=descriptor.model_dump(by_alias=True),
    )


async def _handle_persist(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_dir_persist."""
    handle = resolve_directory(ctx, args.get("directory"))
    view = ctx.engine.get_view(args.get("view_id") or "")
    if view.binding is None:
        raise ValueError("Local copies have no module details to persist")
    identity = view.binding.identity
    result = await ctx.engine.directories.persist_details(handle, identity)
    if not result.success:
        return engine_error_response(result.error)
    if result.value is None:
        return types.CallToolResult(
            content=[
                types.TextContent(type="text", text="Nothing to persist.")
            ],
            structuredContent={"persisted_fields": []},
        )
    fields = sorted(ctx.engine.drafts.get(identity).dirty_fields)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Persisted {', '.join(fields)} to {handle.name}/module.json",
            )
        ],
        structuredContent={"persisted_fields": fields},
    )


async def _handle_export(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_dir_export."""
    directory = args.get("directory") or ""
    if not Path(directory).is_absolute():
        raise ValueError(f"Path must be absolute: {directory}")
    handle = resolve_directory(ctx, directory)
    view = ctx.engine.get_view(args.get("view_id") or "")
    if view.binding is None:
        raise ValueError("Local copies cannot be exported as modules")

    result = await ctx.engine.directories.export_module(
        handle,
        view.binding,
        args.get("roles"),
        overwrite=bool(args.get("overwrite", False)),
    )
    if not result.success:
        return engine_error_response(result.error)

    directory_id = ctx.handles.add(handle.path)
    files = [d.file_name for d in result.value.scripts.values()]
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=(
                    f"Exported to {handle.path} (id {directory_id}): "
                    f"{', '.join(files + ['module.json'])}"
                ),
            )
        ],
        structuredContent={"directory_id": directory_id, "files": files},
    )


DIRECTORY_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=DIRECTORY_TOOLS[0],
        permissions=frozenset({"MODULE_VIEW"}),
        handler=_handle_status,
    ),
    ToolSpec(
        tool=DIRECTORY_TOOLS[1],
        permissions=frozenset({"DIRECTORY_WRITE"}),
        handler=_handle_reexport,
    ),
    ToolSpec(
        tool=DIRECTORY_TOOLS[2],
        permissions=frozenset({"DIRECTORY_WRITE"}),
        handler=_handle_persist,
    ),
    ToolSpec(
        tool=DIRECTORY_TOOLS[3],
        permissions=frozenset({"DIRECTORY_WRITE"}),
        handler=_handle_export,
    ),
]

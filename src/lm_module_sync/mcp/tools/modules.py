"""MCP tool handlers for module views, drafts and conflicts.

Tools:

- ``module_open`` / ``module_close`` -- open and close a view of a module.
- ``module_update_field`` / ``module_reset`` -- edit or discard the draft.
- ``module_check_conflict`` / ``module_resolve_conflict`` -- compare with
  the portal and keep local edits or adopt the portal version.
- ``module_binding_status`` -- whether the view can currently be edited.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...sync.errors import ModuleSyncError
from ...sync.fields import MANAGED_FIELDS
from ...sync.models import (
    ModuleBinding,
    ModuleDetailsDraft,
    ModuleIdentity,
    Resolution,
)
from ...sync.remote import MODULE_TYPES
from .errors import build_error_response, engine_error_response
from .registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

_VIEW_ID = {
    "type": "string",
    "description": "View id returned by module_open",
}

MODULE_TOOLS: list[types.Tool] = [
    types.Tool(
        name="module_open",
        description=(
            "Open a view of a LogicModule and load its editable details. "
            "Views of the same module share one draft."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "module_type": {
                    "type": "string",
                    "enum": list(MODULE_TYPES),
                },
                "module_id": {"type": "integer", "minimum": 1},
                "portal_id": {
                    "type": "string",
                    "description": "Portal the module lives in (default: active portal)",
                },
                "module_name": {"type": "string"},
            },
            "required": ["module_type", "module_id"],
        },
    ),
    types.Tool(
        name="module_close",
        description="Close a view. The draft is dropped when its last view closes.",
        inputSchema={
            "type": "object",
            "properties": {"view_id": _VIEW_ID},
            "required": ["view_id"],
        },
    ),
    types.Tool(
        name="module_update_field",
        description=(
            "Set one managed field in the module draft and report which "
            f"fields are dirty. Fields: {', '.join(MANAGED_FIELDS)}."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "view_id": _VIEW_ID,
                "field": {"type": "string", "enum": list(MANAGED_FIELDS)},
                "value": {"description": "New value (any JSON type)"},
            },
            "required": ["view_id", "field", "value"],
        },
    ),
    types.Tool(
        name="module_reset",
        description="Discard all local edits; the draft returns to the portal baseline.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"view_id": _VIEW_ID},
            "required": ["view_id"],
        },
    ),
    types.Tool(
        name="module_check_conflict",
        description=(
            "Check whether the module changed in the portal since it was "
            "loaded and list the managed fields that changed."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {"view_id": _VIEW_ID},
            "required": ["view_id"],
        },
    ),
    types.Tool(
        name="module_resolve_conflict",
        description=(
            "Resolve a conflict: 'keep-local' keeps your edits, 'use-portal' "
            "reloads the module and DISCARDS unsaved edits."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "view_id": _VIEW_ID,
                "resolution": {
                    "type": "string",
                    "enum": [r.value for r in Resolution],
                },
            },
            "required": ["view_id", "resolution"],
        },
    ),
    types.Tool(
        name="module_binding_status",
        description="Report whether a view's portal is connected and active.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"view_id": _VIEW_ID},
            "required": ["view_id"],
        },
    ),
]


def draft_payload(draft: ModuleDetailsDraft) -> dict[str, Any]:
    return {
        "module": draft.identity.key,
        "version": draft.version,
        "loaded_at": draft.loaded_at,
        "dirty_fields": sorted(draft.dirty_fields),
        "draft": draft.draft,
    }


def _draft_result(
    draft: ModuleDetailsDraft, header: str, **extra: Any
) -> types.CallToolResult:
    dirty = sorted(draft.dirty_fields)
    lines = [
        header,
        f"Module: {draft.identity.key} (version {draft.version})",
        f"Dirty fields: {', '.join(dirty) if dirty else '(none)'}",
    ]
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={**extra, **draft_payload(draft)},
    )


def _require(args: dict, key: str) -> Any:
    value = args.get(key)
    if value is None or value == "":
        raise ValueError(f"{key} is required")
    return value


async def _handle_open(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_open."""
    engine = ctx.engine
    module_type = _require(args, "module_type")
    if module_type not in MODULE_TYPES:
        raise ValueError(
            f"Unknown module type '{module_type}'. "
            f"Expected one of: {', '.join(MODULE_TYPES)}"
        )
    module_id = int(_require(args, "module_id"))
    portal_id = args.get("portal_id") or engine.connections.selected_portal_id
    if not portal_id:
        return build_error_response(
            "binding_mismatch",
            "No active portal is selected",
            "Pass portal_id explicitly.",
        )
    portal = engine.connections.get(portal_id)

    module_name = args.get("module_name")
    lineage_id = None
    if not module_name and portal_id == engine.connections.selected_portal_id:
        # Name and lineage come from the record itself
        identity = ModuleIdentity(
            portal_id=portal_id, module_type=module_type, module_id=module_id
        )
        try:
            record = await engine.drafts.fetch_record(identity)
        except ModuleSyncError as e:
            return engine_error_response(e.to_error())
        module_name = record.get("name")
        lineage = record.get("lineageId")
        lineage_id = str(lineage) if lineage else None

    binding = ModuleBinding(
        portal_id=portal_id,
        portal_hostname=portal.hostname if portal else portal_id,
        module_id=module_id,
        module_type=module_type,
        module_name=module_name or f"{module_type}:{module_id}",
        lineage_id=lineage_id,
    )

    view, result = await engine.open_view(binding)
    if not result.success:
        engine.close_view(view.view_id)
        return engine_error_response(result.error)
    header = f"Opened view {view.view_id}" + (
        " (read-only)" if view.read_only else ""
    )
    return _draft_result(
        result.value,
        header,
        view_id=view.view_id,
        read_only=view.read_only,
    )


async def _handle_close(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_close."""
    view_id = _require(args, "view_id")
    if not ctx.engine.close_view(view_id):
        return build_error_response(
            "not_found",
            f"No open view '{view_id}'",
            "Nothing to close.",
        )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=f"Closed view {view_id}")],
        structuredContent={"view_id": view_id, "closed": True},
    )


async def _handle_update_field(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_update_field."""
    view_id = _require(args, "view_id")
    field_name = _require(args, "field")
    if "value" not in args:
        raise ValueError("value is required")
    result = ctx.engine.update_field(view_id, field_name, args["value"])
    if not result.success:
        return engine_error_response(result.error)
    return _draft_result(result.value, f"Updated {field_name}")


async def _handle_reset(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_reset."""
    result = ctx.engine.reset_draft(_require(args, "view_id"))
    if not result.success:
        return engine_error_response(result.error)
    return _draft_result(result.value, "Draft reset to portal baseline")


async def _handle_check_conflict(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_check_conflict."""
    result = await ctx.engine.check_for_conflict(_require(args, "view_id"))
    if not result.success:
        return engine_error_response(result.error)

    state = result.value
    if state.has_conflict:
        text = (
            f"Conflict: portal is at version {state.portal_version}; "
            f"changed fields: {', '.join(state.conflicting_fields)}.\n"
            "Resolve with module_resolve_conflict (keep-local or use-portal)."
        )
    elif state.remote_changed:
        text = (
            f"No conflict. Portal moved to version {state.portal_version} "
            "but no managed field changed."
        )
    else:
        text = f"No conflict. Portal is still at version {state.portal_version}."
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=state.model_dump(),
    )


async def _handle_resolve_conflict(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_resolve_conflict."""
    view_id = _require(args, "view_id")
    resolution = Resolution(_require(args, "resolution"))
    result = await ctx.engine.resolve_conflict(view_id, resolution)
    if not result.success:
        return engine_error_response(result.error)
    if result.value is None:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text="Conflict cleared.")],
            structuredContent={"resolution": resolution.value},
        )
    return _draft_result(
        result.value,
        f"Conflict resolved ({resolution.value})",
        resolution=resolution.value,
    )


async def _handle_binding_status(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle module_binding_status."""
    status = ctx.engine.binding_status(_require(args, "view_id"))
    if status.is_active:
        text = f"Active on portal {status.portal_hostname or status.portal_id}."
    else:
        text = f"Read-only: {status.reason}"
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=status.model_dump(),
    )


MODULE_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=MODULE_TOOLS[0],
        permissions=frozenset({"MODULE_VIEW"}),
        handler=_handle_open,
    ),
    ToolSpec(
        tool=MODULE_TOOLS[1],
        permissions=frozenset(),
        handler=_handle_close,
    ),
    ToolSpec(
        tool=MODULE_TOOLS[2],
        permissions=frozenset({"MODULE_EDIT"}),
        handler=_handle_update_field,
    ),
    ToolSpec(
        tool=MODULE_TOOLS[3],
        permissions=frozenset({"MODULE_EDIT"}),
        handler=_handle_reset,
    ),
    ToolSpec(
        tool=MODULE_TOOLS[4],
        permissions=frozenset({"MODULE_VIEW"}),
        handler=_handle_check_conflict,
    ),
    ToolSpec(
        tool=MODULE_TOOLS[5],
        permissions=frozenset({"MODULE_EDIT"}),
        handler=_handle_resolve_conflict,
    ),
    ToolSpec(
        tool=MODULE_TOOLS[6],
        permissions=frozenset(),
        handler=_handle_binding_status,
    ),
]

"""Facade wiring the sync components around open views.

``ModuleSyncEngine`` owns the event bus, the draft table, the conflict
detector, the directory coordinator and the set of open views. Opening a
view runs the binding guard, attaches the view to the module's shared
draft, clears stale conflict state and loads the details; closing the last
view of a module drops its draft.
"""

from __future__ import annotations

import logging
from typing import Any

from .binding import (
    ModuleView,
    PortalConnections,
    apply_binding_guard,
    convert_to_local_copy,
    switch_to_bound_portal,
)
from .conflicts import ConflictDetector
from .coordinator import DirectorySyncCoordinator
from .directory import DirectoryHandle
from .drafts import DraftManager
from .errors import BindingMismatchError, NotFoundError
from .events import EngineEvent, EventBus, EventKind
from .fields import DEFAULT_FIELDS, FieldRegistry
from .models import (
    BindingStatus,
    ConflictState,
    ExecutionContext,
    ModuleBinding,
    ModuleDetailsDraft,
    ModuleDirectoryConfig,
    OperationResult,
    Resolution,
)
from .remote import RemoteStore

logger = logging.getLogger(__name__)


class ModuleSyncEngine:
    """Entry point for the UI (or MCP) layer.

    Args:
        remote: Source of authoritative module records.
        connections: Portal connections; a fresh empty set when omitted.
        fields: Managed fields and their comparison rules.

    Example::

        engine = ModuleSyncEngine(client, connections)
        view, loaded = await engine.open_view(binding)
        engine.update_field(view.view_id, "displayName", "CPU (new)")
        state = await engine.check_for_conflict(view.view_id)
    """

    def __init__(
        self,
        remote: RemoteStore,
        connections: PortalConnections | None = None,
        fields: FieldRegistry = DEFAULT_FIELDS,
    ) -> None:
        self.events = EventBus()
        self.connections = connections or PortalConnections()
        self.drafts = DraftManager(remote, fields)
        self.conflicts = ConflictDetector(self.drafts, self.events)
        self.directories = DirectorySyncCoordinator(
            remote, self.drafts, self.connections, self.events
        )
        self._views: dict[str, ModuleView] = {}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_view(self, view_id: str) -> ModuleView:
        """Return the open view *view_id*.

        Raises:
            NotFoundError: If no such view is open.
        """
        try:
            return self._views[view_id]
        except KeyError:
            raise NotFoundError(f"No open view '{view_id}'") from None

    @property
    def views(self) -> list[ModuleView]:
        return list(self._views.values())

    def _guard(self, view: ModuleView) -> BindingStatus:
        status = apply_binding_guard(view, self.connections)
        if view.read_only:
            self.events.emit(
                EngineEvent(
                    kind=EventKind.BINDING_INACTIVE,
                    module_key=(
                        view.binding.identity.key if view.binding else None
                    ),
                    payload={"view_id": view.view_id, **status.model_dump()},
                )
            )
        return status

    async def open_view(
        self,
        binding: ModuleBinding,
        content: str = "",
        context_override: ExecutionContext | None = None,
    ) -> tuple[ModuleView, OperationResult[ModuleDetailsDraft]]:
        """Open a view of *binding* and load its shared details.

        A view whose binding is inactive still opens, read-only. Its
        details come from a draft another view already loaded; otherwise
        the load fails with a binding mismatch naming the portal.
        """
        view = ModuleView(
            binding=binding, content=content, context_override=context_override
        )
        self._views[view.view_id] = view
        identity = binding.identity
        self.drafts.attach(identity)
        self.conflicts.clear(identity)

        status = self._guard(view)
        if not status.is_active and self.drafts.get(identity) is None:
            label = binding.portal_hostname or binding.portal_id
            return view, OperationResult.fail(
                BindingMismatchError(
                    status.reason or "Portal is not active for this view",
                    required_portal=label,
                )
            )

        result = await self.drafts.load_details(identity)
        logger.debug(
            "Opened view %s for %s (shared by %d)",
            view.view_id,
            identity.key,
            self.drafts.ref_count(identity),
        )
        return view, result

    async def open_directory(
        self, handle: DirectoryHandle
    ) -> tuple[ModuleView | None, OperationResult[ModuleDetailsDraft]]:
        """Open a view for a module directory, restoring persisted edits.

        Saved ``localDraft`` values are seeded before the view attaches, so
        they show up as dirty fields instead of being replaced by a fresh
        portal load.
        """
        loaded = await self.directories.load_config(handle)
        if not loaded.success:
            return None, OperationResult(success=False, error=loaded.error)
        config: ModuleDirectoryConfig = loaded.value

        restored = await self.directories.restore_details(handle)
        if not restored.success:
            logger.debug(
                "No saved details in %s: %s",
                handle.name,
                restored.error.message if restored.error else "",
            )
        return await self.open_view(config.portal_binding)

    def close_view(self, view_id: str) -> bool:
        """Close *view_id*; returns False if it was not open."""
        view = self._views.pop(view_id, None)
        if view is None:
            return False
        if view.binding is not None:
            identity = view.binding.identity
            if self.drafts.detach(identity) == 0:
                self.conflicts.clear(identity)
        return True

    def binding_status(self, view_id: str) -> BindingStatus:
        return self._guard(self.get_view(view_id))

    def refresh_guards(self) -> dict[str, BindingStatus]:
        """Re-run the guard on every view, e.g. after a portal change."""
        return {view.view_id: self._guard(view) for view in self.views}

    def switch_to_bound_portal(
        self, view_id: str
    ) -> OperationResult[BindingStatus]:
        """Select the view's portal and restore its execution context."""
        try:
            view = self.get_view(view_id)
            switch_to_bound_portal(view, self.connections)
        except NotFoundError as e:
            return OperationResult.fail(e)
        self.refresh_guards()
        return OperationResult.ok(self.binding_status(view_id))

    def convert_to_local_copy(self, view_id: str) -> ModuleView:
        """Replace a view with an unbound local copy of its content.

        Raises:
            NotFoundError: If no such view is open.
        """
        view = self.get_view(view_id)
        copy_view = convert_to_local_copy(view)
        self.close_view(view_id)
        self._views[copy_view.view_id] = copy_view
        logger.info("View %s converted to local copy %s", view_id, copy_view.view_id)
        return copy_view

    # ------------------------------------------------------------------
    # Per-view operations
    # ------------------------------------------------------------------

    def _bound_view(self, view_id: str) -> ModuleView:
        view = self.get_view(view_id)
        if view.binding is None:
            raise NotFoundError(f"View '{view_id}' is a local copy")
        return view

    def update_field(
        self, view_id: str, field_name: str, value: Any
    ) -> OperationResult[ModuleDetailsDraft]:
        """Edit a field through a view; the guard runs before every edit.

        Raises:
            ValueError: If *field_name* is not a managed field.
        """
        try:
            view = self._bound_view(view_id)
        except NotFoundError as e:
            return OperationResult.fail(e)
        status = self._guard(view)
        if not status.is_active:
            return OperationResult.fail(
                BindingMismatchError(
                    status.reason or "Portal is not active for this view",
                    required_portal=view.binding.portal_hostname
                    or view.binding.portal_id,
                )
            )
        return self.drafts.update_field(
            view.binding.identity, field_name, value
        )

    def reset_draft(self, view_id: str) -> OperationResult[ModuleDetailsDraft]:
        try:
            view = self._bound_view(view_id)
        except NotFoundError as e:
            return OperationResult.fail(e)
        return self.drafts.reset_draft(view.binding.identity)

    async def check_for_conflict(
        self, view_id: str
    ) -> OperationResult[ConflictState]:
        try:
            view = self._bound_view(view_id)
        except NotFoundError as e:
            return OperationResult.fail(e)
        return await self.conflicts.check_for_conflict(view.binding.identity)

    async def resolve_conflict(
        self, view_id: str, resolution: Resolution | str
    ) -> OperationResult[ModuleDetailsDraft]:
        try:
            view = self._bound_view(view_id)
        except NotFoundError as e:
            return OperationResult.fail(e)
        return await self.conflicts.resolve_conflict(
            view.binding.identity, resolution
        )

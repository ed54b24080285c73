"""Portal binding guard for module views.

A view bound to a module may only be edited while its portal is connected,
selected and active. ``resolve_binding`` reports why a binding is
inactive; ``apply_binding_guard`` turns that into a read-only flag on the
view. The two ways out are switching to the bound portal
(``switch_to_bound_portal``) or giving up the binding for good
(``convert_to_local_copy``).

The guard never touches draft data.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from .errors import NotFoundError
from .models import (
    BindingStatus,
    ExecutionContext,
    ModuleBinding,
    PortalConnection,
)

logger = logging.getLogger(__name__)


class PortalConnections:
    """Registered portals, the selected one, and its execution context."""

    def __init__(
        self,
        portals: list[PortalConnection] | None = None,
        selected_portal_id: str | None = None,
    ) -> None:
        self._portals: dict[str, PortalConnection] = {
            p.id: p for p in portals or []
        }
        self._selected: str | None = None
        self.context: ExecutionContext | None = None
        if selected_portal_id is not None:
            self.select(selected_portal_id)

    def register(self, portal: PortalConnection) -> None:
        """Add or replace *portal* (e.g. to record a status change)."""
        self._portals[portal.id] = portal

    def unregister(self, portal_id: str) -> None:
        self._portals.pop(portal_id, None)
        if self._selected == portal_id:
            self._selected = None
            self.context = None

    def get(self, portal_id: str) -> PortalConnection | None:
        return self._portals.get(portal_id)

    def list(self) -> list[PortalConnection]:
        return list(self._portals.values())

    @property
    def selected_portal_id(self) -> str | None:
        return self._selected

    def select(
        self, portal_id: str, context: ExecutionContext | None = None
    ) -> None:
        """Make *portal_id* the active portal.

        Selecting a different portal drops the execution context unless a
        new one is given.

        Raises:
            NotFoundError: If the portal is not registered.
        """
        if portal_id not in self._portals:
            raise NotFoundError(f"Portal '{portal_id}' is not connected")
        if portal_id != self._selected:
            self.context = None
        self._selected = portal_id
        if context is not None:
            self.context = context


@dataclass
class ModuleView:
    """An open editing surface, bound to a module or to a local file.

    Attributes:
        binding: Remote record the view edits; ``None`` for a local copy.
        content: Current script text held by the view.
        context_override: Collector/host the view executes against.
        read_only: Set by the binding guard.
    """

    binding: ModuleBinding | None
    content: str = ""
    context_override: ExecutionContext | None = None
    read_only: bool = False
    view_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_local_copy(self) -> bool:
        return self.binding is None


def resolve_binding(
    binding: ModuleBinding | None, connections: PortalConnections
) -> BindingStatus:
    """Decide whether *binding* can be edited against *connections*."""
    if binding is None or not binding.portal_id:
        return BindingStatus(
            is_bound=False,
            is_active=False,
            portal_hostname=binding.portal_hostname if binding else None,
            reason="Portal binding is missing for this view.",
        )

    portal_id = binding.portal_id
    portal = connections.get(portal_id)
    if portal is None:
        label = binding.portal_hostname or portal_id
        return BindingStatus(
            is_bound=True,
            is_active=False,
            portal_id=portal_id,
            portal_hostname=binding.portal_hostname,
            reason=f"Portal '{label}' is not currently connected.",
        )

    label = portal.hostname or portal_id
    selected = connections.selected_portal_id
    if selected is None:
        reason = f"No active portal is selected. Select '{label}' to edit."
    elif selected != portal_id:
        reason = (
            f"The active portal does not match this view. "
            f"Switch to '{label}' to edit."
        )
    elif portal.status != "active":
        reason = f"The bound portal '{label}' is not active."
    else:
        return BindingStatus(
            is_bound=True,
            is_active=True,
            portal_id=portal_id,
            portal_hostname=portal.hostname,
        )

    return BindingStatus(
        is_bound=True,
        is_active=False,
        portal_id=portal_id,
        portal_hostname=portal.hostname,
        reason=reason,
    )


def apply_binding_guard(
    view: ModuleView, connections: PortalConnections
) -> BindingStatus:
    """Set ``view.read_only`` from the binding status and return it.

    Local copies are never locked.
    """
    if view.is_local_copy:
        view.read_only = False
        return BindingStatus(is_bound=False, is_active=False)

    status = resolve_binding(view.binding, connections)
    view.read_only = not status.is_active
    if view.read_only:
        logger.debug("View %s locked: %s", view.view_id, status.reason)
    return status


def switch_to_bound_portal(
    view: ModuleView, connections: PortalConnections
) -> BindingStatus:
    """Select the view's bound portal and restore its execution context.

    Raises:
        NotFoundError: If the view is unbound or its portal is not connected.
    """
    if view.binding is None:
        raise NotFoundError("This view has no portal binding")
    connections.select(view.binding.portal_id, view.context_override)
    return apply_binding_guard(view, connections)


def convert_to_local_copy(view: ModuleView) -> ModuleView:
    """Return a new unbound view holding *view*'s content.

    The copy keeps the execution context but can never sync to the portal.
    """
    return ModuleView(
        binding=None,
        content=view.content,
        context_override=view.context_override,
    )

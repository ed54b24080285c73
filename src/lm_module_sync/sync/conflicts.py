"""Remote version conflict detection.

A version bump alone is not a conflict. When the remote version differs
from the draft's, the draft's *baseline* (not the draft) is compared with
the freshly projected remote record, and only managed fields whose value
actually changed are reported. Remote changes confined to unmanaged
fields surface as ``remote_changed`` without a conflict.

Resolution is field-level replace-or-keep; nothing is merged.
"""

from __future__ import annotations

import logging

from .drafts import DraftManager
from .errors import ModuleSyncError, NotFoundError
from .events import EngineEvent, EventBus, EventKind
from .models import (
    ConflictState,
    ModuleDetailsDraft,
    ModuleIdentity,
    OperationResult,
    Resolution,
)

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Checks drafts against the remote store and tracks conflict state.

    Args:
        drafts: The shared draft table.
        events: Bus that receives ``conflict`` events, if any.
    """

    def __init__(
        self, drafts: DraftManager, events: EventBus | None = None
    ) -> None:
        self._drafts = drafts
        self._events = events
        self._states: dict[ModuleIdentity, ConflictState] = {}

    def get_state(self, identity: ModuleIdentity) -> ConflictState | None:
        return self._states.get(identity)

    def clear(self, identity: ModuleIdentity) -> None:
        self._states.pop(identity, None)

    async def check_for_conflict(
        self, identity: ModuleIdentity
    ) -> OperationResult[ConflictState]:
        """Re-fetch the remote record and report diverged managed fields.

        Never writes the draft, its baseline or its version. A failed fetch
        leaves the previous conflict state in place.
        """
        async with self._drafts.lock(identity):
            record = self._drafts.get(identity)
            if record is None:
                return OperationResult.fail(
                    NotFoundError(
                        f"No details loaded for module {identity.key}"
                    )
                )

            try:
                remote = await self._drafts.fetch_record(identity)
            except ModuleSyncError as e:
                logger.warning(
                    "Conflict check failed for %s: %s", identity.key, e
                )
                return OperationResult.fail(e)

            if self._drafts.get(identity) is not record:
                return OperationResult.fail(
                    NotFoundError(
                        f"Module {identity.key} was closed during the check"
                    )
                )

            remote_version = int(remote.get("version") or 0)
            if remote_version == record.version:
                self._states.pop(identity, None)
                return OperationResult.ok(
                    ConflictState(portal_version=remote_version)
                )

            fields = self._drafts.fields
            changed = fields.diff(record.original, fields.project(remote))
            state = ConflictState(
                has_conflict=bool(changed),
                portal_version=remote_version,
                conflicting_fields=changed,
                remote_changed=True,
            )
            self._states[identity] = state

        if state.has_conflict:
            logger.info(
                "Conflict on %s (v%d -> v%d): %s",
                identity.key,
                record.version,
                remote_version,
                ", ".join(changed),
            )
            if self._events is not None:
                self._events.emit(
                    EngineEvent(
                        kind=EventKind.CONFLICT,
                        module_key=identity.key,
                        payload=state.model_dump(),
                    )
                )
        else:
            logger.debug(
                "Remote %s moved to v%d without managed field changes",
                identity.key,
                remote_version,
            )
        return OperationResult.ok(state)

    async def resolve_conflict(
        self, identity: ModuleIdentity, resolution: Resolution | str
    ) -> OperationResult[ModuleDetailsDraft]:
        """Apply the user's choice.

        ``keep-local`` only clears the conflict. ``use-portal`` reloads the
        module, discarding unsaved edits, and clears the conflict only if
        the reload succeeded.

        Raises:
            ValueError: If *resolution* is not a known choice.
        """
        resolution = Resolution(resolution)
        if resolution == Resolution.KEEP_LOCAL:
            self.clear(identity)
            return OperationResult.ok(self._drafts.get(identity))

        result = await self._drafts.load_details(identity, force_refresh=True)
        if result.success:
            self.clear(identity)
            logger.info("Adopted portal version for %s", identity.key)
        return result

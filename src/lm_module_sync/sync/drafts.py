"""Shared per-module draft table.

One ``ModuleDetailsDraft`` exists per ``ModuleIdentity``, however many
views have that module open. Views hold the identity, never a private copy,
so an edit made through one view is visible to all of them. The table
counts attached views and drops the draft when the last one detaches.

Remote fetches for one identity are serialized with a per-identity
``asyncio.Lock``; ``ConflictDetector`` takes the same lock.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any

from ..core.async_utils import run_sync_limited
from .errors import ModuleSyncError, NotFoundError
from .fields import DEFAULT_FIELDS, FieldRegistry
from .models import FieldMap, ModuleDetailsDraft, ModuleIdentity, OperationResult
from .remote import RemoteStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DraftManager:
    """Owns baseline, draft and dirty set for every open module.

    Args:
        remote: Source of authoritative module records.
        fields: Managed fields and their comparison rules.
    """

    def __init__(
        self, remote: RemoteStore, fields: FieldRegistry = DEFAULT_FIELDS
    ) -> None:
        self._remote = remote
        self._fields = fields
        self._drafts: dict[ModuleIdentity, ModuleDetailsDraft] = {}
        self._refs: dict[ModuleIdentity, int] = {}
        self._locks: dict[ModuleIdentity, asyncio.Lock] = {}
        # Bumped each time the last view of a module closes
        self._closures: dict[ModuleIdentity, int] = {}

    @property
    def fields(self) -> FieldRegistry:
        return self._fields

    def lock(self, identity: ModuleIdentity) -> asyncio.Lock:
        return self._locks.setdefault(identity, asyncio.Lock())

    # ------------------------------------------------------------------
    # View references
    # ------------------------------------------------------------------

    def attach(self, identity: ModuleIdentity) -> int:
        """Record one more view of *identity*; returns the new count."""
        self._refs[identity] = self._refs.get(identity, 0) + 1
        return self._refs[identity]

    def detach(self, identity: ModuleIdentity) -> int:
        """Record a closed view; the draft is destroyed at zero.

        A load still fetching for the module will not reinstall it, and the
        lock is kept while held so later calls stay serialized.
        """
        remaining = self._refs.get(identity, 0) - 1
        if remaining > 0:
            self._refs[identity] = remaining
            return remaining

        self._refs.pop(identity, None)
        self._closures[identity] = self._closures.get(identity, 0) + 1
        lock = self._locks.get(identity)
        if lock is not None and not lock.locked():
            del self._locks[identity]
        if self._drafts.pop(identity, None) is not None:
            logger.debug("Dropped draft for %s", identity.key)
        return 0

    def ref_count(self, identity: ModuleIdentity) -> int:
        return self._refs.get(identity, 0)

    def get(self, identity: ModuleIdentity) -> ModuleDetailsDraft | None:
        return self._drafts.get(identity)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def fetch_record(self, identity: ModuleIdentity) -> dict[str, Any]:
        """Fetch the remote record for *identity* off the event loop.

        Raises:
            RemoteUnreachableError: If the fetch fails.
        """
        return await run_sync_limited(
            self._remote.fetch_module_record,
            identity.portal_id,
            identity.module_type,
            identity.module_id,
        )

    async def load_details(
        self, identity: ModuleIdentity, force_refresh: bool = False
    ) -> OperationResult[ModuleDetailsDraft]:
        """Load the draft for *identity*, reusing an existing one.

        With ``force_refresh`` the record is fetched again and the draft is
        replaced wholesale: baseline, draft, version and an empty dirty set.
        On fetch failure an existing draft is left exactly as it was. If
        the last view closes while the fetch is running, nothing is
        installed and the load fails with ``NotFound``.
        """
        async with self.lock(identity):
            existing = self._drafts.get(identity)
            if existing is not None and not force_refresh:
                return OperationResult.ok(existing)

            closures = self._closures.get(identity, 0)
            try:
                record = await self.fetch_record(identity)
            except ModuleSyncError as e:
                logger.warning(
                    "Failed to load details for %s: %s", identity.key, e
                )
                return OperationResult.fail(e)

            if self._closures.get(identity, 0) != closures:
                logger.debug(
                    "Discarded load for %s: closed while fetching",
                    identity.key,
                )
                return OperationResult.fail(
                    NotFoundError(
                        f"Module {identity.key} was closed while loading"
                    )
                )

            baseline = self._fields.project(record)
            version = int(record.get("version") or 0)
            return OperationResult.ok(
                self._install(identity, baseline, baseline, version, _now())
            )

    def seed(
        self,
        identity: ModuleIdentity,
        original: FieldMap,
        draft: FieldMap,
        version: int,
        loaded_at: str,
    ) -> ModuleDetailsDraft:
        """Install a draft from persisted data and recompute its dirty set.

        Values are normalized the way ``update_field`` would; unmanaged keys
        are ignored.
        """
        return self._install(
            identity,
            self._fields.project(original),
            self._fields.project(draft),
            version,
            loaded_at,
        )

    def _install(
        self,
        identity: ModuleIdentity,
        original: FieldMap,
        draft: FieldMap,
        version: int,
        loaded_at: str,
    ) -> ModuleDetailsDraft:
        original = copy.deepcopy(original)
        working = copy.deepcopy(draft)
        dirty = set(self._fields.diff(original, working))

        record = self._drafts.get(identity)
        if record is None:
            record = ModuleDetailsDraft(
                identity=identity, original=original, draft=working
            )
            self._drafts[identity] = record
        # Assigned together so sharing views never see a mix of old and new.
        record.original = original
        record.draft = working
        record.dirty_fields = dirty
        record.version = version
        record.loaded_at = loaded_at
        logger.debug(
            "Installed draft for %s at version %d (%d dirty)",
            identity.key,
            version,
            len(dirty),
        )
        return record

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update_field(
        self, identity: ModuleIdentity, field_name: str, value: Any
    ) -> OperationResult[ModuleDetailsDraft]:
        """Write *value* into the draft and update its dirty membership.

        Raises:
            ValueError: If *field_name* is not a managed field.
        """
        rule = self._fields.rule(field_name)
        record = self._drafts.get(identity)
        if record is None:
            return OperationResult.fail(
                NotFoundError(f"No details loaded for module {identity.key}")
            )

        normalized = rule.normalizer(copy.deepcopy(value))
        record.draft[field_name] = normalized
        if rule.comparator(record.original.get(field_name), normalized):
            record.dirty_fields.discard(field_name)
        else:
            record.dirty_fields.add(field_name)
        return OperationResult.ok(record)

    def reset_draft(
        self, identity: ModuleIdentity
    ) -> OperationResult[ModuleDetailsDraft]:
        """Discard local edits: draft becomes a copy of the baseline."""
        record = self._drafts.get(identity)
        if record is None:
            return OperationResult.fail(
                NotFoundError(f"No details loaded for module {identity.key}")
            )
        record.draft = copy.deepcopy(record.original)
        record.dirty_fields = set()
        return OperationResult.ok(record)

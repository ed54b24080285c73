"""Reconcile a module directory with the portal and the draft table.

A module directory holds ``module.json`` plus one script file per role.
Script files can be edited or deleted outside the application; the
coordinator detects that by comparing each file's fingerprint with the
``diskChecksum`` recorded when it was last written. Recovery is always an
explicit re-export that overwrites the file:

    missing  --re_export-->  present
    present  --external edit-->  modified
    modified --re_export-->  present

Writes are refused unless the directory's portal is the active one, and
every write path asks for ``readwrite`` permission first.

Metadata edits are persisted into ``moduleDetails.localDraft``; the remote
baseline in ``moduleDetails.portalBaseline`` is never overwritten by a
persist.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from ..core.async_utils import run_sync_limited
from .binding import PortalConnections
from .checksum import content_hash
from .descriptor import default_file_name, load_descriptor, save_descriptor
from .directory import (
    READWRITE,
    DirectoryHandle,
    ensure_permission_async,
    file_exists_async,
    read_text_async,
    write_text_async,
)
from .drafts import DraftManager
from .errors import (
    BindingMismatchError,
    ConfigCorruptError,
    ModuleSyncError,
    NotFoundError,
)
from .events import EngineEvent, EventBus, EventKind
from .models import (
    DirectoryStatus,
    FieldMap,
    ModuleBinding,
    ModuleDetails,
    ModuleDetailsDraft,
    ModuleDirectoryConfig,
    ModuleIdentity,
    OperationResult,
    ScriptDescriptor,
    ScriptRole,
    ScriptState,
    ScriptStatus,
)
from .remote import LANGUAGE_EXTENSIONS, RemoteStore, script_language

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DirectorySyncCoordinator:
    """Keeps module directories, the portal and drafts consistent.

    Args:
        remote: Source of module records and script content.
        drafts: The shared draft table.
        connections: Portal connections; decides which portal is active.
        events: Bus that receives ``script_status`` events, if any.
    """

    def __init__(
        self,
        remote: RemoteStore,
        drafts: DraftManager,
        connections: PortalConnections,
        events: EventBus | None = None,
    ) -> None:
        self._remote = remote
        self._drafts = drafts
        self._connections = connections
        self._events = events

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_active_portal(
        self, binding: ModuleBinding, handle: DirectoryHandle
    ) -> None:
        label = binding.portal_hostname or binding.portal_id
        if self._connections.selected_portal_id != binding.portal_id:
            raise BindingMismatchError(
                f"Directory '{handle.name}' is bound to portal '{label}', "
                "which is not the active portal",
                directory_name=handle.name,
                required_portal=label,
            )

    def _emit_status(self, module_key: str, status: DirectoryStatus) -> None:
        if self._events is None:
            return
        self._events.emit(
            EngineEvent(
                kind=EventKind.SCRIPT_STATUS,
                module_key=module_key,
                payload=status.model_dump(mode="json"),
            )
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def load_config(
        self, handle: DirectoryHandle
    ) -> OperationResult[ModuleDirectoryConfig]:
        try:
            return OperationResult.ok(await load_descriptor(handle))
        except ModuleSyncError as e:
            return OperationResult.fail(e)

    async def _script_status(
        self,
        handle: DirectoryHandle,
        role: str,
        descriptor: ScriptDescriptor,
    ) -> ScriptStatus:
        content = None
        if await file_exists_async(handle, descriptor.file_name):
            content = await read_text_async(handle, descriptor.file_name)
        if content is None:
            return ScriptStatus(
                role=role,
                file_name=descriptor.file_name,
                state=ScriptState.MISSING,
            )

        checksum = content_hash(content)
        # No recorded disk checksum means nothing to compare against
        modified = (
            descriptor.disk_checksum is not None
            and checksum != descriptor.disk_checksum
        )
        return ScriptStatus(
            role=role,
            file_name=descriptor.file_name,
            state=ScriptState.MODIFIED if modified else ScriptState.PRESENT,
            checksum=checksum,
        )

    async def compute_script_status(
        self,
        handle: DirectoryHandle,
        role: ScriptRole | str,
        descriptor: ScriptDescriptor,
    ) -> OperationResult[ScriptStatus]:
        """Classify one script file as present, modified or missing."""
        try:
            status = await self._script_status(
                handle, ScriptRole(role).value, descriptor
            )
        except ModuleSyncError as e:
            return OperationResult.fail(e)
        return OperationResult.ok(status)

    async def _existence_only(
        self, handle: DirectoryHandle
    ) -> list[ScriptStatus]:
        statuses = []
        for role in ScriptRole:
            found = None
            for language in LANGUAGE_EXTENSIONS:
                name = default_file_name(role, language)
                if await file_exists_async(handle, name):
                    found = name
                    break
            statuses.append(
                ScriptStatus(
                    role=role.value,
                    file_name=found or default_file_name(role, "groovy"),
                    state=(
                        ScriptState.PRESENT if found else ScriptState.MISSING
                    ),
                )
            )
        return statuses

    async def scan_directory(
        self, handle: DirectoryHandle
    ) -> OperationResult[DirectoryStatus]:
        """Report the status of every script in the directory.

        When module.json is corrupt the failure still carries existence-only
        statuses for the default script names.
        """
        try:
            config = await load_descriptor(handle)
        except ConfigCorruptError as e:
            logger.warning("Corrupt module.json in %s: %s", handle.name, e)
            try:
                scripts = await self._existence_only(handle)
            except ModuleSyncError:
                return OperationResult.fail(e)
            return OperationResult.fail(
                e,
                value=DirectoryStatus(
                    directory_name=handle.name, scripts=scripts
                ),
            )
        except ModuleSyncError as e:
            return OperationResult.fail(e)

        try:
            scripts = [
                await self._script_status(handle, role, descriptor)
                for role, descriptor in config.scripts.items()
            ]
        except ModuleSyncError as e:
            return OperationResult.fail(e)

        status = DirectoryStatus(
            directory_name=handle.name,
            binding=config.portal_binding,
            scripts=scripts,
        )
        self._emit_status(config.portal_binding.identity.key, status)
        return OperationResult.ok(status)

    # ------------------------------------------------------------------
    # Re-export
    # ------------------------------------------------------------------

    async def re_export_script(
        self, handle: DirectoryHandle, role: ScriptRole | str
    ) -> OperationResult[ScriptDescriptor]:
        """Overwrite a script file with fresh portal content.

        Both checksums are set to the new content's fingerprint, so the
        file reads as unmodified afterwards.

        Raises:
            ValueError: If *role* is not a script role.
        """
        role = ScriptRole(role)
        try:
            config = await load_descriptor(handle)
            binding = config.portal_binding
            self._require_active_portal(binding, handle)

            content = await run_sync_limited(
                self._remote.fetch_script_content,
                binding.portal_id,
                binding.module_type,
                binding.module_id,
                role,
            )
            if not content.strip():
                raise NotFoundError(
                    f"The {role.value} script of '{binding.module_name}' "
                    "is empty in the portal",
                    directory_name=handle.name,
                )

            descriptor = config.scripts.get(role.value)
            if descriptor is None:
                record = await run_sync_limited(
                    self._remote.fetch_module_record,
                    binding.portal_id,
                    binding.module_type,
                    binding.module_id,
                )
                language = script_language(record, binding.module_type, role)
                file_name = default_file_name(
                    role,
                    language,
                    taken=(
                        d.file_name
                        for r, d in config.scripts.items()
                        if r != role.value
                    ),
                )
            else:
                language = descriptor.language
                file_name = descriptor.file_name

            grant = await ensure_permission_async(handle, READWRITE)
            await write_text_async(grant, file_name, content)

            checksum = content_hash(content)
            if descriptor is None:
                updated = ScriptDescriptor(
                    file_name=file_name,
                    language=language,
                    mode=role.value,
                    portal_checksum=checksum,
                    disk_checksum=checksum,
                )
            else:
                updated = descriptor.model_copy(
                    update={
                        "portal_checksum": checksum,
                        "disk_checksum": checksum,
                    }
                )
            scripts = dict(config.scripts)
            scripts[role.value] = updated
            await save_descriptor(
                grant, config.model_copy(update={"scripts": scripts})
            )
        except ModuleSyncError as e:
            logger.warning(
                "Re-export of %s in %s failed: %s", role.value, handle.name, e
            )
            return OperationResult.fail(e)

        logger.info("Re-exported %s to %s/%s", role.value, handle.name, file_name)
        self._emit_status(
            binding.identity.key,
            DirectoryStatus(
                directory_name=handle.name,
                binding=binding,
                scripts=[
                    ScriptStatus(
                        role=role.value,
                        file_name=file_name,
                        state=ScriptState.PRESENT,
                        checksum=checksum,
                    )
                ],
            ),
        )
        return OperationResult.ok(updated)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def persist_details(
        self, handle: DirectoryHandle, identity: ModuleIdentity
    ) -> OperationResult[ModuleDirectoryConfig]:
        """Merge the draft's dirty fields into ``moduleDetails.localDraft``.

        Fields the user did not touch keep whatever ``localDraft`` held
        (the baseline when there was none). ``portalBaseline`` is kept as
        is. With no dirty fields nothing is written and the value is None.
        """
        record = self._drafts.get(identity)
        if record is None:
            return OperationResult.fail(
                NotFoundError(f"No details loaded for module {identity.key}")
            )
        if not record.dirty_fields:
            return OperationResult.ok(None)

        try:
            config = await load_descriptor(handle)
            binding = config.portal_binding
            self._require_active_portal(binding, handle)
            if binding.identity != identity:
                raise BindingMismatchError(
                    f"Directory '{handle.name}' holds module "
                    f"{binding.identity.key}, not {identity.key}",
                    directory_name=handle.name,
                    required_portal=binding.portal_hostname
                    or binding.portal_id,
                )

            details = config.module_details or ModuleDetails(
                portal_version=record.version,
                last_pulled_at=record.loaded_at,
                portal_baseline=copy.deepcopy(record.original),
            )
            local = copy.deepcopy(
                details.local_draft
                if details.local_draft is not None
                else details.portal_baseline
            )
            for name in sorted(record.dirty_fields):
                local[name] = copy.deepcopy(record.draft.get(name))

            updated = config.model_copy(
                update={
                    "module_details": details.model_copy(
                        update={"local_draft": local}
                    )
                }
            )
            grant = await ensure_permission_async(handle, READWRITE)
            await save_descriptor(grant, updated)
        except ModuleSyncError as e:
            logger.warning("Persist to %s failed: %s", handle.name, e)
            return OperationResult.fail(e)

        logger.info(
            "Persisted %d field(s) of %s to %s",
            len(record.dirty_fields),
            identity.key,
            handle.name,
        )
        return OperationResult.ok(updated)

    async def restore_details(
        self, handle: DirectoryHandle
    ) -> OperationResult[ModuleDetailsDraft]:
        """Seed the draft table from ``moduleDetails``.

        ``portalBaseline`` becomes the baseline and ``localDraft`` the
        draft, so persisted edits show up as dirty fields again. A live
        draft for the module is returned unchanged.
        """
        try:
            config = await load_descriptor(handle)
        except ModuleSyncError as e:
            return OperationResult.fail(e)

        identity = config.portal_binding.identity
        existing = self._drafts.get(identity)
        if existing is not None:
            return OperationResult.ok(existing)

        details = config.module_details
        if details is None:
            return OperationResult.fail(
                NotFoundError(
                    f"module.json in '{handle.name}' has no saved details",
                    directory_name=handle.name,
                )
            )

        draft = self._drafts.seed(
            identity,
            original=details.portal_baseline,
            draft=(
                details.local_draft
                if details.local_draft is not None
                else details.portal_baseline
            ),
            version=details.portal_version,
            loaded_at=details.last_pulled_at,
        )
        return OperationResult.ok(draft)

    # ------------------------------------------------------------------
    # First export
    # ------------------------------------------------------------------

    async def export_module(
        self,
        handle: DirectoryHandle,
        binding: ModuleBinding,
        roles: Iterable[ScriptRole | str] | None = None,
        overwrite: bool = False,
    ) -> OperationResult[ModuleDirectoryConfig]:
        """Write a module's scripts and a fresh module.json.

        Roles default to every role with a non-empty script. A directory
        already bound to a different module is refused.

        Exporting again into the module's own directory keeps unknown
        top-level keys and re-applies persisted ``localDraft`` edits on top
        of the new baseline. ``overwrite`` discards those edits instead.
        """
        wanted = [ScriptRole(r) for r in roles] if roles is not None else list(ScriptRole)
        try:
            self._require_active_portal(binding, handle)
            try:
                existing = await load_descriptor(handle)
            except (NotFoundError, ConfigCorruptError):
                existing = None
            if (
                existing is not None
                and existing.portal_binding.identity != binding.identity
            ):
                raise BindingMismatchError(
                    f"Directory '{handle.name}' already holds module "
                    f"{existing.portal_binding.identity.key}",
                    directory_name=handle.name,
                    required_portal=existing.portal_binding.portal_hostname
                    or existing.portal_binding.portal_id,
                )

            record = await run_sync_limited(
                self._remote.fetch_module_record,
                binding.portal_id,
                binding.module_type,
                binding.module_id,
            )
            contents: dict[ScriptRole, str] = {}
            for role in wanted:
                text = await run_sync_limited(
                    self._remote.fetch_script_content,
                    binding.portal_id,
                    binding.module_type,
                    binding.module_id,
                    role,
                )
                if text.strip():
                    contents[role] = text

            grant = await ensure_permission_async(handle, READWRITE)
            scripts: dict[str, ScriptDescriptor] = {}
            for role, text in contents.items():
                language = script_language(record, binding.module_type, role)
                file_name = default_file_name(
                    role,
                    language,
                    taken=(d.file_name for d in scripts.values()),
                )
                await write_text_async(grant, file_name, text)
                checksum = content_hash(text)
                scripts[role.value] = ScriptDescriptor(
                    file_name=file_name,
                    language=language,
                    mode=role.value,
                    portal_checksum=checksum,
                    disk_checksum=checksum,
                )

            now = _now()
            baseline = self._drafts.fields.project(record)
            extra: dict = {"version": 1}
            local_draft = None
            if existing is not None:
                extra.update(existing.model_extra or {})
                if not overwrite:
                    local_draft = self._rebase_local_draft(
                        existing.module_details, baseline
                    )
            extra["lastSyncedAt"] = now
            config = ModuleDirectoryConfig(
                portal_binding=binding,
                scripts=scripts,
                module_details=ModuleDetails(
                    portal_version=int(record.get("version") or 0),
                    last_pulled_at=now,
                    portal_baseline=baseline,
                    local_draft=local_draft,
                ),
                **extra,
            )
            await save_descriptor(grant, config)
        except ModuleSyncError as e:
            logger.warning("Export to %s failed: %s", handle.name, e)
            return OperationResult.fail(e)

        logger.info(
            "Exported %s (%d script(s)) to %s",
            binding.identity.key,
            len(scripts),
            handle.name,
        )
        return OperationResult.ok(config)

    def _rebase_local_draft(
        self, details: ModuleDetails | None, baseline: FieldMap
    ) -> FieldMap | None:
        """Return *baseline* with the fields edited in *details* re-applied.

        None when there is no persisted draft or it holds no edits.
        """
        if details is None or details.local_draft is None:
            return None
        fields = self._drafts.fields
        local = fields.project(details.local_draft)
        edited = fields.diff(details.portal_baseline, local)
        if not edited:
            return None

        rebased = copy.deepcopy(baseline)
        for name in edited:
            if name in local:
                rebased[name] = copy.deepcopy(local[name])
            else:
                rebased.pop(name, None)
        logger.info(
            "Carried %d persisted edit(s) forward: %s",
            len(edited),
            ", ".join(edited),
        )
        return rebased

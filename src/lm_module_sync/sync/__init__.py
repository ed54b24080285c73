"""Module synchronization and conflict resolution engine.

Keeps three representations of a portal module consistent: the remote
record (versioned by the portal), an in-memory draft shared by every open
view of the module, and an on-disk directory holding ``module.json`` plus
the module's script files.

Modules:

- ``engine``      -- ``ModuleSyncEngine``: facade owning views and components.
- ``drafts``      -- ``DraftManager``: shared baseline/draft/dirty table.
- ``conflicts``   -- ``ConflictDetector``: remote version checks and
  keep-local / use-portal resolution.
- ``binding``     -- Portal binding guard, ``PortalConnections``,
  ``ModuleView``.
- ``coordinator`` -- ``DirectorySyncCoordinator``: script drift detection,
  re-export, metadata persistence.
- ``directory``   -- ``DirectoryHandle`` and permission-checked file I/O.
- ``handles``     -- ``DirectoryHandleStore``: remembered directories.
- ``descriptor``  -- module.json parsing and serialization.
- ``fields``      -- Managed field allow-list and comparison rules.
- ``checksum``    -- Content fingerprints and value equality.
- ``models``      -- Data contracts.
- ``errors``      -- Error taxonomy and ``EngineError``.
- ``events``      -- ``EventBus`` for engine-to-UI notifications.
- ``remote``      -- ``RemoteStore`` protocol and record layout helpers.

Usage example
-------------
::

    from lm_module_sync.sync import (
        DirectoryHandle, ModuleBinding, ModuleSyncEngine,
        PortalConnection, PortalConnections,
    )

    connections = PortalConnections(
        [PortalConnection(id="acme", hostname="acme.logicmonitor.com")],
        selected_portal_id="acme",
    )
    engine = ModuleSyncEngine(portal_client, connections)
    view, loaded = await engine.open_view(binding)
    engine.update_field(view.view_id, "appliesTo", "isLinux()")

    handle = DirectoryHandle("/work/CPU_Linux")
    await engine.directories.persist_details(handle, binding.identity)
"""

from .binding import (
    ModuleView,
    PortalConnections,
    apply_binding_guard,
    convert_to_local_copy,
    resolve_binding,
    switch_to_bound_portal,
)
from .checksum import content_hash, deep_equal, normalize_id_list, same_value
from .conflicts import ConflictDetector
from .coordinator import DirectorySyncCoordinator
from .descriptor import DESCRIPTOR_NAME, dump_descriptor, parse_descriptor
from .directory import DirectoryGrant, DirectoryHandle, ensure_permission
from .drafts import DraftManager
from .engine import ModuleSyncEngine
from .errors import (
    BindingMismatchError,
    ConfigCorruptError,
    EngineError,
    ErrorKind,
    ModuleSyncError,
    NotFoundError,
    PermissionDeniedError,
    RemoteUnreachableError,
)
from .events import EngineEvent, EventBus, EventKind
from .fields import DEFAULT_FIELDS, MANAGED_FIELDS, FieldRegistry, FieldRule
from .handles import DirectoryHandleStore
from .models import (
    BindingStatus,
    ConflictState,
    DirectoryStatus,
    ExecutionContext,
    ModuleBinding,
    ModuleDetails,
    ModuleDetailsDraft,
    ModuleDirectoryConfig,
    ModuleIdentity,
    OperationResult,
    PermissionState,
    PortalConnection,
    Resolution,
    ScriptDescriptor,
    ScriptRole,
    ScriptState,
    ScriptStatus,
)
from .remote import RemoteStore, extract_script_content, script_language

__all__ = [
    "BindingMismatchError",
    "BindingStatus",
    "ConfigCorruptError",
    "ConflictDetector",
    "ConflictState",
    "DEFAULT_FIELDS",
    "DESCRIPTOR_NAME",
    "DirectoryGrant",
    "DirectoryHandle",
    "DirectoryHandleStore",
    "DirectoryStatus",
    "DirectorySyncCoordinator",
    "DraftManager",
    "EngineError",
    "EngineEvent",
    "ErrorKind",
    "EventBus",
    "EventKind",
    "ExecutionContext",
    "FieldRegistry",
    "FieldRule",
    "MANAGED_FIELDS",
    "ModuleBinding",
    "ModuleDetails",
    "ModuleDetailsDraft",
    "ModuleDirectoryConfig",
    "ModuleIdentity",
    "ModuleSyncEngine",
    "ModuleSyncError",
    "ModuleView",
    "NotFoundError",
    "OperationResult",
    "PermissionDeniedError",
    "PermissionState",
    "PortalConnection",
    "PortalConnections",
    "RemoteStore",
    "RemoteUnreachableError",
    "Resolution",
    "ScriptDescriptor",
    "ScriptRole",
    "ScriptState",
    "ScriptStatus",
    "apply_binding_guard",
    "content_hash",
    "convert_to_local_copy",
    "deep_equal",
    "dump_descriptor",
    "ensure_permission",
    "extract_script_content",
    "normalize_id_list",
    "parse_descriptor",
    "resolve_binding",
    "same_value",
    "script_language",
    "switch_to_bound_portal",
]

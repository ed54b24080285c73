"""Data contracts for the module sync engine.

- ``ModuleIdentity``: key of the shared draft table.
- ``ModuleBinding``: the remote record a view or directory is attached to.
- ``ScriptDescriptor``, ``ModuleDetails``, ``ModuleDirectoryConfig``: the
  on-disk ``module.json`` shape (camelCase on disk via aliases).
- ``ModuleDetailsDraft``: mutable baseline/draft/dirty record shared by
  every view of one module.
- ``ConflictState``, ``ScriptStatus``, ``DirectoryStatus``,
  ``BindingStatus``: observable results.
- ``OperationResult``: success flag plus value or ``EngineError``.

Contracts are frozen; only ``ModuleDetailsDraft`` is mutated in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import EngineError, ModuleSyncError

FieldMap = dict[str, Any]

T = TypeVar("T")

_ON_DISK = ConfigDict(
    frozen=True, alias_generator=to_camel, populate_by_name=True
)


class ScriptRole(str, Enum):
    """Script slots a module can carry; values match module.json keys."""

    COLLECTION = "collection"
    DISCOVERY = "ad"


class ScriptState(str, Enum):
    """Observable state of a directory-backed script file."""

    PRESENT = "present"
    MODIFIED = "modified"
    MISSING = "missing"


class Resolution(str, Enum):
    """User choice when a conflict is surfaced."""

    KEEP_LOCAL = "keep-local"
    USE_PORTAL = "use-portal"


class PermissionState(str, Enum):
    GRANTED = "granted"
    PROMPT = "prompt"
    DENIED = "denied"


class ModuleIdentity(BaseModel):
    """Portal, type and id of a module; hashable."""

    portal_id: str
    module_type: str
    module_id: int

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        return f"{self.portal_id}:{self.module_type}:{self.module_id}"


class ModuleBinding(BaseModel):
    """Remote record a view or directory is attached to.

    Attributes:
        portal_id: Portal the module lives in.
        portal_hostname: Hostname of that portal, for messages.
        module_id: Numeric module id.
        module_type: e.g. ``datasource``, ``propertysource``.
        module_name: Module name at bind time.
        lineage_id: Exchange lineage, when known.
    """

    portal_id: str
    portal_hostname: str
    module_id: int
    module_type: str
    module_name: str
    lineage_id: str | None = None

    model_config = _ON_DISK

    @property
    def identity(self) -> ModuleIdentity:
        return ModuleIdentity(
            portal_id=self.portal_id,
            module_type=self.module_type,
            module_id=self.module_id,
        )


class ScriptDescriptor(BaseModel):
    """Per-role script entry in module.json.

    ``disk_checksum == portal_checksum`` means the file on disk matched the
    last pulled remote content when it was written.
    """

    file_name: str
    language: str
    mode: str
    portal_checksum: str | None = None
    disk_checksum: str | None = None

    model_config = _ON_DISK


class ModuleDetails(BaseModel):
    """Persisted metadata: remote baseline kept apart from the local draft."""

    portal_version: int
    last_pulled_at: str
    portal_baseline: FieldMap
    local_draft: FieldMap | None = None

    model_config = _ON_DISK


class ModuleDirectoryConfig(BaseModel):
    """The module.json descriptor.

    Unknown top-level keys (``version``, ``lastSyncedAt``, ...) are kept and
    written back unchanged.
    """

    portal_binding: ModuleBinding
    scripts: dict[str, ScriptDescriptor] = {}
    module_details: ModuleDetails | None = None

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


@dataclass
class ModuleDetailsDraft:
    """Baseline, working copy and dirty set for one module.

    One instance per identity, shared by reference across views.
    ``dirty_fields`` always equals the keys where ``draft`` differs from
    ``original`` under that field's comparison rule.
    """

    identity: ModuleIdentity
    original: FieldMap
    draft: FieldMap
    dirty_fields: set[str] = field(default_factory=set)
    version: int = 0
    loaded_at: str = ""

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields)


class ConflictState(BaseModel):
    """Result of the last conflict check for a module.

    Attributes:
        has_conflict: Managed fields changed remotely since the baseline.
        portal_version: Remote version seen by the check.
        conflicting_fields: Managed fields whose value changed remotely.
        remote_changed: The remote version moved, whether or not any
            managed field differs. Informational only.
    """

    has_conflict: bool = False
    portal_version: int | None = None
    conflicting_fields: list[str] = []
    remote_changed: bool = False

    model_config = {"frozen": True}


class ScriptStatus(BaseModel):
    role: str
    file_name: str
    state: ScriptState
    checksum: str | None = None

    model_config = {"frozen": True}

    @property
    def exists(self) -> bool:
        return self.state != ScriptState.MISSING

    @property
    def modified(self) -> bool:
        return self.state == ScriptState.MODIFIED


class DirectoryStatus(BaseModel):
    """Script statuses for every role of a module directory."""

    directory_name: str
    binding: ModuleBinding | None = None
    scripts: list[ScriptStatus] = []

    model_config = {"frozen": True}

    @property
    def modified_roles(self) -> list[str]:
        return [s.role for s in self.scripts if s.modified]

    @property
    def missing_roles(self) -> list[str]:
        return [s.role for s in self.scripts if not s.exists]


class BindingStatus(BaseModel):
    """Whether a view's remote context is reachable and active."""

    is_bound: bool
    is_active: bool
    portal_id: str | None = None
    portal_hostname: str | None = None
    reason: str | None = None

    model_config = {"frozen": True}


class PortalConnection(BaseModel):
    id: str
    hostname: str
    status: str = "active"

    model_config = {"frozen": True}


class ExecutionContext(BaseModel):
    """Collector/host a view executes against."""

    hostname: str | None = None
    collector_id: int | None = None

    model_config = {"frozen": True}


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of a public engine operation.

    ``value`` may be set on failure when partial information is still
    useful (existence-only script statuses for a corrupt descriptor).
    The draft record is returned by reference, never copied.
    """

    success: bool
    value: T | None = None
    error: EngineError | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> OperationResult[T]:
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls, exc: ModuleSyncError, value: T | None = None
    ) -> OperationResult[T]:
        return cls(success=False, value=value, error=exc.to_error())

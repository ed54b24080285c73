"""Error taxonomy for the module sync engine.

Components raise ``ModuleSyncError`` subclasses internally; every public
engine operation converts them into an ``EngineError`` carried by a failed
``OperationResult`` so draft and conflict state never see an exception
cross their boundary.

Each kind has a corrective action the UI can offer (grant permission,
switch portal, ...). Permission and binding failures carry the directory
name and required portal so the action can be specific.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers."""

    REMOTE_UNREACHABLE = "remote_unreachable"
    PERMISSION_DENIED = "permission_denied"
    BINDING_MISMATCH = "binding_mismatch"
    CONFIG_CORRUPT = "config_corrupt"
    NOT_FOUND = "not_found"


_CORRECTIVE_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.REMOTE_UNREACHABLE: (
        "Check the portal connection and retry. Local edits were kept."
    ),
    ErrorKind.PERMISSION_DENIED: (
        "Grant read/write access to directory '{directory_name}' and retry."
    ),
    ErrorKind.BINDING_MISMATCH: (
        "Switch the active portal to '{required_portal}' and retry."
    ),
    ErrorKind.CONFIG_CORRUPT: (
        "module.json could not be read. Re-export the module to rebuild it; "
        "script files can still be checked."
    ),
    ErrorKind.NOT_FOUND: (
        "The directory or module reference is no longer valid. "
        "Reopen the module directory."
    ),
}


def corrective_action_for(
    kind: ErrorKind,
    directory_name: str | None = None,
    required_portal: str | None = None,
) -> str:
    """Return the corrective action text for *kind*."""
    template = _CORRECTIVE_ACTIONS[kind]
    return template.format(
        directory_name=directory_name or "the module directory",
        required_portal=required_portal or "the bound portal",
    )


class EngineError(BaseModel):
    """Failure details returned to callers instead of an exception.

    Attributes:
        kind: Failure category.
        message: Human-readable description of what failed.
        corrective_action: What the user can do about it.
        directory_name: Directory involved, for permission failures.
        required_portal: Portal the operation needs, for binding failures.
    """

    kind: ErrorKind
    message: str
    corrective_action: str
    directory_name: str | None = None
    required_portal: str | None = None

    model_config = {"frozen": True}


class ModuleSyncError(Exception):
    """Base class for engine failures."""

    kind: ErrorKind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        *,
        directory_name: str | None = None,
        required_portal: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.directory_name = directory_name
        self.required_portal = required_portal

    def to_error(self) -> EngineError:
        return EngineError(
            kind=self.kind,
            message=self.message,
            corrective_action=corrective_action_for(
                self.kind, self.directory_name, self.required_portal
            ),
            directory_name=self.directory_name,
            required_portal=self.required_portal,
        )


class RemoteUnreachableError(ModuleSyncError):
    """Fetching from the portal failed."""

    kind = ErrorKind.REMOTE_UNREACHABLE


class PermissionDeniedError(ModuleSyncError):
    """Directory access was refused; nothing was written."""

    kind = ErrorKind.PERMISSION_DENIED


class BindingMismatchError(ModuleSyncError):
    """The directory is bound to a portal or module other than the active one."""

    kind = ErrorKind.BINDING_MISMATCH


class ConfigCorruptError(ModuleSyncError):
    """module.json exists but cannot be parsed or validated."""

    kind = ErrorKind.CONFIG_CORRUPT


class NotFoundError(ModuleSyncError):
    """A descriptor, handle, draft or view reference no longer resolves."""

    kind = ErrorKind.NOT_FOUND

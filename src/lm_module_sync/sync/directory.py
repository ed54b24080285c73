"""Scoped access to a user-granted module directory.

A ``DirectoryHandle`` stands for a directory the user picked. Reading is
allowed once the handle exists; writing needs an explicit ``readwrite``
grant obtained through ``ensure_permission``, which returns a
``DirectoryGrant`` capability threaded through every write. Writes
re-query the permission first, since the user can revoke it at any time.

All sync functions do blocking file I/O. Async wrappers run them through
``run_sync()``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from charset_normalizer import from_bytes

from ..core.async_utils import run_sync
from .errors import NotFoundError, PermissionDeniedError
from .models import PermissionState

logger = logging.getLogger(__name__)

READ = "read"
READWRITE = "readwrite"

PromptCallback = Callable[["DirectoryHandle", str], bool]


class DirectoryHandle:
    """A directory the user granted access to.

    Args:
        path: Directory path.
        prompt: Called as ``prompt(handle, mode)`` when a permission is
            requested but not yet granted; returns whether the user
            allowed it. Without a callback requests are granted whenever
            the operating system allows the access.
    """

    def __init__(
        self, path: str | Path, prompt: PromptCallback | None = None
    ) -> None:
        self._path = Path(path)
        self._prompt = prompt
        self._granted: set[str] = {READ}

    def __repr__(self) -> str:
        return f"DirectoryHandle({str(self._path)!r})"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def name(self) -> str:
        return self._path.name

    def _require_directory(self) -> None:
        if not self._path.is_dir():
            raise NotFoundError(
                f"Directory '{self._path}' no longer exists",
                directory_name=self.name,
            )

    def _os_allows(self, mode: str) -> bool:
        flags = os.R_OK | os.X_OK
        if mode == READWRITE:
            flags |= os.W_OK
        return os.access(self._path, flags)

    def query_permission(self, mode: str = READ) -> PermissionState:
        """Return the current permission state without prompting.

        Raises:
            NotFoundError: If the directory is gone.
        """
        self._require_directory()
        if not self._os_allows(mode):
            return PermissionState.DENIED
        if mode in self._granted or (
            mode == READ and READWRITE in self._granted
        ):
            return PermissionState.GRANTED
        return PermissionState.PROMPT

    def request_permission(self, mode: str = READ) -> PermissionState:
        """Ask for *mode*; returns ``GRANTED`` or ``DENIED``."""
        state = self.query_permission(mode)
        if state != PermissionState.PROMPT:
            return state

        allowed = self._prompt(self, mode) if self._prompt else True
        if not allowed:
            logger.info("Permission %s denied for %s", mode, self._path)
            return PermissionState.DENIED
        self._granted.add(mode)
        return PermissionState.GRANTED

    def revoke(self) -> None:
        """Drop every grant, including read."""
        self._granted.clear()


@dataclass(frozen=True)
class DirectoryGrant:
    """Proof that *mode* was granted on *handle* at some point.

    Writes still re-check the handle before touching disk.
    """

    handle: DirectoryHandle
    mode: str = READWRITE


def ensure_permission(
    handle: DirectoryHandle, mode: str = READWRITE
) -> DirectoryGrant:
    """Query *mode* and request it only when not yet granted.

    Raises:
        PermissionDeniedError: If the request is refused.
        NotFoundError: If the directory is gone.
    """
    state = handle.query_permission(mode)
    if state != PermissionState.GRANTED:
        state = handle.request_permission(mode)
    if state != PermissionState.GRANTED:
        raise PermissionDeniedError(
            f"{mode} access to directory '{handle.name}' was denied",
            directory_name=handle.name,
        )
    return DirectoryGrant(handle=handle, mode=mode)


def _resolve_name(handle: DirectoryHandle, name: str) -> Path:
    """Resolve *name* inside the directory.

    Raises:
        ValueError: If *name* is empty or escapes the directory.
    """
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid file name: {name!r}")
    base = handle.path.resolve()
    target = (base / name).resolve()
    if target.parent != base:
        raise ValueError(
            f"File name {name!r} is outside directory '{handle.name}'"
        )
    return target


def _require_read(handle: DirectoryHandle) -> None:
    if handle.query_permission(READ) != PermissionState.GRANTED:
        raise PermissionDeniedError(
            f"read access to directory '{handle.name}' was denied",
            directory_name=handle.name,
        )


def file_exists(handle: DirectoryHandle, name: str) -> bool:
    _require_read(handle)
    return _resolve_name(handle, name).is_file()


def read_text(handle: DirectoryHandle, name: str) -> str | None:
    """Read *name*; ``None`` when it does not exist.

    UTF-8 is tried first, then charset-normalizer detection.

    Raises:
        PermissionDeniedError: If reading is not permitted.
    """
    _require_read(handle)
    path = _resolve_name(handle, name)
    if not path.is_file():
        return None

    try:
        raw = path.read_bytes()
    except PermissionError:
        raise PermissionDeniedError(
            f"Cannot read '{name}' in directory '{handle.name}'",
            directory_name=handle.name,
        ) from None
    if not raw:
        return ""

    # Scripts are written as UTF-8; detection is only for files edited elsewhere
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return raw.decode("utf-8", errors="replace")
    return str(result)


def write_text(grant: DirectoryGrant, name: str, content: str) -> int:
    """Atomically write *content* to *name* as UTF-8.

    The permission is re-queried before writing. Content lands in a temp
    file first and is moved over the target with ``os.replace``, so either
    the whole file is written or the old one is left in place.

    Returns:
        Number of bytes written.

    Raises:
        PermissionDeniedError: If the grant is read-only or was revoked.
        NotFoundError: If the directory is gone.
    """
    handle = grant.handle
    if (
        grant.mode != READWRITE
        or handle.query_permission(READWRITE) != PermissionState.GRANTED
    ):
        raise PermissionDeniedError(
            f"write access to directory '{handle.name}' is not granted",
            directory_name=handle.name,
        )

    target = _resolve_name(handle, name)
    encoded = content.encode("utf-8")
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
    except PermissionError:
        raise PermissionDeniedError(
            f"Cannot write to directory '{handle.name}'",
            directory_name=handle.name,
        ) from None

    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), target)
    return len(encoded)


# =============================================================================
# Async Wrappers
# =============================================================================


async def ensure_permission_async(
    handle: DirectoryHandle, mode: str = READWRITE
) -> DirectoryGrant:
    return await run_sync(ensure_permission, handle, mode)


async def file_exists_async(handle: DirectoryHandle, name: str) -> bool:
    return await run_sync(file_exists, handle, name)


async def read_text_async(handle: DirectoryHandle, name: str) -> str | None:
    return await run_sync(read_text, handle, name)


async def write_text_async(
    grant: DirectoryGrant, name: str, content: str
) -> int:
    return await run_sync(write_text, grant, name, content)

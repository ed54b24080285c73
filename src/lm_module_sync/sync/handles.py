"""Remembered module directories.

Keeps a small JSON file (``directories.json`` in the state directory) that
maps an opaque id to a directory path so a module directory can be
reopened later without picking it again. Entries whose directory vanished
resolve to ``NotFoundError``; callers are expected to ``remove`` them.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path

from .directory import DirectoryHandle, PromptCallback
from .errors import NotFoundError

logger = logging.getLogger(__name__)


class DirectoryHandleStore:
    """Load, save, and resolve remembered directories.

    Args:
        state_dir: Directory holding ``directories.json``.
    """

    FILE_NAME = "directories.json"

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)

    @property
    def path(self) -> Path:
        return self._state_dir / self.FILE_NAME

    def _load(self) -> dict:
        if not self.path.exists():
            return {"version": 1, "directories": {}}
        with open(self.path, encoding="utf-8") as fh:
            return json.load(fh)

    def _save(self, state: dict) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def add(self, path: str | Path) -> str:
        """Remember *path* and return its id.

        Adding a directory that is already remembered returns the existing id.
        """
        resolved = str(Path(path).resolve())
        state = self._load()
        for handle_id, entry in state["directories"].items():
            if entry["path"] == resolved:
                return handle_id

        handle_id = uuid.uuid4().hex
        state["directories"][handle_id] = {
            "path": resolved,
            "name": Path(resolved).name,
            "addedAt": datetime.now(timezone.utc).isoformat(),
        }
        self._save(state)
        logger.info("Remembered directory %s as %s", resolved, handle_id)
        return handle_id

    def resolve(
        self, handle_id: str, prompt: PromptCallback | None = None
    ) -> DirectoryHandle:
        """Return a handle for *handle_id*.

        Raises:
            NotFoundError: If the id is unknown or the directory is gone.
        """
        entry = self._load()["directories"].get(handle_id)
        if entry is None:
            raise NotFoundError(f"No remembered directory with id '{handle_id}'")
        path = Path(entry["path"])
        if not path.is_dir():
            raise NotFoundError(
                f"Directory '{path}' no longer exists",
                directory_name=entry.get("name"),
            )
        return DirectoryHandle(path, prompt=prompt)

    def remove(self, handle_id: str) -> bool:
        """Forget *handle_id*; returns whether it was remembered."""
        state = self._load()
        if state["directories"].pop(handle_id, None) is None:
            return False
        self._save(state)
        return True

    def list(self) -> list[dict]:
        """Return remembered entries as dicts with an ``id`` key added."""
        return [
            {"id": handle_id, **entry}
            for handle_id, entry in self._load()["directories"].items()
        ]

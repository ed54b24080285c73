"""Reading and writing the ``module.json`` descriptor."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from pydantic import ValidationError

from .directory import (
    DirectoryGrant,
    DirectoryHandle,
    read_text_async,
    write_text_async,
)
from .errors import ConfigCorruptError, NotFoundError
from .models import ModuleDirectoryConfig, ScriptRole
from .remote import LANGUAGE_EXTENSIONS

logger = logging.getLogger(__name__)

DESCRIPTOR_NAME = "module.json"


def parse_descriptor(
    text: str, directory_name: str | None = None
) -> ModuleDirectoryConfig:
    """Parse module.json text.

    Raises:
        ConfigCorruptError: If the text is not JSON or does not have the
            descriptor shape.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigCorruptError(
            f"module.json is not valid JSON: {e}",
            directory_name=directory_name,
        ) from e
    if not isinstance(data, dict):
        raise ConfigCorruptError(
            "module.json must contain a JSON object",
            directory_name=directory_name,
        )
    try:
        return ModuleDirectoryConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigCorruptError(
            f"module.json has an invalid shape: {e.error_count()} error(s)",
            directory_name=directory_name,
        ) from e


def dump_descriptor(config: ModuleDirectoryConfig) -> str:
    """Serialize *config* as pretty-printed camelCase JSON."""
    data = config.model_dump(by_alias=True, mode="json")
    if data.get("moduleDetails") is None:
        data.pop("moduleDetails", None)
    elif data["moduleDetails"].get("localDraft") is None:
        data["moduleDetails"].pop("localDraft", None)
    if data["portalBinding"].get("lineageId") is None:
        data["portalBinding"].pop("lineageId", None)
    return json.dumps(data, indent=2) + "\n"


async def load_descriptor(handle: DirectoryHandle) -> ModuleDirectoryConfig:
    """Read and parse the directory's module.json.

    Raises:
        NotFoundError: If there is no module.json.
        ConfigCorruptError: If it cannot be parsed.
        PermissionDeniedError: If the directory cannot be read.
    """
    text = await read_text_async(handle, DESCRIPTOR_NAME)
    if text is None:
        raise NotFoundError(
            f"Could not find module.json in directory '{handle.name}'",
            directory_name=handle.name,
        )
    return parse_descriptor(text, handle.name)


async def save_descriptor(
    grant: DirectoryGrant, config: ModuleDirectoryConfig
) -> None:
    await write_text_async(grant, DESCRIPTOR_NAME, dump_descriptor(config))
    logger.debug("Saved module.json in %s", grant.handle.name)


def default_file_name(
    role: ScriptRole, language: str, taken: Iterable[str] = ()
) -> str:
    """Return ``<role><ext>``, suffixed ``-2``, ``-3``... if already taken."""
    role = ScriptRole(role)
    ext = LANGUAGE_EXTENSIONS.get(language, ".groovy")
    taken_names = set(taken) | {DESCRIPTOR_NAME}
    candidate = f"{role.value}{ext}"
    counter = 2
    while candidate in taken_names:
        candidate = f"{role.value}-{counter}{ext}"
        counter += 1
    return candidate

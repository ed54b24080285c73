"""Remote store interface and module record layout helpers.

``RemoteStore`` is what the engine consumes; ``PortalClient`` in
``lm_module_sync.core.client`` implements it over the portal REST API and
tests use an in-memory fake. Calls are blocking and are run off the event
loop by the engine.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import ScriptRole

MODULE_TYPES: tuple[str, ...] = (
    "datasource",
    "configsource",
    "topologysource",
    "propertysource",
    "logsource",
    "diagnosticsource",
    "eventsource",
)

_GROOVY_SCRIPT_TYPES = ("propertysource", "diagnosticsource", "eventsource")

LANGUAGE_EXTENSIONS: dict[str, str] = {
    "groovy": ".groovy",
    "powershell": ".ps1",
}


class RemoteStore(Protocol):
    """Read access to the authoritative module records."""

    def fetch_module_record(
        self, portal_id: str, module_type: str, module_id: int
    ) -> dict[str, Any]:
        """Return the full module record, including ``version``.

        Raises:
            RemoteUnreachableError: If the record cannot be fetched.
        """
        ...  # pragma: no cover

    def fetch_script_content(
        self,
        portal_id: str,
        module_type: str,
        module_id: int,
        role: ScriptRole,
    ) -> str:
        """Return the script text for *role* (empty when the module has none).

        Raises:
            RemoteUnreachableError: If the record cannot be fetched.
        """
        ...  # pragma: no cover


def _dig(record: dict[str, Any], *keys: str) -> Any:
    value: Any = record
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_script_content(
    record: dict[str, Any], module_type: str, role: ScriptRole
) -> str:
    """Return the script *role* stored in *record*, or ``""``.

    Discovery scripts always live under ``autoDiscoveryConfig.method``;
    where the collection script lives depends on the module type.
    """
    role = ScriptRole(role)
    if role == ScriptRole.DISCOVERY:
        script = _dig(record, "autoDiscoveryConfig", "method", "groovyScript")
    elif module_type in _GROOVY_SCRIPT_TYPES:
        script = record.get("groovyScript")
    elif module_type == "logsource":
        script = _dig(
            record, "collectionAttribute", "script", "embeddedContent"
        ) or _dig(record, "collectionAttribute", "groovyScript")
    else:
        # datasource, configsource, topologysource
        script = _dig(record, "collectorAttribute", "groovyScript")
    return script or ""


def script_language(
    record: dict[str, Any], module_type: str, role: ScriptRole
) -> str:
    """Return ``"powershell"`` or ``"groovy"`` for the script *role*.

    Only collector-attribute collection scripts can be PowerShell.
    """
    role = ScriptRole(role)
    if role == ScriptRole.DISCOVERY or module_type in _GROOVY_SCRIPT_TYPES:
        return "groovy"
    if module_type == "logsource":
        return "groovy"
    raw = (
        record.get("scriptType")
        or _dig(record, "collectorAttribute", "scriptType")
        or "embed"
    )
    return "powershell" if str(raw).lower() == "powershell" else "groovy"

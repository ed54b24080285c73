"""Shared pytest fixtures for lm-module-sync tests."""

from __future__ import annotations

import copy
import threading
from typing import Any

import pytest

from lm_module_sync.config import Config
from lm_module_sync.sync.binding import PortalConnections
from lm_module_sync.sync.directory import DirectoryHandle
from lm_module_sync.sync.engine import ModuleSyncEngine
from lm_module_sync.sync.errors import NotFoundError, RemoteUnreachableError
from lm_module_sync.sync.models import (
    ModuleBinding,
    PortalConnection,
    ScriptRole,
)
from lm_module_sync.sync.remote import extract_script_content

PORTAL_ID = "p1"
PORTAL_HOST = "acme.logicmonitor.com"
OTHER_PORTAL_ID = "p2"
OTHER_PORTAL_HOST = "beta.logicmonitor.com"

COLLECTION_SCRIPT = "println 'cpu'\n"
DISCOVERY_SCRIPT = "println 'ad'\n"


def make_record(**overrides: Any) -> dict[str, Any]:
    """Return a datasource record as the portal serves it."""
    record = {
        "id": 42,
        "version": 3,
        "name": "CPU",
        "displayName": "CPU",
        "description": "CPU usage",
        "appliesTo": "isLinux()",
        "group": "Linux",
        "technology": "",
        "tags": "linux",
        "collectInterval": 60,
        "accessGroupIds": "1,2",
        "enableAutoDiscovery": True,
        "dataPoints": [{"name": "idle", "type": 2}],
        "collectorAttribute": {
            "name": "script",
            "scriptType": "embed",
            "groovyScript": COLLECTION_SCRIPT,
        },
        "autoDiscoveryConfig": {
            "method": {"name": "ad_script", "groovyScript": DISCOVERY_SCRIPT}
        },
        "lastModifiedBy": "alice",
    }
    record.update(overrides)
    return record


class FakePortalStore:
    """In-memory remote store.

    Records are keyed by (portal_id, module_type, module_id). Set
    ``fail = True`` to make every fetch raise ``RemoteUnreachableError``.
    """

    def __init__(self) -> None:
        self.records: dict[tuple[str, str, int], dict[str, Any]] = {}
        self.fail = False
        self.fetch_count = 0

    def put(
        self,
        record: dict[str, Any],
        portal_id: str = PORTAL_ID,
        module_type: str = "datasource",
    ) -> None:
        self.records[(portal_id, module_type, record["id"])] = copy.deepcopy(
            record
        )

    def bump(
        self,
        module_id: int = 42,
        portal_id: str = PORTAL_ID,
        module_type: str = "datasource",
        **changes: Any,
    ) -> dict[str, Any]:
        """Apply *changes* and increment the version, as a portal save would."""
        record = self.records[(portal_id, module_type, module_id)]
        record.update(copy.deepcopy(changes))
        record["version"] = record.get("version", 0) + 1
        return copy.deepcopy(record)

    def fetch_module_record(
        self, portal_id: str, module_type: str, module_id: int
    ) -> dict[str, Any]:
        self.fetch_count += 1
        if self.fail:
            raise RemoteUnreachableError(f"Portal '{portal_id}' is unreachable")
        try:
            return copy.deepcopy(
                self.records[(portal_id, module_type, module_id)]
            )
        except KeyError:
            raise NotFoundError(
                f"No {module_type} {module_id} in portal {portal_id}"
            ) from None

    def fetch_script_content(
        self,
        portal_id: str,
        module_type: str,
        module_id: int,
        role: ScriptRole,
    ) -> str:
        record = self.fetch_module_record(portal_id, module_type, module_id)
        return extract_script_content(record, module_type, role)


class GatedStore(FakePortalStore):
    """Store whose fetches block until ``release`` is set, while ``gated``."""

    def __init__(self) -> None:
        super().__init__()
        self.gated = True
        self.started = threading.Event()
        self.release = threading.Event()

    def fetch_module_record(
        self, portal_id: str, module_type: str, module_id: int
    ) -> dict[str, Any]:
        if self.gated:
            self.started.set()
            self.release.wait(5)
        return super().fetch_module_record(portal_id, module_type, module_id)


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        portal_hostname=PORTAL_HOST,
        bearer_token="test-token",
        portal_id=PORTAL_ID,
        insecure=False,
    )


@pytest.fixture
def store():
    """Remote store holding datasource 42 at version 3."""
    fake = FakePortalStore()
    fake.put(make_record())
    return fake


@pytest.fixture
def gated_store():
    """Like ``store``, but fetches wait for ``release``."""
    gated = GatedStore()
    gated.put(make_record())
    yield gated
    gated.release.set()


@pytest.fixture
def connections():
    """Two connected portals with p1 selected."""
    return PortalConnections(
        [
            PortalConnection(id=PORTAL_ID, hostname=PORTAL_HOST),
            PortalConnection(id=OTHER_PORTAL_ID, hostname=OTHER_PORTAL_HOST),
        ],
        selected_portal_id=PORTAL_ID,
    )


@pytest.fixture
def binding():
    return ModuleBinding(
        portal_id=PORTAL_ID,
        portal_hostname=PORTAL_HOST,
        module_id=42,
        module_type="datasource",
        module_name="CPU",
    )


@pytest.fixture
def identity(binding):
    return binding.identity


@pytest.fixture
def engine(store, connections):
    return ModuleSyncEngine(store, connections)


@pytest.fixture
def module_dir(tmp_path):
    """An empty module directory."""
    path = tmp_path / "CPU"
    path.mkdir()
    return path


@pytest.fixture
def handle(module_dir):
    return DirectoryHandle(module_dir)

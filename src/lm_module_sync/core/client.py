import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..sync.errors import NotFoundError, RemoteUnreachableError
from ..sync.models import ScriptRole
from ..sync.remote import extract_script_content

logger = logging.getLogger(__name__)

MODULE_ENDPOINTS: dict[str, str] = {
    "datasource": "/setting/datasources",
    "configsource": "/setting/configsources",
    "topologysource": "/setting/topologysources",
    "propertysource": "/setting/propertyrules",
    "logsource": "/setting/logsources",
    "diagnosticsource": "/setting/diagnosticsources",
    "eventsource": "/setting/eventsources",
}


class PortalClient:
    """Portal REST API client implementing the engine's remote store.

    Serves the single portal named in *config*; requests for any other
    portal id fail as unreachable.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = f"https://{config.portal_hostname}/santaba/rest"

    @property
    def portal_id(self) -> str:
        return self.config.portal_id or self.config.portal_hostname

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.bearer_token}",
                "Accept": "application/json",
                "X-version": "3",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _check_portal(self, portal_id: str) -> None:
        if portal_id != self.portal_id:
            raise RemoteUnreachableError(
                f"Portal '{portal_id}' is not connected "
                f"(this server talks to '{self.portal_id}')"
            )

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET *path* relative to the REST root and decode the JSON body.

        Raises:
            NotFoundError: On HTTP 404.
            RemoteUnreachableError: On any other transport or HTTP failure.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._get_session().get(
                url, params=params, timeout=(10, 60)
            )
        except requests.RequestException as e:
            raise RemoteUnreachableError(
                f"Request to {self.config.portal_hostname} failed: {e}"
            ) from e

        if response.status_code == 404:
            raise NotFoundError(f"Portal returned 404 for {path}")
        try:
            response.raise_for_status()
            return response.json()
        except (requests.HTTPError, ValueError) as e:
            raise RemoteUnreachableError(
                f"Portal {self.config.portal_hostname} answered "
                f"{response.status_code} for {path}: {e}"
            ) from e

    @staticmethod
    def _endpoint(module_type: str) -> str:
        try:
            return MODULE_ENDPOINTS[module_type]
        except KeyError:
            raise NotFoundError(
                f"Unknown module type '{module_type}'. "
                f"Expected one of: {', '.join(MODULE_ENDPOINTS)}"
            ) from None

    def fetch_module_record(
        self, portal_id: str, module_type: str, module_id: int
    ) -> dict[str, Any]:
        """Fetch the full module record, including ``version``."""
        self._check_portal(portal_id)
        record = self._get(f"{self._endpoint(module_type)}/{module_id}")
        if not isinstance(record, dict):
            raise RemoteUnreachableError(
                f"Unexpected response for {module_type} {module_id}"
            )
        logger.debug(
            "Fetched %s %s (version %s)",
            module_type,
            module_id,
            record.get("version"),
        )
        return record

    def fetch_script_content(
        self,
        portal_id: str,
        module_type: str,
        module_id: int,
        role: ScriptRole,
    ) -> str:
        record = self.fetch_module_record(portal_id, module_type, module_id)
        return extract_script_content(record, module_type, role)

    def validate_connection(self) -> str:
        """Check the token by listing one datasource; returns the hostname."""
        self._get(MODULE_ENDPOINTS["datasource"], params={"size": 1, "fields": "id"})
        return self.config.portal_hostname

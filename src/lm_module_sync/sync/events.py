"""Engine-to-UI notifications.

The engine emits an ``EngineEvent`` whenever it surfaces a conflict, an
inactive binding, or a script status. Subscribers are plain callables; a
subscriber that raises is logged and the remaining subscribers still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CONFLICT = "conflict"
    BINDING_INACTIVE = "binding_inactive"
    SCRIPT_STATUS = "script_status"


class EngineEvent(BaseModel):
    """A notification for the UI layer.

    Attributes:
        kind: What was surfaced.
        module_key: ``ModuleIdentity.key`` of the module, when known.
        payload: JSON-compatible details (the dumped state object).
    """

    kind: EventKind
    module_key: str | None = None
    payload: dict[str, Any] = {}

    model_config = {"frozen": True}


Subscriber = Callable[[EngineEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: EngineEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Event subscriber %r failed on %s", callback, event.kind.value
                )

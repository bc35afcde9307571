from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationEvent:
    project_id: str
    entity: str
    action: str
    phase: str
    error: Optional[BaseException] = None
    scope: str = "mutation"


Listener = Callable[[MutationEvent], None]


class SyncEventBus:
    """Fan-out of sync notifications. A failing listener does not stop the others."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: MutationEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.warning(f"Sync listener failed on {event.entity}/{event.action}", exc_info=True)

"""In-process event delivery for front-end listeners."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("meterai.events")

USAGE_UPDATED = "usage-updated"

Listener = Callable[[str, dict[str, Any]], None]


class EventBus:
    """Fan events out to subscribed listeners; a failing listener never breaks the emitter."""

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

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(kind, payload)
            except Exception:
                logger.exception("Event listener failed", extra={"event": "listener_error", "kind": kind})


__all__ = ["EventBus", "USAGE_UPDATED"]

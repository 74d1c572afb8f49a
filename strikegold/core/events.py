from __future__ import annotations

import threading
from typing import Any, Callable, List

from strikegold.core.logging import get_logger

Listener = Callable[[Any], None]

log = get_logger("events")


class EventChannel:
    """Fire-and-forget broadcast owned by the component that emits it.

    Listeners run synchronously on the publisher's thread, after the publisher's
    write has committed. A failing listener is logged and never reaches the publisher.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, payload: Any = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                log.warning(f"{self.name} listener failed: {e}")

from __future__ import annotations

import threading
from typing import Callable, List

from .log import get_logger
from .model import IconResolvedEvent

log = get_logger(__name__)

IconListener = Callable[[IconResolvedEvent], None]


class IconEventChannel:
    """Fire-and-forget fan-out of IconResolvedEvent to registered listeners."""

    def __init__(self) -> None:
        self._listeners: List[IconListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: IconListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: IconResolvedEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                log.warning("Icon listener %r failed for %r", listener, event.id, exc_info=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

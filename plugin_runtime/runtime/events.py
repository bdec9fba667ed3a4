"""
Event Channel

Publish/subscribe over the host page's event dispatch. Plugins loaded
independently of one another talk through it; a failing handler is
logged and never reaches the emitter or the other handlers.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

ROUTE_CHANGE = "blog:route-change"
CONTENT_READY = "blog:content-ready"

EventHandler = Callable[[Any], Any]


class EventChannel:
    def __init__(self) -> None:
        self._listeners: dict[str, list[EventHandler]] = defaultdict(list)

    def add_listener(self, event: str, handler: EventHandler) -> None:
        if handler not in self._listeners[event]:
            self._listeners[event].append(handler)

    def remove_listener(self, event: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def dispatch(self, event: str, payload: Any = None) -> int:
        """Call every listener of `event`; returns how many completed without error."""
        delivered = 0
        for handler in list(self._listeners.get(event, ())):
            try:
                handler(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"[EventChannel] Handler for '{event}' failed: {e}")
        return delivered

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

"""Event surface of the realtime client.

Listeners are plain callables registered per event name. A failing listener
is logged and never breaks the emitter or its sibling listeners.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from realtime_mqtt.logging_abstraction import get_logger

__all__ = ["WARNING_EVENT", "EventListener", "RealtimeEvents"]

logger = get_logger(__name__)

WARNING_EVENT = "warning"

EventListener = Callable[..., Any]


class RealtimeEvents:
    def __init__(self) -> None:
        self.lp = "RealtimeEvents:"
        self.listeners: dict[str, list[EventListener]] = {}

    def on(self, name: str, listener: EventListener) -> None:
        """Register listener to receive ``name`` events."""
        self.listeners.setdefault(name, []).append(listener)
        logger.debug(
            "%s registered listener for '%s': %s",
            self.lp,
            name,
            getattr(listener, "__qualname__", listener.__class__.__name__),
        )

    def off(self, name: str, listener: EventListener) -> None:
        listeners = self.listeners.get(name)
        if not listeners or listener not in listeners:
            return
        listeners.remove(listener)
        if not listeners:
            del self.listeners[name]

    def listener_count(self, name: str) -> int:
        return len(self.listeners.get(name, ()))

    def emit(self, name: str, *args: Any) -> bool:
        """Notify all listeners of ``name``.

        Returns False when nobody was listening.
        """
        listeners = list(self.listeners.get(name, ()))
        if not listeners:
            if name == WARNING_EVENT and args:
                logger.warning("%s unhandled warning event: %s", self.lp, args[0])
            return False
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.exception(
                    "%s listener error for '%s' (%s): %s",
                    self.lp,
                    name,
                    getattr(listener, "__qualname__", listener.__class__.__name__),
                    e,
                )
        return True

"""Lifecycle notifications fanned out to observers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

LOG = logging.getLogger(__name__)

EventListener = Callable[..., None]


class ProxyEvent(str, Enum):
    """Events emitted by the proxy manager."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DOWNLOAD = "download"
    RETRY = "retry"


class EventNotifier:
    """Callback registry keyed by event; purely observational."""

    def __init__(self) -> None:
        self._listeners: dict[ProxyEvent, list[EventListener]] = {event: [] for event in ProxyEvent}

    def subscribe(self, event: ProxyEvent | str, listener: EventListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe handle."""

        key = ProxyEvent(event)
        self._listeners[key].append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners[key].remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def emit(self, event: ProxyEvent, *args: object) -> None:
        for listener in tuple(self._listeners[event]):
            try:
                listener(*args)
            except Exception:
                LOG.exception("Event listener failed", extra={"event": event.value})

    def listener_count(self, event: ProxyEvent | str) -> int:
        return len(self._listeners[ProxyEvent(event)])


__all__ = ["EventListener", "EventNotifier", "ProxyEvent"]

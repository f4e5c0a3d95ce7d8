"""Typed event channel used to publish session activity to subscribers.

Handlers are called synchronously in the emitting thread, which for
reading and poll-error events is one of the poller's worker threads.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .models.readings import ReadingKind

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Events a session can emit."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ERROR = "error"
    TEMPERATURE_READING = "temperature-reading"
    CO2_READING = "co2-reading"
    HUMIDITY_READING = "humidity-reading"


READING_EVENTS: dict[ReadingKind, EventType] = {
    ReadingKind.TEMPERATURE: EventType.TEMPERATURE_READING,
    ReadingKind.CO2: EventType.CO2_READING,
    ReadingKind.HUMIDITY: EventType.HUMIDITY_READING,
}


@dataclass(frozen=True)
class Event:
    """A single emitted event.

    ``payload`` is the endpoint address for CONNECT, ``None`` for
    DISCONNECT, the exception for ERROR and the numeric value for the
    reading events.
    """

    type: EventType
    payload: Any = None


Handler = Callable[[Event], None]


class EventChannel:
    """Observer registry keyed by :class:`EventType`."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``.

        Returns:
            A callable that removes the registration again.
        """
        event_type = EventType(event_type)
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(EventType(event_type), [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event_type: EventType, payload: Any = None) -> Event:
        """Deliver an event to every handler registered for its type."""
        event = Event(type=EventType(event_type), payload=payload)
        with self._lock:
            handlers = list(self._handlers.get(event.type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed on %s event", handler, event.type.value)
        return event

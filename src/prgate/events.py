"""Observer plumbing shared by the circuit breaker and the poller.

Listeners are plain callables. A listener that raises is logged and
skipped; it never reaches the emitter or the listeners after it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


# Circuit breaker event types
STATE_CHANGE = "state_change"
FAILURE_RECORDED = "failure_recorded"
SUCCESS_RECORDED = "success_recorded"
RESET = "reset"

# Poller event types
POLL_START = "poll_start"
POLL_COMPLETE = "poll_complete"
BACKOFF = "backoff"
FAILURE_CLASSIFIED = "failure_classified"
TERMINAL_FAILURE = "terminal_failure"
CIRCUIT_OPENED = "circuit_opened"


@dataclass(frozen=True)
class Event:
    """A single emitted event.

    ``data`` carries the type-specific payload, e.g. ``{"from": "closed",
    "to": "open"}`` for ``state_change`` or ``{"pr_number": 7, "poll_count": 2,
    "interval": 15000}`` for ``poll_start``.
    """
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=lambda: time.time() * 1000)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


EventListener = Callable[[Event], None]


class EventEmitter:
    """Explicit observer list with per-listener isolation."""

    def __init__(self, source: str = ""):
        self._source = source
        self._listeners: list[EventListener] = []
        self._lock = threading.Lock()

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event_type: str, timestamp: Optional[float] = None, **data: Any) -> Event:
        if timestamp is None:
            event = Event(type=event_type, data=data)
        else:
            event = Event(type=event_type, data=data, timestamp=timestamp)

        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.debug(
                    "event_listener_failed",
                    exc_info=True,
                    extra={"event": "event_listener_failed", "source": self._source, "event_type": event_type},
                )
        return event


class EventRecorder:
    """Listener that keeps every event it receives, in order."""

    def __init__(self):
        self._events: list[Event] = []

    def __call__(self, event: Event) -> None:
        self._events.append(event)

    def get_events(self, event_type: Optional[str] = None) -> list[Event]:
        """Get all events, optionally only those of one type."""
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.type == event_type]

    def types(self) -> list[str]:
        return [e.type for e in self._events]

    def clear(self) -> None:
        self._events.clear()

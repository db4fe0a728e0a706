"""Security event logging for the auth audit trail.

Listens on the event bus for failure events and records each one as a
WARNING on the ``auth.security`` logger plus a bounded in-memory history,
so observability can react to failures without coupling to call sites.
"""

import logging
import threading
from collections import deque
from typing import Callable

from core.event_bus import EventBus
from core.events import AuthEvent, AuthEventType

security_log = logging.getLogger("auth.security")


class SecurityLogger:
    """Append-only record of failed auth operations."""

    def __init__(self, max_events: int = 1000):
        self._events: deque[AuthEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """Subscribe to every failure event. Returns a detach function."""
        unsubscribes = [
            bus.subscribe(event_type, self.log)
            for event_type in AuthEventType
            if event_type.is_failure
        ]

        def detach() -> None:
            for unsubscribe in unsubscribes:
                unsubscribe()

        return detach

    def log(self, event: AuthEvent) -> None:
        """Record one event."""
        with self._lock:
            self._events.append(event)
        details = {k: v for k, v in event.payload.items() if k != "error"}
        security_log.warning(
            "%s: %s %s",
            event.name,
            event.payload.get("error", ""),
            details or "",
        )

    def get_recent_events(
        self,
        event_type: AuthEventType | None = None,
        limit: int = 100,
    ) -> list[AuthEvent]:
        """Recent events, newest first, optionally filtered by type."""
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if e.type is event_type]
        return list(reversed(events))[:limit]

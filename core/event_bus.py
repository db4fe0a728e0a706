"""
Event bus for identity lifecycle events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher. Handler errors are logged but never propagate:
the primary operation (repository write + audit) has already committed.
"""

import logging
import threading
from typing import Callable, Dict, List, Protocol

from core.events import AuthEvent, AuthEventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[AuthEvent], None]


class EventNotifier(Protocol):
    """Anything the session manager can publish events to."""

    def publish(self, event: AuthEvent) -> None: ...


class EventBus:
    """
    In-process event bus for identity lifecycle events.

    Subscribe by AuthEventType (or to every type), publish by event instance.
    Handlers are called synchronously in subscription order; type-specific
    handlers run before catch-all handlers.
    """

    def __init__(self):
        self._subscribers: Dict[AuthEventType, List[EventHandler]] = {}
        self._catch_all: List[EventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, event_type: AuthEventType, callback: EventHandler) -> Callable[[], None]:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to subscribe to (e.g. AuthEventType.USER_LOGGED_IN)
            callback: Function to call when event is published

        Returns:
            Function that removes this subscription when called.
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(event_type, [])
                if callback in handlers:
                    handlers.remove(callback)

        return unsubscribe

    def subscribe_all(self, callback: EventHandler) -> Callable[[], None]:
        """Subscribe to every event type. Returns an unsubscribe function."""
        with self._lock:
            self._catch_all.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._catch_all:
                    self._catch_all.remove(callback)

        return unsubscribe

    def unsubscribe_all(self, event_type: AuthEventType) -> None:
        """Remove every handler for one event type."""
        with self._lock:
            self._subscribers.pop(event_type, None)

    def clear(self) -> None:
        """Remove all handlers."""
        with self._lock:
            self._subscribers.clear()
            self._catch_all.clear()

    def publish(self, event: AuthEvent) -> None:
        """
        Publish an event to all subscribers of that type.

        Handlers are called synchronously in subscription order.
        Handler errors are logged but do not propagate; the primary
        operation has already committed.

        Args:
            event: AuthEvent instance to publish
        """
        # Snapshot so handlers may (un)subscribe while we iterate
        with self._lock:
            handlers = list(self._subscribers.get(event.type, [])) + list(self._catch_all)

        for callback in handlers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event.name,
                    event.event_id,
                )

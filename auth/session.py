"""Persisted session storage.

The session manager keeps the live session in memory and mirrors it into a
``SessionStore`` so a restarted process can hydrate it. Single-process
clients use ``MemorySessionStore``; server deployments use
``ValkeySessionStore``, which stores the session as JSON with a TTL that
matches the refresh token's remaining life.
"""

import logging
import threading
from datetime import timedelta
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from auth.types import Session
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Where the current session survives process restarts."""

    def load(self) -> Session | None: ...

    def save(self, session: Session, expires_in: timedelta) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """Session kept in process memory. Expiry is left to the session manager."""

    def __init__(self):
        self._session: Session | None = None
        self._lock = threading.Lock()

    def load(self) -> Session | None:
        with self._lock:
            return self._session.model_copy(deep=True) if self._session else None

    def save(self, session: Session, expires_in: timedelta) -> None:
        with self._lock:
            self._session = session.model_copy(deep=True)

    def clear(self) -> None:
        with self._lock:
            self._session = None


class ValkeySessionStore:
    """Session stored in Valkey under one key, with TTL."""

    DEFAULT_KEY = "session:current"

    def __init__(self, valkey: ValkeyClient, key: str = DEFAULT_KEY):
        self._valkey = valkey
        self._key = key

    def load(self) -> Session | None:
        """Load the persisted session.

        Corrupt data is deleted and treated as no session.
        """
        try:
            data = self._valkey.get_json(self._key)
        except ValueError:
            logger.warning("Persisted session under %s is not valid JSON; clearing", self._key)
            self._valkey.delete(self._key)
            return None

        if data is None:
            return None

        try:
            return Session.model_validate(data)
        except PydanticValidationError:
            logger.warning("Persisted session under %s has an invalid shape; clearing", self._key)
            self._valkey.delete(self._key)
            return None

    def save(self, session: Session, expires_in: timedelta) -> None:
        """Persist session; Valkey drops it after ``expires_in`` (at least 1 second)."""
        self._valkey.set_json(
            self._key,
            session.model_dump(mode="json"),
            expire_seconds=max(int(expires_in.total_seconds()), 1),
        )

    def clear(self) -> None:
        """Safe to call when nothing is stored."""
        self._valkey.delete(self._key)

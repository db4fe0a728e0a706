"""Single-use password reset and email verification tokens.

One outstanding token per user per purpose; issuing a new one replaces the
old. A token is live while the clock is before its expiry, the same rule
access tokens follow. Expired tokens are invalidated lazily when checked.

``MemoryTokenStore`` serves single-process clients. ``ValkeyTokenStore``
keeps tokens in Valkey so a link mailed before a restart still works after
it.
"""

import hashlib
import hmac
import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Callable, Protocol
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from auth.types import SingleUseToken, TokenPurpose
from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class SingleUseTokenStore(Protocol):
    """Issue, look up and consume single-use tokens."""

    def issue(self, user_id: UUID, purpose: TokenPurpose, lifetime: timedelta) -> SingleUseToken: ...

    def find_user(self, purpose: TokenPurpose, token: str) -> UUID | None: ...

    def matches(self, user_id: UUID, purpose: TokenPurpose, token: str) -> bool: ...

    def consume(self, user_id: UUID, purpose: TokenPurpose, token: str) -> bool: ...


class MemoryTokenStore:
    """In-memory token table keyed by (purpose, user_id)."""

    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self._tokens: dict[tuple[TokenPurpose, UUID], SingleUseToken] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def issue(self, user_id: UUID, purpose: TokenPurpose, lifetime: timedelta) -> SingleUseToken:
        """Generate and store a fresh token, replacing any outstanding one."""
        token = SingleUseToken(
            user_id=user_id,
            token=secrets.token_urlsafe(32),
            purpose=purpose,
            expires_at=self._clock() + lifetime,
        )
        with self._lock:
            self._tokens[(purpose, user_id)] = token
        return token

    def _live(self, key: tuple[TokenPurpose, UUID]) -> SingleUseToken | None:
        """Stored token for key unless expired (expired ones are dropped). Caller holds the lock."""
        stored = self._tokens.get(key)
        if stored is None:
            return None
        if self._clock() >= stored.expires_at:
            del self._tokens[key]
            return None
        return stored

    def find_user(self, purpose: TokenPurpose, token: str) -> UUID | None:
        """User id owning a live token with this value, or None."""
        with self._lock:
            for key in list(self._tokens):
                if key[0] != purpose:
                    continue
                stored = self._live(key)
                if stored is not None and _same(stored.token, token):
                    return stored.user_id
        return None

    def matches(self, user_id: UUID, purpose: TokenPurpose, token: str) -> bool:
        """True if the user's live token for purpose equals ``token``."""
        with self._lock:
            stored = self._live((purpose, user_id))
            return stored is not None and _same(stored.token, token)

    def consume(self, user_id: UUID, purpose: TokenPurpose, token: str) -> bool:
        """Delete the token if it matches and is live. Returns whether it was consumed."""
        with self._lock:
            stored = self._live((purpose, user_id))
            if stored is None or not _same(stored.token, token):
                return False
            del self._tokens[(purpose, user_id)]
            return True


class ValkeyTokenStore:
    """
    Tokens stored in Valkey with a TTL matching their lifetime.

    Keys:
        token:{purpose}:{user_id}            the token document
        token:{purpose}:lookup:{sha256}      owning user id, for find_user

    The lookup key is a digest of the token so raw tokens never appear in
    key names.
    """

    def __init__(self, valkey: ValkeyClient, clock: Callable[[], datetime] = now_utc):
        self._valkey = valkey
        self._clock = clock

    @staticmethod
    def _token_key(purpose: TokenPurpose, user_id: UUID) -> str:
        return f"token:{purpose.value}:{user_id}"

    @staticmethod
    def _lookup_key(purpose: TokenPurpose, token: str) -> str:
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return f"token:{purpose.value}:lookup:{digest}"

    def _load(self, key: str) -> SingleUseToken | None:
        """Stored token under key. Corrupt documents are deleted."""
        try:
            data = self._valkey.get_json(key)
            if data is None:
                return None
            return SingleUseToken.model_validate(data)
        except (ValueError, PydanticValidationError):
            logger.warning("Stored token under %s is corrupt; deleting", key)
            self._valkey.delete(key)
            return None

    def _live(self, purpose: TokenPurpose, user_id: UUID) -> SingleUseToken | None:
        key = self._token_key(purpose, user_id)
        stored = self._load(key)
        if stored is None:
            return None
        if self._clock() >= stored.expires_at:
            self._valkey.delete(key)
            self._valkey.delete(self._lookup_key(purpose, stored.token))
            return None
        return stored

    def issue(self, user_id: UUID, purpose: TokenPurpose, lifetime: timedelta) -> SingleUseToken:
        """Generate and store a fresh token, replacing any outstanding one."""
        token = SingleUseToken(
            user_id=user_id,
            token=secrets.token_urlsafe(32),
            purpose=purpose,
            expires_at=self._clock() + lifetime,
        )
        key = self._token_key(purpose, user_id)
        previous = self._load(key)
        if previous is not None:
            self._valkey.delete(self._lookup_key(purpose, previous.token))

        ttl = max(int(lifetime.total_seconds()), 1)
        self._valkey.set_json(key, token.model_dump(mode="json"), expire_seconds=ttl)
        self._valkey.set_json(
            self._lookup_key(purpose, token.token),
            {"user_id": str(user_id)},
            expire_seconds=ttl,
        )
        return token

    def find_user(self, purpose: TokenPurpose, token: str) -> UUID | None:
        """User id owning a live token with this value, or None."""
        try:
            data = self._valkey.get_json(self._lookup_key(purpose, token))
            user_id = UUID(data["user_id"]) if data else None
        except (ValueError, KeyError, TypeError):
            logger.warning("Token lookup entry for %s is corrupt", purpose.value)
            return None
        if user_id is None or not self.matches(user_id, purpose, token):
            return None
        return user_id

    def matches(self, user_id: UUID, purpose: TokenPurpose, token: str) -> bool:
        """True if the user's live token for purpose equals ``token``."""
        stored = self._live(purpose, user_id)
        return stored is not None and _same(stored.token, token)

    def consume(self, user_id: UUID, purpose: TokenPurpose, token: str) -> bool:
        """Delete the token if it matches and is live.

        Returns False when another consumer deleted it first.
        """
        if not self.matches(user_id, purpose, token):
            return False
        if not self._valkey.delete(self._token_key(purpose, user_id)):
            return False
        self._valkey.delete(self._lookup_key(purpose, token))
        return True

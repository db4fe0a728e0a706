"""
Lifecycle events for the identity core.

Immutable event objects that describe what happened to a user or a session.
Events enable loose coupling between the session manager and whoever reacts
(audit trail, security logging, UI state); the manager publishes what
happened, and subscribers react without the publisher knowing who's
listening.

Event names are the dotted strings other subsystems already key on
("user.registered", "auth.token.refreshed", ...). Failure variants carry
an ``error`` field in their payload.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


class AuthEventType(Enum):
    """Every event the identity core publishes."""

    USER_REGISTERED = "user.registered"
    USER_LOGGED_IN = "user.loggedin"
    USER_LOGGED_OUT = "user.loggedout"
    TOKEN_REFRESHED = "auth.token.refreshed"
    PASSWORD_RESET_REQUESTED = "user.password.reset.requested"
    PASSWORD_RESET_COMPLETED = "user.password.reset.completed"
    EMAIL_VERIFIED = "user.email.verified"
    PROFILE_UPDATED = "user.profile.updated"

    # =========================================================================
    # FAILURE VARIANTS
    # =========================================================================

    REGISTRATION_FAILED = "auth.registration.failed"
    LOGIN_FAILED = "auth.login.failed"
    TOKEN_REFRESH_FAILED = "auth.token.refresh.failed"
    PASSWORD_RESET_REQUEST_FAILED = "auth.password.reset.request.failed"
    PASSWORD_RESET_FAILED = "auth.password.reset.failed"
    EMAIL_VERIFICATION_FAILED = "user.email.verification.failed"
    PROFILE_UPDATE_FAILED = "user.profile.update.failed"

    @property
    def is_failure(self) -> bool:
        return self.value.endswith(".failed")


@dataclass(frozen=True, kw_only=True)
class AuthEvent:
    """A single published lifecycle event."""
    type: AuthEventType
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)

    @classmethod
    def create(cls, event_type: AuthEventType, **payload: Any) -> "AuthEvent":
        return cls(type=event_type, payload=payload)

    @property
    def name(self) -> str:
        return self.type.value

"""
Audit trail for identity actions.

Every successful state-changing operation (signup, login, logout, profile
update, password actions) is logged here once. The audit log is:
- Append-only (entries never modified or deleted)
- User-attributed (who the action belongs to)
- Detailed (free-form metadata, including old/new values on updates)

The sink is an interface; ``InMemoryAuditLog`` is the local stand-in for a
durable audit table and ``LoggingAuditSink`` forwards entries to the
standard logging system.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol
from uuid import UUID, uuid4

from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Kind of action being recorded."""

    SIGNUP = "signup"
    LOGIN = "login"
    LOGOUT = "logout"
    PROFILE_UPDATE = "profile_update"
    FORM_SUBMISSION = "form_submission"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditSink(Protocol):
    """Consumer of audit entries."""

    def log_action(self, user_id: UUID, action: AuditAction, metadata: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class AuditEntry:
    """One recorded action."""
    user_id: UUID
    action: AuditAction
    metadata: dict[str, Any]
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=now_utc)


class InMemoryAuditLog:
    """
    Append-only audit trail kept in process memory.

    Usage:
        audit = InMemoryAuditLog()
        audit.log_action(user.id, AuditAction.LOGIN, {"email": user.email})
        history = audit.get_user_activity(user.id)
    """

    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        self._clock = clock

    def log_action(
        self,
        user_id: UUID,
        action: AuditAction,
        metadata: dict[str, Any],
    ) -> None:
        """
        Record an action.

        Args:
            user_id: User the action belongs to
            action: The action performed
            metadata: Free-form details (never include secrets)
        """
        entry = AuditEntry(
            user_id=user_id,
            action=action,
            metadata=dict(metadata),
            created_at=self._clock(),
        )
        with self._lock:
            self._entries.append(entry)

    def get_user_activity(self, user_id: UUID, limit: int = 100) -> list[AuditEntry]:
        """
        Get recent activity by user.

        Returns:
            List of audit entries, newest first.
        """
        with self._lock:
            matching = [e for e in self._entries if e.user_id == user_id]
        return list(reversed(matching))[:limit]

    def entries(self) -> list[AuditEntry]:
        """All entries, oldest first."""
        with self._lock:
            return list(self._entries)


class LoggingAuditSink:
    """Audit sink that writes each entry to a logger at INFO."""

    def __init__(self, audit_logger: logging.Logger | None = None):
        self._logger = audit_logger or logger

    def log_action(self, user_id: UUID, action: AuditAction, metadata: dict[str, Any]) -> None:
        self._logger.info(
            "audit action=%s user_id=%s metadata=%s",
            action.value,
            user_id,
            metadata,
        )

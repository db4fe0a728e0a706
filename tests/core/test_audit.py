"""Tests for the audit trail."""

import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from core.audit import AuditAction, InMemoryAuditLog, LoggingAuditSink, compute_changes


class TestAuditAction:
    """Test AuditAction enum."""

    def test_has_identity_actions(self):
        """Enum has the actions the identity core records."""
        assert AuditAction.SIGNUP.value == "signup"
        assert AuditAction.LOGIN.value == "login"
        assert AuditAction.LOGOUT.value == "logout"
        assert AuditAction.PROFILE_UPDATE.value == "profile_update"
        assert AuditAction.FORM_SUBMISSION.value == "form_submission"


class TestComputeChanges:
    """Test compute_changes helper function."""

    def test_detects_changed_fields(self):
        """Changed fields appear in result."""
        old = {"first_name": "Mero", "last_name": "Kila"}
        new = {"first_name": "Mero", "last_name": "Wari"}

        changes = compute_changes(old, new)

        assert changes == {"last_name": {"old": "Kila", "new": "Wari"}}

    def test_detects_added_fields(self):
        """New fields appear with old=None."""
        changes = compute_changes({"a": 1}, {"a": 1, "b": 2})

        assert changes == {"b": {"old": None, "new": 2}}

    def test_detects_removed_fields(self):
        """Removed fields appear with new=None."""
        changes = compute_changes({"a": 1, "b": 2}, {"a": 1})

        assert changes == {"b": {"old": 2, "new": None}}

    def test_excludes_updated_at_by_default(self):
        """updated_at is ignored unless asked for."""
        changes = compute_changes({"updated_at": "t1"}, {"updated_at": "t2"})

        assert changes == {}

    def test_custom_exclude_fields(self):
        """Custom exclude list replaces the default."""
        old = {"phone_number": "1", "updated_at": "t1"}
        new = {"phone_number": "2", "updated_at": "t2"}

        changes = compute_changes(old, new, exclude_fields={"phone_number"})

        assert changes == {"updated_at": {"old": "t1", "new": "t2"}}

    def test_empty_when_no_changes(self):
        assert compute_changes({"a": 1}, {"a": 1}) == {}


class TestInMemoryAuditLog:

    def test_log_action_creates_entry(self):
        audit = InMemoryAuditLog()
        user_id = uuid4()

        audit.log_action(user_id, AuditAction.LOGIN, {"email": "a@x.com"})

        [entry] = audit.entries()
        assert entry.user_id == user_id
        assert entry.action is AuditAction.LOGIN
        assert entry.metadata == {"email": "a@x.com"}

    def test_entries_use_injected_clock(self):
        fixed = datetime(2025, 1, 1, tzinfo=timezone.utc)
        audit = InMemoryAuditLog(clock=lambda: fixed)

        audit.log_action(uuid4(), AuditAction.LOGOUT, {})

        assert audit.entries()[0].created_at == fixed

    def test_metadata_is_copied(self):
        """Mutating the caller's dict later doesn't rewrite history."""
        audit = InMemoryAuditLog()
        metadata = {"email": "a@x.com"}

        audit.log_action(uuid4(), AuditAction.LOGIN, metadata)
        metadata["email"] = "changed@x.com"

        assert audit.entries()[0].metadata == {"email": "a@x.com"}

    def test_get_user_activity_newest_first(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        times = iter([now, now + timedelta(minutes=1)])
        audit = InMemoryAuditLog(clock=lambda: next(times))
        user_id = uuid4()

        audit.log_action(user_id, AuditAction.SIGNUP, {})
        audit.log_action(user_id, AuditAction.LOGIN, {})

        actions = [e.action for e in audit.get_user_activity(user_id)]
        assert actions == [AuditAction.LOGIN, AuditAction.SIGNUP]

    def test_get_user_activity_filters_by_user(self):
        audit = InMemoryAuditLog()
        user_a, user_b = uuid4(), uuid4()

        audit.log_action(user_a, AuditAction.LOGIN, {})
        audit.log_action(user_b, AuditAction.LOGIN, {})

        assert [e.user_id for e in audit.get_user_activity(user_a)] == [user_a]

    def test_get_user_activity_respects_limit(self):
        audit = InMemoryAuditLog()
        user_id = uuid4()
        for _ in range(5):
            audit.log_action(user_id, AuditAction.LOGIN, {})

        assert len(audit.get_user_activity(user_id, limit=2)) == 2


class TestLoggingAuditSink:

    def test_writes_info_record(self, caplog):
        sink = LoggingAuditSink()
        user_id = uuid4()

        with caplog.at_level(logging.INFO, logger="core.audit"):
            sink.log_action(user_id, AuditAction.LOGOUT, {"email": "a@x.com"})

        assert "action=logout" in caplog.text
        assert str(user_id) in caplog.text

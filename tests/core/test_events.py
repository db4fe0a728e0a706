"""Tests for identity lifecycle events."""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from core.events import AuthEvent, AuthEventType


class TestAuthEventType:

    def test_names_match_published_strings(self):
        """Other subsystems key on these exact names."""
        assert AuthEventType.USER_REGISTERED.value == "user.registered"
        assert AuthEventType.USER_LOGGED_IN.value == "user.loggedin"
        assert AuthEventType.USER_LOGGED_OUT.value == "user.loggedout"
        assert AuthEventType.TOKEN_REFRESHED.value == "auth.token.refreshed"
        assert AuthEventType.EMAIL_VERIFIED.value == "user.email.verified"
        assert AuthEventType.PROFILE_UPDATED.value == "user.profile.updated"

    def test_failure_variants_flagged(self):
        assert AuthEventType.LOGIN_FAILED.is_failure
        assert AuthEventType.PROFILE_UPDATE_FAILED.is_failure
        assert not AuthEventType.USER_LOGGED_IN.is_failure

    def test_every_operation_has_a_failure_variant(self):
        failures = {t for t in AuthEventType if t.is_failure}
        assert len(failures) == 7


class TestAuthEvent:

    def test_create_populates_envelope(self):
        """create() fills in id and timestamp."""
        user_id = uuid4()
        event = AuthEvent.create(AuthEventType.USER_LOGGED_IN, user_id=user_id, email="a@x.com")

        assert event.type is AuthEventType.USER_LOGGED_IN
        assert event.payload == {"user_id": user_id, "email": "a@x.com"}
        assert event.event_id
        assert event.occurred_at.tzinfo is not None

    def test_event_ids_are_unique(self):
        first = AuthEvent.create(AuthEventType.USER_LOGGED_OUT)
        second = AuthEvent.create(AuthEventType.USER_LOGGED_OUT)
        assert first.event_id != second.event_id

    def test_name_is_dotted_string(self):
        event = AuthEvent.create(AuthEventType.TOKEN_REFRESHED)
        assert event.name == "auth.token.refreshed"

    def test_is_immutable(self):
        event = AuthEvent.create(AuthEventType.TOKEN_REFRESHED)
        with pytest.raises(FrozenInstanceError):
            event.type = AuthEventType.USER_LOGGED_OUT

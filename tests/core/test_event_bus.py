"""Tests for EventBus."""

import logging

from core.event_bus import EventBus
from core.events import AuthEvent, AuthEventType


def _login_event():
    return AuthEvent.create(AuthEventType.USER_LOGGED_IN, email="a@x.com")


# =============================================================================
# SUBSCRIBE AND PUBLISH
# =============================================================================


class TestSubscribeAndPublish:

    def test_single_handler_receives_the_exact_event_object(self):
        bus = EventBus()
        received = []
        bus.subscribe(AuthEventType.USER_LOGGED_IN, received.append)

        event = _login_event()
        bus.publish(event)

        assert len(received) == 1
        assert received[0] is event

    def test_handlers_only_receive_their_type(self):
        bus = EventBus()
        received = []
        bus.subscribe(AuthEventType.USER_LOGGED_OUT, received.append)

        bus.publish(_login_event())

        assert received == []

    def test_handlers_run_in_subscription_order(self):
        bus = EventBus()
        order = []
        bus.subscribe(AuthEventType.USER_LOGGED_IN, lambda e: order.append("first"))
        bus.subscribe(AuthEventType.USER_LOGGED_IN, lambda e: order.append("second"))

        bus.publish(_login_event())

        assert order == ["first", "second"]

    def test_catch_all_runs_after_typed_handlers(self):
        bus = EventBus()
        order = []
        bus.subscribe_all(lambda e: order.append("all"))
        bus.subscribe(AuthEventType.USER_LOGGED_IN, lambda e: order.append("typed"))

        bus.publish(_login_event())

        assert order == ["typed", "all"]

    def test_publish_without_subscribers_is_noop(self):
        EventBus().publish(_login_event())


# =============================================================================
# UNSUBSCRIBE
# =============================================================================


class TestUnsubscribe:

    def test_returned_function_removes_handler(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(AuthEventType.USER_LOGGED_IN, received.append)

        unsubscribe()
        bus.publish(_login_event())

        assert received == []

    def test_unsubscribe_twice_is_safe(self):
        bus = EventBus()
        unsubscribe = bus.subscribe_all(lambda e: None)

        unsubscribe()
        unsubscribe()

    def test_unsubscribe_all_for_type(self):
        bus = EventBus()
        received = []
        bus.subscribe(AuthEventType.USER_LOGGED_IN, received.append)
        bus.subscribe(AuthEventType.USER_LOGGED_IN, received.append)

        bus.unsubscribe_all(AuthEventType.USER_LOGGED_IN)
        bus.publish(_login_event())

        assert received == []

    def test_clear_removes_everything(self):
        bus = EventBus()
        received = []
        bus.subscribe(AuthEventType.USER_LOGGED_IN, received.append)
        bus.subscribe_all(received.append)

        bus.clear()
        bus.publish(_login_event())

        assert received == []

    def test_handler_may_unsubscribe_while_publishing(self):
        """Publishing iterates a snapshot of the handler list."""
        bus = EventBus()
        received = []
        unsubscribe = None

        def once(event):
            received.append(event)
            unsubscribe()

        unsubscribe = bus.subscribe(AuthEventType.USER_LOGGED_IN, once)
        bus.publish(_login_event())
        bus.publish(_login_event())

        assert len(received) == 1


# =============================================================================
# ERROR ISOLATION
# =============================================================================


class TestErrorIsolation:

    def test_failing_handler_does_not_block_others(self, caplog):
        """One subscriber raising must not stop the rest."""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(AuthEventType.USER_LOGGED_IN, broken)
        bus.subscribe(AuthEventType.USER_LOGGED_IN, received.append)

        with caplog.at_level(logging.ERROR, logger="core.event_bus"):
            bus.publish(_login_event())

        assert len(received) == 1
        assert "broken" in caplog.text
        assert "user.loggedin" in caplog.text

    def test_error_does_not_reach_publisher(self):
        bus = EventBus()
        bus.subscribe_all(lambda e: 1 / 0)

        bus.publish(_login_event())

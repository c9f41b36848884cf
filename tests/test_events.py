"""Tests for the event dispatcher and logger subscriber."""

from __future__ import annotations

import logging

import pytest

from apisync.entities import Entity
from apisync.events import (
    EventDispatcher,
    LoggerSubscriber,
    PushAllowedEvent,
    PushParams,
    SignalEvent,
    SyncEvents,
)
from apisync.mapping.models import Mapping


@pytest.fixture
def dispatcher() -> EventDispatcher:
    """Create an empty dispatcher."""
    return EventDispatcher()


class TestEventDispatcher:
    """Tests for EventDispatcher class."""

    def test_subscribers_run_in_order(self, dispatcher: EventDispatcher) -> None:
        """Subscribers should be called in registration order."""
        calls: list[str] = []
        dispatcher.subscribe(SyncEvents.PUSH_SUCCESS, lambda e: calls.append("first"))
        dispatcher.subscribe(SyncEvents.PUSH_SUCCESS, lambda e: calls.append("second"))

        dispatcher.dispatch(SyncEvents.PUSH_SUCCESS, object())

        assert calls == ["first", "second"]

    def test_dispatch_returns_event(self, dispatcher: EventDispatcher) -> None:
        """Dispatch should return the (possibly mutated) event."""
        event = SignalEvent("hello")
        assert dispatcher.dispatch(SyncEvents.NOTICE, event) is event

    def test_subscriber_can_veto(self, dispatcher: EventDispatcher, mapping: Mapping) -> None:
        """A subscriber should be able to disallow a push."""
        dispatcher.subscribe(SyncEvents.PUSH_ALLOWED, lambda e: e.disallow_push())
        event = dispatcher.dispatch(
            SyncEvents.PUSH_ALLOWED, PushAllowedEvent(Entity("node", "contact", 1), mapping, "create")
        )
        assert event.allowed is False

    def test_subscribe_by_name(self, dispatcher: EventDispatcher) -> None:
        """String event names should be accepted."""
        calls: list[object] = []
        dispatcher.subscribe("pull_query", calls.append)  # type: ignore[arg-type]
        dispatcher.dispatch(SyncEvents.PULL_QUERY, "event")
        assert calls == ["event"]

    def test_unsubscribe(self, dispatcher: EventDispatcher) -> None:
        """Unsubscribed callbacks should no longer be called."""
        calls: list[object] = []
        dispatcher.subscribe(SyncEvents.NOTICE, calls.append)
        dispatcher.unsubscribe(SyncEvents.NOTICE, calls.append)
        dispatcher.notice("ignored")
        assert calls == []

    def test_signal_helpers(self, dispatcher: EventDispatcher) -> None:
        """error/warning/notice should dispatch rendered signal events."""
        received: list[SignalEvent] = []
        dispatcher.subscribe(SyncEvents.ERROR, received.append)
        error = ValueError("boom")

        dispatcher.error("Item %s failed %d times", "a", 3, exception=error)

        assert len(received) == 1
        assert received[0].render() == "Item a failed 3 times"
        assert received[0].exception is error


class TestPushParams:
    """Tests for PushParams class."""

    def test_param_access(self, mapping: Mapping) -> None:
        """Params should be settable and removable."""
        params = PushParams(mapping, Entity("node"), {"Name": "Ada"})
        params.set_param("Email", "ada@example.com")
        params.unset_param("Name")

        assert params.has_param("Email")
        assert not params.has_param("Name")
        assert params.get_params() == {"Email": "ada@example.com"}


class TestLoggerSubscriber:
    """Tests for LoggerSubscriber class."""

    def test_logs_signals(self, dispatcher: EventDispatcher, caplog: pytest.LogCaptureFixture) -> None:
        """Every signal should be logged at the default level."""
        LoggerSubscriber().register(dispatcher)
        with caplog.at_level(logging.INFO, logger="apisync"):
            dispatcher.error("an error")
            dispatcher.warning("a warning")
            dispatcher.notice("a notice")

        levels = {record.getMessage(): record.levelno for record in caplog.records}
        assert levels == {
            "an error": logging.ERROR,
            "a warning": logging.WARNING,
            "a notice": logging.INFO,
        }

    def test_threshold_drops_less_severe(
        self, dispatcher: EventDispatcher, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Signals below the configured level should be dropped."""
        LoggerSubscriber("warning").register(dispatcher)
        with caplog.at_level(logging.INFO, logger="apisync"):
            dispatcher.notice("quiet")
            dispatcher.warning("loud")

        messages = [record.getMessage() for record in caplog.records]
        assert "loud" in messages
        assert "quiet" not in messages

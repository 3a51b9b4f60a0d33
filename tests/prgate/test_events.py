"""Tests for events.py module."""

from unittest.mock import MagicMock

from prgate.events import Event, EventEmitter, EventRecorder


class TestEvent:
    """Tests for Event records."""

    def test_data_access(self):
        """Test payload keys are readable by index and get()."""
        event = Event(type="backoff", data={"new_interval": 15000}, timestamp=1.0)

        assert event["new_interval"] == 15000
        assert event.get("reason") is None
        assert event.get("reason", "pending") == "pending"


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_emit_delivers_in_registration_order(self):
        """Test listeners are called in the order they were added."""
        emitter = EventEmitter()
        calls = []
        emitter.on_event(lambda e: calls.append(("a", e.type)))
        emitter.on_event(lambda e: calls.append(("b", e.type)))

        emitter.emit("reset")

        assert calls == [("a", "reset"), ("b", "reset")]

    def test_emit_returns_event(self):
        """Test emit returns the event it delivered."""
        emitter = EventEmitter()

        event = emitter.emit("poll_start", timestamp=42.0, pr_number=7)

        assert event.type == "poll_start"
        assert event.timestamp == 42.0
        assert event["pr_number"] == 7

    def test_failing_listener_is_isolated(self):
        """Test one listener raising does not stop the others."""
        emitter = EventEmitter()
        recorder = EventRecorder()
        emitter.on_event(MagicMock(side_effect=Exception("listener bug")))
        emitter.on_event(recorder)

        emitter.emit("reset")

        assert recorder.types() == ["reset"]

    def test_unsubscribe_twice_is_harmless(self):
        """Test unsubscribing is idempotent."""
        emitter = EventEmitter()
        unsubscribe = emitter.on_event(lambda e: None)

        unsubscribe()
        unsubscribe()

        assert emitter.listener_count == 0


class TestEventRecorder:
    """Tests for EventRecorder."""

    def test_filter_and_clear(self):
        """Test events can be filtered by type and cleared."""
        emitter = EventEmitter()
        recorder = EventRecorder()
        emitter.on_event(recorder)
        emitter.emit("poll_start")
        emitter.emit("backoff")
        emitter.emit("poll_start")

        assert len(recorder.get_events("poll_start")) == 2
        assert recorder.types() == ["poll_start", "backoff", "poll_start"]

        recorder.clear()
        assert recorder.get_events() == []

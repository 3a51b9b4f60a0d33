"""Tests for circuit_breaker.py module."""

import os
import threading
from unittest.mock import MagicMock, patch

import pytest

from prgate.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from prgate.errors import CircuitOpenError
from prgate.events import (
    FAILURE_RECORDED,
    RESET,
    STATE_CHANGE,
    SUCCESS_RECORDED,
    EventRecorder,
)
from prgate.models import FailureType


def make_breaker(clock, **overrides):
    config = CircuitBreakerConfig(**overrides) if overrides else CircuitBreakerConfig()
    return CircuitBreaker(config, clock=clock)


class TestCircuitState:
    """Tests for CircuitState enum."""

    def test_states(self):
        """Test CircuitState values."""
        assert CircuitState.CLOSED.value == "closed"
        assert CircuitState.OPEN.value == "open"
        assert CircuitState.HALF_OPEN.value == "half_open"


class TestCircuitBreakerConfig:
    """Tests for CircuitBreakerConfig class."""

    def test_default_values(self):
        """Test default config values."""
        config = CircuitBreakerConfig()

        assert config.failure_threshold == 3
        assert config.success_threshold == 2
        assert config.reset_timeout_ms == 300_000
        assert config.failure_window_ms == 600_000

    def test_invalid_threshold_rejected(self):
        """Test a threshold below 1 is a programmer error."""
        with pytest.raises(ValueError):
            CircuitBreakerConfig(failure_threshold=0)
        with pytest.raises(ValueError):
            CircuitBreakerConfig(success_threshold=0)

    def test_negative_durations_rejected(self):
        """Test negative timeouts are rejected."""
        with pytest.raises(ValueError):
            CircuitBreakerConfig(reset_timeout_ms=-1)

    @patch.dict(os.environ, {}, clear=True)
    def test_from_env_defaults(self):
        """Test from_env with no variables set."""
        assert CircuitBreakerConfig.from_env() == CircuitBreakerConfig()

    @patch.dict(os.environ, {
        "PRGATE_FAILURE_THRESHOLD": "5",
        "PRGATE_SUCCESS_THRESHOLD": "1",
        "PRGATE_RESET_TIMEOUT_MS": "1000",
        "PRGATE_FAILURE_WINDOW_MS": "2000",
    }, clear=True)
    def test_from_env_with_values(self):
        """Test from_env reads PRGATE_* variables."""
        config = CircuitBreakerConfig.from_env()

        assert config.failure_threshold == 5
        assert config.success_threshold == 1
        assert config.reset_timeout_ms == 1000
        assert config.failure_window_ms == 2000

    def test_with_overrides(self):
        """Test with_overrides returns a new config."""
        config = CircuitBreakerConfig()
        changed = config.with_overrides(failure_threshold=7)

        assert changed.failure_threshold == 7
        assert config.failure_threshold == 3


class TestCircuitBreakerClosed:
    """Tests for the CLOSED state."""

    def test_starts_closed(self, clock):
        """Test a new breaker is closed and allows attempts."""
        breaker = make_breaker(clock)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_closed()
        assert breaker.can_attempt() is True
        assert breaker.failure_count == 0

    def test_opens_at_threshold(self, clock):
        """Test failures reaching the threshold open the circuit."""
        breaker = make_breaker(clock)

        breaker.record_failure()
        breaker.record_failure()
        assert breaker.is_closed()

        breaker.record_failure()
        assert breaker.is_open()
        assert breaker.can_attempt() is False

    def test_success_clears_failures(self, clock):
        """Test a success in CLOSED restarts the count."""
        breaker = make_breaker(clock)
        breaker.record_failure()
        breaker.record_failure()

        breaker.record_success()
        breaker.record_failure()
        breaker.record_failure()

        assert breaker.is_closed()
        assert breaker.failure_count == 2

    def test_failures_outside_window_are_dropped(self, clock):
        """Test only failures inside the rolling window count."""
        breaker = make_breaker(clock, failure_window_ms=1000)

        breaker.record_failure()
        breaker.record_failure()
        clock.advance(1500)
        breaker.record_failure()

        assert breaker.failure_count == 1
        assert breaker.is_closed()

    def test_terminal_failure_opens_immediately(self, clock):
        """Test a terminal failure opens the circuit on the first occurrence."""
        breaker = make_breaker(clock)

        breaker.record_failure(FailureType.TERMINAL)

        assert breaker.is_open()
        assert breaker.failure_count == 3

    def test_terminal_failure_accepts_string(self, clock):
        """Test failure types can be passed by value."""
        breaker = make_breaker(clock)

        breaker.record_failure("terminal")

        assert breaker.is_open()


class TestCircuitBreakerOpen:
    """Tests for OPEN and the lazy move to HALF_OPEN."""

    def test_prepare_raises_while_cooling_down(self, clock):
        """Test prepare_for_attempt refuses while the reset timeout runs."""
        breaker = make_breaker(clock, reset_timeout_ms=1000)
        breaker.force_open()
        clock.advance(500)

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.prepare_for_attempt()

        assert "circuit breaker is open" in str(exc_info.value)
        assert breaker.is_open()

    def test_can_attempt_does_not_change_state(self, clock):
        """Test can_attempt only peeks at the reset timeout."""
        breaker = make_breaker(clock, reset_timeout_ms=1000)
        breaker.record_failure(FailureType.TERMINAL)
        clock.advance(1000)

        assert breaker.can_attempt() is True
        assert breaker.is_open()

    def test_prepare_moves_to_half_open_after_timeout(self, clock):
        """Test the reset timeout is evaluated when an attempt is prepared."""
        breaker = make_breaker(clock, reset_timeout_ms=1000)
        breaker.record_failure(FailureType.TERMINAL)
        clock.advance(1000)

        breaker.prepare_for_attempt()

        assert breaker.is_half_open()

    def test_time_until_reset(self, clock):
        """Test remaining cooldown is reported while OPEN."""
        breaker = make_breaker(clock, reset_timeout_ms=1000)
        assert breaker.get_time_until_reset() == 0

        breaker.record_failure(FailureType.TERMINAL)
        clock.advance(400)

        assert breaker.get_time_until_reset() == 600


class TestCircuitBreakerHalfOpen:
    """Tests for HALF_OPEN recovery."""

    def _half_open(self, clock):
        breaker = make_breaker(clock, reset_timeout_ms=1000)
        breaker.record_failure(FailureType.TERMINAL)
        clock.advance(1000)
        breaker.prepare_for_attempt()
        return breaker

    def test_closes_after_success_threshold(self, clock):
        """Test consecutive successes close the circuit and clear counters."""
        breaker = self._half_open(clock)

        breaker.record_success()
        assert breaker.is_half_open()

        breaker.record_success()
        assert breaker.is_closed()
        status = breaker.get_status()
        assert status.failures == 0
        assert status.successes == 0

    def test_failure_reopens(self, clock):
        """Test any failure in HALF_OPEN reopens the circuit."""
        breaker = self._half_open(clock)
        breaker.record_success()

        breaker.record_failure(FailureType.TRANSIENT)

        assert breaker.is_open()
        assert breaker.get_status().successes == 0


class TestCircuitBreakerEvents:
    """Tests for emitted events."""

    def test_state_change_events(self, clock):
        """Test every transition emits state_change with from/to."""
        breaker = make_breaker(clock, reset_timeout_ms=1000, success_threshold=1)
        recorder = EventRecorder()
        breaker.on_event(recorder)

        breaker.record_failure(FailureType.TERMINAL)
        clock.advance(1000)
        breaker.prepare_for_attempt()
        breaker.record_success()

        changes = [(e["from"], e["to"]) for e in recorder.get_events(STATE_CHANGE)]
        assert changes == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]
        assert recorder.get_events(SUCCESS_RECORDED)[0]["successes"] == 1
        assert RESET in recorder.types()

    def test_failure_recorded_event(self, clock):
        """Test failure_recorded carries the count and threshold."""
        breaker = make_breaker(clock)
        recorder = EventRecorder()
        breaker.on_event(recorder)

        breaker.record_failure(FailureType.TRANSIENT)

        event = recorder.get_events(FAILURE_RECORDED)[0]
        assert event["failures"] == 1
        assert event["threshold"] == 3
        assert event.timestamp == clock.now

    def test_terminal_failure_skips_failure_recorded(self, clock):
        """Test a terminal failure goes straight to the state change."""
        breaker = make_breaker(clock)
        recorder = EventRecorder()
        breaker.on_event(recorder)

        breaker.record_failure(FailureType.TERMINAL)

        assert recorder.types() == [STATE_CHANGE]

    def test_reset_from_closed_emits_only_reset(self, clock):
        """Test reset without a state change emits no state_change."""
        breaker = make_breaker(clock)
        recorder = EventRecorder()
        breaker.on_event(recorder)

        breaker.reset()

        assert recorder.types() == [RESET]

    def test_listener_exception_is_isolated(self, clock):
        """Test a failing listener does not break the state machine."""
        breaker = make_breaker(clock)
        bad = MagicMock(side_effect=RuntimeError("boom"))
        recorder = EventRecorder()
        breaker.on_event(bad)
        breaker.on_event(recorder)

        breaker.record_failure(FailureType.TERMINAL)

        assert breaker.is_open()
        assert bad.called
        assert recorder.types() == [STATE_CHANGE]

    def test_unsubscribe(self, clock):
        """Test the callable returned by on_event removes the listener."""
        breaker = make_breaker(clock)
        recorder = EventRecorder()
        unsubscribe = breaker.on_event(recorder)

        unsubscribe()
        breaker.record_failure()

        assert recorder.get_events() == []

    def test_listeners_run_outside_the_lock(self, clock):
        """Test another thread can read the breaker while a listener runs."""
        breaker = make_breaker(clock)
        observed = []

        def listener(event):
            if event.type != STATE_CHANGE:
                return
            worker = threading.Thread(target=lambda: observed.append(breaker.get_status().state))
            worker.start()
            worker.join(timeout=2)

        breaker.on_event(listener)
        breaker.record_failure(FailureType.TERMINAL)

        assert observed == [CircuitState.OPEN]

    def test_events_after_refused_attempt(self, clock):
        """Test queued events are still delivered when prepare_for_attempt raises."""
        breaker = make_breaker(clock, reset_timeout_ms=1000)
        recorder = EventRecorder()
        breaker.on_event(recorder)

        breaker.force_open()
        with pytest.raises(CircuitOpenError):
            breaker.prepare_for_attempt()
        clock.advance(1000)
        breaker.prepare_for_attempt()

        changes = [(e["from"], e["to"]) for e in recorder.get_events(STATE_CHANGE)]
        assert changes == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
        ]


class TestCircuitBreakerExecute:
    """Tests for execute()."""

    @pytest.mark.asyncio
    async def test_execute_success(self, clock):
        """Test a successful async operation is recorded."""
        breaker = make_breaker(clock)

        async def op():
            return "ok"

        assert await breaker.execute(op) == "ok"
        assert breaker.is_closed()

    @pytest.mark.asyncio
    async def test_execute_failure_reraises(self, clock):
        """Test a failing operation is recorded and re-raised."""
        breaker = make_breaker(clock)

        def op():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await breaker.execute(op)
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_execute_when_open(self, clock):
        """Test execute refuses while the circuit is open."""
        breaker = make_breaker(clock)
        breaker.force_open()
        op = MagicMock()

        with pytest.raises(CircuitOpenError):
            await breaker.execute(op)
        op.assert_not_called()


class TestCircuitBreakerConcurrency:
    """Tests for shared use across threads."""

    def test_concurrent_failures_are_counted(self, clock):
        """Test failures recorded from many threads are all counted."""
        breaker = make_breaker(clock, failure_threshold=1000)

        def worker():
            for _ in range(50):
                breaker.record_failure()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert breaker.failure_count == 400
        assert breaker.is_closed()

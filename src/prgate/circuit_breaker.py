"""Circuit breaker for CI polling.

Stops polling a CI system that keeps failing and probes for recovery after
a cooldown:

- CLOSED: normal operation, attempts pass through
- OPEN: tripped, attempts are refused until the reset timeout elapses
- HALF_OPEN: testing recovery, consecutive successes close the circuit

OPEN -> HALF_OPEN is evaluated lazily when an attempt is checked; there is
no background timer. One breaker is meant to be shared by every poll in a
process, so all read-modify-write sequences run under a single lock. Events
are queued under the lock and delivered to listeners after it is released.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Optional, Union

from prgate.config.defaults import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW_MS,
    CIRCUIT_BREAKER_RESET_TIMEOUT_MS,
    CIRCUIT_BREAKER_SUCCESS_THRESHOLD,
)
from prgate.config.env import env_int
from prgate.errors import CircuitOpenError
from prgate.events import (
    FAILURE_RECORDED,
    RESET,
    STATE_CHANGE,
    SUCCESS_RECORDED,
    EventEmitter,
    EventListener,
)
from prgate.models import FailureType

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing - reject attempts
    HALF_OPEN = "half_open"  # Testing if recovery


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for the circuit breaker.

    Attributes:
        failure_threshold: Failures within the window before opening the circuit.
        success_threshold: Consecutive successes in HALF_OPEN to close the circuit.
        reset_timeout_ms: Time to stay OPEN after the last failure before probing.
        failure_window_ms: Only failures this recent count toward the threshold.
    """

    failure_threshold: int = CIRCUIT_BREAKER_FAILURE_THRESHOLD
    success_threshold: int = CIRCUIT_BREAKER_SUCCESS_THRESHOLD
    reset_timeout_ms: int = CIRCUIT_BREAKER_RESET_TIMEOUT_MS
    failure_window_ms: int = CIRCUIT_BREAKER_FAILURE_WINDOW_MS

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be at least 1")
        if self.reset_timeout_ms < 0 or self.failure_window_ms < 0:
            raise ValueError("reset_timeout_ms and failure_window_ms must not be negative")

    @classmethod
    def from_env(cls) -> "CircuitBreakerConfig":
        """Create config from environment variables with defaults as fallbacks."""
        return cls(
            failure_threshold=env_int("PRGATE_FAILURE_THRESHOLD", CIRCUIT_BREAKER_FAILURE_THRESHOLD),
            success_threshold=env_int("PRGATE_SUCCESS_THRESHOLD", CIRCUIT_BREAKER_SUCCESS_THRESHOLD),
            reset_timeout_ms=env_int("PRGATE_RESET_TIMEOUT_MS", CIRCUIT_BREAKER_RESET_TIMEOUT_MS),
            failure_window_ms=env_int("PRGATE_FAILURE_WINDOW_MS", CIRCUIT_BREAKER_FAILURE_WINDOW_MS),
        )

    def with_overrides(self, **overrides: Any) -> "CircuitBreakerConfig":
        return replace(self, **overrides)


@dataclass(frozen=True)
class CircuitBreakerStatus:
    """Point-in-time snapshot of a breaker."""
    state: CircuitState
    failures: int
    successes: int
    last_failure_time: float
    last_state_change_time: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "last_failure_time": self.last_failure_time,
            "last_state_change_time": self.last_state_change_time,
        }


class CircuitBreaker:
    """Circuit breaker guarding CI status checks.

    All methods are state mutation plus event emission. The only exception
    raised is CircuitOpenError from prepare_for_attempt().
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        name: str = "ci",
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or _now_ms

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = 0.0
        self._last_state_change_time = self._clock()
        self._failure_timestamps: list[float] = []

        self._events = EventEmitter(source=f"circuit_breaker:{name}")
        self._pending_events: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def get_state(self) -> CircuitState:
        return self._state

    def get_config(self) -> CircuitBreakerConfig:
        return self.config

    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Register an event listener. Returns an unsubscribe callable."""
        return self._events.on_event(listener)

    # -------------------------------------------------------------------------
    # Attempt gating
    # -------------------------------------------------------------------------

    def can_attempt(self) -> bool:
        """Check whether an attempt may proceed. Never changes state."""
        with self._lock:
            if self._state in (CircuitState.CLOSED, CircuitState.HALF_OPEN):
                return True
            return self._should_attempt_reset()

    def prepare_for_attempt(self) -> None:
        """Move OPEN to HALF_OPEN if the reset timeout has elapsed.

        Raises:
            CircuitOpenError: If the circuit is open and still cooling down.
        """
        with self._mutating():
            if self._state != CircuitState.OPEN:
                return
            if self._should_attempt_reset():
                self._transition_to(CircuitState.HALF_OPEN)
            else:
                raise CircuitOpenError(self._failure_count, self._last_failure_time)

    async def execute(self, operation: Callable[[], Union[Awaitable[Any], Any]]) -> Any:
        """Run an operation through the breaker, recording its outcome."""
        self.prepare_for_attempt()

        try:
            if asyncio.iscoroutinefunction(operation):
                result = await operation()
            else:
                result = operation()
                if asyncio.iscoroutine(result):
                    result = await result
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    # -------------------------------------------------------------------------
    # Outcome recording
    # -------------------------------------------------------------------------

    def record_success(self) -> None:
        """Record a successful attempt."""
        with self._mutating():
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                logger.debug(
                    f"Circuit '{self.name}': success {self._success_count}/"
                    f"{self.config.success_threshold}"
                )
                self._queue_event(
                    SUCCESS_RECORDED,
                    timestamp=self._clock(),
                    successes=self._success_count,
                    threshold=self.config.success_threshold,
                )
                if self._success_count >= self.config.success_threshold:
                    logger.info(
                        "circuit_breaker_state_change",
                        extra={
                            "event": "circuit_breaker_state_change",
                            "breaker": self.name,
                            "from_state": "HALF_OPEN",
                            "to_state": "CLOSED",
                            "reason": "recovery_success",
                        },
                    )
                    self._reset_locked()
            elif self._state == CircuitState.CLOSED:
                # Any success restarts the rolling window
                self._failure_count = 0
                self._failure_timestamps = []

    def record_failure(self, failure_type: Optional[Union[FailureType, str]] = None) -> None:
        """Record a failed attempt.

        Args:
            failure_type: Classification of the failure. A terminal failure
                opens the circuit immediately regardless of the threshold.
        """
        if failure_type is not None:
            failure_type = FailureType(failure_type)

        with self._mutating():
            now = self._clock()

            if failure_type == FailureType.TERMINAL:
                self._failure_count = self.config.failure_threshold
                self._last_failure_time = now
                self._success_count = 0
                logger.warning(
                    "circuit_breaker_state_change",
                    extra={
                        "event": "circuit_breaker_state_change",
                        "breaker": self.name,
                        "from_state": self._state.name,
                        "to_state": "OPEN",
                        "reason": "terminal_failure",
                    },
                )
                self._transition_to(CircuitState.OPEN)
                return

            window_start = now - self.config.failure_window_ms
            self._failure_timestamps = [ts for ts in self._failure_timestamps if ts > window_start]
            self._failure_timestamps.append(now)
            self._failure_count = len(self._failure_timestamps)
            self._last_failure_time = now

            self._queue_event(
                FAILURE_RECORDED,
                timestamp=now,
                failures=self._failure_count,
                threshold=self.config.failure_threshold,
            )

            if self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                logger.warning(
                    "circuit_breaker_state_change",
                    extra={
                        "event": "circuit_breaker_state_change",
                        "breaker": self.name,
                        "from_state": "HALF_OPEN",
                        "to_state": "OPEN",
                        "reason": "test_request_failed",
                    },
                )
                self._success_count = 0
                self._transition_to(CircuitState.OPEN)

            elif self._state == CircuitState.CLOSED and self._failure_count >= self.config.failure_threshold:
                logger.warning(
                    "circuit_breaker_state_change",
                    extra={
                        "event": "circuit_breaker_state_change",
                        "breaker": self.name,
                        "from_state": "CLOSED",
                        "to_state": "OPEN",
                        "failure_count": self._failure_count,
                        "threshold": self.config.failure_threshold,
                        "reset_timeout_ms": self.config.reset_timeout_ms,
                    },
                )
                self._transition_to(CircuitState.OPEN)

    # -------------------------------------------------------------------------
    # Manual control
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Force the circuit back to CLOSED and clear all counters."""
        with self._mutating():
            self._reset_locked()

    def force_open(self) -> None:
        """Force the circuit OPEN. The reset timeout starts now."""
        with self._mutating():
            self._last_failure_time = self._clock()
            self._transition_to(CircuitState.OPEN)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_status(self) -> CircuitBreakerStatus:
        with self._lock:
            return CircuitBreakerStatus(
                state=self._state,
                failures=self._failure_count,
                successes=self._success_count,
                last_failure_time=self._last_failure_time,
                last_state_change_time=self._last_state_change_time,
            )

    def get_time_until_reset(self) -> float:
        """Milliseconds until a recovery attempt is allowed (0 unless OPEN)."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0
            elapsed = self._clock() - self._last_failure_time
            return max(0, self.config.reset_timeout_ms - elapsed)

    def _should_attempt_reset(self) -> bool:
        return self._clock() - self._last_failure_time >= self.config.reset_timeout_ms

    def _transition_to(self, new_state: CircuitState) -> None:
        if self._state == new_state:
            return

        previous = self._state
        now = self._clock()
        self._state = new_state
        self._last_state_change_time = now

        if new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            logger.info(
                "circuit_breaker_state_change",
                extra={
                    "event": "circuit_breaker_state_change",
                    "breaker": self.name,
                    "from_state": previous.name,
                    "to_state": "HALF_OPEN",
                },
            )

        self._queue_event(STATE_CHANGE, timestamp=now, **{"from": previous, "to": new_state})

    def _reset_locked(self) -> None:
        previous = self._state
        now = self._clock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._failure_timestamps = []
        self._last_state_change_time = now

        self._queue_event(RESET, timestamp=now)
        if previous != CircuitState.CLOSED:
            self._queue_event(STATE_CHANGE, timestamp=now, **{"from": previous, "to": CircuitState.CLOSED})

    @contextmanager
    def _mutating(self) -> Iterator[None]:
        """Hold the lock for a state change, then deliver its events unlocked."""
        try:
            with self._lock:
                yield
        finally:
            self._flush_events()

    def _queue_event(self, event_type: str, **data: Any) -> None:
        self._pending_events.append((event_type, data))

    def _flush_events(self) -> None:
        with self._lock:
            pending, self._pending_events = self._pending_events, []
        for event_type, data in pending:
            self._events.emit(event_type, **data)

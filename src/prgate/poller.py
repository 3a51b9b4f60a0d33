"""
Intelligent CI polling with exponential backoff.

Features:
- Exponential backoff with additive jitter (decorrelates PRs polling in lockstep)
- Circuit breaker integration
- Failure classification (transient, persistent, terminal)
- Fast-fail on terminal failures
- Poll cap, optional per-call deadline and cancellation
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from prgate.circuit_breaker import CircuitBreaker
from prgate.config.defaults import (
    POLLER_BACKOFF_MULTIPLIER,
    POLLER_FAIL_FAST_ON_TERMINAL,
    POLLER_FAILURE_BACKOFF_FACTOR,
    POLLER_INITIAL_INTERVAL_MS,
    POLLER_MAX_INTERVAL_MS,
    POLLER_MAX_JITTER_MS,
    POLLER_MAX_POLLS,
)
from prgate.config.env import env_bool, env_float, env_int
from prgate.errors import (
    CICheckFailedError,
    CIMaxPollsExceededError,
    CircuitOpenError,
    CITerminalFailureError,
    CITimeoutError,
)
from prgate.events import (
    BACKOFF,
    CIRCUIT_OPENED,
    FAILURE_CLASSIFIED,
    POLL_COMPLETE,
    POLL_START,
    TERMINAL_FAILURE,
    EventEmitter,
    EventListener,
)
from prgate.failure_classifier import FailureClassifier
from prgate.models import CICheckFailure, FailedCheck, FailureType, StatusCheck

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


class PollReason(str, Enum):
    """Why polling stopped without success."""
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    MAX_POLLS_EXCEEDED = "max_polls_exceeded"
    TERMINAL_FAILURE = "terminal_failure"
    CANCELLED = "cancelled"


_USER_MESSAGES = {
    PollReason.CIRCUIT_OPEN: "CI has failed repeatedly, investigate before retrying",
    PollReason.TERMINAL_FAILURE: "This failure cannot be auto-retried",
    PollReason.MAX_POLLS_EXCEEDED: "CI is taking too long",
    PollReason.TIMEOUT: "CI did not finish before the deadline",
    PollReason.CANCELLED: "CI polling was cancelled",
}


@dataclass(frozen=True)
class PollerConfig:
    """Configuration for the poller.

    Attributes:
        initial_interval_ms: Starting interval that the first backoff grows from.
        max_interval_ms: Cap on the pre-jitter interval.
        backoff_multiplier: Growth factor per poll (scaled by 1.5 after a failure).
        max_jitter_ms: Upper bound of the random amount added to every wait.
        max_polls: Hard cap on status checks per call.
        fail_fast_on_terminal: Stop at the first terminal failure.
    """
    initial_interval_ms: int = POLLER_INITIAL_INTERVAL_MS
    max_interval_ms: int = POLLER_MAX_INTERVAL_MS
    backoff_multiplier: float = POLLER_BACKOFF_MULTIPLIER
    max_jitter_ms: int = POLLER_MAX_JITTER_MS
    max_polls: int = POLLER_MAX_POLLS
    fail_fast_on_terminal: bool = POLLER_FAIL_FAST_ON_TERMINAL

    def __post_init__(self):
        if self.initial_interval_ms < 0 or self.max_interval_ms < 0 or self.max_jitter_ms < 0:
            raise ValueError("poll intervals and jitter must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if self.max_polls < 1:
            raise ValueError("max_polls must be at least 1")

    @classmethod
    def from_env(cls) -> "PollerConfig":
        """Create config from environment variables with defaults as fallbacks."""
        return cls(
            initial_interval_ms=env_int("PRGATE_POLL_INITIAL_INTERVAL_MS", POLLER_INITIAL_INTERVAL_MS),
            max_interval_ms=env_int("PRGATE_POLL_MAX_INTERVAL_MS", POLLER_MAX_INTERVAL_MS),
            backoff_multiplier=env_float("PRGATE_POLL_BACKOFF_MULTIPLIER", POLLER_BACKOFF_MULTIPLIER),
            max_jitter_ms=env_int("PRGATE_POLL_MAX_JITTER_MS", POLLER_MAX_JITTER_MS),
            max_polls=env_int("PRGATE_POLL_MAX_POLLS", POLLER_MAX_POLLS),
            fail_fast_on_terminal=env_bool("PRGATE_FAIL_FAST_ON_TERMINAL", POLLER_FAIL_FAST_ON_TERMINAL),
        )

    def with_overrides(self, **overrides: Any) -> "PollerConfig":
        return replace(self, **overrides)


@dataclass
class CIStatus:
    """What a status checker reports for one poll."""
    state: str  # pending | running | success | failure
    checks: list[StatusCheck] = field(default_factory=list)
    failed_checks: list[FailedCheck] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        classifier: Optional[FailureClassifier] = None,
    ) -> "CIStatus":
        """Build a status from a mapping.

        Failed checks that carry a ``failure_type`` keep it. Ones that only
        carry an ``error_message`` are classified with that message.
        """
        return cls(
            state=data["state"],
            checks=[_as_status_check(c) for c in data.get("checks", [])],
            failed_checks=[_as_failed_check(c, classifier) for c in data.get("failed_checks", [])],
            error=data.get("error"),
        )


@dataclass(frozen=True)
class PollResult:
    """Outcome of poll_until_complete. Either success or a reason, never both."""
    success: bool
    poll_count: int
    elapsed_ms: int
    reason: Optional[PollReason] = None
    failure_details: Optional[CICheckFailure] = None
    # Classified failures seen on the last poll
    failed_checks: tuple[CICheckFailure, ...] = ()

    def __post_init__(self):
        if self.success == (self.reason is not None):
            raise ValueError("PollResult needs exactly one of success=True or a reason")

    def user_message(self) -> str:
        if self.success:
            return "CI passed"
        return _USER_MESSAGES[self.reason]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "poll_count": self.poll_count,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.failure_details is not None:
            data["failure_details"] = self.failure_details.to_dict()
        if self.failed_checks:
            data["failed_checks"] = [f.to_dict() for f in self.failed_checks]
        return data


StatusChecker = Callable[[int], Union[Awaitable[CIStatus], CIStatus]]


def next_base_interval(current_ms: float, outcome: str, config: PollerConfig) -> float:
    """
    Grow the pre-jitter interval.

    Formula: min(current * multiplier * (1.5 if failure/error else 1), max_interval)
    """
    multiplier = config.backoff_multiplier
    if outcome in ("failure", "error"):
        multiplier *= POLLER_FAILURE_BACKOFF_FACTOR
    return min(current_ms * multiplier, config.max_interval_ms)


def add_jitter(base_ms: float, max_jitter_ms: float, rng: Optional[random.Random] = None) -> int:
    """Add uniform(0, max_jitter) to the interval and floor it. Never shortens the wait."""
    uniform = rng.uniform if rng is not None else random.uniform
    return int(base_ms + uniform(0, max_jitter_ms))


class IntelligentPoller:
    """Polls CI status with backoff, circuit breaker protection and failure classification.

    One poller (and its breaker) is meant to be shared across many PRs.
    """

    def __init__(
        self,
        config: Optional[PollerConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        classifier: Optional[FailureClassifier] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or PollerConfig()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.classifier = classifier or FailureClassifier()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or _now_ms
        self._rng = rng
        self._events = EventEmitter(source="poller")
        self._active: set[_PollCall] = set()
        self._lock = threading.Lock()

    def get_circuit_breaker(self) -> CircuitBreaker:
        return self.circuit_breaker

    def get_config(self) -> PollerConfig:
        return self.config

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Register an event listener. Returns an unsubscribe callable."""
        return self._events.on_event(listener)

    def cancel(self, pr_number: Optional[int] = None) -> int:
        """
        Cancel in-flight polls, all of them or only those for one PR.

        Polls started afterwards are not affected. Safe to call from any thread.

        Returns:
            Number of polls that were cancelled
        """
        with self._lock:
            calls = [c for c in self._active if pr_number is None or c.pr_number == pr_number]
        for call in calls:
            call.cancel()
        return len(calls)

    @property
    def active_polls(self) -> int:
        with self._lock:
            return len(self._active)

    def reset(self) -> None:
        """Reset the circuit breaker. In-flight polls keep running."""
        self.circuit_breaker.reset()

    def classify_failure(self, check: StatusCheck, error_message: Optional[str] = None) -> CICheckFailure:
        return self.classifier.classify(check, error_message)

    def determine_failure_type(self, check_name: str, error_message: Optional[str] = None) -> FailureType:
        return self.classifier.determine_failure_type(check_name, error_message)

    async def poll_until_complete(
        self,
        pr_number: int,
        status_checker: StatusChecker,
        timeout_ms: Optional[float] = None,
    ) -> PollResult:
        """
        Poll CI status until it completes, fails terminally, or a limit is hit.

        Args:
            pr_number: Pull request to monitor
            status_checker: Sync or async callable returning a CIStatus for a PR
            timeout_ms: Optional wall-clock deadline for this call

        Returns:
            PollResult with success or the reason polling stopped
        """
        call = _PollCall(pr_number, asyncio.get_running_loop())
        with self._lock:
            self._active.add(call)
        try:
            return await self._poll(call, status_checker, timeout_ms)
        finally:
            with self._lock:
                self._active.discard(call)

    async def _poll(
        self,
        call: "_PollCall",
        status_checker: StatusChecker,
        timeout_ms: Optional[float],
    ) -> PollResult:
        pr_number = call.pr_number
        start = self._clock()
        deadline = start + timeout_ms if timeout_ms is not None else None
        breaker = self.circuit_breaker
        poll_count = 0
        interval = float(self.config.initial_interval_ms)
        last_failures: list[CICheckFailure] = []

        def stop(reason: PollReason, failure: Optional[CICheckFailure] = None) -> PollResult:
            return PollResult(
                success=False,
                reason=reason,
                failure_details=failure,
                failed_checks=tuple(last_failures),
                poll_count=poll_count,
                elapsed_ms=int(self._clock() - start),
            )

        while poll_count < self.config.max_polls:
            if call.cancelled.is_set():
                return stop(PollReason.CANCELLED)
            if deadline is not None and self._clock() >= deadline:
                return stop(PollReason.TIMEOUT)

            if not breaker.can_attempt():
                status = breaker.get_status()
                self._events.emit(CIRCUIT_OPENED, pr_number=pr_number, failures=status.failures)
                logger.warning(
                    "ci_poll_circuit_open",
                    extra={"event": "ci_poll_circuit_open", "pr_number": pr_number, "failures": status.failures},
                )
                return stop(PollReason.CIRCUIT_OPEN)

            try:
                breaker.prepare_for_attempt()
            except CircuitOpenError:
                return stop(PollReason.CIRCUIT_OPEN)

            poll_count += 1
            self._events.emit(POLL_START, pr_number=pr_number, poll_count=poll_count, interval=int(interval))
            logger.debug(f"PR #{pr_number}: poll {poll_count}/{self.config.max_polls}")

            try:
                status = await self._check(status_checker, pr_number)
            except Exception as e:
                # Network or API errors are treated as transient
                logger.warning(
                    "ci_status_check_error",
                    extra={
                        "event": "ci_status_check_error",
                        "pr_number": pr_number,
                        "poll_count": poll_count,
                        "error_type": type(e).__name__,
                        "error": str(e),
                    },
                )
                last_failures = []
                breaker.record_failure(FailureType.TRANSIENT)
                outcome = "error"
            else:
                self._events.emit(POLL_COMPLETE, pr_number=pr_number, poll_count=poll_count, state=status.state)

                if status.state == "success":
                    breaker.record_success()
                    logger.info(
                        "ci_poll_succeeded",
                        extra={"event": "ci_poll_succeeded", "pr_number": pr_number, "poll_count": poll_count},
                    )
                    return PollResult(
                        success=True,
                        poll_count=poll_count,
                        elapsed_ms=int(self._clock() - start),
                    )

                if status.state == "failure":
                    failures = [self._classified(check) for check in status.failed_checks]
                    last_failures = failures
                    for failure in failures:
                        self._events.emit(FAILURE_CLASSIFIED, pr_number=pr_number, failure=failure)

                    terminal = next((f for f in failures if f.failure_type == FailureType.TERMINAL), None)
                    if terminal is not None and self.config.fail_fast_on_terminal:
                        self._events.emit(TERMINAL_FAILURE, pr_number=pr_number, failure=terminal)
                        logger.warning(
                            "ci_terminal_failure",
                            extra={
                                "event": "ci_terminal_failure",
                                "pr_number": pr_number,
                                "check": terminal.name,
                                "error_message": terminal.error_message,
                            },
                        )
                        breaker.record_failure(FailureType.TERMINAL)
                        return stop(PollReason.TERMINAL_FAILURE, terminal)

                    breaker.record_failure(failures[0].failure_type if failures else None)
                    outcome = "failure"
                else:
                    last_failures = []
                    outcome = "pending"

            if poll_count >= self.config.max_polls:
                break
            if not breaker.can_attempt():
                # Report circuit_open without sleeping through the cooldown
                continue

            interval = next_base_interval(interval, outcome, self.config)
            delay = add_jitter(interval, self.config.max_jitter_ms, self._rng)
            self._events.emit(BACKOFF, pr_number=pr_number, new_interval=delay, reason=outcome)

            if deadline is not None:
                delay = max(0, min(delay, deadline - self._clock()))
            if not await self._wait(call, delay):
                return stop(PollReason.CANCELLED)

        logger.warning(
            "ci_poll_max_polls_exceeded",
            extra={"event": "ci_poll_max_polls_exceeded", "pr_number": pr_number, "poll_count": poll_count},
        )
        return stop(PollReason.MAX_POLLS_EXCEEDED)

    async def wait_for_ci(
        self,
        pr_number: int,
        status_checker: StatusChecker,
        timeout_ms: Optional[float] = None,
    ) -> PollResult:
        """
        Poll like poll_until_complete() but raise on anything but success.

        Raises:
            CircuitOpenError: The breaker refused the attempt
            CITerminalFailureError: A terminal failure was detected
            CICheckFailedError: The poll cap was reached while checks were failing
            CIMaxPollsExceededError: The poll cap was reached while CI was pending
            CITimeoutError: The deadline passed or polling was cancelled
        """
        result = await self.poll_until_complete(pr_number, status_checker, timeout_ms=timeout_ms)
        if result.success:
            return result

        if result.reason == PollReason.CIRCUIT_OPEN:
            status = self.circuit_breaker.get_status()
            raise CircuitOpenError(status.failures, status.last_failure_time)
        if result.reason == PollReason.TERMINAL_FAILURE:
            details = result.failure_details
            raise CITerminalFailureError(pr_number, details.name, details.error_message)
        if result.reason == PollReason.MAX_POLLS_EXCEEDED:
            if result.failed_checks:
                raise CICheckFailedError(pr_number, [f.name for f in result.failed_checks])
            raise CIMaxPollsExceededError(pr_number, result.poll_count)
        raise CITimeoutError(pr_number, int(timeout_ms) if timeout_ms is not None else result.elapsed_ms)

    def _classified(self, check: FailedCheck) -> CICheckFailure:
        if isinstance(check, CICheckFailure):
            return check
        return self.classifier.classify(check)

    async def _check(self, status_checker: StatusChecker, pr_number: int) -> CIStatus:
        status = status_checker(pr_number)
        if inspect.isawaitable(status):
            status = await status
        if isinstance(status, Mapping):
            status = CIStatus.from_dict(status, self.classifier)
        return status

    async def _wait(self, call: "_PollCall", delay_ms: float) -> bool:
        """Sleep for delay_ms. Returns False if the call was cancelled."""
        if call.cancelled.is_set():
            return False

        sleeper = asyncio.ensure_future(self._sleep(delay_ms / 1000.0))
        waiter = asyncio.ensure_future(call.cancelled.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        if sleeper.done() and not sleeper.cancelled():
            sleeper.result()
        return not call.cancelled.is_set()


class _PollCall:
    """Cancellation handle for one poll_until_complete() call."""

    def __init__(self, pr_number: int, loop: asyncio.AbstractEventLoop):
        self.pr_number = pr_number
        self.loop = loop
        self.cancelled = asyncio.Event()

    def cancel(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self.cancelled.set()
        elif not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.cancelled.set)


def _as_status_check(check: Union[StatusCheck, Mapping[str, Any]]) -> StatusCheck:
    if isinstance(check, StatusCheck):
        return check
    return StatusCheck.from_dict(check)


def _as_failed_check(
    check: Union[FailedCheck, Mapping[str, Any]],
    classifier: Optional[FailureClassifier] = None,
) -> FailedCheck:
    if isinstance(check, (CICheckFailure, StatusCheck)):
        return check
    if check.get("failure_type") is not None:
        return CICheckFailure(
            name=check["name"],
            failure_type=FailureType(check["failure_type"]),
            error_message=check.get("error_message"),
        )
    status_check = StatusCheck.from_dict(check)
    if check.get("error_message") is not None:
        return (classifier or FailureClassifier()).classify(status_check, check["error_message"])
    return status_check


def derive_ci_state(checks: Sequence[StatusCheck]) -> str:
    """Overall CI state from a status-check rollup. An empty rollup is pending."""
    if checks and all(c.is_passed for c in checks):
        return "success"
    if any(c.is_failed for c in checks):
        return "failure"
    return "pending"


def create_status_checker(
    get_pr_info: Callable[[int], Union[Awaitable[Mapping[str, Any]], Mapping[str, Any]]],
    classifier: Optional[FailureClassifier] = None,
) -> Callable[[int], Awaitable[CIStatus]]:
    """
    Build a status checker on top of a CI status provider.

    Args:
        get_pr_info: Sync or async callable returning ``{"status_check_rollup": [...]}``
        classifier: Classifier for failed checks (defaults to the standard patterns)

    Returns:
        Async status checker suitable for IntelligentPoller.poll_until_complete()
    """
    classifier = classifier or FailureClassifier()

    async def check(pr_number: int) -> CIStatus:
        info = get_pr_info(pr_number)
        if inspect.isawaitable(info):
            info = await info

        rollup = info.get("status_check_rollup")
        if rollup is None:
            rollup = info.get("statusCheckRollup", [])
        checks = [_as_status_check(c) for c in rollup]

        return CIStatus(
            state=derive_ci_state(checks),
            checks=checks,
            failed_checks=[classifier.classify(c) for c in checks if c.is_failed],
        )

    return check

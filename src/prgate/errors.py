"""Error taxonomy for prgate.

Poll outcomes are normally returned as a typed ``PollResult.reason``; these
exceptions are raised only at boundaries that ask for throw-on-failure
semantics (``IntelligentPoller.wait_for_ci``, ``QualityGateEvaluator.enforce``)
and by the breaker's ``prepare_for_attempt``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Sequence


class ErrorCodes:
    """Stable error codes carried by every PRGateError."""
    CI_TIMEOUT = "PRG-CI-001"
    CI_CHECK_FAILED = "PRG-CI-002"
    CIRCUIT_OPEN = "PRG-CI-003"
    CI_MAX_POLLS = "PRG-CI-004"
    CI_TERMINAL_FAILURE = "PRG-CI-005"
    QUALITY_GATE_FAILED = "PRG-QG-001"
    MERGE_FAILED = "PRG-MRG-001"
    CONFIG_INVALID = "PRG-CFG-001"


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PRGateError(Exception):
    """Base class for all prgate errors."""

    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: str = "recoverable",
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context or {}
        self.severity = severity
        self.category = category

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category,
            "context": dict(self.context),
        }


# =============================================================================
# CI Errors
# =============================================================================


class CITimeoutError(PRGateError):
    """CI checks did not finish within the caller's deadline."""

    def __init__(self, pr_number: int, timeout_ms: int):
        super().__init__(
            ErrorCodes.CI_TIMEOUT,
            f"CI checks timed out for PR #{pr_number} after {timeout_ms}ms",
            context={"pr_number": pr_number, "timeout_ms": timeout_ms},
            severity=ErrorSeverity.MEDIUM,
            category="transient",
        )
        self.pr_number = pr_number
        self.timeout_ms = timeout_ms


class CICheckFailedError(PRGateError):
    """One or more CI checks failed."""

    def __init__(self, pr_number: int, failed_checks: Sequence[str]):
        super().__init__(
            ErrorCodes.CI_CHECK_FAILED,
            f"CI checks failed for PR #{pr_number}: {', '.join(failed_checks)}",
            context={
                "pr_number": pr_number,
                "failed_checks": list(failed_checks),
                "check_count": len(failed_checks),
            },
            severity=ErrorSeverity.MEDIUM,
            category="recoverable",
        )
        self.pr_number = pr_number
        self.failed_checks = tuple(failed_checks)


class CircuitOpenError(PRGateError):
    """The CI circuit breaker is open and blocking attempts."""

    def __init__(self, failures: int, last_failure_time: float):
        super().__init__(
            ErrorCodes.CIRCUIT_OPEN,
            f"CI circuit breaker is open after {failures} consecutive failures",
            context={"failures": failures, "last_failure_time": last_failure_time},
            severity=ErrorSeverity.HIGH,
            category="transient",
        )
        self.failures = failures
        self.last_failure_time = last_failure_time


class CIMaxPollsExceededError(PRGateError):
    """Polling hit the configured maximum number of attempts."""

    def __init__(self, pr_number: int, poll_count: int):
        super().__init__(
            ErrorCodes.CI_MAX_POLLS,
            f"CI polling exceeded maximum attempts ({poll_count}) for PR #{pr_number}",
            context={"pr_number": pr_number, "poll_count": poll_count},
            severity=ErrorSeverity.HIGH,
            category="transient",
        )
        self.pr_number = pr_number
        self.poll_count = poll_count


class CITerminalFailureError(PRGateError):
    """A CI failure that retrying cannot fix."""

    def __init__(self, pr_number: int, check_name: str, error_message: Optional[str] = None):
        suffix = f" - {error_message}" if error_message else ""
        context: dict[str, Any] = {"pr_number": pr_number, "check_name": check_name}
        if error_message is not None:
            context["error_message"] = error_message
        super().__init__(
            ErrorCodes.CI_TERMINAL_FAILURE,
            f"Terminal CI failure detected for PR #{pr_number}: {check_name}{suffix}",
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category="fatal",
        )
        self.pr_number = pr_number
        self.check_name = check_name
        self.error_message = error_message


# =============================================================================
# Quality Gate / Merge Errors
# =============================================================================


class QualityGateFailedError(PRGateError):
    """Required quality gates failed. Raised by QualityGateEvaluator.enforce()."""

    def __init__(self, pr_number: int, failed_gates: Sequence[str]):
        super().__init__(
            ErrorCodes.QUALITY_GATE_FAILED,
            f"Quality gates failed for PR #{pr_number}: {', '.join(failed_gates)}",
            context={"pr_number": pr_number, "failed_gates": list(failed_gates)},
            severity=ErrorSeverity.MEDIUM,
            category="recoverable",
        )
        self.pr_number = pr_number
        self.failed_gates = tuple(failed_gates)


class PRMergeError(PRGateError):
    """Merging a pull request failed."""

    def __init__(self, pr_number: int, reason: str):
        super().__init__(
            ErrorCodes.MERGE_FAILED,
            f"Failed to merge PR #{pr_number}: {reason}",
            context={"pr_number": pr_number, "reason": reason},
            severity=ErrorSeverity.HIGH,
            category="recoverable",
        )
        self.pr_number = pr_number
        self.reason = reason


class ConfigError(PRGateError):
    """Configuration file could not be read or parsed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(
            ErrorCodes.CONFIG_INVALID,
            message,
            context={"path": path} if path else {},
            severity=ErrorSeverity.HIGH,
            category="fatal",
        )
        self.path = path

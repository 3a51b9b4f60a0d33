"""Data model shared by the poller, quality gates and merge readiness.

Metrics, check results and review comments are produced elsewhere and
consumed read-only. Result records are built fresh per call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class FailureType(str, Enum):
    """How a failed CI check should be treated."""
    TRANSIENT = "transient"    # Infra flakiness, retry
    PERSISTENT = "persistent"  # Needs investigation
    TERMINAL = "terminal"      # Retrying cannot help


class CommentSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    SUGGESTION = "suggestion"


# =============================================================================
# CI
# =============================================================================


@dataclass(frozen=True)
class StatusCheck:
    """One entry of a CI status-check rollup."""
    name: str
    status: str  # pending | running | passed | failed | skipped
    conclusion: Optional[str] = None

    @property
    def is_failed(self) -> bool:
        return self.status == "failed" or self.conclusion == "failure"

    @property
    def is_pending(self) -> bool:
        return self.status in ("pending", "running")

    @property
    def is_passed(self) -> bool:
        return self.status in ("passed", "skipped") or self.conclusion == "success"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusCheck":
        return cls(
            name=data["name"],
            status=data.get("status", "pending"),
            conclusion=data.get("conclusion"),
        )


@dataclass(frozen=True)
class CICheckFailure:
    """A failed check together with its classification."""
    name: str
    failure_type: FailureType
    error_message: Optional[str] = None

    @property
    def recoverable(self) -> bool:
        return self.failure_type != FailureType.TERMINAL

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "failure_type": self.failure_type.value,
            "recoverable": self.recoverable,
        }
        if self.error_message is not None:
            data["error_message"] = self.error_message
        return data


FailedCheck = Union[CICheckFailure, StatusCheck]


# =============================================================================
# Quality inputs
# =============================================================================


@dataclass(frozen=True)
class SecurityIssues:
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


@dataclass(frozen=True)
class QualityMetrics:
    """Quality metrics for a PR, computed by external analyzers.

    Attributes:
        code_coverage: Overall line coverage percentage.
        new_lines_coverage: Coverage percentage of lines added by the PR.
        complexity_score: Cyclomatic complexity score.
        security_issues: Security findings by severity.
        style_violations: Number of style violations.
        test_count: Number of tests executed.
    """
    code_coverage: float = 0.0
    new_lines_coverage: float = 0.0
    complexity_score: float = 0.0
    security_issues: SecurityIssues = field(default_factory=SecurityIssues)
    style_violations: int = 0
    test_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QualityMetrics":
        security = data.get("security_issues") or {}
        return cls(
            code_coverage=float(data.get("code_coverage", 0.0)),
            new_lines_coverage=float(data.get("new_lines_coverage", 0.0)),
            complexity_score=float(data.get("complexity_score", 0.0)),
            security_issues=SecurityIssues(
                critical=int(security.get("critical", 0)),
                high=int(security.get("high", 0)),
                medium=int(security.get("medium", 0)),
                low=int(security.get("low", 0)),
            ),
            style_violations=int(data.get("style_violations", 0)),
            test_count=int(data.get("test_count", 0)),
        )


@dataclass(frozen=True)
class CheckResults:
    ci_passed: bool = False
    tests_passed: bool = False
    lint_passed: bool = False
    security_scan_passed: bool = False
    build_passed: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckResults":
        return cls(
            ci_passed=bool(data.get("ci_passed", False)),
            tests_passed=bool(data.get("tests_passed", False)),
            lint_passed=bool(data.get("lint_passed", False)),
            security_scan_passed=bool(data.get("security_scan_passed", False)),
            build_passed=bool(data.get("build_passed", False)),
        )


@dataclass(frozen=True)
class ReviewComment:
    file: str
    line: int
    comment: str
    severity: CommentSeverity
    resolved: bool = False
    suggested_fix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewComment":
        return cls(
            file=data.get("file", ""),
            line=int(data.get("line", 0)),
            comment=data.get("comment", ""),
            severity=CommentSeverity(data["severity"]),
            resolved=bool(data.get("resolved", False)),
            suggested_fix=data.get("suggested_fix"),
        )


@dataclass(frozen=True)
class PullRequest:
    number: int
    title: str
    url: str = ""
    branch: str = ""
    base: str = "main"
    created_at: str = ""
    state: str = "open"


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class QualityGateResult:
    """Outcome of one quality gate evaluation.

    ``passed`` is true exactly when ``failures`` is empty. Recommended gates
    only ever contribute to ``warnings``.
    """
    passed: bool
    required_gates: dict[str, bool] = field(default_factory=dict)
    recommended_gates: dict[str, bool] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "required_gates": dict(self.required_gates),
            "recommended_gates": dict(self.recommended_gates),
            "failures": list(self.failures),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class MergeConflictInfo:
    has_conflicts: bool
    conflicting_files: list[str] = field(default_factory=list)
    mergeable: bool = False
    mergeable_state: str = "unknown"  # clean | dirty | blocked | behind | unknown


@dataclass(frozen=True)
class BlockingReview:
    author: str
    state: str
    body: str = ""
    submitted_at: str = ""


@dataclass(frozen=True)
class GateResult:
    """One row of the detailed gate report."""
    gate: str
    passed: bool
    threshold: Union[float, str]
    actual: Union[float, str]
    unit: str
    blocking: bool
    message: str


@dataclass(frozen=True)
class DetailedGateReport:
    generated_at: str
    pr_number: int
    passed: bool
    gates: list[GateResult] = field(default_factory=list)
    required_actions: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    markdown: str = ""


@dataclass(frozen=True)
class MergeReadinessResult:
    """Final merge verdict. ``can_merge`` is true exactly when nothing blocks."""
    can_merge: bool
    quality_gates: QualityGateResult
    conflicts: MergeConflictInfo
    blocking_reviews: list[BlockingReview]
    ci_passed: bool
    blocking_reasons: list[str]
    detailed_report: DetailedGateReport


@dataclass(frozen=True)
class SquashMergeMessage:
    title: str
    body: str
    closes_issues: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class MergeExecutionResult:
    success: bool
    merge_commit: Optional[str] = None
    error: Optional[str] = None

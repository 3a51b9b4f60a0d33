"""
Quality gate rules and the canonical gate table.

Every gate is defined once here: how to measure it, how to compare it to its
threshold, and what to tell the author when it fails. Both the evaluator and
the merge-readiness report read from GATE_DEFINITIONS so they cannot disagree.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from prgate.config.defaults import (
    QUALITY_GATE_COVERAGE_THRESHOLD,
    QUALITY_GATE_MAX_COMPLEXITY,
    QUALITY_GATE_NEW_LINES_COVERAGE,
)
from prgate.config.env import env_float
from prgate.models import CheckResults, CommentSeverity, QualityMetrics, ReviewComment

Number = Union[int, float]
RuleValue = Union[bool, Number, None]

REQUIRED = "required"
RECOMMENDED = "recommended"


def format_number(value: Any) -> str:
    """Render 80.0 as "80" and 80.5 as "80.5"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class QualityGateRules:
    """A sparse set of gate rules. None (or False) means "not configured"."""
    tests_pass: Optional[bool] = None
    build_pass: Optional[bool] = None
    lint_pass: Optional[bool] = None
    no_critical_security: Optional[bool] = None
    no_high_security: Optional[bool] = None
    no_critical_issues: Optional[bool] = None
    code_coverage: Optional[float] = None
    no_major_issues: Optional[bool] = None
    new_lines_coverage: Optional[float] = None
    max_complexity: Optional[float] = None
    no_style_violations: Optional[bool] = None

    def value_of(self, rule: str) -> RuleValue:
        return getattr(self, rule)

    def is_configured(self, rule: str) -> bool:
        value = getattr(self, rule)
        return value is not None and value is not False

    def merged(self, overrides: Mapping[str, Any]) -> "QualityGateRules":
        """Apply overrides. An explicit None removes a rule."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown quality gate rule(s): {', '.join(sorted(unknown))}")
        return replace(self, **dict(overrides))

    def to_dict(self) -> dict[str, RuleValue]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def _default_required() -> QualityGateRules:
    return QualityGateRules(
        tests_pass=True,
        build_pass=True,
        lint_pass=True,
        no_critical_security=True,
        no_critical_issues=True,
        code_coverage=QUALITY_GATE_COVERAGE_THRESHOLD,
    )


def _default_recommended() -> QualityGateRules:
    return QualityGateRules(
        no_major_issues=True,
        new_lines_coverage=QUALITY_GATE_NEW_LINES_COVERAGE,
        max_complexity=QUALITY_GATE_MAX_COMPLEXITY,
        no_style_violations=True,
    )


@dataclass(frozen=True)
class QualityGateConfig:
    """Required gates block the merge; recommended gates only warn."""
    required: QualityGateRules = field(default_factory=_default_required)
    recommended: QualityGateRules = field(default_factory=_default_recommended)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "QualityGateConfig":
        """Merge partial ``required`` / ``recommended`` mappings over the defaults."""
        return cls().merged(data)

    def merged(self, data: Optional[Mapping[str, Any]]) -> "QualityGateConfig":
        data = data or {}
        unknown = set(data) - {REQUIRED, RECOMMENDED}
        if unknown:
            raise ValueError(f"Unknown quality gate section(s): {', '.join(sorted(unknown))}")
        return QualityGateConfig(
            required=self.required.merged(data.get(REQUIRED) or {}),
            recommended=self.recommended.merged(data.get(RECOMMENDED) or {}),
        )

    @classmethod
    def from_env(cls) -> "QualityGateConfig":
        base = cls()
        return cls(
            required=base.required.merged(
                {"code_coverage": env_float("PRGATE_COVERAGE_THRESHOLD", QUALITY_GATE_COVERAGE_THRESHOLD)}
            ),
            recommended=base.recommended.merged(
                {
                    "new_lines_coverage": env_float("PRGATE_NEW_LINES_COVERAGE", QUALITY_GATE_NEW_LINES_COVERAGE),
                    "max_complexity": env_float("PRGATE_MAX_COMPLEXITY", QUALITY_GATE_MAX_COMPLEXITY),
                }
            ),
        )

    def rules_for(self, tier: str) -> QualityGateRules:
        return self.required if tier == REQUIRED else self.recommended

    def to_dict(self) -> dict[str, Any]:
        return {REQUIRED: self.required.to_dict(), RECOMMENDED: self.recommended.to_dict()}


# =============================================================================
# Gate table
# =============================================================================


@dataclass(frozen=True)
class GateInputs:
    metrics: QualityMetrics
    checks: CheckResults
    comments: Sequence[ReviewComment] = ()


def count_unresolved(comments: Sequence[ReviewComment], severity: CommentSeverity) -> int:
    """Resolved comments never count toward a gate."""
    return sum(1 for c in comments if c.severity == severity and not c.resolved)


@dataclass(frozen=True)
class GateDefinition:
    """One gate.

    ``comparison`` is one of:
        pass  -- measured value is a bool that must be True
        zero  -- measured count must be 0
        min   -- measured value must be >= threshold
        max   -- measured value must be <= threshold
    """
    key: str
    label: str
    tier: str
    comparison: str
    unit: str
    source: str  # checks | metrics | comments
    measure: Callable[[GateInputs], Any]
    failure_message: Callable[[Any, Any], str]
    action: Callable[[Any, Any], str]
    default_threshold: Optional[Number] = None

    @property
    def rule(self) -> str:
        return self.key

    @property
    def blocking(self) -> bool:
        return self.tier == REQUIRED

    def threshold_for(self, config: QualityGateConfig) -> Optional[Number]:
        if self.comparison not in ("min", "max"):
            return None
        value = config.rules_for(self.tier).value_of(self.rule)
        if isinstance(value, bool) or value is None:
            return self.default_threshold
        return value

    def check(self, actual: Any, threshold: Optional[Number]) -> bool:
        if self.comparison == "pass":
            return bool(actual)
        if self.comparison == "zero":
            return actual == 0
        if self.comparison == "min":
            return actual >= threshold
        return actual <= threshold

    def display_threshold(self, threshold: Optional[Number]) -> str:
        if self.comparison == "pass":
            return "pass"
        if self.comparison == "zero":
            return "0"
        prefix = "≥" if self.comparison == "min" else "≤"
        return f"{prefix}{format_number(threshold)}"

    def display_actual(self, actual: Any) -> Union[str, Number]:
        if self.comparison == "pass":
            return "pass" if actual else "fail"
        return actual


def _n(value: Any) -> str:
    return format_number(value)


GATE_DEFINITIONS: tuple[GateDefinition, ...] = (
    # Required
    GateDefinition(
        key="tests_pass",
        label="Tests Pass",
        tier=REQUIRED,
        comparison="pass",
        unit="status",
        source="checks",
        measure=lambda i: i.checks.tests_passed,
        failure_message=lambda a, t: "Tests must pass",
        action=lambda a, t: "Fix failing tests before merge",
    ),
    GateDefinition(
        key="build_pass",
        label="Build Pass",
        tier=REQUIRED,
        comparison="pass",
        unit="status",
        source="checks",
        measure=lambda i: i.checks.build_passed,
        failure_message=lambda a, t: "Build must pass",
        action=lambda a, t: "Fix build errors before merge",
    ),
    GateDefinition(
        key="lint_pass",
        label="Lint Pass",
        tier=REQUIRED,
        comparison="pass",
        unit="status",
        source="checks",
        measure=lambda i: i.checks.lint_passed,
        failure_message=lambda a, t: "Lint must pass",
        action=lambda a, t: "Fix linting errors before merge",
    ),
    GateDefinition(
        key="no_critical_security",
        label="Security (Critical)",
        tier=REQUIRED,
        comparison="zero",
        unit="count",
        source="metrics",
        measure=lambda i: i.metrics.security_issues.critical,
        failure_message=lambda a, t: f"Critical security issues found: {_n(a)}",
        action=lambda a, t: f"Fix {_n(a)} critical security issue(s)",
    ),
    GateDefinition(
        key="no_high_security",
        label="Security (High)",
        tier=REQUIRED,
        comparison="zero",
        unit="count",
        source="metrics",
        measure=lambda i: i.metrics.security_issues.high,
        failure_message=lambda a, t: f"High security issues found: {_n(a)}",
        action=lambda a, t: f"Fix {_n(a)} high severity security issue(s)",
    ),
    GateDefinition(
        key="no_critical_issues",
        label="Critical Review Issues",
        tier=REQUIRED,
        comparison="zero",
        unit="count",
        source="comments",
        measure=lambda i: count_unresolved(i.comments, CommentSeverity.CRITICAL),
        failure_message=lambda a, t: f"Critical review issues found: {_n(a)}",
        action=lambda a, t: f"Resolve {_n(a)} critical review issue(s)",
    ),
    GateDefinition(
        key="code_coverage",
        label="Code Coverage",
        tier=REQUIRED,
        comparison="min",
        unit="percentage",
        source="metrics",
        measure=lambda i: i.metrics.code_coverage,
        failure_message=lambda a, t: f"Code coverage {_n(a)}% is below required {_n(t)}%",
        action=lambda a, t: f"Increase test coverage to at least {_n(t)}% (current: {_n(a)}%)",
        default_threshold=QUALITY_GATE_COVERAGE_THRESHOLD,
    ),
    # Recommended
    GateDefinition(
        key="no_major_issues",
        label="Major Review Issues",
        tier=RECOMMENDED,
        comparison="zero",
        unit="count",
        source="comments",
        measure=lambda i: count_unresolved(i.comments, CommentSeverity.MAJOR),
        failure_message=lambda a, t: f"Major review issues found: {_n(a)}",
        action=lambda a, t: f"Consider addressing {_n(a)} major review issue(s)",
    ),
    GateDefinition(
        key="new_lines_coverage",
        label="New Lines Coverage",
        tier=RECOMMENDED,
        comparison="min",
        unit="percentage",
        source="metrics",
        measure=lambda i: i.metrics.new_lines_coverage,
        failure_message=lambda a, t: f"New lines coverage {_n(a)}% is below recommended {_n(t)}%",
        action=lambda a, t: (
            f"Consider improving test coverage for new code (current: {_n(a)}%, recommended: {_n(t)}%)"
        ),
        default_threshold=QUALITY_GATE_NEW_LINES_COVERAGE,
    ),
    GateDefinition(
        key="max_complexity",
        label="Complexity",
        tier=RECOMMENDED,
        comparison="max",
        unit="number",
        source="metrics",
        measure=lambda i: i.metrics.complexity_score,
        failure_message=lambda a, t: f"Complexity score {_n(a)} exceeds recommended max {_n(t)}",
        action=lambda a, t: f"Consider refactoring to reduce complexity (current: {_n(a)}, recommended: ≤{_n(t)})",
        default_threshold=QUALITY_GATE_MAX_COMPLEXITY,
    ),
    GateDefinition(
        key="no_style_violations",
        label="Style Violations",
        tier=RECOMMENDED,
        comparison="zero",
        unit="count",
        source="metrics",
        measure=lambda i: i.metrics.style_violations,
        failure_message=lambda a, t: f"Style violations found: {_n(a)}",
        action=lambda a, t: f"Consider fixing {_n(a)} style violation(s)",
    ),
)

GATES_BY_KEY: dict[str, GateDefinition] = {g.key: g for g in GATE_DEFINITIONS}

# Rows of the detailed merge report. Comment-based gates are left out because
# the report is built from metrics and check results only.
REPORT_GATE_ORDER: tuple[str, ...] = (
    "tests_pass",
    "build_pass",
    "lint_pass",
    "code_coverage",
    "no_critical_security",
    "no_high_security",
    "new_lines_coverage",
    "max_complexity",
    "no_style_violations",
)


def gates_for_tier(tier: str) -> list[GateDefinition]:
    return [g for g in GATE_DEFINITIONS if g.tier == tier]

"""Detailed quality gate report for merge decisions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from prgate.models import (
    CheckResults,
    DetailedGateReport,
    GateResult,
    QualityGateResult,
    QualityMetrics,
)
from prgate.quality_gates.rules import (
    GATES_BY_KEY,
    REPORT_GATE_ORDER,
    GateDefinition,
    GateInputs,
    QualityGateConfig,
    format_number,
)

STATUS_PASSED = "✅ PASSED"
STATUS_FAILED = "❌ FAILED"
STATUS_WARNING = "⚠️ WARNING"


def status_label(passed: bool, blocking: bool) -> str:
    if passed:
        return STATUS_PASSED
    return STATUS_FAILED if blocking else STATUS_WARNING


def _build_row(gate: GateDefinition, inputs: GateInputs, config: QualityGateConfig) -> tuple[GateResult, str]:
    threshold = gate.threshold_for(config)
    actual = gate.measure(inputs)
    passed = gate.check(actual, threshold)

    shown_threshold = gate.display_threshold(threshold)
    shown_actual = gate.display_actual(actual)
    status = status_label(passed, gate.blocking)
    row = GateResult(
        gate=gate.label,
        passed=passed,
        threshold=shown_threshold,
        actual=shown_actual,
        unit=gate.unit,
        blocking=gate.blocking,
        message=f"{gate.label}: {format_number(shown_actual)} (threshold: {shown_threshold}) - {status}",
    )
    return row, gate.action(actual, threshold)


def render_markdown(
    pr_number: int,
    generated_at: str,
    gates: Sequence[GateResult],
    required_actions: Sequence[str],
    recommendations: Sequence[str],
) -> str:
    lines = [
        "## Quality Gate Report",
        "",
        f"**PR #{pr_number}** - Generated at {generated_at}",
        "",
        "### Gate Status",
        "",
        "| Gate | Threshold | Actual | Status |",
        "|------|-----------|--------|--------|",
    ]
    for row in gates:
        lines.append(
            f"| {row.gate} | {row.threshold} | {format_number(row.actual)} | {status_label(row.passed, row.blocking)} |"
        )
    lines.append("")

    if required_actions:
        lines.append("### Required Actions")
        lines.append("")
        for i, action in enumerate(required_actions, start=1):
            lines.append(f"{i}. {action}")
        lines.append("")

    if recommendations:
        lines.append("### Recommendations")
        lines.append("")
        for rec in recommendations:
            lines.append(f"- {rec}")
        lines.append("")

    return "\n".join(lines)


def build_detailed_report(
    pr_number: int,
    quality_gate_result: QualityGateResult,
    metrics: QualityMetrics,
    checks: CheckResults,
    config: Optional[QualityGateConfig] = None,
    now: Optional[datetime] = None,
) -> DetailedGateReport:
    """Flatten the gate table into report rows with actions and recommendations.

    Rows always cover the full report table, whether or not a rule is
    configured; thresholds fall back to the gate defaults. Failures and
    warnings from ``quality_gate_result`` that are not already listed are
    appended, de-duplicated by exact string.
    """
    config = config or QualityGateConfig()
    generated_at = (now or datetime.now(timezone.utc)).isoformat()
    inputs = GateInputs(metrics=metrics, checks=checks)

    gates: list[GateResult] = []
    required_actions: list[str] = []
    recommendations: list[str] = []

    for key in REPORT_GATE_ORDER:
        row, action = _build_row(GATES_BY_KEY[key], inputs, config)
        gates.append(row)
        if row.passed:
            continue
        target = required_actions if row.blocking else recommendations
        if action not in target:
            target.append(action)

    for failure in quality_gate_result.failures:
        if failure not in required_actions:
            required_actions.append(failure)
    for warning in quality_gate_result.warnings:
        if warning not in recommendations:
            recommendations.append(warning)

    return DetailedGateReport(
        generated_at=generated_at,
        pr_number=pr_number,
        passed=quality_gate_result.passed,
        gates=gates,
        required_actions=required_actions,
        recommendations=recommendations,
        markdown=render_markdown(pr_number, generated_at, gates, required_actions, recommendations),
    )

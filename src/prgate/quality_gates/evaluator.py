"""
QualityGateEvaluator - pass/fail decision over quality metrics.

Required gates produce failures and block; recommended gates only produce
warnings. Unconfigured rules are left out of the result entirely.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from prgate.errors import QualityGateFailedError
from prgate.models import CheckResults, QualityGateResult, QualityMetrics, ReviewComment
from prgate.quality_gates.rules import (
    RECOMMENDED,
    REQUIRED,
    GateInputs,
    QualityGateConfig,
    gates_for_tier,
)

logger = logging.getLogger(__name__)


class QualityGateEvaluator:
    """Evaluates PR quality metrics against the configured gates.

    Evaluation is pure: the same inputs always give the same result, and a
    fresh result object is built on every call.
    """

    def __init__(
        self,
        config: Optional[QualityGateConfig] = None,
        include_recommendations: bool = True,
    ):
        self.config = config or QualityGateConfig()
        self.include_recommendations = include_recommendations

    def get_config(self) -> QualityGateConfig:
        return self.config

    def evaluate(
        self,
        metrics: QualityMetrics,
        checks: CheckResults,
        comments: Sequence[ReviewComment] = (),
    ) -> QualityGateResult:
        """Evaluate metrics, check results and review comments against the gates."""
        if metrics is None or checks is None:
            raise ValueError("metrics and checks are required")

        inputs = GateInputs(metrics=metrics, checks=checks, comments=tuple(comments or ()))

        required_gates, failures = self._evaluate_tier(REQUIRED, inputs)
        if self.include_recommendations:
            recommended_gates, warnings = self._evaluate_tier(RECOMMENDED, inputs)
        else:
            recommended_gates, warnings = {}, []

        result = QualityGateResult(
            passed=not failures,
            required_gates=required_gates,
            recommended_gates=recommended_gates,
            failures=failures,
            warnings=warnings,
        )
        logger.debug(
            "quality_gates_evaluated",
            extra={
                "event": "quality_gates_evaluated",
                "passed": result.passed,
                "failure_count": len(failures),
                "warning_count": len(warnings),
            },
        )
        return result

    def enforce(
        self,
        pr_number: int,
        metrics: QualityMetrics,
        checks: CheckResults,
        comments: Sequence[ReviewComment] = (),
    ) -> QualityGateResult:
        """
        Evaluate like evaluate() but raise when a required gate fails.

        Raises:
            QualityGateFailedError: Lists the failing required gates
        """
        result = self.evaluate(metrics, checks, comments)
        if not result.passed:
            failed_gates = [gate for gate, passed in result.required_gates.items() if not passed]
            raise QualityGateFailedError(pr_number, failed_gates)
        return result

    def _evaluate_tier(self, tier: str, inputs: GateInputs) -> tuple[dict[str, bool], list[str]]:
        rules = self.config.rules_for(tier)
        gates: dict[str, bool] = {}
        messages: list[str] = []

        for gate in gates_for_tier(tier):
            if not rules.is_configured(gate.rule):
                continue
            threshold = gate.threshold_for(self.config)
            actual = gate.measure(inputs)
            passed = gate.check(actual, threshold)
            gates[gate.key] = passed
            if not passed:
                messages.append(gate.failure_message(actual, threshold))

        return gates, messages

    @staticmethod
    def get_summary(result: QualityGateResult) -> str:
        """Markdown summary used verbatim in review bodies."""
        lines: list[str] = []

        if result.passed:
            lines.append("✅ All required quality gates passed")
        else:
            lines.append("❌ Quality gates failed")
            lines.append("")
            lines.append("**Failures:**")
            for failure in result.failures:
                lines.append(f"- {failure}")

        if result.warnings:
            lines.append("")
            lines.append("**Warnings:**")
            for warning in result.warnings:
                lines.append(f"- ⚠️ {warning}")

        return "\n".join(lines)

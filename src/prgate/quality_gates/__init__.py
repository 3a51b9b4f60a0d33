"""
Quality gates for PR review.

- rules: rule sets and the canonical gate table
- evaluator: QualityGateEvaluator (pass/fail plus itemized failures/warnings)
"""

from __future__ import annotations

from prgate.quality_gates.evaluator import QualityGateEvaluator
from prgate.quality_gates.rules import (
    GATE_DEFINITIONS,
    GATES_BY_KEY,
    REPORT_GATE_ORDER,
    GateDefinition,
    GateInputs,
    QualityGateConfig,
    QualityGateRules,
    count_unresolved,
    format_number,
)

__all__ = [
    "GATE_DEFINITIONS",
    "GATES_BY_KEY",
    "REPORT_GATE_ORDER",
    "GateDefinition",
    "GateInputs",
    "QualityGateConfig",
    "QualityGateEvaluator",
    "QualityGateRules",
    "count_unresolved",
    "format_number",
]

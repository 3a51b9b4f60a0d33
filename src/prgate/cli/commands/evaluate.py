"""
Evaluate command - Run quality gates over metrics and check results.
"""

from __future__ import annotations

from typing import Optional

from prgate.cli.commands.inputs import load_gate_inputs
from prgate.cli.formatting.output import ConsoleOutput
from prgate.config.loader import load_config
from prgate.quality_gates import QualityGateEvaluator


def run(
    metrics: str,
    checks: str,
    comments: Optional[str] = None,
    config_path: Optional[str] = None,
    json_output: bool = False,
    console: Optional[ConsoleOutput] = None,
) -> int:
    """Exit code 1 when a required gate fails."""
    console = console or ConsoleOutput()
    config = load_config(config_path)
    gate_metrics, gate_checks, gate_comments = load_gate_inputs(metrics, checks, comments)

    result = QualityGateEvaluator(config.quality_gates).evaluate(gate_metrics, gate_checks, gate_comments)

    if json_output:
        console.print_json(result.to_dict())
    else:
        console.print_markdown(QualityGateEvaluator.get_summary(result))
    return 0 if result.passed else 1

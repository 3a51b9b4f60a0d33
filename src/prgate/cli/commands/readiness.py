"""
Readiness command - Decide whether a PR can be merged.
"""

from __future__ import annotations

from typing import Optional

from prgate.cli.commands.inputs import load_gate_inputs
from prgate.cli.formatting.output import ConsoleOutput
from prgate.config.loader import load_config
from prgate.merge import MergeReadinessAggregator
from prgate.quality_gates import QualityGateEvaluator
from prgate.vcs import SnapshotVCS


async def run(
    pr_number: int,
    snapshot: str,
    metrics: str,
    checks: str,
    comments: Optional[str] = None,
    config_path: Optional[str] = None,
    json_output: bool = False,
    console: Optional[ConsoleOutput] = None,
) -> int:
    """Exit code 1 when the PR is not mergeable."""
    console = console or ConsoleOutput()
    config = load_config(config_path)
    gate_metrics, gate_checks, gate_comments = load_gate_inputs(metrics, checks, comments)

    gate_result = QualityGateEvaluator(config.quality_gates).evaluate(gate_metrics, gate_checks, gate_comments)
    aggregator = MergeReadinessAggregator(
        SnapshotVCS.from_file(snapshot),
        gate_config=config.quality_gates,
        merge_config=config.merge,
    )
    result = await aggregator.check_readiness(pr_number, gate_result, gate_metrics, gate_checks)

    if json_output:
        console.print_json(
            {
                "can_merge": result.can_merge,
                "blocking_reasons": result.blocking_reasons,
                "ci_passed": result.ci_passed,
                "quality_gates": result.quality_gates.to_dict(),
                "conflicting_files": result.conflicts.conflicting_files,
                "blocking_reviews": [r.author for r in result.blocking_reviews],
                "report": result.detailed_report.markdown,
            }
        )
        return 0 if result.can_merge else 1

    console.print_markdown(result.detailed_report.markdown)
    if result.can_merge:
        console.print_success(f"PR #{pr_number} is ready to merge")
        return 0

    console.print_error(f"PR #{pr_number} cannot be merged")
    for reason in result.blocking_reasons:
        console.print(f"  - {reason}")
    return 1

"""
Merge decision for reviewed PRs.

- readiness: MergeReadinessAggregator, MergeConfig
- report: detailed gate report and its markdown rendering
"""

from __future__ import annotations

from prgate.merge.readiness import MergeConfig, MergeReadinessAggregator, latest_review_per_author
from prgate.merge.report import build_detailed_report, render_markdown

__all__ = [
    "MergeConfig",
    "MergeReadinessAggregator",
    "build_detailed_report",
    "latest_review_per_author",
    "render_markdown",
]

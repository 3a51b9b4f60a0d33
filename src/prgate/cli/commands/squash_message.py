"""
Squash-message command - Print the squash merge commit message for a PR.
"""

from __future__ import annotations

from typing import Optional

from prgate.cli.formatting.output import ConsoleOutput
from prgate.merge import MergeReadinessAggregator
from prgate.models import PullRequest


def run(
    title: str,
    number: int,
    issue: Optional[int] = None,
    summary: Optional[str] = None,
    console: Optional[ConsoleOutput] = None,
) -> int:
    console = console or ConsoleOutput()
    message = MergeReadinessAggregator.generate_squash_message(
        PullRequest(number=number, title=title), issue_number=issue, summary=summary
    )
    # markup=False so "[skip ci]"-style titles print verbatim
    console.print(message.title, markup=False)
    if message.body:
        console.print()
        console.print(message.body, markup=False)
    return 0

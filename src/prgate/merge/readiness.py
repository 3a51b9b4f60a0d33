"""
MergeReadinessAggregator - final mergeable/not-mergeable verdict for a PR.

Combines a quality gate result with merge-conflict and review state fetched
from the VCS collaborator. Every blocking condition is evaluated; none
short-circuits the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from prgate.config.defaults import (
    MERGE_DELETE_BRANCH_ON_MERGE,
    MERGE_STRATEGIES,
    MERGE_STRATEGY,
)
from prgate.config.env import env_bool, env_str
from prgate.merge.report import build_detailed_report
from prgate.models import (
    BlockingReview,
    CheckResults,
    DetailedGateReport,
    MergeConflictInfo,
    MergeExecutionResult,
    MergeReadinessResult,
    PullRequest,
    QualityGateResult,
    QualityMetrics,
    SquashMergeMessage,
)
from prgate.quality_gates.rules import QualityGateConfig
from prgate.vcs import Review, VCSOperations, normalize_mergeable_state

logger = logging.getLogger(__name__)

CHANGES_REQUESTED = "CHANGES_REQUESTED"
CONFLICTED_FILE_STATUS = "conflicted"


@dataclass(frozen=True)
class MergeConfig:
    """How approved PRs are merged.

    Attributes:
        strategy: One of merge, squash or rebase.
        delete_branch_on_merge: Remove the head branch after merging.
    """

    strategy: str = MERGE_STRATEGY
    delete_branch_on_merge: bool = MERGE_DELETE_BRANCH_ON_MERGE

    def __post_init__(self):
        if self.strategy not in MERGE_STRATEGIES:
            raise ValueError(
                f"Unknown merge strategy {self.strategy!r}; expected one of {', '.join(MERGE_STRATEGIES)}"
            )

    @classmethod
    def from_env(cls) -> "MergeConfig":
        return cls(
            strategy=env_str("PRGATE_MERGE_STRATEGY", MERGE_STRATEGY),
            delete_branch_on_merge=env_bool("PRGATE_DELETE_BRANCH_ON_MERGE", MERGE_DELETE_BRANCH_ON_MERGE),
        )

    def with_overrides(self, **overrides: Any) -> "MergeConfig":
        return replace(self, **overrides)


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def latest_review_per_author(reviews: list[Review]) -> dict[str, Review]:
    """Keep only the most recent review of each author."""
    latest: dict[str, Review] = {}
    for review in reviews:
        existing = latest.get(review.author)
        if existing is None or _parse_timestamp(review.submitted_at) > _parse_timestamp(existing.submitted_at):
            latest[review.author] = review
    return latest


def _unknown_conflicts() -> MergeConflictInfo:
    return MergeConflictInfo(has_conflicts=False, conflicting_files=[], mergeable=False, mergeable_state="unknown")


class MergeReadinessAggregator:
    """Decides whether a PR can be merged.

    A fresh MergeReadinessResult is built per call; nothing is cached between
    PRs, so one aggregator can serve concurrent evaluations.
    """

    def __init__(
        self,
        vcs: VCSOperations,
        gate_config: Optional[QualityGateConfig] = None,
        merge_config: Optional[MergeConfig] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.vcs = vcs
        self.gate_config = gate_config or QualityGateConfig()
        self.merge_config = merge_config or MergeConfig()
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def check_merge_conflicts(self, pr_number: int) -> MergeConflictInfo:
        """Conflict state of the PR. Lookup failures yield an unknown, non-mergeable state."""
        try:
            info = await self.vcs.get_merge_info(pr_number)
        except Exception as e:
            logger.warning(
                "merge_info_lookup_failed",
                extra={"event": "merge_info_lookup_failed", "pr_number": pr_number, "error": str(e)},
            )
            return _unknown_conflicts()

        state = normalize_mergeable_state(info.mergeable_state)
        has_conflicts = state == "dirty"
        conflicting_files = (
            [f.path for f in info.files if f.status == CONFLICTED_FILE_STATUS] if has_conflicts else []
        )
        return MergeConflictInfo(
            has_conflicts=has_conflicts,
            conflicting_files=conflicting_files,
            mergeable=info.mergeable is True,
            mergeable_state=state,
        )

    async def check_blocking_reviews(self, pr_number: int) -> list[BlockingReview]:
        """Latest review per author that requests changes."""
        try:
            reviews = await self.vcs.get_reviews(pr_number)
        except Exception as e:
            logger.warning(
                "review_lookup_failed",
                extra={"event": "review_lookup_failed", "pr_number": pr_number, "error": str(e)},
            )
            return []

        return [
            BlockingReview(
                author=review.author,
                state=CHANGES_REQUESTED,
                body=review.body,
                submitted_at=review.submitted_at,
            )
            for review in latest_review_per_author(list(reviews)).values()
            if (review.state or "").upper() == CHANGES_REQUESTED
        ]

    def generate_detailed_report(
        self,
        pr_number: int,
        quality_gate_result: QualityGateResult,
        metrics: QualityMetrics,
        checks: CheckResults,
    ) -> DetailedGateReport:
        return build_detailed_report(
            pr_number,
            quality_gate_result,
            metrics,
            checks,
            config=self.gate_config,
            now=self._now(),
        )

    async def check_readiness(
        self,
        pr_number: int,
        quality_gate_result: QualityGateResult,
        metrics: QualityMetrics,
        checks: CheckResults,
    ) -> MergeReadinessResult:
        """Aggregate every blocking condition into one verdict."""
        if quality_gate_result is None or metrics is None or checks is None:
            raise ValueError("quality_gate_result, metrics and checks are required")

        conflicts, blocking_reviews = await asyncio.gather(
            self.check_merge_conflicts(pr_number),
            self.check_blocking_reviews(pr_number),
        )
        detailed_report = self.generate_detailed_report(pr_number, quality_gate_result, metrics, checks)

        blocking_reasons: list[str] = []
        if not quality_gate_result.passed:
            blocking_reasons.append("Quality gates failed")
        if conflicts.has_conflicts:
            blocking_reasons.append(f"Merge conflicts detected in {len(conflicts.conflicting_files)} file(s)")
        if blocking_reviews:
            blocking_reasons.append(f"{len(blocking_reviews)} blocking review(s) requesting changes")
        if not checks.ci_passed:
            blocking_reasons.append("CI pipeline failed")
        if not conflicts.mergeable and not conflicts.has_conflicts:
            blocking_reasons.append("PR is not in a mergeable state")

        result = MergeReadinessResult(
            can_merge=not blocking_reasons,
            quality_gates=quality_gate_result,
            conflicts=conflicts,
            blocking_reviews=blocking_reviews,
            ci_passed=checks.ci_passed,
            blocking_reasons=blocking_reasons,
            detailed_report=detailed_report,
        )
        logger.info(
            "merge_readiness_checked",
            extra={
                "event": "merge_readiness_checked",
                "pr_number": pr_number,
                "can_merge": result.can_merge,
                "blocking_reasons": blocking_reasons,
            },
        )
        return result

    @staticmethod
    def generate_squash_message(
        pull_request: PullRequest,
        issue_number: Optional[int] = None,
        summary: Optional[str] = None,
    ) -> SquashMergeMessage:
        """Commit title/body for a squash merge.

        The ``Closes #N`` line is consumed by issue-closing automation, so the
        format must not change.
        """
        title = f"{pull_request.title} (#{pull_request.number})"

        body_parts: list[str] = []
        if summary:
            body_parts.append(summary)
            body_parts.append("")

        closes_issues: list[int] = []
        if issue_number is not None:
            body_parts.append(f"Closes #{issue_number}")
            closes_issues.append(issue_number)

        return SquashMergeMessage(title=title, body="\n".join(body_parts), closes_issues=closes_issues)

    async def execute_merge(self, pr_number: int, message: SquashMergeMessage) -> MergeExecutionResult:
        """Merge through the VCS collaborator. Failures come back as data."""
        try:
            merge_commit = await self.vcs.merge_pull_request(
                pr_number,
                strategy=self.merge_config.strategy,
                subject=message.title,
                body=message.body,
                delete_branch=self.merge_config.delete_branch_on_merge,
            )
        except Exception as e:
            logger.warning(
                "merge_failed",
                extra={"event": "merge_failed", "pr_number": pr_number, "error": str(e)},
            )
            return MergeExecutionResult(success=False, error=str(e) or "Unknown merge error")

        logger.info(
            "pr_merged",
            extra={
                "event": "pr_merged",
                "pr_number": pr_number,
                "strategy": self.merge_config.strategy,
                "merge_commit": merge_commit,
            },
        )
        return MergeExecutionResult(success=True, merge_commit=merge_commit)

"""In-memory VCS backed by a JSON snapshot.

Snapshot layout::

    {
      "pull_requests": {
        "42": {
          "mergeable": true,
          "mergeable_state": "CLEAN",
          "files": [{"path": "src/app.py", "status": "modified"}],
          "reviews": [{"author": "alice", "state": "APPROVED",
                       "body": "", "submitted_at": "2024-01-01T10:00:00Z"}],
          "status_check_rollup": [{"name": "test", "status": "passed"}],
          "status_check_rollup_sequence": [[...], [...]]
        }
      }
    }

When ``status_check_rollup_sequence`` is present each status lookup returns
the next entry, repeating the last one once the sequence runs out.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from prgate.errors import PRMergeError
from prgate.vcs import MergeInfo, Review

logger = logging.getLogger(__name__)


class SnapshotVCS:
    """VCSOperations implementation over a static snapshot."""

    def __init__(self, snapshot: Optional[Mapping[str, Any]] = None):
        snapshot = snapshot or {}
        self._prs: dict[int, dict[str, Any]] = {
            int(number): dict(data) for number, data in (snapshot.get("pull_requests") or {}).items()
        }
        self._rollup_calls: dict[int, int] = {}
        self.merged: list[dict[str, Any]] = []

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SnapshotVCS":
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f))

    def _pr(self, pr_number: int) -> dict[str, Any]:
        try:
            return self._prs[pr_number]
        except KeyError:
            raise LookupError(f"Pull request #{pr_number} not found in snapshot") from None

    async def get_merge_info(self, pr_number: int) -> MergeInfo:
        return MergeInfo.from_dict(self._pr(pr_number))

    async def get_reviews(self, pr_number: int) -> list[Review]:
        return [Review.from_dict(r) for r in self._pr(pr_number).get("reviews", [])]

    async def get_status_check_rollup(self, pr_number: int) -> dict[str, Any]:
        pr = self._pr(pr_number)
        sequence = pr.get("status_check_rollup_sequence")
        if sequence:
            call = self._rollup_calls.get(pr_number, 0)
            self._rollup_calls[pr_number] = call + 1
            return {"status_check_rollup": list(sequence[min(call, len(sequence) - 1)])}
        return {"status_check_rollup": list(pr.get("status_check_rollup", []))}

    async def merge_pull_request(
        self,
        pr_number: int,
        strategy: str,
        subject: str,
        body: str,
        delete_branch: bool,
    ) -> Optional[str]:
        pr = self._pr(pr_number)
        if pr.get("mergeable") is False:
            raise PRMergeError(pr_number, "pull request is not mergeable")

        self.merged.append(
            {
                "pr_number": pr_number,
                "strategy": strategy,
                "subject": subject,
                "body": body,
                "delete_branch": delete_branch,
            }
        )
        logger.info(
            "snapshot_pr_merged",
            extra={"event": "snapshot_pr_merged", "pr_number": pr_number, "strategy": strategy},
        )
        return pr.get("merge_commit")

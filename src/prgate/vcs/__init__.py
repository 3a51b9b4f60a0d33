"""
VCS collaborator interface.

prgate never talks to a hosting platform itself. Merge readiness and the
poller consume an object implementing VCSOperations; SnapshotVCS is an
in-memory implementation backed by a JSON document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

_MERGEABLE_STATE_MAP = {
    "CLEAN": "clean",
    "DIRTY": "dirty",
    "CONFLICTING": "dirty",
    "BLOCKED": "blocked",
    "BEHIND": "behind",
}


def normalize_mergeable_state(state: Optional[str]) -> str:
    """Map a platform mergeable state onto clean/dirty/blocked/behind/unknown."""
    if not state:
        return "unknown"
    return _MERGEABLE_STATE_MAP.get(state.strip().upper(), "unknown")


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: str


@dataclass(frozen=True)
class MergeInfo:
    mergeable: Optional[bool]
    mergeable_state: Optional[str] = None
    files: list[ChangedFile] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MergeInfo":
        return cls(
            mergeable=data.get("mergeable"),
            mergeable_state=data.get("mergeable_state"),
            files=[
                ChangedFile(path=f.get("path") or f.get("filename", ""), status=f.get("status", ""))
                for f in data.get("files", [])
            ],
        )


@dataclass(frozen=True)
class Review:
    author: str
    state: str
    body: str = ""
    submitted_at: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Review":
        author = data.get("author") or ""
        if isinstance(author, Mapping):
            author = author.get("login") or ""
        return cls(
            author=author,
            state=data.get("state") or "",
            body=data.get("body", "") or "",
            submitted_at=data.get("submitted_at", "") or "",
        )


class VCSOperations(Protocol):
    """Operations prgate needs from a version-control platform."""

    async def get_merge_info(self, pr_number: int) -> MergeInfo:
        ...

    async def get_reviews(self, pr_number: int) -> list[Review]:
        ...

    async def get_status_check_rollup(self, pr_number: int) -> dict[str, Any]:
        """Return ``{"status_check_rollup": [{name, status, conclusion?}, ...]}``."""
        ...

    async def merge_pull_request(
        self,
        pr_number: int,
        strategy: str,
        subject: str,
        body: str,
        delete_branch: bool,
    ) -> Optional[str]:
        """Merge the PR and return the merge commit SHA when known. Raises on failure."""
        ...


from prgate.vcs.snapshot import SnapshotVCS  # noqa: E402

__all__ = [
    "ChangedFile",
    "MergeInfo",
    "Review",
    "SnapshotVCS",
    "VCSOperations",
    "normalize_mergeable_state",
]

"""JSON input files shared by the evaluate and readiness commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from prgate.models import CheckResults, QualityMetrics, ReviewComment


def read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def load_gate_inputs(
    metrics_path: str,
    checks_path: str,
    comments_path: Optional[str] = None,
) -> tuple[QualityMetrics, CheckResults, list[ReviewComment]]:
    metrics = QualityMetrics.from_dict(read_json(metrics_path))
    checks = CheckResults.from_dict(read_json(checks_path))
    comments = [ReviewComment.from_dict(c) for c in read_json(comments_path)] if comments_path else []
    return metrics, checks, comments

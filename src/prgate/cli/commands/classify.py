"""
Classify command - Show how a failed CI check would be treated.
"""

from __future__ import annotations

from typing import Optional

from prgate.cli.formatting.output import ConsoleOutput
from prgate.failure_classifier import classify_failure
from prgate.models import FailureType, StatusCheck

_STYLES = {
    FailureType.TRANSIENT: "info",
    FailureType.PERSISTENT: "warning",
    FailureType.TERMINAL: "error",
}


def run(name: str, error: Optional[str] = None, console: Optional[ConsoleOutput] = None) -> int:
    console = console or ConsoleOutput()
    failure = classify_failure(StatusCheck(name=name, status="failed"), error)
    style = _STYLES[failure.failure_type]
    console.print(f"{name}: [{style}]{failure.failure_type.value}[/{style}]")
    if not failure.recoverable:
        console.print_dim("Retrying will not fix this failure.")
    return 0

"""
Poll command - Run the CI poller against a snapshot's status checks.
"""

from __future__ import annotations

from typing import Optional

from rich.markup import escape

from prgate.circuit_breaker import CircuitBreaker
from prgate.cli.formatting.output import ConsoleOutput
from prgate.config.loader import load_config
from prgate.events import Event
from prgate.poller import IntelligentPoller, create_status_checker
from prgate.vcs import SnapshotVCS


async def run(
    pr_number: int,
    snapshot: str,
    config_path: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    json_output: bool = False,
    console: Optional[ConsoleOutput] = None,
) -> int:
    """Exit code 1 unless CI completed successfully."""
    console = console or ConsoleOutput()
    config = load_config(config_path)
    vcs = SnapshotVCS.from_file(snapshot)

    poller = IntelligentPoller(config.poller, circuit_breaker=CircuitBreaker(config.circuit_breaker))

    def show(event: Event) -> None:
        if json_output:
            return
        details = ", ".join(f"{k}={v}" for k, v in event.data.items())
        console.print_dim(escape(f"{event.type}: {details}"))

    poller.on_event(show)
    result = await poller.poll_until_complete(
        pr_number,
        create_status_checker(vcs.get_status_check_rollup),
        timeout_ms=timeout_ms,
    )

    if json_output:
        console.print_json(result.to_dict())
    elif result.success:
        console.print_success(f"CI passed for PR #{pr_number} after {result.poll_count} poll(s)")
    else:
        console.print_error(f"{result.user_message()} ({result.reason.value})")
        if result.failure_details is not None:
            console.print(escape(f"  {result.failure_details.name}: {result.failure_details.error_message or ''}"))
    return 0 if result.success else 1

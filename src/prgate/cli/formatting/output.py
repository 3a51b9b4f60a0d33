"""
Output formatting with Rich console.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.theme import Theme

from prgate.models import GateResult
from prgate.merge.report import status_label

custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
})


class ConsoleOutput:
    """Console output with Rich formatting."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(theme=custom_theme)

    def print(self, text: str = "", **kwargs):
        self.console.print(text, **kwargs)

    def print_markdown(self, text: str):
        self.console.print(Markdown(text))

    def print_json(self, data: Any):
        """Plain JSON, no markup, so output stays machine-readable."""
        self.console.print_json(json.dumps(data, default=str))

    def print_error(self, text: str):
        self.console.print(f"[error]Error:[/error] {text}")

    def print_success(self, text: str):
        self.console.print(f"[success]Success:[/success] {text}")

    def print_warning(self, text: str):
        self.console.print(f"[warning]Warning:[/warning] {text}")

    def print_info(self, text: str):
        self.console.print(f"[info]Info:[/info] {text}")

    def print_dim(self, text: str):
        self.console.print(f"[dim]{text}[/dim]")

    def print_gate_table(self, gates: Sequence[GateResult]):
        table = Table(title="Gate Status")
        table.add_column("Gate")
        table.add_column("Threshold")
        table.add_column("Actual")
        table.add_column("Status")
        for row in gates:
            table.add_row(row.gate, str(row.threshold), str(row.actual), status_label(row.passed, row.blocking))
        self.console.print(table)

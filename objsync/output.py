"""User-facing output helpers built on rich."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape


class OutputFormatter:
    """Formats messages for the terminal.

    Info and success messages are suppressed in quiet mode; warnings and
    errors always go to stderr.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        """Print a plain line."""
        if self.quiet or self.json_output:
            return
        self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        """Print an informational message."""
        if self.quiet or self.json_output:
            return
        self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        """Print a success message."""
        if self.quiet or self.json_output:
            return
        self.console.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        """Print a warning to stderr."""
        self.err_console.print(f"[yellow]{escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        """Print an error to stderr."""
        self.err_console.print(f"[red]{escape(message)}[/red]")

    def output_json(self, data: Any) -> None:
        """Print data as JSON."""
        self.console.print_json(json.dumps(data, default=str))

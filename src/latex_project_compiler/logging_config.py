"""Rich console setup and compile progress reporting."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class RichProgressReporter:
    """``on_progress`` callback printing each stage to the console.

    Keeps every message so callers (and tests) can inspect the sequence.
    """

    def __init__(self, *, show: bool = True) -> None:
        self.show = show
        self.messages: list[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)
        if not self.show:
            return
        if message == "Compilation failed":
            console.print(f"  [red]{message}[/]")
        elif message.startswith("Done") or message.startswith("Using cached"):
            console.print(f"  [green]{message}[/]")
        else:
            console.print(f"  [dim]{message}[/]")

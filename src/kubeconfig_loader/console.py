"""Rich console utilities for styled terminal output.

This module provides a consistent interface for all CLI output using
the Rich library.
"""

from collections.abc import Generator
from contextlib import contextmanager

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "cyan bold",
        "muted": "dim",
    }
)

# Shared console instance; diagnostics go to stderr so stdout stays clean
console = Console(theme=_THEME)
err_console = Console(theme=_THEME, stderr=True)


def warning(message: str) -> None:
    """Print a warning message to stderr.

    Args:
        message: The message to display.

    """
    err_console.print(f"[warning]⚠[/warning] {message}")


def error(message: str) -> None:
    """Print an error message to stderr.

    Args:
        message: The message to display.

    """
    err_console.print(f"[error]✗[/error] {message}")


def action(message: str) -> None:
    """Print an action/progress message."""
    console.print(f"[info]→[/info] {message}")


def highlight(text: str) -> str:
    """Return text wrapped in highlight markup.

    Args:
        text: The text to highlight.

    Returns:
        Text wrapped in Rich markup for highlighting.

    """
    return f"[highlight]{text}[/highlight]"


@contextmanager
def spinner(message: str) -> Generator[None, None, None]:
    """Display a spinner while performing an operation.

    Credential plugins can take a while, so resolution runs under one.

    Args:
        message: The status message to display.

    Yields:
        None

    """
    with err_console.status(f"[info]{message}[/info]", spinner="dots"):
        yield


def summary_panel(title: str, items: dict[str, str]) -> None:
    """Print a summary panel with key-value pairs.

    Args:
        title: Title for the panel.
        items: Dictionary of label -> value pairs to display.

    """
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="cyan")

    for label, value in items.items():
        table.add_row(f"{label}:", value)

    console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style="green"))

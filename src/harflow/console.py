"""Status lines for the harflow CLI.

Status goes to stderr (``err_console``); the translation itself and the
version string go to stdout (``out_console``) so they can be piped.
"""

from __future__ import annotations

from rich.console import Console

err_console = Console(stderr=True)
out_console = Console()


def _status(style: str, marker: str, message: str, console: Console | None) -> None:
    prefix = f"{marker} " if marker else ""
    (console or err_console).print(f"[{style}]  {prefix}{message}[/{style}]")


def success(message: str, *, console: Console | None = None) -> None:
    """Report a finished step, e.g. ``Wrote flow.json``."""
    _status("green", "✓", message, console)


def error(message: str, *, console: Console | None = None) -> None:
    """Report why a command is about to exit non-zero."""
    _status("red", "✗", message, console)


def warn(message: str, *, console: Console | None = None) -> None:
    """Report a result that is valid but probably not what was wanted."""
    _status("yellow", "⚠", message, console)


def info(message: str, *, console: Console | None = None) -> None:
    _status("dim", "", message, console)

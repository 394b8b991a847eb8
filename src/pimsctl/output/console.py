"""Rich Console factory and theme for pimsctl output.

Consoles render to a StringIO buffer so renderers keep the
``format_result() -> str`` contract. In non-TTY environments (tests,
pipes) Rich drops color codes on its own.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

PIMS_THEME = Theme(
    {
        "pims.ok": "bold green",
        "pims.error": "bold red",
        "pims.warning": "bold yellow",
        "pims.op": "bold cyan",
        "pims.key": "dim",
        "pims.id": "bold blue",
        "pims.domain": "bold",
        "pims.value": "magenta",
        "pims.outcome.installed": "green",
        "pims.outcome.already_known": "dim",
        "pims.outcome.skipped": "yellow",
        "pims.outcome.failed": "red",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=PIMS_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_outcome(outcome: str) -> str:
    return f"pims.outcome.{outcome}" if outcome else ""

"""Rich Console factory and theme for pricegraph output.

Consoles render to a StringIO buffer, preserving the
``format_result() -> str`` contract. In non-TTY environments (tests,
pipes) Rich disables color codes on its own.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

PRICEGRAPH_THEME = Theme(
    {
        "pg.ok": "bold green",
        "pg.error": "bold red",
        "pg.warning": "bold yellow",
        "pg.op": "bold cyan",
        "pg.key": "dim",
        "pg.id": "bold blue",
        "pg.rate": "magenta",
        "pg.kind.tag": "green",
        "pg.kind.field": "blue",
        "pg.kind.option": "cyan",
    }
)

_KIND_STYLES: dict[str, str] = {
    "tag": "pg.kind.tag",
    "field": "pg.kind.field",
    "option": "pg.kind.option",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=PRICEGRAPH_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_kind(kind: str) -> str:
    """Rich style name for a graph node kind."""
    return _KIND_STYLES.get(kind, "")

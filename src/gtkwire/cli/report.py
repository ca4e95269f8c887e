"""Console rendering of compiler results and errors."""

from pathlib import Path
from typing import Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from gtkwire.compiler.exceptions import GtkWireError

CONTEXT_LINES = 2


def line_and_column(source: str, offset: int) -> Tuple[int, int]:
    """1-based line and column of a character offset."""
    offset = max(0, min(offset, len(source)))
    line = source.count("\n", 0, offset) + 1
    column = offset - (source.rfind("\n", 0, offset) + 1) + 1
    return line, column


def _read_source(error: GtkWireError) -> Optional[str]:
    if not error.file_path:
        return None
    try:
        return Path(error.file_path).read_text(encoding="utf-8")
    except OSError:
        return None


def render_error(console: Console, error: GtkWireError, source: Optional[str] = None) -> None:
    """Print `[Category] message`, plus a framed excerpt when the location is known."""
    console.print(Text.assemble((f"[{error.category}] ", "bold red"), error.message))

    if not error.has_span:
        return
    if source is None:
        source = _read_source(error)
    if source is None:
        return

    assert error.start is not None
    line, column = line_and_column(source, error.start)
    lexer = "python" if (error.file_path or "").endswith(".py") else "html"
    syntax = Syntax(
        source,
        lexer,
        line_numbers=True,
        line_range=(max(1, line - CONTEXT_LINES), line + CONTEXT_LINES),
        highlight_lines={line},
        word_wrap=True,
    )
    title = f"{error.file_path or '<string>'}:{line}:{column}"
    console.print(Panel(syntax, title=title, title_align="left", border_style="red", expand=False))


def render_success(console: Console, out_path: Path) -> None:
    console.print(
        Text.assemble(
            ("[Success] ", "bold green"),
            f"Compilation successful. Output written to {out_path}.",
        )
    )

"""Main CLI entry point."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import rich_click as click
from rich.console import Console
from rich.logging import RichHandler

from gtkwire import __version__
from gtkwire.cli.report import render_error, render_success
from gtkwire.compiler.build import ProjectBuilder, compile_file
from gtkwire.compiler.exceptions import GtkWireError
from gtkwire.compiler.paths import SOURCE_SUFFIXES
from gtkwire.config import GtkWireConfig, load_config

console = Console()
logger = logging.getLogger("gtkwire")

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.STYLE_HELPTEXT_FIRST = True
click.rich_click.STYLE_COMMANDS_TABLE_SHOW_LINES = False
click.rich_click.STYLE_COMMANDS_TABLE_PAD_EDGE = False
click.rich_click.STYLE_COMMANDS_TABLE_BOX = None
click.rich_click.STYLE_OPTIONS_TABLE_BOX = None
click.rich_click.STYLE_COMMANDS_TABLE_HEADER = "bold magenta"
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running 'gtkwire --help' for more information."

# Cyan theme
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_OPTION = "cyan"
click.rich_click.STYLE_SWITCH = "cyan"
click.rich_click.STYLE_METAVAR = "dim white"
click.rich_click.STYLE_USAGE_COMMAND = "cyan"
click.rich_click.STYLE_USAGE = "dim"

click.rich_click.COMMAND_GROUPS = {
    "gtkwire": [
        {
            "name": "Commands",
            "commands": ["build", "compile", "watch"],
        }
    ]
}


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def verbose_option(fn: Callable[..., Any]) -> Callable[..., Any]:
    return click.option("--verbose", "-v", is_flag=True, help="Show debug output.")(fn)


def _project_config(src: Optional[str], out: Optional[str]) -> GtkWireConfig:
    start = Path(src) if src else Path.cwd()
    config = load_config(start)
    return config.with_overrides(
        src_dir=Path(src).resolve() if src else None,
        out_dir=Path(out).resolve() if out else None,
    )


def _run_build(config: GtkWireConfig, optimize: bool = False) -> bool:
    """Build once, report the outcome, and return whether it succeeded."""
    try:
        summary = ProjectBuilder(config).build(optimize=optimize)
    except GtkWireError as e:
        render_error(console, e)
        return False
    render_success(console, summary.out_dir)
    return True


@click.group(
    help=f"""
[bold white on cyan] gtkwire [/] [bold cyan]v{__version__}[/] Compile reactive components into GTK 4 widget code.

Run [bold cyan]gtkwire build[/] to compile every component under the source root.
Run [bold cyan]gtkwire watch[/] to rebuild on every change.
"""
)
@click.version_option(__version__)
def cli() -> None:
    pass


@cli.command()
@click.argument("src", required=False, type=click.Path(file_okay=False))
@click.option("--out", "out", default=None, help="Output directory (default: .gtkwire/build).")
@click.option("--optimize", is_flag=True, help="Byte-compile the generated modules.")
@verbose_option
def build(src: Optional[str], out: Optional[str], optimize: bool, verbose: bool) -> None:
    """Compile every .wire and .py file under the source root."""
    configure_logging(verbose)
    config = _project_config(src, out)
    logger.debug("Building %s into %s", config.src_dir, config.out_dir)
    if not _run_build(config, optimize=optimize):
        sys.exit(1)


@cli.command("compile")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--src-root", default=None, help="Source root used for module names and imports.")
@click.option("--out", "out", default=None, help="Write the module here instead of printing it.")
@verbose_option
def compile_command(file: str, src_root: Optional[str], out: Optional[str], verbose: bool) -> None:
    """Compile a single component and print or write the generated module."""
    configure_logging(verbose)
    path = Path(file)
    config = load_config(path).with_overrides(
        src_dir=Path(src_root).resolve() if src_root else None
    )
    try:
        code = compile_file(path, config)
    except GtkWireError as e:
        render_error(console, e)
        sys.exit(1)

    if out is None:
        click.echo(code, nl=False)
        return
    out_path = Path(out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(code, encoding="utf-8")
    render_success(console, out_path)


def _source_filter(config: GtkWireConfig) -> Callable[[Any, str], bool]:
    out_dir = config.out_dir.resolve()

    def accept(change: Any, path: str) -> bool:
        if not path.endswith(SOURCE_SUFFIXES):
            return False
        return not Path(path).resolve().is_relative_to(out_dir)

    return accept


async def _watch(config: GtkWireConfig) -> None:
    from watchfiles import awatch

    _run_build(config)
    console.print(f"[bold cyan]gtkwire[/]: watching {config.src_dir} for changes...")
    async for changes in awatch(config.src_dir, watch_filter=_source_filter(config)):
        for change_type, file_path in sorted(changes, key=lambda c: c[1]):
            logger.debug("%s %s", change_type.name, file_path)
        console.print("[bold cyan]gtkwire[/]: changes detected, rebuilding...")
        _run_build(config)


@cli.command()
@click.argument("src", required=False, type=click.Path(file_okay=False))
@click.option("--out", "out", default=None, help="Output directory (default: .gtkwire/build).")
@verbose_option
def watch(src: Optional[str], out: Optional[str], verbose: bool) -> None:
    """Rebuild the whole project whenever a source file changes."""
    configure_logging(verbose)
    config = _project_config(src, out)
    try:
        asyncio.run(_watch(config))
    except KeyboardInterrupt:
        console.print("[dim]Stopped watching.[/]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

"""Helpers for gtkwire filesystem paths."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterator, Union

SOURCE_SUFFIXES = (".wire", ".py")

_SEPARATORS = re.compile(r"[/\\.\-]")


def mangle_filepath(file_path: Union[str, Path], src_dir: Union[str, Path]) -> str:
    """Module name for a source file: relative path, no extension, separators to `_`.

    `src/components/my-button.wire` under `src` becomes `components_my_button`.
    """
    path = Path(file_path)
    try:
        relative = path.resolve().relative_to(Path(src_dir).resolve())
    except ValueError:
        relative = Path(path.name)
    text = relative.with_suffix("").as_posix()
    return _SEPARATORS.sub("_", text)


def find_sources(src_dir: Path) -> Iterator[Path]:
    """Yield `.wire` and `.py` files under `src_dir` in a stable order.

    Hidden directories and `__pycache__` are skipped.
    """
    for path in sorted(src_dir.rglob("*")):
        relative = path.relative_to(src_dir)
        if any(part.startswith(".") or part == "__pycache__" for part in relative.parts[:-1]):
            continue
        if path.is_file() and path.suffix in SOURCE_SUFFIXES and not path.name.startswith("."):
            yield path


def ensure_build_dir(out_dir: Path) -> Path:
    """Ensure the build directory exists; a `.gtkwire` parent gets a local .gitignore."""
    out_dir.mkdir(parents=True, exist_ok=True)

    if out_dir.parent.name == ".gtkwire":
        gitignore_path = out_dir.parent / ".gitignore"
        if not gitignore_path.exists():
            gitignore_path.write_text("*")

    return out_dir

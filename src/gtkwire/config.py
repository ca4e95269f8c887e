"""Project configuration, read from `[tool.gtkwire]` in pyproject.toml."""

import logging
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PROJECT_MARKERS = ("pyproject.toml",)


@dataclass(frozen=True)
class GtkWireConfig:
    src_dir: Path = Path("src")
    out_dir: Path = Path(".gtkwire") / "build"
    toolkit_namespace: str = "gi.repository"
    toolkit: str = "Gtk"
    toolkit_version: str = "4.0"
    root_spacing: int = 6
    root_margin: int = 12

    def with_overrides(self, **overrides: Any) -> "GtkWireConfig":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        for key in ("src_dir", "out_dir"):
            if key in values:
                values[key] = Path(values[key])
        return replace(self, **values)


def find_project_root(start: Path) -> Optional[Path]:
    """Walk up from `start` to the first directory holding a project marker."""
    current = start.resolve()
    if current.is_file():
        current = current.parent
    while True:
        if any((current / marker).exists() for marker in PROJECT_MARKERS):
            return current
        if current == current.parent:
            return None
        current = current.parent


def load_config(start: Optional[Path] = None) -> GtkWireConfig:
    """Load configuration for the project containing `start` (default: cwd).

    Relative `src_dir`/`out_dir` values are resolved against the project root.
    Without a pyproject.toml the defaults apply relative to `start`.
    """
    start = Path(start) if start is not None else Path.cwd()
    root = find_project_root(start)
    base = root if root is not None else (start.parent if start.is_file() else start)

    table: Dict[str, Any] = {}
    if root is not None:
        pyproject = root / "pyproject.toml"
        with pyproject.open("rb") as f:
            data = tomllib.load(f)
        table = data.get("tool", {}).get("gtkwire", {})
        logger.debug("Loaded [tool.gtkwire] from %s: %s", pyproject, table)

    known = {f.name for f in fields(GtkWireConfig)}
    unknown = sorted(set(table) - known)
    if unknown:
        logger.warning("Ignoring unknown [tool.gtkwire] keys: %s", ", ".join(unknown))

    config = GtkWireConfig().with_overrides(
        **{k: v for k, v in table.items() if k in known}
    )
    return replace(
        config,
        src_dir=(base / config.src_dir).resolve(),
        out_dir=(base / config.out_dir).resolve(),
    )

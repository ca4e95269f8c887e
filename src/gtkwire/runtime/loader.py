"""Component loader - imports compiled artifacts from a build directory."""

import hashlib
import importlib
import json
import logging
import os
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Optional

from gtkwire.compiler.build import MANIFEST_NAME
from gtkwire.compiler.exceptions import WireFileError
from gtkwire.config import load_config

logger = logging.getLogger(__name__)

BUILD_DIR_ENV = "GTKWIRE_BUILD_DIR"


class ComponentLoader:
    """Loads component factories compiled by `gtkwire build`.

    Compiled modules import each other by their mangled names, so the build
    directory is put on `sys.path` before the first import.
    """

    def __init__(self, build_dir: Path) -> None:
        self.build_dir = Path(build_dir).resolve()
        self._manifest: Optional[dict] = None

    @property
    def manifest(self) -> dict:
        if self._manifest is None:
            manifest_path = self.build_dir / MANIFEST_NAME
            if not manifest_path.exists():
                raise WireFileError(f"No build manifest found in {self.build_dir}")
            self._manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        return self._manifest

    def _ensure_on_path(self) -> None:
        build_dir = str(self.build_dir)
        if build_dir not in sys.path:
            sys.path.insert(0, build_dir)
            importlib.invalidate_caches()

    def entry_for(self, source: Path) -> Dict[str, Any]:
        entries = self.manifest.get("entries", {})
        entry = entries.get(str(Path(source).resolve()))
        if entry is None:
            raise WireFileError(f"{source} is not part of the build in {self.build_dir}")
        return entry

    def is_fresh(self, source: Path) -> bool:
        """True when the source still matches the hash recorded at build time."""
        entry = self.entry_for(source)
        source = Path(source).resolve()
        if not source.exists():
            return False
        return entry.get("hash") == hashlib.sha256(source.read_bytes()).hexdigest()

    def load_module(self, source: Path) -> ModuleType:
        entry = self.entry_for(source)
        if not self.is_fresh(source):
            logger.warning("%s changed since it was built; loading the stale artifact", source)
        self._ensure_on_path()
        return importlib.import_module(entry["module"])

    def load(self, source: Path) -> Callable[..., Any]:
        """Return the factory of a compiled component."""
        entry = self.entry_for(source)
        if entry.get("kind") != "component":
            raise WireFileError(f"{source} is not a component")
        module = self.load_module(source)
        return getattr(module, entry["module"])


def find_build_dir(start: Optional[Path] = None) -> Path:
    """The build directory from $GTKWIRE_BUILD_DIR or the project configuration."""
    override = os.environ.get(BUILD_DIR_ENV)
    if override:
        build_dir = Path(override)
        if not build_dir.is_absolute():
            build_dir = Path.cwd() / build_dir
        return build_dir

    return load_config(start).out_dir


def load_component(source: Path, build_dir: Optional[Path] = None) -> Callable[..., Any]:
    """Factory for `source` from the nearest build."""
    source = Path(source)
    loader = ComponentLoader(build_dir if build_dir is not None else find_build_dir(source))
    return loader.load(source)

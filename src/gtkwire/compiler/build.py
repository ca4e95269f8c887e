"""Two-pass project build: analyze every source, then compile every source."""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from gtkwire.compiler.analysis import (
    ModuleMetadata,
    collect_exports,
    propagate_reactive_exports,
)
from gtkwire.compiler.ast_nodes import ParsedWire
from gtkwire.compiler.codegen.generator import CodeGenerator
from gtkwire.compiler.exceptions import WireFileError
from gtkwire.compiler.parser import WireParser
from gtkwire.compiler.paths import ensure_build_dir, find_sources, mangle_filepath
from gtkwire.config import GtkWireConfig

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = 1


@dataclass
class BuildSummary:
    components: int
    modules: int
    out_dir: Path


@dataclass
class CompiledArtifact:
    source: Path
    mangled_name: str
    code: str

    @property
    def kind(self) -> str:
        return "component" if self.source.suffix == ".wire" else "module"


class ProjectBuilder:
    """Compiles every `.wire` and `.py` file under a source root.

    Pass one parses and analyzes everything into a read-only metadata map.
    Pass two generates each module against that map. Nothing is written
    until every module has compiled, so a failing build leaves the previous
    output untouched.
    """

    def __init__(self, config: Optional[GtkWireConfig] = None) -> None:
        self.config = config or GtkWireConfig()
        self.src_dir = self.config.src_dir.resolve()
        self.out_dir = self.config.out_dir.resolve()
        self.parser = WireParser()
        self.codegen = CodeGenerator(self.config, self.src_dir)
        self.parsed: Dict[Path, ParsedWire] = {}
        self.metadata: Dict[Path, ModuleMetadata] = {}

    def discover(self) -> List[Path]:
        if not self.src_dir.is_dir():
            raise WireFileError(f"Source directory not found: {self.src_dir}")
        if self.src_dir.is_relative_to(self.out_dir):
            raise WireFileError(
                f"Output directory {self.out_dir} must not contain the sources"
            )
        sources = [
            path.resolve()
            for path in find_sources(self.src_dir)
            if not path.resolve().is_relative_to(self.out_dir)
        ]
        logger.debug("Discovered %d source files under %s", len(sources), self.src_dir)
        return sources

    def analyze(self, sources: Optional[List[Path]] = None) -> Dict[Path, ModuleMetadata]:
        """Pass one: parse and analyze every source, then settle reactive re-exports."""
        self.parsed.clear()
        self.metadata.clear()
        for path in sources if sources is not None else self.discover():
            parsed = self.parser.parse_file(path)
            analysis = self.codegen.analyze(parsed)
            self.parsed[path] = parsed
            self.metadata[path] = ModuleMetadata(
                path=path,
                mangled_name=mangle_filepath(path, self.src_dir),
                analysis=analysis,
                exports=collect_exports(parsed.script if path.suffix == ".py" else None),
            )
        propagate_reactive_exports(self.metadata)
        return self.metadata

    def compile_one(self, path: Path) -> CompiledArtifact:
        """Pass two for one file. Requires `analyze()` to have run."""
        path = path.resolve()
        if path not in self.metadata:
            raise WireFileError(f"{path} is not a source under {self.src_dir}")
        meta = self.metadata[path]
        code = self.codegen.compile_source(self.parsed[path], self.metadata, meta.analysis)
        return CompiledArtifact(source=path, mangled_name=meta.mangled_name, code=code)

    def compile_all(self) -> List[CompiledArtifact]:
        return [self.compile_one(path) for path in self.metadata]

    def build(self, optimize: bool = False) -> BuildSummary:
        self.analyze()
        artifacts = self.compile_all()

        if self.out_dir.exists():
            shutil.rmtree(self.out_dir)
        ensure_build_dir(self.out_dir)

        entries: Dict[str, dict] = {}
        for artifact in artifacts:
            artifact_path = self.out_dir / f"{artifact.mangled_name}.py"
            artifact_path.write_text(artifact.code, encoding="utf-8")
            logger.debug("Wrote %s", artifact_path)
            entries[str(artifact.source)] = {
                "artifact": artifact_path.name,
                "module": artifact.mangled_name,
                "hash": self._hash_file(artifact.source),
                "kind": artifact.kind,
            }

        manifest = {
            "version": MANIFEST_VERSION,
            "src_dir": str(self.src_dir),
            "entries": entries,
        }
        manifest_path = self.out_dir / MANIFEST_NAME
        manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

        if optimize:
            import compileall

            compileall.compile_dir(self.out_dir, quiet=1, optimize=2)

        components = sum(1 for a in artifacts if a.kind == "component")
        summary = BuildSummary(
            components=components,
            modules=len(artifacts) - components,
            out_dir=self.out_dir,
        )
        logger.info(
            "Built %d components and %d modules into %s",
            summary.components,
            summary.modules,
            summary.out_dir,
        )
        return summary

    def _hash_file(self, path: Path) -> str:
        return hashlib.sha256(path.read_bytes()).hexdigest()


def build_project(
    config: Optional[GtkWireConfig] = None, optimize: bool = False
) -> BuildSummary:
    """Build the whole project described by `config`."""
    return ProjectBuilder(config).build(optimize=optimize)


def compile_file(file_path: Path, config: Optional[GtkWireConfig] = None) -> str:
    """Compile one source file with full knowledge of its project.

    Files outside the configured source root are compiled with their own
    directory as the root.
    """
    config = config or GtkWireConfig()
    file_path = file_path.resolve()
    if not file_path.is_file():
        raise WireFileError(f"File not found: {file_path}")
    if not file_path.is_relative_to(config.src_dir.resolve()):
        config = config.with_overrides(src_dir=file_path.parent)

    builder = ProjectBuilder(config)
    builder.analyze()
    return builder.compile_one(file_path).code

"""Scope and reactivity analysis of component scripts and project modules."""

import ast
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from gtkwire.compiler.exceptions import AnalysisError

REACTIVE_CONSTRUCTORS = ("state", "derived")
PROPS_CALL = "props"
BINDABLE_CALL = "bindable"
WHOLE_MODULE = "*"

DEFAULT_TOOLKIT_NAMESPACE = "gi.repository"

SpanLocator = Callable[[ast.AST], Tuple[Optional[int], Optional[int]]]


def _no_span(node: ast.AST) -> Tuple[Optional[int], Optional[int]]:
    return (None, None)


class ModuleKind(Enum):
    TOOLKIT = "toolkit"
    PROJECT = "project"
    EXTERNAL = "external"


@dataclass
class ImportSpecifier:
    local_name: str
    # WHOLE_MODULE for `import x` / `import x as y`
    imported_name: str


@dataclass
class Dependency:
    """One distinct import path referenced by a module."""

    path: str
    kind: ModuleKind
    start: Optional[int] = None
    end: Optional[int] = None
    specifiers: List[ImportSpecifier] = field(default_factory=list)
    resolved_path: Optional[Path] = None

    @property
    def is_component(self) -> bool:
        return self.resolved_path is not None and self.resolved_path.suffix == ".wire"


@dataclass
class ScriptAnalysis:
    state_variables: Set[str] = field(default_factory=set)
    # name -> default source text (None when no default)
    props: Dict[str, Optional[str]] = field(default_factory=dict)
    bindable_props: Set[str] = field(default_factory=set)
    dependencies: Dict[str, Dependency] = field(default_factory=dict)
    # Every name bound at the top level of the script
    declared_names: Set[str] = field(default_factory=set)


@dataclass
class ExportInfo:
    """What a plain `.py` project module exposes to importers."""

    exported: Set[str] = field(default_factory=set)
    declared_reactive: Set[str] = field(default_factory=set)
    # external name -> local name, for top-level `ext = local` aliases
    aliases: Dict[str, str] = field(default_factory=dict)


def _constructor_name(value: Optional[ast.AST]) -> Optional[str]:
    if isinstance(value, ast.Call) and isinstance(value.func, ast.Name):
        return value.func.id
    return None


def is_reactive_declaration(value: Optional[ast.AST]) -> bool:
    """True for a `state(...)` or `derived(...)` call."""
    return _constructor_name(value) in REACTIVE_CONSTRUCTORS


def is_props_statement(stmt: ast.stmt) -> bool:
    return isinstance(stmt, ast.Assign) and _constructor_name(stmt.value) == PROPS_CALL


def classify_import(module: str, toolkit_namespace: str = DEFAULT_TOOLKIT_NAMESPACE) -> ModuleKind:
    if module.startswith("."):
        return ModuleKind.PROJECT
    root = toolkit_namespace.split(".")[0]
    if module in (toolkit_namespace, root) or module.startswith(toolkit_namespace + "."):
        return ModuleKind.TOOLKIT
    return ModuleKind.EXTERNAL


def bound_names(target: ast.AST) -> List[str]:
    """Names bound by an assignment target (tuples and starred targets included)."""
    if isinstance(target, ast.Name):
        return [target.id]
    if isinstance(target, (ast.Tuple, ast.List)):
        names: List[str] = []
        for elt in target.elts:
            names.extend(bound_names(elt))
        return names
    if isinstance(target, ast.Starred):
        return bound_names(target.value)
    return []


def top_level_names(body: List[ast.stmt]) -> Set[str]:
    names: Set[str] = set()
    for stmt in body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(stmt.name)
        elif isinstance(stmt, ast.Assign):
            for target in stmt.targets:
                names.update(bound_names(target))
        elif isinstance(stmt, (ast.AnnAssign, ast.AugAssign)):
            names.update(bound_names(stmt.target))
        elif isinstance(stmt, ast.Import):
            for alias in stmt.names:
                names.add(alias.asname or alias.name.split(".")[0])
        elif isinstance(stmt, ast.ImportFrom):
            for alias in stmt.names:
                names.add(alias.asname or alias.name)
    return names


class _ScriptAnalyzer:
    def __init__(self, span_of: SpanLocator, file_path: Optional[str], toolkit_namespace: str):
        self.span_of = span_of
        self.file_path = file_path
        self.toolkit_namespace = toolkit_namespace
        self.result = ScriptAnalysis()

    def error(self, node: ast.AST, message: str) -> AnalysisError:
        start, end = self.span_of(node)
        return AnalysisError(message, start=start, end=end, file_path=self.file_path)

    def run(self, module: ast.Module) -> ScriptAnalysis:
        self.result.declared_names = top_level_names(module.body)

        top_level_props = [stmt for stmt in module.body if is_props_statement(stmt)]
        if len(top_level_props) > 1:
            raise self.error(top_level_props[1], "props() may only be destructured once per component")
        for stmt in top_level_props:
            self._collect_props(stmt)

        allowed_props_calls = {id(stmt.value) for stmt in top_level_props}
        for node in ast.walk(module):
            if isinstance(node, (ast.Import, ast.ImportFrom)):
                self._collect_import(node)
            elif isinstance(node, ast.Assign):
                if is_reactive_declaration(node.value):
                    for target in node.targets:
                        if isinstance(target, ast.Name):
                            self.result.state_variables.add(target.id)
            elif isinstance(node, ast.AnnAssign):
                if is_reactive_declaration(node.value) and isinstance(node.target, ast.Name):
                    self.result.state_variables.add(node.target.id)
            elif isinstance(node, ast.Call) and _constructor_name(node) == PROPS_CALL:
                if id(node) not in allowed_props_calls:
                    raise self.error(
                        node,
                        "properties must be destructured into individual bindings "
                        "at the top level of the script",
                    )
        return self.result

    def _collect_props(self, stmt: ast.Assign) -> None:
        call = stmt.value
        assert isinstance(call, ast.Call)
        if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], (ast.Tuple, ast.List)):
            raise self.error(stmt, "properties must be destructured into individual bindings")

        names: List[str] = []
        for elt in stmt.targets[0].elts:
            if not isinstance(elt, ast.Name):
                raise self.error(elt, "properties must be destructured into individual bindings")
            names.append(elt.id)

        if call.args:
            raise self.error(call.args[0], "props() only accepts keyword defaults, e.g. props(count=0)")

        defaults: Dict[str, ast.expr] = {}
        for keyword in call.keywords:
            if keyword.arg is None:
                raise self.error(keyword.value, "props() does not accept ** defaults")
            if keyword.arg not in names:
                raise self.error(
                    keyword.value,
                    f"Default given for property '{keyword.arg}', which is not destructured",
                )
            defaults[keyword.arg] = keyword.value

        for name in names:
            default = defaults.get(name)
            if default is not None and _constructor_name(default) == BINDABLE_CALL:
                assert isinstance(default, ast.Call)
                self.result.bindable_props.add(name)
                default = default.args[0] if default.args else None
            self.result.props[name] = ast.unparse(default) if default is not None else None

    def _dependency(self, path: str, node: ast.AST) -> Dependency:
        dependencies = self.result.dependencies
        if path not in dependencies:
            start, end = self.span_of(node)
            dependencies[path] = Dependency(
                path=path,
                kind=classify_import(path, self.toolkit_namespace),
                start=start,
                end=end,
            )
        return dependencies[path]

    def _collect_import(self, node: ast.AST) -> None:
        if isinstance(node, ast.Import):
            for alias in node.names:
                dep = self._dependency(alias.name, node)
                local = alias.asname or alias.name.split(".")[0]
                dep.specifiers.append(ImportSpecifier(local, WHOLE_MODULE))
            return

        assert isinstance(node, ast.ImportFrom)
        prefix = "." * node.level
        for alias in node.names:
            if alias.name == "*":
                raise self.error(node, "Wildcard imports are not supported in components")
            if node.module is None:
                # `from . import store` imports the sibling module itself
                dep = self._dependency(prefix + alias.name, node)
                dep.specifiers.append(ImportSpecifier(alias.asname or alias.name, WHOLE_MODULE))
            else:
                dep = self._dependency(prefix + node.module, node)
                dep.specifiers.append(ImportSpecifier(alias.asname or alias.name, alias.name))


def analyze_script(
    module: Optional[ast.Module],
    span_of: Optional[SpanLocator] = None,
    file_path: Optional[str] = None,
    toolkit_namespace: str = DEFAULT_TOOLKIT_NAMESPACE,
) -> ScriptAnalysis:
    """Collect reactive declarations, props and imports of one script."""
    if module is None:
        return ScriptAnalysis()
    analyzer = _ScriptAnalyzer(span_of or _no_span, file_path, toolkit_namespace)
    return analyzer.run(module)


def resolve_project_import(path: str, file_path: Path) -> Optional[Path]:
    """Resolve a relative import to `.wire`, then `.py`, then a package `__init__.py`."""
    level = len(path) - len(path.lstrip("."))
    base = file_path.parent
    for _ in range(level - 1):
        base = base.parent
    parts = [part for part in path[level:].split(".") if part]
    target = base.joinpath(*parts) if parts else base

    candidates = [
        target.with_name(target.name + ".wire"),
        target.with_name(target.name + ".py"),
        target / "__init__.py",
    ]
    if not parts:
        candidates = [target / "__init__.py"]
    for candidate in candidates:
        if candidate.is_file():
            return candidate.resolve()
    return None


def resolve_dependencies(
    dependencies: Dict[str, Dependency],
    file_path: Path,
    src_dir: Path,
) -> Dict[str, Dependency]:
    """Make every project import absolute. Unresolvable imports are fatal."""
    src_root = src_dir.resolve()
    for dep in dependencies.values():
        if dep.kind is not ModuleKind.PROJECT:
            continue
        resolved = resolve_project_import(dep.path, file_path)
        if resolved is None:
            raise AnalysisError(
                f"Cannot resolve import '{dep.path}' (looked for .wire, .py "
                f"and package modules next to {file_path.name})",
                start=dep.start,
                end=dep.end,
                file_path=str(file_path),
            )
        if not resolved.is_relative_to(src_root):
            raise AnalysisError(
                f"Import '{dep.path}' resolves outside the source root {src_root}",
                start=dep.start,
                end=dep.end,
                file_path=str(file_path),
            )
        dep.resolved_path = resolved
    return dependencies


def collect_exports(module: Optional[ast.Module]) -> ExportInfo:
    """Exported bindings, reactive declarations and aliases of a `.py` module."""
    info = ExportInfo()
    if module is None:
        return info

    explicit: Optional[Set[str]] = None
    for stmt in module.body:
        if isinstance(stmt, ast.Assign):
            if len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
                name = stmt.targets[0].id
                if name == "__all__" and isinstance(stmt.value, (ast.List, ast.Tuple)):
                    explicit = {
                        elt.value
                        for elt in stmt.value.elts
                        if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                    }
                elif is_reactive_declaration(stmt.value):
                    info.declared_reactive.add(name)
                elif isinstance(stmt.value, ast.Name):
                    info.aliases[name] = stmt.value.id
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            if is_reactive_declaration(stmt.value):
                info.declared_reactive.add(stmt.target.id)
            elif isinstance(stmt.value, ast.Name):
                info.aliases[stmt.target.id] = stmt.value.id

    if explicit is not None:
        info.exported = explicit
    else:
        info.exported = {
            name for name in top_level_names(module.body) if not name.startswith("_")
        }
    return info


def reactive_exports_of(info: ExportInfo, imported_reactive: Set[str] = frozenset()) -> Set[str]:
    reactive_locals = info.declared_reactive | set(imported_reactive)
    reactive = set(reactive_locals)
    # Follow alias chains (`b = a; c = b`) until nothing new appears
    changed = True
    while changed:
        changed = False
        for external, local in info.aliases.items():
            if local in reactive and external not in reactive:
                reactive.add(external)
                changed = True
    return {name for name in info.exported if name in reactive}


def analyze_reactive_exports(module: Optional[ast.Module]) -> Set[str]:
    """Exported bindings of a `.py` module that are reactive cells."""
    return reactive_exports_of(collect_exports(module))


@dataclass
class ModuleMetadata:
    """Read-only result of pass one for one project file."""

    path: Path
    mangled_name: str
    analysis: ScriptAnalysis
    exports: ExportInfo = field(default_factory=ExportInfo)
    reactive_exports: Set[str] = field(default_factory=set)

    @property
    def is_component(self) -> bool:
        return self.path.suffix == ".wire"


def imported_reactive_names(
    analysis: ScriptAnalysis, metadata: Dict[Path, ModuleMetadata]
) -> Set[str]:
    """Local names a module imports that are reactive exports of their origin."""
    names: Set[str] = set()
    for dep in analysis.dependencies.values():
        if dep.kind is not ModuleKind.PROJECT or dep.resolved_path is None:
            continue
        origin = metadata.get(dep.resolved_path)
        if origin is None:
            continue
        for spec in dep.specifiers:
            if spec.imported_name in origin.reactive_exports:
                names.add(spec.local_name)
    return names


def propagate_reactive_exports(metadata: Dict[Path, ModuleMetadata]) -> Dict[Path, ModuleMetadata]:
    """Iterate to a fixed point so re-exported reactive names are known project-wide.

    A module doing `from .a import count as total` and exporting `total`
    reports `total` as reactive once `a` reports `count`.
    """
    changed = True
    while changed:
        changed = False
        for meta in metadata.values():
            if meta.is_component:
                continue
            imported = imported_reactive_names(meta.analysis, metadata)
            exports = reactive_exports_of(meta.exports, imported)
            if exports != meta.reactive_exports:
                meta.reactive_exports = exports
                changed = True
    return metadata

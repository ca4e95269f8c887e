"""Main code generator: assembles one Python module per `.wire` or `.py` source."""

import ast
import copy
import keyword
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from gtkwire.compiler.analysis import (
    Dependency,
    ImportSpecifier,
    ModuleKind,
    ModuleMetadata,
    ScriptAnalysis,
    WHOLE_MODULE,
    analyze_script,
    collect_exports,
    imported_reactive_names,
    resolve_dependencies,
)
from gtkwire.compiler.ast_nodes import ParsedWire
from gtkwire.compiler.codegen import builders as b
from gtkwire.compiler.codegen.template import TemplateLowering
from gtkwire.compiler.exceptions import AnalysisError
from gtkwire.compiler.paths import mangle_filepath
from gtkwire.compiler.state import CompilerState
from gtkwire.compiler.transform import transform_script, transform_statements
from gtkwire.config import GtkWireConfig

logger = logging.getLogger(__name__)

RUNTIME_PACKAGE = "gtkwire"
PROPS_PARAM = "props"

_NON_IDENTIFIER = re.compile(r"\W")

Metadata = Dict[Path, ModuleMetadata]


def component_name_for(file_path: str) -> str:
    """Factory name for a component file: its stem made into an identifier."""
    name = _NON_IDENTIFIER.sub("_", Path(file_path).stem) or "Component"
    if name[0].isdigit():
        name = "_" + name
    if keyword.iskeyword(name):
        name += "_"
    return name


def _alias(name: str, local: Optional[str] = None) -> ast.alias:
    return ast.alias(name=name, asname=local if local and local != name else None)


def _verbatim_imports(dep: Dependency, skip: Iterable[Tuple[str, str]] = ()) -> List[ast.stmt]:
    """Re-emit the imports of a toolkit or external dependency as written."""
    skipped = set(skip)
    statements: List[ast.stmt] = []
    from_names: List[ast.alias] = []
    for spec in dep.specifiers:
        if (spec.imported_name, spec.local_name) in skipped:
            continue
        if spec.imported_name == WHOLE_MODULE:
            root = dep.path.split(".")[0]
            local = None if spec.local_name == root else spec.local_name
            statements.append(ast.Import(names=[ast.alias(name=dep.path, asname=local)]))
        else:
            from_names.append(_alias(spec.imported_name, spec.local_name))
    if from_names:
        statements.append(ast.ImportFrom(module=dep.path, names=from_names, level=0))
    return statements


class _ProjectImportRewriter(ast.NodeTransformer):
    """Turns relative imports left inside a body into absolute compiled-module imports."""

    def __init__(self, generator: "CodeGenerator", analysis: ScriptAnalysis):
        self.generator = generator
        self.analysis = analysis

    def visit_ImportFrom(self, node: ast.ImportFrom):
        if node.level == 0:
            return node
        prefix = "." * node.level
        pairs: List[Tuple[Dependency, ImportSpecifier]] = []
        for alias in node.names:
            if node.module is None:
                path, spec = prefix + alias.name, ImportSpecifier(alias.asname or alias.name, WHOLE_MODULE)
            else:
                path, spec = prefix + node.module, ImportSpecifier(alias.asname or alias.name, alias.name)
            pairs.append((self.analysis.dependencies[path], spec))
        return [ast.copy_location(stmt, node) for stmt in self.generator.project_imports(pairs)]


class CodeGenerator:
    """Generates Python modules from parsed `.wire` components and `.py` project modules."""

    def __init__(self, config: Optional[GtkWireConfig] = None, src_dir: Optional[Path] = None) -> None:
        self.config = config or GtkWireConfig()
        self.src_dir = Path(src_dir if src_dir is not None else self.config.src_dir)

    # -- analysis ---------------------------------------------------------

    def analyze(self, parsed: ParsedWire) -> ScriptAnalysis:
        """Analyze a module's script and resolve its project imports."""
        analysis = analyze_script(
            parsed.script, parsed.span_of, parsed.file_path, self.config.toolkit_namespace
        )
        resolve_dependencies(analysis.dependencies, Path(parsed.file_path), self.src_dir)
        return analysis

    def mangled_name_for(self, parsed: ParsedWire) -> str:
        if not parsed.file_path:
            return component_name_for("Component")
        return mangle_filepath(parsed.file_path, self.src_dir)

    # -- entry points -----------------------------------------------------

    def generate(
        self,
        parsed: ParsedWire,
        metadata: Optional[Metadata] = None,
        analysis: Optional[ScriptAnalysis] = None,
    ) -> ast.Module:
        """Generate the module for any source file."""
        if parsed.file_path.endswith(".py"):
            return self.generate_module(parsed, metadata, analysis)
        return self.generate_component(parsed, metadata, analysis)

    def generate_component(
        self,
        parsed: ParsedWire,
        metadata: Optional[Metadata] = None,
        analysis: Optional[ScriptAnalysis] = None,
    ) -> ast.Module:
        if analysis is None:
            analysis = self.analyze(parsed)
        reactive = (
            set(analysis.state_variables)
            | set(analysis.props)
            | imported_reactive_names(analysis, metadata or {})
        )
        state = CompilerState(
            parsed=parsed,
            component_name=component_name_for(parsed.file_path or "Component"),
            mangled_name=self.mangled_name_for(parsed),
            analysis=analysis,
            reactive_variables=reactive,
            config=self.config,
        )
        script = transform_script(parsed.script, reactive, parsed.span_of, parsed.file_path)
        TemplateLowering(state).lower_root()
        return self.assemble(state, script)

    def generate_module(
        self,
        parsed: ParsedWire,
        metadata: Optional[Metadata] = None,
        analysis: Optional[ScriptAnalysis] = None,
    ) -> ast.Module:
        """Rewrite a plain `.py` project module so its cells work across modules."""
        if analysis is None:
            analysis = self.analyze(parsed)
        source_body = parsed.script.body if parsed.script is not None else []

        reactive = set(analysis.state_variables) | imported_reactive_names(analysis, metadata or {})
        aliases = collect_exports(parsed.script).aliases
        changed = True
        while changed:
            changed = False
            for external, local in aliases.items():
                if local in reactive and external not in reactive:
                    reactive.add(external)
                    changed = True

        body: List[ast.stmt] = []
        for stmt in source_body:
            if self._is_cell_alias(stmt, reactive):
                # `total = count` re-exports the cell itself
                body.append(copy.deepcopy(stmt))
                continue
            statements, _ = transform_statements(
                [stmt], reactive, (), parsed.span_of, parsed.file_path
            )
            body.extend(statements)

        body = self._rewrite_project_imports(body, analysis)
        split = self._preamble_length(body)
        body[split:split] = [self.runtime_import()]
        return ast.fix_missing_locations(ast.Module(body=body, type_ignores=[]))

    def render(self, module: ast.Module) -> str:
        return ast.unparse(ast.fix_missing_locations(module)) + "\n"

    def compile_source(
        self,
        parsed: ParsedWire,
        metadata: Optional[Metadata] = None,
        analysis: Optional[ScriptAnalysis] = None,
    ) -> str:
        """Generate and render the module for one source file."""
        module = self.generate(parsed, metadata, analysis)
        logger.debug("Generated module for %s", parsed.file_path or "<string>")
        return self.render(module)

    # -- assembly ---------------------------------------------------------

    def assemble(self, state: CompilerState, script: List[ast.stmt]) -> ast.Module:
        """Combine imports, the factory function and its export into one module."""
        analysis = state.analysis
        body: List[ast.stmt] = []
        body.extend(self.toolkit_header())
        body.extend(self.dependency_imports(analysis))
        body.append(self.runtime_import())
        body.extend(
            self.project_imports(
                (dep, spec)
                for dep in analysis.dependencies.values()
                if dep.kind is ModuleKind.PROJECT
                for spec in dep.specifiers
            )
        )

        factory_body: List[ast.stmt] = []
        factory_body.extend(self.prop_declarations(analysis))
        factory_body.extend(self._rewrite_project_imports(script, analysis))
        factory_body.extend(state.helper_functions)
        factory_body.extend(state.widget_declarations)
        factory_body.extend(state.effects_and_handlers)
        factory_body.append(
            ast.Return(
                value=b.call(b.RT_INSTANCE, root_widget=b.name(state.root_widget_name or "None"))
            )
        )
        body.append(
            b.function(state.component_name, [PROPS_PARAM], factory_body, defaults=[b.const(None)])
        )

        if state.mangled_name != state.component_name:
            body.append(b.assign(state.mangled_name, b.name(state.component_name)))
        body.append(
            ast.Assign(
                targets=[b.store("__all__")],
                value=ast.List(elts=[b.const(state.mangled_name)], ctx=ast.Load()),
            )
        )
        return ast.fix_missing_locations(ast.Module(body=body, type_ignores=[]))

    def toolkit_header(self) -> List[ast.stmt]:
        config = self.config
        root = config.toolkit_namespace.split(".")[0]
        header: List[ast.stmt] = [ast.Import(names=[ast.alias(name=root)])]
        if root == "gi":
            header.append(
                b.expr_stmt(
                    b.call(
                        b.attr(root, "require_version"),
                        b.const(config.toolkit),
                        b.const(config.toolkit_version),
                    )
                )
            )
        header.append(
            ast.ImportFrom(
                module=config.toolkit_namespace, names=[ast.alias(name=config.toolkit)], level=0
            )
        )
        return header

    def dependency_imports(self, analysis: ScriptAnalysis) -> List[ast.stmt]:
        """Toolkit imports first, then external ones, minus what the header provides."""
        config = self.config
        root = config.toolkit_namespace.split(".")[0]
        toolkit: List[ast.stmt] = []
        external: List[ast.stmt] = []
        for dep in analysis.dependencies.values():
            if dep.kind is ModuleKind.TOOLKIT:
                skip = [(WHOLE_MODULE, root)] if dep.path == root else []
                if dep.path == config.toolkit_namespace:
                    skip.append((config.toolkit, config.toolkit))
                toolkit.extend(_verbatim_imports(dep, skip))
            elif dep.kind is ModuleKind.EXTERNAL:
                external.extend(_verbatim_imports(dep))
        return toolkit + external

    def runtime_import(self) -> ast.ImportFrom:
        return ast.ImportFrom(
            module=RUNTIME_PACKAGE,
            names=[ast.alias(name=n, asname=a) for n, a in b.RUNTIME_IMPORTS],
            level=0,
        )

    def project_imports(
        self, pairs: Iterable[Tuple[Dependency, ImportSpecifier]]
    ) -> List[ast.stmt]:
        """Absolute imports of compiled project modules, one statement per module.

        A component import binds the factory exported under the mangled name.
        """
        grouped: Dict[str, List[ast.alias]] = {}
        seen: Set[Tuple[str, str, Optional[str]]] = set()
        modules: List[ast.stmt] = []
        for dep, spec in pairs:
            if dep.resolved_path is None:
                raise AnalysisError(
                    f"Cannot resolve import '{dep.path}'", start=dep.start, end=dep.end
                )
            target = mangle_filepath(dep.resolved_path, self.src_dir)
            if dep.is_component:
                alias = _alias(target, spec.local_name)
            elif spec.imported_name == WHOLE_MODULE:
                modules.append(ast.Import(names=[_alias(target, spec.local_name)]))
                continue
            else:
                alias = _alias(spec.imported_name, spec.local_name)
            key = (target, alias.name, alias.asname)
            if key not in seen:
                seen.add(key)
                grouped.setdefault(target, []).append(alias)

        statements: List[ast.stmt] = [
            ast.ImportFrom(module=target, names=names, level=0)
            for target, names in grouped.items()
        ]
        return statements + modules

    def prop_declarations(self, analysis: ScriptAnalysis) -> List[ast.stmt]:
        declarations: List[ast.stmt] = []
        for name, default in analysis.props.items():
            default_expr = (
                ast.parse(default, mode="eval").body if default is not None else b.const(None)
            )
            declarations.append(
                b.assign(
                    name,
                    b.call(
                        b.RT_PROP,
                        b.name(PROPS_PARAM),
                        b.const(name),
                        default_expr,
                        b.const(name in analysis.bindable_props),
                    ),
                )
            )
        return declarations

    # -- helpers ----------------------------------------------------------

    def _rewrite_project_imports(
        self, body: List[ast.stmt], analysis: ScriptAnalysis
    ) -> List[ast.stmt]:
        module = ast.Module(body=body, type_ignores=[])
        _ProjectImportRewriter(self, analysis).visit(module)
        return module.body

    @staticmethod
    def _is_cell_alias(stmt: ast.stmt, reactive: Set[str]) -> bool:
        if isinstance(stmt, ast.Assign):
            targets, value = stmt.targets, stmt.value
        elif isinstance(stmt, ast.AnnAssign) and stmt.value is not None:
            targets, value = [stmt.target], stmt.value
        else:
            return False
        return (
            len(targets) == 1
            and isinstance(targets[0], ast.Name)
            and isinstance(value, ast.Name)
            and value.id in reactive
        )

    @staticmethod
    def _preamble_length(body: List[ast.stmt]) -> int:
        """Statements that must stay first: a docstring and `__future__` imports."""
        index = 0
        if (
            body
            and isinstance(body[0], ast.Expr)
            and isinstance(body[0].value, ast.Constant)
            and isinstance(body[0].value.value, str)
        ):
            index = 1
        while (
            index < len(body)
            and isinstance(body[index], ast.ImportFrom)
            and body[index].module == "__future__"
        ):
            index += 1
        return index

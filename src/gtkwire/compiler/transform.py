"""Rewrites reads and writes of reactive names into `_get`/`_set`/`_notify` calls.

Every entry point deep-copies its input, so one parsed script can be
rewritten any number of times (the whole script once, then every template
expression against its own local scope).
"""

import ast
import copy
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple, Union

from gtkwire.compiler.analysis import bound_names, is_props_statement, is_reactive_declaration
from gtkwire.compiler.exceptions import AnalysisError

GET = "_get"
SET = "_set"
NOTIFY = "_notify"
PRIMITIVES = frozenset({GET, SET, NOTIFY})

StmtResult = Union[ast.AST, List[ast.stmt]]


def _load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def _call(func: str, *args: ast.expr) -> ast.Call:
    return ast.Call(func=_load(func), args=list(args), keywords=[])


def _function_frame(node: Union[ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda]) -> Set[str]:
    """Names a function binds for its own body: itself, parameters, body declarations."""
    args = node.args
    frame = {a.arg for a in args.posonlyargs + args.args + args.kwonlyargs}
    if args.vararg:
        frame.add(args.vararg.arg)
    if args.kwarg:
        frame.add(args.kwarg.arg)
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        frame.add(node.name)
        frame |= _body_declarations(node.body)
    return frame


def _body_declarations(body: List[ast.stmt]) -> Set[str]:
    """Loop targets, `with ... as`, imports and nested defs/classes of a body.

    Plain assignments are not collected: inside handlers they write the
    component's cells. Names listed in `global`/`nonlocal` never shadow.
    """
    declared: Set[str] = set()
    escaped: Set[str] = set()

    def scan(statements: Iterable[ast.stmt]) -> None:
        for stmt in statements:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                declared.add(stmt.name)
                continue
            if isinstance(stmt, (ast.Global, ast.Nonlocal)):
                escaped.update(stmt.names)
            elif isinstance(stmt, (ast.For, ast.AsyncFor)):
                declared.update(bound_names(stmt.target))
            elif isinstance(stmt, (ast.With, ast.AsyncWith)):
                for item in stmt.items:
                    if item.optional_vars is not None:
                        declared.update(bound_names(item.optional_vars))
            elif isinstance(stmt, ast.Import):
                declared.update(a.asname or a.name.split(".")[0] for a in stmt.names)
            elif isinstance(stmt, ast.ImportFrom):
                declared.update(a.asname or a.name for a in stmt.names)
            for field_name in ("body", "orelse", "finalbody"):
                scan(getattr(stmt, field_name, []) or [])
            for handler in getattr(stmt, "handlers", []) or []:
                scan(handler.body)

    scan(body)
    return declared - escaped


class ReactiveTransformer(ast.NodeTransformer):
    """Rewrites one (already copied) tree in place."""

    def __init__(
        self,
        reactive: Iterable[str],
        local_scope: Iterable[str] = (),
        span_of: Optional[Callable[[ast.AST], Tuple[Optional[int], Optional[int]]]] = None,
        file_path: Optional[str] = None,
    ):
        self.reactive = frozenset(reactive)
        self.scopes: List[Set[str]] = [set(local_scope)]
        self.reads: Set[str] = set()
        self.span_of = span_of
        self.file_path = file_path

    # -- scope bookkeeping ---------------------------------------------

    def is_shadowed(self, name: str) -> bool:
        return any(name in frame for frame in reversed(self.scopes))

    def is_reactive(self, name: str) -> bool:
        return name in self.reactive and not self.is_shadowed(name)

    def error(self, node: ast.AST, message: str) -> AnalysisError:
        start, end = self.span_of(node) if self.span_of else (None, None)
        return AnalysisError(message, start=start, end=end, file_path=self.file_path)

    def _read(self, name: str) -> ast.Call:
        self.reads.add(name)
        return _call(GET, _load(name))

    def _mutation_root(self, node: ast.AST) -> Optional[str]:
        """Reactive name at the root of an attribute/subscript chain, if any."""
        while isinstance(node, (ast.Attribute, ast.Subscript)):
            node = node.value
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == GET
            and node.args
            and isinstance(node.args[0], ast.Name)
        ):
            node = node.args[0]
        if isinstance(node, ast.Name) and self.is_reactive(node.id):
            return node.id
        return None

    def _call_roots(self, node: Optional[ast.AST]) -> List[str]:
        """Reactive roots of every `x.m(...)` call inside an expression.

        Lambda bodies are skipped; they notify on their own.
        """
        roots: List[str] = []
        bound: Set[str] = set()

        def walk(current: ast.AST) -> None:
            if isinstance(current, ast.Lambda):
                return
            if isinstance(current, (ast.ListComp, ast.SetComp, ast.GeneratorExp, ast.DictComp)):
                for gen in current.generators:
                    bound.update(bound_names(gen.target))
            if isinstance(current, ast.Call) and isinstance(current.func, (ast.Attribute, ast.Subscript)):
                root = self._mutation_root(current.func)
                if root:
                    roots.append(root)
            for child in ast.iter_child_nodes(current):
                walk(child)

        if node is not None:
            walk(node)
        return [root for root in dict.fromkeys(roots) if root not in bound]

    def _keep_value(self, expr: ast.expr, roots: Sequence[str]) -> ast.expr:
        """`(expr, _notify(a), ...)[0]`: notify without losing the value."""
        if not roots:
            return expr
        pair = ast.Tuple(elts=[expr] + [_call(NOTIFY, _load(root)) for root in roots], ctx=ast.Load())
        return ast.Subscript(value=pair, slice=ast.Constant(value=0), ctx=ast.Load())

    def _notify_stmt(self, name: str, like: ast.AST) -> ast.Expr:
        return ast.copy_location(ast.Expr(value=_call(NOTIFY, _load(name))), like)

    def _check_unpacking(self, target: ast.AST) -> None:
        for name in bound_names(target):
            if self.is_reactive(name):
                raise self.error(
                    target,
                    f"Cannot unpack into reactive variable '{name}'; assign it on its own",
                )

    def _target_roots(self, target: ast.AST) -> List[str]:
        if isinstance(target, (ast.Tuple, ast.List)):
            roots: List[str] = []
            for elt in target.elts:
                roots.extend(self._target_roots(elt))
            return roots
        if isinstance(target, ast.Starred):
            return self._target_roots(target.value)
        if isinstance(target, (ast.Attribute, ast.Subscript)):
            root = self._mutation_root(target)
            return [root] if root else []
        return []

    def _with_notifies(self, stmt: ast.stmt, roots: Sequence[str]) -> StmtResult:
        if not roots:
            return stmt
        unique = list(dict.fromkeys(roots))
        return [stmt] + [self._notify_stmt(root, stmt) for root in unique]

    # -- expressions -----------------------------------------------------

    def visit_Name(self, node: ast.Name) -> ast.AST:
        if isinstance(node.ctx, ast.Load) and self.is_reactive(node.id):
            return ast.copy_location(self._read(node.id), node)
        return node

    def visit_Call(self, node: ast.Call) -> ast.AST:
        if isinstance(node.func, ast.Name) and node.func.id in PRIMITIVES and node.args:
            # Already rewritten: the cell argument stays a bare name
            first = node.args[0]
            if node.func.id == GET and isinstance(first, ast.Name) and self.is_reactive(first.id):
                self.reads.add(first.id)
            node.args[1:] = [self.visit(arg) for arg in node.args[1:]]
            node.keywords = [self.visit(kw) for kw in node.keywords]
            return node
        return self.generic_visit(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> ast.AST:
        node.value = self.visit(node.value)
        if self.is_reactive(node.target.id):
            return ast.copy_location(_call(SET, _load(node.target.id), node.value), node)
        return node

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        node.args = self._visit_defaults(node.args)
        self.scopes.append(_function_frame(node))
        try:
            roots = self._call_roots(node.body)
            node.body = self._keep_value(self.visit(node.body), roots)
        finally:
            self.scopes.pop()
        return node

    def _visit_defaults(self, args: ast.arguments) -> ast.arguments:
        # Defaults are evaluated where the function is defined
        args.defaults = [self.visit(d) for d in args.defaults]
        args.kw_defaults = [self.visit(d) if d is not None else None for d in args.kw_defaults]
        return args

    def _visit_comprehension(self, node: ast.AST, result_fields: Sequence[str]) -> ast.AST:
        generators = node.generators  # type: ignore[attr-defined]
        generators[0].iter = self.visit(generators[0].iter)
        frame: Set[str] = set()
        self.scopes.append(frame)
        try:
            for index, gen in enumerate(generators):
                if index:
                    gen.iter = self.visit(gen.iter)
                frame.update(bound_names(gen.target))
                gen.ifs = [self.visit(cond) for cond in gen.ifs]
            for field_name in result_fields:
                setattr(node, field_name, self.visit(getattr(node, field_name)))
        finally:
            self.scopes.pop()
        return node

    def visit_ListComp(self, node: ast.ListComp) -> ast.AST:
        return self._visit_comprehension(node, ("elt",))

    def visit_SetComp(self, node: ast.SetComp) -> ast.AST:
        return self._visit_comprehension(node, ("elt",))

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> ast.AST:
        return self._visit_comprehension(node, ("elt",))

    def visit_DictComp(self, node: ast.DictComp) -> ast.AST:
        return self._visit_comprehension(node, ("key", "value"))

    # -- scopes ----------------------------------------------------------

    def _visit_function(self, node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> ast.AST:
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.args = self._visit_defaults(node.args)
        if node.returns is not None:
            node.returns = self.visit(node.returns)
        self.scopes.append(_function_frame(node))
        try:
            node.body = self._visit_body(node.body)
        finally:
            self.scopes.pop()
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
        return self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self._visit_function(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.bases = [self.visit(b) for b in node.bases]
        node.keywords = [self.visit(k) for k in node.keywords]
        frame: Set[str] = {node.name}
        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                frame.add(stmt.name)
            elif isinstance(stmt, ast.Assign):
                for target in stmt.targets:
                    frame.update(bound_names(target))
            elif isinstance(stmt, ast.AnnAssign):
                frame.update(bound_names(stmt.target))
        self.scopes.append(frame)
        try:
            node.body = self._visit_body(node.body)
        finally:
            self.scopes.pop()
        return node

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> ast.AST:
        if node.type is not None:
            node.type = self.visit(node.type)
        self.scopes.append({node.name} if node.name else set())
        try:
            node.body = self._visit_body(node.body)
        finally:
            self.scopes.pop()
        return node

    def _visit_body(self, body: List[ast.stmt]) -> List[ast.stmt]:
        result: List[ast.stmt] = []
        for stmt in body:
            visited = self.visit(stmt)
            if visited is None:
                continue
            if isinstance(visited, list):
                result.extend(visited)
            else:
                result.append(visited)
        return result

    # -- statements ------------------------------------------------------

    def visit_Assign(self, node: ast.Assign) -> StmtResult:
        if is_reactive_declaration(node.value):
            node.value = self.visit(node.value)
            return node

        called = self._call_roots(node.value)
        if len(node.targets) == 1:
            target = node.targets[0]
            if isinstance(target, ast.Name) and self.is_reactive(target.id):
                value = self.visit(node.value)
                stmt = ast.copy_location(ast.Expr(value=_call(SET, _load(target.id), value)), node)
                return self._with_notifies(stmt, called)

        roots: List[str] = []
        for target in node.targets:
            self._check_unpacking(target)
            roots.extend(self._target_roots(target))
        roots.extend(called)

        node.value = self.visit(node.value)
        node.targets = [self.visit(t) for t in node.targets]
        return self._with_notifies(node, roots)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> StmtResult:
        if node.value is not None and is_reactive_declaration(node.value):
            node.value = self.visit(node.value)
            return node

        target = node.target
        called = self._call_roots(node.value)
        if isinstance(target, ast.Name) and self.is_reactive(target.id):
            if node.value is None:
                return node
            value = self.visit(node.value)
            stmt = ast.copy_location(ast.Expr(value=_call(SET, _load(target.id), value)), node)
            return self._with_notifies(stmt, called)

        roots = self._target_roots(target) if node.value is not None else []
        roots.extend(called)
        node.target = self.visit(target)
        if node.value is not None:
            node.value = self.visit(node.value)
        return self._with_notifies(node, roots)

    def visit_AugAssign(self, node: ast.AugAssign) -> StmtResult:
        target = node.target
        called = self._call_roots(node.value)
        if isinstance(target, ast.Name) and self.is_reactive(target.id):
            value = self.visit(node.value)
            combined = ast.BinOp(left=self._read(target.id), op=node.op, right=value)
            stmt = ast.copy_location(ast.Expr(value=_call(SET, _load(target.id), combined)), node)
            return self._with_notifies(stmt, called)

        roots = self._target_roots(target) + called
        node.target = self.visit(target)
        node.value = self.visit(node.value)
        return self._with_notifies(node, roots)

    def visit_Delete(self, node: ast.Delete) -> StmtResult:
        roots: List[str] = []
        for target in node.targets:
            if isinstance(target, ast.Name) and self.is_reactive(target.id):
                raise self.error(target, f"Cannot delete reactive variable '{target.id}'")
            roots.extend(self._target_roots(target))
        node.targets = [self.visit(t) for t in node.targets]
        return self._with_notifies(node, roots)

    def visit_Expr(self, node: ast.Expr) -> StmtResult:
        roots = self._call_roots(node.value)
        node.value = self.visit(node.value)
        return self._with_notifies(node, roots)

    def visit_Return(self, node: ast.Return) -> ast.AST:
        if node.value is None:
            return node
        roots = self._call_roots(node.value)
        node.value = self._keep_value(self.visit(node.value), roots)
        return node


def transform_reactive_ast(
    tree: ast.AST,
    reactive: Iterable[str],
    local_scope: Iterable[str] = (),
    span_of=None,
    file_path: Optional[str] = None,
) -> ast.AST:
    """Return a rewritten copy of `tree`. The input is never modified."""
    transformer = ReactiveTransformer(reactive, local_scope, span_of, file_path)
    result = transformer.visit(copy.deepcopy(tree))
    if isinstance(result, list):
        result = ast.Module(body=result, type_ignores=[])
    return ast.fix_missing_locations(result)


def transform_expression(
    expr: ast.expr,
    reactive: Iterable[str],
    local_scope: Iterable[str] = (),
) -> Tuple[ast.expr, Set[str]]:
    """Rewrite a template expression. Returns it with the reactive names it reads."""
    transformer = ReactiveTransformer(reactive, local_scope)
    result = transformer.visit(copy.deepcopy(expr))
    return ast.fix_missing_locations(result), transformer.reads


def transform_statements(
    body: List[ast.stmt],
    reactive: Iterable[str],
    local_scope: Iterable[str] = (),
    span_of=None,
    file_path: Optional[str] = None,
) -> Tuple[List[ast.stmt], Set[str]]:
    """Rewrite a statement list (event handler payloads, script bodies)."""
    transformer = ReactiveTransformer(reactive, local_scope, span_of, file_path)
    module = ast.Module(body=copy.deepcopy(body), type_ignores=[])
    module.body = transformer._visit_body(module.body)
    ast.fix_missing_locations(module)
    return module.body, transformer.reads


def transform_script(
    module: Optional[ast.Module],
    reactive: Iterable[str],
    span_of=None,
    file_path: Optional[str] = None,
) -> List[ast.stmt]:
    """Rewrite a component script without its imports and `props(...)` statement."""
    if module is None:
        return []
    body = [
        stmt
        for stmt in module.body
        if not isinstance(stmt, (ast.Import, ast.ImportFrom)) and not is_props_statement(stmt)
    ]
    statements, _ = transform_statements(body, reactive, (), span_of, file_path)
    return statements

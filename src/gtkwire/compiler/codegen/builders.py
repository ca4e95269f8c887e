"""Small constructors for the Python AST nodes the code generators emit."""

import ast
from typing import List, Optional, Sequence, Union

# Runtime names bound in every generated module
RT_GET = "_get"
RT_SET = "_set"
RT_NOTIFY = "_notify"
RT_EFFECT = "_effect"
RT_PROP = "_prop"
RT_STATE = "_state"
RT_DERIVED = "_derived"
RT_LISTENER = "_listener"
RT_INSTANCE = "_Instance"
RT_RESOLVE = {
    "orientation": "_resolve_orientation",
    "align": "_resolve_align",
    "css_classes": "_resolve_css_classes",
}

# (public runtime name, local alias) pairs imported by every generated module
RUNTIME_IMPORTS = [
    ("state", None),
    ("derived", None),
    ("get", RT_GET),
    ("set", RT_SET),
    ("notify", RT_NOTIFY),
    ("effect", RT_EFFECT),
    ("prop", RT_PROP),
    ("state", RT_STATE),
    ("derived", RT_DERIVED),
    ("listener", RT_LISTENER),
    ("Instance", RT_INSTANCE),
    ("resolve_orientation", RT_RESOLVE["orientation"]),
    ("resolve_align", RT_RESOLVE["align"]),
    ("resolve_css_classes", RT_RESOLVE["css_classes"]),
]

Expr = ast.expr


def name(id: str) -> ast.Name:
    return ast.Name(id=id, ctx=ast.Load())


def store(id: str) -> ast.Name:
    return ast.Name(id=id, ctx=ast.Store())


def attr(value: Union[str, Expr], *attrs: str) -> Expr:
    """`value.a.b` from a name or expression."""
    node: Expr = name(value) if isinstance(value, str) else value
    for part in attrs:
        node = ast.Attribute(value=node, attr=part, ctx=ast.Load())
    return node


def const(value) -> ast.Constant:
    return ast.Constant(value=value)


def call(func: Union[str, Expr], *args: Expr, **kwargs: Expr) -> ast.Call:
    return ast.Call(
        func=name(func) if isinstance(func, str) else func,
        args=list(args),
        keywords=[ast.keyword(arg=k, value=v) for k, v in kwargs.items()],
    )


def call_kw(func: Union[str, Expr], args: Sequence[Expr], keywords: List[ast.keyword]) -> ast.Call:
    return ast.Call(
        func=name(func) if isinstance(func, str) else func,
        args=list(args),
        keywords=list(keywords),
    )


def method(target: str, method_name: str, *args: Expr) -> ast.Expr:
    """Statement `target.method(args)`."""
    return ast.Expr(value=call(attr(target, method_name), *args))


def assign(target: str, value: Expr) -> ast.Assign:
    return ast.Assign(targets=[store(target)], value=value)


def assign_attr(owner: str, *path: str, value: Expr) -> ast.Assign:
    """Statement `owner.a.b = value`."""
    *parents, last = path
    target = ast.Attribute(value=attr(owner, *parents), attr=last, ctx=ast.Store())
    return ast.Assign(targets=[target], value=value)


def expr_stmt(value: Expr) -> ast.Expr:
    return ast.Expr(value=value)


def arguments(
    params: Sequence[str] = (), vararg: Optional[str] = None
) -> ast.arguments:
    return ast.arguments(
        posonlyargs=[],
        args=[ast.arg(arg=p) for p in params],
        vararg=ast.arg(arg=vararg) if vararg else None,
        kwonlyargs=[],
        kw_defaults=[],
        kwarg=None,
        defaults=[],
    )


def function(
    func_name: str,
    params: Sequence[str],
    body: List[ast.stmt],
    vararg: Optional[str] = None,
    decorators: Sequence[Expr] = (),
    defaults: Sequence[Expr] = (),
) -> ast.FunctionDef:
    args = arguments(params, vararg)
    args.defaults = list(defaults)
    return ast.FunctionDef(
        name=func_name,
        args=args,
        body=body or [ast.Pass()],
        decorator_list=list(decorators),
        returns=None,
        type_params=[],
    )


def effect(func_name: str, body: List[ast.stmt]) -> ast.FunctionDef:
    """`@_effect def name(): ...` which runs now and again on every change."""
    return function(func_name, [], body, decorators=[name(RT_EFFECT)])


def lambda_(body: Expr) -> ast.Lambda:
    return ast.Lambda(args=arguments(), body=body)


def get(cell: str) -> ast.Call:
    return call(RT_GET, name(cell))


def clear_children(container: str) -> List[ast.stmt]:
    """Remove every child of a container (GTK 4 has no remove-all)."""
    first_child = call(attr(container, "get_first_child"))
    return [
        assign("_child", first_child),
        ast.While(
            test=ast.Compare(
                left=name("_child"), ops=[ast.IsNot()], comparators=[const(None)]
            ),
            body=[
                method(container, "remove", name("_child")),
                assign("_child", call(attr(container, "get_first_child"))),
            ],
            orelse=[],
        ),
    ]

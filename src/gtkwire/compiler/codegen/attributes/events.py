"""Lowering of `@event={...}` attributes into signal connections."""

import ast
from typing import Dict, List

from gtkwire.compiler.ast_nodes import Attribute, MustacheTag
from gtkwire.compiler.codegen import builders as b
from gtkwire.compiler.codegen.attributes.base import ElementContext
from gtkwire.compiler.transform import transform_statements

# Template event name -> toolkit signal name
EVENT_SIGNALS: Dict[str, str] = {
    "click": "clicked",
}


def signal_name(event: str) -> str:
    return EVENT_SIGNALS.get(event, event)


def _is_reference(expr: ast.expr) -> bool:
    """A bare name or dotted attribute path, e.g. `save` or `store.reset`."""
    while isinstance(expr, ast.Attribute):
        expr = expr.value
    return isinstance(expr, ast.Name)


def _thunk_name(ctx: ElementContext, signal: str) -> str:
    safe = "".join(ch if ch.isalnum() else "_" for ch in signal)
    return ctx.state.next_name(f"_on_{safe}")


def lower_event(ctx: ElementContext, attribute: Attribute) -> List[ast.stmt]:
    signal = signal_name(attribute.event_name)
    value = attribute.value
    if not isinstance(value, MustacheTag):
        raise ctx.error(
            attribute, f"Event handler '{attribute.name}' must be a {{...}} expression"
        )

    state = ctx.state
    connect_target = b.attr(ctx.var_name, "connect")

    expr = value.expression
    if expr is not None and (isinstance(expr, ast.Lambda) or _is_reference(expr)):
        rewritten, _ = ctx.rewrite(expr)
        handler = b.call(b.RT_LISTENER, rewritten)
        return [b.expr_stmt(b.call(connect_target, b.const(signal), handler))]

    if isinstance(value.tree, ast.Module):
        statements = value.tree.body
    else:
        # Statement-level so in-place mutations like `items.append(x)` notify
        statements = [ast.Expr(value=expr)]
    body, _ = transform_statements(
        statements,
        state.reactive_variables,
        ctx.local_scope,
        file_path=state.file_path,
    )

    # Anything else runs as the body of a synthesized handler
    thunk = _thunk_name(ctx, signal)
    return [
        b.function(thunk, [], body, vararg="_args"),
        b.expr_stmt(b.call(connect_target, b.const(signal), b.name(thunk))),
    ]

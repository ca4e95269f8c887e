"""`bind={cell}`: two-way binding between a widget property and a cell."""

import ast
from typing import List

from gtkwire.compiler.ast_nodes import Attribute
from gtkwire.compiler.codegen import builders as b
from gtkwire.compiler.codegen.attributes.base import ElementContext
from gtkwire.compiler.codegen.directives.base import Directive
from gtkwire.compiler.codegen.registry import BIND_PROPERTIES


class BindDirective(Directive):
    name = "bind"

    def lower(self, ctx: ElementContext, attribute: Attribute) -> List[ast.stmt]:
        tag = ctx.descriptor.tag
        prop = BIND_PROPERTIES.get(tag)
        if prop is None:
            supported = ", ".join(f"<{t}>" for t in BIND_PROPERTIES)
            raise ctx.error(attribute, f"bind is not supported on <{tag}>. Supported: {supported}")

        expr = ctx.expression_of(attribute)
        if not isinstance(expr, ast.Name) or not ctx.is_reactive_name(expr.id):
            raise ctx.error(
                attribute.value or attribute,
                "Expected a single state variable in a bind expression, e.g. bind={name}",
            )
        cell = expr.id
        state = ctx.state

        def widget_value() -> ast.expr:
            return b.attr(ctx.var_name, "props", prop)

        def differs() -> ast.expr:
            return ast.Compare(
                left=widget_value(), ops=[ast.NotEq()], comparators=[b.get(cell)]
            )

        # Both directions compare first, so a write never echoes back
        sync = b.effect(
            state.next_name("effect"),
            [
                ast.If(
                    test=differs(),
                    body=[b.assign_attr(ctx.var_name, "props", prop, value=b.get(cell))],
                    orelse=[],
                )
            ],
        )
        listener_name = state.next_name(f"_on_notify_{prop}")
        listener = b.function(
            listener_name,
            [],
            [
                ast.If(
                    test=differs(),
                    body=[b.expr_stmt(b.call(b.RT_SET, b.name(cell), widget_value()))],
                    orelse=[],
                )
            ],
            vararg="_args",
        )
        connect = b.expr_stmt(
            b.call(b.attr(ctx.var_name, "connect"), b.const(f"notify::{prop}"), b.name(listener_name))
        )
        return [sync, listener, connect]

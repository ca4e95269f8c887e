"""Lowering of plain widget properties."""

import ast
import re
from dataclasses import dataclass
from typing import FrozenSet, List, Set, Tuple, Union

from gtkwire.compiler.ast_nodes import Attribute, Element, MustacheTag, Node, Text
from gtkwire.compiler.codegen import builders as b
from gtkwire.compiler.codegen.registry import WidgetDescriptor, canonical_attribute
from gtkwire.compiler.exceptions import LoweringError
from gtkwire.compiler.state import CompilerState
from gtkwire.compiler.transform import transform_expression

_INT = re.compile(r"^[+-]?\d+$")
_FLOAT = re.compile(r"^[+-]?(\d+\.\d*|\.\d+)$")


@dataclass
class ElementContext:
    """What attribute and directive handlers need to know about one element."""

    state: CompilerState
    node: Element
    descriptor: WidgetDescriptor
    var_name: str
    local_scope: FrozenSet[str]

    def error(self, where: Union[Node, Attribute], message: str) -> LoweringError:
        return LoweringError.at(where, message, self.state.file_path)

    def rewrite(self, expr: ast.expr) -> Tuple[ast.expr, Set[str]]:
        return transform_expression(expr, self.state.reactive_variables, self.local_scope)

    def is_reactive_name(self, name: str) -> bool:
        return name in self.state.reactive_variables and name not in self.local_scope

    def expression_of(self, attribute: Attribute) -> ast.expr:
        value = attribute.value
        if not isinstance(value, MustacheTag):
            raise self.error(attribute, f"Attribute '{attribute.name}' expects a {{...}} expression")
        if value.expression is None:
            raise self.error(
                value, f"Attribute '{attribute.name}' expects an expression, not statements"
            )
        return value.expression


def literal_value(text: str) -> ast.expr:
    """Compile-time value of literal attribute text."""
    if text in ("true", "false"):
        return b.const(text == "true")
    if _INT.match(text):
        return b.const(int(text))
    if _FLOAT.match(text):
        return b.const(float(text))
    return b.const(text)


def lower_property(ctx: ElementContext, attribute: Attribute) -> Tuple[List[ast.keyword], List[ast.stmt]]:
    """Constructor keywords and handler statements for one widget property.

    Literal and non-reactive values become constructor keywords evaluated once.
    Values reading reactive state are assigned by an effect instead.
    """
    prop = canonical_attribute(attribute.name)
    transformer = ctx.descriptor.transformer(prop)
    toolkit = ctx.state.toolkit
    value = attribute.value

    if value is None or isinstance(value, Text):
        # A bare attribute means "true"
        text = value.data if isinstance(value, Text) else "true"
        try:
            literal = ctx.descriptor.transform(toolkit, prop, text)
        except ValueError as e:
            raise ctx.error(value or attribute, str(e))
        if literal is None:
            literal = literal_value(text)
        return [ast.keyword(arg=prop, value=literal)], []

    expr, reads = ctx.rewrite(ctx.expression_of(attribute))
    if transformer is not None:
        expr = transformer.dynamic(toolkit, expr)

    if not reads:
        return [ast.keyword(arg=prop, value=expr)], []

    update = b.assign_attr(ctx.var_name, "props", prop, value=expr)
    return [], [b.effect(ctx.state.next_name("effect"), [update])]

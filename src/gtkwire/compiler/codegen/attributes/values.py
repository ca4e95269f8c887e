"""Value transformers for enumerated and list-valued widget properties."""

import ast
from typing import Dict

from gtkwire.compiler.codegen import builders as b


class ValueTransformer:
    """Converts an attribute value into the toolkit's representation.

    Literal values are resolved at compile time; dynamic ones are passed to
    the matching runtime resolver.
    """

    resolver: str = ""

    def literal(self, toolkit: str, text: str) -> ast.expr:
        raise NotImplementedError

    def dynamic(self, toolkit: str, expr: ast.expr) -> ast.expr:
        return b.call(b.RT_RESOLVE[self.resolver], b.name(toolkit), expr)


class EnumTransformer(ValueTransformer):
    enum: str = ""
    choices: Dict[str, str] = {}
    description: str = ""

    def literal(self, toolkit: str, text: str) -> ast.expr:
        key = text.strip().lower()
        if key not in self.choices:
            raise ValueError(
                f"Invalid {self.description} value: '{text}'. Expected {self.expected()}."
            )
        return b.attr(toolkit, self.enum, self.choices[key])

    def expected(self) -> str:
        options = [f"'{choice}'" for choice in self.choices]
        return ", ".join(options[:-1]) + f" or {options[-1]}"


class OrientationTransformer(EnumTransformer):
    resolver = "orientation"
    enum = "Orientation"
    description = "orientation"
    choices = {
        "vertical": "VERTICAL",
        "v": "VERTICAL",
        "horizontal": "HORIZONTAL",
        "h": "HORIZONTAL",
    }


class AlignTransformer(EnumTransformer):
    resolver = "align"
    enum = "Align"
    description = "alignment"
    choices = {
        "fill": "FILL",
        "start": "START",
        "end": "END",
        "center": "CENTER",
    }


class CssClassesTransformer(ValueTransformer):
    resolver = "css_classes"

    def literal(self, toolkit: str, text: str) -> ast.expr:
        return ast.List(elts=[b.const(part) for part in text.split()], ctx=ast.Load())

import ast
from typing import List

from gtkwire.compiler.ast_nodes import Attribute
from gtkwire.compiler.codegen.attributes.base import ElementContext


class Directive:
    """An attribute with compiler-specific meaning rather than a widget property."""

    name: str = ""

    def lower(self, ctx: ElementContext, attribute: Attribute) -> List[ast.stmt]:
        """Return handler statements wiring the directive for one element."""
        raise NotImplementedError

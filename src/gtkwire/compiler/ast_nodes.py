"""Template node definitions produced by the parser."""

import ast
from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Node:
    start: int
    end: int


@dataclass
class Text(Node):
    data: str

    @property
    def is_blank(self) -> bool:
        return not self.data.strip()


@dataclass
class MustacheTag(Node):
    """A `{...}` payload.

    `tree` is an `ast.Expression` when the payload parses as an expression and
    an `ast.Module` when it only parses as statements.
    """

    source: str
    tree: Union[ast.Expression, ast.Module]

    @property
    def expression(self) -> Optional[ast.expr]:
        if isinstance(self.tree, ast.Expression):
            return self.tree.body
        return None

    @property
    def is_statement(self) -> bool:
        return isinstance(self.tree, ast.Module)


@dataclass
class Attribute(Node):
    name: str
    # None for a bare attribute written without a value
    value: Optional[Union[Text, MustacheTag]] = None
    shorthand: bool = False

    @property
    def is_event(self) -> bool:
        return self.name.startswith("@")

    @property
    def event_name(self) -> str:
        return self.name[1:]


@dataclass
class Comment(Node):
    data: str


@dataclass
class Fragment(Node):
    children: List[Node] = field(default_factory=list)


@dataclass
class Element(Node):
    name: str
    attributes: List[Attribute] = field(default_factory=list)
    children: List[Node] = field(default_factory=list)
    # Span of the opening tag, used when reporting errors about the element itself
    tag_end: int = 0


@dataclass
class InlineComponent(Element):
    pass


@dataclass
class IfBlock(Node):
    expression: ast.expr
    children: List[Node] = field(default_factory=list)
    else_: Optional[Fragment] = None
    # True when this block was written as `{$elif}` inside another block's alternate
    elseif: bool = False


@dataclass
class EachBlock(Node):
    expression: ast.expr
    context: str
    index: Optional[str] = None
    children: List[Node] = field(default_factory=list)
    else_: Optional[Fragment] = None


@dataclass
class RenderTag(Node):
    expression: ast.expr


@dataclass
class ParsedWire:
    """A parsed `.wire` file."""

    source: str
    file_path: str
    template: Fragment
    script: Optional[ast.Module] = None
    script_source: str = ""
    # Absolute offset of every line start in `source` (line 1 is index 0)
    line_starts: List[int] = field(default_factory=list)

    def offset_of(self, lineno: int, col: int = 0) -> int:
        """Convert a 1-based line and 0-based column into an offset in `source`."""
        if not self.line_starts or lineno < 1:
            return 0
        index = min(lineno, len(self.line_starts)) - 1
        return self.line_starts[index] + col

    def span_of(self, node: ast.AST) -> tuple:
        """Return the (start, end) offsets of a script AST node."""
        lineno = getattr(node, "lineno", None)
        if lineno is None:
            return (None, None)
        start = self.offset_of(lineno, getattr(node, "col_offset", 0))
        end_lineno = getattr(node, "end_lineno", None) or lineno
        end = self.offset_of(end_lineno, getattr(node, "end_col_offset", 0) or 0)
        return (start, max(start, end))

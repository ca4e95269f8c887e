"""Per-module compilation state threaded through template lowering."""

import ast
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set

from gtkwire.compiler.analysis import ScriptAnalysis
from gtkwire.compiler.ast_nodes import ParsedWire
from gtkwire.config import GtkWireConfig


class ContainerType(Enum):
    NONE = "none"
    SINGLE = "single"
    MULTIPLE = "multiple"


@dataclass
class LoweredCode:
    """The two statement streams produced for a run of template nodes."""

    declarations: List[ast.stmt] = field(default_factory=list)
    handlers: List[ast.stmt] = field(default_factory=list)

    def extend(self, other: "LoweredCode") -> None:
        self.declarations.extend(other.declarations)
        self.handlers.extend(other.handlers)

    @property
    def body(self) -> List[ast.stmt]:
        return self.declarations + self.handlers


@dataclass
class CompilerState:
    """Everything known about one module while it is being compiled.

    Owned by a single compilation and discarded once the module is assembled.
    """

    parsed: ParsedWire
    component_name: str
    mangled_name: str
    analysis: ScriptAnalysis
    reactive_variables: Set[str]
    config: GtkWireConfig = field(default_factory=GtkWireConfig)

    widget_declarations: List[ast.stmt] = field(default_factory=list)
    helper_functions: List[ast.stmt] = field(default_factory=list)
    effects_and_handlers: List[ast.stmt] = field(default_factory=list)
    root_widget_name: Optional[str] = None

    counters: Dict[str, int] = field(default_factory=dict)
    # Innermost generated function receiving hoisted helpers is last
    _helper_stack: List[List[ast.stmt]] = field(default_factory=list)

    @property
    def file_path(self) -> str:
        return self.parsed.file_path

    @property
    def toolkit(self) -> str:
        return self.config.toolkit

    def next_name(self, prefix: str) -> str:
        """Unique identifier for this module: `label_0`, `label_1`, ..."""
        index = self.counters.get(prefix, 0)
        self.counters[prefix] = index + 1
        return f"{prefix}_{index}"

    def hoist(self, function: ast.stmt) -> None:
        """Add a helper function to the nearest enclosing generated function."""
        if self._helper_stack:
            self._helper_stack[-1].append(function)
        else:
            self.helper_functions.append(function)

    @contextmanager
    def helper_scope(self) -> Iterator[List[ast.stmt]]:
        """Collect helpers hoisted while lowering the body of a generated function."""
        helpers: List[ast.stmt] = []
        self._helper_stack.append(helpers)
        try:
            yield helpers
        finally:
            self._helper_stack.pop()

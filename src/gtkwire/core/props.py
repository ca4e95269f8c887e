from typing import Any, Mapping, Optional

from gtkwire.core.signals import Effect, State, is_cell

_MISSING = object()


class Bindable:
    """Marks a property default as two-way bindable."""

    def __init__(self, default: Any = None):
        self.default = default

    def __repr__(self) -> str:
        return f"bindable({self.default!r})"


def bindable(default: Any = None) -> Bindable:
    """Declare a property that shares the parent's cell when one is passed.

    Usage:
        value, label = props(value=bindable(0), label="")
    """
    return Bindable(default)


def prop(
    props: Optional[Mapping[str, Any]],
    key: str,
    default: Any = None,
    is_bindable: bool = False,
) -> State:
    """Materialize one component property as a cell.

    A bindable property whose incoming value is already a cell returns that
    cell, so writes flow back to the parent. Otherwise a local cell is
    created; when the parent passed a cell it is kept in sync one way.
    """
    if isinstance(default, Bindable):
        default, is_bindable = default.default, True

    incoming = props.get(key, _MISSING) if props else _MISSING

    if is_bindable and is_cell(incoming):
        return incoming

    if incoming is _MISSING:
        return State(default)

    if not is_cell(incoming):
        return State(incoming)

    local = State(incoming.peek())

    def sync() -> None:
        local.set(incoming.get())

    Effect(sync)
    return local

from typing import Any, Callable, Dict, List, Optional


_TRACKING_STACK: list = []  # Module-level, sync-only (GTK main loop is single threaded)
_BATCH_DEPTH: int = 0
_PENDING_EFFECTS: list["Effect"] = []


def _unchanged(old: Any, new: Any) -> bool:
    if old is new:
        return True
    return type(old) is type(new) and bool(old == new)


class State:
    """Mutable reactive cell. Reads inside an effect subscribe that effect."""

    def __init__(self, value: Any = None):
        self._value = value
        # dicts keep subscription order so effects re-run in creation order
        self._subscribers: Dict["Effect", None] = {}

    def get(self) -> Any:
        if _TRACKING_STACK:
            subscriber = _TRACKING_STACK[-1]
            self._subscribers[subscriber] = None
            subscriber.dependencies[self] = None
        return self._value

    def set(self, value: Any) -> Any:
        if _unchanged(self._value, value):
            return value
        self._value = value
        self.notify()
        return value

    def peek(self) -> Any:
        """Read value without tracking dependencies."""
        return self._value

    def notify(self) -> None:
        """Re-run every subscriber, e.g. after an in-place mutation."""
        start_batch()
        try:
            for sub in list(self._subscribers):
                sub.execute()
        finally:
            end_batch()

    def __repr__(self) -> str:
        return f"state({self._value!r})"


class Effect:
    """Side-effect that auto-runs when dependencies change.

    An effect created while another effect runs is owned by it and is
    disposed before its owner runs again.
    """

    def __init__(self, fn: Callable[[], None]):
        self.fn = fn
        self.dependencies: Dict[State, None] = {}
        self._children: List["Effect"] = []
        self._disposed: bool = False
        self._running: bool = False

        parent = _current_effect()
        if parent is not None:
            parent._children.append(self)

        self._run()  # initial run to capture deps

    def execute(self) -> None:
        if self._disposed or self._running:
            return

        if _BATCH_DEPTH > 0:
            if self not in _PENDING_EFFECTS:
                _PENDING_EFFECTS.append(self)
            return

        self._run()

    def _run(self) -> None:
        self._dispose_children()
        self._clear_dependencies()

        self._running = True
        _TRACKING_STACK.append(self)
        try:
            self.fn()
        finally:
            _TRACKING_STACK.pop()
            self._running = False

    def dispose(self) -> None:
        self._disposed = True
        self._dispose_children()
        self._clear_dependencies()

    def _dispose_children(self) -> None:
        children, self._children = self._children, []
        for child in children:
            child.dispose()

    def _clear_dependencies(self) -> None:
        for dep in list(self.dependencies):
            dep._subscribers.pop(self, None)
        self.dependencies.clear()

    # Allows `@effect` over a def to keep the name bound to something useful
    def __call__(self) -> None:
        self.execute()


class Derived(State):
    """Cell whose value is recomputed by an effect whenever its inputs change."""

    def __init__(self, fn: Callable[[], Any]):
        super().__init__(None)
        self.fn = fn
        self._effect = Effect(self._recompute)

    def _recompute(self) -> None:
        self.set(self.fn())

    def dispose(self) -> None:
        self._effect.dispose()

    def __repr__(self) -> str:
        return f"derived({self._value!r})"


def _current_effect() -> Optional[Effect]:
    for subscriber in reversed(_TRACKING_STACK):
        if isinstance(subscriber, Effect):
            return subscriber
    return None


def is_cell(value: Any) -> bool:
    return isinstance(value, State)


def state(value: Any = None) -> State:
    return State(value)


def derived(fn: Callable[[], Any]) -> Derived:
    return Derived(fn)


def effect(fn: Callable[[], None]) -> Effect:
    return Effect(fn)


def get(cell: Any) -> Any:
    """Read a cell, tracking it. Plain values are returned unchanged."""
    if isinstance(cell, State):
        return cell.get()
    return cell


def set(cell: Any, value: Any) -> Any:
    """Write a cell and return the written value."""
    if not isinstance(cell, State):
        raise TypeError(f"Cannot assign to non-reactive value {cell!r}")
    return cell.set(value)


def notify(cell: Any) -> None:
    if isinstance(cell, State):
        cell.notify()


def start_batch() -> None:
    global _BATCH_DEPTH
    _BATCH_DEPTH += 1


def end_batch() -> None:
    global _BATCH_DEPTH
    _BATCH_DEPTH -= 1
    if _BATCH_DEPTH == 0:
        # Effects queued while flushing are picked up by the same loop
        while _PENDING_EFFECTS:
            eff = _PENDING_EFFECTS.pop(0)
            eff.execute()

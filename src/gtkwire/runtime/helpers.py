"""Helpers called by compiled component modules."""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict

_ORIENTATIONS = {
    "vertical": "VERTICAL",
    "v": "VERTICAL",
    "horizontal": "HORIZONTAL",
    "h": "HORIZONTAL",
}

_ALIGNMENTS = {
    "fill": "FILL",
    "start": "START",
    "end": "END",
    "center": "CENTER",
}


@dataclass
class Instance:
    """What a component factory returns."""

    root_widget: Any


def listener(handler: Callable[..., Any]) -> Callable[..., Any]:
    """Adapt a callable to a toolkit signal.

    GTK passes the emitting widget (and sometimes more) to signal handlers.
    Arguments the handler cannot accept are dropped, so `lambda: ...` and
    `def on_click(button)` both work as `@click` handlers.
    """
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return handler

    params = list(signature.parameters.values())
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return handler

    positional = [
        p
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    limit = len(positional)

    def adapted(*args: Any) -> Any:
        return handler(*args[:limit])

    adapted.__wrapped__ = handler  # type: ignore[attr-defined]
    return adapted


def _resolve_enum(enum: Any, choices: Dict[str, str], description: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    name = choices.get(value.strip().lower())
    if name is None:
        expected = ", ".join(f"'{choice}'" for choice in choices)
        raise ValueError(f"Invalid {description} value: '{value}'. Expected one of {expected}.")
    return getattr(enum, name)


def resolve_orientation(toolkit: Any, value: Any) -> Any:
    return _resolve_enum(toolkit.Orientation, _ORIENTATIONS, "orientation", value)


def resolve_align(toolkit: Any, value: Any) -> Any:
    return _resolve_enum(toolkit.Align, _ALIGNMENTS, "alignment", value)


def resolve_css_classes(toolkit: Any, value: Any) -> list:
    if isinstance(value, str):
        return [part for part in value.split() if part]
    if isinstance(value, (list, tuple)):
        return [str(part) for part in value if part]
    return []

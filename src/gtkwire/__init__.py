from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gtkwire")
except PackageNotFoundError:
    __version__ = "unknown"

from gtkwire.core.signals import (
    Derived,
    Effect,
    State,
    derived,
    effect,
    end_batch,
    get,
    notify,
    set,
    start_batch,
    state,
)
from gtkwire.core.props import bindable, prop
from gtkwire.runtime.helpers import (
    Instance,
    listener,
    resolve_align,
    resolve_css_classes,
    resolve_orientation,
)

__all__ = [
    "State",
    "Derived",
    "Effect",
    "state",
    "derived",
    "effect",
    "get",
    "set",
    "notify",
    "start_batch",
    "end_batch",
    "prop",
    "bindable",
    "Instance",
    "listener",
    "resolve_orientation",
    "resolve_align",
    "resolve_css_classes",
]

import sys
import types

import pytest

import fake_gtk
from wire_support import compile_wire


@pytest.fixture
def fake_gi(monkeypatch):
    """Make `from gi.repository import Gtk` resolve to the fake toolkit."""
    gi = types.ModuleType("gi")
    gi.require_version = lambda namespace, version: None
    repository = types.ModuleType("gi.repository")
    repository.Gtk = fake_gtk
    gi.repository = repository
    monkeypatch.setitem(sys.modules, "gi", gi)
    monkeypatch.setitem(sys.modules, "gi.repository", repository)
    return fake_gtk


@pytest.fixture
def isolated_imports(tmp_path):
    """Forget sys.path entries and modules a test imported from its temporary build."""
    modules = set(sys.modules)
    path = list(sys.path)
    yield
    root = str(tmp_path.resolve())
    for name in set(sys.modules) - modules:
        if (getattr(sys.modules[name], "__file__", None) or "").startswith(root):
            del sys.modules[name]
    sys.path[:] = path


@pytest.fixture
def mount(fake_gi, tmp_path):
    """Compile a component, execute it and call its factory.

    Returns the component instance; the generated source is kept on
    `instance.source` for debugging failed assertions.
    """

    def run(source: str, props=None, name: str = "App"):
        path = tmp_path / f"{name}.wire"
        path.write_text(source, encoding="utf-8")
        code = compile_wire(source, str(path), tmp_path)
        namespace = {"__name__": f"compiled_{name}"}
        exec(compile(code, str(path), "exec"), namespace)
        instance = namespace[name](props)
        instance.source = code
        return instance

    return run

import pytest

from gtkwire.compiler.codegen.generator import CodeGenerator, component_name_for
from gtkwire.compiler.exceptions import AnalysisError
from gtkwire.compiler.parser import WireParser
from gtkwire.config import GtkWireConfig
from wire_support import compile_wire, write_tree

RUNTIME_IMPORT = "from gtkwire import state, derived, get as _get, set as _set"


def compile_module(source, file_path, src_dir):
    parsed = WireParser().parse_python(source, str(file_path))
    return CodeGenerator(GtkWireConfig(), src_dir).compile_source(parsed)


@pytest.mark.parametrize(
    "file_path, expected",
    [
        ("App.wire", "App"),
        ("my-card.wire", "my_card"),
        ("2col.wire", "_2col"),
        ("class.wire", "class_"),
        ("components/Card.wire", "Card"),
    ],
)
def test_component_name_for(file_path, expected):
    assert component_name_for(file_path) == expected


def test_header_and_import_order(tmp_path):
    write_tree(
        tmp_path,
        {
            "store.py": "count = state(0)\n",
            "Card.wire": "<label>card</label>",
        },
    )
    source = (
        "---\n"
        "import os\n"
        "from gi.repository import Gtk, GLib\n"
        "from .store import count\n"
        "from .Card import Card\n"
        "---\n"
        "<Card/>\n"
    )
    code = compile_wire(source, str(tmp_path / "App.wire"), tmp_path)
    lines = [line for line in code.splitlines() if line]
    assert lines[:3] == [
        "import gi",
        "gi.require_version('Gtk', '4.0')",
        "from gi.repository import Gtk",
    ]
    assert lines[3] == "from gi.repository import GLib"
    assert lines[4] == "import os"
    assert lines[5].startswith(RUNTIME_IMPORT)
    assert lines[6:8] == ["from store import count", "from Card import Card"]
    assert lines[8] == "def App(props=None):"


def test_component_instance_is_attached(tmp_path):
    write_tree(tmp_path, {"Card.wire": "<label>card</label>"})
    source = "---\nfrom .Card import Card as Tile\n---\n<box><Tile title=\"x\"/></box>"
    code = compile_wire(source, str(tmp_path / "App.wire"), tmp_path)
    assert "from Card import Card as Tile" in code
    assert "tile_0 = Tile({'title': _state('x')})" in code
    assert "box_1.append(tile_0.root_widget)" in code


def test_mangled_export_name(tmp_path):
    write_tree(tmp_path, {"components/my-card.wire": "<label>x</label>"})
    path = tmp_path / "components" / "my-card.wire"
    code = compile_wire(path.read_text(), str(path), tmp_path)
    assert "def my_card(props=None):" in code
    assert "components_my_card = my_card" in code
    assert code.rstrip().endswith("__all__ = ['components_my_card']")


def test_prop_declarations_come_first():
    source = (
        "---\n"
        "title, value = props(value=bindable(0))\n"
        "doubled = derived(lambda: value * 2)\n"
        "---\n"
        "<label>{title}: {doubled}</label>\n"
    )
    code = compile_wire(source)
    body = code.split("def App(props=None):\n", 1)[1]
    assert body.startswith(
        "    title = _prop(props, 'title', None, False)\n"
        "    value = _prop(props, 'value', 0, True)\n"
        "    doubled = derived(lambda: _get(value) * 2)\n"
    )


def test_returns_instance_with_root_box():
    code = compile_wire("<label>x</label>")
    assert "    return _Instance(root_widget=box_0)" in code


def test_component_prop_kinds(tmp_path):
    write_tree(tmp_path, {"Card.wire": "---\na, b, c, d = props()\n---\n<label>{a}</label>"})
    source = (
        "---\n"
        "from .Card import Card\n"
        "count = state(1)\n"
        "limit = 3\n"
        "---\n"
        "<Card a={count} b={count + 1} c={limit} d/>\n"
    )
    code = compile_wire(source, str(tmp_path / "App.wire"), tmp_path)
    assert (
        "card_0 = Card({'a': count, 'b': _derived(lambda: _get(count) + 1), "
        "'c': limit, 'd': _state(True)})"
    ) in code


def test_component_children_become_snippet(tmp_path):
    write_tree(tmp_path, {"Panel.wire": "---\nchildren, = props()\n---\n{$render children()}"})
    source = "---\nfrom .Panel import Panel\n---\n<Panel><label>inner</label></Panel>"
    code = compile_wire(source, str(tmp_path / "App.wire"), tmp_path)
    assert "def children_snippet_0():" in code
    assert "children_box_0 = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)" in code
    assert "panel_0 = Panel({'children': children_snippet_0})" in code


def test_unresolvable_import(tmp_path):
    source = "---\nfrom .missing import thing\n---\n<label>x</label>"
    with pytest.raises(AnalysisError, match="Cannot resolve import '.missing'"):
        compile_wire(source, str(tmp_path / "App.wire"), tmp_path)


def test_import_outside_source_root(tmp_path):
    write_tree(tmp_path, {"outside.py": "x = 1\n"})
    src = tmp_path / "src"
    src.mkdir()
    source = "---\nfrom ..outside import x\n---\n<label>x</label>"
    with pytest.raises(AnalysisError, match="outside the source root"):
        compile_wire(source, str(src / "App.wire"), src)


class TestPythonModules:
    def test_cells_and_aliases(self, tmp_path):
        source = (
            '"""Shared counter."""\n'
            "from __future__ import annotations\n"
            "\n"
            "count = state(0)\n"
            "total = count\n"
            "\n"
            "def bump():\n"
            "    count += 1\n"
        )
        code = compile_module(source, tmp_path / "store.py", tmp_path)
        lines = code.splitlines()
        assert lines[0] == "\"\"\"Shared counter.\"\"\""
        assert lines[1] == "from __future__ import annotations"
        assert lines[2].startswith(RUNTIME_IMPORT)
        assert "count = state(0)\ntotal = count\n" in code
        assert "def bump():\n    _set(count, _get(count) + 1)" in code

    def test_relative_imports_become_absolute(self, tmp_path):
        write_tree(
            tmp_path,
            {"data/__init__.py": "", "data/store.py": "count = state(0)\n"},
        )
        source = (
            "from .data.store import count as c\n"
            "from . import data\n"
            "\n"
            "def load():\n"
            "    from .data.store import count\n"
            "    return count\n"
        )
        code = compile_module(source, tmp_path / "service.py", tmp_path)
        assert "from data_store import count as c" in code
        assert "import data___init__ as data" in code
        assert "    from data_store import count\n" in code

    def test_plain_module_keeps_its_code(self, tmp_path):
        source = "import math\n\nRATIO = math.pi\n\ndef area(r):\n    return RATIO * r * r\n"
        code = compile_module(source, tmp_path / "geometry.py", tmp_path)
        assert code.startswith(RUNTIME_IMPORT)
        assert "\nimport math\n" in code
        assert "def area(r):\n    return RATIO * r * r" in code
        assert "_get" not in code.split("\n", 1)[1]

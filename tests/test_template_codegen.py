import ast

import pytest

import fake_gtk
from gtkwire.compiler.codegen.registry import lookup
from gtkwire.compiler.exceptions import LoweringError
from wire_support import compile_wire

COUNTER = """---
count = state(0)

def increment(*args):
    count += 1
---
<box orientation="vertical" spacing={6}>
  <label>Count: {count}</label>
  <button @click={increment}>Add</button>
</box>
"""


def button(root, index=0):
    return fake_gtk.find_all(root, fake_gtk.Button)[index]


class TestGeneratedCode:
    def test_counter_module_shape(self):
        code = compile_wire(COUNTER)
        assert "def App(props=None):" in code
        assert "box_0 = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, margin_top=12" in code
        assert "box_1 = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=6)" in code
        assert "_set(count, _get(count) + 1)" in code
        assert "@_effect\n    def effect_0():\n        label_0.set_label(f'Count: {_get(count)}')" in code
        assert "button_0.connect('clicked', _listener(increment))" in code
        assert code.rstrip().endswith("__all__ = ['App']")

    def test_static_text_is_set_once(self):
        code = compile_wire("<label>Hello</label>")
        assert "label_0.set_label('Hello')" in code
        assert "_effect" not in code.split("def App")[1]

    def test_statement_event_becomes_handler_function(self):
        code = compile_wire("---\ncount = state(0)\n---\n<button @click={count += 1}>+</button>")
        assert "def _on_clicked_0(*_args):\n        _set(count, _get(count) + 1)" in code
        assert "button_0.connect('clicked', _on_clicked_0)" in code

    def test_unknown_event_names_pass_through(self):
        code = compile_wire("<switch @state-set={on_state}/>")
        assert "switch_0.connect('state-set', _listener(on_state))" in code

    def test_grid_attaches_next_to(self):
        code = compile_wire("<grid><label>a</label><label>b</label></grid>")
        assert "grid_0.attach_next_to(label_0, None, Gtk.PositionType.BOTTOM, 1, 1)" in code

    def test_dynamic_enum_goes_through_resolver(self):
        code = compile_wire("---\nlayout = 'h'\n---\n<box orientation={layout}/>")
        assert "orientation=_resolve_orientation(Gtk, layout)" in code


class TestTextAndChildren:
    def test_static_label(self, mount):
        root = mount("<label>\n   Hello\n</label>").root_widget
        assert fake_gtk.labels(root) == ["Hello"]

    def test_root_box_defaults(self, mount):
        root = mount("<box/>").root_widget
        assert root.props.orientation is fake_gtk.Orientation.VERTICAL
        assert root.props.spacing == 6
        assert root.props.margin_top == 12

    def test_interpolation_updates(self, mount):
        root = mount(COUNTER).root_widget
        assert "Count: 0" in fake_gtk.labels(root)
        button(root).clicked()
        button(root).clicked()
        assert "Count: 2" in fake_gtk.labels(root)

    def test_loose_text_in_box_gets_a_label(self, mount):
        root = mount("---\nname = 'Ann'\n---\n<box>Hi {name}!</box>").root_widget
        [box] = root.children
        [label] = box.children
        assert isinstance(label, fake_gtk.Label)
        assert label.get_label() == "Hi Ann!"

    def test_whitespace_and_comments_are_ignored(self, mount):
        root = mount("<box>\n  <!-- note -->\n  <label>a</label>\n</box>").root_widget
        [box] = root.children
        assert len(box.children) == 1

    def test_button_text_child(self, mount):
        root = mount("<button>Click</button>").root_widget
        [label] = button(root).children
        assert label.get_label() == "Click"

    def test_button_element_child(self, mount):
        root = mount('<button><image icon_name="go-next"/></button>').root_widget
        [image] = button(root).children
        assert isinstance(image, fake_gtk.Image)
        assert image.props.icon_name == "go-next"

    def test_checkbutton_text(self, mount):
        root = mount("<checkbutton>Remember me</checkbutton>").root_widget
        [check] = root.children
        assert check.get_label() == "Remember me"

    def test_grid_children(self, mount):
        root = mount("<grid><label>a</label><label>b</label></grid>").root_widget
        [grid] = root.children
        assert [w.get_label() for w in grid.children] == ["a", "b"]


class TestAttributes:
    def test_literal_values_are_typed(self, mount):
        root = mount(
            '<box spacing="4" homogeneous="true" hexpand>'
            '<label xalign="0.5" label="007x"/></box>'
        ).root_widget
        [box] = root.children
        assert box.props.spacing == 4
        assert box.props.homogeneous is True
        assert box.props.hexpand is True
        [label] = box.children
        assert label.props.xalign == 0.5
        assert label.props.label == "007x"

    def test_class_alias(self, mount):
        root = mount('<box class="card accent"/>').root_widget
        assert root.children[0].props.css_classes == ["card", "accent"]

    def test_alignment_literal(self, mount):
        root = mount('<label halign="center">x</label>').root_widget
        assert root.children[0].props.halign is fake_gtk.Align.CENTER

    def test_shorthand_attribute(self, mount):
        root = mount("---\ntooltip_text = 'tip'\n---\n<label {tooltip_text}>x</label>").root_widget
        assert root.children[0].props.tooltip_text == "tip"

    def test_reactive_attribute(self, mount):
        source = (
            "---\nenabled = state(True)\n---\n"
            "<button sensitive={enabled} @click={enabled = not enabled}>Toggle</button>"
        )
        root = mount(source).root_widget
        assert button(root).props.sensitive is True
        button(root).clicked()
        assert button(root).props.sensitive is False

    def test_dynamic_orientation(self, mount):
        root = mount("---\nlayout = 'h'\n---\n<box orientation={layout}/>").root_widget
        assert root.children[0].props.orientation is fake_gtk.Orientation.HORIZONTAL


class TestEvents:
    def test_lambda_mutation_notifies(self, mount):
        source = (
            "---\nitems = state([])\n---\n"
            "<button @click={lambda: items.append(1)}>Add</button>"
            "<label>{len(items)} items</label>"
        )
        root = mount(source).root_widget
        button(root).clicked()
        button(root).clicked()
        assert "2 items" in fake_gtk.labels(root)

    def test_expression_mutation_notifies(self, mount):
        source = (
            "---\nitems = state([])\n---\n"
            "<button @click={items.append(1)}>Add</button>"
            "<label>{len(items)} items</label>"
        )
        root = mount(source).root_widget
        button(root).clicked()
        assert "1 items" in fake_gtk.labels(root)

    def test_handler_using_popped_value_notifies(self, mount):
        source = (
            "---\nitems = state([1, 2, 3])\nlast = state(0)\n"
            "def drop(*args):\n"
            "    last = items.pop()\n"
            "---\n"
            "<button @click={drop}>Drop</button>"
            "<label>{len(items)}</label><label>{last}</label>"
        )
        root = mount(source).root_widget
        assert fake_gtk.labels(root)[1:] == ["3", "0"]
        button(root).clicked()
        assert fake_gtk.labels(root)[1:] == ["2", "3"]

    def test_handler_receives_widget_when_it_wants_it(self, mount):
        source = (
            "---\nseen = state('')\n"
            "def on_click(widget):\n"
            "    seen = type(widget).__name__\n"
            "---\n"
            "<button @click={on_click}>Go</button><label>{seen}</label>"
        )
        root = mount(source).root_widget
        button(root).clicked()
        assert "Button" in fake_gtk.labels(root)


@pytest.mark.parametrize(
    "template, message",
    [
        ("<div/>", "Unsupported GTK tag: <div>"),
        ('<label bogus="1"/>', "Unsupported attribute 'bogus' for <label>"),
        ('<box class="a" css_classes="b"/>', "Duplicate attribute"),
        ('<box orientation="diagonal"/>', "Invalid orientation value: 'diagonal'"),
        ("<button><label>a</label><label>b</label></button>", "can only have one element child"),
        ("<button>text<label>a</label></button>", "cannot have both element children"),
        ("<label><box/></label>", "cannot have element children"),
        ("<entry>hi</entry>", "<entry> cannot contain text."),
        ("<label>{x = 1}</label>", "Expected an expression"),
        ('<button @click="go">x</button>', "must be a {...} expression"),
        ("<Missing/>", "Unknown component <Missing>"),
    ],
)
def test_lowering_errors(template, message):
    with pytest.raises(LoweringError) as info:
        compile_wire(template)
    assert message in info.value.message


def test_error_points_at_offending_tag():
    source = "<box>\n  <div/>\n</box>"
    with pytest.raises(LoweringError) as info:
        compile_wire(source)
    assert info.value.start == source.index("<div")


def test_descriptor_resolves_literal_enums():
    box = lookup("box")
    assert ast.unparse(box.transform("Gtk", "orientation", "V")) == "Gtk.Orientation.VERTICAL"
    assert box.transform("Gtk", "spacing", "4") is None
    with pytest.raises(ValueError, match="Invalid alignment value"):
        box.transform("Gtk", "halign", "middle")

"""Static table of supported widgets, their attributes and child arity."""

import ast
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from gtkwire.compiler.codegen.attributes.values import (
    AlignTransformer,
    CssClassesTransformer,
    OrientationTransformer,
    ValueTransformer,
)
from gtkwire.compiler.state import ContainerType

ATTRIBUTE_ALIASES: Dict[str, str] = {
    "class": "css_classes",
}

# Layout properties every widget accepts
COMMON_LAYOUT_PROPS: Tuple[str, ...] = (
    "vexpand",
    "hexpand",
    "valign",
    "halign",
    "margin_top",
    "margin_bottom",
    "margin_start",
    "margin_end",
    "css_classes",
    "visible",
    "sensitive",
    "tooltip_text",
    "width_request",
    "height_request",
)

TRANSFORMERS: Dict[str, ValueTransformer] = {
    "orientation": OrientationTransformer(),
    "halign": AlignTransformer(),
    "valign": AlignTransformer(),
    "css_classes": CssClassesTransformer(),
}

# Widget property kept in sync by `bind={cell}`, per tag
BIND_PROPERTIES: Dict[str, str] = {
    "entry": "text",
    "switch": "active",
    "checkbutton": "active",
    "spinbutton": "value",
    "spinner": "spinning",
}


@dataclass(frozen=True)
class WidgetDescriptor:
    tag: str
    constructor: str
    container_type: ContainerType
    valid_props: Tuple[str, ...]
    # Widgets with a text property take text/interpolation children through set_<prop>()
    text_property: Optional[str] = None
    # How children are attached to a multi-child container
    attach: str = "append"

    def accepts(self, attribute: str) -> bool:
        return canonical_attribute(attribute) in self.valid_props

    def transformer(self, attribute: str) -> Optional[ValueTransformer]:
        return TRANSFORMERS.get(canonical_attribute(attribute))

    def transform(self, toolkit: str, attribute: str, value: str) -> Optional[ast.expr]:
        """Literal value for a transformed attribute; None if it has no transformer.

        Raises ValueError for an invalid enumerated value.
        """
        transformer = self.transformer(attribute)
        if transformer is None:
            return None
        return transformer.literal(toolkit, value)


def canonical_attribute(attribute: str) -> str:
    return ATTRIBUTE_ALIASES.get(attribute, attribute)


def _widget(
    tag: str,
    constructor: str,
    container_type: ContainerType,
    props: Tuple[str, ...],
    **extra,
) -> WidgetDescriptor:
    return WidgetDescriptor(
        tag=tag,
        constructor=constructor,
        container_type=container_type,
        valid_props=props + COMMON_LAYOUT_PROPS,
        **extra,
    )


WIDGETS: Dict[str, WidgetDescriptor] = {
    w.tag: w
    for w in (
        _widget(
            "box",
            "Box",
            ContainerType.MULTIPLE,
            ("orientation", "spacing", "homogeneous", "baseline_position"),
        ),
        _widget(
            "label",
            "Label",
            ContainerType.NONE,
            (
                "label",
                "use_markup",
                "use_underline",
                "selectable",
                "wrap",
                "wrap_mode",
                "lines",
                "justify",
                "ellipsize",
                "width_chars",
                "max_width_chars",
                "xalign",
                "yalign",
            ),
            text_property="label",
        ),
        _widget(
            "button",
            "Button",
            ContainerType.SINGLE,
            ("label", "icon_name", "has_frame", "use_underline"),
        ),
        _widget(
            "entry",
            "Entry",
            ContainerType.NONE,
            (
                "bind",
                "text",
                "placeholder_text",
                "visibility",
                "editable",
                "max_length",
                "has_frame",
                "activates_default",
                "input_purpose",
                "input_hints",
            ),
        ),
        _widget("switch", "Switch", ContainerType.NONE, ("bind", "active", "state")),
        _widget(
            "spinbutton",
            "SpinButton",
            ContainerType.NONE,
            ("bind", "value", "digits", "numeric", "wrap", "snap_to_ticks", "adjustment"),
        ),
        _widget(
            "checkbutton",
            "CheckButton",
            ContainerType.NONE,
            ("label", "bind", "active", "inconsistent", "use_underline"),
            text_property="label",
        ),
        _widget(
            "image",
            "Image",
            ContainerType.NONE,
            ("icon_name", "file", "resource", "pixel_size", "icon_size"),
        ),
        _widget("spinner", "Spinner", ContainerType.NONE, ("bind", "spinning")),
        _widget(
            "scrolledwindow",
            "ScrolledWindow",
            ContainerType.SINGLE,
            (
                "hscrollbar_policy",
                "vscrollbar_policy",
                "min_content_width",
                "min_content_height",
                "max_content_width",
                "max_content_height",
                "overlay_scrolling",
                "propagate_natural_width",
                "propagate_natural_height",
                "has_frame",
            ),
        ),
        _widget(
            "grid",
            "Grid",
            ContainerType.MULTIPLE,
            (
                "row_spacing",
                "column_spacing",
                "row_homogeneous",
                "column_homogeneous",
                "baseline_row",
            ),
            attach="attach_next_to",
        ),
        _widget(
            "frame",
            "Frame",
            ContainerType.SINGLE,
            ("label", "label_xalign"),
        ),
        _widget("separator", "Separator", ContainerType.NONE, ("orientation",)),
        _widget(
            "progressbar",
            "ProgressBar",
            ContainerType.NONE,
            ("fraction", "text", "show_text", "pulse_step", "inverted", "orientation"),
        ),
    )
}


def lookup(tag: str) -> Optional[WidgetDescriptor]:
    return WIDGETS.get(tag)


def available_tags() -> str:
    return ", ".join(WIDGETS)

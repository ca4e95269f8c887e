"""Template lowering: template nodes to widget construction statements."""

import ast
from typing import FrozenSet, List, Optional, Set, Tuple, Union

from gtkwire.compiler.ast_nodes import (
    Attribute,
    Comment,
    EachBlock,
    Element,
    Fragment,
    IfBlock,
    InlineComponent,
    MustacheTag,
    Node,
    RenderTag,
    Text,
)
from gtkwire.compiler.codegen import blocks
from gtkwire.compiler.codegen import builders as b
from gtkwire.compiler.codegen.attributes.base import ElementContext, lower_property
from gtkwire.compiler.codegen.attributes.events import lower_event
from gtkwire.compiler.codegen.directives.bind import BindDirective
from gtkwire.compiler.codegen.registry import (
    WidgetDescriptor,
    available_tags,
    canonical_attribute,
    lookup,
)
from gtkwire.compiler.exceptions import LoweringError
from gtkwire.compiler.state import CompilerState, ContainerType, LoweredCode
from gtkwire.compiler.transform import transform_expression

DIRECTIVES = {d.name: d for d in (BindDirective(),)}

Scope = FrozenSet[str]
TextRun = List[Union[Text, MustacheTag]]

CHILD_NODES = (Element, InlineComponent, IfBlock, EachBlock, RenderTag)


def _is_meaningful(node: Node) -> bool:
    if isinstance(node, Comment):
        return False
    if isinstance(node, Text):
        return not node.is_blank
    return True


class TemplateLowering:
    """Walks a parsed template and fills a CompilerState's output streams."""

    def __init__(self, state: CompilerState):
        self.state = state

    # -- helpers ---------------------------------------------------------

    def error(self, where: Union[Node, Attribute], message: str) -> LoweringError:
        return LoweringError.at(where, message, self.state.file_path)

    def toolkit_attr(self, *path: str) -> ast.expr:
        return b.attr(self.state.toolkit, *path)

    def construct(self, constructor: str, keywords: Optional[List[ast.keyword]] = None) -> ast.Call:
        return b.call_kw(self.toolkit_attr(constructor), [], keywords or [])

    def rewrite(self, expr: ast.expr, scope: Scope) -> Tuple[ast.expr, Set[str]]:
        return transform_expression(expr, self.state.reactive_variables, scope)

    def attach(
        self,
        parent: str,
        child: ast.expr,
        parent_type: ContainerType,
        attach: str = "append",
    ) -> ast.stmt:
        if parent_type is ContainerType.SINGLE:
            return b.method(parent, "set_child", child)
        if attach == "attach_next_to":
            position = self.toolkit_attr("PositionType", "BOTTOM")
            return b.method(
                parent, attach, child, b.const(None), position, b.const(1), b.const(1)
            )
        return b.method(parent, attach, child)

    # -- entry points ----------------------------------------------------

    def lower_root(self) -> None:
        state = self.state
        config = state.config
        root = state.next_name("box")
        state.root_widget_name = root
        margin = b.const(config.root_margin)
        state.widget_declarations.append(
            b.assign(
                root,
                self.construct(
                    "Box",
                    [
                        ast.keyword(arg="orientation", value=self.toolkit_attr("Orientation", "VERTICAL")),
                        ast.keyword(arg="margin_top", value=margin),
                        ast.keyword(arg="margin_bottom", value=margin),
                        ast.keyword(arg="margin_start", value=margin),
                        ast.keyword(arg="margin_end", value=margin),
                        ast.keyword(arg="spacing", value=b.const(config.root_spacing)),
                    ],
                ),
            )
        )
        code = self.walk(state.parsed.template.children, root, ContainerType.MULTIPLE, frozenset())
        state.widget_declarations.extend(code.declarations)
        state.effects_and_handlers.extend(code.handlers)

    def walk(
        self,
        nodes: List[Node],
        parent: str,
        parent_type: ContainerType,
        scope: Scope,
        attach: str = "append",
    ) -> LoweredCode:
        """Lower sibling nodes attached to `parent`."""
        out = LoweredCode()
        run: TextRun = []

        def flush() -> None:
            if any(_is_meaningful(n) for n in run):
                out.extend(self.lower_text_run(list(run), parent, parent_type, scope, attach))
            run.clear()

        for node in nodes:
            if isinstance(node, (Text, MustacheTag)):
                run.append(node)
                continue
            flush()
            if isinstance(node, Comment):
                continue
            if isinstance(node, InlineComponent):
                out.extend(self.lower_component(node, parent, parent_type, scope, attach))
            elif isinstance(node, Element):
                out.extend(self.lower_element(node, parent, parent_type, scope, attach))
            elif isinstance(node, IfBlock):
                out.extend(blocks.lower_if_block(self, node, parent, parent_type, scope, attach))
            elif isinstance(node, EachBlock):
                out.extend(blocks.lower_each_block(self, node, parent, parent_type, scope, attach))
            elif isinstance(node, RenderTag):
                out.extend(blocks.lower_render_tag(self, node, parent, parent_type, scope, attach))
            elif isinstance(node, Fragment):
                out.extend(self.walk(node.children, parent, parent_type, scope, attach))
            else:
                raise self.error(node, f"Unsupported template node: {type(node).__name__}")
        flush()
        return out

    # -- text ------------------------------------------------------------

    def text_value(self, run: TextRun, scope: Scope) -> Tuple[ast.expr, bool]:
        """Build the label text for a run; True when it reads reactive state."""
        parts: List[ast.expr] = []
        reactive = False
        last = len(run) - 1
        for index, node in enumerate(run):
            if isinstance(node, Text):
                data = node.data
                if index == 0:
                    data = data.lstrip()
                if index == last:
                    data = data.rstrip()
                if not data:
                    continue
                if parts and isinstance(parts[-1], ast.Constant):
                    parts[-1] = b.const(parts[-1].value + data)
                else:
                    parts.append(b.const(data))
                continue

            if node.expression is None:
                raise self.error(node, "Expected an expression inside {...}, not statements")
            expr, reads = self.rewrite(node.expression, scope)
            reactive = reactive or bool(reads)
            parts.append(ast.FormattedValue(value=expr, conversion=-1, format_spec=None))

        if all(isinstance(p, ast.Constant) for p in parts):
            return b.const("".join(p.value for p in parts)), reactive  # type: ignore[attr-defined]
        return ast.JoinedStr(values=parts), reactive

    def text_assignment(
        self, target: str, setter: str, run: TextRun, scope: Scope
    ) -> LoweredCode:
        """Static setter call, or an effect when any interpolation is reactive."""
        out = LoweredCode()
        value, reactive = self.text_value(run, scope)
        if isinstance(value, ast.Constant) and not value.value:
            return out
        statement = b.method(target, setter, value)
        if reactive:
            out.handlers.append(b.effect(self.state.next_name("effect"), [statement]))
        else:
            out.declarations.append(statement)
        return out

    def lower_text_run(
        self,
        run: TextRun,
        parent: str,
        parent_type: ContainerType,
        scope: Scope,
        attach: str = "append",
    ) -> LoweredCode:
        """Wrap loose text in a label of its own."""
        out = LoweredCode()
        label = self.state.next_name("label")
        out.declarations.append(b.assign(label, self.construct("Label")))
        out.declarations.append(self.attach(parent, b.name(label), parent_type, attach))
        out.extend(self.text_assignment(label, "set_label", run, scope))
        return out

    # -- elements --------------------------------------------------------

    def _opening_tag(self, node: Element) -> Node:
        return Node(start=node.start, end=node.tag_end or node.end)

    def lower_element(
        self,
        node: Element,
        parent: str,
        parent_type: ContainerType,
        scope: Scope,
        attach: str = "append",
    ) -> LoweredCode:
        state = self.state
        descriptor = lookup(node.name)
        if descriptor is None:
            raise self.error(
                self._opening_tag(node),
                f"Unsupported GTK tag: <{node.name}>. Available tags are: {available_tags()}.",
            )

        var_name = state.next_name(node.name)
        ctx = ElementContext(state, node, descriptor, var_name, scope)
        out = LoweredCode()
        keywords: List[ast.keyword] = []
        property_handlers: List[ast.stmt] = []
        events: List[Attribute] = []
        seen: Set[str] = set()

        for attribute in node.attributes:
            if attribute.is_event:
                events.append(attribute)
                continue
            if not descriptor.accepts(attribute.name):
                raise self.error(
                    attribute,
                    f"Unsupported attribute '{attribute.name}' for <{node.name}>. "
                    f"Available attributes are: {', '.join(descriptor.valid_props)}.",
                )
            prop = canonical_attribute(attribute.name)
            if prop in seen:
                raise self.error(attribute, f"Duplicate attribute '{attribute.name}' on <{node.name}>")
            seen.add(prop)

            directive = DIRECTIVES.get(prop)
            if directive is not None:
                property_handlers.extend(directive.lower(ctx, attribute))
                continue
            kws, handlers = lower_property(ctx, attribute)
            keywords.extend(kws)
            property_handlers.extend(handlers)

        out.declarations.append(b.assign(var_name, self.construct(descriptor.constructor, keywords)))
        out.declarations.append(self.attach(parent, b.name(var_name), parent_type, attach))
        out.handlers.extend(property_handlers)

        out.extend(self.lower_children(node, descriptor, var_name, scope))

        for attribute in events:
            out.handlers.extend(lower_event(ctx, attribute))
        return out

    def lower_children(
        self, node: Element, descriptor: WidgetDescriptor, var_name: str, scope: Scope
    ) -> LoweredCode:
        meaningful = [c for c in node.children if _is_meaningful(c)]
        if not meaningful:
            return LoweredCode()

        element_children = [c for c in meaningful if isinstance(c, CHILD_NODES)]
        text_children = [c for c in meaningful if isinstance(c, (Text, MustacheTag))]
        tag = node.name
        container_type = descriptor.container_type

        if container_type is ContainerType.MULTIPLE:
            return self.walk(node.children, var_name, container_type, scope, descriptor.attach)

        if container_type is ContainerType.SINGLE:
            if element_children and text_children:
                raise self.error(
                    self._opening_tag(node),
                    f"<{tag}> cannot have both element children and direct text content.",
                )
            if len(element_children) > 1:
                raise self.error(self._opening_tag(node), f"<{tag}> can only have one element child.")
            if element_children:
                return self.walk(node.children, var_name, container_type, scope)
            out = LoweredCode()
            label = self.state.next_name("label")
            out.declarations.append(b.assign(label, self.construct("Label")))
            out.extend(self.text_assignment(label, "set_label", self._text_run(node), scope))
            out.declarations.append(b.method(var_name, "set_child", b.name(label)))
            return out

        if element_children:
            raise self.error(self._opening_tag(node), f"<{tag}> cannot have element children.")
        if descriptor.text_property is None:
            raise self.error(self._opening_tag(node), f"<{tag}> cannot contain text.")
        return self.text_assignment(
            var_name, f"set_{descriptor.text_property}", self._text_run(node), scope
        )

    def _text_run(self, node: Element) -> TextRun:
        return [c for c in node.children if isinstance(c, (Text, MustacheTag))]

    # -- components ------------------------------------------------------

    def lower_component(
        self,
        node: InlineComponent,
        parent: str,
        parent_type: ContainerType,
        scope: Scope,
        attach: str = "append",
    ) -> LoweredCode:
        state = self.state
        name = node.name
        if name not in state.analysis.declared_names and name not in scope:
            raise self.error(
                self._opening_tag(node),
                f"Unknown component <{name}>. Import it in the script, "
                f"e.g. `from .{name} import {name}`.",
            )

        keys: List[Optional[ast.expr]] = []
        values: List[ast.expr] = []
        for attribute in node.attributes:
            keys.append(b.const(attribute.name))
            values.append(self.component_prop(attribute, scope))

        children = [c for c in node.children if _is_meaningful(c)]
        if children:
            keys.append(b.const("children"))
            values.append(b.name(self.children_snippet(node.children, scope)))

        instance = state.next_name(name.lower())
        out = LoweredCode()
        out.declarations.append(
            b.assign(instance, b.call(name, ast.Dict(keys=keys, values=values)))
        )
        out.declarations.append(
            self.attach(parent, b.attr(instance, "root_widget"), parent_type, attach)
        )
        return out

    def component_prop(self, attribute: Attribute, scope: Scope) -> ast.expr:
        """Value passed for one component property.

        Literal text becomes a fresh cell, a bare cell is passed through so
        bindable properties share it, and reactive expressions become derived
        cells.
        """
        if attribute.is_event:
            raise self.error(
                attribute,
                "Event attributes are not supported on components; pass a callback property instead",
            )
        value = attribute.value
        if value is None:
            return b.call(b.RT_STATE, b.const(True))
        if isinstance(value, Text):
            return b.call(b.RT_STATE, b.const(value.data))
        if value.expression is None:
            raise self.error(value, f"Property '{attribute.name}' expects an expression, not statements")

        expr = value.expression
        if (
            isinstance(expr, ast.Name)
            and expr.id in self.state.reactive_variables
            and expr.id not in scope
        ):
            return b.name(expr.id)
        rewritten, reads = self.rewrite(expr, scope)
        if reads:
            return b.call(b.RT_DERIVED, b.lambda_(rewritten))
        return rewritten

    def children_snippet(self, nodes: List[Node], scope: Scope) -> str:
        """Hoist a function that builds the children passed into a component."""
        state = self.state
        snippet = state.next_name("children_snippet")
        box = state.next_name("children_box")
        with state.helper_scope() as helpers:
            code = self.walk(nodes, box, ContainerType.MULTIPLE, scope)
        horizontal = ast.keyword(arg="orientation", value=self.toolkit_attr("Orientation", "HORIZONTAL"))
        body = (
            helpers
            + [b.assign(box, self.construct("Box", [horizontal]))]
            + code.body
            + [ast.Return(value=b.name(box))]
        )
        state.hoist(b.function(snippet, [], body))
        return snippet

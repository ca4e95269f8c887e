"""Control-flow blocks: `{$if}`, `{$for}` and `{$render}`.

Each block owns one container created once. An effect clears the container
and repopulates it through hoisted renderer functions whenever the block's
inputs change.
"""

import ast
from typing import TYPE_CHECKING, FrozenSet, List, Optional, Sequence, Tuple

from gtkwire.compiler.ast_nodes import Comment, EachBlock, IfBlock, Node, RenderTag, Text
from gtkwire.compiler.codegen import builders as b
from gtkwire.compiler.state import ContainerType, LoweredCode

if TYPE_CHECKING:
    from gtkwire.compiler.codegen.template import TemplateLowering

PARENT_PARAM = "_parent"
DEFAULT_INDEX = "i"


def _renderer(
    lowering: "TemplateLowering",
    prefix: str,
    nodes: List[Node],
    scope: FrozenSet[str],
    extra_params: Sequence[str] = (),
) -> str:
    state = lowering.state
    renderer_name = state.next_name(prefix)
    with state.helper_scope() as helpers:
        code = lowering.walk(nodes, PARENT_PARAM, ContainerType.MULTIPLE, scope)
    state.hoist(b.function(renderer_name, [PARENT_PARAM, *extra_params], helpers + code.body))
    return renderer_name


def _container(
    lowering: "TemplateLowering",
    prefix: str,
    parent: str,
    parent_type: ContainerType,
    attach: str,
    keywords: Optional[List[ast.keyword]] = None,
) -> Tuple[str, LoweredCode]:
    container = lowering.state.next_name(prefix)
    out = LoweredCode()
    out.declarations.append(b.assign(container, lowering.construct("Box", keywords)))
    out.declarations.append(lowering.attach(parent, b.name(container), parent_type, attach))
    return container, out


def _render_call(renderer_name: str, container: str, *args: ast.expr) -> ast.stmt:
    return b.expr_stmt(b.call(renderer_name, b.name(container), *args))


def _nested_if(fragment_children: List[Node]) -> Optional[IfBlock]:
    meaningful = [
        c
        for c in fragment_children
        if not isinstance(c, Comment) and not (isinstance(c, Text) and c.is_blank)
    ]
    if len(meaningful) == 1 and isinstance(meaningful[0], IfBlock):
        return meaningful[0]
    return None


def lower_if_block(
    lowering: "TemplateLowering",
    node: IfBlock,
    parent: str,
    parent_type: ContainerType,
    scope: FrozenSet[str],
    attach: str = "append",
) -> LoweredCode:
    container, out = _container(lowering, "if_container", parent, parent_type, attach)

    arms: List[Tuple[Optional[ast.expr], str]] = []
    block: Optional[IfBlock] = node
    while block is not None:
        condition, _ = lowering.rewrite(block.expression, scope)
        arms.append((condition, _renderer(lowering, "if_renderer", block.children, scope)))
        alternate = block.else_
        if alternate is None:
            break
        # `{$elif}` arrives as an alternate wrapping another if block
        block = _nested_if(alternate.children)
        if block is None:
            arms.append((None, _renderer(lowering, "if_renderer", alternate.children, scope)))

    chain: List[ast.stmt] = []
    for condition, renderer_name in reversed(arms):
        call = _render_call(renderer_name, container)
        if condition is None:
            chain = [call]
        else:
            chain = [ast.If(test=condition, body=[call], orelse=chain)]

    body = b.clear_children(container) + chain
    out.handlers.append(b.effect(lowering.state.next_name("effect"), body))
    return out


def lower_each_block(
    lowering: "TemplateLowering",
    node: EachBlock,
    parent: str,
    parent_type: ContainerType,
    scope: FrozenSet[str],
    attach: str = "append",
) -> LoweredCode:
    vertical = ast.keyword(arg="orientation", value=lowering.toolkit_attr("Orientation", "VERTICAL"))
    container, out = _container(lowering, "each_container", parent, parent_type, attach, [vertical])

    item = node.context
    index = node.index or DEFAULT_INDEX
    item_scope = scope | {item, index}
    renderer_name = _renderer(lowering, "each_renderer", node.children, item_scope, (item, index))

    items, _ = lowering.rewrite(node.expression, scope)
    loop = ast.For(
        target=ast.Tuple(elts=[b.store("_index"), b.store("_item")], ctx=ast.Store()),
        iter=b.call("enumerate", b.name("_current_items")),
        body=[_render_call(renderer_name, container, b.name("_item"), b.name("_index"))],
        orelse=[],
    )

    body: List[ast.stmt] = b.clear_children(container)
    body.append(b.assign("_current_items", b.call("list", items)))
    if node.else_ is not None:
        empty_renderer = _renderer(lowering, "each_else_renderer", node.else_.children, scope)
        is_empty = ast.Compare(
            left=b.call("len", b.name("_current_items")), ops=[ast.Eq()], comparators=[b.const(0)]
        )
        body.append(ast.If(test=is_empty, body=[_render_call(empty_renderer, container)], orelse=[loop]))
    else:
        body.append(loop)

    out.handlers.append(b.effect(lowering.state.next_name("effect"), body))
    return out


def lower_render_tag(
    lowering: "TemplateLowering",
    node: RenderTag,
    parent: str,
    parent_type: ContainerType,
    scope: FrozenSet[str],
    attach: str = "append",
) -> LoweredCode:
    container, out = _container(lowering, "render_container", parent, parent_type, attach)
    value, _ = lowering.rewrite(node.expression, scope)

    rendered = b.name("_rendered_item")
    # Component instances expose root_widget, raw widgets are appended as they are
    append = ast.If(
        test=b.call("hasattr", rendered, b.const("root_widget")),
        body=[b.method(container, "append", b.attr("_rendered_item", "root_widget"))],
        orelse=[b.method(container, "append", rendered)],
    )
    body = b.clear_children(container) + [
        b.assign("_rendered_item", value),
        ast.If(test=rendered, body=[append], orelse=[]),
    ]
    out.handlers.append(b.effect(lowering.state.next_name("effect"), body))
    return out

"""Front end for `.wire` files: script fence plus template markup."""

import ast
import re
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

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
    ParsedWire,
    RenderTag,
    Text,
)
from gtkwire.compiler.exceptions import WireFileError, WireSyntaxError

SCRIPT_FENCE = "---"

_TAG_NAME = re.compile(r"[A-Za-z][\w.\-]*")
_ATTR_NAME = re.compile(r"[@A-Za-z_:][\w:.\-]*")
_BLOCK_KEYWORD = re.compile(r"\$([a-z]+)\b")
_FOR_HEADER = re.compile(
    r"^\s*([A-Za-z_]\w*)\s*(?:,\s*([A-Za-z_]\w*)\s*)?\s+in\s+(.+)$", re.DOTALL
)


@dataclass
class _Terminator:
    """Something that ends a run of sibling nodes."""

    kind: str  # "eof", "close", "elif", "else", "/if", "/for"
    start: int
    end: int
    name: str = ""
    payload: str = ""
    payload_start: int = 0


def _line_starts(source: str) -> List[int]:
    starts = [0]
    for index, char in enumerate(source):
        if char == "\n":
            starts.append(index + 1)
    return starts


class WireParser:
    """Parses `.wire` component files."""

    def parse_file(self, file_path: Path) -> ParsedWire:
        """Parse a .wire file from disk."""
        try:
            content = Path(file_path).read_text(encoding="utf-8")
        except FileNotFoundError:
            raise WireFileError(
                f"No such file or directory: {file_path}", file_path=str(file_path)
            )
        except OSError as e:
            raise WireFileError(
                f"Could not read {file_path}: {e.strerror}", file_path=str(file_path)
            )
        if Path(file_path).suffix == ".py":
            return self.parse_python(content, str(file_path))
        return self.parse(content, str(file_path))

    def parse(self, content: str, file_path: str = "") -> ParsedWire:
        line_starts = _line_starts(content)
        script_source, script_line, template_start = self._split_script(content, file_path)

        script_ast = None
        if script_source.strip():
            script_ast = self._parse_script(
                script_source, script_line, line_starts, file_path
            )

        scanner = _TemplateScanner(content, template_start, file_path)
        template = scanner.parse()

        return ParsedWire(
            source=content,
            file_path=file_path,
            template=template,
            script=script_ast,
            script_source=script_source,
            line_starts=line_starts,
        )

    def parse_python(self, content: str, file_path: str = "") -> ParsedWire:
        """Parse a plain `.py` project module (script only, no template)."""
        line_starts = _line_starts(content)
        tree = self._parse_script(content, 1, line_starts, file_path)
        return ParsedWire(
            source=content,
            file_path=file_path,
            template=Fragment(start=len(content), end=len(content), children=[]),
            script=tree,
            script_source=content,
            line_starts=line_starts,
        )

    def _split_script(self, content: str, file_path: str = "") -> Tuple[str, int, int]:
        """Return (script source, first script line, template offset)."""
        lines = content.splitlines(keepends=True)
        index = 0
        offset = 0
        # Leading blank lines may precede the opening fence
        while index < len(lines) and not lines[index].strip():
            offset += len(lines[index])
            index += 1

        if index >= len(lines) or lines[index].strip() != SCRIPT_FENCE:
            return "", 0, 0

        offset += len(lines[index])
        first_script_line = index + 2
        script_lines = []
        for line in lines[index + 1 :]:
            if line.strip() == SCRIPT_FENCE:
                offset += len(line)
                return "".join(script_lines), first_script_line, offset
            script_lines.append(line)
            offset += len(line)

        raise WireSyntaxError(
            "Script section is never closed (expected a closing '---' line)",
            start=0,
            end=len(lines[index]),
            file_path=file_path,
        )

    def _parse_script(
        self,
        script_source: str,
        first_line: int,
        line_starts: List[int],
        file_path: str,
    ) -> ast.Module:
        try:
            tree = ast.parse(script_source)
        except SyntaxError as e:
            lineno = (e.lineno or 1) + first_line - 1
            index = min(lineno, len(line_starts)) - 1
            start = line_starts[index] + max((e.offset or 1) - 1, 0)
            raise WireSyntaxError(
                f"Python syntax error: {e.msg}",
                start=start,
                end=start + 1,
                file_path=file_path,
            )
        ast.increment_lineno(tree, first_line - 1)
        return tree


class _TemplateScanner:
    """Recursive descent over the template part of a file."""

    def __init__(self, source: str, start: int, file_path: str):
        self.source = source
        self.pos = start
        self.start = start
        self.file_path = file_path

    def parse(self) -> Fragment:
        children, term = self._parse_nodes()
        if term.kind != "eof":
            raise self._unexpected(term)
        return Fragment(start=self.start, end=len(self.source), children=children)

    # -- errors ----------------------------------------------------------

    def _error(self, message: str, start: int, end: Optional[int] = None) -> WireSyntaxError:
        return WireSyntaxError(
            message, start=start, end=end if end is not None else start + 1,
            file_path=self.file_path,
        )

    def _unexpected(self, term: _Terminator) -> WireSyntaxError:
        if term.kind == "close":
            return self._error(f"Unexpected closing tag </{term.name}>", term.start, term.end)
        if term.kind == "eof":
            return self._error("Unexpected end of template", term.start)
        label = term.kind if term.kind.startswith("/") else f"${term.kind}"
        return self._error(f"Unexpected {{{label}}}", term.start, term.end)

    # -- sibling runs ----------------------------------------------------

    def _parse_nodes(self) -> Tuple[List[Node], _Terminator]:
        nodes: List[Node] = []
        source = self.source
        while True:
            if self.pos >= len(source):
                return nodes, _Terminator("eof", self.pos, self.pos)

            if source.startswith("<!--", self.pos):
                nodes.append(self._parse_comment())
            elif source.startswith("</", self.pos):
                return nodes, self._parse_closing_tag()
            elif source[self.pos] == "<" and _TAG_NAME.match(source, self.pos + 1):
                nodes.append(self._parse_element())
            elif source[self.pos] == "{":
                result = self._parse_brace()
                if isinstance(result, _Terminator):
                    return nodes, result
                nodes.append(result)
            else:
                nodes.append(self._parse_text())

    def _parse_text(self) -> Text:
        start = self.pos
        source = self.source
        end = start
        while end < len(source):
            char = source[end]
            if char == "{":
                break
            if char == "<" and (
                source.startswith("</", end)
                or source.startswith("<!--", end)
                or _TAG_NAME.match(source, end + 1)
            ):
                break
            end += 1
        if end == start:
            # A lone '<' that does not open a tag is plain text
            end += 1
        self.pos = end
        return Text(start=start, end=end, data=source[start:end])

    def _parse_comment(self) -> Comment:
        start = self.pos
        close = self.source.find("-->", start + 4)
        if close == -1:
            raise self._error("Comment is never closed", start, start + 4)
        self.pos = close + 3
        return Comment(start=start, end=self.pos, data=self.source[start + 4 : close])

    # -- tags ------------------------------------------------------------

    def _parse_closing_tag(self) -> _Terminator:
        start = self.pos
        match = _TAG_NAME.match(self.source, start + 2)
        if not match:
            raise self._error("Expected a tag name after '</'", start, start + 2)
        close = self.source.find(">", match.end())
        if close == -1 or self.source[match.end() : close].strip():
            raise self._error(f"Malformed closing tag </{match.group(0)}>", start, match.end())
        self.pos = close + 1
        return _Terminator("close", start, self.pos, name=match.group(0))

    def _parse_element(self) -> Element:
        start = self.pos
        match = _TAG_NAME.match(self.source, start + 1)
        assert match is not None
        name = match.group(0)
        self.pos = match.end()

        attributes, self_closing = self._parse_attributes(name, start)
        tag_end = self.pos
        node_cls = InlineComponent if name[0].isupper() else Element

        children: List[Node] = []
        if not self_closing:
            children, term = self._parse_nodes()
            if term.kind == "eof":
                raise self._error(f"<{name}> is never closed", start, tag_end)
            if term.kind != "close":
                raise self._unexpected(term)
            if term.name != name:
                raise self._error(
                    f"Expected </{name}> but found </{term.name}>", term.start, term.end
                )

        return node_cls(
            start=start,
            end=self.pos,
            name=name,
            attributes=attributes,
            children=children,
            tag_end=tag_end,
        )

    def _parse_attributes(self, tag: str, tag_start: int) -> Tuple[List[Attribute], bool]:
        attributes: List[Attribute] = []
        source = self.source
        while True:
            self._skip_whitespace()
            if self.pos >= len(source):
                raise self._error(f"Opening tag <{tag}> is never closed", tag_start, self.pos)
            if source.startswith("/>", self.pos):
                self.pos += 2
                return attributes, True
            if source[self.pos] == ">":
                self.pos += 1
                return attributes, False

            if source[self.pos] == "{":
                attributes.append(self._parse_shorthand_attribute())
                continue

            match = _ATTR_NAME.match(source, self.pos)
            if not match:
                raise self._error(
                    f"Unexpected character {source[self.pos]!r} in <{tag}>", self.pos
                )
            attr_start = self.pos
            name = match.group(0)
            self.pos = match.end()
            self._skip_whitespace()

            value: Optional[Union[Text, MustacheTag]] = None
            if self.pos < len(source) and source[self.pos] == "=":
                self.pos += 1
                self._skip_whitespace()
                value = self._parse_attribute_value(name)

            attributes.append(
                Attribute(start=attr_start, end=self.pos, name=name, value=value)
            )

    def _parse_shorthand_attribute(self) -> Attribute:
        start = self.pos
        payload, payload_start = self._read_braced()
        name = payload.strip()
        if not name.isidentifier():
            raise self._error(
                "Attribute shorthand must be a single name, e.g. {title}", start, self.pos
            )
        tree = ast.parse(name, mode="eval")
        value = MustacheTag(start=start, end=self.pos, source=name, tree=tree)
        return Attribute(start=start, end=self.pos, name=name, value=value, shorthand=True)

    def _parse_attribute_value(self, name: str) -> Union[Text, MustacheTag]:
        source = self.source
        start = self.pos
        if start >= len(source):
            raise self._error(f"Missing value for attribute '{name}'", start)
        quote = source[start]
        if quote in ("'", '"'):
            close = source.find(quote, start + 1)
            if close == -1:
                raise self._error(f"Unterminated value for attribute '{name}'", start)
            self.pos = close + 1
            return Text(start=start, end=self.pos, data=source[start + 1 : close])
        if quote == "{":
            payload, payload_start = self._read_braced()
            return self._mustache(payload, payload_start, start)

        match = re.compile(r"[^\s>]+").match(source, start)
        assert match is not None
        value = match.group(0)
        if value.endswith("/") and source.startswith(">", match.end()):
            value = value[:-1]
        self.pos = start + len(value)
        return Text(start=start, end=self.pos, data=value)

    # -- braces ----------------------------------------------------------

    def _read_braced(self) -> Tuple[str, int]:
        """Read a balanced `{...}` payload starting at self.pos.

        Python string literals inside the payload are skipped so braces in
        strings and f-strings do not unbalance the scan.
        """
        source = self.source
        start = self.pos
        depth = 0
        index = start
        while index < len(source):
            char = source[index]
            if char in ("'", '"'):
                index = self._skip_string(index)
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    self.pos = index + 1
                    return source[start + 1 : index], start + 1
            index += 1
        raise self._error("Unclosed '{'", start)

    def _skip_string(self, index: int) -> int:
        source = self.source
        quote = source[index]
        triple = source.startswith(quote * 3, index)
        delimiter = quote * 3 if triple else quote
        index += len(delimiter)
        while index < len(source):
            if source[index] == "\\":
                index += 2
                continue
            if source.startswith(delimiter, index):
                return index + len(delimiter)
            if not triple and source[index] == "\n":
                break
            index += 1
        raise self._error("Unterminated string literal", index - 1)

    def _parse_brace(self) -> Union[Node, _Terminator]:
        start = self.pos
        source = self.source

        if source.startswith("{/", start):
            close = source.find("}", start)
            if close == -1:
                raise self._error("Unclosed '{'", start)
            keyword = source[start + 2 : close].strip()
            self.pos = close + 1
            if keyword not in ("if", "for"):
                raise self._error(f"Unknown closing block {{/{keyword}}}", start, self.pos)
            return _Terminator("/" + keyword, start, self.pos)

        payload, payload_start = self._read_braced()
        stripped = payload.lstrip()
        keyword_match = _BLOCK_KEYWORD.match(stripped)
        if not keyword_match:
            return self._mustache(payload, payload_start, start)

        keyword = keyword_match.group(1)
        lead = len(payload) - len(stripped)
        rest_start = payload_start + lead + keyword_match.end()
        rest = stripped[keyword_match.end() :]

        if keyword == "if":
            return self._parse_if(rest, rest_start, start)
        if keyword == "for":
            return self._parse_each(rest, rest_start, start)
        if keyword == "render":
            expression = self._parse_expression(rest, rest_start, "$render")
            return RenderTag(start=start, end=self.pos, expression=expression)
        if keyword in ("elif", "else"):
            if keyword == "else" and rest.strip():
                raise self._error("{$else} takes no expression", start, self.pos)
            return _Terminator(
                keyword, start, self.pos, payload=rest, payload_start=rest_start
            )
        raise self._error(f"Unknown block keyword ${keyword}", start, self.pos)

    def _mustache(self, payload: str, payload_start: int, start: int) -> MustacheTag:
        code = payload.strip()
        if not code:
            raise self._error("Empty expression", start, self.pos)
        try:
            tree: Union[ast.Expression, ast.Module] = ast.parse(code, mode="eval")
        except SyntaxError:
            try:
                tree = ast.parse(textwrap.dedent(code), mode="exec")
            except SyntaxError as e:
                raise self._error(f"Python syntax error: {e.msg}", payload_start, self.pos - 1)
        return MustacheTag(start=start, end=self.pos, source=code, tree=tree)

    def _parse_expression(self, text: str, offset: int, context: str) -> ast.expr:
        code = text.strip()
        if not code:
            raise self._error(f"{{{context}}} requires an expression", offset)
        try:
            return ast.parse(code, mode="eval").body
        except SyntaxError as e:
            raise self._error(
                f"Python syntax error in {{{context}}}: {e.msg}", offset, offset + len(text)
            )

    # -- blocks ----------------------------------------------------------

    def _parse_if(self, text: str, offset: int, start: int, elseif: bool = False) -> IfBlock:
        expression = self._parse_expression(text, offset, "$elif" if elseif else "$if")
        children, term = self._parse_nodes()
        block = IfBlock(start=start, end=term.end, expression=expression,
                        children=children, elseif=elseif)

        if term.kind == "elif":
            nested = self._parse_if(term.payload, term.payload_start, term.start, elseif=True)
            block.else_ = Fragment(start=term.start, end=nested.end, children=[nested])
            block.end = nested.end
        elif term.kind == "else":
            else_children, closing = self._parse_nodes()
            if closing.kind != "/if":
                raise self._close_error("if", start, closing)
            block.else_ = Fragment(start=term.start, end=closing.start, children=else_children)
            block.end = closing.end
        elif term.kind != "/if":
            raise self._close_error("if", start, term)
        return block

    def _parse_each(self, text: str, offset: int, start: int) -> EachBlock:
        header = _FOR_HEADER.match(text)
        if not header:
            raise self._error(
                "Malformed {$for} block, expected {$for item in items} "
                "or {$for item, index in items}",
                start,
                self.pos,
            )
        item, index, iterable = header.groups()
        expression = self._parse_expression(
            iterable, offset + header.start(3), "$for"
        )
        children, term = self._parse_nodes()
        block = EachBlock(start=start, end=term.end, expression=expression,
                          context=item, index=index, children=children)

        if term.kind == "else":
            else_children, closing = self._parse_nodes()
            if closing.kind != "/for":
                raise self._close_error("for", start, closing)
            block.else_ = Fragment(start=term.start, end=closing.start, children=else_children)
            block.end = closing.end
        elif term.kind != "/for":
            raise self._close_error("for", start, term)
        return block

    def _close_error(self, keyword: str, start: int, term: _Terminator) -> WireSyntaxError:
        if term.kind == "eof":
            return self._error(f"{{${keyword}}} block is never closed with {{/{keyword}}}", start)
        return self._unexpected(term)

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.source) and self.source[self.pos].isspace():
            self.pos += 1


def parse(content: str, file_path: str = "") -> ParsedWire:
    """Parse `.wire` source text."""
    return WireParser().parse(content, file_path)

"""Dual-dialect template parsing for Vue single-file components.

Two strategies produce a :class:`ParsedComponent`:

* ``ModernTemplateStrategy`` (``Dialect.VUE3``) builds the template tree
  from ``tree-sitter-html`` and normalises attributes into directives.
* ``LegacyTemplateStrategy`` (``Dialect.VUE2``) tokenizes the de-indented
  template with the standard-library HTML tokenizer and keeps the raw
  attribute list, compiling interpolations into render expressions.

``TemplateParser`` tries them in an order chosen from the project's
installed Vue version and reports every failure reason when all fail.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from . import syntax
from .coordinates import base_indent, compute_line_starts, deindent, offset_to_line_col
from .errors import UnparsableComponent
from .sfc import SFCDescriptor, split_sfc
from .template_ast import (
    ASTAttr,
    ASTElement,
    ASTExpression,
    ASTRoot,
    ASTText,
    AttributeNode,
    Dialect,
    DirectiveNode,
    ElementNode,
    InterpolationNode,
    ParsedComponent,
    Prop,
    RootNode,
    Span,
    TextNode,
    build_parent_table,
    parse_for_expression,
)

logger = logging.getLogger(__name__)

_INTERPOLATION = re.compile(r"\{\{([\s\S]*?)\}\}")
_HTML_LANGS = (None, "", "html")
VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})


@dataclass(frozen=True)
class ParseOutcome:
    dialect: Dialect
    component: Optional[ParsedComponent] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.component is not None

    @classmethod
    def success(cls, component: ParsedComponent) -> "ParseOutcome":
        return cls(component.dialect, component)

    @classmethod
    def failure(cls, dialect: Dialect, reason: str) -> "ParseOutcome":
        return cls(dialect, None, reason)


def _script_fields(sfc: SFCDescriptor) -> Tuple[str, str, bool]:
    block = sfc.active_script
    if block is None:
        return "", "js", False
    return block.content, block.lang or "js", block is sfc.script_setup


def _span(line_starts: Sequence[int], start: int, end: int) -> Span:
    sl, sc = offset_to_line_col(line_starts, start)
    el, ec = offset_to_line_col(line_starts, end)
    return Span(sl, sc, el, ec, start, end)


# ===================================================================
# Modern dialect
# ===================================================================

_DIRECTIVE = re.compile(r"^(?:v-([a-z0-9-]+))?(?:(?::|^\.|^@|^#)(\[[^\]]+\]|[^.]+))?(.+)?$", re.IGNORECASE)
_SHORTHANDS = {":": "bind", ".": "bind", "@": "on", "#": "slot"}
_STRUCTURAL = {"element", "script_element", "style_element"}


def normalize_prop(name: str, value: Optional[str], loc: Span) -> Prop:
    """Turn a raw attribute into an AttributeNode or DirectiveNode."""
    if not (name.startswith("v-") or name[:1] in _SHORTHANDS):
        return AttributeNode(name, value, loc)
    match = _DIRECTIVE.match(name)
    if match is None:
        return AttributeNode(name, value, loc)
    dir_name = match.group(1) or _SHORTHANDS.get(name[0], "bind")
    arg = match.group(2)
    if arg and arg.startswith("[") and arg.endswith("]"):
        arg = arg[1:-1]
    modifiers: Tuple[str, ...] = ()
    if match.group(3):
        modifiers = tuple(m for m in match.group(3)[1:].split(".") if m)
    if name.startswith("."):
        modifiers = modifiers + ("prop",)
    for_parse = parse_for_expression(value) if dir_name == "for" else None
    return DirectiveNode(dir_name, name, arg, value, modifiers, loc, for_parse)


_ENTITY = re.compile(r"&(#([xX][0-9a-fA-F]{1,6}|[0-9]{1,5})|[A-Za-z]{1,30});?")


def mask_template(template: str) -> str:
    """Blank out interpolation bodies and stray ampersands.

    The result has the same character length as *template*, so character
    offsets found in the masked text are valid in the original.
    """
    chars = list(template)
    for match in _INTERPOLATION.finditer(template):
        for i in range(match.start(1), match.end(1)):
            if chars[i] != "\n":
                chars[i] = " "
    entities = {m.start() for m in _ENTITY.finditer(template)}
    for i, ch in enumerate(chars):
        if ch == "&" and i not in entities:
            chars[i] = " "
    return "".join(chars)


class _ModernTreeBuilder:
    def __init__(self, template: str):
        self.template = template
        self.line_starts = compute_line_starts(template)
        self.doc = syntax.parse(mask_template(template), "html")

    def _source(self, ts_node: Any) -> str:
        return self.template[self._offset(ts_node.start_byte):self._offset(ts_node.end_byte)]

    def build(self) -> RootNode:
        root_ts = self.doc.root
        children = self._children(root_ts.children, 0, len(self.template))
        return RootNode(children, _span(self.line_starts, 0, len(self.template)))

    def _offset(self, byte_offset: int) -> int:
        return self.doc.char_offset(byte_offset)

    def _children(self, ts_children: Sequence[Any], start: int, end: int) -> List[Any]:
        nodes: List[Any] = []
        cursor = start
        for child in self._structural(ts_children):
            child_start = self._offset(child.start_byte)
            nodes.extend(self._text_nodes(cursor, child_start))
            if child.type != "comment":
                nodes.append(self._element(child))
            cursor = self._offset(child.end_byte)
        nodes.extend(self._text_nodes(cursor, end))
        return nodes

    def _structural(self, ts_children: Sequence[Any]) -> List[Any]:
        found = []
        for child in ts_children:
            if child.type in _STRUCTURAL or child.type == "comment":
                found.append(child)
            elif child.type == "ERROR":
                found.extend(self._structural(child.children))
        return found

    def _text_nodes(self, start: int, end: int) -> List[Any]:
        nodes: List[Any] = []
        if end <= start:
            return nodes
        chunk = self.template[start:end]
        last = 0
        for match in _INTERPOLATION.finditer(chunk):
            if chunk[last:match.start()].strip():
                nodes.append(TextNode(chunk[last:match.start()], _span(self.line_starts, start + last, start + match.start())))
            nodes.append(InterpolationNode(
                match.group(1).strip(),
                _span(self.line_starts, start + match.start(), start + match.end()),
            ))
            last = match.end()
        if chunk[last:].strip():
            nodes.append(TextNode(chunk[last:], _span(self.line_starts, start + last, end)))
        return nodes

    def _element(self, ts_node: Any) -> ElementNode:
        tag_node = next((c for c in ts_node.children if c.type in ("start_tag", "self_closing_tag")), None)
        end_tag = next((c for c in ts_node.children if c.type == "end_tag"), None)
        start = self._offset(ts_node.start_byte)
        end = self._offset(ts_node.end_byte)
        if tag_node is None:
            return ElementNode("", [], [], _span(self.line_starts, start, end), end)

        name_node = next((c for c in tag_node.children if c.type == "tag_name"), None)
        tag = self._source(name_node) if name_node is not None else ""
        props = [self._prop(a) for a in tag_node.children if a.type == "attribute"]
        open_end = self._offset(tag_node.end_byte)
        self_closing = tag_node.type == "self_closing_tag"

        children: List[Any] = []
        if not self_closing and ts_node.type == "element":
            inner = [c for c in ts_node.children if c.type not in ("start_tag", "end_tag")]
            inner_end = self._offset(end_tag.start_byte) if end_tag is not None else end
            children = self._children(inner, open_end, inner_end)
        return ElementNode(tag, props, children, _span(self.line_starts, start, end), open_end, self_closing)

    def _prop(self, ts_attr: Any) -> Prop:
        name = ""
        value: Optional[str] = None
        for child in ts_attr.children:
            if child.type == "attribute_name":
                name = self._source(child)
            elif child.type == "attribute_value":
                value = self._source(child)
            elif child.type == "quoted_attribute_value":
                inner = next((c for c in child.children if c.type == "attribute_value"), None)
                value = self._source(inner) if inner is not None else ""
        loc = _span(self.line_starts, self._offset(ts_attr.start_byte), self._offset(ts_attr.end_byte))
        return normalize_prop(name, value, loc)


class ModernTemplateStrategy:
    dialect = Dialect.VUE3

    def parse(self, file_content: str, filename: str) -> ParseOutcome:
        sfc = split_sfc(file_content)
        if sfc.template is None:
            return ParseOutcome.failure(self.dialect, "no <template> block")
        if sfc.template.lang not in _HTML_LANGS:
            return ParseOutcome.failure(self.dialect, f"unsupported template language {sfc.template.lang!r}")
        template = sfc.template.content
        try:
            builder = _ModernTreeBuilder(template)
        except syntax.GrammarUnavailable as exc:
            return ParseOutcome.failure(self.dialect, str(exc))
        if builder.doc.root.has_error:
            return ParseOutcome.failure(self.dialect, "template has syntax errors")

        root = builder.build()
        start_line, start_col = offset_to_line_col(compute_line_starts(file_content), sfc.template.start)
        script, lang, setup = _script_fields(sfc)
        return ParseOutcome.success(ParsedComponent(
            dialect=self.dialect,
            filename=filename,
            root=root,
            file_text=file_content,
            template_source=template,
            template_start_offset=sfc.template.start,
            template_start_line=start_line,
            template_start_column=start_col,
            template_line_starts=tuple(builder.line_starts),
            base_indent=0,
            script_text=script,
            script_lang=lang,
            script_setup=setup,
            parents=build_parent_table(root),
        ))


# ===================================================================
# Legacy dialect
# ===================================================================

_TAG_NAME = re.compile(r"<\s*([^\s/>]+)")
_ATTRIBUTE = re.compile(r"""([^\s"'<>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+)))?""")


def parse_filters(expression: str) -> str:
    """Rewrite ``value | filter(arg)`` into ``_f("filter")(value,arg)``."""
    segments: List[str] = []
    depth = 0
    quote: Optional[str] = None
    last = 0
    for i, ch in enumerate(expression):
        if quote:
            if ch == quote and expression[i - 1] != "\\":
                quote = None
            continue
        if ch in "'\"`":
            quote = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif (
            ch == "|" and depth == 0
            and expression[i + 1:i + 2] != "|"
            and expression[i - 1:i] != "|"
        ):
            segments.append(expression[last:i])
            last = i + 1
    segments.append(expression[last:])
    result = segments[0].strip()
    for segment in segments[1:]:
        name = segment.strip()
        paren = name.find("(")
        if paren < 0:
            result = f'_f("{name}")({result})'
        else:
            args = name[paren + 1:].rstrip()
            args = args[:-1] if args.endswith(")") else args
            result = f'_f("{name[:paren].strip()}")({result}{"," + args if args.strip() else ""})'
    return result


def compile_text(text: str) -> Tuple[str, List[Any]]:
    tokens: List[Any] = []
    parts: List[str] = []
    last = 0
    for match in _INTERPOLATION.finditer(text):
        if match.start() > last:
            static = text[last:match.start()]
            parts.append(json.dumps(static, ensure_ascii=False))
            tokens.append(static)
        expression = parse_filters(match.group(1).strip())
        parts.append(f"_s({expression})")
        tokens.append({"@binding": expression})
        last = match.end()
    if last < len(text):
        parts.append(json.dumps(text[last:], ensure_ascii=False))
        tokens.append(text[last:])
    return "+".join(parts), tokens


class _LegacyTreeBuilder(HTMLParser):
    def __init__(self, template: str):
        super().__init__(convert_charrefs=False)
        self.template = template
        self.line_starts = compute_line_starts(template)
        self.root = ASTRoot([], 0, len(template))
        self._stack: List[ASTElement] = []
        self._cursor = 0

    def build(self) -> ASTRoot:
        self.feed(self.template)
        self.close()
        self._flush(len(self.template))
        for element in self._stack:
            element.end = len(self.template)
        self._stack.clear()
        return self.root

    def _offset(self) -> int:
        line, column = self.getpos()
        return self.line_starts[line - 1] + column

    def _parent(self) -> Any:
        return self._stack[-1] if self._stack else self.root

    def _flush(self, upto: int) -> None:
        if upto <= self._cursor:
            return
        raw = self.template[self._cursor:upto]
        stripped = raw.strip()
        if stripped:
            start = self._cursor + (len(raw) - len(raw.lstrip()))
            end = start + len(stripped)
            if _INTERPOLATION.search(stripped):
                expression, tokens = compile_text(stripped)
                node: Any = ASTExpression(expression, stripped, tokens, start, end)
            else:
                node = ASTText(stripped, start, end)
            self._parent().children.append(node)
        self._cursor = upto

    def _open_element(self, self_closing: bool) -> None:
        start = self._offset()
        raw = self.get_starttag_text() or ""
        self._flush(start)
        name_match = _TAG_NAME.match(raw)
        tag = name_match.group(1) if name_match else ""
        body_start = name_match.end() if name_match else 1
        body = raw[body_start:].rstrip(">").rstrip("/")

        element = ASTElement(tag, [], [], start, start + len(raw), start + len(raw), self_closing)
        for match in _ATTRIBUTE.finditer(body):
            name = match.group(1)
            value = next((g for g in match.groups()[1:] if g is not None), "")
            attr = ASTAttr(name, value, start + body_start + match.start(), start + body_start + match.end())
            self._process_attr(element, attr)

        self._parent().children.append(element)
        self._cursor = start + len(raw)
        if not self_closing and tag.lower() not in VOID_ELEMENTS:
            self._stack.append(element)

    @staticmethod
    def _process_attr(element: ASTElement, attr: ASTAttr) -> None:
        # Structural directives move onto dedicated fields, like the legacy compiler does
        if attr.name == "v-for":
            loop = parse_for_expression(attr.value)
            if loop is not None:
                element.for_source = loop.source
                element.alias = loop.value
                element.iterator1 = loop.key
                element.iterator2 = loop.index
            return
        if attr.name == "v-if":
            element.if_exp = attr.value
            return
        if attr.name == "v-else-if":
            element.elseif_exp = attr.value
            return
        if attr.name == "v-else":
            element.is_else = True
            return
        element.attrs_list.append(attr)

    def handle_starttag(self, tag, attrs):
        self._open_element(self_closing=False)

    def handle_startendtag(self, tag, attrs):
        self._open_element(self_closing=True)

    def handle_endtag(self, tag):
        start = self._offset()
        self._flush(start)
        close = self.template.find(">", start)
        end = close + 1 if close >= 0 else len(self.template)
        self._cursor = end
        for depth in range(len(self._stack) - 1, -1, -1):
            if self._stack[depth].tag.lower() == tag:
                for element in self._stack[depth + 1:]:
                    element.end = start
                self._stack[depth].end = end
                del self._stack[depth:]
                return

    def handle_comment(self, data):
        start = self._offset()
        self._flush(start)
        self._cursor = start + len(data) + 7


class LegacyTemplateStrategy:
    dialect = Dialect.VUE2

    def parse(self, file_content: str, filename: str) -> ParseOutcome:
        sfc = split_sfc(file_content)
        if sfc.template is None:
            return ParseOutcome.failure(self.dialect, "no <template> block")
        if sfc.template.lang not in _HTML_LANGS:
            return ParseOutcome.failure(self.dialect, f"unsupported template language {sfc.template.lang!r}")

        raw = sfc.template.content
        template = deindent(raw)
        builder = _LegacyTreeBuilder(template)
        root = builder.build()
        if not any(isinstance(child, ASTElement) for child in root.children):
            return ParseOutcome.failure(self.dialect, "template has no root element")

        start_line, start_col = offset_to_line_col(compute_line_starts(file_content), sfc.template.start)
        script, lang, setup = _script_fields(sfc)
        return ParseOutcome.success(ParsedComponent(
            dialect=self.dialect,
            filename=filename,
            root=root,
            file_text=file_content,
            template_source=template,
            template_start_offset=sfc.template.start,
            template_start_line=start_line,
            template_start_column=start_col,
            template_line_starts=tuple(builder.line_starts),
            base_indent=base_indent(raw),
            script_text=script,
            script_lang=lang,
            script_setup=setup,
            parents=build_parent_table(root),
        ))


# ===================================================================
# Strategy selection
# ===================================================================

def detect_vue_major(project_root: Path) -> Optional[int]:
    """Major version of the ``vue`` package installed in the project."""
    package_json = project_root / "node_modules" / "vue" / "package.json"
    try:
        version = json.loads(package_json.read_text(encoding="utf-8")).get("version", "")
    except (OSError, ValueError):
        return None
    match = re.match(r"\D*(\d+)", str(version))
    return int(match.group(1)) if match else None


class TemplateParser:
    """Parses components with an ordered list of dialect strategies."""

    def __init__(self, project_root: Optional[Path] = None, vue_version: Optional[int] = None):
        self.project_root = project_root
        major = vue_version
        if major is None and project_root is not None:
            major = detect_vue_major(project_root)
        if major == 2:
            self.strategies = [LegacyTemplateStrategy(), ModernTemplateStrategy()]
        else:
            self.strategies = [ModernTemplateStrategy(), LegacyTemplateStrategy()]

    def parse(self, file_content: str, filename: str = "<component>") -> ParsedComponent:
        reasons: List[str] = []
        for strategy in self.strategies:
            outcome = strategy.parse(file_content, filename)
            if outcome.ok:
                logger.debug("Parsed %s with %s dialect", filename, outcome.dialect.value)
                return outcome.component
            logger.debug("%s dialect rejected %s: %s", outcome.dialect.value, filename, outcome.reason)
            reasons.append(f"{outcome.dialect.value}: {outcome.reason}")
        raise UnparsableComponent(filename, reasons)

"""Template tree node types for both Vue template dialects."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union


class Dialect(str, Enum):
    """Which template tree shape a :class:`ParsedComponent` carries.

    ``VUE3`` trees expose ``loc`` spans relative to the raw template
    content and normalised directive props.  ``VUE2`` trees expose
    character offsets into the de-indented template content and raw
    attribute lists.
    """

    VUE3 = "vue3"
    VUE2 = "vue2"


@dataclass(frozen=True)
class Span:
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    start_offset: int
    end_offset: int


@dataclass(frozen=True)
class ForParseResult:
    source: str
    value: Optional[str] = None
    key: Optional[str] = None
    index: Optional[str] = None

    def aliases(self) -> Tuple[str, ...]:
        return tuple(a for a in (self.value, self.key, self.index) if a)


# ===================================================================
# Modern dialect
# ===================================================================

@dataclass(frozen=True)
class AttributeNode:
    name: str
    value: Optional[str]
    loc: Span


@dataclass(frozen=True)
class DirectiveNode:
    name: str
    raw_name: str
    arg: Optional[str]
    exp: Optional[str]
    modifiers: Tuple[str, ...]
    loc: Span
    for_parse: Optional[ForParseResult] = None


Prop = Union[AttributeNode, DirectiveNode]


@dataclass(eq=False)
class TextNode:
    content: str
    loc: Span


@dataclass(eq=False)
class InterpolationNode:
    expression: str
    loc: Span


@dataclass(eq=False)
class ElementNode:
    tag: str
    props: List[Prop]
    children: List[Any]
    loc: Span
    open_end: int
    self_closing: bool = False


@dataclass(eq=False)
class RootNode:
    children: List[Any]
    loc: Span


# ===================================================================
# Legacy dialect
# ===================================================================

@dataclass(frozen=True)
class ASTAttr:
    name: str
    value: str
    start: int
    end: int


@dataclass(eq=False)
class ASTText:
    text: str
    start: int
    end: int


@dataclass(eq=False)
class ASTExpression:
    """Interpolated text compiled to render form, e.g. ``"Hi "+_s(name)``."""

    expression: str
    text: str
    tokens: List[Any]
    start: int
    end: int


@dataclass(eq=False)
class ASTElement:
    tag: str
    attrs_list: List[ASTAttr]
    children: List[Any]
    start: int
    end: int
    open_end: int
    self_closing: bool = False
    for_source: Optional[str] = None
    alias: Optional[str] = None
    iterator1: Optional[str] = None
    iterator2: Optional[str] = None
    if_exp: Optional[str] = None
    elseif_exp: Optional[str] = None
    is_else: bool = False

    @property
    def for_parse(self) -> Optional[ForParseResult]:
        if self.for_source is None:
            return None
        return ForParseResult(self.for_source, self.alias, self.iterator1, self.iterator2)


@dataclass(eq=False)
class ASTRoot:
    children: List[Any]
    start: int
    end: int


ELEMENT_TYPES = (ElementNode, ASTElement)


def is_element(node: Any) -> bool:
    return isinstance(node, ELEMENT_TYPES)


def children_of(node: Any) -> Sequence[Any]:
    return getattr(node, "children", None) or ()


def iter_elements(root: Any) -> Iterator[Any]:
    """Yield element nodes in document order."""
    stack = list(reversed(children_of(root)))
    while stack:
        node = stack.pop()
        if is_element(node):
            yield node
        stack.extend(reversed(children_of(node)))


def build_parent_table(root: Any) -> Dict[int, Any]:
    parents: Dict[int, Any] = {}
    stack = [root]
    while stack:
        node = stack.pop()
        for child in children_of(node):
            parents[id(child)] = node
            stack.append(child)
    return parents


# ---------------------------------------------------------------------------
# v-for expressions
# ---------------------------------------------------------------------------

_FOR_ALIAS = re.compile(r"([\s\S]*?)\s+(?:in|of)\s+([\s\S]*)")
_FOR_ITERATOR = re.compile(r",([^,\}\]]*)(?:,([^,\}\]]*))?$")
_STRIP_PARENS = re.compile(r"^\(|\)$")


def parse_for_expression(expression: Optional[str]) -> Optional[ForParseResult]:
    """Split ``(item, key, index) in source`` into its parts."""
    if not expression:
        return None
    match = _FOR_ALIAS.match(expression.strip())
    if not match:
        return None
    source = match.group(2).strip()
    alias = _STRIP_PARENS.sub("", match.group(1).strip()).strip()
    key = index = None
    iterator = _FOR_ITERATOR.search(alias)
    if iterator:
        key = iterator.group(1).strip() or None
        if iterator.group(2):
            index = iterator.group(2).strip() or None
        alias = alias[: iterator.start()].strip()
    return ForParseResult(source=source, value=alias or None, key=key, index=index)


# ===================================================================
# Parse result
# ===================================================================

@dataclass(frozen=True)
class ParsedComponent:
    """A component parsed by one dialect.  Immutable after construction."""

    dialect: Dialect
    filename: str
    root: Any
    file_text: str
    template_source: str
    template_start_offset: int
    template_start_line: int
    template_start_column: int
    template_line_starts: Tuple[int, ...]
    base_indent: int = 0
    script_text: str = ""
    script_lang: str = "js"
    script_setup: bool = False
    parents: Dict[int, Any] = field(default_factory=dict, repr=False, compare=False)

    def parent_of(self, node: Any) -> Optional[Any]:
        return self.parents.get(id(node))

    def ancestors(self, node: Any) -> Iterator[Any]:
        """Yield *node* and then each enclosing node up to the root."""
        current = node
        while current is not None:
            yield current
            current = self.parent_of(current)

    def offsets(self, node: Any) -> Tuple[int, int]:
        """Start/end character offsets of *node* in ``template_source``."""
        loc = getattr(node, "loc", None)
        if loc is not None:
            return loc.start_offset, loc.end_offset
        return node.start, node.end

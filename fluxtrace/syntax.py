"""Tree-sitter grammar loading and small syntax-tree helpers.

Grammars come from the per-language ``tree-sitter-*`` packages.  Parsers
are not shared between threads, so each thread gets its own instance.
"""

from __future__ import annotations

import importlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Map language name -> (module, factory) providing the tree-sitter Language
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "html": ("tree_sitter_html", "language"),
}

_languages: Dict[str, Any] = {}
_languages_lock = threading.Lock()
_local = threading.local()


class GrammarUnavailable(RuntimeError):
    """The grammar package for a language is not installed."""


def load_language(lang: str) -> Any:
    with _languages_lock:
        if lang in _languages:
            return _languages[lang]
        mod_name, factory = _GRAMMAR_MODULES[lang]
        try:
            from tree_sitter import Language  # type: ignore[import-untyped]

            mod = importlib.import_module(mod_name)
        except ImportError as exc:
            logger.warning(
                "Grammar package '%s' not installed for language '%s'. Install with: pip install %s",
                mod_name, lang, mod_name.replace("_", "-"),
            )
            raise GrammarUnavailable(f"tree-sitter grammar for {lang} is not installed") from exc
        language = Language(getattr(mod, factory)())
        _languages[lang] = language
        logger.debug("Loaded tree-sitter grammar for %s", lang)
        return language


def get_parser(lang: str) -> Any:
    parsers = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = _local.parsers = {}
    if lang not in parsers:
        from tree_sitter import Parser as TSParser  # type: ignore[import-untyped]

        parsers[lang] = TSParser(load_language(lang))
    return parsers[lang]


def script_grammar(lang: Optional[str]) -> str:
    """Grammar name for a ``<script lang="...">`` value."""
    lang = (lang or "js").lower()
    if lang == "tsx":
        return "tsx"
    if lang in ("ts", "typescript"):
        return "typescript"
    return "javascript"


@dataclass
class SourceTree:
    """A parsed source string plus byte <-> character bookkeeping."""

    text: str
    data: bytes
    tree: Any
    _byte_to_char: Optional[List[int]] = field(default=None, repr=False)

    @property
    def root(self) -> Any:
        return self.tree.root_node

    def node_text(self, node: Any) -> str:
        return self.data[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def char_offset(self, byte_offset: int) -> int:
        if len(self.data) == len(self.text):
            return byte_offset
        if self._byte_to_char is None:
            table: List[int] = []
            for index, ch in enumerate(self.text):
                table.extend([index] * len(ch.encode("utf-8")))
            table.append(len(self.text))
            self._byte_to_char = table
        return self._byte_to_char[min(byte_offset, len(self._byte_to_char) - 1)]

    def line_of(self, node: Any) -> int:
        return node.start_point[0] + 1


def parse(text: str, lang: str) -> SourceTree:
    data = text.encode("utf-8")
    return SourceTree(text=text, data=data, tree=get_parser(lang).parse(data))


def walk(node: Any) -> Iterator[Any]:
    """Pre-order traversal over every node below (and including) *node*."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def string_value(tree: SourceTree, node: Any) -> Optional[str]:
    """Value of a string literal node, or None for anything else."""
    if node is None or node.type not in ("string", "template_string"):
        return None
    if node.type == "template_string" and any(c.type == "template_substitution" for c in node.children):
        return None
    return tree.node_text(node)[1:-1]


def property_key(tree: SourceTree, node: Any) -> Optional[str]:
    """Name of an object member (pair, method or shorthand property)."""
    if node.type in ("shorthand_property_identifier", "shorthand_property_identifier_pattern"):
        return tree.node_text(node)
    key = node.child_by_field_name("key") or node.child_by_field_name("name")
    if key is None:
        return None
    if key.type in ("property_identifier", "identifier", "number", "private_property_identifier"):
        return tree.node_text(key)
    if key.type == "string":
        return string_value(tree, key)
    if key.type == "computed_property_name":
        inner = key.named_children[0] if key.named_children else None
        if inner is not None and inner.type == "string":
            return string_value(tree, inner)
        return tree.node_text(key)[1:-1].strip()
    return None


def _same(a: Any, b: Any) -> bool:
    return a is not None and b is not None and a.start_byte == b.start_byte and a.end_byte == b.end_byte and a.type == b.type


_NAME_FIELD_PARENTS = {
    "variable_declarator",
    "function_declaration",
    "function_expression",
    "function",
    "generator_function_declaration",
    "generator_function",
    "class_declaration",
    "class",
    "interface_declaration",
    "type_alias_declaration",
    "enum_declaration",
}
_PATTERN_PARENTS = {"array_pattern", "rest_pattern", "object_pattern", "formal_parameters"}
_IMPORT_PARENTS = {"import_specifier", "import_clause", "namespace_import", "export_specifier"}


def is_binding_identifier(node: Any) -> bool:
    """True when the identifier declares a name instead of referencing one."""
    parent = node.parent
    if parent is None:
        return False
    ptype = parent.type
    if ptype in _NAME_FIELD_PARENTS:
        return _same(parent.child_by_field_name("name"), node)
    if ptype in _PATTERN_PARENTS or ptype in _IMPORT_PARENTS:
        return True
    if ptype in ("required_parameter", "optional_parameter"):
        return _same(parent.child_by_field_name("pattern"), node)
    if ptype == "arrow_function":
        return _same(parent.child_by_field_name("parameter"), node)
    if ptype == "catch_clause":
        return _same(parent.child_by_field_name("parameter"), node)
    if ptype == "pair_pattern":
        return _same(parent.child_by_field_name("value"), node)
    if ptype == "assignment_pattern":
        return _same(parent.child_by_field_name("left"), node)
    if ptype in ("labeled_statement", "break_statement", "continue_statement"):
        return True
    return False

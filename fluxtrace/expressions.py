"""Identifier extraction from template expressions."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from . import syntax

logger = logging.getLogger(__name__)

# Helpers emitted by the legacy template compiler (``_s(x)``, ``_f("f")(x)``, ...)
VUE_RENDER_HELPERS = frozenset({
    "_c", "_o", "_n", "_s", "_l", "_t", "_q", "_i", "_m",
    "_f", "_k", "_b", "_v", "_e", "_u", "_g", "_d", "_p",
})

BUILT_IN_IDENTIFIERS = frozenset({
    "String", "Number", "Boolean", "Array", "Object", "Date", "Math", "RegExp",
    "Function", "Symbol", "Promise", "Set", "Map", "console", "window", "document",
    "JSON", "undefined", "null", "true", "false", "this", "if", "else", "for", "in",
    "of", "while", "return", "$event", "NaN", "Infinity", "parseInt", "parseFloat",
})

_JS_KEYWORDS = frozenset({
    "new", "typeof", "instanceof", "void", "delete", "var", "let", "const",
    "function", "async", "await", "yield", "do", "switch", "case", "break",
    "continue", "try", "catch", "finally", "throw", "class", "extends", "super",
})

_REFERENCE_TYPES = ("identifier", "shorthand_property_identifier")
_STRING_LITERAL = re.compile(r"""'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*"|`(?:\\.|[^`\\])*`""")
_IDENTIFIER = re.compile(r"(?<![\w$.])([A-Za-z_$][\w$]*)")


def is_ignored_name(name: str) -> bool:
    return name in VUE_RENDER_HELPERS or name in BUILT_IN_IDENTIFIERS


def _dedupe(names: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        if name and name not in seen and not is_ignored_name(name):
            seen.add(name)
            result.append(name)
    return result


def _from_tree(expression: str) -> Optional[List[str]]:
    for candidate in (f"({expression});", expression):
        tree = syntax.parse(candidate, "javascript")
        if tree.root.has_error:
            continue
        return [
            tree.node_text(node)
            for node in syntax.walk(tree.root)
            if node.type in _REFERENCE_TYPES and not syntax.is_binding_identifier(node)
        ]
    return None


def _from_pattern(expression: str) -> List[str]:
    stripped = _STRING_LITERAL.sub(" ", expression)
    return [m.group(1) for m in _IDENTIFIER.finditer(stripped) if m.group(1) not in _JS_KEYWORDS]


def extract_identifiers(expression: Optional[str]) -> List[str]:
    """Referenced identifiers of a template expression, in source order.

    Member properties, object keys, parameters, render helpers and
    language built-ins are left out.  Expressions that do not parse fall
    back to a plain token scan.
    """
    expression = (expression or "").strip()
    if not expression:
        return []
    names = _from_tree(expression)
    if names is None:
        logger.debug("Falling back to pattern scan for expression %r", expression)
        names = _from_pattern(expression)
    return _dedupe(names)

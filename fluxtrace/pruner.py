"""Reduce a component script to the statements a set of names depends on."""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Set, Tuple

from . import syntax
from .expressions import BUILT_IN_IDENTIFIERS

logger = logging.getLogger(__name__)

# Component option groups that never carry data flow
COMPONENT_OPTION_BLACKLIST = frozenset({"components", "directives", "filters", "mixins", "i18n"})

FRAMEWORK_MACROS = frozenset({
    "ref", "reactive", "computed", "watch", "onMounted", "onUnmounted",
    "defineProps", "withDefaults", "defineEmits", "defineOptions",
    "console", "Math", "window", "Object", "Array",
})

# Generic callback names; following them only drags in noise
SCRIPT_VARIABLE_BLACKLIST = frozenset({
    "res", "data", "item", "index", "e", "event", "err", "error", "require",
})

_TYPE_DECLARATIONS = {"interface_declaration", "type_alias_declaration"}
_VARIABLE_DECLARATIONS = {"lexical_declaration", "variable_declaration"}
_NAMED_DECLARATIONS = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "enum_declaration",
}
_REFERENCE_TYPES = ("identifier", "shorthand_property_identifier", "type_identifier")


def word_pattern(name: str) -> "re.Pattern[str]":
    return re.compile(r"(?<![\w$])" + re.escape(name) + r"(?![\w$])")


@dataclass
class _Statement:
    index: int
    node: Any
    declared: Set[str] = field(default_factory=set)
    is_type: bool = False
    is_component: bool = False
    excised: List[Tuple[int, int]] = field(default_factory=list)
    calls: List[str] = field(default_factory=list)
    text: str = ""


class ScriptPruner:
    """Breadth-first closure over top-level statements of one script."""

    def __init__(self, script_text: str, lang: Optional[str] = "js"):
        self.script_text = script_text
        self.tree = syntax.parse(script_text, syntax.script_grammar(lang))
        self.statements: List[_Statement] = []
        for node in self.tree.root.named_children:
            if node.type == "comment":
                continue
            self.statements.append(self._describe(len(self.statements), node))

    # ------------------------------------------------------------------
    # Statement analysis
    # ------------------------------------------------------------------

    def _describe(self, index: int, node: Any) -> _Statement:
        stmt = _Statement(index=index, node=node)
        inner = node
        if node.type == "export_statement":
            declaration = node.child_by_field_name("declaration")
            value = node.child_by_field_name("value")
            if declaration is not None:
                inner = declaration
            elif value is not None:
                stmt.is_component = True
                self._excise_options(stmt, value)
                inner = None

        if inner is not None:
            if inner.type in _TYPE_DECLARATIONS:
                stmt.is_type = True
            stmt.declared.update(self._declared_names(inner))
            if inner.type == "expression_statement":
                self._detect_module_exports(stmt, inner)

        stmt.calls = [
            self.tree.node_text(n)
            for n in syntax.walk(node)
            if n.type == "call_expression" and not self._is_excised(stmt, n)
        ]
        stmt.text = self._render(stmt)
        return stmt

    def _declared_names(self, node: Any) -> Set[str]:
        names: Set[str] = set()
        if node.type in _VARIABLE_DECLARATIONS:
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                target = declarator.child_by_field_name("name")
                if target is None:
                    continue
                if target.type == "identifier":
                    names.add(self.tree.node_text(target))
                else:
                    names.update(
                        self.tree.node_text(n)
                        for n in syntax.walk(target)
                        if n.type in ("identifier", "shorthand_property_identifier_pattern")
                        and (n.type != "identifier" or syntax.is_binding_identifier(n))
                    )
        elif node.type in _NAMED_DECLARATIONS or node.type in _TYPE_DECLARATIONS:
            name = node.child_by_field_name("name")
            if name is not None:
                names.add(self.tree.node_text(name))
        elif node.type == "import_statement":
            for n in syntax.walk(node):
                if n.type == "identifier" and n.parent is not None:
                    if n.parent.type == "import_specifier":
                        alias = n.parent.child_by_field_name("alias")
                        if alias is not None and alias.start_byte != n.start_byte:
                            continue
                        names.add(self.tree.node_text(n))
                    elif n.parent.type in ("import_clause", "namespace_import"):
                        names.add(self.tree.node_text(n))
        return names

    def _detect_module_exports(self, stmt: _Statement, node: Any) -> None:
        expr = node.named_children[0] if node.named_children else None
        if expr is None or expr.type != "assignment_expression":
            return
        left = expr.child_by_field_name("left")
        if left is not None and self.tree.node_text(left).replace(" ", "") == "module.exports":
            stmt.is_component = True
            self._excise_options(stmt, expr.child_by_field_name("right"))

    def _options_object(self, value: Any) -> Optional[Any]:
        if value is None:
            return None
        if value.type == "object":
            return value
        if value.type == "call_expression":
            args = value.child_by_field_name("arguments")
            if args is not None:
                return next((a for a in args.named_children if a.type == "object"), None)
        if value.type == "parenthesized_expression" and value.named_children:
            return self._options_object(value.named_children[0])
        return None

    def _excise_options(self, stmt: _Statement, value: Any) -> None:
        options = self._options_object(value)
        if options is None:
            return
        members = list(options.children)
        for i, member in enumerate(members):
            if member.type not in ("pair", "method_definition", "shorthand_property_identifier"):
                continue
            if syntax.property_key(self.tree, member) not in COMPONENT_OPTION_BLACKLIST:
                continue
            end = member.end_byte
            if i + 1 < len(members) and members[i + 1].type == ",":
                end = members[i + 1].end_byte
            stmt.excised.append((member.start_byte, end))

    @staticmethod
    def _is_excised(stmt: _Statement, node: Any) -> bool:
        return any(start <= node.start_byte and node.end_byte <= end for start, end in stmt.excised)

    def _render(self, stmt: _Statement) -> str:
        start, end = stmt.node.start_byte, stmt.node.end_byte
        pieces = []
        cursor = start
        for cut_start, cut_end in sorted(stmt.excised):
            pieces.append(self.tree.data[cursor:cut_start])
            cursor = cut_end
        pieces.append(self.tree.data[cursor:end])
        text = b"".join(pieces).decode("utf-8", errors="replace")
        return re.sub(r"\n[ \t]*\n(?:[ \t]*\n)+", "\n\n", text)

    def _references(self, stmt: _Statement) -> List[str]:
        names = []
        for node in syntax.walk(stmt.node):
            if node.type not in _REFERENCE_TYPES or self._is_excised(stmt, node):
                continue
            if node.type != "shorthand_property_identifier" and syntax.is_binding_identifier(node):
                continue
            names.append(self.tree.node_text(node))
        return names

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    def _matches(self, stmt: _Statement, name: str, pattern: "re.Pattern[str]") -> bool:
        if name in stmt.declared:
            return True
        if (stmt.is_type or stmt.is_component) and pattern.search(stmt.text):
            return True
        return any(pattern.search(call) for call in stmt.calls)

    def prune(self, seeds: Iterable[str]) -> str:
        kept: Set[int] = set()
        seen: Set[str] = set()
        frontier: deque = deque()
        for seed in seeds:
            if seed and seed not in seen:
                seen.add(seed)
                frontier.append(seed)

        while frontier:
            name = frontier.popleft()
            pattern = word_pattern(name)
            for stmt in self.statements:
                if stmt.index in kept or not self._matches(stmt, name, pattern):
                    continue
                kept.add(stmt.index)
                for ref in self._references(stmt):
                    if ref in seen or _excluded(ref):
                        continue
                    seen.add(ref)
                    frontier.append(ref)

        logger.debug("Pruned script to %d of %d statements", len(kept), len(self.statements))
        return "\n\n".join(s.text for s in self.statements if s.index in kept)


def _excluded(name: str) -> bool:
    return name in FRAMEWORK_MACROS or name in BUILT_IN_IDENTIFIERS or name in SCRIPT_VARIABLE_BLACKLIST


def prune(script_text: str, seeds: Iterable[str], lang: Optional[str] = "js") -> str:
    """Kept top-level statements for *seeds*, in original order."""
    seeds = list(seeds)
    if not script_text.strip() or not seeds:
        return ""
    return ScriptPruner(script_text, lang).prune(seeds)

"""Follow ``mapGetters`` / ``mapState`` bindings into Vuex store modules."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional

from . import syntax
from .config import SOURCE_EXTENSIONS
from .coordinates import compute_line_starts, offset_to_line_col
from .models import MutationInfo, MutationTrigger, StoreMapping
from .paths import to_relative

logger = logging.getLogger(__name__)

STORE_HELPERS = {"mapGetters": "getter", "mapState": "state"}
MAX_TRIGGERS = 20
_SKIP_DIRS = {"node_modules", ".git", "dist", "build"}
_STATE_REFERENCE = re.compile(r"\bstate\.([A-Za-z_$][\w$]*)")


# ===================================================================
# Component side
# ===================================================================

def _mapped_state_key(tree: syntax.SourceTree, fn: Any) -> Optional[str]:
    """``state => state.user.name`` style mapper: the first state property."""
    for node in syntax.walk(fn):
        if node.type == "member_expression":
            obj = node.child_by_field_name("object")
            prop = node.child_by_field_name("property")
            if obj is not None and prop is not None and tree.node_text(obj) == "state":
                return tree.node_text(prop)
    return None


def find_store_mapping(script: str, names: Iterable[str], lang: Optional[str] = "js") -> Optional[StoreMapping]:
    """The store helper mapping one of *names* into the component, if any."""
    wanted = set(names)
    if not script.strip() or not wanted:
        return None
    tree = syntax.parse(script, syntax.script_grammar(lang))
    found: Optional[StoreMapping] = None
    for node in syntax.walk(tree.root):
        if node.type != "call_expression":
            continue
        fn = node.child_by_field_name("function")
        helper = tree.node_text(fn) if fn is not None else ""
        if helper not in STORE_HELPERS:
            continue
        args = node.child_by_field_name("arguments")
        params = list(args.named_children) if args is not None else []
        namespace = None
        if len(params) >= 2:
            namespace = syntax.string_value(tree, params[0])
            params = params[1:]
        if not params:
            continue
        mapping = params[0]
        kind = STORE_HELPERS[helper]

        if mapping.type == "array":
            for element in mapping.named_children:
                key = syntax.string_value(tree, element)
                if key and key in wanted:
                    found = StoreMapping(helper, kind, namespace, key, key)
        elif mapping.type == "object":
            for member in mapping.named_children:
                local = syntax.property_key(tree, member)
                if not local or local not in wanted:
                    continue
                value = member.child_by_field_name("value") if member.type == "pair" else None
                key = syntax.string_value(tree, value) if value is not None else None
                if key is None and member.type == "method_definition":
                    key = _mapped_state_key(tree, member)
                elif key is None and value is not None:
                    key = _mapped_state_key(tree, value)
                if key:
                    found = StoreMapping(helper, kind, namespace, key, local)
    return found


# ===================================================================
# Store side
# ===================================================================

def locate_store_module(project_root: Path, namespace: Optional[str]) -> Optional[Path]:
    store_dir = project_root / "src" / "store"
    candidates: List[Path] = []
    if namespace:
        for ext in (".js", ".ts"):
            candidates.append(store_dir / "modules" / f"{namespace}{ext}")
        for ext in (".js", ".ts"):
            candidates.append(store_dir / "modules" / namespace / f"index{ext}")
    for ext in (".js", ".ts"):
        candidates.append(store_dir / f"index{ext}")
    return next((c for c in candidates if c.is_file()), None)


@dataclass
class StoreAnalysis:
    source: str = ""
    related_state: List[str] = field(default_factory=list)
    mutations: List[MutationInfo] = field(default_factory=list)


class _StoreModule:
    def __init__(self, path: Path):
        self.path = path
        text = path.read_text(encoding="utf-8")
        lang = "ts" if path.suffix == ".ts" else "js"
        self.tree = syntax.parse(text, syntax.script_grammar(lang))
        self.line_starts = compute_line_starts(text)

    def _top_level_object(self, name: str) -> Optional[Any]:
        for node in syntax.walk(self.tree.root):
            if node.type == "variable_declarator":
                target = node.child_by_field_name("name")
                if target is not None and self.tree.node_text(target) == name:
                    return self._object_of(node.child_by_field_name("value"))
        return None

    def _object_of(self, value: Any) -> Optional[Any]:
        """Object literal behind a value, a factory function or a ``return``."""
        if value is None:
            return None
        if value.type == "object":
            return value
        if value.type == "parenthesized_expression" and value.named_children:
            return self._object_of(value.named_children[0])
        if value.type in ("arrow_function", "function_expression", "function", "method_definition"):
            body = value.child_by_field_name("body")
            if body is None:
                return None
            if body.type != "statement_block":
                return self._object_of(body)
            for node in syntax.walk(body):
                if node.type == "return_statement" and node.named_children:
                    return self._object_of(node.named_children[0])
        if value.type == "identifier":
            return self._top_level_object(self.tree.node_text(value))
        return None

    def section(self, name: str) -> Optional[Any]:
        for node in syntax.walk(self.tree.root):
            if node.type == "pair" and syntax.property_key(self.tree, node) == name:
                return self._object_of(node.child_by_field_name("value"))
            if node.type == "method_definition" and syntax.property_key(self.tree, node) == name:
                return self._object_of(node)
            if node.type == "shorthand_property_identifier" and self.tree.node_text(node) == name:
                return self._top_level_object(name)
        return self._top_level_object(name)

    def members(self, section: Optional[Any]) -> List[Any]:
        if section is None:
            return []
        return [m for m in section.named_children if m.type in ("pair", "method_definition")]

    def member_source(self, member: Any) -> str:
        """Full source lines spanning *member*."""
        start = self.tree.char_offset(member.start_byte)
        end = self.tree.char_offset(member.end_byte)
        line_start = self.line_starts[offset_to_line_col(self.line_starts, start)[0] - 1]
        end_line = offset_to_line_col(self.line_starts, end)[0]
        text = self.tree.text
        line_end = self.line_starts[end_line] - 1 if end_line < len(self.line_starts) else len(text)
        return text[line_start:line_end].rstrip()

    def signature(self, name: str, member: Any) -> str:
        fn = member if member.type == "method_definition" else member.child_by_field_name("value")
        params: List[str] = []
        if fn is not None:
            single = fn.child_by_field_name("parameter")
            formal = fn.child_by_field_name("parameters")
            if single is not None:
                params = [self.tree.node_text(single)]
            elif formal is not None:
                params = [self._param_name(p) for p in formal.named_children if p.type != "comment"]
        return f"{name}({', '.join(params)})"

    def _param_name(self, param: Any) -> str:
        if param.type == "identifier":
            return self.tree.node_text(param)
        if param.type in ("assignment_pattern", "required_parameter", "optional_parameter"):
            inner = param.child_by_field_name("left") or param.child_by_field_name("pattern")
            return self._param_name(inner) if inner is not None else self.tree.node_text(param)
        if param.type == "rest_pattern" and param.named_children:
            return "..." + self._param_name(param.named_children[0])
        return self.tree.node_text(param)


def analyze_store_module(module_path: Path, mapping: StoreMapping) -> StoreAnalysis:
    """Source of the mapped getter/state member plus the mutations that write it."""
    module = _StoreModule(module_path)
    analysis = StoreAnalysis()
    section_name = "getters" if mapping.kind == "getter" else "state"
    for member in module.members(module.section(section_name)):
        if syntax.property_key(module.tree, member) == mapping.key:
            analysis.source = module.member_source(member)
            break
    if mapping.kind == "getter":
        analysis.related_state = list(dict.fromkeys(_STATE_REFERENCE.findall(analysis.source)))
    else:
        analysis.related_state = [mapping.key]

    for member in module.members(module.section("mutations")):
        name = syntax.property_key(module.tree, member)
        if not name:
            continue
        code = module.member_source(member)
        writes = any(re.search(rf"\bstate\.{re.escape(s)}\s*=(?!=)", code) for s in analysis.related_state)
        if writes:
            analysis.mutations.append(MutationInfo(
                name=name,
                signature=module.signature(name, member),
                line=module.tree.line_of(member),
                code=code,
            ))
    return analysis


def _source_files(root: Path) -> Iterable[Path]:
    for ext in SOURCE_EXTENSIONS:
        for path in sorted(root.rglob(f"*{ext}")):
            if not any(part in _SKIP_DIRS for part in path.parts):
                yield path


def find_mutation_triggers(
    project_root: Path,
    namespace: Optional[str],
    mutation: str,
    exclude: Optional[Path] = None,
) -> List[MutationTrigger]:
    """Call sites committing *mutation*, outside the store module itself."""
    prefix = rf"(?:{re.escape(namespace)}/)?" if namespace else ""
    pattern = re.compile(rf"""commit\(\s*['"`]{prefix}{re.escape(mutation)}['"`]""")
    triggers: List[MutationTrigger] = []
    src = project_root / "src"
    if not src.is_dir():
        return triggers
    excluded = exclude.resolve() if exclude is not None else None
    for path in _source_files(src):
        if excluded is not None and path.resolve() == excluded:
            continue
        try:
            lines = path.read_text(encoding="utf-8").split("\n")
        except (OSError, UnicodeDecodeError):
            continue
        for number, line in enumerate(lines, start=1):
            if pattern.search(line):
                triggers.append(MutationTrigger(mutation, to_relative(path, project_root), number, line.strip()))
                if len(triggers) >= MAX_TRIGGERS:
                    return triggers
    return triggers

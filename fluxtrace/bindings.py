"""Prop declarations and the parent-side bindings that feed them."""

from __future__ import annotations

import json
import logging
import posixpath
from typing import Any, List, Optional, Set

from . import syntax
from .coordinates import offset_to_line_col, to_file_position
from .locator import get_node_source
from .models import ParentBinding
from .paths import kebab_case
from .template_ast import (
    ASTElement,
    AttributeNode,
    Dialect,
    DirectiveNode,
    ParsedComponent,
    iter_elements,
)

logger = logging.getLogger(__name__)

_MODEL_PROPS = ("value", "modelValue")


# ===================================================================
# Prop declarations
# ===================================================================

def _declared_props(tree: syntax.SourceTree, node: Any) -> Set[str]:
    names: Set[str] = set()
    if node is None:
        return names
    if node.type == "array":
        for element in node.named_children:
            value = syntax.string_value(tree, element)
            if value:
                names.add(value)
    elif node.type == "object":
        for member in node.named_children:
            key = syntax.property_key(tree, member)
            if key:
                names.add(key)
    elif node.type in ("object_type", "type_arguments"):
        for member in syntax.walk(node):
            if member.type == "property_signature":
                key = syntax.property_key(tree, member)
                if key:
                    names.add(key)
    return names


def declared_props(script: str, lang: Optional[str] = "js") -> Set[str]:
    """Names a component declares as props, in options or ``defineProps`` form."""
    if not script.strip():
        return set()
    tree = syntax.parse(script, syntax.script_grammar(lang))
    names: Set[str] = set()
    for node in syntax.walk(tree.root):
        if node.type == "pair" and syntax.property_key(tree, node) == "props":
            names |= _declared_props(tree, node.child_by_field_name("value"))
        elif node.type == "call_expression":
            fn = node.child_by_field_name("function")
            if fn is None or tree.node_text(fn) != "defineProps":
                continue
            args = node.child_by_field_name("arguments")
            if args is not None and args.named_children:
                names |= _declared_props(tree, args.named_children[0])
            type_args = node.child_by_field_name("type_arguments")
            if type_args is None:
                type_args = next((c for c in node.children if c.type == "type_arguments"), None)
            names |= _declared_props(tree, type_args)
    return names


def is_from_props(script: str, name: str, lang: Optional[str] = "js") -> bool:
    """True when *name* is declared as a prop of the component in *script*."""
    return bool(name) and name in declared_props(script, lang)


# ===================================================================
# Parent bindings
# ===================================================================

def _import_aliases(parent: ParsedComponent, child_path: str) -> Set[str]:
    """Local names under which *parent* imports the child component."""
    if not parent.script_text.strip():
        return set()
    child_stem = posixpath.splitext(posixpath.basename(child_path))[0]
    child_dir = posixpath.basename(posixpath.dirname(child_path))
    tree = syntax.parse(parent.script_text, syntax.script_grammar(parent.script_lang))
    names: Set[str] = set()
    for node in tree.root.named_children:
        if node.type != "import_statement":
            continue
        source = syntax.string_value(tree, node.child_by_field_name("source"))
        if not source:
            continue
        stem = posixpath.splitext(posixpath.basename(source))[0]
        if stem == "index":
            stem = posixpath.basename(posixpath.dirname(source))
        if stem not in (child_stem, child_dir if child_stem == "index" else None):
            continue
        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        if clause is None:
            continue
        for ident in clause.named_children:
            if ident.type == "identifier":
                names.add(tree.node_text(ident))
    return names


def candidate_tags(parent: ParsedComponent, child_path: str) -> Set[str]:
    """Normalised tag names the child component may be used under."""
    stem = posixpath.splitext(posixpath.basename(child_path))[0]
    if stem == "index":
        stem = posixpath.basename(posixpath.dirname(child_path)) or stem
    names = {stem} | _import_aliases(parent, child_path)
    return {kebab_case(n) for n in names if n}


def _attr_matches(name: str, prop: str) -> bool:
    return name == prop or name == kebab_case(prop)


def _binding_location(parent: ParsedComponent, start_offset: int) -> tuple:
    line, column = offset_to_line_col(parent.template_line_starts, start_offset)
    return to_file_position(parent, line, column)


def _modern_binding(element: Any, prop: str) -> Optional[tuple]:
    for attr in element.props:
        if isinstance(attr, AttributeNode) and _attr_matches(attr.name, prop):
            return json.dumps(attr.value or ""), attr.loc.start_offset
        if not isinstance(attr, DirectiveNode) or not attr.exp:
            continue
        if attr.name == "bind" and attr.arg and _attr_matches(attr.arg, prop):
            return attr.exp, attr.loc.start_offset
        if attr.name == "model" and ((attr.arg is None and prop in _MODEL_PROPS) or attr.arg == prop):
            return attr.exp, attr.loc.start_offset
    return None


def _legacy_binding(element: ASTElement, prop: str) -> Optional[tuple]:
    for attr in element.attrs_list:
        name = attr.name
        if _attr_matches(name, prop):
            return json.dumps(attr.value or ""), attr.start
        for prefix in (":", "v-bind:"):
            if name.startswith(prefix) and _attr_matches(name[len(prefix):].split(".")[0], prop):
                return attr.value, attr.start
        if name.split(".")[0] == "v-model" and prop in _MODEL_PROPS:
            return attr.value, attr.start
    return None


def find_binding_in_parent(parent: ParsedComponent, child_path: str, prop: str) -> Optional[ParentBinding]:
    """First element in *parent* that renders the child and binds *prop*."""
    tags = candidate_tags(parent, child_path)
    for element in iter_elements(parent.root):
        if kebab_case(element.tag) not in tags:
            continue
        if parent.dialect is Dialect.VUE2:
            found = _legacy_binding(element, prop)
        else:
            found = _modern_binding(element, prop)
        if found is None:
            continue
        expression, offset = found
        line, column = _binding_location(parent, offset)
        return ParentBinding(
            prop=prop,
            expression=expression,
            element=element,
            line=line,
            column=column,
            snippet=get_node_source(parent, element),
        )
    logger.debug("No binding for prop %s of %s found in %s", prop, child_path, parent.filename)
    return None

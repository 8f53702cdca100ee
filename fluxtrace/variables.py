"""Classify the variables an element depends on and resolve loop aliases."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .config import DEFAULT_PRIORITY_WEIGHTS, LOW_PRIORITY_DIRECTIVES
from .expressions import extract_identifiers
from .models import AttributeItem, CategorizedVariables, ConditionalItem, ContentItem
from .template_ast import (
    ASTElement,
    ASTExpression,
    Dialect,
    DirectiveNode,
    ForParseResult,
    InterpolationNode,
    ParsedComponent,
)

CONDITIONAL_DIRECTIVES = ("if", "else-if", "show")


def _vars(parsed: ParsedComponent, node: Any, expression: str) -> tuple:
    """Identifiers of *expression* with loop aliases replaced by their collections."""
    return tuple(resolve_seeds(parsed, node, extract_identifiers(expression)))


# ---------------------------------------------------------------------------
# Directive labels
# ---------------------------------------------------------------------------

def directive_label(prop: DirectiveNode) -> str:
    if prop.name == "bind":
        return f":{prop.arg}" if prop.arg else "v-bind"
    if prop.name == "on":
        return f"@{prop.arg}" if prop.arg else "v-on"
    if prop.arg:
        return f"v-{prop.name}:{prop.arg}"
    return f"v-{prop.name}"


def legacy_label(name: str) -> str:
    base = name.split(".")[0] if not name.startswith(".") else name
    if base.startswith("v-bind:"):
        return ":" + base[len("v-bind:"):]
    if base.startswith("v-on:"):
        return "@" + base[len("v-on:"):]
    return base


def _is_dynamic(name: str) -> bool:
    return name.startswith((":", "@", "v-", "#"))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _classify_modern(parsed: ParsedComponent, node: Any, result: CategorizedVariables) -> None:
    for child in node.children:
        if isinstance(child, InterpolationNode):
            variables = _vars(parsed, node, child.expression)
            if variables:
                result.content.append(ContentItem(child.expression, f"{{{{ {child.expression} }}}}", variables))
    for prop in node.props:
        if not isinstance(prop, DirectiveNode) or not prop.exp or prop.name == "for":
            continue
        variables = _vars(parsed, node, prop.exp)
        if not variables:
            continue
        if prop.name in CONDITIONAL_DIRECTIVES:
            result.conditionals.append(ConditionalItem(f"v-{prop.name}", prop.exp, variables))
        else:
            result.attributes.append(AttributeItem(directive_label(prop), prop.exp, variables))


def _classify_legacy(parsed: ParsedComponent, node: ASTElement, result: CategorizedVariables) -> None:
    for child in node.children:
        if isinstance(child, ASTExpression):
            variables = _vars(parsed, node, child.expression)
            if variables:
                result.content.append(ContentItem(child.expression, child.text, variables))
    for attr in node.attrs_list:
        if not _is_dynamic(attr.name) or not attr.value:
            continue
        variables = _vars(parsed, node, attr.value)
        if not variables:
            continue
        if attr.name == "v-show":
            result.conditionals.append(ConditionalItem("v-show", attr.value, variables))
        else:
            result.attributes.append(AttributeItem(legacy_label(attr.name), attr.value, variables))
    for directive, expression in (("v-if", node.if_exp), ("v-else-if", node.elseif_exp)):
        if expression:
            variables = _vars(parsed, node, expression)
            if variables:
                result.conditionals.append(ConditionalItem(directive, expression, variables))


def classify(parsed: ParsedComponent, node: Any) -> CategorizedVariables:
    """Split the element's dependencies into content, attribute and conditional groups.

    Every identifier is resolved through enclosing ``v-for`` aliases first, so
    ``{{ item.label }}`` inside ``v-for="item in items"`` depends on ``items``.
    """
    result = CategorizedVariables()
    if parsed.dialect is Dialect.VUE2:
        _classify_legacy(parsed, node, result)
    else:
        _classify_modern(parsed, node, result)
    return result


# ---------------------------------------------------------------------------
# Loop aliases
# ---------------------------------------------------------------------------

def loop_of(parsed: ParsedComponent, node: Any) -> Optional[ForParseResult]:
    if parsed.dialect is Dialect.VUE2:
        return node.for_parse if isinstance(node, ASTElement) else None
    for prop in getattr(node, "props", ()):
        if isinstance(prop, DirectiveNode) and prop.name == "for":
            return prop.for_parse
    return None


def _declares(loop: ForParseResult, name: str) -> bool:
    for alias in loop.aliases():
        if alias == name:
            return True
        if alias[:1] in "{[" and name in extract_identifiers(f"({alias})"):
            return True
    return False


def resolve_source(parsed: ParsedComponent, node: Any, name: str) -> str:
    """Replace a ``v-for`` alias by the collection expression it iterates."""
    for ancestor in parsed.ancestors(node):
        loop = loop_of(parsed, ancestor)
        if loop is not None and _declares(loop, name):
            return loop.source
    return name


def resolve_seeds(parsed: ParsedComponent, node: Any, names: List[str]) -> List[str]:
    """Identifiers to trace once loop aliases are replaced by their sources."""
    seeds: Dict[str, None] = {}
    for name in names:
        source = resolve_source(parsed, node, name)
        for ident in (extract_identifiers(source) if source != name else [name]):
            seeds.setdefault(ident, None)
    return list(seeds)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def rank_variables(
    categorized: CategorizedVariables,
    weights: Optional[Mapping[str, float]] = None,
) -> List[Dict[str, Any]]:
    """Order variables by how strongly they shape what the user sees."""
    weights = {**DEFAULT_PRIORITY_WEIGHTS, **(weights or {})}
    scores: Dict[str, Dict[str, Any]] = {}

    def add(name: str, category: str, weight: float) -> None:
        entry = scores.setdefault(name, {"name": name, "score": 0.0, "categories": []})
        entry["score"] += weight
        if category not in entry["categories"]:
            entry["categories"].append(category)

    for item in categorized.content:
        for name in item.variables:
            add(name, "content", weights["content"])
    for item in categorized.attributes:
        low = item.directive in LOW_PRIORITY_DIRECTIVES or item.directive.startswith("v-on")
        weight = weights["low_priority_attributes"] if low else weights["attributes"]
        for name in item.variables:
            add(name, "attributes", weight)
    for item in categorized.conditionals:
        for name in item.variables:
            add(name, "conditionals", weights["conditionals"])

    return sorted(scores.values(), key=lambda e: -e["score"])

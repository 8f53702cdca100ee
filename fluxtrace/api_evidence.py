"""Extract network-call evidence from the pruned scripts of trace chains.

Recognised call shapes, most to least trustworthy:

* ``request('/api/x', METHOD.GET)`` and ``request({ url, method })``
* ``axios.get('/api/x')``, ``axios({ url, method })``
* ``fetch('/api/x', { method: 'PUT' })``
* ``this.$http.post('/api/x')`` and the ``$https`` / ``$axios`` / ``$request`` wrappers
* ``this.$apis.user.list(params)``: only a symbolic endpoint (``$apis.user.list``)

Symbolic endpoints prove that something looks like an API call, never what
URL it hits, so they are ranked after real URLs.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from . import syntax
from .models import ApiEvidence, TraceChain, TraceStep

logger = logging.getLogger(__name__)

MAX_EVIDENCE = 30
MAX_SNIPPET = 240

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
_METHOD_NAMES = {m.lower(): m for m in HTTP_METHODS}
_METHOD_NAMES["del"] = "DELETE"
_METHOD_WORD = re.compile(r"\b(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\b")
_METHOD_ORDER = {"GET": 1, "POST": 2, "PUT": 3, "DELETE": 4, "PATCH": 5, "UNKNOWN": 6}

_WRAPPERS = ("$http", "$https", "$axios", "$request")
_SYMBOLIC_ROOTS = ("$apis", "$api")


def normalize_method(raw: Optional[str]) -> str:
    if not raw or not raw.strip():
        return "UNKNOWN"
    raw = raw.strip().strip("'\"`")
    if raw.lower() in _METHOD_NAMES:
        return _METHOD_NAMES[raw.lower()]
    match = _METHOD_WORD.search(raw.upper())
    return match.group(1) if match else "UNKNOWN"


def _confidence(endpoint: Optional[str], method: str, symbolic: bool) -> str:
    if symbolic:
        return "medium"
    if endpoint and method != "UNKNOWN":
        return "high"
    if endpoint or method != "UNKNOWN":
        return "medium"
    return "low"


class _CallScanner:
    """Walks one script and collects evidence for every request-like call."""

    def __init__(self, step: TraceStep):
        self.step = step
        self.tree = syntax.parse(step.pruned_script, syntax.script_grammar(step.script_lang))

    # -- small readers ---------------------------------------------------

    def text(self, node: Optional[Any]) -> str:
        return self.tree.node_text(node) if node is not None else ""

    def string_like(self, node: Optional[Any]) -> Optional[str]:
        """Literal value of a string, or the raw text of a template string."""
        if node is None:
            return None
        if node.type == "string":
            return syntax.string_value(self.tree, node)
        if node.type == "template_string":
            return self.text(node)
        return None

    def object_value(self, node: Optional[Any], key: str) -> Optional[Any]:
        if node is None or node.type != "object":
            return None
        for member in node.named_children:
            if member.type == "pair" and syntax.property_key(self.tree, member) == key:
                return member.child_by_field_name("value")
        return None

    def value_text(self, node: Optional[Any]) -> Optional[str]:
        if node is None:
            return None
        return self.string_like(node) or self.text(node)

    def member_parts(self, node: Any) -> List[str]:
        parts: List[str] = []
        current = node
        while current is not None and current.type == "member_expression":
            prop = current.child_by_field_name("property")
            if prop is not None:
                parts.insert(0, self.text(prop))
            current = current.child_by_field_name("object")
        if current is not None:
            parts.insert(0, "this" if current.type == "this" else self.text(current))
        return [p for p in parts if p]

    # -- scanning --------------------------------------------------------

    def scan(self) -> Iterable[ApiEvidence]:
        for node in syntax.walk(self.tree.root):
            if node.type == "call_expression":
                item = self.evidence_for(node)
                if item is not None:
                    yield item

    def evidence_for(self, node: Any) -> Optional[ApiEvidence]:
        callee = node.child_by_field_name("function")
        args_node = node.child_by_field_name("arguments")
        args = [a for a in args_node.named_children if a.type != "comment"] if args_node is not None else []
        first = args[0] if args else None
        second = args[1] if len(args) > 1 else None

        endpoint: Optional[str] = None
        method = "UNKNOWN"
        symbolic = False
        callee_text: Optional[str] = None

        if callee is None:
            return None
        if callee.type == "identifier":
            callee_text = self.text(callee)
            if callee_text == "fetch":
                endpoint = self.string_like(first)
                method = normalize_method(self.value_text(self.object_value(second, "method")))
            elif callee_text == "request":
                endpoint = self.string_like(first)
                if second is not None:
                    method = normalize_method(self.text(second))
                if first is not None and first.type == "object":
                    endpoint = self.value_text(self.object_value(first, "url"))
                    method = normalize_method(self.value_text(self.object_value(first, "method")))
            elif callee_text == "axios" and first is not None and first.type == "object":
                endpoint = self.value_text(self.object_value(first, "url"))
                method = normalize_method(self.value_text(self.object_value(first, "method")))
        elif callee.type == "member_expression":
            parts = self.member_parts(callee)
            callee_text = ".".join(parts)
            root = next((i for i, p in enumerate(parts) if p in _SYMBOLIC_ROOTS), None)
            if root is not None:
                endpoint = ".".join(parts[root:])
                symbolic = True
            method = _METHOD_NAMES.get(parts[-1].lower(), "UNKNOWN") if parts else "UNKNOWN"

            is_axios = parts[:1] == ["axios"]
            is_wrapper = len(parts) >= 2 and parts[0] == "this" and parts[1] in _WRAPPERS
            if is_axios or is_wrapper:
                endpoint = self.string_like(first) or endpoint
                if second is not None and second.type == "object":
                    extra = normalize_method(self.value_text(self.object_value(second, "method")))
                    if extra != "UNKNOWN":
                        method = extra
                if first is not None and first.type == "object":
                    endpoint = self.value_text(self.object_value(first, "url")) or endpoint
                    extra = normalize_method(self.value_text(self.object_value(first, "method")))
                    if extra != "UNKNOWN":
                        method = extra
        else:
            return None

        endpoint = endpoint.strip() if endpoint and endpoint.strip() else None
        if endpoint is None and method == "UNKNOWN":
            return None
        return ApiEvidence(
            file=self.step.file or "unknown",
            line=self.tree.line_of(node),
            callee=callee_text or "",
            endpoint=endpoint,
            method=method,
            confidence=_confidence(endpoint, method, symbolic),
            evidence=" ".join(self.text(node).split())[:MAX_SNIPPET],
        )


def _is_symbolic(item: ApiEvidence) -> bool:
    return bool(item.endpoint) and item.endpoint.startswith(_SYMBOLIC_ROOTS)


def extract_api_evidence(steps: Iterable[TraceStep]) -> List[ApiEvidence]:
    """Deduplicated call evidence, real URLs first, then by HTTP method."""
    results: List[ApiEvidence] = []
    seen = set()
    for step in steps:
        if not step.pruned_script or not step.pruned_script.strip():
            continue
        try:
            scanner = _CallScanner(step)
        except syntax.GrammarUnavailable as exc:
            logger.warning("Skipping API evidence for %s: %s", step.file, exc)
            continue
        for item in scanner.scan():
            key = (item.file, item.method, item.endpoint, item.callee, item.line)
            if key in seen:
                continue
            seen.add(key)
            results.append(item)
    results.sort(key=lambda e: (_is_symbolic(e), _METHOD_ORDER.get(e.method, 99)))
    return results


def evidence_for_chains(chains: Dict[str, TraceChain], limit: int = MAX_EVIDENCE) -> List[ApiEvidence]:
    steps = [step for chain in chains.values() for step in chain.steps]
    return extract_api_evidence(steps)[:limit]

"""Core data models used by classification, tracing and analysis layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .template_ast import ParsedComponent


@dataclass(frozen=True)
class ContentItem:
    expression: str
    raw: str
    variables: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"expression": self.expression, "raw": self.raw, "variables": list(self.variables)}


@dataclass(frozen=True)
class AttributeItem:
    directive: str
    expression: str
    variables: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"directive": self.directive, "expression": self.expression, "variables": list(self.variables)}


@dataclass(frozen=True)
class ConditionalItem:
    directive: str
    expression: str
    variables: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"directive": self.directive, "expression": self.expression, "variables": list(self.variables)}


@dataclass
class CategorizedVariables:
    content: List[ContentItem] = field(default_factory=list)
    attributes: List[AttributeItem] = field(default_factory=list)
    conditionals: List[ConditionalItem] = field(default_factory=list)

    def items(self, category: str) -> List[Any]:
        return list(getattr(self, category))

    def names(self, category: str) -> List[str]:
        seen: Dict[str, None] = {}
        for item in self.items(category):
            for name in item.variables:
                seen.setdefault(name, None)
        return list(seen)

    @property
    def all(self) -> List[str]:
        seen: Dict[str, None] = {}
        for category in ("content", "attributes", "conditionals"):
            for name in self.names(category):
                seen.setdefault(name, None)
        return list(seen)

    @property
    def is_static(self) -> bool:
        return not self.all

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": [i.to_dict() for i in self.content],
            "attributes": [i.to_dict() for i in self.attributes],
            "conditionals": [i.to_dict() for i in self.conditionals],
            "all": self.all,
        }


class ChainEnding(str, Enum):
    NO_VARIABLES = "no_variables"
    NO_FURTHER_SOURCE = "no_further_source"
    UNRESOLVED_PARENT = "unresolved_parent"
    PARSE_FAILURE = "parse_failure"
    STORE_TERMINAL = "store_terminal"
    DEPTH_EXCEEDED = "depth_exceeded"


@dataclass(frozen=True)
class StoreMapping:
    helper: str
    kind: str
    namespace: Optional[str]
    key: str
    local_name: str


@dataclass(frozen=True)
class MutationInfo:
    name: str
    signature: str
    line: int
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "signature": self.signature, "line": self.line, "code": self.code}


@dataclass(frozen=True)
class MutationTrigger:
    mutation: str
    file: str
    line: int
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return {"mutation": self.mutation, "file": self.file, "line": self.line, "code": self.code}


@dataclass
class StoreInfo:
    namespace: Optional[str]
    kind: str
    key: str
    file: str
    source: str
    related_state: List[str] = field(default_factory=list)
    mutations: List[MutationInfo] = field(default_factory=list)
    triggers: List[MutationTrigger] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "type": self.kind,
            "key": self.key,
            "file": self.file,
            "source": self.source,
            "relatedState": list(self.related_state),
            "mutations": [m.to_dict() for m in self.mutations],
            "mutationTriggers": [t.to_dict() for t in self.triggers],
        }


@dataclass
class TraceStep:
    file: str
    tag: str
    category: str
    traced_variables: List[str]
    pruned_script: str
    source: str
    call_snippet: str = ""
    script_lang: str = "js"
    store: Optional[StoreInfo] = None

    @property
    def is_store(self) -> bool:
        return self.store is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "file": self.file,
            "tag": self.tag,
            "category": self.category,
            "tracedVariables": list(self.traced_variables),
            "prunedScript": self.pruned_script,
            "source": self.source,
            "callSnippet": self.call_snippet,
        }
        if self.store is not None:
            data["isStore"] = True
            data["storeInfo"] = self.store.to_dict()
        return data


@dataclass
class TraceChain:
    category: str
    steps: List[TraceStep] = field(default_factory=list)
    ending: ChainEnding = ChainEnding.NO_VARIABLES

    def to_list(self) -> List[Dict[str, Any]]:
        return [step.to_dict() for step in self.steps]


@dataclass(frozen=True)
class ParentBinding:
    prop: str
    expression: str
    element: Any
    line: int
    column: int
    snippet: str


@dataclass(frozen=True)
class CachedComponent:
    parsed: ParsedComponent
    raw_text: str


@dataclass(frozen=True)
class ApiEvidence:
    file: str
    line: int
    callee: str
    endpoint: Optional[str]
    method: str
    confidence: str
    evidence: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "callee": self.callee,
            "endpoint": self.endpoint,
            "method": self.method,
            "confidence": self.confidence,
            "evidence": self.evidence,
        }

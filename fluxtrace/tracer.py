"""
Backward data-flow tracing across components, props and the Vuex store.

Each category of variables (content, attributes, conditionals) is walked on
its own: the current component's script is pruned against the active
names, a step is emitted, and the walk then either stops at a store
mapping, hops to the parent that binds a prop, or ends.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .bindings import find_binding_in_parent, is_from_props
from .config import TRACE_CATEGORIES, TraceSettings
from .errors import FileNotFound, FluxTraceError
from .expressions import extract_identifiers
from .graph import DependencyGraph
from .locator import get_node_source
from .models import (
    CachedComponent,
    CategorizedVariables,
    ChainEnding,
    ParentBinding,
    StoreInfo,
    TraceChain,
    TraceStep,
)
from .paths import to_relative
from .pruner import prune
from .store_trace import (
    analyze_store_module,
    find_mutation_triggers,
    find_store_mapping,
    locate_store_module,
)
from .template_ast import ParsedComponent
from .template_parser import TemplateParser
from .variables import resolve_seeds

logger = logging.getLogger(__name__)

STORE_TAG = "VuexStore"

CATEGORY_LABELS = {
    "content": "Content variables",
    "attributes": "Attribute variables",
    "conditionals": "Conditional variables",
}


class ParentPolicy(str, Enum):
    FIRST = "first"
    FIRST_BINDING = "binding"


# ===================================================================
# Request-scoped parse cache
# ===================================================================

class ParseCache:
    """Parsed components keyed by absolute path, populated at most once per key.

    Failures are cached as well, so a broken parent visited by two
    category walks is only read and parsed once.
    """

    def __init__(self, parser: TemplateParser):
        self.parser = parser
        self.hits = 0
        self.misses = 0
        self._entries: Dict[str, Any] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def get(self, path: Path) -> CachedComponent:
        key = str(Path(path).resolve())
        with self._lock_for(key):
            if key in self._entries:
                self.hits += 1
            else:
                self.misses += 1
                self._entries[key] = self._load(Path(key))
            entry = self._entries[key]
        if isinstance(entry, FluxTraceError):
            raise entry
        return entry

    def _load(self, path: Path) -> Any:
        logger.debug("Parse cache miss: %s", path)
        if not path.is_file():
            return FileNotFound(str(path))
        try:
            raw = path.read_text(encoding="utf-8")
            return CachedComponent(self.parser.parse(raw, str(path)), raw)
        except FluxTraceError as exc:
            return exc
        except (OSError, UnicodeDecodeError) as exc:
            return FileNotFound(f"{path} ({exc})")

    def __len__(self) -> int:
        return len(self._entries)


# ===================================================================
# Orchestrator
# ===================================================================

class DataFlowTracer:
    """Walks trace chains for a located element."""

    def __init__(
        self,
        project_root: Path,
        graph: DependencyGraph,
        parser: Optional[TemplateParser] = None,
        settings: Optional[TraceSettings] = None,
    ):
        self.project_root = Path(project_root)
        self.graph = graph
        self.settings = settings or TraceSettings()
        self.parser = parser or TemplateParser(self.project_root, self.settings.vue_version)
        self.policy = ParentPolicy(self.settings.parent_policy)

    def new_cache(self) -> ParseCache:
        return ParseCache(self.parser)

    def trace(
        self,
        file: str,
        parsed: ParsedComponent,
        node: Any,
        categorized: CategorizedVariables,
        cache: Optional[ParseCache] = None,
    ) -> Dict[str, TraceChain]:
        """One chain per category, starting at *node* in *file*."""
        cache = cache or self.new_cache()

        def walk(category: str) -> TraceChain:
            return self.trace_category(category, categorized.names(category), file, parsed, node, cache)

        if self.settings.parallel_categories:
            with ThreadPoolExecutor(max_workers=len(TRACE_CATEGORIES), thread_name_prefix="trace") as pool:
                chains = list(pool.map(walk, TRACE_CATEGORIES))
        else:
            chains = [walk(category) for category in TRACE_CATEGORIES]

        logger.info(
            "Trace finished for %s: %s (parse cache %d hits, %d misses)",
            file,
            ", ".join(f"{c.category}={len(c.steps)}/{c.ending.value}" for c in chains),
            cache.hits,
            cache.misses,
        )
        return {chain.category: chain for chain in chains}

    def trace_category(
        self,
        category: str,
        names: List[str],
        file: str,
        parsed: ParsedComponent,
        node: Any,
        cache: ParseCache,
    ) -> TraceChain:
        chain = TraceChain(category)
        if not names:
            return chain

        traced = list(names)
        seeds = resolve_seeds(parsed, node, traced)
        call_snippet = ""

        while True:
            if len(chain.steps) >= self.settings.max_depth:
                chain.ending = ChainEnding.DEPTH_EXCEEDED
                logger.warning("Trace depth %d reached for %s chain", self.settings.max_depth, category)
                break

            lang = parsed.script_lang or "js"
            pruned = prune(parsed.script_text, seeds, lang)
            chain.steps.append(TraceStep(
                file=file,
                tag=getattr(node, "tag", ""),
                category=category,
                traced_variables=traced,
                pruned_script=pruned,
                source=get_node_source(parsed, node),
                call_snippet=call_snippet,
                script_lang=lang,
            ))

            store_step = self._store_step(category, pruned, seeds, lang)
            if store_step is not None:
                if len(chain.steps) < self.settings.max_depth:
                    chain.steps.append(store_step)
                    chain.ending = ChainEnding.STORE_TERMINAL
                else:
                    chain.ending = ChainEnding.DEPTH_EXCEEDED
                break

            prop = next((s for s in seeds if is_from_props(parsed.script_text, s, lang)), None)
            if prop is None:
                chain.ending = ChainEnding.NO_FURTHER_SOURCE
                break

            hop, ending = self._hop_to_parent(file, prop, cache)
            if hop is None:
                chain.ending = ending
                break
            file, parsed, binding = hop
            node = binding.element
            traced = [binding.expression]
            seeds = resolve_seeds(parsed, node, extract_identifiers(binding.expression))
            call_snippet = binding.snippet

        return chain

    # ------------------------------------------------------------------
    # Prop hop
    # ------------------------------------------------------------------

    def _hop_to_parent(
        self, file: str, prop: str, cache: ParseCache
    ) -> Tuple[Optional[Tuple[str, ParsedComponent, ParentBinding]], ChainEnding]:
        parents = [p for p in self.graph.get_parents(file) if p.endswith(".vue")]
        if not parents:
            logger.debug("No parent component references %s", file)
            return None, ChainEnding.UNRESOLVED_PARENT
        if self.policy is ParentPolicy.FIRST:
            parents = parents[:1]

        ending = ChainEnding.UNRESOLVED_PARENT
        for parent in parents:
            try:
                parsed_parent = cache.get(self.project_root / parent).parsed
            except FluxTraceError as exc:
                logger.warning("Chain truncated at %s: parent %s unusable: %s", file, parent, exc)
                ending = ChainEnding.PARSE_FAILURE
                continue
            binding = find_binding_in_parent(parsed_parent, file, prop)
            if binding is not None:
                logger.debug("Prop %s of %s bound in %s as %s", prop, file, parent, binding.expression)
                return (parent, parsed_parent, binding), ending
        return None, ending

    # ------------------------------------------------------------------
    # Store terminal
    # ------------------------------------------------------------------

    def _store_step(self, category: str, pruned: str, seeds: List[str], lang: str) -> Optional[TraceStep]:
        mapping = find_store_mapping(pruned, seeds, lang)
        if mapping is None:
            return None
        module = locate_store_module(self.project_root, mapping.namespace)
        if module is None:
            logger.warning("Store module for namespace %r not found", mapping.namespace)
            return None
        try:
            analysis = analyze_store_module(module, mapping)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read store module %s: %s", module, exc)
            return None

        triggers = []
        for mutation in analysis.mutations:
            triggers.extend(find_mutation_triggers(self.project_root, mapping.namespace, mutation.name, exclude=module))

        store_file = to_relative(module, self.project_root)
        info = StoreInfo(
            namespace=mapping.namespace,
            kind=mapping.kind,
            key=mapping.key,
            file=store_file,
            source=analysis.source,
            related_state=analysis.related_state,
            mutations=analysis.mutations,
            triggers=triggers,
        )
        logger.info(
            "Store mapping %s -> %s/%s (%d mutations, %d triggers)",
            mapping.local_name, mapping.namespace or "<root>", mapping.key, len(analysis.mutations), len(triggers),
        )
        return TraceStep(
            file=store_file,
            tag=STORE_TAG,
            category=category,
            traced_variables=[mapping.local_name],
            pruned_script=_store_script(info),
            source=analysis.source,
            script_lang="ts" if module.suffix == ".ts" else "js",
            store=info,
        )


def _store_script(info: StoreInfo) -> str:
    parts = [f"// {info.kind} {info.key}", info.source or "// (member not found in store module)"]
    for mutation in info.mutations:
        parts.append(f"// mutation {mutation.signature} (line {mutation.line})\n{mutation.code}")
    for trigger in info.triggers:
        parts.append(f"// commit in {trigger.file}:{trigger.line}\n{trigger.code}")
    return "\n\n".join(parts)


# ===================================================================
# Evidence text
# ===================================================================

def format_chain(chain: TraceChain) -> str:
    """Steps of one chain, from the data source down to the clicked element."""
    blocks = []
    for step in reversed(chain.steps):
        lines = [f"// File: {step.file}"]
        if step.source and not step.is_store:
            lines.append(f"// [Template] element:\n{step.source}\n")
        if step.call_snippet:
            lines.append(f"// [Data Flow] parent renders the child as:\n{step.call_snippet}\n")
        if step.traced_variables:
            lines.append(f"// [Traced Variables] {', '.join(step.traced_variables)}")
        lines.append(f"// [Logic] related script:\n{step.pruned_script or '// (no related script at this level)'}")
        blocks.append("\n".join(lines))
    return ("\n\n" + "-" * 40 + "\n\n").join(blocks)


def build_evidence(chains: Dict[str, TraceChain]) -> str:
    output = ""
    for category in TRACE_CATEGORIES:
        chain = chains.get(category)
        if chain is None or not chain.steps:
            continue
        output += f"\n### {CATEGORY_LABELS[category]} ({category})\n"
        output += format_chain(chain)
        output += "\n"
    return output or "// No variable chain could be traced"

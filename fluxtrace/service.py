"""Request-level orchestration: locate, classify, trace, then analyse."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .analyst import ComponentRole, DataSource, TraceAnalysis, TraceAnalyst
from .api_evidence import evidence_for_chains
from .config import CACHE_VERSION, TRACE_CATEGORIES, Settings
from .errors import FileNotFound, NodeNotLocated, UnparsableComponent
from .graph import DependencyGraph
from .graph_cache import GraphCache
from .llm import LocalLLM
from .locator import get_node_source, locate_in_file
from .models import CategorizedVariables, ChainEnding
from .paths import to_relative
from .stats_compiler import StatsCompiler
from .template_parser import TemplateParser
from .tracer import DataFlowTracer, build_evidence
from .variables import classify, rank_variables

logger = logging.getLogger(__name__)

INTERNAL_ERROR = {"error": "Internal server error"}


def create_graph(settings: Settings) -> DependencyGraph:
    """Dependency graph wired to the configured cache and live build."""
    root = settings.project_root
    graph_settings = settings.graph
    cache = GraphCache(graph_settings.cache_dir, CACHE_VERSION, project_root=root)
    compiler = None
    if graph_settings.live_build:
        compiler = StatsCompiler(root, graph_settings.stats_command, graph_settings.build_timeout_seconds)
    return DependencyGraph(root, cache, compiler, graph_settings.alias, graph_settings.source_dir)


def _as_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def static_result(file: str, tag: str, source: str, categorized: CategorizedVariables) -> Dict[str, Any]:
    """Result for an element that renders no variables at all."""
    analysis = TraceAnalysis(
        fullLinkTrace="The element renders static content; there is no data source to trace.",
        dataSource=DataSource(type="Static"),
        componentAnalysis=[ComponentRole(file=file, role="renders static content", dataMapping="none")],
        confidence=100,
    )
    return {
        "message": "Static content",
        "isStatic": True,
        "targetElement": source,
        "traceChains": {category: [] for category in TRACE_CATEGORIES},
        "traceChain": [{"file": file, "tag": tag, "source": source, "prunedScript": "", "callSnippet": ""}],
        "chainEndings": {category: ChainEnding.NO_VARIABLES.value for category in TRACE_CATEGORIES},
        "aiAnalysis": {**analysis.model_dump(), "clickedElement": source},
        "finalCodeForAI": "",
        "categorizedVars": categorized.to_dict(),
        "rankedVariables": [],
    }


class TraceService:
    """Answers "where does this element's data come from?" for one project."""

    def __init__(
        self,
        settings: Settings,
        graph: Optional[DependencyGraph] = None,
        analyst: Optional[TraceAnalyst] = None,
        parser: Optional[TemplateParser] = None,
    ):
        self.settings = settings
        self.project_root = settings.project_root
        self.graph = graph if graph is not None else create_graph(settings)
        self.parser = parser or TemplateParser(self.project_root, settings.trace.vue_version)
        self.tracer = DataFlowTracer(self.project_root, self.graph, self.parser, settings.trace)
        if analyst is None:
            analyst = TraceAnalyst(LocalLLM.from_settings(settings.llm), settings.reliability)
        self.analyst = analyst

    @property
    def manifest_path(self) -> Path:
        manifest = Path(self.settings.graph.manifest)
        return manifest if manifest.is_absolute() else self.project_root / manifest

    def resolve(self, path: str) -> Tuple[Path, str]:
        """Absolute path and project-relative key for a requested file."""
        candidate = Path(path)
        # "/src/App.vue" from the browser overlay is project-relative
        if not candidate.is_absolute() or not candidate.exists():
            candidate = self.project_root / path.lstrip("/\\")
        return candidate, to_relative(candidate, self.project_root)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, path: str, line: int = 1, column: int = 0, use_ai: bool = True) -> Dict[str, Any]:
        self.graph.ensure_ready(self.manifest_path)
        absolute, relative = self.resolve(path)
        if not absolute.is_file():
            raise FileNotFound(relative)

        cache = self.tracer.new_cache()
        parsed = cache.get(absolute).parsed
        node = locate_in_file(parsed, line, column)
        if node is None:
            raise NodeNotLocated(relative, line, column)

        source = get_node_source(parsed, node)
        tag = getattr(node, "tag", "")
        categorized = classify(parsed, node)
        logger.info("Clicked <%s> in %s:%d:%d, variables: %s", tag, relative, line, column, categorized.all)
        if categorized.is_static:
            return static_result(relative, tag, source, categorized)

        chains = self.tracer.trace(relative, parsed, node, categorized, cache)
        final_code = build_evidence(chains)
        if use_ai:
            analysis: Optional[Dict[str, Any]] = self.analyst.analyze(source, final_code, evidence_for_chains(chains))
            analysis["clickedElement"] = source
        else:
            analysis = None

        return {
            "message": "Analysis complete",
            "targetElement": source,
            "traceChains": {category: chain.to_list() for category, chain in chains.items()},
            "chainEndings": {category: chain.ending.value for category, chain in chains.items()},
            "aiAnalysis": analysis,
            "finalCodeForAI": final_code,
            "categorizedVars": categorized.to_dict(),
            "rankedVariables": rank_variables(categorized, self.settings.trace.priority_weights),
        }

    def handle(self, params: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """Validate request parameters and map outcomes to HTTP statuses."""
        path = params.get("path")
        if not path or not isinstance(path, str):
            return 400, {"error": "Missing file path"}
        line = _as_int(params.get("line"), 1)
        column = _as_int(params.get("column"), 0)

        try:
            return 200, self.analyze(path, line, column)
        except FileNotFound as exc:
            return 404, {"message": str(exc), "path": path}
        except UnparsableComponent as exc:
            return 422, {"message": str(exc), "path": path, "reasons": exc.reasons}
        except NodeNotLocated as exc:
            return 422, {"message": str(exc), "path": path, "line": exc.line, "column": exc.column}
        except Exception:
            logger.exception("Analysis of %s failed", path)
            return 500, dict(INTERNAL_ERROR)

"""Module dependency graph recovered from bundler stats."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import DEFAULT_ALIAS, DEFAULT_MANIFEST
from .errors import GraphBuildFailure
from .graph_cache import GraphCache
from .paths import clean_path, is_relevant_path, resolve_request, try_resolve_extension
from .stats_compiler import StatsCompiler, modules_of

logger = logging.getLogger(__name__)

# Ordered sets: insertion order is the order queries return
_Adjacency = Dict[str, Dict[str, None]]


def flatten_modules(modules: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Expand concatenated module groups into their inner modules."""
    flat: List[Mapping[str, Any]] = []
    stack = list(reversed(list(modules)))
    while stack:
        module = stack.pop()
        if not isinstance(module, Mapping):
            continue
        inner = module.get("modules")
        if isinstance(inner, list) and inner:
            stack.extend(reversed(list(inner)))
        else:
            flat.append(module)
    return flat


class DependencyGraph:
    """Forward (importer -> imported) and reverse adjacency between project files.

    Populated by :meth:`init` from, in order, the revision-keyed cache, a
    live build of the project, and the on-disk stats manifest.  When all
    three fail the graph stays empty and every query returns ``[]``.
    """

    def __init__(
        self,
        project_root: Path,
        cache: Optional[GraphCache] = None,
        compiler: Optional[StatsCompiler] = None,
        alias: Optional[Mapping[str, str]] = None,
        source_dir: str = "src",
    ):
        self.project_root = Path(project_root)
        self.cache = cache
        self.compiler = compiler
        self.alias = dict(DEFAULT_ALIAS if alias is None else alias)
        self.source_dir = source_dir
        self.source = "empty"
        self.ready = False
        self._forward: _Adjacency = {}
        self._reverse: _Adjacency = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def init(self, manifest_path: Optional[Path] = None) -> str:
        """(Re)build the graph; returns which source populated it."""
        with self._lock:
            self._forward, self._reverse = {}, {}
            self.source = self._populate(manifest_path)
            self.ready = True
            logger.info(
                "Dependency graph ready from %s: %d modules with dependencies",
                self.source, len(self._forward),
            )
            return self.source

    def ensure_ready(self, manifest_path: Optional[Path] = None) -> None:
        if not self.ready:
            self.init(manifest_path)

    def _populate(self, manifest_path: Optional[Path]) -> str:
        if self.cache is not None:
            entry = self.cache.load()
            if entry is not None:
                self._load_maps(entry.forward_map(), entry.reverse_map())
                return "cache"

        if self.compiler is not None:
            try:
                self.build_graph(self.compiler.compile())
                self._save_cache()
                return "live"
            except GraphBuildFailure as exc:
                logger.warning("Live build failed, falling back to manifest: %s", exc)

        manifest = manifest_path or self.project_root / DEFAULT_MANIFEST
        try:
            stats = json.loads(Path(manifest).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("No usable stats manifest at %s: %s", manifest, exc)
            self._forward, self._reverse = {}, {}
            return "empty"
        try:
            modules = modules_of(stats)
        except GraphBuildFailure as exc:
            logger.warning("Ignoring malformed stats manifest %s: %s", manifest, exc)
            return "empty"
        self.build_graph(modules)
        self._save_cache()
        return "manifest"

    def _save_cache(self) -> None:
        if self.cache is not None:
            self.cache.save(self.forward_map(), self.reverse_map())

    def _load_maps(self, forward: Mapping[str, List[str]], reverse: Mapping[str, List[str]]) -> None:
        self._forward = {k: dict.fromkeys(v) for k, v in forward.items()}
        self._reverse = {k: dict.fromkeys(v) for k, v in reverse.items()}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def clean(self, raw: Any) -> Optional[str]:
        if not isinstance(raw, str):
            return None
        return clean_path(raw, self.project_root, self.alias)

    def build_graph(self, modules: Iterable[Mapping[str, Any]]) -> None:
        for module in flatten_modules(modules):
            current = self.clean(module.get("resource") or module.get("name") or module.get("identifier"))
            if current is None:
                continue
            for dep in module.get("dependencies") or []:
                if not isinstance(dep, Mapping):
                    continue
                request = dep.get("request") or dep.get("moduleName")
                resolved = resolve_request(request, current, self.alias)
                self.link(current, self.clean(resolved))
            for reason in module.get("reasons") or []:
                if not isinstance(reason, Mapping):
                    continue
                self.link(self.clean(reason.get("moduleName")), current)

    def link(self, parent: Optional[str], child: Optional[str]) -> bool:
        if not parent or not child:
            return False
        parent = try_resolve_extension(parent, self.project_root)
        child = try_resolve_extension(child, self.project_root)
        if parent == child:
            return False
        if not is_relevant_path(parent, self.source_dir) or not is_relevant_path(child, self.source_dir):
            return False
        self._forward.setdefault(parent, {})[child] = None
        self._reverse.setdefault(child, {})[parent] = None
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _key(self, path: str) -> str:
        return self.clean(path) or path

    def get_parents(self, path: str) -> List[str]:
        return list(self._reverse.get(self._key(path), {}))

    def get_children(self, path: str) -> List[str]:
        return list(self._forward.get(self._key(path), {}))

    def forward_map(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self._forward.items()}

    def reverse_map(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self._reverse.items()}

    def __len__(self) -> int:
        return len(set(self._forward) | set(self._reverse))

"""Revision-keyed on-disk cache for the module dependency graph."""

from __future__ import annotations

import json
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .config import CACHE_DIR, CACHE_VERSION

logger = logging.getLogger(__name__)

AdjacencyMap = Dict[str, List[str]]
RevisionProvider = Callable[[], Optional[str]]


def git_revision(project_root: Path) -> Optional[str]:
    """Current ``HEAD`` commit of *project_root*, or None outside git."""
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(project_root),
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("git rev-parse failed: %s", exc)
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None


def _freeze(adjacency: Mapping) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    return tuple((key, tuple(values)) for key, values in adjacency.items())


@dataclass(frozen=True)
class CacheEntry:
    revision: str
    forward: Tuple[Tuple[str, Tuple[str, ...]], ...]
    reverse: Tuple[Tuple[str, Tuple[str, ...]], ...]
    timestamp: float

    @classmethod
    def from_maps(cls, revision: str, forward: Mapping, reverse: Mapping, timestamp: float) -> "CacheEntry":
        return cls(revision, _freeze(forward), _freeze(reverse), timestamp)

    def forward_map(self) -> AdjacencyMap:
        return {k: list(v) for k, v in self.forward}

    def reverse_map(self) -> AdjacencyMap:
        return {k: list(v) for k, v in self.reverse}

    def to_json(self) -> Dict[str, object]:
        return {
            "forwardMap": self.forward_map(),
            "reverseMap": self.reverse_map(),
            "timestamp": self.timestamp,
            "revision": self.revision,
        }


class GraphCache:
    """Stores graph snapshots as ``deps_<version>_<revision>.json`` files.

    The revision is re-read for every lookup, so a snapshot written for
    one commit is never served once ``HEAD`` moves.
    """

    def __init__(
        self,
        cache_dir: Path = CACHE_DIR,
        version: str = CACHE_VERSION,
        revision_provider: Optional[RevisionProvider] = None,
        project_root: Optional[Path] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.version = version
        self._project_root = project_root or Path.cwd()
        self._revision_provider = revision_provider

    def current_revision(self) -> Optional[str]:
        if self._revision_provider is None:
            return git_revision(self._project_root)
        return self._revision_provider()

    def path_for(self, revision: str) -> Path:
        return self.cache_dir / f"deps_{self.version}_{revision}.json"

    def load(self) -> Optional[CacheEntry]:
        revision = self.current_revision()
        if not revision:
            return None
        path = self.path_for(revision)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Discarding unreadable graph cache %s: %s", path, exc)
            return None
        if data.get("revision") != revision:
            return None
        return CacheEntry.from_maps(
            revision,
            data.get("forwardMap") or {},
            data.get("reverseMap") or {},
            float(data.get("timestamp") or 0),
        )

    def save(self, forward: Mapping, reverse: Mapping) -> Optional[CacheEntry]:
        revision = self.current_revision()
        if not revision:
            return None
        entry = CacheEntry.from_maps(revision, forward, reverse, time.time())
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.path_for(revision).write_text(json.dumps(entry.to_json()), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write graph cache: %s", exc)
            return None
        logger.info("Saved dependency graph cache for revision %s", revision[:12])
        return entry

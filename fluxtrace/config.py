"""Configuration paths and tunables for FluxTrace."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

BASE_DIR = Path(os.environ.get("FLUXTRACE_HOME", str(Path.home() / ".fluxtrace"))).expanduser()
CACHE_DIR = BASE_DIR / "cache"
CONFIG_FILE = BASE_DIR / "config.toml"

CACHE_VERSION = "v3"
MAX_TRACE_DEPTH = 10
TRACE_CATEGORIES: Tuple[str, ...] = ("content", "attributes", "conditionals")
SOURCE_EXTENSIONS: Tuple[str, ...] = (".vue", ".js", ".ts", ".jsx", ".tsx")
DEFAULT_ALIAS: Dict[str, str] = {"@": "src"}
DEFAULT_MANIFEST = "stats.json"

# Category weights used to rank template variables.
DEFAULT_PRIORITY_WEIGHTS: Dict[str, float] = {
    "content": 3.0,
    "attributes": 2.0,
    "low_priority_attributes": 1.5,
    "conditionals": 1.0,
}
LOW_PRIORITY_DIRECTIVES: Tuple[str, ...] = (":class", ":style", "@click", "@change", "v-on")


@dataclass
class LLMSettings:
    provider: str = "ollama"
    model: str = "qwen2.5-coder:7b"
    api_key: str = ""
    endpoint: str = "http://127.0.0.1:11434/api/generate"


@dataclass
class ReliabilitySettings:
    timeout_seconds: float = 30.0
    max_retries: int = 2
    max_concurrency: int = 2
    circuit_open_seconds: float = 30.0
    failure_threshold: int = 3
    backoff_base_seconds: float = 0.3


@dataclass
class TraceSettings:
    max_depth: int = MAX_TRACE_DEPTH
    parent_policy: str = "first"
    vue_version: Optional[int] = None
    parallel_categories: bool = False
    priority_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_PRIORITY_WEIGHTS))


@dataclass
class GraphSettings:
    alias: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIAS))
    source_dir: str = "src"
    manifest: str = DEFAULT_MANIFEST
    live_build: bool = True
    stats_command: Optional[str] = None
    build_timeout_seconds: float = 300.0
    cache_dir: Path = CACHE_DIR


@dataclass
class Settings:
    project_root: Path
    llm: LLMSettings = field(default_factory=LLMSettings)
    reliability: ReliabilitySettings = field(default_factory=ReliabilitySettings)
    trace: TraceSettings = field(default_factory=TraceSettings)
    graph: GraphSettings = field(default_factory=GraphSettings)


def _env_float(environ: Mapping[str, str], name: str, scale: float = 1.0) -> Optional[float]:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw) * scale
    except ValueError:
        return None


def _env_int(environ: Mapping[str, str], name: str) -> Optional[int]:
    value = _env_float(environ, name)
    return int(value) if value is not None else None


def _apply_section(target, values: Mapping[str, object]) -> None:
    for key, value in values.items():
        if hasattr(target, key) and value is not None:
            setattr(target, key, value)


def load_settings(
    project_root: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    file_config: Optional[Mapping[str, Mapping[str, object]]] = None,
) -> Settings:
    """Build settings from the TOML config file and environment variables.

    Precedence is: explicit *project_root*, environment, config file, defaults.
    """
    from .config_manager import load_full_config

    environ = os.environ if environ is None else environ
    file_config = load_full_config() if file_config is None else file_config

    root = project_root or environ.get("FLUXTRACE_PROJECT_ROOT") or environ.get("PROJECT_ROOT") or Path.cwd()
    settings = Settings(project_root=Path(root).expanduser().resolve())

    _apply_section(settings.llm, file_config.get("llm", {}))
    _apply_section(settings.reliability, file_config.get("reliability", {}))
    _apply_section(settings.trace, file_config.get("trace", {}))
    graph_section = dict(file_config.get("graph", {}))
    if "cache_dir" in graph_section:
        graph_section["cache_dir"] = Path(str(graph_section["cache_dir"])).expanduser()
    _apply_section(settings.graph, graph_section)

    # Environment overrides (millisecond variables keep their historical names)
    rel = settings.reliability
    timeout = _env_float(environ, "LLM_TIMEOUT_MS", 0.001)
    if timeout is not None and timeout > 0:
        rel.timeout_seconds = timeout
    retries = _env_int(environ, "LLM_MAX_RETRIES")
    if retries is not None and retries >= 0:
        rel.max_retries = retries
    concurrency = _env_int(environ, "LLM_MAX_CONCURRENCY")
    if concurrency is not None and concurrency > 0:
        rel.max_concurrency = concurrency
    open_for = _env_float(environ, "LLM_CIRCUIT_OPEN_MS", 0.001)
    if open_for is not None and open_for > 0:
        rel.circuit_open_seconds = open_for
    threshold = _env_int(environ, "LLM_CIRCUIT_FAILURE_THRESHOLD")
    if threshold is not None and threshold > 0:
        rel.failure_threshold = threshold

    if environ.get("FLUXTRACE_CACHE_DIR"):
        settings.graph.cache_dir = Path(environ["FLUXTRACE_CACHE_DIR"]).expanduser()

    vue = environ.get("FLUXTRACE_VUE") or environ.get("AI_TRACE_VUE")
    if vue and vue.strip() in ("2", "3"):
        settings.trace.vue_version = int(vue.strip())

    if environ.get("AI_API_KEY"):
        settings.llm.api_key = environ["AI_API_KEY"]
    if environ.get("AI_BASE_URL"):
        settings.llm.endpoint = environ["AI_BASE_URL"]
    if environ.get("AI_MODEL_NAME"):
        settings.llm.model = environ["AI_MODEL_NAME"]

    return settings


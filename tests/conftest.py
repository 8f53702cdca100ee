"""Pytest configuration and fixtures for FluxTrace tests."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List

import pytest

from fluxtrace.config import Settings, load_settings
from fluxtrace.graph import DependencyGraph
from fluxtrace.template_parser import TemplateParser

VALID_ANALYSIS = {
    "fullLinkTrace": "Dashboard fetches /api/dashboard and passes pageTitle to UserCard as title.",
    "dataSource": {"type": "API", "endpoint": "/api/dashboard", "method": "GET"},
    "componentAnalysis": [
        {"file": "src/views/Dashboard.vue", "role": "container", "dataMapping": "res.data.title -> this.pageTitle"},
        {"file": "src/components/UserCard.vue", "role": "display", "dataMapping": "props.title"},
    ],
    "confidence": 85,
    "relatedVariables": ["pageTitle", "title"],
}


@pytest.fixture(autouse=True)
def _mock_local_llm(monkeypatch):
    """Automatically mock the LLM provider in all tests to avoid network connections.

    OllamaProvider.generate() tries to connect to localhost:11434, which
    makes CI hang.  This fixture replaces LocalLLM.complete with a canned
    schema-valid answer so the analysis path stays offline.
    """
    monkeypatch.setattr(
        "fluxtrace.llm.LocalLLM.complete",
        lambda self, prompt: json.dumps(VALID_ANALYSIS),
    )


@pytest.fixture(autouse=True)
def _isolated_home(monkeypatch, tmp_path: Path):
    """Keep config and graph cache files out of the user's home directory."""
    monkeypatch.setattr("fluxtrace.config.CONFIG_FILE", tmp_path / "home" / "config.toml")
    monkeypatch.setenv("FLUXTRACE_CACHE_DIR", str(tmp_path / "home" / "cache"))
    for name in ("FLUXTRACE_VUE", "AI_TRACE_VUE", "AI_API_KEY", "AI_BASE_URL", "AI_MODEL_NAME", "LLM_MAX_RETRIES"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def fixture_project_path() -> Path:
    """Get path to the sample Vue project shipped with the tests."""
    return Path(__file__).parent / "fixtures" / "vue_project"


@pytest.fixture
def vue_project(temp_dir: Path, fixture_project_path: Path) -> Path:
    """A writable copy of the sample Vue project."""
    project = temp_dir / "vue_project"
    shutil.copytree(fixture_project_path, project)
    return project


@pytest.fixture
def settings(vue_project: Path, temp_dir: Path) -> Settings:
    """Settings for the sample project without live builds."""
    s = load_settings(project_root=vue_project, environ={}, file_config={})
    s.graph.live_build = False
    s.graph.cache_dir = temp_dir / "cache"
    return s


@pytest.fixture
def manifest_graph(vue_project: Path) -> DependencyGraph:
    """Dependency graph populated from the sample project's stats.json."""
    graph = DependencyGraph(vue_project)
    graph.init(vue_project / "stats.json")
    return graph


@pytest.fixture
def parser() -> TemplateParser:
    """Parser preferring the modern dialect."""
    return TemplateParser(vue_version=3)


@pytest.fixture
def make_component(temp_dir: Path) -> Callable[[str, str], Path]:
    """Write a component file below ``temp_dir`` and return its path."""

    def _make(relative: str, content: str) -> Path:
        path = temp_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _make


class FakeClient:
    """Completion client replaying scripted answers or exceptions."""

    def __init__(self, answers: List[object]):
        self.answers = list(answers)
        self.prompts: List[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if self.answers else json.dumps(VALID_ANALYSIS)
        if isinstance(answer, BaseException):
            raise answer
        return answer


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_client() -> Callable[[List[object]], FakeClient]:
    return FakeClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def valid_analysis() -> Dict[str, object]:
    return json.loads(json.dumps(VALID_ANALYSIS))

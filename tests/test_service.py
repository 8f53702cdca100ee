"""Tests for request orchestration and the HTTP-facing result shapes."""

import json
from pathlib import Path

import pytest

from fluxtrace.analyst import TraceAnalyst
from fluxtrace.config import ReliabilitySettings, Settings, load_settings
from fluxtrace.errors import FileNotFound, NodeNotLocated
from fluxtrace.service import TraceService


@pytest.fixture
def service(settings: Settings, fake_client, clock, valid_analysis) -> TraceService:
    analyst = TraceAnalyst(
        fake_client([json.dumps(valid_analysis)] * 5),
        ReliabilitySettings(),
        sleep=lambda s: None,
        clock=clock,
    )
    return TraceService(settings, analyst=analyst)


class TestAnalyze:
    """End-to-end analysis of clicks in the sample project."""

    def test_prop_chain_with_analysis(self, service: TraceService):
        result = service.analyze("src/components/UserCard.vue", 3, 6)

        assert result["message"] == "Analysis complete"
        assert result["targetElement"] == '<h3 class="title">{{ title }}</h3>'
        assert [s["file"] for s in result["traceChains"]["content"]] == [
            "src/components/UserCard.vue",
            "src/views/Dashboard.vue",
        ]
        assert result["chainEndings"] == {
            "content": "no_further_source",
            "attributes": "no_variables",
            "conditionals": "no_variables",
        }
        assert result["aiAnalysis"]["dataSource"]["endpoint"] == "/api/dashboard"
        assert result["aiAnalysis"]["clickedElement"] == result["targetElement"]
        assert "// File: src/views/Dashboard.vue" in result["finalCodeForAI"]
        assert result["rankedVariables"][0]["name"] == "title"

    def test_api_evidence_reaches_prompt(self, service: TraceService):
        service.analyze("src/components/UserCard.vue", 3, 6)

        prompt = service.analyst.client.prompts[-1]
        assert '"endpoint": "/api/dashboard"' in prompt
        assert '"method": "GET"' in prompt

    def test_without_ai(self, service: TraceService):
        result = service.analyze("src/components/UserCard.vue", 4, 6, use_ai=False)

        assert result["aiAnalysis"] is None
        assert result["chainEndings"]["content"] == "store_terminal"
        assert result["traceChains"]["content"][1]["isStore"] is True
        assert service.analyst.client.prompts == []

    def test_static_element(self, service: TraceService):
        result = service.analyze("src/components/Counter.vue", 5, 6)

        assert result["isStatic"] is True
        assert result["message"] == "Static content"
        assert result["aiAnalysis"]["dataSource"]["type"] == "Static"
        assert result["aiAnalysis"]["confidence"] == 100
        assert result["traceChain"][0]["tag"] == "span"
        assert all(chain == [] for chain in result["traceChains"].values())
        assert service.analyst.client.prompts == []

    def test_leading_slash_and_absolute_paths(self, service: TraceService, vue_project: Path):
        relative = service.analyze("/src/components/Counter.vue", 3, 6, use_ai=False)
        absolute = service.analyze(str(vue_project / "src/components/Counter.vue"), 3, 6, use_ai=False)

        assert relative["traceChains"] == absolute["traceChains"]
        assert relative["traceChains"]["content"][0]["file"] == "src/components/Counter.vue"

    def test_missing_file(self, service: TraceService):
        with pytest.raises(FileNotFound):
            service.analyze("src/components/Missing.vue", 1, 0)

    def test_position_outside_template(self, service: TraceService):
        with pytest.raises(NodeNotLocated):
            service.analyze("src/components/Counter.vue", 15, 2)


class TestHandle:
    """Parameter validation and status mapping."""

    def test_missing_path(self, service: TraceService):
        assert service.handle({}) == (400, {"error": "Missing file path"})
        assert service.handle({"path": ""})[0] == 400

    def test_not_found(self, service: TraceService):
        status, body = service.handle({"path": "src/Nope.vue", "line": "1", "column": "0"})

        assert status == 404
        assert body["path"] == "src/Nope.vue"
        assert "not found" in body["message"].lower()

    def test_unparsable(self, service: TraceService, vue_project: Path):
        (vue_project / "src/components/Pug.vue").write_text('<template lang="pug">\ndiv\n</template>\n')

        status, body = service.handle({"path": "src/components/Pug.vue"})

        assert status == 422
        assert len(body["reasons"]) == 2

    def test_not_located(self, service: TraceService):
        status, body = service.handle({"path": "src/components/Counter.vue", "line": 15, "column": 2})

        assert status == 422
        assert (body["line"], body["column"]) == (15, 2)

    def test_string_coordinates(self, service: TraceService):
        status, body = service.handle({"path": "src/components/Counter.vue", "line": "3", "column": "6.0"})

        assert status == 200
        assert body["categorizedVars"]["all"] == ["count"]

    def test_malformed_manifest_is_not_fatal(self, service: TraceService, vue_project: Path):
        (vue_project / "stats.json").write_text("[]")

        first, _ = service.handle({"path": "src/components/Counter.vue", "line": 3, "column": 6})
        second, _ = service.handle({"path": "src/components/Counter.vue", "line": 3, "column": 6})

        assert (first, second) == (200, 200)
        assert service.graph.ready
        assert service.graph.source == "empty"

    def test_internal_error(self, service: TraceService, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(service, "analyze", explode)

        assert service.handle({"path": "src/App.vue"}) == (500, {"error": "Internal server error"})


class TestSettings:
    def test_environment_overrides(self, temp_dir: Path):
        environ = {
            "LLM_TIMEOUT_MS": "1500",
            "LLM_MAX_RETRIES": "0",
            "LLM_MAX_CONCURRENCY": "4",
            "LLM_CIRCUIT_OPEN_MS": "2000",
            "LLM_CIRCUIT_FAILURE_THRESHOLD": "5",
            "FLUXTRACE_VUE": "2",
            "AI_MODEL_NAME": "gpt-4o",
        }
        s = load_settings(project_root=temp_dir, environ=environ, file_config={})

        assert s.reliability.timeout_seconds == pytest.approx(1.5)
        assert s.reliability.max_retries == 0
        assert s.reliability.max_concurrency == 4
        assert s.reliability.circuit_open_seconds == pytest.approx(2.0)
        assert s.reliability.failure_threshold == 5
        assert s.trace.vue_version == 2
        assert s.llm.model == "gpt-4o"

    def test_invalid_values_ignored(self, temp_dir: Path):
        s = load_settings(project_root=temp_dir, environ={"LLM_TIMEOUT_MS": "soon", "LLM_MAX_CONCURRENCY": "0"}, file_config={})

        assert s.reliability.timeout_seconds == 30.0
        assert s.reliability.max_concurrency == 2

    def test_file_sections(self, temp_dir: Path):
        file_config = {
            "trace": {"max_depth": 4, "parent_policy": "binding"},
            "graph": {"manifest": "dist/stats.json", "cache_dir": "~/graph-cache"},
        }
        s = load_settings(project_root=temp_dir, environ={}, file_config=file_config)

        assert s.trace.max_depth == 4
        assert s.trace.parent_policy == "binding"
        assert s.graph.manifest == "dist/stats.json"
        assert s.graph.cache_dir == Path("~/graph-cache").expanduser()
        assert s.project_root == temp_dir.resolve()

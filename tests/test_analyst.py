"""Tests for the structured LLM analysis and its degradation paths."""

import json

import pytest

from fluxtrace.analyst import TraceAnalyst, degraded_result, parse_analysis, strip_code_fences
from fluxtrace.config import ReliabilitySettings
from fluxtrace.errors import LLMMalformedOutput, LLMTimeout
from fluxtrace.reliability import CircuitBreaker, CircuitState


def _analyst(client, clock, sleeps=None, **options) -> TraceAnalyst:
    settings = ReliabilitySettings(**options)
    recorded = sleeps if sleeps is not None else []
    return TraceAnalyst(client, settings, sleep=recorded.append, clock=clock)


class TestParseAnalysis:
    def test_fenced_json_accepted(self, valid_analysis):
        raw = "```json\n" + json.dumps(valid_analysis) + "\n```"

        analysis = parse_analysis(raw)
        assert analysis.dataSource.type == "API"
        assert analysis.dataSource.endpoint == "/api/dashboard"
        assert analysis.variableAnalysis.content.variables == []

    def test_strip_code_fences(self):
        assert strip_code_fences("```\n{}\n```") == "{}"
        assert strip_code_fences(None) == ""

    def test_invalid_json(self):
        with pytest.raises(LLMMalformedOutput):
            parse_analysis("The data comes from the store.")

    def test_schema_violation(self, valid_analysis):
        valid_analysis["confidence"] = 140
        with pytest.raises(LLMMalformedOutput):
            parse_analysis(json.dumps(valid_analysis))

    def test_unknown_source_type_rejected(self, valid_analysis):
        valid_analysis["dataSource"]["type"] = "Database"
        with pytest.raises(LLMMalformedOutput):
            parse_analysis(json.dumps(valid_analysis))

    def test_degraded_shape(self):
        result = degraded_result("LLM_TIMEOUT")

        assert result["errorCode"] == "LLM_TIMEOUT"
        assert result["error"] == "LLM analysis degraded"
        assert result["confidence"] == 0
        assert result["dataSource"]["type"] == "UNKNOWN"
        assert result["componentAnalysis"] == []


class TestTraceAnalyst:
    """Retries, self-repair, degradation and the circuit breaker."""

    def test_success(self, fake_client, clock, valid_analysis):
        client = fake_client([json.dumps(valid_analysis)])
        analyst = _analyst(client, clock)

        result = analyst.analyze("<h3/>", "// code")

        assert result["dataSource"]["method"] == "GET"
        assert result["confidence"] == 85
        assert "errorCode" not in result
        assert len(client.prompts) == 1
        assert "<h3/>" in client.prompts[0]
        assert "// code" in client.prompts[0]
        assert analyst.semaphore.active == 0

    def test_self_repair(self, fake_client, clock, valid_analysis):
        client = fake_client(["Sure! Here is the analysis: {oops", json.dumps(valid_analysis)])
        analyst = _analyst(client, clock)

        result = analyst.analyze("<h3/>", "// code")

        assert result["confidence"] == 85
        assert len(client.prompts) == 2
        assert "strict JSON repairer" in client.prompts[1]
        assert "{oops" in client.prompts[1]

    def test_malformed_after_repair_degrades(self, fake_client, clock):
        client = fake_client(["not json", "still not json"])
        analyst = _analyst(client, clock)

        result = analyst.analyze("<h3/>", "// code")

        assert result["errorCode"] == "LLM_MALFORMED_OUTPUT"
        assert len(client.prompts) == 2
        assert analyst.breaker.failures == 0
        assert analyst.breaker.state is CircuitState.CLOSED

    def test_retries_with_backoff(self, fake_client, clock, valid_analysis):
        client = fake_client([LLMTimeout("slow"), LLMTimeout("slow"), json.dumps(valid_analysis)])
        sleeps = []
        analyst = _analyst(client, clock, sleeps, max_retries=2, backoff_base_seconds=0.5)

        result = analyst.analyze("<h3/>", "// code")

        assert result["confidence"] == 85
        assert sleeps == [0.5, 1.0]

    def test_retries_exhausted(self, fake_client, clock):
        client = fake_client([LLMTimeout("slow"), LLMTimeout("slow")])
        analyst = _analyst(client, clock, max_retries=1)

        result = analyst.analyze("<h3/>", "// code")

        assert result["errorCode"] == "LLM_CALL_FAILED"
        assert result["confidence"] == 0
        assert len(client.prompts) == 2
        assert analyst.breaker.failures == 1

    def test_fatal_error_not_retried(self, fake_client, clock):
        client = fake_client([RuntimeError("invalid api key")])
        analyst = _analyst(client, clock, max_retries=3)

        result = analyst.analyze("<h3/>", "// code")

        assert result["errorCode"] == "LLM_CALL_FAILED"
        assert len(client.prompts) == 1

    def test_open_circuit_skips_client(self, fake_client, clock):
        client = fake_client([])
        breaker = CircuitBreaker(failure_threshold=1, open_seconds=30, clock=clock)
        breaker.record_failure()
        analyst = TraceAnalyst(client, ReliabilitySettings(), breaker=breaker, sleep=lambda s: None, clock=clock)

        result = analyst.analyze("<h3/>", "// code")

        assert result["errorCode"] == "LLM_CIRCUIT_OPEN"
        assert client.prompts == []

    def test_failures_open_circuit(self, fake_client, clock):
        client = fake_client([RuntimeError("boom")] * 3)
        analyst = _analyst(client, clock, max_retries=0, failure_threshold=2)

        analyst.analyze("<a/>", "")
        analyst.analyze("<a/>", "")
        third = analyst.analyze("<a/>", "")

        assert analyst.breaker.state is CircuitState.OPEN
        assert third["errorCode"] == "LLM_CIRCUIT_OPEN"
        assert len(client.prompts) == 2

    def test_probe_after_cooldown(self, fake_client, clock, valid_analysis):
        client = fake_client([RuntimeError("boom"), json.dumps(valid_analysis)])
        analyst = _analyst(client, clock, max_retries=0, failure_threshold=1, circuit_open_seconds=30)
        analyst.analyze("<a/>", "")

        clock.advance(31)
        result = analyst.analyze("<a/>", "")

        assert result["confidence"] == 85
        assert analyst.breaker.state is CircuitState.CLOSED

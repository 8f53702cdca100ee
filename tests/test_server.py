"""Tests for the Starlette HTTP surface."""

import json

import pytest
from starlette.testclient import TestClient

from fluxtrace.analyst import TraceAnalyst
from fluxtrace.config import ReliabilitySettings, Settings
from fluxtrace.server import create_app
from fluxtrace.service import TraceService


@pytest.fixture
def client(settings: Settings, fake_client, clock, valid_analysis) -> TestClient:
    analyst = TraceAnalyst(
        fake_client([json.dumps(valid_analysis)] * 5),
        ReliabilitySettings(),
        sleep=lambda s: None,
        clock=clock,
    )
    return TestClient(create_app(TraceService(settings, analyst=analyst)))


class TestAnalyzeEndpoint:
    """GET|POST /api/analyze."""

    def test_get_with_query(self, client: TestClient):
        response = client.get("/api/analyze", params={"path": "src/components/UserCard.vue", "line": 3, "column": 6})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Analysis complete"
        assert body["aiAnalysis"]["dataSource"]["type"] == "API"

    def test_post_with_json_body(self, client: TestClient):
        response = client.post("/api/analyze", json={"path": "src/components/Counter.vue", "line": 5, "column": 6})

        assert response.status_code == 200
        assert response.json()["isStatic"] is True

    def test_query_overrides_body(self, client: TestClient):
        response = client.post(
            "/api/analyze?path=src/components/Counter.vue&line=5&column=6",
            json={"path": "src/components/Missing.vue"},
        )

        assert response.status_code == 200

    def test_missing_path(self, client: TestClient):
        response = client.get("/api/analyze")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing file path"}

    def test_malformed_body_treated_as_empty(self, client: TestClient):
        response = client.post("/api/analyze", content=b"{not json", headers={"content-type": "application/json"})

        assert response.status_code == 400

    def test_not_found(self, client: TestClient):
        response = client.get("/api/analyze", params={"path": "src/Nope.vue"})

        assert response.status_code == 404
        assert response.json()["path"] == "src/Nope.vue"

    def test_cors_headers(self, client: TestClient):
        response = client.get(
            "/api/analyze",
            params={"path": "src/components/Counter.vue", "line": 5, "column": 6},
            headers={"Origin": "http://localhost:8080"},
        )

        assert response.headers["access-control-allow-origin"] == "*"


class TestHealthEndpoint:
    def test_health_reports_graph_and_circuit(self, client: TestClient):
        client.get("/api/analyze", params={"path": "src/components/Counter.vue", "line": 5, "column": 6})

        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["graph"]["ready"] is True
        assert body["graph"]["source"] == "manifest"
        assert body["circuit"] == "CLOSED"

"""Tests for network-call evidence extraction."""

from fluxtrace.api_evidence import extract_api_evidence, normalize_method
from fluxtrace.models import TraceStep
from fluxtrace.prompts import NO_API_EVIDENCE, format_api_evidence


def _step(script: str, file: str = "src/views/List.vue") -> TraceStep:
    return TraceStep(
        file=file,
        tag="div",
        category="content",
        traced_variables=["list"],
        pruned_script=script,
        source="<div/>",
    )


class TestNormalizeMethod:
    def test_variants(self):
        assert normalize_method("'post'") == "POST"
        assert normalize_method("METHOD.GET") == "GET"
        assert normalize_method("del") == "DELETE"
        assert normalize_method("verb") == "UNKNOWN"
        assert normalize_method(None) == "UNKNOWN"


class TestExtractApiEvidence:
    """Request-like calls found in pruned scripts."""

    def test_axios_member_call(self):
        script = "export default {\n  created() {\n    axios.get('/api/list').then(res => { this.list = res.data })\n  }\n}"
        evidence = extract_api_evidence([_step(script)])

        assert len(evidence) == 1
        item = evidence[0]
        assert (item.callee, item.endpoint, item.method) == ("axios.get", "/api/list", "GET")
        assert item.confidence == "high"
        assert item.line == 3
        assert item.file == "src/views/List.vue"

    def test_request_helper_forms(self):
        script = (
            "request('/api/users', METHOD.POST)\n"
            "request({ url: '/api/roles', method: 'put' })\n"
        )
        evidence = extract_api_evidence([_step(script)])

        assert [(e.endpoint, e.method) for e in evidence] == [("/api/users", "POST"), ("/api/roles", "PUT")]

    def test_fetch_with_options(self):
        evidence = extract_api_evidence([_step("fetch('/api/items', { method: 'DELETE' })")])

        assert evidence[0].method == "DELETE"
        assert evidence[0].endpoint == "/api/items"

    def test_fetch_without_method_is_medium(self):
        evidence = extract_api_evidence([_step("fetch(`/api/items/${id}`)")])

        assert evidence[0].endpoint == "`/api/items/${id}`"
        assert evidence[0].method == "UNKNOWN"
        assert evidence[0].confidence == "medium"

    def test_instance_wrappers(self):
        script = "export default { methods: { save() { return this.$http.post('/api/save', this.form) } } }"
        evidence = extract_api_evidence([_step(script)])

        assert evidence[0].callee == "this.$http.post"
        assert (evidence[0].endpoint, evidence[0].method) == ("/api/save", "POST")

    def test_symbolic_endpoints_ranked_last(self):
        script = (
            "export default { created() {\n"
            "  this.$apis.user.list(this.query)\n"
            "  axios.delete('/api/cache')\n"
            "  axios.get('/api/users')\n"
            "} }"
        )
        evidence = extract_api_evidence([_step(script)])

        assert [e.endpoint for e in evidence] == ["/api/users", "/api/cache", "$apis.user.list"]
        assert evidence[-1].confidence == "medium"

    def test_duplicates_across_steps_collapse(self):
        step = _step("axios.get('/api/list')")
        assert len(extract_api_evidence([step, step])) == 1

    def test_plain_calls_ignored(self):
        assert extract_api_evidence([_step("format(value)\nthis.compute()")]) == []
        assert extract_api_evidence([_step("")]) == []


class TestFormatting:
    def test_empty_evidence_message(self):
        assert format_api_evidence([]) == NO_API_EVIDENCE

    def test_evidence_serialised(self):
        evidence = extract_api_evidence([_step("axios.get('/api/list')")])
        assert '"endpoint": "/api/list"' in format_api_evidence(evidence)

"""Tests for identifier extraction, variable classification and script pruning."""

from pathlib import Path

from fluxtrace.expressions import extract_identifiers
from fluxtrace.locator import locate_in_file
from fluxtrace.pruner import prune
from fluxtrace.template_parser import TemplateParser
from fluxtrace.variables import classify, rank_variables, resolve_seeds, resolve_source

COMPOSITION_SCRIPT = """import { ref, computed } from 'vue'
import { fetchUser } from '@/api/user'
import { formatDate } from '@/utils/date'

const user = ref(null)
const loading = ref(false)
const title = computed(() => (user.value ? user.value.name : ''))

async function load() {
  loading.value = true
  user.value = await fetchUser()
  loading.value = false
}

load()
"""

OPTIONS_SCRIPT = """import Badge from './Badge.vue'
import { getList } from '@/api/list'

export default {
  components: { Badge },
  filters: {
    upper(v) { return v.toUpperCase() }
  },
  data() {
    return { list: [] }
  },
  created() {
    getList().then(res => { this.list = res.data })
  }
}
"""


def _parse(path: Path, parser: TemplateParser):
    return parser.parse(path.read_text(encoding="utf-8"), path.name)


class TestExtractIdentifiers:
    def test_member_properties_skipped(self):
        assert extract_identifiers("user.profile.name") == ["user"]

    def test_builtins_and_literals_skipped(self):
        assert extract_identifiers("Math.max(count, 'limit') + this.offset") == ["count"]

    def test_source_order_and_dedupe(self):
        assert extract_identifiers("items.length > limit && items[0] !== limit") == ["items", "limit"]

    def test_object_keys_skipped(self):
        assert extract_identifiers("{ active: isActive, 'text-danger': hasError }") == ["isActive", "hasError"]

    def test_render_helpers_skipped(self):
        assert extract_identifiers('_s(_f("capitalize")(message))') == ["message"]

    def test_empty(self):
        assert extract_identifiers("") == []
        assert extract_identifiers(None) == []


class TestClassify:
    """Splitting an element's variables by how it uses them."""

    def test_content_and_conditionals(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "components" / "UserCard.vue", parser)
        categorized = classify(parsed, locate_in_file(parsed, 4, 6))

        assert categorized.names("content") == ["displayName"]
        assert categorized.names("conditionals") == ["visible"]
        assert categorized.names("attributes") == []
        assert categorized.all == ["displayName", "visible"]

    def test_event_handler_is_attribute(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "components" / "Counter.vue", parser)
        categorized = classify(parsed, locate_in_file(parsed, 4, 6))

        assert [item.directive for item in categorized.attributes] == ["@click"]
        assert categorized.names("attributes") == ["increment"]

    def test_static_element(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "components" / "Counter.vue", parser)
        categorized = classify(parsed, locate_in_file(parsed, 5, 6))

        assert categorized.is_static
        assert categorized.to_dict()["all"] == []

    def test_legacy_conditionals_from_fields(self):
        text = '<template>\n  <div>\n    <b v-if="ok" v-show="shown" :class="cls">{{ label }}</b>\n  </div>\n</template>\n'
        parsed = TemplateParser(vue_version=2).parse(text, "B.vue")
        categorized = classify(parsed, locate_in_file(parsed, 3, 5))

        assert categorized.names("content") == ["label"]
        assert categorized.names("attributes") == ["cls"]
        assert sorted(categorized.names("conditionals")) == ["ok", "shown"]


class TestLoopAliases:
    def test_alias_resolves_to_collection(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "views" / "Dashboard.vue", parser)
        li = locate_in_file(parsed, 5, 8)

        assert resolve_source(parsed, li, "item") == "items"
        assert resolve_source(parsed, li, "other") == "other"
        assert resolve_seeds(parsed, li, ["item"]) == ["items"]

    def test_classify_reports_collection(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "views" / "Dashboard.vue", parser)
        categorized = classify(parsed, locate_in_file(parsed, 5, 8))

        assert categorized.content[0].expression == "item.label"
        assert categorized.content[0].variables == ("items",)
        assert categorized.names("attributes") == ["items"]
        assert categorized.all == ["items"]

    def test_classify_reports_collection_legacy(self, fixture_project_path: Path):
        text = (fixture_project_path / "src" / "views" / "Dashboard.vue").read_text(encoding="utf-8")
        parsed = TemplateParser(vue_version=2).parse(text, "Dashboard.vue")
        categorized = classify(parsed, locate_in_file(parsed, 5, 8))

        assert categorized.all == ["items"]

    def test_destructured_alias_in_ancestor(self, parser):
        text = (
            '<template>\n  <ul>\n    <li v-for="{ id, name } in users.active" :key="id">\n'
            "      <span>{{ name }}</span>\n    </li>\n  </ul>\n</template>\n"
        )
        parsed = parser.parse(text, "Users.vue")
        span = locate_in_file(parsed, 4, 8)

        assert span.tag == "span"
        assert resolve_seeds(parsed, span, ["name"]) == ["users"]


class TestRanking:
    def test_content_outranks_conditionals(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "components" / "UserCard.vue", parser)
        ranked = rank_variables(classify(parsed, locate_in_file(parsed, 4, 6)))

        assert [r["name"] for r in ranked] == ["displayName", "visible"]
        assert ranked[0]["score"] == 3.0
        assert ranked[0]["categories"] == ["content"]

    def test_event_handlers_use_low_priority_weight(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "components" / "Counter.vue", parser)
        ranked = rank_variables(classify(parsed, locate_in_file(parsed, 4, 6)))

        assert ranked == [{"name": "increment", "score": 1.5, "categories": ["attributes"]}]

    def test_custom_weights(self, parser, fixture_project_path: Path):
        parsed = _parse(fixture_project_path / "src" / "components" / "UserCard.vue", parser)
        ranked = rank_variables(classify(parsed, locate_in_file(parsed, 4, 6)), {"conditionals": 10.0})

        assert ranked[0]["name"] == "visible"


class TestPruner:
    """Reducing a script to what the traced names depend on."""

    def test_closure_follows_declarations(self):
        pruned = prune(COMPOSITION_SCRIPT, ["title"])

        assert "const title" in pruned
        assert "const user" in pruned
        assert "formatDate" not in pruned
        assert "const loading" not in pruned

    def test_call_statements_follow_callee(self):
        pruned = prune(COMPOSITION_SCRIPT, ["load"])

        assert "async function load" in pruned
        assert pruned.rstrip().endswith("load()")
        assert "import { fetchUser }" in pruned
        assert "const loading" in pruned

    def test_framework_macros_not_followed(self):
        pruned = prune(COMPOSITION_SCRIPT, ["loading"])

        assert pruned == "const loading = ref(false)"

    def test_component_options_excised(self):
        pruned = prune(OPTIONS_SCRIPT, ["list"])

        assert "export default" in pruned
        assert "components" not in pruned
        assert "filters" not in pruned
        assert "import Badge" not in pruned
        assert "import { getList }" in pruned

    def test_module_exports_component(self):
        script = "var api = require('./api')\n\nmodule.exports = {\n  mixins: [base],\n  data: function () { return { rows: api.rows } }\n}\n"
        pruned = prune(script, ["rows"])

        assert "module.exports" in pruned
        assert "mixins" not in pruned
        assert "var api" in pruned

    def test_empty_inputs(self):
        assert prune("", ["x"]) == ""
        assert prune(COMPOSITION_SCRIPT, []) == ""

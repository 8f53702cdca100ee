"""Tests for Vuex helper detection and store module analysis."""

from pathlib import Path

from fluxtrace.models import StoreMapping
from fluxtrace.store_trace import (
    analyze_store_module,
    find_mutation_triggers,
    find_store_mapping,
    locate_store_module,
)


class TestFindStoreMapping:
    """Helper calls that map store members into a component."""

    def test_namespaced_array(self):
        script = "export default { computed: { ...mapGetters('user', ['displayName', 'isLoggedIn']) } }"
        mapping = find_store_mapping(script, ["isLoggedIn"])

        assert mapping == StoreMapping("mapGetters", "getter", "user", "isLoggedIn", "isLoggedIn")

    def test_root_state_object_with_string(self):
        script = "export default { computed: { ...mapState({ total: 'cartTotal' }) } }"
        mapping = find_store_mapping(script, ["total"])

        assert mapping.kind == "state"
        assert mapping.namespace is None
        assert (mapping.key, mapping.local_name) == ("cartTotal", "total")

    def test_state_function_forms(self):
        script = (
            "export default { computed: { ...mapState('cart', {\n"
            "  count: state => state.items,\n"
            "  owner(state) { return state.customer.name }\n"
            "}) } }"
        )

        assert find_store_mapping(script, ["count"]).key == "items"
        assert find_store_mapping(script, ["owner"]).key == "customer"

    def test_last_matching_helper_wins(self):
        script = (
            "export default { computed: {\n"
            "  ...mapGetters('a', ['label']),\n"
            "  ...mapGetters('b', ['label'])\n"
            "} }"
        )

        assert find_store_mapping(script, ["label"]).namespace == "b"

    def test_unmapped_names(self):
        script = "export default { computed: { ...mapGetters(['x']) } }"

        assert find_store_mapping(script, ["y"]) is None
        assert find_store_mapping("", ["x"]) is None


class TestStoreModule:
    def test_locate_prefers_namespaced_module(self, vue_project: Path):
        assert locate_store_module(vue_project, "user") == vue_project / "src/store/modules/user.js"
        assert locate_store_module(vue_project, "cart") == vue_project / "src/store/index.js"
        assert locate_store_module(vue_project / "src", "user") is None

    def test_state_mapping_writes(self, vue_project: Path):
        mapping = StoreMapping("mapState", "state", "user", "token", "token")
        analysis = analyze_store_module(vue_project / "src/store/modules/user.js", mapping)

        assert analysis.related_state == ["token"]
        assert [m.name for m in analysis.mutations] == ["SET_TOKEN"]
        assert analysis.mutations[0].line == 17
        assert "token: ''" in analysis.source

    def test_unknown_getter(self, vue_project: Path):
        mapping = StoreMapping("mapGetters", "getter", "user", "missing", "missing")
        analysis = analyze_store_module(vue_project / "src/store/modules/user.js", mapping)

        assert analysis.source == ""
        assert analysis.mutations == []

    def test_triggers_exclude_store_module(self, vue_project: Path):
        module = vue_project / "src/store/modules/user.js"
        triggers = find_mutation_triggers(vue_project, "user", "SET_PROFILE", exclude=module)

        assert [t.file for t in triggers] == ["src/services/session.js"]

        unfiltered = find_mutation_triggers(vue_project, "user", "SET_PROFILE")
        assert {t.file for t in unfiltered} == {"src/services/session.js", "src/store/modules/user.js"}

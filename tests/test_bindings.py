"""Tests for prop declarations and the parent bindings that feed them."""

from pathlib import Path

from fluxtrace.bindings import declared_props, find_binding_in_parent, is_from_props


class TestPropDeclarations:
    def test_options_array(self):
        script = "export default { props: ['title', 'visible'], data() { return { own: 1 } } }"

        assert is_from_props(script, "title")
        assert is_from_props(script, "visible")
        assert not is_from_props(script, "own")

    def test_options_object(self):
        script = "export default { props: { title: String, size: { type: Number, default: 1 } } }"

        assert declared_props(script) == {"title", "size"}

    def test_define_props_runtime(self):
        script = "const props = defineProps({ label: String })\nconst local = ref(0)\n"

        assert is_from_props(script, "label")
        assert not is_from_props(script, "local")

    def test_define_props_type_only(self):
        script = "const props = defineProps<{ title: string; count?: number }>()\n"

        assert declared_props(script, "ts") == {"title", "count"}

    def test_no_props(self):
        assert not is_from_props("export default { data() { return { title: '' } } }", "title")
        assert not is_from_props("", "title")
        assert not is_from_props("export default { props: ['title'] }", "")


class TestParentBindings:
    def test_binding_found_in_parent(self, parser, fixture_project_path: Path):
        path = fixture_project_path / "src" / "views" / "Dashboard.vue"
        parent = parser.parse(path.read_text(encoding="utf-8"), path.name)

        binding = find_binding_in_parent(parent, "src/components/UserCard.vue", "title")

        assert binding is not None
        assert binding.expression == "pageTitle"
        assert binding.line == 3
        assert binding.snippet.startswith("<user-card")

    def test_unbound_prop(self, parser, fixture_project_path: Path):
        path = fixture_project_path / "src" / "views" / "Dashboard.vue"
        parent = parser.parse(path.read_text(encoding="utf-8"), path.name)

        assert find_binding_in_parent(parent, "src/components/UserCard.vue", "subtitle") is None

"""
Tests for the template generator — collection, merging, conflicts, writing, hooks.
"""

import json
import textwrap
from pathlib import Path

import pytest

from flowstate.core.config.module_loader import load_module
from flowstate.core.models import ModuleImplementation, StackModule
from flowstate.core.models.template import GenerationContext
from flowstate.core.services.conflict_resolver import ConflictResolver
from flowstate.core.services.template_generator import (
    GenerationResult,
    ProjectPathError,
    TemplateGenerator,
)

HOOK_IMPL = textwrap.dedent("""\
    from flowstate.core.models.implementation import ModuleImplementation


    class Hooked(ModuleImplementation):
        def get_template_files(self, context):
            return {
                "src/info.txt": {"content": "{{ projectName | kebab_case }}", "render": True},
                "shared.txt": "from impl",
            }

        def get_merge_strategy(self, path):
            return "append" if path.endswith(".log") else None

        def after_install(self, context):
            (context.project_path / "hook.txt").write_text("done")

        def get_post_install_instructions(self, context):
            return ["Run the thing"]
""")

FAILING_IMPL = textwrap.dedent("""\
    from flowstate.core.models.implementation import ModuleImplementation


    class Broken(ModuleImplementation):
        def before_install(self, context):
            raise RuntimeError("hook exploded")
""")


@pytest.fixture
def out(tmp_path: Path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def load(make_module):
    """Write a module to disk and load it."""

    def _load(name, descriptor=None, **kwargs) -> StackModule:
        return load_module(make_module(name, descriptor, **kwargs))

    return _load


def _generate(modules, out: Path, **kwargs) -> GenerationResult:
    resolver = kwargs.pop("conflict_resolver", None)
    context = GenerationContext(project_path=out, project_name="Demo Shop", **kwargs)
    return TemplateGenerator(modules, out, conflict_resolver=resolver).generate(context)


class TestCollect:
    def test_directory_walk(self, load, out):
        module = load("base", templates={
            "README.md.template": "# {{ projectName }}\n",
            "src/a.txt": "__PROJECT_NAME__",
            "notes.txt.merge": "note",
            "logo.png": b"\x89PNG\xff\x00",
            "node_modules/skip.js": "x",
            "hooks/setup.sh": "x",
        })
        records = TemplateGenerator([module], out).collect(GenerationContext(project_path=out))
        assert sorted(records) == ["README.md", "logo.png", "notes.txt", "src/a.txt"]
        assert records["README.md"][0].render
        assert not records["src/a.txt"][0].render
        assert records["notes.txt"][0].merge_strategy == "append"
        assert records["logo.png"][0].is_binary

    def test_inline_and_routes(self, load, out):
        module = load("inline", {
            "templates": {"src/x.js.template": "{{ 1 + 1 }}", "plain.txt": "text"},
            "routes": {"src/router/index.js": [{"path": "/"}]},
        })
        records = TemplateGenerator([module], out).collect(GenerationContext(project_path=out))
        assert records["src/x.js"][0].render
        assert not records["plain.txt"][0].render
        assert records["src/router/index.js"][0].merge_strategy == "merge-routes"

    def test_inline_source_relative_to_module(self, load, make_module, out):
        path = make_module("vuetify", {"templates": {"src/App.vue": {"source": "overrides/App.vue"}}})
        (path / "overrides").mkdir()
        (path / "overrides" / "App.vue").write_text("<v-app/>\n")
        records = TemplateGenerator([load_module(path)], out).collect(GenerationContext(project_path=out))
        contribution = records["src/App.vue"][0]
        assert contribution.content == "<v-app/>\n"
        assert contribution.render

    def test_implementation_overrides_directory(self, load, out):
        module = load("hooked", templates={"shared.txt": "from dir"}, implementation=HOOK_IMPL)
        records = TemplateGenerator([module], out).collect(GenerationContext(project_path=out))
        assert [c.content for c in records["shared.txt"]] == ["from impl"]

    def test_entry_without_content(self, load, out):
        module = load("empty", {"templates": {"a.txt": {"merge": "append"}}})
        result = GenerationResult()
        records = TemplateGenerator([module], out).collect(GenerationContext(project_path=out), result)
        assert records == {}
        assert result.errors[0]["module"] == "empty"


class TestStrategyFor:
    def test_precedence(self):
        module = StackModule(name="m", merge_strategies={"*.css": "prepend", "config/app.json": "replace"})
        assert TemplateGenerator.strategy_for(module, "src/style.css") == "prepend"
        assert TemplateGenerator.strategy_for(module, "config/app.json") == "replace"
        assert TemplateGenerator.strategy_for(module, "package.json") == "merge-package"

        class Impl(ModuleImplementation):
            def get_merge_strategy(self, path):
                return "append" if path.endswith(".css") else None

        module.attach_implementation(Impl())
        assert TemplateGenerator.strategy_for(module, "src/style.css") == "append"
        assert TemplateGenerator.strategy_for(module, "config/app.json") == "replace"


class TestGenerate:
    def test_writes_rendered_files(self, load, out):
        module = load("base", templates={
            "README.md.template": "# {{ projectName }}\n",
            "src/a.txt": "__PROJECT_NAME__",
            "logo.png": b"\x89PNG\xff\x00",
        })
        result = _generate([module], out)
        assert result.success
        assert (out / "README.md").read_text() == "# Demo Shop\n"
        assert (out / "src" / "a.txt").read_text() == "Demo Shop"
        assert (out / "logo.png").read_bytes() == b"\x89PNG\xff\x00"
        assert sorted(result.generated) == ["README.md", "logo.png", "src/a.txt"]

    def test_package_json_merged(self, load, out):
        a = load("a", {"priority": 60}, templates={"package.json": '{"name": "__PROJECT_NAME__", "dependencies": {"vue": "^3.4.0"}}'})
        b = load("b", templates={"package.json": '{"dependencies": {"pinia": "^2.1.0"}}'})
        result = _generate([a, b], out)
        pkg = json.loads((out / "package.json").read_text())
        assert pkg["name"] == "Demo Shop"
        assert pkg["dependencies"] == {"pinia": "^2.1.0", "vue": "^3.4.0"}
        assert result.conflicts == []

    def test_merge_suffix_appends(self, load, out):
        a = load("a", templates={"notes.txt.merge": "from a"})
        b = load("b", templates={"notes.txt.merge": "from b"})
        _generate([a, b], out)
        assert (out / "notes.txt").read_text() == "from a\n\nfrom b\n"

    def test_replace_conflict_priority(self, load, out):
        a = load("vue3", {"priority": 90}, templates={"src/App.vue": "vue"})
        b = load("vuetify", {"priority": 70}, templates={"src/App.vue": "vuetify"})
        result = _generate([a, b], out)
        assert (out / "src" / "App.vue").read_text() == "vue"
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.winner == "vue3"
        assert conflict.modules == ["vue3", "vuetify"]

    def test_per_file_priority(self, load, out):
        a = load("vue3", {"priority": 90}, templates={"src/App.vue": "vue"})
        b = load("vuetify", {"priority": 70, "templates": {"src/App.vue": {"content": "vuetify", "priority": 95}}})
        _generate([a, b], out)
        assert (out / "src" / "App.vue").read_text() == "vuetify"

    def test_conflict_merged_by_resolver(self, load, out):
        a = load("a", {"mergeStrategies": {"tsconfig.json": "replace"}}, templates={"tsconfig.json": '{"a": 1}'})
        b = load("b", templates={"tsconfig.json": '{"b": 2}'})
        result = _generate([a, b], out, conflict_resolver=ConflictResolver("merge"))
        assert json.loads((out / "tsconfig.json").read_text()) == {"a": 1, "b": 2}
        assert result.conflicts[0].merged

    def test_interactive_skip(self, load, out):
        a = load("a", templates={"src/App.vue": "a"})
        b = load("b", templates={"src/App.vue": "b"})
        resolver = ConflictResolver("interactive", lambda *args: "skip")
        result = _generate([a, b], out, conflict_resolver=resolver)
        assert result.skipped == ["src/App.vue"]
        assert not (out / "src" / "App.vue").exists()
        assert result.conflicts[0].skipped

    def test_binary_collision_by_priority(self, load, out):
        a = load("a", {"priority": 40}, templates={"logo.png": b"\xffA"})
        b = load("b", templates={"logo.png": b"\xffB"})
        result = _generate([a, b], out)
        assert (out / "logo.png").read_bytes() == b"\xffB"
        assert result.conflicts[0].winner == "b"

    def test_routes_merged(self, load, out):
        a = load("a", {"routes": {"src/router/index.js": [{"path": "/", "name": "home", "component": "./views/Home.vue"}]}})
        b = load("b", {"routes": {"src/router/index.js": [{"path": "/login", "meta": {"requiresAuth": False}}]}})
        _generate([a, b], out)
        router = (out / "src" / "router" / "index.js").read_text()
        assert "path: '/'" in router
        assert "path: '/login'" in router
        assert router.index("'/'") < router.index("'/login'")

    def test_single_module_routes(self, load, out):
        a = load("a", {"routes": {"src/router/index.js": [{"path": "/about"}]}})
        _generate([a], out)
        assert "path: '/about'" in (out / "src" / "router" / "index.js").read_text()

    def test_context_modules_filled(self, load, out):
        a = load("a", templates={"x.txt.template": "{{ modules | join(',') }}"})
        b = load("b")
        _generate([a, b], out)
        assert (out / "x.txt").read_text() == "a,b"


class TestFailures:
    def test_invalid_json_falls_back_to_priority(self, load, out):
        a = load("a", {"priority": 60}, templates={"package.json": '{"name": "a"}', "ok.txt": "ok"})
        b = load("b", templates={"package.json": "{oops"})
        result = _generate([a, b], out)
        assert not result.success
        assert result.partial
        assert result.errors[0]["module"] == "b"
        assert result.errors[0]["path"] == "package.json"
        assert json.loads((out / "package.json").read_text()) == {"name": "a"}
        assert result.conflicts[0].winner == "a"
        assert (out / "ok.txt").exists()

    def test_render_failure_writes_unrendered(self, load, out):
        a = load("a", templates={"bad.txt.template": "__PROJECT_NAME__ {% if %}"})
        result = _generate([a], out)
        assert (out / "bad.txt").read_text() == "Demo Shop {% if %}"
        assert "Render failed" in result.errors[0]["message"]
        assert not result.success

    def test_template_runtime_error_does_not_stop_run(self, load, out):
        a = load("a", templates={"x.txt.template": "{{ 1 // 0 }}", "ok.txt": "ok"})
        result = _generate([a], out)
        assert not result.success
        assert result.partial
        assert [(e["path"], e["module"]) for e in result.errors] == [("x.txt", "a")]
        assert "ZeroDivisionError" in result.errors[0]["message"]
        assert (out / "x.txt").read_text() == "{{ 1 // 0 }}"
        assert sorted(result.generated) == ["ok.txt", "x.txt"]

    @pytest.mark.parametrize("section", ['"dependencies": []', '"scripts": "vite"', '"engines": 18'])
    def test_mistyped_package_section(self, load, out, section):
        a = load("a", {"priority": 60}, templates={"package.json": '{"name": "a"}', "ok.txt": "ok"})
        b = load("b", templates={"package.json": "{" + section + "}"})
        result = _generate([a, b], out)
        assert not result.success
        assert [(e["path"], e["module"]) for e in result.errors] == [("package.json", "b")]
        assert json.loads((out / "package.json").read_text()) == {"name": "a"}
        assert (out / "ok.txt").exists()

    def test_null_package_section(self, load, out):
        a = load("a", {"priority": 60}, templates={"package.json": '{"name": "x", "scripts": null}'})
        b = load("b", templates={"package.json": '{"scripts": {"dev": "vite"}}'})
        result = _generate([a, b], out)
        assert result.success, result.errors
        assert json.loads((out / "package.json").read_text())["scripts"] == {"dev": "vite"}

    def test_unexpected_merge_failure_is_contained(self, load, out, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("flowstate.core.services.template_generator.apply_strategy", explode)
        a = load("a", templates={".gitignore": "node_modules\n", "ok.txt": "ok"})
        b = load("b", templates={".gitignore": "dist\n"})
        result = _generate([a, b], out)
        assert result.errors == [{"path": ".gitignore", "module": "a", "message": "RuntimeError: boom"}]
        assert not (out / ".gitignore").exists()
        assert (out / "ok.txt").exists()

    def test_refuses_paths_outside_project(self, load, out):
        a = load("a", {"templates": {"../evil.txt": "nope"}})
        result = _generate([a], out)
        assert "outside the project" in result.errors[0]["message"]
        assert not (out.parent / "evil.txt").exists()

    def test_project_path_is_a_file(self, load, tmp_path):
        target = tmp_path / "file"
        target.write_text("x")
        with pytest.raises(ProjectPathError):
            _generate([load("a")], target)

    def test_hook_failure_recorded(self, load, out):
        a = load("broken", templates={"a.txt": "a"}, implementation=FAILING_IMPL)
        result = _generate([a], out)
        assert (out / "a.txt").exists()
        assert result.errors == [{"path": "", "module": "broken", "message": "before_install hook failed: hook exploded"}]
        assert result.hooks_run == ["broken:after_install"]


class TestHooksAndInstructions:
    def test_implementation_run(self, load, out):
        module = load("hooked", templates={"shared.txt": "from dir"}, implementation=HOOK_IMPL)
        result = _generate([module], out)
        assert result.success
        assert (out / "src" / "info.txt").read_text() == "demo-shop"
        assert (out / "shared.txt").read_text() == "from impl"
        assert (out / "hook.txt").read_text() == "done"
        assert result.hooks_run == ["hooked:before_install", "hooked:after_install"]
        assert result.instructions == ["Run the thing"]

    def test_descriptor_instructions(self, load, out):
        module = load("x", {"setupInstructions": ["npm install"], "postInstallSteps": ["Add keys"]})
        result = _generate([module], out)
        assert result.instructions == ["npm install", "", "x setup:", "", "Add keys"]


class TestDryRun:
    def test_nothing_written(self, load, out):
        module = load("hooked", templates={"a.txt": "a"}, implementation=HOOK_IMPL)
        result = _generate([module], out, dry_run=True)
        assert result.dry_run
        assert not out.exists()
        assert sorted(result.generated) == ["a.txt", "shared.txt", "src/info.txt"]
        assert result.hooks_run == []

    def test_to_dict(self, load, out):
        data = _generate([load("a", templates={"a.txt": "a"})], out, dry_run=True).to_dict()
        assert data["generated"] == ["a.txt"]
        assert data["project_path"] == str(out)
        assert data["success"] is True

"""
Tests for the module loader — descriptors, categories, implementations.
"""

import textwrap
from pathlib import Path

import pytest

from flowstate.core.config.module_loader import (
    ModuleLoadError,
    find_descriptor,
    load_module,
)
from flowstate.core.models import ModuleImplementation, ModuleType

IMPL_SOURCE = textwrap.dedent("""\
    from flowstate.core.models.implementation import ModuleImplementation


    class Hello(ModuleImplementation):
        def get_merge_strategy(self, path):
            return "append" if path.endswith(".txt") else None
""")


class TestLoadModule:
    def test_json_descriptor(self, modules_root: Path, make_module):
        path = make_module("vue3", {"moduleType": "frontend-framework", "version": "3.4.0"})
        module = load_module(path)
        assert module.name == "vue3"
        assert module.version == "3.4.0"
        assert module.module_type == ModuleType.FRONTEND_FRAMEWORK
        assert module.path == path.resolve()

    def test_yaml_descriptor(self, modules_root: Path, make_module):
        path = make_module("supabase", {"moduleType": "backend-service", "provides": ["auth"]}, fmt="yaml")
        module = load_module(path)
        assert module.module_type == ModuleType.BACKEND_SERVICE
        assert module.provides == ["auth"]

    def test_name_defaults_to_directory(self, modules_root: Path, make_module):
        path = modules_root / "tailwind"
        path.mkdir()
        (path / "module.json").write_text('{"moduleType": "ui-library"}')
        assert load_module(path).name == "tailwind"

    def test_config_json_first(self, modules_root: Path, make_module):
        path = modules_root / "x"
        path.mkdir()
        (path / "config.json").write_text('{"name": "from-config"}')
        (path / "module.json").write_text('{"name": "from-module"}')
        assert find_descriptor(path) == path / "config.json"
        assert load_module(path).name == "from-config"

    def test_category_default(self, modules_root: Path, make_module):
        path = make_module("x")
        assert load_module(path).category == "other"
        assert load_module(path, category="ui").category == "ui"

    def test_declared_category_wins(self, modules_root: Path, make_module):
        path = make_module("x", {"category": "backend"})
        assert load_module(path, category="ui").category == "backend"

    def test_missing_descriptor(self, modules_root: Path, make_module):
        path = modules_root / "empty"
        path.mkdir()
        with pytest.raises(ModuleLoadError, match="no descriptor"):
            load_module(path)

    def test_invalid_json(self, modules_root: Path, make_module):
        path = modules_root / "broken"
        path.mkdir()
        (path / "module.json").write_text("{not json")
        with pytest.raises(ModuleLoadError, match="invalid descriptor"):
            load_module(path)

    def test_descriptor_not_mapping(self, modules_root: Path, make_module):
        path = modules_root / "listy"
        path.mkdir()
        (path / "module.yml").write_text("- a\n")
        with pytest.raises(ModuleLoadError, match="mapping"):
            load_module(path)

    def test_invalid_field(self, modules_root: Path, make_module):
        path = make_module("bad", {"moduleType": "database"})
        with pytest.raises(ModuleLoadError, match="invalid module descriptor"):
            load_module(path)


class TestImplementationLoading:
    def test_single_subclass_found(self, modules_root: Path, make_module):
        path = make_module("hello", implementation=IMPL_SOURCE)
        module = load_module(path)
        assert isinstance(module.implementation, ModuleImplementation)
        assert module.implementation.module is module
        assert module.implementation.get_merge_strategy("a.txt") == "append"

    def test_named_class(self, modules_root: Path, make_module):
        source = IMPL_SOURCE + textwrap.dedent("""\


            class Other(ModuleImplementation):
                pass
        """)
        path = make_module("hello", {"implementationClass": "Other"}, implementation=source)
        assert type(load_module(path).implementation).__name__ == "Other"

    def test_import_error(self, modules_root: Path, make_module):
        path = make_module("boom", implementation="raise RuntimeError('nope')\n")
        with pytest.raises(ModuleLoadError, match="failed to import"):
            load_module(path)

    def test_no_subclass(self, modules_root: Path, make_module):
        path = make_module("plain", implementation="VALUE = 1\n")
        with pytest.raises(ModuleLoadError, match="not found"):
            load_module(path)

    def test_missing_named_class(self, modules_root: Path, make_module):
        path = make_module("hello", {"implementationClass": "Nope"}, implementation=IMPL_SOURCE)
        with pytest.raises(ModuleLoadError, match="Nope not found"):
            load_module(path)

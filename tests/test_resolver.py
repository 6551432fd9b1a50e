"""
Tests for the dependency resolver — conflicts, requirements, cycles,
versions, coverage, caching and installation order.
"""

import pytest

from flowstate.core.models import ModuleType, StackModule
from flowstate.core.services.registry import ModuleRegistry
from flowstate.core.services.resolver import DependencyResolver, normalize_selection


def _registry(*modules: StackModule) -> ModuleRegistry:
    reg = ModuleRegistry()
    for module in modules:
        reg.register(module)
    return reg


def _other(name: str, **fields) -> StackModule:
    return StackModule(name=name, module_type=ModuleType.OTHER, **fields)


class TestNormalizeSelection:
    def test_list_deduplicated(self):
        assert normalize_selection(["vue3", " vue3 ", "", None, "vuetify"]) == ["vue3", "vuetify"]

    def test_type_map(self):
        assert normalize_selection({"frontend-framework": "vue3", "ui-library": ""}) == ["vue3"]

    def test_single_name(self):
        assert normalize_selection("react") == ["react"]


class TestDirectConflicts:
    def test_incompatible_reported(self, resolver: DependencyResolver):
        result = resolver.validate(["vue3", "react"])
        direct = result.conflicts_of("direct")
        assert len(direct) == 1
        assert (direct[0].module, direct[0].conflicts_with) == ("vue3", "react")
        assert not result.valid

    @pytest.mark.parametrize("selection", [["vuetify", "tailwind"], ["tailwind", "vuetify"]])
    def test_symmetric(self, resolver: DependencyResolver, selection):
        result = resolver.validate(["vue3"] + selection)
        direct = result.conflicts_of("direct")
        assert len(direct) == 1
        assert direct[0].module == "vuetify"
        assert direct[0].conflicts_with == "tailwind"

    def test_order_of_reports_follows_selection(self, resolver: DependencyResolver):
        result = resolver.validate(["vue3", "react", "vuetify", "tailwind"])
        assert [(c.type, c.module) for c in result.conflicts[:3]] == [
            ("direct", "vue3"), ("exclusive", "vue3"), ("direct", "vuetify"),
        ]


class TestExclusiveConflicts:
    def test_same_exclusive_type(self, registry: ModuleRegistry):
        registry.register(StackModule(name="svelte", module_type=ModuleType.FRONTEND_FRAMEWORK))
        result = DependencyResolver(registry).validate(["react", "svelte"])
        assert [c.type for c in result.conflicts] == ["exclusive"]
        assert "frontend-framework" in result.conflicts[0].reason

    def test_every_pair_reported(self, registry: ModuleRegistry):
        registry.register(StackModule(name="svelte", module_type=ModuleType.FRONTEND_FRAMEWORK))
        registry.register(StackModule(name="solid", module_type=ModuleType.FRONTEND_FRAMEWORK))
        result = DependencyResolver(registry).validate(["react", "svelte", "solid"])
        assert len(result.conflicts_of("exclusive")) == 3

    def test_non_exclusive_type_allowed(self, registry: ModuleRegistry):
        registry.register(StackModule(name="bootstrap", module_type=ModuleType.UI_LIBRARY))
        result = DependencyResolver(registry).validate(["react", "tailwind", "bootstrap"])
        assert result.valid
        assert result.conflicts == []

    def test_is_exclusive_type(self):
        assert DependencyResolver.is_exclusive_type("frontend-framework")
        assert not DependencyResolver.is_exclusive_type(ModuleType.UI_LIBRARY)
        assert not DependencyResolver.is_exclusive_type("spaceship")


class TestRequirements:
    def test_missing_capability(self, resolver: DependencyResolver):
        result = resolver.validate(["auth-ui"])
        assert not result.valid
        assert [m.model_dump() for m in result.missing] == [
            {"module": "auth-ui", "requires": "auth", "type": "capability"},
        ]

    def test_missing_module(self, resolver: DependencyResolver):
        result = resolver.validate(["vuetify"])
        assert result.missing[0].requires == "vue3"
        assert result.missing[0].type == "module"

    def test_capability_satisfied_by_provider(self, resolver: DependencyResolver):
        assert resolver.validate(["auth-ui", "firebase"]).missing == []

    def test_module_requirement_satisfied(self, resolver: DependencyResolver):
        result = resolver.validate(["vue3", "vuetify"])
        assert result.valid
        assert result.suggestions == []

    def test_type_map_selection(self, resolver: DependencyResolver):
        result = resolver.validate({"frontend-framework": "vue3", "ui-library": "vuetify"})
        assert result.modules == ["vue3", "vuetify"]
        assert result.valid


class TestCircular:
    def test_two_module_cycle(self):
        resolver = DependencyResolver(_registry(
            _other("x", requires=["y"]),
            _other("y", requires=["x"]),
        ))
        result = resolver.validate(["x", "y"])
        circular = result.conflicts_of("circular")
        assert len(circular) == 1
        assert circular[0].modules == ["x", "y", "x"]
        assert "x -> y -> x" in circular[0].reason
        assert not result.valid

    def test_cycle_through_unselected_module(self):
        resolver = DependencyResolver(_registry(
            _other("app", requires=["a"]),
            _other("a", requires=["b"]),
            _other("b", requires=["a"]),
        ))
        result = resolver.validate(["app", "a"])
        assert result.conflicts_of("circular")[0].modules == ["a", "b", "a"]

    def test_acyclic_chain(self):
        resolver = DependencyResolver(_registry(
            _other("a", requires=["b"]),
            _other("b", requires=["c"]),
            _other("c"),
        ))
        assert resolver.validate(["a", "b", "c"]).conflicts_of("circular") == []


class TestVersions:
    @pytest.fixture
    def lib_registry(self) -> ModuleRegistry:
        return _registry(
            _other("lib", version="1.5.0"),
            _other("old", requires=["lib@^1.0.0"]),
            _other("new", requires=["lib@^2.0.0"]),
            _other("loose", requires=["lib@>=1.2.0"]),
            _other("weird", requires=["lib@>=banana"]),
        )

    def test_disjoint_ranges(self, lib_registry: ModuleRegistry):
        result = DependencyResolver(lib_registry).validate(["lib", "old", "new"])
        versions = result.conflicts_of("version")
        assert len(versions) == 1
        assert versions[0].module == "lib"
        assert versions[0].requirements == ["old: ^1.0.0", "new: ^2.0.0"]
        assert not result.valid

    def test_target_version_outside_range(self, lib_registry: ModuleRegistry):
        result = DependencyResolver(lib_registry).validate(["lib", "new"])
        assert "new needs ^2.0.0, lib is 1.5.0" in result.conflicts_of("version")[0].reason

    def test_overlapping_ranges(self, lib_registry: ModuleRegistry):
        result = DependencyResolver(lib_registry).validate(["lib", "old", "loose"])
        assert result.conflicts_of("version") == []

    def test_unparsable_range_is_not_a_conflict(self, lib_registry: ModuleRegistry):
        result = DependencyResolver(lib_registry).validate(["lib", "weird"])
        assert result.conflicts_of("version") == []

    def test_sample_requirement_satisfied(self, resolver: DependencyResolver):
        assert resolver.validate(["vue3", "vuetify"]).conflicts_of("version") == []


class TestWarnings:
    def test_coverage_warnings_do_not_invalidate(self, resolver: DependencyResolver):
        result = resolver.validate(["supabase"])
        assert result.valid
        assert [w.module_type for w in result.warnings] == ["frontend-framework", "ui-library"]

    def test_full_coverage(self, resolver: DependencyResolver):
        assert resolver.validate(["vue3", "vuetify", "supabase"]).warnings == []

    def test_unknown_module(self, resolver: DependencyResolver):
        result = resolver.validate(["vue3", "ghost"])
        assert result.unknown == ["ghost"]
        assert result.warnings[0].type == "unknown-module"


class TestSuggestions:
    def test_exclusive_remove(self, resolver: DependencyResolver):
        result = resolver.validate(["vue3", "react"])
        assert ("remove", "react") in [(s.type, s.remove) for s in result.suggestions]

    def test_replace_with_same_type(self, registry: ModuleRegistry):
        registry.register(StackModule(name="bootstrap", module_type=ModuleType.UI_LIBRARY))
        result = DependencyResolver(registry).validate(["vue3", "vuetify", "tailwind"])
        replace = [s for s in result.suggestions if s.type == "replace"]
        assert [(s.remove, s.add) for s in replace] == [("vuetify", "bootstrap")]

    def test_add_provider(self, resolver: DependencyResolver):
        result = resolver.validate(["auth-ui"])
        assert [(s.type, s.add, s.score) for s in result.suggestions] == [("add", "supabase", 90)]

    def test_find_alternatives(self, registry: ModuleRegistry):
        registry.register(StackModule(name="bootstrap", module_type=ModuleType.UI_LIBRARY))
        resolver = DependencyResolver(registry)
        assert resolver.find_alternatives("tailwind", ["vue3", "vuetify", "tailwind"]) == ["bootstrap"]
        assert resolver.find_alternatives("ghost", ["vue3"]) == []

    def test_find_modules_providing(self, resolver: DependencyResolver):
        assert resolver.find_modules_providing("auth") == ["supabase", "firebase"]
        assert resolver.find_modules_providing("vue3") == ["vue3"]
        assert resolver.find_modules_providing("teleport") == []


class TestCache:
    def test_idempotent(self, resolver: DependencyResolver):
        first = resolver.validate(["vue3", "react"])
        second = resolver.validate(["vue3", "react"])
        assert first == second

    def test_returns_copies(self, resolver: DependencyResolver):
        first = resolver.validate(["vue3", "react"])
        first.conflicts.clear()
        assert resolver.validate(["vue3", "react"]).conflicts

    def test_key_ignores_order(self):
        assert DependencyResolver.cache_key(["b", "a", "b"]) == ("a", "b")

    def test_cleared_explicitly(self, registry: ModuleRegistry):
        resolver = DependencyResolver(registry)
        assert not resolver.validate(["vuetify"]).valid
        registry.register(_other("vuetify"))
        assert not resolver.validate(["vuetify"]).valid
        resolver.clear_cache()
        assert resolver.validate(["vuetify"]).valid

    def test_is_valid_bypasses_cache(self, registry: ModuleRegistry):
        resolver = DependencyResolver(registry)
        resolver.validate(["vuetify"])
        registry.register(_other("vuetify"))
        assert resolver.is_valid(["vuetify"])


class TestInstallationOrder:
    def test_requirements_first(self, resolver: DependencyResolver):
        assert resolver.get_installation_order(["vuetify", "vue3"]) == ["vue3", "vuetify"]

    def test_capability_provider_first(self, resolver: DependencyResolver):
        order = resolver.get_installation_order(["auth-ui", "supabase", "vue3"])
        assert order == ["supabase", "auth-ui", "vue3"]

    def test_every_module_after_its_requirements(self, resolver: DependencyResolver):
        names = ["auth-ui", "vuetify", "firebase", "vue3"]
        order = resolver.get_installation_order(names)
        assert sorted(order) == sorted(names)
        assert order.index("vue3") < order.index("vuetify")
        assert order.index("firebase") < order.index("auth-ui")

    def test_unknown_modules_kept(self, resolver: DependencyResolver):
        assert resolver.get_installation_order(["ghost", "vue3"]) == ["ghost", "vue3"]


class TestCompatibilityReport:
    def test_report(self, resolver: DependencyResolver):
        report = resolver.get_compatibility_report("react")
        assert report["type"] == "frontend-framework"
        assert report["incompatible_from"] == ["vue3"]
        assert report["exclusive_type"] is True

    def test_requires_listed(self, resolver: DependencyResolver):
        report = resolver.get_compatibility_report("vuetify")
        assert report["requires"] == ["vue3@^3.0.0"]
        assert report["incompatible"] == ["tailwind"]
        assert report["exclusive_type"] is False

    def test_unknown(self, resolver: DependencyResolver):
        assert resolver.get_compatibility_report("ghost") is None

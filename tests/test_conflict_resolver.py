"""
Tests for the conflict resolver — priority, merge, report and interactive modes.
"""

import pytest

from flowstate.core.models.template import FileConflict, TemplateContribution
from flowstate.core.services.conflict_resolver import ConflictResolver, by_priority


def _c(module: str, priority: int = 50, order: int = 0, content: str = "", **kw) -> TemplateContribution:
    return TemplateContribution(module=module, target="x", content=content, priority=priority, order=order, **kw)


@pytest.fixture
def app_vue() -> list[TemplateContribution]:
    return [
        _c("vue3", 90, 0, "<template>vue</template>\n"),
        _c("vuetify", 95, 1, "<template>vuetify</template>\n"),
    ]


class TestByPriority:
    def test_highest_first_ties_in_order(self):
        ordered = by_priority([_c("a", 50, 2), _c("b", 60, 1), _c("c", 50, 0)])
        assert [c.module for c in ordered] == ["b", "c", "a"]


class TestPriority:
    def test_winner(self, app_vue):
        result = ConflictResolver().resolve("src/App.vue", app_vue)
        assert result.winner == "vuetify"
        assert result.resolution == "Used vuetify version (priority 95)"
        assert result.alternatives == [{"module": "vue3", "priority": 90}]
        assert not result.merge and not result.skip

    def test_single_contribution(self):
        assert ConflictResolver().resolve("a.txt", [_c("a")]).resolution == "No conflict"

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            ConflictResolver("dice")

    def test_cached_per_path(self, app_vue):
        resolver = ConflictResolver()
        first = resolver.resolve("src/App.vue", app_vue)
        assert resolver.resolve("src/App.vue", [_c("other", 100)]) is first
        resolver.clear_cache()
        assert resolver.resolve("src/App.vue", [_c("other", 100)]).winner == "other"


class TestMerge:
    def test_mergeable_path(self):
        result = ConflictResolver("merge").resolve("tsconfig.json", [_c("a"), _c("b")])
        assert result.merge
        assert result.merge_strategy == "merge-json"
        assert result.winner is None

    def test_replace_path_falls_back(self, app_vue):
        result = ConflictResolver("merge").resolve("src/App.vue", app_vue)
        assert not result.merge
        assert result.winner == "vuetify"
        assert result.resolution.startswith("Cannot merge src/App.vue; used vuetify")

    def test_binary_falls_back(self):
        contributions = [_c("a", data=b"\x00"), _c("b", 70, data=b"\x01")]
        result = ConflictResolver("merge").resolve("logo.json", contributions)
        assert result.winner == "b"

    def test_override_per_call(self):
        result = ConflictResolver("priority").resolve(".gitignore", [_c("a"), _c("b")], strategy="merge")
        assert result.merge_strategy == "append-unique"


class TestReport:
    def test_report_only_flag(self, app_vue):
        result = ConflictResolver("report").resolve("src/App.vue", app_vue)
        assert result.report_only
        assert result.winner == "vuetify"


class TestInteractive:
    def test_chooser_picks_module(self, app_vue):
        seen = {}

        def chooser(path, contributions, diff):
            seen.update(path=path, modules=[c.module for c in contributions], diff=diff)
            return "vue3"

        result = ConflictResolver("interactive", chooser).resolve("src/App.vue", app_vue)
        assert result.winner == "vue3"
        assert result.resolution == "User selected vue3 version"
        assert seen["modules"] == ["vuetify", "vue3"]
        assert "-<template>vuetify</template>" in seen["diff"]

    def test_skip(self, app_vue):
        result = ConflictResolver("interactive", lambda *a: "skip").resolve("src/App.vue", app_vue)
        assert result.skip
        assert result.winner is None

    def test_merge_choice(self):
        result = ConflictResolver("interactive", lambda *a: "merge").resolve(".env", [_c("a"), _c("b")])
        assert result.merge_strategy == "merge-env"

    def test_unknown_choice_uses_priority(self, app_vue):
        result = ConflictResolver("interactive", lambda *a: "banana").resolve("src/App.vue", app_vue)
        assert result.winner == "vuetify"

    def test_without_chooser(self, app_vue):
        assert ConflictResolver("interactive").resolve("src/App.vue", app_vue).winner == "vuetify"


class TestReporting:
    def test_identical(self):
        diff = ConflictResolver.describe_differences([_c("a", content="x"), _c("b", content="x")])
        assert diff == "a vs b: identical"

    def test_binary(self):
        diff = ConflictResolver.describe_differences([_c("a", data=b"1"), _c("b", content="x")])
        assert diff == "a vs b: binary content"

    def test_truncated(self):
        a = "\n".join(str(i) for i in range(50))
        diff = ConflictResolver.describe_differences([_c("a", content=a), _c("b", content="")], max_lines=5)
        assert diff.splitlines()[-1].startswith("... and ")
        assert len(diff.splitlines()) == 6

    def test_generate_report(self):
        conflicts = [
            FileConflict(path="a", modules=["x", "y"], winner="x"),
            FileConflict(path="b", modules=["x", "y"], merged=True),
            FileConflict(path="c", modules=["x", "y"], skipped=True),
        ]
        report = ConflictResolver.generate_report(conflicts)
        assert report["summary"] == {"total": 3, "merged": 1, "skipped": 1, "by_priority": 1}
        assert report["conflicts"][0]["path"] == "a"

    def test_resolution_to_dict(self, app_vue):
        data = ConflictResolver().resolve("src/App.vue", app_vue).to_dict()
        assert data["winner"] == "vuetify"
        assert data["path"] == "src/App.vue"

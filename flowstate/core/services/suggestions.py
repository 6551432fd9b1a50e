"""
Suggestion engine — recommends modules for a (possibly invalid) selection.

Four kinds of advice:
    recommended   best module per missing important type, plus providers
                  for missing requirements
    popular       curated combinations overlapping the selection
    compatible    every module that can be added without breaking it
    alternatives  fixes for conflicts and missing requirements (only
                  when the selection is invalid)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from flowstate.core.models.module import IMPORTANT_TYPES, ModuleType, StackModule
from flowstate.core.models.validation import Suggestion, ValidationResult
from flowstate.core.services.resolver import DependencyResolver, Selection, normalize_selection

logger = logging.getLogger(__name__)

# Scoring
BASE_SCORE = 50
POPULAR_BONUS = 20
COMPATIBLE_BONUS = 10
PROVIDES_BONUS = 15
REQUIREMENT_SCORE = 90
PROVIDER_ALTERNATIVE_SCORE = 80
MAX_PROVIDERS = 3


@dataclass(frozen=True)
class PopularCombination:
    """A curated, named module combination."""

    id: str
    name: str
    modules: tuple[str, ...]
    description: str = ""
    popularity: int = 0
    tags: tuple[str, ...] = ()


POPULAR_COMBINATIONS: tuple[PopularCombination, ...] = (
    PopularCombination(
        id="vue-material",
        name="Classic Vue Stack",
        modules=("vue3", "vuetify", "supabase"),
        description="Vue 3 with Material Design components",
        popularity=95,
        tags=("beginner-friendly", "full-stack", "material-design"),
    ),
    PopularCombination(
        id="react-modern",
        name="Modern React Stack",
        modules=("react", "tailwind", "supabase"),
        description="React with utility-first CSS",
        popularity=90,
        tags=("modern", "flexible", "performant"),
    ),
    PopularCombination(
        id="sveltekit-full",
        name="SvelteKit Full Stack",
        modules=("sveltekit", "tailwind", "better-auth"),
        description="SvelteKit with modern auth",
        popularity=85,
        tags=("cutting-edge", "performant", "ssr"),
    ),
    PopularCombination(
        id="vue-minimal",
        name="Minimalist Vue",
        modules=("vue3", "tailwind"),
        description="Vue 3 with just Tailwind CSS",
        popularity=80,
        tags=("minimal", "lightweight", "flexible"),
    ),
)


@dataclass
class Recommendation:
    module: str
    reason: str
    score: int
    type: str  # missing-type | requirement


@dataclass
class PopularMatch:
    id: str
    name: str
    description: str
    modules: list[str]
    popularity: int
    tags: list[str]
    match_count: int
    missing_modules: list[str]


@dataclass
class Suggestions:
    """Result of ``SuggestionEngine.get_suggestions()``."""

    recommended: list[Recommendation] = field(default_factory=list)
    popular: list[PopularMatch] = field(default_factory=list)
    compatible: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    alternatives: list[Suggestion] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "recommended": [asdict(r) for r in self.recommended],
            "popular": [asdict(p) for p in self.popular],
            "compatible": self.compatible,
            "alternatives": [a.model_dump(mode="json") for a in self.alternatives],
        }


class SuggestionEngine:
    """Ranks modules and combinations against a selection."""

    def __init__(
        self,
        resolver: DependencyResolver,
        combinations: tuple[PopularCombination, ...] | list[PopularCombination] = POPULAR_COMBINATIONS,
    ):
        self.resolver = resolver
        self.registry = resolver.registry
        self.combinations = tuple(combinations)

    def get_suggestions(
        self,
        selection: Selection,
        context: dict[str, Any] | None = None,
    ) -> Suggestions:
        """Build all four kinds of advice for ``selection``.

        Args:
            selection: Module names or a type→name map.
            context: Optional hints. ``exclude`` lists module names never
                to recommend.
        """
        names = normalize_selection(selection)
        exclude = set((context or {}).get("exclude", ()))
        validation = self.resolver.validate(names)

        result = Suggestions(
            recommended=self._recommended(names, validation, exclude),
            popular=self.get_popular_combinations(names),
            compatible=self.get_compatible_modules(names, exclude),
        )
        if not validation.valid:
            result.alternatives = self.get_alternatives(validation)

        logger.debug(
            "Suggestions for %s: %d recommended, %d popular, %d alternatives",
            names, len(result.recommended), len(result.popular), len(result.alternatives),
        )
        return result

    # ── Recommended ──────────────────────────────────────────────

    def _recommended(
        self, names: list[str], validation: ValidationResult, exclude: set[str],
    ) -> list[Recommendation]:
        selected_types = {
            m.module_type for m in (self.registry.get_module(n) for n in names) if m is not None
        }

        recommendations: list[Recommendation] = []
        for module_type in IMPORTANT_TYPES:
            if module_type in selected_types:
                continue
            candidates = [
                c for c in self.get_candidates_for_type(module_type, names)
                if c[0].name not in exclude
            ]
            if candidates:
                best, score = candidates[0]
                recommendations.append(Recommendation(
                    module=best.name,
                    reason=f"Complete your stack with a {module_type.value}",
                    score=score,
                    type="missing-type",
                ))

        for missing in validation.missing:
            providers = [
                p for p in self.resolver.find_modules_providing(missing.requires)
                if p not in exclude and p not in names
            ]
            if providers:
                recommendations.append(Recommendation(
                    module=providers[0],
                    reason=f"Required by {missing.module}",
                    score=REQUIREMENT_SCORE,
                    type="requirement",
                ))

        recommendations.sort(key=lambda r: r.score, reverse=True)
        return recommendations

    def get_candidates_for_type(
        self, module_type: ModuleType | str, names: list[str],
    ) -> list[tuple[StackModule, int]]:
        """Modules of ``module_type`` that keep the selection valid, best first."""
        candidates: list[tuple[StackModule, int]] = []
        for module in self.registry.get_modules_by_type(module_type):
            if module.name in names:
                continue
            if self.resolver.is_valid(names + [module.name]):
                candidates.append((module, self.calculate_module_score(module, names)))
        candidates.sort(key=lambda c: c[1], reverse=True)
        return candidates

    def calculate_module_score(self, module: StackModule, names: list[str]) -> int:
        """Score a candidate against the current selection.

        Base 50, +20 per popular combination holding both the candidate and
        a selected module, +10 per selected module listing it in
        ``compatible_with``, +15 per provided capability a selected
        module requires.
        """
        score = BASE_SCORE

        for combo in self.combinations:
            if module.name in combo.modules and any(n in combo.modules for n in names):
                score += POPULAR_BONUS

        provided = set(module.provides)
        for name in names:
            selected = self.registry.get_module(name)
            if selected is None:
                continue
            if module.name in selected.compatible_with:
                score += COMPATIBLE_BONUS
            for target in selected.requirement_names:
                if target in provided:
                    score += PROVIDES_BONUS

        return score

    # ── Popular ──────────────────────────────────────────────────

    def get_popular_combinations(self, selection: Selection) -> list[PopularMatch]:
        """Combinations sharing at least one module with the selection.

        Sorted by overlap, then popularity.
        """
        names = normalize_selection(selection)
        matches: list[PopularMatch] = []
        for combo in self.combinations:
            match_count = sum(1 for n in names if n in combo.modules)
            if match_count == 0:
                continue
            matches.append(PopularMatch(
                id=combo.id,
                name=combo.name,
                description=combo.description,
                modules=list(combo.modules),
                popularity=combo.popularity,
                tags=list(combo.tags),
                match_count=match_count,
                missing_modules=[m for m in combo.modules if m not in names],
            ))
        matches.sort(key=lambda m: (m.match_count, m.popularity), reverse=True)
        return matches

    # ── Compatible ───────────────────────────────────────────────

    def get_compatible_modules(
        self, selection: Selection, exclude: set[str] | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Every unselected module that can be added alone, grouped by type."""
        names = normalize_selection(selection)
        grouped: dict[str, list[dict[str, Any]]] = {}
        for module in self.registry.get_all_modules():
            if module.name in names or (exclude and module.name in exclude):
                continue
            if not self.resolver.is_valid(names + [module.name]):
                continue
            grouped.setdefault(module.module_type.value, []).append({
                "name": module.name,
                "description": module.description,
                "provides": list(module.provides),
            })
        return grouped

    # ── Alternatives ─────────────────────────────────────────────

    def get_alternatives(self, validation: ValidationResult) -> list[Suggestion]:
        """Fixes for the conflicts and missing requirements of ``validation``."""
        alternatives: list[Suggestion] = []

        for conflict in validation.conflicts:
            if conflict.type not in ("direct", "exclusive"):
                continue
            pairs = (
                (conflict.module, conflict.conflicts_with),
                (conflict.conflicts_with, conflict.module),
            )
            for replace, keep in pairs:
                best = self.find_best_alternative(replace, keep)
                if best is not None:
                    module, score = best
                    alternatives.append(Suggestion(
                        type="replace",
                        remove=replace,
                        add=module.name,
                        reason=f"{module.name} is compatible with {keep}",
                        score=score,
                    ))

        for missing in validation.missing:
            providers = self.resolver.find_modules_providing(missing.requires)
            for provider in providers[:MAX_PROVIDERS]:
                alternatives.append(Suggestion(
                    type="add",
                    add=provider,
                    reason=f"Provides {missing.requires} required by {missing.module}",
                    score=PROVIDER_ALTERNATIVE_SCORE,
                ))

        unique: dict[tuple[str, str, str], Suggestion] = {}
        for alt in alternatives:
            unique.setdefault((alt.type, alt.remove, alt.add), alt)
        return sorted(unique.values(), key=lambda a: a.score, reverse=True)

    def find_best_alternative(
        self, replace: str, must_be_compatible_with: str,
    ) -> tuple[StackModule, int] | None:
        """Highest-scoring module of the same type valid next to the kept module."""
        module = self.registry.get_module(replace)
        if module is None:
            return None

        best: tuple[StackModule, int] | None = None
        for candidate in self.registry.get_modules_by_type(module.module_type):
            if candidate.name in (replace, must_be_compatible_with):
                continue
            if not self.resolver.is_valid([candidate.name, must_be_compatible_with]):
                continue
            score = self.calculate_module_score(candidate, [must_be_compatible_with])
            if best is None or score > best[1]:
                best = (candidate, score)
        return best

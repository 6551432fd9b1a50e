"""
Dependency resolver — validates module selections and orders installs.

``validate()`` never raises for a bad selection: conflicts, missing
requirements and coverage gaps are returned as data in a
ValidationResult so callers (CLI, suggestion engine) decide what to do.

Check pipeline:
    1. Normalise the selection (list or type→name map)
    2. Direct (incompatible_with) and exclusive-type conflicts
    3. Requirements against selected names and provided capabilities
    4. Transitive walk of requires edges: cycles and version conflicts
    5. Coverage warnings for the important module types
    6. Suggestions, only when the selection is invalid
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Union

from flowstate.core.domain import versions
from flowstate.core.domain.dag import find_cycles, topological_order
from flowstate.core.models.module import (
    EXCLUSIVE_TYPES,
    IMPORTANT_TYPES,
    ModuleType,
    StackModule,
)
from flowstate.core.models.validation import (
    Conflict,
    MissingRequirement,
    Suggestion,
    ValidationResult,
    ValidationWarning,
)
from flowstate.core.services.registry import ModuleRegistry

logger = logging.getLogger(__name__)

Selection = Union[Iterable[str], Mapping[str, str]]

# Scores attached to resolver-made suggestions
_SCORE_ADD = 90
_SCORE_REPLACE = 80
_SCORE_REMOVE = 50


def normalize_selection(selection: Selection) -> list[str]:
    """Turn a list of names or a ``{type: name}`` map into a de-duplicated list.

    Empty values are dropped; first occurrence wins.
    """
    if isinstance(selection, Mapping):
        names: Iterable[Any] = selection.values()
    elif isinstance(selection, str):
        names = [selection]
    else:
        names = selection
    return list(dict.fromkeys(str(n).strip() for n in names if n and str(n).strip()))


class DependencyResolver:
    """Validates selections against the modules of one registry.

    Results are cached per canonical (sorted) selection for the lifetime
    of the resolver; call ``clear_cache()`` after the registry changes.
    """

    def __init__(self, registry: ModuleRegistry):
        self.registry = registry
        self._cache: dict[tuple[str, ...], ValidationResult] = {}
        self._lock = threading.Lock()

    # ── Validation ───────────────────────────────────────────────

    def validate(self, selection: Selection) -> ValidationResult:
        """Validate a module selection.

        Returns:
            ValidationResult; ``valid`` is True exactly when there are no
            conflicts and no missing requirements.
        """
        names = normalize_selection(selection)
        key = self.cache_key(names)

        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Validation cache hit: %s", ",".join(key))
            return cached.model_copy(deep=True)

        result = self._check(names)
        if not result.valid:
            result.suggestions = self._suggest(names, result)

        logger.debug(
            "Validated %s: valid=%s conflicts=%d missing=%d",
            names, result.valid, len(result.conflicts), len(result.missing),
        )

        with self._lock:
            self._cache[key] = result
        return result.model_copy(deep=True)

    def is_valid(self, selection: Selection) -> bool:
        """Validity only: no suggestions, no cache."""
        return self._check(normalize_selection(selection)).valid

    @staticmethod
    def cache_key(names: Iterable[str]) -> tuple[str, ...]:
        return tuple(sorted(set(names)))

    def clear_cache(self) -> None:
        """Forget every cached validation result."""
        with self._lock:
            self._cache.clear()

    def _check(self, names: list[str]) -> ValidationResult:
        """Run checks 2–5 without generating suggestions."""
        result = ValidationResult(modules=list(names))

        known: list[StackModule] = []
        for name in names:
            module = self.registry.get_module(name)
            if module is None:
                result.unknown.append(name)
                result.warnings.append(ValidationWarning(
                    type="unknown-module",
                    message=f"Unknown module: {name}",
                ))
            else:
                known.append(module)

        self._check_direct_conflicts(known, result)
        self._check_requirements(known, result)
        self._check_transitive(known, result)
        self._check_type_coverage(known, result)

        result.valid = not result.conflicts and not result.missing
        return result

    def _check_direct_conflicts(self, modules: list[StackModule], result: ValidationResult) -> None:
        for i, module in enumerate(modules):
            for other in modules[i + 1:]:
                if other.name in module.incompatible_with:
                    result.conflicts.append(Conflict(
                        type="direct",
                        module=module.name,
                        conflicts_with=other.name,
                        reason=f"{module.name} is incompatible with {other.name}",
                    ))
                elif module.name in other.incompatible_with:
                    result.conflicts.append(Conflict(
                        type="direct",
                        module=other.name,
                        conflicts_with=module.name,
                        reason=f"{other.name} is incompatible with {module.name}",
                    ))

                if module.module_type == other.module_type and module.is_exclusive:
                    result.conflicts.append(Conflict(
                        type="exclusive",
                        module=module.name,
                        conflicts_with=other.name,
                        reason=f"Cannot use multiple {module.module_type.value} modules "
                               f"({module.name}, {other.name})",
                    ))

    def _check_requirements(self, modules: list[StackModule], result: ValidationResult) -> None:
        selected = {m.name for m in modules}
        provided = {cap for m in modules for cap in m.provides}

        for module in modules:
            for target, _ in module.parsed_requirements():
                if target in selected or target in provided:
                    continue
                result.missing.append(MissingRequirement(
                    module=module.name,
                    requires=target,
                    type="module" if target in self.registry else "capability",
                ))

    def _check_transitive(self, modules: list[StackModule], result: ValidationResult) -> None:
        graph, reached = self._dependency_graph(modules)

        for cycle in find_cycles(graph, [m.name for m in modules]):
            result.conflicts.append(Conflict(
                type="circular",
                module=cycle[0],
                modules=cycle,
                reason=f"Circular dependency detected: {' -> '.join(cycle)}",
            ))

        self._check_versions(reached, result)

    def _dependency_graph(
        self, modules: list[StackModule],
    ) -> tuple[dict[str, list[str]], list[StackModule]]:
        """Walk requires edges from the selection.

        Module-name requirements are followed through the registry, even
        to unselected modules. Capability requirements point at the
        selected modules that provide them.
        """
        providers: dict[str, list[str]] = {}
        for m in modules:
            for cap in m.provides:
                providers.setdefault(cap, []).append(m.name)

        graph: dict[str, list[str]] = {}
        reached: list[StackModule] = []
        stack = list(reversed(modules))
        while stack:
            module = stack.pop()
            if module.name in graph:
                continue
            reached.append(module)
            edges: list[str] = []
            for target in module.requirement_names:
                dep = self.registry.get_module(target)
                if dep is not None:
                    targets = [dep.name]
                else:
                    targets = providers.get(target, [])
                for name in targets:
                    if name != module.name and name not in edges:
                        edges.append(name)
            graph[module.name] = edges
            for name in reversed(edges):
                dep = self.registry.get_module(name)
                if dep is not None and dep.name not in graph:
                    stack.append(dep)
        return graph, reached

    def _check_versions(self, modules: list[StackModule], result: ValidationResult) -> None:
        """Flag module targets whose declared ranges cannot hold together.

        Evidence is either two ranges on the same target with an empty
        intersection, or a range the target's own version does not
        satisfy. Unparsable versions or ranges are never evidence.
        """
        constraints: dict[str, list[tuple[str, str]]] = {}
        for module in modules:
            for target, rng in module.parsed_requirements():
                if rng.strip() in ("", "*"):
                    continue
                constraints.setdefault(target, []).append((module.name, rng))

        for target, reqs in constraints.items():
            problems: list[str] = []

            for i, (by_a, range_a) in enumerate(reqs):
                for by_b, range_b in reqs[i + 1:]:
                    try:
                        if not versions.ranges_intersect(range_a, range_b):
                            problems.append(f"{by_a} ({range_a}) and {by_b} ({range_b}) cannot both hold")
                    except versions.VersionError as e:
                        logger.debug("Skipping range pair for %s: %s", target, e)

            dep = self.registry.get_module(target)
            if dep is not None:
                for by, rng in reqs:
                    try:
                        if not versions.satisfies(dep.version, rng):
                            problems.append(f"{by} needs {rng}, {target} is {dep.version}")
                    except versions.VersionError as e:
                        logger.debug("Skipping version check for %s: %s", target, e)

            if problems:
                result.conflicts.append(Conflict(
                    type="version",
                    module=target,
                    requirements=[f"{by}: {rng}" for by, rng in reqs],
                    reason=f"Incompatible version requirements for {target}: " + "; ".join(problems),
                ))

    @staticmethod
    def _check_type_coverage(modules: list[StackModule], result: ValidationResult) -> None:
        covered = {m.module_type for m in modules}
        for module_type in IMPORTANT_TYPES:
            if module_type not in covered:
                result.warnings.append(ValidationWarning(
                    type="missing-type",
                    module_type=module_type.value,
                    message=f"No {module_type.value} module selected",
                ))

    # ── Suggestions ──────────────────────────────────────────────

    def _suggest(self, names: list[str], result: ValidationResult) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        seen: set[tuple[str, str, str]] = set()

        def push(s: Suggestion) -> None:
            key = (s.type, s.remove, s.add)
            if key not in seen:
                seen.add(key)
                suggestions.append(s)

        for conflict in result.conflicts:
            if conflict.type not in ("direct", "exclusive"):
                continue
            for side in (conflict.module, conflict.conflicts_with):
                alternatives = self.find_alternatives(side, names)
                if alternatives:
                    push(Suggestion(
                        type="replace",
                        remove=side,
                        add=alternatives[0],
                        reason=f"Replace {side} with {alternatives[0]} to resolve conflict",
                        score=_SCORE_REPLACE,
                    ))
                    break
            if conflict.type == "exclusive":
                push(Suggestion(
                    type="remove",
                    remove=conflict.conflicts_with,
                    reason=f"Remove {conflict.conflicts_with}: only one "
                           f"{self._type_of(conflict.module)} module can be used",
                    score=_SCORE_REMOVE,
                ))

        for missing in result.missing:
            candidates = [c for c in self.find_modules_providing(missing.requires) if c not in names]
            if candidates:
                best = self._least_conflicting(candidates, names)
                push(Suggestion(
                    type="add",
                    add=best,
                    reason=f"Add {best} to provide {missing.requires} (required by {missing.module})",
                    score=_SCORE_ADD,
                ))

        return suggestions

    def _type_of(self, name: str) -> str:
        module = self.registry.get_module(name)
        return module.module_type.value if module else "unknown"

    def _least_conflicting(self, candidates: list[str], names: list[str]) -> str:
        # First candidate that adds no conflict, else the first one
        for candidate in candidates:
            if not self._check(names + [candidate]).conflicts:
                return candidate
        return candidates[0]

    def find_alternatives(self, name: str, selection: Selection) -> list[str]:
        """Modules of the same type that make the selection valid when swapped in."""
        module = self.registry.get_module(name)
        if module is None:
            return []
        names = normalize_selection(selection)
        rest = [n for n in names if n != name]

        alternatives: list[str] = []
        for candidate in self.registry.get_modules_by_type(module.module_type):
            if candidate.name == name or candidate.name in names:
                continue
            if self._check(rest + [candidate.name]).valid:
                alternatives.append(candidate.name)
        return alternatives

    def find_modules_providing(self, capability: str) -> list[str]:
        """Names of modules providing ``capability`` (or named after it)."""
        providers = [m.name for m in self.registry.get_modules_by_provider(capability)]
        if capability in self.registry and capability not in providers:
            providers.insert(0, capability)
        return providers

    # ── Ordering & reports ───────────────────────────────────────

    def get_installation_order(self, names: Iterable[str]) -> list[str]:
        """Order modules so each comes after the modules it requires.

        Returns a permutation of ``names``; requirements outside the list
        are ignored, capabilities resolve to providers inside it.
        """
        members = normalize_selection(list(names))
        providers: dict[str, list[str]] = {}
        for name in members:
            module = self.registry.get_module(name)
            if module is None:
                continue
            providers.setdefault(name, []).append(name)
            for cap in module.provides:
                providers.setdefault(cap, []).append(name)

        edges: dict[str, list[str]] = {}
        for name in members:
            module = self.registry.get_module(name)
            if module is None:
                continue
            deps: list[str] = []
            for target in module.requirement_names:
                for dep in providers.get(target, []):
                    if dep != name and dep not in deps:
                        deps.append(dep)
            edges[name] = deps

        return topological_order(members, edges)

    @staticmethod
    def is_exclusive_type(module_type: ModuleType | str) -> bool:
        try:
            return ModuleType(module_type) in EXCLUSIVE_TYPES
        except ValueError:
            return False

    def get_compatibility_report(self, name: str) -> dict[str, Any] | None:
        """Compatibility facts about one module, or None if unknown."""
        module = self.registry.get_module(name)
        if module is None:
            return None
        return {
            "module": module.name,
            "type": module.module_type.value,
            "version": module.version,
            "compatible": list(module.compatible_with),
            "incompatible": list(module.incompatible_with),
            "incompatible_from": [
                m.name for m in self.registry.get_all_modules()
                if module.name in m.incompatible_with
            ],
            "requires": list(module.requires),
            "provides": list(module.provides),
            "optional": list(module.optional),
            "exclusive_type": module.is_exclusive,
        }

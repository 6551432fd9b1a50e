"""
Module registry — discovers, indexes and searches stack modules.

The registry is the single owner of the loaded modules. Discovery
scans a module root in either layout:

    flat:    <root>/<module>/module.json
    nested:  <root>/<category>/<module>/module.json

and rebuilds every index from scratch, so running it twice never leaves
stale entries behind.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flowstate.core.config.module_loader import ModuleLoadError, find_descriptor, load_module
from flowstate.core.models.implementation import ModuleImplementation
from flowstate.core.models.module import ModuleType, StackModule

logger = logging.getLogger(__name__)

# Search weights
_SCORE_NAME = 10
_SCORE_DESCRIPTION = 5
_SCORE_TAG = 3
_SCORE_CATEGORY = 2

# Directories never treated as modules or categories
_IGNORED_DIRS = frozenset({"__pycache__", "node_modules", ".git"})


class ModuleDirectoryError(Exception):
    """Raised when the module root directory does not exist."""


@dataclass
class DiscoveryResult:
    """Outcome of one ``ModuleRegistry.discover()`` run."""

    modules_root: Path | None = None
    module_count: int = 0
    categories: list[str] = field(default_factory=list)
    skipped: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "modules_root": str(self.modules_root) if self.modules_root else None,
            "module_count": self.module_count,
            "categories": self.categories,
            "skipped": self.skipped,
        }


class ModuleRegistry:
    """Loaded modules plus precomputed lookup indices.

    Features:
        - Discover modules from a flat or nested directory tree
        - Register modules and implementations in code
        - O(1) lookups by name, category, type, tag and provided capability
        - Scored free-text search
    """

    def __init__(self) -> None:
        self._modules: dict[str, StackModule] = {}
        self._by_category: dict[str, list[StackModule]] = {}
        self._by_type: dict[str, list[StackModule]] = {}
        self._by_tag: dict[str, list[StackModule]] = {}
        self._by_provider: dict[str, list[StackModule]] = {}
        # Implementations registered in code survive rediscovery
        self._implementations: dict[str, ModuleImplementation] = {}
        self.modules_root: Path | None = None

    # ── Discovery ────────────────────────────────────────────────

    def discover(self, modules_root: Path) -> DiscoveryResult:
        """Scan ``modules_root`` and rebuild the registry.

        A module that fails to load is logged, recorded in
        ``DiscoveryResult.skipped`` and left out; the rest still load.

        Raises:
            ModuleDirectoryError: If ``modules_root`` is not a directory.
        """
        root = Path(modules_root)
        if not root.is_dir():
            raise ModuleDirectoryError(f"Module directory not found: {root}")

        self._modules.clear()
        self.modules_root = root.resolve()
        result = DiscoveryResult(modules_root=self.modules_root)

        for item in _subdirs(root):
            if find_descriptor(item) is not None:
                self._load_into(item, None, result)
                continue
            # No descriptor: a category folder
            for module_dir in _subdirs(item):
                self._load_into(module_dir, item.name, result)

        self._rebuild_indices()

        result.module_count = len(self._modules)
        result.categories = self.get_categories()
        logger.info(
            "Discovered %d modules across %d categories from %s",
            result.module_count, len(result.categories), root,
        )
        return result

    def _load_into(self, module_dir: Path, category: str | None, result: DiscoveryResult) -> None:
        try:
            module = load_module(module_dir, category=category)
        except ModuleLoadError as e:
            logger.warning("Skipping module at %s: %s", module_dir, e)
            result.skipped.append({"path": str(module_dir), "reason": str(e)})
            return

        if module.name in self._modules:
            existing = self._modules[module.name]
            reason = f"duplicate module name '{module.name}' (already loaded from {existing.path})"
            logger.warning("Skipping module at %s: %s", module_dir, reason)
            result.skipped.append({"path": str(module_dir), "reason": reason})
            return

        self._attach_registered_implementation(module)
        self._modules[module.name] = module
        logger.debug("Registered module: %s (%s)", module.name, module.category)

    # ── Registration ─────────────────────────────────────────────

    def register(self, module: StackModule) -> None:
        """Add a module built in code and update the indices."""
        if module.name in self._modules:
            logger.warning("Overwriting existing module: %s", module.name)
        if not module.category:
            module.category = "other"
        self._attach_registered_implementation(module)
        self._modules[module.name] = module
        self._rebuild_indices()

    def unregister(self, name: str) -> None:
        """Remove a module from the registry."""
        if self._modules.pop(name, None) is not None:
            self._rebuild_indices()

    def register_implementation(
        self,
        name: str,
        implementation: ModuleImplementation | type[ModuleImplementation],
    ) -> None:
        """Attach module code to the module called ``name``.

        Accepts a class or an instance. The implementation is remembered
        and re-attached after every discovery.
        """
        if isinstance(implementation, type):
            implementation = implementation()
        if not isinstance(implementation, ModuleImplementation):
            raise TypeError(
                f"Implementation for '{name}' must be a ModuleImplementation, "
                f"got {type(implementation).__name__}"
            )
        self._implementations[name] = implementation
        module = self._modules.get(name)
        if module is not None:
            module.attach_implementation(implementation)

    def _attach_registered_implementation(self, module: StackModule) -> None:
        impl = self._implementations.get(module.name)
        if impl is not None:
            module.attach_implementation(impl)

    def _rebuild_indices(self) -> None:
        by_category: dict[str, list[StackModule]] = defaultdict(list)
        by_type: dict[str, list[StackModule]] = defaultdict(list)
        by_tag: dict[str, list[StackModule]] = defaultdict(list)
        by_provider: dict[str, list[StackModule]] = defaultdict(list)

        for module in self._modules.values():
            by_category[module.category].append(module)
            by_type[module.module_type.value].append(module)
            for tag in module.tags:
                by_tag[tag].append(module)
            for capability in module.provides:
                by_provider[capability].append(module)

        self._by_category = dict(by_category)
        self._by_type = dict(by_type)
        self._by_tag = dict(by_tag)
        self._by_provider = dict(by_provider)

    # ── Lookups ──────────────────────────────────────────────────

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def get_module(self, name: str) -> StackModule | None:
        """Look up a module by name."""
        return self._modules.get(name)

    def get_all_modules(self) -> list[StackModule]:
        return list(self._modules.values())

    def get_categories(self) -> list[str]:
        return sorted(self._by_category)

    def get_modules_by_category(self, category: str) -> list[StackModule]:
        return list(self._by_category.get(category, []))

    def get_modules_by_type(self, module_type: ModuleType | str) -> list[StackModule]:
        key = module_type.value if isinstance(module_type, ModuleType) else module_type
        return list(self._by_type.get(key, []))

    def get_modules_by_tag(self, tag: str) -> list[StackModule]:
        return list(self._by_tag.get(tag, []))

    def get_modules_by_provider(self, capability: str) -> list[StackModule]:
        """Modules declaring ``capability`` in their ``provides`` list."""
        return list(self._by_provider.get(capability, []))

    # ── Search ───────────────────────────────────────────────────

    def search_modules(
        self,
        query: str,
        category: str | None = None,
        tags: list[str] | str | None = None,
        limit: int = 10,
    ) -> list[StackModule]:
        """Free-text search, best match first.

        Scores: name 10, description 5, any tag 3, category 2
        (case-insensitive substring matches). Results can be narrowed to
        a category and to modules carrying every tag in ``tags``.
        """
        needle = query.lower().strip()
        if isinstance(tags, str):
            tags = [tags]

        scored: list[tuple[int, StackModule]] = []
        for module in self._modules.values():
            if category and module.category != category:
                continue
            if tags and not all(t in module.tags for t in tags):
                continue
            score = self._search_score(module, needle)
            if score > 0:
                scored.append((score, module))

        # Stable: equal scores keep registry order
        scored.sort(key=lambda item: item[0], reverse=True)
        return [module for _, module in scored[: max(limit, 0)]]

    @staticmethod
    def _search_score(module: StackModule, needle: str) -> int:
        if not needle:
            return 0
        score = 0
        if needle in module.name.lower():
            score += _SCORE_NAME
        if needle in module.description.lower():
            score += _SCORE_DESCRIPTION
        if any(needle in t.lower() for t in module.tags):
            score += _SCORE_TAG
        if needle in module.category.lower():
            score += _SCORE_CATEGORY
        return score

    # ── Compatibility ────────────────────────────────────────────

    def get_compatible_modules(
        self,
        name: str,
        exclude_same_category: bool = False,
    ) -> list[StackModule]:
        """Modules that the explicit compatibility lists allow next to ``name``.

        A non-empty ``compatible_with`` list is a whitelist (``*`` allows
        any module of the same type); ``incompatible_with`` excludes in
        both directions.
        """
        module = self._modules.get(name)
        if module is None:
            return []

        result: list[StackModule] = []
        for other in self._modules.values():
            if other.name == name:
                continue
            if exclude_same_category and other.category == module.category:
                continue
            if module.compatible_with and other.name not in module.compatible_with:
                if "*" not in module.compatible_with or other.module_type != module.module_type:
                    continue
            if other.name in module.incompatible_with or name in other.incompatible_with:
                continue
            result.append(other)
        return result

    # ── Reporting ────────────────────────────────────────────────

    def get_statistics(self) -> dict[str, Any]:
        """Counts by category and major version, plus a few totals."""
        by_category: dict[str, int] = defaultdict(int)
        by_version: dict[str, int] = defaultdict(int)
        with_requirements = 0
        recommended = 0
        with_implementation = 0

        for module in self._modules.values():
            by_category[module.category] += 1
            major = module.version.split(".")[0] if module.version else "unknown"
            by_version[major] += 1
            if module.requires:
                with_requirements += 1
            if module.recommended:
                recommended += 1
            if module.implementation is not None:
                with_implementation += 1

        return {
            "total_modules": len(self._modules),
            "by_category": dict(sorted(by_category.items())),
            "by_type": {t: len(mods) for t, mods in sorted(self._by_type.items())},
            "by_version": dict(sorted(by_version.items())),
            "with_requirements": with_requirements,
            "with_implementation": with_implementation,
            "recommended": recommended,
        }

    def export_state(self) -> dict[str, Any]:
        """Dump modules and indices (by name) for inspection."""
        def names(index: dict[str, list[StackModule]]) -> dict[str, list[str]]:
            return {key: [m.name for m in mods] for key, mods in sorted(index.items())}

        return {
            "modules_root": str(self.modules_root) if self.modules_root else None,
            "modules": [m.summary() for m in self._modules.values()],
            "categories": names(self._by_category),
            "types": names(self._by_type),
            "tags": names(self._by_tag),
            "providers": names(self._by_provider),
            "statistics": self.get_statistics(),
        }


def _subdirs(path: Path) -> list[Path]:
    return [
        p for p in sorted(path.iterdir())
        if p.is_dir() and p.name not in _IGNORED_DIRS and not p.name.startswith(".")
    ]

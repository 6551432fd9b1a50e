"""
Shared test fixtures — module trees on disk and in-memory registries.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from flowstate.core.config.loader import BUNDLED_MODULES_DIR
from flowstate.core.models.module import ModuleType, StackModule
from flowstate.core.services.registry import ModuleRegistry
from flowstate.core.services.resolver import DependencyResolver


def write_module(
    root: Path,
    name: str,
    descriptor: dict[str, Any] | None = None,
    *,
    category: str | None = None,
    fmt: str = "json",
    templates: dict[str, str | bytes] | None = None,
    implementation: str | None = None,
) -> Path:
    """Write one module directory and return it.

    Args:
        root: Module root.
        name: Module directory name (and default module name).
        descriptor: Descriptor mapping; ``name`` defaults to ``name``.
        category: Nest the module under this category folder.
        fmt: ``json`` writes module.json, ``yaml`` writes module.yml.
        templates: Files under ``templates/`` (str or bytes content).
        implementation: Source of a module.py file.
    """
    module_dir = root / category / name if category else root / name
    module_dir.mkdir(parents=True, exist_ok=True)

    data = {"name": name, **(descriptor or {})}
    if fmt == "yaml":
        (module_dir / "module.yml").write_text(yaml.safe_dump(data), encoding="utf-8")
    else:
        (module_dir / "module.json").write_text(json.dumps(data, indent=2), encoding="utf-8")

    for rel, content in (templates or {}).items():
        target = module_dir / "templates" / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")

    if implementation is not None:
        (module_dir / "module.py").write_text(implementation, encoding="utf-8")

    return module_dir


@pytest.fixture
def modules_root(tmp_path: Path) -> Path:
    """Return an empty module root directory."""
    root = tmp_path / "modules"
    root.mkdir()
    return root


@pytest.fixture
def make_module(modules_root: Path):
    """Return a helper writing modules under ``modules_root``."""

    def _make(name: str, descriptor: dict[str, Any] | None = None, **kwargs: Any) -> Path:
        return write_module(modules_root, name, descriptor, **kwargs)

    return _make


def _module(name: str, module_type: ModuleType, **fields: Any) -> StackModule:
    return StackModule(name=name, module_type=module_type, **fields)


@pytest.fixture
def sample_modules() -> list[StackModule]:
    """A small catalogue covering every kind of relationship."""
    return [
        _module(
            "vue3", ModuleType.FRONTEND_FRAMEWORK, version="3.4.0",
            provides=["frontend", "spa"], incompatible_with=["react"],
            compatible_with=["vuetify", "tailwind", "supabase"], category="frontend",
            tags=["vue", "spa"], description="Progressive JavaScript framework",
        ),
        _module(
            "react", ModuleType.FRONTEND_FRAMEWORK, version="18.2.0",
            provides=["frontend", "spa"], category="frontend",
            tags=["react", "spa"], description="Component-based UI library",
        ),
        _module(
            "vuetify", ModuleType.UI_LIBRARY, version="3.5.1",
            requires=["vue3@^3.0.0"], provides=["ui-library"],
            incompatible_with=["tailwind"], category="ui",
            tags=["vue", "material-design"], description="Material Design components for Vue",
        ),
        _module(
            "tailwind", ModuleType.UI_LIBRARY, version="3.4.0",
            provides=["ui-library", "styling-system"], category="ui",
            tags=["css", "utility-first"], description="Utility-first CSS",
        ),
        _module(
            "supabase", ModuleType.BACKEND_SERVICE, version="2.39.3",
            provides=["backend", "database", "auth"], category="backend",
            tags=["database", "auth"], description="Postgres database and auth",
        ),
        _module(
            "firebase", ModuleType.BACKEND_SERVICE, version="10.7.0",
            provides=["backend", "database", "auth"], category="backend",
            tags=["database"], description="Google app platform",
        ),
        _module(
            "auth-ui", ModuleType.OTHER, requires=["auth"], category="other",
            description="Drop-in login screens",
        ),
    ]


@pytest.fixture
def registry(sample_modules: list[StackModule]) -> ModuleRegistry:
    """Return a registry holding ``sample_modules``."""
    reg = ModuleRegistry()
    for module in sample_modules:
        reg.register(module)
    return reg


@pytest.fixture
def resolver(registry: ModuleRegistry) -> DependencyResolver:
    return DependencyResolver(registry)


@pytest.fixture
def bundled_registry() -> ModuleRegistry:
    """Return a registry discovered from the bundled stack modules."""
    reg = ModuleRegistry()
    reg.discover(BUNDLED_MODULES_DIR)
    return reg

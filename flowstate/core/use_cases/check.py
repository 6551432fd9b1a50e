"""
Selection check use case — discover modules, validate a selection, advise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from flowstate.core.config.loader import ConfigError, find_project_file, load_project, resolve_modules_dir
from flowstate.core.models.project import ProjectConfig
from flowstate.core.models.validation import ValidationResult
from flowstate.core.services.registry import DiscoveryResult, ModuleDirectoryError, ModuleRegistry
from flowstate.core.services.resolver import DependencyResolver, Selection, normalize_selection
from flowstate.core.services.suggestions import SuggestionEngine, Suggestions

logger = logging.getLogger(__name__)


@dataclass
class LoadedRegistry:
    """A discovered registry plus the configuration it came from."""

    registry: ModuleRegistry
    discovery: DiscoveryResult
    project: ProjectConfig | None = None
    config_path: Path | None = None


def open_registry(
    modules_dir: str | Path | None = None,
    config_path: Path | None = None,
) -> LoadedRegistry:
    """Load the optional project file and discover its module root.

    Raises:
        ConfigError: If an explicit or found flowstate.yml is invalid.
        ModuleDirectoryError: If the module root does not exist.
    """
    if config_path is None:
        config_path = find_project_file()

    project = load_project(config_path) if config_path is not None else None
    root = resolve_modules_dir(modules_dir, project, config_path)
    logger.debug("Using module root %s", root)

    registry = ModuleRegistry()
    discovery = registry.discover(root)
    return LoadedRegistry(registry, discovery, project, config_path)


@dataclass
class SelectionCheckResult:
    """Result of ``check_selection()``."""

    valid: bool = False
    modules: list[str] = field(default_factory=list)
    modules_dir: Path | None = None
    validation: ValidationResult | None = None
    suggestions: Suggestions | None = None
    order: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "modules": self.modules,
            "modules_dir": str(self.modules_dir) if self.modules_dir else None,
            "validation": self.validation.to_dict() if self.validation else None,
            "suggestions": self.suggestions.to_dict() if self.suggestions else None,
            "order": self.order,
            "error": self.error,
        }


def check_selection(
    selection: Selection | None = None,
    modules_dir: str | Path | None = None,
    config_path: Path | None = None,
) -> SelectionCheckResult:
    """Validate a selection and gather suggestions for it.

    Args:
        selection: Module names; defaults to the project file's modules.
        modules_dir: Module root override.
        config_path: Optional explicit path to flowstate.yml.

    Returns:
        SelectionCheckResult. ``error`` is set when nothing could be
        validated (bad config, missing module root, empty selection).
    """
    result = SelectionCheckResult()

    try:
        loaded = open_registry(modules_dir, config_path)
    except (ConfigError, ModuleDirectoryError) as e:
        result.error = str(e)
        return result

    result.modules_dir = loaded.discovery.modules_root
    names = normalize_selection(selection or [])
    if not names and loaded.project is not None:
        names = loaded.project.module_names()
    if not names:
        result.error = "No modules selected."
        return result
    result.modules = names

    resolver = DependencyResolver(loaded.registry)
    result.validation = resolver.validate(names)
    result.valid = result.validation.valid
    result.suggestions = SuggestionEngine(resolver).get_suggestions(names)
    if result.valid:
        result.order = resolver.get_installation_order(names)
    return result

"""
Generate use case — validate a selection and scaffold a project from it.

Steps:
    1. Load flowstate.yml (optional) and discover the module root
    2. Merge CLI arguments over project settings
    3. Validate; stop with the validation result if it is invalid
    4. Order modules by their requirements
    5. Run the template generator
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flowstate.core.config.loader import ConfigError
from flowstate.core.models.template import GenerationContext
from flowstate.core.models.validation import ValidationResult
from flowstate.core.services.conflict_resolver import Chooser, ConflictResolver
from flowstate.core.services.registry import ModuleDirectoryError
from flowstate.core.services.resolver import DependencyResolver, Selection, normalize_selection
from flowstate.core.services.template_generator import (
    GenerationResult,
    ProjectPathError,
    TemplateGenerator,
)
from flowstate.core.use_cases.check import open_registry

logger = logging.getLogger(__name__)


@dataclass
class GenerateRunResult:
    """Result of ``run_generate()``."""

    success: bool = False
    project_path: Path | None = None
    modules_dir: Path | None = None
    modules: list[str] = field(default_factory=list)
    validation: ValidationResult | None = None
    generation: GenerationResult | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "project_path": str(self.project_path) if self.project_path else None,
            "modules_dir": str(self.modules_dir) if self.modules_dir else None,
            "modules": self.modules,
            "validation": self.validation.to_dict() if self.validation else None,
            "generation": self.generation.to_dict() if self.generation else None,
            "error": self.error,
        }


def run_generate(
    project_path: Path,
    selection: Selection | None = None,
    *,
    config_path: Path | None = None,
    modules_dir: str | Path | None = None,
    name: str | None = None,
    description: str | None = None,
    author: str | None = None,
    author_email: str | None = None,
    variables: dict[str, Any] | None = None,
    conflict_strategy: str | None = None,
    chooser: Chooser | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> GenerateRunResult:
    """Generate a project into ``project_path``.

    Args:
        project_path: Directory to create or fill.
        selection: Module names; defaults to the project file's modules.
        config_path: Optional explicit path to flowstate.yml.
        modules_dir: Module root override.
        name, description, author, author_email: Override project settings.
        variables: Extra template variables (override the project file's).
        conflict_strategy: priority | merge | report | interactive.
        chooser: Callback for the interactive conflict strategy.
        force: Allow generating into a non-empty directory.
        dry_run: Resolve everything, write nothing.

    Returns:
        GenerateRunResult. An invalid selection returns with
        ``validation`` set and nothing written.
    """
    project_path = Path(project_path)
    result = GenerateRunResult(project_path=project_path)

    try:
        loaded = open_registry(modules_dir, config_path)
    except (ConfigError, ModuleDirectoryError) as e:
        result.error = str(e)
        return result

    project = loaded.project
    result.modules_dir = loaded.discovery.modules_root

    names = normalize_selection(selection or [])
    if not names and project is not None:
        names = project.module_names()
    if not names:
        result.error = "No modules selected."
        return result

    unknown = [n for n in names if n not in loaded.registry]
    if unknown:
        result.error = f"Unknown modules: {', '.join(unknown)}"
        return result

    resolver = DependencyResolver(loaded.registry)
    validation = resolver.validate(names)
    result.validation = validation
    if not validation.valid:
        result.error = "Module selection is invalid."
        return result

    result.modules = resolver.get_installation_order(names)
    logger.info("Installation order: %s", " → ".join(result.modules))

    if project_path.exists() and not project_path.is_dir():
        result.error = f"Project path is not a directory: {project_path}"
        return result
    if not force and not dry_run and project_path.is_dir() and any(project_path.iterdir()):
        result.error = f"Directory is not empty: {project_path} (use --force to generate anyway)"
        return result

    project_vars = dict(project.variables) if project is not None else {}
    project_vars.update(variables or {})
    context = GenerationContext(
        project_path=project_path,
        project_name=name or (project.name if project else None) or project_path.resolve().name,
        description=description if description is not None else (project.description if project else ""),
        author_name=author if author is not None else (project.author.name if project else ""),
        author_email=author_email if author_email is not None else (project.author.email if project else ""),
        variables=project_vars,
        modules=result.modules,
        dry_run=dry_run,
    )

    strategy = conflict_strategy or (project.conflict_strategy if project else "priority")
    try:
        conflicts = ConflictResolver(strategy, chooser=chooser)
    except ValueError as e:
        result.error = str(e)
        return result

    generator = TemplateGenerator(
        [loaded.registry.get_module(n) for n in result.modules],
        project_path,
        conflict_resolver=conflicts,
    )
    try:
        result.generation = generator.generate(context)
    except ProjectPathError as e:
        result.error = str(e)
        return result

    result.success = result.generation.success
    if not result.success:
        result.error = f"{len(result.generation.errors)} file(s) failed during generation."
    return result

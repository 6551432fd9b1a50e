"""
Configuration loader — reads flowstate.yml into a ProjectConfig.

The project file is optional: every setting it carries can also be
given on the command line. When present it is found by walking up from
the current directory, so commands work from inside a project tree.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from flowstate.core.models.project import ProjectConfig

logger = logging.getLogger(__name__)

# Default config filename
PROJECT_CONFIG_FILE = "flowstate.yml"

# Env var overriding the bundled module root
MODULES_DIR_ENV = "FSD_MODULES_DIR"

BUNDLED_MODULES_DIR = Path(__file__).resolve().parent.parent.parent / "stack_modules"


class ConfigError(Exception):
    """Raised when project configuration is invalid or missing."""


def find_project_file(start_dir: Path | None = None) -> Path | None:
    """Search for flowstate.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to flowstate.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_project(path: Path) -> ProjectConfig:
    """Load and validate a flowstate.yml file.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading project config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "project" key or be flat
    project_data = dict(data["project"]) if isinstance(data.get("project"), dict) else data
    for key in ("modules", "variables", "modules_dir", "conflict_strategy"):
        if key in data and key not in project_data:
            project_data[key] = data[key]

    # An unnamed project is named after its directory
    project_data.setdefault("name", path.parent.resolve().name)

    try:
        project = ProjectConfig.model_validate(project_data)
    except Exception as e:
        raise ConfigError(f"Invalid project configuration: {e}") from e

    logger.info(
        "Loaded project '%s' with %d modules", project.name, len(project.module_names())
    )
    return project


def resolve_modules_dir(
    cli_value: str | Path | None = None,
    project: ProjectConfig | None = None,
    project_file: Path | None = None,
) -> Path:
    """Pick the module root directory.

    Precedence: CLI flag > flowstate.yml ``modules_dir`` > FSD_MODULES_DIR
    > bundled stack_modules. A relative ``modules_dir`` in the project file
    is resolved against the file's directory.
    """
    if cli_value:
        return Path(cli_value).expanduser().resolve()

    if project is not None and project.modules_dir:
        candidate = Path(project.modules_dir).expanduser()
        if not candidate.is_absolute() and project_file is not None:
            candidate = project_file.parent / candidate
        return candidate.resolve()

    env_value = os.environ.get(MODULES_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser().resolve()

    return BUNDLED_MODULES_DIR

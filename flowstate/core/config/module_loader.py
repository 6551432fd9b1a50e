"""
Module loader — loads one stack module directory into a StackModule.

A module directory holds a descriptor (config.json, module.json,
module.yml or module.yaml, first match wins) and optionally a
``module.py`` with a ModuleImplementation subclass plus a templates/
directory.
"""

from __future__ import annotations

import importlib.util
import inspect
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from flowstate.core.models.implementation import ModuleImplementation
from flowstate.core.models.module import StackModule

logger = logging.getLogger(__name__)

DESCRIPTOR_FILES = ("config.json", "module.json", "module.yml", "module.yaml")
IMPLEMENTATION_FILE = "module.py"


class ModuleLoadError(Exception):
    """Raised when a module directory cannot be loaded."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


def find_descriptor(module_dir: Path) -> Path | None:
    """Return the descriptor file of a module directory, if any."""
    for filename in DESCRIPTOR_FILES:
        candidate = module_dir / filename
        if candidate.is_file():
            return candidate
    return None


def read_descriptor(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML descriptor into a mapping.

    Raises:
        ModuleLoadError: If the file is unreadable, unparsable or not a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ModuleLoadError(path, f"cannot read descriptor: {e}") from e

    try:
        if path.suffix == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ModuleLoadError(path, f"invalid descriptor: {e}") from e

    if not isinstance(data, dict):
        raise ModuleLoadError(path, f"descriptor must be a mapping, got {type(data).__name__}")
    return data


def load_module(module_dir: Path, category: str | None = None) -> StackModule:
    """Load and validate one module directory.

    Args:
        module_dir: Directory containing the descriptor.
        category: Default category (the parent directory in nested
            layouts). A category declared in the descriptor wins.

    Returns:
        StackModule with ``path`` set and its implementation attached.

    Raises:
        ModuleLoadError: On any structural problem.
    """
    if not module_dir.is_dir():
        raise ModuleLoadError(module_dir, "module directory not found")

    descriptor = find_descriptor(module_dir)
    if descriptor is None:
        raise ModuleLoadError(
            module_dir, f"no descriptor found (expected one of {', '.join(DESCRIPTOR_FILES)})",
        )

    data = read_descriptor(descriptor)
    data.setdefault("name", module_dir.name)

    try:
        module = StackModule.model_validate(data)
    except ValidationError as e:
        raise ModuleLoadError(descriptor, f"invalid module descriptor: {e}") from e

    module.path = module_dir.resolve()
    if not module.category:
        module.category = category or "other"

    impl_file = module_dir / IMPLEMENTATION_FILE
    if impl_file.is_file():
        module.attach_implementation(load_implementation(impl_file, module))

    logger.debug("Loaded module: %s %s from %s", module.name, module.version, descriptor)
    return module


def load_implementation(path: Path, module: StackModule) -> ModuleImplementation:
    """Import ``module.py`` and instantiate its implementation class.

    The class is the one named by ``implementation_class`` in the
    descriptor, otherwise the single ModuleImplementation subclass
    defined in the file.

    Raises:
        ModuleLoadError: If the file fails to import or has no usable class.
    """
    import_name = "flowstate_module_" + re.sub(r"\W", "_", module.name)
    spec = importlib.util.spec_from_file_location(import_name, path)
    if spec is None or spec.loader is None:
        raise ModuleLoadError(path, "cannot import implementation")

    py_module = importlib.util.module_from_spec(spec)
    sys.modules[import_name] = py_module
    try:
        spec.loader.exec_module(py_module)
    except Exception as e:
        sys.modules.pop(import_name, None)
        raise ModuleLoadError(path, f"implementation failed to import: {e}") from e

    impl_cls = _find_implementation_class(py_module, module.implementation_class)
    if impl_cls is None:
        wanted = module.implementation_class or "a ModuleImplementation subclass"
        raise ModuleLoadError(path, f"{wanted} not found")

    try:
        return impl_cls()
    except Exception as e:
        raise ModuleLoadError(path, f"cannot instantiate {impl_cls.__name__}: {e}") from e


def _find_implementation_class(py_module: Any, class_name: str) -> type[ModuleImplementation] | None:
    if class_name:
        cls = getattr(py_module, class_name, None)
        if inspect.isclass(cls) and issubclass(cls, ModuleImplementation):
            return cls
        return None

    candidates = [
        obj for _, obj in inspect.getmembers(py_module, inspect.isclass)
        if issubclass(obj, ModuleImplementation)
        and obj is not ModuleImplementation
        and obj.__module__ == py_module.__name__
    ]
    if len(candidates) == 1:
        return candidates[0]
    if len(candidates) > 1:
        logger.warning(
            "Several implementation classes in %s, set implementationClass: %s",
            py_module.__name__, [c.__name__ for c in candidates],
        )
    return None

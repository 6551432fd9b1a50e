"""
Domain models — Pydantic types for the stack module engine.

All models are re-exported here for convenient access:

    from flowstate.core.models import StackModule, ValidationResult
"""

from flowstate.core.models.implementation import ModuleImplementation
from flowstate.core.models.module import (
    DEFAULT_PRIORITY,
    EXCLUSIVE_TYPES,
    IMPORTANT_TYPES,
    ModuleType,
    RouteDescriptor,
    StackModule,
    TemplateSpec,
    split_requirement,
)
from flowstate.core.models.project import Author, ProjectConfig
from flowstate.core.models.template import (
    FileConflict,
    GenerationContext,
    TemplateContribution,
)
from flowstate.core.models.validation import (
    Conflict,
    MissingRequirement,
    Suggestion,
    ValidationResult,
    ValidationWarning,
)

__all__ = [
    "Author",
    "Conflict",
    "DEFAULT_PRIORITY",
    "EXCLUSIVE_TYPES",
    "FileConflict",
    "GenerationContext",
    "IMPORTANT_TYPES",
    "MissingRequirement",
    "ModuleImplementation",
    "ModuleType",
    "ProjectConfig",
    "RouteDescriptor",
    "StackModule",
    "Suggestion",
    "TemplateContribution",
    "TemplateSpec",
    "ValidationResult",
    "ValidationWarning",
    "split_requirement",
]

"""
Validation result model — the outcome of checking a module selection.

Conflicts and missing requirements are data, not exceptions: callers
(the CLI prompt flow, the suggestion engine) decide what to do with them.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ConflictType = Literal["direct", "exclusive", "circular", "version"]


class Conflict(BaseModel):
    """A module-level incompatibility in a selection."""

    type: ConflictType
    module: str = ""
    conflicts_with: str = ""
    modules: list[str] = Field(default_factory=list)        # circular path
    requirements: list[str] = Field(default_factory=list)   # version: "by: range"
    reason: str = ""


class MissingRequirement(BaseModel):
    """A ``requires`` entry nothing in the selection satisfies."""

    module: str
    requires: str
    type: Literal["module", "capability"] = "capability"


class Suggestion(BaseModel):
    """A proposed change to a selection."""

    type: Literal["add", "replace", "remove"]
    add: str = ""
    remove: str = ""
    reason: str = ""
    score: int = 0


class ValidationWarning(BaseModel):
    """Non-fatal finding, e.g. a recommended module type not covered."""

    type: str = "missing-type"
    module_type: str = ""
    message: str = ""


class ValidationResult(BaseModel):
    """Result of ``DependencyResolver.validate()``.

    ``valid`` is True exactly when there are no conflicts and nothing is
    missing; warnings never affect it.
    """

    valid: bool = True
    modules: list[str] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    missing: list[MissingRequirement] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)
    unknown: list[str] = Field(default_factory=list)

    def conflicts_of(self, kind: ConflictType) -> list[Conflict]:
        return [c for c in self.conflicts if c.type == kind]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

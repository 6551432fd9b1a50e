"""
Template models — file contributions, generation context, file conflicts.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from flowstate.core.models.module import DEFAULT_PRIORITY, RouteDescriptor


class TemplateContribution(BaseModel):
    """One module's wish to write one output path.

    Attributes:
        module:         Contributing module name.
        target:         Relative output path (POSIX separators).
        content:        Inline content, if any.
        source_path:    Template file to read, if any.
        data:           Raw bytes for binary files (copied, never merged).
        routes:         Structured route descriptors (route-table merge).
        merge_strategy: Strategy name the module wants for this path.
        priority:       Higher wins when only one contribution can be kept.
        render:         Whether the content goes through the template engine.
        order:          Position of the module in the generation order.
    """

    module: str
    target: str
    content: str | None = None
    source_path: Path | None = None
    data: bytes | None = None
    routes: list[RouteDescriptor] = Field(default_factory=list)
    merge_strategy: str = "replace"
    priority: int = DEFAULT_PRIORITY
    render: bool = False
    order: int = 0

    @property
    def is_binary(self) -> bool:
        return self.data is not None


class GenerationContext(BaseModel):
    """Inputs for one generation run. Read-only for the core."""

    project_path: Path
    project_name: str = "my-app"
    description: str = ""
    author_name: str = ""
    author_email: str = ""
    variables: dict[str, Any] = Field(default_factory=dict)
    modules: list[str] = Field(default_factory=list)
    dry_run: bool = False

    def template_variables(self) -> dict[str, Any]:
        """Build a fresh variable map for rendering.

        Custom ``variables`` override the conventional keys.
        """
        base: dict[str, Any] = {
            "projectName": self.project_name,
            "project_name": self.project_name,
            "projectDescription": self.description,
            "description": self.description,
            "authorName": self.author_name,
            "author": self.author_name,
            "authorEmail": self.author_email,
            "currentYear": datetime.now().year,
            "modules": list(self.modules),
        }
        base.update(self.variables)
        return base


class FileConflict(BaseModel):
    """A generation-time collision on one output path and how it was settled."""

    path: str
    modules: list[str] = Field(default_factory=list)
    strategies: list[str] = Field(default_factory=list)
    resolution: str = ""
    winner: str | None = None
    merged: bool = False
    skipped: bool = False

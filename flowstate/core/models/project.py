"""
Project model — the settings of one generated project.

Loaded from flowstate.yml. Every field is optional except the name;
CLI flags override whatever the file declares.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class Author(BaseModel):
    """Who the generated project is attributed to."""

    name: str = ""
    email: str = ""


class ProjectConfig(BaseModel):
    """Root project settings — loaded from flowstate.yml."""

    name: str
    description: str = ""
    author: Author = Field(default_factory=Author)

    # Either a list of module names or a {module_type: name} map
    modules: list[str] | dict[str, str] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)

    modules_dir: str | None = None
    conflict_strategy: Literal["priority", "merge", "report"] = "priority"

    @field_validator("author", mode="before")
    @classmethod
    def _author_from_string(cls, v: Any) -> Any:
        # "Jane Doe" is shorthand for {name: "Jane Doe"}
        if isinstance(v, str):
            return {"name": v}
        return v

    def module_names(self) -> list[str]:
        """Selected modules as a de-duplicated ordered list."""
        names = self.modules.values() if isinstance(self.modules, dict) else self.modules
        return list(dict.fromkeys(n for n in names if n))

"""
Stack module model — a unit of stack functionality.

Modules are declared by a descriptor (module.json / config.json /
module.yml) living in the module's directory. The descriptor carries the
module's identity, the capabilities it provides and requires, its
compatibility rules and the templates it contributes to a generated
project. Both camelCase (``moduleType``) and snake_case (``module_type``)
keys are accepted.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class ModuleType(str, Enum):
    """Kinds of stack module."""

    FRONTEND_FRAMEWORK = "frontend-framework"
    UI_LIBRARY = "ui-library"
    BACKEND_SERVICE = "backend-service"
    AUTH_PROVIDER = "auth-provider"
    BACKEND_FRAMEWORK = "backend-framework"
    BUILD_TOOL = "build-tool"
    PACKAGE_MANAGER = "package-manager"
    STATE_MANAGER = "state-manager"
    OTHER = "other"


# At most one module of each of these types in a valid selection.
EXCLUSIVE_TYPES: frozenset[ModuleType] = frozenset({
    ModuleType.FRONTEND_FRAMEWORK,
    ModuleType.BACKEND_FRAMEWORK,
    ModuleType.BUILD_TOOL,
    ModuleType.PACKAGE_MANAGER,
})

# Types a complete stack is expected to cover (warnings only).
IMPORTANT_TYPES: tuple[ModuleType, ...] = (
    ModuleType.FRONTEND_FRAMEWORK,
    ModuleType.UI_LIBRARY,
    ModuleType.BACKEND_SERVICE,
)

DEFAULT_PRIORITY = 50


class _DescriptorModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RouteDescriptor(_DescriptorModel):
    """One entry of a generated router table."""

    path: str
    name: str = ""
    component: str = ""          # import path, e.g. "@/views/Login.vue"
    meta: dict[str, Any] = Field(default_factory=dict)
    children: list[RouteDescriptor] = Field(default_factory=list)


class TemplateSpec(_DescriptorModel):
    """A single file contribution declared inline or by an implementation.

    Exactly one of ``content``, ``source`` or ``routes`` is normally set.
    ``source`` is resolved against the module directory when relative.
    ``render`` left as None means: render source files, copy inline
    content verbatim.
    """

    content: str | None = None
    source: str | None = None
    merge: str | None = None
    render: bool | None = None
    priority: int | None = None
    routes: list[RouteDescriptor] = Field(default_factory=list)

    @classmethod
    def coerce(cls, value: Any) -> TemplateSpec:
        """Accept a plain string (inline content) or a mapping."""
        if isinstance(value, TemplateSpec):
            return value
        if isinstance(value, str):
            return cls(content=value)
        return cls.model_validate(value)


class StackModule(_DescriptorModel):
    """A stack module loaded from its descriptor.

    Loaded once at registry discovery time and treated as read-only for
    the rest of the run.
    """

    # ── Identity ─────────────────────────────────────────────────
    name: str
    version: str = "1.0.0"
    display_name: str = ""
    description: str = ""
    module_type: ModuleType = ModuleType.OTHER
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    author: str = ""
    recommended: bool = False

    # ── Capabilities & compatibility ─────────────────────────────
    provides: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)   # "name" or "name@range"
    compatible_with: list[str] = Field(default_factory=list)
    incompatible_with: list[str] = Field(default_factory=list)
    optional: list[str] = Field(default_factory=list)

    # ── Templates ────────────────────────────────────────────────
    priority: int = DEFAULT_PRIORITY
    template_source: str = "templates"
    templates: dict[str, TemplateSpec] = Field(default_factory=dict)
    merge_strategies: dict[str, str] = Field(default_factory=dict)
    routes: dict[str, list[RouteDescriptor]] = Field(default_factory=dict)
    implementation_class: str = ""

    # ── Instructions ─────────────────────────────────────────────
    setup_instructions: list[str] = Field(default_factory=list)
    post_install_steps: list[str] = Field(default_factory=list)

    # ── Runtime ──────────────────────────────────────────────────
    path: Path | None = Field(default=None, exclude=True)

    _implementation: Any = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def _inline_template_source(cls, data: Any) -> Any:
        # templateSource may be an inline {path: content} map instead of a dir
        if not isinstance(data, dict):
            return data
        for key in ("templateSource", "template_source"):
            source = data.get(key)
            if isinstance(source, dict):
                data = dict(data)
                inline = dict(source)
                inline.update(data.get("templates") or {})
                data["templates"] = inline
                data[key] = ""
        return data

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("module name must not be empty")
        return v

    @field_validator(
        "tags", "provides", "requires", "compatible_with",
        "incompatible_with", "optional",
        mode="before",
    )
    @classmethod
    def _dedupe(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        if isinstance(v, (list, tuple, set)):
            return list(dict.fromkeys(str(x) for x in v))
        return v

    @field_validator("templates", mode="before")
    @classmethod
    def _coerce_templates(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {path: TemplateSpec.coerce(spec) for path, spec in v.items()}
        return v

    # ── Implementation plugin ────────────────────────────────────

    @property
    def implementation(self) -> Any:
        """The attached ModuleImplementation, or None for data-only modules."""
        return self._implementation

    def attach_implementation(self, implementation: Any) -> None:
        self._implementation = implementation
        if implementation is not None:
            implementation.module = self

    # ── Requirements ─────────────────────────────────────────────

    def parsed_requirements(self) -> list[tuple[str, str]]:
        """Split ``requires`` entries into (target, version range) pairs.

        ``"supabase@^2.0.0"`` becomes ``("supabase", "^2.0.0")``;
        entries without a range get ``"*"``.
        """
        return [split_requirement(r) for r in self.requires]

    @property
    def requirement_names(self) -> list[str]:
        return [name for name, _ in self.parsed_requirements()]

    @property
    def is_exclusive(self) -> bool:
        return self.module_type in EXCLUSIVE_TYPES

    @property
    def template_dir(self) -> Path | None:
        """Directory scanned for template files, if the module has one."""
        if self.path is None or not self.template_source:
            return None
        candidate = Path(self.template_source)
        if not candidate.is_absolute():
            candidate = self.path / candidate
        return candidate

    def summary(self) -> dict[str, Any]:
        """Compact JSON-friendly view used by CLI listings."""
        return {
            "name": self.name,
            "version": self.version,
            "type": self.module_type.value,
            "category": self.category,
            "description": self.description,
            "tags": self.tags,
            "provides": self.provides,
            "requires": self.requires,
        }


def split_requirement(requirement: str) -> tuple[str, str]:
    """Split ``"name@range"`` into its parts (range defaults to ``*``)."""
    requirement = requirement.strip()
    if "@" in requirement[1:]:
        name, _, rng = requirement.rpartition("@")
        if name:
            return name, rng.strip() or "*"
    return requirement, "*"

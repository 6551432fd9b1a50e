"""
Module implementation base — the code contract a stack module may ship.

A module is usable from its descriptor alone. When it needs computed
templates, per-file merge decisions or install hooks it ships a
``module.py`` with a ``ModuleImplementation`` subclass (or registers one
with ``ModuleRegistry.register_implementation``). The engine only talks
to module code through this class, never through ad-hoc attributes.

To create an implementation:
    1. Subclass ModuleImplementation
    2. Override only the hooks you need
    3. Ship it as module.py next to the descriptor
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowstate.core.models.module import StackModule, TemplateSpec
    from flowstate.core.models.template import GenerationContext


class ModuleImplementation:
    """Base class for module code. Every hook has a no-op default."""

    def __init__(self) -> None:
        # Set by StackModule.attach_implementation()
        self.module: StackModule | None = None

    @property
    def name(self) -> str:
        return self.module.name if self.module is not None else ""

    def get_template_files(
        self, context: GenerationContext,
    ) -> dict[str, TemplateSpec | str | dict[str, Any]]:
        """Extra or computed templates, keyed by relative output path.

        Entries override same-path files found in the module's template
        directory. Values are inline content or a TemplateSpec mapping.
        """
        return {}

    def get_merge_strategy(self, path: str) -> str | None:
        """Merge strategy for one output path, or None to use the default."""
        return None

    def before_install(self, context: GenerationContext) -> None:
        """Called before any file is written."""

    def after_install(self, context: GenerationContext) -> None:
        """Called after every file has been written."""

    def get_post_install_instructions(self, context: GenerationContext) -> list[str]:
        """Lines shown to the user once generation is done."""
        if self.module is None:
            return []
        lines = list(self.module.setup_instructions)
        if self.module.post_install_steps:
            lines.extend(["", f"{self.module.name} setup:", ""])
            lines.extend(self.module.post_install_steps)
        return lines

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} module={self.name!r}>"

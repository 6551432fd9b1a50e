"""
Template engine — renders module templates against project variables.

Rendering is two passes:
    1. Literal placeholders: ``__PROJECT_NAME__``, ``__PROJECT_DESCRIPTION__``,
       ``__AUTHOR_NAME__``, ``__AUTHOR_EMAIL__``, ``__MODULE_NAME__``,
       ``__CURRENT_YEAR__``. Applied to every text file.
    2. Jinja2 in a sandboxed environment, for files flagged for rendering
       (``.template`` files, descriptor entries with ``render: true``).

Template helpers::

    {% if has_module('supabase') %}...{% endif %}
    {{ projectName | pascal_case }}
    {% if any_of(has_module('vuetify'), has_module('tailwind')) %}
    {{ config | json }}
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from jinja2 import TemplateError, Undefined
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)


class TemplateRenderError(Exception):
    """Raised when a template cannot be rendered."""

    def __init__(self, message: str, module: str = "", path: str = ""):
        self.module = module
        self.path = path
        where = " ".join(p for p in (f"[{module}]" if module else "", path) if p)
        super().__init__(f"{where}: {message}" if where else message)


# ── Case helpers ────────────────────────────────────────────────

_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


def _words(value: Any) -> list[str]:
    return _WORD_RE.findall(str(value))


def camel_case(value: Any) -> str:
    words = _words(value)
    if not words:
        return ""
    return words[0].lower() + "".join(w.capitalize() for w in words[1:])


def pascal_case(value: Any) -> str:
    return "".join(w.capitalize() for w in _words(value))


def kebab_case(value: Any) -> str:
    return "-".join(w.lower() for w in _words(value))


def snake_case(value: Any) -> str:
    return "_".join(w.lower() for w in _words(value))


# ── Logic helpers ───────────────────────────────────────────────


def eq(a: Any, b: Any) -> bool:
    return a == b


def ne(a: Any, b: Any) -> bool:
    return a != b


def lt(a: Any, b: Any) -> bool:
    return a < b


def gt(a: Any, b: Any) -> bool:
    return a > b


def all_of(*values: Any) -> bool:
    return all(values)


def any_of(*values: Any) -> bool:
    return any(values)


def includes(collection: Any, item: Any) -> bool:
    if collection is None or isinstance(collection, Undefined):
        return False
    return item in collection


def contains_any(collection: Any, items: Iterable[Any]) -> bool:
    if collection is None or isinstance(collection, Undefined):
        return False
    return any(item in collection for item in items)


def to_json(value: Any, indent: int | None = 2) -> str:
    return json.dumps(value, indent=indent, default=str)


FILTERS: dict[str, Any] = {
    "camel_case": camel_case,
    "pascal_case": pascal_case,
    "kebab_case": kebab_case,
    "snake_case": snake_case,
    "json": to_json,
}

GLOBALS: dict[str, Any] = {
    "eq": eq,
    "ne": ne,
    "lt": lt,
    "gt": gt,
    "all_of": all_of,
    "any_of": any_of,
    "includes": includes,
    "contains_any": contains_any,
    "camel_case": camel_case,
    "pascal_case": pascal_case,
    "kebab_case": kebab_case,
    "snake_case": snake_case,
}

# Placeholder token → (variable keys tried in order, default)
PLACEHOLDERS: dict[str, tuple[tuple[str, ...], str]] = {
    "__PROJECT_NAME__": (("projectName", "project_name"), "my-app"),
    "__PROJECT_DESCRIPTION__": (("projectDescription", "description"), ""),
    "__AUTHOR_NAME__": (("authorName", "author"), ""),
    "__AUTHOR_EMAIL__": (("authorEmail",), ""),
}


class TemplateRenderer:
    """Renders template strings. One instance per generation run.

    Compiled templates are cached on the instance; ``clear_cache()``
    drops them.
    """

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.filters.update(FILTERS)
        self.env.globals.update(GLOBALS)
        self._compiled: dict[str, Any] = {}
        self._lock = threading.Lock()

    def register_filter(self, name: str, func: Any) -> None:
        self.env.filters[name] = func
        self.clear_cache()

    def register_global(self, name: str, value: Any) -> None:
        self.env.globals[name] = value
        self.clear_cache()

    def clear_cache(self) -> None:
        with self._lock:
            self._compiled.clear()

    # ── Rendering ────────────────────────────────────────────────

    def substitute_placeholders(
        self,
        content: str,
        variables: dict[str, Any],
        module_name: str = "",
    ) -> str:
        """Replace the literal ``__TOKEN__`` placeholders."""
        if "__" not in content:
            return content

        for token, (keys, default) in PLACEHOLDERS.items():
            if token in content:
                value = next((variables[k] for k in keys if variables.get(k) not in (None, "")), default)
                content = content.replace(token, str(value))

        if "__MODULE_NAME__" in content:
            content = content.replace("__MODULE_NAME__", module_name)
        if "__CURRENT_YEAR__" in content:
            year = variables.get("currentYear") or datetime.now().year
            content = content.replace("__CURRENT_YEAR__", str(year))
        return content

    def render(
        self,
        content: str,
        variables: dict[str, Any],
        module_name: str = "",
        path: str = "",
    ) -> str:
        """Render ``content``: placeholders first, then Jinja2.

        Raises:
            TemplateRenderError: On a syntax or runtime template error.
        """
        text = self.substitute_placeholders(content, variables, module_name)
        try:
            template = self._compile(text)
            return template.render(self.build_context(variables, module_name))
        except TemplateError as e:
            raise TemplateRenderError(str(e), module=module_name, path=path) from e
        except Exception as e:
            # Template expressions can raise anything Python can
            raise TemplateRenderError(f"{type(e).__name__}: {e}", module=module_name, path=path) from e

    def render_safe(
        self,
        content: str,
        variables: dict[str, Any],
        module_name: str = "",
        path: str = "",
    ) -> tuple[str, str | None]:
        """Render, falling back to the placeholder-only text on failure.

        Returns:
            (text, error message or None).
        """
        try:
            return self.render(content, variables, module_name, path), None
        except TemplateRenderError as e:
            logger.warning("Template render failed, using unrendered content: %s", e)
            return self.substitute_placeholders(content, variables, module_name), str(e)

    def build_context(self, variables: dict[str, Any], module_name: str = "") -> dict[str, Any]:
        """Variables as seen by templates (a fresh dict each call)."""
        modules = list(variables.get("modules") or [])
        selected = frozenset(modules)
        ctx = dict(variables)
        ctx["modules"] = modules
        ctx["module_name"] = module_name
        ctx["has_module"] = lambda name: name in selected
        return ctx

    def _compile(self, text: str) -> Any:
        with self._lock:
            template = self._compiled.get(text)
        if template is None:
            template = self.env.from_string(text)
            with self._lock:
                self._compiled[text] = template
        return template

"""
Merge strategies — combine several modules' content for one output file.

Every strategy takes the contributions already rendered and sorted by
priority (highest first, ties in install order) and returns the final
text. A strategy that cannot read its inputs raises MergeError naming the
offending module; the generator then falls back to priority resolution.

Strategies:
    replace          highest-priority content only
    append           all contents, in priority order
    append-unique    all lines, first occurrence kept
    prepend          like append, ``prepend`` contributors first
    merge-json       deep merge of JSON objects (alias: merge, merge-json-deep)
    merge-config     deep merge, arrays de-duplicated
    merge-yaml       deep merge of YAML mappings
    merge-package    package.json aware merge
    merge-env        .env files with per-module headers
    merge-entry      application entry points (imports, app.use, mount blocks)
    merge-routes     route tables into one vue-router file
"""

from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import Callable
from typing import Any, NamedTuple

import yaml

from flowstate.core.models.module import RouteDescriptor

logger = logging.getLogger(__name__)


class MergeError(Exception):
    """Raised when a strategy cannot merge its inputs."""

    def __init__(self, message: str, module: str = "", path: str = ""):
        self.module = module
        self.path = path
        where = f" (module {module})" if module else ""
        super().__init__(f"{message}{where}")


class MergePart(NamedTuple):
    """One rendered contribution handed to a strategy."""

    module: str
    content: str
    strategy: str = "replace"
    routes: tuple[RouteDescriptor, ...] = ()


# ── Names & families ────────────────────────────────────────────

ALIASES = {
    "merge": "merge-json",
    "merge-json-deep": "merge-json",
    "json": "merge-json",
    "unique": "append-unique",
    "merge-package-json": "merge-package",
}

# Strategies in one family can be combined into a single result
FAMILIES = {
    "append": "text",
    "append-unique": "text",
    "prepend": "text",
    "merge-json": "json",
    "merge-config": "json",
    "merge-package": "json",
    "merge-yaml": "yaml",
    "merge-env": "env",
    "merge-entry": "entry",
    "merge-routes": "routes",
}

# Most specific strategy wins when a family is mixed
_FAMILY_PREFERENCE = {
    "text": ("prepend", "append-unique", "append"),
    "json": ("merge-package", "merge-config", "merge-json"),
}

COMMON_SCRIPTS = ("build", "test", "dev", "start")
DEPENDENCY_KEYS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")
UNION_KEYS = ("keywords", "files")


def canonical_strategy(name: str | None) -> str:
    """Normalise a strategy name; unknown names become ``replace``."""
    if not name:
        return "replace"
    name = ALIASES.get(name.strip().lower(), name.strip().lower())
    if name != "replace" and name not in FAMILIES:
        logger.debug("Unknown merge strategy %r, using replace", name)
        return "replace"
    return name


def combined_strategy(strategies: list[str]) -> str | None:
    """The strategy that combines all of ``strategies``, or None.

    None means the contributions cannot be merged automatically: any
    ``replace`` or a mix of families is a conflict.
    """
    names = [canonical_strategy(s) for s in strategies]
    families = {FAMILIES.get(n) for n in names}
    if None in families or len(families) != 1:
        return None
    family = families.pop()
    for preferred in _FAMILY_PREFERENCE.get(family, ()):
        if preferred in names:
            return preferred
    return names[0]


# ── Path inference ──────────────────────────────────────────────

_ENTRY_RE = re.compile(r"^(?:src/)?(?:main|index)\.(?:js|ts|jsx|tsx|mjs)$")
_ROUTES_RE = re.compile(r"(?:^|/)(?:router/index\.(?:js|ts)|routes\.(?:js|ts|json|ya?ml))$")
_IGNORE_FILES = (".gitignore", ".npmignore", ".dockerignore", ".prettierignore", ".eslintignore")


def infer_strategy(path: str) -> str:
    """Default strategy for an output path."""
    path = path.replace("\\", "/")
    name = path.rsplit("/", 1)[-1]
    lower = name.lower()

    if lower == "package.json":
        return "merge-package"
    if lower == ".env" or lower.startswith(".env."):
        return "merge-env"
    if lower.endswith(_IGNORE_FILES):
        return "append-unique"
    if _ROUTES_RE.search(path):
        return "merge-routes"
    if _ENTRY_RE.match(path):
        return "merge-entry"
    if lower.endswith(".json"):
        return "merge-json"
    if lower.endswith((".yml", ".yaml")):
        return "merge-yaml"
    return "replace"


# ── Text strategies ─────────────────────────────────────────────


def merge_replace(parts: list[MergePart], **_: Any) -> str:
    return parts[0].content


def merge_append(parts: list[MergePart], unique: bool = False, **_: Any) -> str:
    if unique:
        return _unique_lines(parts)
    blocks = [p.content.rstrip("\n") for p in parts if p.content.strip()]
    return "\n\n".join(blocks) + "\n" if blocks else ""


def merge_append_unique(parts: list[MergePart], **_: Any) -> str:
    return _unique_lines(parts)


def merge_prepend(parts: list[MergePart], **_: Any) -> str:
    first = [p for p in parts if canonical_strategy(p.strategy) == "prepend"]
    rest = [p for p in parts if canonical_strategy(p.strategy) != "prepend"]
    return merge_append(first + rest)


def _unique_lines(parts: list[MergePart]) -> str:
    seen: set[str] = set()
    blocks: list[list[str]] = []
    for part in parts:
        block: list[str] = []
        for line in part.content.splitlines():
            key = line.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            block.append(line.rstrip())
        if block:
            blocks.append(block)
    return "\n\n".join("\n".join(b) for b in blocks) + "\n" if blocks else ""


# ── Structured strategies ───────────────────────────────────────


def deep_merge(base: Any, overlay: Any, array_strategy: str = "concat") -> Any:
    """Merge ``overlay`` into a copy of ``base``.

    Mappings merge key by key; scalars from ``overlay`` win; lists follow
    ``array_strategy`` (concat | replace | unique).
    """
    if isinstance(base, dict) and isinstance(overlay, dict):
        result = dict(base)
        for key, value in overlay.items():
            if key in result:
                result[key] = deep_merge(result[key], value, array_strategy)
            else:
                result[key] = copy.deepcopy(value)
        return result
    if isinstance(base, list) and isinstance(overlay, list):
        if array_strategy == "replace":
            return copy.deepcopy(overlay)
        if array_strategy == "unique":
            return _unique_items(base + overlay)
        return copy.deepcopy(base + overlay)
    return copy.deepcopy(overlay)


def _unique_items(items: list[Any]) -> list[Any]:
    seen: set[str] = set()
    result: list[Any] = []
    for item in items:
        key = json.dumps(item, sort_keys=True, default=str)
        if key not in seen:
            seen.add(key)
            result.append(copy.deepcopy(item))
    return result


def _parse_json(part: MergePart, path: str) -> Any:
    if not part.content.strip():
        return {}
    try:
        return json.loads(part.content)
    except json.JSONDecodeError as e:
        raise MergeError(f"Invalid JSON in {path or 'template'}: {e}", module=part.module, path=path) from e


def _parse_yaml(part: MergePart, path: str) -> Any:
    try:
        data = yaml.safe_load(part.content)
    except yaml.YAMLError as e:
        raise MergeError(f"Invalid YAML in {path or 'template'}: {e}", module=part.module, path=path) from e
    return {} if data is None else data


def _merge_documents(
    parts: list[MergePart], docs: list[Any], array_strategy: str, path: str,
) -> Any:
    # Lowest priority first so the highest-priority document wins scalars
    kinds = {type(d) for d in docs if d not in ({}, [])}
    if len(kinds) > 1:
        raise MergeError(
            f"Cannot merge {path or 'documents'}: top-level types differ "
            f"({', '.join(sorted(k.__name__ for k in kinds))})",
            module=parts[0].module, path=path,
        )
    merged: Any = None
    for doc in reversed(docs):
        merged = copy.deepcopy(doc) if merged is None else deep_merge(merged, doc, array_strategy)
    return merged


def merge_json(
    parts: list[MergePart], path: str = "", array_strategy: str = "concat", **_: Any,
) -> str:
    docs = [_parse_json(p, path) for p in parts]
    merged = _merge_documents(parts, docs, array_strategy, path)
    return json.dumps(merged, indent=2, ensure_ascii=False) + "\n"


def merge_config(parts: list[MergePart], path: str = "", array_strategy: str = "unique", **_: Any) -> str:
    return merge_json(parts, path=path, array_strategy=array_strategy)


def merge_yaml(parts: list[MergePart], path: str = "", array_strategy: str = "unique", **_: Any) -> str:
    docs = [_parse_yaml(p, path) for p in parts]
    merged = _merge_documents(parts, docs, array_strategy, path)
    return yaml.safe_dump(merged, sort_keys=False, default_flow_style=False, allow_unicode=True)


def _section(pkg: dict[str, Any], key: str, part: MergePart, path: str) -> dict[str, Any]:
    """A map-valued manifest section; a missing or null section is empty."""
    value = pkg.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MergeError(
            f'"{key}" in {path} must be an object, got {type(value).__name__}',
            module=part.module, path=path,
        )
    return value


def merge_package(parts: list[MergePart], path: str = "package.json", **_: Any) -> str:
    """Merge package manifests.

    The highest-priority manifest is the base and keeps plain script
    names. A lower-priority script that collides with a different command
    is kept as ``<module>:<script>``; for build/test/dev/start a
    ``<script>:all`` script chains both. Dependency maps and engines merge
    shallowly with the later contributor's value winning, keywords/files
    are unioned. Dependency and script maps are sorted.
    """
    docs = [_parse_json(p, path) for p in parts]
    for part, doc in zip(parts, docs):
        if not isinstance(doc, dict):
            raise MergeError(f"{path} must contain a JSON object", module=part.module, path=path)
        for key in (*DEPENDENCY_KEYS, "scripts", "engines"):
            _section(doc, key, part, path)

    merged: dict[str, Any] = copy.deepcopy(docs[0])
    for key in (*DEPENDENCY_KEYS, "scripts"):
        merged[key] = dict(merged.get(key) or {})

    for part, pkg in zip(parts[1:], docs[1:]):
        for key in DEPENDENCY_KEYS:
            merged[key].update(_section(pkg, key, part, path))

        scripts = merged["scripts"]
        for name, command in _section(pkg, "scripts", part, path).items():
            if name not in scripts:
                scripts[name] = command
                continue
            if scripts[name] == command:
                continue
            scripts[f"{part.module}:{name}"] = command
            if name in COMMON_SCRIPTS:
                chain = scripts.get(f"{name}:all") or scripts[name]
                scripts[f"{name}:all"] = f"{chain} && npm run {part.module}:{name}"

        for key in UNION_KEYS:
            if isinstance(pkg.get(key), list):
                merged[key] = _unique_items(list(merged.get(key) or []) + pkg[key])

        engines = _section(pkg, "engines", part, path)
        if engines:
            merged["engines"] = {**(merged.get("engines") or {}), **engines}

        for key, value in pkg.items():
            if key in (*DEPENDENCY_KEYS, "scripts", "engines", *UNION_KEYS):
                continue
            if key not in merged:
                merged[key] = copy.deepcopy(value)
            elif isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = deep_merge(value, merged[key])

    for key in (*DEPENDENCY_KEYS, "scripts"):
        if merged[key]:
            merged[key] = dict(sorted(merged[key].items()))
        elif key not in docs[0]:
            del merged[key]

    return json.dumps(merged, indent=2, ensure_ascii=False) + "\n"


# ── Env files ───────────────────────────────────────────────────

_ENV_KEY_RE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")


def merge_env(parts: list[MergePart], **_: Any) -> str:
    """Concatenate env files under module headers.

    A key already set by an earlier block is kept; the later line is
    emitted commented out.
    """
    lines: list[str] = []
    seen: set[str] = set()
    for i, part in enumerate(parts):
        if i:
            lines.append("")
        lines.append(f"# {part.module.upper()} configuration")
        lines.append("# " + "=" * 30)
        for line in part.content.splitlines():
            match = _ENV_KEY_RE.match(line)
            if not match:
                lines.append(line.rstrip())
                continue
            key = match.group(1)
            if key in seen:
                lines.append(f"# {line.strip()}  # duplicate, commented out (from {part.module})")
            else:
                seen.add(key)
                lines.append(line.rstrip())
    return "\n".join(lines).rstrip("\n") + "\n"


# ── Entry points ────────────────────────────────────────────────

_IMPORT_START_RE = re.compile(r"^\s*import\b")
_REGISTRATION_RE = re.compile(r"^\s*app\s*\.\s*(?:use|component|directive|provide)\s*\(")
_BLOCK_START_RE = re.compile(r"^\s*//\s*@(before|after)-mount\b")
_BLOCK_END_RE = re.compile(r"^\s*//\s*@end\b")
_MOUNT_RE = re.compile(r"\.mount\s*\(")
_CREATE_APP_RE = re.compile(r"\bcreateApp\s*\(")


class _EntryParts(NamedTuple):
    imports: list[str]
    registrations: list[str]
    before: list[str]
    after: list[str]
    body: list[str]


def _split_entry(content: str) -> _EntryParts:
    imports: list[str] = []
    registrations: list[str] = []
    before: list[str] = []
    after: list[str] = []
    body: list[str] = []

    lines = content.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i]
        if _IMPORT_START_RE.match(line):
            statement = [line]
            # Multi-line import: ends with the quoted module specifier
            while not re.search(r"""['"]\s*;?\s*$""", statement[-1]) and i + 1 < len(lines):
                i += 1
                statement.append(lines[i])
            imports.append("\n".join(statement))
        elif (block := _BLOCK_START_RE.match(line)) is not None:
            target = before if block.group(1) == "before" else after
            chunk: list[str] = []
            i += 1
            while i < len(lines) and not _BLOCK_END_RE.match(lines[i]):
                chunk.append(lines[i])
                i += 1
            target.extend(chunk)
        elif _REGISTRATION_RE.match(line):
            registrations.append(line.strip())
        else:
            body.append(line)
        i += 1

    return _EntryParts(imports, registrations, before, after, body)


def _normalize_import(statement: str) -> str:
    return re.sub(r"\s+", " ", statement).strip().rstrip(";")


def merge_entry(parts: list[MergePart], **_: Any) -> str:
    """Reassemble application entry points into one file.

    The highest-priority file is the skeleton. Imports from every
    contributor are de-duplicated at the top; other contributors'
    ``app.use()``-style registrations, ``// @before-mount`` blocks and
    loose statements go right before the skeleton's ``.mount()`` call,
    ``// @after-mount`` blocks right after it.
    """
    split = [(p, _split_entry(p.content)) for p in parts]
    primary = split[0][1]

    imports: list[str] = []
    seen_imports: set[str] = set()
    for _, entry in split:
        for statement in entry.imports:
            key = _normalize_import(statement)
            if key not in seen_imports:
                seen_imports.add(key)
                imports.append(statement)

    present = {line.strip() for line in primary.body if line.strip()}
    registrations: list[str] = []
    before: list[str] = []
    after: list[str] = []

    for index, (part, entry) in enumerate(split):
        for line in entry.registrations:
            if line not in present:
                present.add(line)
                registrations.append(line)
        if entry.before:
            before.extend(entry.before)
        if entry.after:
            after.extend(entry.after)
        if index == 0:
            continue
        leftovers = [
            line for line in entry.body
            if line.strip()
            and not _MOUNT_RE.search(line)
            and not _CREATE_APP_RE.search(line)
            and line.strip() not in present
        ]
        if leftovers:
            before.append(f"// {part.module}")
            before.extend(leftovers)

    body = _trim_blank(primary.body)
    mount_at = next((i for i, line in enumerate(body) if _MOUNT_RE.search(line)), None)
    inserted = registrations + before

    out: list[str] = list(imports)
    if mount_at is None:
        out += [""] + body if body else []
        if inserted:
            out += [""] + inserted
        if after:
            out += [""] + after
    else:
        head = _trim_blank(body[:mount_at])
        tail = _trim_blank(body[mount_at + 1:])
        out += [""] + head if head else []
        if inserted:
            out += [""] + inserted
        out += ["", body[mount_at]]
        if after:
            out += [""] + after
        if tail:
            out += [""] + tail

    return "\n".join(_trim_blank(out)) + "\n"


def _trim_blank(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


# ── Route tables ────────────────────────────────────────────────

_ROUTES_LITERAL_RE = re.compile(r"(?:const|let|var)\s+routes\s*=\s*(\[.*?\])\s*;?\s*$", re.S | re.M)


def parse_routes(part: MergePart, path: str = "") -> list[RouteDescriptor]:
    """Route descriptors of one contribution.

    Structured routes win; otherwise the content must be a JSON or YAML
    list of routes (or a mapping with a ``routes`` list), possibly
    assigned as ``const routes = [...]`` with plain data. Code is never
    executed.
    """
    if part.routes:
        return list(part.routes)

    text = part.content.strip()
    if not text:
        return []

    candidates = [text]
    literal = _ROUTES_LITERAL_RE.search(text)
    if literal:
        candidates.append(literal.group(1))

    for candidate in candidates:
        try:
            data = yaml.safe_load(candidate)
        except yaml.YAMLError:
            continue
        if isinstance(data, dict):
            data = data.get("routes")
        if isinstance(data, list) and all(isinstance(r, dict) for r in data):
            try:
                return [RouteDescriptor.model_validate(r) for r in data]
            except ValueError as e:
                raise MergeError(f"Invalid route in {path or 'routes'}: {e}", module=part.module, path=path) from e

    raise MergeError(
        f"Cannot read a route list from {path or 'routes'}; declare routes as data",
        module=part.module, path=path,
    )


def merge_routes(parts: list[MergePart], path: str = "", **_: Any) -> str:
    """Combine every contributor's routes into one vue-router module.

    Routes are de-duplicated by path, highest priority first.
    """
    routes: list[RouteDescriptor] = []
    seen: set[str] = set()
    for part in parts:
        for route in parse_routes(part, path):
            if route.path in seen:
                logger.debug("Route %s from %s already defined, skipped", route.path, part.module)
                continue
            seen.add(route.path)
            routes.append(route)
    return render_router(routes)


def render_router(routes: list[RouteDescriptor]) -> str:
    body = ",\n".join(_render_route(r, 1) for r in routes)
    return (
        "import { createRouter, createWebHistory } from 'vue-router'\n"
        "\n"
        "const routes = [\n"
        f"{body}{',' if body else ''}\n"
        "]\n"
        "\n"
        "const router = createRouter({\n"
        "  history: createWebHistory(import.meta.env.BASE_URL),\n"
        "  routes\n"
        "})\n"
        "\n"
        "export default router\n"
    )


def _render_route(route: RouteDescriptor, depth: int) -> str:
    pad = "  " * depth
    inner = "  " * (depth + 1)
    fields = [f"{inner}path: {_js(route.path)}"]
    if route.name:
        fields.append(f"{inner}name: {_js(route.name)}")
    if route.component:
        fields.append(f"{inner}component: () => import({_js(route.component)})")
    if route.meta:
        fields.append(f"{inner}meta: {json.dumps(route.meta, sort_keys=True)}")
    if route.children:
        children = ",\n".join(_render_route(c, depth + 2) for c in route.children)
        fields.append(f"{inner}children: [\n{children}\n{inner}]")
    return f"{pad}{{\n" + ",\n".join(fields) + f"\n{pad}}}"


def _js(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


# ── Registry ────────────────────────────────────────────────────

STRATEGIES: dict[str, Callable[..., str]] = {
    "replace": merge_replace,
    "append": merge_append,
    "append-unique": merge_append_unique,
    "prepend": merge_prepend,
    "merge-json": merge_json,
    "merge-config": merge_config,
    "merge-yaml": merge_yaml,
    "merge-package": merge_package,
    "merge-env": merge_env,
    "merge-entry": merge_entry,
    "merge-routes": merge_routes,
}


def get_strategy(name: str | None) -> Callable[..., str]:
    """Strategy function for ``name`` (aliases resolved, unknown → replace)."""
    return STRATEGIES[canonical_strategy(name)]


def apply_strategy(name: str | None, parts: list[MergePart], path: str = "", **options: Any) -> str:
    """Run a strategy over ``parts`` (highest priority first).

    Raises:
        MergeError: If the inputs cannot be merged.
    """
    if not parts:
        raise MergeError(f"Nothing to merge for {path or 'file'}", path=path)
    strategy = get_strategy(name)
    return strategy(parts, path=path, **options)

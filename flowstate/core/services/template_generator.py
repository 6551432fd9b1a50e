"""
Template generator — turns an ordered module list into a project tree.

Pipeline:
    1. Collect every module's contributions (template directory, inline
       descriptor templates, descriptor routes, implementation API)
    2. Pick a merge strategy per contribution
    3. Combine, or hand conflicting paths to the ConflictResolver
    4. Render (placeholders always, Jinja2 when flagged)
    5. Write, then run after-install hooks in selection order

Per-file failures are recorded in the result and never abort the run.
Only an unusable project directory raises.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flowstate.core.models.module import StackModule, TemplateSpec
from flowstate.core.models.template import FileConflict, GenerationContext, TemplateContribution
from flowstate.core.services.conflict_resolver import ConflictResolver, Resolution, by_priority
from flowstate.core.services.merge_strategies import (
    MergeError,
    MergePart,
    apply_strategy,
    canonical_strategy,
    combined_strategy,
    infer_strategy,
    merge_routes,
)
from flowstate.core.services.template_engine import TemplateRenderer

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".template"
MERGE_SUFFIX = ".merge"

# Never walked inside a template directory
SKIP_DIRS = frozenset({".git", "node_modules", "hooks", "__pycache__", ".DS_Store"})


class ProjectPathError(Exception):
    """Raised when the target project directory cannot be created or written."""


@dataclass
class GenerationResult:
    """Outcome of ``TemplateGenerator.generate()``."""

    success: bool = True
    partial: bool = False
    dry_run: bool = False
    project_path: Path | None = None
    generated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    conflicts: list[FileConflict] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    hooks_run: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    duration: float = 0.0

    def add_error(self, path: str, module: str, message: str) -> None:
        self.errors.append({"path": path, "module": module, "message": message})

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "partial": self.partial,
            "dry_run": self.dry_run,
            "project_path": str(self.project_path) if self.project_path else None,
            "generated": self.generated,
            "skipped": self.skipped,
            "conflicts": [c.model_dump(mode="json") for c in self.conflicts],
            "errors": self.errors,
            "hooks_run": self.hooks_run,
            "instructions": self.instructions,
            "duration": round(self.duration, 3),
        }


class TemplateGenerator:
    """Generates one project from modules already in install order."""

    def __init__(
        self,
        modules: list[StackModule],
        project_path: Path,
        renderer: TemplateRenderer | None = None,
        conflict_resolver: ConflictResolver | None = None,
    ):
        self.modules = list(modules)
        self.project_path = Path(project_path)
        self.renderer = renderer or TemplateRenderer()
        self.conflict_resolver = conflict_resolver or ConflictResolver()

    # ── Entry point ──────────────────────────────────────────────

    def generate(self, context: GenerationContext) -> GenerationResult:
        """Generate the project tree.

        Raises:
            ProjectPathError: If the project directory is unusable.
        """
        start = time.monotonic()
        if not context.modules:
            context = context.model_copy(update={"modules": [m.name for m in self.modules]})

        result = GenerationResult(dry_run=context.dry_run, project_path=self.project_path)
        if not context.dry_run:
            self._prepare_project_path()

        variables = context.template_variables()
        records = self.collect(context, result)
        logger.info(
            "Collected %d output paths from %d modules", len(records), len(self.modules),
        )

        self._run_hooks("before_install", context, result)

        for path, contributions in records.items():
            self._generate_path(path, contributions, variables, context, result)

        self._run_hooks("after_install", context, result)
        result.instructions = self._instructions(context, result)

        result.success = not result.errors
        result.partial = bool(result.errors) and bool(result.generated)
        result.duration = time.monotonic() - start
        logger.info(
            "Generated %d files (%d conflicts, %d errors) in %.2fs",
            len(result.generated), len(result.conflicts), len(result.errors), result.duration,
        )
        return result

    def _prepare_project_path(self) -> None:
        try:
            self.project_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProjectPathError(f"Cannot create project directory {self.project_path}: {e}") from e
        if not self.project_path.is_dir():
            raise ProjectPathError(f"Project path is not a directory: {self.project_path}")
        if not os.access(self.project_path, os.W_OK):
            raise ProjectPathError(f"Project directory is not writable: {self.project_path}")

    # ── Collection ───────────────────────────────────────────────

    def collect(
        self,
        context: GenerationContext,
        result: GenerationResult | None = None,
    ) -> dict[str, list[TemplateContribution]]:
        """Gather contributions per output path, in module order."""
        result = result or GenerationResult()
        records: dict[str, list[TemplateContribution]] = {}

        for order, module in enumerate(self.modules):
            files: dict[str, TemplateContribution] = {}
            files.update(self._collect_directory(module, order, result))
            files.update(self._collect_inline(module, order, result))
            files.update(self._collect_routes(module, order))
            files.update(self._collect_implementation(module, order, context, result))

            for target, contribution in files.items():
                records.setdefault(target, []).append(contribution)

        return records

    def _collect_directory(
        self, module: StackModule, order: int, result: GenerationResult,
    ) -> dict[str, TemplateContribution]:
        root = module.template_dir
        if root is None or not root.is_dir():
            return {}

        files: dict[str, TemplateContribution] = {}
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            for filename in sorted(filenames):
                if filename in SKIP_DIRS:
                    continue
                source = Path(dirpath) / filename
                rel = source.relative_to(root).as_posix()

                render = False
                must_merge = False
                target = rel
                if rel.endswith(TEMPLATE_SUFFIX):
                    target, render = rel[: -len(TEMPLATE_SUFFIX)], True
                elif rel.endswith(MERGE_SUFFIX):
                    target, must_merge = rel[: -len(MERGE_SUFFIX)], True

                try:
                    raw = source.read_bytes()
                except OSError as e:
                    logger.warning("Cannot read template %s of %s: %s", source, module.name, e)
                    result.add_error(target, module.name, f"Cannot read template: {e}")
                    continue

                strategy = self.strategy_for(module, target)
                if must_merge and strategy == "replace":
                    strategy = "append"

                try:
                    text: str | None = raw.decode("utf-8")
                    data = None
                except UnicodeDecodeError:
                    text, data, render, strategy = None, raw, False, "replace"

                files[target] = TemplateContribution(
                    module=module.name,
                    target=target,
                    content=text,
                    source_path=source,
                    data=data,
                    merge_strategy=strategy,
                    priority=module.priority,
                    render=render,
                    order=order,
                )
        return files

    def _collect_inline(
        self, module: StackModule, order: int, result: GenerationResult,
    ) -> dict[str, TemplateContribution]:
        files: dict[str, TemplateContribution] = {}
        for target, spec in module.templates.items():
            contribution = self._from_spec(module, order, target, spec, result)
            if contribution is not None:
                files[contribution.target] = contribution
        return files

    def _collect_routes(self, module: StackModule, order: int) -> dict[str, TemplateContribution]:
        return {
            target: TemplateContribution(
                module=module.name,
                target=target,
                routes=list(routes),
                merge_strategy="merge-routes",
                priority=module.priority,
                order=order,
            )
            for target, routes in module.routes.items()
            if routes
        }

    def _collect_implementation(
        self,
        module: StackModule,
        order: int,
        context: GenerationContext,
        result: GenerationResult,
    ) -> dict[str, TemplateContribution]:
        impl = module.implementation
        if impl is None:
            return {}
        try:
            entries = impl.get_template_files(context) or {}
        except Exception as e:
            # Module code is a plugin boundary: record and carry on
            logger.warning("get_template_files failed for %s: %s", module.name, e)
            result.add_error("", module.name, f"get_template_files failed: {e}")
            return {}

        files: dict[str, TemplateContribution] = {}
        for target, value in entries.items():
            try:
                spec = TemplateSpec.coerce(value)
            except ValueError as e:
                result.add_error(target, module.name, f"Invalid template entry: {e}")
                continue
            contribution = self._from_spec(module, order, target, spec, result)
            if contribution is not None:
                files[contribution.target] = contribution
        return files

    def _from_spec(
        self,
        module: StackModule,
        order: int,
        target: str,
        spec: TemplateSpec,
        result: GenerationResult,
    ) -> TemplateContribution | None:
        target = target.replace("\\", "/").lstrip("/")
        render = spec.render
        content = spec.content
        source_path: Path | None = None

        if target.endswith(TEMPLATE_SUFFIX):
            target = target[: -len(TEMPLATE_SUFFIX)]
            render = True if render is None else render

        if content is None and spec.source:
            source_path = Path(spec.source)
            if not source_path.is_absolute() and module.path is not None:
                source_path = module.path / source_path
            try:
                content = source_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Cannot read template source %s of %s: %s", source_path, module.name, e)
                result.add_error(target, module.name, f"Cannot read template source {spec.source}: {e}")
                return None
            render = True if render is None else render

        if content is None and not spec.routes:
            result.add_error(target, module.name, "Template entry has no content, source or routes")
            return None

        strategy = spec.merge or self.strategy_for(module, target)
        if spec.routes and not spec.merge:
            strategy = "merge-routes"

        return TemplateContribution(
            module=module.name,
            target=target,
            content=content,
            source_path=source_path,
            routes=list(spec.routes),
            merge_strategy=canonical_strategy(strategy),
            priority=spec.priority if spec.priority is not None else module.priority,
            render=bool(render),
            order=order,
        )

    @staticmethod
    def strategy_for(module: StackModule, target: str) -> str:
        """Merge strategy a module uses for ``target``.

        Precedence: implementation ``get_merge_strategy`` > descriptor
        ``merge_strategies`` patterns > inference from the path.
        """
        impl = module.implementation
        if impl is not None:
            try:
                chosen = impl.get_merge_strategy(target)
            except Exception as e:
                logger.warning("get_merge_strategy failed for %s on %s: %s", module.name, target, e)
                chosen = None
            if chosen:
                return canonical_strategy(chosen)

        for pattern, strategy in module.merge_strategies.items():
            if fnmatch.fnmatch(target, pattern) or fnmatch.fnmatch(target.rsplit("/", 1)[-1], pattern):
                return canonical_strategy(strategy)

        return infer_strategy(target)

    # ── Per-path generation ──────────────────────────────────────

    def _generate_path(
        self,
        path: str,
        contributions: list[TemplateContribution],
        variables: dict[str, Any],
        context: GenerationContext,
        result: GenerationResult,
    ) -> None:
        try:
            rendered = [self._render(c, variables, result) for c in by_priority(contributions)]
            if len(rendered) == 1:
                output = self._single(rendered[0], path)
            else:
                output = self._combine(path, rendered, result)
        except (MergeError, ValueError) as e:
            module = getattr(e, "module", "") or contributions[0].module
            logger.warning("Cannot generate %s: %s", path, e)
            result.add_error(path, module, str(e))
            return
        except Exception as e:
            # One file never aborts the run
            logger.exception("Unexpected failure generating %s", path)
            result.add_error(path, contributions[0].module, f"{type(e).__name__}: {e}")
            return

        if output is None:
            result.skipped.append(path)
            return

        self._write(path, output, context, result)

    def _render(
        self,
        contribution: TemplateContribution,
        variables: dict[str, Any],
        result: GenerationResult,
    ) -> TemplateContribution:
        """Copy of ``contribution`` with its final text in ``content``."""
        if contribution.is_binary or contribution.content is None:
            return contribution

        if contribution.render:
            text, error = self.renderer.render_safe(
                contribution.content, variables, contribution.module, contribution.target,
            )
            if error:
                result.add_error(contribution.target, contribution.module, f"Render failed, wrote unrendered content: {error}")
        else:
            text = self.renderer.substitute_placeholders(
                contribution.content, variables, contribution.module,
            )
        return contribution.model_copy(update={"content": text})

    @staticmethod
    def _part(c: TemplateContribution) -> MergePart:
        return MergePart(c.module, c.content or "", c.merge_strategy, tuple(c.routes))

    def _single(self, c: TemplateContribution, path: str) -> str | bytes:
        if c.is_binary:
            return c.data  # type: ignore[return-value]
        if c.routes and c.content is None:
            return merge_routes([self._part(c)], path=path)
        return c.content or ""

    def _combine(
        self,
        path: str,
        rendered: list[TemplateContribution],
        result: GenerationResult,
    ) -> str | bytes | None:
        modules = [c.module for c in rendered]
        strategies = [c.merge_strategy for c in rendered]

        combined = None if any(c.is_binary for c in rendered) else combined_strategy(strategies)
        if combined is not None:
            try:
                return apply_strategy(combined, [self._part(c) for c in rendered], path=path)
            except MergeError as e:
                # Invalid input: report it, then settle the path by priority
                logger.warning("Merge of %s failed: %s", path, e)
                result.add_error(path, e.module or modules[0], str(e))
                winner = rendered[0]
                result.conflicts.append(FileConflict(
                    path=path, modules=modules, strategies=strategies,
                    resolution=f"Merge failed, used {winner.module} version", winner=winner.module,
                ))
                return self._single(winner, path)

        resolution = self.conflict_resolver.resolve(path, rendered)
        return self._apply_resolution(path, rendered, resolution, result)

    def _apply_resolution(
        self,
        path: str,
        rendered: list[TemplateContribution],
        resolution: Resolution,
        result: GenerationResult,
    ) -> str | bytes | None:
        conflict = FileConflict(
            path=path,
            modules=[c.module for c in rendered],
            strategies=[c.merge_strategy for c in rendered],
            resolution=resolution.resolution,
        )
        result.conflicts.append(conflict)

        if resolution.skip:
            conflict.skipped = True
            return None

        if resolution.merge and resolution.merge_strategy:
            try:
                output = apply_strategy(
                    resolution.merge_strategy, [self._part(c) for c in rendered], path=path,
                )
                conflict.merged = True
                return output
            except MergeError as e:
                logger.warning("Merge of %s failed, using priority: %s", path, e)
                conflict.resolution = f"Merge failed ({e}), used {rendered[0].module} version"
                conflict.winner = rendered[0].module
                return self._single(rendered[0], path)

        winner = next((c for c in rendered if c.module == resolution.winner), rendered[0])
        conflict.winner = winner.module
        if resolution.report_only:
            logger.warning("File conflict on %s: %s", path, resolution.resolution)
        return self._single(winner, path)

    # ── Output ───────────────────────────────────────────────────

    def _write(
        self,
        path: str,
        output: str | bytes,
        context: GenerationContext,
        result: GenerationResult,
    ) -> None:
        root = self.project_path.resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            result.add_error(path, "", "Refusing to write outside the project directory")
            return

        if context.dry_run:
            result.generated.append(path)
            return

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(output, bytes):
                target.write_bytes(output)
            else:
                target.write_text(output, encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot write %s: %s", target, e)
            result.add_error(path, "", f"Cannot write file: {e}")
            return

        logger.debug("Wrote %s", target)
        result.generated.append(path)

    # ── Hooks ────────────────────────────────────────────────────

    def _run_hooks(self, hook: str, context: GenerationContext, result: GenerationResult) -> None:
        if context.dry_run:
            return
        for module in self.modules:
            impl = module.implementation
            if impl is None:
                continue
            try:
                getattr(impl, hook)(context)
            except Exception as e:
                # Module code is a plugin boundary: record and carry on
                logger.warning("%s hook failed for %s: %s", hook, module.name, e)
                result.add_error("", module.name, f"{hook} hook failed: {e}")
                continue
            result.hooks_run.append(f"{module.name}:{hook}")

    def _instructions(self, context: GenerationContext, result: GenerationResult) -> list[str]:
        lines: list[str] = []
        for module in self.modules:
            impl = module.implementation
            if impl is None:
                steps = list(module.setup_instructions)
                if module.post_install_steps:
                    steps += ["", f"{module.name} setup:", ""] + list(module.post_install_steps)
            else:
                try:
                    steps = list(impl.get_post_install_instructions(context) or [])
                except Exception as e:
                    logger.warning("get_post_install_instructions failed for %s: %s", module.name, e)
                    result.add_error("", module.name, f"get_post_install_instructions failed: {e}")
                    continue
            lines.extend(steps)
        return lines

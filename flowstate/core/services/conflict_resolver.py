"""
Conflict resolver — decides what to write when modules collide on a file.

Used by the template generator for paths whose contributions cannot be
combined automatically. Strategies:

    priority      highest priority wins (ties: install order)
    merge         combine with the path's natural merge strategy, else priority
    report        priority, flagged as report-only for the summary
    interactive   ask a chooser callback; priority when there is none

A conflict is never left open: every path ends with a winner, a merge
or an explicit skip.
"""

from __future__ import annotations

import difflib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from flowstate.core.models.template import FileConflict, TemplateContribution
from flowstate.core.services.merge_strategies import infer_strategy

logger = logging.getLogger(__name__)

STRATEGIES = ("priority", "merge", "report", "interactive")

# chooser(path, contributions, diff) -> module name | "merge" | "skip"
Chooser = Callable[[str, list[TemplateContribution], str], str]


@dataclass
class Resolution:
    """How one conflicting path is settled."""

    path: str
    winner: str | None = None
    merge: bool = False
    merge_strategy: str | None = None
    skip: bool = False
    report_only: bool = False
    resolution: str = ""
    alternatives: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "winner": self.winner,
            "merge": self.merge,
            "merge_strategy": self.merge_strategy,
            "skip": self.skip,
            "report_only": self.report_only,
            "resolution": self.resolution,
            "alternatives": self.alternatives,
        }


def by_priority(contributions: list[TemplateContribution]) -> list[TemplateContribution]:
    """Highest priority first; equal priorities keep install order."""
    return sorted(contributions, key=lambda c: (-c.priority, c.order))


class ConflictResolver:
    """Settles file conflicts. Resolutions are cached per path."""

    def __init__(self, strategy: str = "priority", chooser: Chooser | None = None):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown conflict strategy '{strategy}' (expected one of {', '.join(STRATEGIES)})")
        self.strategy = strategy
        self.chooser = chooser
        self._cache: dict[str, Resolution] = {}
        self._lock = threading.Lock()

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def resolve(
        self,
        path: str,
        contributions: list[TemplateContribution],
        strategy: str | None = None,
    ) -> Resolution:
        """Settle one path.

        Args:
            path: Relative output path.
            contributions: Every contribution to the path.
            strategy: Override the resolver's default strategy.
        """
        with self._lock:
            cached = self._cache.get(path)
        if cached is not None:
            return cached

        strategy = strategy or self.strategy
        if strategy == "interactive":
            result = self._resolve_interactive(path, contributions)
        elif strategy == "merge":
            result = self._resolve_merge(path, contributions)
        elif strategy == "report":
            result = self._resolve_priority(path, contributions)
            result.report_only = True
        else:
            result = self._resolve_priority(path, contributions)

        logger.debug("Conflict on %s: %s", path, result.resolution)
        with self._lock:
            self._cache[path] = result
        return result

    def _resolve_priority(self, path: str, contributions: list[TemplateContribution]) -> Resolution:
        ordered = by_priority(contributions)
        winner = ordered[0]
        return Resolution(
            path=path,
            winner=winner.module,
            resolution=(
                f"Used {winner.module} version (priority {winner.priority})"
                if len(ordered) > 1 else "No conflict"
            ),
            alternatives=[{"module": c.module, "priority": c.priority} for c in ordered[1:]],
        )

    def _resolve_merge(self, path: str, contributions: list[TemplateContribution]) -> Resolution:
        strategy = infer_strategy(path)
        if strategy == "replace" or any(c.is_binary for c in contributions):
            result = self._resolve_priority(path, contributions)
            result.resolution = f"Cannot merge {path}; {result.resolution[0].lower()}{result.resolution[1:]}"
            return result
        return Resolution(
            path=path,
            merge=True,
            merge_strategy=strategy,
            resolution=f"Merged {len(contributions)} contributions with {strategy}",
        )

    def _resolve_interactive(self, path: str, contributions: list[TemplateContribution]) -> Resolution:
        if self.chooser is None or len(contributions) < 2:
            return self._resolve_priority(path, contributions)

        choice = self.chooser(path, by_priority(contributions), self.describe_differences(contributions))
        modules = [c.module for c in contributions]

        if choice == "merge":
            return self._resolve_merge(path, contributions)
        if choice == "skip":
            return Resolution(path=path, skip=True, resolution="User chose to skip file")
        if choice in modules:
            return Resolution(
                path=path,
                winner=choice,
                resolution=f"User selected {choice} version",
                alternatives=[
                    {"module": c.module, "priority": c.priority}
                    for c in by_priority(contributions) if c.module != choice
                ],
            )

        logger.warning("Unknown choice %r for %s, using priority", choice, path)
        return self._resolve_priority(path, contributions)

    # ── Reporting ────────────────────────────────────────────────

    @staticmethod
    def describe_differences(
        contributions: list[TemplateContribution],
        max_lines: int = 40,
    ) -> str:
        """Unified diffs between consecutive contributions (priority order)."""
        ordered = by_priority(contributions)
        chunks: list[str] = []
        for a, b in zip(ordered, ordered[1:]):
            if a.is_binary or b.is_binary:
                chunks.append(f"{a.module} vs {b.module}: binary content")
                continue
            diff = list(difflib.unified_diff(
                (a.content or "").splitlines(),
                (b.content or "").splitlines(),
                fromfile=a.module,
                tofile=b.module,
                lineterm="",
            ))
            if not diff:
                chunks.append(f"{a.module} vs {b.module}: identical")
                continue
            if len(diff) > max_lines:
                extra = len(diff) - max_lines
                diff = diff[:max_lines] + [f"... and {extra} more lines"]
            chunks.append("\n".join(diff))
        return "\n\n".join(chunks)

    @staticmethod
    def generate_report(conflicts: list[FileConflict]) -> dict[str, Any]:
        """Summary of every file conflict of a run."""
        return {
            "summary": {
                "total": len(conflicts),
                "merged": sum(1 for c in conflicts if c.merged),
                "skipped": sum(1 for c in conflicts if c.skipped),
                "by_priority": sum(1 for c in conflicts if c.winner and not c.merged),
            },
            "conflicts": [c.model_dump(mode="json") for c in conflicts],
        }

"""
L1 Domain — Version ranges (pure).

Semver-style versions and npm-style ranges reduced to intervals, enough
to answer "can these two constraints hold at once?" without a solver.
No I/O.

Supported range syntax:
    ``*``, ``x``, ``""``            any version
    ``1.2.3``, ``=1.2.3``           exact (partials are X-ranges: ``1.2`` = ``1.2.x``)
    ``>``, ``>=``, ``<``, ``<=``    comparators
    ``^1.2.3``, ``~1.2.3``          caret / tilde
    ``1.2.3 - 2.3.4``               hyphen range
    ``>=1.0.0 <2.0.0``              space-separated AND
    ``^1.0.0 || ^2.0.0``            OR

Pre-release tags order before their release (``2.0.0-beta < 2.0.0``)
and are otherwise compared as plain strings.
"""

from __future__ import annotations

import re
from typing import NamedTuple


class VersionError(ValueError):
    """Raised for an unparsable version or range."""


class Version(NamedTuple):
    major: int
    minor: int
    patch: int
    prerelease: str = ""

    @property
    def key(self) -> tuple:
        # Releases sort after their own pre-releases
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, self.prerelease)

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


class Interval(NamedTuple):
    """A contiguous set of versions. ``None`` bounds are unbounded."""

    lower: Version | None = None
    lower_inclusive: bool = True
    upper: Version | None = None
    upper_inclusive: bool = False

    def contains(self, v: Version) -> bool:
        if self.lower is not None:
            if v.key < self.lower.key or (v.key == self.lower.key and not self.lower_inclusive):
                return False
        if self.upper is not None:
            if v.key > self.upper.key or (v.key == self.upper.key and not self.upper_inclusive):
                return False
        return True

    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        if self.lower.key > self.upper.key:
            return True
        if self.lower.key == self.upper.key:
            return not (self.lower_inclusive and self.upper_inclusive)
        return False


ANY = Interval()

_VERSION_RE = re.compile(
    r"^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_PARTIAL_RE = re.compile(
    r"^v?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATOR_RE = re.compile(r"(<=|>=|<|>|=|\^|~)\s+")


# ── Versions ────────────────────────────────────────────────────


def parse_version(text: str) -> Version:
    """Parse a full ``MAJOR.MINOR.PATCH[-pre][+build]`` version.

    Raises:
        VersionError: If ``text`` is not a full semver version.
    """
    m = _VERSION_RE.match(text.strip())
    if not m:
        raise VersionError(f"Invalid version: {text!r}")
    return Version(int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4) or "")


def is_valid_version(text: str) -> bool:
    try:
        parse_version(text)
    except VersionError:
        return False
    return True


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is lower than, equal to or higher than ``b``."""
    ka, kb = parse_version(a).key, parse_version(b).key
    return (ka > kb) - (ka < kb)


# ── Ranges ──────────────────────────────────────────────────────


def parse_range(text: str) -> list[Interval]:
    """Parse a range into a union of intervals.

    Raises:
        VersionError: On any token that is not a version or comparator.
    """
    alternatives: list[Interval] = []
    for part in (text or "").split("||"):
        interval = _parse_and_set(part.strip())
        if not interval.is_empty():
            alternatives.append(interval)
    return alternatives


def satisfies(version: str, range_text: str) -> bool:
    """True if ``version`` falls inside ``range_text``."""
    v = parse_version(version)
    return any(iv.contains(v) for iv in parse_range(range_text))


def ranges_intersect(a: str, b: str) -> bool:
    """True if at least one version could satisfy both ranges."""
    return any(
        not intersect(x, y).is_empty()
        for x in parse_range(a)
        for y in parse_range(b)
    )


def max_satisfying(versions: list[str], range_text: str) -> str | None:
    """Highest version in ``versions`` inside the range (unparsable ones skipped)."""
    intervals = parse_range(range_text)
    best: Version | None = None
    best_text: str | None = None
    for text in versions:
        try:
            v = parse_version(text)
        except VersionError:
            continue
        if any(iv.contains(v) for iv in intervals) and (best is None or v.key > best.key):
            best, best_text = v, text
    return best_text


def compatible_range(version: str, strategy: str = "minor") -> str:
    """Range string that accepts versions compatible with ``version``.

    Strategies:
        - ``exact``: only this version
        - ``patch``: ``~version`` (patch updates)
        - ``minor``: ``^version`` (minor and patch updates)
        - ``major``: anything in the same major line

    An unparsable version or unknown strategy gives ``*``.
    """
    try:
        v = parse_version(version)
    except VersionError:
        return "*"

    if strategy == "exact":
        return version
    if strategy == "patch":
        return f"~{version}"
    if strategy == "minor":
        return f"^{version}"
    if strategy == "major":
        return f">={v.major}.0.0 <{v.major + 1}.0.0"
    return "*"


def intersect(a: Interval, b: Interval) -> Interval:
    """Intersection of two intervals (may be empty)."""
    lower, lower_inc = a.lower, a.lower_inclusive
    if b.lower is not None and (
        lower is None
        or b.lower.key > lower.key
        or (b.lower.key == lower.key and not b.lower_inclusive)
    ):
        lower, lower_inc = b.lower, b.lower_inclusive

    upper, upper_inc = a.upper, a.upper_inclusive
    if b.upper is not None and (
        upper is None
        or b.upper.key < upper.key
        or (b.upper.key == upper.key and not b.upper_inclusive)
    ):
        upper, upper_inc = b.upper, b.upper_inclusive

    return Interval(lower, lower_inc, upper, upper_inc)


# ── Internals ───────────────────────────────────────────────────


def _parse_and_set(text: str) -> Interval:
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        low = _comparator(">=", hyphen.group(1))
        high = _comparator("<=", hyphen.group(2))
        return intersect(low, high)

    result = ANY
    for token in _OPERATOR_RE.sub(r"\1", text).split():
        result = intersect(result, _parse_token(token))
    return result


def _parse_token(token: str) -> Interval:
    for op in (">=", "<=", ">", "<", "=", "^", "~"):
        if token.startswith(op):
            return _comparator(op, token[len(op):])
    return _comparator("=", token)


def _partial(text: str) -> tuple[list[int], str]:
    """Split a possibly partial version into its numeric parts and pre-release.

    ``1.2`` gives ``([1, 2], "")``; wildcards end the list.
    """
    if text in ("", "*", "x", "X"):
        return [], ""
    m = _PARTIAL_RE.match(text)
    if not m:
        raise VersionError(f"Invalid version in range: {text!r}")
    parts: list[int] = []
    for group in m.groups()[:3]:
        if group is None or group in ("x", "X", "*"):
            break
        parts.append(int(group))
    return parts, (m.group(4) or "") if len(parts) == 3 else ""


def _bump(parts: list[int]) -> Version:
    """Smallest version above every version matching the partial ``parts``."""
    if len(parts) == 1:
        return Version(parts[0] + 1, 0, 0)
    if len(parts) == 2:
        return Version(parts[0], parts[1] + 1, 0)
    return Version(parts[0], parts[1], parts[2] + 1)


def _floor(parts: list[int], pre: str = "") -> Version:
    filled = parts + [0] * (3 - len(parts))
    return Version(filled[0], filled[1], filled[2], pre)


def _comparator(op: str, text: str) -> Interval:
    parts, pre = _partial(text.strip())
    if not parts:
        # "<*" matches nothing, everything else with a wildcard is "any"
        if op in ("<", ">"):
            return Interval(Version(0, 0, 0), False, Version(0, 0, 0), False)
        return ANY

    full = len(parts) == 3
    floor = _floor(parts, pre)

    if op == "=":
        if full:
            return Interval(floor, True, floor, True)
        return Interval(floor, True, _bump(parts), False)
    if op == ">=":
        return Interval(floor, True)
    if op == ">":
        if full:
            return Interval(floor, False)
        return Interval(_bump(parts), True)
    if op == "<":
        return Interval(upper=floor, upper_inclusive=False)
    if op == "<=":
        if full:
            return Interval(upper=floor, upper_inclusive=True)
        return Interval(upper=_bump(parts), upper_inclusive=False)
    if op == "~":
        ceiling = Version(parts[0] + 1, 0, 0) if len(parts) == 1 else Version(parts[0], parts[1] + 1, 0)
        return Interval(floor, True, ceiling, False)
    if op == "^":
        return Interval(floor, True, _caret_ceiling(parts), False)
    raise VersionError(f"Unknown operator {op!r}")


def _caret_ceiling(parts: list[int]) -> Version:
    # Bump the left-most non-zero component present
    major = parts[0]
    minor = parts[1] if len(parts) > 1 else None
    patch = parts[2] if len(parts) > 2 else None
    if major > 0 or minor is None:
        return Version(major + 1, 0, 0)
    if minor > 0 or patch is None:
        return Version(0, minor + 1, 0)
    return Version(0, 0, patch + 1)

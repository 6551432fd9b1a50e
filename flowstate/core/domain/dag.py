"""
L1 Domain — Dependency graph utilities (pure).

Graphs are plain ``{node: [successor, ...]}`` mappings where an edge
points from a module to something it requires. No I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

_WHITE, _GREY, _BLACK = 0, 1, 2


def find_cycles(
    graph: Mapping[str, Sequence[str]],
    roots: Iterable[str] | None = None,
) -> list[list[str]]:
    """Find dependency cycles reachable from ``roots``.

    Depth-first walk with path tracking: a node found again on the
    current path closes a cycle. Each cycle is reported once, as the
    closed path starting at the node where it was entered
    (``["X", "Y", "X"]``).

    Args:
        graph: Adjacency mapping. Successors missing from the mapping
            are leaves.
        roots: Start nodes, in order (default: every node of the graph).

    Returns:
        List of closed cycle paths, in discovery order.
    """
    color: dict[str, int] = {}
    path: list[str] = []
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    def visit(node: str) -> None:
        color[node] = _GREY
        path.append(node)
        for succ in graph.get(node, ()):
            state = color.get(succ, _WHITE)
            if state == _GREY:
                cycle = path[path.index(succ):] + [succ]
                key = _canonical(cycle[:-1])
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
            elif state == _WHITE:
                visit(succ)
        path.pop()
        color[node] = _BLACK

    for root in (graph.keys() if roots is None else roots):
        if color.get(root, _WHITE) == _WHITE:
            visit(root)

    return cycles


def topological_order(
    nodes: Sequence[str],
    edges: Mapping[str, Sequence[str]],
) -> list[str]:
    """Order ``nodes`` so every node comes after the nodes it depends on.

    Only edges between members of ``nodes`` count. Independent nodes keep
    their first-visited order from the input. Cycles do not loop: a node
    already on the current path is skipped, so the result is always a
    permutation of ``nodes``.
    """
    members = list(dict.fromkeys(nodes))
    wanted = set(members)
    color: dict[str, int] = {}
    order: list[str] = []

    def visit(node: str) -> None:
        color[node] = _GREY
        for dep in edges.get(node, ()):
            if dep in wanted and color.get(dep, _WHITE) == _WHITE:
                visit(dep)
        color[node] = _BLACK
        order.append(node)

    for node in members:
        if color.get(node, _WHITE) == _WHITE:
            visit(node)

    return order


def _canonical(cycle: list[str]) -> tuple[str, ...]:
    """Rotation-independent key for an open cycle."""
    if not cycle:
        return ()
    i = cycle.index(min(cycle))
    return tuple(cycle[i:] + cycle[:i])

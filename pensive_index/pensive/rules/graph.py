"""Cycle detection over plot-block parent/dependency hierarchies.

Edges run from a block to its ``parent_id`` and to each entry of its
``dependencies``. A well-formed hierarchy is a forest; any back edge to a
block still on the current traversal path is a cycle.

The traversal is an iterative DFS so deep hierarchies cannot exhaust the
interpreter's recursion limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from pensive.rules.models import PlotBlockNode

CYCLE_MESSAGE_PREFIX = "Circular dependency detected"


@dataclass
class CycleReport:
    """One detected cycle, closed (first id repeated at the end)."""

    chain: list[str]
    names: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"{CYCLE_MESSAGE_PREFIX}: {' → '.join(self.chain)}"

    @property
    def length(self) -> int:
        """Number of distinct blocks in the cycle."""
        return len(self.chain) - 1


def _edges(node: PlotBlockNode) -> Iterator[str]:
    targets: list[str] = []
    if node.parent_id:
        targets.append(node.parent_id)
    if node.dependencies:
        targets.extend(d for d in node.dependencies if d)
    # Same target through both relations is one edge
    return iter(dict.fromkeys(targets))


def find_cycles(nodes: Iterable[PlotBlockNode]) -> list[CycleReport]:
    """Return one report per back edge found while walking every root.

    Dangling references (a parent or dependency that is not in *nodes*) are
    leaves. Each node is expanded at most once, so the walk is O(V + E).
    """
    index: dict[str, PlotBlockNode] = {}
    for node in nodes:
        index.setdefault(node.id, node)

    visited: set[str] = set()
    on_path: set[str] = set()
    reports: list[CycleReport] = []

    for root_id in index:
        if root_id in visited:
            continue

        path = [root_id]
        visited.add(root_id)
        on_path.add(root_id)
        stack = [_edges(index[root_id])]

        while stack:
            target = next(stack[-1], None)
            if target is None:
                stack.pop()
                on_path.discard(path.pop())
                continue

            if target in on_path:
                chain = path[path.index(target):] + [target]
                names = [index[i].name or i for i in chain]
                reports.append(CycleReport(chain=chain, names=names))
                continue

            if target in visited or target not in index:
                continue

            visited.add(target)
            on_path.add(target)
            path.append(target)
            stack.append(_edges(index[target]))

    return reports


def detect_cycles(nodes: Iterable[PlotBlockNode]) -> list[str]:
    """Human-readable messages for every cycle in the hierarchy."""
    return [report.message for report in find_cycles(nodes)]


def shortest_cycle(nodes: Iterable[PlotBlockNode]) -> CycleReport | None:
    """The cycle involving the fewest blocks, or None for an acyclic graph."""
    reports = find_cycles(nodes)
    if not reports:
        return None
    return min(reports, key=lambda r: r.length)

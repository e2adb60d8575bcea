"""Scheduler: turns a filtered package graph into an execution plan.

The plan is a list of batches built by Kahn-style leveling. Every package
in a batch has all of its (filtered) dependencies in earlier batches, so a
batch may run concurrently.

Cycles are found up front with Tarjan's strongly-connected-components
algorithm and described as walks such as ``a -> b -> a``. By default they
are logged as a warning and the members of each cycle are scheduled
together, unordered, once everything outside the cycle that they depend on
has run. With ``reject_cycles`` the walks are raised as CyclesRejectedError
instead and nothing is scheduled.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterator

from monoexec.core.package import Package
from monoexec.errors import CyclesRejectedError
from monoexec.orchestrator.graph import PackageGraph

logger = logging.getLogger(__name__)

__all__ = [
    "CYCLE_WARNING_HEADER",
    "ExecutionPlan",
    "Scheduler",
    "build_plan",
    "cyclic_components",
    "describe_cycles",
    "format_cycle_report",
    "strongly_connected_components",
]

CYCLE_WARNING_HEADER = "Dependency cycles detected, you should fix these!"


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered batches of packages plus the cycle walks found while planning."""

    batches: tuple[tuple[Package, ...], ...] = ()
    cycles: tuple[str, ...] = ()

    def __iter__(self) -> Iterator[tuple[Package, ...]]:
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)

    @property
    def packages(self) -> list[Package]:
        """All packages, batch after batch, selection order within a batch."""
        return [pkg for batch in self.batches for pkg in batch]

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)


def strongly_connected_components(graph: PackageGraph) -> list[list[str]]:
    """Tarjan's algorithm, iterative so deep graphs cannot hit the recursion limit.

    Components come out in reverse topological order (dependencies first);
    members of a component are in graph order.
    """
    order = {name: i for i, name in enumerate(graph.names)}
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    def visit(name: str) -> None:
        nonlocal counter
        index_of[name] = lowlink[name] = counter
        counter += 1
        stack.append(name)
        on_stack.add(name)

    for root in graph.names:
        if root in index_of:
            continue
        visit(root)
        work = [(root, iter(graph.dependencies_of(root)))]
        while work:
            node, neighbours = work[-1]
            descended = False
            for nxt in neighbours:
                if nxt not in index_of:
                    visit(nxt)
                    work.append((nxt, iter(graph.dependencies_of(nxt))))
                    descended = True
                    break
                if nxt in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[nxt])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == index_of[node]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(sorted(component, key=order.__getitem__))
    return components


def cyclic_components(graph: PackageGraph) -> list[list[str]]:
    """Components that form a cycle: more than one member, or a self-loop."""
    return [
        component
        for component in strongly_connected_components(graph)
        if len(component) > 1 or component[0] in graph.dependencies_of(component[0])
    ]


def _walk_back(graph: PackageGraph, start: str, members: set[str]) -> list[str]:
    """Shortest walk from ``start`` around its cycle back to ``start``."""
    parents: dict[str, str] = {}
    visited = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for dep in graph.dependencies_of(current):
            if dep not in members:
                continue
            if dep == start:
                walk = [current]
                while walk[-1] != start:
                    walk.append(parents[walk[-1]])
                walk.reverse()
                return [*walk, start]
            if dep not in visited:
                visited.add(dep)
                parents[dep] = current
                queue.append(dep)
    raise ValueError(f"{start} is not on a cycle")


def _walk_into(graph: PackageGraph, start: str, cycle_walks: dict[str, list[str]]) -> list[str] | None:
    """Shortest path from ``start`` to a cycle, followed by one full rotation of it."""
    parents: dict[str, str] = {}
    visited = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for dep in graph.dependencies_of(current):
            if dep in visited:
                continue
            visited.add(dep)
            parents[dep] = current
            if dep in cycle_walks:
                path = [dep]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                path.reverse()
                return [*path, *cycle_walks[dep][1:]]
            queue.append(dep)
    return None


def describe_cycles(graph: PackageGraph, components: list[list[str]] | None = None) -> list[str]:
    """One ``a -> b -> a`` walk per package on, or leading into, a cycle.

    Packages on a cycle walk around it back to themselves; packages that
    depend on a cycle walk into it and complete one rotation. Walks follow
    graph order and are deduplicated.
    """
    if components is None:
        components = cyclic_components(graph)

    cycle_walks: dict[str, list[str]] = {}
    for component in components:
        members = set(component)
        for name in component:
            cycle_walks[name] = _walk_back(graph, name, members)

    affected = graph.transitive_dependents(cycle_walks)
    walks: list[str] = []
    for name in graph.names:
        if name not in affected:
            continue
        walk = cycle_walks.get(name) or _walk_into(graph, name, cycle_walks)
        if walk is None:
            continue
        rendered = " -> ".join(walk)
        if rendered not in walks:
            walks.append(rendered)
    return walks


def format_cycle_report(walks: list[str]) -> str:
    return "\n".join([CYCLE_WARNING_HEADER, *walks])


class Scheduler:
    """Builds ExecutionPlans.

    Args:
        reject_cycles: Raise CyclesRejectedError instead of warning
        logger: Where the cycle warning goes (defaults to this module's logger)
    """

    def __init__(self, *, reject_cycles: bool = False, logger: logging.Logger | None = None):
        self.reject_cycles = reject_cycles
        self.logger = logger or logging.getLogger(__name__)

    def plan(self, graph: PackageGraph) -> ExecutionPlan:
        """Compute the batches for ``graph``.

        Raises:
            CyclesRejectedError: If cycles exist and reject_cycles is set.
        """
        components = cyclic_components(graph)
        walks = describe_cycles(graph, components) if components else []

        if walks:
            report = format_cycle_report(walks)
            if self.reject_cycles:
                raise CyclesRejectedError(report, walks)
            self.logger.warning(report)

        component_of = {name: i for i, component in enumerate(components) for name in component}
        # A self-loop never blocks its own package
        deps = {
            name: {dep for dep in graph.dependencies_of(name) if dep != name}
            for name in graph.names
        }

        done: set[str] = set()
        pending = graph.names
        batches: list[tuple[Package, ...]] = []
        while pending:
            batch = [name for name in pending if deps[name] <= done]
            if not batch:
                # Stuck: only cycles (and packages behind them) remain. Release
                # every cycle whose outside dependencies have all run.
                batch = [
                    name
                    for name in pending
                    if name in component_of
                    and all(dep in done or component_of.get(dep) == component_of[name] for dep in deps[name])
                ]
            if not batch:
                raise RuntimeError(f"Unable to schedule remaining packages: {', '.join(pending)}")

            done.update(batch)
            pending = [name for name in pending if name not in done]
            batches.append(tuple(graph.get(name) for name in batch))

        return ExecutionPlan(batches=tuple(batches), cycles=tuple(walks))


def build_plan(
    graph: PackageGraph,
    *,
    reject_cycles: bool = False,
    logger: logging.Logger | None = None,
) -> ExecutionPlan:
    """Convenience wrapper around ``Scheduler(...).plan(graph)``."""
    return Scheduler(reject_cycles=reject_cycles, logger=logger).plan(graph)

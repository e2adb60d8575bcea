"""Package dependency graph.

Nodes are package names; edges point from a dependent to each of its
in-workspace dependencies. Adjacency is kept in name-keyed dicts in both
directions, in workspace order, so iteration is deterministic.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator

from monoexec.core.package import Package

__all__ = ["PackageGraph"]


class PackageGraph:
    """Directed graph of local dependencies between workspace packages.

    Declared dependencies that do not name a package in the graph are not
    edges. A package that lists itself gets a self-edge, which the scheduler
    reports as a cycle.
    """

    def __init__(self, packages: Iterable[Package]):
        self.packages: dict[str, Package] = {}
        for pkg in packages:
            self.packages[pkg.name] = pkg

        self._outgoing: dict[str, list[str]] = {name: [] for name in self.packages}
        self._incoming: dict[str, list[str]] = {name: [] for name in self.packages}

        order = {name: i for i, name in enumerate(self.packages)}
        for name, pkg in self.packages.items():
            deps = sorted(
                (dep for dep in pkg.local_dependencies if dep in self.packages),
                key=order.__getitem__,
            )
            for dep in deps:
                self._outgoing[name].append(dep)
                self._incoming[dep].append(name)

        for dependents in self._incoming.values():
            dependents.sort(key=order.__getitem__)

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __iter__(self) -> Iterator[Package]:
        return iter(self.packages.values())

    @property
    def names(self) -> list[str]:
        return list(self.packages)

    def get(self, name: str) -> Package:
        return self.packages[name]

    def dependencies_of(self, name: str) -> list[str]:
        """Direct in-graph dependencies of ``name``."""
        return list(self._outgoing[name])

    def dependents_of(self, name: str) -> list[str]:
        """Packages in the graph that depend directly on ``name``."""
        return list(self._incoming[name])

    def edges(self) -> Iterator[tuple[str, str]]:
        """Yield (dependent, dependency) pairs."""
        for name, deps in self._outgoing.items():
            for dep in deps:
                yield name, dep

    def subgraph(self, names: Iterable[str]) -> PackageGraph:
        """Induced subgraph on ``names``, keeping this graph's node order.

        Edges to packages outside the selection are dropped.
        """
        keep = set(names)
        return PackageGraph(pkg for pkg in self.packages.values() if pkg.name in keep)

    def _closure(self, start: Iterable[str], adjacency: dict[str, list[str]]) -> set[str]:
        seen: set[str] = set()
        queue = deque(name for name in start if name in self.packages)
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(n for n in adjacency[current] if n not in seen)
        return seen

    def transitive_dependents(self, names: Iterable[str]) -> set[str]:
        """``names`` plus everything that depends on them, directly or not."""
        return self._closure(names, self._incoming)

    def transitive_dependencies(self, names: Iterable[str]) -> set[str]:
        """``names`` plus everything they depend on, directly or not."""
        return self._closure(names, self._outgoing)

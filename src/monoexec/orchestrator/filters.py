"""Package selection: scope, ignore and since filters.

All active filters are ANDed over the workspace's package set:

    selected = scope-matching - ignore-matching - unchanged-since-ref

Two opt-in extensions widen the result:
    - include_dependents: packages that transitively depend on a changed
      package count as changed too (only meaningful with ``since``)
    - include_dependencies: every transitive dependency of a selected
      package is added after filtering
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Protocol

from monoexec.orchestrator.graph import PackageGraph

logger = logging.getLogger(__name__)

__all__ = [
    "ChangeSource",
    "FilterOptions",
    "PackageFilter",
    "compile_globs",
    "expand_alternatives",
    "packages_for_paths",
]

# @(a|b) extglob groups and {a,b} brace sets, innermost first
_ALTERNATION = re.compile(r"@\(([^()]*)\)|\{([^{}]*)\}")


class ChangeSource(Protocol):
    """What the since filter needs from version control."""

    def ensure_repository(self) -> None: ...

    def latest_tag(self) -> str | None: ...

    def changed_paths(self, ref: str) -> set[Path]: ...


def expand_alternatives(pattern: str) -> list[str]:
    """Expand ``@(a|b)`` and ``{a,b}`` groups into plain fnmatch patterns.

    >>> expand_alternatives("package-@(2|3)")
    ['package-2', 'package-3']
    """
    match = _ALTERNATION.search(pattern)
    if match is None:
        return [pattern]
    if match.group(1) is not None:
        choices = match.group(1).split("|")
    else:
        choices = match.group(2).split(",")
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for choice in choices:
        expanded.extend(expand_alternatives(f"{head}{choice}{tail}"))
    return expanded


def compile_globs(patterns: Iterable[str]) -> Callable[[str], bool]:
    """Compile glob patterns into one case-sensitive name predicate."""
    regexes = [
        re.compile(fnmatch.translate(expanded))
        for pattern in patterns
        for expanded in expand_alternatives(pattern)
    ]

    def matches(name: str) -> bool:
        return any(regex.match(name) for regex in regexes)

    return matches


def packages_for_paths(graph: PackageGraph, paths: Iterable[Path]) -> set[str]:
    """Names of packages containing at least one of ``paths``.

    Each path belongs to the package with the longest matching location, so
    a nested package claims its own files.
    """
    by_depth = sorted(graph, key=lambda pkg: len(pkg.location.parts), reverse=True)
    owners: set[str] = set()
    for path in paths:
        for pkg in by_depth:
            if path == pkg.location or path.is_relative_to(pkg.location):
                owners.add(pkg.name)
                break
    return owners


@dataclass
class FilterOptions:
    """Selection rules.

    Attributes:
        scope: Keep packages matching any of these globs (empty = keep all)
        ignore: Drop packages matching any of these globs
        since: None disables change detection; "" compares against the
            latest release tag; anything else is a git ref
        include_dependents: Widen the changed set with transitive dependents
        include_dependencies: Add transitive dependencies of the selection
    """

    scope: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=list)
    since: str | None = None
    include_dependents: bool = False
    include_dependencies: bool = False


class PackageFilter:
    """Applies FilterOptions to a PackageGraph."""

    def __init__(self, options: FilterOptions, changes: ChangeSource | None = None):
        self.options = options
        self.changes = changes
        self._in_scope = compile_globs(options.scope) if options.scope else None
        self._ignored = compile_globs(options.ignore) if options.ignore else None

    def _changed_names(self, graph: PackageGraph) -> set[str]:
        if self.changes is None:
            raise ValueError("A change source is required to filter with since")
        self.changes.ensure_repository()

        ref = self.options.since or self.changes.latest_tag()
        if ref is None:
            logger.info("No release tag found, treating every package as changed")
            changed = set(graph.names)
        else:
            changed = packages_for_paths(graph, self.changes.changed_paths(ref))
            logger.info(f"{len(changed)} packages changed since {ref}")

        if self.options.include_dependents:
            changed = graph.transitive_dependents(changed)
        return changed

    def select(self, graph: PackageGraph) -> list[str]:
        """Names of the selected packages, in graph order.

        Raises:
            RepositoryRequiredError: If ``since`` is set outside a git repository.
        """
        selected = graph.names
        if self._in_scope is not None:
            selected = [name for name in selected if self._in_scope(name)]
            logger.debug(f"scope {self.options.scope} kept {len(selected)} packages")
        if self._ignored is not None:
            selected = [name for name in selected if not self._ignored(name)]
            logger.debug(f"ignore {self.options.ignore} kept {len(selected)} packages")
        if self.options.since is not None:
            changed = self._changed_names(graph)
            selected = [name for name in selected if name in changed]

        if self.options.include_dependencies:
            widened = graph.transitive_dependencies(selected)
            selected = [name for name in graph.names if name in widened]
        return selected

    def apply(self, graph: PackageGraph) -> PackageGraph:
        """Induced subgraph on the selected packages."""
        return graph.subgraph(self.select(graph))

"""Integration module connecting the exec pipeline.

    load workspace -> PackageGraph -> PackageFilter -> Scheduler -> Executor

Usage errors, environment errors and rejected cycles are all raised before
the first process is spawned.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from monoexec.core.config import ExecOptions, apply_overrides, load_config
from monoexec.core.package import Package
from monoexec.core.vcs import GitRepository
from monoexec.core.workspace import load_packages
from monoexec.errors import CommandRequiredError
from monoexec.orchestrator.executor import Command, ExecMode, Executor, SpawnFn
from monoexec.orchestrator.filters import ChangeSource, FilterOptions, PackageFilter
from monoexec.orchestrator.graph import PackageGraph
from monoexec.orchestrator.output import OutputSink
from monoexec.orchestrator.results import AggregateResult
from monoexec.orchestrator.scheduler import ExecutionPlan, Scheduler

logger = logging.getLogger(__name__)

__all__ = ["ExecRequest", "mode_for", "plan_packages", "run_plan", "exec_in_workspace"]


@dataclass
class ExecRequest:
    """Everything one ``monoexec exec`` invocation asks for."""

    command: str | None
    args: tuple[str, ...] = ()
    filters: FilterOptions | None = None
    overrides: dict[str, Any] = field(default_factory=dict)


def mode_for(options: ExecOptions) -> ExecMode:
    """parallel wins over stream; neither means serial."""
    if options.parallel:
        return ExecMode.PARALLEL
    if options.stream:
        return ExecMode.STREAM
    return ExecMode.SERIAL


def plan_packages(
    packages: list[Package],
    filters: FilterOptions,
    *,
    reject_cycles: bool = False,
    changes: ChangeSource | None = None,
    log: logging.Logger | None = None,
) -> ExecutionPlan:
    """Build, filter and schedule the package graph.

    Raises:
        RepositoryRequiredError: If ``since`` is used outside a git repository
        CyclesRejectedError: If cycles exist and ``reject_cycles`` is set
    """
    graph = PackageGraph(packages)
    selected = PackageFilter(filters, changes).apply(graph)
    logger.debug(f"Selected {len(selected)} of {len(graph)} packages")
    return Scheduler(reject_cycles=reject_cycles, logger=log).plan(selected)


async def run_plan(executor: Executor, plan: ExecutionPlan) -> AggregateResult:
    """Execute ``plan`` and wait for stragglers a parallel bail left running."""
    try:
        return await executor.execute(plan)
    finally:
        await executor.drain()


def exec_in_workspace(
    root: Path,
    request: ExecRequest,
    *,
    output: OutputSink | None = None,
    changes: ChangeSource | None = None,
    spawn: SpawnFn | None = None,
    spawn_streaming: SpawnFn | None = None,
    log: logging.Logger | None = None,
) -> AggregateResult:
    """Run ``request`` in the workspace rooted at ``root``.

    Overrides left as None fall back to the config file, then to defaults.

    Raises:
        CommandRequiredError: If no command was given (checked first)
        MonoexecError: Any environment or structural error
        ExecutionError: When bail stops the run
    """
    if not request.command:
        raise CommandRequiredError()

    config = load_config(root)
    options = apply_overrides(config.exec, **request.overrides)
    filters = request.filters or FilterOptions()

    packages = load_packages(config)
    if filters.since is not None and changes is None:
        changes = GitRepository(config.root)

    plan = plan_packages(
        packages,
        filters,
        reject_cycles=options.reject_cycles,
        changes=changes,
        log=log,
    )

    executor = Executor(
        Command(request.command, tuple(request.args)),
        mode=mode_for(options),
        bail=options.bail,
        prefix=options.prefix,
        concurrency=options.concurrency,
        root=config.root,
        output=output,
        spawn=spawn,
        spawn_streaming=spawn_streaming,
        logger=log,
    )
    return asyncio.run(run_plan(executor, plan))

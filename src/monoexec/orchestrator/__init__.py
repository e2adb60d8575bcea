"""Orchestrator package: dependency scheduling and concurrent execution.

Core Components:
    - PackageGraph: local dependency edges between workspace packages
    - PackageFilter: scope / ignore / since selection
    - Scheduler: topological batches plus cycle diagnostics
    - Executor: serial, parallel and stream execution with bail policy
    - AggregateResult: per-package outcomes and the overall exit status

Usage:
    from monoexec.orchestrator import (
        Command,
        Executor,
        FilterOptions,
        PackageFilter,
        PackageGraph,
        Scheduler,
    )

    graph = PackageFilter(FilterOptions(scope=["plugin-*"])).apply(PackageGraph(packages))
    plan = Scheduler().plan(graph)
    result = await Executor(Command("ls")).execute(plan)
"""

from monoexec.orchestrator.executor import (
    IDENTITY_ENV_VAR,
    ROOT_ENV_VAR,
    Command,
    ExecMode,
    Executor,
)
from monoexec.orchestrator.filters import FilterOptions, PackageFilter, compile_globs
from monoexec.orchestrator.graph import PackageGraph
from monoexec.orchestrator.results import AggregateResult, ExecutionOutcome
from monoexec.orchestrator.scheduler import (
    CYCLE_WARNING_HEADER,
    ExecutionPlan,
    Scheduler,
    build_plan,
)

__all__ = [
    # Graph and selection
    "PackageGraph",
    "FilterOptions",
    "PackageFilter",
    "compile_globs",
    # Scheduling
    "CYCLE_WARNING_HEADER",
    "ExecutionPlan",
    "Scheduler",
    "build_plan",
    # Execution
    "IDENTITY_ENV_VAR",
    "ROOT_ENV_VAR",
    "Command",
    "ExecMode",
    "Executor",
    # Results
    "AggregateResult",
    "ExecutionOutcome",
]

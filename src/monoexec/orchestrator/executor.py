"""Executor for running a command in every package of a plan.

This module handles:
    - serial mode: one package at a time in plan order, output captured
      and printed after each process exits
    - parallel mode: every package at once, batches ignored, output
      streamed with a package prefix
    - stream mode: batch by batch, packages inside a batch concurrently,
      output streamed with a package prefix
    - bail policy: stop scheduling new work on the first failure, or run
      everything and aggregate the failures

Bail never kills a process that is already running. In parallel mode the
run fails as soon as one package fails while its siblings keep going;
call ``drain()`` before the event loop closes so they can finish.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from monoexec.core import child_process
from monoexec.core.child_process import ProcessResult, build_command_line
from monoexec.core.package import Package
from monoexec.errors import CommandRequiredError, ExecutionError
from monoexec.orchestrator.output import ConsoleOutput, OutputSink
from monoexec.orchestrator.results import AggregateResult, ExecutionOutcome
from monoexec.orchestrator.scheduler import ExecutionPlan

logger = logging.getLogger(__name__)

__all__ = [
    "IDENTITY_ENV_VAR",
    "ROOT_ENV_VAR",
    "Command",
    "ExecMode",
    "Executor",
]

IDENTITY_ENV_VAR = "MONOEXEC_PACKAGE_NAME"
ROOT_ENV_VAR = "MONOEXEC_ROOT_PATH"

SpawnFn = Callable[..., Awaitable[ProcessResult]]


class ExecMode(str, Enum):
    """How packages are run."""

    SERIAL = "serial"
    PARALLEL = "parallel"
    STREAM = "stream"


@dataclass(frozen=True)
class Command:
    """Executable token and its arguments, identical for every package."""

    command: str
    args: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        return build_command_line(self.command, self.args)


class Executor:
    """Runs one Command across the packages of an ExecutionPlan.

    Args:
        command: What to run in each package
        mode: serial, parallel or stream
        bail: Stop on the first failure
        prefix: Tag streamed lines with the package name
        concurrency: Max processes at once inside a stream batch
        root: Workspace root, exported to children as MONOEXEC_ROOT_PATH
        output: Where child output goes
        spawn: Captured-output spawn primitive
        spawn_streaming: Streaming spawn primitive
        logger: Where progress and failures are logged

    Raises:
        CommandRequiredError: If the command token is empty.
    """

    def __init__(
        self,
        command: Command,
        *,
        mode: ExecMode = ExecMode.SERIAL,
        bail: bool = True,
        prefix: bool = True,
        concurrency: int | None = None,
        root: Path | None = None,
        output: OutputSink | None = None,
        spawn: SpawnFn | None = None,
        spawn_streaming: SpawnFn | None = None,
        logger: logging.Logger | None = None,
    ):
        if not command.command:
            raise CommandRequiredError()
        self.command = command
        self.mode = ExecMode(mode)
        self.bail = bail
        self.prefix = prefix
        self.concurrency = concurrency
        self.root = root
        self.output = output or ConsoleOutput()
        self._spawn = spawn or child_process.spawn
        self._spawn_streaming = spawn_streaming or child_process.spawn_streaming
        self.logger = logger or logging.getLogger(__name__)
        self.result = AggregateResult()
        self._in_flight: set[asyncio.Task[ExecutionOutcome]] = set()

    # ------------------------------------------------------------------
    # Per-package invocation
    # ------------------------------------------------------------------

    def _env_for(self, pkg: Package) -> dict[str, str]:
        env = dict(os.environ)
        env[IDENTITY_ENV_VAR] = pkg.name
        if self.root is not None:
            env[ROOT_ENV_VAR] = str(self.root)
        return env

    def _failure_outcome(self, pkg: Package, error: ExecutionError) -> ExecutionOutcome:
        if error.package is None:
            error.package = pkg.name
        return ExecutionOutcome(
            package=pkg.name,
            exit_code=error.exit_code,
            stdout=error.stdout,
            stderr=error.stderr,
            error=error,
        )

    def _log_failure(self, outcome: ExecutionOutcome) -> None:
        message = str(outcome.error) if outcome.error else f"exited with code {outcome.exit_code}"
        self.logger.error(f"{outcome.package}: {message}")

    async def _run_captured(self, pkg: Package) -> ExecutionOutcome:
        try:
            proc = await self._spawn(
                self.command.command,
                list(self.command.args),
                cwd=pkg.location,
                env=self._env_for(pkg),
                shell=True,
                reject=self.bail,
            )
        except ExecutionError as error:
            if error.stdout or error.stderr:
                self.output.write_captured(
                    pkg.name,
                    ProcessResult(
                        command=error.command or str(self.command),
                        exit_code=error.exit_code,
                        stdout=error.stdout,
                        stderr=error.stderr,
                    ),
                )
            if self.bail:
                if error.package is None:
                    error.package = pkg.name
                raise
            return self._failure_outcome(pkg, error)

        self.output.write_captured(pkg.name, proc)
        return ExecutionOutcome(
            package=pkg.name,
            exit_code=proc.exit_code,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )

    async def _run_streamed(
        self,
        pkg: Package,
        limiter: asyncio.Semaphore | None = None,
    ) -> ExecutionOutcome:
        async with limiter or contextlib.nullcontext():
            try:
                proc = await self._spawn_streaming(
                    self.command.command,
                    list(self.command.args),
                    cwd=pkg.location,
                    env=self._env_for(pkg),
                    prefix=pkg.name if self.prefix else None,
                    on_line=self.output.write_line,
                    shell=True,
                    reject=self.bail,
                )
            except ExecutionError as error:
                if error.package is None:
                    error.package = pkg.name
                raise
        return ExecutionOutcome(package=pkg.name, exit_code=proc.exit_code)

    def _settle(self, pkg: Package, settled: Any) -> ExecutionOutcome:
        """Turn one gather() result (value or exception) into an outcome."""
        if isinstance(settled, ExecutionError):
            return self._failure_outcome(pkg, settled)
        if isinstance(settled, BaseException):
            raise settled
        return settled

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def _execute_serial(self, plan: ExecutionPlan) -> None:
        for pkg in plan.packages:
            outcome = await self._run_captured(pkg)
            self.result.record(outcome)
            if not outcome.ok:
                self._log_failure(outcome)

    async def _execute_parallel(self, plan: ExecutionPlan) -> None:
        packages = plan.packages
        tasks = [asyncio.create_task(self._run_streamed(pkg), name=pkg.name) for pkg in packages]

        if not self.bail:
            settled = await asyncio.gather(*tasks, return_exceptions=True)
            for pkg, item in zip(packages, settled):
                outcome = self._settle(pkg, item)
                self.result.record(outcome)
                if not outcome.ok:
                    self._log_failure(outcome)
            return

        self._in_flight.update(tasks)
        pending: set[asyncio.Task[ExecutionOutcome]] = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            for task in tasks:
                if task not in done:
                    continue
                self._in_flight.discard(task)
                error = task.exception()
                if error is not None:
                    # Siblings keep running; drain() collects them
                    raise error
                self.result.record(task.result())

    async def _execute_stream(self, plan: ExecutionPlan) -> None:
        limiter = asyncio.Semaphore(self.concurrency) if self.concurrency else None
        for index, batch in enumerate(plan.batches):
            self.logger.debug(f"Starting batch {index + 1}/{len(plan)}: {', '.join(p.name for p in batch)}")
            tasks = [asyncio.create_task(self._run_streamed(pkg, limiter), name=pkg.name) for pkg in batch]
            settled = await asyncio.gather(*tasks, return_exceptions=True)

            first_error: ExecutionError | None = None
            for pkg, item in zip(batch, settled):
                outcome = self._settle(pkg, item)
                self.result.record(outcome)
                if outcome.ok:
                    continue
                if self.bail:
                    first_error = first_error or outcome.error
                else:
                    self._log_failure(outcome)
            if first_error is not None:
                raise first_error

    async def execute(self, plan: ExecutionPlan) -> AggregateResult:
        """Run the command across ``plan``.

        Returns:
            AggregateResult with one outcome per package that ran

        Raises:
            ExecutionError: On the first failure when bail is set; the
                child's message and exit code are passed through unchanged.
        """
        self.result = AggregateResult()
        count = len(plan.packages)
        if count == 0:
            self.logger.info("No packages selected, nothing to run")
            return self.result

        self.logger.info(
            f"Executing '{self.command}' in {count} package{'s' if count != 1 else ''} ({self.mode.value})"
        )

        runners = {
            ExecMode.SERIAL: self._execute_serial,
            ExecMode.PARALLEL: self._execute_parallel,
            ExecMode.STREAM: self._execute_stream,
        }
        try:
            await runners[self.mode](plan)
        except ExecutionError as error:
            self.result.aborted_by = error
            raise

        failed = self.result.failed
        if failed:
            self.logger.error(
                f"'{self.command}' failed in {len(failed)} of {count} packages: "
                f"{', '.join(outcome.package for outcome in failed)}"
            )
        else:
            self.logger.info(f"Executed command in {count} package{'s' if count != 1 else ''}")
        return self.result

    async def drain(self) -> None:
        """Wait for processes left running after a parallel bail."""
        if not self._in_flight:
            return
        self.logger.debug(f"Waiting for {len(self._in_flight)} running packages to finish")
        pending = list(self._in_flight)
        self._in_flight.clear()
        await asyncio.gather(*pending, return_exceptions=True)

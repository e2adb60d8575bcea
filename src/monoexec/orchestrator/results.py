"""Per-package outcomes and the aggregate result of one exec run."""

from __future__ import annotations

from dataclasses import dataclass, field

from monoexec.errors import ExecutionError

__all__ = ["ExecutionOutcome", "AggregateResult", "AGGREGATE_FAILURE_EXIT_CODE", "shell_exit_code"]

# Exit status when failures were tolerated (bail disabled)
AGGREGATE_FAILURE_EXIT_CODE = 1


def shell_exit_code(code: int) -> int:
    """Map a child return code to the status a shell would report.

    asyncio reports a child killed by signal N as -N; shells use 128 + N.
    """
    return 128 - code if code < 0 else code


@dataclass
class ExecutionOutcome:
    """What happened when one package's command ran.

    Attributes:
        package: Package name
        exit_code: Child exit code (127 when the process could not start)
        stdout: Captured stdout (empty for streamed runs)
        stderr: Captured stderr (empty for streamed runs)
        error: The failure, if any
    """

    package: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    error: ExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.error is None


@dataclass
class AggregateResult:
    """Outcomes collected over a run.

    ``aborted_by`` is set when bail stopped the run; the run's exit code is
    then the failing child's own code.
    """

    outcomes: list[ExecutionOutcome] = field(default_factory=list)
    aborted_by: ExecutionError | None = None

    def record(self, outcome: ExecutionOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def failed(self) -> list[ExecutionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        return self.aborted_by is None and not self.failed

    @property
    def first_error(self) -> ExecutionError | None:
        if self.aborted_by is not None:
            return self.aborted_by
        for outcome in self.failed:
            if outcome.error is not None:
                return outcome.error
        return None

    @property
    def exit_code(self) -> int:
        if self.aborted_by is not None:
            return shell_exit_code(self.aborted_by.exit_code) or AGGREGATE_FAILURE_EXIT_CODE
        return 0 if not self.failed else AGGREGATE_FAILURE_EXIT_CODE

    @property
    def packages(self) -> list[str]:
        return [outcome.package for outcome in self.outcomes]

"""Exception hierarchy for monoexec.

Errors fall into four groups:
    - usage: no command supplied (CommandRequiredError)
    - environment: workspace, config or repository problems
    - structural: dependency cycles rejected by policy (CyclesRejectedError)
    - execution: a child command failed (ExecutionError)

Everything except ExecutionError aborts the run before any process spawns.
"""

from __future__ import annotations

__all__ = [
    "MonoexecError",
    "CommandRequiredError",
    "WorkspaceNotFoundError",
    "ConfigValidationError",
    "ValidationError",
    "GitError",
    "RepositoryRequiredError",
    "CyclesRejectedError",
    "ExecutionError",
]


class MonoexecError(Exception):
    """Base exception for monoexec errors."""

    pass


class CommandRequiredError(MonoexecError):
    """Raised when `exec` is invoked without a command token."""

    def __init__(self, message: str = "A command to execute is required"):
        super().__init__(message)


class WorkspaceNotFoundError(MonoexecError):
    """Raised when no monoexec.yaml can be found above the working directory."""

    pass


class ConfigValidationError(MonoexecError):
    """Raised when monoexec.yaml cannot be parsed or has invalid values."""

    pass


class ValidationError(MonoexecError):
    """Raised when workspace packages are inconsistent (e.g. duplicate names)."""

    pass


class GitError(MonoexecError):
    """Raised when a git command fails unexpectedly."""

    pass


class RepositoryRequiredError(MonoexecError):
    """Raised when --since is used outside a git repository."""

    def __init__(self, message: str = "this is not a git repository"):
        super().__init__(message)


class CyclesRejectedError(MonoexecError):
    """Raised when dependency cycles exist and --reject-cycles is set."""

    def __init__(self, message: str, cycles: list[str] | None = None):
        super().__init__(message)
        self.cycles = list(cycles or [])


class ExecutionError(MonoexecError):
    """A child process exited non-zero or could not be spawned.

    The message and exit code are those of the child, passed through
    unchanged.
    """

    def __init__(
        self,
        message: str,
        exit_code: int = 1,
        *,
        package: str | None = None,
        command: str | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.package = package
        self.command = command
        self.stdout = stdout
        self.stderr = stderr

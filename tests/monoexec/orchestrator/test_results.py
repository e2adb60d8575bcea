"""Tests for outcome aggregation and exit status."""

from monoexec.errors import ExecutionError
from monoexec.orchestrator.results import (
    AGGREGATE_FAILURE_EXIT_CODE,
    AggregateResult,
    ExecutionOutcome,
    shell_exit_code,
)


def test_all_successful():
    result = AggregateResult()
    result.record(ExecutionOutcome("a", 0, stdout="ok"))
    result.record(ExecutionOutcome("b", 0))

    assert result.ok
    assert result.exit_code == 0
    assert result.failed == []
    assert result.first_error is None
    assert result.packages == ["a", "b"]


def test_tolerated_failures_use_aggregate_code():
    error = ExecutionError("Command failed with exit code 7: make", exit_code=7)
    result = AggregateResult()
    result.record(ExecutionOutcome("a", 7, error=error))
    result.record(ExecutionOutcome("b", 3))
    result.record(ExecutionOutcome("c", 0))

    assert not result.ok
    assert result.exit_code == AGGREGATE_FAILURE_EXIT_CODE
    assert [outcome.package for outcome in result.failed] == ["a", "b"]
    assert result.first_error is error


def test_bail_abort_passes_child_exit_code():
    error = ExecutionError("Command failed with exit code 9: make", exit_code=9)
    result = AggregateResult(aborted_by=error)

    assert not result.ok
    assert result.exit_code == 9
    assert result.first_error is error


def test_outcome_with_error_is_not_ok():
    outcome = ExecutionOutcome("a", 0, error=ExecutionError("spawn failed", exit_code=0))

    assert not outcome.ok


def test_signal_death_uses_shell_convention():
    error = ExecutionError("Command failed with exit code -9: make", exit_code=-9)
    result = AggregateResult(aborted_by=error)

    assert result.exit_code == 137


def test_shell_exit_code():
    assert shell_exit_code(-15) == 143
    assert shell_exit_code(0) == 0
    assert shell_exit_code(3) == 3

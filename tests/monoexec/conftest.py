"""Shared fixtures for monoexec tests.

Workspaces are built on disk under ``tmp_path``: a ``monoexec.yaml`` at the
root and one ``pyproject.toml`` package per directory under ``packages/``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock

import pytest

from monoexec.core.child_process import ProcessResult, build_command_line
from monoexec.core.package import Package
from monoexec.errors import ExecutionError
from monoexec.orchestrator.executor import IDENTITY_ENV_VAR
from tests.monoexec.builders import (
    BASIC_PACKAGES,
    TOPOSORT_PACKAGES,
    RecordingOutput,
    git,
    write_pyproject,
)


@pytest.fixture(autouse=True)
def _restore_log_level():
    """The CLI callback changes the monoexec logger level; put it back."""
    package_logger = logging.getLogger("monoexec")
    level = package_logger.level
    yield
    package_logger.setLevel(level)


# =============================================================================
# Workspaces
# =============================================================================


@pytest.fixture
def make_workspace(tmp_path: Path) -> Callable[..., Path]:
    """Factory: make_workspace({"name": [deps]}, config="...") -> workspace root."""

    def _make(packages: dict[str, list[str]], config: str | None = None) -> Path:
        root = tmp_path / "workspace"
        root.mkdir(exist_ok=True)
        (root / "monoexec.yaml").write_text(
            config if config is not None else "packages:\n  - packages/*\n",
            encoding="utf-8",
        )
        for name, deps in packages.items():
            write_pyproject(root / "packages" / name, name, deps)
        return root

    return _make


@pytest.fixture
def basic_workspace(make_workspace) -> Path:
    return make_workspace(BASIC_PACKAGES)


@pytest.fixture
def toposort_workspace(make_workspace) -> Path:
    return make_workspace(TOPOSORT_PACKAGES)


@pytest.fixture
def make_packages(tmp_path: Path) -> Callable[[dict[str, list[str]]], list[Package]]:
    """Factory for in-memory Package records (no files on disk)."""

    def _make(graph: dict[str, list[str]]) -> list[Package]:
        return [
            Package(
                name=name,
                location=tmp_path / "packages" / name,
                local_dependencies=frozenset(deps),
            )
            for name, deps in graph.items()
        ]

    return _make


@pytest.fixture
def init_git() -> Callable[[Path], Path]:
    """Turn a directory into a git repository with everything committed."""

    def _init(repo: Path) -> Path:
        git(repo, "init")
        git(repo, "config", "user.email", "test@example.com")
        git(repo, "config", "user.name", "Test User")
        git(repo, "config", "commit.gpgsign", "false")
        git(repo, "config", "tag.gpgsign", "false")
        git(repo, "add", ".")
        git(repo, "commit", "-m", "Initial commit")
        return repo

    return _init


# =============================================================================
# Spawn doubles
# =============================================================================


@pytest.fixture
def fake_spawn() -> Callable[..., AsyncMock]:
    """Factory for an AsyncMock standing in for child_process.spawn.

    Packages named in ``fail`` exit with ``exit_code``; with reject set that
    raises ExecutionError, like the real primitive. Every other package
    prints its own name.
    """

    def _make(fail: tuple[str, ...] = (), exit_code: int = 1) -> AsyncMock:
        async def _spawn(command, args, *, cwd, env=None, shell=True, reject=True):
            name = env[IDENTITY_ENV_VAR]
            command_line = build_command_line(command, args)
            if name in fail:
                stderr = f"{command}: failed in {name}\n"
                if reject:
                    raise ExecutionError(
                        f"Command failed with exit code {exit_code}: {command_line}",
                        exit_code=exit_code,
                        command=command_line,
                        stderr=stderr,
                    )
                return ProcessResult(command_line, exit_code, "", stderr)
            return ProcessResult(command_line, 0, f"{name}\n", "")

        return AsyncMock(side_effect=_spawn)

    return _make


@pytest.fixture
def fake_spawn_streaming() -> Callable[..., AsyncMock]:
    """Factory for an AsyncMock standing in for child_process.spawn_streaming."""

    def _make(fail: tuple[str, ...] = (), exit_code: int = 1) -> AsyncMock:
        async def _spawn(command, args, *, cwd, env=None, prefix=None, on_line, shell=True, reject=True):
            name = env[IDENTITY_ENV_VAR]
            command_line = build_command_line(command, args)
            on_line(prefix, f"hello from {name}", False)
            if name in fail:
                on_line(prefix, f"{command}: failed", True)
                if reject:
                    raise ExecutionError(
                        f"Command failed with exit code {exit_code}: {command_line}",
                        exit_code=exit_code,
                        command=command_line,
                    )
                return ProcessResult(command_line, exit_code)
            return ProcessResult(command_line, 0)

        return AsyncMock(side_effect=_spawn)

    return _make


@pytest.fixture
def recording_output() -> RecordingOutput:
    return RecordingOutput()

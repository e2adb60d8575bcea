"""Workspace configuration.

The workspace root is the nearest directory (walking up from the current
directory) that holds a ``monoexec.yaml``::

    packages:
      - packages/*
    command:
      exec:
        bail: true
        parallel: false
        stream: false
        rejectCycles: false
        prefix: true
        concurrency: 4

Values under ``command.exec`` are defaults for ``monoexec exec``; command
line flags override them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from monoexec.errors import ConfigValidationError, WorkspaceNotFoundError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "monoexec.yaml"
DEFAULT_PACKAGE_GLOBS = ["packages/*"]

# yaml key -> ExecOptions attribute, with the accepted type
_EXEC_KEYS: dict[str, tuple[str, type]] = {
    "bail": ("bail", bool),
    "parallel": ("parallel", bool),
    "stream": ("stream", bool),
    "rejectCycles": ("reject_cycles", bool),
    "prefix": ("prefix", bool),
    "concurrency": ("concurrency", int),
}


@dataclass
class ExecOptions:
    """Defaults for the exec command.

    Attributes:
        bail: Stop on the first failing package
        parallel: Run every package at once, ignoring dependency order
        stream: Run batch by batch with live, prefixed output
        reject_cycles: Fail instead of warning on dependency cycles
        prefix: Tag streamed lines with the package name
        concurrency: Max processes at once in stream mode (None = unbounded)
    """

    bail: bool = True
    parallel: bool = False
    stream: bool = False
    reject_cycles: bool = False
    prefix: bool = True
    concurrency: int | None = None


@dataclass
class WorkspaceConfig:
    """Loaded monoexec.yaml."""

    root: Path
    packages: list[str] = field(default_factory=lambda: list(DEFAULT_PACKAGE_GLOBS))
    exec: ExecOptions = field(default_factory=ExecOptions)


def find_workspace_root(start: Path | None = None) -> Path:
    """Walk up from ``start`` to the directory holding monoexec.yaml.

    Raises:
        WorkspaceNotFoundError: If no ancestor holds the file.
    """
    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / CONFIG_FILENAME).is_file():
            return candidate
    raise WorkspaceNotFoundError(
        f"No {CONFIG_FILENAME} found in {current} or any parent directory"
    )


def apply_overrides(options: ExecOptions, **overrides: Any) -> ExecOptions:
    """Copy of ``options`` with every non-None override applied.

    Raises:
        ConfigValidationError: If an override names an unknown option.
    """
    known = {f.name for f in fields(ExecOptions)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigValidationError(f"Unknown exec option(s): {', '.join(unknown)}")
    return replace(options, **{k: v for k, v in overrides.items() if v is not None})


def _parse_exec_options(raw: Any, config_file: Path) -> ExecOptions:
    options = ExecOptions()
    if raw is None:
        return options
    if not isinstance(raw, dict):
        raise ConfigValidationError(
            f"Invalid command.exec in {config_file}: expected a mapping"
        )

    for key, value in raw.items():
        if key not in _EXEC_KEYS:
            logger.warning(f"Ignoring unknown command.exec option '{key}' in {config_file}")
            continue
        attr, expected = _EXEC_KEYS[key]
        # bool is a subclass of int, so reject it explicitly for int options
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ConfigValidationError(
                f"Invalid command.exec.{key} in {config_file}: "
                f"expected {expected.__name__}, got {type(value).__name__}"
            )
        if attr == "concurrency" and value < 1:
            raise ConfigValidationError(
                f"Invalid command.exec.concurrency in {config_file}: must be >= 1"
            )
        setattr(options, attr, value)
    return options


def load_config(root: Path) -> WorkspaceConfig:
    """Load monoexec.yaml from the workspace root.

    Args:
        root: Workspace root directory

    Returns:
        WorkspaceConfig with defaults filled in

    Raises:
        WorkspaceNotFoundError: If the file does not exist
        ConfigValidationError: If the file is not valid YAML or has bad values
    """
    config_file = root / CONFIG_FILENAME
    if not config_file.is_file():
        raise WorkspaceNotFoundError(f"Config file not found: {config_file}")

    yaml = YAML()
    yaml.preserve_quotes = True

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.load(f) or {}
    except YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError(f"Invalid {config_file}: expected a mapping at top level")

    packages = data.get("packages", DEFAULT_PACKAGE_GLOBS)
    if isinstance(packages, str):
        packages = [packages]
    if not isinstance(packages, list) or not all(isinstance(p, str) for p in packages):
        raise ConfigValidationError(
            f"Invalid packages in {config_file}: expected a list of glob strings"
        )

    command = data.get("command") or {}
    if not isinstance(command, dict):
        raise ConfigValidationError(f"Invalid command in {config_file}: expected a mapping")

    return WorkspaceConfig(
        root=root.resolve(),
        packages=[str(p) for p in packages],
        exec=_parse_exec_options(command.get("exec"), config_file),
    )


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_PACKAGE_GLOBS",
    "ExecOptions",
    "WorkspaceConfig",
    "apply_overrides",
    "find_workspace_root",
    "load_config",
]

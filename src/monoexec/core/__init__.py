"""Workspace collaborators: configuration, package loading, git, child processes."""

from .config import ExecOptions, WorkspaceConfig, find_workspace_root, load_config
from .package import Package
from .workspace import collect_packages, load_packages

__all__ = [
    "ExecOptions",
    "WorkspaceConfig",
    "find_workspace_root",
    "load_config",
    "Package",
    "collect_packages",
    "load_packages",
]

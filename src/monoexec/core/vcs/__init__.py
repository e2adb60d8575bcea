"""
VCS Package
===========

Version-control access for change detection.

Usage:
    from monoexec.core.vcs import GitRepository

    repo = GitRepository(workspace_root)
    repo.ensure_repository()
    changed = repo.changed_paths(repo.latest_tag() or "HEAD")
"""

from __future__ import annotations

from .git import GitRepository

__all__ = [
    "GitRepository",
]

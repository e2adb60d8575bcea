"""Git adapter used by the ``since`` filter.

Only three questions are ever asked of the repository: is this a work
tree, what is the most recent release tag, and which files differ from a
given ref.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from monoexec.errors import GitError, RepositoryRequiredError

logger = logging.getLogger(__name__)

__all__ = ["GitRepository"]


@dataclass
class _GitCommandResult:
    returncode: int
    stdout: str
    stderr: str


def _run_git(repo_root: Path, args: list[str], timeout: int = 30) -> _GitCommandResult:
    """Run git command and normalize failure shape for deterministic handling."""
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=str(repo_root),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout,
        )
        return _GitCommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
    except FileNotFoundError:
        return _GitCommandResult(
            returncode=127,
            stdout="",
            stderr="git executable not found on PATH",
        )
    except subprocess.TimeoutExpired:
        return _GitCommandResult(
            returncode=124,
            stdout="",
            stderr=f"git command timed out: git {' '.join(args)}",
        )


def _first_line(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


class GitRepository:
    """Read-only view of the git repository containing ``root``."""

    def __init__(self, root: Path):
        self.root = root.resolve()

    def is_repository(self) -> bool:
        result = _run_git(self.root, ["rev-parse", "--is-inside-work-tree"])
        return result.returncode == 0 and result.stdout.strip().lower() == "true"

    def ensure_repository(self) -> None:
        """Raise RepositoryRequiredError unless root is inside a git work tree."""
        if not self.is_repository():
            raise RepositoryRequiredError()

    def toplevel(self) -> Path:
        result = _run_git(self.root, ["rev-parse", "--show-toplevel"])
        if result.returncode != 0:
            raise GitError(f"git rev-parse failed: {_first_line(result.stderr)}")
        return Path(result.stdout.strip()).resolve()

    def latest_tag(self) -> str | None:
        """Most recent tag reachable from HEAD, or None if there is none."""
        result = _run_git(self.root, ["describe", "--tags", "--abbrev=0"])
        if result.returncode != 0:
            logger.debug(f"No release tag found: {_first_line(result.stderr)}")
            return None
        return result.stdout.strip() or None

    def changed_paths(self, ref: str) -> set[Path]:
        """Absolute paths that differ between ``ref`` and the working tree.

        Includes untracked files that are not ignored.

        Raises:
            GitError: If ``ref`` cannot be diffed against.
        """
        top = self.toplevel()

        diff = _run_git(self.root, ["diff", "--name-only", ref, "--"])
        if diff.returncode != 0:
            raise GitError(
                f"Unable to diff against '{ref}': {_first_line(diff.stderr) or 'unknown error'}"
            )
        untracked = _run_git(self.root, ["ls-files", "--others", "--exclude-standard", "--full-name"])
        if untracked.returncode != 0:
            raise GitError(f"git ls-files failed: {_first_line(untracked.stderr)}")

        paths: set[Path] = set()
        for output in (diff.stdout, untracked.stdout):
            for line in output.splitlines():
                if line.strip():
                    paths.add((top / line.strip()).resolve())
        logger.debug(f"{len(paths)} paths changed since {ref}")
        return paths

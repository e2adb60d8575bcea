"""Tests for the git adapter against real temporary repositories."""

import pytest

from monoexec.core.vcs import GitRepository
from monoexec.errors import GitError, RepositoryRequiredError

from tests.monoexec.builders import commit_all, git


@pytest.fixture
def repo(tmp_path, init_git):
    (tmp_path / "README.md").write_text("# Test Repo\n", encoding="utf-8")
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "module.py").write_text("x = 1\n", encoding="utf-8")
    return init_git(tmp_path)


class TestRepositoryCheck:
    def test_inside_repository(self, repo):
        assert GitRepository(repo).is_repository()
        GitRepository(repo / "pkg").ensure_repository()

    def test_outside_repository(self, tmp_path):
        with pytest.raises(RepositoryRequiredError, match="this is not a git repository"):
            GitRepository(tmp_path).ensure_repository()

    def test_toplevel_from_subdirectory(self, repo):
        assert GitRepository(repo / "pkg").toplevel() == repo.resolve()


class TestLatestTag:
    def test_no_tags(self, repo):
        assert GitRepository(repo).latest_tag() is None

    def test_most_recent_reachable_tag(self, repo):
        git(repo, "tag", "v1.0.0")
        (repo / "README.md").write_text("# Changed\n", encoding="utf-8")
        commit_all(repo, "Second commit")
        git(repo, "tag", "v1.1.0")

        assert GitRepository(repo).latest_tag() == "v1.1.0"


class TestChangedPaths:
    def test_committed_and_uncommitted_changes(self, repo):
        git(repo, "tag", "v1.0.0")
        (repo / "pkg" / "module.py").write_text("x = 2\n", encoding="utf-8")
        commit_all(repo, "Change module")
        (repo / "README.md").write_text("# Dirty\n", encoding="utf-8")

        changed = GitRepository(repo).changed_paths("v1.0.0")

        assert changed == {
            (repo / "pkg" / "module.py").resolve(),
            (repo / "README.md").resolve(),
        }

    def test_untracked_files_count(self, repo):
        (repo / "pkg" / "new.py").write_text("", encoding="utf-8")
        (repo / ".gitignore").write_text("*.log\n", encoding="utf-8")
        (repo / "pkg" / "debug.log").write_text("", encoding="utf-8")

        changed = GitRepository(repo).changed_paths("HEAD")

        assert (repo / "pkg" / "new.py").resolve() in changed
        assert (repo / "pkg" / "debug.log").resolve() not in changed

    def test_unknown_ref(self, repo):
        with pytest.raises(GitError, match="Unable to diff against 'no-such-ref'"):
            GitRepository(repo).changed_paths("no-such-ref")

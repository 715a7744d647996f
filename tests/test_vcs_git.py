"""Unit tests for hive.vcs.git against real temporary git repos."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from hive.errors import VersionControlError
from hive.vcs import GitBackend


# ── helpers ──────────────────────────────────────────────────────────


def _commit_file(repo: Path, name: str, content: str, msg: str) -> None:
    (repo / name).write_text(content)
    subprocess.run(["git", "add", name], cwd=repo, capture_output=True, check=True)
    subprocess.run(["git", "commit", "-m", msg], cwd=repo, capture_output=True, check=True)


@pytest.fixture
def vcs() -> GitBackend:
    return GitBackend()


# ── revisions & branches ─────────────────────────────────────────────


class TestRevisions:
    def test_resolve_and_current_branch(self, vcs, git_repo, git) -> None:
        assert vcs.resolve_revision("HEAD", git_repo) == git(git_repo, "rev-parse", "HEAD")
        assert vcs.current_branch(git_repo) == "main"

    def test_resolve_unknown_raises_with_output(self, vcs, git_repo) -> None:
        with pytest.raises(VersionControlError) as exc_info:
            vcs.resolve_revision("does-not-exist", git_repo)
        assert exc_info.value.returncode != 0
        assert exc_info.value.command[:2] == ["git", "rev-parse"]

    def test_branch_exists_and_delete(self, vcs, git_repo, git) -> None:
        git(git_repo, "branch", "topic")
        assert vcs.branch_exists("topic", git_repo)
        vcs.delete_branch("topic", git_repo)
        assert not vcs.branch_exists("topic", git_repo)

    def test_list_commits_oldest_first(self, vcs, git_repo, git) -> None:
        base = vcs.resolve_revision("HEAD", git_repo)
        _commit_file(git_repo, "a.txt", "a", "first")
        _commit_file(git_repo, "b.txt", "b", "second")
        commits = vcs.list_commits(f"{base}..HEAD", git_repo)
        assert len(commits) == 2
        assert git(git_repo, "log", "-1", "--format=%s", commits[0]) == "first"


# ── worktrees & changes ──────────────────────────────────────────────


class TestWorktreesAndChanges:
    def test_add_and_remove_worktree(self, vcs, git_repo, tmp_path) -> None:
        wt = tmp_path / "wt"
        vcs.add_worktree(wt, "topic", git_repo, base="HEAD")
        assert (wt / "README.md").exists()
        assert vcs.current_branch(wt) == "topic"
        vcs.remove_worktree(wt, git_repo)
        vcs.prune_worktrees(git_repo)
        assert not wt.exists()

    def test_attach_to_existing_branch(self, vcs, git_repo, git, tmp_path) -> None:
        git(git_repo, "branch", "existing")
        with pytest.raises(VersionControlError):
            vcs.add_worktree(tmp_path / "wt1", "existing", git_repo, base="HEAD")
        vcs.add_worktree(tmp_path / "wt2", "existing", git_repo)
        assert vcs.current_branch(tmp_path / "wt2") == "existing"

    def test_stage_diff_and_commit(self, vcs, git_repo) -> None:
        (git_repo / "new.txt").write_text("hello\n")
        assert vcs.status_entries(git_repo) == ["?? new.txt"]
        vcs.stage_all(git_repo)
        assert vcs.staged_files(git_repo) == ["new.txt"]
        assert "+hello" in vcs.diff(git_repo, cached=True)
        assert "1 file changed" in vcs.diff(git_repo, cached=True, stat=True)

        sha = vcs.commit("add new", git_repo)
        assert sha == vcs.resolve_revision("HEAD", git_repo)
        assert vcs.status_entries(git_repo) == []

    def test_apply_patch_check_reverse(self, vcs, git_repo, tmp_path) -> None:
        (git_repo / "README.md").write_text("# Test\nmore\n")
        patch = tmp_path / "change.patch"
        patch.write_text(vcs.diff(git_repo))
        subprocess.run(["git", "checkout", "--", "README.md"], cwd=git_repo, check=True)

        vcs.apply_patch(patch, git_repo, check=True)
        assert (git_repo / "README.md").read_text() == "# Test\n"
        vcs.apply_patch(patch, git_repo)
        assert (git_repo / "README.md").read_text() == "# Test\nmore\n"
        vcs.apply_patch(patch, git_repo, reverse=True)
        assert (git_repo / "README.md").read_text() == "# Test\n"

    def test_failed_apply_reports_file(self, vcs, git_repo, tmp_path) -> None:
        (git_repo / "README.md").write_text("# Test\nmore\n")
        patch = tmp_path / "change.patch"
        patch.write_text(vcs.diff(git_repo))
        (git_repo / "README.md").write_text("something else entirely\n")
        with pytest.raises(VersionControlError) as exc_info:
            vcs.apply_patch(patch, git_repo, check=True)
        assert "patch failed: README.md" in exc_info.value.output


# ── integration ──────────────────────────────────────────────────────


class TestIntegration:
    def test_conflicting_merge_then_abort(self, vcs, git_repo, git) -> None:
        git(git_repo, "checkout", "-b", "topic")
        _commit_file(git_repo, "README.md", "topic\n", "topic change")
        git(git_repo, "checkout", "main")
        _commit_file(git_repo, "README.md", "main\n", "main change")

        with pytest.raises(VersionControlError) as exc_info:
            vcs.merge("topic", "merge topic", git_repo)
        assert "Merge conflict in README.md" in exc_info.value.output
        assert vcs.conflicted_files(git_repo) == ["README.md"]

        vcs.abort("merge", git_repo)
        assert vcs.status_entries(git_repo) == []
        assert vcs.conflicted_files(git_repo) == []

    def test_abort_unknown_operation(self, vcs, git_repo) -> None:
        with pytest.raises(ValueError):
            vcs.abort("bisect", git_repo)

    def test_reset_rejects_unknown_mode(self, vcs, git_repo) -> None:
        with pytest.raises(ValueError):
            vcs.reset("HEAD", git_repo, mode="soft")

    def test_cherry_pick_and_reset_keep(self, vcs, git_repo, git) -> None:
        orig = vcs.resolve_revision("HEAD", git_repo)
        git(git_repo, "checkout", "-b", "topic")
        _commit_file(git_repo, "c.txt", "c", "topic commit")
        commit = vcs.resolve_revision("HEAD", git_repo)
        git(git_repo, "checkout", "main")

        vcs.cherry_pick(commit, git_repo)
        assert (git_repo / "c.txt").exists()
        vcs.reset(orig, git_repo, mode="keep")
        assert vcs.resolve_revision("HEAD", git_repo) == orig
        assert not (git_repo / "c.txt").exists()

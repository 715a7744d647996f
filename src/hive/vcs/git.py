"""Git backend: worktrees, diffs, patches, commits and merges via the git CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path

from hive import log
from hive.errors import VersionControlError
from hive.vcs.base import VersionControl

ABORTABLE_OPERATIONS = ("merge", "rebase", "cherry-pick")
RESET_MODES = ("merge", "keep", "hard")


def _git(*args: str, cwd: Path | None = None, check: bool = True) -> subprocess.CompletedProcess[str]:
    """Run a git command; raise :class:`VersionControlError` on failure when *check*."""
    cmd = ["git", *args]
    log.debug(f"$ {' '.join(cmd)}  (cwd={cwd})")
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, cwd=cwd)
    except FileNotFoundError as exc:
        raise VersionControlError(cmd, -1, "", f"git executable not found: {exc}") from exc
    if check and r.returncode != 0:
        raise VersionControlError(cmd, r.returncode, r.stdout, r.stderr)
    return r


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


class GitBackend(VersionControl):
    name = "git"

    # ── revisions & branches ─────────────────────────────────────

    def resolve_revision(self, rev: str, cwd: Path) -> str:
        return _git("rev-parse", "--verify", f"{rev}^{{commit}}", cwd=cwd).stdout.strip()

    def current_branch(self, cwd: Path) -> str:
        return _git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd).stdout.strip()

    def branch_exists(self, name: str, cwd: Path) -> bool:
        r = _git("show-ref", "--verify", "--quiet", f"refs/heads/{name}", cwd=cwd, check=False)
        return r.returncode == 0

    def delete_branch(self, name: str, cwd: Path, force: bool = True) -> None:
        _git("branch", "-D" if force else "-d", name, cwd=cwd)

    def list_commits(self, rev_range: str, cwd: Path) -> list[str]:
        return _lines(_git("rev-list", "--reverse", rev_range, cwd=cwd).stdout)

    # ── working copies ───────────────────────────────────────────

    def add_worktree(self, path: Path, branch: str, cwd: Path, base: str | None = None) -> None:
        if base is None:
            _git("worktree", "add", str(path), branch, cwd=cwd)
        else:
            _git("worktree", "add", "-b", branch, str(path), base, cwd=cwd)

    def remove_worktree(self, path: Path, cwd: Path) -> None:
        _git("worktree", "remove", "--force", str(path), cwd=cwd)

    def prune_worktrees(self, cwd: Path) -> None:
        _git("worktree", "prune", cwd=cwd)

    # ── changes ──────────────────────────────────────────────────

    def stage_all(self, cwd: Path) -> None:
        _git("add", "-A", cwd=cwd)

    def staged_files(self, cwd: Path) -> list[str]:
        return _lines(_git("diff", "--cached", "--name-only", cwd=cwd).stdout)

    def status_entries(self, cwd: Path) -> list[str]:
        return _lines(_git("status", "--porcelain", cwd=cwd).stdout)

    def diff(self, cwd: Path, rev_range: str | None = None, *, cached: bool = False, stat: bool = False) -> str:
        args = ["diff"]
        if cached:
            args.append("--cached")
        if stat:
            args.append("--stat=4096")
        if rev_range:
            args.append(rev_range)
        return _git(*args, cwd=cwd).stdout

    def apply_patch(self, patch: Path, cwd: Path, *, reverse: bool = False, check: bool = False) -> None:
        args = ["apply"]
        if check:
            args.append("--check")
        if reverse:
            args.append("-R")
        args.append(str(patch))
        _git(*args, cwd=cwd)

    def commit(self, message: str, cwd: Path) -> str:
        _git("commit", "--allow-empty-message", "-m", message, cwd=cwd)
        return self.resolve_revision("HEAD", cwd)

    # ── integration ──────────────────────────────────────────────

    def merge(self, branch: str, message: str, cwd: Path) -> None:
        _git("merge", "--no-ff", "-m", message, branch, cwd=cwd)

    def merge_squash(self, branch: str, cwd: Path) -> None:
        _git("merge", "--squash", branch, cwd=cwd)

    def cherry_pick(self, commit: str, cwd: Path) -> None:
        _git("cherry-pick", commit, cwd=cwd)

    def conflicted_files(self, cwd: Path) -> list[str]:
        r = _git("diff", "--name-only", "--diff-filter=U", cwd=cwd, check=False)
        if r.returncode != 0:
            return []
        return _lines(r.stdout)

    def abort(self, operation: str, cwd: Path) -> None:
        if operation not in ABORTABLE_OPERATIONS:
            raise ValueError(f"Cannot abort unknown operation: {operation}")
        _git(operation, "--abort", cwd=cwd)

    def reset(self, rev: str, cwd: Path, mode: str = "merge") -> None:
        if mode not in RESET_MODES:
            raise ValueError(f"Unknown reset mode: {mode}")
        _git("reset", f"--{mode}", rev, cwd=cwd)

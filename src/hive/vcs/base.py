"""Abstract version-control backend used by the worktree layer.

Methods raise :class:`hive.errors.VersionControlError` when the underlying
tool fails. Query helpers that have an obvious "nothing" answer (branch
existence, conflicted files) return it instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class VersionControl(ABC):
    """Narrow interface over the external version-control tool."""

    name: str = "base"

    # ── revisions & branches ─────────────────────────────────────

    @abstractmethod
    def resolve_revision(self, rev: str, cwd: Path) -> str:
        """Return the full commit hash *rev* points to."""
        ...

    @abstractmethod
    def current_branch(self, cwd: Path) -> str:
        ...

    @abstractmethod
    def branch_exists(self, name: str, cwd: Path) -> bool:
        ...

    @abstractmethod
    def delete_branch(self, name: str, cwd: Path, force: bool = True) -> None:
        ...

    @abstractmethod
    def list_commits(self, rev_range: str, cwd: Path) -> list[str]:
        """Commit hashes in *rev_range*, oldest first."""
        ...

    # ── working copies ───────────────────────────────────────────

    @abstractmethod
    def add_worktree(self, path: Path, branch: str, cwd: Path, base: str | None = None) -> None:
        """Create a working copy at *path*.

        With *base*, a new *branch* is created from it; without, the working
        copy attaches to the existing *branch*.
        """
        ...

    @abstractmethod
    def remove_worktree(self, path: Path, cwd: Path) -> None:
        ...

    @abstractmethod
    def prune_worktrees(self, cwd: Path) -> None:
        ...

    # ── changes ──────────────────────────────────────────────────

    @abstractmethod
    def stage_all(self, cwd: Path) -> None:
        ...

    @abstractmethod
    def staged_files(self, cwd: Path) -> list[str]:
        ...

    @abstractmethod
    def status_entries(self, cwd: Path) -> list[str]:
        """Porcelain status lines; empty when the working copy is clean."""
        ...

    @abstractmethod
    def diff(self, cwd: Path, rev_range: str | None = None, *, cached: bool = False, stat: bool = False) -> str:
        ...

    @abstractmethod
    def apply_patch(self, patch: Path, cwd: Path, *, reverse: bool = False, check: bool = False) -> None:
        ...

    @abstractmethod
    def commit(self, message: str, cwd: Path) -> str:
        """Commit the index and return the new commit hash."""
        ...

    # ── integration ──────────────────────────────────────────────

    @abstractmethod
    def merge(self, branch: str, message: str, cwd: Path) -> None:
        """Non-fast-forward merge of *branch* into the current branch."""
        ...

    @abstractmethod
    def merge_squash(self, branch: str, cwd: Path) -> None:
        """Stage *branch*'s changes on the current branch without committing."""
        ...

    @abstractmethod
    def cherry_pick(self, commit: str, cwd: Path) -> None:
        ...

    @abstractmethod
    def conflicted_files(self, cwd: Path) -> list[str]:
        ...

    @abstractmethod
    def abort(self, operation: str, cwd: Path) -> None:
        """Abort an in-progress ``merge``, ``rebase`` or ``cherry-pick``."""
        ...

    @abstractmethod
    def reset(self, rev: str, cwd: Path, mode: str = "merge") -> None:
        """``reset --<mode> <rev>``; *mode* is ``merge``, ``keep`` or ``hard``."""
        ...

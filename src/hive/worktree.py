"""Per-task isolated working copies: create, diff, commit, patch and merge.

Each task runs in ``<root>/.hive/.worktrees/<feature>/<task>`` on branch
``hive/<feature>/<task>``. Patch and merge failures come back as result
objects (``success=False`` plus the conflicting files) after the
repository has been returned to a clean state; only programming errors
and unexpected filesystem failures raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from hive import log, paths
from hive.config import MERGE_STRATEGIES
from hive.errors import (
    VersionControlError,
    looks_like_conflict,
    parse_merge_conflicts,
    parse_patch_failures,
)
from hive.io_utils import ensure_dir, list_subdirs, read_text, remove_tree, write_text
from hive.storage import read_json
from hive.vcs import GitBackend, VersionControl

DEFAULT_DIFF_BASE = "HEAD~1"

_DIFF_FILE_RE = re.compile(r"^diff --git a/(.+?) b/", re.MULTILINE)
_INSERTIONS_RE = re.compile(r"(\d+) insertion")
_DELETIONS_RE = re.compile(r"(\d+) deletion")


@dataclass
class WorktreeInfo:
    path: Path
    branch: str
    commit: str
    feature: str
    task: str


@dataclass
class DiffResult:
    has_diff: bool = False
    diff_content: str = ""
    files_changed: list[str] = field(default_factory=list)
    insertions: int = 0
    deletions: int = 0


@dataclass
class ApplyResult:
    success: bool
    files_affected: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class CommitResult:
    committed: bool
    sha: str
    message: str | None = None
    nothing_to_commit: bool = False


@dataclass
class MergeResult:
    success: bool
    merged: bool = False
    strategy: str = "merge"
    sha: str | None = None
    files_changed: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class CleanupResult:
    removed: list[Path] = field(default_factory=list)
    pruned: bool = False


def branch_name(feature: str, task: str) -> str:
    return f"hive/{feature}/{task}"


def parse_files_from_diff(diff_content: str) -> list[str]:
    """Unique file names from the ``diff --git a/... b/...`` headers, in order."""
    return list(dict.fromkeys(_DIFF_FILE_RE.findall(diff_content)))


def parse_diff_stat(stat: str) -> tuple[list[str], int, int]:
    """Split ``git diff --stat`` output into (files, insertions, deletions)."""
    lines = [line for line in stat.splitlines() if line.strip()]
    files = [line.split("|")[0].strip() for line in lines if "|" in line]
    summary = lines[-1] if lines else ""
    insertions = _INSERTIONS_RE.search(summary)
    deletions = _DELETIONS_RE.search(summary)
    return (
        [f for f in files if f],
        int(insertions.group(1)) if insertions else 0,
        int(deletions.group(1)) if deletions else 0,
    )


class WorktreeService:
    def __init__(self, project_root: Path | str, vcs: VersionControl | None = None) -> None:
        self.project_root = Path(project_root)
        self.vcs = vcs or GitBackend()

    def worktree_path(self, feature: str, task: str) -> Path:
        return paths.worktree_path(self.project_root, feature, task)

    def _patch_path(self, feature: str, task: str, suffix: str = "") -> Path:
        return paths.worktrees_path(self.project_root) / feature / f"{task}{suffix}.patch"

    # ── lifecycle ────────────────────────────────────────────────

    def create(self, feature: str, task: str, base_branch: str | None = None) -> WorktreeInfo:
        """Return the task's working copy, creating it (and its branch) if needed."""
        existing = self.get(feature, task)
        if existing is not None:
            return existing

        path = self.worktree_path(feature, task)
        branch = branch_name(feature, task)
        ensure_dir(path.parent)
        base = base_branch or self.vcs.resolve_revision("HEAD", self.project_root)

        try:
            self.vcs.add_worktree(path, branch, self.project_root, base=base)
        except VersionControlError as exc:
            log.debug(f"new branch {branch} failed ({exc}); attaching to existing branch")
            self.vcs.add_worktree(path, branch, self.project_root)

        commit = self.vcs.resolve_revision("HEAD", path)
        log.debug(f"worktree ready: {path} on {branch} at {commit[:8]}")
        return WorktreeInfo(path=path, branch=branch, commit=commit, feature=feature, task=task)

    def get(self, feature: str, task: str) -> WorktreeInfo | None:
        path = self.worktree_path(feature, task)
        commit = self._head(path)
        if commit is None:
            return None
        return WorktreeInfo(
            path=path,
            branch=branch_name(feature, task),
            commit=commit,
            feature=feature,
            task=task,
        )

    def list(self, feature: str | None = None) -> list[WorktreeInfo]:
        root = paths.worktrees_path(self.project_root)
        features = [feature] if feature else list_subdirs(root)
        result: list[WorktreeInfo] = []
        for feat in features:
            for task in list_subdirs(root / feat):
                info = self.get(feat, task)
                if info is not None:
                    result.append(info)
        return result

    def remove(self, feature: str, task: str, delete_branch: bool = False) -> None:
        """Best-effort removal of the working copy, its registration and optionally its branch."""
        path = self.worktree_path(feature, task)
        try:
            self.vcs.remove_worktree(path, self.project_root)
        except VersionControlError as exc:
            log.debug(f"worktree remove refused ({exc}); deleting {path}")
            remove_tree(path)

        try:
            self.vcs.prune_worktrees(self.project_root)
        except VersionControlError as exc:
            log.warn(f"worktree prune failed: {exc}")

        if delete_branch:
            branch = branch_name(feature, task)
            try:
                self.vcs.delete_branch(branch, self.project_root)
            except VersionControlError as exc:
                log.debug(f"branch {branch} not deleted: {exc}")

    def cleanup(self, feature: str | None = None) -> CleanupResult:
        """Remove working copies whose HEAD no longer resolves."""
        result = CleanupResult()
        try:
            self.vcs.prune_worktrees(self.project_root)
            result.pruned = True
        except VersionControlError as exc:
            log.warn(f"worktree prune failed: {exc}")

        root = paths.worktrees_path(self.project_root)
        features = [feature] if feature else list_subdirs(root)
        for feat in features:
            for task in list_subdirs(root / feat):
                path = root / feat / task
                if self._head(path) is not None:
                    continue
                log.warn(f"removing orphaned worktree {path}")
                self.remove(feat, task)
                result.removed.append(path)
        return result

    def _head(self, path: Path) -> str | None:
        # Without its own .git entry the directory would resolve to the enclosing repository.
        if not (path / ".git").exists():
            return None
        try:
            return self.vcs.resolve_revision("HEAD", path)
        except VersionControlError:
            return None

    # ── diffs ────────────────────────────────────────────────────

    def _diff_base(self, feature: str, task: str, base_commit: str | None) -> str:
        if base_commit:
            return base_commit
        status = read_json(paths.task_status_path(self.project_root, feature, task))
        if status and status.get("baseCommit"):
            return status["baseCommit"]
        return DEFAULT_DIFF_BASE

    def get_diff(self, feature: str, task: str, base_commit: str | None = None) -> DiffResult:
        """Staged changes if any, otherwise the branch's commits since the base."""
        path = self.worktree_path(feature, task)
        if not path.is_dir():
            return DiffResult()
        base = self._diff_base(feature, task, base_commit)

        try:
            self.vcs.stage_all(path)
            if self.vcs.staged_files(path):
                content = self.vcs.diff(path, cached=True)
                stat = self.vcs.diff(path, cached=True, stat=True) if content else ""
            else:
                rev_range = f"{base}..HEAD"
                content = self.vcs.diff(path, rev_range)
                stat = self.vcs.diff(path, rev_range, stat=True) if content else ""
        except VersionControlError as exc:
            log.warn(f"diff failed for {feature}/{task}: {exc}")
            return DiffResult()

        files, insertions, deletions = parse_diff_stat(stat)
        return DiffResult(
            has_diff=bool(content),
            diff_content=content,
            files_changed=files,
            insertions=insertions,
            deletions=deletions,
        )

    def export_patch(self, feature: str, task: str, base_branch: str | None = None) -> Path:
        """Write ``<base>...HEAD`` of the task's working copy to ``<task>.patch``."""
        base = base_branch or DEFAULT_DIFF_BASE
        content = self.vcs.diff(self.worktree_path(feature, task), f"{base}...HEAD")
        return write_text(self._patch_path(feature, task), content)

    def has_uncommitted_changes(self, feature: str, task: str) -> bool:
        path = self.worktree_path(feature, task)
        if not path.is_dir():
            return False
        try:
            return bool(self.vcs.status_entries(path))
        except VersionControlError:
            return False

    # ── patches ──────────────────────────────────────────────────

    def apply_diff(self, feature: str, task: str, base_commit: str | None = None) -> ApplyResult:
        """Apply the task's diff to the main working copy."""
        return self._apply_task_diff(feature, task, base_commit, reverse=False)

    def revert_diff(self, feature: str, task: str, base_commit: str | None = None) -> ApplyResult:
        """Reverse-apply the task's diff to the main working copy."""
        return self._apply_task_diff(feature, task, base_commit, reverse=True)

    def check_conflicts(self, feature: str, task: str, base_commit: str | None = None) -> list[str]:
        """Files that would fail to apply; empty when the diff applies cleanly."""
        diff = self.get_diff(feature, task, base_commit)
        if not diff.has_diff:
            return []
        result = self._apply_content(
            diff.diff_content, self._patch_path(feature, task, "-check"), check=True
        )
        return result.conflicts

    def check_conflicts_from_saved_diff(self, diff_path: Path | str, reverse: bool = False) -> list[str]:
        diff_path = Path(diff_path)
        if not diff_path.is_file():
            return []
        return self._apply_file(diff_path, reverse=reverse, check=True).conflicts

    def revert_from_saved_diff(self, diff_path: Path | str) -> ApplyResult:
        diff_path = Path(diff_path)
        content = read_text(diff_path) or ""
        if not content.strip():
            return ApplyResult(success=True)
        result = self._apply_file(diff_path, reverse=True)
        if result.success:
            result.files_affected = parse_files_from_diff(content)
        return result

    def _apply_task_diff(
        self,
        feature: str,
        task: str,
        base_commit: str | None,
        reverse: bool,
    ) -> ApplyResult:
        diff = self.get_diff(feature, task, base_commit)
        if not diff.has_diff:
            return ApplyResult(success=True)
        result = self._apply_content(diff.diff_content, self._patch_path(feature, task), reverse=reverse)
        if result.success:
            result.files_affected = diff.files_changed
        return result

    def _apply_content(
        self,
        content: str,
        patch_path: Path,
        *,
        reverse: bool = False,
        check: bool = False,
    ) -> ApplyResult:
        write_text(patch_path, content)
        try:
            return self._apply_file(patch_path, reverse=reverse, check=check)
        finally:
            patch_path.unlink(missing_ok=True)

    def _apply_file(self, patch_path: Path, *, reverse: bool = False, check: bool = False) -> ApplyResult:
        try:
            self.vcs.apply_patch(patch_path, self.project_root, reverse=reverse, check=check)
        except VersionControlError as exc:
            action = "revert" if reverse else "apply"
            return ApplyResult(
                success=False,
                conflicts=parse_patch_failures(exc.output),
                error=exc.stderr.strip() or f"Failed to {action} patch",
            )
        return ApplyResult(success=True)

    # ── commit & merge ───────────────────────────────────────────

    def commit_changes(self, feature: str, task: str, message: str | None = None) -> CommitResult:
        path = self.worktree_path(feature, task)
        if not path.is_dir():
            return CommitResult(committed=False, sha="", message="Worktree not found")

        try:
            self.vcs.stage_all(path)
            if not self.vcs.status_entries(path):
                return CommitResult(
                    committed=False,
                    sha=self.vcs.resolve_revision("HEAD", path),
                    message="No changes to commit",
                    nothing_to_commit=True,
                )
            commit_message = message or f"hive({task}): task changes"
            sha = self.vcs.commit(commit_message, path)
        except VersionControlError as exc:
            return CommitResult(committed=False, sha=self._head(path) or "", message=str(exc))
        return CommitResult(committed=True, sha=sha, message=commit_message)

    def merge(self, feature: str, task: str, strategy: str = "merge") -> MergeResult:
        """Integrate the task branch into the project's current branch.

        ``merge`` makes a ``--no-ff`` merge commit, ``squash`` a single
        commit, ``rebase`` cherry-picks the branch's commits oldest first.
        On failure the current branch is left exactly where it was.
        """
        if strategy not in MERGE_STRATEGIES:
            raise ValueError(f"Unknown merge strategy '{strategy}'. Use one of: {', '.join(MERGE_STRATEGIES)}")

        root = self.project_root
        branch = branch_name(feature, task)
        if not self.vcs.branch_exists(branch, root):
            return MergeResult(success=False, strategy=strategy, error=f"Branch {branch} not found")

        current = self.vcs.current_branch(root)
        stat = self.vcs.diff(root, f"{current}...{branch}", stat=True)
        files_changed, _, _ = parse_diff_stat(stat)
        orig_head = self.vcs.resolve_revision("HEAD", root)

        try:
            if strategy == "squash":
                self.vcs.merge_squash(branch, root)
                sha = self.vcs.commit(f"hive: merge {task} (squashed)", root)
                merged = True
            elif strategy == "rebase":
                commits = self.vcs.list_commits(f"{current}..{branch}", root)
                for commit in commits:
                    self.vcs.cherry_pick(commit, root)
                sha = self.vcs.resolve_revision("HEAD", root)
                merged = bool(commits)
            else:
                self.vcs.merge(branch, f"hive: merge {task}", root)
                sha = self.vcs.resolve_revision("HEAD", root)
                merged = True
        except VersionControlError as exc:
            conflicts = self.vcs.conflicted_files(root) or parse_merge_conflicts(exc.output)
            self._restore(orig_head, strategy)
            if conflicts or looks_like_conflict(exc.output):
                log.warn(f"{strategy} of {branch} hit conflicts: {', '.join(conflicts) or 'unknown files'}")
                return MergeResult(
                    success=False,
                    strategy=strategy,
                    files_changed=files_changed,
                    conflicts=conflicts,
                    error="Merge conflicts detected",
                )
            return MergeResult(success=False, strategy=strategy, files_changed=files_changed, error=str(exc))

        log.debug(f"{strategy} of {branch} -> {sha[:8]}")
        return MergeResult(success=True, merged=merged, strategy=strategy, sha=sha, files_changed=files_changed)

    def _restore(self, orig_head: str, strategy: str) -> None:
        """Abort any in-progress merge, rebase or cherry-pick and return HEAD to *orig_head*."""
        root = self.project_root
        for operation in ("merge", "rebase", "cherry-pick"):
            try:
                self.vcs.abort(operation, root)
            except VersionControlError:
                log.debug(f"no {operation} to abort")

        # A squash leaves no MERGE_HEAD and a failed replay leaves earlier picks committed.
        mode = {"squash": "merge", "rebase": "keep"}.get(strategy)
        if mode is None:
            return
        try:
            self.vcs.reset(orig_head, root, mode=mode)
        except VersionControlError as exc:
            log.warn(f"could not reset to {orig_head[:8]} after failed {strategy}: {exc}")

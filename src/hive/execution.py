"""Task execution lifecycle on top of tasks and worktrees.

::

    pending --start--> in_progress --complete--> done --integrate--> merged
       ^                    |                      |
       +-------abort--------+----------------------+

``abort`` discards the working copy and its branch, committed or not.
"""

from __future__ import annotations

from hive import log
from hive.errors import HiveError, NotFoundError, ValidationError
from hive.storage import utcnow_iso
from hive.tasks.model import TaskInfo, TaskState, TaskStatus
from hive.tasks.service import TaskService
from hive.worktree import CommitResult, MergeResult, WorktreeInfo, WorktreeService


class ExecutionService:
    def __init__(
        self,
        tasks: TaskService,
        worktrees: WorktreeService,
        merge_strategy: str = "merge",
    ) -> None:
        self.tasks = tasks
        self.worktrees = worktrees
        self.merge_strategy = merge_strategy

    def _require(self, feature: str, task: str) -> TaskInfo:
        info = self.tasks.get(feature, task)
        if info is None:
            raise NotFoundError(f"Task '{task}' not found in feature '{feature}'")
        return info

    def start(self, feature: str, task: str, base_branch: str | None = None) -> WorktreeInfo:
        """Give a runnable task its working copy and mark it in progress.

        Starting a task that is already in progress returns its existing
        working copy.
        """
        info = self._require(feature, task)
        if info.status == TaskState.IN_PROGRESS:
            return self.worktrees.create(feature, task, base_branch)
        if info.status != TaskState.PENDING:
            raise HiveError(f"Task '{task}' is {info.status.value}; only pending tasks can be started")

        blocked = self.tasks.runnable(feature).blocked
        if task in blocked:
            unmet = blocked[task]
            problem = f"Task '{task}' is blocked by unfinished dependencies: {', '.join(unmet)}"
            raise ValidationError(problem, [problem])

        worktree = self.worktrees.create(feature, task, base_branch)
        self.tasks.update(feature, task, status=TaskState.IN_PROGRESS, base_commit=worktree.commit)
        log.info(f"Started {feature}/{task} in {worktree.path}")
        return worktree

    def complete(
        self,
        feature: str,
        task: str,
        summary: str,
        report: str | None = None,
        message: str | None = None,
    ) -> CommitResult:
        """Commit the working copy and mark the task done."""
        self._require(feature, task)
        result = self.worktrees.commit_changes(feature, task, message)
        if not result.committed and not result.nothing_to_commit:
            raise HiveError(f"Could not commit {feature}/{task}: {result.message}")

        if report is not None:
            self.tasks.write_report(feature, task, report)
        self.tasks.update(feature, task, status=TaskState.DONE, summary=summary)
        log.success(f"Completed {feature}/{task} at {result.sha[:8]}")
        return result

    def integrate(
        self,
        feature: str,
        task: str,
        strategy: str | None = None,
        cleanup: bool = False,
    ) -> MergeResult:
        """Merge a done task's branch into the current branch; optionally drop its working copy."""
        info = self._require(feature, task)
        if info.status != TaskState.DONE:
            raise HiveError(f"Task '{task}' is {info.status.value}; only done tasks can be integrated")
        result = self.worktrees.merge(feature, task, strategy or self.merge_strategy)
        if result.success and cleanup:
            self.worktrees.remove(feature, task, delete_branch=True)
        return result

    def abort(self, feature: str, task: str) -> TaskStatus:
        """Discard the task's working copy and branch and reset it to pending."""
        self._require(feature, task)
        self.worktrees.remove(feature, task, delete_branch=True)
        status = self.tasks.update(feature, task, status=TaskState.PENDING)
        log.warn(f"Aborted {feature}/{task}; status reset to pending")
        return status

    def heartbeat(self, feature: str, task: str) -> TaskStatus:
        """Record worker liveness without touching completion fields."""
        return self.tasks.patch_background_fields(
            feature, task, worker_session={"lastHeartbeatAt": utcnow_iso()}
        )

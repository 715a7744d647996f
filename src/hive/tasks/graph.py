"""Effective dependencies and runnable/blocked scheduling over a task set.

Only ``done`` satisfies a dependency edge. Tasks whose ``depends_on`` is
``None`` fall back to the implicit rule: depend on the previous task in
folder order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from hive import log
from hive.tasks.model import TaskInfo, TaskState


@dataclass
class RunnableBlocked:
    runnable: list[str] = field(default_factory=list)
    # task folder -> unmet dependency folders
    blocked: dict[str, list[str]] = field(default_factory=dict)


def effective_dependencies(tasks: Sequence[TaskInfo]) -> dict[str, list[str]]:
    """Map every task folder to its explicit or implicit dependency list."""
    resolved: dict[str, list[str]] = {}
    previous: str | None = None
    for task in sorted(tasks, key=lambda t: t.folder):
        if task.depends_on is not None:
            resolved[task.folder] = list(task.depends_on)
        else:
            resolved[task.folder] = [previous] if previous else []
        previous = task.folder
    return resolved


def compute_runnable_and_blocked(tasks: Sequence[TaskInfo]) -> RunnableBlocked:
    """Partition pending tasks into runnable and blocked.

    Tasks in any other status are neither. Dependencies on folders that do
    not exist count as unmet.
    """
    status_by_folder = {t.folder: t.status for t in tasks}
    deps = effective_dependencies(tasks)
    result = RunnableBlocked()

    for task in sorted(tasks, key=lambda t: t.folder):
        if task.status != TaskState.PENDING:
            continue
        unmet = [d for d in deps[task.folder] if status_by_folder.get(d) != TaskState.DONE]
        if unmet:
            result.blocked[task.folder] = unmet
        else:
            result.runnable.append(task.folder)

    return result


class Scheduler:
    """Stateful view of a feature's tasks for an in-process orchestrator.

    Usage::

        sched = Scheduler(task_service.list(feature))
        ready = sched.get_ready()      # pending tasks whose deps are done
        sched.start_task(folder)       # pending -> in_progress
        sched.complete_task(folder)    # in_progress -> done
        sched.fail_task(folder)        # in_progress -> cancelled
        sched.retry_task(folder)       # back to pending
    """

    def __init__(self, tasks: Sequence[TaskInfo]) -> None:
        self._state: dict[str, TaskState] = {t.folder: t.status for t in tasks}
        self._deps = effective_dependencies(tasks)

    # ── state queries ────────────────────────────────────────────

    def state(self, folder: str) -> TaskState:
        return self._state.get(folder, TaskState.PENDING)

    def dependencies(self, folder: str) -> list[str]:
        return list(self._deps.get(folder, []))

    def count(self, state: TaskState) -> int:
        return sum(1 for s in self._state.values() if s == state)

    def deps_satisfied(self, folder: str) -> bool:
        return all(self._state.get(dep) == TaskState.DONE for dep in self._deps.get(folder, []))

    def get_ready(self) -> list[str]:
        return [
            folder
            for folder, st in sorted(self._state.items())
            if st == TaskState.PENDING and self.deps_satisfied(folder)
        ]

    # ── transitions ──────────────────────────────────────────────

    def start_task(self, folder: str) -> None:
        self._state[folder] = TaskState.IN_PROGRESS
        log.debug(f"Task {folder}: pending -> in_progress")

    def complete_task(self, folder: str) -> None:
        self._state[folder] = TaskState.DONE
        log.debug(f"Task {folder}: in_progress -> done")

    def fail_task(self, folder: str) -> None:
        self._state[folder] = TaskState.CANCELLED
        log.debug(f"Task {folder}: in_progress -> cancelled")

    def retry_task(self, folder: str) -> None:
        self._state[folder] = TaskState.PENDING
        log.debug(f"Task {folder}: -> pending (retry)")

    # ── diagnostics ──────────────────────────────────────────────

    def check_deadlock(self) -> bool:
        """Return ``True`` if pending work exists but nothing can make progress."""
        return (
            self.count(TaskState.PENDING) > 0
            and self.count(TaskState.IN_PROGRESS) == 0
            and not self.get_ready()
        )

    def explain_block(self, folder: str) -> str:
        """Human-readable explanation of why *folder* is blocked."""
        unmet = []
        for dep in self._deps.get(folder, []):
            st = self._state.get(dep)
            if st != TaskState.DONE:
                unmet.append(f"{dep} ({st.value if st else 'missing'})")
        return f"dependsOn: {' '.join(unmet)}" if unmet else ""

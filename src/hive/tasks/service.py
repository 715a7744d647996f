"""Task service: plan sync, lifecycle updates and background heartbeats.

All status.json writes go through the locked helpers in
:mod:`hive.storage`. ``sync`` additionally holds a feature-level lock for
the whole reconciliation so two syncs of one feature cannot interleave
their create/delete decisions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from hive import log, paths
from hive.errors import HiveError, NotFoundError
from hive.io_utils import list_subdirs, read_text, remove_tree
from hive.storage import (
    UNSET,
    LockManager,
    LockOptions,
    deep_merge,
    locked,
    read_json,
    update_json_locked,
    utcnow_iso,
    write_atomic,
    write_json_locked,
)
from hive.tasks.graph import RunnableBlocked, compute_runnable_and_blocked
from hive.tasks.model import (
    BACKGROUND_KEYS,
    COMPLETION_KEYS,
    TASK_STATUS_SCHEMA_VERSION,
    ParsedTask,
    SyncResult,
    TaskInfo,
    TaskOrigin,
    TaskState,
    TaskStatus,
    WorkerSession,
    folder_name,
    folder_order,
)
from hive.tasks.plan import parse_plan, task_folder
from hive.tasks.validate import resolve_dependency_folders, validate_plan

_UPDATE_KEYS = (*COMPLETION_KEYS, "baseCommit", "schemaVersion")
_BACKGROUND_WRITE_KEYS = (*BACKGROUND_KEYS, "schemaVersion")


def _apply_owned(current: Mapping[str, Any], updated: Mapping[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    """Copy only *keys* from *updated* onto *current*; everything else is left as read."""
    result = dict(current)
    for key in keys:
        if key in updated:
            result[key] = updated[key]
        else:
            result.pop(key, None)
    return result


def _bump_schema(record: dict[str, Any]) -> dict[str, Any]:
    record["schemaVersion"] = max(int(record.get("schemaVersion") or 0), TASK_STATUS_SCHEMA_VERSION)
    return record


class TaskService:
    def __init__(
        self,
        project_root: Path | str,
        lock_options: LockOptions | None = None,
        lock_manager: LockManager | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.lock_options = lock_options
        self.lock_manager = lock_manager

    # ── sync ─────────────────────────────────────────────────────

    def sync(self, feature: str) -> SyncResult:
        """Reconcile the feature's tasks with its plan.

        Validation runs to completion before anything on disk changes.
        Manual tasks are reported but untouched; done/in_progress tasks are
        kept; cancelled tasks and pending tasks that left the plan are
        deleted; new plan tasks are created.
        """
        plan_file = paths.plan_path(self.project_root, feature)
        content = read_text(plan_file)
        if content is None:
            raise NotFoundError(f"No {plan_file.name} found for feature '{feature}'")

        planned = parse_plan(content)
        validate_plan(planned, plan_name=plan_file.name)
        dependencies = resolve_dependency_folders(planned)
        planned_folders = {t.folder for t in planned}

        result = SyncResult()
        with locked(self._sync_lock_target(feature), self.lock_options, self.lock_manager):
            existing = self.list(feature)
            existing_folders = {t.folder for t in existing}

            for task in existing:
                if task.origin == TaskOrigin.MANUAL:
                    result.manual.append(task.folder)
                elif task.status in (TaskState.DONE, TaskState.IN_PROGRESS):
                    result.kept.append(task.folder)
                elif task.status == TaskState.CANCELLED or task.folder not in planned_folders:
                    self._delete_task_dir(feature, task.folder)
                    result.removed.append(task.folder)
                else:
                    result.kept.append(task.folder)

            for task in planned:
                if task.folder in existing_folders:
                    continue
                self._create_from_plan(feature, task, planned, dependencies)
                result.created.append(task.folder)

        log.debug(
            f"sync {feature}: created={result.created} removed={result.removed} "
            f"kept={result.kept} manual={result.manual}"
        )
        return result

    def _sync_lock_target(self, feature: str) -> Path:
        return paths.tasks_path(self.project_root, feature)

    def _create_from_plan(
        self,
        feature: str,
        task: ParsedTask,
        planned: list[ParsedTask],
        dependencies: dict[str, list[str]],
    ) -> None:
        deps = dependencies.get(task.folder, [])
        status = TaskStatus(origin=TaskOrigin.PLAN, plan_title=task.name, depends_on=deps)
        write_json_locked(
            paths.task_status_path(self.project_root, feature, task.folder),
            status.to_dict(),
            self.lock_options,
            self.lock_manager,
        )
        write_atomic(
            paths.task_spec_path(self.project_root, feature, task.folder),
            _render_task_spec(feature, task, planned, deps),
        )

    # ── create / read ────────────────────────────────────────────

    def create(
        self,
        feature: str,
        name: str,
        order: int | None = None,
        depends_on: list[str] | None = None,
    ) -> str:
        """Create a manual task and return its folder."""
        existing = self._list_folders(feature)
        if order is None:
            orders = [o for o in (folder_order(f) for f in existing) if o is not None]
            order = max(orders, default=0) + 1
        folder = task_folder(order, name)
        if folder in existing:
            raise HiveError(f"Task '{folder}' already exists in feature '{feature}'")

        status = TaskStatus(origin=TaskOrigin.MANUAL, plan_title=name, depends_on=depends_on)
        write_json_locked(
            paths.task_status_path(self.project_root, feature, folder),
            status.to_dict(),
            self.lock_options,
            self.lock_manager,
        )
        return folder

    def get_raw_status(self, feature: str, task: str) -> TaskStatus | None:
        data = read_json(paths.task_status_path(self.project_root, feature, task))
        if data is None:
            return None
        return TaskStatus.from_dict(data)

    def get(self, feature: str, task: str) -> TaskInfo | None:
        status = self.get_raw_status(feature, task)
        if status is None:
            return None
        return TaskInfo(
            folder=task,
            name=folder_name(task),
            status=status.status,
            origin=status.origin,
            plan_title=status.plan_title,
            summary=status.completion.summary,
            depends_on=status.depends_on,
        )

    def list(self, feature: str) -> list[TaskInfo]:
        tasks = (self.get(feature, folder) for folder in self._list_folders(feature))
        return [t for t in tasks if t is not None]

    def runnable(self, feature: str) -> RunnableBlocked:
        return compute_runnable_and_blocked(self.list(feature))

    def delete(self, feature: str, task: str) -> None:
        if not self._delete_task_dir(feature, task):
            raise NotFoundError(f"Task '{task}' not found in feature '{feature}'")

    # ── completion-owned writes ──────────────────────────────────

    def update(
        self,
        feature: str,
        task: str,
        *,
        status: TaskState | str | None = None,
        summary: str | None = None,
        base_commit: str | None = None,
    ) -> TaskStatus:
        """Locked status update. Stamps ``startedAt``/``completedAt`` once."""
        new_status = TaskState(status) if status is not None else None
        path = self._existing_status_path(feature, task)

        def apply(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise NotFoundError(f"Task '{task}' not found in feature '{feature}'")
            record = TaskStatus.from_dict(current)
            completion = record.completion
            if new_status is not None:
                completion.status = new_status
                if new_status == TaskState.IN_PROGRESS and not completion.started_at:
                    completion.started_at = utcnow_iso()
                if new_status == TaskState.DONE and not completion.completed_at:
                    completion.completed_at = utcnow_iso()
            if summary is not None:
                completion.summary = summary
            if base_commit is not None:
                record.base_commit = base_commit
            return _bump_schema(_apply_owned(current, record.to_dict(), _UPDATE_KEYS))

        updated = update_json_locked(path, apply, self.lock_options, self.lock_manager)
        return TaskStatus.from_dict(updated)

    # ── background-owned writes ──────────────────────────────────

    def patch_background_fields(
        self,
        feature: str,
        task: str,
        *,
        idempotency_key: str | None = UNSET,
        worker_session: WorkerSession | Mapping[str, Any] | None = UNSET,
    ) -> TaskStatus:
        """Locked patch of ``idempotencyKey`` and ``workerSession`` only.

        ``workerSession`` is deep-merged, so a heartbeat can send just
        ``{"lastHeartbeatAt": ...}``. Leaving an argument out leaves the
        field alone; passing ``None`` clears it.
        """
        patch: dict[str, Any] = {}
        if idempotency_key is not UNSET:
            patch["idempotencyKey"] = idempotency_key
        if worker_session is not UNSET:
            if isinstance(worker_session, WorkerSession):
                patch["workerSession"] = worker_session.to_dict()
            else:
                patch["workerSession"] = worker_session
        path = self._existing_status_path(feature, task)

        def apply(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise NotFoundError(f"Task '{task}' not found in feature '{feature}'")
            merged = deep_merge(current, patch)
            return _bump_schema(_apply_owned(current, merged, _BACKGROUND_WRITE_KEYS))

        updated = update_json_locked(path, apply, self.lock_options, self.lock_manager)
        return TaskStatus.from_dict(updated)

    # ── documents ────────────────────────────────────────────────

    def read_spec(self, feature: str, task: str) -> str | None:
        return read_text(paths.task_spec_path(self.project_root, feature, task))

    def write_spec(self, feature: str, task: str, content: str) -> Path:
        self._require_task(feature, task)
        path = paths.task_spec_path(self.project_root, feature, task)
        write_atomic(path, content)
        return path

    def read_report(self, feature: str, task: str) -> str | None:
        return read_text(paths.task_report_path(self.project_root, feature, task))

    def write_report(self, feature: str, task: str, report: str) -> Path:
        self._require_task(feature, task)
        path = paths.task_report_path(self.project_root, feature, task)
        write_atomic(path, report)
        return path

    # ── helpers ──────────────────────────────────────────────────

    def _list_folders(self, feature: str) -> list[str]:
        return list_subdirs(paths.tasks_path(self.project_root, feature))

    def _require_task(self, feature: str, task: str) -> None:
        if not paths.task_path(self.project_root, feature, task).is_dir():
            raise NotFoundError(f"Task '{task}' not found in feature '{feature}'")

    def _existing_status_path(self, feature: str, task: str) -> Path:
        # Checked before locking so a missing task never gets a directory created for its lock.
        self._require_task(feature, task)
        return paths.task_status_path(self.project_root, feature, task)

    def _delete_task_dir(self, feature: str, task: str) -> bool:
        return remove_tree(paths.task_path(self.project_root, feature, task))


def _task_line(task: ParsedTask) -> str:
    return f"- **{task.order}. {task.name}** ({task.folder})"


def _render_task_spec(
    feature: str,
    task: ParsedTask,
    planned: list[ParsedTask],
    deps: list[str],
) -> str:
    by_folder = {t.folder: t for t in planned}
    lines = [
        f"# Task {task.order}: {task.name}",
        "",
        f"**Feature:** {feature}",
        f"**Folder:** {task.folder}",
        "**Status:** pending",
        "",
        "---",
        "",
        "## Description",
        "",
        task.description or "_No description provided in plan_",
        "",
        "---",
        "",
        "## Dependencies",
        "",
    ]
    if deps:
        lines.extend(_task_line(by_folder[d]) for d in deps if d in by_folder)
    else:
        lines.append("_None_")
    lines.append("")

    prior = [t for t in planned if t.order < task.order]
    if prior:
        lines.extend(["---", "", "## Prior Tasks", ""])
        lines.extend(_task_line(t) for t in prior)
        lines.append("")

    upcoming = [t for t in planned if t.order > task.order]
    if upcoming:
        lines.extend(["---", "", "## Upcoming Tasks", ""])
        lines.extend(_task_line(t) for t in upcoming)
        lines.append("")

    return "\n".join(lines)

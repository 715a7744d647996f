"""Subtasks: finer-grained steps nested under a task (test -> implement -> verify)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from hive import paths
from hive.errors import NotFoundError
from hive.io_utils import list_subdirs, read_text, remove_tree
from hive.storage import (
    LockManager,
    LockOptions,
    read_json,
    update_json_locked,
    utcnow_iso,
    write_atomic,
    write_json_locked,
)
from hive.tasks.model import (
    Subtask,
    SubtaskStatus,
    SubtaskType,
    TaskState,
    folder_name,
    folder_order,
)
from hive.tasks.plan import slugify


class SubtaskService:
    def __init__(
        self,
        project_root: Path | str,
        lock_options: LockOptions | None = None,
        lock_manager: LockManager | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.lock_options = lock_options
        self.lock_manager = lock_manager

    def create(
        self,
        feature: str,
        task: str,
        name: str,
        type: SubtaskType | str | None = None,
    ) -> Subtask:
        task_order = self._task_order(feature, task)
        existing = [o for o in (folder_order(f) for f in self._list_folders(feature, task)) if o is not None]
        order = max(existing, default=0) + 1
        folder = f"{order}-{slugify(name)}"
        subtask_type = SubtaskType(type) if type else None

        status = SubtaskStatus(type=subtask_type, created_at=utcnow_iso())
        write_json_locked(
            paths.subtask_status_path(self.project_root, feature, task, folder),
            status.to_dict(),
            self.lock_options,
            self.lock_manager,
        )

        subtask_id = f"{task_order}.{order}"
        write_atomic(
            paths.subtask_spec_path(self.project_root, feature, task, folder),
            f"# Subtask: {name}\n\n"
            f"**Type:** {subtask_type.value if subtask_type else 'custom'}\n"
            f"**ID:** {subtask_id}\n\n"
            "## Instructions\n\n_Add detailed instructions here_\n",
        )
        return self._to_subtask(subtask_id, folder, status, name=name)

    def get(self, feature: str, task: str, subtask_id: str) -> Subtask | None:
        folder = self._find_folder(feature, task, subtask_id)
        if folder is None:
            return None
        data = read_json(paths.subtask_status_path(self.project_root, feature, task, folder))
        if data is None:
            return None
        return self._to_subtask(self._id(feature, task, folder), folder, SubtaskStatus.from_dict(data))

    def list(self, feature: str, task: str) -> list[Subtask]:
        subtasks: list[Subtask] = []
        for folder in self._list_folders(feature, task):
            data = read_json(paths.subtask_status_path(self.project_root, feature, task, folder))
            status = SubtaskStatus.from_dict(data or {})
            subtasks.append(self._to_subtask(self._id(feature, task, folder), folder, status))
        return subtasks

    def update(
        self,
        feature: str,
        task: str,
        subtask_id: str,
        status: TaskState | str,
    ) -> Subtask:
        """Locked status change; ``startedAt``/``completedAt`` are stamped once."""
        new_status = TaskState(status)
        folder = self._require_folder(feature, task, subtask_id)
        path = paths.subtask_status_path(self.project_root, feature, task, folder)

        def apply(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise NotFoundError(f"Subtask status not found for '{subtask_id}'")
            record = SubtaskStatus.from_dict(current)
            record.status = new_status
            if new_status == TaskState.IN_PROGRESS and not record.started_at:
                record.started_at = utcnow_iso()
            if new_status == TaskState.DONE and not record.completed_at:
                record.completed_at = utcnow_iso()
            return {**current, **record.to_dict()}

        updated = update_json_locked(path, apply, self.lock_options, self.lock_manager)
        return self._to_subtask(subtask_id, folder, SubtaskStatus.from_dict(updated))

    def delete(self, feature: str, task: str, subtask_id: str) -> None:
        folder = self._require_folder(feature, task, subtask_id)
        remove_tree(paths.subtask_path(self.project_root, feature, task, folder))

    def write_spec(self, feature: str, task: str, subtask_id: str, content: str) -> Path:
        folder = self._require_folder(feature, task, subtask_id)
        path = paths.subtask_spec_path(self.project_root, feature, task, folder)
        write_atomic(path, content)
        return path

    def read_spec(self, feature: str, task: str, subtask_id: str) -> str | None:
        folder = self._find_folder(feature, task, subtask_id)
        if folder is None:
            return None
        return read_text(paths.subtask_spec_path(self.project_root, feature, task, folder))

    def write_report(self, feature: str, task: str, subtask_id: str, content: str) -> Path:
        folder = self._require_folder(feature, task, subtask_id)
        path = paths.subtask_report_path(self.project_root, feature, task, folder)
        write_atomic(path, content)
        return path

    def read_report(self, feature: str, task: str, subtask_id: str) -> str | None:
        folder = self._find_folder(feature, task, subtask_id)
        if folder is None:
            return None
        return read_text(paths.subtask_report_path(self.project_root, feature, task, folder))

    # ── helpers ──────────────────────────────────────────────────

    def _task_order(self, feature: str, task: str) -> int:
        if not paths.task_path(self.project_root, feature, task).is_dir():
            raise NotFoundError(f"Task '{task}' not found in feature '{feature}'")
        order = folder_order(task)
        if order is None:
            raise NotFoundError(f"Task folder '{task}' has no ordinal prefix")
        return order

    def _id(self, feature: str, task: str, folder: str) -> str:
        return f"{folder_order(task)}.{folder_order(folder)}"

    def _list_folders(self, feature: str, task: str) -> list[str]:
        folders = list_subdirs(paths.subtasks_path(self.project_root, feature, task))
        return sorted(folders, key=lambda f: (folder_order(f) or 0, f))

    def _find_folder(self, feature: str, task: str, subtask_id: str) -> str | None:
        prefix, _, order = subtask_id.partition(".")
        if not order.isdigit() or not prefix.isdigit():
            return None
        if int(prefix) != folder_order(task):
            return None
        for folder in self._list_folders(feature, task):
            if folder_order(folder) == int(order):
                return folder
        return None

    def _require_folder(self, feature: str, task: str, subtask_id: str) -> str:
        folder = self._find_folder(feature, task, subtask_id)
        if folder is None:
            raise NotFoundError(f"Subtask '{subtask_id}' not found in task '{task}'")
        return folder

    @staticmethod
    def _to_subtask(
        subtask_id: str,
        folder: str,
        status: SubtaskStatus,
        name: str | None = None,
    ) -> Subtask:
        return Subtask(
            id=subtask_id,
            name=name or folder_name(folder),
            folder=folder,
            status=status.status,
            type=status.type,
            created_at=status.created_at,
            started_at=status.started_at,
            completed_at=status.completed_at,
        )

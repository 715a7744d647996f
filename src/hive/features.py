"""Features and their plans: feature.json, plan.md, review comments, approval."""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from hive import paths
from hive.errors import HiveError, NotFoundError
from hive.io_utils import ensure_dir, list_subdirs, read_text
from hive.storage import (
    LockManager,
    LockOptions,
    patch_json_locked,
    read_json,
    update_json_locked,
    utcnow_iso,
    write_atomic,
    write_json_locked,
)
from hive.tasks.model import TaskInfo
from hive.tasks.service import TaskService

_FEATURE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class FeatureStatus(str, Enum):
    PLANNING = "planning"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"


@dataclass
class FeatureInfo:
    name: str
    status: FeatureStatus
    tasks: list[TaskInfo] = field(default_factory=list)
    has_plan: bool = False
    comment_count: int = 0


@dataclass
class PlanComment:
    id: str
    line: int
    body: str
    author: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "line": self.line,
            "body": self.body,
            "author": self.author,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanComment:
        return cls(
            id=data.get("id", ""),
            line=int(data.get("line", 0)),
            body=data.get("body", ""),
            author=data.get("author", ""),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class PlanReadResult:
    content: str
    status: FeatureStatus
    comments: list[PlanComment] = field(default_factory=list)


class FeatureService:
    def __init__(
        self,
        project_root: Path | str,
        lock_options: LockOptions | None = None,
        lock_manager: LockManager | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.lock_options = lock_options
        self.lock_manager = lock_manager

    def create(self, name: str, ticket: str | None = None) -> dict[str, Any]:
        if not _FEATURE_NAME_RE.match(name):
            raise HiveError(f"Invalid feature name '{name}': use letters, digits, '.', '_' or '-'")
        feature_dir = paths.feature_path(self.project_root, name)
        if feature_dir.exists():
            raise HiveError(f"Feature '{name}' already exists")

        ensure_dir(paths.tasks_path(self.project_root, name))
        feature: dict[str, Any] = {
            "name": name,
            "status": FeatureStatus.PLANNING.value,
            "createdAt": utcnow_iso(),
        }
        if ticket:
            feature["ticket"] = ticket
        write_json_locked(
            paths.feature_json_path(self.project_root, name),
            feature,
            self.lock_options,
            self.lock_manager,
        )
        return feature

    def get(self, name: str) -> dict[str, Any] | None:
        return read_json(paths.feature_json_path(self.project_root, name))

    def list(self) -> list[str]:
        return list_subdirs(paths.features_path(self.project_root))

    def update_status(self, name: str, status: FeatureStatus | str) -> dict[str, Any]:
        """Set the status; ``approvedAt``/``completedAt`` are stamped once."""
        new_status = FeatureStatus(status)
        path = self._require_feature(name)

        def apply(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise NotFoundError(f"Feature '{name}' not found")
            feature = dict(current)
            feature["status"] = new_status.value
            if new_status == FeatureStatus.APPROVED and not feature.get("approvedAt"):
                feature["approvedAt"] = utcnow_iso()
            if new_status == FeatureStatus.COMPLETED and not feature.get("completedAt"):
                feature["completedAt"] = utcnow_iso()
            return feature

        return update_json_locked(path, apply, self.lock_options, self.lock_manager)

    def complete(self, name: str) -> dict[str, Any]:
        feature = self.get(name)
        if feature is None:
            raise NotFoundError(f"Feature '{name}' not found")
        if feature.get("status") == FeatureStatus.COMPLETED.value:
            raise HiveError(f"Feature '{name}' is already completed")
        return self.update_status(name, FeatureStatus.COMPLETED)

    def info(self, name: str) -> FeatureInfo | None:
        feature = self.get(name)
        if feature is None:
            return None
        comments = read_json(paths.comments_path(self.project_root, name)) or {}
        return FeatureInfo(
            name=feature.get("name", name),
            status=FeatureStatus(feature.get("status", FeatureStatus.PLANNING.value)),
            tasks=TaskService(self.project_root, self.lock_options, self.lock_manager).list(name),
            has_plan=paths.plan_path(self.project_root, name).is_file(),
            comment_count=len(comments.get("threads", [])),
        )

    def _require_feature(self, name: str) -> Path:
        path = paths.feature_json_path(self.project_root, name)
        if not path.is_file():
            raise NotFoundError(f"Feature '{name}' not found")
        return path


class PlanService:
    """plan.md plus its review comments and the APPROVED marker.

    Rewriting the plan clears its comments and revokes approval.
    """

    def __init__(
        self,
        project_root: Path | str,
        lock_options: LockOptions | None = None,
        lock_manager: LockManager | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.lock_options = lock_options
        self.lock_manager = lock_manager

    def write(self, feature: str, content: str) -> Path:
        path = paths.plan_path(self.project_root, feature)
        write_atomic(path, content)
        self.clear_comments(feature)
        self.revoke_approval(feature)
        return path

    def read(self, feature: str) -> PlanReadResult | None:
        content = read_text(paths.plan_path(self.project_root, feature))
        if content is None:
            return None
        return PlanReadResult(
            content=content,
            status=FeatureStatus.APPROVED if self.is_approved(feature) else FeatureStatus.PLANNING,
            comments=self.get_comments(feature),
        )

    def approve(self, feature: str) -> None:
        if not paths.plan_path(self.project_root, feature).is_file():
            raise NotFoundError(f"No plan.md found for feature '{feature}'")
        timestamp = utcnow_iso()
        write_atomic(paths.approved_path(self.project_root, feature), f"Approved at {timestamp}\n")
        feature_json = paths.feature_json_path(self.project_root, feature)
        if feature_json.is_file():
            patch_json_locked(
                feature_json,
                {"status": FeatureStatus.APPROVED.value, "approvedAt": timestamp},
                self.lock_options,
                self.lock_manager,
            )

    def is_approved(self, feature: str) -> bool:
        return paths.approved_path(self.project_root, feature).is_file()

    def revoke_approval(self, feature: str) -> None:
        paths.approved_path(self.project_root, feature).unlink(missing_ok=True)

        def revoke(current: dict[str, Any]) -> dict[str, Any]:
            if current.get("status") != FeatureStatus.APPROVED.value:
                return current
            feature_json = {k: v for k, v in current.items() if k != "approvedAt"}
            feature_json["status"] = FeatureStatus.PLANNING.value
            return feature_json

        self._patch_feature(feature, revoke)

    def get_comments(self, feature: str) -> list[PlanComment]:
        data = read_json(paths.comments_path(self.project_root, feature)) or {}
        return [PlanComment.from_dict(c) for c in data.get("threads", [])]

    def add_comment(self, feature: str, line: int, body: str, author: str) -> PlanComment:
        comment = PlanComment(
            id=f"comment-{uuid.uuid4().hex[:12]}",
            line=line,
            body=body,
            author=author,
            timestamp=utcnow_iso(),
        )

        def append(current: dict[str, Any] | None) -> dict[str, Any]:
            data = dict(current or {})
            data["threads"] = [*data.get("threads", []), comment.to_dict()]
            return data

        update_json_locked(
            paths.comments_path(self.project_root, feature),
            append,
            self.lock_options,
            self.lock_manager,
        )
        return comment

    def clear_comments(self, feature: str) -> None:
        write_json_locked(
            paths.comments_path(self.project_root, feature),
            {"threads": []},
            self.lock_options,
            self.lock_manager,
        )

    def _patch_feature(self, feature: str, fn: Callable[[dict[str, Any]], dict[str, Any]]) -> None:
        path = paths.feature_json_path(self.project_root, feature)
        if not path.is_file():
            return
        update_json_locked(path, lambda current: fn(current or {}), self.lock_options, self.lock_manager)

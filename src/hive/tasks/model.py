"""Task and subtask records as stored in ``status.json``.

A task record is split by writer. :class:`CompletionFields` belong to the
status-update path (``TaskService.update``); :class:`BackgroundFields`
belong to the heartbeat path (``TaskService.patch_background_fields``).
Each path only ever writes its own keys, so a heartbeat cannot clobber a
completion and vice versa.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TASK_STATUS_SCHEMA_VERSION = 1


class TaskState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


class TaskOrigin(str, Enum):
    PLAN = "plan"
    MANUAL = "manual"


class SubtaskType(str, Enum):
    TEST = "test"
    IMPLEMENT = "implement"
    REVIEW = "review"
    VERIFY = "verify"
    RESEARCH = "research"
    DEBUG = "debug"
    CUSTOM = "custom"


COMPLETION_KEYS = ("status", "summary", "startedAt", "completedAt")
BACKGROUND_KEYS = ("idempotencyKey", "workerSession")
_IDENTITY_KEYS = ("schemaVersion", "origin", "planTitle", "baseCommit", "dependsOn")


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class WorkerSession:
    session_id: str = ""
    task_id: str | None = None
    worker_id: str | None = None
    agent: str | None = None
    mode: str | None = None  # "inline" | "delegate"
    attempt: int | None = None
    message_count: int | None = None
    last_heartbeat_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "sessionId": self.session_id or None,
            "taskId": self.task_id,
            "workerId": self.worker_id,
            "agent": self.agent,
            "mode": self.mode,
            "attempt": self.attempt,
            "messageCount": self.message_count,
            "lastHeartbeatAt": self.last_heartbeat_at,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkerSession:
        return cls(
            session_id=data.get("sessionId", ""),
            task_id=data.get("taskId"),
            worker_id=data.get("workerId"),
            agent=data.get("agent"),
            mode=data.get("mode"),
            attempt=data.get("attempt"),
            message_count=data.get("messageCount"),
            last_heartbeat_at=data.get("lastHeartbeatAt"),
        )


@dataclass
class CompletionFields:
    status: TaskState = TaskState.PENDING
    summary: str | None = None
    started_at: str | None = None
    completed_at: str | None = None


@dataclass
class BackgroundFields:
    idempotency_key: str | None = None
    worker_session: WorkerSession | None = None


@dataclass
class TaskStatus:
    """Full status.json record."""

    origin: TaskOrigin = TaskOrigin.PLAN
    schema_version: int = TASK_STATUS_SCHEMA_VERSION
    plan_title: str | None = None
    base_commit: str | None = None
    # None means "use the implicit predecessor rule".
    depends_on: list[str] | None = None
    completion: CompletionFields = field(default_factory=CompletionFields)
    background: BackgroundFields = field(default_factory=BackgroundFields)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> TaskState:
        return self.completion.status

    def to_dict(self) -> dict[str, Any]:
        session = self.background.worker_session
        data = {
            **self.extra,
            "schemaVersion": self.schema_version,
            "status": self.completion.status.value,
            "origin": self.origin.value,
            "planTitle": self.plan_title,
            "summary": self.completion.summary,
            "startedAt": self.completion.started_at,
            "completedAt": self.completion.completed_at,
            "baseCommit": self.base_commit,
            "dependsOn": list(self.depends_on) if self.depends_on is not None else None,
            "idempotencyKey": self.background.idempotency_key,
            "workerSession": session.to_dict() if session else None,
        }
        return _drop_none(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskStatus:
        known = set(COMPLETION_KEYS) | set(BACKGROUND_KEYS) | set(_IDENTITY_KEYS)
        session = data.get("workerSession")
        depends_on = data.get("dependsOn")
        return cls(
            origin=TaskOrigin(data.get("origin", TaskOrigin.PLAN.value)),
            schema_version=int(data.get("schemaVersion", TASK_STATUS_SCHEMA_VERSION)),
            plan_title=data.get("planTitle"),
            base_commit=data.get("baseCommit"),
            depends_on=list(depends_on) if depends_on is not None else None,
            completion=CompletionFields(
                status=TaskState(data.get("status", TaskState.PENDING.value)),
                summary=data.get("summary"),
                started_at=data.get("startedAt"),
                completed_at=data.get("completedAt"),
            ),
            background=BackgroundFields(
                idempotency_key=data.get("idempotencyKey"),
                worker_session=WorkerSession.from_dict(session) if isinstance(session, dict) else None,
            ),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class TaskInfo:
    folder: str
    name: str
    status: TaskState
    origin: TaskOrigin
    plan_title: str | None = None
    summary: str | None = None
    depends_on: list[str] | None = None

    @property
    def order(self) -> int | None:
        return folder_order(self.folder)


@dataclass
class ParsedTask:
    """One ``### N. Title`` section of a plan."""

    folder: str
    order: int
    name: str
    description: str = ""
    # None: no annotation (implicit predecessor). []: explicit "none".
    depends_on_numbers: list[int] | None = None


@dataclass
class SyncResult:
    created: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    manual: list[str] = field(default_factory=list)


@dataclass
class SubtaskStatus:
    status: TaskState = TaskState.PENDING
    type: SubtaskType | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "status": self.status.value,
            "type": self.type.value if self.type else None,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubtaskStatus:
        raw_type = data.get("type")
        return cls(
            status=TaskState(data.get("status", TaskState.PENDING.value)),
            type=SubtaskType(raw_type) if raw_type else None,
            created_at=data.get("createdAt"),
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
        )


@dataclass
class Subtask:
    id: str  # "<taskOrder>.<subtaskOrder>"
    name: str
    folder: str
    status: TaskState = TaskState.PENDING
    type: SubtaskType | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None


def folder_order(folder: str) -> int | None:
    """Leading ordinal of ``NN-slug`` folder names."""
    head = folder.split("-", 1)[0]
    return int(head) if head.isdigit() else None


def folder_name(folder: str) -> str:
    """Slug part of ``NN-slug`` folder names."""
    head, _, rest = folder.partition("-")
    return rest if head.isdigit() and rest else folder

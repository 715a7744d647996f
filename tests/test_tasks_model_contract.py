"""Contract tests for the status.json mapping in hive.tasks.model."""

from __future__ import annotations

from hive.tasks.model import (
    BACKGROUND_KEYS,
    COMPLETION_KEYS,
    SubtaskStatus,
    SubtaskType,
    TaskOrigin,
    TaskState,
    TaskStatus,
    WorkerSession,
    folder_name,
    folder_order,
)


def test_completion_and_background_keys_are_disjoint() -> None:
    assert not set(COMPLETION_KEYS) & set(BACKGROUND_KEYS)


def test_round_trip_keeps_unknown_keys() -> None:
    raw = {
        "schemaVersion": 1,
        "status": "in_progress",
        "origin": "manual",
        "planTitle": "Set up",
        "startedAt": "2024-01-01T00:00:00.000Z",
        "dependsOn": ["01-a"],
        "workerSession": {"sessionId": "s1", "attempt": 2, "lastHeartbeatAt": "t"},
        "custom": {"kept": True},
    }
    record = TaskStatus.from_dict(raw)
    assert record.status == TaskState.IN_PROGRESS
    assert record.origin == TaskOrigin.MANUAL
    assert record.background.worker_session == WorkerSession(session_id="s1", attempt=2, last_heartbeat_at="t")
    assert record.extra == {"custom": {"kept": True}}
    assert record.to_dict() == raw


def test_defaults_and_none_dropped() -> None:
    data = TaskStatus().to_dict()
    assert data == {"schemaVersion": 1, "status": "pending", "origin": "plan"}


def test_empty_depends_on_survives() -> None:
    assert TaskStatus(depends_on=[]).to_dict()["dependsOn"] == []
    assert TaskStatus.from_dict({"dependsOn": []}).depends_on == []
    assert TaskStatus.from_dict({}).depends_on is None


def test_worker_session_camel_case() -> None:
    session = WorkerSession(session_id="s", task_id="01-a", worker_id="w", message_count=3)
    assert session.to_dict() == {"sessionId": "s", "taskId": "01-a", "workerId": "w", "messageCount": 3}
    assert WorkerSession.from_dict(session.to_dict()) == session


def test_subtask_status_round_trip() -> None:
    status = SubtaskStatus(status=TaskState.DONE, type=SubtaskType.TEST, created_at="c", completed_at="d")
    assert status.to_dict() == {"status": "done", "type": "test", "createdAt": "c", "completedAt": "d"}
    assert SubtaskStatus.from_dict(status.to_dict()) == status


def test_folder_helpers() -> None:
    assert folder_order("03-write-docs") == 3
    assert folder_order("notes") is None
    assert folder_name("03-write-docs") == "write-docs"
    assert folder_name("notes") == "notes"

"""On-disk layout of a hive project.

::

    <root>/.hive/features/<feature>/
        feature.json, plan.md, comments.json, APPROVED
        tasks/<NN-slug>/status.json, spec.md, report.md
        tasks/<NN-slug>/subtasks/<M-slug>/status.json, spec.md, report.md
    <root>/.hive/.worktrees/<feature>/<task>
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

HIVE_DIR = ".hive"
FEATURES_DIR = "features"
TASKS_DIR = "tasks"
SUBTASKS_DIR = "subtasks"
WORKTREES_DIR = ".worktrees"
PLAN_FILE = "plan.md"
FEATURE_FILE = "feature.json"
COMMENTS_FILE = "comments.json"
APPROVED_FILE = "APPROVED"
STATUS_FILE = "status.json"
SPEC_FILE = "spec.md"
REPORT_FILE = "report.md"
CONTEXT_DIR = "context"

RootLike = Path | str


def hive_path(root: RootLike) -> Path:
    return Path(root) / HIVE_DIR


def features_path(root: RootLike) -> Path:
    return hive_path(root) / FEATURES_DIR


def feature_path(root: RootLike, feature: str) -> Path:
    return features_path(root) / feature


def feature_json_path(root: RootLike, feature: str) -> Path:
    return feature_path(root, feature) / FEATURE_FILE


def plan_path(root: RootLike, feature: str) -> Path:
    return feature_path(root, feature) / PLAN_FILE


def comments_path(root: RootLike, feature: str) -> Path:
    return feature_path(root, feature) / COMMENTS_FILE


def approved_path(root: RootLike, feature: str) -> Path:
    return feature_path(root, feature) / APPROVED_FILE


def context_path(root: RootLike, feature: str) -> Path:
    return feature_path(root, feature) / CONTEXT_DIR


def tasks_path(root: RootLike, feature: str) -> Path:
    return feature_path(root, feature) / TASKS_DIR


def task_path(root: RootLike, feature: str, task: str) -> Path:
    return tasks_path(root, feature) / task


def task_status_path(root: RootLike, feature: str, task: str) -> Path:
    return task_path(root, feature, task) / STATUS_FILE


def task_spec_path(root: RootLike, feature: str, task: str) -> Path:
    return task_path(root, feature, task) / SPEC_FILE


def task_report_path(root: RootLike, feature: str, task: str) -> Path:
    return task_path(root, feature, task) / REPORT_FILE


def subtasks_path(root: RootLike, feature: str, task: str) -> Path:
    return task_path(root, feature, task) / SUBTASKS_DIR


def subtask_path(root: RootLike, feature: str, task: str, subtask: str) -> Path:
    return subtasks_path(root, feature, task) / subtask


def subtask_status_path(root: RootLike, feature: str, task: str, subtask: str) -> Path:
    return subtask_path(root, feature, task, subtask) / STATUS_FILE


def subtask_spec_path(root: RootLike, feature: str, task: str, subtask: str) -> Path:
    return subtask_path(root, feature, task, subtask) / SPEC_FILE


def subtask_report_path(root: RootLike, feature: str, task: str, subtask: str) -> Path:
    return subtask_path(root, feature, task, subtask) / REPORT_FILE


def worktrees_path(root: RootLike) -> Path:
    return hive_path(root) / WORKTREES_DIR


def worktree_path(root: RootLike, feature: str, task: str) -> Path:
    return worktrees_path(root) / feature / task


# ── Context detection ────────────────────────────────────────────────

_WORKTREE_RE = re.compile(r"^(.+?)/\.hive/\.worktrees/([^/]+)/([^/]+)")


@dataclass
class DetectedContext:
    project_root: Path
    feature: str | None = None
    task: str | None = None
    is_worktree: bool = False


def detect_context(cwd: RootLike) -> DetectedContext:
    """Map a working directory to its hive project.

    Inside ``<root>/.hive/.worktrees/<feature>/<task>`` (or any directory
    below it) the main project root, feature and task are recovered from the
    path. Anywhere else *cwd* itself is the project root.
    """
    posix = Path(cwd).as_posix()
    match = _WORKTREE_RE.match(posix)
    if match:
        return DetectedContext(
            project_root=Path(match.group(1)),
            feature=match.group(2),
            task=match.group(3),
            is_worktree=True,
        )
    return DetectedContext(project_root=Path(cwd))

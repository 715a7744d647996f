"""Task graph engine: plan parsing, validation, sync and lifecycle."""

from hive.tasks.model import TaskInfo, TaskState, TaskStatus
from hive.tasks.service import TaskService
from hive.tasks.subtasks import SubtaskService

__all__ = ["SubtaskService", "TaskInfo", "TaskService", "TaskState", "TaskStatus"]

"""Storage backends and models."""

from task_mgmt.storage.base import BaseTaskStore, TaskStore
from task_mgmt.storage.memory import InMemoryTaskStore
from task_mgmt.storage.models import Task, TaskStatus
from task_mgmt.storage.postgres import PostgresTaskStore

__all__ = [
    "BaseTaskStore",
    "InMemoryTaskStore",
    "PostgresTaskStore",
    "Task",
    "TaskStatus",
    "TaskStore",
]

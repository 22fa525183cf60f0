"""In-memory storage backend for tests and local development."""

from __future__ import annotations

from task_mgmt.errors import NotFoundError
from task_mgmt.storage.base import BaseTaskStore, Clock
from task_mgmt.storage.models import Task


class InMemoryTaskStore(BaseTaskStore):
    """Dict-backed store. Reads and writes copy, so callers only ever hold snapshots."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        super().__init__(clock=clock)
        self._tasks: dict[str, Task] = {}

    def migrate(self) -> None:
        return None

    def delete(self, task_id: str) -> None:
        with self._lock:
            if self._tasks.pop(task_id, None) is None:
                raise NotFoundError(f"task {task_id!r} does not exist")

    def list_tasks(self, limit: int = 100) -> list[Task]:
        with self._lock:
            tasks = sorted(
                self._tasks.values(),
                key=lambda item: (item.updated, item.created),
                reverse=True,
            )
            return [task.model_copy(deep=True) for task in tasks[:limit]]

    def _read(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"task {task_id!r} does not exist")
        return task.model_copy(deep=True)

    def _insert(self, task: Task) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    def _update(self, task: Task) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

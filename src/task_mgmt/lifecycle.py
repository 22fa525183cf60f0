"""Task lifecycle transitions.

Every transition works on a copy of the caller's task and returns the saved
copy. When a notification fails nothing is saved and the caller's task is left
exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from task_mgmt.errors import InvalidTransitionError, NotificationError
from task_mgmt.notify import TaskNotifier
from task_mgmt.storage.base import Clock, TaskStore
from task_mgmt.storage.models import CANCEL_MESSAGE, Task, TaskStatus, utc_now

logger = logging.getLogger(__name__)


class TaskLifecycle:
    """Run / cancel / errored / succeeded transitions backed by a TaskStore."""

    def __init__(
        self,
        store: TaskStore,
        notifier: TaskNotifier,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self._clock = clock or utc_now

    def run(self, task: Task) -> Task:
        self._require(task, "run", allowed=("ready", "failed"))
        candidate = task.model_copy(deep=True)
        candidate.request = self._clock()
        candidate.fail = None
        candidate.success = None
        self._notify(self.notifier.task_requested, candidate, "run")
        return self._save(candidate, "run")

    def cancel(self, task: Task) -> Task:
        self._require(task, "cancel", allowed=("running",))
        candidate = task.model_copy(deep=True)
        candidate.fail = self._clock()
        candidate.success = None
        candidate.message = CANCEL_MESSAGE
        self._notify(self.notifier.task_cancelled, candidate, "cancel")
        return self._save(candidate, "cancel")

    def errored(self, task: Task, message: str) -> Task:
        candidate = task.model_copy(deep=True)
        candidate.fail = self._clock()
        candidate.message = message
        return self._save(candidate, "errored")

    def succeeded(self, task: Task, result_url: str, result_hash: str) -> Task:
        if task.request is None:
            raise InvalidTransitionError(f"cannot mark task {task.id!r} succeeded before it ran")
        candidate = task.model_copy(deep=True)
        candidate.success = self._clock()
        candidate.result_url = result_url
        candidate.result_hash = result_hash
        return self._save(candidate, "succeeded")

    @staticmethod
    def _require(task: Task, action: str, *, allowed: tuple[TaskStatus, ...]) -> None:
        if task.status not in allowed:
            raise InvalidTransitionError(
                f"cannot {action} task {task.id!r} with status {task.status}"
            )

    @staticmethod
    def _notify(send: Callable[[Task], None], task: Task, event: str) -> None:
        try:
            send(task)
        except Exception as exc:
            logger.warning("task_lifecycle event=%s task_id=%s notify=failed", event, task.id)
            raise NotificationError(f"{event} notification failed: {exc}") from exc

    def _save(self, task: Task, event: str) -> Task:
        saved = self.store.save(task)
        logger.info(
            "task_lifecycle event=%s task_id=%s status=%s",
            event,
            saved.id,
            saved.status,
        )
        return saved

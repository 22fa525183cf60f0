"""Storage interface for task records and the shared upsert-by-presence save."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from task_mgmt.errors import NotFoundError
from task_mgmt.storage.models import Task, normalize_timestamp, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TaskStore(Protocol):
    def migrate(self) -> None: ...

    def find_by_id(self, task_id: str) -> Task: ...

    def save(self, task: Task) -> Task: ...

    def delete(self, task_id: str) -> None: ...

    def list_tasks(self, limit: int = 100) -> list[Task]: ...


class BaseTaskStore:
    """Implements ``save`` on top of backend-specific read/insert/update hooks.

    Save looks up an existing row by id. A miss inserts the task under a fresh
    UUID with created == updated == now; a hit rewrites every mutable column and
    bumps ``updated`` while keeping the stored ``created``. Any lookup error
    other than NotFoundError propagates before either branch runs. The write
    goes through a copy, so a failed write leaves the caller's task unchanged.

    The lookup and the write happen under one lock per store instance. Separate
    processes sharing a database can still race on the insert branch.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now
        self._lock = threading.RLock()

    def now(self) -> datetime:
        return normalize_timestamp(self._clock())

    def find_by_id(self, task_id: str) -> Task:
        if not task_id:
            raise NotFoundError("task id is empty")
        return self._read(task_id)

    def save(self, task: Task) -> Task:
        with self._lock:
            try:
                previous = self.find_by_id(task.id)
            except NotFoundError:
                pending = task.model_copy(deep=True)
                pending.id = str(uuid.uuid4())
                pending.created = self.now()
                pending.updated = pending.created
                self._insert(pending)
                logger.debug("task_store event=insert task_id=%s", pending.id)
                return self._commit(task, pending)

            pending = task.model_copy(deep=True)
            pending.created = previous.created
            pending.updated = self.now()
            self._update(pending)
            logger.debug("task_store event=update task_id=%s", pending.id)
            return self._commit(task, pending)

    @staticmethod
    def _commit(task: Task, written: Task) -> Task:
        # The caller's task only picks up store-assigned values once the write succeeded.
        task.id = written.id
        task.created = written.created
        task.updated = written.updated
        return task

    def _read(self, task_id: str) -> Task:
        raise NotImplementedError

    def _insert(self, task: Task) -> None:
        raise NotImplementedError

    def _update(self, task: Task) -> None:
        raise NotImplementedError

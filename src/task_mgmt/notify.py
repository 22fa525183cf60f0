"""Notification collaborators invoked by lifecycle transitions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from task_mgmt.storage.models import Task

logger = logging.getLogger(__name__)


class TaskNotifier(Protocol):
    """Tells interested parties about run requests and cancellations.

    Implementations raise on delivery failure; the lifecycle then aborts the
    transition without saving.
    """

    def task_requested(self, task: Task) -> None: ...

    def task_cancelled(self, task: Task) -> None: ...


class LoggingNotifier:
    """Writes one log line per notification instead of sending email."""

    def __init__(self, recipients: Sequence[str] = ()) -> None:
        self.recipients = list(recipients)

    def task_requested(self, task: Task) -> None:
        logger.info(
            "notify event=task_requested task_id=%s title=%r recipients=%s",
            task.id,
            task.title,
            ",".join(self.recipients),
        )

    def task_cancelled(self, task: Task) -> None:
        logger.info(
            "notify event=task_cancelled task_id=%s title=%r recipients=%s",
            task.id,
            task.title,
            ",".join(self.recipients),
        )

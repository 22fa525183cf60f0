from __future__ import annotations

import logging

import pytest

from task_mgmt.lifecycle import TaskLifecycle
from task_mgmt.notify import LoggingNotifier
from task_mgmt.storage.memory import InMemoryTaskStore
from task_mgmt.storage.models import Task


def test_logging_notifier_logs_request_and_cancel(
    store: InMemoryTaskStore,
    task: Task,
    caplog: pytest.LogCaptureFixture,
) -> None:
    lifecycle = TaskLifecycle(store, LoggingNotifier(["ops@example.org", "archive@example.org"]))

    with caplog.at_level(logging.INFO, logger="task_mgmt.notify"):
        running = lifecycle.run(task)
        lifecycle.cancel(running)

    messages = [record.getMessage() for record in caplog.records if record.name == "task_mgmt.notify"]
    assert len(messages) == 2
    assert "event=task_requested" in messages[0]
    assert "event=task_cancelled" in messages[1]
    assert f"task_id={running.id}" in messages[1]
    assert "recipients=ops@example.org,archive@example.org" in messages[1]

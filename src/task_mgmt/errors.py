"""Error types raised by the task lifecycle, storage and configuration layers."""

from __future__ import annotations


class TaskMgmtError(Exception):
    """Base class for all task-mgmt errors."""


class NotFoundError(TaskMgmtError):
    """No stored task matches the requested identifier."""


class PersistenceError(TaskMgmtError):
    """Backing store failure other than a missing record."""


class NotificationError(TaskMgmtError):
    """A notification collaborator failed during a lifecycle transition."""


class InvalidTransitionError(TaskMgmtError):
    """Lifecycle operation is not allowed from the task's current status."""


class NoNextActionError(TaskMgmtError):
    """Finished tasks have no follow-up action."""


class ConfigurationError(TaskMgmtError):
    """Required configuration is missing or a config source is unreadable."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

"""Task record and its derived lifecycle state.

Status is never stored. It is derived from three optional timestamps:

- request: when the task was asked to run (None means it never ran)
- success: when the run finished
- fail: when the run failed or was cancelled
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from task_mgmt.errors import NoNextActionError

TaskStatus = Literal["ready", "running", "finished", "failed"]

CANCEL_MESSAGE = "Task Cancelled"


def normalize_timestamp(value: datetime) -> datetime:
    """Convert to UTC and truncate to whole seconds. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(microsecond=0)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class Ready:
    status: TaskStatus = "ready"


@dataclass(frozen=True, slots=True)
class Running:
    requested_at: datetime
    status: TaskStatus = "running"


@dataclass(frozen=True, slots=True)
class Finished:
    requested_at: datetime
    succeeded_at: datetime
    status: TaskStatus = "finished"


@dataclass(frozen=True, slots=True)
class Failed:
    requested_at: datetime
    failed_at: datetime
    message: str
    status: TaskStatus = "failed"


TaskState = Ready | Running | Finished | Failed


class Task(BaseModel):
    """A unit of archival work."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    # Assigned by the store on first save.
    id: str = ""
    created: datetime | None = None
    updated: datetime | None = None
    title: str = Field(default="", alias="name")
    request: datetime | None = None
    success: datetime | None = None
    fail: datetime | None = None
    # Where the code to execute lives, e.g. https://github.com/ipfs/ipfs-wiki-mirror
    repo_url: str = Field(default="", alias="repoUrl")
    repo_commit: str = Field(default="", alias="repoCommit")
    source_url: str = Field(default="", alias="sourceUrl")
    source_checksum: str = Field(default="", alias="sourceChecksum")
    result_url: str = Field(default="", alias="resultUrl")
    # Multihash of the output.
    result_hash: str = Field(default="", alias="resultHash")
    message: str = ""

    @field_validator("created", "updated", "request", "success", "fail")
    @classmethod
    def _normalize(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return normalize_timestamp(value)

    @property
    def state(self) -> TaskState:
        if self.request is None:
            return Ready()
        if self.success is not None:
            return Finished(requested_at=self.request, succeeded_at=self.success)
        if self.fail is not None:
            return Failed(requested_at=self.request, failed_at=self.fail, message=self.message)
        return Running(requested_at=self.request)

    @property
    def status(self) -> TaskStatus:
        return self.state.status

    def next_action_title(self) -> str:
        match self.state:
            case Ready():
                return "run"
            case Running():
                return "cancel"
            case Failed():
                return "re-run"
        raise NoNextActionError("no next action")

    def next_action_url(self) -> str:
        match self.state:
            case Ready() | Failed():
                return f"/tasks/run/{self.id}"
            case Running():
                return f"/tasks/cancel/{self.id}"
        raise NoNextActionError("no next action")

    def to_api(self) -> dict[str, Any]:
        """External JSON shape."""
        return self.model_dump(mode="json", by_alias=True)


class CreateTaskRequest(BaseModel):
    """Request body for POST /tasks."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, alias="name")
    repo_url: str = Field(default="", alias="repoUrl")
    repo_commit: str = Field(default="", alias="repoCommit")
    source_url: str = Field(default="", alias="sourceUrl")
    source_checksum: str = Field(default="", alias="sourceChecksum")

    def to_task(self) -> Task:
        return Task(**self.model_dump())

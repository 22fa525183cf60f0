"""PostgreSQL storage backend for task records."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from task_mgmt.errors import NotFoundError, PersistenceError
from task_mgmt.storage.base import BaseTaskStore, Clock
from task_mgmt.storage.models import Task

_COLUMNS = (
    "id",
    "created",
    "updated",
    "title",
    "request",
    "success",
    "fail",
    "repo_url",
    "repo_commit",
    "source_url",
    "source_checksum",
    "result_url",
    "result_hash",
    "message",
)


def _parse_id(task_id: str) -> uuid.UUID:
    # Ids are UUID primary keys; anything else cannot name a stored row.
    try:
        return uuid.UUID(task_id)
    except (TypeError, ValueError, AttributeError) as exc:
        raise NotFoundError(f"task {task_id!r} does not exist") from exc


class PostgresTaskStore(BaseTaskStore):
    """Persist tasks in PostgreSQL. Driver failures surface as PersistenceError."""

    def __init__(self, database_url: str, *, clock: Clock | None = None) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        super().__init__(clock=clock)
        self.database_url = database_url
        self._psycopg, self._dict_row = self._load_psycopg()

    def migrate(self) -> None:
        with self._session() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id UUID PRIMARY KEY,
                    created TIMESTAMPTZ NOT NULL,
                    updated TIMESTAMPTZ NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    request TIMESTAMPTZ,
                    success TIMESTAMPTZ,
                    fail TIMESTAMPTZ,
                    repo_url TEXT NOT NULL DEFAULT '',
                    repo_commit TEXT NOT NULL DEFAULT '',
                    source_url TEXT NOT NULL DEFAULT '',
                    source_checksum TEXT NOT NULL DEFAULT '',
                    result_url TEXT NOT NULL DEFAULT '',
                    result_hash TEXT NOT NULL DEFAULT '',
                    message TEXT NOT NULL DEFAULT ''
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_updated
                ON tasks(updated DESC)
                """)
            conn.commit()

    def delete(self, task_id: str) -> None:
        key = _parse_id(task_id)
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = %s", (key,))
            conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"task {task_id!r} does not exist")

    def list_tasks(self, limit: int = 100) -> list[Task]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks ORDER BY updated DESC, created DESC LIMIT %s",
                (int(limit),),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def _read(self, task_id: str) -> Task:
        key = _parse_id(task_id)
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = %s",
                (key,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"task {task_id!r} does not exist")
        return self._row_to_task(row)

    def _insert(self, task: Task) -> None:
        placeholders = ", ".join("%s" for _ in _COLUMNS)
        with self._session() as conn:
            conn.execute(
                f"INSERT INTO tasks ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                (uuid.UUID(task.id), *self._values(task)[1:]),
            )
            conn.commit()

    def _update(self, task: Task) -> None:
        with self._session() as conn:
            conn.execute(
                """
                UPDATE tasks
                SET updated = %s,
                    title = %s,
                    request = %s,
                    success = %s,
                    fail = %s,
                    repo_url = %s,
                    repo_commit = %s,
                    source_url = %s,
                    source_checksum = %s,
                    result_url = %s,
                    result_hash = %s,
                    message = %s
                WHERE id = %s
                """,
                (*self._values(task)[2:], _parse_id(task.id)),
            )
            conn.commit()

    @contextmanager
    def _session(self) -> Iterator[Any]:
        with self._lock:
            try:
                with self._connect() as conn:
                    yield conn
            except self._psycopg.Error as exc:
                raise PersistenceError(f"task store error: {exc}") from exc

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row

    @staticmethod
    def _values(task: Task) -> tuple[Any, ...]:
        return (
            task.id,
            task.created,
            task.updated,
            task.title,
            task.request,
            task.success,
            task.fail,
            task.repo_url,
            task.repo_commit,
            task.source_url,
            task.source_checksum,
            task.result_url,
            task.result_hash,
            task.message,
        )

    @staticmethod
    def _row_to_task(row: Any) -> Task:
        return Task(
            id=str(row["id"]),
            created=row["created"],
            updated=row["updated"],
            title=row["title"] or "",
            request=row["request"],
            success=row["success"],
            fail=row["fail"],
            repo_url=row["repo_url"] or "",
            repo_commit=row["repo_commit"] or "",
            source_url=row["source_url"] or "",
            source_checksum=row["source_checksum"] or "",
            result_url=row["result_url"] or "",
            result_hash=row["result_hash"] or "",
            message=row["message"] or "",
        )

"""FastAPI app entrypoint for task-mgmt."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from task_mgmt.config.settings import Settings, resolve_settings
from task_mgmt.errors import (
    InvalidTransitionError,
    NoNextActionError,
    NotFoundError,
    NotificationError,
    PersistenceError,
)
from task_mgmt.lifecycle import TaskLifecycle
from task_mgmt.notify import LoggingNotifier, TaskNotifier
from task_mgmt.storage.base import TaskStore
from task_mgmt.storage.models import CreateTaskRequest, Task
from task_mgmt.storage.postgres import PostgresTaskStore


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings_override: Settings | None,
    store_override: TaskStore | None,
    notifier_override: TaskNotifier | None,
) -> None:
    if not hasattr(app.state, "settings"):
        # Raises ConfigurationError, which aborts startup.
        app.state.settings = settings_override or resolve_settings()

    settings: Settings = app.state.settings
    if not hasattr(app.state, "store"):
        app.state.store = store_override or PostgresTaskStore(settings.postgres_db_url)
        app.state.store.migrate()

    if not hasattr(app.state, "lifecycle"):
        notifier = notifier_override or LoggingNotifier(settings.email_notification_recipients)
        app.state.lifecycle = TaskLifecycle(app.state.store, notifier)


def create_app(
    *,
    settings_override: Settings | None = None,
    store: TaskStore | None = None,
    notifier: TaskNotifier | None = None,
) -> FastAPI:
    runtime = {
        "settings_override": settings_override,
        "store_override": store,
        "notifier_override": notifier,
    }

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, **runtime)
        yield

    app = FastAPI(title="task-mgmt", lifespan=lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if store is not None:
        _ensure_runtime_state(app, **runtime)

    def _store(request: Request) -> TaskStore:
        if not hasattr(request.app.state, "store"):
            _ensure_runtime_state(request.app, **runtime)
        return request.app.state.store

    def _lifecycle(request: Request) -> TaskLifecycle:
        if not hasattr(request.app.state, "lifecycle"):
            _ensure_runtime_state(request.app, **runtime)
        return request.app.state.lifecycle

    @app.exception_handler(NotFoundError)
    async def not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(NotificationError)
    async def notification_failed(_: Request, exc: NotificationError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_failed(_: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "task-mgmt"}

    @app.get("/tasks")
    def list_tasks(
        request: Request,
        limit: int = Query(default=100, ge=1, le=1000),
    ) -> list[dict[str, Any]]:
        return [_task_view(task) for task in _store(request).list_tasks(limit=limit)]

    @app.post("/tasks")
    def create_task(payload: CreateTaskRequest, request: Request) -> dict[str, Any]:
        task = _store(request).save(payload.to_task())
        return _task_view(task)

    @app.get("/tasks/{task_id}")
    def get_task(task_id: str, request: Request) -> dict[str, Any]:
        return _task_view(_store(request).find_by_id(task_id))

    @app.post("/tasks/run/{task_id}")
    def run_task(task_id: str, request: Request) -> dict[str, Any]:
        task = _store(request).find_by_id(task_id)
        return _task_view(_lifecycle(request).run(task))

    @app.post("/tasks/cancel/{task_id}")
    def cancel_task(task_id: str, request: Request) -> dict[str, Any]:
        task = _store(request).find_by_id(task_id)
        return _task_view(_lifecycle(request).cancel(task))

    @app.delete("/tasks/{task_id}")
    def delete_task(task_id: str, request: Request) -> dict[str, str]:
        _store(request).delete(task_id)
        return {"status": "deleted", "id": task_id}

    return app


def _task_view(task: Task) -> dict[str, Any]:
    payload = task.to_api()
    payload["status"] = task.status
    try:
        payload["nextAction"] = {
            "title": task.next_action_title(),
            "url": task.next_action_url(),
        }
    except NoNextActionError:
        payload["nextAction"] = None
    return payload


# Settings are resolved on startup, not on import.
app = create_app()

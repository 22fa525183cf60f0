from __future__ import annotations

import threading
import uuid
from datetime import UTC, datetime, timedelta, timezone

import pytest

from task_mgmt.errors import NotFoundError, PersistenceError
from task_mgmt.storage.memory import InMemoryTaskStore
from task_mgmt.storage.models import Task


def test_save_new_task_assigns_id_and_timestamps(store: InMemoryTaskStore, task: Task) -> None:
    saved = store.save(task)

    assert saved is task
    assert uuid.UUID(task.id)
    expected = datetime(2024, 3, 1, 12, 30, 15, tzinfo=UTC)
    assert task.created == expected
    assert task.updated == expected


def test_caller_supplied_unknown_id_is_replaced(store: InMemoryTaskStore, task: Task) -> None:
    task.id = "not-a-stored-id"

    store.save(task)

    assert task.id != "not-a-stored-id"
    assert store.find_by_id(task.id).title == "Mirror ipfs wiki"
    with pytest.raises(NotFoundError):
        store.find_by_id("not-a-stored-id")


def test_round_trip_preserves_fields(store: InMemoryTaskStore, task: Task) -> None:
    task.request = datetime(2024, 3, 1, 14, 30, 15, 123456, tzinfo=timezone(timedelta(hours=2)))
    task.message = "queued by hand"

    store.save(task)
    loaded = store.find_by_id(task.id)

    assert loaded == task
    assert loaded.request == datetime(2024, 3, 1, 12, 30, 15, tzinfo=UTC)


def test_find_by_empty_id_is_not_found(store: InMemoryTaskStore) -> None:
    with pytest.raises(NotFoundError):
        store.find_by_id("")


def test_update_keeps_created_and_advances_updated(store: InMemoryTaskStore, task: Task) -> None:
    store.save(task)
    task_id = task.id
    created = task.created
    first_updated = task.updated

    store.save(task)
    after_first = store.find_by_id(task_id)
    store.save(task)
    after_second = store.find_by_id(task_id)

    assert task.id == task_id
    assert after_first.created == after_second.created == created
    assert first_updated < after_first.updated < after_second.updated
    assert after_first.model_dump(exclude={"updated"}) == after_second.model_dump(exclude={"updated"})


def test_update_ignores_caller_created(store: InMemoryTaskStore, task: Task) -> None:
    store.save(task)
    original_created = task.created

    task.created = datetime(1999, 1, 1, tzinfo=UTC)
    task.title = "Renamed"
    store.save(task)

    loaded = store.find_by_id(task.id)
    assert loaded.created == original_created
    assert loaded.title == "Renamed"


def test_update_overwrites_mutable_fields(store: InMemoryTaskStore, task: Task) -> None:
    store.save(task)

    task.success = datetime(2024, 3, 2, tzinfo=UTC)
    task.result_url = "https://archive.example.org/out.tar"
    task.result_hash = "QmResult"
    store.save(task)

    loaded = store.find_by_id(task.id)
    assert loaded.success == datetime(2024, 3, 2, tzinfo=UTC)
    assert loaded.result_url == "https://archive.example.org/out.tar"
    assert loaded.result_hash == "QmResult"


def test_returned_tasks_are_snapshots(store: InMemoryTaskStore, task: Task) -> None:
    store.save(task)

    loaded = store.find_by_id(task.id)
    loaded.title = "changed locally"
    task.title = "changed too"

    assert store.find_by_id(task.id).title == "Mirror ipfs wiki"


def test_delete_removes_task(store: InMemoryTaskStore, task: Task) -> None:
    store.save(task)

    store.delete(task.id)

    with pytest.raises(NotFoundError):
        store.find_by_id(task.id)


def test_delete_missing_task_is_not_found(store: InMemoryTaskStore) -> None:
    with pytest.raises(NotFoundError):
        store.delete(str(uuid.uuid4()))


def test_list_tasks_most_recently_updated_first(store: InMemoryTaskStore) -> None:
    first = store.save(Task(title="first"))
    second = store.save(Task(title="second"))
    store.save(first)

    titles = [item.title for item in store.list_tasks()]

    assert titles == ["first", "second"]
    assert len(store.list_tasks(limit=1)) == 1
    assert second.id in {item.id for item in store.list_tasks()}


def test_lookup_failure_aborts_save(clock) -> None:
    class BrokenStore(InMemoryTaskStore):
        def _read(self, task_id: str) -> Task:
            raise PersistenceError("connection refused")

    store = BrokenStore(clock=clock)
    task = Task(id="abc", title="x")

    with pytest.raises(PersistenceError):
        store.save(task)

    assert task.id == "abc"
    assert task.created is None
    assert store.list_tasks() == []


def test_failed_write_leaves_caller_task_untouched(clock, task: Task) -> None:
    class FlakyStore(InMemoryTaskStore):
        fail = False

        def _insert(self, task: Task) -> None:
            if self.fail:
                raise PersistenceError("insert rejected")
            super()._insert(task)

        def _update(self, task: Task) -> None:
            if self.fail:
                raise PersistenceError("update rejected")
            super()._update(task)

    store = FlakyStore(clock=clock)
    store.fail = True
    with pytest.raises(PersistenceError, match="insert rejected"):
        store.save(task)
    assert (task.id, task.created, task.updated) == ("", None, None)

    store.fail = False
    store.save(task)
    before = (task.id, task.created, task.updated)

    store.fail = True
    with pytest.raises(PersistenceError, match="update rejected"):
        store.save(task)
    assert (task.id, task.created, task.updated) == before
    assert store.find_by_id(task.id).updated == before[2]


def test_concurrent_saves_of_one_new_task_insert_once(clock, task: Task) -> None:
    inserting = threading.Event()
    release = threading.Event()

    class SlowInsertStore(InMemoryTaskStore):
        def _insert(self, task: Task) -> None:
            inserting.set()
            assert release.wait(timeout=5)
            super()._insert(task)

    store = SlowInsertStore(clock=clock)
    errors: list[Exception] = []

    def save() -> None:
        try:
            store.save(task)
        except Exception as exc:
            errors.append(exc)

    first = threading.Thread(target=save)
    second = threading.Thread(target=save)
    first.start()
    assert inserting.wait(timeout=5)
    second.start()
    second.join(timeout=0.2)
    # The second save is still queued behind the first one's insert.
    assert second.is_alive()

    release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert errors == []
    assert [item.id for item in store.list_tasks()] == [task.id]

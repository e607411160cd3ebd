"""
Tests for the persistence layer: schema, LocalStorage, TaskStore.
"""
import json
from unittest.mock import patch

import pytest

from taskboard.schema import Task, TaskStatus, TaskPriority, UserSession, make_task_id, utc_now
from taskboard.storage import LocalStorage, StorageError, StorageQuotaExceeded
from taskboard.store import TaskStore, tasks_key


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Schema
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSchema:

    def test_unknown_status_parses_as_todo(self):
        assert TaskStatus.from_str("archived") == TaskStatus.TODO
        assert TaskStatus.from_str(None) == TaskStatus.TODO

    def test_priority_is_case_insensitive(self):
        assert TaskPriority.from_str("HIGH") == TaskPriority.HIGH
        assert TaskPriority.from_str("urgent") == TaskPriority.MEDIUM

    def test_task_id_format(self):
        ts, rand = make_task_id().split("-")
        assert ts.isdigit()
        assert len(rand) == 8

    def test_task_ids_unique(self):
        assert len({make_task_id() for _ in range(200)}) == 200

    def test_utc_now_format(self):
        assert utc_now().endswith("Z")
        assert "T" in utc_now()

    def test_task_dict_uses_camel_case(self):
        task = Task(id="1", title="Write report", due_date="2025-03-01")
        data = task.to_dict()
        assert data["dueDate"] == "2025-03-01"
        assert data["status"] == "todo"
        assert data["priority"] == "medium"

    def test_task_from_dict_keeps_unknown_keys(self):
        task = Task.from_dict({"id": "1", "title": "x", "createdAt": "yesterday"})
        assert task.to_dict()["createdAt"] == "yesterday"

    def test_task_from_dict_defaults(self):
        task = Task.from_dict({"id": "1"})
        assert task.title == "Untitled Task"
        assert task.status == TaskStatus.TODO

    def test_non_string_enum_values_fall_back(self):
        assert TaskPriority.from_str(3) == TaskPriority.MEDIUM
        assert TaskPriority.from_str(["high"]) == TaskPriority.MEDIUM
        assert TaskStatus.from_str(2) == TaskStatus.TODO
        assert TaskStatus.from_str({"v": "completed"}) == TaskStatus.TODO

    def test_task_from_dict_ignores_non_string_fields(self):
        task = Task.from_dict({"id": "1", "title": {"x": 1}, "description": ["d"], "dueDate": 5})
        assert task.title == "Untitled Task"
        assert task.description == ""
        assert task.due_date == ""

    def test_user_session_from_dict(self):
        user = UserSession.from_dict({"distinctId": "a@b.co"})
        assert user.email == "a@b.co"
        assert user.name == "User"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LocalStorage
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestLocalStorage:

    def test_missing_key_is_none(self, storage):
        assert storage.get_item("nope") is None

    def test_set_get_overwrite(self, storage):
        storage.set_item("k", "one")
        storage.set_item("k", "two")
        assert storage.get_item("k") == "two"
        assert storage.keys() == ["k"]

    def test_remove(self, storage):
        storage.set_item("k", "v")
        storage.remove_item("k")
        assert storage.get_item("k") is None
        storage.remove_item("k")  # absent key is fine

    def test_quota_exceeded(self, tmp_path):
        small = LocalStorage(str(tmp_path / "s.db"), quota_bytes=10)
        with pytest.raises(StorageQuotaExceeded):
            small.set_item("k", "x" * 11)
        assert small.get_item("k") is None

    def test_quota_error_is_storage_error(self):
        assert issubclass(StorageQuotaExceeded, StorageError)

    def test_zero_quota_is_unlimited(self, tmp_path):
        unlimited = LocalStorage(str(tmp_path / "s.db"), quota_bytes=0)
        unlimited.set_item("k", "x" * 100_000)
        assert len(unlimited.get_item("k")) == 100_000

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "s.db")
        LocalStorage(path).set_item("k", "v")
        assert LocalStorage(path).get_item("k") == "v"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TaskStore
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTaskStoreLoad:

    def test_empty_slot(self, store):
        assert store.all() == []

    def test_malformed_json(self, storage, user):
        storage.set_item(tasks_key(user.distinct_id), "{not json")
        assert TaskStore(storage, user.distinct_id).all() == []

    def test_not_a_list(self, storage, user):
        storage.set_item(tasks_key(user.distinct_id), json.dumps({"id": "1"}))
        assert TaskStore(storage, user.distinct_id).all() == []

    def test_skips_entries_without_id_and_duplicates(self, storage, user):
        storage.set_item(tasks_key(user.distinct_id), json.dumps([
            {"id": "1", "title": "a"},
            {"title": "no id"},
            "garbage",
            {"id": "1", "title": "dup"},
            {"id": "2", "title": "b", "status": "completed"},
        ]))
        tasks = TaskStore(storage, user.distinct_id).all()
        assert [t.id for t in tasks] == ["1", "2"]
        assert tasks[0].title == "a"
        assert tasks[1].status == TaskStatus.COMPLETED

    def test_non_string_priority_loads(self, storage, user):
        storage.set_item(tasks_key(user.distinct_id), json.dumps([{"id": "a", "title": "t", "priority": 3}]))
        tasks = TaskStore(storage, user.distinct_id).all()
        assert [t.id for t in tasks] == ["a"]
        assert tasks[0].priority == TaskPriority.MEDIUM

    def test_unreadable_entry_is_skipped(self, storage, user):
        storage.set_item(tasks_key(user.distinct_id), json.dumps([
            {"id": "1", "title": "a"},
            {"id": "2", "title": "b"},
        ]))
        real = Task.from_dict

        def from_dict(data):
            if data["id"] == "1":
                raise TypeError("bad entry")
            return real(data)

        with patch("taskboard.store.Task.from_dict", side_effect=from_dict):
            tasks = TaskStore(storage, user.distinct_id).all()
        assert [t.id for t in tasks] == ["2"]

    def test_collections_are_per_user(self, storage):
        TaskStore(storage, "a@x.io").create({"title": "mine"})
        assert TaskStore(storage, "b@x.io").all() == []


class TestTaskStoreMutations:

    def test_create_forces_todo(self, store):
        task = store.create({"title": "Ship", "status": TaskStatus.COMPLETED})
        assert task.status == TaskStatus.TODO
        assert store.get(task.id) is task

    def test_create_persists(self, storage, store, user):
        task = store.create({"title": "Ship", "priority": "high", "due_date": "2025-01-31"})
        reloaded = TaskStore(storage, user.distinct_id).get(task.id)
        assert reloaded.title == "Ship"
        assert reloaded.priority == TaskPriority.HIGH
        assert reloaded.due_date == "2025-01-31"

    def test_create_sanitizes_title(self, store):
        task = store.create({"title": "<b>Bold</b> move"})
        assert task.title == "Bold move"

    def test_update_merges(self, store):
        task = store.create({"title": "Old", "description": "keep"})
        store.update(task.id, {"title": "New"})
        updated = store.get(task.id)
        assert updated.title == "New"
        assert updated.description == "keep"
        assert updated.id == task.id

    def test_update_status_only_when_supplied(self, store):
        task = store.create({"title": "t"})
        store.update(task.id, {"priority": "low"})
        assert store.get(task.id).status == TaskStatus.TODO
        store.update(task.id, {"status": "in-review"})
        assert store.get(task.id).status == TaskStatus.IN_REVIEW

    def test_update_empty_title_keeps_old(self, store):
        task = store.create({"title": "Keep me"})
        store.update(task.id, {"title": "   "})
        assert store.get(task.id).title == "Keep me"

    def test_update_unknown_id(self, store):
        assert store.update("missing", {"title": "x"}) is None
        assert store.all() == []

    def test_change_status_returns_old(self, store):
        task = store.create({"title": "t"})
        assert store.change_status(task.id, TaskStatus.IN_PROGRESS) == TaskStatus.TODO
        assert store.get(task.id).status == TaskStatus.IN_PROGRESS

    def test_change_status_same_is_noop(self, store):
        task = store.create({"title": "t"})
        assert store.change_status(task.id, TaskStatus.TODO) is None

    def test_change_status_unknown_id(self, store):
        assert store.change_status("missing", TaskStatus.COMPLETED) is None

    def test_delete(self, storage, store, user):
        keep = store.create({"title": "keep"})
        gone = store.create({"title": "gone"})
        removed = store.delete(gone.id)
        assert removed.title == "gone"
        assert [t.id for t in TaskStore(storage, user.distinct_id).all()] == [keep.id]

    def test_delete_missing_is_noop(self, store):
        task = store.create({"title": "t"})
        assert store.delete("missing") is None
        assert store.all() == [task]

    def test_clear(self, storage, store, user):
        store.create({"title": "t"})
        store.clear()
        assert len(store) == 0
        assert storage.get_item(tasks_key(user.distinct_id)) is None

    def test_storage_failure_keeps_memory(self, tmp_path, user):
        tiny = LocalStorage(str(tmp_path / "s.db"), quota_bytes=50)
        store = TaskStore(tiny, user.distinct_id)
        task = store.create({"title": "x" * 100})
        assert store.get(task.id) is task
        assert tiny.get_item(tasks_key(user.distinct_id)) is None

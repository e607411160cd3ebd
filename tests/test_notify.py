"""
Tests for NotificationDispatcher payloads and gating.
"""
from unittest.mock import MagicMock

import pytest

from taskboard.client import BackendError
from taskboard.notify import NotificationDispatcher, WorkflowSlugs
from taskboard.schema import Task, TaskStatus, TaskPriority


@pytest.fixture
def client():
    mock = MagicMock()
    mock.trigger_workflow.return_value = {"success": True, "messageId": "msg-1"}
    return mock


@pytest.fixture
def gate():
    mock = MagicMock()
    mock.allows.return_value = True
    return mock


@pytest.fixture
def dispatcher(client, gate):
    return NotificationDispatcher(client, gate, app_url="https://tasks.example.com/")


@pytest.fixture
def task():
    return Task(
        id="1700000000000-abcd1234",
        title="Ship report",
        description="Q3 numbers",
        priority=TaskPriority.HIGH,
        due_date="2025-02-01",
    )


def _sent(client):
    return client.trigger_workflow.call_args[0]


class TestWorkflowSlugs:

    def test_defaults(self):
        slugs = WorkflowSlugs.from_dict(None)
        assert (slugs.created, slugs.status_changed, slugs.deleted) == (
            "task_created", "task_status_changed", "task_deleted"
        )

    def test_partial_override(self):
        slugs = WorkflowSlugs.from_dict({"created": "new-task", "deleted": ""})
        assert slugs.created == "new-task"
        assert slugs.deleted == "task_deleted"


class TestPayloads:

    def test_task_created(self, dispatcher, client, user, task):
        result = dispatcher.task_created(user, task)
        assert result["messageId"] == "msg-1"

        slug, email, distinct_id, name, data = _sent(client)
        assert slug == "task_created"
        assert (email, distinct_id, name) == ("jane@example.com", "jane@example.com", "Jane")
        assert data["task_title"] == "Ship report"
        assert data["task_priority"] == "high"
        assert data["task_due_date"] == "2025-02-01"
        assert data["task_status"] == "todo"
        assert data["user_name"] == "Jane"
        assert data["task_url"] == "https://tasks.example.com/tasks/1700000000000-abcd1234"
        assert data["unsubscribe_url"] == "https://tasks.example.com/preferences?user=jane%40example.com"
        assert data["timestamp"].endswith("Z")

    def test_task_status_changed(self, dispatcher, client, user, task):
        dispatcher.task_status_changed(
            user, task.title, TaskStatus.TODO, TaskStatus.COMPLETED, task.id
        )
        slug, _, _, _, data = _sent(client)
        assert slug == "task_status_changed"
        assert data["old_status"] == "todo"
        assert data["new_status"] == "completed"
        assert data["task_id"] == task.id

    def test_task_deleted(self, dispatcher, client, user, task):
        dispatcher.task_deleted(user, task)
        slug, _, _, _, data = _sent(client)
        assert slug == "task_deleted"
        assert data["task_description"] == "Q3 numbers"

    def test_custom_slugs(self, client, gate, user, task):
        dispatcher = NotificationDispatcher(client, gate, WorkflowSlugs(created="created-v2"))
        dispatcher.task_created(user, task)
        assert _sent(client)[0] == "created-v2"


class TestGating:

    def test_opted_out_skips_network(self, dispatcher, client, gate, user, task):
        gate.allows.return_value = False
        assert dispatcher.task_created(user, task) is None
        assert dispatcher.task_deleted(user, task) is None
        client.trigger_workflow.assert_not_called()
        gate.allows.assert_called_with(user)

    def test_backend_error_propagates(self, dispatcher, client, user, task):
        client.trigger_workflow.side_effect = BackendError("Failed to trigger workflow", status=502)
        with pytest.raises(BackendError):
            dispatcher.task_created(user, task)

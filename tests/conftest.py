"""Shared test fixtures for taskboard tests."""

from unittest.mock import MagicMock

import pytest

from taskboard.board import BoardController
from taskboard.schema import UserSession
from taskboard.storage import LocalStorage
from taskboard.store import TaskStore


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage.db"))


@pytest.fixture
def user():
    return UserSession(distinct_id="jane@example.com", email="jane@example.com", name="Jane")


@pytest.fixture
def store(storage, user):
    return TaskStore(storage, user.distinct_id)


@pytest.fixture
def dispatcher():
    """Dispatcher double: records calls, returns a trigger result."""
    mock = MagicMock()
    mock.task_created.return_value = {"success": True}
    mock.task_status_changed.return_value = {"success": True}
    mock.task_deleted.return_value = {"success": True}
    return mock


@pytest.fixture
def board(store, dispatcher, user):
    return BoardController(store, dispatcher, user)


def _fake_response(status=200, body=None, text=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    if text is None:
        text = "" if body is None else "x"
    resp.text = text
    resp.content = text.encode()
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def fake_response():
    """Factory for minimal requests.Response stand-ins."""
    return _fake_response


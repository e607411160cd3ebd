"""
Per-user task store.

Holds the signed-in user's tasks in memory and mirrors the whole collection
to LocalStorage under `tasks_<distinctId>` after every mutation. The
in-memory list is authoritative for the session: load and save failures are
logged, never raised.
"""
import json
import logging
from typing import List, Optional, Dict, Any

from .schema import Task, TaskStatus, TaskPriority, make_task_id
from .storage import LocalStorage, StorageError
from .validation import sanitize_title, sanitize_description

logger = logging.getLogger(__name__)

# Fields a caller may merge into an existing task
_UPDATABLE = ("title", "description", "priority", "due_date", "status")


def tasks_key(user_id: str) -> str:
    """Storage key for a user's task collection."""
    return f"tasks_{user_id}"


class TaskStore:
    """Ordered task collection for one user."""

    def __init__(self, storage: LocalStorage, user_id: str):
        self.storage = storage
        self.user_id = user_id
        self._tasks: List[Task] = self.load()

    @property
    def key(self) -> str:
        return tasks_key(self.user_id)

    def load(self) -> List[Task]:
        """Read the stored collection. Missing or malformed data yields []."""
        try:
            raw = self.storage.get_item(self.key)
        except StorageError as e:
            logger.warning(f"Cannot load tasks for {self.user_id}: {e}")
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding malformed task data for {self.user_id}")
            return []
        if not isinstance(data, list):
            return []

        tasks = []
        seen = set()
        for entry in data:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            try:
                task = Task.from_dict(entry)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping unreadable task entry for {self.user_id}: {e}")
                continue
            if task.id in seen:
                continue
            seen.add(task.id)
            tasks.append(task)
        return tasks

    def _persist(self) -> None:
        """Re-serialize the full collection. Failures leave memory as the source of truth."""
        payload = json.dumps([t.to_dict() for t in self._tasks])
        try:
            self.storage.set_item(self.key, payload)
        except StorageError as e:
            logger.warning(f"Failed to persist tasks for {self.user_id}: {e}")

    # ── Queries ──────────────────────────────────────────────────────────

    def all(self) -> List[Task]:
        """Snapshot of the collection in insertion order."""
        return list(self._tasks)

    def get(self, task_id: str) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def __len__(self) -> int:
        return len(self._tasks)

    # ── Mutations ────────────────────────────────────────────────────────

    def create(self, fields: Dict[str, Any]) -> Task:
        """Append a new task. Status is always forced to todo."""
        task_id = make_task_id()
        while self.get(task_id) is not None:
            task_id = make_task_id()

        priority = fields.get("priority")
        task = Task(
            id=task_id,
            title=sanitize_title(fields.get("title")),
            description=sanitize_description(fields.get("description")),
            priority=priority if isinstance(priority, TaskPriority) else TaskPriority.from_str(priority),
            due_date=fields.get("due_date") or "",
            status=TaskStatus.TODO,
        )
        self._tasks.append(task)
        self._persist()
        logger.info(f"Created task {task.id} for {self.user_id}")
        return task

    def update(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        """Merge fields into an existing task. Status changes only when supplied."""
        task = self.get(task_id)
        if task is None:
            logger.warning(f"Update ignored: task {task_id} not found")
            return None

        for name in _UPDATABLE:
            if name not in fields or fields[name] is None:
                continue
            value = fields[name]
            if name == "title":
                value = sanitize_title(value) or task.title
            elif name == "description":
                value = sanitize_description(value)
            elif name == "priority" and not isinstance(value, TaskPriority):
                value = TaskPriority.from_str(value)
            elif name == "status" and not isinstance(value, TaskStatus):
                value = TaskStatus.from_str(value)
            setattr(task, name, value)

        self._persist()
        return task

    def change_status(self, task_id: str, new_status: TaskStatus) -> Optional[TaskStatus]:
        """
        Move a task to another column.

        Returns:
            The previous status, or None when nothing changed (unknown id,
            or the task already has new_status).
        """
        task = self.get(task_id)
        if task is None:
            logger.warning(f"Status change ignored: task {task_id} not found")
            return None
        if task.status == new_status:
            return None

        old_status = task.status
        task.status = new_status
        self._persist()
        logger.info(f"Task {task_id}: {old_status.value} → {new_status.value}")
        return old_status

    def delete(self, task_id: str) -> Optional[Task]:
        """Remove a task. Returns the removed task, or None if absent."""
        task = self.get(task_id)
        if task is None:
            return None
        self._tasks = [t for t in self._tasks if t.id != task_id]
        self._persist()
        logger.info(f"Deleted task {task_id} for {self.user_id}")
        return task

    def clear(self) -> None:
        """Drop the whole collection and its storage slot."""
        self._tasks = []
        try:
            self.storage.remove_item(self.key)
        except StorageError as e:
            logger.warning(f"Failed to clear tasks for {self.user_id}: {e}")

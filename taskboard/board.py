"""
Board controller: column projection and drag-and-drop transitions.

Drag sequence:
  idle → drag_start(card) → dragging → drag_over(column)* → drop(column) → idle
                                     ↘ drag_end() → idle (no mutation)

Local mutation always happens first and is never rolled back; the
notification that follows is best-effort and failures surface as warnings.
"""
import logging
from enum import Enum
from typing import Callable, Dict, List, Iterable, Optional, Any

from .notify import NotificationDispatcher
from .schema import Task, TaskStatus, UserSession, COLUMNS
from .store import TaskStore
from .validation import clean_task_fields

logger = logging.getLogger(__name__)

NOTIFY_FAILED = "Update saved but notification failed"


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


def tasks_by_column(tasks: Iterable[Task]) -> Dict[TaskStatus, List[Task]]:
    """Partition tasks into the fixed columns, preserving order."""
    columns: Dict[TaskStatus, List[Task]] = {status: [] for status, _ in COLUMNS}
    for task in tasks:
        status = task.status if task.status in columns else TaskStatus.TODO
        columns[status].append(task)
    return columns


class BoardController:
    """Mediates board actions between the TaskStore and the dispatcher."""

    def __init__(self, store: TaskStore, dispatcher: NotificationDispatcher, user: UserSession):
        self.store = store
        self.dispatcher = dispatcher
        self.user = user
        self.state = DragState.IDLE
        self.dragged_task: Optional[Task] = None
        self.warnings: List[str] = []
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type ("warning", "task_moved", ...)."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    def _warn(self, message: str, error: Exception) -> None:
        logger.warning(f"{message}: {error}")
        self.warnings.append(message)
        self._emit("warning", message=message, error=error)

    def _notify(self, send: Callable[..., Any], *args) -> None:
        try:
            send(self.user, *args)
        except Exception as e:
            self._warn(NOTIFY_FAILED, e)

    # ── Queries ──────────────────────────────────────────────────────────

    def tasks_by_column(self) -> Dict[TaskStatus, List[Task]]:
        return tasks_by_column(self.store.all())

    # ── Drag and drop ────────────────────────────────────────────────────

    def drag_start(self, task_id: str) -> bool:
        """Pick up a card. Returns False if the task doesn't exist."""
        task = self.store.get(task_id)
        if task is None:
            return False
        self.dragged_task = task
        self.state = DragState.DRAGGING
        return True

    def drag_over(self, column: TaskStatus) -> bool:
        """Every column accepts drops."""
        return True

    def drag_end(self) -> None:
        """Drag finished (with or without a drop)."""
        self.dragged_task = None
        self.state = DragState.IDLE

    def drop(self, column: TaskStatus) -> Optional[TaskStatus]:
        """
        Drop the dragged card on a column.

        Returns:
            The previous status if the task moved, else None (no drag in
            progress, task gone, or dropped on its own column).
        """
        task = self.dragged_task
        self.drag_end()
        if task is None:
            return None

        old_status = self.store.change_status(task.id, column)
        if old_status is None:
            return None

        self._emit("task_moved", task_id=task.id, old_status=old_status, new_status=column)
        self._notify(self.dispatcher.task_status_changed, task.title, old_status, column, task.id)
        return old_status

    def move(self, task_id: str, column: TaskStatus) -> Optional[TaskStatus]:
        """Full drag sequence in one call."""
        if not self.drag_start(task_id):
            return None
        self.drag_over(column)
        return self.drop(column)

    # ── Task form actions ────────────────────────────────────────────────

    def create_task(self, fields: Dict[str, Any]) -> Task:
        """Validate, create (status forced to todo), then notify."""
        cleaned = clean_task_fields(fields)
        cleaned.pop("status", None)
        task = self.store.create(cleaned)
        self._emit("task_created", task=task)
        self._notify(self.dispatcher.task_created, task)
        return task

    def edit_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        """Validate and merge edits. Edits don't notify."""
        cleaned = clean_task_fields(fields, partial=True)
        return self.store.update(task_id, cleaned)

    def delete_task(self, task_id: str) -> Optional[Task]:
        """Delete, then notify with the removed task's details."""
        task = self.store.delete(task_id)
        if task is None:
            return None
        self._emit("task_deleted", task=task)
        self._notify(self.dispatcher.task_deleted, task)
        return task

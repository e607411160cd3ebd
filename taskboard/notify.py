"""
Notification dispatcher: task lifecycle events → workflow triggers.

Each event type maps to one named workflow. The acting user is passed in
explicitly on every call. Before any network call the PreferenceGate is
consulted; an opted-out user gets a silent skip (None), not an error.

Callers own failure handling: a BackendError propagates so the board can
turn it into a soft warning without touching the already-saved task.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any
from urllib.parse import quote

from .client import BackendClient
from .preferences import PreferenceGate
from .schema import Task, TaskStatus, UserSession, utc_now

logger = logging.getLogger(__name__)


@dataclass
class WorkflowSlugs:
    """Workflow identifiers per event type."""
    created: str = "task_created"
    status_changed: str = "task_status_changed"
    deleted: str = "task_deleted"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WorkflowSlugs":
        data = data or {}
        defaults = cls()
        return cls(
            created=data.get("created") or defaults.created,
            status_changed=data.get("status_changed") or defaults.status_changed,
            deleted=data.get("deleted") or defaults.deleted,
        )


def _task_fields(task: Task) -> Dict[str, Any]:
    return {
        "task_title": task.title,
        "task_id": task.id,
        "task_priority": task.priority.value,
        "task_description": task.description or "",
        "task_due_date": task.due_date or "",
        "task_status": task.status.value,
    }


class NotificationDispatcher:
    """Builds event payloads and posts them to the workflow trigger endpoint."""

    def __init__(
        self,
        client: BackendClient,
        gate: PreferenceGate,
        slugs: Optional[WorkflowSlugs] = None,
        app_url: str = "http://localhost:3000",
    ):
        self.client = client
        self.gate = gate
        self.slugs = slugs or WorkflowSlugs()
        self.app_url = app_url.rstrip("/")

    def task_url(self, task_id: str) -> str:
        return f"{self.app_url}/tasks/{quote(task_id, safe='')}"

    def unsubscribe_url(self, user: UserSession) -> str:
        return f"{self.app_url}/preferences?user={quote(user.distinct_id, safe='')}"

    def _enrich(self, user: UserSession, task_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        data.update({
            "user_name": user.name,
            "user_email": user.email,
            "task_url": self.task_url(task_id),
            "unsubscribe_url": self.unsubscribe_url(user),
            "timestamp": utc_now(),
        })
        return data

    def _dispatch(self, slug: str, user: UserSession, event_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.gate.allows(user):
            logger.debug(f"Skipping {slug} for {user.distinct_id}: opted out")
            return None
        result = self.client.trigger_workflow(
            slug, user.email, user.distinct_id, user.name, event_data
        )
        logger.info(f"Triggered {slug} for {user.distinct_id}: {result.get('messageId', '')}")
        return result

    def task_created(self, user: UserSession, task: Task) -> Optional[Dict[str, Any]]:
        data = self._enrich(user, task.id, _task_fields(task))
        return self._dispatch(self.slugs.created, user, data)

    def task_status_changed(
        self,
        user: UserSession,
        task_title: str,
        old_status: TaskStatus,
        new_status: TaskStatus,
        task_id: str,
    ) -> Optional[Dict[str, Any]]:
        data = self._enrich(user, task_id, {
            "task_title": task_title,
            "old_status": old_status.value,
            "new_status": new_status.value,
            "task_id": task_id,
        })
        return self._dispatch(self.slugs.status_changed, user, data)

    def task_deleted(self, user: UserSession, task: Task) -> Optional[Dict[str, Any]]:
        """Notify with the snapshot captured before removal."""
        data = self._enrich(user, task.id, _task_fields(task))
        return self._dispatch(self.slugs.deleted, user, data)

"""
Task schema and board columns.

Task lifecycle:
  To Do → In Progress → In Review → Completed

Cards move freely between columns; status is the only field that decides
where a card is rendered.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
import time
import uuid


class TaskStatus(Enum):
    """Board columns a task can sit in."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    COMPLETED = "completed"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "TaskStatus":
        try:
            return cls(str(value))
        except ValueError:
            return cls.TODO


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "TaskPriority":
        try:
            return cls(str(value or "").lower())
        except ValueError:
            return cls.MEDIUM


# Ordered board columns: (status, header)
COLUMNS: Tuple[Tuple[TaskStatus, str], ...] = (
    (TaskStatus.TODO, "To Do"),
    (TaskStatus.IN_PROGRESS, "In Progress"),
    (TaskStatus.IN_REVIEW, "In Review"),
    (TaskStatus.COMPLETED, "Completed"),
)

MAX_TITLE = 200
MAX_DESCRIPTION = 2000
MAX_NAME = 100
MAX_EMAIL = 255


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_task_id() -> str:
    """Generate a sortable unique task ID (ms-precision timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"{ts}-{rand}"


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass
class Task:
    """A single card on the board."""

    id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: str = ""             # ISO calendar date or ""
    status: TaskStatus = TaskStatus.TODO
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the stored JSON shape (camelCase keys)."""
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "dueDate": self.due_date,
            "status": self.status.value,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from the stored shape. Unknown keys are carried along."""
        known = {"id", "title", "description", "priority", "dueDate", "status"}
        return cls(
            id=str(data["id"]),
            title=_text(data.get("title")) or "Untitled Task",
            description=_text(data.get("description")),
            priority=TaskPriority.from_str(data.get("priority")),
            due_date=_text(data.get("dueDate")),
            status=TaskStatus.from_str(data.get("status")),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class UserSession:
    """The signed-in user. `distinct_id` keys both storage and notifications."""

    distinct_id: str
    email: str
    name: str = "User"

    def to_dict(self) -> Dict[str, Any]:
        return {"distinctId": self.distinct_id, "email": self.email, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSession":
        distinct_id = data["distinctId"]
        return cls(
            distinct_id=distinct_id,
            email=data.get("email") or distinct_id,
            name=data.get("name") or "User",
        )

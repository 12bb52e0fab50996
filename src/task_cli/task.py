"""Task data model for the Task CLI application."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import PersistenceError, ValidationError
from .utils.datetime import ensure_aware, now_utc, parse_iso, to_iso_string


class TaskStatus(Enum):
    """Task status states."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def parse(cls, token: Union["TaskStatus", str]) -> "TaskStatus":
        """Resolve a user-supplied status token.

        Accepts the stored value (``in-progress``) plus the underscore and
        run-together spellings, case-insensitively.

        Raises:
            ValidationError: If the token names no status
        """
        if isinstance(token, cls):
            return token
        if not isinstance(token, str):
            raise ValidationError(f"unrecognized status {token!r}")

        normalized = token.strip().lower().replace("_", "-")
        if normalized == "inprogress":
            normalized = cls.IN_PROGRESS.value
        try:
            return cls(normalized)
        except ValueError:
            choices = ", ".join(status.value for status in cls)
            raise ValidationError(
                f"unrecognized status {token!r} (expected one of: {choices})"
            ) from None


@dataclass
class Task:
    """A single task.

    ``id`` is the 1-based position of the task in its store and changes
    when an earlier task is deleted. ``created_at`` is fixed at creation;
    ``updated_at`` is refreshed by every store mutation.
    """

    id: int
    description: str
    status: TaskStatus = TaskStatus.TODO
    created_at: datetime = field(default_factory=now_utc)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_aware(self.created_at)
        # A fresh task carries the same stamp in both fields
        self.updated_at = ensure_aware(self.updated_at) or self.created_at

    @classmethod
    def create(cls, task_id: int, description: str) -> "Task":
        """Build a new ``todo`` task stamped with the current UTC time."""
        stamp = now_utc()
        return cls(
            id=task_id,
            description=description,
            status=TaskStatus.TODO,
            created_at=stamp,
            updated_at=stamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the Task to a dictionary with ISO timestamp strings."""
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "created_at": to_iso_string(self.created_at),
            "updated_at": to_iso_string(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create a Task from its stored dictionary form.

        Raises:
            PersistenceError: If a field is missing or cannot be decoded
        """
        if not isinstance(data, dict):
            raise PersistenceError(f"task entry must be a mapping, got {type(data).__name__}")

        missing = [key for key in ("id", "description", "status", "created_at", "updated_at")
                   if key not in data]
        if missing:
            raise PersistenceError(f"task entry is missing field(s): {', '.join(missing)}")

        task_id = data["id"]
        # bool is an int subclass; reject it explicitly
        if not isinstance(task_id, int) or isinstance(task_id, bool) or task_id < 1:
            raise PersistenceError(f"task id must be a positive integer, got {task_id!r}")

        description = data["description"]
        if not isinstance(description, str) or not description.strip():
            raise PersistenceError(f"task {task_id} has an empty or non-text description")

        try:
            status = TaskStatus(data["status"])
        except ValueError:
            raise PersistenceError(
                f"task {task_id} has unknown status {data['status']!r}"
            ) from None

        return cls(
            id=task_id,
            description=description,
            status=status,
            created_at=_decode_timestamp(data["created_at"], task_id, "created_at"),
            updated_at=_decode_timestamp(data["updated_at"], task_id, "updated_at"),
        )


def _decode_timestamp(value: Any, task_id: int, field_name: str) -> datetime:
    # PyYAML turns unquoted timestamps into datetime objects
    if isinstance(value, datetime):
        return ensure_aware(value)
    try:
        return parse_iso(value)
    except ValueError as e:
        raise PersistenceError(f"task {task_id} has invalid {field_name} {value!r}: {e}") from e

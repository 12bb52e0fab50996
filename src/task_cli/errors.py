"""Exception hierarchy for Task CLI.

The core raises these; only the command layer catches them and turns them
into messages and exit codes.
"""

from pathlib import Path
from typing import Optional, Union


class TaskError(Exception):
    """Base exception for all Task CLI errors."""
    pass


class ValidationError(TaskError):
    """Malformed input supplied by the caller (empty description, bad status)."""
    pass


class InvalidIdError(TaskError):
    """Task id is absent, non-numeric, or outside ``1..=count``."""

    def __init__(self, task_id: object, count: int, message: Optional[str] = None):
        self.task_id = task_id
        self.count = count
        if message is None:
            if count == 0:
                message = f"invalid task id {task_id!r}: there are no tasks"
            else:
                message = f"invalid task id {task_id!r}: expected a number from 1 to {count}"
        super().__init__(message)


class PersistenceError(TaskError):
    """Task file could not be read, written, or decoded."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        super().__init__(message)

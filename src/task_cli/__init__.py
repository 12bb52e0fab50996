"""Task CLI - A small command-line task tracker."""

__version__ = "0.1.0"

from .errors import TaskError, ValidationError, InvalidIdError, PersistenceError
from .task import Task, TaskStatus
from .storage import TaskStore, FileBackend, MemoryBackend, renumber_sequential

__all__ = [
    "Task",
    "TaskStatus",
    "TaskStore",
    "FileBackend",
    "MemoryBackend",
    "renumber_sequential",
    "TaskError",
    "ValidationError",
    "InvalidIdError",
    "PersistenceError",
    "__version__",
]

"""Storage layer for Task CLI using a markdown file with YAML frontmatter.

The frontmatter ``tasks`` list is the authoritative record of the store.
The markdown body is a readable checklist regenerated on every save and
ignored when loading.
"""

import logging
import os
import re
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

import frontmatter
import yaml

from .errors import InvalidIdError, PersistenceError, ValidationError
from .task import Task, TaskStatus
from .utils.datetime import now_utc

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
_ONE_TICK = timedelta(microseconds=1)
ID_RE = re.compile(r"\d+", re.ASCII)

Renumberer = Callable[[List[Task]], bool]


def renumber_sequential(tasks: List[Task]) -> bool:
    """Reassign ids so the task at position ``i`` has id ``i + 1``.

    This is the only routine that rewrites task ids.

    Returns:
        True if any id changed
    """
    changed = False
    for position, task in enumerate(tasks, start=1):
        if task.id != position:
            task.id = position
            changed = True
    return changed


class TaskFileFormat:
    """Handles conversion between Task objects and the task file format."""

    CHECKBOXES = {
        TaskStatus.TODO: "- [ ]",
        TaskStatus.IN_PROGRESS: "- [/]",
        TaskStatus.DONE: "- [x]",
    }

    @staticmethod
    def task_line(task: Task) -> str:
        """Render one task as a markdown checklist line."""
        checkbox = TaskFileFormat.CHECKBOXES.get(task.status, "- [ ]")
        # Body lines are display only; fold multi-line descriptions
        text = " ".join(task.description.split())
        return f"{checkbox} {text} <!-- id:{task.id} -->"

    @staticmethod
    def to_markdown(tasks: List[Task]) -> str:
        """Convert tasks to a markdown document with YAML frontmatter."""
        content_lines = ["# Tasks", ""]
        if tasks:
            content_lines.extend(TaskFileFormat.task_line(task) for task in tasks)
        else:
            content_lines.append("_No tasks._")

        post = frontmatter.Post(
            "\n".join(content_lines),
            version=FORMAT_VERSION,
            tasks=[task.to_dict() for task in tasks],
        )
        return frontmatter.dumps(post, sort_keys=False) + "\n"

    @staticmethod
    def from_markdown(content: str) -> List[Task]:
        """Parse a task document back into Task objects.

        Blank content, an empty frontmatter block, or frontmatter without a
        ``tasks`` entry decodes to an empty list.

        Raises:
            PersistenceError: If the document has no frontmatter, the
                frontmatter is unterminated or not a mapping, or a task
                entry cannot be decoded
        """
        text = content.strip()
        if not text:
            return []

        handler = frontmatter.YAMLHandler()
        if not handler.detect(text):
            raise PersistenceError("could not decode task file: no frontmatter block found")

        try:
            fm, _ = handler.split(text)
        except ValueError:
            raise PersistenceError(
                "could not decode task file: frontmatter block is not terminated"
            ) from None

        try:
            metadata = yaml.safe_load(fm)
        except yaml.YAMLError as e:
            raise PersistenceError(f"could not decode task file: {e}") from e

        if metadata is None:
            return []
        if not isinstance(metadata, dict):
            raise PersistenceError(
                f"could not decode task file: frontmatter must be a mapping, got {type(metadata).__name__}"
            )

        version = metadata.get("version", FORMAT_VERSION)
        if not isinstance(version, int) or version > FORMAT_VERSION:
            raise PersistenceError(f"unsupported task file version {version!r}")

        raw_tasks = metadata.get("tasks")
        if raw_tasks is None:
            return []
        if not isinstance(raw_tasks, list):
            raise PersistenceError(
                f"could not decode task file: 'tasks' must be a list, got {type(raw_tasks).__name__}"
            )

        return [Task.from_dict(raw) for raw in raw_tasks]


class MemoryBackend:
    """Keeps the encoded store in memory. Used by tests and dry runs."""

    def __init__(self, content: Optional[str] = None):
        self.content = content
        self.writes = 0

    def __repr__(self) -> str:
        return f"MemoryBackend(writes={self.writes})"

    def read(self) -> Optional[str]:
        return self.content

    def write(self, content: str) -> None:
        self.content = content
        self.writes += 1


class FileBackend:
    """Reads and writes the encoded store at a single file path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def __repr__(self) -> str:
        return f"FileBackend({str(self.path)!r})"

    def read(self) -> Optional[str]:
        """Return the file content, or None if the file does not exist."""
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"could not read {self.path}: {e}", self.path) from e

    def write(self, content: str) -> None:
        """Replace the file atomically: write a sibling temp file, then rename it."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(f"Could not remove temp file {tmp_path}: {cleanup_error}")
            raise PersistenceError(f"could not write {self.path}: {e}", self.path) from e


class TaskView:
    """Lazy, restartable, read-only listing of a store.

    Each iteration re-reads the store, so a view created before a
    mutation reflects the store as it is when iterated.
    """

    def __init__(self, store: "TaskStore", status: Optional[TaskStatus] = None):
        self._store = store
        self.status = status

    def __iter__(self) -> Iterator[Task]:
        for task in list(self._store._tasks):
            if self.status is None or task.status == self.status:
                yield replace(task)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)

    def __repr__(self) -> str:
        label = self.status.value if self.status else "all"
        return f"TaskView(status={label!r})"


class TaskStore:
    """Ordered task collection backed by a single persisted document.

    One command is expected to do one ``load()``, at most one mutation and
    one ``save()``. Mutations never persist on their own.
    """

    def __init__(self, backend=None, renumber: Renumberer = renumber_sequential):
        self.backend = backend if backend is not None else MemoryBackend()
        self._renumber = renumber
        self._tasks: List[Task] = []

    @classmethod
    def open(cls, path: Union[str, Path], renumber: Renumberer = renumber_sequential) -> "TaskStore":
        """Create a file-backed store and load it."""
        store = cls(FileBackend(path), renumber=renumber)
        store.load()
        return store

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.list())

    def __repr__(self) -> str:
        return f"TaskStore({self.backend!r}, tasks={len(self._tasks)})"

    @property
    def count(self) -> int:
        return len(self._tasks)

    # Persistence

    def load(self) -> List[Task]:
        """Replace the in-memory tasks with the persisted ones.

        A missing or blank document loads as an empty store.

        Raises:
            PersistenceError: If the document cannot be read or decoded
        """
        content = self.backend.read()
        if content is None:
            logger.debug(f"No task file at {self.backend!r}; starting empty")
            self._tasks = []
            return self.tasks

        tasks = TaskFileFormat.from_markdown(content)
        if self._renumber(tasks):
            logger.warning("Task ids were out of sequence and have been renumbered")
        self._tasks = tasks
        logger.debug(f"Loaded {len(tasks)} task(s) from {self.backend!r}")
        return self.tasks

    def save(self) -> None:
        """Write the whole store, replacing what was persisted before.

        Raises:
            PersistenceError: If the document cannot be written
        """
        content = TaskFileFormat.to_markdown(self._tasks)
        self.backend.write(content)
        logger.debug(f"Saved {len(self._tasks)} task(s) to {self.backend!r}")

    @property
    def tasks(self) -> List[Task]:
        """Copies of the tasks in store order."""
        return [replace(task) for task in self._tasks]

    # Mutation

    def add(self, description: str) -> int:
        """Append a new ``todo`` task and return its id.

        Raises:
            ValidationError: If the description is empty
        """
        text = _clean_description(description)
        task = Task.create(len(self._tasks) + 1, text)
        self._tasks.append(task)
        logger.debug(f"Added task {task.id}")
        return task.id

    def get(self, task_id: Union[int, str]) -> Task:
        """Return a copy of the task with the given id.

        Raises:
            InvalidIdError: If the id does not resolve to a task
        """
        return replace(self._tasks[self._resolve_index(task_id)])

    def set_description(self, task_id: Union[int, str], description: str) -> Task:
        """Replace a task's description.

        Raises:
            InvalidIdError: If the id does not resolve to a task
            ValidationError: If the description is empty
        """
        index = self._resolve_index(task_id)
        text = _clean_description(description)
        task = self._tasks[index]
        task.description = text
        _touch(task)
        logger.debug(f"Updated description of task {task.id}")
        return replace(task)

    def set_status(self, task_id: Union[int, str], status: Union[TaskStatus, str]) -> Task:
        """Set a task's status. Any status may follow any other.

        Raises:
            InvalidIdError: If the id does not resolve to a task
            ValidationError: If the status token is not recognized
        """
        index = self._resolve_index(task_id)
        new_status = TaskStatus.parse(status)
        task = self._tasks[index]
        task.status = new_status
        _touch(task)
        logger.debug(f"Set status of task {task.id} to {new_status.value}")
        return replace(task)

    def delete_by_id(self, task_id: Union[int, str]) -> Task:
        """Remove a task and renumber the ones after it.

        Returns:
            The removed task, carrying the id it had before removal

        Raises:
            InvalidIdError: If the id does not resolve to a task
        """
        index = self._resolve_index(task_id)
        removed = self._tasks.pop(index)
        self._renumber(self._tasks)
        logger.debug(f"Deleted task {removed.id}; {len(self._tasks)} remaining")
        return removed

    # Queries

    def list(self, status: Union[TaskStatus, str, None] = "") -> TaskView:
        """Return a lazy view of tasks, optionally narrowed to one status.

        An empty string or None means no filter.

        Raises:
            ValidationError: If the status token is not recognized
        """
        if status is None or (isinstance(status, str) and not status.strip()):
            return TaskView(self)
        return TaskView(self, TaskStatus.parse(status))

    def _resolve_index(self, task_id: Union[int, str]) -> int:
        count = len(self._tasks)
        if isinstance(task_id, bool):
            raise InvalidIdError(task_id, count)
        if isinstance(task_id, str):
            text = task_id.strip()
            if not ID_RE.fullmatch(text):
                raise InvalidIdError(task_id, count, f"invalid task id {task_id!r}: not a number")
            number = int(text)
        elif isinstance(task_id, int):
            number = task_id
        else:
            raise InvalidIdError(task_id, count)

        if not 1 <= number <= count:
            raise InvalidIdError(task_id, count)
        return number - 1


def _clean_description(description: str) -> str:
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("description can't be empty")
    return description.strip()


def _touch(task: Task) -> None:
    # updated_at never moves backwards and always passes created_at
    stamp = now_utc()
    if stamp <= task.updated_at:
        stamp = task.updated_at + _ONE_TICK
    task.updated_at = stamp

"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from task_cli.config import reset_config  # noqa: E402
from task_cli.storage import MemoryBackend, TaskStore  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test starts without a cached configuration."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def memory_store():
    """An empty store that never touches the filesystem."""
    return TaskStore(MemoryBackend())


@pytest.fixture
def abc_store(memory_store):
    """Store holding tasks A, B and C with ids 1-3."""
    for description in ("A", "B", "C"):
        memory_store.add(description)
    return memory_store


@pytest.fixture
def tasks_path(tmp_path):
    """Path of a task file that does not exist yet."""
    return tmp_path / ".tasks.md"

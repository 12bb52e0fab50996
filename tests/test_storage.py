"""Tests for task file encoding, backends and load/save."""

import logging
import os

import frontmatter
import pytest
import yaml

from task_cli.errors import PersistenceError
from task_cli.storage import (
    FileBackend,
    MemoryBackend,
    TaskFileFormat,
    TaskStore,
)
from task_cli.task import Task, TaskStatus


def build_store(backend, descriptions=("A", "B", "C")):
    store = TaskStore(backend)
    for description in descriptions:
        store.add(description)
    return store


class TestTaskFileFormat:
    """Tests for the markdown + frontmatter document."""

    def test_frontmatter_holds_every_field(self):
        task = Task.create(1, "Buy milk")
        post = frontmatter.loads(TaskFileFormat.to_markdown([task]))

        assert post.metadata["version"] == 1
        assert post.metadata["tasks"] == [task.to_dict()]

    def test_body_is_a_checklist(self):
        tasks = [Task.create(1, "Buy milk"), Task.create(2, "Walk dog"), Task.create(3, "Pay rent")]
        tasks[1].status = TaskStatus.IN_PROGRESS
        tasks[2].status = TaskStatus.DONE

        body = frontmatter.loads(TaskFileFormat.to_markdown(tasks)).content

        assert "- [ ] Buy milk <!-- id:1 -->" in body
        assert "- [/] Walk dog <!-- id:2 -->" in body
        assert "- [x] Pay rent <!-- id:3 -->" in body

    def test_body_is_ignored_when_loading(self):
        content = TaskFileFormat.to_markdown([Task.create(1, "Buy milk")])
        content = content.replace("- [ ] Buy milk", "- [x] Something else entirely")

        tasks = TaskFileFormat.from_markdown(content)

        assert [(t.description, t.status) for t in tasks] == [("Buy milk", TaskStatus.TODO)]

    def test_multiline_description_round_trips(self):
        task = Task.create(1, "first line\nsecond line")
        content = TaskFileFormat.to_markdown([task])

        assert "- [ ] first line second line <!-- id:1 -->" in content
        assert TaskFileFormat.from_markdown(content) == [task]

    def test_awkward_descriptions_round_trip(self):
        tasks = [
            Task.create(1, "---"),
            Task.create(2, "tasks: []"),
            Task.create(3, "<!-- id:9 --> [x] 'quoted' \"double\" #hash: colon"),
            Task.create(4, "2024-01-01T00:00:00Z"),
            Task.create(5, "ünïcödé ✅"),
        ]
        assert TaskFileFormat.from_markdown(TaskFileFormat.to_markdown(tasks)) == tasks

    @pytest.mark.parametrize("content", [
        "",
        "   \n\n",
        "---\nversion: 1\n---\n",
        "---\ntasks:\n---\n",
    ])
    def test_no_parseable_content_is_empty(self, content):
        assert TaskFileFormat.from_markdown(content) == []

    @pytest.mark.parametrize("content", [
        "---\ntasks: [unclosed\n---\n",
        "---\ntasks: 5\n---\n",
        "---\ntasks:\n- just a string\n---\n",
        "---\ntasks:\n- id: 1\n  description: x\n---\n",
        "---\nversion: 99\ntasks: []\n---\n",
        "# Just a heading\n\n- [ ] not frontmatter\n",
        "---\n- 1\n- 2\n---\n",
        "---\njust a scalar\n---\n",
        "---\nversion: 1\ntasks:\n- id: 1\n",
    ])
    def test_malformed_content_raises(self, content):
        with pytest.raises(PersistenceError):
            TaskFileFormat.from_markdown(content)

    def test_decode_error_is_chained(self):
        with pytest.raises(PersistenceError) as exc_info:
            TaskFileFormat.from_markdown("---\ntasks: [unclosed\n---\n")

        assert isinstance(exc_info.value.__cause__, yaml.YAMLError)
        assert "could not decode" in str(exc_info.value)

    def test_truncated_document_raises(self):
        """A store cut off before its closing delimiter is not read as empty."""
        content = TaskFileFormat.to_markdown([Task.create(1, "Keep me"), Task.create(2, "Me too")])
        truncated = content[:content.index("\n---", 3)]

        with pytest.raises(PersistenceError, match="not terminated"):
            TaskFileFormat.from_markdown(truncated)

    @pytest.mark.parametrize("content", ["---\n- 1\n- 2\n---\n", "---\n42\n---\n"])
    def test_non_mapping_frontmatter_raises(self, content):
        with pytest.raises(PersistenceError, match="must be a mapping"):
            TaskFileFormat.from_markdown(content)

    def test_document_without_frontmatter_raises(self):
        with pytest.raises(PersistenceError, match="no frontmatter"):
            TaskFileFormat.from_markdown("# README\n\nSome notes.\n")


class TestMemoryBackend:
    """The in-memory backend used for tests."""

    def test_round_trip(self):
        backend = MemoryBackend()
        store = build_store(backend)
        store.set_status(2, "in-progress")
        store.save()

        reloaded = TaskStore(backend)
        assert reloaded.load() == store.tasks
        assert backend.writes == 1

    def test_fresh_backend_loads_empty(self):
        store = TaskStore(MemoryBackend())
        assert store.load() == []
        assert list(store.list("")) == []


class TestFileBackend:
    """The file backend and its atomic writes."""

    def test_missing_file_loads_empty(self, tasks_path):
        store = TaskStore.open(tasks_path)

        assert len(store) == 0
        assert list(store.list("")) == []
        assert not tasks_path.exists()

    def test_empty_file_loads_empty(self, tasks_path):
        tasks_path.write_text("")
        assert TaskStore.open(tasks_path).tasks == []

    def test_save_then_load_round_trip(self, tasks_path):
        """save() followed by load() reproduces the same ordered records."""
        store = build_store(FileBackend(tasks_path))
        store.set_status(1, "done")
        store.set_description(3, "Sea")
        store.save()

        reloaded = TaskStore.open(tasks_path)

        assert reloaded.tasks == store.tasks
        assert [t.id for t in reloaded.tasks] == [1, 2, 3]

    def test_save_overwrites_whole_file(self, tasks_path):
        store = build_store(FileBackend(tasks_path))
        store.save()
        store.delete_by_id(1)
        store.delete_by_id(1)
        store.save()

        content = tasks_path.read_text()
        assert "- [ ] C <!-- id:1 -->" in content
        assert "A <!--" not in content
        assert [t.description for t in TaskStore.open(tasks_path).tasks] == ["C"]

    def test_save_leaves_no_temp_file(self, tasks_path):
        build_store(FileBackend(tasks_path)).save()

        assert tasks_path.exists()
        assert sorted(p.name for p in tasks_path.parent.iterdir()) == [tasks_path.name]

    def test_save_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "tasks.md"
        build_store(FileBackend(path)).save()
        assert TaskStore.open(path).count == 3

    def test_failed_replace_keeps_old_content(self, tasks_path, monkeypatch):
        """A write that fails midway leaves the previous file intact."""
        build_store(FileBackend(tasks_path), ["old"]).save()
        original = tasks_path.read_text()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        store = build_store(FileBackend(tasks_path), ["new"])

        with pytest.raises(PersistenceError, match="disk full"):
            store.save()

        assert tasks_path.read_text() == original
        assert not tasks_path.with_name(tasks_path.name + ".tmp").exists()

    def test_temp_file_is_synced_before_replace(self, tasks_path, monkeypatch):
        calls = []
        real_fsync = os.fsync
        real_replace = os.replace

        def recording_fsync(fd):
            calls.append("fsync")
            real_fsync(fd)

        def recording_replace(src, dst):
            calls.append("replace")
            real_replace(src, dst)

        monkeypatch.setattr(os, "fsync", recording_fsync)
        monkeypatch.setattr(os, "replace", recording_replace)
        build_store(FileBackend(tasks_path)).save()

        assert calls == ["fsync", "replace"]
        assert TaskStore.open(tasks_path).count == 3

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        store = build_store(FileBackend(blocker / "tasks.md"))

        with pytest.raises(PersistenceError) as exc_info:
            store.save()

        assert exc_info.value.path == blocker / "tasks.md"

    def test_unreadable_location_raises(self, tmp_path):
        directory = tmp_path / "tasks.md"
        directory.mkdir()

        with pytest.raises(PersistenceError, match="could not read"):
            TaskStore.open(directory)

    def test_malformed_file_raises(self, tasks_path):
        tasks_path.write_text("---\ntasks: {broken: [\n---\n")

        with pytest.raises(PersistenceError):
            TaskStore.open(tasks_path)

    def test_truncated_file_raises(self, tasks_path):
        content = TaskFileFormat.to_markdown([Task.create(1, "Keep me"), Task.create(2, "Me too")])
        tasks_path.write_text(content[:content.index("\n---", 3)])

        with pytest.raises(PersistenceError, match="not terminated"):
            TaskStore.open(tasks_path)

    def test_load_replaces_in_memory_tasks(self, tasks_path):
        store = build_store(FileBackend(tasks_path), ["saved"])
        store.save()
        store.add("unsaved")

        assert [t.description for t in store.load()] == ["saved"]
        assert len(store) == 1


class TestLoadNormalisesIds:
    """Hand-edited files with gaps in their ids."""

    def test_out_of_sequence_ids_are_renumbered(self, tasks_path, caplog):
        tasks = [Task.create(3, "first"), Task.create(7, "second"), Task.create(7, "third")]
        tasks_path.write_text(TaskFileFormat.to_markdown(tasks))

        with caplog.at_level(logging.WARNING, logger="task_cli.storage"):
            store = TaskStore.open(tasks_path)

        assert [(t.id, t.description) for t in store.list()] == [(1, "first"), (2, "second"), (3, "third")]
        assert "renumbered" in caplog.text

    def test_sequential_ids_load_quietly(self, tasks_path, caplog):
        build_store(FileBackend(tasks_path)).save()

        with caplog.at_level(logging.WARNING, logger="task_cli.storage"):
            TaskStore.open(tasks_path)

        assert caplog.text == ""

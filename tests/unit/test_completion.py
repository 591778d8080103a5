"""Tests for file-existence completion detection."""

from pathlib import Path

from agent_epics.core.completion import detect_completed, expected_paths_from_tasks
from tests.unit.fakes import make_task


class TestDetectCompleted:

    def test_partitions_by_path_existence(self, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "spec.md").write_text("# Spec")
        spec = make_task("task-1")
        schema = make_task("task-2")

        report = detect_completed(
            [spec, schema],
            {"task-1": "docs/spec.md", "task-2": "db/schema.sql"},
            tmp_path,
        )

        assert report.completed == [spec]
        assert report.pending == [schema]

    def test_unmapped_tasks_are_pending(self, tmp_path):
        task = make_task("task-1")

        report = detect_completed([task], {}, tmp_path)

        assert report.completed == []
        assert report.pending == [task]

    def test_directories_count_as_existing(self, tmp_path):
        (tmp_path / "src" / "api").mkdir(parents=True)
        task = make_task("task-1")

        report = detect_completed([task], {"task-1": "src/api"}, tmp_path)

        assert report.completed == [task]

    def test_absolute_paths_ignore_root(self, tmp_path):
        artifact = tmp_path / "out.txt"
        artifact.write_text("")
        task = make_task("task-1")

        report = detect_completed([task], {"task-1": str(artifact)}, "/nonexistent-root")

        assert report.completed == [task]

    def test_custom_existence_check(self):
        seen = []
        task = make_task("task-1")

        def exists(path: Path) -> bool:
            seen.append(path)
            return True

        report = detect_completed([task], {"task-1": "a/b.txt"}, "/repo", file_exists=exists)

        assert report.completed == [task]
        assert seen == [Path("/repo/a/b.txt")]

    def test_empty_file_still_counts(self, tmp_path):
        (tmp_path / "empty.md").write_text("")
        task = make_task("task-1")

        report = detect_completed([task], {"task-1": "empty.md"}, tmp_path)

        assert report.completed == [task]


def test_expected_paths_from_tasks():
    with_path = make_task("task-1", expected_path="docs/api.md")
    without = make_task("task-2")

    assert expected_paths_from_tasks([with_path, without]) == {"task-1": "docs/api.md"}

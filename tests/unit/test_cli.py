"""Tests for the agent-epics CLI."""

from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from agent_epics.cli.main import cli
from agent_epics.core.store import EpicStore
from agent_epics.core.task import Epic, SparcPhase, TaskStatus
from agent_epics.errors.exceptions import ExternalCallFailure
from tests.unit.fakes import FakeTracker, make_task

EPIC_ID = "epic-1700000000-abcd1234"


# ── fixtures ──────────────────────────────────────────────────────────────────


def _store(workspace: Path) -> EpicStore:
    return EpicStore(workspace / ".agent-epics" / "epics")


def _save_epic(workspace: Path) -> Epic:
    epic = Epic(
        epic_id=EPIC_ID,
        title="Payments",
        tasks=[
            make_task("task-1", title="Spec", phase=SparcPhase.SPECIFICATION, expected_path="spec.md"),
            make_task("task-2", title="Build", phase=SparcPhase.REFINEMENT, dependencies=["task-1"]),
        ],
    )
    _store(workspace).save(epic)
    return epic


def _write_github_config(workspace: Path) -> None:
    config_dir = workspace / "config"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "github.yaml").write_text(
        "github:\n  token: ghp_test\n  owner: acme\n  repo: app\n  create_project: false\n"
    )


def _invoke(workspace: Path, *args):
    return CliRunner().invoke(cli, ["--workspace", str(workspace), *args])


@pytest.fixture
def fake_tracker():
    tracker = FakeTracker()
    with patch("agent_epics.cli.main.GitHubTracker", return_value=tracker):
        yield tracker


# ── read-only commands ────────────────────────────────────────────────────────


class TestReadOnlyCommands:

    def test_list_empty(self, tmp_path):
        result = _invoke(tmp_path, "list")

        assert result.exit_code == 0
        assert "No epics found" in result.output

    def test_list_and_status(self, tmp_path):
        _save_epic(tmp_path)

        listed = _invoke(tmp_path, "list")
        status = _invoke(tmp_path, "status", EPIC_ID)

        assert listed.exit_code == 0
        assert "planning" in listed.output
        assert status.exit_code == 0
        assert "Progress: 0%" in status.output

    def test_status_unknown_epic(self, tmp_path):
        result = _invoke(tmp_path, "status", "epic-nope")

        assert result.exit_code == 1
        assert "Unknown epic or task" in result.output

    def test_ready_and_next(self, tmp_path):
        _save_epic(tmp_path)

        ready = _invoke(tmp_path, "ready", EPIC_ID)
        nothing = _invoke(tmp_path, "ready", EPIC_ID, "--phase", "refinement")
        next_task = _invoke(tmp_path, "next", EPIC_ID)

        assert "task-1" in ready.output
        assert "task-2" not in ready.output
        assert "No ready tasks" in nothing.output
        assert next_task.output.startswith("task-1")

    def test_detect(self, tmp_path):
        _save_epic(tmp_path)
        (tmp_path / "spec.md").write_text("")

        result = _invoke(tmp_path, "detect", EPIC_ID, "--root", str(tmp_path))

        assert result.exit_code == 0
        assert "1 completed, 1 pending" in result.output

    def test_detect_defaults_to_workspace(self, tmp_path, monkeypatch):
        workspace = tmp_path / "project"
        workspace.mkdir()
        _save_epic(workspace)
        (workspace / "spec.md").write_text("")
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)

        result = _invoke(workspace, "detect", EPIC_ID)

        assert result.exit_code == 0, result.output
        assert "1 completed, 1 pending" in result.output

    def test_match(self, tmp_path):
        result = _invoke(tmp_path, "match", "--skill", "testing", "--skill", "e2e")

        assert result.exit_code == 0
        assert "tester" in result.output
        assert "100" in result.output

    def test_create_dry_run(self, tmp_path):
        plan = tmp_path / "plan.md"
        plan.write_text("# Payments\n\n## Requirements\n- Spec\n\n## Implementation\n- Build (depends on: Spec)\n")

        result = _invoke(tmp_path, "create", str(plan), "--dry-run")

        assert result.exit_code == 0
        assert "Spec" in result.output
        assert "Refinement" in result.output
        assert not _store(tmp_path).list_ids()


# ── commands that touch GitHub ────────────────────────────────────────────────


class TestGitHubCommands:

    def test_transition_requires_github_config(self, tmp_path):
        _save_epic(tmp_path)

        result = _invoke(tmp_path, "transition", EPIC_ID, "task-1", "done")

        assert result.exit_code == 1
        assert "GitHub is not configured" in result.output

    def test_transition_done(self, tmp_path, fake_tracker):
        _save_epic(tmp_path)
        _write_github_config(tmp_path)

        result = _invoke(tmp_path, "transition", EPIC_ID, "task-1", "done")

        assert result.exit_code == 0, result.output
        assert "task-1 is now done" in result.output
        assert _store(tmp_path).load(EPIC_ID).tasks[0].status == TaskStatus.DONE
        assert "set_issue_state" in fake_tracker.call_names

    def test_transition_by_issue_reference(self, tmp_path, fake_tracker):
        _save_epic(tmp_path)
        _write_github_config(tmp_path)

        result = _invoke(tmp_path, "transition", EPIC_ID, "#1", "in_progress")

        assert result.exit_code == 0, result.output
        assert _store(tmp_path).load(EPIC_ID).tasks[0].status == TaskStatus.IN_PROGRESS

    def test_transition_reports_dependency_block(self, tmp_path, fake_tracker):
        _save_epic(tmp_path)
        _write_github_config(tmp_path)

        result = _invoke(tmp_path, "transition", EPIC_ID, "task-2", "ready")

        assert result.exit_code == 0
        assert "task set to blocked" in result.output

    def test_partial_failure_exits_nonzero(self, tmp_path, fake_tracker):
        _save_epic(tmp_path)
        _write_github_config(tmp_path)
        fake_tracker.failures["add_label"] = ExternalCallFailure("add label", "forbidden", 403)

        result = _invoke(tmp_path, "transition", EPIC_ID, "task-1", "review")

        assert result.exit_code == 1
        assert "Retry with: --step labels" in result.output
        assert _store(tmp_path).load(EPIC_ID).tasks[0].status == TaskStatus.BACKLOG

    def test_step_subset_on_new_target_is_not_applied(self, tmp_path, fake_tracker):
        _save_epic(tmp_path)
        _write_github_config(tmp_path)

        partial = _invoke(tmp_path, "transition", EPIC_ID, "task-1", "review", "--step", "labels")
        task = _store(tmp_path).load(EPIC_ID).tasks[0]

        assert partial.exit_code == 1
        assert "partially synced" in partial.output
        assert "Retry with: --step board --step issue" in partial.output
        assert task.status == TaskStatus.BACKLOG
        assert task.pending_steps == ["labels"]

        finished = _invoke(tmp_path, "transition", EPIC_ID, "task-1", "review", "--step", "board", "--step", "issue")

        assert finished.exit_code == 0, finished.output
        assert "task-1 is now review" in finished.output
        assert _store(tmp_path).load(EPIC_ID).tasks[0].synced_status == TaskStatus.REVIEW

    def test_create_from_yaml(self, tmp_path, fake_tracker):
        _write_github_config(tmp_path)
        plan = tmp_path / "epic.yaml"
        plan.write_text(
            "epic:\n"
            "  title: Payments\n"
            "  tasks:\n"
            "    - title: Spec\n"
            "    - title: Build\n"
            "      dependencies: [Spec]\n"
        )

        result = _invoke(tmp_path, "create", str(plan))

        assert result.exit_code == 0, result.output
        assert "Created epic" in result.output
        assert len(_store(tmp_path).list_ids()) == 1
        assert "create_project" not in fake_tracker.call_names

    def test_sync_completion_and_refresh(self, tmp_path, fake_tracker):
        _save_epic(tmp_path)
        _write_github_config(tmp_path)
        (tmp_path / "spec.md").write_text("")

        synced = _invoke(tmp_path, "sync-completion", EPIC_ID, "--root", str(tmp_path))
        refreshed = _invoke(tmp_path, "refresh", EPIC_ID)

        assert synced.exit_code == 0, synced.output
        assert "task-1 is now done" in synced.output
        assert refreshed.exit_code == 0, refreshed.output
        assert "Refreshed 2 task(s)" in refreshed.output
        assert _store(tmp_path).load(EPIC_ID).tasks[0].status == TaskStatus.DONE

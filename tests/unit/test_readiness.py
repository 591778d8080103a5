"""Tests for task readiness, next-task selection and cycle detection."""

from agent_epics.core.readiness import (
    TaskFilter,
    compute_next_task,
    compute_ready_tasks,
    external_dependencies,
    find_dependency_cycles,
    is_ready,
    unmet_dependencies,
)
from agent_epics.core.task import AgentAssignment, SparcPhase, TaskStatus
from tests.unit.fakes import make_task


def _assigned(agent_type: str) -> AgentAssignment:
    return AgentAssignment(agent_id=f"agent-{agent_type}", agent_name=agent_type.title(), agent_type=agent_type, score=100)


class TestComputeReadyTasks:

    def test_started_dependency_excludes_both(self):
        a = make_task("task-1", status=TaskStatus.IN_PROGRESS)
        b = make_task("task-2", dependencies=["task-1"])

        assert compute_ready_tasks([a, b]) == []

    def test_done_dependency_releases_dependent(self):
        a = make_task("task-1", status=TaskStatus.DONE)
        b = make_task("task-2", dependencies=["task-1"])

        assert compute_ready_tasks([a, b]) == [b]

    def test_never_includes_started_or_finished_tasks(self):
        tasks = [
            make_task("task-1", status=TaskStatus.IN_PROGRESS),
            make_task("task-2", status=TaskStatus.REVIEW),
            make_task("task-3", status=TaskStatus.DONE),
            make_task("task-4", status=TaskStatus.BLOCKED),
            make_task("task-5", status=TaskStatus.READY),
            make_task("task-6", status=TaskStatus.BACKLOG),
        ]

        ready = compute_ready_tasks(tasks)

        assert [t.task_id for t in ready] == ["task-5", "task-6"]

    def test_ordered_by_phase_then_creation(self):
        refine = make_task("task-1", phase=SparcPhase.REFINEMENT)
        spec_a = make_task("task-2", phase=SparcPhase.SPECIFICATION)
        arch = make_task("task-3", phase=SparcPhase.ARCHITECTURE)
        spec_b = make_task("task-4", phase=SparcPhase.SPECIFICATION)

        ready = compute_ready_tasks([refine, spec_a, arch, spec_b])

        assert [t.task_id for t in ready] == ["task-2", "task-4", "task-3", "task-1"]

    def test_issue_number_dependency(self):
        a = make_task("task-1", status=TaskStatus.DONE)
        b = make_task("task-2", dependencies=["#1"])

        assert compute_ready_tasks([a, b]) == [b]

    def test_unresolved_dependency_is_not_ready(self):
        task = make_task("task-1", dependencies=["#404"])

        assert compute_ready_tasks([task]) == []
        assert unmet_dependencies(task, [task]) == ["#404"]

    def test_closed_external_issue_counts_as_done(self):
        task = make_task("task-1", dependencies=["#404"])

        assert compute_ready_tasks([task], closed_issues=["#404"]) == [task]
        assert unmet_dependencies(task, [task], ["#404"]) == []

    def test_closed_issues_never_override_sibling_status(self):
        a = make_task("task-1", status=TaskStatus.IN_PROGRESS)
        b = make_task("task-2", dependencies=["#1"])

        assert compute_ready_tasks([a, b], closed_issues=["#1"]) == []

    def test_filter_by_phase(self):
        spec = make_task("task-1", phase=SparcPhase.SPECIFICATION)
        arch = make_task("task-2", phase=SparcPhase.ARCHITECTURE)

        ready = compute_ready_tasks([spec, arch], TaskFilter(phase=SparcPhase.ARCHITECTURE))

        assert ready == [arch]

    def test_filter_by_agent_type_is_case_insensitive(self):
        coder = make_task("task-1", assigned_agent=_assigned("coder"))
        tester = make_task("task-2", assigned_agent=_assigned("tester"))
        unassigned = make_task("task-3")

        ready = compute_ready_tasks([coder, tester, unassigned], TaskFilter(agent_type="Tester"))

        assert ready == [tester]

    def test_cycle_members_never_ready(self):
        a = make_task("task-1", dependencies=["task-2"])
        b = make_task("task-2", dependencies=["task-1"])

        assert compute_ready_tasks([a, b]) == []
        assert not is_ready(a, [a, b])


class TestComputeNextTask:

    def test_returns_head_of_ready_list(self):
        late = make_task("task-1", phase=SparcPhase.COMPLETION)
        early = make_task("task-2", phase=SparcPhase.PSEUDOCODE)

        assert compute_next_task([late, early]) is early

    def test_none_when_nothing_ready(self):
        assert compute_next_task([make_task("task-1", status=TaskStatus.DONE)]) is None

    def test_agent_type_filter(self):
        coder = make_task("task-1", assigned_agent=_assigned("coder"))
        tester = make_task("task-2", assigned_agent=_assigned("tester"))

        assert compute_next_task([coder, tester], agent_type="tester") is tester
        assert compute_next_task([coder, tester], agent_type="reviewer") is None


class TestFindDependencyCycles:

    def test_two_task_cycle(self):
        a = make_task("task-1", dependencies=["task-2"])
        b = make_task("task-2", dependencies=["task-1"])

        assert find_dependency_cycles([a, b]) == [["task-1", "task-2", "task-1"]]

    def test_self_dependency(self):
        a = make_task("task-1", dependencies=["task-1"])

        assert find_dependency_cycles([a]) == [["task-1", "task-1"]]

    def test_acyclic_chain(self):
        a = make_task("task-1")
        b = make_task("task-2", dependencies=["task-1"])
        c = make_task("task-3", dependencies=["task-2", "#1", "task-missing"])

        assert find_dependency_cycles([a, b, c]) == []

    def test_cycle_via_issue_reference(self):
        a = make_task("task-1", dependencies=["#3"])
        b = make_task("task-2", dependencies=["task-1"])
        c = make_task("task-3", dependencies=["task-2"])

        cycles = find_dependency_cycles([a, b, c])

        assert cycles == [["task-1", "task-3", "task-2", "task-1"]]


class TestExternalDependencies:

    def test_lists_issue_references_outside_the_epic_once(self):
        tasks = [
            make_task("task-1", dependencies=["#40"]),
            make_task("task-2", dependencies=["#1", "#40", "#41", "task-1"]),
        ]

        assert external_dependencies(tasks) == ["#40", "#41"]

    def test_ignores_unknown_task_ids(self):
        assert external_dependencies([make_task("task-1", dependencies=["task-9"])]) == []

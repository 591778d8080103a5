"""Task readiness and dependency resolution.

A task is ready when it has not started yet (backlog or ready) and every
dependency is done. Ready tasks are surfaced in SPARC phase order, then in
creation order, so earlier phases come first even if a later-phase task's
dependencies clear sooner.

Dependency cycles are NOT handled here: tasks in a cycle simply never become
ready. ``find_dependency_cycles`` is a separate diagnostic pass.
"""

import logging
from dataclasses import dataclass
from typing import Collection, Dict, List, Optional, Sequence

from .task import PICKABLE_STATUSES, SparcPhase, Task, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskFilter:
    """Optional narrowing for ready-task queries."""
    phase: Optional[SparcPhase] = None
    agent_type: Optional[str] = None

    def matches(self, task: Task) -> bool:
        if self.phase is not None and task.phase != self.phase:
            return False
        if self.agent_type is not None:
            if task.assigned_agent is None:
                return False
            if task.assigned_agent.agent_type.lower() != self.agent_type.lower():
                return False
        return True


def index_tasks(tasks: Sequence[Task]) -> Dict[str, Task]:
    """Index tasks by task id and by "#<issue number>"."""
    index: Dict[str, Task] = {}
    for task in tasks:
        index[task.task_id] = task
        if task.issue_ref is not None:
            index[f"#{task.issue_ref.number}"] = task
    return index


def unmet_dependencies(
    task: Task,
    tasks: Sequence[Task],
    closed_issues: Collection[str] = (),
) -> List[str]:
    """Return the dependency ids of ``task`` that are not done.

    A dependency outside ``tasks`` is done only when it is an issue reference
    listed in ``closed_issues``; any other unresolved id counts as not done.
    """
    index = index_tasks(tasks)
    unmet = []
    for dep_id in task.dependencies:
        dep = index.get(dep_id)
        if dep is None:
            if dep_id not in closed_issues:
                unmet.append(dep_id)
        elif dep.status != TaskStatus.DONE:
            unmet.append(dep_id)
    return unmet


def external_dependencies(tasks: Sequence[Task]) -> List[str]:
    """Issue references (``#N``) depended on but not belonging to any task."""
    index = index_tasks(tasks)
    external: List[str] = []
    for task in tasks:
        for dep_id in task.dependencies:
            if dep_id.startswith("#") and dep_id not in index and dep_id not in external:
                external.append(dep_id)
    return external


def is_ready(task: Task, tasks: Sequence[Task], closed_issues: Collection[str] = ()) -> bool:
    if task.status not in PICKABLE_STATUSES:
        return False
    return not unmet_dependencies(task, tasks, closed_issues)


def compute_ready_tasks(
    tasks: Sequence[Task],
    task_filter: Optional[TaskFilter] = None,
    closed_issues: Collection[str] = (),
) -> List[Task]:
    """Return tasks eligible to start now, ordered by phase rank then creation order."""
    ready = [
        (position, task)
        for position, task in enumerate(tasks)
        if is_ready(task, tasks, closed_issues) and (task_filter is None or task_filter.matches(task))
    ]
    ready.sort(key=lambda item: (item[1].phase.rank, item[0]))
    return [task for _, task in ready]


def compute_next_task(
    tasks: Sequence[Task],
    agent_type: Optional[str] = None,
    closed_issues: Collection[str] = (),
) -> Optional[Task]:
    """Return the highest-priority ready task, optionally for one agent type."""
    task_filter = TaskFilter(agent_type=agent_type) if agent_type else None
    ready = compute_ready_tasks(tasks, task_filter, closed_issues)
    return ready[0] if ready else None


def find_dependency_cycles(tasks: Sequence[Task]) -> List[List[str]]:
    """Detect dependency cycles among ``tasks``.

    Returns each cycle as a list of task ids in dependency order, starting and
    ending with the same id. Unresolvable dependency ids are ignored.
    """
    index = index_tasks(tasks)
    WHITE, GRAY, BLACK = 0, 1, 2
    color = {task.task_id: WHITE for task in tasks}
    stack: List[str] = []
    cycles: List[List[str]] = []

    def visit(task_id: str) -> None:
        color[task_id] = GRAY
        stack.append(task_id)
        for dep_id in index[task_id].dependencies:
            dep = index.get(dep_id)
            if dep is None:
                continue
            if color[dep.task_id] == GRAY:
                # Back edge
                start = stack.index(dep.task_id)
                cycles.append(stack[start:] + [dep.task_id])
            elif color[dep.task_id] == WHITE:
                visit(dep.task_id)
        stack.pop()
        color[task_id] = BLACK

    for task in tasks:
        if color[task.task_id] == WHITE:
            visit(task.task_id)
    return cycles

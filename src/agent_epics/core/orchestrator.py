"""Epic orchestration: GitHub issue/board creation plus the status operations."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..errors.exceptions import (
    EpicNotFoundError,
    ExternalCallFailure,
    PreconditionError,
    TaskNotFoundError,
)
from ..utils.error_handling import BestEffort
from .completion import CompletionReport, detect_completed, expected_paths_from_tasks
from .config import EpicsConfig
from .matching import AgentMatch, best_assignment, rank_agents
from .readiness import (
    TaskFilter,
    compute_next_task,
    compute_ready_tasks,
    external_dependencies,
    find_dependency_cycles,
    unmet_dependencies,
)
from .reconciler import ReconciliationResult, StatusReconciler, SyncStep
from .store import EpicStore
from .summary import EpicState, StatusSummary, derive_epic_state, summarize_tasks
from .task import (
    START_STATUSES,
    AgentAssignment,
    AgentProfile,
    Epic,
    IssueRef,
    ProjectRef,
    Task,
    TaskDefinition,
    TaskStatus,
)
from .tracker import IssueState, IssueTracker

logger = logging.getLogger(__name__)

EPIC_LABEL = "epic"
TRACKING_LABEL = "tracking"
CHILD_TASK_LABEL = "task:child"


@dataclass
class EpicEvent:
    """Notification passed to orchestrator observers."""
    kind: str  # epic_created, task_transitioned, task_completed
    epic_id: str
    task_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


Observer = Callable[[EpicEvent], None]


def new_epic_id() -> str:
    return f"epic-{int(time.time())}-{uuid.uuid4().hex[:8]}"


def epic_label(epic_id: str) -> str:
    return f"epic:{epic_id}"


class EpicOrchestrator:
    """Creates epics on GitHub and drives their tasks through the reconciler.

    Epics are held in memory and, when a store is given, snapshotted after
    every change.
    Without a tracker only the read-only operations are available.
    """

    def __init__(
        self,
        tracker: Optional[IssueTracker],
        config: Optional[EpicsConfig] = None,
        agents: Optional[Sequence[AgentProfile]] = None,
        store: Optional[EpicStore] = None,
        observers: Optional[Iterable[Observer]] = None,
        project_number: Optional[int] = None,
        create_project: bool = True,
    ):
        self.tracker = tracker
        self.config = config or EpicsConfig()
        self.agents: List[AgentProfile] = list(agents or [])
        self.store = store
        self.observers: List[Observer] = list(observers or [])
        self.project_number = project_number
        self.create_project = create_project
        self.reconciler = StatusReconciler(tracker, self.config.status)
        self._epics: Dict[str, Epic] = {}

    # --- registry ---

    def register(self, epic: Epic) -> None:
        self._epics[epic.epic_id] = epic

    def get_epic(self, epic_id: str) -> Epic:
        """Return an epic from memory, falling back to the snapshot store.

        Raises:
            EpicNotFoundError: If the epic is unknown
        """
        epic = self._epics.get(epic_id)
        if epic is not None:
            return epic
        if self.store is None:
            raise EpicNotFoundError(epic_id)
        epic = self.store.load(epic_id)
        self.register(epic)
        return epic

    def get_task(self, epic_id: str, task_id: str) -> Task:
        epic = self.get_epic(epic_id)
        task = epic.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(epic_id, task_id)
        return task

    def list_epics(self) -> List[Epic]:
        epics = dict(self._epics)
        if self.store is not None:
            for epic in self.store.load_all():
                epics.setdefault(epic.epic_id, epic)
        return sorted(epics.values(), key=lambda e: e.created_at)

    def subscribe(self, observer: Observer) -> None:
        self.observers.append(observer)

    def _notify(self, event: EpicEvent) -> None:
        for observer in self.observers:
            with BestEffort(f"notifying observer of {event.kind}", logger):
                observer(event)

    def _require_tracker(self) -> IssueTracker:
        if self.tracker is None:
            raise PreconditionError("No GitHub tracker configured (config/github.yaml)")
        return self.tracker

    def _persist(self, epic: Epic) -> None:
        if self.store is not None:
            self.store.save(epic)

    # --- creation ---

    async def create_epic(
        self,
        title: str,
        description: str = "",
        task_defs: Sequence[TaskDefinition] = (),
    ) -> Epic:
        """Create the board, tracking issue and one issue per task.

        Board creation and board item placement are best effort. Issue
        creation failures propagate.

        Raises:
            ValueError: If the title is blank or a dependency names no task
            ExternalCallFailure: If an issue cannot be created
            PreconditionError: If no tracker is configured
        """
        if not title or not title.strip():
            raise ValueError("Epic title cannot be empty")
        self._require_tracker()

        epic_id = new_epic_id()
        task_ids = [f"task-{i + 1}" for i in range(len(task_defs))]
        dependencies = self._resolve_dependencies(task_defs, task_ids)

        project = await self._ensure_project(title)
        tracking_ref = await self.tracker.create_issue(
            f"[Epic] {title}",
            self._tracking_body(description, [d.title for d in task_defs]),
            [EPIC_LABEL, TRACKING_LABEL, epic_label(epic_id)],
        )
        logger.info(f"Created tracking issue {tracking_ref} for epic {epic_id}")

        epic = Epic(
            epic_id=epic_id,
            title=title,
            description=description,
            project_ref=project,
            tracking_issue_ref=tracking_ref,
        )

        for task_id, definition, deps in zip(task_ids, task_defs, dependencies):
            task = await self._create_task(epic, task_id, definition, deps)
            epic.tasks.append(task)

        for task in epic.tasks:
            await self._add_to_board(epic, task)

        with BestEffort("updating tracking issue checklist", logger, catch=(ExternalCallFailure,)):
            await self.tracker.update_issue_body(
                tracking_ref,
                self._tracking_body(description, [f"{t.issue_ref} {t.title}" for t in epic.tasks]),
            )

        self.register(epic)
        cycles = find_dependency_cycles(epic.tasks)
        for cycle in cycles:
            logger.warning(f"Dependency cycle in epic {epic_id}: {' -> '.join(cycle)}")

        self._persist(epic)
        self._notify(EpicEvent(
            "epic_created",
            epic_id,
            data={"title": title, "tasks": len(epic.tasks), "project": project.number if project else None},
        ))
        logger.info(f"Created epic {epic_id} with {len(epic.tasks)} tasks")
        return epic

    @staticmethod
    def _resolve_dependencies(
        task_defs: Sequence[TaskDefinition],
        task_ids: Sequence[str],
    ) -> List[List[str]]:
        """Map dependency titles to task ids; ``#N`` references pass through."""
        by_title: Dict[str, str] = {}
        for task_id, definition in zip(task_ids, task_defs):
            by_title.setdefault(definition.title.strip().lower(), task_id)

        resolved = []
        for definition in task_defs:
            deps = []
            for dep in definition.dependencies:
                if dep.startswith("#"):
                    deps.append(dep)
                    continue
                task_id = by_title.get(dep.strip().lower())
                if task_id is None:
                    raise ValueError(f"Unknown dependency '{dep}' for task '{definition.title}'")
                deps.append(task_id)
            resolved.append(deps)
        return resolved

    async def _ensure_project(self, title: str) -> Optional[ProjectRef]:
        if self.project_number is not None:
            return ProjectRef(number=self.project_number)
        if not self.create_project:
            return None
        with BestEffort("creating the project board", logger, catch=(ExternalCallFailure,)) as attempt:
            project = await self.tracker.create_project(f"Epic: {title}")
        if attempt.failed:
            return None
        logger.info(f"Created project board #{project.number}")
        return project

    async def _create_task(
        self,
        epic: Epic,
        task_id: str,
        definition: TaskDefinition,
        dependencies: List[str],
    ) -> Task:
        """Open the task's issue, Ready when it has no dependencies and Blocked otherwise."""
        status = TaskStatus.BLOCKED if dependencies else TaskStatus.READY
        assignment = best_assignment(self.agents, definition.required_skills)
        labels = [
            epic_label(epic.epic_id),
            CHILD_TASK_LABEL,
            f"phase:{definition.phase.value.lower()}",
            self.reconciler.mapper.label(status),
        ]
        if assignment is not None:
            labels.append(f"agent:{assignment.agent_type}")
        labels.extend(label for label in definition.labels if label not in labels)

        issue = await self.tracker.create_issue(
            definition.title,
            self._task_body(epic, definition, assignment),
            labels,
        )
        return Task(
            task_id=task_id,
            issue_ref=issue,
            title=definition.title,
            description=definition.description,
            phase=definition.phase,
            status=status,
            # issue and labels already match; the board column is set by _add_to_board
            synced_status=status if epic.project_ref is None else None,
            dependencies=dependencies,
            required_skills=[s.lower() for s in definition.required_skills],
            assigned_agent=assignment,
            labels=labels,
            expected_path=definition.expected_path,
        )

    async def _add_to_board(self, epic: Epic, task: Task) -> None:
        """Place the task on the board and reconcile its column to the task's status."""
        if epic.project_ref is None:
            return
        with BestEffort(f"adding {task.issue_ref} to the project board", logger, catch=(ExternalCallFailure,)) as attempt:
            item_id = await self.tracker.add_issue_to_project(epic.project_ref, task.issue_ref)
        if attempt.failed:
            return
        task.project_item_ref = item_id
        result = await self.reconciler.request_transition(
            task,
            task.status,
            project=epic.project_ref,
            siblings=epic.tasks,
            epic_id=epic.epic_id,
        )
        if not result.success:
            logger.warning(
                f"Initial board sync for {task.task_id} incomplete: "
                f"{', '.join(s.value for s in result.failed_steps)}"
            )

    @staticmethod
    def _tracking_body(description: str, items: Sequence[str]) -> str:
        lines = [description.strip(), "", "## Tasks", ""] if description.strip() else ["## Tasks", ""]
        lines.extend(f"- [ ] {item}" for item in items)
        return "\n".join(lines)

    @staticmethod
    def _task_body(
        epic: Epic,
        definition: TaskDefinition,
        assignment: Optional[AgentAssignment],
    ) -> str:
        lines = [definition.description.strip(), ""] if definition.description.strip() else []
        lines.append(f"**Epic:** {epic.title} ({epic.tracking_issue_ref})")
        lines.append(f"**Phase:** {definition.phase.value}")
        if definition.dependencies:
            lines.append(f"**Depends on:** {', '.join(definition.dependencies)}")
        if definition.required_skills:
            lines.append(f"**Skills:** {', '.join(definition.required_skills)}")
        if assignment is not None:
            lines.append(f"**Suggested agent:** {assignment.agent_name} (score {assignment.score:.0f})")
        if definition.expected_path:
            lines.append(f"**Expected output:** `{definition.expected_path}`")
        if definition.acceptance_criteria:
            lines.extend(["", "## Acceptance criteria", ""])
            lines.extend(f"- [ ] {criterion}" for criterion in definition.acceptance_criteria)
        return "\n".join(lines)

    # --- status operations ---

    async def request_transition(
        self,
        epic_id: str,
        task_id: str,
        target_status: Union[TaskStatus, str],
        *,
        steps: Optional[Iterable[SyncStep]] = None,
        completed_by: Optional[str] = None,
    ) -> ReconciliationResult:
        """Reconcile one task of an epic to ``target_status``.

        When the task reaches Done, blocked tasks whose dependencies are now
        all done are moved to Ready.

        Raises:
            EpicNotFoundError: If the epic is unknown
            TaskNotFoundError: If the epic has no such task
            PreconditionError: If the task has no issue reference or no tracker is configured
        """
        self._require_tracker()
        epic = self.get_epic(epic_id)
        task = self.get_task(epic_id, task_id)
        result = await self.reconciler.request_transition(
            task,
            TaskStatus(target_status),
            project=epic.project_ref,
            siblings=epic.tasks,
            steps=steps,
            completed_by=completed_by,
            epic_id=epic_id,
            closed_issues=epic.closed_issues,
        )
        if result.already_satisfied:
            return result

        self._persist(epic)
        self._notify(EpicEvent(
            "task_transitioned",
            epic_id,
            task_id,
            data={
                "requested": result.requested_status.value,
                "target": result.target_status.value,
                "previous": result.previous_status.value,
                "success": result.success,
                "applied": result.applied,
                "blocked_by": list(result.blocked_by),
            },
        ))
        if result.applied and result.target_status == TaskStatus.DONE:
            self._notify(EpicEvent("task_completed", epic_id, task_id, data={"title": task.title}))
            await self.release_dependents(epic_id)
        return result

    async def release_dependents(self, epic_id: str) -> List[ReconciliationResult]:
        """Move Blocked tasks whose dependencies are all done to Ready."""
        epic = self.get_epic(epic_id)
        results = []
        for task in epic.tasks:
            if task.status != TaskStatus.BLOCKED or not task.dependencies or task.issue_ref is None:
                continue
            if unmet_dependencies(task, epic.tasks, epic.closed_issues):
                continue
            logger.info(f"Dependencies of {task.task_id} are done, releasing it")
            results.append(await self.request_transition(epic_id, task.task_id, TaskStatus.READY))
        return results

    def compute_ready_tasks(self, epic_id: str, task_filter: Optional[TaskFilter] = None) -> List[Task]:
        epic = self.get_epic(epic_id)
        return compute_ready_tasks(epic.tasks, task_filter, epic.closed_issues)

    def compute_next_task(self, epic_id: str, agent_type: Optional[str] = None) -> Optional[Task]:
        epic = self.get_epic(epic_id)
        return compute_next_task(epic.tasks, agent_type, epic.closed_issues)

    def detect_completed(
        self,
        epic_id: str,
        root_dir: Optional[Path] = None,
        expected_paths: Optional[Mapping[str, Union[str, Path]]] = None,
    ) -> CompletionReport:
        """Partition an epic's tasks by whether their expected artifact exists.

        Expected paths default to each task's ``expected_path`` and are
        checked under ``root_dir``, or the configured completion root
        (relative to the workspace) when none is given.
        """
        tasks = self.get_epic(epic_id).tasks
        paths = expected_paths if expected_paths is not None else expected_paths_from_tasks(tasks)
        return detect_completed(tasks, paths, root_dir or self.config.completion_root)

    async def sync_completion(
        self,
        epic_id: str,
        root_dir: Optional[Path] = None,
        expected_paths: Optional[Mapping[str, Union[str, Path]]] = None,
    ) -> List[ReconciliationResult]:
        """Move every task whose artifact exists to Done."""
        report = self.detect_completed(epic_id, root_dir, expected_paths)
        results = []
        for task in report.completed:
            if task.status == TaskStatus.DONE and task.is_synced:
                continue
            results.append(await self.request_transition(
                epic_id,
                task.task_id,
                TaskStatus.DONE,
                completed_by=self.config.completion.completed_by,
            ))
        logger.info(f"Completion sync for {epic_id}: {len(results)} task(s) moved to done")
        return results

    async def refresh_statuses(self, epic_id: str) -> Dict[str, TaskStatus]:
        """Re-derive every task's status from GitHub (issue state, board, labels).

        Issues depended on from outside the epic are re-read as well. Once
        every task reflects GitHub, a task shown as Ready or In Progress with
        a dependency that is not done is treated as Blocked, and blocked
        tasks whose dependencies are done are released.

        Tasks whose reads fail keep their current status.
        """
        tracker = self._require_tracker()
        epic = self.get_epic(epic_id)
        mapper = self.reconciler.mapper
        refreshed: Dict[str, TaskStatus] = {}

        await self._refresh_external_issues(epic)

        for task in epic.tasks:
            if task.issue_ref is None:
                continue
            with BestEffort(f"refreshing {task.task_id}", logger, catch=(ExternalCallFailure,)) as attempt:
                state = await tracker.get_issue_state(task.issue_ref)
                labels = await tracker.get_issue_labels(task.issue_ref)
                board_value = None
                if epic.project_ref is not None and task.project_item_ref:
                    board_value = await tracker.get_project_item_field_value(
                        epic.project_ref,
                        task.project_item_ref,
                        self.config.status.status_field_name,
                    )
            if attempt.failed:
                continue

            status = mapper.derive_status(state, board_value, labels, fallback=task.status)
            if status != task.status:
                logger.info(f"{task.task_id} ({task.issue_ref}): {task.status.value} -> {status.value} from GitHub")
            task.status = status
            task.synced_status = status
            task.pending_status = None
            task.pending_steps = []
            task.labels = list(labels)
            if status == TaskStatus.DONE and task.completed_at is None:
                task.completed_at = datetime.now(UTC)
            refreshed[task.task_id] = status

        for task in epic.tasks:
            if task.task_id not in refreshed or task.status not in START_STATUSES:
                continue
            blocked_by = unmet_dependencies(task, epic.tasks, epic.closed_issues)
            if blocked_by:
                logger.warning(
                    f"{task.task_id} is {task.status.value} on GitHub but waits on "
                    f"{', '.join(blocked_by)}, treating it as blocked"
                )
                task.status = TaskStatus.BLOCKED
                # GitHub still shows the old status; the next transition re-syncs it
                task.synced_status = None
                refreshed[task.task_id] = TaskStatus.BLOCKED

        self._persist(epic)
        for result in await self.release_dependents(epic_id):
            if result.applied:
                refreshed[result.task_id] = result.target_status
        return refreshed

    async def _refresh_external_issues(self, epic: Epic) -> None:
        """Record which ``#N`` dependencies outside the epic are closed."""
        for ref in external_dependencies(epic.tasks):
            if not ref[1:].isdigit():
                continue
            with BestEffort(f"reading dependency {ref}", logger, catch=(ExternalCallFailure,)) as attempt:
                state = await self.tracker.get_issue_state(IssueRef(number=int(ref[1:])))
            if attempt.failed:
                continue
            if state == IssueState.CLOSED and ref not in epic.closed_issues:
                logger.info(f"Dependency {ref} of epic {epic.epic_id} is closed")
                epic.closed_issues.append(ref)
            elif state == IssueState.OPEN and ref in epic.closed_issues:
                logger.info(f"Dependency {ref} of epic {epic.epic_id} was reopened")
                epic.closed_issues.remove(ref)

    # --- reporting ---

    def summarize(self, epic_id: str) -> StatusSummary:
        return summarize_tasks(self.get_epic(epic_id).tasks)

    def epic_state(self, epic_id: str) -> EpicState:
        return derive_epic_state(self.get_epic(epic_id).tasks)

    def rank_agents(self, required_skills: Sequence[str]) -> List[AgentMatch]:
        return rank_agents(self.agents, required_skills)

    def find_task_by_issue(self, epic_id: str, issue: Union[IssueRef, int]) -> Optional[Task]:
        number = issue.number if isinstance(issue, IssueRef) else issue
        for task in self.get_epic(epic_id).tasks:
            if task.issue_number == number:
                return task
        return None

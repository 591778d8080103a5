"""Status reconciliation between in-memory tasks and GitHub.

A transition converges GitHub onto a requested status in a fixed order:

1. board column (project Status field), when the task is on a board
2. issue state (closed with a comment for Done, otherwise kept open)
3. status-marker labels (a human-readable mirror, not authoritative)

Each sub-step is attempted independently; failures are logged and recorded in
the result, never raised. The task's in-memory status only changes once all
three sub-steps have succeeded for the same target, possibly across several
calls. Only a task without an issue is a hard error.

Transitions on the same task must be serialized by the caller; concurrent
transitions on one task are last-writer-wins.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Awaitable, Callable, Collection, Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors.exceptions import DataInconsistency, PreconditionError
from ..utils.rich_logging import ContextLogger
from .config import StatusSyncConfig
from .readiness import unmet_dependencies
from .status import StatusMapper
from .task import START_STATUSES, ProjectRef, Task, TaskStatus
from .tracker import IssueState, IssueTracker, ProjectField

logger = logging.getLogger(__name__)


class SyncStep(str, Enum):
    BOARD = "board"
    ISSUE = "issue"
    LABELS = "labels"


SYNC_ORDER: Tuple[SyncStep, ...] = (SyncStep.BOARD, SyncStep.ISSUE, SyncStep.LABELS)


class StepOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Outcome of one reconciliation sub-step."""
    step: SyncStep
    outcome: StepOutcome
    mutations: int = 0
    detail: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None  # ExternalCallFailure, DataInconsistency, ...

    @property
    def failed(self) -> bool:
        return self.outcome == StepOutcome.FAILED


@dataclass
class ReconciliationResult:
    """What a transition did, per sub-step."""
    task_id: str
    requested_status: TaskStatus
    target_status: TaskStatus
    previous_status: TaskStatus
    steps: Dict[SyncStep, StepResult] = field(default_factory=dict)
    blocked_by: List[str] = field(default_factory=list)  # unmet dependencies that forced Blocked
    already_satisfied: bool = False
    applied: bool = False
    # Sub-steps not yet synced for target_status; empty once applied
    remaining_steps: List[SyncStep] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_steps

    @property
    def failed_steps(self) -> List[SyncStep]:
        return [step for step, r in self.steps.items() if r.failed]

    @property
    def mutations(self) -> int:
        return sum(r.mutations for r in self.steps.values())

    @property
    def dependency_blocked(self) -> bool:
        return bool(self.blocked_by)

    @property
    def board(self) -> Optional[StepResult]:
        return self.steps.get(SyncStep.BOARD)

    @property
    def issue(self) -> Optional[StepResult]:
        return self.steps.get(SyncStep.ISSUE)

    @property
    def labels(self) -> Optional[StepResult]:
        return self.steps.get(SyncStep.LABELS)


class StatusReconciler:
    """Converge GitHub board, issue and labels onto a requested task status."""

    def __init__(
        self,
        tracker: IssueTracker,
        config: Optional[StatusSyncConfig] = None,
        completed_by: str = "agent-epics",
    ):
        self.tracker = tracker
        self.config = config or StatusSyncConfig()
        self.mapper = StatusMapper(self.config.board_options, self.config.label_prefix)
        self.completed_by = completed_by
        # (project number, field name) -> field; epic-scoped, never evicted
        self._field_cache: Dict[Tuple[int, str], ProjectField] = {}

    async def request_transition(
        self,
        task: Task,
        target_status: TaskStatus,
        *,
        project: Optional[ProjectRef] = None,
        siblings: Sequence[Task] = (),
        steps: Optional[Iterable[SyncStep]] = None,
        completed_by: Optional[str] = None,
        epic_id: Optional[str] = None,
        closed_issues: Collection[str] = (),
    ) -> ReconciliationResult:
        """Reconcile ``task`` to ``target_status``.

        Sub-steps that succeed are remembered on the task for the pending
        target, so a later call with ``steps`` limited to the failures
        completes the transition. The status is applied only once board,
        issue and labels have all converged on the same target.

        Args:
            task: Task to transition; must have an issue reference
            target_status: Requested status
            project: Board the task's ``project_item_ref`` belongs to
            siblings: Tasks of the same epic, used to resolve dependencies
            steps: Only run these sub-steps (retrying the failures of an earlier result)
            completed_by: Name used in the completion comment
            epic_id: Epic id for log context
            closed_issues: ``#N`` references outside the epic known to be closed

        Raises:
            PreconditionError: If the task has no issue reference
            ValueError: If ``target_status`` is not a known status
        """
        if task.issue_ref is None:
            raise PreconditionError(f"Task {task.task_id} has no issue reference")

        requested = TaskStatus(target_status)
        target = requested
        blocked_by: List[str] = []
        if requested in START_STATUSES:
            blocked_by = unmet_dependencies(task, siblings, closed_issues)
            if blocked_by:
                target = TaskStatus.BLOCKED

        result = ReconciliationResult(
            task_id=task.task_id,
            requested_status=requested,
            target_status=target,
            previous_status=task.status,
            blocked_by=blocked_by,
        )

        if task.status == target and task.synced_status == target and task.pending_status is None:
            for step in SYNC_ORDER:
                result.steps[step] = StepResult(step, StepOutcome.SUCCEEDED, detail="already reconciled")
            result.already_satisfied = True
            result.applied = True
            return result

        log = ContextLogger(logger, "reconciler")
        log.set_task_context(epic_id=epic_id)
        log.transition_started(task.task_id, task.issue_number, task.status.value, target.value)
        if blocked_by:
            log.info(f"Requested {requested.value} but dependencies not done: {', '.join(blocked_by)}")

        if task.pending_status != target:
            task.pending_status = target
            task.pending_steps = []

        selected = set(SYNC_ORDER if steps is None else steps)
        runners: Dict[SyncStep, Callable[[], Awaitable[StepResult]]] = {
            SyncStep.BOARD: lambda: self._sync_board(task, target, project),
            SyncStep.ISSUE: lambda: self._sync_issue(task, target, completed_by or self.completed_by),
            SyncStep.LABELS: lambda: self._sync_labels(task, target),
        }
        for step in SYNC_ORDER:
            if step not in selected:
                detail = "already synced" if step.value in task.pending_steps else "not requested"
                result.steps[step] = StepResult(step, StepOutcome.SKIPPED, detail=detail)
                continue
            step_result = await self._run_step(step, runners[step], log)
            result.steps[step] = step_result
            if step_result.failed:
                if step.value in task.pending_steps:
                    task.pending_steps.remove(step.value)
            elif step.value not in task.pending_steps:
                task.pending_steps.append(step.value)

        result.remaining_steps = [s for s in SYNC_ORDER if s.value not in task.pending_steps]
        if not result.remaining_steps:
            task.status = target
            task.synced_status = target
            task.pending_status = None
            task.pending_steps = []
            if target == TaskStatus.DONE and task.completed_at is None:
                task.completed_at = datetime.now(UTC)
            result.applied = True
        elif result.success:
            log.info(f"Partially synced; still to run: {', '.join(s.value for s in result.remaining_steps)}")

        log.transition_finished(target.value, len(result.failed_steps))
        return result

    async def _run_step(
        self,
        step: SyncStep,
        runner: Callable[[], Awaitable[StepResult]],
        log: ContextLogger,
    ) -> StepResult:
        try:
            return await runner()
        except Exception as e:
            log.warning(f"{step.value} sync failed: {e}")
            return StepResult(step, StepOutcome.FAILED, error=str(e), error_type=type(e).__name__)

    async def status_field(self, project: ProjectRef) -> Optional[ProjectField]:
        """Return the board's status field, cached per project."""
        key = (project.number, self.config.status_field_name)
        cached = self._field_cache.get(key)
        if cached is not None:
            return cached
        status_field = await self.tracker.get_project_field(project, self.config.status_field_name)
        if status_field is not None:
            self._field_cache[key] = status_field
        return status_field

    async def _sync_board(
        self,
        task: Task,
        target: TaskStatus,
        project: Optional[ProjectRef],
    ) -> StepResult:
        if project is None or not task.project_item_ref:
            return StepResult(SyncStep.BOARD, StepOutcome.SKIPPED, detail="task is not on a project board")

        option_name = self.mapper.board_option(target)
        status_field = await self.status_field(project)
        if status_field is None:
            raise DataInconsistency(
                f"Status field '{self.config.status_field_name}' not found on project #{project.number}"
            )
        option = status_field.find_option(option_name)
        if option is None:
            # Board may have been edited since the field was cached
            self._field_cache.pop((project.number, self.config.status_field_name), None)
            raise DataInconsistency(
                f"Status option '{option_name}' not found in field '{status_field.name}'"
            )

        await self.tracker.set_project_item_field(project, task.project_item_ref, status_field.id, option.id)
        return StepResult(SyncStep.BOARD, StepOutcome.SUCCEEDED, mutations=1, detail=f"board -> {option.name}")

    async def _sync_issue(self, task: Task, target: TaskStatus, completed_by: str) -> StepResult:
        if target == TaskStatus.DONE:
            comment = self.config.completion_comment.format(
                completed_by=completed_by,
                title=task.title,
                task_id=task.task_id,
            )
            await self.tracker.set_issue_state(task.issue_ref, IssueState.CLOSED, comment=comment)
            return StepResult(SyncStep.ISSUE, StepOutcome.SUCCEEDED, mutations=1, detail="issue closed")

        state = await self.tracker.get_issue_state(task.issue_ref)
        if state == IssueState.CLOSED:
            await self.tracker.set_issue_state(task.issue_ref, IssueState.OPEN)
            return StepResult(SyncStep.ISSUE, StepOutcome.SUCCEEDED, mutations=1, detail="issue reopened")
        return StepResult(SyncStep.ISSUE, StepOutcome.SUCCEEDED, detail="issue already open")

    async def _sync_labels(self, task: Task, target: TaskStatus) -> StepResult:
        new_label = self.mapper.label(target)
        stale = [
            label for label in task.labels
            if self.mapper.is_status_label(label) and label != new_label
        ]
        previous_label = self.mapper.label(task.status)
        if previous_label != new_label and previous_label not in stale:
            stale.append(previous_label)

        mutations = 0
        for label in stale:
            await self.tracker.remove_label(task.issue_ref, label)
            mutations += 1
            if label in task.labels:
                task.labels.remove(label)

        if new_label not in task.labels:
            await self.tracker.add_label(task.issue_ref, new_label)
            task.labels.append(new_label)
            mutations += 1

        return StepResult(SyncStep.LABELS, StepOutcome.SUCCEEDED, mutations=mutations, detail=f"label {new_label}")

"""Status summaries and overall epic state derived from task statuses."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Sequence

from .task import SparcPhase, Task, TaskStatus


class EpicState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PLANNING = "planning"
    ACTIVE = "active"
    BLOCKED = "blocked"
    REVIEW = "review"
    COMPLETED = "completed"


@dataclass
class StatusSummary:
    total: int
    counts: Dict[TaskStatus, int]
    by_phase: Dict[SparcPhase, Dict[TaskStatus, int]] = field(default_factory=dict)

    def count(self, status: TaskStatus) -> int:
        return self.counts.get(status, 0)

    @property
    def progress_percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.count(TaskStatus.DONE) / self.total * 100)

    @property
    def active_work(self) -> int:
        return self.count(TaskStatus.IN_PROGRESS) + self.count(TaskStatus.REVIEW)

    @property
    def available_work(self) -> int:
        return self.count(TaskStatus.READY) + self.count(TaskStatus.BACKLOG)


def summarize_tasks(tasks: Sequence[Task]) -> StatusSummary:
    counts = Counter(task.status for task in tasks)
    by_phase: Dict[SparcPhase, Dict[TaskStatus, int]] = {}
    for task in tasks:
        phase_counts = by_phase.setdefault(task.phase, {})
        phase_counts[task.status] = phase_counts.get(task.status, 0) + 1
    return StatusSummary(
        total=len(tasks),
        counts={status: counts.get(status, 0) for status in TaskStatus},
        by_phase=by_phase,
    )


def derive_epic_state(tasks: Sequence[Task]) -> EpicState:
    """Overall epic state; the first matching rule wins."""
    summary = summarize_tasks(tasks)
    if summary.total == 0:
        return EpicState.UNINITIALIZED
    if summary.count(TaskStatus.DONE) == summary.total:
        return EpicState.COMPLETED
    if summary.count(TaskStatus.REVIEW) > 0:
        return EpicState.REVIEW
    if summary.count(TaskStatus.IN_PROGRESS) > 0:
        return EpicState.ACTIVE
    if summary.count(TaskStatus.BLOCKED) > 0:
        return EpicState.BLOCKED
    return EpicState.PLANNING

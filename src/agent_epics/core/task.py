"""Epic, task and agent models mirrored onto GitHub issues and project boards."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


class TaskStatus(str, Enum):
    """Reconciled task status. GitHub (board, issue state, labels) is authoritative."""
    BACKLOG = "backlog"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    BLOCKED = "blocked"


# Statuses that mean "work may start"; both require every dependency to be done.
START_STATUSES = frozenset({TaskStatus.READY, TaskStatus.IN_PROGRESS})

# Statuses from which a task can still be picked up.
PICKABLE_STATUSES = frozenset({TaskStatus.BACKLOG, TaskStatus.READY})


class SparcPhase(str, Enum):
    """SPARC development phases, declared in priority order."""
    SPECIFICATION = "Specification"
    PSEUDOCODE = "Pseudocode"
    ARCHITECTURE = "Architecture"
    REFINEMENT = "Refinement"
    COMPLETION = "Completion"

    @property
    def rank(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: List[SparcPhase] = list(SparcPhase)


class IssueRef(BaseModel):
    """Reference to a GitHub issue."""
    number: int
    url: str = ""
    node_id: Optional[str] = None  # GraphQL id, needed to add the issue to a board

    def __str__(self) -> str:
        return f"#{self.number}"


class ProjectRef(BaseModel):
    """Reference to a GitHub Projects v2 board."""
    number: int
    node_id: Optional[str] = None
    url: str = ""


class AgentProfile(BaseModel):
    """Static agent persona from the catalog. Read-only after load."""
    id: str
    name: str
    type: str  # role tag: researcher, coder, tester, ...
    skills: List[str] = Field(default_factory=list)

    @field_validator("skills")
    @classmethod
    def lowercase_skills(cls, v: List[str]) -> List[str]:
        return [s.strip().lower() for s in v if s and s.strip()]


class AgentAssignment(BaseModel):
    """Agent recommended for a task, with the cached match score."""
    agent_id: str
    agent_name: str
    agent_type: str
    score: float


class Task(BaseModel):
    """A unit of work inside an epic, mirrored onto one GitHub issue."""

    task_id: str = Field(frozen=True)
    issue_ref: Optional[IssueRef] = Field(default=None, frozen=True)
    title: str
    description: str = ""
    phase: SparcPhase = SparcPhase.SPECIFICATION
    status: TaskStatus = TaskStatus.BACKLOG

    # Task ids of siblings, or "#<issue number>" references
    dependencies: List[str] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)
    assigned_agent: Optional[AgentAssignment] = None
    project_item_ref: Optional[str] = None

    # Last status whose reconciliation fully succeeded; None until first sync
    synced_status: Optional[TaskStatus] = None
    # Status being synced and the sub-steps ("board", "issue", "labels") already done for it
    pending_status: Optional[TaskStatus] = None
    pending_steps: List[str] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    expected_path: Optional[str] = None  # artifact whose existence marks completion

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None

    @field_serializer("created_at", "completed_at")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    @property
    def issue_number(self) -> Optional[int]:
        return self.issue_ref.number if self.issue_ref else None

    @property
    def is_synced(self) -> bool:
        """True when GitHub is known to already reflect ``status``."""
        return self.synced_status is not None and self.synced_status == self.status


class TaskDefinition(BaseModel):
    """Input to epic creation: one task before it has an issue."""
    title: str
    description: str = ""
    phase: SparcPhase = SparcPhase.SPECIFICATION
    dependencies: List[str] = Field(default_factory=list)  # titles of other definitions, or "#N"
    required_skills: List[str] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    expected_path: Optional[str] = None
    acceptance_criteria: List[str] = Field(default_factory=list)

    @field_validator("phase", mode="before")
    @classmethod
    def coerce_phase(cls, v: Any) -> Any:
        """Accept phase names case-insensitively ("refinement", "REFINEMENT")."""
        if isinstance(v, str):
            for phase in SparcPhase:
                if phase.value.lower() == v.strip().lower():
                    return phase
        return v


class EpicDefinition(BaseModel):
    """A complete epic plan, as loaded from YAML or parsed from SPARC output."""
    title: str
    description: str = ""
    tasks: List[TaskDefinition] = Field(default_factory=list)


class Epic(BaseModel):
    """An epic with its tasks in creation order."""

    epic_id: str = Field(frozen=True)
    title: str = Field(min_length=1)
    description: str = ""
    project_ref: Optional[ProjectRef] = None
    tracking_issue_ref: Optional[IssueRef] = None
    tasks: List[Task] = Field(default_factory=list)
    # "#N" references to issues outside the epic last seen closed on GitHub
    closed_issues: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Epic title cannot be blank")
        return v

    @field_serializer("created_at")
    def serialize_datetime(self, v: datetime) -> str:
        return v.isoformat()

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None

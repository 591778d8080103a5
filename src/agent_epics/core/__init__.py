"""Core epic model, status reconciliation and task readiness."""

from .completion import CompletionReport, detect_completed, expected_paths_from_tasks
from .config import (
    CompletionConfig,
    EpicsConfig,
    GitHubConfig,
    StatusSyncConfig,
    clear_config_cache,
    load_agents,
    load_config,
    load_epic_definition,
    load_github_config,
)
from .matching import AgentMatch, best_agent, best_assignment, rank_agents, score_agent
from .orchestrator import EpicEvent, EpicOrchestrator
from .readiness import TaskFilter, compute_next_task, compute_ready_tasks, find_dependency_cycles
from .reconciler import ReconciliationResult, StatusReconciler, StepOutcome, StepResult, SyncStep
from .sparc_parser import parse_sparc_markdown
from .status import StatusMapper
from .store import EpicStore
from .summary import EpicState, StatusSummary, derive_epic_state, summarize_tasks
from .task import (
    AgentAssignment,
    AgentProfile,
    Epic,
    EpicDefinition,
    IssueRef,
    ProjectRef,
    SparcPhase,
    Task,
    TaskDefinition,
    TaskStatus,
)
from .tracker import FieldOption, IssueState, IssueTracker, ProjectField

__all__ = [
    "AgentAssignment",
    "AgentMatch",
    "AgentProfile",
    "CompletionConfig",
    "CompletionReport",
    "Epic",
    "EpicDefinition",
    "EpicEvent",
    "EpicOrchestrator",
    "EpicState",
    "EpicStore",
    "EpicsConfig",
    "FieldOption",
    "GitHubConfig",
    "IssueRef",
    "IssueState",
    "IssueTracker",
    "ProjectField",
    "ProjectRef",
    "ReconciliationResult",
    "SparcPhase",
    "StatusMapper",
    "StatusReconciler",
    "StatusSummary",
    "StatusSyncConfig",
    "StepOutcome",
    "StepResult",
    "SyncStep",
    "Task",
    "TaskDefinition",
    "TaskFilter",
    "TaskStatus",
    "best_agent",
    "best_assignment",
    "clear_config_cache",
    "compute_next_task",
    "compute_ready_tasks",
    "derive_epic_state",
    "detect_completed",
    "expected_paths_from_tasks",
    "find_dependency_cycles",
    "load_agents",
    "load_config",
    "load_epic_definition",
    "load_github_config",
    "parse_sparc_markdown",
    "rank_agents",
    "score_agent",
    "summarize_tasks",
]

"""Issue tracker collaborator interface.

The reconciler and orchestrator only talk to GitHub through this interface.
Implementations raise ``ExternalCallFailure`` for any remote failure; callers
decide whether that is fatal.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .task import IssueRef, ProjectRef


class IssueState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class FieldOption:
    """A named option of a single-select project field."""
    id: str
    name: str


@dataclass
class ProjectField:
    """A single-select project field such as the board's Status column."""
    id: str
    name: str
    options: List[FieldOption] = field(default_factory=list)

    def find_option(self, name: str) -> Optional[FieldOption]:
        """Case-insensitive option lookup."""
        wanted = name.strip().lower()
        for option in self.options:
            if option.name.strip().lower() == wanted:
                return option
        return None


class IssueTracker(ABC):
    """Abstract GitHub-like backend for issues, labels and project boards."""

    # --- issues ---

    @abstractmethod
    async def create_issue(self, title: str, body: str, labels: List[str]) -> IssueRef:
        """Create an issue and return its reference."""

    @abstractmethod
    async def update_issue_body(self, issue: IssueRef, body: str) -> None:
        """Replace an issue's body."""

    @abstractmethod
    async def get_issue_state(self, issue: IssueRef) -> IssueState:
        """Return whether the issue is open or closed."""

    @abstractmethod
    async def set_issue_state(
        self,
        issue: IssueRef,
        state: IssueState,
        comment: Optional[str] = None,
    ) -> None:
        """Open or close an issue, optionally commenting first."""

    # --- labels ---

    @abstractmethod
    async def get_issue_labels(self, issue: IssueRef) -> List[str]:
        """Return the label names currently on the issue."""

    @abstractmethod
    async def add_label(self, issue: IssueRef, label: str) -> None:
        """Add a label to an issue (creating it if needed)."""

    @abstractmethod
    async def remove_label(self, issue: IssueRef, label: str) -> None:
        """Remove a label from an issue. Removing an absent label is not an error."""

    # --- project boards ---

    @abstractmethod
    async def create_project(self, title: str) -> ProjectRef:
        """Create a project board owned by the configured owner."""

    @abstractmethod
    async def add_issue_to_project(self, project: ProjectRef, issue: IssueRef) -> str:
        """Add an issue to a board and return the board item id."""

    @abstractmethod
    async def get_project_field(self, project: ProjectRef, field_name: str) -> Optional[ProjectField]:
        """Return the named single-select field with its options, or None."""

    @abstractmethod
    async def set_project_item_field(
        self,
        project: ProjectRef,
        item_id: str,
        field_id: str,
        option_id: str,
    ) -> None:
        """Set a single-select field value on a board item."""

    @abstractmethod
    async def get_project_item_field_value(
        self,
        project: ProjectRef,
        item_id: str,
        field_name: str,
    ) -> Optional[str]:
        """Return the option name currently set on a board item, or None."""

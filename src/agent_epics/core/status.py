"""Mapping between task statuses and their GitHub mirrors (board options, labels)."""

from typing import Dict, Iterable, Optional

from .task import TaskStatus
from .tracker import IssueState


class StatusMapper:
    """Translate statuses to board option names and status-marker labels and back."""

    def __init__(self, board_options: Dict[str, str], label_prefix: str = "status:"):
        self.board_options = {TaskStatus(k): v for k, v in board_options.items()}
        self.label_prefix = label_prefix

    def board_option(self, status: TaskStatus) -> str:
        return self.board_options[status]

    def label(self, status: TaskStatus) -> str:
        return f"{self.label_prefix}{status.value}"

    def is_status_label(self, label: str) -> bool:
        return self.status_from_label(label) is not None

    def status_from_label(self, label: str) -> Optional[TaskStatus]:
        if not label.startswith(self.label_prefix):
            return None
        try:
            return TaskStatus(label[len(self.label_prefix):])
        except ValueError:
            return None

    def status_from_board_option(self, option_name: str) -> Optional[TaskStatus]:
        wanted = option_name.strip().lower()
        for status, name in self.board_options.items():
            if name.strip().lower() == wanted:
                return status
        return None

    def derive_status(
        self,
        issue_state: IssueState,
        board_value: Optional[str],
        labels: Iterable[str],
        fallback: TaskStatus = TaskStatus.BACKLOG,
    ) -> TaskStatus:
        """Derive a task status from GitHub state.

        Precedence: closed issue, then board column, then status label.
        """
        if issue_state == IssueState.CLOSED:
            return TaskStatus.DONE
        if board_value:
            status = self.status_from_board_option(board_value)
            if status is not None:
                return status
        for label in labels:
            status = self.status_from_label(label)
            if status is not None:
                return status
        return fallback

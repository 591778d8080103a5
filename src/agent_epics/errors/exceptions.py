"""Exception taxonomy for epic orchestration."""

from typing import Optional


class EpicsError(Exception):
    """Base class for all agent-epics errors."""


class PreconditionError(EpicsError):
    """Operation invoked on a task or epic missing a required reference.

    Fatal to the call that raised it; never recorded in a result.
    """


class EpicNotFoundError(EpicsError, KeyError):
    """No epic with the requested id is registered or stored."""

    def __init__(self, epic_id: str):
        super().__init__(f"Epic not found: {epic_id}")
        self.epic_id = epic_id

    def __str__(self) -> str:
        return self.args[0]


class TaskNotFoundError(EpicsError, KeyError):
    """The epic has no task with the requested id."""

    def __init__(self, epic_id: str, task_id: str):
        super().__init__(f"Task {task_id} not found in epic {epic_id}")
        self.epic_id = epic_id
        self.task_id = task_id

    def __str__(self) -> str:
        return self.args[0]


class ExternalCallFailure(EpicsError):
    """A collaborator call failed (network, permissions, rate limit).

    Raised by tracker bindings. The reconciler catches it and records the
    failed sub-step instead of propagating.
    """

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.status_code = status_code


class DataInconsistency(EpicsError):
    """External configuration does not match what the model expects.

    Example: the project board has no option for the requested status.
    """

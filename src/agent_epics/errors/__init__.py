"""Error taxonomy and user-friendly error translation."""

from .exceptions import (
    DataInconsistency,
    EpicNotFoundError,
    EpicsError,
    ExternalCallFailure,
    PreconditionError,
    TaskNotFoundError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "DataInconsistency",
    "EpicNotFoundError",
    "EpicsError",
    "ExternalCallFailure",
    "PreconditionError",
    "TaskNotFoundError",
    "ErrorTranslator",
    "UserFriendlyError",
]

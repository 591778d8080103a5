"""Shared utility functions for agent-epics."""

from .error_handling import BestEffort, handle_network_errors
from .rich_logging import ContextLogger, EpicLogFormatter, setup_rich_logging
from .validators import validate_identifier, validate_owner_repo

__all__ = [
    # Error handling
    "BestEffort",
    "handle_network_errors",
    # Logging
    "ContextLogger",
    "EpicLogFormatter",
    "setup_rich_logging",
    # Validators
    "validate_identifier",
    "validate_owner_repo",
]

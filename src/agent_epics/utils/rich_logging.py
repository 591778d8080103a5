"""Rich logging with epic/task context and better formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "agent_epics"


class EpicLogFormatter(logging.Formatter):
    """Custom formatter with epic and task context."""

    def __init__(self, component: str, use_colors: bool = True):
        super().__init__()
        self.component = component
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        epic_context = ""
        if hasattr(record, "epic_id"):
            epic_context = f"[{record.epic_id}] "

        task_context = ""
        if hasattr(record, "issue_number"):
            task_context = f"[#{record.issue_number}] "
        elif hasattr(record, "task_id"):
            task_context = f"[{record.task_id}] "

        if self.use_colors:
            level_colors = {
                "DEBUG": "\033[36m",      # Cyan
                "INFO": "\033[32m",       # Green
                "WARNING": "\033[33m",    # Yellow
                "ERROR": "\033[31m",      # Red
                "CRITICAL": "\033[35m",   # Magenta
            }
            reset = "\033[0m"
            level_color = level_colors.get(record.levelname, "")
        else:
            level_color = ""
            reset = ""

        message = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.component}] {epic_context}{task_context}{record.getMessage()}"
        )
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that adds epic/task context to all log messages."""

    def __init__(self, logger: logging.Logger, component: str):
        super().__init__(logger, {})
        self.component = component
        self.current_epic_id: Optional[str] = None
        self.current_task_id: Optional[str] = None
        self.current_issue_number: Optional[int] = None

    def set_task_context(
        self,
        epic_id: Optional[str] = None,
        task_id: Optional[str] = None,
        issue_number: Optional[int] = None,
    ):
        """Set current epic/task context for logging."""
        if epic_id:
            self.current_epic_id = epic_id
        if task_id:
            self.current_task_id = task_id
        if issue_number is not None:
            self.current_issue_number = issue_number

    def clear_context(self):
        """Clear epic/task context."""
        self.current_epic_id = None
        self.current_task_id = None
        self.current_issue_number = None

    def process(self, msg, kwargs):
        """Add context to log record."""
        extra = kwargs.get("extra", {})

        if self.current_epic_id:
            extra["epic_id"] = self.current_epic_id
        if self.current_task_id:
            extra["task_id"] = self.current_task_id
        if self.current_issue_number is not None:
            extra["issue_number"] = self.current_issue_number

        kwargs["extra"] = extra
        return msg, kwargs

    def transition_started(self, task_id: str, issue_number: Optional[int], current: str, target: str):
        """Log the start of a status transition with context."""
        self.set_task_context(task_id=task_id, issue_number=issue_number)
        self.info(f"Transition {current} -> {target}")

    def transition_finished(self, applied: str, failed_steps: int):
        """Log the outcome of a status transition."""
        if failed_steps:
            self.warning(f"Transition to {applied} incomplete: {failed_steps} sub-step(s) failed")
        else:
            self.info(f"Reconciled to {applied}")
        self.clear_context()


def setup_rich_logging(
    component: str,
    workspace: Path,
    log_level: str = "INFO",
    use_file: bool = True,
    use_json: bool = False,
) -> ContextLogger:
    """
    Setup rich logging on the package logger.

    Module loggers under ``agent_epics`` propagate to the handlers installed
    here.

    Args:
        component: Component name shown in each line and used for the log file
        workspace: Workspace path
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_file: Write to log file
        use_json: Use JSON structured logging

    Returns:
        ContextLogger instance
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if use_json:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","component":"%(component)s","level":"%(levelname)s",'
            '"message":"%(message)s","module":"%(module)s","function":"%(funcName)s"}',
            defaults={'component': component}
        )
    else:
        formatter = EpicLogFormatter(component, use_colors=True)

    # Skip console handler when stdout is redirected to avoid duplicate logs
    stdout_is_redirected = not sys.stdout.isatty() if hasattr(sys.stdout, 'isatty') else False

    if not stdout_is_redirected:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if use_file:
        log_dir = workspace / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        # Plain formatter for files (no ANSI codes)
        plain_formatter = EpicLogFormatter(component, use_colors=False)

        file_handler = logging.FileHandler(log_dir / f"{component}.log")
        file_handler.setFormatter(plain_formatter)
        logger.addHandler(file_handler)

    return ContextLogger(logger, component)

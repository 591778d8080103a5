"""Error handling for GitHub calls: wrapping client errors and best-effort side effects."""

import functools
import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def handle_network_errors(
    operation: str,
    *,
    wrap: Optional[Callable[[str, Exception], Exception]] = None,
    passthrough: tuple = (),
    logger_instance: Optional[logging.Logger] = None,
) -> Callable:
    """
    Decorator to handle common network errors with consistent messaging.

    Args:
        operation: Description of the operation (e.g., "close issue")
        wrap: Optional factory turning (operation, error) into the exception to raise
        passthrough: Exception types re-raised untouched and unlogged
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        Decorator function
    """
    log = logger_instance or logger

    def _raise(e: Exception):
        if wrap is not None:
            raise wrap(operation, e) from e
        raise e

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except passthrough:
                raise
            except TimeoutError as e:
                log.error(f"Timeout during {operation}: {e}")
                _raise(e)
            except ConnectionError as e:
                log.error(f"Connection error during {operation}: {e}")
                _raise(e)
            except Exception as e:
                log.error(f"Unexpected error during {operation}: {e}")
                _raise(e)

        return wrapper

    return decorator


class BestEffort:
    """
    Guard a side effect whose failure must not abort the surrounding operation.

    Only the exception types in ``catch`` are absorbed (logged and recorded);
    anything else propagates. The block may contain ``await``.

    Usage:
        with BestEffort(f"adding {issue} to the board", logger, catch=(ExternalCallFailure,)) as attempt:
            item_id = await tracker.add_issue_to_project(project, issue)
        if attempt.failed:
            return
    """

    def __init__(
        self,
        action: str,
        logger_instance: Optional[logging.Logger] = None,
        *,
        catch: Tuple[Type[BaseException], ...] = (Exception,),
        level: int = logging.WARNING,
    ):
        self.action = action
        self.logger = logger_instance or logger
        self.catch = catch
        self.level = level
        self.error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __enter__(self) -> "BestEffort":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None or not issubclass(exc_type, self.catch):
            return False
        self.error = exc_val
        self.logger.log(self.level, f"Skipped {self.action}: {exc_val}")
        return True

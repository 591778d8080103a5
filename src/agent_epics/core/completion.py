"""Infer task completion from the existence of expected output artifacts.

This is a heuristic signal for the reconciler, not ground truth: only path
existence is checked, never content.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from .task import Task

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class CompletionReport:
    completed: List[Task] = field(default_factory=list)
    pending: List[Task] = field(default_factory=list)


def expected_paths_from_tasks(tasks: Sequence[Task]) -> Dict[str, str]:
    """Build a task id -> expected path mapping from each task's ``expected_path``."""
    return {task.task_id: task.expected_path for task in tasks if task.expected_path}


def detect_completed(
    tasks: Sequence[Task],
    expected_paths: Mapping[str, PathLike],
    root_dir: PathLike,
    file_exists: Optional[Callable[[Path], bool]] = None,
) -> CompletionReport:
    """Partition ``tasks`` into completed (expected path exists) and pending.

    Tasks with no entry in ``expected_paths`` are pending. Relative paths are
    resolved against ``root_dir``.
    """
    exists = file_exists or (lambda p: p.exists())
    root = Path(root_dir)
    report = CompletionReport()

    for task in tasks:
        expected = expected_paths.get(task.task_id)
        if expected is None:
            report.pending.append(task)
            continue
        path = Path(expected)
        if not path.is_absolute():
            path = root / path
        if exists(path):
            report.completed.append(task)
        else:
            report.pending.append(task)

    logger.debug(
        f"Completion scan of {root}: {len(report.completed)} completed, "
        f"{len(report.pending)} pending"
    )
    return report

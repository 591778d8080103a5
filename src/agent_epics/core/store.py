"""JSON snapshot store for epics.

GitHub stays authoritative; snapshots let the CLI pick up an epic across
invocations without re-reading every issue.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..errors.exceptions import EpicNotFoundError
from ..utils.validators import validate_identifier
from .task import Epic

logger = logging.getLogger(__name__)


class EpicStore:
    """Epic snapshots as ``<epics_dir>/<epic_id>.json``.

    Writes are atomic (temp file then rename).
    """

    def __init__(self, epics_dir: Path):
        self.epics_dir = Path(epics_dir)

    def _path(self, epic_id: str) -> Path:
        validate_identifier(epic_id, "epic_id")
        return self.epics_dir / f"{epic_id}.json"

    def save(self, epic: Epic) -> Path:
        """Write the snapshot through a temp file in the same directory.

        Raises:
            OSError: If the snapshot cannot be written; the old file is left intact
        """
        self.epics_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(epic.epic_id)
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            tmp_path.write_text(epic.model_dump_json(indent=2))
            tmp_path.replace(path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            logger.error(f"Could not save snapshot of {epic.epic_id}: {e}")
            raise
        logger.debug(f"Saved epic snapshot {path}")
        return path

    def load(self, epic_id: str) -> Epic:
        """Load one epic.

        Raises:
            EpicNotFoundError: If no snapshot exists
        """
        path = self._path(epic_id)
        if not path.exists():
            raise EpicNotFoundError(epic_id)
        return Epic.model_validate_json(path.read_text())

    def list_ids(self) -> List[str]:
        if not self.epics_dir.exists():
            return []
        return sorted(p.stem for p in self.epics_dir.glob("*.json"))

    def load_all(self) -> List[Epic]:
        """Load every readable snapshot, skipping malformed files."""
        epics = []
        for epic_id in self.list_ids():
            epic = self._try_load(epic_id)
            if epic is not None:
                epics.append(epic)
        return epics

    def _try_load(self, epic_id: str) -> Optional[Epic]:
        try:
            return self.load(epic_id)
        except (ValidationError, json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Skipping malformed epic snapshot {epic_id}: {e}")
            return None

"""
File-backed checkpoint ("bookmark") storage.

One JSON file per profile in the run's log directory. Writes go to a
temporary sibling and are moved into place with os.replace, so a concurrent
load sees either the previous checkpoint or the new one, never a torn file.
"""

import json
import os
from pathlib import Path

from pydantic import ValidationError

from dynamo_migrate.core.models import Checkpoint
from dynamo_migrate.observability.logger import get_logger

logger = get_logger(__name__)


class CheckpointStore:
    """
    Load, save and delete checkpoints for migration runs.

    A missing, unreadable or structurally invalid file is reported as
    "no checkpoint" so that a corrupted bookmark restarts the migration
    instead of failing it.
    """

    def __init__(self, directory: str | Path):
        """
        Initialize checkpoint store.

        Args:
            directory: Directory holding the bookmark files
        """
        self.directory = Path(directory)

    def path_for(self, run_id: str) -> Path:
        return self.directory / f"migrate-{run_id}.bookmark.json"

    def load(self, run_id: str) -> Checkpoint | None:
        """
        Load the checkpoint for a run.

        Args:
            run_id: Run identifier (the profile name)

        Returns:
            Checkpoint, or None if absent or invalid
        """
        path = self.path_for(run_id)
        if not path.exists():
            return None

        try:
            raw = path.read_text(encoding="utf-8")
            return Checkpoint.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning(
                f"Ignoring unusable checkpoint {path}: {e.__class__.__name__}",
                extra={"run_id": run_id, "path": str(path)}
            )
            return None

    def save(self, run_id: str, checkpoint: Checkpoint) -> None:
        """
        Atomically overwrite the checkpoint for a run.

        Args:
            run_id: Run identifier (the profile name)
            checkpoint: Checkpoint to persist
        """
        path = self.path_for(run_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        data = json.dumps(checkpoint.to_json_dict(), indent=2)
        tmp_path.write_text(data + "\n", encoding="utf-8")
        os.replace(tmp_path, path)

    def delete(self, run_id: str) -> bool:
        """
        Delete the checkpoint for a run.

        Returns:
            True if a checkpoint was deleted, False if there was none
        """
        path = self.path_for(run_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

# ============================================================================
# CHECKPOINT REPOSITORY
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Checkpoint persistence backends
# PURPOSE: Store, fetch, enumerate and delete checkpoint records
# CREATED: 16 OCT 2026
# EXPORTS: CheckpointRepository, InMemoryCheckpointRepository,
#          FileCheckpointRepository
# DEPENDENCIES: json, shutil, pydantic
# ============================================================================
"""
Checkpoint Repository

CRUD operations for checkpoint records. The store decides ordering and
eviction; repositories only persist.

On-disk layout (FileCheckpointRepository):
    <root>/<checkpoint_id>/metadata.json
    <root>/<checkpoint_id>/state.json
    <root>/<checkpoint_id>/artifacts.json

Each file carries format_version. Writes are staged in
<root>/.staging-<checkpoint_id>/ and renamed into place.
"""

import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from core.errors import CheckpointIOError, SerializationError
from core.models import CheckpointMetadata, CheckpointRecord

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
STATE_FILE = "state.json"
ARTIFACTS_FILE = "artifacts.json"
STAGING_PREFIX = ".staging-"


class CheckpointRepository:
    """Interface for checkpoint persistence."""

    def save(self, record: CheckpointRecord) -> None:
        raise NotImplementedError

    def get(self, checkpoint_id: str) -> Optional[CheckpointRecord]:
        raise NotImplementedError

    def delete(self, checkpoint_id: str) -> bool:
        raise NotImplementedError

    def list_metadata(self) -> List[CheckpointMetadata]:
        """All stored metadata, unordered."""
        raise NotImplementedError


class InMemoryCheckpointRepository(CheckpointRepository):
    """Process-local repository, the default for a single run."""

    def __init__(self):
        self._records: Dict[str, CheckpointRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: CheckpointRecord) -> None:
        with self._lock:
            self._records[record.checkpoint_id] = record

    def get(self, checkpoint_id: str) -> Optional[CheckpointRecord]:
        with self._lock:
            return self._records.get(checkpoint_id)

    def delete(self, checkpoint_id: str) -> bool:
        with self._lock:
            return self._records.pop(checkpoint_id, None) is not None

    def list_metadata(self) -> List[CheckpointMetadata]:
        with self._lock:
            return [record.metadata for record in self._records.values()]


class FileCheckpointRepository(CheckpointRepository):
    """
    Directory-per-checkpoint repository.

    Survives process restarts: a new store over the same root rebuilds its
    index from list_metadata().
    """

    def __init__(self, root: Union[str, Path]):
        """
        Initialize file repository.

        Args:
            root: Directory holding one subdirectory per checkpoint
        """
        self.root = Path(root)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CheckpointIOError(f"Cannot create checkpoint directory {self.root}: {e}", cause=e)

    def _dir(self, checkpoint_id: str) -> Path:
        return self.root / checkpoint_id

    def save(self, record: CheckpointRecord) -> None:
        """
        Write the three checkpoint files.

        Files are staged in a hidden sibling directory (metadata last) and
        renamed into place, so a failed write never leaves a directory
        that list_metadata() would pick up.

        Raises:
            CheckpointIOError on filesystem errors
        """
        target = self._dir(record.checkpoint_id)
        staging = self.root / f"{STAGING_PREFIX}{record.checkpoint_id}"
        version = record.metadata.format_version
        try:
            staging.mkdir(parents=True, exist_ok=True)
            (staging / STATE_FILE).write_text(
                json.dumps({"format_version": version, "state": record.state}, indent=2)
            )
            (staging / ARTIFACTS_FILE).write_text(
                json.dumps({"format_version": version, "artifacts": record.artifacts}, indent=2)
            )
            (staging / METADATA_FILE).write_text(record.metadata.model_dump_json(indent=2))
            if target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CheckpointIOError(
                f"Failed to write checkpoint {record.checkpoint_id}: {e}", cause=e
            )
        except (TypeError, ValueError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise SerializationError(
                f"Failed to serialize checkpoint {record.checkpoint_id}: {e}", cause=e
            )
        logger.debug(f"Wrote checkpoint {record.checkpoint_id} to {target}")

    def get(self, checkpoint_id: str) -> Optional[CheckpointRecord]:
        """
        Read a checkpoint back.

        Returns:
            CheckpointRecord or None if the directory does not exist

        Raises:
            CheckpointIOError if the files are unreadable or corrupt
        """
        target = self._dir(checkpoint_id)
        if not (target / METADATA_FILE).exists():
            return None

        try:
            metadata = CheckpointMetadata.model_validate_json(
                (target / METADATA_FILE).read_text()
            )
            state = json.loads((target / STATE_FILE).read_text())
            artifacts = json.loads((target / ARTIFACTS_FILE).read_text())
        except (OSError, ValueError, ValidationError) as e:
            raise CheckpointIOError(f"Failed to read checkpoint {checkpoint_id}: {e}", cause=e)

        return CheckpointRecord(
            metadata=metadata,
            state=state.get("state", {}),
            artifacts=artifacts.get("artifacts", {}),
        )

    def delete(self, checkpoint_id: str) -> bool:
        target = self._dir(checkpoint_id)
        if not target.exists():
            return False
        try:
            shutil.rmtree(target)
        except OSError as e:
            raise CheckpointIOError(f"Failed to delete checkpoint {checkpoint_id}: {e}", cause=e)
        logger.debug(f"Deleted checkpoint directory {target}")
        return True

    def list_metadata(self) -> List[CheckpointMetadata]:
        """
        Scan the root for complete checkpoints.

        Staging directories, directories missing a data file and unreadable
        metadata are skipped.
        """
        results: List[CheckpointMetadata] = []
        for meta_path in sorted(self.root.glob(f"*/{METADATA_FILE}")):
            directory = meta_path.parent
            if directory.name.startswith(STAGING_PREFIX):
                continue
            if not ((directory / STATE_FILE).exists() and (directory / ARTIFACTS_FILE).exists()):
                logger.warning(f"Skipping incomplete checkpoint directory {directory}")
                continue
            try:
                results.append(CheckpointMetadata.model_validate_json(meta_path.read_text()))
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(f"Skipping unreadable checkpoint metadata {meta_path}: {e}")
        return results


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "CheckpointRepository",
    "InMemoryCheckpointRepository",
    "FileCheckpointRepository",
]

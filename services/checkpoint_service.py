# ============================================================================
# CHECKPOINT SERVICE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Checkpoint management
# PURPOSE: Create, load, list and evict orchestration state snapshots
# CREATED: 16 OCT 2026
# EXPORTS: CheckpointStore, to_jsonable
# DEPENDENCIES: json, threading, pydantic
# ============================================================================
"""
Checkpoint Service

Immutable snapshots of orchestration state so that a run can be resumed
or partially rolled back.

Key responsibilities:
- Serialize the state handed in by the scheduler (JSON types only)
- Keep at most max_checkpoints per lineage, evicting oldest-created first
- Never evict the checkpoint that was just created
- Rebuild the index from a persistent repository after a restart

All public operations take the store's lock. snapshot() holds it across
both the state read and the write, so a snapshot never observes a
half-applied transition when the state provider reads under the same lock.
"""

import json
import logging
import threading
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from core.errors import CheckpointIOError, CheckpointNotFound, SerializationError
from core.models import CheckpointMetadata, CheckpointRecord, CheckpointSummary
from repositories import CheckpointRepository, InMemoryCheckpointRepository

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Path):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_jsonable(value: Any) -> Any:
    """
    Convert a state object into plain JSON types.

    Raises:
        SerializationError if something cannot be represented
    """
    try:
        return json.loads(json.dumps(value, default=_json_default))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize checkpoint state: {e}", cause=e)


class CheckpointStore:
    """
    Bounded, ordered collection of checkpoints for one lineage.

    Used by:
    - Scheduler, before and after every block
    - RecoveryManager, to revert after a failure
    - BranchCoordinator, one store per branch
    """

    def __init__(
        self,
        repository: Optional[CheckpointRepository] = None,
        max_checkpoints: int = 10,
        lineage: str = "main",
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize checkpoint store.

        Args:
            repository: Persistence backend (in-memory if omitted)
            max_checkpoints: Retention bound, at least 1
            lineage: Run or branch this store belongs to
            clock: Wall clock used for created_at
        """
        if max_checkpoints < 1:
            raise ValueError(f"max_checkpoints must be >= 1, got {max_checkpoints}")

        self.repository = repository or InMemoryCheckpointRepository()
        self.max_checkpoints = max_checkpoints
        self.lineage = lineage
        self._clock = clock
        self._lock = threading.RLock()
        self._index: List[CheckpointMetadata] = []
        self._sequence = 0

        self._rebuild_index()

    @property
    def lock(self) -> threading.RLock:
        """Exclusive lock shared with state providers."""
        return self._lock

    def _rebuild_index(self) -> None:
        existing = [
            metadata for metadata in self.repository.list_metadata()
            if metadata.lineage == self.lineage
        ]
        existing.sort(key=lambda m: (m.sequence, m.created_at))
        self._index = existing
        if existing:
            self._sequence = existing[-1].sequence + 1
            logger.info(
                f"Checkpoint index rebuilt: lineage={self.lineage} "
                f"count={len(existing)} latest={existing[-1].checkpoint_id}"
            )
            self._evict(keep=existing[-1].checkpoint_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def create(
        self,
        state: Dict[str, Any],
        reason: str,
        summary: Optional[str] = None,
        artifacts: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Create a checkpoint.

        Args:
            state: Orchestration state (pydantic models, enums, datetimes allowed)
            reason: Why the checkpoint was taken (e.g. "before_block")
            summary: Human-readable summary
            artifacts: Artifact snapshot (path -> content)

        Returns:
            New checkpoint id

        Raises:
            SerializationError if state cannot be serialized
            CheckpointIOError if the repository write fails
        """
        with self._lock:
            serialized_state = to_jsonable(state)
            serialized_artifacts = to_jsonable(artifacts or {})

            metadata = CheckpointMetadata(
                sequence=self._sequence,
                lineage=self.lineage,
                created_at=self._clock(),
                reason=reason,
                summary=summary,
            )
            record = CheckpointRecord(
                metadata=metadata,
                state=serialized_state,
                artifacts=serialized_artifacts,
            )

            try:
                self.repository.save(record)
            except OSError as e:
                raise CheckpointIOError(f"Failed to store checkpoint: {e}", cause=e)

            self._sequence += 1
            self._index.append(metadata)
            self._evict(keep=metadata.checkpoint_id)

            logger.debug(
                f"Checkpoint created: id={metadata.checkpoint_id} lineage={self.lineage} "
                f"reason={reason} count={len(self._index)}"
            )
            return metadata.checkpoint_id

    def snapshot(
        self,
        state_provider: Callable[[], Dict[str, Any]],
        reason: str,
        summary: Optional[str] = None,
        artifacts_provider: Optional[Callable[[], Dict[str, str]]] = None,
    ) -> str:
        """Read state and write it under the store lock."""
        with self._lock:
            state = state_provider()
            artifacts = artifacts_provider() if artifacts_provider else None
            return self.create(state, reason, summary=summary, artifacts=artifacts)

    def _evict(self, keep: str) -> None:
        """Drop oldest-created checkpoints until within the bound."""
        while len(self._index) > self.max_checkpoints:
            candidates = [m for m in self._index if m.checkpoint_id != keep]
            if not candidates:
                break
            oldest = min(candidates, key=lambda m: (m.created_at, m.sequence))
            # Index entry goes only once the record is gone
            try:
                self.repository.delete(oldest.checkpoint_id)
            except OSError as e:
                raise CheckpointIOError(
                    f"Failed to evict checkpoint {oldest.checkpoint_id}: {e}", cause=e
                )
            self._index.remove(oldest)
            logger.debug(f"Evicted checkpoint {oldest.checkpoint_id} ({oldest.reason})")

    def load_record(self, checkpoint_id: str) -> CheckpointRecord:
        """
        Load the full record.

        Raises:
            CheckpointNotFound if unknown or evicted
        """
        with self._lock:
            if not any(m.checkpoint_id == checkpoint_id for m in self._index):
                raise CheckpointNotFound(checkpoint_id)
            record = self.repository.get(checkpoint_id)
            if record is None:
                raise CheckpointNotFound(checkpoint_id)
            return record

    def load(self, checkpoint_id: str) -> Dict[str, Any]:
        """Load the serialized state of a checkpoint."""
        return dict(self.load_record(checkpoint_id).state)

    def list(self) -> List[CheckpointSummary]:
        """Summaries ordered oldest to newest."""
        with self._lock:
            return [CheckpointSummary.from_metadata(m) for m in self._index]

    def latest(self) -> Optional[CheckpointSummary]:
        with self._lock:
            if not self._index:
                return None
            return CheckpointSummary.from_metadata(self._index[-1])

    def delete_all(self) -> int:
        """Remove every checkpoint in this lineage. Returns count deleted."""
        with self._lock:
            count = 0
            for metadata in list(self._index):
                if self.repository.delete(metadata.checkpoint_id):
                    count += 1
            self._index.clear()
            logger.info(f"Deleted {count} checkpoints for lineage={self.lineage}")
            return count


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["CheckpointStore", "to_jsonable"]

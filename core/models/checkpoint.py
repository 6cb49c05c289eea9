# ============================================================================
# CHECKPOINT MODEL
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core model - Orchestration state snapshots
# PURPOSE: Metadata, record and summary shapes for the checkpoint store
# CREATED: 16 OCT 2026
# EXPORTS: CheckpointMetadata, CheckpointRecord, CheckpointSummary,
#          CHECKPOINT_FORMAT_VERSION
# DEPENDENCIES: pydantic
# ============================================================================
"""
Checkpoint Model

A checkpoint is an immutable snapshot of orchestration state, created:
- before each block execution ("before_block")
- after each block execution ("after_block")
- on explicit adjustment events ("run_started", "manual", ...)

Persistence format (one checkpoint):
    metadata.json   - CheckpointMetadata (id, sequence, created_at, reason, summary)
    state.json      - serialized orchestration state
    artifacts.json  - snapshot of modified artifacts (path -> content)

Every file carries format_version so older snapshots can be detected.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
import uuid

from __version__ import CHECKPOINT_FORMAT_VERSION


class CheckpointMetadata(BaseModel):
    """Identity and provenance of a checkpoint."""

    format_version: int = Field(default=CHECKPOINT_FORMAT_VERSION, ge=1)
    checkpoint_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        max_length=64,
        description="Unique checkpoint identifier"
    )
    sequence: int = Field(
        default=0,
        ge=0,
        description="Creation order within the lineage (ties on timestamp)"
    )
    lineage: str = Field(
        default="main",
        max_length=128,
        description="Run or branch this checkpoint belongs to"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    reason: str = Field(..., max_length=128, description="Why the checkpoint was taken")
    summary: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Human-readable state summary"
    )

    model_config = {"frozen": True}


class CheckpointRecord(BaseModel):
    """Full checkpoint: metadata + serialized state + artifact snapshot."""

    metadata: CheckpointMetadata
    state: Dict[str, Any] = Field(default_factory=dict)
    artifacts: Dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def checkpoint_id(self) -> str:
        return self.metadata.checkpoint_id


class CheckpointSummary(BaseModel):
    """Listing entry returned by CheckpointStore.list()."""

    checkpoint_id: str
    created_at: datetime
    reason: str
    summary: Optional[str] = None
    sequence: int = 0

    model_config = {"frozen": True}

    @classmethod
    def from_metadata(cls, metadata: CheckpointMetadata) -> "CheckpointSummary":
        return cls(
            checkpoint_id=metadata.checkpoint_id,
            created_at=metadata.created_at,
            reason=metadata.reason,
            summary=metadata.summary,
            sequence=metadata.sequence,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "CHECKPOINT_FORMAT_VERSION",
    "CheckpointMetadata",
    "CheckpointRecord",
    "CheckpointSummary",
]

# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 16 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the implementation orchestrator.
"""

from core.models.block import ExecutionStep, BlockDependency, ImplementationBlock, ImplementationPlan
from core.models.checkpoint import (
    CHECKPOINT_FORMAT_VERSION,
    CheckpointMetadata,
    CheckpointRecord,
    CheckpointSummary,
)
from core.models.recovery import BackoffSpec, FallbackAction, RecoveryPolicy
from core.models.resources import ResourceUsage, ResourceLimits, ResourceSample
from core.models.report import BlockReport, RunReport
from core.models.branch import (
    BranchApproach,
    ArtifactChange,
    BranchMetrics,
    ImplementationBranch,
    BranchEvaluation,
    MergeConflictDetail,
    MergeResult,
    BranchComparison,
)

__all__ = [
    # Blocks
    "ExecutionStep",
    "BlockDependency",
    "ImplementationBlock",
    "ImplementationPlan",
    # Checkpoints
    "CHECKPOINT_FORMAT_VERSION",
    "CheckpointMetadata",
    "CheckpointRecord",
    "CheckpointSummary",
    # Recovery
    "BackoffSpec",
    "FallbackAction",
    "RecoveryPolicy",
    # Resources
    "ResourceUsage",
    "ResourceLimits",
    "ResourceSample",
    # Reports
    "BlockReport",
    "RunReport",
    # Branches
    "BranchApproach",
    "ArtifactChange",
    "BranchMetrics",
    "ImplementationBranch",
    "BranchEvaluation",
    "MergeConflictDetail",
    "MergeResult",
    "BranchComparison",
]

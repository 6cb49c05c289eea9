# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 16 OCT 2026
# ============================================================================

from core.contracts import (
    BlockStatus,
    DependencyKind,
    BranchStatus,
    MergeStrategy,
    ResourceKind,
    ResourceStatus,
    BackoffType,
    FallbackType,
)
from core.errors import (
    ErrorCategory,
    OrchestrationError,
    CycleDetected,
    MissingDependency,
    CheckpointNotFound,
    MergeConflict,
    NoBranchesAvailable,
)
from core.models import (
    ExecutionStep,
    BlockDependency,
    ImplementationBlock,
    ImplementationPlan,
    RecoveryPolicy,
    RunReport,
)

__all__ = [
    # Enums
    "BlockStatus",
    "DependencyKind",
    "BranchStatus",
    "MergeStrategy",
    "ResourceKind",
    "ResourceStatus",
    "BackoffType",
    "FallbackType",
    # Errors
    "ErrorCategory",
    "OrchestrationError",
    "CycleDetected",
    "MissingDependency",
    "CheckpointNotFound",
    "MergeConflict",
    "NoBranchesAvailable",
    # Models
    "ExecutionStep",
    "BlockDependency",
    "ImplementationBlock",
    "ImplementationPlan",
    "RecoveryPolicy",
    "RunReport",
]

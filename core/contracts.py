# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Foundation - Core enums shared by every component
# PURPOSE: Status, dependency, resource and recovery enums
# LAST_REVIEWED: 16 OCT 2026
# EXPORTS: BlockStatus, DependencyKind, BranchStatus, ResourceKind,
#          ResourceStatus, BackoffType, FallbackType, MergeStrategy
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the implementation orchestrator.

These enums cross every boundary in the system:
- Scheduler state machine (BlockStatus)
- Dependency graph edges (DependencyKind)
- Checkpoint snapshots (serialized by .value)
- Recovery policy configuration (BackoffType, FallbackType)
"""

from enum import Enum


# ============================================================================
# BLOCK / DEPENDENCY ENUMS
# ============================================================================

class BlockStatus(str, Enum):
    """
    Implementation block lifecycle states.

    State transitions:
        NOT_STARTED -> READY -> IN_PROGRESS -> COMPLETED
                                            -> COMPLETED_WITH_ISSUES
                                            -> FAILED -> IN_PROGRESS (retry)
                                                      -> DEFERRED
        NOT_STARTED/READY -> BLOCKED -> READY
    """
    NOT_STARTED = "not_started"                      # Created by the planner
    READY = "ready"                                  # Gating prerequisites satisfied
    BLOCKED = "blocked"                              # Gating prerequisite not successful
    IN_PROGRESS = "in_progress"                      # Worker executing steps
    COMPLETED = "completed"                          # Validated cleanly
    COMPLETED_WITH_ISSUES = "completed_with_issues"  # Validated with issues or degraded
    FAILED = "failed"                                # Recovery exhausted
    DEFERRED = "deferred"                            # Set aside for this pass

    def is_terminal(self) -> bool:
        """Check if this is a terminal state for the current pass."""
        return self in (
            BlockStatus.COMPLETED,
            BlockStatus.COMPLETED_WITH_ISSUES,
            BlockStatus.FAILED,
            BlockStatus.DEFERRED,
        )

    def is_successful(self) -> bool:
        """Check if this represents successful completion."""
        return self in (BlockStatus.COMPLETED, BlockStatus.COMPLETED_WITH_ISSUES)


class DependencyKind(str, Enum):
    """
    Kinds of edges between implementation blocks.

    Only REQUIRED_BEFORE and REQUIRED_FOR_COMPLETION gate execution.
    """
    REQUIRED_BEFORE = "required_before"
    REQUIRED_FOR_COMPLETION = "required_for_completion"
    INFLUENCES = "influences"
    PROVIDES_INFORMATION = "provides_information"
    ALTERNATIVE = "alternative"

    def is_gating(self) -> bool:
        """Check if this edge blocks execution until satisfied."""
        return self in (
            DependencyKind.REQUIRED_BEFORE,
            DependencyKind.REQUIRED_FOR_COMPLETION,
        )

    def influences_priority(self) -> bool:
        """Soft edges count toward priority but never gate."""
        return self in (
            DependencyKind.INFLUENCES,
            DependencyKind.PROVIDES_INFORMATION,
        )


# ============================================================================
# BRANCH ENUMS
# ============================================================================

class BranchStatus(str, Enum):
    """
    Implementation branch lifecycle.

    State transitions:
        CREATED -> IMPLEMENTING -> IMPLEMENTED -> EVALUATED -> SELECTED
                                -> FAILED                   -> REJECTED
    """
    CREATED = "created"
    IMPLEMENTING = "implementing"
    IMPLEMENTED = "implemented"
    FAILED = "failed"
    EVALUATED = "evaluated"
    SELECTED = "selected"
    REJECTED = "rejected"

    def is_mergeable(self) -> bool:
        """Only implemented (and then evaluated) branches may be merged."""
        return self in (BranchStatus.IMPLEMENTED, BranchStatus.EVALUATED)


class MergeStrategy(str, Enum):
    """How the coordinator combines branch results."""
    SINGLE = "single"          # Adopt the best branch wholesale
    SELECTIVE = "selective"    # Best branch per component, fold in the rest


# ============================================================================
# RESOURCE ENUMS
# ============================================================================

class ResourceKind(str, Enum):
    """Resources sampled by the monitor."""
    MEMORY = "memory"
    CPU = "cpu"
    DISK = "disk"


class ResourceStatus(str, Enum):
    """Result of comparing a resource sample against its limit."""
    NORMAL = "normal"
    WARNING = "warning"
    EXCEEDED = "exceeded"


# ============================================================================
# RECOVERY ENUMS
# ============================================================================

class BackoffType(str, Enum):
    """Delay schedule between retry attempts."""
    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


class FallbackType(str, Enum):
    """Terminal recovery behaviour once retries are exhausted."""
    SKIP = "skip"
    SIMPLIFY = "simplify"
    REVERT = "revert"
    USE_ALTERNATE = "use_alternate"
    SUBDIVIDE = "subdivide"
    ABORT = "abort"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "BlockStatus",
    "DependencyKind",
    "BranchStatus",
    "MergeStrategy",
    "ResourceKind",
    "ResourceStatus",
    "BackoffType",
    "FallbackType",
]

# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Foundation - Error categories and conversion boundary
# PURPOSE: Typed errors per category, mapping of collaborator failures
# LAST_REVIEWED: 16 OCT 2026
# EXPORTS: OrchestrationError and subclasses, ErrorCategory,
#          GenerationError, map_external_error, is_retryable
# DEPENDENCIES: enum
# ============================================================================
"""
Error Taxonomy

Every failure inside the orchestrator is an OrchestrationError carrying:
- category: STRUCTURAL / RESOURCE / EXECUTION / PERSISTENCE / MERGE
- kind: stable string used as the recovery policy key
- message: human-readable reason (shown in progress reporting)

Propagation:
- STRUCTURAL errors surface immediately, before any execution
- RESOURCE / EXECUTION errors go through the RecoveryManager
- PERSISTENCE: checkpoint create is recoverable, checkpoint load is fatal
- MERGE errors are scoped to the merge step

External collaborators raise their own exceptions (GenerationError, or
anything else). map_external_error() is the single conversion point;
collaborator exception types never travel past the executor.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorCategory(str, Enum):
    """Top-level error categories."""
    STRUCTURAL = "structural"
    RESOURCE = "resource"
    EXECUTION = "execution"
    PERSISTENCE = "persistence"
    MERGE = "merge"


# ============================================================================
# BASE
# ============================================================================

class OrchestrationError(Exception):
    """Base exception for every orchestrator failure."""

    category: ErrorCategory = ErrorCategory.EXECUTION
    kind: str = "orchestration_error"
    retryable: bool = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for reports and checkpoints."""
        return {
            "category": self.category.value,
            "kind": self.kind,
            "message": self.message,
        }

    def __str__(self) -> str:
        return self.message


# ============================================================================
# STRUCTURAL
# ============================================================================

class StructuralError(OrchestrationError):
    """Graph construction errors. Always fatal, never retried."""
    category = ErrorCategory.STRUCTURAL
    kind = "structural_error"
    retryable = False


class CycleDetected(StructuralError):
    """Raised when the gating dependency subgraph contains a cycle."""
    kind = "cycle_detected"

    def __init__(self, path: Sequence[str]):
        self.path: List[str] = list(path)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.path)}")


class MissingDependency(StructuralError):
    """Raised when a dependency references a block outside the plan."""
    kind = "missing_dependency"

    def __init__(self, block_id: str, dependency_id: str):
        self.block_id = block_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Block '{block_id}' depends on unknown block '{dependency_id}'"
        )


class DuplicateBlock(StructuralError):
    """Raised when two blocks share an identifier."""
    kind = "duplicate_block"

    def __init__(self, block_id: str):
        self.block_id = block_id
        super().__init__(f"Duplicate block identifier: '{block_id}'")


# ============================================================================
# RESOURCE
# ============================================================================

class ResourceError(OrchestrationError):
    """A sampled resource went over its configured limit."""
    category = ErrorCategory.RESOURCE
    kind = "resource_error"


class MemoryLimitExceeded(ResourceError):
    kind = "memory_limit_exceeded"


class CpuLimitExceeded(ResourceError):
    kind = "cpu_limit_exceeded"


class DiskLimitExceeded(ResourceError):
    kind = "disk_limit_exceeded"


# ============================================================================
# EXECUTION
# ============================================================================

class ExecutionError(OrchestrationError):
    """Failures while running a block's steps."""
    category = ErrorCategory.EXECUTION
    kind = "execution_error"


class GenerationFailure(ExecutionError):
    kind = "generation_failure"


class ValidationFailure(ExecutionError):
    kind = "validation_failure"

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.issues = list(issues or [])


class BuildError(ExecutionError):
    kind = "build_error"


class BlockTimeoutError(ExecutionError):
    kind = "timeout_error"


# ============================================================================
# PERSISTENCE
# ============================================================================

class PersistenceError(OrchestrationError):
    """Checkpoint persistence failures."""
    category = ErrorCategory.PERSISTENCE
    kind = "persistence_error"


class CheckpointNotFound(PersistenceError):
    kind = "checkpoint_not_found"
    retryable = False

    def __init__(self, checkpoint_id: str):
        self.checkpoint_id = checkpoint_id
        super().__init__(f"Checkpoint not found: {checkpoint_id}")


class SerializationError(PersistenceError):
    kind = "serialization_error"


class CheckpointIOError(PersistenceError):
    kind = "checkpoint_io_error"


# ============================================================================
# MERGE
# ============================================================================

class MergeError(OrchestrationError):
    """Branch selection / merge failures. Branches stay intact."""
    category = ErrorCategory.MERGE
    kind = "merge_error"
    retryable = False


class BranchNotFound(MergeError):
    kind = "branch_not_found"

    def __init__(self, branch_id: str):
        self.branch_id = branch_id
        super().__init__(f"Branch not found: {branch_id}")


class MergeConflict(MergeError):
    kind = "merge_conflict"

    def __init__(self, conflicts: Sequence[Any]):
        self.conflicts = list(conflicts)
        paths = sorted({getattr(c, "path", str(c)) for c in self.conflicts})
        super().__init__(
            f"Unresolved merge conflicts in {len(self.conflicts)} region(s): {', '.join(paths)}"
        )


class NoBranchesAvailable(MergeError):
    kind = "no_branches_available"

    def __init__(self, message: str = "No branch reached the implemented state"):
        super().__init__(message)


# ============================================================================
# EXTERNAL COLLABORATOR ERRORS
# ============================================================================

class GenerationError(Exception):
    """
    Raised by generation collaborators.

    Not part of the taxonomy: converted by map_external_error().
    """
    pass


def map_external_error(exc: BaseException) -> OrchestrationError:
    """
    Map any exception into the orchestrator taxonomy.

    Args:
        exc: Exception raised by a collaborator or by orchestrator code

    Returns:
        OrchestrationError (the same instance if already in the taxonomy)
    """
    if isinstance(exc, OrchestrationError):
        return exc
    if isinstance(exc, GenerationError):
        return GenerationFailure(f"Generation failed: {exc}", cause=exc)
    if isinstance(exc, TimeoutError):
        return BlockTimeoutError(f"Operation timed out: {exc}", cause=exc)
    if isinstance(exc, MemoryError):
        return MemoryLimitExceeded(f"Out of memory: {exc}", cause=exc)
    return BuildError(f"{type(exc).__name__}: {exc}", cause=exc)


def is_retryable(error: BaseException) -> bool:
    """Check if local, policy-governed recovery may be attempted."""
    mapped = map_external_error(error)
    return mapped.retryable


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ErrorCategory",
    "OrchestrationError",
    "StructuralError",
    "CycleDetected",
    "MissingDependency",
    "DuplicateBlock",
    "ResourceError",
    "MemoryLimitExceeded",
    "CpuLimitExceeded",
    "DiskLimitExceeded",
    "ExecutionError",
    "GenerationFailure",
    "ValidationFailure",
    "BuildError",
    "BlockTimeoutError",
    "PersistenceError",
    "CheckpointNotFound",
    "SerializationError",
    "CheckpointIOError",
    "MergeError",
    "BranchNotFound",
    "MergeConflict",
    "NoBranchesAvailable",
    "GenerationError",
    "map_external_error",
    "is_retryable",
]

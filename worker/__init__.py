# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Block execution
# PURPOSE: Resource sampling, chunking and collaborator-driven execution
# CREATED: 16 OCT 2026
# ============================================================================
"""
Worker Module

Runs inside the scheduler's worker pool. Workers never mutate block
state; they report results back to the scheduler.
"""

from worker.resources import ResourceMonitor, PsutilSampler, limit_error
from worker.chunking import AdaptiveChunker, Chunk, reassemble
from worker.contracts import (
    StepRequest,
    StepContent,
    ValidationReport,
    GenerationCollaborator,
    ValidationCollaborator,
    CancellationToken,
    GenerationError,
)
from worker.executor import BlockExecutor, BlockResult

__all__ = [
    "ResourceMonitor",
    "PsutilSampler",
    "limit_error",
    "AdaptiveChunker",
    "Chunk",
    "reassemble",
    "StepRequest",
    "StepContent",
    "ValidationReport",
    "GenerationCollaborator",
    "ValidationCollaborator",
    "CancellationToken",
    "GenerationError",
    "BlockExecutor",
    "BlockResult",
]

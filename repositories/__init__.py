# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Persistence layer
# PURPOSE: Storage for checkpoints and branches
# CREATED: 16 OCT 2026
# ============================================================================
"""
Repositories Module

Provides persistence for orchestration checkpoints and branches.

Usage:
    from repositories import FileCheckpointRepository

    repo = FileCheckpointRepository("/var/lib/orchestrator/checkpoints/run-1")
    store = CheckpointStore(repository=repo, max_checkpoints=10)
"""

from .checkpoint_repo import (
    CheckpointRepository,
    InMemoryCheckpointRepository,
    FileCheckpointRepository,
)
from .branch_repo import BranchRepository

__all__ = [
    "CheckpointRepository",
    "InMemoryCheckpointRepository",
    "FileCheckpointRepository",
    "BranchRepository",
]

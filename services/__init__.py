# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Service layer
# PURPOSE: Checkpoint store, recovery manager and plan loading
# CREATED: 16 OCT 2026
# ============================================================================
"""
Services Module

Services coordinate between repositories and the scheduler.

Usage:
    from services import CheckpointStore, RecoveryManager

    store = CheckpointStore(max_checkpoints=10)
    recovery = RecoveryManager(checkpoint_store=store)
"""

from .checkpoint_service import CheckpointStore, to_jsonable
from .recovery_service import (
    RecoveryManager,
    RecoverableOperation,
    RecoveryOutcome,
    DEFAULT_RECOVERY_POLICIES,
    DEFAULT_POLICY,
    backoff_schedule,
)
from .plan_service import PlanService

__all__ = [
    "CheckpointStore",
    "to_jsonable",
    "RecoveryManager",
    "RecoverableOperation",
    "RecoveryOutcome",
    "DEFAULT_RECOVERY_POLICIES",
    "DEFAULT_POLICY",
    "backoff_schedule",
    "PlanService",
]

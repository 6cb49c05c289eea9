# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Scheduling and branch coordination
# PURPOSE: Drive implementation blocks and explore alternative approaches
# CREATED: 16 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import Scheduler

    scheduler = Scheduler(plan, generator, validator)
    report = scheduler.run()
"""

from .scheduler import Scheduler, BlockEvent, BlockEventType
from .branches import BranchCoordinator, ValidationMetricScorer, compute_overall_score
from .merge import selective_merge, prefer_higher_score

__all__ = [
    "Scheduler",
    "BlockEvent",
    "BlockEventType",
    "BranchCoordinator",
    "ValidationMetricScorer",
    "compute_overall_score",
    "selective_merge",
    "prefer_higher_score",
]

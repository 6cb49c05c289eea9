# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Engine components
# PURPOSE: Dependency graph validation, ordering and priority
# CREATED: 16 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- graph: typed block dependency graph, cycle detection, layering
"""

from orchestrator.engine.graph import (
    DependencyGraph,
    PriorityWeights,
    CycleDetector,
    GraphBuilder,
    BlockGraph,
)

__all__ = [
    "DependencyGraph",
    "PriorityWeights",
    "CycleDetector",
    "GraphBuilder",
    "BlockGraph",
]

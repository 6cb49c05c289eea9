# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 16 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the orchestrator.
"""

from core.config.defaults import (
    CheckpointDefaults,
    ResourceDefaults,
    ChunkingDefaults,
    SchedulerDefaults,
    BranchDefaults,
    OrchestratorDefaults,
    get_defaults,
    reset_defaults,
)
from core.config.loader import OrchestrationConfig, load_orchestration_config

__all__ = [
    "CheckpointDefaults",
    "ResourceDefaults",
    "ChunkingDefaults",
    "SchedulerDefaults",
    "BranchDefaults",
    "OrchestratorDefaults",
    "get_defaults",
    "reset_defaults",
    "OrchestrationConfig",
    "load_orchestration_config",
]

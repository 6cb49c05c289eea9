# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for checkpoints, resources, chunking,
#          scheduling and branch evaluation
# CREATED: 16 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the orchestration core.
These can be overridden via environment variables or a YAML config file
(see core.config.loader).

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def _cpu_count() -> int:
    return os.cpu_count() or 4


@dataclass(frozen=True)
class CheckpointDefaults:
    """
    Defaults for the checkpoint store.

    Retention is count-based: oldest checkpoints are evicted first.
    """
    max_checkpoints: int = 10
    storage_dir: Optional[str] = None  # None = in-memory

    @classmethod
    def from_env(cls) -> "CheckpointDefaults":
        """Create from environment variables."""
        return cls(
            max_checkpoints=int(os.getenv("MAX_CHECKPOINTS", 10)),
            storage_dir=os.getenv("CHECKPOINT_DIR") or None,
        )


@dataclass(frozen=True)
class ResourceDefaults:
    """
    Defaults for the resource monitor.

    Limits are in bytes (memory, disk) and percent (cpu).
    """
    memory_limit_bytes: int = 2 * 1024 * 1024 * 1024  # 2 GB RSS
    cpu_limit_percent: float = 90.0
    disk_limit_bytes: int = 50 * 1024 * 1024 * 1024  # 50 GB
    warning_threshold: float = 0.9
    update_interval_seconds: float = 1.0
    disk_path: str = "."

    @classmethod
    def from_env(cls) -> "ResourceDefaults":
        """Create from environment variables."""
        return cls(
            memory_limit_bytes=int(os.getenv("MEMORY_LIMIT_BYTES", 2 * 1024 * 1024 * 1024)),
            cpu_limit_percent=float(os.getenv("CPU_LIMIT_PERCENT", 90.0)),
            disk_limit_bytes=int(os.getenv("DISK_LIMIT_BYTES", 50 * 1024 * 1024 * 1024)),
            warning_threshold=float(os.getenv("RESOURCE_WARNING_THRESHOLD", 0.9)),
            update_interval_seconds=float(os.getenv("RESOURCE_UPDATE_INTERVAL", 1.0)),
            disk_path=os.getenv("RESOURCE_DISK_PATH", "."),
        )


@dataclass(frozen=True)
class ChunkingDefaults:
    """
    Defaults for adaptive chunking.

    Sizes are in characters. Overlap is carried between consecutive chunks.
    """
    initial_size: int = 4096
    min_size: int = 512
    max_size: int = 64 * 1024
    overlap: int = 128
    adjustment_factor: float = 0.5
    target_memory_percent: float = 80.0
    read_buffer_size: int = 8192

    @classmethod
    def from_env(cls) -> "ChunkingDefaults":
        """Create from environment variables."""
        return cls(
            initial_size=int(os.getenv("CHUNK_INITIAL_SIZE", 4096)),
            min_size=int(os.getenv("CHUNK_MIN_SIZE", 512)),
            max_size=int(os.getenv("CHUNK_MAX_SIZE", 64 * 1024)),
            overlap=int(os.getenv("CHUNK_OVERLAP", 128)),
            target_memory_percent=float(os.getenv("CHUNK_TARGET_MEMORY_PERCENT", 80.0)),
        )


@dataclass(frozen=True)
class SchedulerDefaults:
    """
    Defaults for the dependency-graph scheduler.

    Priority = base + critical path bonus + dependent bonuses + risk * weight.
    """
    max_parallel_paths: int = field(default_factory=_cpu_count)
    timeout_multiplier: float = 2.0
    default_max_retries: int = 3

    # Priority weights
    critical_path_bonus: float = 10.0
    dependent_weight: float = 2.0
    soft_dependent_weight: float = 0.5
    risk_weight: float = 1.5

    @classmethod
    def from_env(cls) -> "SchedulerDefaults":
        """Create from environment variables."""
        return cls(
            max_parallel_paths=int(os.getenv("MAX_PARALLEL_PATHS", _cpu_count())),
            timeout_multiplier=float(os.getenv("BLOCK_TIMEOUT_MULTIPLIER", 2.0)),
            default_max_retries=int(os.getenv("BLOCK_MAX_RETRIES", 3)),
        )


@dataclass(frozen=True)
class BranchDefaults:
    """
    Defaults for branch exploration and evaluation.

    Weights feed the overall score: sum(weight * subscore).
    """
    max_branches: int = 5
    weights: Dict[str, float] = field(default_factory=lambda: {
        "quality": 0.3,
        "functionality": 0.3,
        "performance": 0.2,
        "maintainability": 0.2,
    })
    # Component score gap needed to auto-resolve a conflicting region
    conflict_score_margin: float = 0.05

    @classmethod
    def from_env(cls) -> "BranchDefaults":
        """Create from environment variables."""
        return cls(
            max_branches=int(os.getenv("MAX_BRANCHES", 5)),
            conflict_score_margin=float(os.getenv("CONFLICT_SCORE_MARGIN", 0.05)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class OrchestratorDefaults:
    """Container for all default configurations."""
    checkpoints: CheckpointDefaults = field(default_factory=CheckpointDefaults)
    resources: ResourceDefaults = field(default_factory=ResourceDefaults)
    chunking: ChunkingDefaults = field(default_factory=ChunkingDefaults)
    scheduler: SchedulerDefaults = field(default_factory=SchedulerDefaults)
    branches: BranchDefaults = field(default_factory=BranchDefaults)

    @classmethod
    def from_env(cls) -> "OrchestratorDefaults":
        """Create all defaults from environment variables."""
        return cls(
            checkpoints=CheckpointDefaults.from_env(),
            resources=ResourceDefaults.from_env(),
            chunking=ChunkingDefaults.from_env(),
            scheduler=SchedulerDefaults.from_env(),
            branches=BranchDefaults.from_env(),
        )


_defaults: Optional[OrchestratorDefaults] = None


def get_defaults() -> OrchestratorDefaults:
    """Get process-wide defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = OrchestratorDefaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "CheckpointDefaults",
    "ResourceDefaults",
    "ChunkingDefaults",
    "SchedulerDefaults",
    "BranchDefaults",
    "OrchestratorDefaults",
    "get_defaults",
    "reset_defaults",
]

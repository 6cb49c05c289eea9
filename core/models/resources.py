# ============================================================================
# RESOURCE SAMPLE MODEL
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core model - Resource usage snapshots
# PURPOSE: Usage, limits and high-watermarks reported by ResourceMonitor
# CREATED: 16 OCT 2026
# EXPORTS: ResourceUsage, ResourceLimits, ResourceSample
# DEPENDENCIES: pydantic
# ============================================================================
"""
Resource Sample Models

Memory and disk are measured in bytes, CPU in percent (0-100 per system).
"""

from typing import Dict
from pydantic import BaseModel, Field

from core.contracts import ResourceKind


class ResourceUsage(BaseModel):
    """One measurement of memory / cpu / disk."""
    memory_bytes: int = Field(default=0, ge=0)
    cpu_percent: float = Field(default=0.0, ge=0.0)
    disk_bytes: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    def value(self, kind: ResourceKind) -> float:
        if kind == ResourceKind.MEMORY:
            return float(self.memory_bytes)
        if kind == ResourceKind.CPU:
            return self.cpu_percent
        return float(self.disk_bytes)


class ResourceLimits(BaseModel):
    """Configured ceiling per resource."""
    memory_bytes: int = Field(..., gt=0)
    cpu_percent: float = Field(default=100.0, gt=0.0)
    disk_bytes: int = Field(..., gt=0)

    model_config = {"frozen": True}

    def value(self, kind: ResourceKind) -> float:
        if kind == ResourceKind.MEMORY:
            return float(self.memory_bytes)
        if kind == ResourceKind.CPU:
            return self.cpu_percent
        return float(self.disk_bytes)


class ResourceSample(BaseModel):
    """Timestamped usage plus limits and per-resource high-watermarks."""
    timestamp: float = Field(..., description="Monotonic clock reading")
    usage: ResourceUsage
    limits: ResourceLimits
    high_watermarks: Dict[ResourceKind, float] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def percent(self, kind: ResourceKind) -> float:
        """usage / limit * 100"""
        return self.usage.value(kind) / self.limits.value(kind) * 100.0


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["ResourceUsage", "ResourceLimits", "ResourceSample"]

# ============================================================================
# RESOURCE MONITOR
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Worker - Resource usage sampling
# PURPOSE: Rate-limited memory / cpu / disk sampling against limits
# CREATED: 16 OCT 2026
# EXPORTS: ResourceMonitor, PsutilSampler, limit_error
# DEPENDENCIES: psutil
# ============================================================================
"""
Resource Monitor

Samples process memory (RSS), system CPU and disk usage and classifies
each against its limit:

    EXCEEDED  usage > limit
    WARNING   usage > warning_threshold * limit
    NORMAL    otherwise

Sampling is rate-limited by update_interval on a monotonic clock. One
monitor is created per run and injected into the scheduler and chunker.

Usage:
    monitor = ResourceMonitor.from_defaults()
    statuses = monitor.check_limits()
    if monitor.any_exceeded():
        ...
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import psutil

from core.config import ResourceDefaults, get_defaults
from core.contracts import ResourceKind, ResourceStatus
from core.errors import (
    CpuLimitExceeded,
    DiskLimitExceeded,
    MemoryLimitExceeded,
    ResourceError,
)
from core.models import ResourceLimits, ResourceSample, ResourceUsage

logger = logging.getLogger(__name__)


class PsutilSampler:
    """Reads current usage through psutil."""

    def __init__(self, disk_path: str = "."):
        self.disk_path = disk_path
        self._process = psutil.Process()
        # First cpu_percent(interval=None) call always returns 0.0; prime it
        psutil.cpu_percent(interval=None)

    def __call__(self) -> ResourceUsage:
        return ResourceUsage(
            memory_bytes=self._process.memory_info().rss,
            cpu_percent=psutil.cpu_percent(interval=None),
            disk_bytes=psutil.disk_usage(self.disk_path).used,
        )


_LIMIT_ERRORS = {
    ResourceKind.MEMORY: MemoryLimitExceeded,
    ResourceKind.CPU: CpuLimitExceeded,
    ResourceKind.DISK: DiskLimitExceeded,
}


def limit_error(kind: ResourceKind, sample: Optional[ResourceSample] = None) -> ResourceError:
    """Build the taxonomy error for an exceeded resource."""
    if sample is None:
        return _LIMIT_ERRORS[kind](f"{kind.value} limit exceeded")
    return _LIMIT_ERRORS[kind](
        f"{kind.value} limit exceeded: {sample.percent(kind):.1f}% of limit "
        f"({sample.usage.value(kind):.0f} > {sample.limits.value(kind):.0f})"
    )


class ResourceMonitor:
    """
    Thread-safe resource sampler.

    All counters live behind one lock; snapshot() hands out an immutable
    ResourceSample.
    """

    def __init__(
        self,
        limits: ResourceLimits,
        warning_threshold: float = 0.9,
        update_interval: float = 1.0,
        sampler: Optional[Callable[[], ResourceUsage]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize resource monitor.

        Args:
            limits: Per-resource limits
            warning_threshold: Fraction of a limit that triggers WARNING
            update_interval: Minimum seconds between samples
            sampler: Callable returning ResourceUsage (psutil by default)
            clock: Monotonic clock
        """
        if not 0.0 < warning_threshold <= 1.0:
            raise ValueError(f"warning_threshold must be in (0, 1], got {warning_threshold}")

        self.limits = limits
        self.warning_threshold = warning_threshold
        self.update_interval = update_interval
        self._sampler = sampler or PsutilSampler()
        self._clock = clock
        self._lock = threading.Lock()

        self._usage = ResourceUsage()
        self._last_update: Optional[float] = None
        self._high_watermarks: Dict[ResourceKind, float] = {kind: 0.0 for kind in ResourceKind}

    @classmethod
    def from_defaults(
        cls,
        defaults: Optional[ResourceDefaults] = None,
        **kwargs,
    ) -> "ResourceMonitor":
        defaults = defaults or get_defaults().resources
        limits = ResourceLimits(
            memory_bytes=defaults.memory_limit_bytes,
            cpu_percent=defaults.cpu_limit_percent,
            disk_bytes=defaults.disk_limit_bytes,
        )
        if kwargs.get("sampler") is None:
            kwargs["sampler"] = PsutilSampler(defaults.disk_path)
        return cls(
            limits,
            warning_threshold=defaults.warning_threshold,
            update_interval=defaults.update_interval_seconds,
            **kwargs,
        )

    def update(self, force: bool = False) -> bool:
        """
        Take a sample if the update interval has elapsed.

        Returns:
            True if a new sample was taken
        """
        with self._lock:
            now = self._clock()
            if (
                not force
                and self._last_update is not None
                and now - self._last_update < self.update_interval
            ):
                return False

            usage = self._sampler()
            self._usage = usage
            self._last_update = now
            for kind in ResourceKind:
                value = usage.value(kind)
                if value > self._high_watermarks[kind]:
                    self._high_watermarks[kind] = value
            return True

    def _status(self, kind: ResourceKind) -> ResourceStatus:
        usage = self._usage.value(kind)
        limit = self.limits.value(kind)
        if usage > limit:
            return ResourceStatus.EXCEEDED
        if usage > self.warning_threshold * limit:
            return ResourceStatus.WARNING
        return ResourceStatus.NORMAL

    def check_limits(self) -> Dict[ResourceKind, ResourceStatus]:
        """Sample (rate-limited) and classify every resource."""
        self.update()
        with self._lock:
            statuses = {kind: self._status(kind) for kind in ResourceKind}

        for kind, status in statuses.items():
            if status == ResourceStatus.EXCEEDED:
                logger.warning(f"Resource limit exceeded: {kind.value}")
            elif status == ResourceStatus.WARNING:
                logger.debug(f"Resource near limit: {kind.value}")
        return statuses

    def exceeded_resources(self) -> List[ResourceKind]:
        return [
            kind for kind, status in self.check_limits().items()
            if status == ResourceStatus.EXCEEDED
        ]

    def any_exceeded(self) -> bool:
        return bool(self.exceeded_resources())

    def _percent(self, kind: ResourceKind) -> float:
        with self._lock:
            return self._usage.value(kind) / self.limits.value(kind) * 100.0

    def memory_percent(self) -> float:
        return self._percent(ResourceKind.MEMORY)

    def cpu_percent(self) -> float:
        return self._percent(ResourceKind.CPU)

    def disk_percent(self) -> float:
        return self._percent(ResourceKind.DISK)

    def high_watermark(self, kind: ResourceKind) -> float:
        with self._lock:
            return self._high_watermarks[kind]

    def snapshot(self) -> ResourceSample:
        """Immutable copy of the latest sample."""
        with self._lock:
            return ResourceSample(
                timestamp=self._last_update if self._last_update is not None else self._clock(),
                usage=self._usage,
                limits=self.limits,
                high_watermarks=dict(self._high_watermarks),
            )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["ResourceMonitor", "PsutilSampler", "limit_error"]

# ============================================================================
# RUN REPORT MODEL
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core model - Outcome of one scheduler pass
# PURPOSE: Per-block terminal status and reason, run-level warnings
# CREATED: 16 OCT 2026
# EXPORTS: BlockReport, RunReport
# DEPENDENCIES: pydantic
# ============================================================================
"""
Run Report Model

Every block appears in the report with a terminal status and a reason
string; nothing is silently dropped.
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, computed_field

from core.contracts import BlockStatus


class BlockReport(BaseModel):
    """Terminal state of one block."""
    block_id: str
    status: BlockStatus
    reason: Optional[str] = None
    retry_count: int = 0
    fallback_used: Optional[str] = None
    duration_seconds: Optional[float] = None
    on_critical_path: bool = False


class RunReport(BaseModel):
    """Outcome of Scheduler.run()."""
    run_id: str
    blocks: Dict[str, BlockReport] = Field(default_factory=dict)
    layers: List[List[str]] = Field(default_factory=list)
    execution_order: List[str] = Field(
        default_factory=list,
        description="Order in which blocks reached a terminal state"
    )
    critical_path: List[str] = Field(default_factory=list)
    checkpoint_ids: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @computed_field
    @property
    def succeeded(self) -> bool:
        """True when every block completed (with or without issues)."""
        return bool(self.blocks) and all(
            report.status.is_successful() for report in self.blocks.values()
        )

    def count(self, status: BlockStatus) -> int:
        return sum(1 for report in self.blocks.values() if report.status == status)

    def failed_blocks(self) -> List[str]:
        return sorted(
            block_id for block_id, report in self.blocks.items()
            if report.status == BlockStatus.FAILED
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["BlockReport", "RunReport"]

# ============================================================================
# IMPLEMENTATION BLOCK MODEL
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core model - Unit of work and its state machine
# PURPOSE: Track the definition and runtime state of each block in a run
# LAST_REVIEWED: 16 OCT 2026
# EXPORTS: ExecutionStep, ImplementationBlock, BlockDependency,
#          ImplementationPlan
# DEPENDENCIES: pydantic
# ============================================================================
"""
Implementation Block Model

An ImplementationBlock is created by the external planner and then
mutated only by the Scheduler (single writer). Blocks are never deleted:
failed and deferred blocks stay in the run as historical record.

Key concept:
- definition fields (steps, dependencies, effort) = what to do
- runtime fields (status, artifacts, retry_count) = what happened
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, computed_field, field_validator

from core.contracts import BlockStatus, DependencyKind


class ExecutionStep(BaseModel):
    """One step of a block, handed to the generation collaborator."""
    step_id: str = Field(..., max_length=128)
    description: str = ""
    target: Optional[str] = Field(
        default=None,
        description="File or component path the step produces"
    )
    parameters: Dict[str, Any] = Field(default_factory=dict)


class BlockDependency(BaseModel):
    """
    Directed edge from a block to one of its prerequisites.

    block_id depends on depends_on.
    """
    block_id: str
    depends_on: str
    kind: DependencyKind = Field(default=DependencyKind.REQUIRED_BEFORE)

    @property
    def is_gating(self) -> bool:
        return self.kind.is_gating()


class ImplementationBlock(BaseModel):
    """
    Discrete, independently schedulable unit of work.

    Lifecycle:
        1. Created NOT_STARTED by the planner
        2. READY once gating prerequisites succeed (or BLOCKED)
        3. IN_PROGRESS while a worker runs its steps
        4. COMPLETED / COMPLETED_WITH_ISSUES / FAILED on outcome
        5. FAILED may retry (IN_PROGRESS) or be DEFERRED
    """

    # Definition
    block_id: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    priority: float = Field(default=0.0, description="Base priority score")
    risk_factor: float = Field(default=0.0, ge=0.0, le=10.0)
    security_critical: bool = False
    dependencies: List[str] = Field(
        default_factory=list,
        description="Ordered prerequisite block ids (REQUIRED_BEFORE unless typed)"
    )
    steps: List[ExecutionStep] = Field(default_factory=list)
    estimated_effort_seconds: float = Field(default=60.0, gt=0)
    validation_criteria: List[str] = Field(default_factory=list)

    # Status
    status: BlockStatus = Field(default=BlockStatus.NOT_STARTED)
    status_reason: Optional[str] = Field(default=None, max_length=2000)

    # Retry tracking
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    fallback_used: Optional[str] = None

    # Scheduling annotations (set by the graph)
    on_critical_path: bool = False
    computed_priority: Optional[float] = None

    # Output
    artifacts: Dict[str, str] = Field(default_factory=dict)
    validation_metrics: Dict[str, float] = Field(default_factory=dict)
    validation_issues: List[str] = Field(default_factory=list)

    # Timestamps
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("dependencies")
    @classmethod
    def _unique_dependencies(cls, v: List[str]) -> List[str]:
        """Keep first occurrence order, drop duplicates."""
        seen = set()
        ordered = []
        for dep in v:
            if dep not in seen:
                seen.add(dep)
                ordered.append(dep)
        return ordered

    @computed_field
    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    @computed_field
    @property
    def is_successful(self) -> bool:
        return self.status.is_successful()

    @property
    def execution_duration_seconds(self) -> Optional[float]:
        if not self.started_at:
            return None
        end_time = self.completed_at or datetime.utcnow()
        return (end_time - self.started_at).total_seconds()

    def can_transition_to(self, new_status: BlockStatus) -> bool:
        """
        Validate if a status transition is allowed.

        Valid transitions:
            NOT_STARTED -> READY, BLOCKED, DEFERRED
            BLOCKED -> READY, DEFERRED
            READY -> IN_PROGRESS, BLOCKED, DEFERRED
            IN_PROGRESS -> COMPLETED, COMPLETED_WITH_ISSUES, FAILED
            FAILED -> IN_PROGRESS (retry_count < max_retries), DEFERRED
            COMPLETED, COMPLETED_WITH_ISSUES, DEFERRED -> (none, terminal)
        """
        if self.status == new_status:
            return new_status in (BlockStatus.BLOCKED, BlockStatus.READY)

        allowed = {
            BlockStatus.NOT_STARTED: {BlockStatus.READY, BlockStatus.BLOCKED, BlockStatus.DEFERRED},
            BlockStatus.BLOCKED: {BlockStatus.READY, BlockStatus.DEFERRED},
            BlockStatus.READY: {BlockStatus.IN_PROGRESS, BlockStatus.BLOCKED, BlockStatus.DEFERRED},
            BlockStatus.IN_PROGRESS: {
                BlockStatus.COMPLETED,
                BlockStatus.COMPLETED_WITH_ISSUES,
                BlockStatus.FAILED,
            },
            BlockStatus.FAILED: (
                {BlockStatus.IN_PROGRESS, BlockStatus.DEFERRED}
                if self.retry_count < self.max_retries
                else {BlockStatus.DEFERRED}
            ),
            BlockStatus.COMPLETED: set(),
            BlockStatus.COMPLETED_WITH_ISSUES: set(),
            BlockStatus.DEFERRED: set(),
        }

        return new_status in allowed.get(self.status, set())

    def _transition(self, new_status: BlockStatus, reason: Optional[str] = None) -> None:
        if not self.can_transition_to(new_status):
            raise ValueError(
                f"Block '{self.block_id}': cannot transition from "
                f"{self.status.value} to {new_status.value}"
            )
        self.status = new_status
        if reason is not None:
            self.status_reason = reason[:2000]
        self.updated_at = datetime.utcnow()

    def mark_ready(self) -> None:
        """Mark block as ready (gating prerequisites satisfied)."""
        self._transition(BlockStatus.READY)
        self.status_reason = None

    def mark_blocked(self, reason: str) -> None:
        """Mark block as blocked by an unsatisfied gating prerequisite."""
        self._transition(BlockStatus.BLOCKED, reason)

    def mark_in_progress(self) -> None:
        """Mark block as running on a worker."""
        self._transition(BlockStatus.IN_PROGRESS)
        if self.started_at is None:
            self.started_at = datetime.utcnow()

    def mark_completed(self, artifacts: Optional[Dict[str, str]] = None, reason: str = "completed") -> None:
        """Mark block as completed cleanly."""
        self._transition(BlockStatus.COMPLETED, reason)
        if artifacts is not None:
            self.artifacts = dict(artifacts)
        self.completed_at = datetime.utcnow()

    def mark_completed_with_issues(
        self,
        reason: str,
        artifacts: Optional[Dict[str, str]] = None,
    ) -> None:
        """Mark block as completed with validation issues or via a degraded path."""
        self._transition(BlockStatus.COMPLETED_WITH_ISSUES, reason)
        if artifacts is not None:
            self.artifacts = dict(artifacts)
        self.completed_at = datetime.utcnow()

    def mark_failed(self, reason: str) -> None:
        """Mark block as failed."""
        self._transition(BlockStatus.FAILED, reason or "failed")
        self.completed_at = datetime.utcnow()

    def mark_deferred(self, reason: str) -> None:
        """Set the block aside for this pass (terminal)."""
        self._transition(BlockStatus.DEFERRED, reason or "deferred")
        self.completed_at = self.completed_at or datetime.utcnow()

    def prepare_retry(self) -> bool:
        """
        Move a FAILED block back to IN_PROGRESS for another attempt.

        Returns True if retry is allowed, False if max retries exceeded.
        """
        if self.status != BlockStatus.FAILED:
            return False
        if self.retry_count >= self.max_retries:
            return False

        self.retry_count += 1
        self.status = BlockStatus.IN_PROGRESS
        self.completed_at = None
        self.updated_at = datetime.utcnow()
        return True

    def reset_for_resume(self) -> None:
        """Return a non-terminal block to NOT_STARTED after a restore."""
        if self.status.is_terminal():
            return
        self.status = BlockStatus.NOT_STARTED
        self.status_reason = None
        self.started_at = None
        self.completed_at = None
        self.updated_at = datetime.utcnow()


class ImplementationPlan(BaseModel):
    """Blocks and typed dependencies handed over by the planner."""
    plan_id: str = Field(..., max_length=128)
    name: Optional[str] = None
    description: Optional[str] = None
    blocks: List[ImplementationBlock] = Field(default_factory=list)
    dependencies: List[BlockDependency] = Field(default_factory=list)

    def get_block(self, block_id: str) -> ImplementationBlock:
        for block in self.blocks:
            if block.block_id == block_id:
                return block
        raise KeyError(f"Block '{block_id}' not found in plan '{self.plan_id}'")

    def fresh_copy(self) -> "ImplementationPlan":
        """Deep copy with every block reset to its planned state."""
        copy = self.model_copy(deep=True)
        for block in copy.blocks:
            block.status = BlockStatus.NOT_STARTED
            block.status_reason = None
            block.retry_count = 0
            block.fallback_used = None
            block.artifacts = {}
            block.validation_metrics = {}
            block.validation_issues = []
            block.started_at = None
            block.completed_at = None
        return copy


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ExecutionStep",
    "BlockDependency",
    "ImplementationBlock",
    "ImplementationPlan",
]

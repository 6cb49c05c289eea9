# ============================================================================
# WORKER CONTRACTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Collaborator contracts
# PURPOSE: Interfaces to the generation and validation collaborators
# CREATED: 16 OCT 2026
# EXPORTS: GenerationCollaborator, ValidationCollaborator, StepRequest,
#          StepContent, ValidationReport, CancellationToken, GenerationError
# DEPENDENCIES: pydantic
# ============================================================================
"""
Worker Contracts

The orchestrator never generates content itself. Two collaborators are
injected:

    GenerationCollaborator.generate(StepRequest) -> StepContent
        may raise GenerationError (or anything else; mapped by the executor)

    ValidationCollaborator.validate(block, artifacts) -> ValidationReport
        passed=False means the block's output is rejected

Step request:
{
    "block_id": "parser",
    "step": {"step_id": "s1", "description": "...", "target": "src/parser.py"},
    "approach": {"style": "recursive-descent"},
    "simplified": false,
    "context_chunk": "...",
    "chunk_index": 0,
    "chunk_count": 1
}
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from core.errors import BlockTimeoutError, GenerationError, OrchestrationError
from core.models import ExecutionStep, ImplementationBlock

logger = logging.getLogger(__name__)


# ============================================================================
# MESSAGES
# ============================================================================

class StepRequest(BaseModel):
    """One generation request for one step (or one chunk of a step)."""
    block_id: str
    step: ExecutionStep
    approach: Dict[str, Any] = Field(default_factory=dict)
    simplified: bool = False
    context_chunk: Optional[str] = None
    chunk_index: int = 0
    chunk_count: int = 1


class StepContent(BaseModel):
    """Content produced for a step."""
    target: Optional[str] = Field(
        default=None,
        description="Artifact path (defaults to the step's target)"
    )
    content: str = ""


class ValidationReport(BaseModel):
    """Result of validating a block's artifacts."""
    passed: bool = True
    metrics: Dict[str, float] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)


# ============================================================================
# COLLABORATORS
# ============================================================================

@runtime_checkable
class GenerationCollaborator(Protocol):
    def generate(self, request: StepRequest) -> StepContent:
        ...


@runtime_checkable
class ValidationCollaborator(Protocol):
    def validate(
        self,
        block: ImplementationBlock,
        artifacts: Dict[str, str],
    ) -> ValidationReport:
        ...


# ============================================================================
# CANCELLATION
# ============================================================================

class CancellationToken:
    """
    Per-attempt deadline plus a cooperative cancel.

    Workers call check() between steps and around collaborator calls.
    A cancel raises its error once, then clears.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        label: str = "",
    ):
        self._clock = clock
        self.timeout_seconds = timeout_seconds
        self._deadline = clock() + timeout_seconds if timeout_seconds else None
        self.label = label
        self._error: Optional[OrchestrationError] = None
        self._lock = threading.Lock()

    def cancel(self, error: OrchestrationError) -> bool:
        """Request cancellation. Returns False if one is already pending."""
        with self._lock:
            if self._error is not None:
                return False
            self._error = error
            return True

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._error is not None

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (None = no deadline)."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self) -> None:
        """Raise a pending cancel error, or BlockTimeoutError past the deadline."""
        with self._lock:
            error, self._error = self._error, None
        if error is not None:
            raise error
        if self.expired:
            raise BlockTimeoutError(
                f"{self.label or 'Block'} exceeded its time budget of {self.timeout_seconds:.1f}s"
            )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "StepRequest",
    "StepContent",
    "ValidationReport",
    "GenerationCollaborator",
    "ValidationCollaborator",
    "CancellationToken",
    "GenerationError",
]

# ============================================================================
# RECOVERY POLICY MODEL
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core model - Retry / backoff / fallback configuration
# PURPOSE: Map an error kind to retry count, delay schedule and fallback
# LAST_REVIEWED: 16 OCT 2026
# EXPORTS: BackoffSpec, FallbackAction, RecoveryPolicy
# DEPENDENCIES: pydantic
# ============================================================================
"""
Recovery Policy Models

A RecoveryPolicy answers three questions for one error kind:
- How many times do we retry?          (max_retries)
- How long do we wait before each one? (backoff)
- What do we do when retries run out?  (fallback)

Policies are configured per error kind (see core.errors) and can be
loaded from YAML:

    recovery_policies:
      generation_failure:
        max_retries: 3
        backoff: {type: exponential, initial_seconds: 1, factor: 2, max_seconds: 30}
        fallback: {type: simplify}
"""

from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

from core.contracts import BackoffType, FallbackType


class BackoffSpec(BaseModel):
    """
    Delay schedule between retries.

    FIXED:       delay_seconds
    EXPONENTIAL: initial_seconds * factor ** retry, capped at max_seconds
    LINEAR:      initial_seconds + increment_seconds * retry, capped at max_seconds
    """
    type: BackoffType = Field(default=BackoffType.FIXED)
    delay_seconds: float = Field(default=1.0, ge=0)
    initial_seconds: float = Field(default=1.0, ge=0)
    factor: float = Field(default=2.0, ge=1.0)
    increment_seconds: float = Field(default=1.0, ge=0)
    max_seconds: float = Field(default=60.0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def fixed(cls, delay_seconds: float) -> "BackoffSpec":
        return cls(type=BackoffType.FIXED, delay_seconds=delay_seconds)

    @classmethod
    def exponential(
        cls,
        initial_seconds: float,
        factor: float,
        max_seconds: float,
    ) -> "BackoffSpec":
        return cls(
            type=BackoffType.EXPONENTIAL,
            initial_seconds=initial_seconds,
            factor=factor,
            max_seconds=max_seconds,
        )

    @classmethod
    def linear(
        cls,
        initial_seconds: float,
        increment_seconds: float,
        max_seconds: float,
    ) -> "BackoffSpec":
        return cls(
            type=BackoffType.LINEAR,
            initial_seconds=initial_seconds,
            increment_seconds=increment_seconds,
            max_seconds=max_seconds,
        )

    def delay_for(self, retry: int) -> float:
        """
        Delay before the given retry (0-based).

        Args:
            retry: Retry index (0 = first retry)

        Returns:
            Delay in seconds
        """
        if retry < 0:
            raise ValueError(f"retry index must be >= 0, got {retry}")

        if self.type == BackoffType.FIXED:
            return self.delay_seconds

        if self.type == BackoffType.EXPONENTIAL:
            # Cap before exponentiating far past max to avoid float overflow
            delay = self.initial_seconds
            for _ in range(retry):
                delay *= self.factor
                if delay >= self.max_seconds:
                    return self.max_seconds
            return min(delay, self.max_seconds)

        return min(self.initial_seconds + self.increment_seconds * retry, self.max_seconds)

    def schedule(self, retries: int) -> List[float]:
        """Delays for retries 0..retries-1."""
        return [self.delay_for(i) for i in range(retries)]


class FallbackAction(BaseModel):
    """Terminal recovery behaviour applied once retries are exhausted."""
    type: FallbackType = Field(default=FallbackType.ABORT)
    alternate_id: Optional[str] = Field(
        default=None,
        description="Alternative operation identifier (USE_ALTERNATE only)"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _alternate_requires_id(self) -> "FallbackAction":
        if self.type == FallbackType.USE_ALTERNATE and not self.alternate_id:
            raise ValueError("use_alternate fallback requires alternate_id")
        return self

    @classmethod
    def skip(cls) -> "FallbackAction":
        return cls(type=FallbackType.SKIP)

    @classmethod
    def simplify(cls) -> "FallbackAction":
        return cls(type=FallbackType.SIMPLIFY)

    @classmethod
    def revert(cls) -> "FallbackAction":
        return cls(type=FallbackType.REVERT)

    @classmethod
    def use_alternate(cls, alternate_id: str) -> "FallbackAction":
        return cls(type=FallbackType.USE_ALTERNATE, alternate_id=alternate_id)

    @classmethod
    def subdivide(cls) -> "FallbackAction":
        return cls(type=FallbackType.SUBDIVIDE)

    @classmethod
    def abort(cls) -> "FallbackAction":
        return cls(type=FallbackType.ABORT)


class RecoveryPolicy(BaseModel):
    """Retry / backoff / fallback for one error kind."""
    max_retries: int = Field(default=1, ge=0, le=20)
    backoff: BackoffSpec = Field(default_factory=lambda: BackoffSpec.fixed(1.0))
    fallback: FallbackAction = Field(default_factory=FallbackAction.abort)

    model_config = {"frozen": True}

    def delays(self) -> List[float]:
        """Full delay schedule for this policy."""
        return self.backoff.schedule(self.max_retries)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["BackoffSpec", "FallbackAction", "RecoveryPolicy"]

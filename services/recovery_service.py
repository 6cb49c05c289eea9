# ============================================================================
# RECOVERY SERVICE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Error recovery
# PURPOSE: Policy-driven retry with backoff and a one-shot fallback
# CREATED: 16 OCT 2026
# EXPORTS: RecoveryManager, RecoverableOperation, RecoveryOutcome,
#          DEFAULT_RECOVERY_POLICIES, DEFAULT_POLICY, backoff_schedule
# DEPENDENCIES: pydantic (policy models)
# ============================================================================
"""
Recovery Service

Maps an error kind to a RecoveryPolicy and executes it:

    1. Non-retryable errors (structural, merge, checkpoint load) re-raise
    2. Up to max_retries re-invocations, sleeping backoff.delay_for(i)
       before retry i
    3. On exhaustion, the policy's fallback runs exactly once

Fallback semantics:
    SKIP           outcome.skipped, no propagation
    SIMPLIFY       operation.simplify() once, degraded success
    REVERT         latest checkpoint state returned to the caller
    USE_ALTERNATE  named alternative once, degraded success
    SUBDIVIDE      each sub-unit once, degraded success only if all succeed
    ABORT          the last error re-raises

The manager never mutates block state; the scheduler applies the outcome.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.contracts import FallbackType
from core.errors import OrchestrationError, map_external_error
from core.models import BackoffSpec, FallbackAction, RecoveryPolicy

logger = logging.getLogger(__name__)


# ============================================================================
# POLICIES
# ============================================================================

DEFAULT_POLICY = RecoveryPolicy(
    max_retries=1,
    backoff=BackoffSpec.fixed(1.0),
    fallback=FallbackAction.abort(),
)

DEFAULT_RECOVERY_POLICIES: Dict[str, RecoveryPolicy] = {
    # Resource pressure: retry once, then do less work
    "memory_limit_exceeded": RecoveryPolicy(
        max_retries=1,
        backoff=BackoffSpec.exponential(initial_seconds=2.0, factor=2.0, max_seconds=30.0),
        fallback=FallbackAction.simplify(),
    ),
    "cpu_limit_exceeded": RecoveryPolicy(
        max_retries=1,
        backoff=BackoffSpec.linear(initial_seconds=2.0, increment_seconds=2.0, max_seconds=30.0),
        fallback=FallbackAction.subdivide(),
    ),
    "disk_limit_exceeded": RecoveryPolicy(
        max_retries=0,
        backoff=BackoffSpec.fixed(0.0),
        fallback=FallbackAction.simplify(),
    ),
    # Execution
    "generation_failure": RecoveryPolicy(
        max_retries=3,
        backoff=BackoffSpec.exponential(initial_seconds=1.0, factor=2.0, max_seconds=30.0),
        fallback=FallbackAction.simplify(),
    ),
    "validation_failure": RecoveryPolicy(
        max_retries=2,
        backoff=BackoffSpec.fixed(1.0),
        fallback=FallbackAction.simplify(),
    ),
    "build_error": RecoveryPolicy(
        max_retries=2,
        backoff=BackoffSpec.exponential(initial_seconds=1.0, factor=2.0, max_seconds=10.0),
        fallback=FallbackAction.revert(),
    ),
    "timeout_error": RecoveryPolicy(
        max_retries=1,
        backoff=BackoffSpec.linear(initial_seconds=1.0, increment_seconds=1.0, max_seconds=10.0),
        fallback=FallbackAction.subdivide(),
    ),
    # Checkpoint create
    "serialization_error": RecoveryPolicy(
        max_retries=0,
        backoff=BackoffSpec.fixed(0.0),
        fallback=FallbackAction.skip(),
    ),
    "checkpoint_io_error": RecoveryPolicy(
        max_retries=2,
        backoff=BackoffSpec.fixed(0.5),
        fallback=FallbackAction.skip(),
    ),
}


def backoff_schedule(policy: RecoveryPolicy) -> List[float]:
    """Delays the policy would apply before each retry."""
    return policy.delays()


# ============================================================================
# OPERATION / OUTCOME
# ============================================================================

@dataclass
class RecoverableOperation:
    """
    Something the manager can re-invoke.

    run: the operation itself
    simplify: reduced-scope variant (SIMPLIFY)
    subdivide: returns independent sub-operations (SUBDIVIDE)
    alternates: alternative implementations by id (USE_ALTERNATE)
    """
    name: str
    run: Callable[[], Any]
    simplify: Optional[Callable[[], Any]] = None
    subdivide: Optional[Callable[[], List["RecoverableOperation"]]] = None
    alternates: Dict[str, Callable[[], Any]] = field(default_factory=dict)


@dataclass
class RecoveryOutcome:
    """Result of RecoveryManager.attempt()."""
    succeeded: bool
    result: Any = None
    skipped: bool = False
    degraded: bool = False
    fallback_used: Optional[FallbackType] = None
    retries_used: int = 0
    errors: List[OrchestrationError] = field(default_factory=list)
    delays: List[float] = field(default_factory=list)
    restored_state: Optional[Dict[str, Any]] = None
    checkpoint_id: Optional[str] = None

    @property
    def last_error(self) -> Optional[OrchestrationError]:
        return self.errors[-1] if self.errors else None

    @property
    def reason(self) -> str:
        """Human-readable summary for status reasons."""
        if self.succeeded and not self.degraded:
            return "completed"
        fallback = self.fallback_used.value if self.fallback_used else "none"
        error = self.last_error.message if self.last_error else "no error recorded"
        if self.succeeded:
            return f"completed via {fallback} fallback after: {error}"
        if self.skipped:
            return f"skipped by recovery: {error}"
        return f"recovery exhausted (fallback={fallback}): {error}"


# ============================================================================
# MANAGER
# ============================================================================

class RecoveryManager:
    """
    Policy-driven recovery for resource and execution errors.

    Thread-safe: workers call attempt() concurrently; the alternate
    registry is guarded by a lock and policies are immutable.
    """

    def __init__(
        self,
        policies: Optional[Dict[str, RecoveryPolicy]] = None,
        default_policy: Optional[RecoveryPolicy] = None,
        checkpoint_store: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize recovery manager.

        Args:
            policies: Per-kind overrides on top of DEFAULT_RECOVERY_POLICIES
            default_policy: Used for kinds without a policy
            checkpoint_store: Store consulted by the REVERT fallback
            sleep: Backoff sleep (injectable for tests)
        """
        self.policies: Dict[str, RecoveryPolicy] = dict(DEFAULT_RECOVERY_POLICIES)
        if policies:
            self.policies.update(policies)
        self.default_policy = default_policy or DEFAULT_POLICY
        self.checkpoint_store = checkpoint_store
        self._sleep = sleep
        self._alternates: Dict[str, Callable[[], Any]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Any, **kwargs) -> "RecoveryManager":
        """Build from an OrchestrationConfig's recovery_policies."""
        return cls(policies=dict(config.recovery_policies), **kwargs)

    def register_alternate(self, alternate_id: str, fn: Callable[[], Any]) -> None:
        with self._lock:
            self._alternates[alternate_id] = fn

    def strategy_for(self, error: BaseException) -> RecoveryPolicy:
        """Policy for an error's kind, or the conservative default."""
        mapped = map_external_error(error)
        return self.policies.get(mapped.kind, self.default_policy)

    def attempt(
        self,
        operation: RecoverableOperation,
        error: BaseException,
        retry_limit: Optional[int] = None,
        on_retry: Optional[Callable[[int, OrchestrationError], None]] = None,
        checkpoint_store: Optional[Any] = None,
    ) -> RecoveryOutcome:
        """
        Recover from a failed operation.

        Args:
            operation: The operation that failed
            error: The failure that triggered recovery
            retry_limit: Optional cap below the policy's max_retries
            on_retry: Called as on_retry(retry_index, last_error) before each retry
            checkpoint_store: Overrides the manager's store for REVERT

        Returns:
            RecoveryOutcome

        Raises:
            The mapped error if not retryable, or if the fallback is ABORT
        """
        error = map_external_error(error)
        if not error.retryable:
            logger.info(f"Not recoverable: {operation.name} kind={error.kind}")
            raise error

        policy = self.strategy_for(error)
        max_retries = policy.max_retries
        if retry_limit is not None:
            max_retries = max(0, min(max_retries, retry_limit))

        outcome = RecoveryOutcome(succeeded=False, errors=[error])
        last_error = error

        for retry in range(max_retries):
            delay = policy.backoff.delay_for(retry)
            if on_retry is not None:
                on_retry(retry, last_error)
            outcome.delays.append(delay)
            if delay > 0:
                self._sleep(delay)

            outcome.retries_used = retry + 1
            logger.info(
                f"Retrying {operation.name} ({retry + 1}/{max_retries}) "
                f"after {delay:.2f}s: kind={last_error.kind}"
            )
            try:
                outcome.result = operation.run()
            except Exception as exc:
                last_error = map_external_error(exc)
                outcome.errors.append(last_error)
                if not last_error.retryable:
                    raise last_error
                continue

            outcome.succeeded = True
            return outcome

        logger.warning(
            f"Retries exhausted for {operation.name}: kind={last_error.kind} "
            f"fallback={policy.fallback.type.value}"
        )
        return self._run_fallback(
            operation,
            policy.fallback,
            outcome,
            checkpoint_store if checkpoint_store is not None else self.checkpoint_store,
        )

    def _run_fallback(
        self,
        operation: RecoverableOperation,
        fallback: FallbackAction,
        outcome: RecoveryOutcome,
        checkpoint_store: Optional[Any],
    ) -> RecoveryOutcome:
        outcome.fallback_used = fallback.type
        outcome.result = None

        if fallback.type == FallbackType.ABORT:
            raise outcome.errors[-1]

        if fallback.type == FallbackType.SKIP:
            outcome.skipped = True
            return outcome

        if fallback.type == FallbackType.REVERT:
            latest = checkpoint_store.latest() if checkpoint_store is not None else None
            if latest is None:
                logger.warning(f"Revert requested for {operation.name} but no checkpoint exists")
                return outcome
            # Load failures are fatal and propagate
            outcome.restored_state = checkpoint_store.load(latest.checkpoint_id)
            outcome.checkpoint_id = latest.checkpoint_id
            logger.info(f"Reverted {operation.name} to checkpoint {latest.checkpoint_id}")
            return outcome

        if fallback.type == FallbackType.SIMPLIFY:
            return self._invoke_once(operation.simplify, "simplify", outcome)

        if fallback.type == FallbackType.USE_ALTERNATE:
            fn = operation.alternates.get(fallback.alternate_id)
            if fn is None:
                with self._lock:
                    fn = self._alternates.get(fallback.alternate_id)
            return self._invoke_once(fn, f"alternate '{fallback.alternate_id}'", outcome)

        # SUBDIVIDE
        if operation.subdivide is None:
            logger.warning(f"No subdivision available for {operation.name}")
            return outcome

        units = operation.subdivide()
        results: List[Any] = []
        all_ok = bool(units)
        for unit in units:
            try:
                results.append(unit.run())
            except Exception as exc:
                all_ok = False
                outcome.errors.append(map_external_error(exc))
                logger.warning(f"Sub-unit {unit.name} failed: {exc}")
        outcome.result = results
        outcome.succeeded = all_ok
        outcome.degraded = all_ok
        return outcome

    def _invoke_once(
        self,
        fn: Optional[Callable[[], Any]],
        label: str,
        outcome: RecoveryOutcome,
    ) -> RecoveryOutcome:
        if fn is None:
            logger.warning(f"Fallback {label} is not available")
            return outcome
        try:
            outcome.result = fn()
        except Exception as exc:
            outcome.errors.append(map_external_error(exc))
            logger.warning(f"Fallback {label} failed: {exc}")
            return outcome
        outcome.succeeded = True
        outcome.degraded = True
        return outcome


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "RecoveryManager",
    "RecoverableOperation",
    "RecoveryOutcome",
    "DEFAULT_RECOVERY_POLICIES",
    "DEFAULT_POLICY",
    "backoff_schedule",
]

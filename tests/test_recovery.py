# ============================================================================
# RECOVERY MANAGER TESTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Tests - Retry/backoff/fallback policies
# PURPOSE: Verify backoff schedules, retry accounting and every fallback
# CREATED: 16 OCT 2026
# ============================================================================
"""
Recovery Manager Tests

Covers:
1. Backoff schedules: fixed is constant, exponential and linear are
   monotone and capped
2. Retries stop at the first success; delays follow the schedule
3. The fallback runs exactly once, after retries are exhausted
4. SKIP / SIMPLIFY / REVERT / USE_ALTERNATE / SUBDIVIDE / ABORT
5. Non-retryable errors propagate immediately
6. Policy lookup by error kind, with a conservative default

Run with:
    pytest tests/test_recovery.py -v
"""

from typing import List

import pytest

from core.contracts import BackoffType, FallbackType
from core.errors import (
    BuildError,
    CheckpointNotFound,
    CycleDetected,
    GenerationError,
    GenerationFailure,
    MemoryLimitExceeded,
    ValidationFailure,
)
from core.models import BackoffSpec, FallbackAction, RecoveryPolicy
from services.checkpoint_service import CheckpointStore
from services.recovery_service import (
    DEFAULT_POLICY,
    DEFAULT_RECOVERY_POLICIES,
    RecoverableOperation,
    RecoveryManager,
    backoff_schedule,
)


class Flaky:
    """Callable failing a fixed number of times before returning a value."""

    def __init__(self, failures: int, value="ok", error=None):
        self.failures = failures
        self.value = value
        self.error = error or GenerationFailure("still failing")
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


def manager_with(policy: RecoveryPolicy, sleeps: List[float], kind: str = "generation_failure", **kwargs):
    return RecoveryManager(policies={kind: policy}, sleep=sleeps.append, **kwargs)


# ============================================================================
# BACKOFF
# ============================================================================

class TestBackoff:
    def test_fixed_is_constant(self):
        assert BackoffSpec.fixed(1.5).schedule(4) == [1.5, 1.5, 1.5, 1.5]

    def test_exponential_monotone_and_capped(self):
        schedule = BackoffSpec.exponential(initial_seconds=1.0, factor=2.0, max_seconds=10.0).schedule(6)
        assert schedule == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
        assert schedule == sorted(schedule)

    def test_exponential_large_retry_does_not_overflow(self):
        spec = BackoffSpec.exponential(initial_seconds=1.0, factor=10.0, max_seconds=30.0)
        assert spec.delay_for(5000) == 30.0

    def test_linear_monotone_and_capped(self):
        schedule = BackoffSpec.linear(initial_seconds=2.0, increment_seconds=3.0, max_seconds=10.0).schedule(5)
        assert schedule == [2.0, 5.0, 8.0, 10.0, 10.0]

    def test_negative_retry_rejected(self):
        with pytest.raises(ValueError):
            BackoffSpec.fixed(1.0).delay_for(-1)

    def test_policy_schedule(self):
        policy = DEFAULT_RECOVERY_POLICIES["generation_failure"]
        assert backoff_schedule(policy) == [1.0, 2.0, 4.0]
        assert policy.backoff.type == BackoffType.EXPONENTIAL

    def test_use_alternate_requires_id(self):
        with pytest.raises(ValueError):
            FallbackAction(type=FallbackType.USE_ALTERNATE)


# ============================================================================
# POLICY LOOKUP
# ============================================================================

class TestPolicyLookup:
    def test_known_kind(self):
        manager = RecoveryManager()
        policy = manager.strategy_for(MemoryLimitExceeded("rss"))
        assert policy.fallback.type == FallbackType.SIMPLIFY

    def test_external_error_mapped_before_lookup(self):
        manager = RecoveryManager()
        assert manager.strategy_for(GenerationError("boom")) == DEFAULT_RECOVERY_POLICIES["generation_failure"]
        assert manager.strategy_for(ValueError("bad")) == DEFAULT_RECOVERY_POLICIES["build_error"]

    def test_unknown_kind_uses_default(self):
        class Odd(GenerationFailure):
            kind = "odd_failure"

        assert RecoveryManager().strategy_for(Odd("?")) == DEFAULT_POLICY

    def test_overrides_merge_with_defaults(self):
        custom = RecoveryPolicy(max_retries=7)
        manager = RecoveryManager(policies={"build_error": custom})
        assert manager.strategy_for(BuildError("x")) == custom
        assert manager.strategy_for(ValidationFailure("x")) == DEFAULT_RECOVERY_POLICIES["validation_failure"]


# ============================================================================
# RETRIES
# ============================================================================

class TestRetries:
    def test_succeeds_on_retry(self, sleeps):
        policy = RecoveryPolicy(
            max_retries=3,
            backoff=BackoffSpec.exponential(initial_seconds=1.0, factor=2.0, max_seconds=30.0),
        )
        run = Flaky(failures=1)
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=run), GenerationFailure("first")
        )

        assert outcome.succeeded
        assert not outcome.degraded
        assert outcome.result == "ok"
        assert outcome.retries_used == 2
        assert outcome.delays == [1.0, 2.0]
        assert sleeps == [1.0, 2.0]
        assert outcome.reason == "completed"

    def test_retry_limit_caps_policy(self, sleeps):
        policy = RecoveryPolicy(max_retries=5, backoff=BackoffSpec.fixed(0.5), fallback=FallbackAction.skip())
        run = Flaky(failures=10)
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=run), GenerationFailure("first"), retry_limit=2
        )

        assert run.calls == 2
        assert outcome.retries_used == 2
        assert outcome.skipped

    def test_zero_delay_does_not_sleep(self, sleeps):
        policy = RecoveryPolicy(max_retries=2, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.skip())
        manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )
        assert sleeps == []

    def test_on_retry_called_before_each_retry(self, sleeps):
        policy = RecoveryPolicy(max_retries=2, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.skip())
        seen = []
        manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)),
            GenerationFailure("first"),
            on_retry=lambda index, error: seen.append((index, error.message)),
        )
        assert seen == [(0, "first"), (1, "still failing")]

    def test_errors_recorded_in_order(self, sleeps):
        policy = RecoveryPolicy(max_retries=1, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.skip())
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )
        assert [e.message for e in outcome.errors] == ["first", "still failing"]
        assert outcome.last_error.message == "still failing"

    def test_non_retryable_raises_immediately(self, sleeps):
        run = Flaky(failures=0)
        with pytest.raises(CycleDetected):
            RecoveryManager(sleep=sleeps.append).attempt(
                RecoverableOperation("op", run=run), CycleDetected(["A", "B", "A"])
            )
        assert run.calls == 0

    def test_non_retryable_during_retry_propagates(self, sleeps):
        policy = RecoveryPolicy(max_retries=3, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.skip())
        run = Flaky(failures=1, error=CheckpointNotFound("gone"))
        with pytest.raises(CheckpointNotFound):
            manager_with(policy, sleeps).attempt(
                RecoverableOperation("op", run=run), GenerationFailure("first")
            )

    def test_external_exception_mapped(self, sleeps):
        policy = RecoveryPolicy(max_retries=1, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.skip())
        outcome = manager_with(policy, sleeps, kind="build_error").attempt(
            RecoverableOperation("op", run=Flaky(failures=10, error=KeyError("x"))),
            KeyError("x"),
        )
        assert all(isinstance(error, BuildError) for error in outcome.errors)


# ============================================================================
# FALLBACKS
# ============================================================================

class TestFallbacks:
    def test_fallback_invoked_exactly_once(self, sleeps):
        policy = RecoveryPolicy(max_retries=2, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.simplify())
        simplify = Flaky(failures=0, value="small")
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10), simplify=simplify),
            GenerationFailure("first"),
        )

        assert simplify.calls == 1
        assert outcome.succeeded
        assert outcome.degraded
        assert outcome.result == "small"
        assert outcome.fallback_used == FallbackType.SIMPLIFY
        assert outcome.reason == "completed via simplify fallback after: still failing"

    def test_fallback_failure_not_retried(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.simplify())
        simplify = Flaky(failures=10)
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10), simplify=simplify),
            GenerationFailure("first"),
        )

        assert simplify.calls == 1
        assert not outcome.succeeded
        assert outcome.reason.startswith("recovery exhausted (fallback=simplify)")

    def test_missing_simplify(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.simplify())
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )
        assert not outcome.succeeded
        assert outcome.fallback_used == FallbackType.SIMPLIFY

    def test_skip(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.skip())
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )
        assert outcome.skipped
        assert not outcome.succeeded
        assert outcome.reason == "skipped by recovery: first"

    def test_abort_raises_last_error(self, sleeps):
        policy = RecoveryPolicy(max_retries=1, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.abort())
        with pytest.raises(GenerationFailure) as exc_info:
            manager_with(policy, sleeps).attempt(
                RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
            )
        assert exc_info.value.message == "still failing"

    def test_revert_loads_latest_checkpoint(self, sleeps):
        store = CheckpointStore()
        store.create({"blocks": {}}, "before_block")
        latest = store.create({"blocks": {"A": {"artifacts": {"a.py": "old"}}}}, "before_block")

        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.revert())
        outcome = manager_with(policy, sleeps, checkpoint_store=store).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )

        assert not outcome.succeeded
        assert outcome.fallback_used == FallbackType.REVERT
        assert outcome.checkpoint_id == latest
        assert outcome.restored_state["blocks"]["A"]["artifacts"] == {"a.py": "old"}

    def test_revert_store_argument_overrides_manager(self, sleeps):
        empty = CheckpointStore()
        store = CheckpointStore()
        checkpoint_id = store.create({}, "manual")

        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.revert())
        outcome = manager_with(policy, sleeps, checkpoint_store=empty).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)),
            GenerationFailure("first"),
            checkpoint_store=store,
        )
        assert outcome.checkpoint_id == checkpoint_id

    def test_revert_without_checkpoint(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.revert())
        outcome = manager_with(policy, sleeps, checkpoint_store=CheckpointStore()).attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )
        assert outcome.restored_state is None
        assert not outcome.succeeded

    def test_use_alternate_from_operation(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.use_alternate("safe"))
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10), alternates={"safe": lambda: "safe result"}),
            GenerationFailure("first"),
        )
        assert outcome.succeeded
        assert outcome.degraded
        assert outcome.result == "safe result"

    def test_use_alternate_from_registry(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.use_alternate("vendored"))
        manager = manager_with(policy, sleeps)
        manager.register_alternate("vendored", lambda: "registered")
        outcome = manager.attempt(
            RecoverableOperation("op", run=Flaky(failures=10)), GenerationFailure("first")
        )
        assert outcome.result == "registered"

    def test_subdivide_all_units_succeed(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.subdivide())
        units = [RecoverableOperation(f"unit-{n}", run=lambda n=n: n * 10) for n in range(3)]
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10), subdivide=lambda: units),
            GenerationFailure("first"),
        )
        assert outcome.succeeded
        assert outcome.degraded
        assert outcome.result == [0, 10, 20]

    def test_subdivide_partial_failure(self, sleeps):
        policy = RecoveryPolicy(max_retries=0, fallback=FallbackAction.subdivide())
        units = [
            RecoverableOperation("good", run=lambda: "ok"),
            RecoverableOperation("bad", run=Flaky(failures=10)),
        ]
        outcome = manager_with(policy, sleeps).attempt(
            RecoverableOperation("op", run=Flaky(failures=10), subdivide=lambda: units),
            GenerationFailure("first"),
        )
        assert not outcome.succeeded
        assert outcome.result == ["ok"]
        assert outcome.last_error.message == "still failing"

    def test_policy_chosen_from_initial_error(self, sleeps):
        manager = RecoveryManager(
            policies={
                "generation_failure": RecoveryPolicy(
                    max_retries=1, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.skip()
                ),
                "build_error": RecoveryPolicy(
                    max_retries=5, backoff=BackoffSpec.fixed(0.0), fallback=FallbackAction.abort()
                ),
            },
            sleep=sleeps.append,
        )
        run = Flaky(failures=10, error=BuildError("different kind"))
        outcome = manager.attempt(RecoverableOperation("op", run=run), GenerationFailure("first"))

        assert run.calls == 1
        assert outcome.skipped

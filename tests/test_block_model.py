# ============================================================================
# BLOCK MODEL TESTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Tests - Block state machine and plan helpers
# PURPOSE: Verify status transitions, retry bookkeeping, resume reset and
#          plan copies
# CREATED: 16 OCT 2026
# ============================================================================
"""
Block Model Tests

Covers:
1. Valid and invalid status transitions
2. prepare_retry() honours max_retries
3. reset_for_resume() only touches non-terminal blocks
4. Dependency lists are de-duplicated in order
5. ImplementationPlan.get_block / fresh_copy

Run with:
    pytest tests/test_block_model.py -v
"""

import pytest

from core.contracts import BlockStatus, DependencyKind
from core.models import BlockDependency, ImplementationPlan

from fakes import make_block


def running_block(**kwargs):
    block = make_block("A", **kwargs)
    block.mark_ready()
    block.mark_in_progress()
    return block


class TestStatusHelpers:
    @pytest.mark.parametrize("status, terminal, successful", [
        (BlockStatus.NOT_STARTED, False, False),
        (BlockStatus.READY, False, False),
        (BlockStatus.BLOCKED, False, False),
        (BlockStatus.IN_PROGRESS, False, False),
        (BlockStatus.COMPLETED, True, True),
        (BlockStatus.COMPLETED_WITH_ISSUES, True, True),
        (BlockStatus.FAILED, True, False),
        (BlockStatus.DEFERRED, True, False),
    ])
    def test_terminal_and_successful(self, status, terminal, successful):
        assert status.is_terminal() is terminal
        assert status.is_successful() is successful

    @pytest.mark.parametrize("kind, gating", [
        (DependencyKind.REQUIRED_BEFORE, True),
        (DependencyKind.REQUIRED_FOR_COMPLETION, True),
        (DependencyKind.INFLUENCES, False),
        (DependencyKind.PROVIDES_INFORMATION, False),
        (DependencyKind.ALTERNATIVE, False),
    ])
    def test_gating_kinds(self, kind, gating):
        assert BlockDependency(block_id="B", depends_on="A", kind=kind).is_gating is gating


class TestTransitions:
    def test_happy_path(self):
        block = running_block()
        assert block.started_at is not None
        block.mark_completed({"src/a.py": "x"})

        assert block.status == BlockStatus.COMPLETED
        assert block.artifacts == {"src/a.py": "x"}
        assert block.completed_at is not None
        assert block.is_terminal

    def test_completed_with_issues(self):
        block = running_block()
        block.mark_completed_with_issues("simplified", {"src/a.py": "y"})
        assert block.status == BlockStatus.COMPLETED_WITH_ISSUES
        assert block.status_reason == "simplified"
        assert block.is_successful

    def test_blocked_then_ready(self):
        block = make_block("A")
        block.mark_blocked("waiting on Z")
        block.mark_blocked("still waiting on Z")
        assert block.status_reason == "still waiting on Z"
        block.mark_ready()
        assert block.status == BlockStatus.READY
        assert block.status_reason is None

    @pytest.mark.parametrize("source, target", [
        (BlockStatus.NOT_STARTED, BlockStatus.IN_PROGRESS),
        (BlockStatus.NOT_STARTED, BlockStatus.COMPLETED),
        (BlockStatus.BLOCKED, BlockStatus.IN_PROGRESS),
        (BlockStatus.COMPLETED, BlockStatus.IN_PROGRESS),
        (BlockStatus.DEFERRED, BlockStatus.READY),
        (BlockStatus.IN_PROGRESS, BlockStatus.DEFERRED),
        (BlockStatus.IN_PROGRESS, BlockStatus.IN_PROGRESS),
    ])
    def test_invalid_transitions(self, source, target):
        block = make_block("A", status=source)
        assert not block.can_transition_to(target)

    def test_invalid_transition_raises(self):
        block = make_block("A", status=BlockStatus.COMPLETED)
        with pytest.raises(ValueError, match="cannot transition from completed to failed"):
            block.mark_failed("late")

    def test_deferred_from_failed(self):
        block = running_block()
        block.mark_failed("boom")
        block.mark_deferred("prerequisite failed")
        assert block.status == BlockStatus.DEFERRED

    def test_reason_truncated(self):
        block = running_block()
        block.mark_failed("x" * 5000)
        assert len(block.status_reason) == 2000


class TestRetry:
    def test_prepare_retry_counts(self):
        block = running_block(max_retries=2)
        block.mark_failed("first")
        assert block.prepare_retry()
        assert block.status == BlockStatus.IN_PROGRESS
        assert block.retry_count == 1
        assert block.completed_at is None

        block.mark_failed("second")
        assert block.prepare_retry()
        block.mark_failed("third")
        assert not block.prepare_retry()
        assert block.status == BlockStatus.FAILED
        assert not block.can_transition_to(BlockStatus.IN_PROGRESS)

    def test_prepare_retry_requires_failed(self):
        assert not running_block().prepare_retry()


class TestResume:
    @pytest.mark.parametrize("status", [
        BlockStatus.READY,
        BlockStatus.BLOCKED,
        BlockStatus.IN_PROGRESS,
    ])
    def test_non_terminal_reset(self, status):
        block = make_block("A", status=status, status_reason="interrupted")
        block.reset_for_resume()
        assert block.status == BlockStatus.NOT_STARTED
        assert block.status_reason is None

    def test_terminal_untouched(self):
        block = make_block("A", status=BlockStatus.COMPLETED, artifacts={"a": "1"})
        block.reset_for_resume()
        assert block.status == BlockStatus.COMPLETED
        assert block.artifacts == {"a": "1"}


class TestPlan:
    def test_dependencies_deduplicated(self):
        block = make_block("C", ["A", "B", "A", "B"])
        assert block.dependencies == ["A", "B"]

    def test_get_block(self, diamond_plan):
        assert diamond_plan.get_block("C").dependencies == ["A"]
        with pytest.raises(KeyError):
            diamond_plan.get_block("Z")

    def test_fresh_copy_resets_runtime_state(self):
        block = running_block()
        block.mark_completed({"src/a.py": "x"})
        plan = ImplementationPlan(plan_id="p", blocks=[block])

        copy = plan.fresh_copy()
        copied = copy.get_block("A")
        assert copied.status == BlockStatus.NOT_STARTED
        assert copied.artifacts == {}
        assert copied.steps == block.steps
        assert block.status == BlockStatus.COMPLETED

    def test_effort_must_be_positive(self):
        with pytest.raises(ValueError):
            make_block("A", effort=0)

    def test_risk_bounds(self):
        with pytest.raises(ValueError):
            make_block("A", risk=11)

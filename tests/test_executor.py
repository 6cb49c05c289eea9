# ============================================================================
# BLOCK EXECUTOR TESTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Tests - Step execution against collaborators
# PURPOSE: Verify artifact collection, validation, chunked contexts,
#          deadlines, cancellation and recoverable operations
# CREATED: 16 OCT 2026
# ============================================================================
"""
Block Executor Tests

Covers:
1. One generation request per step; artifact path resolution
2. Validation failures raise ValidationFailure with issues
3. Collaborator exceptions are mapped into the error taxonomy
4. Large string contexts are split with the chunker
5. Deadlines and cooperative cancellation via CancellationToken
6. make_operation(): run / simplify / subdivide / alternates

Run with:
    pytest tests/test_executor.py -v
"""

import concurrent.futures

import pytest

from core.errors import (
    BlockTimeoutError,
    BuildError,
    GenerationFailure,
    MemoryLimitExceeded,
    ValidationFailure,
)
from core.models import ExecutionStep
from worker.chunking import AdaptiveChunker
from worker.contracts import (
    CancellationToken,
    GenerationCollaborator,
    StepContent,
    ValidationCollaborator,
)
from worker.executor import BlockExecutor, BlockResult

from fakes import FakeGenerator, FakeValidator, make_block


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TargetingGenerator(FakeGenerator):
    """Names its own artifact path."""

    def generate(self, request):
        content = super().generate(request)
        return StepContent(target=f"gen/{request.step.step_id}.py", content=content.content)


@pytest.fixture
def executor(generator, validator):
    return BlockExecutor(generator, validator)


# ============================================================================
# EXECUTION
# ============================================================================

class TestExecute:
    def test_fakes_satisfy_protocols(self, generator, validator):
        assert isinstance(generator, GenerationCollaborator)
        assert isinstance(validator, ValidationCollaborator)

    def test_one_request_per_step(self, executor, generator):
        block = make_block("A", steps=3)
        result = executor.execute(block, CancellationToken())

        assert [request.step.step_id for request in generator.calls] == ["s0", "s1", "s2"]
        assert result.steps_run == ["s0", "s1", "s2"]
        assert result.artifacts == {
            "src/a_0.py": "# A:s0\n",
            "src/a_1.py": "# A:s1\n",
            "src/a_2.py": "# A:s2\n",
        }

    def test_generator_target_wins(self, validator):
        executor = BlockExecutor(TargetingGenerator(), validator)
        result = executor.execute(make_block("A"), CancellationToken())
        assert list(result.artifacts) == ["gen/s0.py"]

    def test_default_artifact_path(self, executor):
        block = make_block("A")
        block.steps = [ExecutionStep(step_id="notes")]
        result = executor.execute(block, CancellationToken())
        assert list(result.artifacts) == ["A/notes"]

    def test_validation_metrics_and_issues(self, generator):
        validator = FakeValidator(metrics={"A": {"quality": 0.8}}, issues={"A": ["long function"]})
        result = BlockExecutor(generator, validator).execute(make_block("A"), CancellationToken())
        assert result.metrics == {"quality": 0.8}
        assert result.issues == ["long function"]

    def test_validation_failure(self, generator):
        validator = FakeValidator(failing={"A"})
        with pytest.raises(ValidationFailure) as exc_info:
            BlockExecutor(generator, validator).execute(make_block("A"), CancellationToken())
        assert exc_info.value.issues == ["rejected"]

    def test_skip_validation(self, generator):
        validator = FakeValidator(failing={"A"})
        result = BlockExecutor(generator, validator).execute(
            make_block("A"), CancellationToken(), validate=False
        )
        assert result.validation is None
        assert validator.calls == []

    def test_simplified_and_approach_forwarded(self, executor, generator):
        executor.execute(make_block("A"), CancellationToken(), approach={"k": 1}, simplified=True)
        assert generator.calls[0].simplified is True
        assert generator.calls[0].approach == {"k": 1}

    def test_generation_error_mapped(self, validator):
        executor = BlockExecutor(FakeGenerator(failures={"A": 1}), validator)
        with pytest.raises(GenerationFailure) as exc_info:
            executor.execute(make_block("A"), CancellationToken())
        assert isinstance(exc_info.value.__cause__, Exception)

    def test_unknown_exception_mapped_to_build_error(self, validator):
        executor = BlockExecutor(FakeGenerator(failures={"A": 1}, exception=OSError), validator)
        with pytest.raises(BuildError):
            executor.execute(make_block("A"), CancellationToken())

    def test_combine_results(self):
        combined = BlockResult.combine("A", [
            BlockResult("A", artifacts={"x": "1"}, steps_run=["s0"]),
            BlockResult("A", artifacts={"x": "2", "y": "3"}, steps_run=["s1"]),
        ])
        assert combined.artifacts == {"x": "2", "y": "3"}
        assert combined.steps_run == ["s0", "s1"]


# ============================================================================
# CHUNKED CONTEXT
# ============================================================================

class TestChunkedContext:
    def test_large_context_split(self, generator, validator):
        context = "".join(f"line {n}\n" for n in range(100))
        block = make_block("A")
        block.steps[0].parameters["context"] = context
        chunker = AdaptiveChunker(initial_size=100, min_size=10, max_size=1000, overlap=0)

        result = BlockExecutor(generator, validator, chunker=chunker).execute(block, CancellationToken())

        requests = generator.calls
        assert len(requests) > 1
        assert all(r.chunk_count == len(requests) for r in requests)
        assert [r.chunk_index for r in requests] == list(range(len(requests)))
        assert "".join(r.context_chunk for r in requests) == context
        assert result.artifacts["src/a_0.py"] == "# A:s0\n" * len(requests)

    def test_without_chunker_single_request(self, executor, generator):
        block = make_block("A")
        block.steps[0].parameters["context"] = "x\n" * 10000
        executor.execute(block, CancellationToken())
        assert len(generator.calls) == 1
        assert generator.calls[0].context_chunk is None


# ============================================================================
# DEADLINES AND CANCELLATION
# ============================================================================

class TestCancellationToken:
    def test_no_deadline(self):
        token = CancellationToken()
        assert token.remaining() is None
        assert not token.expired
        token.check()

    def test_deadline(self):
        clock = ManualClock()
        token = CancellationToken(timeout_seconds=5.0, clock=clock, label="Block 'A'")
        assert token.remaining() == 5.0
        clock.now = 6.0
        assert token.expired
        with pytest.raises(BlockTimeoutError) as exc_info:
            token.check()
        assert "Block 'A' exceeded its time budget" in str(exc_info.value)

    def test_cancel_raises_once(self):
        token = CancellationToken()
        assert token.cancel(MemoryLimitExceeded("rss")) is True
        assert token.cancel(MemoryLimitExceeded("again")) is False
        assert token.cancel_requested
        with pytest.raises(MemoryLimitExceeded):
            token.check()
        token.check()
        assert not token.cancel_requested


class TestDeadlines:
    def test_slow_collaborator_times_out(self, validator):
        generator = FakeGenerator(delays={"A": 0.5})
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            executor = BlockExecutor(generator, validator, call_pool=pool)
            with pytest.raises(BlockTimeoutError):
                executor.execute(make_block("A"), CancellationToken(timeout_seconds=0.05))

    def test_expired_token_stops_before_generation(self, executor, generator):
        clock = ManualClock()
        token = CancellationToken(timeout_seconds=1.0, clock=clock)
        clock.now = 2.0
        with pytest.raises(BlockTimeoutError):
            executor.execute(make_block("A"), token)
        assert generator.calls == []

    def test_cancelled_token_stops_execution(self, executor, generator):
        token = CancellationToken()
        token.cancel(MemoryLimitExceeded("rss"))
        with pytest.raises(MemoryLimitExceeded):
            executor.execute(make_block("A", steps=2), token)
        assert generator.calls == []


# ============================================================================
# RECOVERABLE OPERATIONS
# ============================================================================

class TestMakeOperation:
    def test_fresh_token_per_invocation(self, executor):
        tokens = []

        def factory():
            tokens.append(CancellationToken())
            return tokens[-1]

        operation = executor.make_operation(make_block("A"), factory)
        operation.run()
        operation.simplify()
        assert len(tokens) == 2

    def test_simplify_sets_flag(self, executor, generator):
        operation = executor.make_operation(make_block("A"), CancellationToken)
        result = operation.simplify()
        assert result.simplified
        assert generator.calls[-1].simplified

    def test_subdivide_one_unit_per_step(self, generator):
        validator = FakeValidator(failing={"A"})
        executor = BlockExecutor(generator, validator)
        operation = executor.make_operation(make_block("A", steps=3), CancellationToken)

        units = operation.subdivide()
        results = [unit.run() for unit in units]

        assert [unit.name for unit in units] == ["A:s0", "A:s1", "A:s2"]
        assert [list(r.artifacts) for r in results] == [["src/a_0.py"], ["src/a_1.py"], ["src/a_2.py"]]
        assert validator.calls == []

    def test_alternate_relabelled(self, executor):
        operation = executor.make_operation(
            make_block("A"), CancellationToken, alternates={"B": make_block("B")}
        )
        result = operation.alternates["B"]()
        assert result.block_id == "A"
        assert result.artifacts == {"src/b_0.py": "# B:s0\n"}

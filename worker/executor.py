# ============================================================================
# BLOCK EXECUTOR
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Worker - Step execution engine
# PURPOSE: Run a block's steps through the collaborators with a time budget
# CREATED: 16 OCT 2026
# EXPORTS: BlockExecutor, BlockResult
# DEPENDENCIES: concurrent.futures
# ============================================================================
"""
Block Executor

Executes one block attempt:
- Steps run in declared order, one generation request per step
- Large "context" parameters are split by the chunker, one request per chunk
- Artifacts are validated once all steps have run
- Every collaborator call waits on a future bounded by the attempt's
  remaining time; expiry raises BlockTimeoutError
- Collaborator exceptions are mapped into the error taxonomy here

The executor reads a private copy of the block and never mutates
scheduler state. make_operation() packages an attempt as a
RecoverableOperation so the RecoveryManager can retry, simplify or
subdivide it.
"""

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.errors import BlockTimeoutError, ValidationFailure, map_external_error
from core.models import ExecutionStep, ImplementationBlock
from services.recovery_service import RecoverableOperation
from worker.chunking import AdaptiveChunker
from worker.contracts import (
    CancellationToken,
    GenerationCollaborator,
    StepContent,
    StepRequest,
    ValidationCollaborator,
    ValidationReport,
)

logger = logging.getLogger(__name__)

CONTEXT_PARAMETER = "context"


@dataclass
class BlockResult:
    """Output of one successful block attempt."""
    block_id: str
    artifacts: Dict[str, str] = field(default_factory=dict)
    validation: Optional[ValidationReport] = None
    steps_run: List[str] = field(default_factory=list)
    simplified: bool = False

    @property
    def issues(self) -> List[str]:
        return list(self.validation.issues) if self.validation else []

    @property
    def metrics(self) -> Dict[str, float]:
        return dict(self.validation.metrics) if self.validation else {}

    @classmethod
    def combine(cls, block_id: str, results: Sequence["BlockResult"]) -> "BlockResult":
        """Merge sub-unit results in order (later artifacts win)."""
        combined = cls(block_id=block_id)
        for result in results:
            combined.artifacts.update(result.artifacts)
            combined.steps_run.extend(result.steps_run)
        return combined


class BlockExecutor:
    """
    Executes implementation blocks.

    Takes a block and a cancellation token, returns BlockResult or raises
    an OrchestrationError.
    """

    def __init__(
        self,
        generator: GenerationCollaborator,
        validator: ValidationCollaborator,
        chunker: Optional[AdaptiveChunker] = None,
        call_pool: Optional[concurrent.futures.ThreadPoolExecutor] = None,
    ):
        """
        Initialize executor.

        Args:
            generator: Generation collaborator
            validator: Validation collaborator
            chunker: Splits large context parameters (optional)
            call_pool: Pool for deadline-bounded collaborator calls
        """
        self.generator = generator
        self.validator = validator
        self.chunker = chunker
        self._call_pool = call_pool

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    def _call(self, token: CancellationToken, fn: Callable[..., Any], *args: Any) -> Any:
        """Invoke a collaborator within the token's remaining time."""
        token.check()
        remaining = token.remaining()

        try:
            if self._call_pool is None or remaining is None:
                result = fn(*args)
            else:
                future = self._call_pool.submit(fn, *args)
                try:
                    result = future.result(timeout=remaining)
                except concurrent.futures.TimeoutError:
                    future.cancel()
                    raise BlockTimeoutError(
                        f"{token.label or 'Collaborator call'} exceeded its time budget "
                        f"of {token.timeout_seconds:.1f}s"
                    )
        except Exception as exc:
            raise map_external_error(exc) from exc

        token.check()
        return result

    def _generate(
        self,
        block: ImplementationBlock,
        step: ExecutionStep,
        token: CancellationToken,
        approach: Dict[str, Any],
        simplified: bool,
    ) -> StepContent:
        context = step.parameters.get(CONTEXT_PARAMETER)
        if not isinstance(context, str) or self.chunker is None:
            request = StepRequest(
                block_id=block.block_id,
                step=step,
                approach=approach,
                simplified=simplified,
            )
            return self._call(token, self.generator.generate, request)

        chunks = self.chunker.chunk(context)
        parts: List[str] = []
        target: Optional[str] = None
        for chunk in chunks:
            request = StepRequest(
                block_id=block.block_id,
                step=step,
                approach=approach,
                simplified=simplified,
                context_chunk=chunk.content,
                chunk_index=chunk.index,
                chunk_count=len(chunks),
            )
            content = self._call(token, self.generator.generate, request)
            target = target or content.target
            parts.append(content.content)

        if len(chunks) > 1:
            logger.debug(f"Block {block.block_id} step {step.step_id}: {len(chunks)} context chunks")
        return StepContent(target=target, content="".join(parts))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        block: ImplementationBlock,
        token: CancellationToken,
        approach: Optional[Dict[str, Any]] = None,
        simplified: bool = False,
        steps: Optional[Sequence[ExecutionStep]] = None,
        validate: bool = True,
    ) -> BlockResult:
        """
        Execute a block attempt.

        Args:
            block: Private copy of the block
            token: Deadline and cancel signal for this attempt
            approach: Branch approach parameters
            simplified: Ask the generator for a reduced-scope result
            steps: Subset of steps to run (default: all)
            validate: Run the validation collaborator afterwards

        Returns:
            BlockResult

        Raises:
            OrchestrationError (ValidationFailure if validation did not pass)
        """
        approach = approach or {}
        steps = list(block.steps if steps is None else steps)
        result = BlockResult(block_id=block.block_id, simplified=simplified)

        for step in steps:
            token.check()
            content = self._generate(block, step, token, approach, simplified)
            path = content.target or step.target or f"{block.block_id}/{step.step_id}"
            result.artifacts[path] = content.content
            result.steps_run.append(step.step_id)

        if not validate:
            return result

        report = self._call(token, self.validator.validate, block, dict(result.artifacts))
        result.validation = report
        if not report.passed:
            raise ValidationFailure(
                f"Validation failed for block '{block.block_id}': "
                f"{'; '.join(report.issues) or 'no issues reported'}",
                issues=report.issues,
            )
        return result

    def make_operation(
        self,
        block: ImplementationBlock,
        token_factory: Callable[[], CancellationToken],
        approach: Optional[Dict[str, Any]] = None,
        alternates: Optional[Dict[str, ImplementationBlock]] = None,
    ) -> RecoverableOperation:
        """
        Package a block as a RecoverableOperation.

        Each invocation gets a fresh token, so every attempt has its own
        deadline.

        Args:
            block: Private copy of the block
            token_factory: Creates (and registers) a token per attempt
            approach: Branch approach parameters
            alternates: Blocks that may stand in for this one, by id
        """

        def run() -> BlockResult:
            return self.execute(block, token_factory(), approach)

        def simplify() -> BlockResult:
            return self.execute(block, token_factory(), approach, simplified=True)

        def unit(step: ExecutionStep) -> RecoverableOperation:
            return RecoverableOperation(
                name=f"{block.block_id}:{step.step_id}",
                run=lambda: self.execute(
                    block, token_factory(), approach, steps=[step], validate=False
                ),
            )

        def subdivide() -> List[RecoverableOperation]:
            return [unit(step) for step in block.steps]

        def alternate(substitute: ImplementationBlock) -> Callable[[], BlockResult]:
            def run_alternate() -> BlockResult:
                outcome = self.execute(substitute, token_factory(), approach)
                outcome.block_id = block.block_id
                return outcome
            return run_alternate

        return RecoverableOperation(
            name=block.block_id,
            run=run,
            simplify=simplify,
            subdivide=subdivide,
            alternates={
                alternate_id: alternate(substitute)
                for alternate_id, substitute in (alternates or {}).items()
            },
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["BlockExecutor", "BlockResult"]

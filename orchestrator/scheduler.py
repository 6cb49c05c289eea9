# ============================================================================
# BLOCK SCHEDULER
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Dependency-aware parallel execution
# PURPOSE: Drive implementation blocks to terminal states, layer by layer
# CREATED: 16 OCT 2026
# EXPORTS: Scheduler, BlockEvent, BlockEventType
# DEPENDENCIES: concurrent.futures, queue
# ============================================================================
"""
Block Scheduler

Execution model:

    1. The graph is built and validated in the constructor, so
       structural errors surface before anything runs
    2. A "run_started" checkpoint is taken
    3. For each gating layer:
       - blocks whose gating prerequisites all succeeded become READY,
         the rest BLOCKED
       - READY blocks are submitted by priority to a thread pool of
         max_parallel_paths workers ("before_block" checkpoint each)
       - workers run the block through BlockExecutor and, on failure,
         through RecoveryManager.attempt(); they report BlockEvents on a
         queue and never touch block state
       - the scheduler thread is the single writer: it applies every
         transition and takes an "after_block" checkpoint per block
       - the next layer starts once every block of this one is terminal
    4. Leftover BLOCKED / NOT_STARTED blocks become DEFERRED

A revert whose checkpoint cannot be loaded is fatal: the layer drains and
run() re-raises the PersistenceError instead of returning a report.

Resource pressure: after each event the monitor is checked; when a
resource is EXCEEDED, in-flight blocks below the highest in-flight
priority are cancelled cooperatively and their resource error goes
through recovery.
"""

import concurrent.futures
import queue
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from core.config import OrchestratorDefaults, get_defaults
from core.contracts import BlockStatus, ResourceStatus
from core.errors import OrchestrationError, PersistenceError, map_external_error
from core.logging import ComponentType, get_logger, log_context, log_event
from core.models import (
    BlockDependency,
    BlockReport,
    ImplementationBlock,
    ImplementationPlan,
    RunReport,
)
from orchestrator.engine.graph import GraphBuilder, PriorityWeights
from services.checkpoint_service import CheckpointStore
from services.recovery_service import RecoverableOperation, RecoveryManager, RecoveryOutcome
from worker.chunking import AdaptiveChunker
from worker.contracts import (
    CancellationToken,
    GenerationCollaborator,
    ValidationCollaborator,
)
from worker.executor import BlockExecutor, BlockResult
from worker.resources import ResourceMonitor, limit_error

logger = get_logger(__name__, ComponentType.SCHEDULER)


# ============================================================================
# EVENTS
# ============================================================================

class BlockEventType(str, Enum):
    STARTED = "started"
    ATTEMPT_FAILED = "attempt_failed"
    RETRYING = "retrying"
    FINISHED = "finished"


@dataclass
class BlockEvent:
    """Worker -> scheduler notification."""
    type: BlockEventType
    block_id: str
    result: Optional[BlockResult] = None
    outcome: Optional[RecoveryOutcome] = None
    error: Optional[OrchestrationError] = None
    retry: int = 0
    fatal: bool = False


# ============================================================================
# SCHEDULER
# ============================================================================

class Scheduler:
    """
    Runs a plan's blocks in dependency order with bounded parallelism.

    Not re-entrant: run(), resume() and defer() are called from one
    thread, which owns all block state.
    """

    def __init__(
        self,
        plan: Optional[ImplementationPlan] = None,
        generator: Optional[GenerationCollaborator] = None,
        validator: Optional[ValidationCollaborator] = None,
        blocks: Optional[Sequence[ImplementationBlock]] = None,
        dependencies: Optional[Sequence[BlockDependency]] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        recovery_manager: Optional[RecoveryManager] = None,
        resource_monitor: Optional[ResourceMonitor] = None,
        chunker: Optional[AdaptiveChunker] = None,
        max_parallel_paths: Optional[int] = None,
        timeout_multiplier: Optional[float] = None,
        priority_weights: Optional[PriorityWeights] = None,
        run_id: Optional[str] = None,
        approach: Optional[Dict[str, Any]] = None,
        branch_id: Optional[str] = None,
        defaults: Optional[OrchestratorDefaults] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize scheduler.

        Args:
            plan: Plan to run (or pass blocks + dependencies)
            generator: Generation collaborator
            validator: Validation collaborator
            blocks: Blocks to run when no plan is given
            dependencies: Typed dependencies when no plan is given
            checkpoint_store: Snapshot store (in-memory if omitted)
            recovery_manager: Recovery policies (built-in defaults if omitted)
            resource_monitor: Enables resource-pressure cancellation
            chunker: Splits large step contexts
            max_parallel_paths: Worker pool size
            timeout_multiplier: Block timeout = effort * multiplier
            priority_weights: Weights of the priority formula
            run_id: Run identifier (generated if omitted)
            approach: Approach parameters passed to the generator
            branch_id: Owning branch, for logging
            defaults: Orchestrator defaults (process defaults if omitted)
            clock: Monotonic clock for block deadlines

        Raises:
            CycleDetected, MissingDependency, DuplicateBlock
        """
        if generator is None or validator is None:
            raise ValueError("Scheduler requires generator and validator collaborators")

        defaults = defaults or get_defaults()
        if plan is not None:
            blocks = plan.blocks
            dependencies = plan.dependencies

        self.plan = plan
        self.run_id = run_id or f"run-{uuid.uuid4().hex[:12]}"
        self.branch_id = branch_id
        self.approach = dict(approach or {})
        self.generator = generator
        self.validator = validator
        self.dependencies = list(dependencies or [])

        weights = priority_weights or PriorityWeights.from_defaults(defaults.scheduler)
        self.graph = GraphBuilder(weights).build(list(blocks or []), self.dependencies)
        self.graph.annotate()
        self.blocks: Dict[str, ImplementationBlock] = self.graph.blocks

        if checkpoint_store is None:
            checkpoint_store = CheckpointStore(
                max_checkpoints=defaults.checkpoints.max_checkpoints,
                lineage=self.run_id,
            )
        self.checkpoints = checkpoint_store
        self.recovery = recovery_manager or RecoveryManager()
        self.monitor = resource_monitor
        self.chunker = chunker
        self.max_parallel_paths = max(1, max_parallel_paths or defaults.scheduler.max_parallel_paths)
        self.timeout_multiplier = timeout_multiplier or defaults.scheduler.timeout_multiplier
        self._clock = clock

        self._events: "queue.Queue[BlockEvent]" = queue.Queue()
        self._tokens: Dict[str, CancellationToken] = {}
        self._token_lock = threading.Lock()

        self._execution_order: List[str] = []
        self._checkpoint_ids: List[str] = []
        self._warnings: List[str] = []
        self._fatal_error: Optional[PersistenceError] = None
        self._started_at: Optional[datetime] = None
        self._finished_at: Optional[datetime] = None

        logger.info(
            f"Scheduler ready: run={self.run_id} blocks={len(self.blocks)} "
            f"layers={len(self.graph.layers())} parallel={self.max_parallel_paths}"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> RunReport:
        """
        Execute every non-terminal block.

        Returns:
            RunReport with a terminal status and reason for every block

        Raises:
            PersistenceError when a revert cannot load its checkpoint. Blocks
            already in flight finish first; later layers never start.
        """
        self._started_at = datetime.utcnow()
        self._finished_at = None
        self._fatal_error = None
        layers = self.graph.layers()

        with log_context(run_id=self.run_id, branch_id=self.branch_id, component=ComponentType.SCHEDULER.value):
            log_event("run_started", {"blocks": len(self.blocks), "layers": len(layers)})
            self._checkpoint("run_started")

            pool = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.max_parallel_paths, thread_name_prefix="block"
            )
            call_pool = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.max_parallel_paths, thread_name_prefix="collaborator"
            )
            executor = BlockExecutor(
                self.generator, self.validator, chunker=self.chunker, call_pool=call_pool
            )
            try:
                for index, layer in enumerate(layers):
                    self._run_layer(layer, pool, executor)
                    log_event("layer_completed", {"layer": index, "blocks": layer})
            finally:
                pool.shutdown(wait=True)
                # Timed-out collaborator calls cannot be interrupted; do not wait on them
                call_pool.shutdown(wait=False)

            self._defer_leftovers()
            self._finished_at = datetime.utcnow()
            self._checkpoint("run_finished")

            report = self.report()
            log_event("run_finished", {
                "succeeded": report.succeeded,
                "failed": report.failed_blocks(),
                "warnings": len(report.warnings),
            })
            return report

    def defer(self, block_id: str, reason: str) -> None:
        """
        Set a block aside for this pass (external decision).

        Raises:
            KeyError if the block is unknown
            ValueError if the block cannot be deferred from its state
        """
        block = self._get_block(block_id)
        block.mark_deferred(reason)
        logger.info(f"Block {block_id} deferred: {reason}")

    def resume(self, checkpoint_id: str) -> None:
        """
        Restore block state from a checkpoint.

        Terminal blocks keep their outcome; everything else returns to
        NOT_STARTED and runs on the next run().

        Raises:
            CheckpointNotFound (or another PersistenceError); always fatal
        """
        state = self.checkpoints.load(checkpoint_id)
        saved_blocks = state.get("blocks", {})

        for block_id, block in self.blocks.items():
            data = saved_blocks.get(block_id)
            if data is None:
                logger.warning(f"Block {block_id} missing from checkpoint {checkpoint_id}")
                continue
            saved = ImplementationBlock.model_validate(data)
            block.status = saved.status
            block.status_reason = saved.status_reason
            block.retry_count = saved.retry_count
            block.fallback_used = saved.fallback_used
            block.artifacts = dict(saved.artifacts)
            block.validation_metrics = dict(saved.validation_metrics)
            block.validation_issues = list(saved.validation_issues)
            block.started_at = saved.started_at
            block.completed_at = saved.completed_at
            block.reset_for_resume()

        self._execution_order = [
            block_id for block_id in state.get("execution_order", [])
            if block_id in self.blocks and self.blocks[block_id].status.is_terminal()
        ]
        self._warnings = list(state.get("warnings", []))
        logger.info(
            f"Resumed run {self.run_id} from checkpoint {checkpoint_id}: "
            f"{len(self._execution_order)} blocks already terminal"
        )

    def progress(self) -> Dict[str, Any]:
        """Counts per status and percent of blocks in a terminal state."""
        counts = {status.value: 0 for status in BlockStatus}
        for block in self.blocks.values():
            counts[block.status.value] += 1

        total = len(self.blocks)
        terminal = sum(1 for block in self.blocks.values() if block.status.is_terminal())
        return {
            "run_id": self.run_id,
            "total": total,
            "terminal": terminal,
            "counts": counts,
            "percent_complete": round(terminal / total * 100.0, 1) if total else 100.0,
        }

    def snapshot_state(self) -> Dict[str, Any]:
        """Serializable orchestration state."""
        return {
            "run_id": self.run_id,
            "branch_id": self.branch_id,
            "approach": self.approach,
            "blocks": {
                block_id: block.model_dump(mode="json")
                for block_id, block in self.blocks.items()
            },
            "execution_order": list(self._execution_order),
            "warnings": list(self._warnings),
        }

    def artifacts(self) -> Dict[str, str]:
        """Artifacts of successful blocks, later blocks overriding earlier."""
        merged: Dict[str, str] = {}
        ordered = self._execution_order + sorted(set(self.blocks) - set(self._execution_order))
        for block_id in ordered:
            block = self.blocks[block_id]
            if block.status.is_successful():
                merged.update(block.artifacts)
        return merged

    def report(self) -> RunReport:
        """Build the run report from current state."""
        return RunReport(
            run_id=self.run_id,
            blocks={
                block_id: BlockReport(
                    block_id=block_id,
                    status=block.status,
                    reason=block.status_reason,
                    retry_count=block.retry_count,
                    fallback_used=block.fallback_used,
                    duration_seconds=block.execution_duration_seconds,
                    on_critical_path=block.on_critical_path,
                )
                for block_id, block in sorted(self.blocks.items())
            },
            layers=self.graph.layers(),
            execution_order=list(self._execution_order),
            critical_path=self.graph.critical_path(),
            checkpoint_ids=list(self._checkpoint_ids),
            warnings=list(self._warnings),
            started_at=self._started_at or datetime.utcnow(),
            finished_at=self._finished_at,
        )

    # ------------------------------------------------------------------
    # Layer execution (scheduler thread)
    # ------------------------------------------------------------------

    def _get_block(self, block_id: str) -> ImplementationBlock:
        try:
            return self.blocks[block_id]
        except KeyError:
            raise KeyError(f"Block '{block_id}' not found in run {self.run_id}")

    def _run_layer(
        self,
        layer: List[str],
        pool: concurrent.futures.ThreadPoolExecutor,
        executor: BlockExecutor,
    ) -> None:
        ready: List[str] = []
        for block_id in layer:
            block = self.blocks[block_id]
            if block.status.is_terminal():
                continue

            unsatisfied = [
                prerequisite for prerequisite in self.graph.graph.get_prerequisites(block_id)
                if not self.blocks[prerequisite].status.is_successful()
            ]
            if unsatisfied:
                block.mark_blocked(
                    f"gating prerequisites not satisfied: {', '.join(sorted(unsatisfied))}"
                )
                continue

            block.mark_ready()
            ready.append(block_id)

        futures: Dict[str, concurrent.futures.Future] = {}
        for block_id in self.graph.ranked(ready):
            self._checkpoint("before_block", block_id)
            block = self.blocks[block_id]
            block.mark_in_progress()
            alternates = {
                alternate_id: self.blocks[alternate_id].model_copy(deep=True)
                for alternate_id in self.graph.graph.get_alternatives(block_id)
            }
            futures[block_id] = pool.submit(
                self._work, block.model_copy(deep=True), alternates, executor
            )

        pending: Set[str] = set(futures)
        while pending:
            event = self._events.get()
            self._apply(event)
            if event.type == BlockEventType.FINISHED:
                pending.discard(event.block_id)
            self._check_resources(pending)

        for future in futures.values():
            future.result()

        if self._fatal_error is not None:
            log_event("run_aborted", {"error": str(self._fatal_error)})
            raise self._fatal_error

    def _apply(self, event: BlockEvent) -> None:
        block = self.blocks[event.block_id]

        if event.type == BlockEventType.STARTED:
            logger.debug(f"Block {event.block_id} started")
            return

        if event.type == BlockEventType.ATTEMPT_FAILED:
            logger.warning(f"Block {event.block_id} attempt failed: {event.error}")
            return

        if event.type == BlockEventType.RETRYING:
            if block.status != BlockStatus.IN_PROGRESS:
                return
            block.mark_failed(f"attempt failed: {event.error}")
            if not block.prepare_retry():
                logger.warning(f"Block {event.block_id} has no retries left")
            return

        self._finish(block, event)

    def _finish(self, block: ImplementationBlock, event: BlockEvent) -> None:
        if event.fatal:
            if block.status == BlockStatus.IN_PROGRESS:
                block.mark_failed(f"checkpoint load failed: {event.error}")
                self._execution_order.append(block.block_id)
            if self._fatal_error is None:
                self._fatal_error = event.error
            logger.error(f"Block {block.block_id} -> failed; session cannot continue: {event.error}")
            return

        if block.status != BlockStatus.IN_PROGRESS:
            logger.warning(f"Ignoring completion of {block.block_id} in state {block.status.value}")
            return

        outcome = event.outcome
        if event.result is not None:
            self._complete(block, event.result, degraded=False)
        elif outcome is not None and outcome.succeeded:
            result = outcome.result
            if isinstance(result, list):
                result = BlockResult.combine(block.block_id, result)
            block.fallback_used = outcome.fallback_used.value if outcome.fallback_used else None
            self._complete(block, result, degraded=outcome.degraded, reason=outcome.reason)
        elif outcome is not None:
            block.fallback_used = outcome.fallback_used.value if outcome.fallback_used else None
            block.mark_failed(outcome.reason)
            if outcome.skipped:
                block.mark_deferred("skipped by recovery")
            elif outcome.restored_state is not None:
                self._restore_artifacts(block, outcome.restored_state, outcome.checkpoint_id)
        else:
            block.mark_failed(str(event.error) if event.error else "failed")

        if not block.status.is_successful():
            self._block_dependents(block)

        self._execution_order.append(block.block_id)
        logger.info(
            f"Block {block.block_id} -> {block.status.value}"
            f"{f' ({block.status_reason})' if block.status_reason else ''}"
        )
        self._checkpoint("after_block", block.block_id)

    def _complete(
        self,
        block: ImplementationBlock,
        result: BlockResult,
        degraded: bool,
        reason: Optional[str] = None,
    ) -> None:
        block.validation_metrics = result.metrics
        block.validation_issues = result.issues
        if degraded or result.issues:
            block.mark_completed_with_issues(
                reason or f"validation issues: {'; '.join(result.issues)}",
                artifacts=result.artifacts,
            )
        else:
            block.mark_completed(artifacts=result.artifacts)

    def _restore_artifacts(
        self,
        block: ImplementationBlock,
        state: Dict[str, Any],
        checkpoint_id: Optional[str],
    ) -> None:
        saved = state.get("blocks", {}).get(block.block_id, {})
        block.artifacts = dict(saved.get("artifacts", {}))
        logger.info(f"Block {block.block_id} artifacts reverted to checkpoint {checkpoint_id}")

    def _block_dependents(self, block: ImplementationBlock) -> None:
        for dependent_id in self.graph.graph.get_dependents(block.block_id):
            dependent = self.blocks[dependent_id]
            if dependent.can_transition_to(BlockStatus.BLOCKED):
                dependent.mark_blocked(
                    f"prerequisite '{block.block_id}' ended {block.status.value}"
                )

    def _defer_leftovers(self) -> None:
        for block in self.blocks.values():
            if block.status in (BlockStatus.NOT_STARTED, BlockStatus.BLOCKED, BlockStatus.READY):
                block.mark_deferred(block.status_reason or "not scheduled in this pass")

    # ------------------------------------------------------------------
    # Resource pressure
    # ------------------------------------------------------------------

    def _check_resources(self, in_flight: Set[str]) -> None:
        if self.monitor is None or not in_flight:
            return

        statuses = self.monitor.check_limits()
        exceeded = [kind for kind, status in statuses.items() if status == ResourceStatus.EXCEEDED]
        if not exceeded:
            return

        top = max(self.graph.priority(block_id) for block_id in in_flight)
        sample = self.monitor.snapshot()
        for block_id in sorted(in_flight):
            if self.graph.priority(block_id) >= top:
                continue
            with self._token_lock:
                token = self._tokens.get(block_id)
            if token is not None and token.cancel(limit_error(exceeded[0], sample)):
                message = f"Cancelled block '{block_id}' under {exceeded[0].value} pressure"
                self._warnings.append(message)
                logger.warning(message)

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def _checkpoint(self, reason: str, block_id: Optional[str] = None) -> Optional[str]:
        summary = f"{reason}: {block_id}" if block_id else reason

        def create() -> str:
            return self.checkpoints.snapshot(
                self.snapshot_state,
                reason,
                summary=summary,
                artifacts_provider=self.artifacts,
            )

        try:
            checkpoint_id = create()
        except OrchestrationError as error:
            operation = RecoverableOperation(name=f"checkpoint:{reason}", run=create)
            try:
                outcome = self.recovery.attempt(operation, error)
            except OrchestrationError as final:
                outcome = None
                error = final
            if outcome is None or not outcome.succeeded:
                message = f"Checkpoint '{summary}' skipped: {error}"
                self._warnings.append(message)
                logger.warning(message)
                return None
            checkpoint_id = outcome.result

        self._checkpoint_ids.append(checkpoint_id)
        return checkpoint_id

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _new_token(self, block: ImplementationBlock) -> CancellationToken:
        token = CancellationToken(
            timeout_seconds=block.estimated_effort_seconds * self.timeout_multiplier,
            clock=self._clock,
            label=f"Block '{block.block_id}'",
        )
        with self._token_lock:
            self._tokens[block.block_id] = token
        return token

    def _work(
        self,
        block: ImplementationBlock,
        alternates: Dict[str, ImplementationBlock],
        executor: BlockExecutor,
    ) -> None:
        """Run one block on a worker thread; always ends with FINISHED."""
        block_id = block.block_id
        with log_context(
            run_id=self.run_id,
            branch_id=self.branch_id,
            block_id=block_id,
            worker_id=threading.current_thread().name,
            component=ComponentType.WORKER.value,
        ):
            self._events.put(BlockEvent(BlockEventType.STARTED, block_id))
            try:
                operation = executor.make_operation(
                    block, lambda: self._new_token(block), self.approach, alternates
                )
                try:
                    result = operation.run()
                except Exception as exc:
                    error = map_external_error(exc)
                else:
                    self._events.put(BlockEvent(BlockEventType.FINISHED, block_id, result=result))
                    return

                self._events.put(BlockEvent(BlockEventType.ATTEMPT_FAILED, block_id, error=error))

                def on_retry(retry: int, last_error: OrchestrationError) -> None:
                    self._events.put(
                        BlockEvent(BlockEventType.RETRYING, block_id, error=last_error, retry=retry)
                    )

                try:
                    outcome = self.recovery.attempt(
                        operation,
                        error,
                        retry_limit=max(0, block.max_retries - block.retry_count),
                        on_retry=on_retry,
                        checkpoint_store=self.checkpoints,
                    )
                except PersistenceError as failure:
                    # A checkpoint that cannot be loaded ends the session
                    self._events.put(BlockEvent(
                        BlockEventType.FINISHED, block_id, error=failure, fatal=True
                    ))
                    return
                self._events.put(BlockEvent(
                    BlockEventType.FINISHED, block_id, outcome=outcome, error=outcome.last_error
                ))
            except Exception as exc:
                self._events.put(BlockEvent(
                    BlockEventType.FINISHED, block_id, error=map_external_error(exc)
                ))
            finally:
                with self._token_lock:
                    self._tokens.pop(block_id, None)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Scheduler", "BlockEvent", "BlockEventType"]

# ============================================================================
# BRANCH COORDINATOR
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Parallel exploration of alternative approaches
# PURPOSE: Spawn, run, score, compare, select and merge branches
# CREATED: 16 OCT 2026
# EXPORTS: BranchCoordinator, ValidationMetricScorer, compute_overall_score,
#          RESERVED_SCHEDULER_OPTIONS
# DEPENDENCIES: concurrent.futures
# ============================================================================
"""
Branch Coordinator

Each branch is an isolated value:
- a fresh copy of the plan (no shared block state)
- its own CheckpointStore lineage
- its own Scheduler

Lifecycle:
    spawn()            CREATED -> IMPLEMENTING
    implement()        IMPLEMENTING -> IMPLEMENTED (every block Completed*)
                                    -> FAILED (anything else)
    evaluate()         IMPLEMENTED -> EVALUATED (others skipped)
    select_and_merge() EVALUATED -> SELECTED / REJECTED
    discard()          drop every branch except the kept one

Merging is a pure operation over branch results; a failed merge leaves
all branches untouched.
"""

import concurrent.futures
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from core.config import BranchDefaults, OrchestratorDefaults, get_defaults
from core.contracts import BlockStatus, BranchStatus, MergeStrategy
from core.errors import BranchNotFound, NoBranchesAvailable
from core.logging import ComponentType, get_logger, log_context, log_event
from core.models import (
    ArtifactChange,
    BranchApproach,
    BranchComparison,
    BranchEvaluation,
    BranchMetrics,
    ImplementationBlock,
    ImplementationBranch,
    ImplementationPlan,
    MergeResult,
)
from orchestrator.merge import ConflictResolver, selective_merge
from orchestrator.scheduler import Scheduler
from repositories import BranchRepository, FileCheckpointRepository
from services.checkpoint_service import CheckpointStore

logger = get_logger(__name__, ComponentType.BRANCHES)

SUBSCORES = ("quality", "functionality", "performance", "maintainability")

# Scheduler arguments the coordinator sets per branch
RESERVED_SCHEDULER_OPTIONS = frozenset({
    "plan", "generator", "validator", "blocks", "dependencies",
    "checkpoint_store", "run_id", "approach", "branch_id",
})


# ============================================================================
# SCORING
# ============================================================================

def compute_overall_score(subscores: Dict[str, float], weights: Dict[str, float]) -> float:
    """Weighted sum of subscores. Pure and deterministic."""
    return round(sum(weights.get(name, 0.0) * subscores.get(name, 0.0) for name in SUBSCORES), 10)


class BranchScorer(Protocol):
    def score(self, branch: ImplementationBranch, weights: Dict[str, float]) -> BranchMetrics:
        ...


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ValidationMetricScorer:
    """
    Scores a branch from its blocks' validation metrics.

    A subscore is the mean of the matching metric over successful blocks.
    When no block reports it, a completion heuristic is used:

        quality          share of blocks COMPLETED without issues
        functionality    share of blocks Completed*
        performance      share of blocks that needed no retry
        maintainability  share of successful blocks without validation issues
    """

    def _fallback(self, name: str, blocks: List[ImplementationBlock]) -> float:
        if not blocks:
            return 0.0
        successful = [b for b in blocks if b.status.is_successful()]
        if name == "quality":
            return sum(1 for b in blocks if b.status == BlockStatus.COMPLETED) / len(blocks)
        if name == "functionality":
            return len(successful) / len(blocks)
        if name == "performance":
            return sum(1 for b in blocks if b.retry_count == 0) / len(blocks)
        if not successful:
            return 0.0
        return sum(1 for b in successful if not b.validation_issues) / len(successful)

    def _subscores(self, blocks: List[ImplementationBlock]) -> Dict[str, float]:
        successful = [b for b in blocks if b.status.is_successful()]
        subscores: Dict[str, float] = {}
        for name in SUBSCORES:
            reported = _mean([
                b.validation_metrics[name] for b in successful if name in b.validation_metrics
            ])
            subscores[name] = _clamp(reported if reported is not None else self._fallback(name, blocks))
        return subscores

    def score(self, branch: ImplementationBranch, weights: Dict[str, float]) -> BranchMetrics:
        blocks = list(branch.plan.blocks)
        subscores = self._subscores(blocks)

        block_scores = {
            block.block_id: compute_overall_score(self._subscores([block]), weights)
            for block in blocks
        }
        component_scores = {
            path: block_scores.get(change.block_id, 0.0) if change.block_id else 0.0
            for path, change in branch.changes.items()
        }

        return BranchMetrics(
            **subscores,
            overall_score=compute_overall_score(subscores, weights),
            component_scores=component_scores,
        )


# ============================================================================
# COORDINATOR
# ============================================================================

class BranchCoordinator:
    """
    Runs one plan under several approaches and picks or merges a winner.
    """

    def __init__(
        self,
        plan: ImplementationPlan,
        generator: Any,
        validator: Any,
        weights: Optional[Dict[str, float]] = None,
        scorer: Optional[BranchScorer] = None,
        checkpoint_root: Optional[Union[str, Path]] = None,
        max_parallel_paths: Optional[int] = None,
        scheduler_options: Optional[Dict[str, Any]] = None,
        repository: Optional[BranchRepository] = None,
        originals: Optional[Dict[str, str]] = None,
        defaults: Optional[OrchestratorDefaults] = None,
    ):
        """
        Initialize coordinator.

        Args:
            plan: Plan every branch starts from (never mutated)
            generator: Generation collaborator shared by all branches
            validator: Validation collaborator shared by all branches
            weights: Subscore weights (BranchDefaults.weights if omitted)
            scorer: Branch scorer (ValidationMetricScorer if omitted)
            checkpoint_root: Directory for per-branch checkpoint lineages
                             (in-memory stores if omitted)
            max_parallel_paths: Branches run concurrently
            scheduler_options: Extra keyword arguments for each Scheduler;
                               must not name RESERVED_SCHEDULER_OPTIONS
            repository: Persists branch records
            originals: Current artifact contents (path -> content) before any
                       branch ran; used as the merge base
            defaults: Orchestrator defaults

        Raises:
            ValueError if scheduler_options names a coordinator-owned argument
        """
        self.defaults = defaults or get_defaults()
        branch_defaults: BranchDefaults = self.defaults.branches

        self.plan = plan
        self.generator = generator
        self.validator = validator
        self.weights = dict(weights or branch_defaults.weights)
        self.scorer = scorer or ValidationMetricScorer()
        self.checkpoint_root = Path(checkpoint_root) if checkpoint_root else None
        self.max_parallel_paths = max_parallel_paths or branch_defaults.max_branches
        self.max_branches = branch_defaults.max_branches
        self.conflict_score_margin = branch_defaults.conflict_score_margin
        self.scheduler_options = dict(scheduler_options or {})
        reserved = sorted(set(self.scheduler_options) & RESERVED_SCHEDULER_OPTIONS)
        if reserved:
            raise ValueError(f"scheduler_options cannot set coordinator-owned arguments: {reserved}")
        self.repository = repository
        self.originals = dict(originals or {})

        self._branches: Dict[str, ImplementationBranch] = {}
        self._schedulers: Dict[str, Scheduler] = {}
        self._stores: Dict[str, CheckpointStore] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, branch_id: str) -> ImplementationBranch:
        """
        Get a branch by ID.

        Raises:
            BranchNotFound
        """
        with self._lock:
            branch = self._branches.get(branch_id)
        if branch is None:
            raise BranchNotFound(branch_id)
        return branch

    def list_branches(self) -> List[ImplementationBranch]:
        with self._lock:
            return list(self._branches.values())

    def checkpoint_store(self, branch_id: str) -> CheckpointStore:
        self.get(branch_id)
        return self._stores[branch_id]

    def _resolve(self, branches: Optional[Sequence[Union[str, ImplementationBranch]]]) -> List[ImplementationBranch]:
        if branches is None:
            return self.list_branches()
        return [
            self.get(b if isinstance(b, str) else b.branch_id)
            for b in branches
        ]

    def _persist(self, branch: ImplementationBranch) -> None:
        if self.repository is not None:
            self.repository.save(branch)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def spawn(self, approaches: Sequence[BranchApproach]) -> List[ImplementationBranch]:
        """
        Create one isolated branch per approach.

        Raises:
            ValueError on duplicate approach ids or too many branches
        """
        with self._lock:
            if len(self._branches) + len(approaches) > self.max_branches:
                raise ValueError(
                    f"Cannot hold more than {self.max_branches} branches "
                    f"({len(self._branches)} existing, {len(approaches)} requested)"
                )

        spawned: List[ImplementationBranch] = []
        for approach in approaches:
            branch_id = f"branch-{approach.approach_id}"
            with self._lock:
                if branch_id in self._branches:
                    raise ValueError(f"Branch already exists: {branch_id}")

            plan = self.plan.fresh_copy()
            repository = None
            if self.checkpoint_root is not None:
                repository = FileCheckpointRepository(self.checkpoint_root / branch_id)
            store = CheckpointStore(
                repository=repository,
                max_checkpoints=self.defaults.checkpoints.max_checkpoints,
                lineage=branch_id,
            )
            options = dict(self.scheduler_options)
            options.setdefault("defaults", self.defaults)
            scheduler = Scheduler(
                plan,
                self.generator,
                self.validator,
                checkpoint_store=store,
                run_id=f"{plan.plan_id}-{branch_id}",
                approach=approach.parameters,
                branch_id=branch_id,
                **options,
            )

            branch = ImplementationBranch(branch_id=branch_id, approach=approach, plan=plan)
            branch.status = BranchStatus.IMPLEMENTING

            with self._lock:
                self._branches[branch_id] = branch
                self._schedulers[branch_id] = scheduler
                self._stores[branch_id] = store
            self._persist(branch)
            spawned.append(branch)
            logger.info(f"Spawned {branch_id} (approach={approach.approach_id})")

        return spawned

    def _run_branch(self, branch: ImplementationBranch) -> ImplementationBranch:
        scheduler = self._schedulers[branch.branch_id]
        with log_context(branch_id=branch.branch_id, component=ComponentType.BRANCHES.value):
            try:
                report = scheduler.run()
            except Exception as exc:
                branch.status = BranchStatus.FAILED
                branch.error = f"{type(exc).__name__}: {exc}"
                logger.exception(f"Branch {branch.branch_id} crashed")
                return branch

        branch.run_report = report
        branch.changes = {}
        for block_id in report.execution_order:
            block = scheduler.blocks[block_id]
            if not block.status.is_successful():
                continue
            for path, content in block.artifacts.items():
                branch.changes[path] = ArtifactChange(
                    path=path,
                    original=self.originals.get(path),
                    modified=content,
                    block_id=block_id,
                )

        if report.succeeded:
            branch.status = BranchStatus.IMPLEMENTED
        else:
            branch.status = BranchStatus.FAILED
            failed = [
                f"{block_id}={block.status.value}"
                for block_id, block in report.blocks.items()
                if not block.status.is_successful()
            ]
            branch.error = f"Blocks not completed: {', '.join(failed)}"
        return branch

    def implement(
        self,
        branches: Optional[Sequence[Union[str, ImplementationBranch]]] = None,
    ) -> List[ImplementationBranch]:
        """Run branch schedulers concurrently."""
        targets = [b for b in self._resolve(branches) if b.status == BranchStatus.IMPLEMENTING]
        if not targets:
            return []

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(self.max_parallel_paths, len(targets))),
            thread_name_prefix="branch",
        ) as pool:
            results = list(pool.map(self._run_branch, targets))

        for branch in results:
            self._persist(branch)
            logger.info(f"Branch {branch.branch_id} -> {branch.status.value}")
        return results

    def evaluate(
        self,
        branches: Optional[Sequence[Union[str, ImplementationBranch]]] = None,
    ) -> BranchEvaluation:
        """Score IMPLEMENTED (or already EVALUATED) branches and rank them."""
        evaluation = BranchEvaluation(weights=dict(self.weights))
        for branch in self._resolve(branches):
            if branch.status not in (BranchStatus.IMPLEMENTED, BranchStatus.EVALUATED):
                evaluation.skipped.append(branch.branch_id)
                continue
            metrics = self.scorer.score(branch, self.weights)
            metrics.overall_score = compute_overall_score(metrics.subscores(), self.weights)
            branch.metrics = metrics
            branch.status = BranchStatus.EVALUATED
            evaluation.metrics[branch.branch_id] = metrics
            self._persist(branch)

        evaluation.ranking = sorted(
            evaluation.metrics,
            key=lambda branch_id: (-evaluation.metrics[branch_id].overall_score, branch_id),
        )
        log_event("branches_evaluated", {
            "ranking": evaluation.ranking,
            "skipped": evaluation.skipped,
        })
        return evaluation

    def select_and_merge(
        self,
        branches: Optional[Sequence[Union[str, ImplementationBranch]]],
        evaluation: BranchEvaluation,
        strategy: MergeStrategy = MergeStrategy.SINGLE,
        resolver: Optional[ConflictResolver] = None,
    ) -> MergeResult:
        """
        Adopt the best branch (SINGLE) or merge per component (SELECTIVE).

        Raises:
            NoBranchesAvailable, MergeConflict (branches left untouched)
        """
        candidates = [
            branch for branch in self._resolve(branches)
            if branch.branch_id in evaluation.ranking
        ]
        if not candidates:
            raise NoBranchesAvailable()

        if strategy == MergeStrategy.SELECTIVE:
            result = selective_merge(
                candidates, evaluation, resolver=resolver, margin=self.conflict_score_margin
            )
        else:
            by_id = {branch.branch_id: branch for branch in candidates}
            best = by_id[next(b for b in evaluation.ranking if b in by_id)]
            result = MergeResult(
                strategy=MergeStrategy.SINGLE,
                selected_branch_id=best.branch_id,
                artifacts=best.artifacts(),
                sources={path: [best.branch_id] for path in best.changes},
            )

        for branch in candidates:
            branch.status = (
                BranchStatus.SELECTED
                if branch.branch_id == result.selected_branch_id
                else BranchStatus.REJECTED
            )
            self._persist(branch)

        log_event("branch_selected", {
            "branch_id": result.selected_branch_id,
            "strategy": result.strategy.value,
            "artifacts": len(result.artifacts),
        })
        return result

    def compare(self, branch_a_id: str, branch_b_id: str) -> BranchComparison:
        """Diff two branches' artifact changes by path."""
        branch_a = self.get(branch_a_id)
        branch_b = self.get(branch_b_id)
        comparison = BranchComparison(branch_a=branch_a_id, branch_b=branch_b_id)

        for path in sorted(set(branch_a.changes) | set(branch_b.changes)):
            change_a = branch_a.changes.get(path)
            change_b = branch_b.changes.get(path)
            if change_b is None:
                comparison.unique_to_a.append(change_a)
            elif change_a is None:
                comparison.unique_to_b.append(change_b)
            elif change_a.modified == change_b.modified:
                comparison.common_changes.append(change_a)
            else:
                comparison.conflicts.append(path)
        return comparison

    def discard(self, keep_branch_id: str) -> List[str]:
        """
        Drop every branch except the kept one, with its checkpoints.

        Returns:
            IDs of discarded branches
        """
        self.get(keep_branch_id)
        with self._lock:
            doomed = [branch_id for branch_id in self._branches if branch_id != keep_branch_id]

        for branch_id in doomed:
            self._stores[branch_id].delete_all()
            if self.repository is not None:
                self.repository.delete(branch_id)
            with self._lock:
                self._branches.pop(branch_id, None)
                self._schedulers.pop(branch_id, None)
                self._stores.pop(branch_id, None)
            logger.info(f"Discarded {branch_id}")
        return doomed


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "BranchCoordinator",
    "BranchScorer",
    "ValidationMetricScorer",
    "compute_overall_score",
    "SUBSCORES",
    "RESERVED_SCHEDULER_OPTIONS",
]

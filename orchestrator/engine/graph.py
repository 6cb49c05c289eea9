# ============================================================================
# BLOCK DEPENDENCY GRAPH
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Graph construction, validation and ordering
# PURPOSE: Typed dependency graph over implementation blocks
# CREATED: 16 OCT 2026
# EXPORTS: DependencyGraph, GraphBuilder, CycleDetector, BlockGraph,
#          PriorityWeights
# DEPENDENCIES: core.models, core.errors
# ============================================================================
"""
Block Dependency Graph

Edges point from prerequisite to dependent:
    A -> B means "B depends on A" (A must succeed before B starts).

Only gating edges (REQUIRED_BEFORE, REQUIRED_FOR_COMPLETION) take part in
cycle detection, ordering and layering. INFLUENCES / PROVIDES_INFORMATION
edges only add priority. ALTERNATIVE edges record substitutes used by the
USE_ALTERNATE recovery fallback.

Ordering is deterministic: ties break on priority, then block id.
"""

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from core.config import SchedulerDefaults, get_defaults
from core.contracts import DependencyKind
from core.errors import CycleDetected, DuplicateBlock, MissingDependency
from core.models import BlockDependency, ImplementationBlock

logger = logging.getLogger(__name__)


# ============================================================================
# GRAPH STRUCTURE
# ============================================================================

@dataclass
class DependencyGraph:
    """
    Dependency graph for a plan.

    Gating edges are kept separately from soft edges so that ordering
    never sees soft or alternative links.
    """
    # Prerequisite -> blocks that depend on it (gating)
    forward_edges: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # Block -> its gating prerequisites
    backward_edges: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # Prerequisite -> (dependent, kind) for INFLUENCES / PROVIDES_INFORMATION
    soft_edges: Dict[str, List[Tuple[str, DependencyKind]]] = field(
        default_factory=lambda: defaultdict(list)
    )

    # Block -> blocks that can substitute for it
    alternatives: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # All block IDs
    nodes: Set[str] = field(default_factory=set)

    def add_edge(
        self,
        prerequisite: str,
        dependent: str,
        kind: DependencyKind = DependencyKind.REQUIRED_BEFORE,
    ) -> None:
        """Add an edge: dependent depends on prerequisite."""
        self.nodes.add(prerequisite)
        self.nodes.add(dependent)

        if kind.is_gating():
            if dependent not in self.forward_edges[prerequisite]:
                self.forward_edges[prerequisite].append(dependent)
                self.backward_edges[dependent].append(prerequisite)
        elif kind.influences_priority():
            if (dependent, kind) not in self.soft_edges[prerequisite]:
                self.soft_edges[prerequisite].append((dependent, kind))
        elif prerequisite not in self.alternatives[dependent]:
            self.alternatives[dependent].append(prerequisite)

    def get_prerequisites(self, block_id: str) -> List[str]:
        """Gating prerequisites of a block."""
        return self.backward_edges.get(block_id, [])

    def get_dependents(self, block_id: str) -> List[str]:
        """Blocks gated on this block."""
        return self.forward_edges.get(block_id, [])

    def get_soft_dependents(self, block_id: str) -> List[str]:
        return [dependent for dependent, _ in self.soft_edges.get(block_id, [])]

    def get_alternatives(self, block_id: str) -> List[str]:
        return self.alternatives.get(block_id, [])


@dataclass(frozen=True)
class PriorityWeights:
    """Weights of the priority formula."""
    critical_path_bonus: float = 10.0
    dependent_weight: float = 2.0
    soft_dependent_weight: float = 0.5
    risk_weight: float = 1.5

    @classmethod
    def from_defaults(cls, defaults: Optional[SchedulerDefaults] = None) -> "PriorityWeights":
        defaults = defaults or get_defaults().scheduler
        return cls(
            critical_path_bonus=defaults.critical_path_bonus,
            dependent_weight=defaults.dependent_weight,
            soft_dependent_weight=defaults.soft_dependent_weight,
            risk_weight=defaults.risk_weight,
        )


# ============================================================================
# CYCLE DETECTION
# ============================================================================

class CycleDetector:
    """Iterative three-colour DFS over gating edges."""

    WHITE, GRAY, BLACK = 0, 1, 2

    def find_cycle(self, graph: DependencyGraph) -> Optional[List[str]]:
        """
        Find one gating cycle.

        Returns:
            Closed path [v, ..., v] following prerequisite -> dependent
            edges, or None if the gating subgraph is acyclic
        """
        color: Dict[str, int] = {node: self.WHITE for node in graph.nodes}

        for root in sorted(graph.nodes):
            if color[root] != self.WHITE:
                continue

            color[root] = self.GRAY
            path: List[str] = [root]
            stack = [(root, iter(sorted(graph.get_dependents(root))))]

            while stack:
                node, children = stack[-1]
                advanced = False
                for child in children:
                    if color[child] == self.GRAY:
                        start = path.index(child)
                        return path[start:] + [child]
                    if color[child] == self.WHITE:
                        color[child] = self.GRAY
                        path.append(child)
                        stack.append((child, iter(sorted(graph.get_dependents(child)))))
                        advanced = True
                        break
                if not advanced:
                    color[node] = self.BLACK
                    path.pop()
                    stack.pop()

        return None


# ============================================================================
# GRAPH BUILDER
# ============================================================================

class GraphBuilder:
    """Builds and validates the block graph from a plan."""

    def __init__(self, weights: Optional[PriorityWeights] = None):
        self.weights = weights

    def build(
        self,
        blocks: Sequence[ImplementationBlock],
        dependencies: Iterable[BlockDependency] = (),
    ) -> "BlockGraph":
        """
        Build dependency graph from blocks and typed dependencies.

        Untyped entries in block.dependencies become REQUIRED_BEFORE edges
        unless a typed dependency already names the same pair.

        Raises:
            DuplicateBlock, MissingDependency, CycleDetected
        """
        by_id: Dict[str, ImplementationBlock] = {}
        for block in blocks:
            if block.block_id in by_id:
                raise DuplicateBlock(block.block_id)
            by_id[block.block_id] = block

        graph = DependencyGraph()
        graph.nodes.update(by_id)

        edges: List[BlockDependency] = list(dependencies)
        typed_pairs = {(dep.block_id, dep.depends_on) for dep in edges}
        for block in blocks:
            for prerequisite in block.dependencies:
                if (block.block_id, prerequisite) not in typed_pairs:
                    edges.append(BlockDependency(block_id=block.block_id, depends_on=prerequisite))

        for dep in edges:
            for endpoint in (dep.block_id, dep.depends_on):
                if endpoint not in by_id:
                    raise MissingDependency(dep.block_id, endpoint)
            if dep.depends_on == dep.block_id and dep.kind.is_gating():
                raise CycleDetected([dep.block_id, dep.block_id])
            graph.add_edge(dep.depends_on, dep.block_id, dep.kind)

        cycle = CycleDetector().find_cycle(graph)
        if cycle:
            raise CycleDetected(cycle)

        block_graph = BlockGraph(by_id, graph, self.weights or PriorityWeights.from_defaults())
        logger.debug(
            f"Built block graph: {len(by_id)} blocks, "
            f"{sum(len(v) for v in graph.forward_edges.values())} gating edges"
        )
        return block_graph


# ============================================================================
# BLOCK GRAPH
# ============================================================================

class BlockGraph:
    """
    Validated graph with ordering, critical path and priority.

    Constructed by GraphBuilder; the gating subgraph is acyclic.
    """

    def __init__(
        self,
        blocks: Dict[str, ImplementationBlock],
        graph: DependencyGraph,
        weights: PriorityWeights,
    ):
        self.blocks = blocks
        self.graph = graph
        self.weights = weights
        self._critical_path: Optional[List[str]] = None
        self._priorities: Dict[str, float] = {}

    @property
    def block_ids(self) -> List[str]:
        return sorted(self.blocks)

    def _in_degrees(self) -> Dict[str, int]:
        return {
            block_id: len(self.graph.get_prerequisites(block_id))
            for block_id in self.blocks
        }

    def topological_order(self) -> List[str]:
        """Kahn's algorithm, ties broken by block id."""
        in_degree = self._in_degrees()
        heap = [block_id for block_id, degree in in_degree.items() if degree == 0]
        heapq.heapify(heap)
        order: List[str] = []

        while heap:
            block_id = heapq.heappop(heap)
            order.append(block_id)
            for dependent in self.graph.get_dependents(block_id):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(heap, dependent)

        return order

    def critical_path(self) -> List[str]:
        """
        Longest chain by cumulative estimated effort.

        Ties prefer the lexicographically smaller block id, so the
        result is deterministic.
        """
        if self._critical_path is not None:
            return list(self._critical_path)

        distance: Dict[str, float] = {}
        predecessor: Dict[str, Optional[str]] = {}

        for block_id in self.topological_order():
            effort = self.blocks[block_id].estimated_effort_seconds
            best: Optional[str] = None
            for prerequisite in sorted(self.graph.get_prerequisites(block_id)):
                if best is None or distance[prerequisite] > distance[best]:
                    best = prerequisite
            distance[block_id] = effort + (distance[best] if best is not None else 0.0)
            predecessor[block_id] = best

        path: List[str] = []
        if distance:
            end = min(distance, key=lambda b: (-distance[b], b))
            node: Optional[str] = end
            while node is not None:
                path.append(node)
                node = predecessor[node]
            path.reverse()

        self._critical_path = path
        return list(path)

    def priority(self, block_id: str) -> float:
        """
        Scheduling priority of a block.

        base + critical path bonus + gating dependents * dependent_weight
        + soft dependents * soft_dependent_weight + risk * risk_weight
        """
        if block_id in self._priorities:
            return self._priorities[block_id]

        block = self.blocks[block_id]
        on_path = block_id in set(self.critical_path())
        score = block.priority
        if on_path:
            score += self.weights.critical_path_bonus
        score += len(self.graph.get_dependents(block_id)) * self.weights.dependent_weight
        score += len(self.graph.get_soft_dependents(block_id)) * self.weights.soft_dependent_weight
        score += block.risk_factor * self.weights.risk_weight

        self._priorities[block_id] = score
        return score

    def annotate(self) -> None:
        """Write critical-path membership and computed priority onto blocks."""
        on_path = set(self.critical_path())
        for block_id, block in self.blocks.items():
            block.on_critical_path = block_id in on_path
            block.computed_priority = self.priority(block_id)

    def ranked(self, block_ids: Iterable[str]) -> List[str]:
        """Sort by descending priority, then id."""
        return sorted(block_ids, key=lambda b: (-self.priority(b), b))

    def layers(self) -> List[List[str]]:
        """
        Kahn layering over gating edges.

        Layer k holds blocks whose prerequisites all sit in layers < k.
        Each layer is ranked by priority.
        """
        in_degree = self._in_degrees()
        current = [block_id for block_id, degree in in_degree.items() if degree == 0]
        result: List[List[str]] = []

        while current:
            result.append(self.ranked(current))
            following: List[str] = []
            for block_id in current:
                for dependent in self.graph.get_dependents(block_id):
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        following.append(dependent)
            current = following

        return result

    def execution_order(self) -> List[str]:
        return [block_id for layer in self.layers() for block_id in layer]


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DependencyGraph",
    "PriorityWeights",
    "CycleDetector",
    "GraphBuilder",
    "BlockGraph",
]

# ============================================================================
# DEPENDENCY GRAPH TESTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Tests - Graph construction, ordering and priority
# PURPOSE: Verify cycle detection, layering, critical path and priority
# CREATED: 16 OCT 2026
# ============================================================================
"""
Dependency Graph Tests

Covers:
1. Kahn layering over gating edges, ranked by priority
2. Cycle detection reports a real cycle path
3. Missing / duplicate block errors
4. Soft and alternative edges never gate
5. Critical path by cumulative effort with deterministic ties
6. Priority formula components

Run with:
    pytest tests/test_graph.py -v
"""

import pytest

from core.contracts import DependencyKind
from core.errors import CycleDetected, DuplicateBlock, MissingDependency
from core.models import BlockDependency
from orchestrator.engine.graph import (
    CycleDetector,
    DependencyGraph,
    GraphBuilder,
    PriorityWeights,
)

from fakes import diamond_blocks, make_block


WEIGHTS = PriorityWeights(
    critical_path_bonus=10.0,
    dependent_weight=2.0,
    soft_dependent_weight=0.5,
    risk_weight=1.5,
)


@pytest.fixture
def diamond():
    return GraphBuilder(WEIGHTS).build(diamond_blocks())


# ============================================================================
# LAYERING
# ============================================================================

class TestLayers:
    def test_diamond_layers(self, diamond):
        assert diamond.layers() == [["A", "E"], ["B", "C"], ["D"]]

    def test_layer_respects_prerequisites(self, diamond):
        position = {
            block_id: index
            for index, layer in enumerate(diamond.layers())
            for block_id in layer
        }
        for prerequisite, dependents in diamond.graph.forward_edges.items():
            for dependent in dependents:
                assert position[prerequisite] < position[dependent]

    def test_execution_order_flattens_layers(self, diamond):
        assert diamond.execution_order() == ["A", "E", "B", "C", "D"]

    def test_topological_order_breaks_ties_by_id(self, diamond):
        assert diamond.topological_order() == ["A", "B", "C", "D", "E"]

    def test_soft_edges_do_not_gate(self):
        blocks = [make_block("docs"), make_block("core")]
        graph = GraphBuilder(WEIGHTS).build(blocks, [
            BlockDependency(block_id="docs", depends_on="core", kind=DependencyKind.INFLUENCES),
        ])
        assert graph.layers() == [["core", "docs"]]
        assert graph.graph.get_prerequisites("docs") == []
        assert graph.graph.get_soft_dependents("core") == ["docs"]

    def test_required_for_completion_gates(self):
        blocks = [make_block("api"), make_block("tests")]
        graph = GraphBuilder(WEIGHTS).build(blocks, [
            BlockDependency(
                block_id="tests",
                depends_on="api",
                kind=DependencyKind.REQUIRED_FOR_COMPLETION,
            ),
        ])
        assert graph.layers() == [["api"], ["tests"]]

    def test_alternative_edges_recorded_not_gating(self):
        blocks = [make_block("fast"), make_block("safe")]
        graph = GraphBuilder(WEIGHTS).build(blocks, [
            BlockDependency(block_id="fast", depends_on="safe", kind=DependencyKind.ALTERNATIVE),
        ])
        assert graph.graph.get_alternatives("fast") == ["safe"]
        assert len(graph.layers()) == 1

    def test_typed_dependency_overrides_untyped_list_entry(self):
        blocks = [make_block("core"), make_block("docs", ["core"])]
        graph = GraphBuilder(WEIGHTS).build(blocks, [
            BlockDependency(block_id="docs", depends_on="core", kind=DependencyKind.INFLUENCES),
        ])
        assert graph.graph.get_prerequisites("docs") == []

    def test_empty_plan(self):
        graph = GraphBuilder(WEIGHTS).build([])
        assert graph.layers() == []
        assert graph.critical_path() == []


# ============================================================================
# STRUCTURAL ERRORS
# ============================================================================

class TestStructuralErrors:
    def test_cycle_detected_with_real_path(self):
        blocks = [
            make_block("A", ["C"]),
            make_block("B", ["A"]),
            make_block("C", ["B"]),
            make_block("D"),
        ]
        with pytest.raises(CycleDetected) as exc_info:
            GraphBuilder(WEIGHTS).build(blocks)

        path = exc_info.value.path
        assert path[0] == path[-1]
        assert set(path[:-1]) == {"A", "B", "C"}
        by_id = {block.block_id: block for block in blocks}
        for prerequisite, dependent in zip(path, path[1:]):
            assert prerequisite in by_id[dependent].dependencies

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CycleDetected) as exc_info:
            GraphBuilder(WEIGHTS).build([make_block("A", ["A"])])
        assert exc_info.value.path == ["A", "A"]

    def test_soft_cycle_is_allowed(self):
        blocks = [make_block("A"), make_block("B")]
        graph = GraphBuilder(WEIGHTS).build(blocks, [
            BlockDependency(block_id="A", depends_on="B", kind=DependencyKind.INFLUENCES),
            BlockDependency(block_id="B", depends_on="A", kind=DependencyKind.PROVIDES_INFORMATION),
        ])
        assert graph.layers() == [["A", "B"]]

    def test_missing_dependency(self):
        with pytest.raises(MissingDependency) as exc_info:
            GraphBuilder(WEIGHTS).build([make_block("A", ["ghost"])])
        assert exc_info.value.block_id == "A"
        assert exc_info.value.dependency_id == "ghost"

    def test_missing_dependent_in_typed_edge(self):
        with pytest.raises(MissingDependency) as exc_info:
            GraphBuilder(WEIGHTS).build([make_block("A")], [
                BlockDependency(block_id="ghost", depends_on="A"),
            ])
        assert exc_info.value.dependency_id == "ghost"

    def test_duplicate_block(self):
        with pytest.raises(DuplicateBlock) as exc_info:
            GraphBuilder(WEIGHTS).build([make_block("A"), make_block("A")])
        assert exc_info.value.block_id == "A"

    def test_structural_errors_not_retryable(self):
        with pytest.raises(CycleDetected) as exc_info:
            GraphBuilder(WEIGHTS).build([make_block("A", ["B"]), make_block("B", ["A"])])
        assert exc_info.value.retryable is False

    def test_cycle_detector_acyclic(self):
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")
        assert CycleDetector().find_cycle(graph) is None


# ============================================================================
# CRITICAL PATH AND PRIORITY
# ============================================================================

class TestCriticalPath:
    def test_longest_effort_chain(self):
        blocks = [
            make_block("A", effort=10),
            make_block("B", ["A"], effort=100),
            make_block("C", ["A"], effort=5),
            make_block("D", ["B", "C"], effort=10),
        ]
        graph = GraphBuilder(WEIGHTS).build(blocks)
        assert graph.critical_path() == ["A", "B", "D"]

    def test_ties_prefer_smaller_id(self, diamond):
        assert diamond.critical_path() == ["A", "B", "D"]

    def test_deterministic_across_builds(self):
        first = GraphBuilder(WEIGHTS).build(diamond_blocks()).critical_path()
        second = GraphBuilder(WEIGHTS).build(list(reversed(diamond_blocks()))).critical_path()
        assert first == second


class TestPriority:
    def test_diamond_priorities(self, diamond):
        # A: critical path + two gating dependents
        assert diamond.priority("A") == pytest.approx(14.0)
        assert diamond.priority("B") == pytest.approx(12.0)
        assert diamond.priority("C") == pytest.approx(2.0)
        assert diamond.priority("D") == pytest.approx(10.0)
        assert diamond.priority("E") == pytest.approx(0.0)

    def test_base_priority_and_risk(self):
        graph = GraphBuilder(WEIGHTS).build([
            make_block("solo", priority=3.0, risk=2.0),
        ])
        # solo is its own critical path
        assert graph.priority("solo") == pytest.approx(3.0 + 10.0 + 2.0 * 1.5)

    def test_soft_dependents_add_weight(self):
        blocks = [make_block("core", effort=1), make_block("docs", effort=1), make_block("z", effort=5)]
        graph = GraphBuilder(WEIGHTS).build(blocks, [
            BlockDependency(block_id="docs", depends_on="core", kind=DependencyKind.INFLUENCES),
        ])
        assert graph.priority("core") == pytest.approx(0.5)

    def test_ranked_by_priority_then_id(self, diamond):
        assert diamond.ranked(["E", "C", "A", "B", "D"]) == ["A", "B", "D", "C", "E"]

    def test_annotate_sets_block_fields(self, diamond):
        diamond.annotate()
        assert diamond.blocks["A"].on_critical_path is True
        assert diamond.blocks["E"].on_critical_path is False
        assert diamond.blocks["A"].computed_priority == pytest.approx(14.0)

    def test_weights_from_defaults(self):
        weights = PriorityWeights.from_defaults()
        assert weights.critical_path_bonus == 10.0
        assert weights.dependent_weight == 2.0

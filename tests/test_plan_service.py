# ============================================================================
# PLAN SERVICE TESTS
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Tests - Plan loading and validation
# PURPOSE: Verify YAML plan loading, structural validation at load time,
#          lookup and reload
# CREATED: 16 OCT 2026
# ============================================================================
"""
Plan Service Tests

Covers:
1. *.yaml / *.yml plans are loaded and cached by plan_id
2. Unparseable, invalid or cyclic plans are skipped
3. register() validates the dependency graph
4. get / get_or_raise / list_all / reload

Run with:
    pytest tests/test_plan_service.py -v
"""

import pytest

from core.contracts import DependencyKind
from core.errors import CycleDetected, MissingDependency
from core.models import ImplementationPlan
from services.plan_service import PlanService

from fakes import make_block


VALID_PLAN = """\
plan_id: tokenizer
name: Tokenizer rewrite
blocks:
  - block_id: lexer
    estimated_effort_seconds: 120
    steps:
      - step_id: write_lexer
        target: src/lexer.py
  - block_id: parser
    dependencies: [lexer]
  - block_id: docs
dependencies:
  - block_id: docs
    depends_on: parser
    kind: influences
"""

CYCLIC_PLAN = """\
plan_id: cyclic
blocks:
  - block_id: a
    dependencies: [b]
  - block_id: b
    dependencies: [a]
"""


@pytest.fixture
def plans_dir(tmp_path):
    (tmp_path / "tokenizer.yaml").write_text(VALID_PLAN)
    (tmp_path / "small.yml").write_text("plan_id: small\nblocks:\n  - block_id: only\n")
    return tmp_path


class TestLoading:
    def test_load_all(self, plans_dir):
        service = PlanService(str(plans_dir))
        assert service.load_all() == 2

        plan = service.get("tokenizer")
        assert [b.block_id for b in plan.blocks] == ["lexer", "parser", "docs"]
        assert plan.get_block("lexer").steps[0].target == "src/lexer.py"
        assert plan.dependencies[0].kind == DependencyKind.INFLUENCES
        assert service.get("small") is not None

    def test_lazy_load_on_get(self, plans_dir):
        service = PlanService(str(plans_dir))
        assert sorted(p.plan_id for p in service.list_all()) == ["small", "tokenizer"]

    @pytest.mark.parametrize("name, content", [
        ("cyclic.yaml", CYCLIC_PLAN),
        ("dangling.yaml", "plan_id: dangling\nblocks:\n  - block_id: a\n    dependencies: [ghost]\n"),
        ("broken.yaml", "plan_id: [unclosed"),
        ("list.yaml", "- not a mapping\n"),
        ("no_id.yaml", "blocks: []\n"),
    ])
    def test_bad_files_skipped(self, plans_dir, name, content):
        (plans_dir / name).write_text(content)
        service = PlanService(str(plans_dir))

        assert service.load_all() == 2
        assert service.get("cyclic") is None
        assert service.get("dangling") is None

    def test_missing_directory(self, tmp_path):
        service = PlanService(str(tmp_path / "nowhere"))
        assert service.load_all() == 0
        assert service.list_all() == []

    def test_invalid_plan_message(self, plans_dir):
        path = plans_dir / "cyclic.yaml"
        path.write_text(CYCLIC_PLAN)
        with pytest.raises(ValueError, match="Dependency cycle detected"):
            PlanService(str(plans_dir))._load_yaml(path)

    def test_reload_picks_up_new_files(self, plans_dir):
        service = PlanService(str(plans_dir))
        service.load_all()
        (plans_dir / "later.yaml").write_text("plan_id: later\nblocks: []\n")

        assert service.get("later") is None
        assert service.reload() == 3
        assert service.get("later") is not None


class TestLookupAndRegister:
    def test_get_or_raise(self, plans_dir):
        service = PlanService(str(plans_dir))
        assert service.get_or_raise("small").plan_id == "small"
        with pytest.raises(KeyError):
            service.get_or_raise("unknown")

    def test_register(self, tmp_path):
        service = PlanService(str(tmp_path))
        plan = ImplementationPlan(plan_id="manual", blocks=[make_block("A"), make_block("B", ["A"])])
        service.register(plan)
        assert service.get("manual") is plan

    def test_register_rejects_cycle(self, tmp_path):
        service = PlanService(str(tmp_path))
        plan = ImplementationPlan(
            plan_id="loop", blocks=[make_block("A", ["B"]), make_block("B", ["A"])]
        )
        with pytest.raises(CycleDetected):
            service.register(plan)
        assert service.get("loop") is None

    def test_register_rejects_dangling_reference(self, tmp_path):
        service = PlanService(str(tmp_path))
        plan = ImplementationPlan(plan_id="dangling", blocks=[make_block("A", ["ghost"])])
        with pytest.raises(MissingDependency):
            service.register(plan)

    def test_validation_does_not_touch_plan(self, tmp_path):
        service = PlanService(str(tmp_path))
        plan = ImplementationPlan(plan_id="p", blocks=[make_block("A"), make_block("B", ["A"])])
        service.validate(plan)
        assert plan.get_block("A").computed_priority is None

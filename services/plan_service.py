# ============================================================================
# PLAN SERVICE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Implementation plan management
# PURPOSE: Load and cache implementation plans handed over by the planner
# CREATED: 16 OCT 2026
# ============================================================================
"""
Plan Service

Loads implementation plans from YAML files and provides lookup
capabilities. Caches loaded plans by plan_id.

Plan file format:

    plan_id: tokenizer_rewrite
    name: Tokenizer rewrite
    blocks:
      - block_id: lexer
        estimated_effort_seconds: 120
        steps:
          - step_id: write_lexer
            target: src/lexer.py
      - block_id: parser
        dependencies: [lexer]
    dependencies:
      - block_id: docs
        depends_on: parser
        kind: influences

Every plan is validated by building its dependency graph, so cycles and
dangling references are rejected at load time.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from core.errors import StructuralError
from core.models import ImplementationPlan

logger = logging.getLogger(__name__)


class PlanService:
    """Service for loading and managing implementation plans."""

    def __init__(self, plans_dir: Optional[str] = None):
        """
        Initialize plan service.

        Args:
            plans_dir: Directory containing plan YAML files.
                       Defaults to ./plans/
        """
        if plans_dir:
            self.plans_dir = Path(plans_dir)
        else:
            self.plans_dir = Path.cwd() / "plans"

        self._cache: Dict[str, ImplementationPlan] = {}
        self._loaded = False

    def load_all(self) -> int:
        """
        Load all plans from the plans directory.

        Files that fail to parse or validate are logged and skipped.

        Returns:
            Number of plans loaded
        """
        if not self.plans_dir.exists():
            logger.warning(f"Plans directory not found: {self.plans_dir}")
            self._loaded = True
            return 0

        count = 0
        files = sorted(self.plans_dir.glob("*.yaml")) + sorted(self.plans_dir.glob("*.yml"))
        for yaml_file in files:
            try:
                plan = self._load_yaml(yaml_file)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue
            self._cache[plan.plan_id] = plan
            count += 1
            logger.info(f"Loaded plan: {plan.plan_id} ({len(plan.blocks)} blocks)")

        self._loaded = True
        logger.info(f"Loaded {count} plans from {self.plans_dir}")
        return count

    def get(self, plan_id: str) -> Optional[ImplementationPlan]:
        """
        Get a plan by ID.

        Returns:
            ImplementationPlan or None if not found
        """
        if not self._loaded:
            self.load_all()
        return self._cache.get(plan_id)

    def get_or_raise(self, plan_id: str) -> ImplementationPlan:
        """
        Get a plan, raising if not found.

        Raises:
            KeyError if plan not found
        """
        plan = self.get(plan_id)
        if plan is None:
            raise KeyError(f"Plan not found: {plan_id}")
        return plan

    def list_all(self) -> List[ImplementationPlan]:
        if not self._loaded:
            self.load_all()
        return list(self._cache.values())

    def register(self, plan: ImplementationPlan) -> None:
        """
        Register a plan (for testing or programmatic use).

        Raises:
            StructuralError subclasses if the plan's graph is invalid
        """
        self.validate(plan)
        self._cache[plan.plan_id] = plan
        logger.info(f"Registered plan: {plan.plan_id}")

    def validate(self, plan: ImplementationPlan) -> None:
        """Build the plan's graph; raises on structural errors."""
        from orchestrator.engine.graph import GraphBuilder

        GraphBuilder().build(plan.fresh_copy().blocks, plan.dependencies)

    def _load_yaml(self, path: Path) -> ImplementationPlan:
        """
        Load a plan from a YAML file.

        Raises:
            ValueError if the file is not a valid plan
        """
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Invalid plan in {path}: expected a mapping")

        try:
            plan = ImplementationPlan(**data)
        except ValidationError as e:
            raise ValueError(f"Invalid plan in {path}: {e}") from e

        try:
            self.validate(plan)
        except StructuralError as e:
            raise ValueError(f"Invalid plan in {path}: {e}") from e
        return plan

    def reload(self) -> int:
        """
        Reload all plans from disk.

        Returns:
            Number of plans loaded
        """
        self._cache.clear()
        self._loaded = False
        return self.load_all()


__all__ = ["PlanService"]

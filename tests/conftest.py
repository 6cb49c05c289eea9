# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Tests - pytest fixtures
# PURPOSE: Collaborators, plans and recovery wiring shared by test modules
# CREATED: 16 OCT 2026
# ============================================================================
"""
Shared fixtures. Helpers live in tests/fakes.py.
"""

from typing import List

import pytest

from core.config import reset_defaults
from core.models import ImplementationPlan
from services.recovery_service import RecoveryManager

from fakes import FakeGenerator, FakeValidator, diamond_blocks


@pytest.fixture(autouse=True)
def _fresh_defaults():
    """Defaults are cached per process; isolate tests from each other."""
    reset_defaults()
    yield
    reset_defaults()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def diamond_plan() -> ImplementationPlan:
    return ImplementationPlan(plan_id="diamond", name="Diamond", blocks=diamond_blocks())


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def recovery(sleeps) -> RecoveryManager:
    """Default policies, backoff recorded instead of slept."""
    return RecoveryManager(sleep=sleeps.append)

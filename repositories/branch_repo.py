# ============================================================================
# BRANCH REPOSITORY
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Branch persistence
# PURPOSE: Save and load implementation branches as JSON documents
# CREATED: 16 OCT 2026
# ============================================================================
"""
Branch Repository

One JSON file per branch: <root>/<branch_id>.json
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from core.errors import CheckpointIOError
from core.models import ImplementationBranch

logger = logging.getLogger(__name__)


class BranchRepository:
    """Repository for ImplementationBranch entities."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, branch_id: str) -> Path:
        return self.root / f"{branch_id}.json"

    def save(self, branch: ImplementationBranch) -> ImplementationBranch:
        """
        Persist a branch (overwrites any previous copy).

        Args:
            branch: Branch to persist

        Returns:
            The same branch
        """
        try:
            self._path(branch.branch_id).write_text(branch.model_dump_json(indent=2))
        except OSError as e:
            raise CheckpointIOError(f"Failed to save branch {branch.branch_id}: {e}", cause=e)
        logger.debug(f"Saved branch {branch.branch_id} status={branch.status.value}")
        return branch

    def load(self, branch_id: str) -> Optional[ImplementationBranch]:
        """
        Load a branch by ID.

        Returns:
            ImplementationBranch or None if not found
        """
        path = self._path(branch_id)
        if not path.exists():
            return None
        try:
            return ImplementationBranch.model_validate_json(path.read_text())
        except (OSError, ValidationError) as e:
            raise CheckpointIOError(f"Failed to load branch {branch_id}: {e}", cause=e)

    def delete(self, branch_id: str) -> bool:
        path = self._path(branch_id)
        if not path.exists():
            return False
        path.unlink()
        logger.debug(f"Deleted branch {branch_id}")
        return True

    def list_ids(self) -> List[str]:
        return sorted(p.stem for p in self.root.glob("*.json"))


__all__ = ["BranchRepository"]

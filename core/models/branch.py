# ============================================================================
# IMPLEMENTATION BRANCH MODEL
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core model - Candidate executions and their evaluation
# PURPOSE: Branch identity, metrics, artifact changes and merge results
# CREATED: 16 OCT 2026
# EXPORTS: BranchApproach, ArtifactChange, BranchMetrics,
#          ImplementationBranch, BranchEvaluation, MergeConflictDetail,
#          MergeResult, BranchComparison
# DEPENDENCIES: pydantic
# ============================================================================
"""
Implementation Branch Models

A branch is an isolated candidate execution of the same plan under a
different approach. Each branch owns:
- its own copy of the plan (block runtime state)
- its own checkpoint lineage
- the artifact changes its run produced

Metrics are only computed once a branch reaches IMPLEMENTED.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from core.contracts import BranchStatus, MergeStrategy
from core.models.block import ImplementationPlan
from core.models.report import RunReport


class BranchApproach(BaseModel):
    """Descriptor of one candidate strategy."""
    approach_id: str = Field(..., max_length=128)
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Passed to the generation collaborator with every step"
    )


class ArtifactChange(BaseModel):
    """One file/component produced or modified by a branch."""
    path: str
    original: Optional[str] = Field(
        default=None,
        description="Content before the branch ran (None = new artifact)"
    )
    modified: str
    block_id: Optional[str] = None

    @property
    def base(self) -> str:
        return self.original or ""


class BranchMetrics(BaseModel):
    """Subscores in [0, 1] plus the weighted overall score."""
    quality: float = Field(default=0.0, ge=0.0, le=1.0)
    functionality: float = Field(default=0.0, ge=0.0, le=1.0)
    performance: float = Field(default=0.0, ge=0.0, le=1.0)
    maintainability: float = Field(default=0.0, ge=0.0, le=1.0)
    overall_score: float = 0.0
    component_scores: Dict[str, float] = Field(
        default_factory=dict,
        description="Per artifact path score used by selective merge"
    )

    def subscores(self) -> Dict[str, float]:
        return {
            "quality": self.quality,
            "functionality": self.functionality,
            "performance": self.performance,
            "maintainability": self.maintainability,
        }


class ImplementationBranch(BaseModel):
    """Candidate execution of the plan under one approach."""
    branch_id: str = Field(..., max_length=128)
    approach: BranchApproach
    plan: ImplementationPlan
    status: BranchStatus = Field(default=BranchStatus.CREATED)
    metrics: Optional[BranchMetrics] = None
    changes: Dict[str, ArtifactChange] = Field(default_factory=dict)
    run_report: Optional[RunReport] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def artifacts(self) -> Dict[str, str]:
        return {path: change.modified for path, change in self.changes.items()}


class BranchEvaluation(BaseModel):
    """Scores for every evaluated branch, best first."""
    metrics: Dict[str, BranchMetrics] = Field(default_factory=dict)
    ranking: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(
        default_factory=list,
        description="Branches not IMPLEMENTED, excluded from ranking"
    )
    weights: Dict[str, float] = Field(default_factory=dict)

    @property
    def best(self) -> Optional[str]:
        return self.ranking[0] if self.ranking else None

    def score(self, branch_id: str) -> float:
        metrics = self.metrics.get(branch_id)
        return metrics.overall_score if metrics else 0.0


class MergeConflictDetail(BaseModel):
    """Two branches edited the same region of one artifact incompatibly."""
    path: str
    branch_a: str
    branch_b: str
    region_a: Tuple[int, int] = Field(description="Original line range touched by branch_a")
    region_b: Tuple[int, int] = Field(description="Original line range touched by branch_b")
    content_a: str = ""
    content_b: str = ""
    resolved_by: Optional[str] = Field(
        default=None,
        description="Branch whose edit was kept, if the resolver decided"
    )


class MergeResult(BaseModel):
    """Outcome of BranchCoordinator.select_and_merge()."""
    strategy: MergeStrategy
    selected_branch_id: str
    artifacts: Dict[str, str] = Field(default_factory=dict)
    sources: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Artifact path -> branches that contributed to it"
    )
    conflicts: List[MergeConflictDetail] = Field(
        default_factory=list,
        description="Conflicts detected and resolved during the merge"
    )


class BranchComparison(BaseModel):
    """Side-by-side diff of two branches' artifact changes."""
    branch_a: str
    branch_b: str
    common_changes: List[ArtifactChange] = Field(default_factory=list)
    unique_to_a: List[ArtifactChange] = Field(default_factory=list)
    unique_to_b: List[ArtifactChange] = Field(default_factory=list)
    conflicts: List[str] = Field(
        default_factory=list,
        description="Paths both branches changed differently"
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "BranchApproach",
    "ArtifactChange",
    "BranchMetrics",
    "ImplementationBranch",
    "BranchEvaluation",
    "MergeConflictDetail",
    "MergeResult",
    "BranchComparison",
]

# ============================================================================
# SELECTIVE MERGE
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Per-component branch merging
# PURPOSE: Combine the best parts of several branches into one artifact set
# CREATED: 16 OCT 2026
# EXPORTS: Hunk, MergeCandidate, compute_hunks, apply_hunks,
#          merge_artifact, selective_merge, prefer_higher_score
# DEPENDENCIES: difflib
# ============================================================================
"""
Selective Merge

For every artifact path:
    1. The branch with the highest component score wins the path
    2. Line hunks from the other branches (difflib against the original)
       are folded in when they touch regions the accepted hunks do not
    3. Identical hunks from several branches are applied once
    4. Overlapping, different hunks are conflicts; the resolver picks a
       side or leaves the conflict unresolved

Two hunks overlap when their original line ranges intersect, or when an
insertion point falls strictly inside the other hunk's range, or when
both insert at the same point.

Artifacts without an original (new files) are taken whole from the
winning branch.

Any unresolved conflict aborts the merge with MergeConflict; nothing is
written back to the branches.
"""

import difflib
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.contracts import MergeStrategy
from core.errors import MergeConflict, NoBranchesAvailable
from core.models import (
    BranchEvaluation,
    ImplementationBranch,
    MergeConflictDetail,
    MergeResult,
)

logger = logging.getLogger(__name__)

# resolver(conflict, score_a, score_b) -> winning branch id, or None
ConflictResolver = Callable[[MergeConflictDetail, float, float], Optional[str]]


# ============================================================================
# HUNKS
# ============================================================================

@dataclass(frozen=True)
class Hunk:
    """Replacement of original lines [start, end) by lines."""
    branch_id: str
    start: int
    end: int
    lines: Tuple[str, ...]

    @property
    def is_insertion(self) -> bool:
        return self.start == self.end

    def same_edit(self, other: "Hunk") -> bool:
        return (self.start, self.end, self.lines) == (other.start, other.end, other.lines)

    def overlaps(self, other: "Hunk") -> bool:
        if self.is_insertion and other.is_insertion:
            return self.start == other.start
        if self.is_insertion:
            return other.start < self.start < other.end
        if other.is_insertion:
            return self.start < other.start < self.end
        return max(self.start, other.start) < min(self.end, other.end)


@dataclass(frozen=True)
class MergeCandidate:
    """One branch's version of an artifact."""
    branch_id: str
    content: str
    score: float


def compute_hunks(original: str, modified: str, branch_id: str) -> List[Hunk]:
    """Non-equal opcodes of a line diff, as hunks."""
    base_lines = original.splitlines(keepends=True)
    new_lines = modified.splitlines(keepends=True)
    matcher = difflib.SequenceMatcher(None, base_lines, new_lines, autojunk=False)
    return [
        Hunk(branch_id=branch_id, start=i1, end=i2, lines=tuple(new_lines[j1:j2]))
        for tag, i1, i2, j1, j2 in matcher.get_opcodes()
        if tag != "equal"
    ]


def apply_hunks(original: str, hunks: Sequence[Hunk]) -> str:
    """Apply non-overlapping hunks to the original text."""
    base_lines = original.splitlines(keepends=True)
    output: List[str] = []
    cursor = 0
    for hunk in sorted(hunks, key=lambda h: (h.start, h.end)):
        output.extend(base_lines[cursor:hunk.start])
        output.extend(hunk.lines)
        cursor = max(cursor, hunk.end)
    output.extend(base_lines[cursor:])
    return "".join(output)


# ============================================================================
# RESOLVERS
# ============================================================================

def prefer_higher_score(margin: float = 0.05) -> ConflictResolver:
    """Pick the side whose component score is higher by more than margin."""

    def resolve(conflict: MergeConflictDetail, score_a: float, score_b: float) -> Optional[str]:
        if score_a - score_b > margin:
            return conflict.branch_a
        if score_b - score_a > margin:
            return conflict.branch_b
        return None

    return resolve


# ============================================================================
# MERGE
# ============================================================================

def merge_artifact(
    path: str,
    original: Optional[str],
    candidates: Sequence[MergeCandidate],
    resolver: ConflictResolver,
) -> Tuple[str, List[str], List[MergeConflictDetail], List[MergeConflictDetail]]:
    """
    Merge several branches' versions of one artifact.

    Returns:
        (content, contributing branch ids, resolved conflicts, unresolved conflicts)
    """
    ordered = sorted(candidates, key=lambda c: (-c.score, c.branch_id))
    winner = ordered[0]
    if original is None or len(ordered) == 1:
        return winner.content, [winner.branch_id], [], []

    scores = {c.branch_id: c.score for c in ordered}
    accepted: List[Hunk] = compute_hunks(original, winner.content, winner.branch_id)
    sources: List[str] = [winner.branch_id]
    resolved: List[MergeConflictDetail] = []
    unresolved: List[MergeConflictDetail] = []

    for candidate in ordered[1:]:
        for hunk in compute_hunks(original, candidate.content, candidate.branch_id):
            if any(hunk.same_edit(existing) for existing in accepted):
                continue

            clashing = [existing for existing in accepted if existing.overlaps(hunk)]
            if not clashing:
                accepted.append(hunk)
                if candidate.branch_id not in sources:
                    sources.append(candidate.branch_id)
                continue

            keep_new = True
            for existing in clashing:
                detail = MergeConflictDetail(
                    path=path,
                    branch_a=existing.branch_id,
                    branch_b=hunk.branch_id,
                    region_a=(existing.start, existing.end),
                    region_b=(hunk.start, hunk.end),
                    content_a="".join(existing.lines),
                    content_b="".join(hunk.lines),
                )
                choice = resolver(detail, scores[existing.branch_id], scores[hunk.branch_id])
                if choice is None:
                    unresolved.append(detail)
                    keep_new = False
                    continue
                resolved.append(detail.model_copy(update={"resolved_by": choice}))
                if choice != hunk.branch_id:
                    keep_new = False

            if keep_new:
                accepted = [existing for existing in accepted if existing not in clashing]
                accepted.append(hunk)
                if candidate.branch_id not in sources:
                    sources.append(candidate.branch_id)

    contributing = [
        branch_id for branch_id in sources
        if any(h.branch_id == branch_id for h in accepted)
    ] or [winner.branch_id]
    return apply_hunks(original, accepted), contributing, resolved, unresolved


def selective_merge(
    branches: Sequence[ImplementationBranch],
    evaluation: BranchEvaluation,
    resolver: Optional[ConflictResolver] = None,
    margin: float = 0.05,
) -> MergeResult:
    """
    Merge ranked branches component by component.

    Args:
        branches: Evaluated branches (only ranked ones take part)
        evaluation: Scores and ranking
        resolver: Conflict resolver (prefer_higher_score(margin) by default)
        margin: Score margin for the default resolver

    Raises:
        NoBranchesAvailable if nothing is ranked
        MergeConflict if any conflict stays unresolved
    """
    by_id = {branch.branch_id: branch for branch in branches}
    ranked = [by_id[branch_id] for branch_id in evaluation.ranking if branch_id in by_id]
    if not ranked:
        raise NoBranchesAvailable()

    resolver = resolver or prefer_higher_score(margin)
    paths = sorted({path for branch in ranked for path in branch.changes})

    artifacts: Dict[str, str] = {}
    sources: Dict[str, List[str]] = {}
    resolved: List[MergeConflictDetail] = []
    unresolved: List[MergeConflictDetail] = []

    for path in paths:
        candidates: List[MergeCandidate] = []
        original: Optional[str] = None
        for branch in ranked:
            change = branch.changes.get(path)
            if change is None:
                continue
            if original is None:
                original = change.original
            metrics = evaluation.metrics.get(branch.branch_id)
            score = 0.0
            if metrics is not None:
                score = metrics.component_scores.get(path, metrics.overall_score)
            candidates.append(MergeCandidate(branch.branch_id, change.modified, score))

        content, contributors, path_resolved, path_unresolved = merge_artifact(
            path, original, candidates, resolver
        )
        artifacts[path] = content
        sources[path] = contributors
        resolved.extend(path_resolved)
        unresolved.extend(path_unresolved)

    if unresolved:
        logger.warning(f"Selective merge aborted: {len(unresolved)} unresolved conflict(s)")
        raise MergeConflict(unresolved)

    selected = ranked[0].branch_id
    logger.info(
        f"Selective merge: {len(paths)} artifacts, "
        f"{len(resolved)} conflicts resolved, base branch={selected}"
    )
    return MergeResult(
        strategy=MergeStrategy.SELECTIVE,
        selected_branch_id=selected,
        artifacts=artifacts,
        sources=sources,
        conflicts=resolved,
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ConflictResolver",
    "Hunk",
    "MergeCandidate",
    "compute_hunks",
    "apply_hunks",
    "prefer_higher_score",
    "merge_artifact",
    "selective_merge",
]

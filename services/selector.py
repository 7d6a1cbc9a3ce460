"""
Priority ranking and recipient selection.

A lead goes to at most MAX_RECIPIENTS_PER_LEAD customers over its lifetime,
even when more are eligible. This is product policy. A returning lead only
fills the slots its earlier submissions left open.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

from domain.candidate import Candidate, RejectionCode
from services.batch_registry import BatchSnapshot

MAX_RECIPIENTS_PER_LEAD = 2


class DistributionOutcome(str, Enum):
    DISTRIBUTED = "distributed"
    NO_ACTIVE_BATCHES = "no_active_batches"
    NO_CAPACITY = "no_capacity"
    NO_ELIGIBLE_CANDIDATES = "no_eligible_candidates"
    COMMIT_CONFLICT = "commit_conflict"
    LEAD_CAP_REACHED = "lead_cap_reached"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Selection:
    """
    `selected`: the first `limit` ranked candidates.
    `reserves`: the remaining ranked candidates, in order, for promotion.
    """

    selected: List[Candidate]
    reserves: List[Candidate]
    limit: int

    @property
    def ranked(self) -> List[Candidate]:
        return [*self.selected, *self.reserves]


def rank_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    """
    Eligible candidates only, ascending by score, ties broken by batch id.

    A customer appears at most once: when several of its batches are
    eligible only the best-ranked one is kept.
    """

    ranked: List[Candidate] = []
    seen_customers: set[str] = set()
    for candidate in sorted((c for c in candidates if c.eligible), key=lambda c: c.sort_key):
        if candidate.customer_id in seen_customers:
            continue
        seen_customers.add(candidate.customer_id)
        ranked.append(candidate)
    return ranked


def select_candidates(candidates: Sequence[Candidate], limit: int = MAX_RECIPIENTS_PER_LEAD) -> Selection:
    if limit < 1:
        raise ValueError("limit must be >= 1")
    limit = min(limit, MAX_RECIPIENTS_PER_LEAD)
    ranked = rank_candidates(candidates)
    return Selection(selected=ranked[:limit], reserves=ranked[limit:], limit=limit)


def classify_selection(snapshot: BatchSnapshot, candidates: Sequence[Candidate]) -> DistributionOutcome:
    """
    Pre-commit outcome.

    "No active batches" and "no capacity anywhere" are reported separately
    from "nothing eligible" so operators can tell an empty market from a
    territory mismatch.
    """

    if snapshot.is_empty:
        return DistributionOutcome.NO_ACTIVE_BATCHES
    if all(c.rejection is RejectionCode.NO_CAPACITY for c in candidates):
        return DistributionOutcome.NO_CAPACITY
    if not any(c.eligible for c in candidates):
        return DistributionOutcome.NO_ELIGIBLE_CANDIDATES
    return DistributionOutcome.DISTRIBUTED


__all__ = [
    "DistributionOutcome",
    "MAX_RECIPIENTS_PER_LEAD",
    "Selection",
    "classify_selection",
    "rank_candidates",
    "select_candidates",
]

"""
Capacity-safe distribution commit.

The evaluator's capacity check reads a snapshot that may be stale by the time
a decision is written. The store's `claim_distribution` is therefore the only
authority for the invariants and must, as one atomic unit:

- re-check that the batch is active and below capacity,
- insert the distribution guarded by the (lead, customer) uniqueness rule,
- increment the batch fill counter by exactly one,
- refuse once the lead already has MAX_RECIPIENTS_PER_LEAD distributions.

Two concurrent claims for the last slot of a batch yield one COMMITTED and one
NO_CAPACITY. Losing a race is an expected outcome: the candidate is dropped
and, when promotion is enabled, the next-ranked reserve is tried instead.
A LEAD_CAP_REACHED claim ends the loop: another run filled the lead first.

Only `DistributionPersistenceError` (infrastructure trouble) is retried, with
bounded exponential backoff. Re-running after an exhausted retry is safe: an
already-stored (lead, customer) pair comes back as ALREADY_DISTRIBUTED and the
counter is not incremented again.

`DryRunCommitter` runs the same loop with read-only checks, for simulation.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol, TypeVar
from uuid import UUID

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from domain.candidate import Candidate
from domain.distribution import DistributionRecord
from domain.time import require_utc_timestamp, utc_now
from services.selector import Selection
from services.settings import DistributionSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DistributionPersistenceError(RuntimeError):
    """Transient storage failure while reading or writing distributions."""


class ClaimStatus(str, Enum):
    COMMITTED = "committed"
    NO_CAPACITY = "no_capacity"
    ALREADY_DISTRIBUTED = "already_distributed"
    LEAD_CAP_REACHED = "lead_cap_reached"


@dataclass(frozen=True, slots=True)
class ClaimResult:
    status: ClaimStatus
    distribution: Optional[DistributionRecord] = None
    batch_completed: bool = False
    message: str = ""


class DistributionStore(Protocol):
    def list_distributions_for_lead(self, lead_id: UUID) -> List[DistributionRecord]:
        ...

    def claim_distribution(self, lead_id: UUID, candidate: Candidate, distributed_at: datetime) -> ClaimResult:
        ...

    def batch_has_capacity(self, batch_id: UUID) -> bool:
        ...

    def customer_has_lead(self, lead_id: UUID, customer_id: str) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class CommittedDistribution:
    candidate: Candidate
    distribution: Optional[DistributionRecord]
    batch_completed: bool = False
    promoted: bool = False

    def to_dict(self) -> dict:
        return {
            "customer_id": self.candidate.customer_id,
            "batch_id": str(self.candidate.batch_id),
            "distribution_id": str(self.distribution.distribution_id) if self.distribution else None,
            "priority_score": self.candidate.priority_score,
            "distance_km": self.candidate.distance_km,
            "batch_completed": self.batch_completed,
            "promoted": self.promoted,
        }


@dataclass(frozen=True, slots=True)
class DroppedCandidate:
    candidate: Candidate
    status: ClaimStatus
    reason: str

    def to_dict(self) -> dict:
        return {
            "customer_id": self.candidate.customer_id,
            "batch_id": str(self.candidate.batch_id),
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass(slots=True)
class CommitReport:
    dry_run: bool
    committed: List[CommittedDistribution] = field(default_factory=list)
    dropped: List[DroppedCandidate] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def promoted_count(self) -> int:
        return sum(1 for c in self.committed if c.promoted)


_DROP_REASONS = {
    ClaimStatus.NO_CAPACITY: "Batch capacity exhausted at commit time",
    ClaimStatus.ALREADY_DISTRIBUTED: "Customer already received this lead",
    ClaimStatus.LEAD_CAP_REACHED: "Lead already reached its maximum number of recipients",
}


class _Committer:
    dry_run = False

    def __init__(self, store: DistributionStore, settings: Optional[DistributionSettings] = None) -> None:
        self.store = store
        self.settings = settings or DistributionSettings()

    def _retrying(self) -> Retrying:
        """Waits 1s, 2s, 4s ... per retry, clamped to the configured backoff bounds."""

        return Retrying(
            stop=stop_after_attempt(self.settings.commit_max_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self.settings.commit_backoff_min_seconds,
                max=self.settings.commit_backoff_max_seconds,
            ),
            retry=retry_if_exception_type(DistributionPersistenceError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _call(self, fn: Callable[..., T], *args: object) -> T:
        return self._retrying()(fn, *args)

    def _attempt(self, lead_id: UUID, candidate: Candidate, distributed_at: datetime) -> ClaimResult:
        raise NotImplementedError

    def commit(self, lead_id: Optional[UUID], selection: Selection, distributed_at: Optional[datetime] = None) -> CommitReport:
        """
        Claim the selected candidates in rank order.

        If storage keeps failing after retries the loop stops and `error` is
        set on the report; distributions committed before the failure stay
        committed and are listed.
        """

        distributed_at = distributed_at or utc_now()
        require_utc_timestamp("distributed_at", distributed_at)

        report = CommitReport(dry_run=self.dry_run)
        pending = deque((c, False) for c in selection.selected)
        reserves = deque(selection.reserves)

        while pending and len(report.committed) < selection.limit:
            candidate, promoted = pending.popleft()
            try:
                result = self._attempt(lead_id, candidate, distributed_at)
            except DistributionPersistenceError as e:
                logger.error("Commit for lead %s failed after retries: %s", lead_id, e)
                report.error = str(e)
                break

            if result.status is ClaimStatus.COMMITTED:
                report.committed.append(
                    CommittedDistribution(
                        candidate=candidate,
                        distribution=result.distribution,
                        batch_completed=result.batch_completed,
                        promoted=promoted,
                    )
                )
                continue

            reason = result.message or _DROP_REASONS[result.status]
            logger.info(
                "Dropped candidate %s (batch %s) for lead %s: %s",
                candidate.customer_id, candidate.batch_id, lead_id, reason,
            )
            report.dropped.append(DroppedCandidate(candidate=candidate, status=result.status, reason=reason))

            if result.status is ClaimStatus.LEAD_CAP_REACHED:
                break
            if self.settings.promote_on_conflict and reserves:
                pending.append((reserves.popleft(), True))

        return report


class LiveCommitter(_Committer):
    def _attempt(self, lead_id: Optional[UUID], candidate: Candidate, distributed_at: datetime) -> ClaimResult:
        if lead_id is None:
            raise ValueError("A live commit requires a stored lead")
        return self._call(self.store.claim_distribution, lead_id, candidate, distributed_at)


class DryRunCommitter(_Committer):
    """Reports what a live commit would do right now, without writing."""

    dry_run = True

    def _attempt(self, lead_id: Optional[UUID], candidate: Candidate, distributed_at: datetime) -> ClaimResult:
        # A lead that was never stored cannot have been distributed.
        if lead_id is not None and self._call(self.store.customer_has_lead, lead_id, candidate.customer_id):
            return ClaimResult(ClaimStatus.ALREADY_DISTRIBUTED)
        if not self._call(self.store.batch_has_capacity, candidate.batch_id):
            return ClaimResult(ClaimStatus.NO_CAPACITY)
        return ClaimResult(ClaimStatus.COMMITTED)


__all__ = [
    "ClaimResult",
    "ClaimStatus",
    "CommitReport",
    "CommittedDistribution",
    "DistributionPersistenceError",
    "DistributionStore",
    "DroppedCandidate",
    "DryRunCommitter",
    "LiveCommitter",
]

"""
Lead distribution pipeline.

Given a newly captured lead, decide which customers receive it:

1. Validate the submission (input errors are raised before any lookup).
2. Resolve the lead: commit mode upserts it (idempotent on email), simulate
   mode only looks it up.
3. Geocode the postcode, unless coordinates are already known for it.
4. Snapshot the branch's active batches.
5. Evaluate every batch (capacity, duplicate, territory).
6. Rank and select up to the lead's open slots (MAX_RECIPIENTS_PER_LEAD minus
   customers already served by earlier submissions).
7. Commit atomically (commit mode) or dry-run the commit (simulate mode).
8. Emit notification triggers for committed distributions (commit mode only),
   also for those committed before a storage failure ended the run.

Simulation and commit share steps 1-7 exactly; only the committer differs.

Example:
    engine = DistributionEngine(
        geocoder=PdokGeocoder(settings.geocoder_url),
        leads=lead_repository,
        batches=batch_repository,
        distributions=distribution_repository,
    )
    report = engine.distribute(LeadSubmission(email="a@b.nl", branch="solar", postcode="8011AA"),
                               mode=DistributionMode.COMMIT)
    if report.success:
        print(report.committed_customer_ids)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol
from uuid import UUID

from domain.candidate import Candidate
from domain.distribution import DistributionRecord
from domain.geo import Coordinates
from domain.lead import Lead, LeadSubmission
from domain.time import utc_now
from services.batch_registry import BatchRegistry, load_batch_snapshot
from services.distribution_committer import (
    ClaimStatus,
    CommitReport,
    CommittedDistribution,
    DistributionPersistenceError,
    DistributionStore,
    DroppedCandidate,
    DryRunCommitter,
    LiveCommitter,
)
from services.eligibility import evaluate_batches
from services.geocoder import GeocodeStatus, Geocoder
from services.notifications import BatchCompletedTrigger, NotificationTrigger, Notifier
from services.selector import (
    MAX_RECIPIENTS_PER_LEAD,
    DistributionOutcome,
    classify_selection,
    select_candidates,
)
from services.settings import DistributionSettings
from services.trace import DistributionTrace

logger = logging.getLogger(__name__)


class DistributionMode(str, Enum):
    SIMULATE = "simulate"
    COMMIT = "commit"


class LeadStore(Protocol):
    def get_lead_by_email(self, email: str) -> Optional[Lead]:
        ...

    def upsert_lead_submission(self, submission: LeadSubmission, seen_at: datetime) -> Lead:
        ...

    def save_lead_coordinates(self, lead_id: UUID, postcode: str, coordinates: Coordinates) -> None:
        ...


_OUTCOME_MESSAGES = {
    DistributionOutcome.NO_ACTIVE_BATCHES: "No active batches found for branch {branch}",
    DistributionOutcome.NO_CAPACITY: "No batches with available capacity",
    DistributionOutcome.NO_ELIGIBLE_CANDIDATES: "No eligible candidates",
    DistributionOutcome.COMMIT_CONFLICT: "All selected batches lost their capacity at commit time",
    DistributionOutcome.LEAD_CAP_REACHED: f"Lead already reached the maximum of {MAX_RECIPIENTS_PER_LEAD} recipients",
}


@dataclass(slots=True)
class DistributionReport:
    mode: DistributionMode
    outcome: DistributionOutcome
    branch: str
    lead_id: Optional[UUID] = None
    postcode: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    geocode_status: Optional[GeocodeStatus] = None
    candidates: List[Candidate] = field(default_factory=list)
    selected: List[Candidate] = field(default_factory=list)
    committed: List[CommittedDistribution] = field(default_factory=list)
    dropped: List[DroppedCandidate] = field(default_factory=list)
    trace: List[str] = field(default_factory=list)
    error: Optional[str] = None
    notification_errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome is DistributionOutcome.DISTRIBUTED

    @property
    def distributions_planned(self) -> int:
        return len(self.selected)

    @property
    def distributions_executed(self) -> int:
        return len(self.committed) if self.mode is DistributionMode.COMMIT else 0

    @property
    def committed_customer_ids(self) -> List[str]:
        return [c.candidate.customer_id for c in self.committed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "outcome": self.outcome.value,
            "success": self.success,
            "branch": self.branch,
            "lead_id": str(self.lead_id) if self.lead_id else None,
            "postcode": self.postcode,
            "coordinates": (
                {"lat": self.coordinates.lat, "lng": self.coordinates.lng} if self.coordinates else None
            ),
            "geocode_status": self.geocode_status.value if self.geocode_status else None,
            "distributions_planned": self.distributions_planned,
            "distributions_executed": self.distributions_executed,
            "candidates": [c.to_dict() for c in self.candidates],
            "selected_customers": [c.customer_id for c in self.selected],
            "committed": [c.to_dict() for c in self.committed],
            "dropped": [d.to_dict() for d in self.dropped],
            "trace": list(self.trace),
            "error": self.error,
            "notification_errors": list(self.notification_errors),
        }


class DistributionEngine:
    def __init__(
        self,
        geocoder: Geocoder,
        leads: LeadStore,
        batches: BatchRegistry,
        distributions: DistributionStore,
        notifier: Optional[Notifier] = None,
        settings: Optional[DistributionSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.geocoder = geocoder
        self.leads = leads
        self.batches = batches
        self.distributions = distributions
        self.notifier = notifier
        self.settings = settings or DistributionSettings()
        self.clock = clock

    def distribute(
        self,
        submission: LeadSubmission,
        mode: DistributionMode = DistributionMode.SIMULATE,
        limit: int = MAX_RECIPIENTS_PER_LEAD,
    ) -> DistributionReport:
        """
        Run the distribution pipeline for one lead.

        Raises:
            InvalidLeadError: the submission has no branch or no usable email.
            ValueError: `limit` is below 1.
        """

        if limit < 1:
            raise ValueError("limit must be >= 1")
        submission = submission.validate()
        trace = DistributionTrace(clock=self.clock, prefix=f"[{mode.value}] ")
        report = DistributionReport(
            mode=mode,
            outcome=DistributionOutcome.FAILED,
            branch=submission.branch,
            postcode=submission.postcode,
        )

        trace.log("=== START DISTRIBUTION ===")
        trace.log(
            "Mode: "
            + ("SIMULATE (no writes)" if mode is DistributionMode.SIMULATE else "COMMIT (live distribution)")
        )
        trace.log(f"Lead: {submission.name or submission.email} | Branch: {submission.branch}")

        trace.step(1, "Resolving lead")
        lead = self._resolve_lead(submission, mode, trace)
        report.lead_id = lead.lead_id if lead else None

        trace.step(2, "Processing geographic data")
        coordinates = self._resolve_coordinates(submission, lead, mode, report, trace)
        report.coordinates = coordinates

        trace.step(3, f"Finding active batches for branch: {submission.branch}")
        snapshot = load_batch_snapshot(self.batches, submission.branch)
        trace.log(f"Found {len(snapshot.batches)} active batches")
        if snapshot.is_empty:
            return self._finish(report, DistributionOutcome.NO_ACTIVE_BATCHES, trace)

        trace.step(4, "Checking batch capacity")
        trace.log(f"Batches with available capacity: {len(snapshot.with_capacity)}/{len(snapshot.batches)}")
        for line in snapshot.summary_lines():
            trace.log(f"  - {line}")

        trace.step(5, "Evaluating distribution candidates")
        delivered: set[str] = set()
        if lead is not None:
            try:
                history = self.distributions.list_distributions_for_lead(lead.lead_id)
            except DistributionPersistenceError as e:
                report.error = f"Could not read distribution history: {e}"
                return self._finish(report, DistributionOutcome.FAILED, trace)
            delivered = {d.customer_id for d in history}
        candidates = evaluate_batches(
            coordinates,
            snapshot.batches,
            delivered,
            regions_accept_unresolved=self.settings.regions_accept_unresolved,
        )
        report.candidates = candidates
        for candidate in candidates:
            mark = "OK" if candidate.eligible else "REJECTED"
            score = f" (priority {candidate.priority_score:g})" if candidate.eligible else ""
            trace.log(f"  {candidate.customer_name or candidate.customer_id} [{candidate.territory_type}]: "
                      f"{mark}{score} - {candidate.reason}")

        open_slots = min(limit, MAX_RECIPIENTS_PER_LEAD - len(delivered))
        if open_slots < 1:
            trace.log(f"Lead already delivered to {len(delivered)} customers (max {MAX_RECIPIENTS_PER_LEAD})")
            return self._finish(report, DistributionOutcome.LEAD_CAP_REACHED, trace)

        outcome = classify_selection(snapshot, candidates)
        if outcome is not DistributionOutcome.DISTRIBUTED:
            return self._finish(report, outcome, trace)

        trace.step(6, "Selecting distribution targets")
        if delivered:
            trace.log(f"Lead already delivered to {len(delivered)} customers, {open_slots} slot(s) left")
        selection = select_candidates(candidates, limit=open_slots)
        report.selected = list(selection.selected)
        trace.log(f"Eligible candidates: {len(selection.ranked)}")
        trace.log(f"Selected for distribution: {len(selection.selected)} (max {selection.limit})")
        for index, candidate in enumerate(selection.selected, start=1):
            trace.log(f"  {index}. {candidate.customer_name or candidate.customer_id} "
                      f"(priority {candidate.priority_score:g}, {candidate.reason})")

        if mode is DistributionMode.COMMIT:
            trace.step(7, "Executing distribution")
            committer = LiveCommitter(self.distributions, self.settings)
        else:
            trace.step(7, "Simulating distribution")
            committer = DryRunCommitter(self.distributions, self.settings)

        commit_report = committer.commit(report.lead_id, selection, self.clock())
        self._record_commit(report, commit_report, trace)

        # Committed distributions are final even when the run fails afterwards.
        if mode is DistributionMode.COMMIT and lead is not None:
            self._notify(lead, commit_report, report, trace)

        if commit_report.error is not None:
            report.error = commit_report.error
            trace.log(f"Commit failed: {commit_report.error}", logging.ERROR)
            return self._finish(report, DistributionOutcome.FAILED, trace)

        if not commit_report.committed:
            if any(d.status is ClaimStatus.LEAD_CAP_REACHED for d in commit_report.dropped):
                return self._finish(report, DistributionOutcome.LEAD_CAP_REACHED, trace)
            return self._finish(report, DistributionOutcome.COMMIT_CONFLICT, trace)

        return self._finish(report, DistributionOutcome.DISTRIBUTED, trace)

    def _resolve_lead(self, submission: LeadSubmission, mode: DistributionMode, trace: DistributionTrace) -> Optional[Lead]:
        if mode is DistributionMode.COMMIT:
            lead = self.leads.upsert_lead_submission(submission, self.clock())
            if lead.is_returning:
                trace.log(f"Returning lead {lead.lead_id} (submission #{lead.form_submission_count})")
            else:
                trace.log(f"New lead stored: {lead.lead_id}")
            return lead

        lead = self.leads.get_lead_by_email(submission.email)
        if lead is None:
            trace.log("Lead is new (not stored yet)")
        else:
            trace.log(
                f"Lead already exists: {lead.lead_id} "
                f"(distributions: {lead.total_distribution_count}, "
                f"unique customers: {lead.unique_customers_count}, "
                f"submissions: {lead.form_submission_count})"
            )
        return lead

    def _resolve_coordinates(
        self,
        submission: LeadSubmission,
        lead: Optional[Lead],
        mode: DistributionMode,
        report: DistributionReport,
        trace: DistributionTrace,
    ) -> Optional[Coordinates]:
        if submission.coordinates is not None:
            trace.log(f"Coordinates supplied: {submission.coordinates.lat:.6f}, {submission.coordinates.lng:.6f}")
            return submission.coordinates

        if not submission.postcode:
            trace.log("No postcode provided, radius batches cannot match", logging.WARNING)
            return None

        trace.log(f"Postcode provided: {submission.postcode}")
        cached = lead.coordinates_for(submission.postcode) if lead else None
        if cached is not None:
            report.geocode_status = GeocodeStatus.FOUND
            trace.log(f"Using stored coordinates: {cached.lat:.6f}, {cached.lng:.6f}")
            return cached

        result = self.geocoder.geocode(submission.postcode)
        report.geocode_status = result.status
        if result.coordinates is None:
            level = logging.ERROR if result.status is GeocodeStatus.FAILED else logging.WARNING
            trace.log(f"Could not geocode postcode {submission.postcode} ({result.status.value}): {result.message}", level)
            return None

        coordinates = result.coordinates
        trace.log(f"Coordinates found: {coordinates.lat:.6f}, {coordinates.lng:.6f}")
        if mode is DistributionMode.COMMIT and lead is not None:
            self.leads.save_lead_coordinates(lead.lead_id, submission.postcode, coordinates)
        return coordinates

    def _record_commit(self, report: DistributionReport, commit_report: CommitReport, trace: DistributionTrace) -> None:
        report.committed = list(commit_report.committed)
        report.dropped = list(commit_report.dropped)
        verb = "Would distribute" if commit_report.dry_run else "Distributed"
        for item in commit_report.committed:
            suffix = " (promoted)" if item.promoted else ""
            trace.log(f"  {verb} to {item.candidate.customer_name or item.candidate.customer_id}{suffix}")
        for item in commit_report.dropped:
            trace.log(f"  Dropped {item.candidate.customer_id}: {item.reason}", logging.WARNING)

    def _notify(self, lead: Lead, commit_report: CommitReport, report: DistributionReport, trace: DistributionTrace) -> None:
        if self.notifier is None:
            return
        for item in commit_report.committed:
            trigger = NotificationTrigger(
                lead_id=lead.lead_id,
                customer_id=item.candidate.customer_id,
                batch_id=item.candidate.batch_id,
                distribution_id=item.distribution.distribution_id if item.distribution else None,
                email=lead.email,
                name=lead.name,
                phone=lead.phone,
                postcode=lead.postcode,
                branch=lead.branch,
            )
            try:
                self.notifier.lead_distributed(trigger)
                if item.batch_completed:
                    self.notifier.batch_completed(
                        BatchCompletedTrigger(batch_id=item.candidate.batch_id, customer_id=item.candidate.customer_id)
                    )
            except Exception as e:
                # The distribution is committed; delivery is retried by the notification subsystem.
                logger.exception("Notification failed for lead %s -> %s", lead.lead_id, trigger.customer_id)
                report.notification_errors.append(f"{trigger.customer_id}: {e}")
                trace.log(f"Notification failed for {trigger.customer_id}: {e}", logging.ERROR)

    def _finish(self, report: DistributionReport, outcome: DistributionOutcome, trace: DistributionTrace) -> DistributionReport:
        report.outcome = outcome
        message = _OUTCOME_MESSAGES.get(outcome)
        if message is not None:
            report.error = report.error or message.format(branch=report.branch)
            trace.log(report.error, logging.WARNING)
        trace.log(f"Outcome: {outcome.value}")
        trace.log("=== END DISTRIBUTION ===")
        report.trace = trace.lines
        return report


def get_lead_distribution_history(store: DistributionStore, lead_id: UUID) -> List[DistributionRecord]:
    """Distribution records of a lead, oldest first."""

    return sorted(store.list_distributions_for_lead(lead_id), key=lambda d: d.distributed_at)


__all__ = [
    "DistributionEngine",
    "DistributionMode",
    "DistributionReport",
    "LeadStore",
    "get_lead_distribution_history",
]

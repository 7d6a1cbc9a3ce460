"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so tests can import domain,
services and api, and provides an in-memory storage backend that stands in
for Supabase. The backend enforces the same rules as sql/schema.sql: the
batch fill counter never exceeds the batch size, a (lead, customer) pair is
stored at most once and a lead has at most MAX_RECIPIENTS_PER_LEAD
distributions.
"""

import sys
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path
# so tests can import domain, services, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.batch import CustomerBatch  # noqa: E402
from domain.candidate import Candidate  # noqa: E402
from domain.distribution import DistributionRecord  # noqa: E402
from domain.geo import Coordinates  # noqa: E402
from domain.lead import Lead, LeadSubmission  # noqa: E402
from domain.territory import FullCountry, Radius, Territory  # noqa: E402
from services.distribution_committer import ClaimResult, ClaimStatus  # noqa: E402
from services.distribution_service import DistributionEngine  # noqa: E402
from services.geocoder import StaticPostcodeGeocoder  # noqa: E402
from services.selector import MAX_RECIPIENTS_PER_LEAD  # noqa: E402
from services.settings import DistributionSettings  # noqa: E402

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

ZWOLLE = Coordinates(52.5125, 6.0939)
# Roughly 5 km north-east of ZWOLLE.
NEAR_ZWOLLE = Coordinates(52.5450, 6.1450)
AMSTERDAM = Coordinates(52.3676, 4.9041)


class InMemoryBackend:
    """
    Thread-safe stand-in for the leads, customer_batches and
    lead_distributions tables. Implements LeadStore, BatchRegistry and
    DistributionStore at once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.leads: Dict[UUID, Lead] = {}
        self.batches: Dict[UUID, CustomerBatch] = {}
        self.distributions: List[DistributionRecord] = []
        self.writes = 0

    # -- fixtures --------------------------------------------------------

    def add_batch(self, batch: CustomerBatch) -> CustomerBatch:
        self.batches[batch.batch_id] = batch
        return batch

    def add_distribution(self, lead_id: UUID, customer_id: str, batch_id: UUID) -> DistributionRecord:
        record = DistributionRecord(
            distribution_id=uuid4(),
            lead_id=lead_id,
            customer_id=customer_id,
            batch_id=batch_id,
            distributed_at=FIXED_NOW,
        )
        self.distributions.append(record)
        return record

    # -- LeadStore -------------------------------------------------------

    def get_lead_by_email(self, email: str) -> Optional[Lead]:
        for lead in self.leads.values():
            if lead.email == email.strip().lower():
                return lead
        return None

    def upsert_lead_submission(self, submission: LeadSubmission, seen_at: datetime) -> Lead:
        with self._lock:
            self.writes += 1
            existing = self.get_lead_by_email(submission.email)
            if existing is not None:
                lead = replace(
                    existing,
                    last_seen_at=seen_at,
                    form_submission_count=existing.form_submission_count + 1,
                    postcode=submission.postcode or existing.postcode,
                    coordinates=(
                        submission.coordinates
                        or (existing.coordinates if submission.postcode in (None, existing.postcode) else None)
                    ),
                )
            else:
                lead = Lead(
                    lead_id=uuid4(),
                    email=submission.email,
                    branch=submission.branch,
                    first_seen_at=seen_at,
                    last_seen_at=seen_at,
                    postcode=submission.postcode,
                    coordinates=submission.coordinates,
                    name=submission.name,
                    phone=submission.phone,
                )
            self.leads[lead.lead_id] = lead
            return lead

    def save_lead_coordinates(self, lead_id: UUID, postcode: str, coordinates: Coordinates) -> None:
        with self._lock:
            self.writes += 1
            self.leads[lead_id] = replace(self.leads[lead_id], postcode=postcode, coordinates=coordinates)

    # -- BatchRegistry ---------------------------------------------------

    def list_active_batches(self, branch: str) -> List[CustomerBatch]:
        return [b for b in self.batches.values() if b.branch == branch and b.is_active]

    # -- DistributionStore -----------------------------------------------

    def list_distributions_for_lead(self, lead_id: UUID) -> List[DistributionRecord]:
        return [d for d in self.distributions if d.lead_id == lead_id]

    def customer_has_lead(self, lead_id: UUID, customer_id: str) -> bool:
        return any(d.lead_id == lead_id and d.customer_id == customer_id for d in self.distributions)

    def batch_has_capacity(self, batch_id: UUID) -> bool:
        batch = self.batches.get(batch_id)
        return batch is not None and batch.is_active and batch.has_capacity

    def claim_distribution(self, lead_id: UUID, candidate: Candidate, distributed_at: datetime) -> ClaimResult:
        with self._lock:
            batch = self.batches.get(candidate.batch_id)
            if batch is None or not batch.is_active or not batch.has_capacity:
                return ClaimResult(ClaimStatus.NO_CAPACITY)
            if self.customer_has_lead(lead_id, candidate.customer_id):
                return ClaimResult(ClaimStatus.ALREADY_DISTRIBUTED)
            if len(self.list_distributions_for_lead(lead_id)) >= MAX_RECIPIENTS_PER_LEAD:
                return ClaimResult(ClaimStatus.LEAD_CAP_REACHED)

            self.writes += 1
            count = batch.current_batch_count + 1
            completed = count >= batch.total_batch_size
            self.batches[batch.batch_id] = replace(batch, current_batch_count=count, is_active=not completed)

            record = DistributionRecord(
                distribution_id=uuid4(),
                lead_id=lead_id,
                customer_id=candidate.customer_id,
                batch_id=candidate.batch_id,
                distributed_at=distributed_at,
                territory_type=candidate.territory_type,
                priority_score=candidate.priority_score,
                distance_km=candidate.distance_km,
                match_reason=candidate.reason,
            )
            self.distributions.append(record)

            lead = self.leads.get(lead_id)
            if lead is not None:
                self.leads[lead_id] = replace(
                    lead,
                    total_distribution_count=lead.total_distribution_count + 1,
                    unique_customers_count=lead.unique_customers_count + 1,
                )
            return ClaimResult(ClaimStatus.COMMITTED, distribution=record, batch_completed=completed)


class RecordingNotifier:
    def __init__(self) -> None:
        self.distributed = []
        self.completed = []

    def lead_distributed(self, trigger) -> None:
        self.distributed.append(trigger)

    def batch_completed(self, trigger) -> None:
        self.completed.append(trigger)


def make_batch(
    customer_id: str,
    *,
    territory: Territory = FullCountry(),
    total: int = 10,
    current: int = 0,
    branch: str = "solar",
    batch_id: Optional[UUID] = None,
    is_active: bool = True,
) -> CustomerBatch:
    return CustomerBatch(
        batch_id=batch_id or uuid4(),
        customer_id=customer_id,
        customer_name=f"Customer {customer_id}",
        branch=branch,
        total_batch_size=total,
        current_batch_count=current,
        is_active=is_active,
        territory=territory,
    )


def zwolle_radius(radius_km: float = 25.0) -> Radius:
    return Radius(radius_km=radius_km, center=ZWOLLE, center_postcode="8011AA")


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fast_settings() -> DistributionSettings:
    return DistributionSettings(commit_backoff_min_seconds=0.0, commit_backoff_max_seconds=0.0)


@pytest.fixture
def build_engine(backend, notifier, fast_settings) -> Callable[..., DistributionEngine]:
    def _build(**overrides) -> DistributionEngine:
        kwargs = dict(
            geocoder=StaticPostcodeGeocoder({"8011AA": ZWOLLE, "8014": NEAR_ZWOLLE, "1012": AMSTERDAM}),
            leads=backend,
            batches=backend,
            distributions=backend,
            notifier=notifier,
            settings=fast_settings,
            clock=lambda: FIXED_NOW,
        )
        kwargs.update(overrides)
        return DistributionEngine(**kwargs)

    return _build

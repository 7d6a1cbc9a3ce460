"""
Eligibility evaluation for one (lead, batch) pair.

Checks run in a fixed order; the first failing check determines the
rejection reason:

1. Capacity: current_batch_count >= total_batch_size rejects.
2. Duplicate: the batch's customer already received this lead (through any
   of its batches) rejects.
3. Territory:
   - full_country: eligible, score FULL_COUNTRY_PRIORITY (filled last).
   - radius: needs lead and batch center coordinates; eligible iff
     distance <= radius_km; score is radius_km, so tighter targeting wins.
   - regions: eligible iff the lead's resolved province is in the allowed
     set; score REGIONS_PRIORITY.

Scores are "lower is better". Evaluation is pure and never mutates state.
"""

from __future__ import annotations

from typing import AbstractSet, Iterable, List, Optional

from domain.batch import CustomerBatch
from domain.candidate import Candidate, RejectionCode
from domain.geo import Coordinates, haversine_km
from domain.regions import normalize_region, resolve_region
from domain.territory import FullCountry, Radius, Regions

FULL_COUNTRY_PRIORITY = 1000.0
REGIONS_PRIORITY = 500.0


def _rejected(batch: CustomerBatch, code: RejectionCode, reason: str, distance_km: Optional[float] = None) -> Candidate:
    return Candidate(
        customer_id=batch.customer_id,
        customer_name=batch.customer_name,
        batch_id=batch.batch_id,
        territory_type=batch.territory.territory_type.value,
        eligible=False,
        reason=reason,
        distance_km=distance_km,
        rejection=code,
    )


def _eligible(batch: CustomerBatch, score: float, reason: str, distance_km: Optional[float] = None) -> Candidate:
    return Candidate(
        customer_id=batch.customer_id,
        customer_name=batch.customer_name,
        batch_id=batch.batch_id,
        territory_type=batch.territory.territory_type.value,
        eligible=True,
        reason=reason,
        priority_score=score,
        distance_km=distance_km,
    )


def evaluate_candidate(
    lead_coordinates: Optional[Coordinates],
    batch: CustomerBatch,
    delivered_customer_ids: AbstractSet[str],
    *,
    regions_accept_unresolved: bool = True,
) -> Candidate:
    """Evaluate whether `batch` may receive the lead located at `lead_coordinates`."""

    if not batch.has_capacity:
        return _rejected(
            batch,
            RejectionCode.NO_CAPACITY,
            f"Batch is full ({batch.current_batch_count}/{batch.total_batch_size})",
        )

    if batch.customer_id in delivered_customer_ids:
        return _rejected(batch, RejectionCode.ALREADY_RECEIVED, "Customer already received this lead")

    territory = batch.territory

    if isinstance(territory, FullCountry):
        return _eligible(batch, FULL_COUNTRY_PRIORITY, "Nationwide (lowest priority)")

    if isinstance(territory, Radius):
        if lead_coordinates is None:
            return _rejected(batch, RejectionCode.LEAD_NOT_GEOCODED, "Lead has no coordinates")
        if territory.center is None:
            return _rejected(batch, RejectionCode.BATCH_HAS_NO_CENTER, "Batch has no center coordinates")

        distance = haversine_km(lead_coordinates, territory.center)
        if distance <= territory.radius_km:
            return _eligible(
                batch,
                territory.radius_km,
                f"Within {territory.radius_km:g}km radius ({distance:.1f}km away)",
                distance_km=distance,
            )
        return _rejected(
            batch,
            RejectionCode.OUT_OF_RADIUS,
            f"Out of range: {distance:.1f}km > {territory.radius_km:g}km",
            distance_km=distance,
        )

    if isinstance(territory, Regions):
        if not territory.regions:
            return _rejected(batch, RejectionCode.NO_REGIONS_CONFIGURED, "Batch has no regions configured")

        region = resolve_region(lead_coordinates)
        if region is None:
            if regions_accept_unresolved:
                return _eligible(batch, REGIONS_PRIORITY, "Regional batch (lead region unresolved, accepted)")
            return _rejected(batch, RejectionCode.LEAD_NOT_GEOCODED, "Lead region cannot be resolved without coordinates")

        allowed = {normalize_region(r) for r in territory.regions}
        if normalize_region(region) in allowed:
            return _eligible(batch, REGIONS_PRIORITY, f"Regional match ({region})")
        return _rejected(batch, RejectionCode.REGION_NOT_ALLOWED, f"Lead region {region} not in batch regions")

    raise TypeError(f"Unsupported territory: {territory!r}")


def evaluate_batches(
    lead_coordinates: Optional[Coordinates],
    batches: Iterable[CustomerBatch],
    delivered_customer_ids: AbstractSet[str],
    *,
    regions_accept_unresolved: bool = True,
) -> List[Candidate]:
    return [
        evaluate_candidate(
            lead_coordinates,
            batch,
            delivered_customer_ids,
            regions_accept_unresolved=regions_accept_unresolved,
        )
        for batch in batches
    ]


__all__ = [
    "FULL_COUNTRY_PRIORITY",
    "REGIONS_PRIORITY",
    "evaluate_batches",
    "evaluate_candidate",
]

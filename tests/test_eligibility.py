"""
Tests for `services/eligibility.py`.

Covers:
- Check order: capacity, then duplicate, then territory.
- full_country scores 1000, radius scores its radius, regions score 500.
- Radius boundary: a lead exactly on the radius is eligible.
- A lead without coordinates never matches a radius batch.
- Regions match on the nearest province.
"""

from __future__ import annotations

from domain.candidate import RejectionCode
from domain.geo import haversine_km
from domain.territory import Radius, Regions
from services.eligibility import (
    FULL_COUNTRY_PRIORITY,
    REGIONS_PRIORITY,
    evaluate_batches,
    evaluate_candidate,
)
from conftest import AMSTERDAM, NEAR_ZWOLLE, ZWOLLE, make_batch, zwolle_radius


def test_full_country_is_eligible_with_lowest_priority() -> None:
    candidate = evaluate_candidate(None, make_batch("b"), set())

    assert candidate.eligible
    assert candidate.priority_score == FULL_COUNTRY_PRIORITY
    assert candidate.territory_type == "full_country"


def test_radius_within_range_scores_radius() -> None:
    candidate = evaluate_candidate(NEAR_ZWOLLE, make_batch("a", territory=zwolle_radius(25)), set())

    assert candidate.eligible
    assert candidate.priority_score == 25.0
    assert 4.0 < candidate.distance_km < 6.0
    assert "Within 25km radius" in candidate.reason


def test_radius_boundary_is_inclusive() -> None:
    distance = haversine_km(ZWOLLE, NEAR_ZWOLLE)
    batch = make_batch("a", territory=Radius(radius_km=distance, center=ZWOLLE))

    assert evaluate_candidate(NEAR_ZWOLLE, batch, set()).eligible


def test_radius_out_of_range_is_rejected() -> None:
    candidate = evaluate_candidate(AMSTERDAM, make_batch("a", territory=zwolle_radius(25)), set())

    assert not candidate.eligible
    assert candidate.rejection is RejectionCode.OUT_OF_RADIUS
    assert candidate.distance_km > 25


def test_radius_without_lead_coordinates_is_rejected() -> None:
    candidate = evaluate_candidate(None, make_batch("a", territory=zwolle_radius()), set())

    assert candidate.rejection is RejectionCode.LEAD_NOT_GEOCODED


def test_radius_without_batch_center_is_rejected() -> None:
    batch = make_batch("a", territory=Radius(radius_km=25, center=None, center_postcode="9999ZZ"))

    assert evaluate_candidate(ZWOLLE, batch, set()).rejection is RejectionCode.BATCH_HAS_NO_CENTER


def test_capacity_is_checked_before_duplicate_and_territory() -> None:
    batch = make_batch("a", territory=zwolle_radius(), total=10, current=10)

    candidate = evaluate_candidate(AMSTERDAM, batch, {"a"})

    assert candidate.rejection is RejectionCode.NO_CAPACITY
    assert candidate.reason == "Batch is full (10/10)"


def test_duplicate_is_checked_before_territory() -> None:
    candidate = evaluate_candidate(AMSTERDAM, make_batch("a", territory=zwolle_radius()), {"a"})

    assert candidate.rejection is RejectionCode.ALREADY_RECEIVED
    assert candidate.reason == "Customer already received this lead"


def test_regions_match_on_resolved_province() -> None:
    batch = make_batch("r", territory=Regions(frozenset({"overijssel"})))

    match = evaluate_candidate(ZWOLLE, batch, set())
    miss = evaluate_candidate(AMSTERDAM, batch, set())

    assert match.eligible
    assert match.priority_score == REGIONS_PRIORITY
    assert miss.rejection is RejectionCode.REGION_NOT_ALLOWED


def test_regions_with_empty_set_are_rejected() -> None:
    candidate = evaluate_candidate(ZWOLLE, make_batch("r", territory=Regions(frozenset())), set())

    assert candidate.rejection is RejectionCode.NO_REGIONS_CONFIGURED


def test_regions_unresolved_lead_follows_setting() -> None:
    batch = make_batch("r", territory=Regions(frozenset({"Overijssel"})))

    accepted = evaluate_candidate(None, batch, set())
    rejected = evaluate_candidate(None, batch, set(), regions_accept_unresolved=False)

    assert accepted.eligible
    assert accepted.priority_score == REGIONS_PRIORITY
    assert rejected.rejection is RejectionCode.LEAD_NOT_GEOCODED


def test_evaluate_batches_keeps_input_order_and_does_not_mutate() -> None:
    batches = [make_batch("a", territory=zwolle_radius()), make_batch("b")]

    candidates = evaluate_batches(NEAR_ZWOLLE, batches, set())

    assert [c.customer_id for c in candidates] == ["a", "b"]
    assert batches[0].current_batch_count == 0

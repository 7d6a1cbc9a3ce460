"""
Distribution repository (persistence).

`claim_distribution` is the single write path for distributions. It calls the
`commit_lead_distribution` PostgreSQL function (see sql/schema.sql), which in
one transaction:

1. refuses once the lead has MAX_RECIPIENTS_PER_LEAD distributions,
2. increments the batch counter only if the batch is active and not full,
3. inserts the (lead, customer) row guarded by its unique constraint,
4. bumps the lead's distribution counters,
5. deactivates the batch when it just became full.

A lost capacity race, a duplicate or a full lead comes back as a status, not
an error. Storage and transport faults raise DistributionPersistenceError so
the committer can retry them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Mapping
from uuid import UUID

import httpx
from postgrest.exceptions import APIError

from domain.candidate import Candidate
from domain.distribution import DistributionRecord
from domain.time import parse_utc_datetime, to_iso_utc
from repositories import batch_repository
from repositories.client import supabase
from services.distribution_committer import ClaimResult, ClaimStatus, DistributionPersistenceError
from services.selector import MAX_RECIPIENTS_PER_LEAD

logger = logging.getLogger(__name__)

_DISTRIBUTIONS_TABLE: str = "lead_distributions"
_COMMIT_FUNCTION: str = "commit_lead_distribution"


def _row_to_distribution(row: Mapping[str, Any]) -> DistributionRecord:
    """Convert a Supabase row into a DistributionRecord."""

    score = row.get("priority_score")
    distance = row.get("distance_km")
    return DistributionRecord(
        distribution_id=UUID(str(row["distribution_id"])),
        lead_id=UUID(str(row["lead_id"])),
        customer_id=str(row["customer_id"]),
        batch_id=UUID(str(row["batch_id"])),
        distributed_at=parse_utc_datetime(row["distributed_at"]),
        territory_type=row.get("territory_type"),
        priority_score=float(score) if score is not None else None,
        distance_km=float(distance) if distance is not None else None,
        match_reason=row.get("match_reason"),
    )


def list_distributions_for_lead(lead_id: UUID) -> List[DistributionRecord]:
    try:
        response = (
            supabase.table(_DISTRIBUTIONS_TABLE)
            .select("*")
            .eq("lead_id", str(lead_id))
            .execute()
        )
    except (APIError, httpx.HTTPError) as e:
        raise DistributionPersistenceError(f"Failed to list distributions: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise DistributionPersistenceError(f"Failed to list distributions: {error}")

    rows = getattr(response, "data", None) or []
    return [_row_to_distribution(row) for row in rows]


def customer_has_lead(lead_id: UUID, customer_id: str) -> bool:
    try:
        response = (
            supabase.table(_DISTRIBUTIONS_TABLE)
            .select("distribution_id")
            .eq("lead_id", str(lead_id))
            .eq("customer_id", customer_id)
            .limit(1)
            .execute()
        )
    except (APIError, httpx.HTTPError) as e:
        raise DistributionPersistenceError(f"Failed to check distribution: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise DistributionPersistenceError(f"Failed to check distribution: {error}")
    return bool(getattr(response, "data", None))


def batch_has_capacity(batch_id: UUID) -> bool:
    try:
        return batch_repository.batch_has_capacity(batch_id)
    except RuntimeError as e:
        raise DistributionPersistenceError(str(e)) from e


def _parse_claim(result: Any, lead_id: UUID, candidate: Candidate, distributed_at: datetime) -> ClaimResult:
    if not isinstance(result, Mapping) or "status" not in result:
        raise DistributionPersistenceError(f"Unexpected {_COMMIT_FUNCTION} result: {result!r}")

    try:
        status = ClaimStatus(str(result["status"]))
    except ValueError:
        raise DistributionPersistenceError(f"Unknown claim status: {result['status']!r}") from None

    if status is not ClaimStatus.COMMITTED:
        return ClaimResult(status=status, message=str(result.get("message") or ""))

    record = DistributionRecord(
        distribution_id=UUID(str(result["distribution_id"])),
        lead_id=lead_id,
        customer_id=candidate.customer_id,
        batch_id=candidate.batch_id,
        distributed_at=distributed_at,
        territory_type=candidate.territory_type,
        priority_score=candidate.priority_score,
        distance_km=candidate.distance_km,
        match_reason=candidate.reason,
    )
    return ClaimResult(
        status=status,
        distribution=record,
        batch_completed=bool(result.get("batch_completed")),
    )


def claim_distribution(lead_id: UUID, candidate: Candidate, distributed_at: datetime) -> ClaimResult:
    """
    Atomically claim one batch slot for (lead, customer).

    Returns:
        ClaimResult with status committed, no_capacity, already_distributed or
        lead_cap_reached.

    Raises:
        DistributionPersistenceError: the RPC could not be executed.
    """

    params = {
        "p_lead_id": str(lead_id),
        "p_customer_id": candidate.customer_id,
        "p_batch_id": str(candidate.batch_id),
        "p_distributed_at": to_iso_utc(distributed_at, name="distributed_at"),
        "p_territory_type": candidate.territory_type,
        "p_priority_score": candidate.priority_score,
        "p_distance_km": candidate.distance_km,
        "p_match_reason": candidate.reason,
        "p_max_recipients": MAX_RECIPIENTS_PER_LEAD,
    }

    try:
        response = supabase.rpc(_COMMIT_FUNCTION, params).execute()
    except APIError as e:
        # supabase-py may surface a JSON function result as an APIError.
        payload = e.json() if callable(getattr(e, "json", None)) else None
        if isinstance(payload, Mapping) and payload.get("status") in {s.value for s in ClaimStatus}:
            return _parse_claim(payload, lead_id, candidate, distributed_at)
        raise DistributionPersistenceError(f"{_COMMIT_FUNCTION} failed: {e}") from e
    except httpx.HTTPError as e:
        raise DistributionPersistenceError(f"{_COMMIT_FUNCTION} request failed: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise DistributionPersistenceError(f"{_COMMIT_FUNCTION} failed: {error}")

    result = getattr(response, "data", None)
    if isinstance(result, list):
        result = result[0] if result else None
    claim = _parse_claim(result, lead_id, candidate, distributed_at)
    if claim.batch_completed:
        logger.info("Batch %s reached capacity and was deactivated", candidate.batch_id)
    return claim


__all__ = [
    "batch_has_capacity",
    "claim_distribution",
    "customer_has_lead",
    "list_distributions_for_lead",
]

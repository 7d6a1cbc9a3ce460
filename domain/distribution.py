"""
Domain: Distribution facts.

A DistributionRecord states that a lead was delivered to a customer through
one of that customer's batches.

Contract:
- At most one DistributionRecord per (lead_id, customer_id), regardless of batch.
- Created only by the distribution committer; never updated, never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class DistributionRecord:
    distribution_id: UUID
    lead_id: UUID
    customer_id: str
    batch_id: UUID
    distributed_at: datetime
    territory_type: Optional[str] = None
    priority_score: Optional[float] = None
    distance_km: Optional[float] = None
    match_reason: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("distributed_at", self.distributed_at)


__all__ = ["DistributionRecord"]

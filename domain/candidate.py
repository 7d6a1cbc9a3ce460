"""
Domain: distribution candidates.

A Candidate is the evaluation of one (lead, batch) pair. It is transient: it
exists for a single distribution decision and for the operator trace, and is
never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID


class RejectionCode(str, Enum):
    NO_CAPACITY = "no_capacity"
    ALREADY_RECEIVED = "already_received"
    LEAD_NOT_GEOCODED = "lead_not_geocoded"
    BATCH_HAS_NO_CENTER = "batch_has_no_center"
    OUT_OF_RADIUS = "out_of_radius"
    NO_REGIONS_CONFIGURED = "no_regions_configured"
    REGION_NOT_ALLOWED = "region_not_allowed"


@dataclass(frozen=True, slots=True)
class Candidate:
    """
    Outcome of evaluating one batch for one lead.

    `priority_score` is only meaningful when `eligible` is True; lower wins.
    `reason` is a human-readable match reason (eligible) or rejection reason.
    """

    customer_id: str
    batch_id: UUID
    territory_type: str
    eligible: bool
    reason: str
    priority_score: Optional[float] = None
    distance_km: Optional[float] = None
    rejection: Optional[RejectionCode] = None
    customer_name: Optional[str] = None

    @property
    def sort_key(self) -> tuple[float, str]:
        score = self.priority_score if self.priority_score is not None else float("inf")
        return (score, str(self.batch_id))

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "batch_id": str(self.batch_id),
            "territory_type": self.territory_type,
            "eligible": self.eligible,
            "reason": self.reason,
            "priority_score": self.priority_score,
            "distance_km": round(self.distance_km, 3) if self.distance_km is not None else None,
            "rejection": self.rejection.value if self.rejection else None,
        }


__all__ = ["Candidate", "RejectionCode"]

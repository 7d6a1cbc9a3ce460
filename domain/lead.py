"""
Domain: Lead entity and inbound lead submissions.

Contract excerpts implemented here:
- A Lead represents a single consumer inquiry, uniquely identified by lead_id (UUID).
- The contact email is the natural key; ingestion is idempotent on it.
- Every Lead belongs to exactly one vertical ("branch").
- Leads are never hard-deleted; distribution counters only grow.
- first_seen_at / last_seen_at are UTC timestamps.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

from .geo import Coordinates, normalize_postcode
from .time import require_utc_timestamp

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InvalidLeadError(ValueError):
    """Raised when a lead submission cannot be distributed (missing vertical, bad email)."""


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class LeadSubmission:
    """
    A lead as captured by an ingestion path (web form, campaign webhook).

    Only `email` and `branch` are required. `coordinates` may be supplied when
    the ingestion path already resolved them; otherwise they are derived from
    `postcode` by the geocoder.
    """

    email: str
    branch: str
    postcode: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    source: Optional[str] = None
    interests: Mapping[str, Any] = field(default_factory=dict)
    coordinates: Optional[Coordinates] = None

    def validate(self) -> "LeadSubmission":
        """
        Return a normalized copy of this submission.

        Raises:
            InvalidLeadError: missing branch or missing/malformed email.
        """

        branch = (self.branch or "").strip()
        if not branch:
            raise InvalidLeadError("Lead is missing a branch (vertical)")

        email = normalize_email(self.email or "")
        if not email:
            raise InvalidLeadError("Lead is missing a contact email")
        if not _EMAIL_RE.match(email):
            raise InvalidLeadError(f"Lead email is not valid: {self.email!r}")

        postcode = normalize_postcode(self.postcode) if self.postcode and self.postcode.strip() else None

        return LeadSubmission(
            email=email,
            branch=branch,
            postcode=postcode,
            name=self.name,
            phone=self.phone,
            address=self.address,
            source=self.source,
            interests=dict(self.interests),
            coordinates=self.coordinates,
        )


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Persisted lead.

    Notes:
    - `coordinates` are cached once resolved for `postcode`.
    - `total_distribution_count` counts every Distribution ever made for this
      lead; `unique_customers_count` counts distinct customers. With the
      (lead, customer) uniqueness rule the two are equal, but both are kept
      for reporting.
    """

    lead_id: UUID
    email: str
    branch: str
    first_seen_at: datetime
    last_seen_at: datetime
    postcode: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    source: Optional[str] = None
    interests: Mapping[str, Any] = field(default_factory=dict)
    form_submission_count: int = 1
    total_distribution_count: int = 0
    unique_customers_count: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("first_seen_at", self.first_seen_at)
        require_utc_timestamp("last_seen_at", self.last_seen_at)
        if self.form_submission_count < 1:
            raise ValueError("form_submission_count must be >= 1")
        if self.total_distribution_count < 0 or self.unique_customers_count < 0:
            raise ValueError("distribution counters must be >= 0")

    @property
    def is_returning(self) -> bool:
        return self.form_submission_count > 1

    def coordinates_for(self, postcode: Optional[str]) -> Optional[Coordinates]:
        """Cached coordinates, but only if they were resolved for this same postcode."""

        if self.coordinates is None or postcode is None:
            return None
        if self.postcode is None or normalize_postcode(self.postcode) != normalize_postcode(postcode):
            return None
        return self.coordinates


__all__ = [
    "InvalidLeadError",
    "Lead",
    "LeadSubmission",
    "normalize_email",
]

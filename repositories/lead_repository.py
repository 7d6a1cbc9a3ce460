"""
Lead repository (persistence).

Persistence operations for the Lead entity only. Eligibility and distribution
rules do not belong here.

Ingestion is idempotent on the contact email: a repeat submission updates the
existing row (contact fields, last_seen_at, form_submission_count) instead of
creating a second lead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID, uuid4

from postgrest.exceptions import APIError

from domain.geo import Coordinates, normalize_postcode
from domain.lead import Lead, LeadSubmission, normalize_email
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import supabase

logger = logging.getLogger(__name__)

_LEADS_TABLE: str = "leads"

_UNIQUE_VIOLATION = "23505"


def _row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    def get_optional(key: str) -> str | None:
        value = row.get(key)
        return str(value) if value else None

    lat, lng = row.get("lat"), row.get("lng")
    coordinates = Coordinates(float(lat), float(lng)) if lat is not None and lng is not None else None

    return Lead(
        lead_id=UUID(str(row["lead_id"])),
        email=str(row["email"]),
        branch=str(row["branch"]),
        first_seen_at=parse_utc_datetime(row["first_seen_at"]),
        last_seen_at=parse_utc_datetime(row["last_seen_at"]),
        postcode=get_optional("postcode"),
        coordinates=coordinates,
        name=get_optional("name"),
        phone=get_optional("phone"),
        address=get_optional("address"),
        source=get_optional("source"),
        interests=dict(row.get("interests") or {}),
        form_submission_count=int(row.get("form_submission_count") or 1),
        total_distribution_count=int(row.get("total_distribution_count") or 0),
        unique_customers_count=int(row.get("unique_customers_count") or 0),
    )


def _submission_fields(submission: LeadSubmission) -> dict[str, Any]:
    """Contact columns carried by a submission; absent values are left untouched."""

    fields: dict[str, Any] = {
        "branch": submission.branch,
        "postcode": submission.postcode,
        "name": submission.name,
        "phone": submission.phone,
        "address": submission.address,
        "source": submission.source,
    }
    payload = {k: v for k, v in fields.items() if v is not None}
    if submission.interests:
        payload["interests"] = dict(submission.interests)
    if submission.coordinates is not None:
        payload["lat"] = submission.coordinates.lat
        payload["lng"] = submission.coordinates.lng
    return payload


def _is_unique_violation(error: Any) -> bool:
    return str(getattr(error, "code", None)) == _UNIQUE_VIOLATION


def _fetch_one(column: str, value: str) -> Lead | None:
    response = (
        supabase.table(_LEADS_TABLE)
        .select("*")
        .eq(column, value)
        .limit(1)
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to fetch lead: {error}")

    rows = getattr(response, "data", None) or []
    if not rows:
        return None
    return _row_to_lead(rows[0])


def get_lead_by_id(lead_id: UUID) -> Lead | None:
    """
    Fetch a Lead by ID.

    Returns:
    - Lead if found
    - None if no record exists for the given ID
    """

    return _fetch_one("lead_id", str(lead_id))


def get_lead_by_email(email: str) -> Lead | None:
    return _fetch_one("email", normalize_email(email))


def _update_existing(existing: Lead, submission: LeadSubmission, seen_at: datetime) -> Lead:
    payload = _submission_fields(submission)
    payload["last_seen_at"] = to_iso_utc(seen_at, name="seen_at")
    payload["form_submission_count"] = existing.form_submission_count + 1

    postcode_changed = (
        submission.postcode is not None
        and (existing.postcode is None or normalize_postcode(existing.postcode) != submission.postcode)
    )
    if postcode_changed and submission.coordinates is None:
        # Cached coordinates belong to the previous postcode.
        payload["lat"] = None
        payload["lng"] = None

    response = (
        supabase.table(_LEADS_TABLE)
        .update(payload)
        .eq("lead_id", str(existing.lead_id))
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to update lead {existing.lead_id}: {error}")

    rows = getattr(response, "data", None) or []
    if rows:
        return _row_to_lead(rows[0])
    refreshed = get_lead_by_id(existing.lead_id)
    if refreshed is None:
        raise RuntimeError(f"Lead {existing.lead_id} disappeared during update")
    return refreshed


def upsert_lead_submission(submission: LeadSubmission, seen_at: datetime) -> Lead:
    """
    Store a validated submission, idempotent on email.

    A new email creates a lead with form_submission_count 1. A known email is
    treated as a returning lead: counters grow, contact fields are refreshed.
    Two concurrent first submissions of the same email race on the unique
    email index; the loser re-reads and continues as a returning lead.

    Raises:
    - RuntimeError if Supabase returns an error response.
    """

    existing = get_lead_by_email(submission.email)
    if existing is not None:
        return _update_existing(existing, submission, seen_at)

    seen = to_iso_utc(seen_at, name="seen_at")
    payload = _submission_fields(submission)
    payload.update(
        {
            "lead_id": str(uuid4()),
            "email": submission.email,
            "first_seen_at": seen,
            "last_seen_at": seen,
            "form_submission_count": 1,
            "total_distribution_count": 0,
            "unique_customers_count": 0,
        }
    )

    try:
        response = supabase.table(_LEADS_TABLE).insert(payload).execute()
        error = getattr(response, "error", None)
    except APIError as e:
        error = e

    if error:
        if _is_unique_violation(error):
            logger.info("Lead %s was inserted concurrently; treating as returning lead", submission.email)
            existing = get_lead_by_email(submission.email)
            if existing is not None:
                return _update_existing(existing, submission, seen_at)
        raise RuntimeError(f"Failed to insert lead: {error}")

    rows = getattr(response, "data", None) or []
    if rows:
        return _row_to_lead(rows[0])
    return _row_to_lead(payload)


def save_lead_coordinates(lead_id: UUID, postcode: str, coordinates: Coordinates) -> None:
    """Cache geocoded coordinates on the lead, tagged with the postcode they belong to."""

    response = (
        supabase.table(_LEADS_TABLE)
        .update({"postcode": normalize_postcode(postcode), "lat": coordinates.lat, "lng": coordinates.lng})
        .eq("lead_id", str(lead_id))
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to save coordinates for lead {lead_id}: {error}")


__all__ = [
    "get_lead_by_email",
    "get_lead_by_id",
    "save_lead_coordinates",
    "upsert_lead_submission",
]

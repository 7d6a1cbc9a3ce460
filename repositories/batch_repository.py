"""
Customer batch repository (persistence).

Reads batches for the registry and provides the operator actions on a batch
(reset, deactivate). The fill counter is advanced only by the
`commit_lead_distribution` database function, never by an update from here.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.batch import CustomerBatch
from domain.territory import territory_from_row
from repositories.client import supabase

logger = logging.getLogger(__name__)

_BATCHES_TABLE: str = "customer_batches"


def _row_to_batch(row: Mapping[str, Any]) -> CustomerBatch:
    """Convert a Supabase row into a CustomerBatch."""

    return CustomerBatch(
        batch_id=UUID(str(row["batch_id"])),
        customer_id=str(row["customer_id"]),
        branch=str(row["branch"]),
        total_batch_size=int(row["total_batch_size"]),
        current_batch_count=int(row.get("current_batch_count") or 0),
        is_active=bool(row.get("is_active", True)),
        territory=territory_from_row(row),
        customer_name=row.get("customer_name") or None,
        batch_number=row.get("batch_number") or None,
        sink=dict(row.get("sink") or {}),
    )


def list_active_batches(branch: str) -> List[CustomerBatch]:
    """
    Active batches of one branch, full ones included.

    Rows with an unreadable territory are skipped and logged so one broken
    batch does not block distribution for the whole branch.
    """

    response = (
        supabase.table(_BATCHES_TABLE)
        .select("*")
        .eq("branch", branch)
        .eq("is_active", True)
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to list batches for branch {branch}: {error}")

    batches: List[CustomerBatch] = []
    for row in getattr(response, "data", None) or []:
        try:
            batches.append(_row_to_batch(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Skipping malformed batch %s: %s", row.get("batch_id"), e)
    return batches


def list_all_active_batches() -> List[CustomerBatch]:
    """Active batches of every branch (operator overview)."""

    response = supabase.table(_BATCHES_TABLE).select("*").eq("is_active", True).execute()
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to list active batches: {error}")
    return [_row_to_batch(row) for row in getattr(response, "data", None) or []]


def get_batch(batch_id: UUID) -> Optional[CustomerBatch]:
    response = (
        supabase.table(_BATCHES_TABLE)
        .select("*")
        .eq("batch_id", str(batch_id))
        .limit(1)
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to fetch batch {batch_id}: {error}")

    rows = getattr(response, "data", None) or []
    if not rows:
        return None
    return _row_to_batch(rows[0])


def batch_has_capacity(batch_id: UUID) -> bool:
    """Read-only capacity check (used by simulation). Unknown batches have none."""

    batch = get_batch(batch_id)
    return batch is not None and batch.is_active and batch.has_capacity


def reset_batch(batch_id: UUID) -> CustomerBatch:
    """
    Start a batch over: counter back to 0 and active again.

    Existing distributions are kept; the (lead, customer) rule still applies
    to leads the customer received in an earlier cycle.
    """

    response = (
        supabase.table(_BATCHES_TABLE)
        .update({"current_batch_count": 0, "is_active": True})
        .eq("batch_id", str(batch_id))
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to reset batch {batch_id}: {error}")

    rows = getattr(response, "data", None) or []
    if not rows:
        raise ValueError(f"Batch {batch_id} not found")
    logger.info("Batch %s reset", batch_id)
    return _row_to_batch(rows[0])


def deactivate_batch(batch_id: UUID) -> None:
    response = (
        supabase.table(_BATCHES_TABLE)
        .update({"is_active": False})
        .eq("batch_id", str(batch_id))
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to deactivate batch {batch_id}: {error}")
    logger.info("Batch %s deactivated", batch_id)


__all__ = [
    "batch_has_capacity",
    "deactivate_batch",
    "get_batch",
    "list_active_batches",
    "list_all_active_batches",
    "reset_batch",
]

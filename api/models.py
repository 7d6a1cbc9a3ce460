"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ============================================================================
# Distribution Models
# ============================================================================

class LeadPayload(BaseModel):
    """Inbound lead as captured by a form or campaign webhook."""
    email: str = Field(..., description="Contact email (natural key of the lead)")
    branch: str = Field(..., description="Vertical the lead belongs to, e.g. 'solar'")
    postcode: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    source: Optional[str] = None
    interests: Dict[str, Any] = Field(default_factory=dict)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    class Config:
        json_schema_extra = {
            "example": {
                "email": "jan@example.nl",
                "branch": "solar",
                "postcode": "8011AA",
                "name": "Jan de Vries",
                "phone": "+31612345678",
                "source": "website"
            }
        }


class DistributionRequest(BaseModel):
    """Request to distribute (or simulate distributing) one lead."""
    lead: LeadPayload
    mode: Literal["simulate", "commit"] = "simulate"

    class Config:
        json_schema_extra = {
            "example": {
                "lead": {"email": "jan@example.nl", "branch": "solar", "postcode": "8011AA"},
                "mode": "simulate"
            }
        }


class CandidateResponse(BaseModel):
    """Evaluation of one batch for the lead."""
    customer_id: str
    customer_name: Optional[str] = None
    batch_id: UUID
    territory_type: str
    eligible: bool
    reason: str
    priority_score: Optional[float] = None
    distance_km: Optional[float] = None
    rejection: Optional[str] = None


class CommittedResponse(BaseModel):
    customer_id: str
    batch_id: UUID
    distribution_id: Optional[UUID] = None
    priority_score: Optional[float] = None
    distance_km: Optional[float] = None
    batch_completed: bool
    promoted: bool


class DroppedResponse(BaseModel):
    customer_id: str
    batch_id: UUID
    status: str
    reason: str


class DistributionResponse(BaseModel):
    """Full distribution report, identical in shape for both modes."""
    mode: str
    outcome: str
    success: bool
    branch: str
    lead_id: Optional[UUID] = None
    postcode: Optional[str] = None
    coordinates: Optional[Dict[str, float]] = None
    geocode_status: Optional[str] = None
    distributions_planned: int
    distributions_executed: int
    candidates: List[CandidateResponse]
    selected_customers: List[str]
    committed: List[CommittedResponse]
    dropped: List[DroppedResponse]
    trace: List[str]
    error: Optional[str] = None
    notification_errors: List[str]

    class Config:
        json_schema_extra = {
            "example": {
                "mode": "simulate",
                "outcome": "distributed",
                "success": True,
                "branch": "solar",
                "lead_id": None,
                "postcode": "8011AA",
                "coordinates": {"lat": 52.5125, "lng": 6.0939},
                "geocode_status": "found",
                "distributions_planned": 2,
                "distributions_executed": 0,
                "candidates": [],
                "selected_customers": ["cust-a", "cust-b"],
                "committed": [],
                "dropped": [],
                "trace": ["[12:00:00] === START DISTRIBUTION ==="],
                "error": None,
                "notification_errors": []
            }
        }


class DistributionHistoryItem(BaseModel):
    distribution_id: UUID
    customer_id: str
    batch_id: UUID
    distributed_at: datetime
    territory_type: Optional[str] = None
    priority_score: Optional[float] = None
    distance_km: Optional[float] = None
    match_reason: Optional[str] = None


class DistributionHistoryResponse(BaseModel):
    lead_id: UUID
    distributions: List[DistributionHistoryItem]
    total_count: int


# ============================================================================
# Batch Models
# ============================================================================

class BatchStatusResponse(BaseModel):
    """Fill status of one active batch."""
    batch_id: UUID
    customer_id: str
    customer_name: Optional[str] = None
    batch_number: Optional[str] = None
    branch: str
    territory: str
    territory_type: str
    current_batch_count: int
    total_batch_size: int
    remaining_capacity: int
    is_active: bool


class BatchListResponse(BaseModel):
    branch: str
    batches: List[BatchStatusResponse]
    total_count: int
    with_capacity: int

    class Config:
        json_schema_extra = {
            "example": {
                "branch": "solar",
                "batches": [],
                "total_count": 3,
                "with_capacity": 2
            }
        }


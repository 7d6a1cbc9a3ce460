"""
Distributions API Endpoints.

Endpoints for distributing a lead (live or simulated) and for reading a
lead's distribution history.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_distribution_store, get_engine
from api.models import (
    DistributionHistoryItem,
    DistributionHistoryResponse,
    DistributionRequest,
    DistributionResponse,
)
from domain.geo import Coordinates
from domain.lead import InvalidLeadError, LeadSubmission
from services.distribution_committer import DistributionPersistenceError, DistributionStore
from services.distribution_service import (
    DistributionEngine,
    DistributionMode,
    get_lead_distribution_history,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _run(engine: DistributionEngine, request: DistributionRequest, mode: DistributionMode) -> DistributionResponse:
    lead = request.lead
    coordinates = None
    if lead.lat is not None and lead.lng is not None:
        coordinates = Coordinates(lead.lat, lead.lng)

    submission = LeadSubmission(
        email=lead.email,
        branch=lead.branch,
        postcode=lead.postcode,
        name=lead.name,
        phone=lead.phone,
        address=lead.address,
        source=lead.source,
        interests=lead.interests,
        coordinates=coordinates,
    )

    try:
        report = engine.distribute(submission, mode=mode)
    except InvalidLeadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Distribution failed for %s", lead.email)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to distribute lead: {str(e)}"
        )

    return DistributionResponse(**report.to_dict())


@router.post(
    "/distributions",
    response_model=DistributionResponse,
    summary="Distribute Lead",
    description="Evaluate all active batches of the lead's branch and deliver it to at most two customers."
)
def distribute_lead(request: DistributionRequest, engine: DistributionEngine = Depends(get_engine)):
    """
    Distribute one lead.

    **Process:**
    1. Validates the lead (branch and email are required)
    2. Stores or updates the lead (commit mode only)
    3. Geocodes the postcode
    4. Evaluates every active batch of the branch (capacity, duplicate, territory)
    5. Selects at most 2 customers, tightest territory first
    6. Claims one slot per selected batch atomically (commit mode) or reports
       what would happen (simulate mode)

    Simulate mode never writes; its report has the same shape as a commit.
    """
    return _run(engine, request, DistributionMode(request.mode))


@router.post(
    "/distributions/simulate",
    response_model=DistributionResponse,
    summary="Simulate Lead Distribution",
    description="Dry run of the distribution pipeline. Nothing is stored and no counters change."
)
def simulate_lead_distribution(request: DistributionRequest, engine: DistributionEngine = Depends(get_engine)):
    return _run(engine, request, DistributionMode.SIMULATE)


@router.get(
    "/leads/{lead_id}/distributions",
    response_model=DistributionHistoryResponse,
    summary="Lead Distribution History",
    description="All customers a lead was distributed to, oldest first."
)
def lead_distribution_history(lead_id: UUID, store: DistributionStore = Depends(get_distribution_store)):
    try:
        records = get_lead_distribution_history(store, lead_id)
    except DistributionPersistenceError as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to load distribution history: {str(e)}"
        )

    return DistributionHistoryResponse(
        lead_id=lead_id,
        distributions=[
            DistributionHistoryItem(
                distribution_id=r.distribution_id,
                customer_id=r.customer_id,
                batch_id=r.batch_id,
                distributed_at=r.distributed_at,
                territory_type=r.territory_type,
                priority_score=r.priority_score,
                distance_km=r.distance_km,
                match_reason=r.match_reason,
            )
            for r in records
        ],
        total_count=len(records),
    )

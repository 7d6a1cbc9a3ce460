"""
Batches API Endpoints.

Read-only fill status of the active customer batches of a branch.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_batch_registry
from api.models import BatchListResponse, BatchStatusResponse
from domain.territory import describe_territory
from services.batch_registry import BatchRegistry, load_batch_snapshot

router = APIRouter()


@router.get(
    "/batches",
    response_model=BatchListResponse,
    summary="Active Batches",
    description="Active batches of a branch with their current fill status."
)
def list_batches(
    branch: str = Query(..., min_length=1, description="Branch (vertical), e.g. 'solar'"),
    registry: BatchRegistry = Depends(get_batch_registry),
):
    """
    **Example usage:**
    - `GET /api/v1/batches?branch=solar`
    """
    try:
        snapshot = load_batch_snapshot(registry, branch)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to load batches: {str(e)}"
        )

    return BatchListResponse(
        branch=branch,
        batches=[
            BatchStatusResponse(
                batch_id=b.batch_id,
                customer_id=b.customer_id,
                customer_name=b.customer_name,
                batch_number=b.batch_number,
                branch=b.branch,
                territory=describe_territory(b.territory),
                territory_type=b.territory.territory_type.value,
                current_batch_count=b.current_batch_count,
                total_batch_size=b.total_batch_size,
                remaining_capacity=b.remaining_capacity,
                is_active=b.is_active,
            )
            for b in snapshot.batches
        ],
        total_count=len(snapshot.batches),
        with_capacity=len(snapshot.with_capacity),
    )

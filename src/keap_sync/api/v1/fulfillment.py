"""Fulfillment check endpoint for the admin dashboard."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.keap_sync.api.deps import get_fulfillment_reader, require_admin
from src.keap_sync.crm.client import CRMRateLimitError
from src.keap_sync.orders.fulfillment import FulfillmentReader
from src.keap_sync.orders.schemas import FulfillmentCheck

router = APIRouter(tags=["fulfillment"], dependencies=[Depends(require_admin)])


@router.get("/check-fulfillment", response_model=FulfillmentCheck)
async def check_fulfillment(
    email: str | None = Query(default=None),
    reader: FulfillmentReader = Depends(get_fulfillment_reader),
) -> FulfillmentCheck:
    """Shipped flags and tracking numbers for one customer.

    The dashboard polls this per order, so a Keap 429 is passed straight
    back as 429 instead of being retried while the browser waits.
    """
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email parameter required",
        )

    try:
        return await reader.status(email, retry_rate_limit=False)
    except CRMRateLimitError:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limited. Please wait a moment.",
        )

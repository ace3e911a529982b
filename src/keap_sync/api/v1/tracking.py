"""Tracking number endpoint: record a shipment leg on the customer's contact."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from src.keap_sync.api.deps import get_tracking_writer, require_admin
from src.keap_sync.orders.catalog import ShipmentLeg
from src.keap_sync.orders.schemas import CamelModel
from src.keap_sync.orders.tracking import ContactNotFoundError, TrackingWriter

router = APIRouter(tags=["tracking"], dependencies=[Depends(require_admin)])


# ── Schemas ──────────────────────────────────────────────────────────────────


class UpdateTrackingRequest(CamelModel):
    """Request body. Fields are checked in the handler for clearer errors."""

    email: str | None = None
    tracking_number: str | None = None
    shipment_type: str | None = None


class UpdateTrackingResponse(CamelModel):
    success: bool = True
    message: str
    contact_id: int


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/update-tracking", response_model=UpdateTrackingResponse)
async def update_tracking(
    body: UpdateTrackingRequest,
    writer: TrackingWriter = Depends(get_tracking_writer),
) -> UpdateTrackingResponse:
    if not body.email or not body.tracking_number or not body.shipment_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: email, trackingNumber, shipmentType (cards or book)",
        )

    try:
        leg = ShipmentLeg(body.shipment_type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='shipmentType must be "cards" or "book"',
        )

    try:
        result = await writer.update_tracking(body.email, body.tracking_number, leg)
    except ContactNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    return UpdateTrackingResponse(
        message=f"Tracking number updated for {body.email}",
        contact_id=result.contact_id,
    )

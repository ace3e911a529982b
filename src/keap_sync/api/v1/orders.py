"""Order listing endpoint for the admin dashboard."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.keap_sync.api.deps import get_order_lister, require_admin
from src.keap_sync.config import Settings, get_settings
from src.keap_sync.orders.listing import OrderLister
from src.keap_sync.orders.schemas import OrdersPage

router = APIRouter(tags=["orders"], dependencies=[Depends(require_admin)])


@router.get("/get-orders", response_model=OrdersPage)
async def get_orders(
    limit: int | None = Query(default=None, ge=1),
    lister: OrderLister = Depends(get_order_lister),
    settings: Settings = Depends(get_settings),
) -> OrdersPage:
    """Completed orders, newest first, with fulfillment status from Keap."""
    return await lister.list_orders(limit=limit or settings.ORDERS_LIST_LIMIT)

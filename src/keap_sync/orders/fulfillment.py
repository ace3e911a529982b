"""Fulfillment status, derived on read from a contact's tracking fields.

Nothing here is stored: a leg counts as shipped exactly when its
tracking-number field is non-empty.
"""

from __future__ import annotations

import structlog

from src.keap_sync.crm.client import KeapClient
from src.keap_sync.crm.field_mapping import CustomFieldMap
from src.keap_sync.orders.catalog import LEG_FIELDS, ShipmentLeg
from src.keap_sync.orders.schemas import FulfillmentCheck, FulfillmentState

logger = structlog.get_logger(__name__)


def derive_fulfillment_status(
    has_pre_order: bool,
    cards_shipped: bool,
    book_shipped: bool,
) -> FulfillmentState:
    """Tri-state status. Pre-orders need both legs shipped to be fulfilled."""
    if has_pre_order:
        if cards_shipped and book_shipped:
            return FulfillmentState.fulfilled
        if cards_shipped:
            return FulfillmentState.partial
        return FulfillmentState.pending
    return FulfillmentState.fulfilled if cards_shipped else FulfillmentState.pending


class FulfillmentReader:
    def __init__(self, client: KeapClient, field_map: CustomFieldMap) -> None:
        self._client = client
        self._field_map = field_map

    async def status(self, email: str, *, retry_rate_limit: bool = True) -> FulfillmentCheck:
        """Read shipped flags and tracking numbers for the contact with ``email``.

        ``retry_rate_limit=False`` lets a 429 surface to the caller right away
        (the synchronous fulfillment check does this).
        """
        contact = await self._client.find_contact_by_email(
            email,
            retry_rate_limit=retry_rate_limit,
        )
        if contact is None:
            logger.info("fulfillment.contact_not_found", email=email)
            return FulfillmentCheck(found=False)

        cards = contact.custom_field(
            self._field_map.id_for(LEG_FIELDS[ShipmentLeg.cards].tracking_field)
        )
        book = contact.custom_field(
            self._field_map.id_for(LEG_FIELDS[ShipmentLeg.book].tracking_field)
        )
        return FulfillmentCheck(
            found=True,
            cards_shipped=cards is not None,
            book_shipped=book is not None,
            cards_tracking_number=cards,
            book_tracking_number=book,
        )

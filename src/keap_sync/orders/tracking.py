"""Record shipment tracking numbers on Keap contacts.

The tracking fields are the source of truth. The tag swap that follows
(add the leg's shipped tag, drop its awaiting tag) is best-effort: each
half is attempted independently and a failure is only logged.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import structlog

from src.keap_sync.core.monitoring import keap_tag_failures_total
from src.keap_sync.crm.client import KeapClient
from src.keap_sync.crm.field_mapping import CustomFieldMap, to_custom_fields
from src.keap_sync.orders.catalog import LEG_FIELDS, ShipmentLeg
from src.keap_sync.orders.schemas import TrackingResult

logger = structlog.get_logger(__name__)


class ContactNotFoundError(Exception):
    """Raised when no Keap contact matches the given email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Customer not found in Keap: {email}")


class TrackingWriter:
    def __init__(self, client: KeapClient, field_map: CustomFieldMap) -> None:
        self._client = client
        self._field_map = field_map

    async def update_tracking(
        self,
        email: str,
        tracking_number: str,
        leg: ShipmentLeg,
        *,
        shipped_on: date | None = None,
    ) -> TrackingResult:
        """Write tracking number and ship date for one leg, then swap tags.

        Raises:
            ContactNotFoundError: No contact for ``email``; nothing is written.
        """
        leg = ShipmentLeg(leg)
        fields = LEG_FIELDS[leg]

        contact = await self._client.find_contact_by_email(email)
        if contact is None:
            raise ContactNotFoundError(email)

        shipped_on = shipped_on or datetime.now(timezone.utc).date()
        custom_fields = to_custom_fields(
            {
                fields.tracking_field: tracking_number,
                fields.shipped_date_field: shipped_on.isoformat(),
            },
            self._field_map,
        )
        await self._client.update_contact(contact.id, {"custom_fields": custom_fields})
        logger.info(
            "tracking.updated",
            contact_id=contact.id,
            leg=leg.value,
            tracking_number=tracking_number,
        )

        await self._add_shipped_tag(contact.id, fields.shipped_tag)
        await self._remove_awaiting_tag(contact.id, fields.awaiting_tag)

        return TrackingResult(contact_id=contact.id)

    async def _add_shipped_tag(self, contact_id: int, tag: str) -> None:
        try:
            tag_id = await self._client.get_or_create_tag(tag)
            await self._client.apply_tag(contact_id, tag_id)
        except Exception as exc:
            keap_tag_failures_total.labels(operation="apply").inc()
            logger.warning("tracking.tag_apply_failed", contact_id=contact_id, tag=tag, error=str(exc))

    async def _remove_awaiting_tag(self, contact_id: int, tag: str) -> None:
        try:
            tag_id = await self._client.find_tag_id(tag)
            if tag_id is None:
                return
            await self._client.remove_tag(contact_id, tag_id)
        except Exception as exc:
            keap_tag_failures_total.labels(operation="remove").inc()
            logger.warning("tracking.tag_remove_failed", contact_id=contact_id, tag=tag, error=str(exc))

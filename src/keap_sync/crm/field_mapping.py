"""Keap custom-field ID configuration and conversion helpers.

Keap identifies contact custom fields by opaque numeric IDs that are
assigned per account. CustomFieldMap keys them by logical name so the
rest of the code never deals with raw IDs, and so a different Keap
account can be targeted purely through configuration.

Defines:
- CustomFieldMap: logical name -> Keap custom field ID.
- to_custom_fields(): Converts a logical-name dict to Keap's
  ``[{"id": ..., "content": ...}]`` list format.
- validate_field_map(): Compares configured IDs against the account's
  contact model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

if TYPE_CHECKING:
    from src.keap_sync.crm.client import KeapClient

logger = structlog.get_logger(__name__)


class CustomFieldMap(BaseModel):
    """Logical custom field names mapped to Keap custom field IDs."""

    product_ordered: int = 303
    order_summary: int = 305
    product_price: int = 307
    shipping_address: int = 309
    payment_id: int = 311
    order_date: int = 313
    cards_tracking_number: int = 315
    cards_shipped_date: int = 317
    book_tracking_number: int = 319
    book_shipped_date: int = 321
    has_preorder: int = 323
    order_history: int = 325
    total_spent: int = 327

    def id_for(self, name: str) -> int:
        """Return the Keap field ID for a logical field name."""
        if name not in type(self).model_fields:
            raise KeyError(f"Unknown custom field: {name}")
        return getattr(self, name)


# ── Conversion Functions ───────────────────────────────────────────────────


def to_custom_fields(
    values: dict[str, str | None],
    field_map: CustomFieldMap,
) -> list[dict[str, Any]]:
    """Convert a logical-name dict to Keap's custom_fields payload.

    None values are dropped rather than sent as nulls, so an update never
    clears a field it did not mean to touch.
    """
    return [
        {"id": field_map.id_for(name), "content": content}
        for name, content in values.items()
        if content is not None
    ]


async def validate_field_map(client: KeapClient, field_map: CustomFieldMap) -> list[str]:
    """Check configured IDs against the Keap contact model.

    Returns the logical names whose IDs do not exist in the account.
    An empty list means the map is consistent.
    """
    model = await client.get_contact_model()
    known_ids = {field.get("id") for field in model.get("custom_fields", [])}

    missing = [
        name for name, field_id in field_map.model_dump().items()
        if field_id not in known_ids
    ]

    if missing:
        logger.warning("field_map.ids_missing", missing=missing)
    else:
        logger.info("field_map.validated", field_count=len(known_ids))
    return missing

"""Build normalized OrderRecords from raw Stripe checkout sessions.

Pure functions only: no I/O beyond logging. Sessions arrive as plain
dicts (see StripeClient), so every lookup tolerates missing keys.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError

from src.keap_sync.orders.catalog import BUNDLE_PRODUCT_IDS
from src.keap_sync.orders.schemas import (
    CartItem,
    OrderRecord,
    ShippingAddress,
    split_name,
)

logger = structlog.get_logger(__name__)

_CENTS = Decimal("0.01")

__all__ = [
    "build_order_record",
    "parse_cart_items",
    "extract_shipping",
    "is_pre_order",
    "amount_from_cents",
    "split_name",
]


def parse_cart_items(raw: str | None, *, session_id: str | None = None) -> list[CartItem]:
    """Parse the ``cartItems`` metadata JSON into CartItems.

    Anything unparseable yields an empty list; a bad cart never blocks
    the customer and order-level fields from syncing.
    """
    if not raw:
        return []

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        logger.warning("order_builder.cart_items_invalid_json", session_id=session_id, error=str(exc))
        return []

    if not isinstance(data, list):
        logger.warning("order_builder.cart_items_not_list", session_id=session_id)
        return []

    try:
        return [CartItem.model_validate(item) for item in data]
    except ValidationError as exc:
        logger.warning(
            "order_builder.cart_items_invalid",
            session_id=session_id,
            errors=exc.error_count(),
        )
        return []


def extract_shipping(session: Mapping[str, Any]) -> tuple[str | None, ShippingAddress | None]:
    """Return ``(recipient name, address)`` from a session's shipping details.

    Older API versions put ``shipping_details`` on the session itself,
    newer ones nest it under ``collected_information``.
    """
    details = session.get("shipping_details")
    if not details:
        details = (session.get("collected_information") or {}).get("shipping_details")
    if not details or not details.get("address"):
        return None, None

    address = details["address"]
    return details.get("name"), ShippingAddress(
        line1=address.get("line1"),
        line2=address.get("line2") or "",
        city=address.get("city"),
        state=address.get("state"),
        postal_code=address.get("postal_code"),
        country=address.get("country"),
    )


def is_pre_order(metadata: Mapping[str, Any], cart_items: list[CartItem]) -> bool:
    if metadata.get("hasPreOrder") == "true":
        return True
    return any(item.product_id in BUNDLE_PRODUCT_IDS for item in cart_items)


def amount_from_cents(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(_CENTS)


def build_order_record(session: Mapping[str, Any]) -> OrderRecord | None:
    """Normalize a completed checkout session into an OrderRecord.

    Returns None when the session carries no customer email, since the
    email is the only key the CRM can be searched by.
    """
    session_id = session.get("id", "")
    customer = session.get("customer_details") or {}

    email = customer.get("email") or session.get("customer_email")
    if not email:
        logger.info("order_builder.skip_no_email", session_id=session_id)
        return None

    metadata = session.get("metadata") or {}
    cart_items = parse_cart_items(metadata.get("cartItems"), session_id=session_id)
    _, shipping_address = extract_shipping(session)

    created = session.get("created")
    created_at = (
        datetime.fromtimestamp(created, tz=timezone.utc)
        if created is not None
        else datetime.now(timezone.utc)
    )

    return OrderRecord(
        session_id=session_id,
        payment_id=session.get("payment_intent"),
        email=email,
        name=customer.get("name") or "",
        shipping_address=shipping_address,
        cart_items=cart_items,
        has_pre_order=is_pre_order(metadata, cart_items),
        amount_paid=amount_from_cents(session.get("amount_total")),
        created=created_at,
        email_consent=metadata.get("emailConsent") == "true",
    )

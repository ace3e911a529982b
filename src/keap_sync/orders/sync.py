"""Order-to-Keap sync engine.

Writes one OrderRecord into the customer's Keap contact: creates the
contact on first purchase, otherwise merges into it. Two custom fields
accumulate across purchases:

- order history: one entry per payment, newest first, separator-joined
- total spent: running sum of amounts paid, two decimals

All other order fields describe the latest order and are overwritten.
Tags are applied after the contact write; a tag failure is recorded on
the result and never fails the sync, since the order counts as placed
once the contact and its custom fields are stored.

The webhook and the backfill both go through SyncEngine.sync, so the
merge rules live in exactly one place.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from src.keap_sync.core.monitoring import keap_tag_failures_total, order_sync_total
from src.keap_sync.core.rate_limit import TokenBucket
from src.keap_sync.crm.client import KeapClient
from src.keap_sync.crm.field_mapping import CustomFieldMap, to_custom_fields
from src.keap_sync.crm.schemas import Contact
from src.keap_sync.orders.catalog import (
    ADDRESS_NOT_PROVIDED,
    BASE_TAGS,
    HISTORY_SEPARATOR,
    OPT_IN_REASON,
    PRE_ORDER_TAGS,
    PRODUCT_TAGS,
    TAG_REPEAT_CUSTOMER,
    month_tag,
)
from src.keap_sync.orders.schemas import OrderRecord, SyncResult, TagFailure

logger = structlog.get_logger(__name__)


# ── Field computation ────────────────────────────────────────────────────────


def short_date(order: OrderRecord) -> str:
    """``Jan 5, 2026`` style date of the order."""
    created = order.created
    return f"{created.strftime('%b')} {created.day}, {created.year}"


def history_entry(order: OrderRecord) -> str:
    items = ", ".join(item.summary() for item in order.cart_items)
    return f"{short_date(order)}: {items} (${order.amount_paid:.2f})"


def merge_history(entry: str, existing: str | None) -> str:
    if not existing:
        return entry
    return f"{entry}{HISTORY_SEPARATOR}{existing}"


def parse_total(raw: str | None) -> Decimal:
    """Parse a stored total-spent value; anything unparseable counts as 0."""
    if not raw:
        return Decimal("0")
    try:
        value = Decimal(raw.strip().lstrip("$").replace(",", ""))
    except InvalidOperation:
        logger.warning("sync.total_spent_unparseable", raw=raw)
        return Decimal("0")
    return value if value.is_finite() else Decimal("0")


def order_field_values(
    order: OrderRecord,
    history: str,
    total_spent: Decimal,
) -> dict[str, str | None]:
    """Logical custom-field values for this order, before ID mapping."""
    item_total = sum((item.line_total for item in order.cart_items), Decimal("0"))
    address = order.shipping_address
    return {
        "product_ordered": ", ".join(item.product_id for item in order.cart_items),
        "order_summary": "\n".join(item.summary() for item in order.cart_items),
        "product_price": f"{item_total:.2f}",
        "shipping_address": address.formatted() if address else ADDRESS_NOT_PROVIDED,
        "payment_id": order.payment_id,
        "order_date": order.created.date().isoformat(),
        "has_preorder": "Yes" if order.has_pre_order else "No",
        "order_history": history,
        "total_spent": f"{total_spent:.2f}",
    }


def compute_tags(order: OrderRecord, *, is_repeat: bool) -> list[str]:
    """Ordered, de-duplicated tag names for an order."""
    tags: list[str] = list(BASE_TAGS)
    if is_repeat:
        tags.append(TAG_REPEAT_CUSTOMER)
    for item in order.cart_items:
        tag = PRODUCT_TAGS.get(item.product_id)
        if tag is not None:
            tags.append(tag)
    if order.has_pre_order:
        tags.extend(PRE_ORDER_TAGS)
    tags.append(month_tag(order.created))
    return list(dict.fromkeys(tags))


def build_contact_payload(
    order: OrderRecord,
    custom_fields: list[dict[str, Any]],
) -> dict[str, Any]:
    """Contact body shared by create (POST) and update (PATCH).

    Empty values are left out entirely so a PATCH never blanks data the
    contact already has.
    """
    payload: dict[str, Any] = {
        "email_addresses": [{"email": order.email, "field": "EMAIL1"}],
        "custom_fields": custom_fields,
    }
    if order.first_name:
        payload["given_name"] = order.first_name
    if order.last_name:
        payload["family_name"] = order.last_name

    address = order.shipping_address
    if address is not None:
        block = {
            "field": "SHIPPING",
            "line1": address.line1,
            "line2": address.line2,
            "locality": address.city,
            "region": address.state,
            "postal_code": address.postal_code,
            "country_code": address.country,
        }
        payload["addresses"] = [{k: v for k, v in block.items() if v not in (None, "")}]

    if order.email_consent:
        payload["opt_in_reason"] = OPT_IN_REASON
    return payload


def has_order_data(contact: Contact | None, field_map: CustomFieldMap) -> bool:
    """Backfill guard: True when the contact already carries a payment id.

    Deliberately coarse. A returning customer whose newest order was
    missed is skipped as well.
    """
    if contact is None:
        return False
    return contact.custom_field(field_map.payment_id) is not None


# ── Engine ───────────────────────────────────────────────────────────────────


class SyncEngine:
    """Writes OrderRecords into Keap contacts, custom fields, and tags.

    Args:
        client: Keap client used for every CRM call.
        field_map: Logical custom-field names -> Keap field IDs.
        limiter: Optional token bucket pacing tag calls. One engine (and so
            one bucket) is shared by a whole backfill run.
    """

    def __init__(
        self,
        client: KeapClient,
        field_map: CustomFieldMap,
        limiter: TokenBucket | None = None,
    ) -> None:
        self._client = client
        self._field_map = field_map
        self._limiter = limiter

    async def sync(self, order: OrderRecord) -> SyncResult:
        """Create or merge the order into the customer's Keap contact."""
        log = logger.bind(session_id=order.session_id, payment_id=order.payment_id)

        contact = await self._client.find_contact_by_email(order.email)

        if contact is not None and self._is_redelivery(contact, order):
            log.info("sync.duplicate_skipped", contact_id=contact.id)
            order_sync_total.labels(outcome="duplicate").inc()
            return SyncResult(contact_id=contact.id, duplicate=True)

        existing_history = None
        existing_total = Decimal("0")
        if contact is not None:
            existing_history = contact.custom_field(self._field_map.order_history)
            existing_total = parse_total(contact.custom_field(self._field_map.total_spent))

        history = merge_history(history_entry(order), existing_history)
        total_spent = existing_total + order.amount_paid
        custom_fields = to_custom_fields(
            order_field_values(order, history, total_spent),
            self._field_map,
        )
        payload = build_contact_payload(order, custom_fields)

        try:
            if contact is None:
                contact = await self._client.create_contact(payload)
                created = True
                log.info("sync.contact_created", contact_id=contact.id)
            else:
                await self._client.update_contact(contact.id, payload)
                created = False
                log.info(
                    "sync.contact_updated",
                    contact_id=contact.id,
                    total_spent=f"{total_spent:.2f}",
                )
        except Exception:
            order_sync_total.labels(outcome="failed").inc()
            raise

        result = SyncResult(contact_id=contact.id, created=created)
        for tag in compute_tags(order, is_repeat=not created):
            await self._apply_tag(contact.id, tag, result)

        order_sync_total.labels(outcome="created" if created else "updated").inc()
        log.info(
            "sync.complete",
            contact_id=contact.id,
            tags_applied=len(result.tags_applied),
            tag_errors=len(result.tag_errors),
        )
        return result

    def _is_redelivery(self, contact: Contact, order: OrderRecord) -> bool:
        if not order.payment_id:
            return False
        return contact.custom_field(self._field_map.payment_id) == order.payment_id

    async def _apply_tag(self, contact_id: int, tag: str, result: SyncResult) -> None:
        if self._limiter is not None:
            await self._limiter.acquire()
        try:
            tag_id = await self._client.get_or_create_tag(tag)
            await self._client.apply_tag(contact_id, tag_id)
        except Exception as exc:
            keap_tag_failures_total.labels(operation="apply").inc()
            logger.warning(
                "sync.tag_failed",
                contact_id=contact_id,
                tag=tag,
                error=str(exc),
            )
            result.tag_errors.append(TagFailure(tag=tag, error=str(exc)))
            return
        result.tags_applied.append(tag)

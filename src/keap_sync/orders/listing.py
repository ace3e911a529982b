"""Admin order listing: completed sessions joined with Keap fulfillment."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any

import structlog

from src.keap_sync.orders.builder import (
    amount_from_cents,
    extract_shipping,
    is_pre_order,
    parse_cart_items,
)
from src.keap_sync.orders.fulfillment import FulfillmentReader, derive_fulfillment_status
from src.keap_sync.orders.schemas import (
    CustomerInfo,
    FulfillmentCheck,
    FulfillmentState,
    OrderFulfillment,
    OrdersPage,
    OrdersSummaryCounts,
    OrderSummary,
    ShippingInfo,
)
from src.keap_sync.payments.stripe_client import StripeClient

logger = structlog.get_logger(__name__)


class OrderLister:
    """Builds the get-orders page.

    Keap is read at most once per distinct customer email per call; a
    customer with several orders shares one fulfillment lookup.
    """

    def __init__(self, payments: StripeClient, reader: FulfillmentReader) -> None:
        self._payments = payments
        self._reader = reader

    async def list_orders(self, limit: int = 100) -> OrdersPage:
        sessions = await self._payments.list_completed_sessions(limit=limit)
        checks: dict[str, FulfillmentCheck | None] = {}

        orders: list[OrderSummary] = []
        for summary in sessions:
            session_id = summary.get("id", "")
            try:
                session = await self._payments.retrieve_session(session_id)
                order = self._summarize(session)
                if order.customer.email != "Unknown":
                    check = await self._lookup(order.customer.email, checks)
                    order.fulfillment = self._fulfillment(order.has_pre_order, check)
            except Exception as exc:
                logger.error("orders.session_error", session_id=session_id, error=str(exc))
                continue
            orders.append(order)

        states = Counter(order.fulfillment.status for order in orders)
        counts = OrdersSummaryCounts(
            total=len(orders),
            pending=states[FulfillmentState.pending],
            partial=states[FulfillmentState.partial],
            fulfilled=states[FulfillmentState.fulfilled],
        )

        logger.info("orders.listed", count=len(orders), keap_lookups=len(checks))
        return OrdersPage(orders=orders, count=len(orders), summary=counts)

    async def _lookup(
        self,
        email: str,
        cache: dict[str, FulfillmentCheck | None],
    ) -> FulfillmentCheck | None:
        if email in cache:
            return cache[email]
        try:
            check = await self._reader.status(email)
        except Exception as exc:
            logger.warning("orders.fulfillment_lookup_failed", email=email, error=str(exc))
            check = None
        cache[email] = check
        return check

    @staticmethod
    def _fulfillment(has_pre_order: bool, check: FulfillmentCheck | None) -> OrderFulfillment:
        if check is None or not check.found:
            return OrderFulfillment()
        return OrderFulfillment(
            status=derive_fulfillment_status(has_pre_order, check.cards_shipped, check.book_shipped),
            cards_shipped=check.cards_shipped,
            book_shipped=check.book_shipped,
            cards_tracking_number=check.cards_tracking_number,
            book_tracking_number=check.book_tracking_number,
        )

    @staticmethod
    def _summarize(session: dict[str, Any]) -> OrderSummary:
        session_id = session.get("id", "")
        metadata = session.get("metadata") or {}
        customer = session.get("customer_details") or {}
        items = parse_cart_items(metadata.get("cartItems"), session_id=session_id)

        recipient, address = extract_shipping(session)
        created = session.get("created") or 0

        return OrderSummary(
            id=session_id,
            payment_intent_id=session.get("payment_intent"),
            created=created,
            created_date=datetime.fromtimestamp(created, tz=timezone.utc).isoformat(),
            customer=CustomerInfo(
                name=customer.get("name") or "Unknown",
                email=customer.get("email") or "Unknown",
            ),
            shipping=ShippingInfo(name=recipient, address=address) if address else None,
            items=items,
            order_summary=", ".join(item.summary() for item in items) or "Unknown items",
            amount_total=amount_from_cents(session.get("amount_total")),
            has_pre_order=is_pre_order(metadata, items),
        )

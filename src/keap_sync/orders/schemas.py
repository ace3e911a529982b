"""Pydantic schemas for order records, sync results, and admin reports.

Models serialize with camelCase aliases because the admin dashboard and
the checkout metadata both speak camelCase JSON; Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Order Record ─────────────────────────────────────────────────────────────


class ShippingAddress(CamelModel):
    line1: str | None = None
    line2: str = ""
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None

    def formatted(self) -> str:
        """Multi-line postal format used for the Keap shipping-address field."""
        line2 = f"\n{self.line2}" if self.line2 else ""
        return (
            f"{self.line1 or ''}{line2}\n"
            f"{self.city or ''}, {self.state or ''} {self.postal_code or ''}\n"
            f"{self.country or ''}"
        )


class CartItem(CamelModel):
    """One line of the cart JSON stored in checkout session metadata."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    product_id: str
    product_name: str
    product_price: Decimal = Decimal("0")
    quantity: int = 1

    @field_serializer("product_price", when_used="json")
    def _price_as_number(self, value: Decimal) -> float:
        return float(value)

    @property
    def line_total(self) -> Decimal:
        return self.product_price * self.quantity

    def summary(self) -> str:
        return f"{self.quantity}x {self.product_name}"


class OrderRecord(CamelModel):
    """Normalized order built from one completed checkout session.

    Transient: built per request, written into Keap, never persisted here.
    ``payment_id`` (the Stripe payment intent) is the durable de-dup key.
    """

    session_id: str
    payment_id: str | None = None
    email: str
    name: str = ""
    shipping_address: ShippingAddress | None = None
    cart_items: list[CartItem] = Field(default_factory=list)
    has_pre_order: bool = False
    amount_paid: Decimal
    created: datetime
    email_consent: bool = False

    @field_serializer("amount_paid", when_used="json")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)

    @property
    def first_name(self) -> str:
        return split_name(self.name)[0]

    @property
    def last_name(self) -> str:
        return split_name(self.name)[1]


def split_name(name: str) -> tuple[str, str]:
    """Split a full name on the first space: (given name, family name).

    Lossy for multi-word given names ("Mary Ann Smith" -> "Mary", "Ann Smith");
    kept this way so existing Keap records stay consistent.
    """
    parts = name.split(" ")
    return parts[0], " ".join(parts[1:])


# ── Sync ─────────────────────────────────────────────────────────────────────


class TagFailure(CamelModel):
    tag: str
    error: str


class SyncResult(CamelModel):
    """Outcome of writing one order into Keap.

    A result with tag_errors is still a success: the order counts as
    placed once the contact and its custom fields are written.
    """

    contact_id: int
    created: bool = False
    duplicate: bool = False
    tags_applied: list[str] = Field(default_factory=list)
    tag_errors: list[TagFailure] = Field(default_factory=list)


# ── Backfill ─────────────────────────────────────────────────────────────────


class BackfillStatus(str, Enum):
    skipped = "skipped"
    would_sync = "would_sync"
    synced = "synced"


class BackfillDetail(CamelModel):
    session_id: str
    status: BackfillStatus
    email: str | None = None
    name: str | None = None
    reason: str | None = None
    contact_id: int | None = None
    order_data: OrderRecord | None = None


class BackfillError(CamelModel):
    session_id: str
    error: str


class BackfillReport(CamelModel):
    processed: int = 0
    synced: int = 0
    skipped: int = 0
    errors: list[BackfillError] = Field(default_factory=list)
    details: list[BackfillDetail] = Field(default_factory=list)


# ── Fulfillment ──────────────────────────────────────────────────────────────


class FulfillmentState(str, Enum):
    pending = "pending"
    partial = "partial"
    fulfilled = "fulfilled"


class FulfillmentCheck(CamelModel):
    """Shipped flags read back from a contact's tracking fields."""

    found: bool
    cards_shipped: bool = False
    book_shipped: bool = False
    cards_tracking_number: str | None = None
    book_tracking_number: str | None = None


class OrderFulfillment(CamelModel):
    status: FulfillmentState = FulfillmentState.pending
    cards_shipped: bool = False
    book_shipped: bool = False
    cards_tracking_number: str | None = None
    book_tracking_number: str | None = None


class TrackingResult(CamelModel):
    contact_id: int


# ── Orders listing ───────────────────────────────────────────────────────────


class CustomerInfo(CamelModel):
    name: str = "Unknown"
    email: str = "Unknown"


class ShippingInfo(CamelModel):
    name: str | None = None
    address: ShippingAddress


class OrderSummary(CamelModel):
    id: str
    payment_intent_id: str | None = None
    created: int
    created_date: str
    customer: CustomerInfo
    shipping: ShippingInfo | None = None
    items: list[CartItem] = Field(default_factory=list)
    order_summary: str
    amount_total: Decimal
    has_pre_order: bool = False
    fulfillment: OrderFulfillment = Field(default_factory=OrderFulfillment)

    @field_serializer("amount_total", when_used="json")
    def _total_as_number(self, value: Decimal) -> float:
        return float(value)


class OrdersSummaryCounts(CamelModel):
    total: int = 0
    pending: int = 0
    partial: int = 0
    fulfilled: int = 0


class OrdersPage(CamelModel):
    orders: list[OrderSummary] = Field(default_factory=list)
    count: int = 0
    summary: OrdersSummaryCounts = Field(default_factory=OrdersSummaryCounts)

"""Destiny Cards product catalog, Keap tag vocabulary, and shipment legs.

Everything merchant-specific that the sync writes into Keap lives here so
the sync, backfill, and tracking modules share one vocabulary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# ── Products ─────────────────────────────────────────────────────────────────

CARDS_ONLY = "cards-only"
CARDS_BOOK_BUNDLE = "cards-book-bundle"

# Product whose book ships later as a second leg.
BUNDLE_PRODUCT_IDS = frozenset({CARDS_BOOK_BUNDLE})

# ── Tags ─────────────────────────────────────────────────────────────────────

TAG_PREFIX = "Destiny Cards - "

TAG_ORDER_RECEIVED = f"{TAG_PREFIX}Order Received"
TAG_FIRST_EDITION = f"{TAG_PREFIX}1st Edition"
TAG_AWAITING_SHIPMENT = f"{TAG_PREFIX}Awaiting Shipment"
TAG_REPEAT_CUSTOMER = f"{TAG_PREFIX}Repeat Customer"
TAG_CARDS_ONLY = f"{TAG_PREFIX}Cards Only"
TAG_BUNDLE = f"{TAG_PREFIX}Cards + Book Bundle"
TAG_PRE_ORDER = f"{TAG_PREFIX}Pre-Order (Book Ships March 2026)"
TAG_PENDING_BOOK_SHIPMENT = f"{TAG_PREFIX}Pending Book Shipment"
TAG_CARDS_SHIPPED = f"{TAG_PREFIX}Cards Shipped"
TAG_BOOK_SHIPPED = f"{TAG_PREFIX}Book Shipped"

BASE_TAGS: tuple[str, ...] = (TAG_ORDER_RECEIVED, TAG_FIRST_EDITION, TAG_AWAITING_SHIPMENT)
PRE_ORDER_TAGS: tuple[str, ...] = (TAG_PRE_ORDER, TAG_PENDING_BOOK_SHIPMENT)

PRODUCT_TAGS: dict[str, str] = {
    CARDS_ONLY: TAG_CARDS_ONLY,
    CARDS_BOOK_BUNDLE: TAG_BUNDLE,
}


def month_tag(when: datetime) -> str:
    """Month/year cohort tag, e.g. ``Destiny Cards - January 2026``."""
    return f"{TAG_PREFIX}{when.strftime('%B')} {when.year}"


# ── Contact payload constants ────────────────────────────────────────────────

OPT_IN_REASON = "Destiny Cards Purchase"
ADDRESS_NOT_PROVIDED = "Not provided"
HISTORY_SEPARATOR = "\n---\n"


# ── Shipment legs ────────────────────────────────────────────────────────────


class ShipmentLeg(str, Enum):
    """Independently tracked shipments: the deck ships first, the book later."""

    cards = "cards"
    book = "book"


@dataclass(frozen=True)
class LegFields:
    """Custom field names and tags that belong to one shipment leg."""

    tracking_field: str
    shipped_date_field: str
    shipped_tag: str
    awaiting_tag: str


LEG_FIELDS: dict[ShipmentLeg, LegFields] = {
    ShipmentLeg.cards: LegFields(
        tracking_field="cards_tracking_number",
        shipped_date_field="cards_shipped_date",
        shipped_tag=TAG_CARDS_SHIPPED,
        awaiting_tag=TAG_AWAITING_SHIPMENT,
    ),
    ShipmentLeg.book: LegFields(
        tracking_field="book_tracking_number",
        shipped_date_field="book_shipped_date",
        shipped_tag=TAG_BOOK_SHIPPED,
        awaiting_tag=TAG_PENDING_BOOK_SHIPMENT,
    ),
}

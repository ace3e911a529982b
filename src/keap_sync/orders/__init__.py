"""Order domain: checkout sessions -> Keap contacts, tags, and fulfillment.

Provides:
- build_order_record: Stripe session -> OrderRecord
- SyncEngine: Create/merge an order into the customer's Keap contact
- BackfillDriver: Replay historical sessions Keap is missing
- FulfillmentReader / derive_fulfillment_status: Shipped state on read
- TrackingWriter: Record tracking numbers per shipment leg
- OrderLister: Admin order listing with fulfillment status
"""

from src.keap_sync.orders.backfill import BackfillDriver
from src.keap_sync.orders.builder import build_order_record
from src.keap_sync.orders.catalog import ShipmentLeg
from src.keap_sync.orders.fulfillment import FulfillmentReader, derive_fulfillment_status
from src.keap_sync.orders.listing import OrderLister
from src.keap_sync.orders.schemas import OrderRecord, SyncResult
from src.keap_sync.orders.sync import SyncEngine, has_order_data
from src.keap_sync.orders.tracking import ContactNotFoundError, TrackingWriter

__all__ = [
    "build_order_record",
    "OrderRecord",
    "SyncResult",
    "SyncEngine",
    "has_order_data",
    "BackfillDriver",
    "FulfillmentReader",
    "derive_fulfillment_status",
    "TrackingWriter",
    "ContactNotFoundError",
    "ShipmentLeg",
    "OrderLister",
]

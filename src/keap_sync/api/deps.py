"""FastAPI dependency injection for provider clients and admin authentication.

Route signatures declare what they need (Keap client, Stripe client, sync
engine, ...) and these dependencies build them from settings. A missing
credential fails the request with 500 before any provider call is made.
Tests swap any of these out through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from tenacity import wait_exponential_jitter

from src.keap_sync.config import Settings, get_settings
from src.keap_sync.core.rate_limit import TokenBucket
from src.keap_sync.core.security import verify_admin_key
from src.keap_sync.crm.client import KeapClient
from src.keap_sync.crm.field_mapping import CustomFieldMap
from src.keap_sync.orders.backfill import BackfillDriver
from src.keap_sync.orders.fulfillment import FulfillmentReader
from src.keap_sync.orders.listing import OrderLister
from src.keap_sync.orders.sync import SyncEngine
from src.keap_sync.orders.tracking import TrackingWriter
from src.keap_sync.payments.stripe_client import StripeClient


def _not_configured(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{name} not configured",
    )


# ── Authentication ───────────────────────────────────────────────────────────


async def require_admin(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless it carries ``Bearer <ADMIN_API_KEY>``.

    Raises:
        HTTPException(401): Admin key unset, header missing, or key mismatch.
    """
    if not verify_admin_key(authorization, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# ── Provider clients ─────────────────────────────────────────────────────────


def build_keap_client(settings: Settings) -> KeapClient:
    return KeapClient(
        access_token=settings.KEAP_ACCESS_TOKEN,
        base_url=settings.KEAP_BASE_URL,
        timeout=settings.KEAP_TIMEOUT,
        max_attempts=settings.KEAP_MAX_ATTEMPTS,
        wait=wait_exponential_jitter(
            initial=settings.KEAP_BACKOFF_INITIAL,
            max=settings.KEAP_BACKOFF_MAX,
        ),
    )


async def get_keap_client(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> KeapClient:
    """Shared Keap client from app.state, created on first use."""
    if not settings.KEAP_ACCESS_TOKEN:
        raise _not_configured("KEAP_ACCESS_TOKEN")

    client = getattr(request.app.state, "keap_client", None)
    if client is None:
        client = build_keap_client(settings)
        request.app.state.keap_client = client
    return client


async def get_optional_keap_client(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> KeapClient | None:
    """Like get_keap_client, but None instead of 500 when Keap is unset."""
    if not settings.KEAP_ACCESS_TOKEN:
        return None
    return await get_keap_client(request, settings)


async def get_stripe_client(settings: Settings = Depends(get_settings)) -> StripeClient:
    if not settings.STRIPE_SECRET_KEY:
        raise _not_configured("STRIPE_SECRET_KEY")
    return StripeClient(api_key=settings.STRIPE_SECRET_KEY)


async def get_webhook_secret(settings: Settings = Depends(get_settings)) -> str:
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise _not_configured("STRIPE_WEBHOOK_SECRET")
    return settings.STRIPE_WEBHOOK_SECRET


async def get_field_map(settings: Settings = Depends(get_settings)) -> CustomFieldMap:
    return settings.KEAP_CUSTOM_FIELDS


async def get_tag_limiter(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> TokenBucket:
    """Process-wide tag pacing bucket."""
    limiter = getattr(request.app.state, "tag_limiter", None)
    if limiter is None:
        limiter = TokenBucket(rate=settings.KEAP_TAG_RATE_PER_SECOND)
        request.app.state.tag_limiter = limiter
    return limiter


# ── Order services ───────────────────────────────────────────────────────────


async def get_sync_engine(
    client: KeapClient = Depends(get_keap_client),
    field_map: CustomFieldMap = Depends(get_field_map),
    limiter: TokenBucket = Depends(get_tag_limiter),
) -> SyncEngine:
    return SyncEngine(client, field_map, limiter=limiter)


async def get_optional_sync_engine(
    client: KeapClient | None = Depends(get_optional_keap_client),
    field_map: CustomFieldMap = Depends(get_field_map),
    limiter: TokenBucket = Depends(get_tag_limiter),
) -> SyncEngine | None:
    if client is None:
        return None
    return SyncEngine(client, field_map, limiter=limiter)


async def get_fulfillment_reader(
    client: KeapClient = Depends(get_keap_client),
    field_map: CustomFieldMap = Depends(get_field_map),
) -> FulfillmentReader:
    return FulfillmentReader(client, field_map)


async def get_tracking_writer(
    client: KeapClient = Depends(get_keap_client),
    field_map: CustomFieldMap = Depends(get_field_map),
) -> TrackingWriter:
    return TrackingWriter(client, field_map)


async def get_backfill_driver(
    payments: StripeClient = Depends(get_stripe_client),
    client: KeapClient = Depends(get_keap_client),
    engine: SyncEngine = Depends(get_sync_engine),
    field_map: CustomFieldMap = Depends(get_field_map),
) -> BackfillDriver:
    return BackfillDriver(payments, client, engine, field_map)


async def get_order_lister(
    payments: StripeClient = Depends(get_stripe_client),
    reader: FulfillmentReader = Depends(get_fulfillment_reader),
) -> OrderLister:
    return OrderLister(payments, reader)

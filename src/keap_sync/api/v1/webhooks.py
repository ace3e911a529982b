"""Stripe webhook receiver.

Paid checkout sessions are synced into Keap as they complete. Once the
signature checks out, the webhook acknowledges even if the Keap sync
fails: the payment has already succeeded and the backfill can repair
the contact later. Only a failure to read the session from Stripe
answers 500, so Stripe redelivers.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from src.keap_sync.api.deps import (
    get_optional_sync_engine,
    get_stripe_client,
    get_webhook_secret,
)
from src.keap_sync.orders.builder import build_order_record
from src.keap_sync.orders.sync import SyncEngine
from src.keap_sync.payments.stripe_client import StripeClient, WebhookVerificationError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

PAID_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})
PAYMENT_FAILED_EVENT = "checkout.session.async_payment_failed"


async def _sync_paid_session(
    session_id: str,
    payments: StripeClient,
    engine: SyncEngine | None,
) -> None:
    session = await payments.retrieve_session(session_id)

    order = build_order_record(session)
    if order is None:
        logger.warning("webhook.skip_no_email", session_id=session_id)
        return

    if engine is None:
        logger.error("webhook.keap_not_configured", session_id=session_id)
        return

    try:
        result = await engine.sync(order)
    except Exception as exc:
        logger.error(
            "webhook.sync_failed",
            session_id=session_id,
            email=order.email,
            error=str(exc),
            exc_info=True,
        )
        return

    logger.info(
        "webhook.order_synced",
        session_id=session_id,
        contact_id=result.contact_id,
        duplicate=result.duplicate,
    )


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    secret: str = Depends(get_webhook_secret),
    payments: StripeClient = Depends(get_stripe_client),
    engine: SyncEngine | None = Depends(get_optional_sync_engine),
) -> dict:
    payload = await request.body()
    try:
        event = StripeClient.construct_event(payload, stripe_signature or "", secret)
    except WebhookVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {exc}",
        )

    event_type = event.get("type")
    session = (event.get("data") or {}).get("object") or {}
    logger.info("webhook.received", event_type=event_type, event_id=event.get("id"))

    if event_type in PAID_EVENTS:
        await _sync_paid_session(session.get("id", ""), payments, engine)
    elif event_type == PAYMENT_FAILED_EVENT:
        logger.warning("webhook.payment_failed", session_id=session.get("id"))
    else:
        logger.info("webhook.unhandled_event", event_type=event_type)

    return {"received": True}

"""Stripe checkout-session access for the sync handlers.

The Stripe SDK is synchronous; calls run in a worker thread so handlers
stay async. Sessions are returned as plain dicts so the order builder
does not depend on SDK object types.
"""

from __future__ import annotations

import asyncio
from itertools import islice
from typing import Any

import stripe
import structlog

logger = structlog.get_logger(__name__)

# Stripe caps a single list page at 100 objects.
_MAX_PAGE_SIZE = 100


class PaymentsError(Exception):
    """Raised when a Stripe API call fails.

    Attributes:
        status_code: HTTP status reported by Stripe, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class WebhookVerificationError(Exception):
    """Raised when a webhook payload or its signature is invalid."""


class StripeClient:
    """Read-only Stripe client for completed checkout sessions.

    Args:
        api_key: Stripe secret key.
    """

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def _list_completed(self, limit: int) -> list[dict[str, Any]]:
        page = stripe.checkout.Session.list(
            status="complete",
            limit=min(limit, _MAX_PAGE_SIZE),
            api_key=self._api_key,
        )
        return [session.to_dict() for session in islice(page.auto_paging_iter(), limit)]

    def _retrieve(self, session_id: str) -> dict[str, Any]:
        session = stripe.checkout.Session.retrieve(session_id, api_key=self._api_key)
        return session.to_dict()

    async def list_completed_sessions(self, limit: int = 100) -> list[dict[str, Any]]:
        """List up to ``limit`` completed sessions, newest first, across pages."""
        try:
            sessions = await asyncio.to_thread(self._list_completed, limit)
        except stripe.StripeError as exc:
            raise PaymentsError(
                f"Stripe session list failed: {exc.user_message or exc}",
                status_code=exc.http_status,
            ) from exc

        logger.info("stripe.sessions_listed", count=len(sessions), limit=limit)
        return sessions

    async def retrieve_session(self, session_id: str) -> dict[str, Any]:
        """Retrieve the full session (shipping and customer details included)."""
        try:
            return await asyncio.to_thread(self._retrieve, session_id)
        except stripe.StripeError as exc:
            raise PaymentsError(
                f"Stripe session retrieve failed for {session_id}: {exc.user_message or exc}",
                status_code=exc.http_status,
            ) from exc

    @staticmethod
    def construct_event(payload: bytes, signature: str, secret: str) -> dict[str, Any]:
        """Verify a webhook signature and return the event as a dict."""
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("stripe.webhook_signature_invalid", error=str(exc))
            raise WebhookVerificationError(str(exc)) from exc
        return event.to_dict()

"""Stripe payments access (checkout sessions and webhook verification)."""

from src.keap_sync.payments.stripe_client import (
    PaymentsError,
    StripeClient,
    WebhookVerificationError,
)

__all__ = ["StripeClient", "PaymentsError", "WebhookVerificationError"]

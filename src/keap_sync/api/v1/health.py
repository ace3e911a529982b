"""Health check endpoint.

Liveness only: no provider is called. The ``configured`` block shows
which credentials are present so a misconfigured deploy is easy to spot.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.keap_sync.config import Settings, get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT.value,
        "configured": {
            "adminApiKey": bool(settings.ADMIN_API_KEY),
            "stripe": bool(settings.STRIPE_SECRET_KEY),
            "stripeWebhook": bool(settings.STRIPE_WEBHOOK_SECRET),
            "keap": bool(settings.KEAP_ACCESS_TOKEN),
        },
    }

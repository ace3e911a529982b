"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.keap_sync.api.v1 import backfill, fulfillment, health, orders, tracking, webhooks

router = APIRouter()

router.include_router(health.router)
router.include_router(backfill.router)
router.include_router(fulfillment.router)
router.include_router(orders.router)
router.include_router(tracking.router)
router.include_router(webhooks.router)

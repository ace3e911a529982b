"""Backfill endpoint: replay completed checkout sessions into Keap.

Defaults to a dry run. Pass ``{"dryRun": false}`` to write.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field, field_validator

from src.keap_sync.api.deps import get_backfill_driver, require_admin
from src.keap_sync.config import Settings, get_settings
from src.keap_sync.orders.backfill import BackfillDriver, backfill_message
from src.keap_sync.orders.schemas import BackfillReport, CamelModel

router = APIRouter(tags=["backfill"], dependencies=[Depends(require_admin)])


class BackfillRequest(CamelModel):
    """Request body for a backfill run (all fields optional)."""

    dry_run: bool = True
    limit: int | None = Field(default=None, ge=1)

    @field_validator("dry_run", mode="before")
    @classmethod
    def _only_false_writes(cls, value: Any) -> bool:
        # Only a literal JSON false starts a live run; 0, "no", null stay dry.
        return value is not False


class BackfillResponse(CamelModel):
    success: bool = True
    dry_run: bool
    message: str
    results: BackfillReport


@router.post("/backfill", response_model=BackfillResponse, response_model_exclude_none=True)
async def run_backfill(
    body: BackfillRequest | None = None,
    driver: BackfillDriver = Depends(get_backfill_driver),
    settings: Settings = Depends(get_settings),
) -> BackfillResponse:
    body = body or BackfillRequest()
    limit = body.limit or settings.BACKFILL_DEFAULT_LIMIT

    report = await driver.run(dry_run=body.dry_run, limit=limit)
    return BackfillResponse(
        dry_run=body.dry_run,
        message=backfill_message(report, dry_run=body.dry_run),
        results=report,
    )

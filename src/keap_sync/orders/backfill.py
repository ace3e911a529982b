"""Backfill: replay historical checkout sessions into Keap.

Repairs orders the webhook missed. Sessions are processed one at a time,
newest first; a failure on one session is recorded in the report and the
batch moves on. Dry run (the default) reports what would be synced and
performs no CRM writes.
"""

from __future__ import annotations

import structlog

from src.keap_sync.core.monitoring import backfill_sessions_total
from src.keap_sync.crm.client import KeapClient
from src.keap_sync.crm.field_mapping import CustomFieldMap
from src.keap_sync.orders.builder import build_order_record
from src.keap_sync.orders.schemas import (
    BackfillDetail,
    BackfillError,
    BackfillReport,
    BackfillStatus,
)
from src.keap_sync.orders.sync import SyncEngine, has_order_data
from src.keap_sync.payments.stripe_client import StripeClient

logger = structlog.get_logger(__name__)

SKIP_NO_EMAIL = "No customer email"
SKIP_HAS_ORDER_DATA = "Already has order data in Keap"


def backfill_message(report: BackfillReport, *, dry_run: bool) -> str:
    if dry_run:
        return (
            f"Dry run complete. {report.synced} orders would be synced. "
            "Run with dryRun: false to execute."
        )
    return f"Backfill complete. {report.synced} orders synced to Keap."


class BackfillDriver:
    """Walks completed checkout sessions and syncs the ones Keap lacks."""

    def __init__(
        self,
        payments: StripeClient,
        client: KeapClient,
        engine: SyncEngine,
        field_map: CustomFieldMap,
    ) -> None:
        self._payments = payments
        self._client = client
        self._engine = engine
        self._field_map = field_map

    async def run(self, dry_run: bool = True, limit: int = 100) -> BackfillReport:
        """Process up to ``limit`` completed sessions.

        Listing failures propagate; everything after that is per-session.
        """
        sessions = await self._payments.list_completed_sessions(limit=limit)
        logger.info("backfill.started", sessions=len(sessions), dry_run=dry_run)

        report = BackfillReport()
        for summary in sessions:
            session_id = summary.get("id", "")
            report.processed += 1
            try:
                detail = await self._process(session_id, dry_run=dry_run)
            except Exception as exc:
                logger.error("backfill.session_error", session_id=session_id, error=str(exc))
                backfill_sessions_total.labels(status="error").inc()
                report.errors.append(BackfillError(session_id=session_id, error=str(exc)))
                continue

            backfill_sessions_total.labels(status=detail.status.value).inc()
            if detail.status is BackfillStatus.skipped:
                report.skipped += 1
            else:
                report.synced += 1
            report.details.append(detail)

        logger.info(
            "backfill.complete",
            dry_run=dry_run,
            processed=report.processed,
            synced=report.synced,
            skipped=report.skipped,
            errors=len(report.errors),
        )
        return report

    async def _process(self, session_id: str, *, dry_run: bool) -> BackfillDetail:
        session = await self._payments.retrieve_session(session_id)
        order = build_order_record(session)
        if order is None:
            return BackfillDetail(
                session_id=session_id,
                status=BackfillStatus.skipped,
                reason=SKIP_NO_EMAIL,
            )

        contact = await self._client.find_contact_by_email(order.email)
        if has_order_data(contact, self._field_map):
            return BackfillDetail(
                session_id=session_id,
                email=order.email,
                status=BackfillStatus.skipped,
                reason=SKIP_HAS_ORDER_DATA,
            )

        if dry_run:
            return BackfillDetail(
                session_id=session_id,
                email=order.email,
                name=order.name,
                status=BackfillStatus.would_sync,
                order_data=order,
            )

        result = await self._engine.sync(order)
        logger.info("backfill.session_synced", session_id=session_id, contact_id=result.contact_id)
        return BackfillDetail(
            session_id=session_id,
            email=order.email,
            status=BackfillStatus.synced,
            contact_id=result.contact_id,
        )

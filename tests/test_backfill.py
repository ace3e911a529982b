"""Tests for BackfillDriver over FakePayments + FakeKeap."""

from __future__ import annotations

import pytest

from src.keap_sync.orders.backfill import BackfillDriver, backfill_message
from src.keap_sync.orders.schemas import BackfillStatus
from src.keap_sync.orders.sync import SyncEngine

from conftest import FakePayments


def _driver(payments, keap_client, field_map) -> BackfillDriver:
    return BackfillDriver(payments, keap_client, SyncEngine(keap_client, field_map), field_map)


@pytest.fixture
def sessions(make_session) -> list[dict]:
    return [
        make_session(id="cs_new", payment_intent="pi_new"),
        make_session(
            id="cs_synced",
            payment_intent="pi_synced",
            customer_details={"email": "synced@example.com", "name": "Old Buyer"},
        ),
        make_session(id="cs_no_email", customer_details={"name": "Ghost"}, customer_email=None),
    ]


class TestDryRun:
    async def test_dry_run_makes_no_writes(self, sessions, keap_client, fake_keap, field_map):
        fake_keap.seed_contact("synced@example.com", {"payment_id": "pi_synced"})
        driver = _driver(FakePayments(sessions), keap_client, field_map)

        report = await driver.run(dry_run=True, limit=100)

        assert fake_keap.writes == []
        assert report.processed == 3
        assert report.synced == 1
        assert report.skipped == 2
        assert report.errors == []

        by_session = {detail.session_id: detail for detail in report.details}
        assert by_session["cs_new"].status is BackfillStatus.would_sync
        assert by_session["cs_new"].order_data.payment_id == "pi_new"
        assert by_session["cs_synced"].reason == "Already has order data in Keap"
        assert by_session["cs_no_email"].reason == "No customer email"

    async def test_dry_run_is_default(self, sessions, keap_client, fake_keap, field_map):
        report = await _driver(FakePayments(sessions), keap_client, field_map).run()

        assert fake_keap.writes == []
        assert report.synced == 2

    async def test_message(self, sessions, keap_client, field_map):
        report = await _driver(FakePayments(sessions), keap_client, field_map).run()

        assert backfill_message(report, dry_run=True) == (
            "Dry run complete. 2 orders would be synced. Run with dryRun: false to execute."
        )


class TestLiveRun:
    async def test_live_run_syncs_missing_orders(self, sessions, keap_client, fake_keap, field_map):
        fake_keap.seed_contact("synced@example.com", {"payment_id": "pi_synced"})

        report = await _driver(FakePayments(sessions), keap_client, field_map).run(dry_run=False)

        assert report.synced == 1
        detail = next(d for d in report.details if d.session_id == "cs_new")
        assert detail.status is BackfillStatus.synced
        contact = fake_keap.contact_by_email("a@example.com")
        assert detail.contact_id == contact["id"]
        assert fake_keap.field(contact["id"], "payment_id") == "pi_new"
        assert backfill_message(report, dry_run=False) == "Backfill complete. 1 orders synced to Keap."

    async def test_second_live_run_skips_everything(self, sessions, keap_client, field_map):
        driver = _driver(FakePayments(sessions), keap_client, field_map)
        await driver.run(dry_run=False)

        report = await driver.run(dry_run=False)

        assert report.synced == 0
        assert report.skipped == 3

    async def test_session_error_is_captured_and_batch_continues(
        self, sessions, keap_client, fake_keap, field_map
    ):
        payments = FakePayments(sessions)
        payments.broken.add("cs_new")

        report = await _driver(payments, keap_client, field_map).run(dry_run=False)

        assert report.processed == 3
        assert len(report.errors) == 1
        assert report.errors[0].session_id == "cs_new"
        assert "cs_new" in report.errors[0].error
        assert payments.retrieved == ["cs_new", "cs_synced", "cs_no_email"]

    async def test_limit_is_respected(self, sessions, keap_client, field_map):
        report = await _driver(FakePayments(sessions), keap_client, field_map).run(limit=1)

        assert report.processed == 1


class TestReportSerialization:
    async def test_camel_case_report(self, sessions, keap_client, field_map):
        report = await _driver(FakePayments(sessions), keap_client, field_map).run()

        data = report.model_dump(mode="json", by_alias=True, exclude_none=True)
        would_sync = next(d for d in data["details"] if d["status"] == "would_sync")
        assert would_sync["sessionId"] == "cs_new"
        assert would_sync["orderData"]["amountPaid"] == 20.0
        assert would_sync["orderData"]["cartItems"][0]["productId"] == "cards-only"

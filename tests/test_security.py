"""Tests for the admin key check and Stripe webhook verification."""

from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest

from src.keap_sync.core.security import bearer_token, verify_admin_key
from src.keap_sync.payments.stripe_client import StripeClient, WebhookVerificationError


class TestAdminKey:
    def test_exact_match(self):
        assert verify_admin_key("Bearer s3cret", "s3cret") is True

    @pytest.mark.parametrize(
        "header",
        [None, "", "s3cret", "Bearer", "Bearer s3cre", "Bearer s3cret ", "bearer s3cret", "Basic s3cret"],
    )
    def test_rejects(self, header):
        assert verify_admin_key(header, "s3cret") is False

    def test_unset_key_rejects_everything(self):
        assert verify_admin_key("Bearer ", "") is False
        assert verify_admin_key("Bearer anything", "") is False

    def test_bearer_token(self):
        assert bearer_token("Bearer abc") == "abc"
        assert bearer_token("Token abc") is None


class TestConstructEvent:
    def _header(self, payload: bytes, secret: str) -> str:
        timestamp = int(time.time())
        signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def test_valid_signature_returns_dict(self):
        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "object": "checkout.session"}},
        }).encode("utf-8")

        event = StripeClient.construct_event(payload, self._header(payload, "whsec_x"), "whsec_x")

        assert event["type"] == "checkout.session.completed"
        assert event["data"]["object"]["id"] == "cs_1"

    def test_bad_signature(self):
        payload = b'{"id": "evt_1", "object": "event"}'
        with pytest.raises(WebhookVerificationError):
            StripeClient.construct_event(payload, self._header(payload, "whsec_other"), "whsec_x")

    def test_missing_signature(self):
        with pytest.raises(WebhookVerificationError):
            StripeClient.construct_event(b"{}", "", "whsec_x")

"""Shared test fixtures.

Provides:
- FakeKeap: in-memory Keap REST v1 served through httpx.MockTransport, so
  tests drive the real KeapClient end to end
- FakePayments: in-memory stand-in for StripeClient
- FakeClock: deterministic clock/sleep pair for the token bucket
- make_session: factory for Stripe checkout session dicts
"""

from __future__ import annotations

import json
import re
from collections import defaultdict
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from tenacity import wait_none

from src.keap_sync.core.rate_limit import TokenBucket
from src.keap_sync.crm.client import KeapClient
from src.keap_sync.crm.field_mapping import CustomFieldMap
from src.keap_sync.payments.stripe_client import PaymentsError

KEAP_TEST_URL = "https://keap.test/crm/rest/v1"
_PREFIX = "/crm/rest/v1"


# ── Fake Keap ────────────────────────────────────────────────────────────────


class FakeKeap:
    """In-memory Keap account answering the REST calls KeapClient makes."""

    def __init__(self, field_map: CustomFieldMap | None = None) -> None:
        self.field_map = field_map or CustomFieldMap()
        self.contacts: dict[int, dict[str, Any]] = {}
        self.tags: dict[int, str] = {}
        self.contact_tags: dict[int, set[int]] = defaultdict(set)
        self.calls: list[tuple[str, str]] = []
        self.payloads: list[tuple[str, str, dict[str, Any]]] = []
        self._failures: list[list[Any]] = []
        self._next_contact_id = 1001
        self._next_tag_id = 501

    # -- test helpers --

    def fail(self, method: str, path: str, status: int, times: int = 1) -> None:
        """Answer the next ``times`` matching requests with ``status``."""
        self._failures.append([method, path, status, times])

    def seed_contact(
        self,
        email: str,
        fields: dict[str, str] | None = None,
        given_name: str = "Existing",
    ) -> int:
        contact_id = self._next_contact_id
        self._next_contact_id += 1
        self.contacts[contact_id] = {
            "id": contact_id,
            "given_name": given_name,
            "email_addresses": [{"email": email, "field": "EMAIL1"}],
            "custom_fields": [
                {"id": self.field_map.id_for(name), "content": content}
                for name, content in (fields or {}).items()
            ],
        }
        return contact_id

    def seed_tag(self, name: str) -> int:
        tag_id = self._next_tag_id
        self._next_tag_id += 1
        self.tags[tag_id] = name
        return tag_id

    def field(self, contact_id: int, name: str) -> str | None:
        field_id = self.field_map.id_for(name)
        for entry in self.contacts[contact_id].get("custom_fields", []):
            if entry["id"] == field_id:
                return entry["content"]
        return None

    def tag_names(self, contact_id: int) -> set[str]:
        return {self.tags[tag_id] for tag_id in self.contact_tags[contact_id]}

    def contact_by_email(self, email: str) -> dict[str, Any] | None:
        for contact in self.contacts.values():
            if any(e["email"] == email for e in contact.get("email_addresses", [])):
                return contact
        return None

    @property
    def writes(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] != "GET"]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # -- request handling --

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.removeprefix(_PREFIX)
        self.calls.append((method, path))

        body: dict[str, Any] = json.loads(request.content) if request.content else {}
        if body:
            self.payloads.append((method, path, body))

        for failure in self._failures:
            if failure[0] == method and failure[1] == path and failure[3] > 0:
                failure[3] -= 1
                return httpx.Response(failure[2], json={"message": "injected"})

        if path == "/contacts" and method == "GET":
            return self._search_contacts(request.url.params.get("email", ""))
        if path == "/contacts" and method == "POST":
            return self._create_contact(body)
        if path == "/contacts/model" and method == "GET":
            return httpx.Response(200, json={
                "custom_fields": [{"id": fid} for fid in self.field_map.model_dump().values()],
            })
        if path == "/tags" and method == "GET":
            return self._search_tags(request.url.params.get("name", ""))
        if path == "/tags" and method == "POST":
            tag_id = self.seed_tag(body["name"])
            return httpx.Response(201, json={"id": tag_id, "name": body["name"]})

        if match := re.fullmatch(r"/contacts/(\d+)/tags/(\d+)", path):
            contact_id, tag_id = int(match[1]), int(match[2])
            if method == "DELETE":
                if tag_id not in self.contact_tags[contact_id]:
                    return httpx.Response(404, json={"message": "not applied"})
                self.contact_tags[contact_id].discard(tag_id)
                return httpx.Response(204)

        if match := re.fullmatch(r"/contacts/(\d+)/tags", path):
            contact_id = int(match[1])
            if method == "POST":
                self.contact_tags[contact_id].update(body["tagIds"])
                return httpx.Response(200, json={})

        if match := re.fullmatch(r"/contacts/(\d+)", path):
            contact_id = int(match[1])
            if contact_id not in self.contacts:
                return httpx.Response(404, json={"message": "not found"})
            if method == "GET":
                return httpx.Response(200, json=self.contacts[contact_id])
            if method == "PATCH":
                return self._patch_contact(contact_id, body)

        return httpx.Response(405, json={"message": f"unhandled {method} {path}"})

    def _search_contacts(self, email: str) -> httpx.Response:
        found = [
            contact for contact in self.contacts.values()
            if any(e["email"] == email for e in contact.get("email_addresses", []))
        ]
        return httpx.Response(200, json={"contacts": found, "count": len(found)})

    def _create_contact(self, body: dict[str, Any]) -> httpx.Response:
        contact_id = self._next_contact_id
        self._next_contact_id += 1
        self.contacts[contact_id] = {"id": contact_id, **body}
        return httpx.Response(201, json=self.contacts[contact_id])

    def _patch_contact(self, contact_id: int, body: dict[str, Any]) -> httpx.Response:
        contact = self.contacts[contact_id]
        for key, value in body.items():
            if key != "custom_fields":
                contact[key] = value
                continue
            merged = {entry["id"]: entry for entry in contact.get("custom_fields", [])}
            for entry in value:
                merged[entry["id"]] = entry
            contact["custom_fields"] = list(merged.values())
        return httpx.Response(200, json=contact)

    def _search_tags(self, name: str) -> httpx.Response:
        # Keap's name filter is a contains-match, not an exact one.
        found = [
            {"id": tag_id, "name": tag_name}
            for tag_id, tag_name in self.tags.items()
            if name in tag_name
        ]
        return httpx.Response(200, json={"tags": found, "count": len(found)})


# ── Fake Stripe ──────────────────────────────────────────────────────────────


class FakePayments:
    """Stand-in for StripeClient holding checkout sessions in memory."""

    def __init__(self, sessions: list[dict[str, Any]] | None = None) -> None:
        self.sessions = list(sessions or [])
        self.broken: set[str] = set()
        self.retrieved: list[str] = []

    async def list_completed_sessions(self, limit: int = 100) -> list[dict[str, Any]]:
        return [{"id": s["id"]} for s in self.sessions[:limit]]

    async def retrieve_session(self, session_id: str) -> dict[str, Any]:
        self.retrieved.append(session_id)
        if session_id in self.broken:
            raise PaymentsError(f"Stripe session retrieve failed for {session_id}", status_code=500)
        for session in self.sessions:
            if session["id"] == session_id:
                return session
        raise PaymentsError(f"No such checkout.session: {session_id}", status_code=404)


# ── Clock ────────────────────────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ── Session factory ──────────────────────────────────────────────────────────

CARDS_ONLY_ITEM = {
    "productId": "cards-only",
    "productName": "Destiny Cards",
    "productPrice": 20,
    "quantity": 1,
}
BUNDLE_ITEM = {
    "productId": "cards-book-bundle",
    "productName": "Destiny Cards + Book",
    "productPrice": 60,
    "quantity": 1,
}


def _make_session(**overrides: Any) -> dict[str, Any]:
    """Completed checkout session dict, as StripeClient returns it."""
    cart = overrides.pop("cart", [CARDS_ONLY_ITEM])
    session = {
        "id": "cs_test_001",
        "object": "checkout.session",
        "status": "complete",
        "payment_intent": "pi_001",
        "amount_total": 2000,
        "created": 1767571200,  # 2026-01-05T00:00:00Z
        "customer_email": None,
        "customer_details": {"email": "a@example.com", "name": "Jane Doe"},
        "shipping_details": {
            "name": "Jane Doe",
            "address": {
                "line1": "1 Main St",
                "line2": None,
                "city": "Austin",
                "state": "TX",
                "postal_code": "78701",
                "country": "US",
            },
        },
        "metadata": {
            "cartItems": json.dumps(cart),
            "hasPreOrder": "false",
            "emailConsent": "true",
        },
    }
    session.update(overrides)
    return session


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def field_map() -> CustomFieldMap:
    return CustomFieldMap()


@pytest.fixture
def fake_keap(field_map) -> FakeKeap:
    return FakeKeap(field_map)


@pytest_asyncio.fixture
async def keap_client(fake_keap) -> AsyncGenerator[KeapClient, None]:
    """Real KeapClient wired to FakeKeap, retrying without delay."""
    client = KeapClient(
        "test-token",
        base_url=KEAP_TEST_URL,
        max_attempts=3,
        wait=wait_none(),
        transport=fake_keap.transport,
    )
    yield client
    await client.aclose()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(fake_clock) -> TokenBucket:
    return TokenBucket(rate=10.0, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.fixture
def make_session() -> Callable[..., dict[str, Any]]:
    return _make_session

"""Async HTTP client wrapper for the Keap (Infusionsoft) REST v1 API.

Covers the small surface the order sync needs: contact search/create/update,
tag lookup/create, and tag apply/remove on a contact.

Rate limiting: Keap answers 429 when the per-second quota is exceeded.
Those responses are retried with tenacity (bounded attempts, jittered
exponential backoff); once attempts are exhausted a CRMRateLimitError is
raised to the caller. Every other non-2xx response raises CRMError with
the HTTP status attached.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from src.keap_sync.core.monitoring import keap_requests_total
from src.keap_sync.crm.schemas import Contact, Tag

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.infusionsoft.com/crm/rest/v1"


# -- Exceptions ---------------------------------------------------------------


class CRMError(Exception):
    """Raised when Keap returns a non-success response.

    Attributes:
        status_code: HTTP status returned by Keap.
        operation: Short name of the client operation that failed.
    """

    def __init__(self, status_code: int, operation: str, message: str | None = None) -> None:
        self.status_code = status_code
        self.operation = operation
        super().__init__(message or f"Keap {operation} failed: {status_code}")


class CRMRateLimitError(CRMError):
    """Raised when Keap keeps answering 429 after all retry attempts."""

    def __init__(self, operation: str, attempts: int = 1) -> None:
        self.attempts = attempts
        super().__init__(
            429,
            operation,
            f"Keap {operation} rate limited after {attempts} attempt(s)",
        )


# -- Client -------------------------------------------------------------------


class KeapClient:
    """Async client for the Keap REST v1 API.

    Args:
        access_token: Keap OAuth / personal access token (sent as Bearer).
        base_url: REST root, overridable for sandboxes.
        timeout: Per-request timeout in seconds.
        max_attempts: Total attempts per request when rate limited.
        wait: tenacity wait strategy between attempts. Defaults to jittered
            exponential backoff starting at 1s, capped at 10s.
        transport: Optional httpx transport (tests plug a MockTransport here).
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_attempts: int = 5,
        wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._wait = wait if wait is not None else wait_exponential_jitter(initial=1, max=10)
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self._tag_ids: dict[str, int] = {}

    async def __aenter__(self) -> KeapClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Transport ────────────────────────────────────────────────────────────

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "keap.retrying",
            attempt=retry_state.attempt_number,
            error=str(exc),
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        retry_rate_limit: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying 429s and connection failures."""
        attempts = self._max_attempts if retry_rate_limit else 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=self._wait,
            retry=retry_if_exception_type((CRMRateLimitError, httpx.ConnectError)),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._http.request(method, path, **kwargs)
                    keap_requests_total.labels(
                        operation=operation,
                        status=str(response.status_code),
                    ).inc()
                    if response.status_code == 429:
                        raise CRMRateLimitError(
                            operation,
                            attempts=attempt.retry_state.attempt_number,
                        )
        except httpx.HTTPError as exc:
            keap_requests_total.labels(operation=operation, status="error").inc()
            logger.error("keap.transport_error", operation=operation, error=str(exc))
            raise CRMError(
                502,
                operation,
                f"Keap {operation} request failed: {exc.__class__.__name__}",
            ) from exc

        logger.debug(
            "keap.request",
            operation=operation,
            method=method,
            path=path,
            status=response.status_code,
        )
        return response

    @staticmethod
    def _check(response: httpx.Response, operation: str, allowed: tuple[int, ...] = ()) -> None:
        if response.is_success or response.status_code in allowed:
            return
        raise CRMError(response.status_code, operation)

    # ── Contacts ─────────────────────────────────────────────────────────────

    async def find_contact_by_email(
        self,
        email: str,
        *,
        retry_rate_limit: bool = True,
    ) -> Contact | None:
        """Search contacts by email, returning the first match with custom fields.

        Keap may hold several contacts for one address; only the first
        returned one is treated as authoritative.
        """
        response = await self._request(
            "GET",
            "/contacts",
            "find_contact",
            retry_rate_limit=retry_rate_limit,
            params={"email": email, "optional_properties": "custom_fields"},
        )
        self._check(response, "find_contact")

        contacts = response.json().get("contacts") or []
        if not contacts:
            return None
        return Contact.model_validate(contacts[0])

    async def create_contact(self, payload: dict[str, Any]) -> Contact:
        """Create a contact and return it (Keap echoes the new id)."""
        response = await self._request("POST", "/contacts", "create_contact", json=payload)
        self._check(response, "create_contact")
        contact = Contact.model_validate(response.json())
        logger.info("keap.contact_created", contact_id=contact.id)
        return contact

    async def update_contact(self, contact_id: int, payload: dict[str, Any]) -> None:
        """PATCH a contact. Only keys present in payload are touched."""
        response = await self._request(
            "PATCH",
            f"/contacts/{contact_id}",
            "update_contact",
            json=payload,
        )
        self._check(response, "update_contact")
        logger.info(
            "keap.contact_updated",
            contact_id=contact_id,
            fields=sorted(payload.keys()),
        )

    async def get_contact_model(self) -> dict[str, Any]:
        """Return the contact model (includes custom field definitions)."""
        response = await self._request("GET", "/contacts/model", "get_contact_model")
        self._check(response, "get_contact_model")
        return response.json()

    # ── Tags ─────────────────────────────────────────────────────────────────

    async def find_tag_id(self, name: str) -> int | None:
        """Look up a tag by exact name without creating it."""
        if name in self._tag_ids:
            return self._tag_ids[name]

        response = await self._request("GET", "/tags", "find_tag", params={"name": name})
        self._check(response, "find_tag")

        for tag in (Tag.model_validate(t) for t in response.json().get("tags") or []):
            if tag.name == name:
                self._tag_ids[name] = tag.id
                return tag.id
        return None

    async def get_or_create_tag(self, name: str) -> int:
        """Return the id of the named tag, creating it if it does not exist."""
        tag_id = await self.find_tag_id(name)
        if tag_id is not None:
            return tag_id

        response = await self._request(
            "POST",
            "/tags",
            "create_tag",
            json={
                "name": name,
                "description": (
                    f"Auto-created for Destiny Cards - "
                    f"{datetime.now(timezone.utc).isoformat()}"
                ),
            },
        )
        self._check(response, "create_tag")

        tag_id = response.json()["id"]
        self._tag_ids[name] = tag_id
        logger.info("keap.tag_created", tag=name, tag_id=tag_id)
        return tag_id

    async def apply_tag(self, contact_id: int, tag_id: int) -> None:
        response = await self._request(
            "POST",
            f"/contacts/{contact_id}/tags",
            "apply_tag",
            json={"tagIds": [tag_id]},
        )
        self._check(response, "apply_tag")

    async def remove_tag(self, contact_id: int, tag_id: int) -> None:
        """Detach a tag from a contact. 404 (tag not applied) counts as success."""
        response = await self._request(
            "DELETE",
            f"/contacts/{contact_id}/tags/{tag_id}",
            "remove_tag",
        )
        self._check(response, "remove_tag", allowed=(404,))

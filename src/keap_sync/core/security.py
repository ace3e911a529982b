"""Admin API key check for the dashboard endpoints.

The admin handlers accept a single shared key, sent as
``Authorization: Bearer <ADMIN_API_KEY>``.
"""

from __future__ import annotations

import hmac

import structlog

logger = structlog.get_logger(__name__)

_BEARER_PREFIX = "Bearer "


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer ...`` header."""
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        return None
    return authorization[len(_BEARER_PREFIX):]


def verify_admin_key(authorization: str | None, admin_key: str) -> bool:
    """Return True if the header carries exactly the configured admin key.

    An unset admin key rejects everything. Comparison is constant-time.
    """
    if not admin_key:
        logger.warning("security.admin_key_not_configured")
        return False

    token = bearer_token(authorization)
    if token is None:
        return False
    return hmac.compare_digest(token.encode("utf-8"), admin_key.encode("utf-8"))

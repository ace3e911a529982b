#!/usr/bin/env python3
"""CLI script to record a shipment tracking number on a Keap contact.

Usage:
    uv run python scripts/update_tracking.py --email jane@example.com --tracking 1Z999 --leg cards
    uv run python scripts/update_tracking.py --email jane@example.com --tracking 9400 --leg book --shipped-on 2026-03-02

Reads KEAP_ACCESS_TOKEN and KEAP_CUSTOM_FIELDS from the environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import date

# Ensure project root is on sys.path so we can import src.keap_sync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def record(email: str, tracking_number: str, leg: str, shipped_on: date | None) -> int:
    from src.keap_sync.api.deps import build_keap_client
    from src.keap_sync.api.middleware.logging import configure_structlog
    from src.keap_sync.config import get_settings
    from src.keap_sync.orders.catalog import ShipmentLeg
    from src.keap_sync.orders.tracking import ContactNotFoundError, TrackingWriter

    settings = get_settings()
    configure_structlog()

    if not settings.KEAP_ACCESS_TOKEN:
        print("Not configured: KEAP_ACCESS_TOKEN", file=sys.stderr)
        return 2

    async with build_keap_client(settings) as client:
        writer = TrackingWriter(client, settings.KEAP_CUSTOM_FIELDS)
        try:
            result = await writer.update_tracking(
                email,
                tracking_number,
                ShipmentLeg(leg),
                shipped_on=shipped_on,
            )
        except ContactNotFoundError as exc:
            print(str(exc), file=sys.stderr)
            return 1

    print(f"Tracking number updated for {email} (contact {result.contact_id})")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Record a tracking number on a Keap contact")
    parser.add_argument("--email", required=True, help="Customer email")
    parser.add_argument("--tracking", required=True, help="Carrier tracking number")
    parser.add_argument("--leg", required=True, choices=["cards", "book"], help="Shipment leg")
    parser.add_argument(
        "--shipped-on",
        type=date.fromisoformat,
        default=None,
        help="Ship date as YYYY-MM-DD (defaults to today, UTC)",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(record(args.email, args.tracking, args.leg, args.shipped_on)))


if __name__ == "__main__":
    main()

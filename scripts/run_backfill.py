#!/usr/bin/env python3
"""CLI script to backfill completed Stripe orders into Keap.

Usage:
    uv run python scripts/run_backfill.py                 # dry run, 100 sessions
    uv run python scripts/run_backfill.py --limit 250
    uv run python scripts/run_backfill.py --live          # actually write to Keap

Reads STRIPE_SECRET_KEY, KEAP_ACCESS_TOKEN and KEAP_CUSTOM_FIELDS from the
environment or .env file. Prints the backfill report as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.keap_sync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def backfill(dry_run: bool, limit: int | None) -> int:
    """Run one backfill pass. Returns the process exit code."""
    from src.keap_sync.api.deps import build_keap_client
    from src.keap_sync.api.middleware.logging import configure_structlog
    from src.keap_sync.config import get_settings
    from src.keap_sync.core.rate_limit import TokenBucket
    from src.keap_sync.orders.backfill import BackfillDriver, backfill_message
    from src.keap_sync.orders.sync import SyncEngine
    from src.keap_sync.payments.stripe_client import StripeClient

    settings = get_settings()
    configure_structlog()

    missing = [
        name for name in ("STRIPE_SECRET_KEY", "KEAP_ACCESS_TOKEN")
        if not getattr(settings, name)
    ]
    if missing:
        print(f"Not configured: {', '.join(missing)}", file=sys.stderr)
        return 2

    field_map = settings.KEAP_CUSTOM_FIELDS
    async with build_keap_client(settings) as client:
        engine = SyncEngine(
            client,
            field_map,
            limiter=TokenBucket(rate=settings.KEAP_TAG_RATE_PER_SECOND),
        )
        driver = BackfillDriver(StripeClient(settings.STRIPE_SECRET_KEY), client, engine, field_map)
        report = await driver.run(dry_run=dry_run, limit=limit or settings.BACKFILL_DEFAULT_LIMIT)

    output = {
        "success": True,
        "dryRun": dry_run,
        "message": backfill_message(report, dry_run=dry_run),
        "results": report.model_dump(mode="json", by_alias=True, exclude_none=True),
    }
    print(json.dumps(output, indent=2))
    return 1 if report.errors else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill completed Stripe orders into Keap")
    parser.add_argument("--live", action="store_true", help="Write to Keap (default is a dry run)")
    parser.add_argument("--limit", type=int, default=None, help="Maximum sessions to process")
    args = parser.parse_args()

    if args.limit is not None and args.limit < 1:
        parser.error("--limit must be a positive integer")

    sys.exit(asyncio.run(backfill(dry_run=not args.live, limit=args.limit)))


if __name__ == "__main__":
    main()

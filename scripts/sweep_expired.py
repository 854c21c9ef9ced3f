#!/usr/bin/env python3
"""
Expiry Sweep Script

Cancels pending offers past their TTL and accepted offers past their payment
deadline, and marks expired listings (cancelling their pending offers).
Deadlines are enforced on read regardless; this only brings stored state up
to date for reports and dashboards.

Usage:
    python scripts/sweep_expired.py

Schedule via cron (every 15 minutes):
    */15 * * * * cd /app && python scripts/sweep_expired.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.context import build_engine
from services.expiry_service import sweep_expired
from services.settings import load_settings


def main() -> int:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    result = sweep_expired(build_engine(settings))

    print("=" * 50)
    print("EXPIRY SWEEP")
    print("=" * 50)
    print(f"Pending offers expired:   {len(result.offers_expired)}")
    print(f"Payment deadlines lapsed: {len(result.payments_lapsed)}")
    print(f"Listings expired:         {len(result.listings_expired)}")
    print(f"Failures:                 {len(result.failed)}")
    print("=" * 50)
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Inventory Seeding Script

Records historical share purchases (made outside the exchange) as inventory
lots so that the user can list them for resale.

Writes go to the configured store, so run with SHARE_EXCHANGE_STORE=supabase;
the in-memory store is discarded when the script exits.

Usage:
    python scripts/seed_inventory.py --user USER_ID --class regular --shares 100
    python scripts/seed_inventory.py --user USER_ID --class cofounder --tier elite --shares 5
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import ShareExchangeError
from domain.inventory import LotStatus
from domain.shares import ShareClass
from services.context import build_engine
from services.inventory_service import record_purchase_lot


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed a user's share inventory")
    parser.add_argument("--user", required=True, help="User id to credit")
    parser.add_argument("--class", dest="share_class", required=True, choices=[c.value for c in ShareClass])
    parser.add_argument("--shares", type=int, required=True, help="Number of shares purchased")
    parser.add_argument("--tier", default=None, help="Tier key (e.g. basic, premium, elite)")
    parser.add_argument(
        "--status",
        default=LotStatus.COMPLETED.value,
        choices=[s.value for s in LotStatus],
        help="Lot status; only completed lots count toward the balance",
    )
    args = parser.parse_args()

    engine = build_engine()
    try:
        lot = record_purchase_lot(
            engine,
            args.user,
            ShareClass(args.share_class),
            args.shares,
            tier=args.tier,
            status=LotStatus(args.status),
        )
    except ShareExchangeError as exc:
        print(f"❌ {exc.code}: {exc.message}")
        return 1

    print(f"✅ Recorded lot {lot.lot_id}: {lot.original_shares} {lot.share_class.value} shares"
          f"{f' ({lot.tier})' if lot.tier else ''} for {lot.user_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Check share balances for a user - available vs listed vs sellable.

Usage:
    python scripts/check_inventory_status.py USER_ID
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.context import build_engine
from services.inventory_service import balance_summary


def check_inventory_status(user_id: str):
    """Print the user's balance per share class and tier."""

    engine = build_engine()
    summaries = balance_summary(engine, user_id)

    print("=" * 60)
    print(f"SHARE BALANCES FOR {user_id}")
    print("=" * 60)
    if not summaries:
        print("No shares held or listed.")
        print("=" * 60)
        return

    print(f"{'Class':<12}{'Tier':<12}{'Available':>12}{'Listed':>12}{'Sellable':>12}")
    print("-" * 60)
    for summary in summaries:
        tier = summary.tier or "(all)"
        print(
            f"{summary.share_class.value:<12}{tier:<12}"
            f"{summary.available:>12}{summary.listed:>12}{summary.sellable:>12}"
        )
    print("=" * 60)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    check_inventory_status(sys.argv[1])

"""
Inventory service.

The only writer of per-user share state. Balances are derived from inventory
lots; `listed` counts the unsold remainder of the user's open, unexpired
listings.

`debit` and `credit` take a transaction and are only called from settlement,
so a seller debit and the matching buyer credit always commit together.

Tier scoping:
- tier=None queries cover every lot of the class, and every open listing of the
  class (whole-share and percentage).
- a tier query covers only lots and percentage listings pinned to that tier.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from domain.errors import InsufficientInventory, ShareClassMismatch, ValidationError
from domain.identifiers import new_lot_id
from domain.inventory import (
    BalanceSummary,
    InventoryLot,
    LotOrigin,
    LotOriginKind,
    LotStatus,
    available_shares,
    plan_debit,
)
from domain.shares import ShareClass, TierInfo
from repositories.listing_repository import listings_for_seller, open_listings_for_seller
from repositories.lot_repository import insert_lot, lots_for_user, save_lot
from repositories.store import Transaction, with_transaction
from repositories.tier_repository import TierCatalog
from services.context import EngineContext

logger = logging.getLogger(__name__)


def check_tier_class(tiers: TierCatalog, share_class: ShareClass, tier: Optional[str]) -> Optional[TierInfo]:
    """Resolve `tier` and make sure it belongs to `share_class`."""

    if tier is None:
        return None
    info = tiers.get(tier)
    if info.share_class is not share_class:
        raise ShareClassMismatch(
            f"Tier {tier} belongs to {info.share_class.value} shares, not {share_class.value}",
            details={"tier": tier, "tier_class": info.share_class.value, "share_class": share_class.value},
        )
    return info


def available_for(tx: Transaction, user_id: str, share_class: ShareClass, tier: Optional[str] = None) -> int:
    return available_shares(lots_for_user(tx, user_id), share_class, tier)


def listed_for(
    tx: Transaction,
    user_id: str,
    share_class: ShareClass,
    tier: Optional[str],
    now: datetime,
) -> int:
    return sum(
        listing.remaining
        for listing in open_listings_for_seller(tx, user_id, share_class, tier)
        if listing.is_listed(now)
    )


def sellable_for(
    tx: Transaction,
    user_id: str,
    share_class: ShareClass,
    tier: Optional[str],
    now: datetime,
) -> int:
    return available_for(tx, user_id, share_class, tier) - listed_for(tx, user_id, share_class, tier, now)


def require_sellable(
    tx: Transaction,
    user_id: str,
    share_class: ShareClass,
    tier: Optional[str],
    shares: int,
    now: datetime,
) -> None:
    """Raise InsufficientInventory unless `shares` more can be advertised."""

    sellable = sellable_for(tx, user_id, share_class, tier, now)
    if shares > sellable:
        raise InsufficientInventory(
            f"Insufficient sellable {share_class.value} shares: requested {shares}, sellable {max(sellable, 0)}",
            details={
                "requested": shares,
                "sellable": sellable,
                "share_class": share_class.value,
                "tier": tier,
            },
        )


def debit(
    tx: Transaction,
    user_id: str,
    share_class: ShareClass,
    tier: Optional[str],
    shares: int,
) -> List[InventoryLot]:
    """
    Consume `shares` from the user's completed lots in insertion order.

    Raises:
        InsufficientInventory: the matching lots cannot cover the debit.
    """

    changed = plan_debit(lots_for_user(tx, user_id), share_class, tier, shares)
    for lot in changed:
        save_lot(tx, lot)
    return changed


def credit(
    tx: Transaction,
    user_id: str,
    share_class: ShareClass,
    tier: Optional[str],
    shares: int,
    origin: LotOrigin,
    now: datetime,
) -> InventoryLot:
    """Append a completed lot of `shares` to the user's inventory."""

    if shares < 1:
        raise ValidationError("shares to credit must be >= 1")
    lot = InventoryLot(
        lot_id=new_lot_id(),
        user_id=user_id,
        share_class=share_class,
        original_shares=shares,
        sold_shares=0,
        status=LotStatus.COMPLETED,
        created_at=now,
        tier=tier,
        origin=origin,
    )
    insert_lot(tx, lot)
    return lot


def record_purchase_lot(
    ctx: EngineContext,
    user_id: str,
    share_class: ShareClass,
    shares: int,
    *,
    tier: Optional[str] = None,
    status: LotStatus = LotStatus.COMPLETED,
) -> InventoryLot:
    """
    Record a historical purchase made outside the exchange.

    Used by operator scripts and tests to seed holdings.
    """

    if shares < 1:
        raise ValidationError("shares must be >= 1")
    check_tier_class(ctx.tiers, share_class, tier)
    now = ctx.now()
    lot = InventoryLot(
        lot_id=new_lot_id(),
        user_id=user_id,
        share_class=share_class,
        original_shares=shares,
        sold_shares=0,
        status=status,
        created_at=now,
        tier=tier,
        origin=LotOrigin(kind=LotOriginKind.PURCHASE),
    )

    def body(tx: Transaction) -> InventoryLot:
        insert_lot(tx, lot)
        return lot

    result = with_transaction(ctx.store, body)
    logger.info(
        "Purchase lot recorded",
        extra={"user_id": user_id, "share_class": share_class.value, "tier": tier, "shares": shares},
    )
    return result


def balance_summary(ctx: EngineContext, user_id: str) -> List[BalanceSummary]:
    """
    Per-bucket balances for a user.

    One class-wide bucket (tier=None) per class the user holds or lists, plus one
    bucket per tier seen in their lots or percentage listings.
    """

    now = ctx.now()
    with ctx.store.snapshot() as tx:
        lots = lots_for_user(tx, user_id)
        listings = listings_for_seller(tx, user_id)

        buckets: Set[Tuple[ShareClass, Optional[str]]] = set()
        for lot in lots:
            if lot.counts_toward_balance:
                buckets.add((lot.share_class, None))
                if lot.tier is not None:
                    buckets.add((lot.share_class, lot.tier))
        for listing in listings:
            if listing.is_listed(now):
                buckets.add((listing.share_class, None))
                if listing.tier is not None:
                    buckets.add((listing.share_class, listing.tier))

        order: Dict[ShareClass, int] = {cls: index for index, cls in enumerate(ShareClass)}
        return [
            BalanceSummary(
                user_id=user_id,
                share_class=share_class,
                tier=tier,
                available=available_shares(lots, share_class, tier),
                listed=listed_for(tx, user_id, share_class, tier, now),
            )
            for share_class, tier in sorted(buckets, key=lambda key: (order[key[0]], key[1] or ""))
        ]


__all__ = [
    "check_tier_class",
    "available_for",
    "listed_for",
    "sellable_for",
    "require_sellable",
    "debit",
    "credit",
    "record_purchase_lot",
    "balance_summary",
]

"""
Domain: per-user share inventory.

Inventory is a list of lots attached to a user. Each lot records how many shares
were originally acquired (`original_shares`) and how many of them have since been
sold (`sold_shares`). Only completed lots count toward a user's balance.

Derived balance for (user, share_class, tier):
- available = sum(original_shares - sold_shares) over completed matching lots
- listed    = shares still advertised on the user's open listings (computed by the
              inventory service, which can see listings)
- sellable  = available - listed

Debits consume matching lots in insertion order; credits append a new lot. This
module contains only pure functions and immutable records; no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .errors import InsufficientInventory
from .shares import ShareClass
from .time import require_utc_timestamp


class LotStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LotOriginKind(str, Enum):
    PURCHASE = "purchase"  # historical purchase recorded by an external collaborator
    SHARE_TRANSFER = "share_transfer"
    ADMIN_FORCED_TRANSFER = "admin_forced_transfer"


@dataclass(frozen=True, slots=True)
class LotOrigin:
    """Provenance of a lot. Transfers reference the seller and the offer they settled."""

    kind: LotOriginKind
    from_user_id: Optional[str] = None
    offer_id: Optional[str] = None
    transfer_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class InventoryLot:
    """
    Immutable snapshot of one lot.

    (share_class, tier) is the lot's unique key for balance purposes. A lot
    without a tier belongs to the class as a whole (whole-share listings settle
    without a tier).
    """

    lot_id: str
    user_id: str
    share_class: ShareClass
    original_shares: int
    sold_shares: int
    status: LotStatus
    created_at: datetime
    tier: Optional[str] = None
    origin: LotOrigin = LotOrigin(kind=LotOriginKind.PURCHASE)

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.original_shares < 0:
            raise ValueError("original_shares must be >= 0")
        if not 0 <= self.sold_shares <= self.original_shares:
            raise ValueError("sold_shares must satisfy 0 <= sold_shares <= original_shares")

    @property
    def remaining(self) -> int:
        return self.original_shares - self.sold_shares

    @property
    def counts_toward_balance(self) -> bool:
        return self.status is LotStatus.COMPLETED

    def matches(self, share_class: ShareClass, tier: Optional[str] = None) -> bool:
        """A lot matches when the class agrees and, if a tier is requested, the tier agrees."""

        if self.share_class is not share_class:
            return False
        return tier is None or self.tier == tier

    def consume(self, shares: int) -> "InventoryLot":
        """Return a new lot with `shares` more marked as sold."""

        if shares < 0 or shares > self.remaining:
            raise ValueError(f"cannot consume {shares} shares from lot with {self.remaining} remaining")
        return replace(self, sold_shares=self.sold_shares + shares)


def available_shares(lots: Iterable[InventoryLot], share_class: ShareClass, tier: Optional[str] = None) -> int:
    """Sum of unsold shares over completed lots matching (share_class, tier)."""

    return sum(
        lot.remaining
        for lot in lots
        if lot.counts_toward_balance and lot.matches(share_class, tier)
    )


def plan_debit(
    lots: Sequence[InventoryLot],
    share_class: ShareClass,
    tier: Optional[str],
    shares: int,
) -> List[InventoryLot]:
    """
    Work out which lots change when `shares` are debited.

    Lots are consumed in the order given (insertion order). The requested trade
    size is never mutated; a local counter tracks what is still owed.

    Returns only the lots that changed.

    Raises:
        InsufficientInventory: matching completed lots cannot cover `shares`.
    """

    if shares <= 0:
        raise ValueError("shares to debit must be > 0")

    outstanding = shares
    changed: List[InventoryLot] = []
    for lot in lots:
        if outstanding == 0:
            break
        if not lot.counts_toward_balance or not lot.matches(share_class, tier):
            continue
        take = min(outstanding, lot.remaining)
        if take == 0:
            continue
        changed.append(lot.consume(take))
        outstanding -= take

    if outstanding:
        have = shares - outstanding
        raise InsufficientInventory(
            f"Insufficient {share_class.value} shares: requested {shares}, available {have}",
            details={"requested": shares, "available": have, "share_class": share_class.value, "tier": tier},
        )
    return changed


@dataclass(frozen=True, slots=True)
class BalanceSummary:
    """Read model for one (share_class, tier) bucket of a user's holdings."""

    user_id: str
    share_class: ShareClass
    tier: Optional[str]
    available: int
    listed: int

    @property
    def sellable(self) -> int:
        return self.available - self.listed


__all__ = [
    "LotStatus",
    "LotOriginKind",
    "LotOrigin",
    "InventoryLot",
    "BalanceSummary",
    "available_shares",
    "plan_debit",
]

"""
Admin dashboard and reports.

Read-only aggregations over one snapshot. They tolerate concurrent writers:
figures are consistent with each other but may be stale by the time they are
returned.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from domain.errors import ValidationError
from domain.offer import Offer, OfferStatus
from domain.time import hours_between, utc_day
from domain.transfer import TransferRecord, TransferStatus
from repositories.listing_repository import list_listings
from repositories.offer_repository import list_offers
from repositories.transfer_repository import list_transfers
from services.context import EngineContext, Principal, require_admin

MAX_REPORT_DAYS = 366


@dataclass(frozen=True, slots=True)
class StuckOffer:
    offer_id: str
    buyer_id: str
    seller_id: str
    shares: int
    total_price: Decimal
    currency: str
    accepted_at: datetime
    hours_stuck: float


@dataclass(frozen=True)
class Dashboard:
    generated_at: datetime
    offers_by_status: Dict[str, int]
    listings_by_status: Dict[str, int]
    completed_value_by_currency: Dict[str, Decimal]
    refunded_value_by_currency: Dict[str, Decimal]
    transfers_completed: int
    shares_transferred: int
    forced_completions: int
    open_disputes: int
    stuck: List[StuckOffer] = field(default_factory=list)


@dataclass(frozen=True)
class DailyRollup:
    day: date
    offers_created: int = 0
    offers_completed: int = 0
    offers_cancelled: int = 0
    shares_transferred: int = 0
    value_by_currency: Dict[str, Decimal] = field(default_factory=dict)


def stuck_offers(offers: List[Offer], now: datetime, threshold: timedelta) -> List[StuckOffer]:
    """In-payment offers accepted more than `threshold` ago, longest stuck first."""

    cutoff = now - threshold
    stuck = [
        StuckOffer(
            offer_id=offer.offer_id,
            buyer_id=offer.buyer_id,
            seller_id=offer.seller_id,
            shares=offer.shares,
            total_price=offer.total_price,
            currency=offer.currency.value,
            accepted_at=offer.accepted_at,
            hours_stuck=round(hours_between(offer.accepted_at, now), 2),
        )
        for offer in offers
        if offer.status is OfferStatus.IN_PAYMENT and offer.accepted_at is not None and offer.accepted_at < cutoff
    ]
    return sorted(stuck, key=lambda item: item.accepted_at)


def _value_sums(records: List[TransferRecord]) -> Dict[str, Decimal]:
    sums: Dict[str, Decimal] = defaultdict(Decimal)
    for record in records:
        sums[record.currency.value] += record.total_price
    return dict(sums)


def dashboard(ctx: EngineContext, principal: Principal) -> Dashboard:
    require_admin(principal)
    now = ctx.now()

    with ctx.store.snapshot() as tx:
        offers = list_offers(tx)
        listings = list_listings(tx)
        transfers = list_transfers(tx, status=TransferStatus.COMPLETED)

    refunded: Dict[str, Decimal] = defaultdict(Decimal)
    for offer in offers:
        if offer.refund is not None:
            refunded[offer.refund.currency.value] += offer.refund.amount

    listing_status: Counter = Counter(listing.effective_status(now).value for listing in listings)
    return Dashboard(
        generated_at=now,
        offers_by_status=dict(Counter(offer.status.value for offer in offers)),
        listings_by_status=dict(listing_status),
        completed_value_by_currency=_value_sums(transfers),
        refunded_value_by_currency=dict(refunded),
        transfers_completed=len(transfers),
        shares_transferred=sum(record.share_count for record in transfers),
        forced_completions=sum(1 for offer in offers if offer.admin_forced is not None),
        open_disputes=sum(1 for offer in offers if offer.status is OfferStatus.DISPUTED),
        stuck=stuck_offers(offers, now, ctx.settings.stuck_threshold),
    )


def list_stuck(ctx: EngineContext, principal: Principal, threshold: Optional[timedelta] = None) -> List[StuckOffer]:
    require_admin(principal)
    with ctx.store.snapshot() as tx:
        offers = list_offers(tx, status=OfferStatus.IN_PAYMENT)
    return stuck_offers(offers, ctx.now(), threshold or ctx.settings.stuck_threshold)


def daily_report(ctx: EngineContext, principal: Principal, start: date, end: date) -> List[DailyRollup]:
    """One rollup per UTC day in [start, end], oldest first. Days without activity are included."""

    require_admin(principal)
    if end < start:
        raise ValidationError("end must not be before start")
    if (end - start).days + 1 > MAX_REPORT_DAYS:
        raise ValidationError(f"report period is limited to {MAX_REPORT_DAYS} days")

    with ctx.store.snapshot() as tx:
        offers = list_offers(tx)
        transfers = list_transfers(tx, status=TransferStatus.COMPLETED)

    created: Counter = Counter(utc_day(offer.created_at) for offer in offers)
    completed: Counter = Counter(utc_day(offer.completed_at) for offer in offers if offer.completed_at)
    cancelled: Counter = Counter(utc_day(offer.cancelled_at) for offer in offers if offer.cancelled_at)
    by_day: Dict[date, List[TransferRecord]] = defaultdict(list)
    for record in transfers:
        by_day[utc_day(record.completed_at or record.created_at)].append(record)

    rollups: List[DailyRollup] = []
    day = start
    while day <= end:
        records = by_day.get(day, [])
        rollups.append(
            DailyRollup(
                day=day,
                offers_created=created[day],
                offers_completed=completed[day],
                offers_cancelled=cancelled[day],
                shares_transferred=sum(record.share_count for record in records),
                value_by_currency=_value_sums(records),
            )
        )
        day += timedelta(days=1)
    return rollups


__all__ = ["StuckOffer", "Dashboard", "DailyRollup", "stuck_offers", "dashboard", "list_stuck", "daily_report"]

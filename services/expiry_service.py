"""
Expiry sweeper.

Deadlines are already enforced whenever an offer or listing is touched; the
sweeper only makes the stored state catch up:
- pending offers past their TTL            -> cancelled
- accepted offers past the payment deadline -> cancelled
- open listings past expires_at             -> expired (pending offers cancelled)

Each item is re-read and re-checked in its own transaction, so running the
sweeper twice, or alongside live traffic, is harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from domain.errors import ShareExchangeError
from domain.offer import Offer, OfferStatus
from repositories.listing_repository import get_listing, list_listings
from repositories.offer_repository import get_offer, list_offers, save_offer
from repositories.store import Transaction, read_snapshot, with_transaction
from services.context import EngineContext
from services.listing_service import LISTING_EXPIRED_REASON, close_listing

logger = logging.getLogger(__name__)

OFFER_EXPIRED_REASON = "Offer expired before it was accepted"
PAYMENT_LAPSED_REASON = "Payment deadline passed"


@dataclass
class SweepResult:
    offers_expired: List[str] = field(default_factory=list)
    payments_lapsed: List[str] = field(default_factory=list)
    listings_expired: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.offers_expired) + len(self.payments_lapsed) + len(self.listings_expired)


def _expire_offer(ctx: EngineContext, offer_id: str) -> Optional[OfferStatus]:
    """Cancel one stale offer. Returns the status it left, or None if nothing was due."""

    def body(tx: Transaction) -> Optional[OfferStatus]:
        now = ctx.now()
        offer: Optional[Offer] = get_offer(tx, offer_id)
        if offer is None:
            return None
        if offer.is_pending_expired(now):
            save_offer(tx, offer.cancelled(now, OFFER_EXPIRED_REASON))
            return OfferStatus.PENDING
        if offer.is_payment_overdue(now):
            save_offer(tx, offer.cancelled(now, PAYMENT_LAPSED_REASON))
            return OfferStatus.ACCEPTED
        return None

    return with_transaction(ctx.store, body)


def _expire_listing(ctx: EngineContext, listing_id: str) -> bool:
    def body(tx: Transaction) -> bool:
        now = ctx.now()
        listing = get_listing(tx, listing_id)
        if listing is None or not listing.status.is_open or not listing.is_expired(now):
            return False
        close_listing(tx, listing, listing.expired(), LISTING_EXPIRED_REASON, now)
        return True

    return with_transaction(ctx.store, body)


def sweep_expired(ctx: EngineContext) -> SweepResult:
    """Run one sweep. Item failures are logged and reported, never raised."""

    now = ctx.now()
    result = SweepResult()

    listings = read_snapshot(ctx.store, list_listings)
    for listing in listings:
        if not (listing.status.is_open and listing.is_expired(now)):
            continue
        try:
            if _expire_listing(ctx, listing.listing_id):
                result.listings_expired.append(listing.listing_id)
        except ShareExchangeError:
            logger.warning("Failed to expire listing", exc_info=True, extra={"listing_id": listing.listing_id})
            result.failed.append(listing.listing_id)

    offers = read_snapshot(ctx.store, list_offers)
    for offer in offers:
        if not (offer.is_pending_expired(now) or offer.is_payment_overdue(now)):
            continue
        try:
            previous = _expire_offer(ctx, offer.offer_id)
        except ShareExchangeError:
            logger.warning("Failed to expire offer", exc_info=True, extra={"offer_id": offer.offer_id})
            result.failed.append(offer.offer_id)
            continue
        if previous is OfferStatus.PENDING:
            result.offers_expired.append(offer.offer_id)
        elif previous is OfferStatus.ACCEPTED:
            result.payments_lapsed.append(offer.offer_id)

    logger.info(
        "Expiry sweep finished",
        extra={
            "offers_expired": len(result.offers_expired),
            "payments_lapsed": len(result.payments_lapsed),
            "listings_expired": len(result.listings_expired),
            "failed": len(result.failed),
        },
    )
    return result


__all__ = ["SweepResult", "sweep_expired", "OFFER_EXPIRED_REASON", "PAYMENT_LAPSED_REASON"]

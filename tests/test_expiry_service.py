"""
Tests for `services/expiry_service.py`.

Covers:
- Pending offers past their TTL and accepted offers past the payment deadline are cancelled.
- Expired listings are closed and their pending offers cancelled.
- Offers in payment are never touched by the sweeper.
- A second sweep finds nothing to do.
"""

from __future__ import annotations

from conftest import BUYER, BUYER_B, SELLER
from domain.listing import ListingStatus
from domain.offer import OfferStatus
from services.expiry_service import OFFER_EXPIRED_REASON, PAYMENT_LAPSED_REASON, sweep_expired
from services.listing_service import LISTING_EXPIRED_REASON


def test_sweep_cancels_stale_offers(market, engine) -> None:
    """Verify the sweeper catches up pending and accepted offers, and leaves payments alone."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=60)
    pending = market.offer(listing, BUYER, shares=10)
    accepted = market.offer(listing, BUYER_B, shares=10)
    market.accept(accepted)
    paying = market.in_payment(listing, BUYER, shares=10)

    market.later(hours=48, seconds=1)
    result = sweep_expired(engine)

    assert result.offers_expired == [pending.offer_id]
    assert result.payments_lapsed == [accepted.offer_id]
    assert result.failed == []
    assert market.offer_state(pending.offer_id).cancel_reason == OFFER_EXPIRED_REASON
    assert market.offer_state(accepted.offer_id).cancel_reason == PAYMENT_LAPSED_REASON
    assert market.offer_state(paying.offer_id).status is OfferStatus.IN_PAYMENT


def test_sweep_respects_deadlines(market, engine) -> None:
    """Verify nothing is swept before its deadline has passed."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=60)
    market.offer(listing, BUYER, shares=10)
    market.later(hours=24)

    assert sweep_expired(engine).changed == 0


def test_sweep_expires_listings_and_cascades(market, engine) -> None:
    """Verify an expired listing is closed and its pending offer cancelled."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=10, expires_in_days=1)
    offer = market.offer(listing, BUYER, shares=10)
    market.later(days=1)

    result = sweep_expired(engine)

    assert result.listings_expired == [listing.listing_id]
    assert market.listing_state(listing.listing_id).status is ListingStatus.EXPIRED
    cancelled = market.offer_state(offer.offer_id)
    assert cancelled.status is OfferStatus.CANCELLED
    assert cancelled.cancel_reason == LISTING_EXPIRED_REASON
    assert result.offers_expired == []


def test_second_sweep_is_a_no_op(market, engine) -> None:
    """Verify sweeping twice changes nothing the second time."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=10, expires_in_days=1)
    market.offer(listing, BUYER, shares=10)
    market.later(days=2)

    assert sweep_expired(engine).changed == 1
    assert sweep_expired(engine).changed == 0

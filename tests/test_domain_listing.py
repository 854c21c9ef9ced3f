"""
Tests for `domain/listing.py`.

Covers contract rules:
- sold_shares stays within [0, total_shares]; status is sold exactly when fully sold.
- Percentage listings resolve actual_shares with floor arithmetic.
- with_sale advances status and refuses to oversell.
- Expiry is lazy: effective_status reports expired without a write.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.errors import ListingExhausted, StateError, ValidationError
from domain.listing import (
    BankDetails,
    ListingStatus,
    PercentageListing,
    WholeShareListing,
    validate_payment_channels,
)
from domain.shares import Currency, PaymentMethod, ShareClass

NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def _whole(**overrides) -> WholeShareListing:
    fields = dict(
        listing_id="LST-1",
        seller_id="seller-1",
        share_class=ShareClass.REGULAR,
        total_shares=40,
        price_per_share=Decimal("1000"),
        currency=Currency.NAIRA,
        payment_methods=(PaymentMethod.BANK_TRANSFER,),
        created_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )
    fields.update(overrides)
    return WholeShareListing(**fields)


def _percentage(**overrides) -> PercentageListing:
    fields = dict(
        listing_id="PEL-1",
        seller_id="seller-1",
        tier="standard",
        share_class=ShareClass.REGULAR,
        percentage_of_holdings=Decimal("25"),
        total_shares_in_tier=10,
        actual_shares=2,
        percent_per_share=Decimal("0.000021"),
        price_per_share=Decimal("50000"),
        currency=Currency.NAIRA,
        payment_methods=(PaymentMethod.BANK_TRANSFER,),
        created_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )
    fields.update(overrides)
    return PercentageListing(**fields)


def test_listing_rejects_sold_shares_out_of_range() -> None:
    """Verify sold_shares must lie within [0, total_shares]."""

    with pytest.raises(ValueError):
        _whole(sold_shares=41, status=ListingStatus.SOLD)
    with pytest.raises(ValueError):
        _whole(sold_shares=-1)


def test_listing_status_must_agree_with_sold_count() -> None:
    """Verify status is sold exactly when every share has been sold."""

    with pytest.raises(ValueError):
        _whole(sold_shares=40, status=ListingStatus.PARTIALLY_SOLD)
    with pytest.raises(ValueError):
        _whole(sold_shares=10, status=ListingStatus.SOLD)


def test_listing_timestamps_must_be_utc() -> None:
    """Verify naive created_at is rejected."""

    with pytest.raises(ValueError):
        _whole(created_at=datetime(2025, 3, 1, 9, 0, 0))


def test_listing_is_immutable() -> None:
    """Verify listings cannot be mutated in place."""

    listing = _whole()
    with pytest.raises(FrozenInstanceError):
        listing.sold_shares = 5  # type: ignore[misc]


def test_with_sale_advances_to_partially_sold_then_sold() -> None:
    """Verify partial and full fills move the status forward."""

    listing = _whole()
    partial = listing.with_sale(15, NOW)
    assert partial.status is ListingStatus.PARTIALLY_SOLD
    assert partial.remaining == 25
    assert partial.completed_at is None

    sold = partial.with_sale(25, NOW)
    assert sold.status is ListingStatus.SOLD
    assert sold.remaining == 0
    assert sold.completed_at == NOW


def test_with_sale_refuses_more_than_remaining() -> None:
    """Verify a sale larger than the remainder raises ListingExhausted."""

    listing = _whole().with_sale(30, NOW)
    with pytest.raises(ListingExhausted) as excinfo:
        listing.with_sale(11, NOW)
    assert excinfo.value.details == {"requested": 11, "remaining": 10}


def test_expiry_is_computed_lazily() -> None:
    """Verify a listing at expires_at is no longer transactable but keeps its stored status."""

    listing = _whole()
    at_expiry = listing.expires_at

    assert listing.is_transactable(at_expiry - timedelta(seconds=1))
    assert not listing.is_transactable(at_expiry)
    assert listing.status is ListingStatus.ACTIVE
    assert listing.effective_status(at_expiry) is ListingStatus.EXPIRED


def test_cancel_only_from_open_states() -> None:
    """Verify a sold listing cannot be cancelled and a cancelled one records its reason."""

    cancelled = _whole().cancelled(NOW, None)
    assert cancelled.status is ListingStatus.CANCELLED
    assert cancelled.cancel_reason == "Cancelled by seller"

    sold = _whole().with_sale(40, NOW)
    with pytest.raises(StateError):
        sold.cancelled(NOW, "too late")


def test_expired_leaves_terminal_listings_alone() -> None:
    """Verify expiring a sold listing is a no-op."""

    sold = _whole().with_sale(40, NOW)
    assert sold.expired() is sold
    assert _whole().expired().status is ListingStatus.EXPIRED


def test_percentage_resolves_actual_shares_with_floor() -> None:
    """Verify floor(percentage / 100 * holdings)."""

    assert PercentageListing.resolve_actual_shares(Decimal("25"), 10) == 2
    assert PercentageListing.resolve_actual_shares(Decimal("33.3"), 100) == 33
    assert PercentageListing.resolve_actual_shares(Decimal("5"), 10) == 0
    assert PercentageListing.resolve_actual_shares(Decimal("100"), 7) == 7


def test_percentage_listing_requires_at_least_one_share() -> None:
    """Verify actual_shares < 1 is rejected."""

    with pytest.raises(ValueError):
        _percentage(actual_shares=0)


def test_percentage_sale_tracks_percentage_sold() -> None:
    """Verify each sold share adds percent_per_share to percentage_sold."""

    listing = _percentage().with_sale(1, NOW)
    assert listing.shares_sold == 1
    assert listing.percentage_sold == Decimal("0.000021")
    assert listing.status is ListingStatus.PARTIALLY_SOLD


def test_shares_for_percentage_of_listing() -> None:
    """Verify a buyer's percentage of the listing converts to whole shares."""

    listing = _percentage(actual_shares=10, total_shares_in_tier=40)
    assert listing.shares_for_percentage(Decimal("50")) == 5
    assert listing.shares_for_percentage(Decimal("5")) == 0
    with pytest.raises(ValidationError):
        listing.shares_for_percentage(Decimal("0"))


def test_payment_channels_need_matching_details() -> None:
    """Verify bank transfer needs bank details and crypto needs a wallet."""

    bank = BankDetails(account_name="A", account_number="1", bank_name="B")

    validate_payment_channels((PaymentMethod.BANK_TRANSFER,), bank, None)
    with pytest.raises(ValidationError):
        validate_payment_channels((PaymentMethod.BANK_TRANSFER,), None, None)
    with pytest.raises(ValidationError):
        validate_payment_channels((PaymentMethod.CRYPTO,), bank, None)
    with pytest.raises(ValidationError):
        validate_payment_channels((), bank, None)

"""
Tests for `services/listing_service.py`.

Covers:
- Whole-share listings need a sellable balance and payment-channel details.
- Percentage listings snapshot the tier balance, floor to whole shares, and
  cap a seller's open percentages in a tier at 100%.
- Browse shows active, public, unexpired listings only.
- Cancelling cascades to pending offers and is idempotent.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import ADMIN, BUYER, BUYER_B, SELLER, WALLET, naira_terms
from domain.errors import (
    AuthorizationError,
    InsufficientInventory,
    NotFound,
    ShareClassMismatch,
    ValidationError,
)
from domain.listing import ListingKind, ListingStatus, PercentageListing
from domain.offer import OfferStatus
from domain.shares import Currency, PaymentMethod, ShareClass
from services.listing_service import (
    LISTING_CANCELLED_REASON,
    ListingFilters,
    PercentageListingRequest,
    browse_listings,
    cancel_listing,
    create_percentage_listing,
    fetch_listing,
    list_own_listings,
)


def test_create_whole_listing(market, notifier) -> None:
    """Verify a listing is published with the configured lifetime and the seller is told."""

    market.seed(SELLER, 100)

    listing = market.list_whole(shares=40, price=Decimal("1000"))

    assert listing.listing_id.startswith("LST-")
    assert listing.status is ListingStatus.ACTIVE
    assert listing.total_shares == 40
    assert listing.total_price == Decimal("40000")
    assert listing.expires_at == listing.created_at + timedelta(days=30)
    assert [message.subject for message in notifier.for_user(SELLER.user_id)] == ["Your share listing is live"]


def test_whole_listing_beyond_sellable_is_rejected(market) -> None:
    """Verify listings cannot advertise more than available minus already listed."""

    market.seed(SELLER, 100)
    market.list_whole(shares=70)

    with pytest.raises(InsufficientInventory):
        market.list_whole(shares=31)
    assert market.list_whole(shares=30).total_shares == 30


def test_whole_listing_checks_share_class(market) -> None:
    """Verify regular holdings cannot back a cofounder listing."""

    market.seed(SELLER, 100)

    with pytest.raises(InsufficientInventory):
        market.list_whole(shares=10, share_class=ShareClass.COFOUNDER)


@pytest.mark.parametrize(
    "overrides",
    [
        {"bank_details": None},
        {"payment_methods": [PaymentMethod.CRYPTO]},
        {"min_per_buy": 0},
        {"min_per_buy": 41},
        {"min_per_buy": 10, "max_per_buyer": 5},
        {"expires_in_days": 0},
        {"expires_in_days": 366},
        {"description": "x" * 1001},
    ],
)
def test_whole_listing_term_validation(market, overrides) -> None:
    """Verify malformed listing terms are rejected before anything is written."""

    market.seed(SELLER, 100)

    with pytest.raises(ValidationError):
        market.list_whole(shares=40, **overrides)
    assert market.sellable(SELLER) == 100


def test_whole_listing_rejects_non_positive_price(market) -> None:
    """Verify price_per_share must be > 0."""

    market.seed(SELLER, 100)

    with pytest.raises(ValidationError):
        market.list_whole(shares=10, price=Decimal("0"))


def test_crypto_listing_with_wallet(market) -> None:
    """Verify crypto listings carry the wallet details."""

    market.seed(SELLER, 10)

    listing = market.list_whole(
        shares=5,
        payment_methods=[PaymentMethod.CRYPTO, PaymentMethod.CRYPTO, PaymentMethod.BANK_TRANSFER],
        crypto_wallet=WALLET,
        currency=Currency.USDT,
    )

    assert listing.payment_methods == (PaymentMethod.CRYPTO, PaymentMethod.BANK_TRANSFER)
    assert listing.crypto_wallet == WALLET


def test_percentage_listing_resolves_shares(market) -> None:
    """Verify 25% of 10 standard shares lists 2 shares at the catalog price."""

    market.seed(SELLER, 10, tier="standard")

    listing = market.list_percentage("standard", Decimal("25"))

    assert isinstance(listing, PercentageListing)
    assert listing.listing_id.startswith("PEL-")
    assert listing.actual_shares == 2
    assert listing.total_shares_in_tier == 10
    assert listing.percent_per_share == Decimal("0.000021")
    assert listing.price_per_share == Decimal("50000")
    assert listing.tier_name == "Standard"
    assert listing.share_class is ShareClass.REGULAR


def test_percentage_listing_below_one_share_is_rejected(market) -> None:
    """Verify 5% of 10 shares (0.5 shares) cannot be listed."""

    market.seed(SELLER, 10, tier="standard")

    with pytest.raises(ValidationError):
        market.list_percentage("standard", Decimal("5"))


def test_percentage_listing_exactly_one_share(market) -> None:
    """Verify 10% of 10 shares lists exactly one share."""

    market.seed(SELLER, 10, tier="standard")

    assert market.list_percentage("standard", Decimal("10")).actual_shares == 1


def test_percentage_listings_cannot_exceed_full_holdings(market) -> None:
    """Verify open percentage listings in one tier add up to at most 100%."""

    market.seed(SELLER, 100, tier="basic")
    market.list_percentage("basic", Decimal("60"))

    with pytest.raises(ValidationError):
        market.list_percentage("basic", Decimal("41"))
    assert market.list_percentage("basic", Decimal("40")).actual_shares == 40


def test_percentage_listing_rejects_class_mismatch(market) -> None:
    """Verify a tier's share class cannot be overridden."""

    market.seed(SELLER, 10, tier="standard")
    request = PercentageListingRequest(
        tier="standard",
        percentage_of_holdings=Decimal("50"),
        terms=naira_terms(),
        share_class=ShareClass.COFOUNDER,
    )

    with pytest.raises(ShareClassMismatch):
        create_percentage_listing(market.engine, SELLER, request)


def test_percentage_listing_needs_explicit_price_in_eur(market) -> None:
    """Verify the catalog has no EUR price, so one must be supplied."""

    market.seed(SELLER, 10, tier="standard")

    with pytest.raises(ValidationError):
        market.list_percentage("standard", Decimal("50"), currency=Currency.EUR)
    listing = market.list_percentage("standard", Decimal("50"), price=Decimal("45"), currency=Currency.EUR)
    assert listing.price_per_share == Decimal("45")


def test_percentage_listing_respects_class_wide_listings(market) -> None:
    """Verify whole-share listings of the class reduce what a tier listing may take."""

    market.seed(SELLER, 10, tier="standard")
    market.list_whole(shares=8)

    with pytest.raises(InsufficientInventory):
        market.list_percentage("standard", Decimal("50"))


def test_browse_shows_only_active_public_unexpired(market, engine) -> None:
    """Verify the marketplace hides private, partially sold, cancelled and expired listings."""

    market.seed(SELLER, 100)
    visible = market.list_whole(shares=10)
    market.list_whole(shares=10, is_public=False)
    cancelled = market.list_whole(shares=10)
    cancel_listing(engine, SELLER, cancelled.listing_id)
    market.list_whole(shares=10, expires_in_days=1)
    partial = market.list_whole(shares=10, expires_in_days=5)
    market.confirm(market.in_payment(partial, BUYER, shares=4))
    market.later(days=1)

    page = browse_listings(engine)

    assert [listing.listing_id for listing in page.items] == [visible.listing_id]
    assert page.total == 1


def test_browse_filters(market, engine) -> None:
    """Verify currency, kind and price filters narrow the results."""

    market.seed(SELLER, 100)
    market.seed(SELLER, 10, tier="premium")
    cheap = market.list_whole(shares=10, price=Decimal("500"))
    market.list_whole(shares=10, price=Decimal("5000"))
    percentage = market.list_percentage("premium", Decimal("50"))

    by_price = browse_listings(engine, ListingFilters(max_price=Decimal("1000")))
    by_kind = browse_listings(engine, ListingFilters(kind=ListingKind.PERCENTAGE))
    by_tier = browse_listings(engine, ListingFilters(tier="premium"))
    by_currency = browse_listings(engine, ListingFilters(currency=Currency.USD))

    assert [listing.listing_id for listing in by_price.items] == [cheap.listing_id]
    assert [listing.listing_id for listing in by_kind.items] == [percentage.listing_id]
    assert [listing.listing_id for listing in by_tier.items] == [percentage.listing_id]
    assert by_currency.items == []


def test_browse_pages(market, engine) -> None:
    """Verify paging slices results and reports totals."""

    market.seed(SELLER, 100)
    for _ in range(5):
        market.list_whole(shares=1)

    page = browse_listings(engine, page=2, limit=2)

    assert len(page.items) == 2
    assert page.total == 5
    assert page.total_pages == 3
    with pytest.raises(ValidationError):
        browse_listings(engine, limit=101)


def test_fetch_listing_counts_views(market, engine) -> None:
    """Verify each fetch increments the view counter."""

    market.seed(SELLER, 10)
    listing = market.list_whole(shares=5)

    fetch_listing(engine, listing.listing_id)
    fetched = fetch_listing(engine, listing.listing_id)

    assert fetched.views == 2
    with pytest.raises(NotFound):
        fetch_listing(engine, "LST-missing")


def test_list_own_listings_filters_by_effective_status(market, engine) -> None:
    """Verify an open listing past expiry is reported as expired."""

    market.seed(SELLER, 100)
    short = market.list_whole(shares=10, expires_in_days=1)
    long = market.list_whole(shares=10, expires_in_days=10)
    market.later(days=2)

    expired = list_own_listings(engine, SELLER, status=ListingStatus.EXPIRED)
    active = list_own_listings(engine, SELLER, status=ListingStatus.ACTIVE)

    assert [listing.listing_id for listing in expired.items] == [short.listing_id]
    assert [listing.listing_id for listing in active.items] == [long.listing_id]
    assert list_own_listings(engine, BUYER).total == 0


def test_cancel_listing_cascades_to_pending_offers(market, engine) -> None:
    """Verify pending offers are cancelled while accepted ones are left to resolve."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=40)
    pending = market.offer(listing, BUYER, shares=10)
    accepted = market.offer(listing, BUYER_B, shares=10)
    market.accept(accepted)

    cancelled = cancel_listing(engine, SELLER, listing.listing_id, "changed my mind")

    assert cancelled.status is ListingStatus.CANCELLED
    assert cancelled.cancel_reason == "changed my mind"
    pending_after = market.offer_state(pending.offer_id)
    assert pending_after.status is OfferStatus.CANCELLED
    assert pending_after.cancel_reason == LISTING_CANCELLED_REASON
    assert market.offer_state(accepted.offer_id).status is OfferStatus.ACCEPTED
    assert market.sellable(SELLER) == 100


def test_cancel_listing_is_idempotent(market, engine) -> None:
    """Verify a second cancel returns the cancelled listing unchanged."""

    market.seed(SELLER, 10)
    listing = market.list_whole(shares=5)

    first = cancel_listing(engine, SELLER, listing.listing_id)
    second = cancel_listing(engine, SELLER, listing.listing_id)

    assert second == first


def test_cancel_listing_authorization(market, engine) -> None:
    """Verify only the seller or an admin may cancel."""

    market.seed(SELLER, 10)
    listing = market.list_whole(shares=5)

    with pytest.raises(AuthorizationError):
        cancel_listing(engine, BUYER, listing.listing_id)
    assert cancel_listing(engine, ADMIN, listing.listing_id).status is ListingStatus.CANCELLED
    with pytest.raises(NotFound):
        cancel_listing(engine, SELLER, "LST-missing")

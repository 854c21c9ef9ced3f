"""
Listing service.

Listings are advertisements: creating one checks that the seller could cover
it (sellable balance) but reserves nothing. Inventory is contested only when
an offer settles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from domain.errors import AuthorizationError, NotFound, ShareExchangeError, ValidationError
from domain.identifiers import new_listing_id, new_percentage_listing_id
from domain.listing import (
    BankDetails,
    CryptoWallet,
    Listing,
    ListingKind,
    ListingStatus,
    PercentageListing,
    WholeShareListing,
    validate_payment_channels,
)
from domain.offer import OfferStatus
from domain.shares import Currency, PaymentMethod, ShareClass, normalize_payment_methods
from repositories.listing_repository import (
    get_listing,
    insert_listing,
    list_listings,
    listings_for_seller,
    open_listings_for_seller,
    save_listing,
)
from repositories.offer_repository import offers_for_listing, save_offer
from repositories.store import Transaction, read_snapshot, with_transaction
from services import notification_service as notices
from services.context import EngineContext, Principal
from services.inventory_service import available_for, check_tier_class, require_sellable
from services.pagination import DEFAULT_LIMIT, Page, paginate

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 1000
LISTING_CANCELLED_REASON = "Listing was cancelled"
LISTING_EXPIRED_REASON = "Listing has expired"


@dataclass(frozen=True, slots=True)
class ListingTerms:
    """Fields common to both listing flavours."""

    currency: Currency
    payment_methods: Sequence[PaymentMethod]
    bank_details: Optional[BankDetails] = None
    crypto_wallet: Optional[CryptoWallet] = None
    min_per_buy: int = 1
    max_per_buyer: Optional[int] = None
    expires_in_days: Optional[int] = None
    is_public: bool = True
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class WholeListingRequest:
    share_class: ShareClass
    shares: int
    price_per_share: Decimal
    terms: ListingTerms


@dataclass(frozen=True, slots=True)
class PercentageListingRequest:
    tier: str
    percentage_of_holdings: Decimal
    terms: ListingTerms
    price_per_share: Optional[Decimal] = None
    share_class: Optional[ShareClass] = None


@dataclass(frozen=True, slots=True)
class ListingFilters:
    currency: Optional[Currency] = None
    share_class: Optional[ShareClass] = None
    tier: Optional[str] = None
    kind: Optional[ListingKind] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    def accepts(self, listing: Listing) -> bool:
        if self.currency is not None and listing.currency is not self.currency:
            return False
        if self.share_class is not None and listing.share_class is not self.share_class:
            return False
        if self.tier is not None and listing.tier != self.tier:
            return False
        if self.kind is not None and listing.kind != self.kind.value:
            return False
        if self.min_price is not None and listing.price_per_share < self.min_price:
            return False
        if self.max_price is not None and listing.price_per_share > self.max_price:
            return False
        return True


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_terms(
    ctx: EngineContext, terms: ListingTerms, total_shares: Optional[int]
) -> Tuple[Tuple[PaymentMethod, ...], timedelta]:
    methods = normalize_payment_methods(terms.payment_methods)
    validate_payment_channels(methods, terms.bank_details, terms.crypto_wallet)

    if terms.min_per_buy < 1:
        raise ValidationError("min_per_buy must be >= 1")
    if total_shares is not None and terms.min_per_buy > total_shares:
        raise ValidationError("min_per_buy cannot exceed the shares listed")
    if terms.max_per_buyer is not None and terms.max_per_buyer < terms.min_per_buy:
        raise ValidationError("max_per_buyer must be >= min_per_buy")
    if terms.description is not None and len(terms.description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")

    days = terms.expires_in_days if terms.expires_in_days is not None else ctx.settings.default_listing_days
    if not 1 <= days <= ctx.settings.max_listing_days:
        raise ValidationError(f"expires_in_days must be between 1 and {ctx.settings.max_listing_days}")
    return methods, timedelta(days=days)


def _validate_price(price: Decimal) -> None:
    if price <= 0:
        raise ValidationError("price_per_share must be > 0")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def create_whole_listing(ctx: EngineContext, principal: Principal, request: WholeListingRequest) -> WholeShareListing:
    """
    Publish a whole-share listing.

    Raises:
        ValidationError: bad input or missing payment-channel details
        InsufficientInventory: the seller's sellable balance is below `shares`
    """

    if request.shares < 1:
        raise ValidationError("shares must be >= 1")
    _validate_price(request.price_per_share)
    methods, lifetime = _validate_terms(ctx, request.terms, request.shares)
    terms = request.terms

    def body(tx: Transaction) -> WholeShareListing:
        now = ctx.now()
        require_sellable(tx, principal.user_id, request.share_class, None, request.shares, now)
        listing = WholeShareListing(
            listing_id=new_listing_id(now),
            seller_id=principal.user_id,
            share_class=request.share_class,
            total_shares=request.shares,
            price_per_share=request.price_per_share,
            currency=terms.currency,
            payment_methods=methods,
            created_at=now,
            expires_at=now + lifetime,
            min_per_buy=terms.min_per_buy,
            max_per_buyer=terms.max_per_buyer,
            bank_details=terms.bank_details,
            crypto_wallet=terms.crypto_wallet,
            description=terms.description,
            is_public=terms.is_public,
        )
        insert_listing(tx, listing)
        return listing

    listing = with_transaction(ctx.store, body)
    logger.info(
        "Listing created",
        extra={"listing_id": listing.listing_id, "seller_id": listing.seller_id, "shares": listing.total_shares},
    )
    notices.notify_safely(ctx.notifier, notices.listing_created(listing))
    return listing


def _open_percentage(tx: Transaction, seller_id: str, share_class: ShareClass, tier: str, now: datetime) -> Decimal:
    return sum(
        (
            listing.percentage_of_holdings
            for listing in open_listings_for_seller(tx, seller_id, share_class, tier)
            if isinstance(listing, PercentageListing) and listing.is_listed(now)
        ),
        Decimal("0"),
    )


def create_percentage_listing(
    ctx: EngineContext,
    principal: Principal,
    request: PercentageListingRequest,
) -> PercentageListing:
    """
    Publish a listing for a percentage of the seller's holdings in one tier.

    The tier balance and the tier's per-share percentage are snapshotted now;
    actual_shares = floor(percentage / 100 * balance) must be at least 1. The
    seller's open percentage listings in the tier may not add up to more
    than 100%.
    """

    percentage = request.percentage_of_holdings
    if not Decimal("0") < percentage <= Decimal("100"):
        raise ValidationError("percentage_of_holdings must be in (0, 100]")

    info = ctx.tiers.get(request.tier)
    share_class = request.share_class or info.share_class
    check_tier_class(ctx.tiers, share_class, request.tier)

    price = request.price_per_share
    if price is None:
        try:
            price = info.price_per_share(request.terms.currency)
        except ValueError:
            raise ValidationError(
                f"price_per_share is required for {request.terms.currency.value} listings"
            ) from None
    _validate_price(price)
    methods, lifetime = _validate_terms(ctx, request.terms, None)
    terms = request.terms

    def body(tx: Transaction) -> PercentageListing:
        now = ctx.now()
        seller = principal.user_id

        total_in_tier = available_for(tx, seller, share_class, request.tier)
        actual = PercentageListing.resolve_actual_shares(percentage, total_in_tier)
        if actual < 1:
            raise ValidationError(
                f"{percentage}% of {total_in_tier} {request.tier} shares is less than one share",
                details={"percentage": str(percentage), "total_shares_in_tier": total_in_tier},
            )
        if actual < terms.min_per_buy:
            raise ValidationError("min_per_buy cannot exceed the shares listed")

        committed = _open_percentage(tx, seller, share_class, request.tier, now)
        if committed + percentage > Decimal("100"):
            raise ValidationError(
                f"Open listings already cover {committed}% of your {request.tier} holdings",
                details={"listed_percentage": str(committed), "requested": str(percentage)},
            )

        require_sellable(tx, seller, share_class, request.tier, actual, now)
        require_sellable(tx, seller, share_class, None, actual, now)

        listing = PercentageListing(
            listing_id=new_percentage_listing_id(now),
            seller_id=seller,
            tier=request.tier,
            share_class=share_class,
            percentage_of_holdings=percentage,
            total_shares_in_tier=total_in_tier,
            actual_shares=actual,
            percent_per_share=info.percent_per_share,
            price_per_share=price,
            currency=terms.currency,
            payment_methods=methods,
            created_at=now,
            expires_at=now + lifetime,
            tier_name=info.name,
            min_per_buy=terms.min_per_buy,
            max_per_buyer=terms.max_per_buyer,
            bank_details=terms.bank_details,
            crypto_wallet=terms.crypto_wallet,
            description=terms.description,
            is_public=terms.is_public,
        )
        insert_listing(tx, listing)
        return listing

    listing = with_transaction(ctx.store, body)
    logger.info(
        "Percentage listing created",
        extra={
            "listing_id": listing.listing_id,
            "seller_id": listing.seller_id,
            "tier": listing.tier,
            "percentage": str(listing.percentage_of_holdings),
            "actual_shares": listing.actual_shares,
        },
    )
    notices.notify_safely(ctx.notifier, notices.listing_created(listing))
    return listing


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def browse_listings(
    ctx: EngineContext,
    filters: Optional[ListingFilters] = None,
    *,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page[Listing]:
    """Public marketplace: active, unexpired, public listings, newest first."""

    filters = filters or ListingFilters()
    now = ctx.now()
    rows = read_snapshot(ctx.store, list_listings)
    visible = [
        listing
        for listing in rows
        if listing.status is ListingStatus.ACTIVE
        and not listing.is_expired(now)
        and listing.is_public
        and filters.accepts(listing)
    ]
    return paginate(visible, page, limit)


def fetch_listing(ctx: EngineContext, listing_id: str) -> Listing:
    """
    Single listing by id. Counts a view.

    The view counter is best effort: a failed increment is logged and the
    listing is still returned.
    """

    listing = read_snapshot(ctx.store, lambda tx: get_listing(tx, listing_id))
    if listing is None:
        raise NotFound(f"Listing {listing_id} not found")

    def bump(tx: Transaction) -> Optional[Listing]:
        current = get_listing(tx, listing_id)
        if current is None:
            return None
        updated = replace(current, views=current.views + 1)
        save_listing(tx, updated)
        return updated

    try:
        return with_transaction(ctx.store, bump) or listing
    except ShareExchangeError:
        logger.warning("Listing view counter update failed", exc_info=True, extra={"listing_id": listing_id})
        return listing


def list_own_listings(
    ctx: EngineContext,
    principal: Principal,
    *,
    status: Optional[ListingStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page[Listing]:
    """
    A seller's own listings, newest first.

    `status` filters on the effective status, so an open listing past its
    expiry is reported (and filtered) as expired.
    """

    now = ctx.now()
    rows = read_snapshot(ctx.store, lambda tx: listings_for_seller(tx, principal.user_id))
    if status is not None:
        rows = [listing for listing in rows if listing.effective_status(now) is status]
    return paginate(rows, page, limit)


# ---------------------------------------------------------------------------
# Cancel / expire
# ---------------------------------------------------------------------------


def close_listing(tx: Transaction, listing: Listing, closed: Listing, reason: str, now: datetime) -> List[str]:
    """
    Persist a cancelled or expired listing and cancel its pending offers.

    Accepted and in-payment offers are left alone; they resolve through their
    own path. Returns the ids of the offers that were cancelled.
    """

    save_listing(tx, closed)
    cancelled: List[str] = []
    for offer in offers_for_listing(tx, listing.listing_id, status=OfferStatus.PENDING):
        save_offer(tx, offer.cancelled(now, reason))
        cancelled.append(offer.offer_id)
    return cancelled


def cancel_listing(
    ctx: EngineContext,
    principal: Principal,
    listing_id: str,
    reason: Optional[str] = None,
) -> Listing:
    """
    Seller cancels an active or partially sold listing.

    Cancelling an already cancelled listing returns it unchanged.
    """

    def body(tx: Transaction):
        now = ctx.now()
        listing = get_listing(tx, listing_id)
        if listing is None:
            raise NotFound(f"Listing {listing_id} not found")
        if listing.seller_id != principal.user_id and not principal.is_admin:
            raise AuthorizationError("Only the seller can cancel this listing")
        if listing.status is ListingStatus.CANCELLED:
            return listing, []
        closed = listing.cancelled(now, reason)
        return closed, close_listing(tx, listing, closed, LISTING_CANCELLED_REASON, now)

    listing, cascaded = with_transaction(ctx.store, body)
    logger.info("Listing cancelled", extra={"listing_id": listing_id, "cancelled_offers": len(cascaded)})
    return listing


__all__ = [
    "ListingTerms",
    "WholeListingRequest",
    "PercentageListingRequest",
    "ListingFilters",
    "create_whole_listing",
    "create_percentage_listing",
    "browse_listings",
    "fetch_listing",
    "list_own_listings",
    "cancel_listing",
    "close_listing",
    "LISTING_CANCELLED_REASON",
    "LISTING_EXPIRED_REASON",
]

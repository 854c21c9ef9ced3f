"""
Listings API Endpoints.

Public browsing plus the seller's listing lifecycle (create, cancel, list own).
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_engine, get_principal
from api.models import (
    CancelListingRequest,
    CreateListingRequest,
    CreatePercentageListingRequest,
    ListingPageResponse,
    ListingResponse,
)
from domain.listing import ListingKind, ListingStatus
from domain.shares import Currency, ShareClass
from services.context import EngineContext, Principal
from services.listing_service import (
    ListingFilters,
    ListingTerms,
    PercentageListingRequest,
    WholeListingRequest,
    browse_listings,
    cancel_listing,
    create_percentage_listing,
    create_whole_listing,
    fetch_listing,
    list_own_listings,
)
from services.pagination import Page

router = APIRouter()


def _terms(request) -> ListingTerms:
    return ListingTerms(
        currency=request.currency,
        payment_methods=request.payment_methods,
        bank_details=request.bank_details,
        crypto_wallet=request.crypto_wallet,
        min_per_buy=request.min_per_buy,
        max_per_buyer=request.max_per_buyer,
        expires_in_days=request.expires_in_days,
        is_public=request.is_public,
        description=request.description,
    )


def _page(page: Page, engine: EngineContext) -> ListingPageResponse:
    now = engine.now()
    return ListingPageResponse(
        items=[ListingResponse.from_listing(listing, now) for listing in page.items],
        page=page.page,
        limit=page.limit,
        total=page.total,
        total_pages=page.total_pages,
    )


@router.get(
    "/listings",
    response_model=ListingPageResponse,
    summary="Browse Listings",
    description="Active, unexpired, public listings, newest first."
)
def browse(
    currency: Optional[Currency] = Query(None, description="Filter by listing currency"),
    share_class: Optional[ShareClass] = Query(None, description="'regular' or 'cofounder'"),
    tier: Optional[str] = Query(None, description="Filter percentage listings by tier"),
    kind: Optional[ListingKind] = Query(None, description="'whole' or 'percentage'"),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine: EngineContext = Depends(get_engine),
):
    """
    **Example usage:**
    - All listings: `GET /api/v1/listings`
    - Naira regular shares under ₦1 500: `GET /api/v1/listings?currency=naira&share_class=regular&max_price=1500`
    """
    filters = ListingFilters(
        currency=currency,
        share_class=share_class,
        tier=tier,
        kind=kind,
        min_price=min_price,
        max_price=max_price,
    )
    return _page(browse_listings(engine, filters, page=page, limit=limit), engine)


@router.get(
    "/listings/mine",
    response_model=ListingPageResponse,
    summary="My Listings",
)
def my_listings(
    status: Optional[ListingStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    return _page(list_own_listings(engine, principal, status=status, page=page, limit=limit), engine)


@router.get(
    "/listings/{listing_id}",
    response_model=ListingResponse,
    summary="Get Listing",
)
def get_listing(listing_id: str, engine: EngineContext = Depends(get_engine)):
    """Fetch one listing. Each fetch counts a view."""
    return ListingResponse.from_listing(fetch_listing(engine, listing_id), engine.now())


@router.post(
    "/listings",
    response_model=ListingResponse,
    status_code=201,
    summary="Create Whole-Share Listing",
)
def create_listing(
    request: CreateListingRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    Publish a listing for a number of shares.

    The seller's sellable balance (available minus shares on their other open
    listings) must cover `shares`. Nothing is reserved; shares move only when a
    trade settles.
    """
    listing = create_whole_listing(
        engine,
        principal,
        WholeListingRequest(
            share_class=request.share_class,
            shares=request.shares,
            price_per_share=request.price_per_share,
            terms=_terms(request),
        ),
    )
    return ListingResponse.from_listing(listing, engine.now())


@router.post(
    "/listings/percentage",
    response_model=ListingResponse,
    status_code=201,
    summary="Create Percentage Listing",
)
def create_percentage(
    request: CreatePercentageListingRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    listing = create_percentage_listing(
        engine,
        principal,
        PercentageListingRequest(
            tier=request.tier,
            percentage_of_holdings=request.percentage_of_holdings,
            price_per_share=request.price_per_share,
            share_class=request.share_class,
            terms=_terms(request),
        ),
    )
    return ListingResponse.from_listing(listing, engine.now())


@router.post(
    "/listings/{listing_id}/cancel",
    response_model=ListingResponse,
    summary="Cancel Listing",
    description="Cancels the listing and every pending offer on it. Accepted or paid offers are unaffected."
)
def cancel(
    listing_id: str,
    request: Optional[CancelListingRequest] = None,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    reason = request.reason if request else None
    return ListingResponse.from_listing(cancel_listing(engine, principal, listing_id, reason), engine.now())

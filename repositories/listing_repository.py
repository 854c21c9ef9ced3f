"""
Listing repository (persistence).

Thin functions over a store transaction. No business rules live here beyond
simple filtering and ordering.
"""

from __future__ import annotations

from typing import List, Optional

from domain.listing import Listing, ListingStatus
from domain.shares import ShareClass
from repositories.store import LISTINGS, Transaction


def get_listing(tx: Transaction, listing_id: str) -> Optional[Listing]:
    return tx.get(LISTINGS, listing_id)


def insert_listing(tx: Transaction, listing: Listing) -> None:
    tx.insert(listing)


def save_listing(tx: Transaction, listing: Listing) -> None:
    tx.update(listing)


def list_listings(tx: Transaction, *, seller_id: Optional[str] = None) -> List[Listing]:
    """All listings (optionally for one seller), newest first."""

    rows = tx.scan(LISTINGS, seller_id=seller_id) if seller_id is not None else tx.scan(LISTINGS)
    return sorted(rows, key=lambda listing: listing.created_at, reverse=True)


def listings_for_seller(
    tx: Transaction,
    seller_id: str,
    *,
    status: Optional[ListingStatus] = None,
) -> List[Listing]:
    rows = list_listings(tx, seller_id=seller_id)
    if status is not None:
        rows = [listing for listing in rows if listing.status is status]
    return rows


def open_listings_for_seller(
    tx: Transaction,
    seller_id: str,
    share_class: ShareClass,
    tier: Optional[str] = None,
) -> List[Listing]:
    """
    Open (active or partially sold) listings of one class for a seller.

    With a tier, only listings pinned to that tier are returned. Expiry is not
    applied here; callers decide how to treat expired listings.
    """

    return [
        listing
        for listing in tx.scan(LISTINGS, seller_id=seller_id)
        if listing.status.is_open
        and listing.share_class is share_class
        and (tier is None or listing.tier == tier)
    ]


__all__ = [
    "get_listing",
    "insert_listing",
    "save_listing",
    "list_listings",
    "listings_for_seller",
    "open_listings_for_seller",
]

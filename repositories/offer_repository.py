"""
Offer repository (persistence).
"""

from __future__ import annotations

from typing import List, Optional

from domain.offer import Offer, OfferStatus
from repositories.store import OFFERS, Transaction


def get_offer(tx: Transaction, offer_id: str) -> Optional[Offer]:
    return tx.get(OFFERS, offer_id)


def insert_offer(tx: Transaction, offer: Offer) -> None:
    tx.insert(offer)


def save_offer(tx: Transaction, offer: Offer) -> None:
    tx.update(offer)


def delete_offer(tx: Transaction, offer_id: str) -> None:
    tx.delete(OFFERS, offer_id)


def _newest_first(offers: List[Offer]) -> List[Offer]:
    return sorted(offers, key=lambda offer: offer.created_at, reverse=True)


def offers_for_listing(tx: Transaction, listing_id: str, *, status: Optional[OfferStatus] = None) -> List[Offer]:
    if status is None:
        return _newest_first(tx.scan(OFFERS, listing_id=listing_id))
    return _newest_first(tx.scan(OFFERS, listing_id=listing_id, status=status))


def offers_for_user(tx: Transaction, user_id: str, *, role: str = "all") -> List[Offer]:
    """
    Offers a user takes part in.

    role: "sent" (as buyer), "received" (as seller) or "all".
    """

    if role == "sent":
        rows = tx.scan(OFFERS, buyer_id=user_id)
    elif role == "received":
        rows = tx.scan(OFFERS, seller_id=user_id)
    elif role == "all":
        by_key = {offer.offer_id: offer for offer in tx.scan(OFFERS, buyer_id=user_id)}
        by_key.update({offer.offer_id: offer for offer in tx.scan(OFFERS, seller_id=user_id)})
        rows = list(by_key.values())
    else:
        raise ValueError(f"Unknown offer role: {role!r}")
    return _newest_first(rows)


def list_offers(tx: Transaction, *, status: Optional[OfferStatus] = None) -> List[Offer]:
    rows = tx.scan(OFFERS) if status is None else tx.scan(OFFERS, status=status)
    return _newest_first(rows)


__all__ = [
    "get_offer",
    "insert_offer",
    "save_offer",
    "delete_offer",
    "offers_for_listing",
    "offers_for_user",
    "list_offers",
]

"""
Offer service: the buyer/seller side of the trade protocol.

    create (buyer) -> accept | decline (seller) -> submit payment (buyer)

Confirmation and every path that moves shares live in settlement_service.
Deadlines are enforced when an offer is touched; the optional sweeper in
expiry_service rewrites stale offers using the same transitions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from domain.errors import (
    AuthorizationError,
    NotFound,
    StateError,
    ValidationError,
)
from domain.identifiers import new_offer_id, new_percentage_offer_id
from domain.listing import Listing, ListingKind, PercentageListing
from domain.offer import Offer, OfferStatus, PaymentDetails, ProofRef
from domain.shares import PaymentMethod
from repositories.listing_repository import get_listing
from repositories.offer_repository import get_offer, insert_offer, offers_for_user, save_offer
from repositories.store import Transaction, read_snapshot, with_transaction
from repositories.transfer_repository import shares_bought_on_listing
from services import notification_service as notices
from services.context import EngineContext, Principal
from services.pagination import DEFAULT_LIMIT, Page, paginate

logger = logging.getLogger(__name__)

OFFER_ROLES = ("sent", "received", "all")
MAX_NOTE_LENGTH = 500
DECLINED_REASON = "Declined by seller"
WITHDRAWN_REASON = "Withdrawn by buyer"


@dataclass(frozen=True, slots=True)
class OfferRequest:
    """
    A buyer's offer. Give exactly one of `shares` or `percentage`; `percentage`
    (of the listing) is only meaningful for percentage listings.
    """

    listing_id: str
    payment_method: PaymentMethod
    shares: Optional[int] = None
    percentage: Optional[Decimal] = None
    buyer_note: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ProofUpload:
    content: bytes
    content_type: str
    filename: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PaymentSubmission:
    offer_id: str
    transaction_reference: str
    details: Optional[PaymentDetails] = None
    proof: Optional[ProofUpload] = None


def load_offer(tx: Transaction, offer_id: str) -> Offer:
    offer = get_offer(tx, offer_id)
    if offer is None:
        raise NotFound(f"Offer {offer_id} not found")
    return offer


def load_listing(tx: Transaction, listing_id: str) -> Listing:
    listing = get_listing(tx, listing_id)
    if listing is None:
        raise NotFound(f"Listing {listing_id} not found")
    return listing


def _check_note(note: Optional[str], name: str) -> None:
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f"{name} must be at most {MAX_NOTE_LENGTH} characters")


def _resolve_shares(listing: Listing, request: OfferRequest) -> int:
    if (request.shares is None) == (request.percentage is None):
        raise ValidationError("Provide exactly one of shares or percentage")
    if request.shares is not None:
        if request.shares < 1:
            raise ValidationError("shares must be >= 1")
        return request.shares
    if not isinstance(listing, PercentageListing):
        raise ValidationError("percentage offers are only accepted on percentage listings")
    shares = listing.shares_for_percentage(request.percentage)
    if shares < 1:
        raise ValidationError(
            f"{request.percentage}% of this listing is less than one share",
            details={"percentage": str(request.percentage), "actual_shares": listing.actual_shares},
        )
    return shares


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def create_offer(ctx: EngineContext, principal: Principal, request: OfferRequest) -> Offer:
    """
    Tender a purchase offer against a listing.

    Rejected when the buyer is the seller, the listing is not open or has
    expired, the payment method is not offered, the size is below minPerBuy,
    above what remains, or would take the buyer past maxPerBuyer on this
    listing (counting completed purchases only).
    """

    _check_note(request.buyer_note, "buyer_note")

    def body(tx: Transaction) -> Offer:
        now = ctx.now()
        listing = load_listing(tx, request.listing_id)

        if listing.seller_id == principal.user_id:
            raise ValidationError("You cannot make an offer on your own listing")
        if not listing.status.is_open:
            raise StateError(f"Listing is {listing.status.value}")
        if listing.is_expired(now):
            raise StateError("Listing has expired")
        if not listing.accepts(request.payment_method):
            raise ValidationError(
                f"Payment method {request.payment_method.value} is not accepted by this listing",
                details={"accepted": [method.value for method in listing.payment_methods]},
            )

        shares = _resolve_shares(listing, request)
        if shares < listing.min_per_buy:
            raise ValidationError(
                f"Minimum purchase is {listing.min_per_buy} shares",
                details={"requested": shares, "min_per_buy": listing.min_per_buy},
            )
        listing.check_can_sell(shares)
        if listing.max_per_buyer is not None:
            prior = shares_bought_on_listing(tx, listing.listing_id, principal.user_id)
            if shares + prior > listing.max_per_buyer:
                raise ValidationError(
                    f"Maximum per buyer is {listing.max_per_buyer} shares; you already bought {prior}",
                    details={"requested": shares, "prior": prior, "max_per_buyer": listing.max_per_buyer},
                )

        if isinstance(listing, PercentageListing):
            offer_id = new_percentage_offer_id(listing.tier, now)
            kind = ListingKind.PERCENTAGE
        else:
            offer_id = new_offer_id(now)
            kind = ListingKind.WHOLE

        offer = Offer(
            offer_id=offer_id,
            listing_id=listing.listing_id,
            listing_kind=kind,
            seller_id=listing.seller_id,
            buyer_id=principal.user_id,
            share_class=listing.share_class,
            shares=shares,
            price_per_share=listing.price_per_share,
            currency=listing.currency,
            total_price=listing.price_for(shares),
            payment_method=request.payment_method,
            created_at=now,
            expires_at=now + ctx.settings.offer_ttl,
            tier=listing.tier,
            buyer_note=request.buyer_note,
        )
        insert_offer(tx, offer)
        return offer

    offer = with_transaction(ctx.store, body)
    logger.info(
        "Offer created",
        extra={
            "offer_id": offer.offer_id,
            "listing_id": offer.listing_id,
            "buyer_id": offer.buyer_id,
            "shares": offer.shares,
        },
    )
    notices.notify_safely(ctx.notifier, notices.offer_received(offer))
    return offer


# ---------------------------------------------------------------------------
# Seller responses
# ---------------------------------------------------------------------------


def accept_offer(ctx: EngineContext, principal: Principal, offer_id: str, note: Optional[str] = None) -> Offer:
    """
    Seller accepts a pending offer; the buyer then has the payment window to pay.

    Accepting an offer that is no longer pending returns it unchanged.

    Raises:
        DeadlineError: the pending offer outlived its TTL
        StateError: the listing was cancelled or has expired
    """

    _check_note(note, "note")

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.seller_id != principal.user_id:
            raise AuthorizationError("Only the seller can accept this offer")
        if offer.status is not OfferStatus.PENDING:
            return offer, False

        listing = load_listing(tx, offer.listing_id)
        if not listing.is_transactable(now):
            raise StateError(f"Listing is {listing.effective_status(now).value}; the offer cannot be accepted")

        accepted = offer.accepted(now, ctx.settings.payment_window, note)
        save_offer(tx, accepted)
        return accepted, True

    offer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info(
            "Offer accepted",
            extra={"offer_id": offer.offer_id, "payment_deadline": offer.payment_deadline.isoformat()},
        )
        notices.notify_safely(ctx.notifier, notices.offer_accepted(offer))
    return offer


def decline_offer(ctx: EngineContext, principal: Principal, offer_id: str, reason: Optional[str] = None) -> Offer:
    """
    Seller declines, or the buyer withdraws, a pending offer.

    Declining an already cancelled offer returns it unchanged.
    """

    _check_note(reason, "reason")

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if principal.user_id == offer.seller_id:
            default_reason = DECLINED_REASON
        elif principal.user_id == offer.buyer_id:
            default_reason = WITHDRAWN_REASON
        else:
            raise AuthorizationError("Only the seller or the buyer can decline this offer")

        if offer.status is OfferStatus.CANCELLED:
            return offer, False
        if offer.status is not OfferStatus.PENDING:
            raise StateError(f"Only pending offers can be declined; offer is {offer.status.value}")

        declined = offer.cancelled(now, reason or default_reason)
        save_offer(tx, declined)
        return declined, True

    offer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info("Offer declined", extra={"offer_id": offer.offer_id, "by": principal.user_id})
        if principal.user_id == offer.seller_id:
            notices.notify_safely(ctx.notifier, notices.offer_declined(offer))
        else:
            notices.notify_safely(ctx.notifier, notices.offer_withdrawn(offer))
    return offer


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


def submit_payment(ctx: EngineContext, principal: Principal, submission: PaymentSubmission) -> Offer:
    """
    Buyer attests an off-platform payment.

    The proof (if any) is uploaded before the transaction opens. If the
    transaction then fails the blob is deleted again; a failed cleanup is logged.
    Resubmitting while accepted or in payment replaces the payment fields.
    """

    if not submission.transaction_reference or not submission.transaction_reference.strip():
        raise ValidationError("transaction_reference is required")

    proof: Optional[ProofRef] = None
    if submission.proof is not None:
        upload = submission.proof
        proof = ctx.proofs.put(
            upload.content,
            folder=f"payment-proofs/{submission.offer_id}",
            content_type=upload.content_type,
            now=ctx.now(),
            original_name=upload.filename,
        )

    def body(tx: Transaction) -> Offer:
        now = ctx.now()
        offer = load_offer(tx, submission.offer_id)
        if offer.buyer_id != principal.user_id:
            raise AuthorizationError("Only the buyer can submit payment for this offer")
        if offer.status is OfferStatus.COMPLETED:
            raise StateError("Offer is already completed")
        paid = offer.with_payment(now, submission.transaction_reference, submission.details, proof)
        save_offer(tx, paid)
        return paid

    try:
        offer = with_transaction(ctx.store, body)
    except Exception:
        if proof is not None:
            _discard_proof(ctx, proof)
        raise

    logger.info(
        "Payment submitted",
        extra={"offer_id": offer.offer_id, "reference": offer.transaction_reference, "proof": bool(proof)},
    )
    notices.notify_safely(ctx.notifier, notices.payment_submitted(offer))
    return offer


def _discard_proof(ctx: EngineContext, proof: ProofRef) -> None:
    try:
        ctx.proofs.delete(proof.id)
    except Exception:
        logger.warning("Failed to delete orphaned payment proof", exc_info=True, extra={"proof_id": proof.id})


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_offer_for(ctx: EngineContext, principal: Principal, offer_id: str) -> Offer:
    offer = read_snapshot(ctx.store, lambda tx: load_offer(tx, offer_id))
    if principal.user_id not in (offer.buyer_id, offer.seller_id) and not principal.is_admin:
        raise AuthorizationError("You are not a party to this offer")
    return offer


def list_offers(
    ctx: EngineContext,
    principal: Principal,
    *,
    role: str = "all",
    status: Optional[OfferStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page[Offer]:
    """Offers the caller sent (as buyer), received (as seller), or both; newest first."""

    if role not in OFFER_ROLES:
        raise ValidationError(f"type must be one of {', '.join(OFFER_ROLES)}")
    rows: List[Offer] = read_snapshot(ctx.store, lambda tx: offers_for_user(tx, principal.user_id, role=role))
    if status is not None:
        rows = [offer for offer in rows if offer.status is status]
    return paginate(rows, page, limit)


__all__ = [
    "OfferRequest",
    "ProofUpload",
    "PaymentSubmission",
    "create_offer",
    "accept_offer",
    "decline_offer",
    "submit_payment",
    "get_offer_for",
    "list_offers",
    "load_offer",
    "load_listing",
]

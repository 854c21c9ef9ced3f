"""
Settlement coordinator.

`settle` is the single primitive that moves shares. Seller confirmation,
admin force-complete and dispute resolution all call it inside their own
transaction, so every path debits the seller, credits the buyer, advances the
listing, completes the offer and writes a completed TransferRecord together,
or does none of it.

Order inside the transaction:
    1. load listing, check the offer still fits what remains
    2. create the transfer record (in progress)
    3. debit the seller
    4. credit the buyer
    5. advance the listing
    6. complete the offer
    7. finalize the transfer record
Notifications go out only after commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from domain.errors import AuthorizationError, NotFound, StateError
from domain.identifiers import new_transfer_id
from domain.inventory import LotOrigin, LotOriginKind
from domain.listing import ListingKind
from domain.offer import AdminForcedCompletion, Offer, OfferStatus
from domain.transfer import (
    PaymentVerification,
    TransferRecord,
    TransferStatus,
    TransferType,
    VerificationMethod,
)
from repositories.listing_repository import save_listing
from repositories.offer_repository import save_offer
from repositories.store import Transaction, read_snapshot, with_transaction
from repositories.transfer_repository import (
    completed_transfer_for_offer,
    get_transfer,
    insert_transfer,
    save_transfer,
    transfers_for_user,
)
from services import notification_service as notices
from services.context import EngineContext, Principal
from services.inventory_service import credit, debit
from services.offer_service import load_listing, load_offer
from services.pagination import DEFAULT_LIMIT, Page, paginate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettlementTerms:
    """Who vouched for the payment and how; decides the transfer type."""

    verified_by: str
    method: VerificationMethod
    proof: str
    forced: Optional[AdminForcedCompletion] = None
    notes: Optional[str] = None

    @property
    def is_forced(self) -> bool:
        return self.method is VerificationMethod.ADMIN_FORCED


def transfer_type_for(offer: Offer, terms: SettlementTerms) -> TransferType:
    if terms.is_forced:
        return TransferType.ADMIN_FORCED_SALE
    if offer.listing_kind is ListingKind.PERCENTAGE:
        return TransferType.PERCENTAGE_SALE
    return TransferType.SALE


def settle(tx: Transaction, offer: Offer, terms: SettlementTerms, now: datetime) -> Tuple[Offer, TransferRecord]:
    """
    Move `offer.shares` from seller to buyer and close the offer.

    `offer.shares` is the immutable trade size; lot consumption tracks its own
    counter, so the buyer is always credited exactly what the seller is debited.

    Raises:
        ListingExhausted: the listing no longer has `offer.shares` remaining
        InsufficientInventory: the seller's lots cannot cover the debit
        StateError: the offer is already completed or cancelled
    """

    if offer.is_terminal:
        raise StateError(f"Cannot settle a {offer.status.value} offer")

    listing = load_listing(tx, offer.listing_id)
    listing.check_can_sell(offer.shares)

    transfer = TransferRecord(
        transfer_id=new_transfer_id(now),
        from_user_id=offer.seller_id,
        to_user_id=offer.buyer_id,
        share_class=offer.share_class,
        share_count=offer.shares,
        price_per_share=offer.price_per_share,
        total_price=offer.total_price,
        currency=offer.currency,
        offer_id=offer.offer_id,
        listing_id=offer.listing_id,
        transfer_type=transfer_type_for(offer, terms),
        status=TransferStatus.IN_PROGRESS,
        payment_verified=True,
        verification=PaymentVerification(by=terms.verified_by, method=terms.method, proof=terms.proof, at=now),
        created_at=now,
        tier=offer.tier,
        notes=terms.notes,
    )
    insert_transfer(tx, transfer)

    debit(tx, offer.seller_id, offer.share_class, offer.tier, offer.shares)
    origin = LotOrigin(
        kind=LotOriginKind.ADMIN_FORCED_TRANSFER if terms.is_forced else LotOriginKind.SHARE_TRANSFER,
        from_user_id=offer.seller_id,
        offer_id=offer.offer_id,
        transfer_id=transfer.transfer_id,
    )
    credit(tx, offer.buyer_id, offer.share_class, offer.tier, offer.shares, origin, now)

    save_listing(tx, listing.with_sale(offer.shares, now))

    completed = offer.completed(now, transfer.transfer_id, terms.forced)
    save_offer(tx, completed)

    transfer = transfer.completed(now)
    save_transfer(tx, transfer)
    return completed, transfer


def existing_transfer(tx: Transaction, offer: Offer) -> TransferRecord:
    """The completed transfer behind a completed offer."""

    record = completed_transfer_for_offer(tx, offer.offer_id)
    if record is None:
        raise StateError(f"Completed offer {offer.offer_id} has no transfer record")
    return record


def confirm_payment(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    note: Optional[str] = None,
) -> TransferRecord:
    """
    Seller confirms receipt of payment; the trade settles atomically.

    Confirming an already completed offer returns its transfer without
    touching inventory.

    Raises:
        AuthorizationError: caller is not the seller
        StateError: the offer is not in payment
        ListingExhausted, InsufficientInventory: settlement could not cover the trade
    """

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.seller_id != principal.user_id:
            raise AuthorizationError("Only the seller can confirm payment for this offer")
        if offer.status is OfferStatus.COMPLETED:
            return offer, existing_transfer(tx, offer), False
        if offer.status is not OfferStatus.IN_PAYMENT:
            raise StateError(f"Payment can only be confirmed on offers in payment; offer is {offer.status.value}")

        terms = SettlementTerms(
            verified_by=principal.user_id,
            method=VerificationMethod.MANUAL_REVIEW,
            proof=offer.transaction_reference or "seller attestation",
            notes=note,
        )
        completed, transfer = settle(tx, offer, terms, now)
        return completed, transfer, True

    offer, transfer, settled = with_transaction(ctx.store, body)
    if settled:
        logger.info(
            "Settlement committed",
            extra={
                "offer_id": offer.offer_id,
                "transfer_id": transfer.transfer_id,
                "shares": transfer.share_count,
                "transfer_type": transfer.transfer_type.value,
            },
        )
        notices.notify_safely(ctx.notifier, notices.trade_completed(offer, transfer))
    return transfer


def transfer_history(
    ctx: EngineContext,
    principal: Principal,
    *,
    status: Optional[TransferStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page[TransferRecord]:
    rows = read_snapshot(ctx.store, lambda tx: transfers_for_user(tx, principal.user_id, status=status))
    return paginate(rows, page, limit)


def get_transfer_for(ctx: EngineContext, principal: Principal, transfer_id: str) -> TransferRecord:
    record = read_snapshot(ctx.store, lambda tx: get_transfer(tx, transfer_id))
    if record is None:
        raise NotFound(f"Transfer {transfer_id} not found")
    if principal.user_id not in (record.from_user_id, record.to_user_id) and not principal.is_admin:
        raise AuthorizationError("You are not a party to this transfer")
    return record


__all__ = [
    "SettlementTerms",
    "settle",
    "existing_transfer",
    "transfer_type_for",
    "confirm_payment",
    "transfer_history",
    "get_transfer_for",
]

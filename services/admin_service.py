"""
Admin mediation.

Operators intervene on stuck or disputed trades. Every mutation here:
- requires an administrator principal and a reason,
- reuses the offer state machine and the settlement primitive, so operator
  authority never creates or destroys inventory,
- appends exactly one AuditEntry in the same transaction as the change
  (delete writes its entry first, in its own transaction, then removes the row).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from domain.audit import AuditAction, AuditEntry, TargetKind
from domain.errors import ConflictError, ShareExchangeError, StateError, ValidationError
from domain.identifiers import new_audit_id
from domain.offer import (
    AdminCancellation,
    AdminForcedCompletion,
    DisputeDecision,
    DisputeKind,
    DisputeRecord,
    Offer,
    OfferStatus,
    RefundRecord,
)
from domain.transfer import TransferRecord, VerificationMethod
from repositories.audit_repository import append_entry, entries_for_target, search_entries
from repositories.offer_repository import delete_offer as remove_offer
from repositories.offer_repository import get_offer, list_offers, save_offer
from repositories.store import Transaction, read_snapshot, with_transaction
from services import notification_service as notices
from services.context import EngineContext, Principal, require_admin
from services.offer_service import load_listing, load_offer
from services.pagination import DEFAULT_LIMIT, Page, paginate
from services.settlement_service import SettlementTerms, existing_transfer, settle

logger = logging.getLogger(__name__)

MEDIATION_REFUND_SHARE = Decimal("0.5")
DELETABLE_STATUSES = frozenset({OfferStatus.CANCELLED, OfferStatus.PAYMENT_FAILED})


@dataclass(frozen=True, slots=True)
class BulkFailure:
    offer_id: str
    error: str
    code: str


@dataclass(frozen=True)
class BulkResult:
    batch_id: str
    succeeded: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)


def _require_reason(reason: Optional[str]) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("reason is required")
    return reason.strip()


def _audit(
    tx: Transaction,
    principal: Principal,
    action: AuditAction,
    offer_id: str,
    reason: str,
    now: datetime,
    details: Optional[Dict[str, Any]] = None,
    batch_id: Optional[str] = None,
) -> AuditEntry:
    entry = AuditEntry(
        entry_id=new_audit_id(now),
        admin_id=principal.user_id,
        action=action,
        target_kind=TargetKind.OFFER,
        target_id=offer_id,
        reason=reason,
        at=now,
        details=details or {},
        batch_id=batch_id,
    )
    append_entry(tx, entry)
    return entry


def _refund_record(offer: Offer, amount: Optional[Decimal], reason: str, by: str, now: datetime,
                   method: Optional[str] = None) -> RefundRecord:
    value = offer.total_price if amount is None else amount
    if value < 0 or value > offer.total_price:
        raise ValidationError(
            "refund amount must be between 0 and the offer total",
            details={"amount": str(value), "total_price": str(offer.total_price)},
        )
    return RefundRecord(amount=value, currency=offer.currency, reason=reason, by=by, at=now, method=method)


def _forced_terms(principal: Principal, reason: str, now: datetime,
                  notes: Optional[str] = None, proof: Optional[str] = None) -> SettlementTerms:
    return SettlementTerms(
        verified_by=principal.user_id,
        method=VerificationMethod.ADMIN_FORCED,
        proof=proof or reason,
        forced=AdminForcedCompletion(by=principal.user_id, reason=reason, at=now, notes=notes, proof=proof),
        notes=notes,
    )


# ---------------------------------------------------------------------------
# Force-complete
# ---------------------------------------------------------------------------


def force_complete(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    reason: str,
    *,
    notes: Optional[str] = None,
    proof: Optional[str] = None,
    batch_id: Optional[str] = None,
    strict: bool = False,
) -> TransferRecord:
    """
    Settle a stuck in-payment offer without the seller's confirmation.

    Follows exactly the settlement path (transfer type admin_forced_sale) and
    fails the same way when the seller cannot cover the trade. A completed
    offer returns its existing transfer, or raises ConflictError when `strict`.
    """

    require_admin(principal)
    reason = _require_reason(reason)

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.status is OfferStatus.COMPLETED:
            if strict:
                raise ConflictError(f"Offer {offer_id} is already completed")
            return offer, existing_transfer(tx, offer), False
        if offer.status is not OfferStatus.IN_PAYMENT:
            raise StateError(f"Only offers in payment can be force-completed; offer is {offer.status.value}")

        completed, transfer = settle(tx, offer, _forced_terms(principal, reason, now, notes, proof), now)
        _audit(
            tx,
            principal,
            AuditAction.FORCE_COMPLETE,
            offer_id,
            reason,
            now,
            {
                "transfer_id": transfer.transfer_id,
                "shares": transfer.share_count,
                "total_price": str(transfer.total_price),
                "notes": notes,
            },
            batch_id,
        )
        return completed, transfer, True

    offer, transfer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info(
            "Offer force-completed",
            extra={"offer_id": offer_id, "admin_id": principal.user_id, "transfer_id": transfer.transfer_id},
        )
        notices.notify_safely(ctx.notifier, notices.admin_outcome(offer, "completed", reason))
    return transfer


# ---------------------------------------------------------------------------
# Cancel / delete / refund
# ---------------------------------------------------------------------------


def cancel_offer(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    reason: str,
    *,
    refund_buyer: bool = False,
    refund_amount: Optional[Decimal] = None,
    batch_id: Optional[str] = None,
) -> Offer:
    """
    Cancel any offer that is not completed. An already cancelled offer is
    returned unchanged. With `refund_buyer`, a refund record (full total unless
    `refund_amount` is given) is attached; no funds move.
    """

    require_admin(principal)
    reason = _require_reason(reason)

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.status is OfferStatus.COMPLETED:
            raise StateError("Cannot cancel a completed offer")
        if offer.status is OfferStatus.CANCELLED:
            return offer, False

        updated = offer
        if refund_buyer:
            updated = updated.with_refund(_refund_record(offer, refund_amount, reason, principal.user_id, now))
        updated = updated.cancelled(now, reason, AdminCancellation(by=principal.user_id, reason=reason, at=now))
        save_offer(tx, updated)
        _audit(
            tx,
            principal,
            AuditAction.CANCEL,
            offer_id,
            reason,
            now,
            {
                "previous_status": offer.status.value,
                "refund_amount": str(updated.refund.amount) if updated.refund else None,
            },
            batch_id,
        )
        return updated, True

    offer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info("Offer cancelled by admin", extra={"offer_id": offer_id, "admin_id": principal.user_id})
        notices.notify_safely(ctx.notifier, notices.admin_outcome(offer, "cancelled", reason))
    return offer


def delete_offer(ctx: EngineContext, principal: Principal, offer_id: str, *, confirm: bool, reason: str) -> None:
    """
    Permanently remove a cancelled or payment-failed offer.

    The audit entry is committed before the row is removed, so the record of
    the deletion survives even if the second step fails.
    """

    require_admin(principal)
    operator_reason = _require_reason(reason)
    if not confirm:
        raise ValidationError("Deletion must be confirmed")

    def record(tx: Transaction) -> None:
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.status not in DELETABLE_STATUSES:
            raise ConflictError(
                f"Only cancelled or failed offers can be deleted; offer is {offer.status.value}",
                details={"status": offer.status.value},
            )
        _audit(
            tx,
            principal,
            AuditAction.DELETE,
            offer_id,
            f"Deleted transaction {offer_id}",
            now,
            {
                "operator_reason": operator_reason,
                "status": offer.status.value,
                "buyer_id": offer.buyer_id,
                "seller_id": offer.seller_id,
                "shares": offer.shares,
                "total_price": str(offer.total_price),
                "currency": offer.currency.value,
            },
        )

    def remove(tx: Transaction) -> None:
        offer = get_offer(tx, offer_id)
        if offer is None:
            return
        if offer.status not in DELETABLE_STATUSES:
            raise ConflictError(f"Offer {offer_id} changed to {offer.status.value} before it could be deleted")
        remove_offer(tx, offer_id)

    with_transaction(ctx.store, record)
    with_transaction(ctx.store, remove)
    logger.info("Offer deleted", extra={"offer_id": offer_id, "admin_id": principal.user_id})


def refund_offer(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    reason: str,
    *,
    amount: Optional[Decimal] = None,
    method: Optional[str] = None,
) -> Offer:
    """
    Record that the buyer is owed a refund (full total unless `amount`).

    Repeating the same amount is a no-op; a different amount is a ConflictError.
    """

    require_admin(principal)
    reason = _require_reason(reason)

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        refunded = offer.with_refund(_refund_record(offer, amount, reason, principal.user_id, now, method))
        if refunded is offer:
            return offer, False
        save_offer(tx, refunded)
        _audit(
            tx,
            principal,
            AuditAction.REFUND,
            offer_id,
            reason,
            now,
            {"amount": str(refunded.refund.amount), "currency": offer.currency.value, "method": method},
        )
        return refunded, True

    offer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info(
            "Refund recorded",
            extra={"offer_id": offer_id, "admin_id": principal.user_id, "amount": str(offer.refund.amount)},
        )
    return offer


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


def _open_dispute(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    reason: str,
    notes: Optional[str],
    kind: DisputeKind,
    action: AuditAction,
) -> Offer:
    require_admin(principal)
    reason = _require_reason(reason)

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.status is OfferStatus.DISPUTED:
            return offer, False
        disputed = offer.disputed(
            DisputeRecord(kind=kind, raised_by=principal.user_id, reason=reason, raised_at=now, notes=notes)
        )
        save_offer(tx, disputed)
        _audit(tx, principal, action, offer_id, reason, now, {"previous_status": offer.status.value, "notes": notes})
        return disputed, True

    offer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info("Offer disputed", extra={"offer_id": offer_id, "kind": kind.value, "admin_id": principal.user_id})
    return offer


def flag_stuck(ctx: EngineContext, principal: Principal, offer_id: str, reason: str, notes: Optional[str] = None) -> Offer:
    return _open_dispute(ctx, principal, offer_id, reason, notes, DisputeKind.FLAG, AuditAction.FLAG_STUCK)


def create_dispute(
    ctx: EngineContext, principal: Principal, offer_id: str, reason: str, notes: Optional[str] = None
) -> Offer:
    return _open_dispute(ctx, principal, offer_id, reason, notes, DisputeKind.DISPUTE, AuditAction.CREATE_DISPUTE)


def resolve_dispute(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    decision: DisputeDecision,
    *,
    notes: Optional[str] = None,
    reason: Optional[str] = None,
) -> Offer:
    """
    Close a dispute.

    award_seller  settle as a force-complete (shares move)
    mediation     settle, plus a refund record for half the total
    award_buyer   cancel with a full refund record
    refund        cancel with a full refund record
    """

    require_admin(principal)
    reason = reason.strip() if reason and reason.strip() else f"Dispute resolved: {decision.value}"

    def body(tx: Transaction):
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if offer.dispute is not None and offer.dispute.decision is decision and offer.is_terminal:
            return offer, False
        resolved = offer.with_resolution(decision, principal.user_id, now, notes)

        details: Dict[str, Any] = {"decision": decision.value, "notes": notes}
        if decision.moves_shares:
            updated, transfer = settle(tx, resolved, _forced_terms(principal, reason, now, notes), now)
            details["transfer_id"] = transfer.transfer_id
            if decision is DisputeDecision.MEDIATION:
                amount = (offer.total_price * MEDIATION_REFUND_SHARE).quantize(Decimal("0.01"))
                updated = updated.with_refund(_refund_record(offer, amount, reason, principal.user_id, now))
                save_offer(tx, updated)
        else:
            updated = resolved.with_refund(_refund_record(offer, None, reason, principal.user_id, now))
            updated = updated.cancelled(now, reason, AdminCancellation(by=principal.user_id, reason=reason, at=now))
            save_offer(tx, updated)
        if updated.refund is not None:
            details["refund_amount"] = str(updated.refund.amount)

        _audit(tx, principal, AuditAction.RESOLVE_DISPUTE, offer_id, reason, now, details)
        return updated, True

    offer, changed = with_transaction(ctx.store, body)
    if changed:
        logger.info(
            "Dispute resolved",
            extra={"offer_id": offer_id, "decision": decision.value, "admin_id": principal.user_id},
        )
        outcome = "completed" if offer.status is OfferStatus.COMPLETED else "cancelled"
        notices.notify_safely(ctx.notifier, notices.admin_outcome(offer, outcome, reason))
    return offer


# ---------------------------------------------------------------------------
# Status override
# ---------------------------------------------------------------------------


def update_status(
    ctx: EngineContext,
    principal: Principal,
    offer_id: str,
    new_status: OfferStatus,
    reason: str,
) -> Offer:
    """
    Move an offer to `new_status`.

    Terminal and dispute targets go through their dedicated paths so that the
    same invariants apply. ACCEPTED sets a fresh payment deadline and requires a
    transactable listing. A disputed offer only leaves dispute through
    `resolve_dispute`; other targets are plain status changes.
    """

    require_admin(principal)
    reason = _require_reason(reason)

    if new_status is OfferStatus.COMPLETED:
        force_complete(ctx, principal, offer_id, reason)
        return read_snapshot(ctx.store, lambda tx: load_offer(tx, offer_id))
    if new_status is OfferStatus.CANCELLED:
        return cancel_offer(ctx, principal, offer_id, reason)
    if new_status is OfferStatus.DISPUTED:
        return flag_stuck(ctx, principal, offer_id, reason)

    def body(tx: Transaction) -> Offer:
        now = ctx.now()
        offer = load_offer(tx, offer_id)
        if new_status is OfferStatus.ACCEPTED and offer.status is not OfferStatus.DISPUTED and not offer.is_terminal:
            listing = load_listing(tx, offer.listing_id)
            if not listing.is_transactable(now):
                raise StateError(f"Listing is {listing.effective_status(now).value}; the offer cannot be accepted")
            if offer.status is OfferStatus.PENDING:
                updated = offer.accepted(now, ctx.settings.payment_window)
            else:
                updated = offer.reopened(now, ctx.settings.payment_window)
        else:
            updated = offer.with_status(new_status)
        save_offer(tx, updated)
        _audit(
            tx,
            principal,
            AuditAction.UPDATE_STATUS,
            offer_id,
            reason,
            now,
            {"from": offer.status.value, "to": new_status.value},
        )
        return updated

    offer = with_transaction(ctx.store, body)
    logger.info("Offer status updated", extra={"offer_id": offer_id, "status": new_status.value})
    return offer


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------


def _bulk(offer_ids: Sequence[str], apply: Callable[[str, str], Any]) -> BulkResult:
    if not offer_ids:
        raise ValidationError("offer_ids must not be empty")
    result = BulkResult(batch_id=str(uuid4()))
    for offer_id in dict.fromkeys(offer_ids):
        try:
            apply(offer_id, result.batch_id)
        except ShareExchangeError as exc:
            result.failed.append(BulkFailure(offer_id=offer_id, error=exc.message, code=exc.code))
        else:
            result.succeeded.append(offer_id)
    logger.info(
        "Bulk operation finished",
        extra={"batch_id": result.batch_id, "succeeded": len(result.succeeded), "failed": len(result.failed)},
    )
    return result


def bulk_complete(ctx: EngineContext, principal: Principal, offer_ids: Sequence[str], reason: str) -> BulkResult:
    """Force-complete each offer in its own transaction; an already completed offer is a failure."""

    require_admin(principal)
    reason = _require_reason(reason)
    return _bulk(
        offer_ids,
        lambda offer_id, batch: force_complete(ctx, principal, offer_id, reason, batch_id=batch, strict=True),
    )


def bulk_cancel(ctx: EngineContext, principal: Principal, offer_ids: Sequence[str], reason: str) -> BulkResult:
    require_admin(principal)
    reason = _require_reason(reason)
    return _bulk(
        offer_ids,
        lambda offer_id, batch: cancel_offer(ctx, principal, offer_id, reason, batch_id=batch),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def audit_log(
    ctx: EngineContext,
    principal: Principal,
    *,
    offer_id: Optional[str] = None,
    admin_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page[AuditEntry]:
    """Entries for one offer (oldest first), or a filtered global search (newest first)."""

    require_admin(principal)
    if offer_id is not None:
        rows = read_snapshot(ctx.store, lambda tx: entries_for_target(tx, offer_id))
    else:
        rows = read_snapshot(
            ctx.store,
            lambda tx: search_entries(tx, admin_id=admin_id, action=action, since=since, until=until),
        )
    return paginate(rows, page, limit)


def all_offers(
    ctx: EngineContext,
    principal: Principal,
    *,
    status: Optional[OfferStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page[Offer]:
    require_admin(principal)
    rows = read_snapshot(ctx.store, lambda tx: list_offers(tx, status=status))
    return paginate(rows, page, limit)


__all__ = [
    "BulkFailure",
    "BulkResult",
    "force_complete",
    "cancel_offer",
    "delete_offer",
    "refund_offer",
    "flag_stuck",
    "create_dispute",
    "resolve_dispute",
    "update_status",
    "bulk_complete",
    "bulk_cancel",
    "audit_log",
    "all_offers",
]

"""
Domain: purchase offers and their protocol state machine.

    pending --accept--> accepted --submit payment--> in_payment --confirm--> completed
       |                    |                            |
       |                    +--deadline--> cancelled     +--force-complete--> completed
       +--decline/expire/listing cancel--> cancelled     +--admin cancel--> cancelled
                                                         +--flag/dispute--> disputed
    disputed --resolve--> completed | cancelled

Transitions are pure: each returns a new Offer or raises. Authorization, timers
that depend on configuration, and persistence live in the services.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional, Union

from .errors import ConflictError, DeadlineError, StateError, ValidationError
from .listing import ListingKind
from .shares import Currency, PaymentMethod, ShareClass
from .time import require_optional_utc, require_utc_timestamp


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PAYMENT = "in_payment"
    PAYMENT_FAILED = "payment_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"

    @property
    def is_terminal(self) -> bool:
        return self in (OfferStatus.COMPLETED, OfferStatus.CANCELLED)


# Statuses from which an administrator may still move shares or open a dispute.
MEDIABLE_STATUSES = frozenset(
    {OfferStatus.PENDING, OfferStatus.ACCEPTED, OfferStatus.IN_PAYMENT, OfferStatus.PAYMENT_FAILED}
)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ShareTransferStatus(str, Enum):
    PENDING = "pending"
    TRANSFERRED = "transferred"
    FAILED = "failed"


class DisputeKind(str, Enum):
    FLAG = "flag"  # operator flagged a stuck trade
    DISPUTE = "dispute"


class DisputeDecision(str, Enum):
    AWARD_BUYER = "award_buyer"
    AWARD_SELLER = "award_seller"
    MEDIATION = "mediation"
    REFUND = "refund"

    @property
    def moves_shares(self) -> bool:
        return self in (DisputeDecision.AWARD_SELLER, DisputeDecision.MEDIATION)


# ---------------------------------------------------------------------------
# Payment details: one variant per payment method, validated once at the boundary.
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BankTransferDetails:
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    bank_name: Optional[str] = None
    amount: Optional[Decimal] = None
    sent_at: Optional[datetime] = None
    method: Literal["bank_transfer"] = "bank_transfer"


@dataclass(frozen=True, slots=True)
class CryptoTransferDetails:
    tx_hash: str
    network: str
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    amount: Optional[Decimal] = None
    gas_used: Optional[str] = None
    sent_at: Optional[datetime] = None
    method: Literal["crypto"] = "crypto"

    def __post_init__(self) -> None:
        if not self.tx_hash.strip():
            raise ValueError("tx_hash is required for crypto transfers")


@dataclass(frozen=True, slots=True)
class WalletTransferDetails:
    from_wallet: Optional[str] = None
    to_wallet: Optional[str] = None
    network: Optional[str] = None
    reference: Optional[str] = None
    amount: Optional[Decimal] = None
    sent_at: Optional[datetime] = None
    method: Literal["wallet_transfer"] = "wallet_transfer"


@dataclass(frozen=True, slots=True)
class OtcDirectDetails:
    note: Optional[str] = None
    method: Literal["otc_direct"] = "otc_direct"


PaymentDetails = Union[BankTransferDetails, CryptoTransferDetails, WalletTransferDetails, OtcDirectDetails]


@dataclass(frozen=True, slots=True)
class ProofRef:
    """Opaque handle to an uploaded payment-proof blob."""

    id: str
    url: str
    size: int
    format: str
    uploaded_at: datetime
    original_name: Optional[str] = None


# ---------------------------------------------------------------------------
# Administrative stamps
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AdminForcedCompletion:
    by: str
    reason: str
    at: datetime
    notes: Optional[str] = None
    proof: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AdminCancellation:
    by: str
    reason: str
    at: datetime


@dataclass(frozen=True, slots=True)
class RefundRecord:
    """
    Information-only record of money owed back to the buyer.

    The engine never moves funds; this captures what operators agreed to refund.
    """

    amount: Decimal
    currency: Currency
    reason: str
    by: str
    at: datetime
    method: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("refund amount must be >= 0")


@dataclass(frozen=True, slots=True)
class DisputeRecord:
    kind: DisputeKind
    raised_by: str
    reason: str
    raised_at: datetime
    notes: Optional[str] = None
    previous_status: Optional[OfferStatus] = None
    decision: Optional[DisputeDecision] = None
    resolution_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.decision is not None


# ---------------------------------------------------------------------------
# Offer
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Offer:
    offer_id: str
    listing_id: str
    listing_kind: ListingKind
    seller_id: str
    buyer_id: str
    share_class: ShareClass
    shares: int
    price_per_share: Decimal
    currency: Currency
    total_price: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    expires_at: datetime
    tier: Optional[str] = None
    status: OfferStatus = OfferStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transfer_status: ShareTransferStatus = ShareTransferStatus.PENDING
    buyer_note: Optional[str] = None
    seller_note: Optional[str] = None
    transaction_reference: Optional[str] = None
    payment_details: Optional[PaymentDetails] = None
    payment_proof: Optional[ProofRef] = None
    accepted_at: Optional[datetime] = None
    payment_deadline: Optional[datetime] = None
    payment_submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    transfer_id: Optional[str] = None
    admin_forced: Optional[AdminForcedCompletion] = None
    admin_cancellation: Optional[AdminCancellation] = None
    dispute: Optional[DisputeRecord] = None
    refund: Optional[RefundRecord] = None

    def __post_init__(self) -> None:
        for name in ("created_at", "expires_at"):
            require_utc_timestamp(name, getattr(self, name))
        for name in ("accepted_at", "payment_deadline", "payment_submitted_at", "completed_at", "cancelled_at"):
            require_optional_utc(name, getattr(self, name))
        if self.seller_id == self.buyer_id:
            raise ValueError("seller_id and buyer_id must differ")
        if self.shares < 1:
            raise ValueError("shares must be >= 1")
        if self.total_price != self.shares * self.price_per_share:
            raise ValueError("total_price must equal shares * price_per_share")
        if self.completed_at is not None and self.cancelled_at is not None:
            raise ValueError("an offer cannot be both completed and cancelled")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def refunded(self) -> bool:
        return self.refund is not None

    def is_pending_expired(self, now: datetime) -> bool:
        return self.status is OfferStatus.PENDING and now > self.expires_at

    def is_payment_overdue(self, now: datetime) -> bool:
        return (
            self.status is OfferStatus.ACCEPTED
            and self.payment_deadline is not None
            and now > self.payment_deadline
        )

    def direction_for(self, user_id: str) -> str:
        return "sent" if self.buyer_id == user_id else "received"

    # -- transitions -------------------------------------------------------

    def accepted(self, now: datetime, payment_window: timedelta, note: Optional[str] = None) -> "Offer":
        if self.status is not OfferStatus.PENDING:
            raise StateError(f"Offer already {self.status.value}")
        if self.is_pending_expired(now):
            raise DeadlineError("Offer has expired and can no longer be accepted")
        return replace(
            self,
            status=OfferStatus.ACCEPTED,
            accepted_at=now,
            payment_deadline=now + payment_window,
            seller_note=note if note is not None else self.seller_note,
        )

    def with_payment(
        self,
        now: datetime,
        reference: str,
        details: Optional[PaymentDetails] = None,
        proof: Optional[ProofRef] = None,
    ) -> "Offer":
        """
        Record the buyer's payment attestation.

        Allowed while accepted or in_payment (last writer wins on the payment
        fields) and never after the payment deadline.
        """

        if self.status not in (OfferStatus.ACCEPTED, OfferStatus.IN_PAYMENT):
            raise StateError("Offer must be accepted before payment")
        if self.payment_deadline is not None and now > self.payment_deadline:
            raise DeadlineError("Payment deadline has passed")
        if not reference or not reference.strip():
            raise ValidationError("transaction_reference is required")
        if details is not None and details.method != self.payment_method.value:
            raise ValidationError(
                f"Payment details for {details.method!r} do not match offer method {self.payment_method.value!r}"
            )
        return replace(
            self,
            status=OfferStatus.IN_PAYMENT,
            payment_status=PaymentStatus.PROCESSING,
            transaction_reference=reference.strip(),
            payment_details=details,
            payment_proof=proof if proof is not None else self.payment_proof,
            payment_submitted_at=now,
        )

    def completed(
        self,
        now: datetime,
        transfer_id: str,
        forced: Optional[AdminForcedCompletion] = None,
    ) -> "Offer":
        if self.is_terminal:
            raise StateError(f"Cannot complete a {self.status.value} offer")
        return replace(
            self,
            status=OfferStatus.COMPLETED,
            payment_status=PaymentStatus.COMPLETED,
            transfer_status=ShareTransferStatus.TRANSFERRED,
            completed_at=now,
            transfer_id=transfer_id,
            admin_forced=forced if forced is not None else self.admin_forced,
        )

    def cancelled(
        self,
        now: datetime,
        reason: str,
        by_admin: Optional[AdminCancellation] = None,
    ) -> "Offer":
        if self.status is OfferStatus.COMPLETED:
            raise StateError("Cannot cancel a completed offer")
        if self.status is OfferStatus.CANCELLED:
            return self
        payment_status = self.payment_status
        if payment_status is PaymentStatus.PROCESSING:
            payment_status = PaymentStatus.FAILED
        return replace(
            self,
            status=OfferStatus.CANCELLED,
            payment_status=payment_status,
            cancelled_at=now,
            cancel_reason=reason,
            admin_cancellation=by_admin if by_admin is not None else self.admin_cancellation,
        )

    def disputed(self, record: DisputeRecord) -> "Offer":
        if self.status not in MEDIABLE_STATUSES:
            raise StateError(f"Cannot dispute a {self.status.value} offer")
        return replace(self, status=OfferStatus.DISPUTED, dispute=replace(record, previous_status=self.status))

    def with_resolution(
        self,
        decision: DisputeDecision,
        by: str,
        now: datetime,
        notes: Optional[str] = None,
    ) -> "Offer":
        if self.status is not OfferStatus.DISPUTED or self.dispute is None:
            raise StateError("Offer is not under dispute")
        resolved = replace(
            self.dispute,
            decision=decision,
            resolution_notes=notes,
            resolved_by=by,
            resolved_at=now,
        )
        return replace(self, dispute=resolved)

    def with_refund(self, record: RefundRecord) -> "Offer":
        """Attach refund metadata. Repeating the same amount is a no-op."""

        if self.refund is not None:
            if self.refund.amount == record.amount:
                return self
            raise ConflictError(
                f"Offer already refunded {self.refund.amount}; refusing a different amount {record.amount}",
                details={"existing": str(self.refund.amount), "requested": str(record.amount)},
            )
        payment_status = PaymentStatus.REFUNDED if record.amount >= self.total_price else self.payment_status
        return replace(self, refund=record, payment_status=payment_status)

    def reopened(self, now: datetime, payment_window: timedelta) -> "Offer":
        """Send an accepted or in-payment offer back to awaiting payment with a fresh deadline."""

        if self.status not in (OfferStatus.ACCEPTED, OfferStatus.IN_PAYMENT, OfferStatus.PAYMENT_FAILED):
            raise StateError(f"Offer is {self.status.value}; it cannot be sent back to awaiting payment")
        return replace(
            self,
            status=OfferStatus.ACCEPTED,
            payment_status=PaymentStatus.PENDING,
            accepted_at=self.accepted_at or now,
            payment_deadline=now + payment_window,
        )

    def with_status(self, status: OfferStatus) -> "Offer":
        """Administrative move between non-terminal, non-dispute states."""

        if self.is_terminal:
            raise ConflictError(f"Offer is {self.status.value}; status can no longer be changed")
        if self.status is OfferStatus.DISPUTED:
            raise StateError("Offer is disputed; close it through a dispute resolution")
        if status is OfferStatus.ACCEPTED:
            raise StateError("Acceptance needs a payment deadline; use accepted() or reopened()")
        changes = {"status": status}
        if status is OfferStatus.PAYMENT_FAILED:
            changes["payment_status"] = PaymentStatus.FAILED
        elif status is OfferStatus.IN_PAYMENT:
            changes["payment_status"] = PaymentStatus.PROCESSING
        elif status is OfferStatus.PENDING:
            changes["payment_status"] = PaymentStatus.PENDING
        return replace(self, **changes)


__all__ = [
    "OfferStatus",
    "PaymentStatus",
    "ShareTransferStatus",
    "DisputeKind",
    "DisputeDecision",
    "MEDIABLE_STATUSES",
    "BankTransferDetails",
    "CryptoTransferDetails",
    "WalletTransferDetails",
    "OtcDirectDetails",
    "PaymentDetails",
    "ProofRef",
    "AdminForcedCompletion",
    "AdminCancellation",
    "RefundRecord",
    "DisputeRecord",
    "Offer",
]

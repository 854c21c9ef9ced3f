"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Nested value objects (bank details, payment details, refund records, ...)
reuse the domain dataclasses directly.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import Base64Bytes, BaseModel, Field

from domain.audit import AuditEntry
from domain.inventory import BalanceSummary
from domain.listing import BankDetails, CryptoWallet, Listing, PercentageListing
from domain.offer import (
    AdminCancellation,
    AdminForcedCompletion,
    BankTransferDetails,
    CryptoTransferDetails,
    DisputeDecision,
    DisputeRecord,
    Offer,
    OfferStatus,
    OtcDirectDetails,
    ProofRef,
    RefundRecord,
    WalletTransferDetails,
)
from domain.shares import Currency, PaymentMethod, ShareClass, TierInfo
from domain.transfer import PaymentVerification, TransferRecord

PaymentDetailsModel = Annotated[
    Union[BankTransferDetails, CryptoTransferDetails, WalletTransferDetails, OtcDirectDetails],
    Field(discriminator="method"),
]


# ============================================================================
# Listing Models
# ============================================================================

class ListingTermsFields(BaseModel):
    """Fields shared by both listing requests."""
    currency: Currency
    payment_methods: List[PaymentMethod] = Field(..., min_length=1)
    bank_details: Optional[BankDetails] = None
    crypto_wallet: Optional[CryptoWallet] = None
    min_per_buy: int = Field(1, ge=1)
    max_per_buyer: Optional[int] = Field(None, ge=1)
    expires_in_days: Optional[int] = Field(None, ge=1, description="Defaults to DEFAULT_LISTING_DAYS")
    is_public: bool = True
    description: Optional[str] = Field(None, max_length=1000)


class CreateListingRequest(ListingTermsFields):
    """Request to publish a whole-share listing."""
    share_class: ShareClass
    shares: int = Field(..., ge=1)
    price_per_share: Decimal = Field(..., gt=0)

    class Config:
        json_schema_extra = {
            "example": {
                "share_class": "regular",
                "shares": 40,
                "price_per_share": "1000",
                "currency": "naira",
                "payment_methods": ["bank_transfer"],
                "bank_details": {
                    "account_name": "Ada Obi",
                    "account_number": "0123456789",
                    "bank_name": "First Bank"
                },
                "min_per_buy": 1,
                "expires_in_days": 30
            }
        }


class CreatePercentageListingRequest(ListingTermsFields):
    """Request to list a percentage of one's holdings in a tier."""
    tier: str = Field(..., min_length=1)
    percentage_of_holdings: Decimal = Field(..., gt=0, le=100)
    price_per_share: Optional[Decimal] = Field(None, gt=0, description="Defaults to the tier catalog price")
    share_class: Optional[ShareClass] = None

    class Config:
        json_schema_extra = {
            "example": {
                "tier": "premium",
                "percentage_of_holdings": "25",
                "currency": "usdt",
                "payment_methods": ["crypto"],
                "crypto_wallet": {"address": "0xabc...", "network": "BSC", "currency": "USDT"}
            }
        }


class CancelListingRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ListingResponse(BaseModel):
    """Listing with derived availability. Percentage fields are null for whole-share listings."""
    listing_id: str
    kind: str
    seller_id: str
    share_class: ShareClass
    tier: Optional[str] = None
    tier_name: Optional[str] = None
    total_shares: int
    sold_shares: int
    remaining: int
    price_per_share: Decimal
    total_price: Decimal
    currency: Currency
    payment_methods: List[PaymentMethod]
    min_per_buy: int
    max_per_buyer: Optional[int] = None
    bank_details: Optional[BankDetails] = None
    crypto_wallet: Optional[CryptoWallet] = None
    description: Optional[str] = None
    is_public: bool
    views: int
    status: str
    is_expired: bool
    created_at: datetime
    expires_at: datetime
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    percentage_of_holdings: Optional[Decimal] = None
    percentage_sold: Optional[Decimal] = None
    percentage_remaining: Optional[Decimal] = None
    total_shares_in_tier: Optional[int] = None
    percent_per_share: Optional[Decimal] = None

    @classmethod
    def from_listing(cls, listing: Listing, now: datetime) -> "ListingResponse":
        fields: Dict[str, Any] = {}
        if isinstance(listing, PercentageListing):
            fields = {
                "tier_name": listing.tier_name,
                "percentage_of_holdings": listing.percentage_of_holdings,
                "percentage_sold": listing.percentage_sold,
                "percentage_remaining": listing.percentage_remaining,
                "total_shares_in_tier": listing.total_shares_in_tier,
                "percent_per_share": listing.percent_per_share,
            }
        return cls(
            listing_id=listing.listing_id,
            kind=listing.kind,
            seller_id=listing.seller_id,
            share_class=listing.share_class,
            tier=listing.tier,
            total_shares=listing.total_shares,
            sold_shares=listing.sold_shares,
            remaining=listing.remaining,
            price_per_share=listing.price_per_share,
            total_price=listing.total_price,
            currency=listing.currency,
            payment_methods=list(listing.payment_methods),
            min_per_buy=listing.min_per_buy,
            max_per_buyer=listing.max_per_buyer,
            bank_details=listing.bank_details,
            crypto_wallet=listing.crypto_wallet,
            description=listing.description,
            is_public=listing.is_public,
            views=listing.views,
            status=listing.effective_status(now).value,
            is_expired=listing.is_expired(now),
            created_at=listing.created_at,
            expires_at=listing.expires_at,
            cancelled_at=listing.cancelled_at,
            cancel_reason=listing.cancel_reason,
            completed_at=listing.completed_at,
            **fields,
        )


class ListingPageResponse(BaseModel):
    items: List[ListingResponse]
    page: int
    limit: int
    total: int
    total_pages: int


# ============================================================================
# Offer Models
# ============================================================================

class CreateOfferRequest(BaseModel):
    """Offer on a listing. Give `shares`, or `percentage` (of a percentage listing)."""
    listing_id: str
    payment_method: PaymentMethod
    shares: Optional[int] = Field(None, ge=1)
    percentage: Optional[Decimal] = Field(None, gt=0, le=100)
    buyer_note: Optional[str] = Field(None, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "listing_id": "LST-1A2B3C4D-123456",
                "payment_method": "bank_transfer",
                "shares": 40,
                "buyer_note": "Ready to pay today"
            }
        }


class NoteRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ProofUploadModel(BaseModel):
    content: Base64Bytes = Field(..., description="Base64-encoded proof image or PDF")
    content_type: str = Field(..., description="image/png, image/jpeg, image/webp or application/pdf")
    filename: Optional[str] = None


class SubmitPaymentRequest(BaseModel):
    transaction_reference: str = Field(..., min_length=1)
    payment_details: Optional[PaymentDetailsModel] = None
    proof: Optional[ProofUploadModel] = None

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_reference": "FBN-2025-000123",
                "payment_details": {"method": "bank_transfer", "bank_name": "First Bank", "amount": "40000"}
            }
        }


class OfferResponse(BaseModel):
    offer_id: str
    listing_id: str
    listing_kind: str
    type: str  # "sent" or "received", from the caller's point of view
    seller_id: str
    buyer_id: str
    share_class: ShareClass
    tier: Optional[str] = None
    shares: int
    price_per_share: Decimal
    total_price: Decimal
    currency: Currency
    payment_method: PaymentMethod
    status: OfferStatus
    payment_status: str
    transfer_status: str
    is_expired: bool
    payment_overdue: bool
    buyer_note: Optional[str] = None
    seller_note: Optional[str] = None
    transaction_reference: Optional[str] = None
    payment_details: Optional[PaymentDetailsModel] = None
    payment_proof: Optional[ProofRef] = None
    created_at: datetime
    expires_at: datetime
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
    refunded: bool

    @classmethod
    def from_offer(cls, offer: Offer, viewer_id: str, now: datetime) -> "OfferResponse":
        return cls(
            offer_id=offer.offer_id,
            listing_id=offer.listing_id,
            listing_kind=offer.listing_kind.value,
            type=offer.direction_for(viewer_id),
            seller_id=offer.seller_id,
            buyer_id=offer.buyer_id,
            share_class=offer.share_class,
            tier=offer.tier,
            shares=offer.shares,
            price_per_share=offer.price_per_share,
            total_price=offer.total_price,
            currency=offer.currency,
            payment_method=offer.payment_method,
            status=offer.status,
            payment_status=offer.payment_status.value,
            transfer_status=offer.transfer_status.value,
            is_expired=offer.is_pending_expired(now),
            payment_overdue=offer.is_payment_overdue(now),
            buyer_note=offer.buyer_note,
            seller_note=offer.seller_note,
            transaction_reference=offer.transaction_reference,
            payment_details=offer.payment_details,
            payment_proof=offer.payment_proof,
            created_at=offer.created_at,
            expires_at=offer.expires_at,
            accepted_at=offer.accepted_at,
            payment_deadline=offer.payment_deadline,
            payment_submitted_at=offer.payment_submitted_at,
            completed_at=offer.completed_at,
            cancelled_at=offer.cancelled_at,
            cancel_reason=offer.cancel_reason,
            transfer_id=offer.transfer_id,
            admin_forced=offer.admin_forced,
            admin_cancellation=offer.admin_cancellation,
            dispute=offer.dispute,
            refund=offer.refund,
            refunded=offer.refunded,
        )


class OfferPageResponse(BaseModel):
    items: List[OfferResponse]
    page: int
    limit: int
    total: int
    total_pages: int


# ============================================================================
# Transfer / Balance Models
# ============================================================================

class TransferResponse(BaseModel):
    transfer_id: str
    direction: str  # "sent" or "received", from the caller's point of view
    from_user_id: str
    to_user_id: str
    share_class: ShareClass
    tier: Optional[str] = None
    share_count: int
    price_per_share: Decimal
    total_price: Decimal
    currency: Currency
    offer_id: str
    listing_id: str
    transfer_type: str
    status: str
    payment_verified: bool
    verification: PaymentVerification
    created_at: datetime
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_record(cls, record: TransferRecord, viewer_id: str) -> "TransferResponse":
        return cls(
            transfer_id=record.transfer_id,
            direction=record.direction_for(viewer_id),
            from_user_id=record.from_user_id,
            to_user_id=record.to_user_id,
            share_class=record.share_class,
            tier=record.tier,
            share_count=record.share_count,
            price_per_share=record.price_per_share,
            total_price=record.total_price,
            currency=record.currency,
            offer_id=record.offer_id,
            listing_id=record.listing_id,
            transfer_type=record.transfer_type.value,
            status=record.status.value,
            payment_verified=record.payment_verified,
            verification=record.verification,
            created_at=record.created_at,
            completed_at=record.completed_at,
            notes=record.notes,
        )


class TransferPageResponse(BaseModel):
    items: List[TransferResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class BalanceResponse(BaseModel):
    share_class: ShareClass
    tier: Optional[str] = None
    available: int
    listed: int
    sellable: int

    @classmethod
    def from_summary(cls, summary: BalanceSummary) -> "BalanceResponse":
        return cls(
            share_class=summary.share_class,
            tier=summary.tier,
            available=summary.available,
            listed=summary.listed,
            sellable=summary.sellable,
        )


class TierResponse(BaseModel):
    tier: str
    name: str
    share_class: ShareClass
    price_usd: Decimal
    price_ngn: Decimal
    percent_per_share: Decimal

    @classmethod
    def from_tier(cls, info: TierInfo) -> "TierResponse":
        return cls(
            tier=info.tier,
            name=info.name,
            share_class=info.share_class,
            price_usd=info.price_usd,
            price_ngn=info.price_ngn,
            percent_per_share=info.percent_per_share,
        )


# ============================================================================
# Admin Models
# ============================================================================

class ForceCompleteRequest(BaseModel):
    reason: str = Field(..., description="Required; recorded in the audit log")
    notes: Optional[str] = None
    proof: Optional[str] = Field(None, description="Reference to the evidence reviewed")

    class Config:
        json_schema_extra = {
            "example": {"reason": "bank statement verified", "notes": "Buyer sent statement by email"}
        }


class AdminCancelRequest(BaseModel):
    reason: str
    refund_buyer: bool = False
    refund_amount: Optional[Decimal] = Field(None, ge=0)


class DeleteOfferRequest(BaseModel):
    reason: str
    confirm: bool = False


class RefundRequest(BaseModel):
    reason: str
    amount: Optional[Decimal] = Field(None, ge=0, description="Defaults to the offer total")
    method: Optional[str] = None


class DisputeRequest(BaseModel):
    reason: str
    notes: Optional[str] = None


class ResolveDisputeRequest(BaseModel):
    decision: DisputeDecision
    notes: Optional[str] = None
    reason: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    status: OfferStatus
    reason: str


class BulkRequest(BaseModel):
    offer_ids: List[str] = Field(..., min_length=1)
    reason: str


class BulkFailureResponse(BaseModel):
    offer_id: str
    error: str
    code: str


class BulkResponse(BaseModel):
    batch_id: str
    succeeded: List[str]
    failed: List[BulkFailureResponse]


class AuditPageResponse(BaseModel):
    items: List[AuditEntry]
    page: int
    limit: int
    total: int
    total_pages: int


class StuckOfferResponse(BaseModel):
    offer_id: str
    buyer_id: str
    seller_id: str
    shares: int
    total_price: Decimal
    currency: str
    accepted_at: datetime
    hours_stuck: float


class DashboardResponse(BaseModel):
    generated_at: datetime
    offers_by_status: Dict[str, int]
    listings_by_status: Dict[str, int]
    completed_value_by_currency: Dict[str, Decimal]
    refunded_value_by_currency: Dict[str, Decimal]
    transfers_completed: int
    shares_transferred: int
    forced_completions: int
    open_disputes: int
    stuck: List[StuckOfferResponse]


class DailyRollupResponse(BaseModel):
    day: date
    offers_created: int
    offers_completed: int
    offers_cancelled: int
    shares_transferred: int
    value_by_currency: Dict[str, Decimal]


class SweepResponse(BaseModel):
    offers_expired: List[str]
    payments_lapsed: List[str]
    listings_expired: List[str]
    failed: List[str]

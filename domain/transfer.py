"""
Domain: share transfer records.

A TransferRecord is immutable proof that shares moved from one user to another.
Settlement creates it in_progress and finalizes it to completed inside the same
transaction, so only completed records are ever visible after commit.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .shares import Currency, ShareClass
from .time import require_optional_utc, require_utc_timestamp


class TransferType(str, Enum):
    SALE = "sale"
    PERCENTAGE_SALE = "percentage_sale"
    ADMIN_FORCED_SALE = "admin_forced_sale"
    GIFT = "gift"
    INHERITANCE = "inheritance"
    ADMIN_TRANSFER = "admin_transfer"
    CO_FOUNDER_TRADE = "co_founder_trade"


class TransferStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class VerificationMethod(str, Enum):
    MANUAL_REVIEW = "manual_review"
    ADMIN_FORCED = "admin_forced"


@dataclass(frozen=True, slots=True)
class PaymentVerification:
    by: str
    method: VerificationMethod
    proof: str
    at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("at", self.at)


@dataclass(frozen=True, slots=True)
class TransferRecord:
    transfer_id: str
    from_user_id: str
    to_user_id: str
    share_class: ShareClass
    share_count: int
    price_per_share: Decimal
    total_price: Decimal
    currency: Currency
    offer_id: str
    listing_id: str
    transfer_type: TransferType
    status: TransferStatus
    payment_verified: bool
    verification: PaymentVerification
    created_at: datetime
    tier: Optional[str] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc("completed_at", self.completed_at)
        if self.share_count < 1:
            raise ValueError("share_count must be >= 1")
        if self.from_user_id == self.to_user_id:
            raise ValueError("a transfer must move shares between two different users")

    @property
    def is_completed(self) -> bool:
        return self.status is TransferStatus.COMPLETED

    def completed(self, now: datetime) -> "TransferRecord":
        if self.status is not TransferStatus.IN_PROGRESS:
            raise ValueError(f"cannot complete a {self.status.value} transfer")
        return replace(self, status=TransferStatus.COMPLETED, completed_at=now)

    def direction_for(self, user_id: str) -> str:
        return "sent" if self.from_user_id == user_id else "received"


__all__ = [
    "TransferType",
    "TransferStatus",
    "VerificationMethod",
    "PaymentVerification",
    "TransferRecord",
]

"""
Domain: listings.

Two listing flavours share one lifecycle:

- WholeShareListing: a number of shares of one class, priced per share.
- PercentageListing: a percentage of the seller's holdings in one tier, resolved to
  an integer share count (actual_shares) when the listing is created.

Listings are advertisements, not reservations: inventory is contested only at
settlement. A listing is terminal in sold, cancelled or expired. Expiry is computed
lazily (expires_at <= now makes a listing non-transactable) and need not be
written back eagerly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional, Tuple, Union

from .errors import ListingExhausted, StateError, ValidationError
from .shares import Currency, PaymentMethod, ShareClass
from .time import require_optional_utc, require_utc_timestamp


class ListingStatus(str, Enum):
    ACTIVE = "active"
    PARTIALLY_SOLD = "partially_sold"
    SOLD = "sold"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_open(self) -> bool:
        return self in (ListingStatus.ACTIVE, ListingStatus.PARTIALLY_SOLD)

    @property
    def is_terminal(self) -> bool:
        return not self.is_open


class ListingKind(str, Enum):
    WHOLE = "whole"
    PERCENTAGE = "percentage"


@dataclass(frozen=True, slots=True)
class BankDetails:
    account_name: str
    account_number: str
    bank_name: str
    swift_code: Optional[str] = None
    country: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CryptoWallet:
    address: str
    network: str  # BSC, Ethereum, Tron, ...
    currency: str  # USDT, BTC, ETH, ...


def validate_payment_channels(
    methods: Tuple[PaymentMethod, ...],
    bank_details: Optional[BankDetails],
    crypto_wallet: Optional[CryptoWallet],
) -> None:
    """Every advertised payment method must come with the details a buyer needs to pay."""

    if not methods:
        raise ValidationError("At least one payment method is required")
    for method in methods:
        if method.needs_bank_details and bank_details is None:
            raise ValidationError("Bank details required for bank transfer payments")
        if method.needs_crypto_wallet and crypto_wallet is None:
            raise ValidationError("Crypto wallet details required for crypto payments")


def status_after_sale(sold: int, total: int, current: ListingStatus = ListingStatus.ACTIVE) -> ListingStatus:
    """Status once `sold` of `total` shares have settled. A closed listing stays closed unless sold out."""

    if sold >= total:
        return ListingStatus.SOLD
    if not current.is_open:
        return current
    if sold > 0:
        return ListingStatus.PARTIALLY_SOLD
    return ListingStatus.ACTIVE


class _ListingLifecycle:
    """
    Behaviour shared by both flavours.

    Subclasses expose `total_shares`, `sold_shares`, `status`, `expires_at`,
    `price_per_share`, `payment_methods` and `min_per_buy`.
    """

    __slots__ = ()

    @property
    def remaining(self) -> int:
        return self.total_shares - self.sold_shares  # type: ignore[attr-defined]

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now  # type: ignore[attr-defined]

    def is_transactable(self, now: datetime) -> bool:
        """New offers may only be made against open, unexpired listings."""

        return self.status.is_open and not self.is_expired(now)  # type: ignore[attr-defined]

    def is_listed(self, now: datetime) -> bool:
        """Whether the unsold remainder still counts as advertised inventory."""

        return self.is_transactable(now)

    def effective_status(self, now: datetime) -> ListingStatus:
        if self.status.is_open and self.is_expired(now):  # type: ignore[attr-defined]
            return ListingStatus.EXPIRED
        return self.status  # type: ignore[attr-defined]

    def price_for(self, shares: int) -> Decimal:
        return self.price_per_share * shares  # type: ignore[attr-defined]

    def accepts(self, method: PaymentMethod) -> bool:
        return method in self.payment_methods  # type: ignore[attr-defined]

    def check_can_sell(self, shares: int) -> None:
        if shares > self.remaining:
            raise ListingExhausted(
                f"Only {self.remaining} shares remain on listing {self.listing_id}",  # type: ignore[attr-defined]
                details={"requested": shares, "remaining": self.remaining},
            )

    def cancelled(self, now: datetime, reason: Optional[str]):
        if not self.status.is_open:  # type: ignore[attr-defined]
            raise StateError(f"Cannot cancel a {self.status.value} listing")  # type: ignore[attr-defined]
        return replace(
            self,  # type: ignore[arg-type]
            status=ListingStatus.CANCELLED,
            cancelled_at=now,
            cancel_reason=reason or "Cancelled by seller",
        )

    def expired(self):
        if not self.status.is_open:  # type: ignore[attr-defined]
            return self
        return replace(self, status=ListingStatus.EXPIRED)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class WholeShareListing(_ListingLifecycle):
    listing_id: str
    seller_id: str
    share_class: ShareClass
    total_shares: int
    price_per_share: Decimal
    currency: Currency
    payment_methods: Tuple[PaymentMethod, ...]
    created_at: datetime
    expires_at: datetime
    sold_shares: int = 0
    status: ListingStatus = ListingStatus.ACTIVE
    min_per_buy: int = 1
    max_per_buyer: Optional[int] = None
    bank_details: Optional[BankDetails] = None
    crypto_wallet: Optional[CryptoWallet] = None
    description: Optional[str] = None
    is_public: bool = True
    views: int = 0
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    kind: Literal["whole"] = "whole"

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("expires_at", self.expires_at)
        require_optional_utc("cancelled_at", self.cancelled_at)
        require_optional_utc("completed_at", self.completed_at)
        if self.total_shares < 1:
            raise ValueError("total_shares must be >= 1")
        if not 0 <= self.sold_shares <= self.total_shares:
            raise ValueError("sold_shares must satisfy 0 <= sold_shares <= total_shares")
        if (self.status is ListingStatus.SOLD) != (self.sold_shares == self.total_shares):
            raise ValueError("status must be sold exactly when sold_shares == total_shares")

    @property
    def tier(self) -> Optional[str]:
        return None

    @property
    def total_price(self) -> Decimal:
        return self.price_per_share * self.total_shares

    def with_sale(self, shares: int, now: datetime) -> "WholeShareListing":
        """Advance the listing after `shares` settled against it."""

        self.check_can_sell(shares)
        sold = self.sold_shares + shares
        status = status_after_sale(sold, self.total_shares, self.status)
        return replace(
            self,
            sold_shares=sold,
            status=status,
            completed_at=now if status is ListingStatus.SOLD else self.completed_at,
        )


@dataclass(frozen=True, slots=True)
class PercentageListing(_ListingLifecycle):
    """
    Sell a percentage of one's holdings in a tier.

    total_shares_in_tier and percent_per_share are snapshots taken at creation;
    actual_shares = floor(percentage_of_holdings / 100 * total_shares_in_tier).
    """

    listing_id: str
    seller_id: str
    tier: str
    share_class: ShareClass
    percentage_of_holdings: Decimal
    total_shares_in_tier: int
    actual_shares: int
    percent_per_share: Decimal
    price_per_share: Decimal
    currency: Currency
    payment_methods: Tuple[PaymentMethod, ...]
    created_at: datetime
    expires_at: datetime
    tier_name: Optional[str] = None
    shares_sold: int = 0
    percentage_sold: Decimal = Decimal("0")
    status: ListingStatus = ListingStatus.ACTIVE
    min_per_buy: int = 1
    max_per_buyer: Optional[int] = None
    bank_details: Optional[BankDetails] = None
    crypto_wallet: Optional[CryptoWallet] = None
    description: Optional[str] = None
    is_public: bool = True
    views: int = 0
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    kind: Literal["percentage"] = "percentage"

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("expires_at", self.expires_at)
        require_optional_utc("cancelled_at", self.cancelled_at)
        require_optional_utc("completed_at", self.completed_at)
        if not Decimal("0") < self.percentage_of_holdings <= Decimal("100"):
            raise ValueError("percentage_of_holdings must be in (0, 100]")
        if self.actual_shares < 1:
            raise ValueError("actual_shares must be >= 1")
        if not 0 <= self.shares_sold <= self.actual_shares:
            raise ValueError("shares_sold must satisfy 0 <= shares_sold <= actual_shares")
        if (self.status is ListingStatus.SOLD) != (self.shares_sold == self.actual_shares):
            raise ValueError("status must be sold exactly when shares_sold == actual_shares")

    @staticmethod
    def resolve_actual_shares(percentage: Decimal, total_shares_in_tier: int) -> int:
        """floor(percentage / 100 * total); share counts are never fractional."""

        return int((percentage * total_shares_in_tier) // Decimal("100"))

    @property
    def total_shares(self) -> int:
        return self.actual_shares

    @property
    def sold_shares(self) -> int:
        return self.shares_sold

    @property
    def total_price(self) -> Decimal:
        return self.price_per_share * self.actual_shares

    @property
    def percentage_remaining(self) -> Decimal:
        return self.percentage_of_holdings - self.percentage_sold

    @property
    def total_percentage_represented(self) -> Decimal:
        return self.percent_per_share * self.actual_shares

    def shares_for_percentage(self, percentage: Decimal) -> int:
        """Shares a buyer gets for `percentage` percent of this listing."""

        if not Decimal("0") < percentage <= Decimal("100"):
            raise ValidationError("percentage must be in (0, 100]")
        return int((percentage * self.actual_shares) // Decimal("100"))

    def with_sale(self, shares: int, now: datetime) -> "PercentageListing":
        self.check_can_sell(shares)
        sold = self.shares_sold + shares
        status = status_after_sale(sold, self.actual_shares, self.status)
        return replace(
            self,
            shares_sold=sold,
            percentage_sold=self.percentage_sold + self.percent_per_share * shares,
            status=status,
            completed_at=now if status is ListingStatus.SOLD else self.completed_at,
        )


Listing = Union[WholeShareListing, PercentageListing]


__all__ = [
    "ListingStatus",
    "ListingKind",
    "BankDetails",
    "CryptoWallet",
    "WholeShareListing",
    "PercentageListing",
    "Listing",
    "validate_payment_channels",
    "status_after_sale",
]

"""
Domain: share classes, tiers, currencies and payment methods.

A share is an indivisible unit of ownership in the venture. Shares are partitioned
by class (regular, cofounder) and, within a class, by tier. Each tier carries its
own per-share price and the ownership percentage a single share represents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Mapping, Tuple


class ShareClass(str, Enum):
    REGULAR = "regular"
    COFOUNDER = "cofounder"


class Currency(str, Enum):
    NAIRA = "naira"
    USDT = "usdt"
    USD = "usd"
    EUR = "eur"

    @property
    def symbol(self) -> str:
        return _CURRENCY_SYMBOLS[self]


_CURRENCY_SYMBOLS: Dict[Currency, str] = {
    Currency.NAIRA: "₦",
    Currency.USDT: "$",
    Currency.USD: "$",
    Currency.EUR: "€",
}


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CRYPTO = "crypto"
    WALLET_TRANSFER = "wallet_transfer"
    OTC_DIRECT = "otc_direct"

    @property
    def needs_bank_details(self) -> bool:
        return self is PaymentMethod.BANK_TRANSFER

    @property
    def needs_crypto_wallet(self) -> bool:
        return self in (PaymentMethod.CRYPTO, PaymentMethod.WALLET_TRANSFER)


def normalize_payment_methods(methods: Iterable[PaymentMethod]) -> Tuple[PaymentMethod, ...]:
    """De-duplicate while keeping the seller's order."""

    seen: Dict[PaymentMethod, None] = {}
    for method in methods:
        seen.setdefault(PaymentMethod(method), None)
    return tuple(seen)


def format_money(amount: Decimal, currency: Currency) -> str:
    return f"{currency.symbol}{amount:,}"


@dataclass(frozen=True, slots=True)
class TierInfo:
    """
    Catalog entry for a tier.

    percent_per_share is the ownership percentage represented by one share of the
    tier (e.g. Decimal("0.00001") means 0.00001%).
    """

    tier: str
    name: str
    share_class: ShareClass
    price_usd: Decimal
    price_ngn: Decimal
    percent_per_share: Decimal

    def __post_init__(self) -> None:
        if self.price_usd < 0 or self.price_ngn < 0:
            raise ValueError("tier prices must be >= 0")
        if self.percent_per_share <= 0:
            raise ValueError("percent_per_share must be > 0")

    def price_per_share(self, currency: Currency) -> Decimal:
        """Catalog price in the listing currency. The engine performs no FX."""

        if currency is Currency.NAIRA:
            return self.price_ngn
        if currency in (Currency.USD, Currency.USDT):
            return self.price_usd
        raise ValueError(f"No catalog price for currency {currency.value!r}")


DEFAULT_TIERS: Mapping[str, TierInfo] = {
    "basic": TierInfo("basic", "Basic", ShareClass.REGULAR, Decimal("30"), Decimal("30000"), Decimal("0.00001")),
    "standard": TierInfo("standard", "Standard", ShareClass.REGULAR, Decimal("50"), Decimal("50000"), Decimal("0.000021")),
    "premium": TierInfo("premium", "Premium", ShareClass.REGULAR, Decimal("100"), Decimal("100000"), Decimal("0.00005")),
    "elite": TierInfo("elite", "Elite", ShareClass.COFOUNDER, Decimal("1000"), Decimal("1000000"), Decimal("0.000021")),
    "platinum": TierInfo("platinum", "Platinum", ShareClass.COFOUNDER, Decimal("2500"), Decimal("2500000"), Decimal("0.00005")),
    "supreme": TierInfo("supreme", "Supreme", ShareClass.COFOUNDER, Decimal("5000"), Decimal("5000000"), Decimal("0.00005")),
}


__all__ = [
    "ShareClass",
    "Currency",
    "PaymentMethod",
    "TierInfo",
    "DEFAULT_TIERS",
    "normalize_payment_methods",
    "format_money",
]

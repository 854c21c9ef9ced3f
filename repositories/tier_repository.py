"""
Tier catalog.

Resolves a tier key (e.g. "premium") to its TierInfo: share class, catalog
prices and the ownership percentage of a single share. Catalog administration
is handled elsewhere; the engine only reads.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Protocol

from domain.errors import DependencyError, ValidationError
from domain.shares import DEFAULT_TIERS, ShareClass, TierInfo
from repositories.client import get_supabase


class TierCatalog(Protocol):
    def get(self, tier: str) -> TierInfo: ...

    def all(self) -> List[TierInfo]: ...


def _unknown(tier: str) -> ValidationError:
    return ValidationError(f"Unknown tier: {tier}", details={"tier": tier})


class StaticTierCatalog:
    """Catalog held in memory; defaults to the venture's published tiers."""

    def __init__(self, tiers: Optional[Mapping[str, TierInfo]] = None) -> None:
        self._tiers: Dict[str, TierInfo] = dict(tiers if tiers is not None else DEFAULT_TIERS)

    def get(self, tier: str) -> TierInfo:
        try:
            return self._tiers[tier]
        except KeyError:
            raise _unknown(tier) from None

    def all(self) -> List[TierInfo]:
        return list(self._tiers.values())


def _row_to_tier(row: Mapping[str, Any]) -> TierInfo:
    return TierInfo(
        tier=str(row["tier"]),
        name=str(row.get("name") or row["tier"]),
        share_class=ShareClass(row["share_class"]),
        price_usd=Decimal(str(row["price_usd"])),
        price_ngn=Decimal(str(row["price_ngn"])),
        percent_per_share=Decimal(str(row["percent_per_share"])),
    )


class SupabaseTierCatalog:
    """
    Catalog backed by the `share_tiers` table.

    Columns: tier, name, share_class, price_usd, price_ngn, percent_per_share, active.
    """

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def get(self, tier: str) -> TierInfo:
        try:
            response = (
                self.client.table("share_tiers")
                .select("*")
                .eq("tier", tier)
                .eq("active", True)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise DependencyError(f"Failed to fetch tier {tier}: {exc}") from exc

        error = getattr(response, "error", None)
        if error:
            raise DependencyError(f"Failed to fetch tier {tier}: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            raise _unknown(tier)
        return _row_to_tier(rows[0])

    def all(self) -> List[TierInfo]:
        try:
            response = self.client.table("share_tiers").select("*").eq("active", True).execute()
        except Exception as exc:
            raise DependencyError(f"Failed to fetch tiers: {exc}") from exc

        error = getattr(response, "error", None)
        if error:
            raise DependencyError(f"Failed to fetch tiers: {error}")
        return [_row_to_tier(row) for row in getattr(response, "data", None) or []]


__all__ = ["TierCatalog", "StaticTierCatalog", "SupabaseTierCatalog"]

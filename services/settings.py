"""
Runtime configuration.

Values come from environment variables, optionally loaded from a `.env` file
at the project root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

STORE_BACKENDS = ("memory", "supabase")
NOTIFIER_BACKENDS = ("log", "outbox")
TIER_BACKENDS = ("static", "supabase")


@dataclass(frozen=True, slots=True)
class Settings:
    store_backend: str = "memory"
    notifier_backend: str = "log"
    tier_backend: str = "static"
    proof_bucket: str = "payment-proofs"
    offer_ttl: timedelta = timedelta(hours=24)
    payment_window: timedelta = timedelta(hours=48)
    stuck_threshold: timedelta = timedelta(hours=24)
    default_listing_days: int = 30
    max_listing_days: int = 365
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(f"SHARE_EXCHANGE_STORE must be one of {STORE_BACKENDS}")
        if self.notifier_backend not in NOTIFIER_BACKENDS:
            raise ValueError(f"SHARE_EXCHANGE_NOTIFIER must be one of {NOTIFIER_BACKENDS}")
        if self.tier_backend not in TIER_BACKENDS:
            raise ValueError(f"SHARE_EXCHANGE_TIERS must be one of {TIER_BACKENDS}")
        for name in ("offer_ttl", "payment_window", "stuck_threshold"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be positive")
        if not 1 <= self.default_listing_days <= self.max_listing_days:
            raise ValueError("DEFAULT_LISTING_DAYS must be between 1 and MAX_LISTING_DAYS")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment (or an explicit mapping, for tests)."""

    env = os.environ if environ is None else environ
    return Settings(
        store_backend=env.get("SHARE_EXCHANGE_STORE", "memory").strip().lower(),
        notifier_backend=env.get("SHARE_EXCHANGE_NOTIFIER", "log").strip().lower(),
        tier_backend=env.get("SHARE_EXCHANGE_TIERS", "static").strip().lower(),
        proof_bucket=env.get("PAYMENT_PROOF_BUCKET", "payment-proofs"),
        offer_ttl=timedelta(hours=_int(env, "OFFER_TTL_HOURS", 24)),
        payment_window=timedelta(hours=_int(env, "PAYMENT_WINDOW_HOURS", 48)),
        stuck_threshold=timedelta(hours=_int(env, "STUCK_THRESHOLD_HOURS", 24)),
        default_listing_days=_int(env, "DEFAULT_LISTING_DAYS", 30),
        max_listing_days=_int(env, "MAX_LISTING_DAYS", 365),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )


__all__ = ["Settings", "load_settings"]

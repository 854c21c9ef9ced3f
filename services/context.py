"""
Engine context.

Bundles the store and the external collaborators (clock, notifier, proof
storage, tier catalog) that every service function receives explicitly.
Nothing here is a module-level singleton; callers build one context per
process (the API) or per test.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from domain.errors import AuthorizationError
from domain.time import require_utc_timestamp
from repositories.proof_storage import InMemoryProofStorage, ProofStorage, SupabaseProofStorage
from repositories.store import InMemoryStore, Store
from repositories.supabase_store import SupabaseStore
from repositories.tier_repository import StaticTierCatalog, SupabaseTierCatalog, TierCatalog
from services.notification_service import LoggingNotifier, Notifier, OutboxNotifier
from services.settings import Settings, load_settings


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually driven clock for tests and demos."""

    def __init__(self, now: datetime) -> None:
        require_utc_timestamp("now", now)
        self._now = now
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, now: datetime) -> None:
        require_utc_timestamp("now", now)
        with self._lock:
            self._now = now

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._now = self._now + delta
            return self._now


@dataclass(frozen=True, slots=True)
class Principal:
    """Identity asserted by the (external) authentication layer."""

    user_id: str
    is_admin: bool = False

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id is required")


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise AuthorizationError("Administrator privileges required")


@dataclass
class EngineContext:
    store: Store
    clock: Clock
    notifier: Notifier
    proofs: ProofStorage
    tiers: TierCatalog
    settings: Settings = field(default_factory=Settings)

    def now(self) -> datetime:
        return self.clock.now()


def build_engine(settings: Optional[Settings] = None) -> EngineContext:
    """Wire collaborators according to settings."""

    settings = settings or load_settings()

    store: Store = SupabaseStore() if settings.store_backend == "supabase" else InMemoryStore()
    notifier: Notifier = OutboxNotifier() if settings.notifier_backend == "outbox" else LoggingNotifier()
    tiers: TierCatalog = SupabaseTierCatalog() if settings.tier_backend == "supabase" else StaticTierCatalog()
    proofs: ProofStorage = (
        SupabaseProofStorage(settings.proof_bucket)
        if settings.store_backend == "supabase"
        else InMemoryProofStorage()
    )

    return EngineContext(
        store=store,
        clock=SystemClock(),
        notifier=notifier,
        proofs=proofs,
        tiers=tiers,
        settings=settings,
    )


__all__ = [
    "Clock",
    "SystemClock",
    "FixedClock",
    "Principal",
    "require_admin",
    "EngineContext",
    "build_engine",
]

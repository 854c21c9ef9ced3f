"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so that tests can import the
domain, repositories, services and api packages, and wires a fully in-memory
engine driven by a fixed clock.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.audit import AuditEntry  # noqa: E402
from domain.inventory import InventoryLot  # noqa: E402
from domain.listing import BankDetails, CryptoWallet, Listing  # noqa: E402
from domain.offer import BankTransferDetails, Offer  # noqa: E402
from domain.shares import Currency, PaymentMethod, ShareClass  # noqa: E402
from domain.transfer import TransferRecord  # noqa: E402
from repositories.audit_repository import entries_for_target  # noqa: E402
from repositories.listing_repository import get_listing  # noqa: E402
from repositories.offer_repository import get_offer  # noqa: E402
from repositories.proof_storage import InMemoryProofStorage  # noqa: E402
from repositories.store import InMemoryStore, read_snapshot  # noqa: E402
from repositories.tier_repository import StaticTierCatalog  # noqa: E402
from repositories.transfer_repository import list_transfers  # noqa: E402
from services.context import EngineContext, FixedClock, Principal  # noqa: E402
from services.inventory_service import available_for, record_purchase_lot, sellable_for  # noqa: E402
from services.listing_service import (  # noqa: E402
    ListingTerms,
    PercentageListingRequest,
    WholeListingRequest,
    create_percentage_listing,
    create_whole_listing,
)
from services.notification_service import RecordingNotifier  # noqa: E402
from services.offer_service import (  # noqa: E402
    OfferRequest,
    PaymentSubmission,
    accept_offer,
    create_offer,
    submit_payment,
)
from services.settings import Settings  # noqa: E402
from services.settlement_service import confirm_payment  # noqa: E402

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

SELLER = Principal("seller-1")
BUYER = Principal("buyer-1")
BUYER_B = Principal("buyer-2")
ADMIN = Principal("admin-1", is_admin=True)

BANK = BankDetails(account_name="Ada Obi", account_number="0123456789", bank_name="First Bank")
WALLET = CryptoWallet(address="0xabc123", network="BSC", currency="USDT")


def naira_terms(**overrides) -> ListingTerms:
    fields = {
        "currency": Currency.NAIRA,
        "payment_methods": [PaymentMethod.BANK_TRANSFER],
        "bank_details": BANK,
    }
    fields.update(overrides)
    return ListingTerms(**fields)


class Market:
    """Drives the engine through common trade steps for tests."""

    def __init__(self, engine: EngineContext, clock: FixedClock) -> None:
        self.engine = engine
        self.clock = clock

    # -- setup -------------------------------------------------------------

    def seed(
        self,
        user: Principal,
        shares: int,
        share_class: ShareClass = ShareClass.REGULAR,
        tier: Optional[str] = None,
    ) -> InventoryLot:
        return record_purchase_lot(self.engine, user.user_id, share_class, shares, tier=tier)

    def list_whole(
        self,
        seller: Principal = SELLER,
        shares: int = 40,
        price: Decimal = Decimal("1000"),
        share_class: ShareClass = ShareClass.REGULAR,
        **terms,
    ) -> Listing:
        request = WholeListingRequest(
            share_class=share_class,
            shares=shares,
            price_per_share=price,
            terms=naira_terms(**terms),
        )
        return create_whole_listing(self.engine, seller, request)

    def list_percentage(
        self,
        tier: str,
        percentage: Decimal,
        seller: Principal = SELLER,
        price: Optional[Decimal] = None,
        **terms,
    ) -> Listing:
        request = PercentageListingRequest(
            tier=tier,
            percentage_of_holdings=percentage,
            price_per_share=price,
            terms=naira_terms(**terms),
        )
        return create_percentage_listing(self.engine, seller, request)

    # -- protocol steps ------------------------------------------------------

    def offer(
        self,
        listing: Listing,
        buyer: Principal = BUYER,
        shares: Optional[int] = None,
        method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        percentage: Optional[Decimal] = None,
    ) -> Offer:
        if shares is None and percentage is None:
            shares = listing.remaining
        return create_offer(
            self.engine,
            buyer,
            OfferRequest(listing.listing_id, method, shares=shares, percentage=percentage),
        )

    def accept(self, offer: Offer) -> Offer:
        return accept_offer(self.engine, Principal(offer.seller_id), offer.offer_id)

    def pay(self, offer: Offer, reference: str = "FBN-REF-001") -> Offer:
        return submit_payment(
            self.engine,
            Principal(offer.buyer_id),
            PaymentSubmission(
                offer.offer_id,
                reference,
                details=BankTransferDetails(bank_name="First Bank", amount=offer.total_price),
            ),
        )

    def in_payment(self, listing: Listing, buyer: Principal = BUYER, shares: Optional[int] = None) -> Offer:
        offer = self.offer(listing, buyer, shares)
        self.accept(offer)
        return self.pay(offer)

    def confirm(self, offer: Offer) -> TransferRecord:
        return confirm_payment(self.engine, Principal(offer.seller_id), offer.offer_id)

    # -- reads ---------------------------------------------------------------

    def available(self, user: Principal, share_class: ShareClass = ShareClass.REGULAR, tier: Optional[str] = None) -> int:
        return read_snapshot(self.engine.store, lambda tx: available_for(tx, user.user_id, share_class, tier))

    def sellable(self, user: Principal, share_class: ShareClass = ShareClass.REGULAR, tier: Optional[str] = None) -> int:
        now = self.clock.now()
        return read_snapshot(self.engine.store, lambda tx: sellable_for(tx, user.user_id, share_class, tier, now))

    def offer_state(self, offer_id: str) -> Optional[Offer]:
        return read_snapshot(self.engine.store, lambda tx: get_offer(tx, offer_id))

    def listing_state(self, listing_id: str) -> Optional[Listing]:
        return read_snapshot(self.engine.store, lambda tx: get_listing(tx, listing_id))

    def transfers(self) -> List[TransferRecord]:
        return read_snapshot(self.engine.store, list_transfers)

    def audit(self, offer_id: str) -> List[AuditEntry]:
        return read_snapshot(self.engine.store, lambda tx: entries_for_target(tx, offer_id))

    def later(self, **delta) -> datetime:
        return self.clock.advance(timedelta(**delta))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def proofs() -> InMemoryProofStorage:
    return InMemoryProofStorage()


@pytest.fixture
def engine(store, clock, notifier, proofs) -> EngineContext:
    return EngineContext(
        store=store,
        clock=clock,
        notifier=notifier,
        proofs=proofs,
        tiers=StaticTierCatalog(),
        settings=Settings(),
    )


@pytest.fixture
def market(engine, clock) -> Market:
    return Market(engine, clock)

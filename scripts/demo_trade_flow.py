#!/usr/bin/env python3
"""
Demo: one trade end to end against an in-memory engine.

Seeds a seller with 100 regular shares, lists 40 at ₦1,000, has a buyer
offer, pay and the seller confirm, then prints both balances and the
transfer record.

Usage:
    python scripts/demo_trade_flow.py
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.listing import BankDetails
from domain.offer import BankTransferDetails
from domain.shares import Currency, PaymentMethod, ShareClass
from repositories.proof_storage import InMemoryProofStorage
from repositories.store import InMemoryStore
from repositories.tier_repository import StaticTierCatalog
from services.context import EngineContext, FixedClock, Principal
from services.inventory_service import balance_summary, record_purchase_lot
from services.listing_service import ListingTerms, WholeListingRequest, create_whole_listing
from services.notification_service import RecordingNotifier
from services.offer_service import OfferRequest, PaymentSubmission, accept_offer, create_offer, submit_payment
from services.settlement_service import confirm_payment


def main() -> None:
    clock = FixedClock(datetime.now(timezone.utc).replace(microsecond=0))
    notifier = RecordingNotifier()
    engine = EngineContext(
        store=InMemoryStore(),
        clock=clock,
        notifier=notifier,
        proofs=InMemoryProofStorage(),
        tiers=StaticTierCatalog(),
    )
    seller = Principal("seller-demo")
    buyer = Principal("buyer-demo")

    record_purchase_lot(engine, seller.user_id, ShareClass.REGULAR, 100)
    listing = create_whole_listing(
        engine,
        seller,
        WholeListingRequest(
            share_class=ShareClass.REGULAR,
            shares=40,
            price_per_share=Decimal("1000"),
            terms=ListingTerms(
                currency=Currency.NAIRA,
                payment_methods=[PaymentMethod.BANK_TRANSFER],
                bank_details=BankDetails("Demo Seller", "0123456789", "Demo Bank"),
            ),
        ),
    )
    print(f"Listing {listing.listing_id}: {listing.total_shares} shares at ₦{listing.price_per_share:,}")

    offer = create_offer(
        engine, buyer, OfferRequest(listing.listing_id, PaymentMethod.BANK_TRANSFER, shares=40)
    )
    clock.advance(timedelta(hours=1))
    accept_offer(engine, seller, offer.offer_id)
    clock.advance(timedelta(hours=2))
    submit_payment(
        engine,
        buyer,
        PaymentSubmission(
            offer.offer_id,
            "DEMO-REF-001",
            details=BankTransferDetails(bank_name="Demo Bank", amount=offer.total_price),
        ),
    )
    clock.advance(timedelta(hours=1))
    transfer = confirm_payment(engine, seller, offer.offer_id)

    print(f"Transfer {transfer.transfer_id}: {transfer.share_count} shares, {transfer.status.value}")
    for principal in (seller, buyer):
        for summary in balance_summary(engine, principal.user_id):
            if summary.tier is None:
                print(f"  {principal.user_id}: {summary.available} {summary.share_class.value} shares")
    print(f"Notifications sent: {len(notifier.sent)}")


if __name__ == "__main__":
    main()

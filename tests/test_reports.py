"""
Tests for `services/report_service.py`.

Covers:
- Stuck detection uses accepted_at against the configured threshold.
- Dashboard counts, values and forced completions.
- Daily rollups cover every day of the requested range.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import ADMIN, BUYER, BUYER_B, SELLER
from domain.errors import AuthorizationError, ValidationError
from services.admin_service import force_complete, refund_offer
from services.report_service import daily_report, dashboard, list_stuck


def test_stuck_threshold_boundary(market, engine) -> None:
    """Verify an offer is stuck only once accepted_at is strictly older than the threshold."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=40)
    offer = market.in_payment(listing, BUYER, shares=10)

    market.later(hours=24)
    assert list_stuck(engine, ADMIN) == []

    market.later(seconds=1)
    [item] = list_stuck(engine, ADMIN)
    assert item.offer_id == offer.offer_id
    assert item.hours_stuck == 24.0
    assert list_stuck(engine, ADMIN, threshold=timedelta(hours=48)) == []


def test_accepted_offers_are_not_stuck(market, engine) -> None:
    """Verify offers waiting for payment are handled by the deadline, not stuck detection."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=40)
    market.accept(market.offer(listing, BUYER, shares=10))
    market.later(hours=30)

    assert list_stuck(engine, ADMIN) == []


def test_dashboard(market, engine) -> None:
    """Verify the dashboard aggregates offers, listings and transfers."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=40, price=Decimal("1000"))
    market.confirm(market.in_payment(listing, BUYER, shares=10))
    forced = market.in_payment(listing, BUYER_B, shares=5)
    force_complete(engine, ADMIN, forced.offer_id, "verified")
    refunded = market.offer(listing, BUYER, shares=5)
    refund_offer(engine, ADMIN, refunded.offer_id, "goodwill", amount=Decimal("100"))
    market.accept(market.offer(listing, BUYER, shares=5))

    board = dashboard(engine, ADMIN)

    assert board.offers_by_status == {"completed": 2, "pending": 1, "accepted": 1}
    assert board.listings_by_status == {"partially_sold": 1}
    assert board.completed_value_by_currency == {"naira": Decimal("15000")}
    assert board.refunded_value_by_currency == {"naira": Decimal("100")}
    assert board.transfers_completed == 2
    assert board.shares_transferred == 15
    assert board.forced_completions == 1
    assert board.open_disputes == 0
    assert board.stuck == []
    with pytest.raises(AuthorizationError):
        dashboard(engine, SELLER)


def test_daily_report(market, engine, clock) -> None:
    """Verify rollups per UTC day, including empty days."""

    market.seed(SELLER, 100)
    listing = market.list_whole(shares=40, price=Decimal("1000"))
    offer = market.in_payment(listing, BUYER, shares=10)
    market.later(days=1)
    market.confirm(offer)

    start = clock.now().date() - timedelta(days=1)
    rollups = daily_report(engine, ADMIN, start, start + timedelta(days=2))

    assert [rollup.day for rollup in rollups] == [start, start + timedelta(days=1), start + timedelta(days=2)]
    assert rollups[0].offers_created == 1
    assert rollups[0].offers_completed == 0
    assert rollups[1].offers_completed == 1
    assert rollups[1].shares_transferred == 10
    assert rollups[1].value_by_currency == {"naira": Decimal("10000")}
    assert rollups[2].offers_created == 0


def test_daily_report_range_validation(engine) -> None:
    """Verify inverted and oversized ranges are rejected."""

    with pytest.raises(ValidationError):
        daily_report(engine, ADMIN, date(2025, 3, 2), date(2025, 3, 1))
    with pytest.raises(ValidationError):
        daily_report(engine, ADMIN, date(2025, 1, 1), date(2026, 1, 2))
    assert len(daily_report(engine, ADMIN, date(2025, 1, 1), date(2026, 1, 1))) == 366

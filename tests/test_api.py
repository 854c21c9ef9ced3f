"""
Tests for the HTTP layer in `api/`.

Covers:
- A whole trade driven end to end through /api/v1.
- Engine errors map to HTTP statuses with a machine readable code.
- Identity comes from X-User-Id / X-User-Role; admin routes are guarded.
- Statement download and tier catalog.
- Root logging is configured by the entry point from LOG_LEVEL.
"""

from __future__ import annotations

import base64
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN, BUYER, SELLER
from api.dependencies import get_engine
from api import main
from api.main import app, configure_logging
from services.context import Principal
from services.settings import load_settings

API = "/api/v1"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _as(principal: Principal) -> dict:
    headers = {"X-User-Id": principal.user_id}
    if principal.is_admin:
        headers["X-User-Role"] = "admin"
    return headers


LISTING_BODY = {
    "share_class": "regular",
    "shares": 40,
    "price_per_share": "1000",
    "currency": "naira",
    "payment_methods": ["bank_transfer"],
    "bank_details": {"account_name": "Ada Obi", "account_number": "0123456789", "bank_name": "First Bank"},
}


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_listing(client: TestClient, **overrides) -> dict:
    body = dict(LISTING_BODY, **overrides)
    response = client.post(f"{API}/listings", json=body, headers=_as(SELLER))
    assert response.status_code == 201, response.text
    return response.json()


def _offer_in_payment(client: TestClient, listing_id: str, shares: int) -> dict:
    created = client.post(
        f"{API}/offers",
        json={"listing_id": listing_id, "payment_method": "bank_transfer", "shares": shares},
        headers=_as(BUYER),
    )
    assert created.status_code == 201, created.text
    offer_id = created.json()["offer_id"]

    accepted = client.post(f"{API}/offers/{offer_id}/accept", headers=_as(SELLER))
    assert accepted.status_code == 200, accepted.text

    paid = client.post(
        f"{API}/offers/{offer_id}/payment",
        json={
            "transaction_reference": "FBN-2025-000123",
            "payment_details": {"method": "bank_transfer", "bank_name": "First Bank", "amount": str(shares * 1000)},
        },
        headers=_as(BUYER),
    )
    assert paid.status_code == 200, paid.text
    return paid.json()


def test_health(client) -> None:
    """Verify the health endpoint needs no identity."""

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_trade_end_to_end(client, market) -> None:
    """Verify listing, offer, accept, payment and confirm move shares to the buyer."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)

    assert listing["remaining"] == 40
    assert listing["status"] == "active"

    offer = _offer_in_payment(client, listing["listing_id"], 40)
    assert offer["status"] == "in_payment"
    assert offer["type"] == "sent"
    assert offer["payment_details"]["method"] == "bank_transfer"

    confirmed = client.post(f"{API}/offers/{offer['offer_id']}/confirm", headers=_as(SELLER))
    assert confirmed.status_code == 200, confirmed.text
    transfer = confirmed.json()
    assert transfer["share_count"] == 40
    assert Decimal(transfer["total_price"]) == Decimal("40000")
    assert transfer["direction"] == "sent"
    assert transfer["transfer_type"] == "sale"

    balances = client.get(f"{API}/balances", headers=_as(BUYER)).json()
    assert [(b["share_class"], b["available"]) for b in balances] == [("regular", 40)]

    listing_after = client.get(f"{API}/listings/{listing['listing_id']}").json()
    assert listing_after["status"] == "sold"
    assert listing_after["remaining"] == 0

    history = client.get(f"{API}/transfers", headers=_as(BUYER)).json()
    assert history["total"] == 1
    assert history["items"][0]["direction"] == "received"


def test_payment_with_proof_upload(client, market, proofs) -> None:
    """Verify a base64 proof is stored and referenced on the offer."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    created = client.post(
        f"{API}/offers",
        json={"listing_id": listing["listing_id"], "payment_method": "bank_transfer", "shares": 10},
        headers=_as(BUYER),
    ).json()
    client.post(f"{API}/offers/{created['offer_id']}/accept", headers=_as(SELLER))

    response = client.post(
        f"{API}/offers/{created['offer_id']}/payment",
        json={
            "transaction_reference": "FBN-1",
            "proof": {"content": base64.b64encode(PNG).decode(), "content_type": "image/png"},
        },
        headers=_as(BUYER),
    )

    assert response.status_code == 200, response.text
    proof = response.json()["payment_proof"]
    assert proof is not None
    assert proof["format"] == "png"
    assert proofs.blobs[proof["id"]] == PNG


def test_missing_identity_is_401(client) -> None:
    """Verify authenticated routes reject requests without X-User-Id."""

    response = client.post(f"{API}/listings", json=LISTING_BODY)

    assert response.status_code == 401


@pytest.mark.parametrize(
    "body, status, code",
    [
        ({"shares": 500}, 409, "INSUFFICIENT_INVENTORY"),
        ({"payment_methods": ["crypto"]}, 400, "VALIDATION_ERROR"),
    ],
)
def test_listing_errors(client, market, body, status, code) -> None:
    """Verify engine errors on listing creation map to statuses and codes."""

    market.seed(SELLER, 100)

    response = client.post(f"{API}/listings", json=dict(LISTING_BODY, **body), headers=_as(SELLER))

    assert response.status_code == status
    assert response.json()["error"] == code


def test_unknown_listing_is_404(client) -> None:
    """Verify a missing listing maps to 404."""

    response = client.get(f"{API}/listings/LST-NOPE")

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_accept_by_buyer_is_403(client, market) -> None:
    """Verify only the seller may accept."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    offer = client.post(
        f"{API}/offers",
        json={"listing_id": listing["listing_id"], "payment_method": "bank_transfer", "shares": 10},
        headers=_as(BUYER),
    ).json()

    response = client.post(f"{API}/offers/{offer['offer_id']}/accept", headers=_as(BUYER))

    assert response.status_code == 403
    assert response.json()["error"] == "AUTHORIZATION_ERROR"


def test_accept_after_ttl_is_410(client, market) -> None:
    """Verify accepting a pending offer past its TTL maps to 410."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    offer = client.post(
        f"{API}/offers",
        json={"listing_id": listing["listing_id"], "payment_method": "bank_transfer", "shares": 10},
        headers=_as(BUYER),
    ).json()
    market.later(hours=24, seconds=1)

    response = client.post(f"{API}/offers/{offer['offer_id']}/accept", headers=_as(SELLER))

    assert response.status_code == 410
    assert response.json()["error"] == "DEADLINE_ERROR"


def test_confirm_pending_offer_is_409(client, market) -> None:
    """Verify confirming before payment maps to a state conflict."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    offer = client.post(
        f"{API}/offers",
        json={"listing_id": listing["listing_id"], "payment_method": "bank_transfer", "shares": 10},
        headers=_as(BUYER),
    ).json()

    response = client.post(f"{API}/offers/{offer['offer_id']}/confirm", headers=_as(SELLER))

    assert response.status_code == 409
    assert response.json()["error"] == "STATE_ERROR"


def test_admin_routes_require_admin_role(client) -> None:
    """Verify the dashboard is forbidden to ordinary users."""

    assert client.get(f"{API}/admin/dashboard", headers=_as(SELLER)).status_code == 403
    assert client.get(f"{API}/admin/dashboard", headers=_as(ADMIN)).status_code == 200


def test_admin_force_complete_stuck_offer(client, market) -> None:
    """Verify an operator can list a stuck offer and force it through."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    offer = _offer_in_payment(client, listing["listing_id"], 40)
    market.later(hours=72)

    stuck = client.get(f"{API}/admin/offers/stuck", headers=_as(ADMIN)).json()
    assert [item["offer_id"] for item in stuck] == [offer["offer_id"]]

    response = client.post(
        f"{API}/admin/offers/{offer['offer_id']}/force-complete",
        json={"reason": "bank statement verified"},
        headers=_as(ADMIN),
    )

    assert response.status_code == 200, response.text
    assert response.json()["transfer_type"] == "admin_forced_sale"

    audit = client.get(f"{API}/admin/audit", params={"offer_id": offer["offer_id"]}, headers=_as(ADMIN)).json()
    assert [item["action"] for item in audit["items"]] == ["force_complete"]


def test_admin_bulk_cancel_reports_failures(client, market) -> None:
    """Verify bulk responses list successes and failures separately."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    offer = client.post(
        f"{API}/offers",
        json={"listing_id": listing["listing_id"], "payment_method": "bank_transfer", "shares": 10},
        headers=_as(BUYER),
    ).json()

    response = client.post(
        f"{API}/admin/offers/bulk-cancel",
        json={"offer_ids": [offer["offer_id"], "OFR-NOPE"], "reason": "cleanup"},
        headers=_as(ADMIN),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == [offer["offer_id"]]
    assert [(f["offer_id"], f["code"]) for f in body["failed"]] == [("OFR-NOPE", "NOT_FOUND")]


def test_statement_download(client, market) -> None:
    """Verify the CSV statement is served as an attachment."""

    market.seed(SELLER, 100)
    listing = _create_listing(client)
    offer = _offer_in_payment(client, listing["listing_id"], 10)
    client.post(f"{API}/offers/{offer['offer_id']}/confirm", headers=_as(SELLER))

    response = client.get(f"{API}/transfers/statement", headers=_as(BUYER))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    assert len(response.text.strip().splitlines()) == 2


def test_tiers(client) -> None:
    """Verify the tier catalog is exposed."""

    tiers = {tier["tier"]: tier for tier in client.get(f"{API}/tiers").json()}

    assert tiers["premium"]["share_class"] == "regular"
    assert tiers["elite"]["share_class"] == "cofounder"


def test_logging_is_configured_from_settings(monkeypatch) -> None:
    """Verify the entry point applies LOG_LEVEL to root logging."""

    calls = []
    monkeypatch.setattr(main.logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging(load_settings({"LOG_LEVEL": "debug"}))

    assert calls == [{"level": "DEBUG", "format": main.LOG_FORMAT}]

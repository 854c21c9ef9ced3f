"""
Notifications.

The engine only ever calls `Notifier.send(user_id, subject, body)` after a
transaction has committed. A failed send is logged and otherwise ignored; it
never undoes the state change it describes.
"""

from __future__ import annotations

import html
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Protocol

from domain.errors import DependencyError
from domain.listing import Listing
from domain.offer import Offer
from domain.shares import format_money
from domain.transfer import TransferRecord
from repositories.client import get_supabase

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    user_id: str
    subject: str
    body: str


class Notifier(Protocol):
    def send(self, user_id: str, subject: str, body: str) -> None: ...


class LoggingNotifier:
    """Writes each notification to the log instead of delivering it."""

    def send(self, user_id: str, subject: str, body: str) -> None:
        logger.info("Notification", extra={"user_id": user_id, "subject": subject})


class OutboxNotifier:
    """
    Queues notifications in the `notification_outbox` table.

    Delivery (email, push) is performed by a separate worker that drains the outbox.
    """

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def send(self, user_id: str, subject: str, body: str) -> None:
        row = {
            "user_id": user_id,
            "subject": subject,
            "body": body,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = self.client.table("notification_outbox").insert(row).execute()
        except Exception as exc:
            raise DependencyError(f"Failed to queue notification: {exc}") from exc
        error = getattr(response, "error", None)
        if error:
            raise DependencyError(f"Failed to queue notification: {error}")


class RecordingNotifier:
    """Keeps sent notifications in memory. Set `fail=True` to simulate an outage."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: List[Notification] = []
        self.fail = fail
        self._lock = threading.Lock()

    def send(self, user_id: str, subject: str, body: str) -> None:
        if self.fail:
            raise DependencyError("notifier unavailable")
        with self._lock:
            self.sent.append(Notification(user_id, subject, body))

    def for_user(self, user_id: str) -> List[Notification]:
        return [message for message in self.sent if message.user_id == user_id]


def notify_safely(notifier: Notifier, messages: Iterable[Notification]) -> int:
    """Send every message; return how many failed. Failures are logged, never raised."""

    failures = 0
    for message in messages:
        try:
            notifier.send(message.user_id, message.subject, message.body)
        except Exception:
            failures += 1
            logger.warning(
                "Notification delivery failed",
                exc_info=True,
                extra={"user_id": message.user_id, "subject": message.subject},
            )
    return failures


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------


def _html(*paragraphs: str) -> str:
    return "".join(f"<p>{html.escape(text)}</p>" for text in paragraphs)


def _shares(offer: Offer) -> str:
    label = f"{offer.shares} {offer.share_class.value}"
    if offer.tier:
        label += f" ({offer.tier})"
    return f"{label} share{'s' if offer.shares != 1 else ''}"


def listing_created(listing: Listing) -> List[Notification]:
    return [
        Notification(
            listing.seller_id,
            "Your share listing is live",
            _html(
                f"Listing {listing.listing_id} for {listing.total_shares} {listing.share_class.value} shares "
                f"at {format_money(listing.price_per_share, listing.currency)} per share is now active.",
                f"It expires on {listing.expires_at:%Y-%m-%d %H:%M} UTC.",
            ),
        )
    ]


def offer_received(offer: Offer) -> List[Notification]:
    return [
        Notification(
            offer.seller_id,
            "New offer on your share listing",
            _html(
                f"A buyer offered to purchase {_shares(offer)} for "
                f"{format_money(offer.total_price, offer.currency)} via {offer.payment_method.value}.",
                f"Offer {offer.offer_id} must be accepted before {offer.expires_at:%Y-%m-%d %H:%M} UTC.",
            ),
        )
    ]


def offer_accepted(offer: Offer) -> List[Notification]:
    deadline = f"{offer.payment_deadline:%Y-%m-%d %H:%M} UTC" if offer.payment_deadline else "the deadline"
    return [
        Notification(
            offer.buyer_id,
            "Your share offer was accepted",
            _html(
                f"The seller accepted offer {offer.offer_id} for {_shares(offer)}.",
                f"Please pay {format_money(offer.total_price, offer.currency)} and submit proof before {deadline}.",
            ),
        )
    ]


def offer_declined(offer: Offer) -> List[Notification]:
    return [
        Notification(
            offer.buyer_id,
            "Your share offer was declined",
            _html(
                f"Offer {offer.offer_id} for {_shares(offer)} was declined.",
                f"Reason: {offer.cancel_reason or 'not given'}",
            ),
        )
    ]


def offer_withdrawn(offer: Offer) -> List[Notification]:
    return [
        Notification(
            offer.seller_id,
            "A buyer withdrew their offer",
            _html(f"Offer {offer.offer_id} for {_shares(offer)} was withdrawn by the buyer."),
        )
    ]


def payment_submitted(offer: Offer) -> List[Notification]:
    return [
        Notification(
            offer.seller_id,
            "Payment submitted for your shares",
            _html(
                f"The buyer reports paying {format_money(offer.total_price, offer.currency)} "
                f"for offer {offer.offer_id} (reference {offer.transaction_reference}).",
                "Verify receipt of funds, then confirm the payment to release the shares.",
            ),
        )
    ]


def trade_completed(offer: Offer, transfer: TransferRecord) -> List[Notification]:
    amount = format_money(transfer.total_price, transfer.currency)
    return [
        Notification(
            offer.buyer_id,
            "Share purchase completed",
            _html(
                f"{_shares(offer)} have been transferred to you for {amount}.",
                f"Transfer reference: {transfer.transfer_id}.",
            ),
        ),
        Notification(
            offer.seller_id,
            "Share sale completed",
            _html(
                f"{_shares(offer)} were transferred to the buyer for {amount}.",
                f"Transfer reference: {transfer.transfer_id}.",
            ),
        ),
    ]


def admin_outcome(offer: Offer, outcome: str, reason: Optional[str]) -> List[Notification]:
    """Both parties hear about an administrator's decision on their trade."""

    body = _html(
        f"An administrator {outcome} offer {offer.offer_id} for {_shares(offer)}.",
        f"Reason: {reason or 'not given'}",
    )
    subject = f"Your share trade was {outcome}"
    return [Notification(offer.buyer_id, subject, body), Notification(offer.seller_id, subject, body)]


__all__ = [
    "Notification",
    "Notifier",
    "LoggingNotifier",
    "OutboxNotifier",
    "RecordingNotifier",
    "notify_safely",
    "listing_created",
    "offer_received",
    "offer_accepted",
    "offer_declined",
    "offer_withdrawn",
    "payment_submitted",
    "trade_completed",
    "admin_outcome",
]

"""
Transfer record repository (persistence).

Transfer records are append-only: settlement inserts a record and finalizes it
within the same transaction; nothing updates a committed record.
"""

from __future__ import annotations

from typing import List, Optional

from domain.transfer import TransferRecord, TransferStatus
from repositories.store import TRANSFERS, Transaction


def get_transfer(tx: Transaction, transfer_id: str) -> Optional[TransferRecord]:
    return tx.get(TRANSFERS, transfer_id)


def insert_transfer(tx: Transaction, record: TransferRecord) -> None:
    tx.insert(record)


def save_transfer(tx: Transaction, record: TransferRecord) -> None:
    tx.update(record)


def completed_transfer_for_offer(tx: Transaction, offer_id: str) -> Optional[TransferRecord]:
    for record in tx.scan(TRANSFERS, offer_id=offer_id):
        if record.status is TransferStatus.COMPLETED:
            return record
    return None


def shares_bought_on_listing(tx: Transaction, listing_id: str, buyer_id: str) -> int:
    """Sum of share_count over completed transfers for this listing and buyer."""

    return sum(
        record.share_count
        for record in tx.scan(TRANSFERS, listing_id=listing_id, to_user_id=buyer_id)
        if record.status is TransferStatus.COMPLETED
    )


def transfers_for_user(
    tx: Transaction,
    user_id: str,
    *,
    status: Optional[TransferStatus] = None,
) -> List[TransferRecord]:
    by_key = {record.transfer_id: record for record in tx.scan(TRANSFERS, from_user_id=user_id)}
    by_key.update({record.transfer_id: record for record in tx.scan(TRANSFERS, to_user_id=user_id)})
    rows = [record for record in by_key.values() if status is None or record.status is status]
    return sorted(rows, key=lambda record: record.created_at, reverse=True)


def list_transfers(tx: Transaction, *, status: Optional[TransferStatus] = None) -> List[TransferRecord]:
    rows = tx.scan(TRANSFERS) if status is None else tx.scan(TRANSFERS, status=status)
    return sorted(rows, key=lambda record: record.created_at, reverse=True)


__all__ = [
    "get_transfer",
    "insert_transfer",
    "save_transfer",
    "completed_transfer_for_offer",
    "shares_bought_on_listing",
    "transfers_for_user",
    "list_transfers",
]

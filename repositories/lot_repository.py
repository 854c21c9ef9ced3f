"""
Inventory lot repository (persistence).

Lots are returned in insertion order; debits depend on that order.
"""

from __future__ import annotations

from typing import List

from domain.inventory import InventoryLot
from repositories.store import LOTS, Transaction


def lots_for_user(tx: Transaction, user_id: str) -> List[InventoryLot]:
    return tx.scan(LOTS, user_id=user_id)


def insert_lot(tx: Transaction, lot: InventoryLot) -> None:
    tx.insert(lot)


def save_lot(tx: Transaction, lot: InventoryLot) -> None:
    tx.update(lot)


def all_lots(tx: Transaction) -> List[InventoryLot]:
    return tx.scan(LOTS)


__all__ = ["lots_for_user", "insert_lot", "save_lot", "all_lots"]

"""
Transactional store.

The engine's only shared mutable state lives behind `Store`. Every write goes
through `Store.transaction()`, a context manager that commits when the body
returns and discards every buffered change when it raises. `with_transaction`
wraps that in the retry loop used by all services: a `TransactionConflict`
(another writer changed a row this transaction read) re-runs the body against
fresh state.

Tables:
- listings        keyed by listing_id
- offers          keyed by offer_id
- inventory_lots  keyed by lot_id (scan order == insertion order)
- transfers       keyed by transfer_id
- audit_entries   keyed by entry_id
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Protocol, TypeVar

from domain.audit import AuditEntry
from domain.errors import ConflictError, TransactionConflict
from domain.inventory import InventoryLot
from domain.listing import PercentageListing, WholeShareListing
from domain.offer import Offer
from domain.transfer import TransferRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

LISTINGS = "listings"
OFFERS = "offers"
LOTS = "inventory_lots"
TRANSFERS = "transfers"
AUDIT = "audit_entries"

TABLE_KEYS: Dict[str, str] = {
    LISTINGS: "listing_id",
    OFFERS: "offer_id",
    LOTS: "lot_id",
    TRANSFERS: "transfer_id",
    AUDIT: "entry_id",
}

DEFAULT_RETRIES = 3


def table_for(record: Any) -> str:
    if isinstance(record, (WholeShareListing, PercentageListing)):
        return LISTINGS
    if isinstance(record, Offer):
        return OFFERS
    if isinstance(record, InventoryLot):
        return LOTS
    if isinstance(record, TransferRecord):
        return TRANSFERS
    if isinstance(record, AuditEntry):
        return AUDIT
    raise TypeError(f"No table for record type {type(record).__name__}")


def key_of(record: Any) -> str:
    return str(getattr(record, TABLE_KEYS[table_for(record)]))


def matches(record: Any, equals: Dict[str, Any]) -> bool:
    """Attribute equality filter shared by store implementations."""

    return all(getattr(record, name, None) == value for name, value in equals.items())


class Transaction(Protocol):
    def get(self, table: str, key: str) -> Optional[Any]: ...

    def scan(self, table: str, **equals: Any) -> List[Any]: ...

    def insert(self, record: Any) -> None: ...

    def update(self, record: Any) -> None: ...

    def delete(self, table: str, key: str) -> None: ...


class Store(Protocol):
    def transaction(self) -> ContextManager[Transaction]: ...

    def snapshot(self) -> ContextManager[Transaction]: ...


class _MemoryTransaction:
    """Working set over copy-on-write table dicts. Records are immutable, so shallow copies suffice."""

    def __init__(self, tables: Dict[str, Dict[str, Any]], *, read_only: bool = False) -> None:
        self.tables = tables
        self.read_only = read_only

    def _rows(self, table: str) -> Dict[str, Any]:
        try:
            return self.tables[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    def _check_writable(self) -> None:
        if self.read_only:
            raise RuntimeError("snapshot views are read-only")

    def get(self, table: str, key: str) -> Optional[Any]:
        return self._rows(table).get(key)

    def scan(self, table: str, **equals: Any) -> List[Any]:
        return [record for record in self._rows(table).values() if matches(record, equals)]

    def insert(self, record: Any) -> None:
        self._check_writable()
        rows = self._rows(table_for(record))
        key = key_of(record)
        if key in rows:
            raise ConflictError(f"Duplicate key {key} in {table_for(record)}")
        rows[key] = record

    def update(self, record: Any) -> None:
        self._check_writable()
        rows = self._rows(table_for(record))
        key = key_of(record)
        if key not in rows:
            raise ValueError(f"Cannot update missing row {key} in {table_for(record)}")
        rows[key] = record

    def delete(self, table: str, key: str) -> None:
        self._check_writable()
        self._rows(table).pop(key, None)


class InMemoryStore:
    """
    Process-local store with serializable isolation.

    A re-entrant lock is held for the lifetime of each transaction, so
    transactions execute one at a time; the working set is swapped in only when
    the body completes without raising.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Any]] = {name: {} for name in TABLE_KEYS}
        self._lock = threading.RLock()

    def _copy(self) -> Dict[str, Dict[str, Any]]:
        return {name: dict(rows) for name, rows in self._tables.items()}

    @contextmanager
    def transaction(self) -> Iterator[_MemoryTransaction]:
        with self._lock:
            working = _MemoryTransaction(self._copy())
            yield working
            self._tables = working.tables

    @contextmanager
    def snapshot(self) -> Iterator[_MemoryTransaction]:
        with self._lock:
            view = _MemoryTransaction(self._copy(), read_only=True)
        yield view


def with_transaction(store: Store, body: Callable[[Transaction], T], *, retries: int = DEFAULT_RETRIES) -> T:
    """
    Run `body(tx)` in a transaction and commit.

    Any exception aborts the transaction with no visible effect. Optimistic
    concurrency conflicts re-run the body up to `retries` more times.
    """

    attempt = 0
    while True:
        try:
            with store.transaction() as tx:
                return body(tx)
        except TransactionConflict as exc:
            attempt += 1
            if attempt > retries:
                raise ConflictError(
                    "Concurrent update detected; please retry",
                    details={"attempts": attempt},
                ) from exc
            logger.info(
                "Transaction conflict, retrying",
                extra={"attempt": attempt, "reason": exc.message},
            )


def read_snapshot(store: Store, body: Callable[[Transaction], T]) -> T:
    """Run a read-only body against a consistent snapshot."""

    with store.snapshot() as view:
        return body(view)


__all__ = [
    "LISTINGS",
    "OFFERS",
    "LOTS",
    "TRANSFERS",
    "AUDIT",
    "TABLE_KEYS",
    "Transaction",
    "Store",
    "InMemoryStore",
    "with_transaction",
    "read_snapshot",
    "table_for",
    "key_of",
]

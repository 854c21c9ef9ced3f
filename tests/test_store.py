"""
Tests for `repositories/store.py` and `repositories/supabase_store.py`.

Covers:
- A transaction that raises leaves no visible effect.
- Duplicate inserts are rejected; snapshots are read-only.
- with_transaction re-runs the body on optimistic conflicts and gives up with ConflictError.
- The Supabase store sends the versions it read and the rows it wrote to commit_changeset,
  and maps a serialization failure to a retry.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from domain.errors import ConflictError, TransactionConflict
from domain.inventory import InventoryLot, LotStatus
from domain.shares import ShareClass
from repositories.rows import record_to_row
from repositories.store import LOTS, InMemoryStore, read_snapshot, with_transaction
from repositories.supabase_store import SupabaseStore

NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def _lot(lot_id: str = "lot-1", shares: int = 10, user_id: str = "seller-1") -> InventoryLot:
    return InventoryLot(
        lot_id=lot_id,
        user_id=user_id,
        share_class=ShareClass.REGULAR,
        original_shares=shares,
        sold_shares=0,
        status=LotStatus.COMPLETED,
        created_at=NOW,
    )


def test_failed_transaction_has_no_effect() -> None:
    """Verify writes made before an exception are discarded."""

    store = InMemoryStore()
    with_transaction(store, lambda tx: tx.insert(_lot()))

    def body(tx) -> None:
        tx.update(_lot().consume(4))
        tx.insert(_lot("lot-2"))
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        with_transaction(store, body)

    lots = read_snapshot(store, lambda tx: tx.scan(LOTS))
    assert lots == [_lot()]


def test_duplicate_insert_is_rejected() -> None:
    """Verify a second insert with the same key raises ConflictError."""

    store = InMemoryStore()
    with_transaction(store, lambda tx: tx.insert(_lot()))

    with pytest.raises(ConflictError):
        with_transaction(store, lambda tx: tx.insert(_lot()))


def test_snapshot_is_read_only() -> None:
    """Verify snapshot views refuse writes."""

    store = InMemoryStore()

    with pytest.raises(RuntimeError):
        read_snapshot(store, lambda tx: tx.insert(_lot()))


def test_scan_keeps_insertion_order() -> None:
    """Verify scans return rows in the order they were inserted."""

    store = InMemoryStore()
    for lot_id in ("c", "a", "b"):
        with_transaction(store, lambda tx, lot_id=lot_id: tx.insert(_lot(lot_id)))

    lots = read_snapshot(store, lambda tx: tx.scan(LOTS, user_id="seller-1"))
    assert [lot.lot_id for lot in lots] == ["c", "a", "b"]


def test_with_transaction_retries_conflicts() -> None:
    """Verify a conflicting body is re-run and its final result returned."""

    store = InMemoryStore()
    attempts: List[int] = []

    def body(tx) -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise TransactionConflict("row changed")
        tx.insert(_lot())
        return "done"

    assert with_transaction(store, body) == "done"
    assert len(attempts) == 3
    assert len(read_snapshot(store, lambda tx: tx.scan(LOTS))) == 1


def test_with_transaction_gives_up_after_retries() -> None:
    """Verify the retry budget ends in ConflictError."""

    store = InMemoryStore()

    def body(tx) -> None:
        raise TransactionConflict("row changed")

    with pytest.raises(ConflictError) as excinfo:
        with_transaction(store, body, retries=2)
    assert excinfo.value.details == {"attempts": 3}


# ---------------------------------------------------------------------------
# Supabase store against a fake PostgREST client
# ---------------------------------------------------------------------------


class _FakeQuery:
    def __init__(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = rows
        self._filters: List[tuple] = []

    def select(self, columns: str) -> "_FakeQuery":
        return self

    def eq(self, column: str, value: str) -> "_FakeQuery":
        self._filters.append((column, value))
        return self

    def is_(self, column: str, value: str) -> "_FakeQuery":
        self._filters.append((column, None))
        return self

    def limit(self, count: int) -> "_FakeQuery":
        return self

    def order(self, column: str) -> "_FakeQuery":
        return self

    def _value(self, row: Dict[str, Any], column: str) -> Optional[str]:
        if column == "id":
            return row["id"]
        value = row["data"].get(column.replace("data->>", ""))
        return None if value is None else str(value)

    def execute(self) -> SimpleNamespace:
        rows = [row for row in self._rows if all(self._value(row, col) == val for col, val in self._filters)]
        return SimpleNamespace(data=rows, error=None)


class _FakeRpc:
    def __init__(self, client: "_FakeClient", params: Dict[str, Any]) -> None:
        self._client = client
        self._params = params

    def execute(self) -> SimpleNamespace:
        self._client.commits.append(self._params)
        if self._client.conflicts:
            self._client.conflicts -= 1
            raise APIError({"code": "40001", "message": "stale read", "details": None, "hint": None})
        return SimpleNamespace(data={"success": True}, error=None)


class _FakeClient:
    def __init__(self, tables: Dict[str, List[Dict[str, Any]]], conflicts: int = 0) -> None:
        self.tables = tables
        self.conflicts = conflicts
        self.commits: List[Dict[str, Any]] = []

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self.tables.get(name, []))

    def rpc(self, name: str, params: Dict[str, Any]) -> _FakeRpc:
        assert name == "commit_changeset"
        return _FakeRpc(self, params)


def test_supabase_store_commits_reads_and_writes() -> None:
    """Verify the changeset carries the read version and the updated document."""

    stored = _lot()
    client = _FakeClient({LOTS: [{"id": "lot-1", "version": 7, "data": record_to_row(stored)}]})
    store = SupabaseStore(client)

    def body(tx) -> None:
        lot = tx.get(LOTS, "lot-1")
        tx.update(lot.consume(3))
        tx.insert(_lot("lot-2", 3, user_id="buyer-1"))

    with_transaction(store, body)

    [commit] = client.commits
    assert commit["p_reads"] == [{"table": LOTS, "id": "lot-1", "version": 7}]
    writes = {write["id"]: write for write in commit["p_writes"]}
    assert writes["lot-1"]["op"] == "update"
    assert writes["lot-1"]["data"]["sold_shares"] == 3
    assert writes["lot-2"]["op"] == "insert"
    assert writes["lot-2"]["data"]["user_id"] == "buyer-1"


def test_supabase_store_scan_filters_and_decodes() -> None:
    """Verify scans decode documents into domain records."""

    client = _FakeClient(
        {
            LOTS: [
                {"id": "lot-1", "version": 1, "data": record_to_row(_lot())},
                {"id": "lot-2", "version": 1, "data": record_to_row(_lot("lot-2", user_id="buyer-1"))},
            ]
        }
    )

    lots = read_snapshot(SupabaseStore(client), lambda tx: tx.scan(LOTS, user_id="buyer-1"))

    assert lots == [_lot("lot-2", user_id="buyer-1")]
    assert client.commits == []


def test_supabase_store_retries_serialization_failures() -> None:
    """Verify a stale-read rejection re-runs the transaction."""

    client = _FakeClient({LOTS: []}, conflicts=1)

    with_transaction(SupabaseStore(client), lambda tx: tx.insert(_lot()))

    assert len(client.commits) == 2


def test_supabase_store_read_only_transaction_does_not_commit() -> None:
    """Verify a body without writes never calls the database function."""

    client = _FakeClient({LOTS: [{"id": "lot-1", "version": 1, "data": record_to_row(_lot())}]})

    assert with_transaction(SupabaseStore(client), lambda tx: tx.get(LOTS, "lot-1")) == _lot()
    assert client.commits == []

"""
Supabase-backed store (persistence).

Each table holds one JSON document per record:

    id text primary key, version integer, seq bigserial, data jsonb

A transaction reads through PostgREST, remembering the version of every row it
saw, and buffers its writes. Commit calls the PostgreSQL function
`commit_changeset(p_reads, p_writes)` (see migrations/001_share_exchange.sql),
which locks every row that was read, re-checks its version and applies the
writes in one database transaction. A stale read raises SQLSTATE 40001, which
surfaces here as TransactionConflict so `with_transaction` can re-run the body.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from postgrest.exceptions import APIError

from domain.errors import ConflictError, DependencyError, TransactionConflict
from repositories.client import get_supabase
from repositories.rows import record_to_row, row_to_record
from repositories.store import TABLE_KEYS, key_of, matches, table_for

logger = logging.getLogger(__name__)

_COLUMNS = "id, version, data"

# PostgreSQL error codes surfaced by commit_changeset.
_SERIALIZATION_FAILURE = "40001"
_UNIQUE_VIOLATION = "23505"

_Key = Tuple[str, str]


def _filter_value(value: Any) -> str:
    """Render a Python value the way `data->>field` renders it in PostgreSQL."""

    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _raise_for_error(response: Any, action: str) -> None:
    error = getattr(response, "error", None)
    if error:
        raise DependencyError(f"Failed to {action}: {error}")


class _SupabaseTransaction:
    def __init__(self, client: Any, *, read_only: bool = False) -> None:
        self._client = client
        self._read_only = read_only
        self._versions: Dict[_Key, Optional[int]] = {}
        self._cache: Dict[_Key, Optional[Any]] = {}
        self._pending: Dict[_Key, str] = {}

    # -- reads -------------------------------------------------------------

    def _remember(self, table: str, row: Dict[str, Any]) -> Any:
        key = (table, str(row["id"]))
        if key in self._cache:
            return self._cache[key]
        record = row_to_record(table, row["data"])
        self._versions[key] = int(row["version"])
        self._cache[key] = record
        return record

    def get(self, table: str, key: str) -> Optional[Any]:
        if table not in TABLE_KEYS:
            raise ValueError(f"Unknown table: {table}")
        cache_key = (table, key)
        if cache_key in self._cache:
            return self._cache[cache_key]

        try:
            response = self._client.table(table).select(_COLUMNS).eq("id", key).limit(1).execute()
        except Exception as exc:
            raise DependencyError(f"Failed to read {table}/{key}: {exc}") from exc
        _raise_for_error(response, f"read {table}/{key}")

        rows = getattr(response, "data", None) or []
        if not rows:
            self._versions[cache_key] = None
            self._cache[cache_key] = None
            return None
        return self._remember(table, rows[0])

    def scan(self, table: str, **equals: Any) -> List[Any]:
        if table not in TABLE_KEYS:
            raise ValueError(f"Unknown table: {table}")

        query = self._client.table(table).select(_COLUMNS)
        for name, value in equals.items():
            column = f"data->>{name}"
            query = query.is_(column, "null") if value is None else query.eq(column, _filter_value(value))
        try:
            response = query.order("seq").execute()
        except Exception as exc:
            raise DependencyError(f"Failed to scan {table}: {exc}") from exc
        _raise_for_error(response, f"scan {table}")

        results: List[Any] = []
        seen: set[str] = set()
        for row in getattr(response, "data", None) or []:
            record = self._remember(table, row)
            seen.add(str(row["id"]))
            if record is not None and matches(record, equals):
                results.append(record)

        # Rows written earlier in this transaction that the database has not seen yet.
        for (pending_table, pending_key), op in self._pending.items():
            if pending_table != table or pending_key in seen or op == "delete":
                continue
            record = self._cache[(pending_table, pending_key)]
            if record is not None and matches(record, equals):
                results.append(record)
        return results

    # -- writes ------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._read_only:
            raise RuntimeError("snapshot views are read-only")

    def insert(self, record: Any) -> None:
        self._check_writable()
        key = (table_for(record), key_of(record))
        if self._cache.get(key) is not None:
            raise ConflictError(f"Duplicate key {key[1]} in {key[0]}")
        self._cache[key] = record
        self._pending[key] = "insert" if self._pending.get(key) != "delete" else "update"

    def update(self, record: Any) -> None:
        self._check_writable()
        key = (table_for(record), key_of(record))
        if key not in self._cache:
            self.get(*key)
        if self._cache.get(key) is None:
            raise ValueError(f"Cannot update missing row {key[1]} in {key[0]}")
        self._cache[key] = record
        self._pending.setdefault(key, "update")

    def delete(self, table: str, key: str) -> None:
        self._check_writable()
        cache_key = (table, key)
        if cache_key not in self._cache:
            self.get(table, key)
        if self._pending.get(cache_key) == "insert":
            del self._pending[cache_key]
        elif self._cache.get(cache_key) is not None:
            self._pending[cache_key] = "delete"
        self._cache[cache_key] = None

    # -- commit ------------------------------------------------------------

    def commit(self) -> None:
        if not self._pending:
            return

        reads = [
            {"table": table, "id": key, "version": version}
            for (table, key), version in self._versions.items()
        ]
        writes: List[Dict[str, Any]] = []
        for (table, key), op in self._pending.items():
            record = self._cache[(table, key)]
            writes.append(
                {
                    "op": op,
                    "table": table,
                    "id": key,
                    "data": record_to_row(record) if record is not None else None,
                }
            )

        try:
            response = self._client.rpc("commit_changeset", {"p_reads": reads, "p_writes": writes}).execute()
        except APIError as exc:
            # supabase-py can raise APIError for a JSON body even when the function succeeded.
            try:
                payload = exc.json() if callable(getattr(exc, "json", None)) else {}
            except ValueError:
                payload = {}
            if isinstance(payload, dict) and payload.get("success") is True:
                return
            code = str(getattr(exc, "code", "") or "")
            if code in (_SERIALIZATION_FAILURE, _UNIQUE_VIOLATION):
                raise TransactionConflict(f"Changeset rejected ({code}): {exc}") from exc
            raise DependencyError(f"Failed to commit changeset: {exc}") from exc
        except Exception as exc:
            logger.error("Store commit failed", exc_info=True, extra={"writes": len(writes)})
            raise DependencyError(f"Failed to commit changeset: {exc}") from exc
        _raise_for_error(response, "commit changeset")


class SupabaseStore:
    """Store implementation over Supabase/PostgREST with optimistic version checks."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    @contextmanager
    def transaction(self) -> Iterator[_SupabaseTransaction]:
        tx = _SupabaseTransaction(self.client)
        yield tx
        tx.commit()

    @contextmanager
    def snapshot(self) -> Iterator[_SupabaseTransaction]:
        yield _SupabaseTransaction(self.client, read_only=True)


__all__ = ["SupabaseStore"]

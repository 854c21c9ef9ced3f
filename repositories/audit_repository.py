"""
Audit log repository (persistence). Append and read only.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from domain.audit import AuditAction, AuditEntry
from repositories.store import AUDIT, Transaction


def append_entry(tx: Transaction, entry: AuditEntry) -> None:
    tx.insert(entry)


def entries_for_target(tx: Transaction, target_id: str) -> List[AuditEntry]:
    return sorted(tx.scan(AUDIT, target_id=target_id), key=lambda entry: entry.at)


def search_entries(
    tx: Transaction,
    *,
    admin_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> List[AuditEntry]:
    """Global audit search, newest first."""

    equals = {}
    if admin_id is not None:
        equals["admin_id"] = admin_id
    if action is not None:
        equals["action"] = action
    rows = [
        entry
        for entry in tx.scan(AUDIT, **equals)
        if (since is None or entry.at >= since) and (until is None or entry.at < until)
    ]
    return sorted(rows, key=lambda entry: entry.at, reverse=True)


__all__ = ["append_entry", "entries_for_target", "search_entries"]

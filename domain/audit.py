"""
Domain: administrative audit trail.

Every admin mutation appends exactly one AuditEntry. Entries are never updated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .time import require_utc_timestamp


class AuditAction(str, Enum):
    FORCE_COMPLETE = "force_complete"
    CANCEL = "cancel"
    DELETE = "delete"
    REFUND = "refund"
    FLAG_STUCK = "flag_stuck"
    CREATE_DISPUTE = "create_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    UPDATE_STATUS = "update_status"


class TargetKind(str, Enum):
    OFFER = "offer"
    LISTING = "listing"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    entry_id: str
    admin_id: str
    action: AuditAction
    target_kind: TargetKind
    target_id: str
    reason: str
    at: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    batch_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("at", self.at)
        if not self.reason:
            raise ValueError("audit entries require a reason")


__all__ = ["AuditAction", "TargetKind", "AuditEntry"]

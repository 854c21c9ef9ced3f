"""
CSV export service for a user's share transfer statement.

Generates a CSV of the caller's completed transfers (both directions) with
counterparty, price and provenance for record keeping.

Security:
- Authorization: only the caller's own transfers are exported
- CSV Injection Prevention: free-text fields are sanitized to prevent formula execution
- Security Logging: logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from io import StringIO
from typing import List, Optional

from domain.transfer import TransferRecord, TransferStatus
from repositories.store import read_snapshot
from repositories.transfer_repository import transfers_for_user
from services.context import EngineContext, Principal

logger = logging.getLogger(__name__)

STATEMENT_COLUMNS = [
    "transfer_id",
    "completed_at",
    "direction",
    "counterparty_id",
    "share_class",
    "tier",
    "shares",
    "price_per_share",
    "total_price",
    "currency",
    "transfer_type",
    "verification_method",
    "offer_id",
    "listing_id",
    "notes",
]


def sanitize_csv_field(value: Optional[str], field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    If dangerous characters are found and stripped, a warning is logged for
    security monitoring.

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "notes")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


@dataclass(frozen=True, slots=True)
class StatementRow:
    """One completed transfer as seen by the statement owner."""
    transfer_id: str
    completed_at: Optional[datetime]
    direction: str
    counterparty_id: str
    share_class: str
    tier: str
    shares: int
    price_per_share: Decimal
    total_price: Decimal
    currency: str
    transfer_type: str
    verification_method: str
    offer_id: str
    listing_id: str
    notes: str


def _statement_row(record: TransferRecord, user_id: str) -> StatementRow:
    direction = record.direction_for(user_id)
    counterparty = record.to_user_id if direction == "sent" else record.from_user_id
    return StatementRow(
        transfer_id=record.transfer_id,
        completed_at=record.completed_at,
        direction=direction,
        counterparty_id=sanitize_csv_field(counterparty, "counterparty_id"),
        share_class=record.share_class.value,
        tier=sanitize_csv_field(record.tier, "tier"),
        shares=record.share_count,
        price_per_share=record.price_per_share,
        total_price=record.total_price,
        currency=record.currency.value,
        transfer_type=record.transfer_type.value,
        verification_method=record.verification.method.value,
        offer_id=record.offer_id,
        listing_id=record.listing_id,
        notes=sanitize_csv_field(record.notes, "notes"),
    )


def generate_transfer_statement(ctx: EngineContext, principal: Principal) -> str:
    """
    Generate a CSV statement of the caller's completed transfers, newest first.

    Returns:
        CSV content as a string (header row only when there are no transfers)

    Example:
        csv_content = generate_transfer_statement(ctx, principal)
        return Response(content=csv_content, media_type="text/csv")
    """
    records: List[TransferRecord] = read_snapshot(
        ctx.store,
        lambda tx: transfers_for_user(tx, principal.user_id, status=TransferStatus.COMPLETED),
    )
    rows = [_statement_row(record, principal.user_id) for record in records]

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(STATEMENT_COLUMNS)
    for row in rows:
        writer.writerow([
            row.transfer_id,
            row.completed_at.isoformat() if row.completed_at else "",
            row.direction,
            row.counterparty_id,
            row.share_class,
            row.tier,
            row.shares,
            str(row.price_per_share),
            str(row.total_price),
            row.currency,
            row.transfer_type,
            row.verification_method,
            row.offer_id,
            row.listing_id,
            row.notes,
        ])

    logger.info("Transfer statement generated", extra={"user_id": principal.user_id, "rows": len(rows)})
    return output.getvalue()


__all__ = ["sanitize_csv_field", "generate_transfer_statement", "STATEMENT_COLUMNS"]

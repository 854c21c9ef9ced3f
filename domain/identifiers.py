"""
Identifier generation.

Ids are opaque strings generated server side. Templates:
- listing:             LST-<HEX8>-<ts6>
- percentage listing:  PEL-<ts>-<rand9>
- offer:               OFR-<HEX8>-<ts6>
- percentage offer:    POF-<tier>-<ts>-<rand9>
- transfer:            TRF-<HEX8>-<ts6>
- audit entry:         AUD-<HEX8>-<ts6>

Uniqueness comes from the random part; the store rejects duplicate inserts.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from uuid import uuid4

_BASE36 = string.digits + string.ascii_lowercase


def _millis(now: datetime) -> str:
    return str(int(now.timestamp() * 1000))


def _hex8() -> str:
    return secrets.token_hex(4).upper()


def _rand9() -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(9))


def _prefixed(prefix: str, now: datetime) -> str:
    return f"{prefix}-{_hex8()}-{_millis(now)[-6:]}"


def new_listing_id(now: datetime) -> str:
    return _prefixed("LST", now)


def new_percentage_listing_id(now: datetime) -> str:
    return f"PEL-{_millis(now)}-{_rand9()}"


def new_offer_id(now: datetime) -> str:
    return _prefixed("OFR", now)


def new_percentage_offer_id(tier: str, now: datetime) -> str:
    return f"POF-{tier}-{_millis(now)}-{_rand9()}"


def new_transfer_id(now: datetime) -> str:
    return _prefixed("TRF", now)


def new_audit_id(now: datetime) -> str:
    return _prefixed("AUD", now)


def new_lot_id() -> str:
    return str(uuid4())

"""
Domain time utilities (pure).

Centralized timestamp validation and the few calendar helpers the engine needs.
Behavior and error messages must remain consistent across the domain model.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces that timestamps stored by the engine are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def require_optional_utc(name: str, value: Optional[datetime]) -> None:
    if value is not None:
        require_utc_timestamp(name, value)


def utc_day(value: datetime) -> date:
    """Calendar day (UTC) a timestamp falls on."""

    return value.astimezone(timezone.utc).date()


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0

"""
Domain: error taxonomy for the settlement engine.

Every failure a caller can observe is one of these classes. The API layer maps
them to HTTP statuses in a single place; services only raise.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class ShareExchangeError(Exception):
    """Base class for all engine errors. `code` is stable and machine readable."""

    code = "ERROR"

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class ValidationError(ShareExchangeError, ValueError):
    """Missing or out-of-range input, bad enum, incompatible payment method, missing channel details."""

    code = "VALIDATION_ERROR"


class AuthorizationError(ShareExchangeError):
    """Actor is not the listing's seller, the offer's buyer, or an administrator."""

    code = "AUTHORIZATION_ERROR"


class StateError(ShareExchangeError):
    """Operation is illegal in the current offer or listing state."""

    code = "STATE_ERROR"


class DeadlineError(ShareExchangeError):
    """Offer pending TTL expired or payment deadline passed."""

    code = "DEADLINE_ERROR"


class InsufficientInventory(ShareExchangeError):
    """Seller cannot cover the requested shares."""

    code = "INSUFFICIENT_INVENTORY"


class ShareClassMismatch(ShareExchangeError):
    """A tier was combined with a share class it does not belong to."""

    code = "SHARE_CLASS_MISMATCH"


class ListingExhausted(ShareExchangeError):
    """Requested shares exceed what remains on the listing."""

    code = "LISTING_EXHAUSTED"


class NotFound(ShareExchangeError):
    """Unknown identifier."""

    code = "NOT_FOUND"


class ConflictError(ShareExchangeError):
    """Delete on a non-terminal offer, bulk item already completed, or lost write race."""

    code = "CONFLICT"


class DependencyError(ShareExchangeError):
    """Store, blob storage, or notifier failure."""

    code = "DEPENDENCY_ERROR"


class TransactionConflict(ShareExchangeError):
    """
    Optimistic concurrency failure inside the store.

    Raised when a row read inside a transaction changed before commit. The
    transaction combinator retries the body; callers only see ConflictError
    once the retry budget is spent.
    """

    code = "TRANSACTION_CONFLICT"


__all__ = [
    "ShareExchangeError",
    "ValidationError",
    "AuthorizationError",
    "StateError",
    "DeadlineError",
    "InsufficientInventory",
    "ShareClassMismatch",
    "ListingExhausted",
    "NotFound",
    "ConflictError",
    "DependencyError",
    "TransactionConflict",
]

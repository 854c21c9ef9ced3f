"""
Row codecs.

Domain records are stored as JSON documents (`data` column) by the Supabase
store. Encoding and decoding go through pydantic TypeAdapters built directly on
the domain dataclasses, so the dataclass validation (`__post_init__`) runs on
every decoded row.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Mapping, Union

from pydantic import Field, TypeAdapter

from domain.audit import AuditEntry
from domain.inventory import InventoryLot
from domain.listing import PercentageListing, WholeShareListing
from domain.offer import Offer
from domain.transfer import TransferRecord
from repositories.store import AUDIT, LISTINGS, LOTS, OFFERS, TRANSFERS, table_for

ListingAdapter: TypeAdapter = TypeAdapter(
    Annotated[Union[WholeShareListing, PercentageListing], Field(discriminator="kind")]
)

_ADAPTERS: Dict[str, TypeAdapter] = {
    LISTINGS: ListingAdapter,
    OFFERS: TypeAdapter(Offer),
    LOTS: TypeAdapter(InventoryLot),
    TRANSFERS: TypeAdapter(TransferRecord),
    AUDIT: TypeAdapter(AuditEntry),
}


def record_to_row(record: Any) -> Dict[str, Any]:
    """Serialize a domain record to a JSON-compatible dict."""

    return _ADAPTERS[table_for(record)].dump_python(record, mode="json")


def row_to_record(table: str, data: Mapping[str, Any]) -> Any:
    """Rebuild a domain record from its stored JSON document."""

    try:
        adapter = _ADAPTERS[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None
    return adapter.validate_python(dict(data))


__all__ = ["record_to_row", "row_to_record", "ListingAdapter"]

"""Data models shared across the ingest pipeline.

The raw CSV row is an untyped mapping; the classification step turns it into
one of two platform-specific row shapes (:class:`DenetRow` or
:class:`BitstopRow`) which the adapters then normalize into a
:class:`TransactionCandidate`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any


class Platform(StrEnum):
    """Upstream transaction source."""

    DENET = "denet"
    BITSTOP = "bitstop"


# ---------------------------------------------------------------------------
# Classified CSV rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DenetRow:
    """Raw text cells of one Denet export row, after header-alias lookup."""

    id: str | None
    atm_id: str | None
    atm_name: str | None
    ticker: str | None
    fee: str | None
    sent: str | None
    sale: str | None
    operator_fee: str | None
    created_at: str | None
    customer_id: str | None = None
    customer_first_name: str | None = None
    customer_last_name: str | None = None
    customer_city: str | None = None
    customer_state: str | None = None

    platform = Platform.DENET


@dataclass(frozen=True, slots=True)
class BitstopRow:
    """Raw text cells of one Bitstop export row. Bitstop carries no fee column."""

    id: str | None
    atm_id: str | None
    atm_name: str | None
    ticker: str | None
    sale: str | None
    sent: str | None
    created_at: str | None

    platform = Platform.BITSTOP


type ClassifiedRow = DenetRow | BitstopRow
"""Tagged union produced by :func:`btm_backoffice.ingest.classify_rows`."""


# ---------------------------------------------------------------------------
# Normalized transaction
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class TransactionCandidate:
    """A normalized transaction ready for de-duplication and insert.

    Monetary fields stay ``None`` when the source cell was blank or
    unparsable; zero and unknown are different values downstream.
    """

    id: str
    platform: Platform
    atm_id: str | None = None
    atm_name: str | None = None
    location_name: str | None = None
    ticker: str | None = None
    sale: Decimal | None = None
    fee: Decimal | None = None
    bitstop_fee: Decimal | None = None
    sent: Decimal | None = None
    date: date | None = None
    customer_id: str | None = None
    customer_first_name: str | None = None
    customer_last_name: str | None = None
    customer_city: str | None = None
    customer_state: str | None = None

    def to_row(self, *, upload_id: str | None) -> dict[str, Any]:
        return {
            "id": self.id,
            "atm_id": self.atm_id,
            "atm_name": self.atm_name,
            "location_name": self.location_name,
            "ticker": self.ticker,
            "sale": self.sale,
            "fee": self.fee,
            "bitstop_fee": self.bitstop_fee,
            "sent": self.sent,
            "date": self.date,
            "platform": self.platform.value,
            "customer_id": self.customer_id,
            "customer_first_name": self.customer_first_name,
            "customer_last_name": self.customer_last_name,
            "customer_city": self.customer_city,
            "customer_state": self.customer_state,
            "upload_id": upload_id,
        }


@dataclass(frozen=True, slots=True)
class IngestResult:
    """Outcome of one CSV upload.

    ``inserted`` equals the manifest's ``record_count``; ``duplicates`` counts
    rows skipped because their id was already stored (or repeated in the file).
    """

    upload_id: str
    filename: str
    platform: Platform
    processed: int
    inserted: int
    duplicates: int
    new_tickers: tuple[str, ...] = field(default_factory=tuple)
    new_atm_ids: tuple[str, ...] = field(default_factory=tuple)


__all__ = [
    "Platform",
    "DenetRow",
    "BitstopRow",
    "ClassifiedRow",
    "TransactionCandidate",
    "IngestResult",
]

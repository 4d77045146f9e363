"""Adapter for Bitstop transaction exports.

Bitstop exports carry no fee column. The fee is derived from the sale and the
fee percentage of the *raw* coin type: ``round(sale * pct, 2)`` half-up, with
``0.10`` for coin types that have no mapping. The platform operator fee is
always zero.

Recognized headers (case-insensitive): ``Id``, ``ATMID`` / ``AtmId``,
``Atm`` / ``Atm.Name``, ``CoinType``, ``Inserted`` (sale), ``Sent``,
``CreatedAt``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from decimal import Decimal

from ...models import BitstopRow, Platform, TransactionCandidate
from ...money import ZERO, round_money
from ..resolver import LookupContext
from ..utils import RawCsvRow, clean_text, parse_date, parse_money

# Any of these headers marks a file as a Bitstop export.
SIGNATURE_HEADERS = frozenset({"atmid", "cointype", "inserted"})

ID = ("Id",)
ATM_ID = ("ATMID", "AtmId")
ATM_NAME = ("Atm", "Atm.Name")
COIN_TYPE = ("CoinType",)
INSERTED = ("Inserted",)
SENT = ("Sent",)
CREATED_AT = ("CreatedAt",)


def classify(row: RawCsvRow) -> BitstopRow:
    return BitstopRow(
        id=row.first(*ID),
        atm_id=row.first(*ATM_ID),
        atm_name=row.first(*ATM_NAME),
        ticker=row.first(*COIN_TYPE),
        sale=row.first(*INSERTED),
        sent=row.first(*SENT),
        created_at=row.first(*CREATED_AT),
    )


def derive_fee(sale: Decimal | None, fee_percentage: Decimal) -> Decimal | None:
    if sale is None:
        return None
    return round_money(sale * fee_percentage)


def to_candidate(row: BitstopRow, ctx: LookupContext) -> TransactionCandidate | None:
    """Normalize one Bitstop row; ``None`` when the row has no transaction id."""

    tx_id = clean_text(row.id)
    if tx_id is None:
        return None
    atm_id, location = ctx.resolve_device(row.atm_id, row.atm_name)
    sale = parse_money(row.sale)
    return TransactionCandidate(
        id=tx_id,
        platform=Platform.BITSTOP,
        atm_id=atm_id,
        atm_name=location,
        location_name=location,
        ticker=ctx.resolve_ticker(row.ticker),
        sale=sale,
        fee=derive_fee(sale, ctx.fee_percentage(row.ticker)),
        bitstop_fee=ZERO,
        sent=parse_money(row.sent),
        date=parse_date(row.created_at),
    )


def to_candidates(
    rows: Iterable[BitstopRow], ctx: LookupContext
) -> Iterator[TransactionCandidate]:
    for row in rows:
        candidate = to_candidate(row, ctx)
        if candidate is not None:
            yield candidate


__all__ = ["SIGNATURE_HEADERS", "classify", "derive_fee", "to_candidate", "to_candidates"]

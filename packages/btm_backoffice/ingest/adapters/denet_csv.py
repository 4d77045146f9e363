"""Adapter for Denet transaction exports.

Denet has renamed several columns over time, so each logical field lists the
header spellings it accepts; the first non-blank one wins.

Field mapping
-------------
- ``id``: ``ID`` / ``transaction_id``
- ``atm_id``: ``atm.id`` / ``atm_id``; ``atm_name``: ``atm.name`` / ``atm_name``
- ``sale``: ``fiat``; ``fee``: ``fee``; ``sent``: ``enviando``
- ``bitstop_fee`` (platform operator fee): ``operator_fee_usd``
- ``date``: ``created_at_transaction_local``
- customer fields: ``customer_id``, ``customer.first_name`` /
  ``customer_first_name`` and likewise for last name, city and state
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ...models import DenetRow, Platform, TransactionCandidate
from ..resolver import LookupContext
from ..utils import RawCsvRow, clean_text, parse_date, parse_money

ID = ("ID", "transaction_id")
ATM_ID = ("atm.id", "atm_id")
ATM_NAME = ("atm.name", "atm_name")
TICKER = ("ticker",)
FEE = ("fee",)
SENT = ("enviando",)
SALE = ("fiat",)
OPERATOR_FEE = ("operator_fee_usd",)
CREATED_AT = ("created_at_transaction_local",)
CUSTOMER_ID = ("customer_id",)
CUSTOMER_FIRST_NAME = ("customer.first_name", "customer_first_name")
CUSTOMER_LAST_NAME = ("customer.last_name", "customer_last_name")
CUSTOMER_CITY = ("customer.city", "customer_city")
CUSTOMER_STATE = ("customer.state", "customer_state")


def classify(row: RawCsvRow) -> DenetRow:
    return DenetRow(
        id=row.first(*ID),
        atm_id=row.first(*ATM_ID),
        atm_name=row.first(*ATM_NAME),
        ticker=row.first(*TICKER),
        fee=row.first(*FEE),
        sent=row.first(*SENT),
        sale=row.first(*SALE),
        operator_fee=row.first(*OPERATOR_FEE),
        created_at=row.first(*CREATED_AT),
        customer_id=row.first(*CUSTOMER_ID),
        customer_first_name=row.first(*CUSTOMER_FIRST_NAME),
        customer_last_name=row.first(*CUSTOMER_LAST_NAME),
        customer_city=row.first(*CUSTOMER_CITY),
        customer_state=row.first(*CUSTOMER_STATE),
    )


def to_candidate(row: DenetRow, ctx: LookupContext) -> TransactionCandidate | None:
    """Normalize one Denet row; ``None`` when the row has no transaction id."""

    tx_id = clean_text(row.id)
    if tx_id is None:
        return None
    atm_id, location = ctx.resolve_device(row.atm_id, row.atm_name)
    return TransactionCandidate(
        id=tx_id,
        platform=Platform.DENET,
        atm_id=atm_id,
        atm_name=location,
        location_name=location,
        ticker=ctx.resolve_ticker(row.ticker),
        sale=parse_money(row.sale),
        fee=parse_money(row.fee),
        bitstop_fee=parse_money(row.operator_fee),
        sent=parse_money(row.sent),
        date=parse_date(row.created_at),
        customer_id=clean_text(row.customer_id),
        customer_first_name=clean_text(row.customer_first_name),
        customer_last_name=clean_text(row.customer_last_name),
        customer_city=clean_text(row.customer_city),
        customer_state=clean_text(row.customer_state),
    )


def to_candidates(
    rows: Iterable[DenetRow], ctx: LookupContext
) -> Iterator[TransactionCandidate]:
    for row in rows:
        candidate = to_candidate(row, ctx)
        if candidate is not None:
            yield candidate


__all__ = ["classify", "to_candidate", "to_candidates"]

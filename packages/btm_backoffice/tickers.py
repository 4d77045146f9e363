"""Ticker mapping administration and maintenance of stored transactions.

Operators rename tickers (``display_value``) and set per-ticker fee
percentages. Two maintenance passes bring stored transactions in line with the
current mappings; both write in chunks of 100 rows.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from db.models.btm import TickerMapping, Transaction
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .ingest.resolver import DEFAULT_FEE_PERCENTAGE
from .logging_setup import get_logger
from .models import Platform
from .money import round_money
from .schemas import TickerUpdate, parse_input

logger = get_logger("btm_backoffice.tickers")

CHUNK_SIZE = 100


@dataclass(frozen=True, slots=True)
class MaintenanceResult:
    examined: int
    updated: int


def list_ticker_mappings(session: Session) -> list[TickerMapping]:
    return list(
        session.execute(select(TickerMapping).order_by(TickerMapping.original_value)).scalars()
    )


def update_ticker_mapping(
    session: Session,
    mapping_id: str,
    changes: TickerUpdate | Mapping[str, Any],
) -> TickerMapping:
    """Set a mapping's display value and fee percentage (a fraction in [0, 1])."""

    values = parse_input(TickerUpdate, changes)
    mapping = session.get(TickerMapping, mapping_id)
    if mapping is None:
        raise NotFoundError(f"Ticker mapping {mapping_id} not found")
    mapping.display_value = values.display_value
    mapping.fee_percentage = values.fee_percentage
    mapping.updated_at = func.now()
    session.flush()
    return mapping


def _chunks[T](items: list[T], size: int = CHUNK_SIZE):
    for start in range(0, len(items), size):
        yield items[start : start + size]


def refresh_transaction_tickers(session: Session) -> MaintenanceResult:
    """Rewrite tickers still stored under an original value to its display value."""

    mappings = list_ticker_mappings(session)
    display_for: dict[str, str] = {}
    for m in mappings:
        if m.display_value:
            display_for[m.original_value] = m.display_value

    rows = session.execute(
        select(Transaction.id, Transaction.ticker).where(Transaction.ticker.is_not(None))
    ).all()
    pending: dict[str, list[str]] = {}
    for tx_id, ticker in rows:
        target = display_for.get(ticker)
        if target is not None and target != ticker:
            pending.setdefault(target, []).append(tx_id)

    updated = 0
    for target, ids in pending.items():
        for chunk in _chunks(ids):
            session.execute(
                update(Transaction).where(Transaction.id.in_(chunk)).values(ticker=target)
            )
            updated += len(chunk)
    session.flush()
    logger.info("Refreshed tickers on %d of %d transactions", updated, len(rows))
    return MaintenanceResult(examined=len(rows), updated=updated)


def recalculate_bitstop_fees(session: Session) -> MaintenanceResult:
    """Recompute Bitstop fees as ``round(sale * fee_percentage, 2)``.

    Stored tickers are display values, so fee percentages are keyed by the
    display value when set and the original value otherwise.
    """

    fee_for: dict[str, Decimal] = {}
    for m in list_ticker_mappings(session):
        key = m.display_value or m.original_value
        fee_for[key] = m.fee_percentage if m.fee_percentage is not None else DEFAULT_FEE_PERCENTAGE

    rows = session.execute(
        select(Transaction.id, Transaction.ticker, Transaction.sale, Transaction.fee).where(
            Transaction.platform == Platform.BITSTOP.value
        )
    ).all()
    changes: list[dict[str, Any]] = []
    for tx_id, ticker, sale, fee in rows:
        if sale is None:
            continue
        pct = fee_for.get(ticker or "", DEFAULT_FEE_PERCENTAGE)
        new_fee = round_money(sale * pct)
        if fee is None or round_money(fee) != new_fee:
            changes.append({"id": tx_id, "fee": new_fee})

    for chunk in _chunks(changes):
        session.execute(update(Transaction), chunk)
    session.flush()
    logger.info("Recalculated Bitstop fees on %d of %d transactions", len(changes), len(rows))
    return MaintenanceResult(examined=len(rows), updated=len(changes))


__all__ = [
    "CHUNK_SIZE",
    "MaintenanceResult",
    "list_ticker_mappings",
    "update_ticker_mapping",
    "refresh_transaction_tickers",
    "recalculate_bitstop_fees",
]

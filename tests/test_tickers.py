from __future__ import annotations

from decimal import Decimal

import pytest
from db.models.btm import Transaction
from sqlalchemy import event, select

from btm_backoffice.errors import InvalidInputError, NotFoundError
from btm_backoffice.tickers import (
    list_ticker_mappings,
    recalculate_bitstop_fees,
    refresh_transaction_tickers,
    update_ticker_mapping,
)

from tests.helpers.db import add_ticker, add_transaction


def _tickers(session) -> dict[str, str | None]:
    return dict(session.execute(select(Transaction.id, Transaction.ticker)).all())


def _fees(session) -> dict[str, Decimal | None]:
    return dict(session.execute(select(Transaction.id, Transaction.fee)).all())


def test_update_ticker_mapping_validates_fee_fraction(session) -> None:
    mapping = add_ticker(session, "BTC")

    update_ticker_mapping(
        session, mapping.id, {"display_value": " Bitcoin ", "fee_percentage": "0.12"}
    )
    assert mapping.display_value == "Bitcoin"
    assert mapping.fee_percentage == Decimal("0.12")

    update_ticker_mapping(session, mapping.id, {"display_value": "", "fee_percentage": 0})
    assert mapping.display_value is None

    with pytest.raises(InvalidInputError):
        update_ticker_mapping(session, mapping.id, {"fee_percentage": "1.5"})
    with pytest.raises(NotFoundError):
        update_ticker_mapping(session, "missing", {"fee_percentage": "0.1"})


def test_list_ticker_mappings_sorted_by_original_value(session) -> None:
    add_ticker(session, "USDT")
    add_ticker(session, "BTC")

    assert [m.original_value for m in list_ticker_mappings(session)] == ["BTC", "USDT"]


def test_refresh_rewrites_original_values_to_display_values(session) -> None:
    add_ticker(session, "BTC", display_value="Bitcoin")
    add_ticker(session, "ETH")
    add_transaction(session, "t1", ticker="BTC")
    add_transaction(session, "t2", ticker="Bitcoin")
    add_transaction(session, "t3", ticker="ETH")
    add_transaction(session, "t4", ticker=None)

    result = refresh_transaction_tickers(session)

    assert result.examined == 3
    assert result.updated == 1
    assert _tickers(session) == {"t1": "Bitcoin", "t2": "Bitcoin", "t3": "ETH", "t4": None}


def test_refresh_writes_in_chunks_of_one_hundred(session) -> None:
    add_ticker(session, "BTC", display_value="Bitcoin")
    for i in range(250):
        add_transaction(session, f"t{i:03d}", ticker="BTC")

    updates: list[str] = []
    engine = session.get_bind()

    def _capture(conn, cursor, statement, params, context, executemany):
        if statement.startswith("UPDATE transactions"):
            updates.append(statement)

    event.listen(engine, "before_cursor_execute", _capture)
    try:
        result = refresh_transaction_tickers(session)
    finally:
        event.remove(engine, "before_cursor_execute", _capture)

    assert result.updated == 250
    assert len(updates) == 3


def test_recalculate_bitstop_fees_uses_current_percentages(session) -> None:
    add_ticker(session, "BTC", display_value="Bitcoin", fee_percentage=Decimal("0.15"))
    add_ticker(session, "ETH", fee_percentage=Decimal("0.08"))
    add_transaction(
        session,
        "b1",
        ticker="Bitcoin",
        sale=Decimal("100.00"),
        fee=Decimal("10.00"),
        platform="bitstop",
    )
    add_transaction(
        session, "b2", ticker="ETH", sale=Decimal("10.05"), fee=None, platform="bitstop"
    )
    add_transaction(
        session,
        "b3",
        ticker="DOGE",
        sale=Decimal("20.00"),
        fee=Decimal("2.00"),
        platform="bitstop",
    )
    add_transaction(session, "b4", ticker="ETH", sale=None, fee=None, platform="bitstop")
    add_transaction(session, "d1", ticker="Bitcoin", fee=Decimal("1.00"), platform="denet")

    result = recalculate_bitstop_fees(session)
    session.expire_all()

    assert result.examined == 4
    assert result.updated == 2
    assert _fees(session) == {
        "b1": Decimal("15.00"),
        "b2": Decimal("0.80"),
        "b3": Decimal("2.00"),
        "b4": None,
        "d1": Decimal("1.00"),
    }

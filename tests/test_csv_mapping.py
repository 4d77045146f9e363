from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from btm_backoffice.errors import CsvParseError, NoValidRecordsError
from btm_backoffice.ingest import (
    LookupContext,
    RawCsvRow,
    classify_rows,
    detect_platform,
    map_rows,
    parse_date,
    parse_money,
    read_csv_text,
)
from btm_backoffice.ingest.adapters import bitstop_csv
from btm_backoffice.models import BitstopRow, DenetRow, Platform

from tests.helpers.db import bitstop_csv as bitstop_text
from tests.helpers.db import csv_text, denet_csv


# ---- Cell parsing ------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,234.50", Decimal("1234.50")),
        ("0", Decimal("0")),
        (" 12.3 ", Decimal("12.3")),
        ("", None),
        ("   ", None),
        (None, None),
        ("n/a", None),
    ],
)
def test_parse_money_keeps_blank_distinct_from_zero(raw, expected) -> None:
    assert parse_money(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-05", date(2024, 3, 5)),
        ("2024-03-05T23:10:00Z", date(2024, 3, 5)),
        ("2024-03-05 08:00:00", date(2024, 3, 5)),
        ("03/05/2024", date(2024, 3, 5)),
        ("3/5/2024 1:15 PM", date(2024, 3, 5)),
        ("03/05/2024 13:15:22", date(2024, 3, 5)),
        ("not a date", None),
        ("", None),
    ],
)
def test_parse_date_formats(raw, expected) -> None:
    assert parse_date(raw) == expected


def test_raw_row_lookup_is_case_and_whitespace_insensitive() -> None:
    row = RawCsvRow({" ATM.Id ": "A1", "Fiat": " 20 "})
    assert row["atm.id"] == "A1"
    assert "FIAT" in row
    assert row.first("missing", "fiat") == "20"


def test_read_csv_text_strips_bom_and_trims_headers() -> None:
    headers, rows = read_csv_text("\ufeffID , fiat\nt1,5\n")
    assert headers == ["ID", "fiat"]
    assert rows[0]["id"] == "t1"


def test_read_csv_text_without_header_is_parse_error() -> None:
    with pytest.raises(CsvParseError):
        read_csv_text("")


def test_read_csv_text_rejects_malformed_quoting() -> None:
    with pytest.raises(CsvParseError):
        read_csv_text('ID,fiat\n"t1,5\n')


# ---- Platform detection and classification ----------------------------------


def test_detects_bitstop_from_any_signature_header() -> None:
    assert detect_platform(["Id", "CoinType"]) is Platform.BITSTOP
    assert detect_platform(["id", " INSERTED "]) is Platform.BITSTOP
    assert detect_platform(["ID", "atm.id", "fiat"]) is Platform.DENET


def test_classify_produces_platform_row_shapes() -> None:
    b_text = bitstop_text([("b1", "A1", "Mall", "BTC", "50", "0.001", "2024-03-01")])
    _, rows = read_csv_text(b_text)
    (row,) = classify_rows(Platform.BITSTOP, rows)
    assert isinstance(row, BitstopRow)
    assert row.ticker == "BTC"

    d_text = denet_csv([("d1", "A1", "Mall", "BTC", "5", "0.001", "50", "1", "2024-03-01")])
    _, rows = read_csv_text(d_text)
    (row,) = classify_rows(Platform.DENET, rows)
    assert isinstance(row, DenetRow)
    assert row.operator_fee == "1"


# ---- Mapping -----------------------------------------------------------------


def test_denet_rows_map_fee_and_operator_fee_from_source() -> None:
    text = denet_csv(
        [("d1", "A1", "Mall", "BTC", "$5.00", "0.0012", "$1,050.00", "2.50", "03/01/2024 10:00 AM")]
    )
    headers, rows = read_csv_text(text)
    platform, (c,) = map_rows(headers, rows, LookupContext())

    assert platform is Platform.DENET
    assert c.id == "d1"
    assert c.sale == Decimal("1050.00")
    assert c.fee == Decimal("5.00")
    assert c.bitstop_fee == Decimal("2.50")
    assert c.sent == Decimal("0.0012")
    assert c.date == date(2024, 3, 1)
    assert c.atm_id == "A1"
    assert c.location_name == "Mall"


def test_denet_header_aliases_are_interchangeable() -> None:
    headers = ["transaction_id", "atm_id", "atm_name", "ticker", "fee", "fiat"]
    text = csv_text(headers, [("d9", "A7", "Gas Station", "ETH", "3", "30")])
    h, rows = read_csv_text(text)
    _, (c,) = map_rows(h, rows, LookupContext())
    assert (c.id, c.atm_id, c.location_name) == ("d9", "A7", "Gas Station")


def test_bitstop_fee_is_derived_from_raw_ticker_percentage() -> None:
    ctx = LookupContext()
    ctx.ticker_display["BTC"] = "Bitcoin"
    ctx.ticker_fees["BTC"] = Decimal("0.10")
    text = bitstop_text([("b1", "A1", "Mall", "BTC", "100.00", "0.002", "2024-03-02")])
    headers, rows = read_csv_text(text)

    platform, (c,) = map_rows(headers, rows, ctx)

    assert platform is Platform.BITSTOP
    assert c.fee == Decimal("10.00")
    assert c.bitstop_fee == Decimal("0")
    assert c.ticker == "Bitcoin"


def test_bitstop_fee_rounds_half_up_and_stays_none_without_sale() -> None:
    assert bitstop_csv.derive_fee(Decimal("10.05"), Decimal("0.05")) == Decimal("0.50")
    assert bitstop_csv.derive_fee(None, Decimal("0.10")) is None


def test_rows_without_id_are_dropped() -> None:
    text = bitstop_text(
        [
            ("", "A1", "Mall", "BTC", "10", "", "2024-03-02"),
            ("b2", "A1", "Mall", "BTC", "20", "", "2024-03-02"),
        ]
    )
    headers, rows = read_csv_text(text)
    _, candidates = map_rows(headers, rows, LookupContext())
    assert [c.id for c in candidates] == ["b2"]


def test_no_valid_rows_is_an_error() -> None:
    headers, rows = read_csv_text("foo,bar\n1,2\n")
    with pytest.raises(NoValidRecordsError) as exc:
        map_rows(headers, rows, LookupContext())
    assert "check column headers" in str(exc.value)

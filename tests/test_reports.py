from __future__ import annotations

from datetime import date
from decimal import Decimal

from btm_backoffice.api import (
    atm_monthly_sales,
    atm_sales_summary,
    available_years,
    monthly_sales_summary,
)
from btm_backoffice.models import Platform

from tests.helpers.db import add_profile, add_transaction


def test_monthly_summary_groups_by_platform_and_month(session) -> None:
    add_transaction(session, "t1", date=date(2024, 3, 10), sale=Decimal("100.00"))
    add_transaction(
        session, "t2", date=date(2024, 3, 15), sale=Decimal("250.50"), platform="bitstop"
    )
    add_transaction(session, "t3", date=date(2024, 7, 1), sale=Decimal("40.00"))
    add_transaction(session, "t4", date=date(2023, 12, 31), sale=Decimal("999.00"))

    summary = monthly_sales_summary(session, 2024)

    assert [r.label for r in summary.rows] == ["Bitstop Machines", "Denet Machines"]
    bitstop, denet = summary.rows
    assert bitstop.monthly[2] == Decimal("250.50")
    assert denet.monthly[2] == Decimal("100.00")
    assert denet.monthly[6] == Decimal("40.00")
    assert denet.year_total == Decimal("140.00")
    assert summary.monthly_totals[2] == Decimal("350.50")
    assert summary.year_total == Decimal("390.50")


def test_monthly_summary_for_an_empty_year(session) -> None:
    add_transaction(session, "t1", date=date(2024, 3, 10))

    summary = monthly_sales_summary(session, 2022)

    assert summary.rows == ()
    assert summary.year_total == 0


def test_atm_sales_summary_totals_per_machine(session) -> None:
    add_profile(session, atm_id="A1", location_name="Mall", installed_date=date(2023, 1, 1))
    add_transaction(session, "t1", atm_id="A1", sale=Decimal("100.00"), fee=Decimal("10.00"))
    add_transaction(session, "t2", atm_id="A1", sale=Decimal("50.00"), fee=Decimal("5.00"))
    add_transaction(
        session,
        "t3",
        atm_id="A2",
        sale=Decimal("300.00"),
        fee=Decimal("30.00"),
        platform="bitstop",
    )
    add_transaction(session, "t4", atm_id="A1", date=date(2024, 4, 2), sale=Decimal("70.00"))

    summary = atm_sales_summary(session, 2024, 3)

    assert [r.atm_id for r in summary.rows] == ["A2", "A1"]
    a2, a1 = summary.rows
    assert (a2.atm_name, a2.platform) == ("A2", Platform.BITSTOP)
    assert (a1.atm_name, a1.platform) == ("Mall", Platform.DENET)
    assert a1.transaction_count == 2
    assert a1.total_fees == Decimal("15.00")
    assert a1.average_sale == Decimal("75")
    assert summary.transaction_count == 3
    assert summary.total_sales == Decimal("450.00")
    assert summary.average_sale == Decimal("150")


def test_atm_sales_summary_platform_filter_and_range(session) -> None:
    add_transaction(session, "t1", atm_id="A1", date=date(2024, 1, 5))
    add_transaction(session, "t2", atm_id="A1", date=date(2024, 3, 5))
    add_transaction(session, "t3", atm_id="A2", platform="bitstop")

    summary = atm_sales_summary(session, 2024, 1, 3, Platform.DENET)

    (row,) = summary.rows
    assert row.atm_id == "A1"
    assert row.transaction_count == 2
    assert summary.platform is Platform.DENET


def test_atm_monthly_sales_includes_machines_in_service(session) -> None:
    add_profile(session, atm_id="A1", location_name="Mall", installed_date=date(2023, 1, 1))
    add_profile(session, atm_id="A2", location_name="Idle", installed_date=date(2023, 6, 1))
    add_profile(
        session, atm_id="A3", installed_date=date(2022, 1, 1), removed_date=date(2023, 5, 1)
    )
    add_profile(session, atm_id="A4", installed_date=date(2025, 1, 1))
    add_profile(session, atm_id="A5", installed_date=date(2023, 1, 1), platform="bitstop")
    add_profile(
        session, atm_id="A6", installed_date=date(2022, 1, 1), removed_date=date(2024, 6, 30)
    )
    add_transaction(session, "t1", atm_id="A1", date=date(2024, 3, 1), sale=Decimal("100.00"))
    add_transaction(session, "t2", atm_id="A1", date=date(2024, 5, 1), sale=Decimal("50.00"))
    add_transaction(session, "t3", atm_id="X9", date=date(2024, 2, 1), sale=Decimal("20.00"))

    report = atm_monthly_sales(session, 2024)

    assert [r.atm_id for r in report.rows] == ["A1", "X9", "A2", "A5", "A6"]
    a1, x9, a2, _a5, a6 = report.rows
    assert a1.monthly[2] == Decimal("100.00")
    assert a1.monthly[4] == Decimal("50.00")
    assert a1.year_total == Decimal("150.00")
    assert (a1.atm_name, a1.status, a1.platform) == ("Mall", "Active", Platform.DENET)
    assert (x9.atm_name, x9.active, x9.platform) == ("X9", None, Platform.DENET)
    assert a2.year_total == 0
    assert a6.status == "Inactive"
    assert a6.removed_date == date(2024, 6, 30)
    assert report.monthly_totals[1] == Decimal("20.00")
    assert report.year_total == Decimal("170.00")

    denet_only = atm_monthly_sales(session, 2024, Platform.DENET)
    assert [r.atm_id for r in denet_only.rows] == ["A1", "X9", "A2", "A6"]


def test_available_years_newest_first(session) -> None:
    add_transaction(session, "t1", date=date(2023, 11, 2))
    add_transaction(session, "t2", date=date(2024, 1, 9))
    add_transaction(session, "t3", date=date(2024, 2, 9))

    assert available_years(session) == [2024, 2023]

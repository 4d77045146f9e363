from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from db.models.btm import Commission, CommissionDetail

from btm_backoffice.api import profit_loss_report
from btm_backoffice.errors import MissingProfileFieldsError
from btm_backoffice.models import Platform
from btm_backoffice.proration import MonthWindow

from tests.helpers.db import add_profile, add_rep, add_transaction


def _row(report, atm_id):
    (row,) = [r for r in report.rows if r.atm_id == atm_id]
    return row


def test_fixed_costs_follow_whole_month_proration(session) -> None:
    add_profile(
        session,
        atm_id="A1",
        installed_date=date(2024, 3, 15),
        monthly_rent=Decimal("200.00"),
        cash_management_rps=Decimal("50.00"),
        cash_management_rep=Decimal("25.00"),
    )
    add_transaction(session, "t1", atm_id="A1", date=date(2024, 3, 20))
    add_transaction(session, "t2", atm_id="A1", date=date(2024, 4, 2), fee=Decimal("20.00"))

    march = profit_loss_report(session, 2024, 3)
    spring = profit_loss_report(session, 2024, 3, 5)

    row = _row(march, "A1")
    assert row.expense_months == 0
    assert row.rent == 0
    assert row.net_profit == Decimal("10.00")

    row = _row(spring, "A1")
    assert row.expense_months == 2
    assert row.rent == Decimal("400.00")
    assert row.mgmt_rps == Decimal("100.00")
    assert row.mgmt_rep == Decimal("50.00")
    assert row.total_fees == Decimal("30.00")
    assert row.net_profit == Decimal("30.00") - Decimal("550.00")


def test_net_profit_subtracts_platform_fees_and_commissions(session) -> None:
    profile = add_profile(session, atm_id="A1", installed_date=date(2023, 1, 1))
    add_transaction(
        session,
        "t1",
        atm_id="A1",
        sale=Decimal("500.00"),
        fee=Decimal("50.00"),
        bitstop_fee=Decimal("4.00"),
    )
    rep = add_rep(session)
    snapshot = Commission(sales_rep_id=rep.id, month_year=date(2024, 3, 1))
    snapshot.details.append(
        CommissionDetail(
            atm_id="A1", atm_profile_id=profile.id, commission_amount=Decimal("4.60")
        )
    )
    session.add(snapshot)
    session.flush()

    report = profit_loss_report(session, 2024, 3)

    row = _row(report, "A1")
    assert row.bitstop_fees == Decimal("4.00")
    assert row.commissions == Decimal("4.60")
    assert row.net_profit == Decimal("41.40")
    assert row.fee_percent == Decimal("0.1")
    assert report.totals.net_profit == Decimal("41.40")
    assert report.totals.total_expenses == Decimal("8.60")


def test_fee_percent_is_zero_without_sales(session) -> None:
    add_profile(session, atm_id="A1", installed_date=date(2023, 1, 1))

    report = profit_loss_report(session, 2024, 3)

    row = _row(report, "A1")
    assert row.total_sales == 0
    assert row.fee_percent == 0
    assert report.totals.fee_percent == 0
    assert report.totals.net_percent_of_sales == 0


def test_missing_fields_name_every_offending_atm_and_compute_nothing(session) -> None:
    add_profile(session, atm_id="A1", installed_date=date(2023, 1, 1))
    add_profile(session, atm_id="A2", platform=None, installed_date=date(2023, 1, 1))
    add_profile(session, atm_id="A3", installed_date=None)
    add_transaction(session, "t1", atm_id="A3")
    add_transaction(session, "t2", atm_id="ZZ")

    with pytest.raises(MissingProfileFieldsError) as exc:
        profit_loss_report(session, 2024, 3)

    assert exc.value.missing == {
        "platform": ["A2", "ZZ"],
        "installed_date": ["A3", "ZZ"],
    }
    assert "A2" in str(exc.value)


def test_irrelevant_profiles_are_not_validated_or_reported(session) -> None:
    add_profile(
        session,
        atm_id="OLD",
        platform=None,
        installed_date=date(2020, 1, 1),
        removed_date=date(2021, 1, 1),
    )
    add_profile(session, atm_id="A1", installed_date=date(2023, 1, 1))

    report = profit_loss_report(session, 2024, 3)

    assert [r.atm_id for r in report.rows] == ["A1"]


def test_rows_sort_by_platform_then_net_profit(session) -> None:
    add_profile(session, atm_id="D1", installed_date=date(2023, 1, 1))
    add_profile(session, atm_id="D2", installed_date=date(2023, 1, 1))
    add_profile(session, atm_id="B1", platform="bitstop", installed_date=date(2023, 1, 1))
    add_transaction(session, "t1", atm_id="D1", fee=Decimal("5.00"))
    add_transaction(session, "t2", atm_id="D2", fee=Decimal("30.00"))
    add_transaction(session, "t3", atm_id="B1", fee=Decimal("1.00"), platform="bitstop")

    report = profit_loss_report(session, 2024, 3)

    assert [r.atm_id for r in report.rows] == ["B1", "D2", "D1"]
    assert report.totals.total_fees == Decimal("36.00")


def test_moved_machine_reports_each_installation_separately(session) -> None:
    add_profile(
        session,
        atm_id="A1",
        location_name="Old Spot",
        installed_date=date(2023, 1, 1),
        removed_date=date(2024, 3, 10),
    )
    add_profile(session, atm_id="A1", location_name="New Spot", installed_date=date(2024, 3, 12))
    add_transaction(session, "t1", atm_id="A1", date=date(2024, 3, 5), fee=Decimal("7.00"))
    add_transaction(session, "t2", atm_id="A1", date=date(2024, 3, 20), fee=Decimal("9.00"))

    report = profit_loss_report(session, 2024, 3)

    fees = {r.location_name: r.total_fees for r in report.rows}
    assert fees == {"Old Spot": Decimal("7.00"), "New Spot": Decimal("9.00")}
    statuses = {r.location_name: r.status for r in report.rows}
    assert statuses == {"Old Spot": "Inactive", "New Spot": "Active"}


def test_platform_filter_uses_switch_date(session) -> None:
    add_profile(
        session,
        atm_id="A1",
        platform="bitstop",
        platform_switch_date=date(2024, 3, 15),
        installed_date=date(2023, 1, 1),
        monthly_rent=Decimal("100.00"),
    )
    # CSV tags disagree with the switch date; the switch date wins.
    add_transaction(session, "before", atm_id="A1", date=date(2024, 3, 1), platform="bitstop")
    add_transaction(
        session, "after", atm_id="A1", date=date(2024, 3, 20), fee=Decimal("3.00")
    )

    denet = profit_loss_report(session, 2024, 3, platform=Platform.DENET)
    bitstop = profit_loss_report(session, 2024, 3, platform=Platform.BITSTOP)
    both = profit_loss_report(session, 2024, 3)

    assert _row(denet, "A1").platform is Platform.DENET
    assert _row(denet, "A1").total_fees == Decimal("10.00")
    assert _row(bitstop, "A1").platform is Platform.BITSTOP
    assert _row(bitstop, "A1").total_fees == Decimal("3.00")
    # A window straddling the switch carries the full fixed costs under each filter.
    assert _row(denet, "A1").rent == _row(bitstop, "A1").rent == Decimal("100.00")
    assert _row(both, "A1").total_fees == Decimal("13.00")

    april = profit_loss_report(session, 2024, 4, platform=Platform.DENET)
    assert april.rows == ()


def test_report_window_label() -> None:
    assert MonthWindow.for_months(2024, 1, 3).label() == "January 2024 - March 2024"
    assert MonthWindow.single(2024, 7).label() == "July 2024"

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from db.models.btm import AtmProfile, Commission, SalesRep

from btm_backoffice.errors import (
    InUseError,
    InvalidInputError,
    OverlappingInstallationError,
    RequiredFieldError,
)
from btm_backoffice.profiles import (
    create_profile,
    create_sales_rep,
    delete_profile,
    delete_sales_rep,
    list_profiles,
    update_profile,
    update_sales_rep,
)

from tests.helpers.db import add_profile, add_rep, add_transaction


def test_create_profile_trims_and_defaults(session) -> None:
    profile = create_profile(
        session,
        {
            "atm_id": " A1 ",
            "location_name": "  Mall  ",
            "platform": "bitstop",
            "installed_date": "2024-02-01",
            "monthly_rent": "150.00",
            "notes": "   ",
        },
    )

    assert profile.atm_id == "A1"
    assert profile.location_name == "Mall"
    assert profile.platform == "bitstop"
    assert profile.installed_date == date(2024, 2, 1)
    assert profile.monthly_rent == Decimal("150.00")
    assert profile.cash_management_rps == Decimal("0")
    assert profile.notes is None
    assert profile.active is True


def test_create_profile_requires_atm_id(session) -> None:
    with pytest.raises(RequiredFieldError) as exc:
        create_profile(session, {"location_name": "Mall"})
    assert exc.value.field == "atm_id"


@pytest.mark.parametrize(
    "data",
    [
        {"atm_id": "A1", "platform": "coinbase"},
        {"atm_id": "A1", "monthly_rent": "-1"},
        {"atm_id": "A1", "installed_date": "2024-05-01", "removed_date": "2024-04-01"},
        {"atm_id": "A1", "colour": "red"},
    ],
)
def test_create_profile_rejects_invalid_fields(session, data) -> None:
    with pytest.raises(InvalidInputError):
        create_profile(session, data)


def test_second_active_profile_for_an_atm_id_is_refused(session) -> None:
    create_profile(session, {"atm_id": "A1", "location_name": "Mall"})

    with pytest.raises(OverlappingInstallationError) as exc:
        create_profile(session, {"atm_id": "A1", "location_name": "Depot"})
    assert "already active at Mall" in str(exc.value)


def test_install_date_inside_a_previous_installation_is_refused(session) -> None:
    add_profile(
        session,
        atm_id="A1",
        location_name="Mall",
        installed_date=date(2024, 1, 1),
        removed_date=date(2024, 3, 10),
    )

    with pytest.raises(OverlappingInstallationError) as exc:
        create_profile(session, {"atm_id": "A1", "installed_date": "2024-03-01"})
    assert "2024-03-10" in str(exc.value)

    moved = create_profile(session, {"atm_id": "A1", "installed_date": "2024-03-10"})
    assert moved.active is True


def test_closed_range_overlapping_a_later_installation_is_refused(session) -> None:
    add_profile(session, atm_id="A1", installed_date=date(2024, 6, 1))

    with pytest.raises(OverlappingInstallationError):
        create_profile(
            session,
            {"atm_id": "A1", "installed_date": "2024-01-01", "removed_date": "2024-07-01"},
        )

    earlier = create_profile(
        session,
        {"atm_id": "A1", "installed_date": "2024-01-01", "removed_date": "2024-05-31"},
    )
    assert earlier.active is False


def test_update_profile_keeps_active_in_step_with_removed_date(session) -> None:
    profile = add_profile(session, atm_id="A1")

    update_profile(session, profile.id, {"removed_date": date(2024, 8, 1)})
    assert profile.active is False

    update_profile(session, profile.id, {"removed_date": None, "location_name": "Renamed"})
    assert profile.active is True
    assert profile.location_name == "Renamed"


def test_update_profile_rechecks_its_atm_id_group(session) -> None:
    add_profile(session, atm_id="A1", location_name="Mall")
    other = add_profile(session, atm_id="B1")

    with pytest.raises(OverlappingInstallationError):
        update_profile(session, other.id, {"atm_id": "A1"})

    # Re-saving a profile never conflicts with itself.
    update_profile(session, other.id, {"monthly_rent": Decimal("10")})
    assert other.monthly_rent == Decimal("10")


def test_delete_profile_refuses_when_transactions_exist(session) -> None:
    profile = add_profile(session, atm_id="A1")
    add_transaction(session, "t1", atm_id="A1")

    with pytest.raises(InUseError) as exc:
        delete_profile(session, profile.id)
    assert "1 transactions" in str(exc.value)


def test_delete_unused_profile(session) -> None:
    profile = add_profile(session, atm_id="A1")

    delete_profile(session, profile.id)

    assert session.get(AtmProfile, profile.id) is None


def test_list_profiles_active_only(session) -> None:
    add_profile(session, atm_id="A1", removed_date=date(2024, 2, 1))
    add_profile(session, atm_id="B1")

    assert [p.atm_id for p in list_profiles(session)] == ["A1", "B1"]
    assert [p.atm_id for p in list_profiles(session, active_only=True)] == ["B1"]


# ---- Sales reps ---------------------------------------------------------------


def test_sales_rep_create_and_update(session) -> None:
    rep = create_sales_rep(session, {"name": " Dana ", "commission_percentage": "12.5"})
    assert rep.name == "Dana"
    assert rep.commission_percentage == Decimal("12.5")

    update_sales_rep(session, rep.id, {"paid_per_machine": True})
    assert rep.paid_per_machine is True
    assert rep.commission_percentage == Decimal("12.5")

    with pytest.raises(InvalidInputError):
        update_sales_rep(session, rep.id, {"commission_percentage": "150"})
    with pytest.raises(RequiredFieldError):
        create_sales_rep(session, {"name": "  "})


def test_delete_rep_unassigns_machines(session) -> None:
    rep = add_rep(session)
    profile = add_profile(session, atm_id="A1", sales_rep_id=rep.id)

    delete_sales_rep(session, rep.id)
    session.refresh(profile)

    assert session.get(SalesRep, rep.id) is None
    assert profile.sales_rep_id is None


def test_delete_rep_with_commission_history_is_refused(session) -> None:
    rep = add_rep(session)
    session.add(Commission(sales_rep_id=rep.id, month_year=date(2024, 3, 1)))
    session.flush()

    with pytest.raises(InUseError):
        delete_sales_rep(session, rep.id)

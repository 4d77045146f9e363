from __future__ import annotations

from datetime import date
from decimal import Decimal

from db.models.btm import AtmProfile, TickerMapping
from sqlalchemy import select

from btm_backoffice.ingest import (
    DEFAULT_FEE_PERCENTAGE,
    LookupContext,
    insert_new_lookups,
    load_lookup_context,
)
from btm_backoffice.ingest.resolver import KnownDevice

from tests.helpers.db import add_profile, add_ticker


def test_ticker_resolution_trims_and_prefers_display_value() -> None:
    ctx = LookupContext()
    ctx.ticker_display["BTC"] = "Bitcoin"

    assert ctx.resolve_ticker("  BTC ") == "Bitcoin"
    assert ctx.resolve_ticker("   ") is None
    assert ctx.resolve_ticker(None) is None
    assert ctx.new_tickers == {}


def test_unseen_ticker_is_queued_once_with_default_fee() -> None:
    ctx = LookupContext()

    assert ctx.resolve_ticker("DOGE") == "DOGE"
    assert ctx.resolve_ticker("DOGE") == "DOGE"

    assert ctx.new_tickers == {"DOGE": Decimal("0.10")}
    assert ctx.fee_percentage("DOGE") == DEFAULT_FEE_PERCENTAGE


def test_known_device_keeps_curated_location_name() -> None:
    ctx = LookupContext()
    ctx.devices["A1"] = KnownDevice("A1", "p1", "Curated Name")

    assert ctx.resolve_device("A1", "CSV Noise") == ("A1", "Curated Name")
    assert ctx.location_fills == {}


def test_known_device_without_location_is_filled_from_csv() -> None:
    ctx = LookupContext()
    ctx.devices["A1"] = KnownDevice("A1", "p1", None)

    assert ctx.resolve_device(" A1 ", "Gas Station") == ("A1", "Gas Station")
    assert ctx.location_fills == {"p1": "Gas Station"}


def test_unknown_device_is_queued_and_resolves_consistently() -> None:
    ctx = LookupContext()

    assert ctx.resolve_device("N9", None) == ("N9", None)
    assert ctx.resolve_device("N9", "Later Name") == ("N9", "Later Name")
    assert ctx.new_devices == {"N9": "Later Name"}
    assert ctx.resolve_device("", "x") == (None, None)


def test_load_context_prefers_active_profile_for_reused_atm_id(session) -> None:
    add_profile(
        session,
        atm_id="A1",
        location_name="Old Spot",
        installed_date=date(2023, 1, 1),
        removed_date=date(2023, 6, 1),
    )
    add_profile(session, atm_id="A1", location_name="New Spot", installed_date=date(2023, 7, 1))
    add_ticker(session, "BTC", display_value="Bitcoin", fee_percentage=Decimal("0.12"))

    ctx = load_lookup_context(session)

    assert ctx.devices["A1"].location_name == "New Spot"
    assert ctx.ticker_display["BTC"] == "Bitcoin"
    assert ctx.ticker_fees["BTC"] == Decimal("0.12")


def test_insert_new_lookups_writes_queued_values(session) -> None:
    blank = add_profile(session, atm_id="A1", location_name=None)
    ctx = load_lookup_context(session)
    ctx.resolve_ticker("ETH")
    ctx.resolve_device("A1", "Filled In")
    ctx.resolve_device("B2", "Brand New")

    insert_new_lookups(session, ctx)

    eth = session.execute(
        select(TickerMapping).where(TickerMapping.original_value == "ETH")
    ).scalar_one()
    assert eth.fee_percentage == Decimal("0.10")
    assert eth.display_value is None

    new_profile = session.execute(
        select(AtmProfile).where(AtmProfile.atm_id == "B2")
    ).scalar_one()
    assert new_profile.location_name == "Brand New"
    assert new_profile.active is True
    assert new_profile.platform is None
    assert new_profile.installed_date is None
    assert new_profile.monthly_rent == Decimal("0")

    session.refresh(blank)
    assert blank.location_name == "Filled In"

"""Ticker and ATM resolution for one upload.

The known tickers and ATM profiles are fetched once per upload into a
:class:`LookupContext`. Rows resolve against it in memory; values seen for the
first time are queued on the context (and resolve consistently for the rest of
the file) until :func:`insert_new_lookups` writes them in one batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from db.models.btm import AtmProfile, TickerMapping
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from ..logging_setup import get_logger
from ..money import ZERO
from .utils import clean_text

logger = get_logger("btm_backoffice.ingest.resolver")

DEFAULT_FEE_PERCENTAGE = Decimal("0.10")


@dataclass(slots=True)
class KnownDevice:
    atm_id: str
    profile_id: str | None
    location_name: str | None


@dataclass(slots=True)
class LookupContext:
    """Per-upload view of canonical tickers and devices.

    Attributes
    ----------
    ticker_display:
        ``original_value`` → value to store on transactions (the display
        override when set, otherwise the original).
    ticker_fees:
        ``original_value`` → fee percentage used for Bitstop fee derivation.
    devices:
        ``atm_id`` → the profile that stands for that machine during ingest.
    new_tickers / new_devices:
        Values first seen in this upload, in discovery order.
    location_fills:
        Existing profiles whose missing location name the CSV supplied.
    """

    ticker_display: dict[str, str] = field(default_factory=dict)
    ticker_fees: dict[str, Decimal] = field(default_factory=dict)
    devices: dict[str, KnownDevice] = field(default_factory=dict)
    new_tickers: dict[str, Decimal] = field(default_factory=dict)
    new_devices: dict[str, str | None] = field(default_factory=dict)
    location_fills: dict[str, str] = field(default_factory=dict)

    def resolve_ticker(self, raw: str | None) -> str | None:
        value = clean_text(raw)
        if value is None:
            return None
        known = self.ticker_display.get(value)
        if known is not None:
            return known
        logger.debug("New ticker discovered: %s", value)
        self.new_tickers[value] = DEFAULT_FEE_PERCENTAGE
        self.ticker_display[value] = value
        self.ticker_fees[value] = DEFAULT_FEE_PERCENTAGE
        return value

    def fee_percentage(self, raw_ticker: str | None) -> Decimal:
        value = clean_text(raw_ticker)
        if value is None:
            return DEFAULT_FEE_PERCENTAGE
        return self.ticker_fees.get(value, DEFAULT_FEE_PERCENTAGE)

    def resolve_device(
        self, raw_id: str | None, raw_name: str | None
    ) -> tuple[str | None, str | None]:
        """Return ``(atm_id, location_name)`` for a CSV device reference.

        A known device keeps its curated location name; the CSV name only
        fills one that is missing. Unknown ids are queued for creation.
        """

        atm_id = clean_text(raw_id)
        if atm_id is None:
            return None, None
        csv_name = clean_text(raw_name)

        known = self.devices.get(atm_id)
        if known is not None:
            if known.location_name:
                return atm_id, known.location_name
            if csv_name:
                known.location_name = csv_name
                if known.profile_id is not None:
                    self.location_fills[known.profile_id] = csv_name
                elif atm_id in self.new_devices:
                    self.new_devices[atm_id] = csv_name
            return atm_id, csv_name

        logger.debug("New ATM discovered: %s", atm_id)
        self.new_devices[atm_id] = csv_name
        self.devices[atm_id] = KnownDevice(atm_id=atm_id, profile_id=None, location_name=csv_name)
        return atm_id, csv_name


def _prefer(current: AtmProfile, candidate: AtmProfile) -> AtmProfile:
    # Active installation wins; otherwise the most recent installation.
    if current.removed_date is None and candidate.removed_date is not None:
        return current
    if candidate.removed_date is None and current.removed_date is not None:
        return candidate
    cur_key = current.installed_date.toordinal() if current.installed_date else 0
    cand_key = candidate.installed_date.toordinal() if candidate.installed_date else 0
    return candidate if cand_key > cur_key else current


def load_lookup_context(session: Session) -> LookupContext:
    """Fetch every ticker mapping and ATM profile once for an upload."""

    ctx = LookupContext()
    for mapping in session.execute(select(TickerMapping)).scalars():
        original = mapping.original_value
        ctx.ticker_display[original] = mapping.display_value or original
        ctx.ticker_fees[original] = (
            mapping.fee_percentage
            if mapping.fee_percentage is not None
            else DEFAULT_FEE_PERCENTAGE
        )

    chosen: dict[str, AtmProfile] = {}
    for profile in session.execute(select(AtmProfile).order_by(AtmProfile.id)).scalars():
        if not profile.atm_id:
            continue
        prev = chosen.get(profile.atm_id)
        chosen[profile.atm_id] = profile if prev is None else _prefer(prev, profile)
    for atm_id, profile in chosen.items():
        ctx.devices[atm_id] = KnownDevice(
            atm_id=atm_id, profile_id=profile.id, location_name=profile.location_name
        )

    logger.debug(
        "Loaded lookups: %d tickers, %d ATMs", len(ctx.ticker_display), len(ctx.devices)
    )
    return ctx


def insert_new_lookups(session: Session, ctx: LookupContext) -> None:
    """Write newly discovered tickers and ATMs, and fill missing location names.

    New ATM profiles start active with zero monthly costs and no platform or
    install date; an operator completes them later. Flushes but does not
    commit.
    """

    for original, fee in ctx.new_tickers.items():
        session.add(
            TickerMapping(original_value=original, display_value=None, fee_percentage=fee)
        )
    for atm_id, name in ctx.new_devices.items():
        session.add(
            AtmProfile(
                atm_id=atm_id,
                location_name=name,
                monthly_rent=ZERO,
                cash_management_rps=ZERO,
                cash_management_rep=ZERO,
                active=True,
            )
        )
    for profile_id, name in ctx.location_fills.items():
        session.execute(
            update(AtmProfile)
            .where(
                AtmProfile.id == profile_id,
                or_(AtmProfile.location_name.is_(None), AtmProfile.location_name == ""),
            )
            .values(location_name=name)
        )
    session.flush()

    if ctx.new_tickers or ctx.new_devices:
        logger.info(
            "Added %d new tickers and %d new ATMs",
            len(ctx.new_tickers),
            len(ctx.new_devices),
        )


__all__ = [
    "DEFAULT_FEE_PERCENTAGE",
    "KnownDevice",
    "LookupContext",
    "load_lookup_context",
    "insert_new_lookups",
]

"""Sales summaries alongside the P&L.

Three views over stored transactions, each a pure ``build_*`` function plus a
``compute_*`` loader:

- monthly sales per platform for one calendar year;
- per-ATM transaction count, sales, fees and average sale over a whole-month
  window;
- per-ATM sales by month for one calendar year, including machines that were
  in service that year but sold nothing.

Unlike the P&L these group by the platform tag stored on each transaction and
never charge fixed costs, so they need no profile preconditions. Amounts stay
exact ``Decimal`` here; renderers round for display.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from db.models.btm import AtmProfile, Transaction
from sqlalchemy import extract, select
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import Platform
from .money import ZERO, money_sum
from .proration import MonthWindow, attribute_profile, group_by_atm_id, is_active_during

logger = get_logger("btm_backoffice.reports")

# Bitstop rows lead the platform summary.
PLATFORM_ORDER = (Platform.BITSTOP, Platform.DENET)

_NO_SALES = (ZERO,) * 12


def _tx_platform(tx: Transaction) -> Platform | None:
    try:
        return Platform(tx.platform) if tx.platform else None
    except ValueError:
        return None


def _add_month(months: list[Decimal], tx: Transaction) -> None:
    months[tx.date.month - 1] += tx.sale or ZERO


def _column_totals(rows: Iterable[tuple[Decimal, ...]]) -> tuple[Decimal, ...]:
    totals = list(_NO_SALES)
    for monthly in rows:
        for i, v in enumerate(monthly):
            totals[i] += v
    return tuple(totals)


# ---- Monthly sales per platform ------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlatformMonthlySales:
    platform: Platform
    monthly: tuple[Decimal, ...]

    @property
    def label(self) -> str:
        return f"{self.platform.value.title()} Machines"

    @property
    def year_total(self) -> Decimal:
        return money_sum(self.monthly)


@dataclass(frozen=True, slots=True)
class MonthlySalesSummary:
    year: int
    rows: tuple[PlatformMonthlySales, ...]

    @property
    def monthly_totals(self) -> tuple[Decimal, ...]:
        return _column_totals(r.monthly for r in self.rows)

    @property
    def year_total(self) -> Decimal:
        return money_sum(r.year_total for r in self.rows)


def build_monthly_sales_summary(
    transactions: Iterable[Transaction], year: int
) -> MonthlySalesSummary:
    """Sum sales per stored platform and calendar month of ``year``.

    Only platforms with at least one transaction in the year get a row.
    """

    by_platform: dict[Platform, list[Decimal]] = {}
    for tx in transactions:
        if tx.date is None or tx.date.year != year:
            continue
        platform = _tx_platform(tx)
        if platform is None:
            continue
        _add_month(by_platform.setdefault(platform, list(_NO_SALES)), tx)

    rows = tuple(
        PlatformMonthlySales(platform=p, monthly=tuple(by_platform[p]))
        for p in PLATFORM_ORDER
        if p in by_platform
    )
    return MonthlySalesSummary(year=year, rows=rows)


# ---- Per-ATM totals over a window ----------------------------------------------


@dataclass(frozen=True, slots=True)
class AtmSalesRow:
    atm_id: str
    atm_name: str
    platform: Platform | None
    transaction_count: int
    total_sales: Decimal
    total_fees: Decimal

    @property
    def average_sale(self) -> Decimal:
        if self.transaction_count == 0:
            return ZERO
        return self.total_sales / self.transaction_count


@dataclass(frozen=True, slots=True)
class AtmSalesSummary:
    window: MonthWindow
    platform: Platform | None
    rows: tuple[AtmSalesRow, ...]

    @property
    def transaction_count(self) -> int:
        return sum(r.transaction_count for r in self.rows)

    @property
    def total_sales(self) -> Decimal:
        return money_sum(r.total_sales for r in self.rows)

    @property
    def total_fees(self) -> Decimal:
        return money_sum(r.total_fees for r in self.rows)

    @property
    def average_sale(self) -> Decimal:
        if self.transaction_count == 0:
            return ZERO
        return self.total_sales / self.transaction_count


@dataclass(slots=True)
class _AtmTotals:
    count: int = 0
    sales: Decimal = ZERO
    fees: Decimal = ZERO
    last_date: date | None = None
    platform: Platform | None = None


def build_atm_sales_summary(
    profiles: Sequence[AtmProfile],
    transactions: Iterable[Transaction],
    window: MonthWindow,
    platform: Platform | None = None,
) -> AtmSalesSummary:
    """Per-ATM totals for transactions dated in ``window``.

    A row's platform is the one on its latest transaction; its name is the
    location of the installation that latest transaction belongs to, else the
    ATM id. Rows sort by sales, largest first.
    """

    totals: dict[str, _AtmTotals] = {}
    for tx in transactions:
        if not tx.atm_id or not window.contains(tx.date):
            continue
        tx_platform = _tx_platform(tx)
        if platform is not None and tx_platform is not platform:
            continue
        entry = totals.setdefault(tx.atm_id, _AtmTotals())
        entry.count += 1
        entry.sales += tx.sale or ZERO
        entry.fees += tx.fee or ZERO
        if entry.last_date is None or tx.date >= entry.last_date:
            entry.last_date = tx.date
            entry.platform = tx_platform

    groups = group_by_atm_id(profiles)
    rows = []
    for atm_id, entry in totals.items():
        owner = attribute_profile(groups.get(atm_id, []), entry.last_date)
        rows.append(
            AtmSalesRow(
                atm_id=atm_id,
                atm_name=(owner.location_name if owner else None) or atm_id,
                platform=entry.platform,
                transaction_count=entry.count,
                total_sales=entry.sales,
                total_fees=entry.fees,
            )
        )
    rows.sort(key=lambda r: (-r.total_sales, r.atm_id))
    return AtmSalesSummary(window=window, platform=platform, rows=tuple(rows))


# ---- Per-ATM sales by month ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class AtmMonthlySalesRow:
    atm_id: str
    atm_name: str
    platform: Platform | None
    active: bool | None
    installed_date: date | None
    removed_date: date | None
    monthly: tuple[Decimal, ...]

    @property
    def status(self) -> str:
        return "Inactive" if self.active is False else "Active"

    @property
    def year_total(self) -> Decimal:
        return money_sum(self.monthly)


@dataclass(frozen=True, slots=True)
class AtmMonthlySales:
    year: int
    platform: Platform | None
    rows: tuple[AtmMonthlySalesRow, ...]

    @property
    def monthly_totals(self) -> tuple[Decimal, ...]:
        return _column_totals(r.monthly for r in self.rows)

    @property
    def year_total(self) -> Decimal:
        return money_sum(r.year_total for r in self.rows)


def _profile_platform(profile: AtmProfile) -> Platform | None:
    try:
        return Platform(profile.platform) if profile.platform else None
    except ValueError:
        return None


def build_atm_monthly_sales(
    profiles: Sequence[AtmProfile],
    transactions: Iterable[Transaction],
    year: int,
    platform: Platform | None = None,
) -> AtmMonthlySales:
    """Sales per ATM id and month of ``year``.

    An ATM gets a row when it has a transaction in the year, or when one of its
    installations was in service during the year (and, under a platform
    filter, is on that platform). Rows sort by year total, largest first.
    """

    window = MonthWindow.for_months(year, 1, 12)
    months: dict[str, list[Decimal]] = {}
    last_seen: dict[str, tuple[date, Platform | None]] = {}
    for tx in transactions:
        if not tx.atm_id or not window.contains(tx.date):
            continue
        tx_platform = _tx_platform(tx)
        if platform is not None and tx_platform is not platform:
            continue
        _add_month(months.setdefault(tx.atm_id, list(_NO_SALES)), tx)
        seen = last_seen.get(tx.atm_id)
        if seen is None or tx.date >= seen[0]:
            last_seen[tx.atm_id] = (tx.date, tx_platform)

    groups = group_by_atm_id(profiles)
    owners: dict[str, AtmProfile | None] = {
        atm_id: attribute_profile(groups.get(atm_id, []), last_seen[atm_id][0])
        for atm_id in months
    }
    for atm_id, group in groups.items():
        if atm_id in owners:
            continue
        in_service = [
            p
            for p in group
            if is_active_during(p, window)
            and (platform is None or _profile_platform(p) is platform)
        ]
        if in_service:
            owners[atm_id] = attribute_profile(in_service, window.end)

    rows = []
    for atm_id, owner in owners.items():
        tx_platform = last_seen[atm_id][1] if atm_id in last_seen else None
        rows.append(
            AtmMonthlySalesRow(
                atm_id=atm_id,
                atm_name=(owner.location_name if owner else None) or atm_id,
                platform=(_profile_platform(owner) if owner else None) or tx_platform,
                active=owner.active if owner else None,
                installed_date=owner.installed_date if owner else None,
                removed_date=owner.removed_date if owner else None,
                monthly=tuple(months.get(atm_id, _NO_SALES)),
            )
        )
    rows.sort(key=lambda r: (-r.year_total, r.atm_id))
    return AtmMonthlySales(year=year, platform=platform, rows=tuple(rows))


# ---- Loaders -------------------------------------------------------------------


def _load_transactions(session: Session, window: MonthWindow) -> list[Transaction]:
    stmt = (
        select(Transaction)
        .where(Transaction.date >= window.start, Transaction.date <= window.end)
        .order_by(Transaction.date, Transaction.id)
    )
    return list(session.execute(stmt).scalars())


def _load_profiles(session: Session) -> list[AtmProfile]:
    return list(session.execute(select(AtmProfile).order_by(AtmProfile.id)).scalars())


def available_years(session: Session) -> list[int]:
    """Calendar years that have at least one transaction, newest first."""

    year = extract("year", Transaction.date)
    stmt = select(year).where(Transaction.date.is_not(None)).distinct().order_by(year.desc())
    return [int(y) for y in session.execute(stmt).scalars()]


def compute_monthly_sales_summary(session: Session, year: int) -> MonthlySalesSummary:
    window = MonthWindow.for_months(year, 1, 12)
    summary = build_monthly_sales_summary(_load_transactions(session, window), year)
    logger.debug("Monthly sales %d: %d platforms", year, len(summary.rows))
    return summary


def compute_atm_sales_summary(
    session: Session, window: MonthWindow, platform: Platform | None = None
) -> AtmSalesSummary:
    return build_atm_sales_summary(
        _load_profiles(session), _load_transactions(session, window), window, platform
    )


def compute_atm_monthly_sales(
    session: Session, year: int, platform: Platform | None = None
) -> AtmMonthlySales:
    window = MonthWindow.for_months(year, 1, 12)
    return build_atm_monthly_sales(
        _load_profiles(session), _load_transactions(session, window), year, platform
    )


__all__ = [
    "PLATFORM_ORDER",
    "PlatformMonthlySales",
    "MonthlySalesSummary",
    "AtmSalesRow",
    "AtmSalesSummary",
    "AtmMonthlySalesRow",
    "AtmMonthlySales",
    "build_monthly_sales_summary",
    "build_atm_sales_summary",
    "build_atm_monthly_sales",
    "available_years",
    "compute_monthly_sales_summary",
    "compute_atm_sales_summary",
    "compute_atm_monthly_sales",
]

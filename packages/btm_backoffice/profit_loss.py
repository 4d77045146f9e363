"""ATM profit-and-loss report for a whole-month window.

``build_profit_loss`` is a pure function over already-loaded profiles,
transactions and commission totals; ``compute_profit_loss`` loads that
snapshot from the database and delegates. The report has one row per relevant
installation (ATM profile) plus column totals.

Rules
-----
- Relevant: the profile has a transaction dated in the window, or it was
  installed by the window's end and not removed before its start.
- Every relevant profile must have a platform and an install date; otherwise
  nothing is computed and :class:`MissingProfileFieldsError` names every
  offending ATM id per field. Transactions whose ATM id has no profile at all
  count as missing both.
- Fixed costs use :func:`btm_backoffice.proration.expense_months`.
- ``net_profit = fees - platform fees - rent - mgmt rps - mgmt rep - commissions``.
- Rows sort by platform, then net profit descending.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from db.models.btm import AtmProfile, Commission, CommissionDetail, Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import MissingProfileFieldsError
from .logging_setup import get_logger
from .models import Platform
from .money import ZERO, money_sum
from .proration import (
    MonthWindow,
    attribute_profile,
    effective_platform,
    expense_months,
    group_by_atm_id,
    is_active_during,
    platform_for_window,
)

logger = get_logger("btm_backoffice.profit_loss")


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == 0:
        return ZERO
    return numerator / denominator


@dataclass(frozen=True, slots=True)
class ProfitLossRow:
    profile_id: str
    atm_id: str | None
    location_name: str | None
    state: str | None
    active: bool
    installed_date: date | None
    removed_date: date | None
    platform: Platform
    total_sales: Decimal
    total_fees: Decimal
    bitstop_fees: Decimal
    rent: Decimal
    mgmt_rps: Decimal
    mgmt_rep: Decimal
    commissions: Decimal
    net_profit: Decimal
    expense_months: int
    transaction_count: int

    @property
    def fee_percent(self) -> Decimal:
        """Fees as a fraction of sales; zero when there were no sales."""
        return _ratio(self.total_fees, self.total_sales)

    @property
    def total_expenses(self) -> Decimal:
        return self.bitstop_fees + self.rent + self.mgmt_rps + self.mgmt_rep + self.commissions

    @property
    def status(self) -> str:
        return "Active" if self.active else "Inactive"


@dataclass(frozen=True, slots=True)
class ProfitLossTotals:
    total_sales: Decimal = ZERO
    total_fees: Decimal = ZERO
    bitstop_fees: Decimal = ZERO
    rent: Decimal = ZERO
    mgmt_rps: Decimal = ZERO
    mgmt_rep: Decimal = ZERO
    commissions: Decimal = ZERO
    net_profit: Decimal = ZERO

    @classmethod
    def of(cls, rows: Iterable[ProfitLossRow]) -> ProfitLossTotals:
        rows = list(rows)
        return cls(
            total_sales=money_sum(r.total_sales for r in rows),
            total_fees=money_sum(r.total_fees for r in rows),
            bitstop_fees=money_sum(r.bitstop_fees for r in rows),
            rent=money_sum(r.rent for r in rows),
            mgmt_rps=money_sum(r.mgmt_rps for r in rows),
            mgmt_rep=money_sum(r.mgmt_rep for r in rows),
            commissions=money_sum(r.commissions for r in rows),
            net_profit=money_sum(r.net_profit for r in rows),
        )

    @property
    def fee_percent(self) -> Decimal:
        return _ratio(self.total_fees, self.total_sales)

    @property
    def total_expenses(self) -> Decimal:
        return self.bitstop_fees + self.rent + self.mgmt_rps + self.mgmt_rep + self.commissions

    @property
    def net_percent_of_sales(self) -> Decimal:
        return _ratio(self.net_profit, self.total_sales)

    @property
    def net_percent_of_revenue(self) -> Decimal:
        return _ratio(self.net_profit, self.total_fees)


@dataclass(frozen=True, slots=True)
class ProfitLossReport:
    window: MonthWindow
    platform: Platform | None
    rows: tuple[ProfitLossRow, ...]
    totals: ProfitLossTotals


def _validate(
    relevant: Iterable[AtmProfile], orphan_atm_ids: Iterable[str]
) -> None:
    missing_platform: set[str] = set(orphan_atm_ids)
    missing_install: set[str] = set(missing_platform)
    for p in relevant:
        label = p.atm_id or p.id
        if not p.platform:
            missing_platform.add(label)
        if p.installed_date is None:
            missing_install.add(label)
    if missing_platform or missing_install:
        raise MissingProfileFieldsError(
            {
                "platform": sorted(missing_platform),
                "installed_date": sorted(missing_install),
            }
        )


def build_profit_loss(
    profiles: Sequence[AtmProfile],
    transactions: Iterable[Transaction],
    commission_totals: Mapping[str, Decimal],
    window: MonthWindow,
    platform: Platform | None = None,
) -> ProfitLossReport:
    """Compute the P&L report from a loaded snapshot.

    Parameters
    ----------
    profiles:
        Every ATM profile (all installations, active or not).
    transactions:
        Transactions to consider; those dated outside ``window`` are ignored.
    commission_totals:
        Commission paid per profile id over the window's months.
    window:
        Whole-month reporting window.
    platform:
        ``None`` for both platforms, otherwise a single-platform filter.

    Raises
    ------
    MissingProfileFieldsError
        When a relevant profile lacks its platform or install date.
    """

    groups = group_by_atm_id(profiles)
    by_profile: dict[str, list[Transaction]] = {}
    orphans: set[str] = set()
    for tx in transactions:
        if not window.contains(tx.date) or not tx.atm_id:
            continue
        owner = attribute_profile(groups.get(tx.atm_id, []), tx.date)
        if owner is None:
            orphans.add(tx.atm_id)
            continue
        by_profile.setdefault(owner.id, []).append(tx)

    relevant = [
        p for p in profiles if p.id in by_profile or is_active_during(p, window)
    ]
    _validate(relevant, orphans)

    rows: list[ProfitLossRow] = []
    for p in relevant:
        shown = platform_for_window(p, window, platform)
        if shown is None:
            continue
        txs = by_profile.get(p.id, [])
        if platform is not None:
            txs = [t for t in txs if effective_platform(p, t.date) is platform]

        months = expense_months(p.installed_date, p.removed_date, window)
        rent = (p.monthly_rent or ZERO) * months
        mgmt_rps = (p.cash_management_rps or ZERO) * months
        mgmt_rep = (p.cash_management_rep or ZERO) * months
        commissions = commission_totals.get(p.id, ZERO)
        sales = money_sum(t.sale for t in txs)
        fees = money_sum(t.fee for t in txs)
        platform_fees = money_sum(t.bitstop_fee for t in txs)

        rows.append(
            ProfitLossRow(
                profile_id=p.id,
                atm_id=p.atm_id,
                location_name=p.location_name,
                state=p.state,
                active=p.removed_date is None,
                installed_date=p.installed_date,
                removed_date=p.removed_date,
                platform=shown,
                total_sales=sales,
                total_fees=fees,
                bitstop_fees=platform_fees,
                rent=rent,
                mgmt_rps=mgmt_rps,
                mgmt_rep=mgmt_rep,
                commissions=commissions,
                net_profit=fees - platform_fees - rent - mgmt_rps - mgmt_rep - commissions,
                expense_months=months,
                transaction_count=len(txs),
            )
        )

    # Tie-breakers keep the order stable across identical inputs.
    rows.sort(key=lambda r: (r.platform.value, -r.net_profit, r.atm_id or "", r.profile_id))
    logger.debug("P&L %s: %d rows", window.label(), len(rows))
    return ProfitLossReport(
        window=window,
        platform=platform,
        rows=tuple(rows),
        totals=ProfitLossTotals.of(rows),
    )


def load_commission_totals(
    session: Session, window: MonthWindow, profiles: Sequence[AtmProfile]
) -> dict[str, Decimal]:
    """Sum stored commission details per profile id over the window's months.

    Details recorded without a profile id are attributed through their ATM id
    as of the commission month.
    """

    groups = group_by_atm_id(profiles)
    stmt = (
        select(CommissionDetail, Commission.month_year)
        .join(Commission, CommissionDetail.commission_id == Commission.id)
        .where(Commission.month_year.in_(window.months()))
    )
    totals: dict[str, Decimal] = {}
    for detail, month_year in session.execute(stmt).all():
        profile_id = detail.atm_profile_id
        if profile_id is None:
            owner = attribute_profile(groups.get(detail.atm_id, []), month_year)
            if owner is None:
                continue
            profile_id = owner.id
        totals[profile_id] = totals.get(profile_id, ZERO) + (detail.commission_amount or ZERO)
    return totals


def compute_profit_loss(
    session: Session, window: MonthWindow, platform: Platform | None = None
) -> ProfitLossReport:
    """Load the current snapshot and build the report. Read errors propagate."""

    profiles = list(session.execute(select(AtmProfile).order_by(AtmProfile.id)).scalars())
    transactions = list(
        session.execute(
            select(Transaction).where(
                Transaction.date >= window.start, Transaction.date <= window.end
            )
        ).scalars()
    )
    commission_totals = load_commission_totals(session, window, profiles)
    return build_profit_loss(profiles, transactions, commission_totals, window, platform)


__all__ = [
    "ProfitLossRow",
    "ProfitLossTotals",
    "ProfitLossReport",
    "build_profit_loss",
    "load_commission_totals",
    "compute_profit_loss",
]

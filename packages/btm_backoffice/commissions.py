"""Monthly sales-rep commissions.

For one calendar month, every transaction is attributed to the ATM
installation it happened at; each installation's fees, platform fees and fixed
costs give its net profit. A rep earns their percentage of the positive total
net profit across their machines, split across machines in proportion to each
machine's net, plus a flat fee. The result is stored as one snapshot per
(rep, month) with a per-machine breakdown; recalculating replaces the
breakdown and keeps the paid flag.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from db.models.btm import AtmProfile, Commission, CommissionDetail, SalesRep, Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NoTransactionDataError, NotFoundError
from .logging_setup import get_logger
from .money import ZERO, money_sum, round_money
from .proration import MonthWindow, attribute_profile, expense_months, group_by_atm_id

logger = get_logger("btm_backoffice.commissions")


@dataclass(frozen=True, slots=True)
class DeviceCommission:
    profile_id: str
    atm_id: str
    location_name: str | None
    total_sales: Decimal
    total_fees: Decimal
    bitstop_fees: Decimal
    rent: Decimal
    cash_management_rps: Decimal
    cash_management_rep: Decimal
    commission_amount: Decimal = ZERO

    @property
    def cash_fee(self) -> Decimal:
        return self.cash_management_rps + self.cash_management_rep

    @property
    def net_profit(self) -> Decimal:
        return (
            self.total_fees
            - self.bitstop_fees
            - self.rent
            - self.cash_management_rps
            - self.cash_management_rep
        )


@dataclass(frozen=True, slots=True)
class RepCommission:
    sales_rep_id: str
    sales_rep_name: str
    month_year: date
    commission_percentage: Decimal
    devices: tuple[DeviceCommission, ...]
    commission_amount: Decimal
    flat_fee_amount: Decimal
    commission_id: str | None = field(default=None, compare=False)

    @property
    def atm_count(self) -> int:
        return len(self.devices)

    @property
    def total_sales(self) -> Decimal:
        return money_sum(d.total_sales for d in self.devices)

    @property
    def total_fees(self) -> Decimal:
        return money_sum(d.total_fees for d in self.devices)

    @property
    def bitstop_fees(self) -> Decimal:
        return money_sum(d.bitstop_fees for d in self.devices)

    @property
    def rent(self) -> Decimal:
        return money_sum(d.rent for d in self.devices)

    @property
    def mgmt_rps(self) -> Decimal:
        return money_sum(d.cash_management_rps for d in self.devices)

    @property
    def mgmt_rep(self) -> Decimal:
        return money_sum(d.cash_management_rep for d in self.devices)

    @property
    def total_net_profit(self) -> Decimal:
        return money_sum(d.net_profit for d in self.devices)

    @property
    def total_commission(self) -> Decimal:
        return self.commission_amount + self.flat_fee_amount


@dataclass(slots=True)
class _DeviceTotals:
    profile: AtmProfile
    sales: Decimal = ZERO
    fees: Decimal = ZERO
    platform_fees: Decimal = ZERO


def _device_entry(totals: _DeviceTotals, window: MonthWindow) -> DeviceCommission:
    p = totals.profile
    charged = expense_months(p.installed_date, p.removed_date, window) > 0
    return DeviceCommission(
        profile_id=p.id,
        atm_id=p.atm_id or "",
        location_name=p.location_name,
        total_sales=totals.sales,
        total_fees=totals.fees,
        bitstop_fees=totals.platform_fees,
        rent=(p.monthly_rent or ZERO) if charged else ZERO,
        cash_management_rps=(p.cash_management_rps or ZERO) if charged else ZERO,
        cash_management_rep=(p.cash_management_rep or ZERO) if charged else ZERO,
    )


def _split(devices: list[DeviceCommission], commission: Decimal) -> tuple[DeviceCommission, ...]:
    """Share ``commission`` across devices in proportion to their net profit.

    Shares are rounded to cents; the rounding remainder goes to the device with
    the largest absolute share so the shares always add up to ``commission``.
    """

    total_net = money_sum(d.net_profit for d in devices)
    if total_net == 0:
        return tuple(replace(d, commission_amount=ZERO) for d in devices)

    shares = [round_money(d.net_profit / total_net * commission) for d in devices]
    remainder = commission - money_sum(shares)
    if remainder and shares:
        biggest = max(range(len(shares)), key=lambda i: abs(shares[i]))
        shares[biggest] += remainder
    return tuple(
        replace(d, commission_amount=share) for d, share in zip(devices, shares, strict=True)
    )


def compute_rep_commissions(
    reps: Iterable[SalesRep],
    profiles: Sequence[AtmProfile],
    transactions: Iterable[Transaction],
    window: MonthWindow,
) -> list[RepCommission]:
    """Pure commission computation for one month.

    Machines without sales are included only for reps paid per machine, and
    only when the machine is chargeable in the month.
    """

    groups = group_by_atm_id(profiles)
    per_profile: dict[str, _DeviceTotals] = {}
    for tx in transactions:
        if not tx.atm_id or not window.contains(tx.date):
            continue
        owner = attribute_profile(groups.get(tx.atm_id, []), tx.date)
        if owner is None:
            logger.warning("No profile found for ATM %s on %s", tx.atm_id, tx.date)
            continue
        totals = per_profile.setdefault(owner.id, _DeviceTotals(profile=owner))
        totals.sales += tx.sale or ZERO
        totals.fees += tx.fee or ZERO
        totals.platform_fees += tx.bitstop_fee or ZERO

    results: list[RepCommission] = []
    for rep in reps:
        devices: list[DeviceCommission] = []
        for p in profiles:
            if p.sales_rep_id != rep.id or not p.atm_id:
                continue
            totals = per_profile.get(p.id)
            if totals is None:
                if not rep.paid_per_machine:
                    continue
                if expense_months(p.installed_date, p.removed_date, window) == 0:
                    continue
                totals = _DeviceTotals(profile=p)
            devices.append(_device_entry(totals, window))
        if not devices:
            continue

        total_net = money_sum(d.net_profit for d in devices)
        pct = rep.commission_percentage or ZERO
        commission = round_money(total_net * pct / 100) if total_net > 0 else round_money(ZERO)
        if rep.paid_per_machine:
            flat_fee = money_sum(d.cash_management_rep for d in devices)
        else:
            flat_fee = len(devices) * (rep.flat_monthly_fee or ZERO)

        results.append(
            RepCommission(
                sales_rep_id=rep.id,
                sales_rep_name=rep.name,
                month_year=window.start,
                commission_percentage=pct,
                devices=_split(devices, commission),
                commission_amount=commission,
                flat_fee_amount=round_money(flat_fee),
            )
        )
    return results


def _save(session: Session, result: RepCommission) -> Commission:
    snapshot = session.execute(
        select(Commission).where(
            Commission.sales_rep_id == result.sales_rep_id,
            Commission.month_year == result.month_year,
        )
    ).scalar_one_or_none()
    if snapshot is None:
        snapshot = Commission(sales_rep_id=result.sales_rep_id, month_year=result.month_year)
        session.add(snapshot)
    else:
        snapshot.details.clear()
        session.flush()

    snapshot.total_sales = round_money(result.total_sales)
    snapshot.total_fees = round_money(result.total_fees)
    snapshot.bitstop_fees = round_money(result.bitstop_fees)
    snapshot.rent = round_money(result.rent)
    snapshot.mgmt_rps = round_money(result.mgmt_rps)
    snapshot.mgmt_rep = round_money(result.mgmt_rep)
    snapshot.total_net_profit = round_money(result.total_net_profit)
    snapshot.commission_amount = result.commission_amount
    snapshot.flat_fee_amount = result.flat_fee_amount
    snapshot.total_commission = result.total_commission
    snapshot.atm_count = result.atm_count

    for d in result.devices:
        snapshot.details.append(
            CommissionDetail(
                atm_id=d.atm_id,
                atm_profile_id=d.profile_id,
                total_sales=round_money(d.total_sales),
                total_fees=round_money(d.total_fees),
                bitstop_fees=round_money(d.bitstop_fees),
                rent=round_money(d.rent),
                cash_fee=round_money(d.cash_fee),
                cash_management_rps=round_money(d.cash_management_rps),
                cash_management_rep=round_money(d.cash_management_rep),
                net_profit=round_money(d.net_profit),
                commission_amount=d.commission_amount,
            )
        )
    session.flush()
    return snapshot


def calculate_commissions(session: Session, year: int, month: int) -> list[RepCommission]:
    """Compute and store commission snapshots for every active rep.

    Raises
    ------
    NoTransactionDataError
        When no transaction is dated in the month.
    """

    window = MonthWindow.single(year, month)
    transactions = list(
        session.execute(
            select(Transaction).where(
                Transaction.date >= window.start, Transaction.date <= window.end
            )
        ).scalars()
    )
    if not transactions:
        raise NoTransactionDataError(
            f"No transaction data found for {month}/{year}. "
            "Please upload transaction data for this period first."
        )

    reps = list(
        session.execute(
            select(SalesRep).where(SalesRep.active.is_(True)).order_by(SalesRep.name)
        ).scalars()
    )
    profiles = list(session.execute(select(AtmProfile).order_by(AtmProfile.id)).scalars())
    results = compute_rep_commissions(reps, profiles, transactions, window)

    saved: list[RepCommission] = []
    for result in results:
        snapshot = _save(session, result)
        saved.append(
            RepCommission(
                sales_rep_id=result.sales_rep_id,
                sales_rep_name=result.sales_rep_name,
                month_year=result.month_year,
                commission_percentage=result.commission_percentage,
                devices=result.devices,
                commission_amount=result.commission_amount,
                flat_fee_amount=result.flat_fee_amount,
                commission_id=snapshot.id,
            )
        )
    logger.info(
        "Calculated commissions for %s: %d reps, %d transactions",
        window.label(),
        len(saved),
        len(transactions),
    )
    return saved


def mark_commission_paid(
    session: Session, commission_id: str, paid_date: date | None = None, *, paid: bool = True
) -> Commission:
    snapshot = session.get(Commission, commission_id)
    if snapshot is None:
        raise NotFoundError(f"Commission {commission_id} not found")
    snapshot.paid = paid
    snapshot.paid_date = (paid_date or date.today()) if paid else None
    session.flush()
    return snapshot


__all__ = [
    "DeviceCommission",
    "RepCommission",
    "compute_rep_commissions",
    "calculate_commissions",
    "mark_commission_paid",
]

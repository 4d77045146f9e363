from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


# Currency columns: two decimals, wide enough for monthly aggregates.
_MONEY = Numeric(14, 2)


# ---------------------------
# Ingest: uploads / transactions
# ---------------------------


class Upload(Base):
    """Audit record of one CSV upload (the upload manifest).

    ``record_count`` counts only the rows the upload actually added. Deleting an
    upload deletes every transaction it brought in.
    """

    __tablename__ = "uploads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(String, nullable=False)
    record_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str | None] = mapped_column(
        String, nullable=True, server_default=text("'completed'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    transactions: Mapped[list[Transaction]] = relationship(
        back_populates="upload",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Transaction(Base):
    __tablename__ = "transactions"

    # Natural key from the source platform; unique across both platforms.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    atm_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    atm_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    location_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    ticker: Mapped[str | None] = mapped_column(String, nullable=True)
    sale: Mapped[Decimal | None] = mapped_column(_MONEY, nullable=True)
    fee: Mapped[Decimal | None] = mapped_column(_MONEY, nullable=True)
    # Fee charged by the platform operator (Denet ``operator_fee_usd``).
    bitstop_fee: Mapped[Decimal | None] = mapped_column(_MONEY, nullable=True)
    sent: Mapped[Decimal | None] = mapped_column(Numeric(24, 8), nullable=True)
    date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    platform: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("uploads.id", ondelete="CASCADE"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    upload: Mapped[Upload | None] = relationship(back_populates="transactions")


# ---------------------------
# Reference: ticker_mappings
# ---------------------------


class TickerMapping(Base):
    __tablename__ = "ticker_mappings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    original_value: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Operator-facing name; NULL means "show original_value".
    display_value: Mapped[str | None] = mapped_column(String, nullable=True)
    fee_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(6, 4), nullable=True, server_default=text("0.10")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "fee_percentage IS NULL OR (fee_percentage >= 0 AND fee_percentage <= 1)",
            name="ck_ticker_fee_percentage",
        ),
    )


# ---------------------------
# Devices and sales reps
# ---------------------------


class SalesRep(Base):
    __tablename__ = "sales_reps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    # Percent of positive net profit (e.g. 10 means 10%).
    commission_percentage: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False, server_default=text("0")
    )
    flat_monthly_fee: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, server_default=text("0")
    )
    # Flat fee is the sum of cash_management_rep over every managed machine,
    # including machines without sales in the month.
    paid_per_machine: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AtmProfile(Base):
    """A physical kiosk at one location for one installation period.

    ``atm_id`` is reused when a machine moves, so several historical rows may
    share it; at most one of them is active (``removed_date IS NULL``).
    """

    __tablename__ = "atm_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    atm_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    serial_number: Mapped[str | None] = mapped_column(String, nullable=True)
    location_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    street_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String, nullable=True)
    warehouse_location: Mapped[str | None] = mapped_column(String, nullable=True)
    platform: Mapped[str | None] = mapped_column(String, nullable=True)
    platform_switch_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    installed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    removed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    monthly_rent: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, server_default=text("0")
    )
    cash_management_rps: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, server_default=text("0")
    )
    cash_management_rep: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, server_default=text("0")
    )
    rent_payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    sales_rep_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "platform IS NULL OR platform in ('denet','bitstop')",
            name="ck_atm_profiles_platform",
        ),
        Index(
            "uniq_atm_profiles_active_atm_id",
            "atm_id",
            unique=True,
            postgresql_where=text("removed_date IS NULL"),
            sqlite_where=text("removed_date IS NULL"),
        ),
    )


# ---------------------------
# Commission snapshots
# ---------------------------


class Commission(Base):
    __tablename__ = "commissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    sales_rep_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sales_reps.id", ondelete="CASCADE"), nullable=False
    )
    # First day of the commission month.
    month_year: Mapped[date] = mapped_column(Date, nullable=False)
    total_sales: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    total_fees: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    bitstop_fees: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    rent: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    mgmt_rps: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    mgmt_rep: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    total_net_profit: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    commission_amount: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    flat_fee_amount: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    total_commission: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    atm_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    details: Mapped[list[CommissionDetail]] = relationship(
        back_populates="commission",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("sales_rep_id", "month_year", name="uq_commissions_rep_month"),
    )


class CommissionDetail(Base):
    __tablename__ = "commission_details"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    commission_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("commissions.id", ondelete="CASCADE"), nullable=False
    )
    atm_id: Mapped[str] = mapped_column(String, nullable=False)
    atm_profile_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("atm_profiles.id", ondelete="SET NULL"), nullable=True
    )
    total_sales: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    total_fees: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    bitstop_fees: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    rent: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    cash_fee: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    cash_management_rps: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    cash_management_rep: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    net_profit: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal("0"))
    commission_amount: Mapped[Decimal] = mapped_column(
        _MONEY, nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    commission: Mapped[Commission] = relationship(back_populates="details")


# ---------------------------
# Cash management
# ---------------------------


class Person(Base):
    __tablename__ = "people"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CashPickup(Base):
    __tablename__ = "cash_pickups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    pickup_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    person_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("people.id", ondelete="RESTRICT"), nullable=True
    )
    atm_profile_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("atm_profiles.id", ondelete="RESTRICT"), nullable=True
    )
    atm_id: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    deposited: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    deposit_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Deposit(Base):
    __tablename__ = "deposits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # Bank-issued identifier entered by the operator.
    deposit_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    deposit_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    person_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("people.id", ondelete="RESTRICT"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    links: Mapped[list[DepositPickupLink]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DepositPickupLink(Base):
    __tablename__ = "deposit_pickup_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    deposit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("deposits.id", ondelete="CASCADE"), nullable=False
    )
    pickup_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cash_pickups.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("deposit_id", "pickup_id", name="uq_deposit_pickup"),
    )


__all__ = [
    "Base",
    "Upload",
    "Transaction",
    "TickerMapping",
    "SalesRep",
    "AtmProfile",
    "Commission",
    "CommissionDetail",
    "Person",
    "CashPickup",
    "Deposit",
    "DepositPickupLink",
]

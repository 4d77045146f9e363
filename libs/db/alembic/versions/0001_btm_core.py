# ruff: noqa: I001
"""BTM back-office core tables.

Revision ID: 0001_btm_core
Revises: None
Create Date: 2025-10-02
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_btm_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _money(name: str, *, nullable: bool = False, default: str | None = "0") -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(14, 2),
        nullable=nullable,
        server_default=(sa.text(default) if default is not None else None),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    op.create_table(
        "uploads",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=True, server_default=sa.text("'completed'")),
        _created_at(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("atm_id", sa.String(), nullable=True),
        sa.Column("atm_name", sa.Text(), nullable=True),
        sa.Column("location_name", sa.Text(), nullable=True),
        sa.Column("ticker", sa.String(), nullable=True),
        _money("sale", nullable=True, default=None),
        _money("fee", nullable=True, default=None),
        _money("bitstop_fee", nullable=True, default=None),
        sa.Column("sent", sa.Numeric(24, 8), nullable=True),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("platform", sa.String(), nullable=True),
        sa.Column("customer_id", sa.String(), nullable=True),
        sa.Column("customer_first_name", sa.Text(), nullable=True),
        sa.Column("customer_last_name", sa.Text(), nullable=True),
        sa.Column("customer_city", sa.Text(), nullable=True),
        sa.Column("customer_state", sa.Text(), nullable=True),
        sa.Column(
            "upload_id",
            sa.String(36),
            sa.ForeignKey("uploads.id", ondelete="CASCADE"),
            nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_transactions_atm_id", "transactions", ["atm_id"])
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_upload_id", "transactions", ["upload_id"])

    op.create_table(
        "ticker_mappings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("original_value", sa.String(), nullable=False, unique=True),
        sa.Column("display_value", sa.String(), nullable=True),
        sa.Column(
            "fee_percentage",
            sa.Numeric(6, 4),
            nullable=True,
            server_default=sa.text("0.10"),
        ),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "fee_percentage IS NULL OR (fee_percentage >= 0 AND fee_percentage <= 1)",
            name="ck_ticker_fee_percentage",
        ),
    )

    op.create_table(
        "sales_reps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column(
            "commission_percentage",
            sa.Numeric(6, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        _money("flat_monthly_fee"),
        sa.Column(
            "paid_per_machine", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        "atm_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("atm_id", sa.String(), nullable=True),
        sa.Column("serial_number", sa.String(), nullable=True),
        sa.Column("location_name", sa.Text(), nullable=True),
        sa.Column("street_address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("zip_code", sa.String(), nullable=True),
        sa.Column("warehouse_location", sa.String(), nullable=True),
        sa.Column("platform", sa.String(), nullable=True),
        sa.Column("platform_switch_date", sa.Date(), nullable=True),
        sa.Column("installed_date", sa.Date(), nullable=True),
        sa.Column("removed_date", sa.Date(), nullable=True),
        _money("monthly_rent"),
        _money("cash_management_rps"),
        _money("cash_management_rep"),
        sa.Column("rent_payment_method", sa.String(), nullable=True),
        sa.Column(
            "sales_rep_id",
            sa.String(36),
            sa.ForeignKey("sales_reps.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "platform IS NULL OR platform in ('denet','bitstop')",
            name="ck_atm_profiles_platform",
        ),
    )
    op.create_index("ix_atm_profiles_atm_id", "atm_profiles", ["atm_id"])
    # At most one active installation per ATM id.
    op.create_index(
        "uniq_atm_profiles_active_atm_id",
        "atm_profiles",
        ["atm_id"],
        unique=True,
        postgresql_where=sa.text("removed_date IS NULL"),
        sqlite_where=sa.text("removed_date IS NULL"),
    )

    op.create_table(
        "commissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "sales_rep_id",
            sa.String(36),
            sa.ForeignKey("sales_reps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("month_year", sa.Date(), nullable=False),
        _money("total_sales"),
        _money("total_fees"),
        _money("bitstop_fees"),
        _money("rent"),
        _money("mgmt_rps"),
        _money("mgmt_rep"),
        _money("total_net_profit"),
        _money("commission_amount"),
        _money("flat_fee_amount"),
        _money("total_commission"),
        sa.Column("atm_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("sales_rep_id", "month_year", name="uq_commissions_rep_month"),
    )

    op.create_table(
        "commission_details",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "commission_id",
            sa.String(36),
            sa.ForeignKey("commissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("atm_id", sa.String(), nullable=False),
        sa.Column(
            "atm_profile_id",
            sa.String(36),
            sa.ForeignKey("atm_profiles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _money("total_sales"),
        _money("total_fees"),
        _money("bitstop_fees"),
        _money("rent"),
        _money("cash_fee"),
        _money("cash_management_rps"),
        _money("cash_management_rep"),
        _money("net_profit"),
        _money("commission_amount"),
        _created_at(),
    )

    op.create_table(
        "people",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )

    op.create_table(
        "cash_pickups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("pickup_date", sa.Date(), nullable=False),
        _money("amount", default=None),
        sa.Column(
            "person_id",
            sa.String(36),
            sa.ForeignKey("people.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "atm_profile_id",
            sa.String(36),
            sa.ForeignKey("atm_profiles.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("atm_id", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("deposited", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deposit_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "deposits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("deposit_id", sa.String(), nullable=False, unique=True),
        sa.Column("deposit_date", sa.Date(), nullable=False),
        _money("amount", default=None),
        sa.Column(
            "person_id",
            sa.String(36),
            sa.ForeignKey("people.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "deposit_pickup_links",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "deposit_id",
            sa.String(36),
            sa.ForeignKey("deposits.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "pickup_id",
            sa.String(36),
            sa.ForeignKey("cash_pickups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _money("amount", default=None),
        _created_at(),
        sa.UniqueConstraint("deposit_id", "pickup_id", name="uq_deposit_pickup"),
    )


def downgrade() -> None:
    op.drop_table("deposit_pickup_links")
    op.drop_table("deposits")
    op.drop_table("cash_pickups")
    op.drop_table("people")
    op.drop_table("commission_details")
    op.drop_table("commissions")
    op.drop_index("uniq_atm_profiles_active_atm_id", table_name="atm_profiles")
    op.drop_index("ix_atm_profiles_atm_id", table_name="atm_profiles")
    op.drop_table("atm_profiles")
    op.drop_table("sales_reps")
    op.drop_table("ticker_mappings")
    op.drop_index("ix_transactions_upload_id", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_index("ix_transactions_atm_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("uploads")

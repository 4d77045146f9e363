"""Public API and orchestration for the ``btm_backoffice`` package.

This module is the stable import surface for callers (the CLI, scripts,
tests). CSV ingest is orchestrated here; the report and administration
operations live in their own modules and are re-exported.

Every function takes an open SQLAlchemy ``Session`` (see ``db.client``).
``upload_csv`` commits at its own checkpoints; everything else leaves the
commit to the caller.
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .commissions import calculate_commissions, mark_commission_paid
from .ingest import (
    insert_new_lookups,
    load_lookup_context,
    map_rows,
    read_csv_file,
    read_csv_text,
)
from .logging_setup import get_logger
from .models import IngestResult, Platform
from .persistence import create_manifest, find_existing_ids, insert_transactions, split_new
from .profit_loss import ProfitLossReport, compute_profit_loss
from .proration import MonthWindow
from .reports import (
    AtmMonthlySales,
    AtmSalesSummary,
    MonthlySalesSummary,
    available_years,
    compute_atm_monthly_sales,
    compute_atm_sales_summary,
    compute_monthly_sales_summary,
)
from .tickers import recalculate_bitstop_fees, refresh_transaction_tickers
from .uploads import delete_upload, list_uploads, platform_date_ranges

logger = get_logger("btm_backoffice.api")


def upload_csv(
    session: Session,
    *,
    filename: str,
    text: str,
    batch_size: int | None = None,
) -> IngestResult:
    """Ingest one platform CSV export.

    Steps
    -----
    1. Parse the CSV and resolve tickers and ATMs against a per-upload
       :class:`~btm_backoffice.ingest.LookupContext`.
    2. Drop ids already stored (checked in batches) and ids repeated in the
       file.
    3. Commit newly discovered tickers and ATMs. This is best-effort: a
       database error is logged and the upload continues.
    4. Commit the upload manifest, then insert and commit the new
       transactions.

    Raises
    ------
    CsvParseError
        When the text cannot be read as CSV.
    NoValidRecordsError
        When no row carries a transaction id.
    """

    headers, rows = read_csv_text(text)
    ctx = load_lookup_context(session)
    platform, candidates = map_rows(headers, rows, ctx)

    existing = find_existing_ids(session, (c.id for c in candidates), batch_size=batch_size)
    new, duplicates = split_new(candidates, existing)
    if duplicates:
        logger.info("Skipping %d duplicate transactions in %s", duplicates, filename)

    new_tickers: tuple[str, ...] = tuple(ctx.new_tickers)
    new_atm_ids: tuple[str, ...] = tuple(ctx.new_devices)
    try:
        with session.begin_nested():
            insert_new_lookups(session, ctx)
        session.commit()
    except SQLAlchemyError:
        logger.warning("Could not save new tickers/ATMs for %s", filename, exc_info=True)
        new_tickers, new_atm_ids = (), ()

    # The manifest is committed on its own; a failed insert below leaves it
    # behind with its record count.
    upload = create_manifest(
        session, filename=filename, platform=platform, record_count=len(new)
    )
    session.commit()

    inserted = insert_transactions(session, new, upload_id=upload.id)
    session.commit()
    logger.info(
        "Uploaded %s: %d processed, %d inserted, %d duplicates",
        filename,
        len(candidates),
        inserted,
        duplicates,
    )
    return IngestResult(
        upload_id=upload.id,
        filename=filename,
        platform=platform,
        processed=len(candidates),
        inserted=inserted,
        duplicates=duplicates,
        new_tickers=new_tickers,
        new_atm_ids=new_atm_ids,
    )


def upload_csv_file(
    session: Session, csv_path: str | PathLike[str], *, batch_size: int | None = None
) -> IngestResult:
    """Read ``csv_path`` (UTF-8, optional BOM) and ingest it under its file name."""

    text = read_csv_file(csv_path)
    return upload_csv(session, filename=Path(csv_path).name, text=text, batch_size=batch_size)


def profit_loss_report(
    session: Session,
    year: int,
    start_month: int,
    end_month: int | None = None,
    platform: Platform | None = None,
) -> ProfitLossReport:
    """P&L over whole months ``start_month..end_month`` of ``year``."""

    window = MonthWindow.for_months(year, start_month, end_month)
    return compute_profit_loss(session, window, platform)


def monthly_sales_summary(session: Session, year: int) -> MonthlySalesSummary:
    """Sales per platform for each month of ``year``."""

    return compute_monthly_sales_summary(session, year)


def atm_sales_summary(
    session: Session,
    year: int,
    start_month: int,
    end_month: int | None = None,
    platform: Platform | None = None,
) -> AtmSalesSummary:
    """Per-ATM count, sales, fees and average sale over whole months of ``year``."""

    window = MonthWindow.for_months(year, start_month, end_month)
    return compute_atm_sales_summary(session, window, platform)


def atm_monthly_sales(
    session: Session, year: int, platform: Platform | None = None
) -> AtmMonthlySales:
    return compute_atm_monthly_sales(session, year, platform)


__all__ = [
    "upload_csv",
    "upload_csv_file",
    "profit_loss_report",
    "monthly_sales_summary",
    "atm_sales_summary",
    "atm_monthly_sales",
    "available_years",
    "calculate_commissions",
    "mark_commission_paid",
    "refresh_transaction_tickers",
    "recalculate_bitstop_fees",
    "list_uploads",
    "delete_upload",
    "platform_date_ranges",
]

# ruff: noqa: I001
"""CLI for the ``btm_backoffice`` package.

This module exposes callable command handlers (e.g., ``cmd_upload``) and a
Typer-based console interface. Environment variables (notably
``DATABASE_URL``) are loaded from a local ``.env`` using ``python-dotenv``
before delegating to command logic. Business logic lives in
``btm_backoffice.api`` and related modules.

Handlers return a process exit code; failures are reported as a single
``Error: ...`` line on stderr.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .errors import BackofficeError
from .logging_setup import configure_logging
from .models import Platform

if TYPE_CHECKING:
    from openpyxl import Workbook


def _fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _parse_platform(value: str) -> Platform | None:
    v = value.strip().lower()
    if v in {"", "both", "all"}:
        return None
    return Platform(v)


def _write_report(
    csv_text: str,
    make_workbook: Callable[[], Workbook],
    csv_out: str | None,
    xlsx_out: str | None,
) -> int:
    """Write the requested files, or print the CSV when none was requested."""

    from .export import workbook_to_bytes

    try:
        if csv_out:
            Path(csv_out).write_text(csv_text, encoding="utf-8")
            print(f"Wrote {csv_out}")
        if xlsx_out:
            Path(xlsx_out).write_bytes(workbook_to_bytes(make_workbook()))
            print(f"Wrote {xlsx_out}")
    except OSError as e:
        return _fail(f"could not write report: {e}")

    if not csv_out and not xlsx_out:
        sys.stdout.write(csv_text)
    return 0


def cmd_upload(csv_path: str, *, database_url: str | None = None) -> int:
    """Ingest one Denet or Bitstop CSV export and print the upload summary.

    Parameters
    ----------
    csv_path:
        Filesystem path to the CSV file.
    database_url:
        Optional override of ``DATABASE_URL``.
    """

    from db.client import session_scope
    from .api import upload_csv_file

    try:
        with session_scope(database_url=database_url) as session:
            result = upload_csv_file(session, csv_path)
    except FileNotFoundError:
        return _fail(f"File not found: {csv_path}")
    except PermissionError:
        return _fail(f"Permission denied: {csv_path}")
    except BackofficeError as e:
        return _fail(str(e))
    except Exception as e:
        return _fail(f"upload failed: {e}")

    print(f"Upload {result.upload_id} ({result.platform.value}): {result.filename}")
    print(f"  processed:  {result.processed}")
    print(f"  inserted:   {result.inserted}")
    print(f"  duplicates: {result.duplicates}")
    if result.new_tickers:
        print(f"  new tickers: {', '.join(result.new_tickers)}")
    if result.new_atm_ids:
        print(f"  new ATMs:    {', '.join(result.new_atm_ids)}")
    return 0


def cmd_pnl(
    year: int,
    start_month: int,
    end_month: int | None = None,
    *,
    platform: str = "both",
    csv_out: str | None = None,
    xlsx_out: str | None = None,
    database_url: str | None = None,
) -> int:
    """Compute the P&L report for whole months of one year.

    Writes CSV and/or Excel files when asked; otherwise prints the CSV
    rendering to stdout.
    """

    from db.client import session_scope
    from .api import profit_loss_report
    from .export import build_profit_loss_workbook, profit_loss_csv

    try:
        selected = _parse_platform(platform)
    except ValueError:
        return _fail(f"Unknown platform {platform!r}; expected both, denet or bitstop.")

    try:
        with session_scope(database_url=database_url) as session:
            report = profit_loss_report(session, year, start_month, end_month, selected)
    except BackofficeError as e:
        return _fail(str(e))
    except ValueError as e:
        return _fail(f"Invalid reporting window: {e}")
    except Exception as e:
        return _fail(f"profit and loss failed: {e}")

    return _write_report(
        profit_loss_csv(report),
        lambda: build_profit_loss_workbook(report, "ATM Profit and Loss"),
        csv_out,
        xlsx_out,
    )


def cmd_sales_summary(
    year: int,
    *,
    csv_out: str | None = None,
    xlsx_out: str | None = None,
    database_url: str | None = None,
) -> int:
    """Sales per platform for every month of ``year``."""

    from db.client import session_scope
    from .api import monthly_sales_summary
    from .export import build_monthly_sales_workbook, monthly_sales_csv

    try:
        with session_scope(database_url=database_url) as session:
            summary = monthly_sales_summary(session, year)
    except Exception as e:
        return _fail(f"sales summary failed: {e}")

    return _write_report(
        monthly_sales_csv(summary),
        lambda: build_monthly_sales_workbook(summary),
        csv_out,
        xlsx_out,
    )


def cmd_atm_sales(
    year: int,
    start_month: int,
    end_month: int | None = None,
    *,
    platform: str = "both",
    csv_out: str | None = None,
    xlsx_out: str | None = None,
    database_url: str | None = None,
) -> int:
    """Per-ATM transaction count, sales, fees and average sale over whole months."""

    from db.client import session_scope
    from .api import atm_sales_summary
    from .export import atm_sales_csv, build_atm_sales_workbook

    try:
        selected = _parse_platform(platform)
    except ValueError:
        return _fail(f"Unknown platform {platform!r}; expected both, denet or bitstop.")

    try:
        with session_scope(database_url=database_url) as session:
            summary = atm_sales_summary(session, year, start_month, end_month, selected)
    except ValueError as e:
        return _fail(f"Invalid reporting window: {e}")
    except Exception as e:
        return _fail(f"ATM sales summary failed: {e}")

    return _write_report(
        atm_sales_csv(summary),
        lambda: build_atm_sales_workbook(summary),
        csv_out,
        xlsx_out,
    )


def cmd_atm_monthly_sales(
    year: int,
    *,
    platform: str = "both",
    csv_out: str | None = None,
    xlsx_out: str | None = None,
    database_url: str | None = None,
) -> int:
    """Sales per ATM for every month of ``year``."""

    from db.client import session_scope
    from .api import atm_monthly_sales
    from .export import atm_monthly_sales_csv, build_atm_monthly_sales_workbook

    try:
        selected = _parse_platform(platform)
    except ValueError:
        return _fail(f"Unknown platform {platform!r}; expected both, denet or bitstop.")

    try:
        with session_scope(database_url=database_url) as session:
            report = atm_monthly_sales(session, year, selected)
    except Exception as e:
        return _fail(f"ATM monthly sales failed: {e}")

    return _write_report(
        atm_monthly_sales_csv(report),
        lambda: build_atm_monthly_sales_workbook(report),
        csv_out,
        xlsx_out,
    )


def cmd_commissions(year: int, month: int, *, database_url: str | None = None) -> int:
    """Calculate and store sales-rep commissions for one month."""

    from db.client import session_scope
    from .api import calculate_commissions

    try:
        with session_scope(database_url=database_url) as session:
            results = calculate_commissions(session, year, month)
    except BackofficeError as e:
        return _fail(str(e))
    except ValueError as e:
        return _fail(f"Invalid month: {e}")
    except Exception as e:
        return _fail(f"commission calculation failed: {e}")

    if not results:
        print("No active sales reps with machines this month.")
    for r in results:
        print(
            f"{r.sales_rep_name}\tATMs {r.atm_count}\tnet {r.total_net_profit:.2f}"
            f"\tcommission {r.commission_amount:.2f}\tflat {r.flat_fee_amount:.2f}"
            f"\ttotal {r.total_commission:.2f}"
        )
    return 0


def cmd_delete_upload(upload_id: str, *, database_url: str | None = None) -> int:
    from db.client import session_scope
    from .api import delete_upload

    try:
        with session_scope(database_url=database_url) as session:
            removed = delete_upload(session, upload_id)
    except BackofficeError as e:
        return _fail(str(e))
    except Exception as e:
        return _fail(f"delete failed: {e}")
    print(f"Deleted upload {upload_id} and {removed} transactions")
    return 0


def cmd_refresh_tickers(*, database_url: str | None = None) -> int:
    from db.client import session_scope
    from .api import refresh_transaction_tickers

    try:
        with session_scope(database_url=database_url) as session:
            result = refresh_transaction_tickers(session)
    except Exception as e:
        return _fail(f"ticker refresh failed: {e}")
    print(f"Updated tickers on {result.updated} of {result.examined} transactions")
    return 0


def cmd_recalculate_fees(*, database_url: str | None = None) -> int:
    from db.client import session_scope
    from .api import recalculate_bitstop_fees

    try:
        with session_scope(database_url=database_url) as session:
            result = recalculate_bitstop_fees(session)
    except Exception as e:
        return _fail(f"fee recalculation failed: {e}")
    print(f"Updated Bitstop fees on {result.updated} of {result.examined} transactions")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Back-office tools for a crypto-ATM fleet: CSV ingest, profit and loss, sales "
        "summaries and commissions. Loads DATABASE_URL from a local .env before running."
    ),
)


# Module-level option object to satisfy ruff B008 (no calls in parameter
# defaults). Typer will inspect this when used as a default value below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a Denet or Bitstop CSV export",
    dir_okay=False,
    file_okay=True,
    exists=False,  # allow non-existent here; the handler will report nice errors
    readable=True,
)


def _database_url(ctx: typer.Context) -> str | None:
    return (ctx.obj or {}).get("database_url")


def _exit(code: int) -> None:
    raise typer.Exit(code)


@app.command("upload")
def upload_cmd(ctx: typer.Context, csv_path: Annotated[Path, CSV_PATH_OPTION]) -> None:
    """Ingest a CSV export."""

    _exit(cmd_upload(str(csv_path), database_url=_database_url(ctx)))


@app.command("pnl")
def pnl_cmd(
    ctx: typer.Context,
    *,
    year: int = typer.Option(..., help="Report year."),
    start_month: int = typer.Option(..., help="First month (1-12)."),
    end_month: int | None = typer.Option(None, help="Last month; defaults to start month."),
    platform: str = typer.Option("both", help="both, denet or bitstop."),
    csv_out: str | None = typer.Option(None, help="Write the report as CSV to this path."),
    xlsx_out: str | None = typer.Option(None, help="Write the report as Excel to this path."),
) -> None:
    """Profit and loss per ATM over whole months."""

    _exit(
        cmd_pnl(
            year,
            start_month,
            end_month,
            platform=platform,
            csv_out=csv_out,
            xlsx_out=xlsx_out,
            database_url=_database_url(ctx),
        )
    )


@app.command("sales-summary")
def sales_summary_cmd(
    ctx: typer.Context,
    *,
    year: int = typer.Option(..., help="Report year."),
    csv_out: str | None = typer.Option(None, help="Write the report as CSV to this path."),
    xlsx_out: str | None = typer.Option(None, help="Write the report as Excel to this path."),
) -> None:
    """Sales per platform by month."""

    _exit(
        cmd_sales_summary(
            year, csv_out=csv_out, xlsx_out=xlsx_out, database_url=_database_url(ctx)
        )
    )


@app.command("atm-sales")
def atm_sales_cmd(
    ctx: typer.Context,
    *,
    year: int = typer.Option(..., help="Report year."),
    start_month: int = typer.Option(..., help="First month (1-12)."),
    end_month: int | None = typer.Option(None, help="Last month; defaults to start month."),
    platform: str = typer.Option("both", help="both, denet or bitstop."),
    csv_out: str | None = typer.Option(None, help="Write the report as CSV to this path."),
    xlsx_out: str | None = typer.Option(None, help="Write the report as Excel to this path."),
) -> None:
    """Transactions, sales and fees per ATM over whole months."""

    _exit(
        cmd_atm_sales(
            year,
            start_month,
            end_month,
            platform=platform,
            csv_out=csv_out,
            xlsx_out=xlsx_out,
            database_url=_database_url(ctx),
        )
    )


@app.command("atm-monthly-sales")
def atm_monthly_sales_cmd(
    ctx: typer.Context,
    *,
    year: int = typer.Option(..., help="Report year."),
    platform: str = typer.Option("both", help="both, denet or bitstop."),
    csv_out: str | None = typer.Option(None, help="Write the report as CSV to this path."),
    xlsx_out: str | None = typer.Option(None, help="Write the report as Excel to this path."),
) -> None:
    """Sales per ATM by month."""

    _exit(
        cmd_atm_monthly_sales(
            year,
            platform=platform,
            csv_out=csv_out,
            xlsx_out=xlsx_out,
            database_url=_database_url(ctx),
        )
    )


@app.command("commissions")
def commissions_cmd(
    ctx: typer.Context,
    *,
    year: int = typer.Option(..., help="Commission year."),
    month: int = typer.Option(..., help="Commission month (1-12)."),
) -> None:
    """Calculate and store sales-rep commissions for a month."""

    _exit(cmd_commissions(year, month, database_url=_database_url(ctx)))


@app.command("delete-upload")
def delete_upload_cmd(
    ctx: typer.Context,
    upload_id: str = typer.Option(..., help="Upload id to delete with its transactions."),
) -> None:
    """Delete an upload and every transaction it added."""

    _exit(cmd_delete_upload(upload_id, database_url=_database_url(ctx)))


@app.command("refresh-tickers")
def refresh_tickers_cmd(ctx: typer.Context) -> None:
    """Rewrite stored tickers to their current display values."""

    _exit(cmd_refresh_tickers(database_url=_database_url(ctx)))


@app.command("recalculate-fees")
def recalculate_fees_cmd(ctx: typer.Context) -> None:
    """Recompute Bitstop fees from the current ticker fee percentages."""

    _exit(cmd_recalculate_fees(database_url=_database_url(ctx)))


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()
    ctx.obj = {"database_url": database_url}


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m btm_backoffice.cli`
    app()

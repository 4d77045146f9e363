"""CSV and Excel renderings of the P&L and the sales summaries."""

from __future__ import annotations

import calendar
import csv
import io
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from .models import Platform
from .money import round_dollars, round_money
from .profit_loss import ProfitLossReport, ProfitLossRow
from .reports import AtmMonthlySales, AtmSalesSummary, MonthlySalesSummary

MONEY_FORMAT = '_("$"* #,##0.00_);_("$"* (#,##0.00);_("$"* "-"??_);_(@_)'
PERCENT_FORMAT = "0.00%"

HEADERS = (
    "Status",
    "Install",
    "ATM ID",
    "ATM Name",
    "State",
    "Platform",
    "Total Sales",
    "Total Fees",
    "Fee %",
    "Bitstop Fees",
    "Rent",
    "Mgmt - RPS",
    "Mgmt - Rep",
    "Commissions",
    "Net Profit",
)

# Column positions (1-based) of currency and percentage cells in the table.
_MONEY_COLUMNS = (7, 8, 10, 11, 12, 13, 14, 15)
_PERCENT_COLUMN = 9


def _fmt_percent(fraction: Decimal) -> str:
    return f"{round_money(fraction * 100)}%"


def _money_cells(row: ProfitLossRow) -> list[Decimal]:
    return [
        row.total_sales,
        row.total_fees,
        row.bitstop_fees,
        row.rent,
        row.mgmt_rps,
        row.mgmt_rep,
        row.commissions,
        row.net_profit,
    ]


def profit_loss_csv(report: ProfitLossReport) -> str:
    """Render the report as CSV text with a trailing TOTAL row."""

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(HEADERS)
    for r in report.rows:
        sales, fees, bitstop, rent, rps, rep, comm, net = (round_money(v) for v in _money_cells(r))
        writer.writerow(
            [
                r.status,
                r.installed_date.isoformat() if r.installed_date else "",
                r.atm_id or "",
                r.location_name or "",
                r.state or "",
                r.platform.value,
                sales,
                fees,
                _fmt_percent(r.fee_percent),
                bitstop,
                rent,
                rps,
                rep,
                comm,
                net,
            ]
        )
    t = report.totals
    writer.writerow(
        [
            "TOTAL",
            "",
            "",
            "",
            "",
            "",
            round_money(t.total_sales),
            round_money(t.total_fees),
            _fmt_percent(t.fee_percent),
            round_money(t.bitstop_fees),
            round_money(t.rent),
            round_money(t.mgmt_rps),
            round_money(t.mgmt_rep),
            round_money(t.commissions),
            round_money(t.net_profit),
        ]
    )
    return buf.getvalue()


def build_profit_loss_workbook(report: ProfitLossReport, title: str) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "Profit and Loss"

    bold = Font(bold=True)

    ws["A1"] = title
    ws["A1"].font = bold
    ws["A2"] = "Profit and Loss"
    ws["A2"].font = bold
    platform = report.platform.value.title() if report.platform else "All platforms"
    ws["A3"] = f"{report.window.label()} ({platform})"

    def write_money(r: int, c: int, val: Decimal, is_bold: bool = False):
        cell = ws.cell(r, c)
        cell.value = float(round_money(val))
        cell.number_format = MONEY_FORMAT
        if is_bold:
            cell.font = bold

    def write_percent(r: int, c: int, val: Decimal, is_bold: bool = False):
        cell = ws.cell(r, c)
        cell.value = float(val)
        cell.number_format = PERCENT_FORMAT
        if is_bold:
            cell.font = bold

    # Key metrics
    t = report.totals
    r = 5
    ws.cell(r, 1).value = "Key Metrics"
    ws.cell(r, 1).font = bold
    r += 1
    for label, value, is_pct in (
        ("Total Sales", t.total_sales, False),
        ("Total Fees", t.total_fees, False),
        ("Fee %", t.fee_percent, True),
        ("Total Expenses", t.total_expenses, False),
        ("Net Profit", t.net_profit, False),
        ("Net % of Sales", t.net_percent_of_sales, True),
        ("Net % of Revenue", t.net_percent_of_revenue, True),
    ):
        ws.cell(r, 1).value = label
        if is_pct:
            write_percent(r, 2, value)
        else:
            write_money(r, 2, value)
        r += 1

    # Table
    r += 1
    header_row = r
    for c, header in enumerate(HEADERS, start=1):
        cell = ws.cell(header_row, c)
        cell.value = header
        cell.font = bold
        cell.alignment = Alignment(horizontal="center")

    r = header_row + 1
    for row in report.rows:
        ws.cell(r, 1).value = row.status
        ws.cell(r, 2).value = row.installed_date
        if row.installed_date is not None:
            ws.cell(r, 2).number_format = "yyyy-mm-dd"
        ws.cell(r, 3).value = row.atm_id
        ws.cell(r, 4).value = row.location_name
        ws.cell(r, 5).value = row.state
        ws.cell(r, 6).value = row.platform.value
        for c, v in zip(_MONEY_COLUMNS, _money_cells(row), strict=True):
            write_money(r, c, v)
        write_percent(r, _PERCENT_COLUMN, row.fee_percent)
        r += 1

    ws.cell(r, 1).value = "TOTAL"
    ws.cell(r, 1).font = bold
    totals = [
        t.total_sales,
        t.total_fees,
        t.bitstop_fees,
        t.rent,
        t.mgmt_rps,
        t.mgmt_rep,
        t.commissions,
        t.net_profit,
    ]
    for c, v in zip(_MONEY_COLUMNS, totals, strict=True):
        write_money(r, c, v, is_bold=True)
    write_percent(r, _PERCENT_COLUMN, t.fee_percent, is_bold=True)

    # Footer
    r += 2
    ws.cell(r, 1).value = datetime.now().strftime("%A, %b. %d, %Y %I:%M:%S %p")

    ws.column_dimensions["A"].width = 20
    ws.column_dimensions["D"].width = 36
    for c in range(2, len(HEADERS) + 1):
        letter = get_column_letter(c)
        if letter != "D":
            ws.column_dimensions[letter].width = 16
    ws.freeze_panes = ws.cell(header_row + 1, 1)

    return wb


def workbook_to_bytes(wb: Workbook) -> bytes:
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


# ---- Sales summaries -----------------------------------------------------------

DOLLAR_FORMAT = '_("$"* #,##0_);_("$"* (#,##0);_("$"* "-"??_);_(@_)'

MONTHLY_SALES_HEADERS = ("Platform", *calendar.month_abbr[1:], "Totals")
ATM_SALES_HEADERS = (
    "ATM ID",
    "ATM Name",
    "Platform",
    "Transactions",
    "Total Sales",
    "Total Fees",
    "Avg Transaction",
)
ATM_MONTHLY_SALES_HEADERS = (
    "Status",
    "Install",
    "Removed",
    "ATM ID",
    "ATM Name",
    "Platform",
    *calendar.month_name[1:],
    "Totals",
)


def _platform_name(platform: Platform | None) -> str:
    return platform.value.title() if platform else ""


def _platform_scope(platform: Platform | None) -> str:
    return f"{platform.value.title()} platform" if platform else "Both platforms"


def _monthly_sales_rows(summary: MonthlySalesSummary) -> tuple[list, list]:
    rows = [[r.label, *r.monthly, r.year_total] for r in summary.rows]
    return rows, ["TOTAL", *summary.monthly_totals, summary.year_total]


def _atm_sales_rows(summary: AtmSalesSummary) -> tuple[list, list]:
    rows = [
        [
            r.atm_id,
            r.atm_name,
            _platform_name(r.platform),
            r.transaction_count,
            r.total_sales,
            r.total_fees,
            r.average_sale,
        ]
        for r in summary.rows
    ]
    total = [
        "TOTAL",
        "",
        "",
        summary.transaction_count,
        summary.total_sales,
        summary.total_fees,
        summary.average_sale,
    ]
    return rows, total


def _atm_monthly_sales_rows(report: AtmMonthlySales) -> tuple[list, list]:
    rows = [
        [
            r.status,
            r.installed_date,
            r.removed_date,
            r.atm_id,
            r.atm_name,
            _platform_name(r.platform),
            *r.monthly,
            r.year_total,
        ]
        for r in report.rows
    ]
    total = ["", "", "", "TOTAL", "", "", *report.monthly_totals, report.year_total]
    return rows, total


def _csv_cell(value: object) -> object:
    if isinstance(value, Decimal):
        return round_dollars(value)
    if isinstance(value, date):
        return value.isoformat()
    return "" if value is None else value


def _table_csv(headers: tuple[str, ...], rows: list[list], total: list) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(headers)
    for row in [*rows, total]:
        writer.writerow([_csv_cell(v) for v in row])
    return buf.getvalue()


def monthly_sales_csv(summary: MonthlySalesSummary) -> str:
    """Platforms by month in whole dollars, with a TOTAL row."""

    return _table_csv(MONTHLY_SALES_HEADERS, *_monthly_sales_rows(summary))


def atm_sales_csv(summary: AtmSalesSummary) -> str:
    return _table_csv(ATM_SALES_HEADERS, *_atm_sales_rows(summary))


def atm_monthly_sales_csv(report: AtmMonthlySales) -> str:
    return _table_csv(ATM_MONTHLY_SALES_HEADERS, *_atm_monthly_sales_rows(report))


def _table_workbook(
    sheet_title: str,
    title: str,
    headers: tuple[str, ...],
    rows: list[list],
    total: list,
) -> Workbook:
    """One sheet: title in A1, headers on row 3, rows, then a bold TOTAL row.

    Decimal cells are written in whole dollars; dates as ``yyyy-mm-dd``.
    """

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    bold = Font(bold=True)

    ws["A1"] = title
    ws["A1"].font = Font(bold=True, size=14)

    header_row = 3
    for c, header in enumerate(headers, start=1):
        cell = ws.cell(header_row, c)
        cell.value = header
        cell.font = bold
        cell.alignment = Alignment(horizontal="center")

    r = header_row + 1
    for values in [*rows, total]:
        for c, value in enumerate(values, start=1):
            cell = ws.cell(r, c)
            if isinstance(value, Decimal):
                cell.value = float(round_dollars(value))
                cell.number_format = DOLLAR_FORMAT
            elif isinstance(value, date):
                cell.value = value
                cell.number_format = "yyyy-mm-dd"
            else:
                cell.value = value
        r += 1
    for c in range(1, len(headers) + 1):
        ws.cell(r - 1, c).font = bold

    for c, header in enumerate(headers, start=1):
        width = 30 if header == "ATM Name" else max(12, len(header) + 4)
        ws.column_dimensions[get_column_letter(c)].width = width
    ws.freeze_panes = ws.cell(header_row + 1, 1)
    return wb


def build_monthly_sales_workbook(summary: MonthlySalesSummary) -> Workbook:
    return _table_workbook(
        "Monthly Sales",
        f"Sales by Month - totals - {summary.year}",
        MONTHLY_SALES_HEADERS,
        *_monthly_sales_rows(summary),
    )


def build_atm_sales_workbook(summary: AtmSalesSummary) -> Workbook:
    window = summary.window
    if window.start_index == window.end_index:
        span = window.start.strftime("%B %Y")
    else:
        span = f"{window.start.strftime('%B')} thru {window.end.strftime('%B %Y')}"
    return _table_workbook(
        "ATM Sales Summary",
        f"ATM Sales Summary - {span} ({_platform_scope(summary.platform)})",
        ATM_SALES_HEADERS,
        *_atm_sales_rows(summary),
    )


def build_atm_monthly_sales_workbook(report: AtmMonthlySales) -> Workbook:
    return _table_workbook(
        "ATM Monthly Sales",
        f"Sales by Month - by ATM - {report.year} ({_platform_scope(report.platform)})",
        ATM_MONTHLY_SALES_HEADERS,
        *_atm_monthly_sales_rows(report),
    )


__all__ = [
    "HEADERS",
    "MONEY_FORMAT",
    "PERCENT_FORMAT",
    "DOLLAR_FORMAT",
    "MONTHLY_SALES_HEADERS",
    "ATM_SALES_HEADERS",
    "ATM_MONTHLY_SALES_HEADERS",
    "profit_loss_csv",
    "build_profit_loss_workbook",
    "workbook_to_bytes",
    "monthly_sales_csv",
    "atm_sales_csv",
    "atm_monthly_sales_csv",
    "build_monthly_sales_workbook",
    "build_atm_sales_workbook",
    "build_atm_monthly_sales_workbook",
]

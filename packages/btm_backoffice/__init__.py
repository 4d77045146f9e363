"""Public interface for the ``btm_backoffice`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import (
    calculate_commissions,
    delete_upload,
    list_uploads,
    mark_commission_paid,
    platform_date_ranges,
    profit_loss_report,
    recalculate_bitstop_fees,
    refresh_transaction_tickers,
    upload_csv,
    upload_csv_file,
)
from .errors import (
    BackofficeError,
    CsvParseError,
    DuplicateKeyError,
    InUseError,
    InvalidInputError,
    MissingProfileFieldsError,
    NoTransactionDataError,
    NotFoundError,
    NoValidRecordsError,
    OverlappingInstallationError,
    RequiredFieldError,
)
from .models import IngestResult, Platform
from .profit_loss import ProfitLossReport, ProfitLossRow, ProfitLossTotals
from .proration import MonthWindow

__all__ = [
    # API
    "upload_csv",
    "upload_csv_file",
    "profit_loss_report",
    "calculate_commissions",
    "mark_commission_paid",
    "refresh_transaction_tickers",
    "recalculate_bitstop_fees",
    "list_uploads",
    "delete_upload",
    "platform_date_ranges",
    # Models / types
    "Platform",
    "IngestResult",
    "MonthWindow",
    "ProfitLossReport",
    "ProfitLossRow",
    "ProfitLossTotals",
    # Errors
    "BackofficeError",
    "CsvParseError",
    "NoValidRecordsError",
    "MissingProfileFieldsError",
    "RequiredFieldError",
    "InvalidInputError",
    "DuplicateKeyError",
    "InUseError",
    "OverlappingInstallationError",
    "NoTransactionDataError",
    "NotFoundError",
]

"""CSV ingest: reading, platform detection, row mapping and lookup resolution."""

from .mapper import classify_rows, detect_platform, map_rows, normalize_rows
from .resolver import (
    DEFAULT_FEE_PERCENTAGE,
    LookupContext,
    insert_new_lookups,
    load_lookup_context,
)
from .utils import RawCsvRow, parse_date, parse_money, read_csv_file, read_csv_text

__all__ = [
    "DEFAULT_FEE_PERCENTAGE",
    "LookupContext",
    "RawCsvRow",
    "classify_rows",
    "detect_platform",
    "insert_new_lookups",
    "load_lookup_context",
    "map_rows",
    "normalize_rows",
    "parse_date",
    "parse_money",
    "read_csv_file",
    "read_csv_text",
]

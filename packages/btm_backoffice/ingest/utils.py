"""CSV reading and cell parsing shared by the platform adapters.

Headers are matched case- and whitespace-insensitively through
:class:`RawCsvRow`; money and date cells parse to ``None`` rather than zero
when blank or unreadable.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from os import PathLike
from pathlib import Path

from ..errors import CsvParseError


def normalize_header(name: str | None) -> str:
    if name is None:
        return ""
    return name.replace("\ufeff", "").strip().lower()


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = re.sub(r"\s+", " ", value).strip()
    return cleaned if cleaned != "" else None


class RawCsvRow(Mapping[str, str]):
    """One CSV record keyed by normalized header.

    ``row["ATM.Id"]`` and ``row[" atm.id "]`` address the same cell.
    """

    __slots__ = ("_cells",)

    def __init__(self, cells: Mapping[str | None, str | None]) -> None:
        self._cells: dict[str, str] = {}
        for key, value in cells.items():
            # DictReader files surplus cells under ``None``
            if key is None or value is None or isinstance(value, list):
                continue
            norm = normalize_header(key)
            if norm and norm not in self._cells:
                self._cells[norm] = value

    def __getitem__(self, key: str) -> str:
        return self._cells[normalize_header(key)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_header(key) in self._cells

    def first(self, *aliases: str) -> str | None:
        """Return the first non-blank cell among ``aliases``, trimmed."""

        for alias in aliases:
            value = self._cells.get(normalize_header(alias))
            if value is not None and value.strip() != "":
                return value.strip()
        return None

    def __repr__(self) -> str:
        return f"RawCsvRow({self._cells!r})"


def read_csv_text(text: str) -> tuple[list[str], list[RawCsvRow]]:
    """Parse CSV text into ``(headers, rows)``.

    Raises
    ------
    CsvParseError
        When the text has no header row or the csv module rejects it.
    """

    if text.startswith("\ufeff"):
        text = text[1:]
    try:
        reader = csv.DictReader(io.StringIO(text, newline=""), strict=True)
        headers = [h.strip() for h in (reader.fieldnames or []) if h is not None]
        if not any(headers):
            raise CsvParseError("CSV appears to have no header row")
        rows = [RawCsvRow(r) for r in reader]
    except csv.Error as exc:
        raise CsvParseError(f"Failed to parse CSV: {exc}") from exc
    return headers, rows


def read_csv_file(csv_path: str | PathLike[str]) -> str:
    """Return the text of a UTF-8 CSV file, without a leading BOM."""

    p = Path(csv_path)
    try:
        return p.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CsvParseError(f"CSV is not valid UTF-8: {csv_path}") from exc


def header_set(headers: Iterable[str]) -> set[str]:
    return {normalize_header(h) for h in headers}


def parse_money(value: str | None) -> Decimal | None:
    """Parse a currency cell such as ``"$1,234.50"``.

    Blank or unparsable cells give ``None`` (not zero).
    """

    if value is None:
        return None
    s = value.replace("$", "").replace(",", "").strip()
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return d


# Month-first formats seen in platform exports, most specific first.
_DATE_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%m/%d/%y %I:%M:%S %p",
    "%m/%d/%y %I:%M %p",
    "%m/%d/%y %H:%M",
    "%m/%d/%y",
)


def parse_date(value: str | None) -> date | None:
    """Parse a platform date/time cell into the calendar date it names.

    ISO 8601 text (with or without time or offset) is tried first, then
    ``MM/DD/YYYY`` with an optional 24h or AM/PM time. Unparsable → ``None``.
    """

    s = clean_text(value)
    if s is None:
        return None
    iso = s[:-1] + "+00:00" if s.endswith(("Z", "z")) else s
    try:
        return datetime.fromisoformat(iso).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


__all__ = [
    "RawCsvRow",
    "read_csv_text",
    "read_csv_file",
    "header_set",
    "normalize_header",
    "clean_text",
    "parse_money",
    "parse_date",
]

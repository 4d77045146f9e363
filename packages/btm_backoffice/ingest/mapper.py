"""Platform detection and row normalization for one uploaded CSV.

``map_rows`` is the pipeline entry: detect the platform once for the whole
file from its headers, classify every raw row into that platform's row shape,
then normalize through the platform adapter. Rows without a transaction id are
dropped; a file where no row survives is an error.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from ..errors import NoValidRecordsError
from ..logging_setup import get_logger
from ..models import BitstopRow, ClassifiedRow, DenetRow, Platform, TransactionCandidate
from .adapters import bitstop_csv, denet_csv
from .resolver import LookupContext
from .utils import RawCsvRow, header_set

logger = get_logger("btm_backoffice.ingest.mapper")


def detect_platform(headers: Iterable[str]) -> Platform:
    """Bitstop when any Bitstop-only header is present, otherwise Denet."""

    if header_set(headers) & bitstop_csv.SIGNATURE_HEADERS:
        return Platform.BITSTOP
    return Platform.DENET


def classify_rows(platform: Platform, rows: Iterable[RawCsvRow]) -> list[ClassifiedRow]:
    if platform is Platform.BITSTOP:
        return [bitstop_csv.classify(r) for r in rows]
    return [denet_csv.classify(r) for r in rows]


def normalize_rows(
    rows: Iterable[ClassifiedRow], ctx: LookupContext
) -> list[TransactionCandidate]:
    out: list[TransactionCandidate] = []
    for row in rows:
        match row:
            case BitstopRow():
                candidate = bitstop_csv.to_candidate(row, ctx)
            case DenetRow():
                candidate = denet_csv.to_candidate(row, ctx)
        if candidate is not None:
            out.append(candidate)
    return out


def map_rows(
    headers: Sequence[str], rows: Sequence[RawCsvRow], ctx: LookupContext
) -> tuple[Platform, list[TransactionCandidate]]:
    """Map parsed CSV rows to transaction candidates.

    Raises
    ------
    NoValidRecordsError
        When no row yields a transaction id.
    """

    platform = detect_platform(headers)
    logger.info("Detected %s export with %d rows", platform.value, len(rows))
    candidates = normalize_rows(classify_rows(platform, rows), ctx)
    dropped = len(rows) - len(candidates)
    if dropped:
        logger.info("Dropped %d rows without a transaction id", dropped)
    if not candidates:
        raise NoValidRecordsError()
    return platform, candidates


__all__ = ["detect_platform", "classify_rows", "normalize_rows", "map_rows"]

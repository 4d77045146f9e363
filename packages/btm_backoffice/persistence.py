# ruff: noqa: I001
"""Transaction de-duplication and writes.

Functions here take an open SQLAlchemy ``Session`` (see ``db.client``) and
never commit on their own; the caller decides the commit points.

Scope:
- Look up which transaction ids are already stored, in bounded batches.
- Split candidates into new rows and duplicates.
- Create the upload manifest and insert the new transaction rows.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from db.models.btm import Transaction, Upload
from .logging_setup import get_logger
from .models import Platform, TransactionCandidate

logger = get_logger("btm_backoffice.persistence")

DEFAULT_EXISTENCE_BATCH_SIZE = 500


def resolve_batch_size(batch_size: int | None = None) -> int:
    """Batch size for existence checks.

    An explicit positive ``batch_size`` wins, then ``BTM_EXISTENCE_BATCH_SIZE``,
    then 500. Invalid or non-positive values fall back to the default.
    """

    if batch_size is not None and batch_size > 0:
        return batch_size
    env_val = os.getenv("BTM_EXISTENCE_BATCH_SIZE")
    try:
        parsed = int(env_val) if env_val else None
    except ValueError:
        parsed = None
    if parsed is not None and parsed > 0:
        return parsed
    return DEFAULT_EXISTENCE_BATCH_SIZE


def find_existing_ids(
    session: Session, ids: Iterable[str], *, batch_size: int | None = None
) -> set[str]:
    """Return the subset of ``ids`` already present in ``transactions``.

    One ``IN`` query per batch keeps each round trip within backend limits;
    the result is the union over all batches.
    """

    unique_ids = list(dict.fromkeys(ids))
    size = resolve_batch_size(batch_size)
    existing: set[str] = set()
    for start in range(0, len(unique_ids), size):
        chunk = unique_ids[start : start + size]
        rows = session.execute(select(Transaction.id).where(Transaction.id.in_(chunk)))
        existing.update(rows.scalars())
    return existing


def split_new(
    candidates: Sequence[TransactionCandidate], existing: set[str]
) -> tuple[list[TransactionCandidate], int]:
    """Return ``(new_candidates, duplicate_count)``.

    An id repeated inside the same file is written once; the repeats count as
    duplicates alongside ids already stored.
    """

    seen: set[str] = set()
    new: list[TransactionCandidate] = []
    duplicates = 0
    for c in candidates:
        if c.id in existing or c.id in seen:
            duplicates += 1
            continue
        seen.add(c.id)
        new.append(c)
    return new, duplicates


def create_manifest(
    session: Session, *, filename: str, platform: Platform, record_count: int
) -> Upload:
    upload = Upload(
        filename=filename,
        platform=platform.value,
        record_count=record_count,
        status="completed",
    )
    session.add(upload)
    session.flush()
    return upload


def insert_transactions(
    session: Session, candidates: Sequence[TransactionCandidate], *, upload_id: str
) -> int:
    """Insert new transaction rows linked to ``upload_id``; return the count."""

    if not candidates:
        return 0
    session.execute(insert(Transaction), [c.to_row(upload_id=upload_id) for c in candidates])
    return len(candidates)


__all__ = [
    "DEFAULT_EXISTENCE_BATCH_SIZE",
    "resolve_batch_size",
    "find_existing_ids",
    "split_new",
    "create_manifest",
    "insert_transactions",
]

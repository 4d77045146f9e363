"""Upload history: listing, deletion and per-platform date coverage."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from db.models.btm import Transaction, Upload
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .logging_setup import get_logger
from .models import Platform

logger = get_logger("btm_backoffice.uploads")


def list_uploads(session: Session) -> list[Upload]:
    """Upload manifests, newest first."""

    return list(
        session.execute(select(Upload).order_by(Upload.created_at.desc(), Upload.id)).scalars()
    )


def delete_upload(session: Session, upload_id: str) -> int:
    """Delete an upload and every transaction it brought in.

    Returns the number of transactions removed. This cannot be undone.
    """

    upload = session.get(Upload, upload_id)
    if upload is None:
        raise NotFoundError(f"Upload {upload_id} not found")
    removed = session.execute(
        select(func.count()).select_from(Transaction).where(Transaction.upload_id == upload_id)
    ).scalar_one()
    session.delete(upload)
    session.flush()
    logger.warning(
        "Deleted upload %s (%s) and %d transactions", upload_id, upload.filename, removed
    )
    return removed


@dataclass(frozen=True, slots=True)
class DateRange:
    platform: Platform
    first: date | None
    last: date | None
    transaction_count: int


def platform_date_ranges(session: Session) -> list[DateRange]:
    """First and last transaction date per platform, for coverage checks."""

    rows = session.execute(
        select(
            Transaction.platform,
            func.min(Transaction.date),
            func.max(Transaction.date),
            func.count(Transaction.id),
        ).group_by(Transaction.platform)
    ).all()
    found = {platform: (first, last, count) for platform, first, last, count in rows}
    out: list[DateRange] = []
    for platform in Platform:
        first, last, count = found.get(platform.value, (None, None, 0))
        out.append(DateRange(platform=platform, first=first, last=last, transaction_count=count))
    return out


__all__ = ["DateRange", "list_uploads", "delete_upload", "platform_date_ranges"]

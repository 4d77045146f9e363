"""Error taxonomy for back-office operations.

Every failure a caller should turn into a single user-facing message derives
from :class:`BackofficeError`. The CLI catches this base class at the command
boundary; anything else is an unexpected failure and is reported as such.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class BackofficeError(Exception):
    """Base class for user-facing back-office failures."""


class CsvParseError(BackofficeError):
    """The uploaded file could not be read as CSV. Nothing is written."""


class NoValidRecordsError(BackofficeError):
    """No row of the uploaded file produced a transaction with an id."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No valid records found in CSV. Please check column headers."
        )


class MissingProfileFieldsError(BackofficeError):
    """Relevant ATM profiles lack fields the P&L computation needs.

    ``missing`` maps a field name (``"platform"``, ``"installed_date"``) to the
    complete list of offending ATM ids.
    """

    def __init__(self, missing: Mapping[str, Sequence[str]]) -> None:
        self.missing: dict[str, list[str]] = {k: list(v) for k, v in missing.items() if v}
        parts = [
            f"missing {field} for ATM IDs: {', '.join(ids)}"
            for field, ids in self.missing.items()
        ]
        super().__init__(
            "Cannot compute profit and loss; please update these ATM profiles: "
            + "; ".join(parts)
        )


class RequiredFieldError(BackofficeError):
    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is required")


class InvalidInputError(BackofficeError):
    """A manually entered value failed validation."""


class DuplicateKeyError(BackofficeError):
    """A natural key (deposit id, person name, ...) is already taken."""


class InUseError(BackofficeError):
    """A delete was refused because other records still reference the row."""


class OverlappingInstallationError(BackofficeError):
    """An ATM id would have two active or overlapping installations."""


class NoTransactionDataError(BackofficeError):
    pass


class NotFoundError(BackofficeError):
    pass


__all__ = [
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

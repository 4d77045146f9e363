"""ATM profile and sales-rep administration.

An ATM id may be reused as a machine moves between locations, so several
profiles can share it. Within one ATM id at most one profile is active
(``removed_date`` unset) and the ``[installed, removed)`` ranges must not
overlap. Creation and edits are explicit create-or-update paths that check
these rules before writing.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from db.models.btm import AtmProfile, CashPickup, Commission, SalesRep, Transaction
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .errors import InUseError, NotFoundError, OverlappingInstallationError, RequiredFieldError
from .logging_setup import get_logger
from .schemas import ProfileInput, SalesRepInput, parse_input

logger = get_logger("btm_backoffice.profiles")

_PROFILE_FIELDS = tuple(ProfileInput.model_fields)
_REP_FIELDS = tuple(SalesRepInput.model_fields)


@dataclass(frozen=True, slots=True)
class _Installation:
    profile_id: str | None
    location_name: str | None
    installed_date: date | None
    removed_date: date | None


def _location(inst: _Installation) -> str:
    return inst.location_name or "an unnamed location"


def _overlaps(a: _Installation, b: _Installation) -> bool:
    # Half-open [installed, removed); an open end runs forever.
    if a.installed_date is None or b.installed_date is None:
        return False
    a_end = a.removed_date or date.max
    b_end = b.removed_date or date.max
    return a.installed_date < b_end and b.installed_date < a_end


def _check_group(atm_id: str, proposed: _Installation, others: Sequence[_Installation]) -> None:
    if proposed.removed_date is None:
        for other in others:
            if other.removed_date is None:
                raise OverlappingInstallationError(
                    f"ATM ID {atm_id} is already active at {_location(other)}. "
                    "Please set a removal date on the existing profile first."
                )
    for other in others:
        if (
            proposed.installed_date is not None
            and other.removed_date is not None
            and other.installed_date is not None
            and other.installed_date <= proposed.installed_date < other.removed_date
        ):
            raise OverlappingInstallationError(
                f"ATM ID {atm_id} install date {proposed.installed_date.isoformat()} is "
                f"before its removal date {other.removed_date.isoformat()} at "
                f"{_location(other)}."
            )
        if _overlaps(proposed, other):
            raise OverlappingInstallationError(
                f"ATM ID {atm_id} would overlap its installation at {_location(other)}."
            )


def _installations(
    session: Session, atm_id: str, *, exclude_id: str | None = None
) -> list[_Installation]:
    stmt = select(AtmProfile).where(AtmProfile.atm_id == atm_id)
    if exclude_id is not None:
        stmt = stmt.where(AtmProfile.id != exclude_id)
    return [
        _Installation(p.id, p.location_name, p.installed_date, p.removed_date)
        for p in session.execute(stmt).scalars()
    ]


def _get_profile(session: Session, profile_id: str) -> AtmProfile:
    profile = session.get(AtmProfile, profile_id)
    if profile is None:
        raise NotFoundError(f"ATM profile {profile_id} not found")
    return profile


def create_profile(session: Session, data: ProfileInput | Mapping[str, Any]) -> AtmProfile:
    """Create an ATM profile after checking the ATM id's other installations.

    Raises
    ------
    RequiredFieldError
        When ``atm_id`` is missing.
    OverlappingInstallationError
        When the ATM id is already active elsewhere or the ranges overlap.
    """

    values = parse_input(ProfileInput, data)
    if not values.atm_id:
        raise RequiredFieldError("atm_id", "ATM ID is required")

    proposed = _Installation(None, values.location_name, values.installed_date, values.removed_date)
    _check_group(values.atm_id, proposed, _installations(session, values.atm_id))

    fields = values.model_dump()
    fields["platform"] = values.platform.value if values.platform else None
    profile = AtmProfile(**fields, active=values.removed_date is None)
    session.add(profile)
    session.flush()
    logger.info("Created ATM profile %s for ATM %s", profile.id, profile.atm_id)
    return profile


def update_profile(
    session: Session, profile_id: str, changes: Mapping[str, Any]
) -> AtmProfile:
    """Apply ``changes`` to a profile, re-validating its ATM id group.

    ``active`` always follows ``removed_date``.
    """

    profile = _get_profile(session, profile_id)
    current = {name: getattr(profile, name) for name in _PROFILE_FIELDS}
    values = parse_input(ProfileInput, {**current, **dict(changes)})
    if not values.atm_id:
        raise RequiredFieldError("atm_id", "ATM ID is required")

    with session.no_autoflush:
        proposed = _Installation(
            profile.id, values.location_name, values.installed_date, values.removed_date
        )
        _check_group(
            values.atm_id,
            proposed,
            _installations(session, values.atm_id, exclude_id=profile.id),
        )

    for name, value in values.model_dump().items():
        if name == "platform":
            value = values.platform.value if values.platform else None
        setattr(profile, name, value)
    profile.active = values.removed_date is None
    profile.updated_at = func.now()
    session.flush()
    return profile


def delete_profile(session: Session, profile_id: str) -> None:
    """Delete a profile that nothing references.

    Raises
    ------
    InUseError
        When transactions for its ATM id or cash pickups reference it; such a
        machine should be deactivated with a removal date instead.
    """

    profile = _get_profile(session, profile_id)
    tx_count = 0
    if profile.atm_id:
        tx_count = session.execute(
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.atm_id == profile.atm_id)
        ).scalar_one()
    pickup_count = session.execute(
        select(func.count()).select_from(CashPickup).where(CashPickup.atm_profile_id == profile.id)
    ).scalar_one()
    if tx_count or pickup_count:
        raise InUseError(
            f"Cannot delete ATM {profile.atm_id or profile.id}: it has {tx_count} "
            f"transactions and {pickup_count} cash pickups. "
            "Set a removal date to deactivate it instead."
        )
    session.delete(profile)
    session.flush()


def list_profiles(session: Session, *, active_only: bool = False) -> list[AtmProfile]:
    stmt = select(AtmProfile).order_by(AtmProfile.atm_id, AtmProfile.installed_date)
    if active_only:
        stmt = stmt.where(AtmProfile.removed_date.is_(None))
    return list(session.execute(stmt).scalars())


# ---------------------------
# Sales reps
# ---------------------------


def create_sales_rep(session: Session, data: SalesRepInput | Mapping[str, Any]) -> SalesRep:
    values = parse_input(SalesRepInput, data)
    rep = SalesRep(**values.model_dump())
    session.add(rep)
    session.flush()
    return rep


def update_sales_rep(session: Session, rep_id: str, changes: Mapping[str, Any]) -> SalesRep:
    rep = session.get(SalesRep, rep_id)
    if rep is None:
        raise NotFoundError(f"Sales rep {rep_id} not found")
    current = {name: getattr(rep, name) for name in _REP_FIELDS}
    values = parse_input(SalesRepInput, {**current, **dict(changes)})
    for name, value in values.model_dump().items():
        setattr(rep, name, value)
    rep.updated_at = func.now()
    session.flush()
    return rep


def delete_sales_rep(session: Session, rep_id: str) -> None:
    """Delete a rep with no commission history and unassign their machines."""

    rep = session.get(SalesRep, rep_id)
    if rep is None:
        raise NotFoundError(f"Sales rep {rep_id} not found")
    snapshots = session.execute(
        select(func.count()).select_from(Commission).where(Commission.sales_rep_id == rep_id)
    ).scalar_one()
    if snapshots:
        raise InUseError(
            f"Cannot delete {rep.name} because they have commission history. "
            "Deactivate them instead."
        )
    session.execute(
        update(AtmProfile).where(AtmProfile.sales_rep_id == rep_id).values(sales_rep_id=None)
    )
    session.delete(rep)
    session.flush()


__all__ = [
    "create_profile",
    "update_profile",
    "delete_profile",
    "list_profiles",
    "create_sales_rep",
    "update_sales_rep",
    "delete_sales_rep",
]

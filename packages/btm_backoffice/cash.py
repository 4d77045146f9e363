"""Cash logistics: couriers, ATM cash pickups and bank deposits.

A courier (person) collects cash from machines (pickups) and later deposits
it at the bank. A deposit is linked to the pickups it covers, each link
carrying the part of the pickup's amount that went into the deposit. A pickup
is fully deposited once its links cover its amount (to the cent).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from db.models.btm import CashPickup, Deposit, DepositPickupLink, Person
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateKeyError, InUseError, InvalidInputError, NotFoundError
from .logging_setup import get_logger
from .money import ZERO
from .schemas import DepositInput, PersonInput, PickupInput, parse_input

logger = get_logger("btm_backoffice.cash")

# Remaining balances at or below a cent count as settled.
TOLERANCE = Decimal("0.01")

_PERSON_IN_USE = (
    "Cannot delete this person because they have associated cash pickups "
    "or deposits. Deactivate them instead."
)


# ---------------------------
# People
# ---------------------------


def _get(session: Session, model: type, record_id: str, label: str):
    record = session.get(model, record_id)
    if record is None:
        raise NotFoundError(f"{label} {record_id} not found")
    return record


def _name_taken(session: Session, name: str, *, exclude_id: str | None = None) -> bool:
    stmt = select(Person.id).where(func.lower(Person.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Person.id != exclude_id)
    return session.execute(stmt.limit(1)).first() is not None


def create_person(session: Session, data: PersonInput | Mapping[str, Any]) -> Person:
    values = parse_input(PersonInput, data)
    if _name_taken(session, values.name):
        raise DuplicateKeyError("A person with this name already exists.")
    person = Person(name=values.name, active=values.active)
    session.add(person)
    session.flush()
    return person


def update_person(session: Session, person_id: str, changes: Mapping[str, Any]) -> Person:
    person = _get(session, Person, person_id, "Person")
    values = parse_input(PersonInput, {"name": person.name, "active": person.active, **changes})
    if _name_taken(session, values.name, exclude_id=person.id):
        raise DuplicateKeyError("A person with this name already exists.")
    person.name = values.name
    person.active = values.active
    session.flush()
    return person


def set_person_active(session: Session, person_id: str, active: bool) -> Person:
    person = _get(session, Person, person_id, "Person")
    person.active = active
    session.flush()
    return person


def delete_person(session: Session, person_id: str) -> None:
    """Delete a courier; refused while pickups or deposits reference them."""

    person = _get(session, Person, person_id, "Person")
    refs = 0
    for model in (CashPickup, Deposit):
        refs += session.execute(
            select(func.count()).select_from(model).where(model.person_id == person.id)
        ).scalar_one()
    if refs:
        raise InUseError(_PERSON_IN_USE)
    try:
        with session.begin_nested():
            session.delete(person)
    except IntegrityError as exc:
        raise InUseError(_PERSON_IN_USE) from exc
    logger.info("Deleted person %s", person_id)


def list_people(session: Session, *, active_only: bool = False) -> list[Person]:
    stmt = select(Person).order_by(Person.name)
    if active_only:
        stmt = stmt.where(Person.active.is_(True))
    return list(session.execute(stmt).scalars())


# ---------------------------
# Pickups
# ---------------------------


def record_pickup(session: Session, data: PickupInput | Mapping[str, Any]) -> CashPickup:
    values = parse_input(PickupInput, data)
    pickup = CashPickup(**values.model_dump(), deposited=False)
    session.add(pickup)
    session.flush()
    return pickup


def update_pickup(session: Session, pickup_id: str, changes: Mapping[str, Any]) -> CashPickup:
    pickup = _get(session, CashPickup, pickup_id, "Cash pickup")
    current = {name: getattr(pickup, name) for name in PickupInput.model_fields}
    values = parse_input(PickupInput, {**current, **changes})
    linked = _linked_total(session, pickup.id)
    if values.amount + TOLERANCE < linked:
        raise InvalidInputError(
            f"Amount {values.amount} is below the {linked} already deposited from this pickup."
        )
    for name, value in values.model_dump().items():
        setattr(pickup, name, value)
    pickup.deposited = values.amount - linked <= TOLERANCE
    session.flush()
    return pickup


def delete_pickup(session: Session, pickup_id: str) -> None:
    pickup = _get(session, CashPickup, pickup_id, "Cash pickup")
    session.delete(pickup)
    session.flush()


def _linked_total(session: Session, pickup_id: str) -> Decimal:
    total = session.execute(
        select(func.coalesce(func.sum(DepositPickupLink.amount), 0)).where(
            DepositPickupLink.pickup_id == pickup_id
        )
    ).scalar_one()
    return Decimal(str(total))


def remaining_amount(session: Session, pickup: CashPickup) -> Decimal:
    return pickup.amount - _linked_total(session, pickup.id)


@dataclass(frozen=True, slots=True)
class AvailablePickup:
    pickup: CashPickup
    remaining: Decimal


def available_pickups(session: Session) -> list[AvailablePickup]:
    """Pickups with more than a cent not yet covered by a deposit, oldest first."""

    linked = (
        select(
            DepositPickupLink.pickup_id,
            func.sum(DepositPickupLink.amount).label("linked"),
        )
        .group_by(DepositPickupLink.pickup_id)
        .subquery()
    )
    rows = session.execute(
        select(CashPickup, func.coalesce(linked.c.linked, 0))
        .outerjoin(linked, linked.c.pickup_id == CashPickup.id)
        .order_by(CashPickup.pickup_date, CashPickup.id)
    ).all()
    out: list[AvailablePickup] = []
    for pickup, linked_total in rows:
        remaining = pickup.amount - Decimal(str(linked_total))
        if remaining > TOLERANCE:
            out.append(AvailablePickup(pickup=pickup, remaining=remaining))
    return out


# ---------------------------
# Deposits
# ---------------------------


def create_deposit(session: Session, data: DepositInput | Mapping[str, Any]) -> Deposit:
    values = parse_input(DepositInput, data)
    exists = session.execute(
        select(Deposit.id).where(Deposit.deposit_id == values.deposit_id).limit(1)
    ).first()
    if exists is not None:
        raise DuplicateKeyError(
            f"Deposit ID {values.deposit_id} already exists. Please use a unique deposit ID."
        )
    deposit = Deposit(**values.model_dump())
    session.add(deposit)
    session.flush()
    return deposit


def _refresh_deposited(session: Session, pickup: CashPickup) -> None:
    remaining = remaining_amount(session, pickup)
    pickup.deposited = remaining <= TOLERANCE


def link_pickups(
    session: Session, deposit_id: str, amounts: Mapping[str, Decimal]
) -> list[DepositPickupLink]:
    """Link pickups to a deposit.

    Parameters
    ----------
    deposit_id:
        Primary key of the deposit.
    amounts:
        Pickup id → amount of that pickup going into the deposit.

    Raises
    ------
    InvalidInputError
        When an amount is not positive or exceeds the pickup's remaining
        balance (plus a cent).
    DuplicateKeyError
        When a pickup is already linked to this deposit.
    """

    deposit = _get(session, Deposit, deposit_id, "Deposit")
    links: list[DepositPickupLink] = []
    pickups: list[CashPickup] = []
    for pickup_id, raw_amount in amounts.items():
        amount = Decimal(str(raw_amount))
        pickup = _get(session, CashPickup, pickup_id, "Cash pickup")
        if amount <= ZERO:
            raise InvalidInputError("Link amounts must be positive.")
        remaining = remaining_amount(session, pickup)
        if amount > remaining + TOLERANCE:
            raise InvalidInputError(
                f"Amount {amount} exceeds the remaining {remaining} on the pickup "
                f"from {pickup.pickup_date.isoformat()}."
            )
        links.append(DepositPickupLink(deposit_id=deposit.id, pickup_id=pickup.id, amount=amount))
        pickups.append(pickup)

    try:
        with session.begin_nested():
            session.add_all(links)
    except IntegrityError as exc:
        raise DuplicateKeyError(
            "One or more pickups are already linked to this deposit"
        ) from exc

    for pickup in pickups:
        _refresh_deposited(session, pickup)
        if pickup.deposited and pickup.deposit_date is None:
            pickup.deposit_date = deposit.deposit_date
    session.flush()
    logger.info("Linked %d pickups to deposit %s", len(links), deposit.deposit_id)
    return links


def delete_deposit(session: Session, deposit_id: str) -> None:
    """Delete a deposit and its links; covered pickups become undeposited again."""

    deposit = _get(session, Deposit, deposit_id, "Deposit")
    pickup_ids = [link.pickup_id for link in deposit.links]
    session.delete(deposit)
    session.flush()
    for pickup_id in pickup_ids:
        pickup = session.get(CashPickup, pickup_id)
        if pickup is None:
            continue
        _refresh_deposited(session, pickup)
        if not pickup.deposited:
            pickup.deposit_date = None
    session.flush()


@dataclass(frozen=True, slots=True)
class CashInTransit:
    person_id: str
    name: str
    amount: Decimal
    pickup_count: int


def cash_in_transit(session: Session) -> list[CashInTransit]:
    """Per active courier, the remaining balance of pickups not yet deposited."""

    amounts: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for item in available_pickups(session):
        pid = item.pickup.person_id
        if pid is None:
            continue
        amounts[pid] = amounts.get(pid, ZERO) + item.remaining
        counts[pid] = counts.get(pid, 0) + 1
    return [
        CashInTransit(
            person_id=person.id,
            name=person.name,
            amount=amounts.get(person.id, ZERO),
            pickup_count=counts.get(person.id, 0),
        )
        for person in list_people(session, active_only=True)
    ]


__all__ = [
    "TOLERANCE",
    "AvailablePickup",
    "CashInTransit",
    "create_person",
    "update_person",
    "set_person_active",
    "delete_person",
    "list_people",
    "record_pickup",
    "update_pickup",
    "delete_pickup",
    "remaining_amount",
    "available_pickups",
    "create_deposit",
    "link_pickups",
    "delete_deposit",
    "cash_in_transit",
]

"""Validated input models for manually entered records.

Operators create ATM profiles, sales reps, couriers, pickups and deposits by
hand. These pydantic models trim text, reject unknown keys and check ranges
before anything reaches the database.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidInputError, RequiredFieldError
from .models import Platform


def _blank_to_none(v: object) -> object:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ProfileInput(BaseModel):
    """Fields of an ATM profile (one installation of a machine at a location)."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    atm_id: str | None = None
    serial_number: str | None = None
    location_name: str | None = None
    street_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    warehouse_location: str | None = None
    platform: Platform | None = None
    platform_switch_date: date | None = None
    installed_date: date | None = None
    removed_date: date | None = None
    monthly_rent: Decimal = Field(default=Decimal("0"), ge=0)
    cash_management_rps: Decimal = Field(default=Decimal("0"), ge=0)
    cash_management_rep: Decimal = Field(default=Decimal("0"), ge=0)
    rent_payment_method: str | None = None
    sales_rep_id: str | None = None
    notes: str | None = None

    @field_validator(
        "atm_id",
        "serial_number",
        "location_name",
        "street_address",
        "city",
        "state",
        "zip_code",
        "warehouse_location",
        "platform",
        "platform_switch_date",
        "installed_date",
        "removed_date",
        "rent_payment_method",
        "sales_rep_id",
        "notes",
        mode="before",
    )
    @classmethod
    def _empty_is_none(cls, v: object) -> object:
        return _blank_to_none(v)

    @model_validator(mode="after")
    def _removal_after_install(self) -> ProfileInput:
        if (
            self.installed_date is not None
            and self.removed_date is not None
            and self.removed_date < self.installed_date
        ):
            raise ValueError("removed_date must not be before installed_date")
        return self


class SalesRepInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    email: str | None = None
    commission_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    flat_monthly_fee: Decimal = Field(default=Decimal("0"), ge=0)
    paid_per_machine: bool = False
    active: bool = True


class PersonInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    active: bool = True


class PickupInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    pickup_date: date
    amount: Decimal = Field(gt=0)
    person_id: str | None = None
    atm_profile_id: str | None = None
    atm_id: str | None = None
    city: str | None = None
    notes: str | None = None


class DepositInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    deposit_id: str = Field(min_length=1)
    deposit_date: date
    amount: Decimal = Field(gt=0)
    person_id: str | None = None
    notes: str | None = None


class TickerUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    display_value: str | None = None
    fee_percentage: Decimal = Field(ge=0, le=1)

    @field_validator("display_value", mode="before")
    @classmethod
    def _empty_is_none(cls, v: object) -> object:
        return _blank_to_none(v)


def parse_input[M: BaseModel](model: type[M], data: M | Mapping[str, Any]) -> M:
    """Validate ``data`` against ``model``, translating pydantic errors.

    A missing or blank required field becomes :class:`RequiredFieldError`;
    any other violation becomes :class:`InvalidInputError`.
    """

    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or "input"
        if first["type"] in {"missing", "string_too_short"}:
            raise RequiredFieldError(field) from exc
        raise InvalidInputError(f"{field}: {first['msg']}") from exc


__all__ = [
    "parse_input",
    "ProfileInput",
    "SalesRepInput",
    "PersonInput",
    "PickupInput",
    "DepositInput",
    "TickerUpdate",
]

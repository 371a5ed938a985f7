"""Pydantic models describing create/update payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from petkeeper.domain.model import Gender, PetType


def _reject_blank(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        raise ValueError("must not be blank")
    return value


class CommandModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class AddressData(CommandModel):
    city: str
    kind: str
    street: str
    number: str

    _not_blank = field_validator("city", "kind", "street", "number", mode="before")(
        _reject_blank
    )


class UserData(CommandModel):
    name: str
    first_name: str
    age: int | None = Field(default=None, ge=0, le=150)
    gender: Gender
    address: AddressData

    _not_blank = field_validator("name", "first_name", mode="before")(_reject_blank)


class PetData(CommandModel):
    name: str
    age: int | None = Field(default=None, ge=0, le=200)
    pet_type: PetType
    address: AddressData

    _not_blank = field_validator("name", mode="before")(_reject_blank)

"""Users and pets: mutable records that live at an address."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from petkeeper.domain.model.entity import Entity
from petkeeper.domain.model.enums import EntityType, Gender, PetType

if TYPE_CHECKING:
    from petkeeper.domain.model.address import Address


@dataclass(eq=False, kw_only=True)
class Resident(Entity):
    """Shared behaviour of records that reference an address and can be retired."""

    name: str
    address: Address = field(repr=False)
    age: int | None = None
    deceased: bool = False

    def relocate(self, address: Address) -> None:
        self.address = address

    def mark_deceased(self) -> None:
        """Retire the record. There is no way back."""
        self.deceased = True

    @property
    def is_alive(self) -> bool:
        return not self.deceased

    def lives_with(self, other: Resident) -> bool:
        return self.address.id == other.address.id


@dataclass(eq=False, kw_only=True)
class User(Resident):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.USER

    first_name: str
    gender: Gender


@dataclass(eq=False, kw_only=True)
class Pet(Resident):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.PET

    pet_type: PetType

"""Shared postal addresses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from petkeeper.domain.model.entity import Entity
from petkeeper.domain.model.enums import EntityType
from petkeeper.domain.normalization import AddressKey


@dataclass(eq=False, kw_only=True)
class Address(Entity):
    """A deduplicated address, referenced by users and pets.

    Values are stored already normalized. Addresses are never mutated or deleted
    once persisted; moving a user or pet means pointing it at another address.
    """

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.ADDRESS

    city: str
    kind: str  # road, street, avenue, ...
    street: str
    number: str

    @classmethod
    def from_key(cls, key: AddressKey) -> Address:
        city, kind, street, number = key.require_complete()
        return cls(city=city, kind=kind, street=street, number=number)

    @property
    def key(self) -> AddressKey:
        return AddressKey.from_fields(
            city=self.city, kind=self.kind, street=self.street, number=self.number
        )

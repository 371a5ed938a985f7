"""Public domain model surface."""

from __future__ import annotations

from petkeeper.domain.model.address import Address
from petkeeper.domain.model.associations import Ownership
from petkeeper.domain.model.entity import Entity, new_id
from petkeeper.domain.model.enums import EntityType, Gender, PetType
from petkeeper.domain.model.people import Pet, Resident, User

__all__ = [
    "Address",
    "Entity",
    "EntityType",
    "Gender",
    "Ownership",
    "Pet",
    "PetType",
    "Resident",
    "User",
    "new_id",
]

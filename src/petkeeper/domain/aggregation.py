"""Read-side joins over ownership links."""

from __future__ import annotations

from typing import TYPE_CHECKING

from petkeeper.domain.normalization import normalize_text

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from petkeeper.domain.model import Pet, PetType, User
    from petkeeper.domain.ports import OwnershipRepository


def pets_for(users: Iterable[User], ownerships: OwnershipRepository) -> list[Pet]:
    """Living pets owned by any of ``users``.

    A pet reachable through several owners appears once, at the position of its
    first sighting.
    """

    seen: set[UUID] = set()
    pets: list[Pet] = []
    for user in users:
        for ownership in ownerships.find_by_user(user):
            pet = ownership.pet
            if pet.deceased or pet.id in seen:
                continue
            seen.add(pet.id)
            pets.append(pet)
    return pets


def owners_for(
    pet_type: PetType, city: str, ownerships: OwnershipRepository
) -> Sequence[User]:
    """Living users owning a living pet of ``pet_type`` whose address is in ``city``."""

    normalized_city = normalize_text(city)
    if not normalized_city:
        return []
    return ownerships.find_owners_by_pet_type_and_city(pet_type, normalized_city)

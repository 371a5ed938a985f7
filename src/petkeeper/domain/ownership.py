"""Linking users to the pets they own."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from petkeeper.domain.errors import InvalidRelationError, UniqueViolationError
from petkeeper.domain.model import Ownership

if TYPE_CHECKING:
    from petkeeper.domain.model import Pet, User
    from petkeeper.domain.ports import OwnershipRepository

log = logging.getLogger(__name__)


def check_co_location(user: User, pet: Pet) -> None:
    """Raise ``InvalidRelationError`` unless both records point at the same address."""

    if not user.lives_with(pet):
        raise InvalidRelationError(
            "Co-ownership allowed only for users at the pet's address."
        )


def link_owner(ownerships: OwnershipRepository, user: User, pet: Pet) -> Ownership:
    """Persist the ``(user, pet)`` link, or return the one that already exists.

    Linking twice is a no-op; a concurrent duplicate insert is resolved by reading
    back the winning row.
    """

    check_co_location(user, pet)

    existing = ownerships.find(user, pet)
    if existing is not None:
        log.info("Ownership already exists: user_id=%s pet_id=%s", user.id, pet.id)
        return existing

    ownership = Ownership(user=user, pet=pet)
    try:
        ownerships.add(ownership)
    except UniqueViolationError:
        winner = ownerships.find(user, pet)
        if winner is None:
            raise
        return winner
    return ownership

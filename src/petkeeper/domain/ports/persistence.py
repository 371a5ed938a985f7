"""Ports for persisting domain records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from petkeeper.domain.model import Address, Gender, Ownership, Pet, PetType, User
    from petkeeper.domain.normalization import AddressKey


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent record store."""

    def get(self, entity_id: UUID) -> TEntity | None: ...

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class AddressRepository(Repository["Address"], Protocol):
    """Persistence contract for deduplicated addresses."""

    def find_by_key(self, key: AddressKey) -> Address | None:
        """Return the address whose four parts equal ``key``, ignoring case."""
        ...

    def add(self, entity: Address) -> None:
        """Insert and flush; raise ``UniqueViolationError`` on a duplicate key.

        A failed insert must leave the surrounding unit of work usable so the
        caller can query again.
        """
        ...


@runtime_checkable
class LockableRepository[TEntity](Repository[TEntity], Protocol):
    """Repository whose records can be read under an exclusive lock."""

    def get_locked(self, entity_id: UUID, *, timeout: float) -> TEntity | None:
        """Read and lock a record until the unit of work ends.

        Raises ``StoreBusyError`` when the lock cannot be acquired within ``timeout``
        seconds. Returns ``None`` when the record does not exist.
        """
        ...

    def save(self, entity: TEntity) -> TEntity: ...

    def save_and_flush(self, entity: TEntity) -> TEntity: ...


@runtime_checkable
class UserRepository(LockableRepository["User"], Protocol):
    """Repository contract for users."""

    def find_by_name(self, name: str, first_name: str) -> Sequence[User]: ...

    def find_by_gender_and_city(self, gender: Gender, city: str) -> Sequence[User]: ...


@runtime_checkable
class PetRepository(LockableRepository["Pet"], Protocol):
    """Repository contract for pets."""

    def find_by_type(self, pet_type: PetType) -> Sequence[Pet]: ...

    def find_living_by_city(self, city: str) -> Sequence[Pet]: ...


@runtime_checkable
class OwnershipRepository(Protocol):
    """Repository contract for user/pet links."""

    def add(self, entity: Ownership) -> None:
        """Insert and flush; raise ``UniqueViolationError`` for an existing pair."""
        ...

    def find(self, user: User, pet: Pet) -> Ownership | None: ...

    def find_by_user(self, user: User) -> Sequence[Ownership]: ...

    def find_by_pet(self, pet: Pet) -> Sequence[Ownership]: ...

    def find_owners_by_pet_type_and_city(self, pet_type: PetType, city: str) -> Sequence[User]:
        """Distinct living users linked to a living pet of ``pet_type`` in ``city``."""
        ...

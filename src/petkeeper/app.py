"""Application entry points: create, update, retire, link and query records."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from petkeeper.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from petkeeper.config import get_locking_policy
from petkeeper.domain.addresses import AddressResolver, resolve_address
from petkeeper.domain.aggregation import owners_for, pets_for
from petkeeper.domain.errors import NotFoundError
from petkeeper.domain.locking import LockingUpdateCoordinator
from petkeeper.domain.model import EntityType, Gender, Pet, User
from petkeeper.domain.normalization import normalize_text
from petkeeper.domain.ownership import link_owner

if TYPE_CHECKING:
    from uuid import UUID

    from petkeeper.config import LockingPolicy
    from petkeeper.domain.commands import AddressData, PetData, UserData
    from petkeeper.domain.locking import Mutation
    from petkeeper.domain.model import Address, Ownership, PetType
    from petkeeper.domain.ports import (
        RegistryRepositories,
        RegistryUnitOfWork,
        UnitOfWorkFactory,
    )

log = getLogger(__name__)


def _default_unit_of_work() -> RegistryUnitOfWork:
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork()


def _factory(unit_of_work_factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    return unit_of_work_factory or _default_unit_of_work


def _user_coordinator(
    unit_of_work_factory: UnitOfWorkFactory | None, policy: LockingPolicy | None
) -> LockingUpdateCoordinator[User]:
    return LockingUpdateCoordinator(
        unit_of_work_factory=_factory(unit_of_work_factory),
        select_repository=lambda repositories: repositories.users,
        entity_type=EntityType.USER,
        policy=policy or get_locking_policy(),
    )


def _pet_coordinator(
    unit_of_work_factory: UnitOfWorkFactory | None, policy: LockingPolicy | None
) -> LockingUpdateCoordinator[Pet]:
    return LockingUpdateCoordinator(
        unit_of_work_factory=_factory(unit_of_work_factory),
        select_repository=lambda repositories: repositories.pets,
        entity_type=EntityType.PET,
        policy=policy or get_locking_policy(),
    )


# Addresses -------------------------------------------------------------------


def find_or_create_address(
    data: AddressData, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> Address:
    """Return the shared address matching ``data`` after normalization."""

    return AddressResolver(_factory(unit_of_work_factory)).resolve(data)


# Users -----------------------------------------------------------------------


def create_user(data: UserData, *, unit_of_work_factory: UnitOfWorkFactory | None = None) -> User:
    """Insert a user; the address is created or reused behind the scenes."""

    with _factory(unit_of_work_factory)() as uow:
        address = resolve_address(uow.repositories, data.address)
        user = User(
            name=data.name,
            first_name=data.first_name,
            age=data.age,
            gender=data.gender,
            address=address,
        )
        uow.repositories.users.add(user)
        uow.commit()
    log.info("Created user %s at address %s", user.id, address.id)
    return user


def _apply_user_data(data: UserData) -> Mutation[User]:
    def mutate(user: User, repositories: RegistryRepositories) -> None:
        user.name = data.name
        user.first_name = data.first_name
        user.age = data.age
        user.gender = data.gender
        user.relocate(resolve_address(repositories, data.address))

    return mutate


def update_user(
    user_id: UUID,
    data: UserData,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    policy: LockingPolicy | None = None,
) -> User:
    """Overwrite a user's fields (and address) under an exclusive lock."""

    return _user_coordinator(unit_of_work_factory, policy).update(user_id, _apply_user_data(data))


def mark_user_deceased(
    user_id: UUID,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    policy: LockingPolicy | None = None,
) -> User:
    """Retire a user. Retiring twice is harmless."""

    user = _user_coordinator(unit_of_work_factory, policy).update(
        user_id, lambda record, _: record.mark_deceased()
    )
    log.info("Marked user %s deceased", user_id)
    return user


def get_user(user_id: UUID, *, unit_of_work_factory: UnitOfWorkFactory | None = None) -> User:
    with _factory(unit_of_work_factory)() as uow:
        user = uow.repositories.users.get(user_id)
    if user is None:
        raise NotFoundError(EntityType.USER, user_id)
    return user


def users_by_name(
    name: str, first_name: str, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> list[User]:
    """All users sharing a name; homonyms are told apart by id."""

    with _factory(unit_of_work_factory)() as uow:
        return list(uow.repositories.users.find_by_name(name, first_name))


# Pets ------------------------------------------------------------------------


def create_pet(data: PetData, *, unit_of_work_factory: UnitOfWorkFactory | None = None) -> Pet:
    """Insert a pet; the address is created or reused behind the scenes."""

    with _factory(unit_of_work_factory)() as uow:
        address = resolve_address(uow.repositories, data.address)
        pet = Pet(name=data.name, age=data.age, pet_type=data.pet_type, address=address)
        uow.repositories.pets.add(pet)
        uow.commit()
    log.info("Created pet %s at address %s", pet.id, address.id)
    return pet


def _apply_pet_data(data: PetData) -> Mutation[Pet]:
    def mutate(pet: Pet, repositories: RegistryRepositories) -> None:
        pet.name = data.name
        pet.age = data.age
        pet.pet_type = data.pet_type
        pet.relocate(resolve_address(repositories, data.address))

    return mutate


def update_pet(
    pet_id: UUID,
    data: PetData,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    policy: LockingPolicy | None = None,
) -> Pet:
    """Overwrite a pet's fields (and address) under an exclusive lock."""

    return _pet_coordinator(unit_of_work_factory, policy).update(pet_id, _apply_pet_data(data))


def mark_pet_deceased(
    pet_id: UUID,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    policy: LockingPolicy | None = None,
) -> Pet:
    """Retire a pet. Retiring twice is harmless."""

    pet = _pet_coordinator(unit_of_work_factory, policy).update(
        pet_id, lambda record, _: record.mark_deceased()
    )
    log.info("Marked pet %s deceased", pet_id)
    return pet


def get_pet(pet_id: UUID, *, unit_of_work_factory: UnitOfWorkFactory | None = None) -> Pet:
    with _factory(unit_of_work_factory)() as uow:
        pet = uow.repositories.pets.get(pet_id)
    if pet is None:
        raise NotFoundError(EntityType.PET, pet_id)
    return pet


def pets_by_type(
    pet_type: PetType, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> list[Pet]:
    with _factory(unit_of_work_factory)() as uow:
        return list(uow.repositories.pets.find_by_type(pet_type))


def pets_by_city(city: str, *, unit_of_work_factory: UnitOfWorkFactory | None = None) -> list[Pet]:
    """Living pets whose address is in ``city``."""

    normalized_city = normalize_text(city)
    if not normalized_city:
        return []
    with _factory(unit_of_work_factory)() as uow:
        return list(uow.repositories.pets.find_living_by_city(normalized_city))


# Ownerships ------------------------------------------------------------------


def link_ownership(
    user_id: UUID, pet_id: UUID, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> Ownership:
    """Record that a user owns a pet; both must live at the same address."""

    with _factory(unit_of_work_factory)() as uow:
        user = uow.repositories.users.get(user_id)
        if user is None:
            raise NotFoundError(EntityType.USER, user_id)
        pet = uow.repositories.pets.get(pet_id)
        if pet is None:
            raise NotFoundError(EntityType.PET, pet_id)
        ownership = link_owner(uow.repositories.ownerships, user, pet)
        uow.commit()
    log.info("Linked user %s to pet %s", user_id, pet_id)
    return ownership


def pets_by_owner_name(
    name: str, first_name: str, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> list[Pet]:
    """Living pets of every user called ``first_name name``, each listed once."""

    with _factory(unit_of_work_factory)() as uow:
        repositories = uow.repositories
        return pets_for(repositories.users.find_by_name(name, first_name), repositories.ownerships)


def pets_of_women_in_city(
    city: str, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> list[Pet]:
    normalized_city = normalize_text(city)
    if not normalized_city:
        return []
    with _factory(unit_of_work_factory)() as uow:
        repositories = uow.repositories
        women = repositories.users.find_by_gender_and_city(Gender.FEMALE, normalized_city)
        return pets_for(women, repositories.ownerships)


def owners_by_pet_type_and_city(
    pet_type: PetType, city: str, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> list[User]:
    with _factory(unit_of_work_factory)() as uow:
        return list(owners_for(pet_type, city, uow.repositories.ownerships))

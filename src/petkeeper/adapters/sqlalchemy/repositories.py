"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, cast

from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from petkeeper.adapters.sqlalchemy.mappings import (
    ENTITY_TYPE_BY_CLASS,
    TABLE_BY_CLASS,
    address_table,
    ownership_table,
    pet_table,
    user_table,
)
from petkeeper.domain.errors import StoreBusyError, UniqueViolationError
from petkeeper.domain.model import Address, Entity, Ownership, Pet, User

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy import Table
    from sqlalchemy.orm import Session

    from petkeeper.domain.model import Gender, PetType
    from petkeeper.domain.normalization import AddressKey

log = logging.getLogger(__name__)

# lock_not_available, deadlock_detected, serialization_failure
_BUSY_SQLSTATES = frozenset({"55P03", "40P01", "40001"})
# ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
_BUSY_MYSQL_CODES = frozenset({1205, 1213})
_BUSY_MESSAGES = (
    "database is locked",
    "database table is locked",
    "lock timeout",
    "lock wait timeout",
    "could not obtain lock",
)
_UNIQUE_SQLSTATE = "23505"
_UNIQUE_MYSQL_CODE = 1062

# execution option read by the SQLite begin hook in unit_of_work.build_engine
SQLITE_LOCK_TIMEOUT_OPTION = "petkeeper_lock_timeout"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _mysql_code(exc: DBAPIError) -> object:
    args = getattr(exc.orig, "args", ())
    return args[0] if args else None


def is_lock_failure(exc: DBAPIError) -> bool:
    """Whether ``exc`` means the store could not grant a lock in time."""

    if _sqlstate(exc) in _BUSY_SQLSTATES or _mysql_code(exc) in _BUSY_MYSQL_CODES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _BUSY_MESSAGES)


def is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == _UNIQUE_SQLSTATE or _mysql_code(exc) == _UNIQUE_MYSQL_CODE:
        return True
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


class SqlAlchemyRepository[TEntity: Entity]:
    """Shared helpers for repositories keyed by a UUID primary key."""

    def __init__(self, session: Session, entity_cls: type[TEntity]) -> None:
        self.session = session
        self._entity_cls = entity_cls
        self._table: Table = TABLE_BY_CLASS[entity_cls]
        self._entity_type = ENTITY_TYPE_BY_CLASS[entity_cls]

    def get(self, entity_id: UUID) -> TEntity | None:
        return self.session.get(self._entity_cls, entity_id)

    def add(self, entity: TEntity) -> None:
        self.session.add(entity)

    def _insert_unique(self, entity: TEntity) -> None:
        # the savepoint keeps the outer transaction usable after a collision
        try:
            with self.session.begin_nested():
                self.session.add(entity)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise UniqueViolationError(
                f"{self._entity_type} {entity.id} collides with an existing row"
            ) from exc
        except OperationalError as exc:
            if not is_lock_failure(exc):
                raise
            raise StoreBusyError(f"Could not write {self._entity_type} {entity.id}") from exc


class SqlAlchemyLockableRepository[TEntity: Entity](SqlAlchemyRepository[TEntity]):
    """Repository whose rows can be read with ``SELECT ... FOR UPDATE``."""

    def get_locked(self, entity_id: UUID, *, timeout: float) -> TEntity | None:
        stmt = (
            select(self._entity_cls)
            .where(self._table.c.id == entity_id)
            .with_for_update(of=self._table)
        )
        try:
            self._apply_lock_timeout(timeout)
            return self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            if not is_lock_failure(exc):
                raise
            raise StoreBusyError(f"Could not lock {self._entity_type} {entity_id}") from exc

    def save(self, entity: TEntity) -> TEntity:
        self.session.add(entity)
        return entity

    def save_and_flush(self, entity: TEntity) -> TEntity:
        self.session.add(entity)
        try:
            self.session.flush()
        except OperationalError as exc:
            if not is_lock_failure(exc):
                raise
            raise StoreBusyError(f"Could not write {self._entity_type} {entity.id}") from exc
        return entity

    def _apply_lock_timeout(self, timeout: float) -> None:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            # transaction-scoped, like SET LOCAL
            self.session.execute(
                text("SELECT set_config('lock_timeout', :value, true)"),
                {"value": f"{max(1, int(timeout * 1000))}ms"},
            )
        elif dialect in {"mysql", "mariadb"}:
            # session-scoped; build_engine resets it when the connection is checked in
            self.session.execute(
                text("SET SESSION innodb_lock_wait_timeout = :seconds"),
                {"seconds": max(1, math.ceil(timeout))},
            )
        elif dialect == "sqlite" and not self.session.in_transaction():
            # BEGIN IMMEDIATE takes the writer lock as the connection is procured;
            # an open transaction already holds it
            self.session.connection(execution_options={SQLITE_LOCK_TIMEOUT_OPTION: timeout})


class SqlAlchemyAddressRepository(SqlAlchemyRepository[Address]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Address)

    def find_by_key(self, key: AddressKey) -> Address | None:
        stmt = (
            select(Address)
            .where(func.lower(address_table.c.city) == key.city)
            .where(func.lower(address_table.c.kind) == key.kind)
            .where(func.lower(address_table.c.street) == key.street)
            .where(func.lower(address_table.c.number) == key.number)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def add(self, entity: Address) -> None:
        self._insert_unique(entity)


class SqlAlchemyUserRepository(SqlAlchemyLockableRepository[User]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, User)

    def find_by_name(self, name: str, first_name: str) -> Sequence[User]:
        stmt = (
            select(User)
            .where(user_table.c.name == name)
            .where(user_table.c.first_name == first_name)
        )
        return self.session.execute(stmt).scalars().all()

    def find_by_gender_and_city(self, gender: Gender, city: str) -> Sequence[User]:
        stmt = (
            select(User)
            .join(address_table, address_table.c.id == user_table.c.address_id)
            .where(user_table.c.gender == gender)
            .where(func.lower(address_table.c.city) == city)
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyPetRepository(SqlAlchemyLockableRepository[Pet]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Pet)

    def find_by_type(self, pet_type: PetType) -> Sequence[Pet]:
        stmt = select(Pet).where(pet_table.c.pet_type == pet_type)
        return self.session.execute(stmt).scalars().all()

    def find_living_by_city(self, city: str) -> Sequence[Pet]:
        stmt = (
            select(Pet)
            .join(address_table, address_table.c.id == pet_table.c.address_id)
            .where(func.lower(address_table.c.city) == city)
            .where(pet_table.c.deceased.is_(False))
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyOwnershipRepository(SqlAlchemyRepository[Ownership]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Ownership)

    def add(self, entity: Ownership) -> None:
        self._insert_unique(entity)

    def find(self, user: User, pet: Pet) -> Ownership | None:
        stmt = (
            select(Ownership)
            .where(ownership_table.c.user_id == user.id)
            .where(ownership_table.c.pet_id == pet.id)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_user(self, user: User) -> Sequence[Ownership]:
        stmt = (
            select(Ownership)
            .where(ownership_table.c.user_id == user.id)
            .order_by(ownership_table.c.created_at, ownership_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def find_by_pet(self, pet: Pet) -> Sequence[Ownership]:
        stmt = (
            select(Ownership)
            .where(ownership_table.c.pet_id == pet.id)
            .order_by(ownership_table.c.created_at, ownership_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def find_owners_by_pet_type_and_city(self, pet_type: PetType, city: str) -> Sequence[User]:
        owner_ids = (
            select(ownership_table.c.user_id)
            .join(pet_table, pet_table.c.id == ownership_table.c.pet_id)
            .join(address_table, address_table.c.id == pet_table.c.address_id)
            .where(pet_table.c.pet_type == pet_type)
            .where(func.lower(address_table.c.city) == city)
            .where(pet_table.c.deceased.is_(False))
        )
        stmt = (
            select(User)
            .where(user_table.c.id.in_(owner_ids))
            .where(user_table.c.deceased.is_(False))
            .order_by(user_table.c.name, user_table.c.first_name, user_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()


if TYPE_CHECKING:
    from petkeeper.domain.ports.persistence import (
        AddressRepository,
        OwnershipRepository,
        PetRepository,
        UserRepository,
    )

    _session_stub = cast("Session", object())
    _address_repo: AddressRepository = SqlAlchemyAddressRepository(_session_stub)
    _user_repo: UserRepository = SqlAlchemyUserRepository(_session_stub)
    _pet_repo: PetRepository = SqlAlchemyPetRepository(_session_stub)
    _ownership_repo: OwnershipRepository = SqlAlchemyOwnershipRepository(_session_stub)

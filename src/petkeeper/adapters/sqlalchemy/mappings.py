"""SQLAlchemy mapping metadata for the petkeeper domain model."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Final

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers, relationship

from petkeeper.domain.model import Address, EntityType, Gender, Ownership, Pet, PetType, User

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from petkeeper.domain.model import Entity

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Core tables -----------------------------------------------------------------

address_table = Table(
    "address",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("city", String, nullable=False),
    Column("kind", String, nullable=False),
    Column("street", String, nullable=False),
    Column("number", String, nullable=False),
    UniqueConstraint("city", "kind", "street", "number", name="uq_address_key"),
)

user_table = Table(
    "users",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("first_name", String, nullable=False),
    Column("age", Integer, nullable=True),
    Column("gender", Enum(Gender, native_enum=False), nullable=False),
    Column("address_id", UUIDColumnType, ForeignKey("address.id"), nullable=False),
    Column("is_deceased", Boolean, key="deceased", nullable=False, default=False),
    Index("ix_users_name_first_name", "name", "first_name"),
)

pet_table = Table(
    "pet",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("age", Integer, nullable=True),
    Column("pet_type", Enum(PetType, native_enum=False), nullable=False),
    Column("address_id", UUIDColumnType, ForeignKey("address.id"), nullable=False),
    Column("is_deceased", Boolean, key="deceased", nullable=False, default=False),
    Index("ix_pet_pet_type", "pet_type"),
)

ownership_table = Table(
    "user_pet_ownership",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "user_id", UUIDColumnType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    ),
    Column("pet_id", UUIDColumnType, ForeignKey("pet.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("user_id", "pet_id", name="uq_user_pet_ownership_pair"),
    Index("ix_user_pet_ownership_pet_id", "pet_id"),
)

TABLE_BY_CLASS: Final[dict[type[Entity], Table]] = {
    Address: address_table,
    User: user_table,
    Pet: pet_table,
    Ownership: ownership_table,
}

ENTITY_TYPE_BY_CLASS: Final[dict[type[Entity], EntityType]] = {
    Address: EntityType.ADDRESS,
    User: EntityType.USER,
    Pet: EntityType.PET,
    Ownership: EntityType.OWNERSHIP,
}


def _address_relationship() -> orm.RelationshipProperty[Address]:
    # many-to-one on a non-null FK: inner join keeps FOR UPDATE legal on PostgreSQL
    return relationship(Address, lazy="joined", innerjoin=True)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Address, address_table)

    mapper_registry.map_imperatively(
        User,
        user_table,
        properties={"address": _address_relationship()},
    )

    mapper_registry.map_imperatively(
        Pet,
        pet_table,
        properties={"address": _address_relationship()},
    )

    mapper_registry.map_imperatively(
        Ownership,
        ownership_table,
        properties={
            "user": relationship(User, lazy="joined", innerjoin=True),
            "pet": relationship(Pet, lazy="joined", innerjoin=True),
        },
    )

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)

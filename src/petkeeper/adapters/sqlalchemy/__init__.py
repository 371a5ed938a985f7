"""SQLAlchemy adapter package for petkeeper."""

from __future__ import annotations

from .mappings import (
    ENTITY_TYPE_BY_CLASS,
    TABLE_BY_CLASS,
    create_all_tables,
    mapper_registry,
    start_mappers,
)
from .repositories import (
    SqlAlchemyAddressRepository,
    SqlAlchemyOwnershipRepository,
    SqlAlchemyPetRepository,
    SqlAlchemyUserRepository,
)
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    build_engine,
    shutdown,
    startup,
)

__all__ = [
    "ENTITY_TYPE_BY_CLASS",
    "TABLE_BY_CLASS",
    "SqlAlchemyAddressRepository",
    "SqlAlchemyOwnershipRepository",
    "SqlAlchemyPetRepository",
    "SqlAlchemyUnitOfWork",
    "SqlAlchemyUserRepository",
    "StartupError",
    "build_engine",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]

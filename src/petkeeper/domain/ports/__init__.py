"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    AddressRepository,
    LockableRepository,
    OwnershipRepository,
    PetRepository,
    Repository,
    UserRepository,
)
from .unit_of_work import (
    RegistryRepositories,
    RegistryUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
    UnitOfWorkFactory,
)

__all__ = [
    "AddressRepository",
    "LockableRepository",
    "OwnershipRepository",
    "PetRepository",
    "RegistryRepositories",
    "RegistryUnitOfWork",
    "Repository",
    "RepositoryCollection",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "UserRepository",
]

"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from petkeeper.domain.ports.persistence import (
        AddressRepository,
        OwnershipRepository,
        PetRepository,
        UserRepository,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection.

    One unit of work is one transaction; locks taken through it are released when
    it commits or rolls back.
    """

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class RegistryRepositories(RepositoryCollection):
    """Repositories for addresses, users, pets and their ownership links."""

    addresses: AddressRepository
    users: UserRepository
    pets: PetRepository
    ownerships: OwnershipRepository


type RegistryUnitOfWork = UnitOfWork[RegistryRepositories]
type UnitOfWorkFactory = Callable[[], RegistryUnitOfWork]

"""Error taxonomy shared by the domain services and the storage adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from petkeeper.domain.model import EntityType


class RegistryError(Exception):
    """Base class for every error raised on purpose by petkeeper."""


class NotFoundError(RegistryError, LookupError):
    """Raised when a referenced record does not exist. Never retried."""

    def __init__(self, entity_type: EntityType, entity_id: UUID) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.value.capitalize()} not found: {entity_id}")


class ConflictError(RegistryError):
    """Raised when contention outlasts the retry budget; the caller may try again."""


class InvalidRelationError(RegistryError, ValueError):
    """Raised when a link would violate a business invariant."""


class InvalidAddressError(RegistryError, ValueError):
    """Raised when address input cannot form a complete key."""


# Signals raised by storage adapters -------------------------------------------


class StoreBusyError(RegistryError):
    """The store could not grant a lock in time (busy, timeout, deadlock victim)."""


class UniqueViolationError(RegistryError):
    """An insert collided with an existing row on a unique key."""

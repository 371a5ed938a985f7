"""Find-or-create resolution of shared addresses.

Responsibilities:
- normalize raw address fields into an ``AddressKey``
- return the stored address for that key, or insert one
- recover from the insert race where a concurrent caller stored the same key
  between our lookup and our insert

The lookup and the insert share the caller's unit of work, so both happen in one
transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from petkeeper.domain.errors import UniqueViolationError
from petkeeper.domain.model import Address
from petkeeper.domain.normalization import AddressKey

if TYPE_CHECKING:
    from petkeeper.domain.ports import RegistryRepositories, UnitOfWorkFactory

log = logging.getLogger(__name__)


class AddressFields(Protocol):
    """Raw, un-normalized address input. Any part may be absent."""

    @property
    def city(self) -> str | None: ...

    @property
    def kind(self) -> str | None: ...

    @property
    def street(self) -> str | None: ...

    @property
    def number(self) -> str | None: ...


def address_key(data: AddressFields) -> AddressKey:
    key = AddressKey.from_fields(
        city=data.city, kind=data.kind, street=data.street, number=data.number
    )
    key.require_complete()
    return key


def resolve_address(repositories: RegistryRepositories, data: AddressFields) -> Address:
    """Return the canonical address for ``data``, creating it at most once."""

    key = address_key(data)
    addresses = repositories.addresses

    found = addresses.find_by_key(key)
    if found is not None:
        return found

    candidate = Address.from_key(key)
    try:
        addresses.add(candidate)
    except UniqueViolationError:
        winner = addresses.find_by_key(key)
        if winner is None:
            raise
        log.info("Address insert lost a race, reusing address_id=%s key=%s", winner.id, key)
        return winner

    log.debug("Created address_id=%s key=%s", candidate.id, key)
    return candidate


@dataclass(slots=True)
class AddressResolver:
    """Resolve addresses in a dedicated unit of work and commit the result."""

    unit_of_work_factory: UnitOfWorkFactory

    def resolve(self, data: AddressFields) -> Address:
        with self.unit_of_work_factory() as uow:
            address = resolve_address(uow.repositories, data)
            uow.commit()
            return address

from __future__ import annotations

import pytest

from petkeeper.domain.errors import InvalidAddressError
from petkeeper.domain.model import Address, EntityType, Ownership
from petkeeper.domain.normalization import AddressKey
from tests.helpers.registry import make_address, make_pet, make_user


def test_entities_get_an_id_on_creation() -> None:
    first = make_user()
    second = make_user()

    assert first.id != second.id
    assert first.entity_type is EntityType.USER
    assert make_pet().entity_type is EntityType.PET


def test_address_from_key_stores_normalized_parts() -> None:
    key = AddressKey.from_fields(city=" Lyon ", kind="RUE", street="de la  Paix", number="10")

    address = Address.from_key(key)

    assert (address.city, address.kind, address.street, address.number) == (
        "lyon",
        "rue",
        "de la paix",
        "10",
    )
    assert address.key == key
    assert address.entity_type is EntityType.ADDRESS


def test_address_from_incomplete_key_is_rejected() -> None:
    key = AddressKey.from_fields(city="Lyon", kind="rue", street="Paix", number=None)

    with pytest.raises(InvalidAddressError, match="missing: number"):
        Address.from_key(key)


def test_mark_deceased_is_one_way_and_idempotent() -> None:
    pet = make_pet()
    assert pet.is_alive

    pet.mark_deceased()
    pet.mark_deceased()

    assert pet.deceased
    assert not pet.is_alive


def test_lives_with_compares_address_identity() -> None:
    home = make_address()
    lookalike = make_address()
    user = make_user(address=home)

    assert user.lives_with(make_pet(address=home))
    assert not user.lives_with(make_pet(address=lookalike))


def test_relocate_points_at_another_address() -> None:
    user = make_user()
    new_home = make_address(number="12")

    user.relocate(new_home)

    assert user.address is new_home


def test_ownership_records_creation_time() -> None:
    address = make_address()
    ownership = Ownership(user=make_user(address=address), pet=make_pet(address=address))

    assert ownership.created_at.tzinfo is not None
    assert ownership.entity_type is EntityType.OWNERSHIP

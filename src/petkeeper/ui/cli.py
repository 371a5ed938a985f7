# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv
from pydantic import ValidationError

from petkeeper.app import (
    create_pet,
    create_user,
    find_or_create_address,
    link_ownership,
    mark_pet_deceased,
    mark_user_deceased,
    owners_by_pet_type_and_city,
    pets_by_city,
    pets_by_owner_name,
    pets_by_type,
    pets_of_women_in_city,
    update_pet,
    update_user,
    users_by_name,
)
from petkeeper.config import configure_logging
from petkeeper.domain.commands import AddressData, PetData, UserData
from petkeeper.domain.errors import ConflictError, NotFoundError
from petkeeper.domain.model import Gender, PetType

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from types import FrameType

    from petkeeper.domain.model import Address, Pet, User

log = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INVALID = 2
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4


def _add_address_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--city", type=str, required=True, help="City of the address")
    parser.add_argument(
        "--kind", type=str, required=True, help="Kind of way: road, street, avenue, ..."
    )
    parser.add_argument("--street", type=str, required=True, help="Name of the way")
    parser.add_argument("--number", type=str, required=True, help="House number, e.g. 10 or 4b")


def _add_user_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", type=str, required=True, help="Family name")
    parser.add_argument("--first-name", type=str, required=True, help="First name")
    parser.add_argument("--age", type=int, help="Optional age (0-150)")
    parser.add_argument(
        "--gender", type=Gender, choices=list(Gender), required=True, help="Gender"
    )
    _add_address_arguments(parser)


def _add_pet_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", type=str, required=True, help="Pet name")
    parser.add_argument("--age", type=int, help="Optional age (0-200)")
    parser.add_argument(
        "--type", dest="pet_type", type=PetType, choices=list(PetType), required=True
    )
    _add_address_arguments(parser)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage users, pets and their addresses")
    subparsers = parser.add_subparsers(dest="command", required=True)

    address = subparsers.add_parser("address", help="Address commands")
    address_sub = address.add_subparsers(dest="address_command", required=True)
    _add_address_arguments(
        address_sub.add_parser("resolve", help="Find or create a deduplicated address")
    )

    user = subparsers.add_parser("user", help="User management commands")
    user_sub = user.add_subparsers(dest="user_command", required=True)
    _add_user_arguments(user_sub.add_parser("create", help="Create a user"))
    user_update = user_sub.add_parser("update", help="Update a user under lock")
    user_update.add_argument("user_id", type=str, help="Id of the user to update")
    _add_user_arguments(user_update)
    user_retire = user_sub.add_parser("retire", help="Mark a user deceased")
    user_retire.add_argument("user_id", type=str, help="Id of the user to retire")
    user_find = user_sub.add_parser("find", help="List users by name (homonyms included)")
    user_find.add_argument("--name", type=str, required=True)
    user_find.add_argument("--first-name", type=str, required=True)

    pet = subparsers.add_parser("pet", help="Pet management commands")
    pet_sub = pet.add_subparsers(dest="pet_command", required=True)
    _add_pet_arguments(pet_sub.add_parser("create", help="Create a pet"))
    pet_update = pet_sub.add_parser("update", help="Update a pet under lock")
    pet_update.add_argument("pet_id", type=str, help="Id of the pet to update")
    _add_pet_arguments(pet_update)
    pet_retire = pet_sub.add_parser("retire", help="Mark a pet deceased")
    pet_retire.add_argument("pet_id", type=str, help="Id of the pet to retire")

    ownership = subparsers.add_parser("ownership", help="Ownership commands")
    ownership_sub = ownership.add_subparsers(dest="ownership_command", required=True)
    link = ownership_sub.add_parser("link", help="Link a user to a pet at the same address")
    link.add_argument("--user-id", type=str, required=True)
    link.add_argument("--pet-id", type=str, required=True)

    query = subparsers.add_parser("query", help="Read-only queries")
    query_sub = query.add_subparsers(dest="query_command", required=True)
    by_owner = query_sub.add_parser("pets-by-owner", help="Living pets of users with a name")
    by_owner.add_argument("--name", type=str, required=True)
    by_owner.add_argument("--first-name", type=str, required=True)
    by_city = query_sub.add_parser("pets-by-city", help="Living pets in a city")
    by_city.add_argument("--city", type=str, required=True)
    by_type = query_sub.add_parser("pets-by-type", help="Pets of a type")
    by_type.add_argument(
        "--type", dest="pet_type", type=PetType, choices=list(PetType), required=True
    )
    owners = query_sub.add_parser("owners", help="Living owners of a pet type in a city")
    owners.add_argument(
        "--pet-type", type=PetType, choices=list(PetType), required=True
    )
    owners.add_argument("--city", type=str, required=True)
    women = query_sub.add_parser("pets-of-women", help="Living pets of women in a city")
    women.add_argument("--city", type=str, required=True)

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _address_data(args: argparse.Namespace) -> AddressData:
    return AddressData(city=args.city, kind=args.kind, street=args.street, number=args.number)


def _user_data(args: argparse.Namespace) -> UserData:
    return UserData(
        name=args.name,
        first_name=args.first_name,
        age=args.age,
        gender=args.gender,
        address=_address_data(args),
    )


def _pet_data(args: argparse.Namespace) -> PetData:
    return PetData(
        name=args.name, age=args.age, pet_type=args.pet_type, address=_address_data(args)
    )


def format_address(address: Address) -> str:
    return f"{address.id}  {address.number} {address.street} {address.kind}, {address.city}"


def format_user(user: User) -> str:
    status = " (deceased)" if user.deceased else ""
    age = "?" if user.age is None else user.age
    return f"{user.id}  {user.first_name} {user.name}, {age}, {user.gender}{status}"


def format_pet(pet: Pet) -> str:
    status = " (deceased)" if pet.deceased else ""
    age = "?" if pet.age is None else pet.age
    return f"{pet.id}  {pet.name}, {age}, {pet.pet_type}{status}"


def _print_all[T](rows: Iterable[T], formatter: Callable[[T], str]) -> None:
    for row in rows:
        print(formatter(row))


def _run_user(args: argparse.Namespace) -> None:
    if args.user_command == "create":
        print(format_user(create_user(_user_data(args))))
    elif args.user_command == "update":
        print(format_user(update_user(_parse_uuid(args.user_id), _user_data(args))))
    elif args.user_command == "retire":
        print(format_user(mark_user_deceased(_parse_uuid(args.user_id))))
    elif args.user_command == "find":
        _print_all(users_by_name(args.name, args.first_name), format_user)


def _run_pet(args: argparse.Namespace) -> None:
    if args.pet_command == "create":
        print(format_pet(create_pet(_pet_data(args))))
    elif args.pet_command == "update":
        print(format_pet(update_pet(_parse_uuid(args.pet_id), _pet_data(args))))
    elif args.pet_command == "retire":
        print(format_pet(mark_pet_deceased(_parse_uuid(args.pet_id))))


def _run_query(args: argparse.Namespace) -> None:
    if args.query_command == "pets-by-owner":
        _print_all(pets_by_owner_name(args.name, args.first_name), format_pet)
    elif args.query_command == "pets-by-city":
        _print_all(pets_by_city(args.city), format_pet)
    elif args.query_command == "pets-by-type":
        _print_all(pets_by_type(args.pet_type), format_pet)
    elif args.query_command == "owners":
        _print_all(owners_by_pet_type_and_city(args.pet_type, args.city), format_user)
    elif args.query_command == "pets-of-women":
        _print_all(pets_of_women_in_city(args.city), format_pet)


def run(args: argparse.Namespace) -> None:
    if args.command == "address":
        print(format_address(find_or_create_address(_address_data(args))))
    elif args.command == "user":
        _run_user(args)
    elif args.command == "pet":
        _run_pet(args)
    elif args.command == "ownership":
        ownership = link_ownership(_parse_uuid(args.user_id), _parse_uuid(args.pet_id))
        log.info("Created ownership %s", ownership.id)
    elif args.command == "query":
        _run_query(args)
    else:
        raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)

    try:
        run(parsed_args)
    except (ValidationError, ValueError):
        log.exception("Invalid input")
        sys.exit(EXIT_INVALID)
    except NotFoundError as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(EXIT_NOT_FOUND)
    except ConflictError as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(EXIT_CONFLICT)
    except Exception:
        log.exception("Fatal error")
        sys.exit(EXIT_FAILURE)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def entrypoint() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    entrypoint()

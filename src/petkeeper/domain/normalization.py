"""Canonical comparison keys for free-form text fields.

Responsibilities:
- trim, collapse whitespace runs and case-fold user input
- keep "absent" (``None``) distinct from a present empty string
- build the composite key that makes an address unique

No persistence or logging happens here.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from petkeeper.domain.errors import InvalidAddressError

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_text(value: str | None) -> str | None:
    """Return the canonical form of ``value``.

    ``None`` is the absent sentinel and is returned unchanged, so two absent
    fields compare equal while an absent field never matches ``""``.
    """

    if value is None:
        return None
    return _WHITESPACE_RUN.sub(" ", value.strip()).casefold()


class AddressKey(NamedTuple):
    """Normalized ``(city, kind, street, number)`` tuple identifying an address."""

    city: str | None
    kind: str | None
    street: str | None
    number: str | None

    @classmethod
    def from_fields(
        cls,
        *,
        city: str | None,
        kind: str | None,
        street: str | None,
        number: str | None,
    ) -> AddressKey:
        return cls(
            city=normalize_text(city),
            kind=normalize_text(kind),
            street=normalize_text(street),
            number=normalize_text(number),
        )

    @property
    def missing_fields(self) -> tuple[str, ...]:
        return tuple(name for name, value in zip(self._fields, self, strict=True) if not value)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    def require_complete(self) -> tuple[str, str, str, str]:
        missing = self.missing_fields
        if missing:
            raise InvalidAddressError(f"Incomplete address, missing: {', '.join(missing)}")
        # every part is a non-empty string past this point
        return (str(self.city), str(self.kind), str(self.street), str(self.number))

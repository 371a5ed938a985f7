"""Association entities linking users and pets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, ClassVar

from petkeeper.domain.model.entity import Entity
from petkeeper.domain.model.enums import EntityType

if TYPE_CHECKING:
    from petkeeper.domain.model.people import Pet, User


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class Ownership(Entity):
    """A user owning (or co-owning) a pet. Created once, never mutated."""

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.OWNERSHIP

    user: User = field(repr=False)
    pet: Pet = field(repr=False)
    created_at: datetime = field(default_factory=_utcnow)

"""Pessimistic read-mutate-persist with bounded retry.

Each attempt runs in its own unit of work:

1. lock the record (``get_locked``) with the policy's per-attempt timeout
2. apply the caller's mutation to the locked copy
3. ``save_and_flush`` and commit, which releases the lock

``StoreBusyError`` is the only transient signal. It rolls the attempt back, sleeps
on an exponential schedule and starts over with a fresh lock, never replaying a
stale read. A missing record fails at once with ``NotFoundError``; running out of
attempts fails with ``ConflictError``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from petkeeper.config import LockingPolicy
from petkeeper.domain.errors import ConflictError, NotFoundError, StoreBusyError

if TYPE_CHECKING:
    from uuid import UUID

    from petkeeper.domain.model import EntityType
    from petkeeper.domain.ports import (
        LockableRepository,
        RegistryRepositories,
        UnitOfWorkFactory,
    )

log = logging.getLogger(__name__)

type Mutation[T] = Callable[[T, RegistryRepositories], None]
type RepositorySelector[T] = Callable[[RegistryRepositories], LockableRepository[T]]


@dataclass(kw_only=True)
class LockingUpdateCoordinator[T]:
    """Serialize mutations of one record type through an exclusive row lock."""

    unit_of_work_factory: UnitOfWorkFactory
    select_repository: RepositorySelector[T]
    entity_type: EntityType
    policy: LockingPolicy = field(default_factory=LockingPolicy)
    sleep: Callable[[float], None] = time.sleep

    def update(self, record_id: UUID, mutate: Mutation[T]) -> T:
        """Apply ``mutate`` to the latest committed state of ``record_id``.

        ``mutate`` receives the locked record and the repositories of the same
        transaction; it must not keep a reference to the record once it returns.
        """

        last_busy: StoreBusyError | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                return self._attempt(record_id, mutate)
            except StoreBusyError as exc:
                last_busy = exc
                if attempt == self.policy.max_attempts:
                    break
                delay = self.policy.backoff(attempt)
                log.warning(
                    "Lock busy for %s_id=%s (attempt %s/%s), retrying in %.3fs",
                    self.entity_type,
                    record_id,
                    attempt,
                    self.policy.max_attempts,
                    delay,
                )
                self.sleep(delay)

        log.warning(
            "Giving up on %s_id=%s after %s attempts",
            self.entity_type,
            record_id,
            self.policy.max_attempts,
        )
        raise ConflictError(
            f"Conflict: {self.entity_type} {record_id} is busy, please retry."
        ) from last_busy

    def _attempt(self, record_id: UUID, mutate: Mutation[T]) -> T:
        with self.unit_of_work_factory() as uow:
            repository = self.select_repository(uow.repositories)
            record = repository.get_locked(record_id, timeout=self.policy.lock_timeout)
            if record is None:
                raise NotFoundError(self.entity_type, record_id)
            mutate(record, uow.repositories)
            saved = repository.save_and_flush(record)
            uow.commit()
            return saved

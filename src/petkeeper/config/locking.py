"""Lock acquisition and retry policy for record updates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .env import optional_env_var
from .errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterator

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 0.05
DEFAULT_MULTIPLIER = 2.0
DEFAULT_LOCK_TIMEOUT = 5.0


@dataclass(frozen=True, slots=True)
class LockingPolicy:
    """Bounded retry schedule for pessimistic updates.

    ``lock_timeout`` is the wait per attempt in seconds; the delay before attempt
    ``n + 1`` is ``initial_delay * multiplier ** (n - 1)``.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    multiplier: float = DEFAULT_MULTIPLIER
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.lock_timeout < 0:
            raise ConfigurationError("delays and timeouts must be non-negative")
        if self.multiplier < 1:
            raise ConfigurationError("multiplier must be >= 1")

    def backoff(self, attempt: int) -> float:
        """Return the sleep before the attempt following ``attempt`` (1-based)."""
        return self.initial_delay * self.multiplier ** (attempt - 1)

    def delays(self) -> Iterator[float]:
        for attempt in range(1, self.max_attempts):
            yield self.backoff(attempt)

    def worst_case_seconds(self) -> float:
        return self.max_attempts * self.lock_timeout + sum(self.delays())


def get_locking_policy() -> LockingPolicy:
    return LockingPolicy(
        max_attempts=optional_env_var(
            "PETKEEPER_LOCK_MAX_ATTEMPTS", int, DEFAULT_MAX_ATTEMPTS
        ),
        initial_delay=optional_env_var(
            "PETKEEPER_LOCK_INITIAL_DELAY", float, DEFAULT_INITIAL_DELAY
        ),
        multiplier=optional_env_var("PETKEEPER_LOCK_MULTIPLIER", float, DEFAULT_MULTIPLIER),
        lock_timeout=optional_env_var("PETKEEPER_LOCK_TIMEOUT", float, DEFAULT_LOCK_TIMEOUT),
    )

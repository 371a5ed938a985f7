from __future__ import annotations

import pytest

from petkeeper.config import ConfigurationError, LockingPolicy, get_locking_policy

LOCK_VARS = (
    "PETKEEPER_LOCK_MAX_ATTEMPTS",
    "PETKEEPER_LOCK_INITIAL_DELAY",
    "PETKEEPER_LOCK_MULTIPLIER",
    "PETKEEPER_LOCK_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clear_lock_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in LOCK_VARS:
        monkeypatch.delenv(name, raising=False)


def test_default_policy() -> None:
    policy = get_locking_policy()

    assert policy == LockingPolicy(
        max_attempts=3, initial_delay=0.05, multiplier=2.0, lock_timeout=5.0
    )


def test_backoff_schedule_is_exponential() -> None:
    policy = LockingPolicy()

    assert list(policy.delays()) == pytest.approx([0.05, 0.1])
    assert policy.backoff(3) == pytest.approx(0.2)


def test_worst_case_covers_every_wait() -> None:
    policy = LockingPolicy()

    assert policy.worst_case_seconds() == pytest.approx(3 * 5.0 + 0.05 + 0.1)


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PETKEEPER_LOCK_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("PETKEEPER_LOCK_INITIAL_DELAY", "0.2")
    monkeypatch.setenv("PETKEEPER_LOCK_MULTIPLIER", "3")
    monkeypatch.setenv("PETKEEPER_LOCK_TIMEOUT", "1.5")

    policy = get_locking_policy()

    assert policy.max_attempts == 5
    assert policy.initial_delay == pytest.approx(0.2)
    assert policy.multiplier == pytest.approx(3.0)
    assert policy.lock_timeout == pytest.approx(1.5)


def test_unparseable_override_is_a_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PETKEEPER_LOCK_MAX_ATTEMPTS", "three")

    with pytest.raises(ConfigurationError, match="PETKEEPER_LOCK_MAX_ATTEMPTS"):
        get_locking_policy()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"initial_delay": -0.1},
        {"lock_timeout": -1.0},
        {"multiplier": 0.5},
    ],
)
def test_invalid_policy_values_are_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ConfigurationError):
        LockingPolicy(**kwargs)  # type: ignore[arg-type]

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import pytest

from petkeeper.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    build_engine,
    configured_engine,
    is_started,
    reset_lock_wait_timeout,
    shutdown,
    startup,
)
from petkeeper.app import create_user, find_or_create_address, get_user
from petkeeper.config import LockingPolicy
from petkeeper.domain.errors import ConflictError
from petkeeper.domain.locking import LockingUpdateCoordinator
from petkeeper.domain.model import EntityType, User
from tests.helpers.registry import make_address_data, make_user, make_user_data

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from petkeeper.domain.ports import RegistryRepositories


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def _increment_age(user: User, _: RegistryRepositories) -> None:
    user.age = (user.age or 0) + 1


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    assert not is_started()
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = build_engine("sqlite+pysqlite:///:memory:")
    engine_b = build_engine("sqlite+pysqlite:///:memory:")

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b


def test_startup_from_uri_creates_tables(tmp_path: Path) -> None:
    startup(database_uri=f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.users.find_by_name("Nobody", "Here") == []


def test_repositories_require_an_open_unit_of_work(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_unit_of_work_commits_and_rolls_back(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    kept = make_user(first_name="Kept")
    dropped = make_user(first_name="Dropped", address=kept.address)

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.users.add(kept)
        uow.commit()

    with pytest.raises(RuntimeError), SqlAlchemyUnitOfWork() as uow:
        uow.repositories.users.add(dropped)
        raise RuntimeError("abort")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.users.get(kept.id) is not None
        assert uow.repositories.users.get(dropped.id) is None


def test_sqlite_engine_enforces_foreign_keys(sqlite_engine: Engine) -> None:
    with sqlite_engine.connect() as connection:
        assert connection.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


def test_concurrent_locked_updates_on_sqlite_file(
    file_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    user = create_user(make_user_data(age=0), unit_of_work_factory=file_unit_of_work)
    coordinator = LockingUpdateCoordinator[User](
        unit_of_work_factory=file_unit_of_work,
        select_repository=lambda repositories: repositories.users,
        entity_type=EntityType.USER,
        policy=LockingPolicy(max_attempts=5, initial_delay=0.01, lock_timeout=5.0),
    )
    workers = 8

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(coordinator.update, user.id, _increment_age) for _ in range(workers)
        ]
        for future in futures:
            future.result()

    assert get_user(user.id, unit_of_work_factory=file_unit_of_work).age == workers


def test_concurrent_address_resolution_on_sqlite_file(
    file_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    def resolve(index: int) -> str:
        spacing = " " * index
        data = make_address_data(f"{spacing}LYON{spacing}", street="De La Paix")
        return str(find_or_create_address(data, unit_of_work_factory=file_unit_of_work).id)

    with ThreadPoolExecutor(max_workers=6) as pool:
        ids = set(pool.map(resolve, range(6)))

    assert len(ids) == 1


def test_held_writer_lock_turns_into_conflict(tmp_path: Path) -> None:
    database_uri = f"sqlite+pysqlite:///{tmp_path / 'busy.db'}"
    engine = build_engine(database_uri, busy_timeout=0.05)
    startup(engine=engine, force=True)
    user = create_user(make_user_data(age=1), unit_of_work_factory=SqlAlchemyUnitOfWork)
    sleeps: list[float] = []
    coordinator = LockingUpdateCoordinator[User](
        unit_of_work_factory=SqlAlchemyUnitOfWork,
        select_repository=lambda repositories: repositories.users,
        entity_type=EntityType.USER,
        policy=LockingPolicy(max_attempts=2, initial_delay=0.0, lock_timeout=0.05),
        sleep=sleeps.append,
    )

    blocker = build_engine(database_uri, busy_timeout=0.05)
    try:
        with blocker.connect() as connection:
            transaction = connection.begin()
            with pytest.raises(ConflictError):
                coordinator.update(user.id, _increment_age)
            transaction.rollback()
    finally:
        blocker.dispose()

    assert sleeps == [0.0]
    assert get_user(user.id, unit_of_work_factory=SqlAlchemyUnitOfWork).age == 1


def test_lock_timeout_bounds_each_attempt_on_sqlite(tmp_path: Path) -> None:
    database_uri = f"sqlite+pysqlite:///{tmp_path / 'slow.db'}"
    engine = build_engine(database_uri, busy_timeout=1.0)
    startup(engine=engine, force=True)
    user = create_user(make_user_data(age=1), unit_of_work_factory=SqlAlchemyUnitOfWork)
    coordinator = LockingUpdateCoordinator[User](
        unit_of_work_factory=SqlAlchemyUnitOfWork,
        select_repository=lambda repositories: repositories.users,
        entity_type=EntityType.USER,
        policy=LockingPolicy(max_attempts=3, initial_delay=0.0, lock_timeout=0.05),
    )

    blocker = build_engine(database_uri, busy_timeout=1.0)
    try:
        with blocker.connect() as connection:
            transaction = connection.begin()
            started = time.monotonic()
            with pytest.raises(ConflictError):
                coordinator.update(user.id, _increment_age)
            elapsed = time.monotonic() - started
            transaction.rollback()
    finally:
        blocker.dispose()

    # three waits of 0.05s, far below a single wait at the engine busy timeout
    assert elapsed < 0.65


def test_get_locked_sets_sqlite_busy_timeout_per_transaction(tmp_path: Path) -> None:
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'pragma.db'}", busy_timeout=1.0)
    startup(engine=engine, force=True)
    user = create_user(make_user_data(), unit_of_work_factory=SqlAlchemyUnitOfWork)

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.users.get_locked(user.id, timeout=0.25) is not None
        busy_ms = uow.session.connection().exec_driver_sql("PRAGMA busy_timeout").scalar()
    assert busy_ms == 250

    with engine.begin() as connection:
        assert connection.exec_driver_sql("PRAGMA busy_timeout").scalar() == 1000


class RecordingCursor:
    def __init__(self, statements: list[str]) -> None:
        self.statements = statements
        self.closed = False

    def execute(self, statement: str) -> None:
        self.statements.append(statement)

    def close(self) -> None:
        self.closed = True


class RecordingDBAPIConnection:
    def __init__(self) -> None:
        self.statements: list[str] = []
        self.cursors: list[RecordingCursor] = []

    def cursor(self) -> RecordingCursor:
        cursor = RecordingCursor(self.statements)
        self.cursors.append(cursor)
        return cursor


def test_checkin_restores_default_innodb_lock_wait() -> None:
    dbapi_connection = RecordingDBAPIConnection()

    reset_lock_wait_timeout(dbapi_connection, object())

    assert dbapi_connection.statements == ["SET SESSION innodb_lock_wait_timeout = DEFAULT"]
    assert all(cursor.closed for cursor in dbapi_connection.cursors)


def test_checkin_of_invalidated_connection_is_ignored() -> None:
    reset_lock_wait_timeout(None, object())

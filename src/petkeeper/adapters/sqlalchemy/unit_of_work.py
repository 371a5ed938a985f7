"""SQLAlchemy-backed units of work for the record registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from petkeeper.adapters.sqlalchemy.mappings import create_all_tables, start_mappers
from petkeeper.adapters.sqlalchemy.repositories import (
    SQLITE_LOCK_TIMEOUT_OPTION,
    SqlAlchemyAddressRepository,
    SqlAlchemyOwnershipRepository,
    SqlAlchemyPetRepository,
    SqlAlchemyUserRepository,
)
from petkeeper.config import get_database_config, get_locking_policy
from petkeeper.domain.ports.unit_of_work import RegistryRepositories, RepositoryCollection

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


def _milliseconds(seconds: float) -> int:
    return max(0, round(seconds * 1000))


def _install_sqlite_transaction_hooks(engine: Engine, *, busy_timeout: float) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN, and take the writer lock up front.

    ``BEGIN IMMEDIATE`` makes every transaction acquire SQLite's reserved lock, which
    stands in for row locks. Waiting is bounded by the busy timeout, set before each
    BEGIN from the ``SQLITE_LOCK_TIMEOUT_OPTION`` execution option or, without it,
    from ``busy_timeout``. Handing BEGIN to SQLAlchemy also makes SAVEPOINT work
    under pysqlite.
    """

    default_ms = _milliseconds(busy_timeout)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: object) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection: Connection) -> None:
        timeout = connection.get_execution_options().get(SQLITE_LOCK_TIMEOUT_OPTION)
        # the pragma sticks to the pooled connection, so it is reset on every begin
        wait_ms = default_ms if timeout is None else _milliseconds(timeout)
        connection.exec_driver_sql(f"PRAGMA busy_timeout = {wait_ms}")
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def reset_lock_wait_timeout(dbapi_connection: Any, _connection_record: object) -> None:
    """Pool checkin hook restoring the server default InnoDB lock wait."""

    if dbapi_connection is None:
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("SET SESSION innodb_lock_wait_timeout = DEFAULT")
    finally:
        cursor.close()


def build_engine(database_uri: str, *, busy_timeout: float | None = None) -> Engine:
    """Create an engine, applying the per-backend locking setup when relevant."""

    if not database_uri.startswith("sqlite"):
        engine = create_engine(database_uri, future=True)
        if engine.dialect.name in {"mysql", "mariadb"}:
            # get_locked changes the session lock wait; pooled connections must not keep it
            event.listen(engine, "checkin", reset_lock_wait_timeout)
        return engine

    timeout = get_locking_policy().lock_timeout if busy_timeout is None else busy_timeout
    engine = create_engine(
        database_uri,
        future=True,
        connect_args={"timeout": timeout, "check_same_thread": False},
    )
    _install_sqlite_transaction_hooks(engine, busy_timeout=timeout)
    return engine


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call petkeeper.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine, metadata, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or build_engine(database_uri or get_database_config().uri)
    start_mappers()
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Generic SQLAlchemy unit of work with pluggable repository collections."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self.session = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


class SqlAlchemyUnitOfWork(BaseSqlAlchemyUnitOfWork[RegistryRepositories]):
    """Unit of work over addresses, users, pets and ownerships."""

    def _build_repositories(self, session: Session) -> RegistryRepositories:
        return RegistryRepositories(
            addresses=SqlAlchemyAddressRepository(session),
            users=SqlAlchemyUserRepository(session),
            pets=SqlAlchemyPetRepository(session),
            ownerships=SqlAlchemyOwnershipRepository(session),
        )


if TYPE_CHECKING:
    from petkeeper.domain.ports.unit_of_work import RegistryUnitOfWork

    _uow_check: RegistryUnitOfWork = SqlAlchemyUnitOfWork()

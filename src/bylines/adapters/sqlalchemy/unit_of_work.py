"""SQLAlchemy unit of work for backfill runs.

The adapter keeps one process-wide engine. ``startup()`` binds it (creating any
missing tables) and every :class:`SqlAlchemyUnitOfWork` opens its own session on
it, so a single run owns exactly one session from start to finish.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from bylines.adapters.sqlalchemy.repositories import (
    SqlAlchemyAuthorDirectory,
    SqlAlchemyContentRecordRepository,
    SqlAlchemyRelationRepository,
    SqlAlchemySkipMarkerRepository,
    SqlAlchemyTermRepository,
)
from bylines.adapters.sqlalchemy.tables import create_all_tables
from bylines.config.storage import get_database_config
from bylines.domain.ports.unit_of_work import BackfillRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """The adapter or a unit of work is used in the wrong lifecycle phase."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None

    def attach(self, engine: Engine) -> None:
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def detach(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.session_factory = None

    def require_session_factory(self) -> sessionmaker[Session]:
        if self.session_factory is None:
            raise StartupError(
                "No database configured; call bylines.adapters.sqlalchemy.startup() "
                "before opening a unit of work."
            )
        return self.session_factory


_STATE = _AdapterState()


def _on_sqlite_connect(dbapi_connection: Any, _connection_record: object) -> None:
    # let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave
    dbapi_connection.isolation_level = None


def _on_sqlite_begin(connection: Connection) -> None:
    connection.exec_driver_sql("BEGIN")


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Install the pysqlite transaction hooks needed for nested transactions."""

    if engine.dialect.name != "sqlite":
        return
    if not event.contains(engine, "connect", _on_sqlite_connect):
        event.listen(engine, "connect", _on_sqlite_connect)
    if not event.contains(engine, "begin", _on_sqlite_begin):
        event.listen(engine, "begin", _on_sqlite_begin)


def build_engine(database_uri: str | None = None) -> Engine:
    """Create an engine for ``database_uri`` (or the configured one)."""

    engine = create_engine(database_uri or get_database_config().uri, future=True)
    enable_sqlite_savepoints(engine)
    return engine


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the adapter to ``engine`` (or a new one) and create missing tables.

    A second call raises :class:`StartupError` unless ``force`` is set, in which
    case the previous engine is replaced without being disposed.
    """

    if _STATE.engine is not None and not force:
        raise StartupError("Database already configured; pass force=True to rebind.")

    resolved = engine if engine is not None else build_engine(database_uri)
    enable_sqlite_savepoints(resolved)
    create_all_tables(resolved)
    _STATE.attach(resolved)
    log.debug("Database adapter bound to %s", resolved.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine and forget it."""

    _STATE.detach()


class SqlAlchemyUnitOfWork:
    """One session, and the repositories bound to it, for the duration of a run."""

    def __init__(self) -> None:
        self.session_factory = _STATE.require_session_factory()
        self._session: Session | None = None
        self._repositories: BackfillRepositories | None = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        session = self.session_factory()
        self._session = session
        self._repositories = BackfillRepositories(
            records=SqlAlchemyContentRecordRepository(session),
            authors=SqlAlchemyAuthorDirectory(session),
            terms=SqlAlchemyTermRepository(session),
            relations=SqlAlchemyRelationRepository(session),
            skip_markers=SqlAlchemySkipMarkerRepository(session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open")
        return self._session

    @property
    def repositories(self) -> BackfillRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not open")
        return self._repositories

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def release_transient_caches(self) -> None:
        """Commit, then close the session to drop its identity map and connection.

        The session stays usable; the next statement checks out a fresh connection.
        """

        self.session.commit()
        self.session.close()


if TYPE_CHECKING:
    from bylines.domain.ports.unit_of_work import BackfillUnitOfWork

    _uow_check: BackfillUnitOfWork = SqlAlchemyUnitOfWork()

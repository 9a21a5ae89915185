"""Engine and session factory construction.

The database handle is built explicitly and passed to the store and catalog;
nothing here is cached in module globals.
"""

from __future__ import annotations

import logging
import threading

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Config

logger = logging.getLogger(__name__)


def _serialize_checkouts(engine: Engine) -> None:
    """Allow one checkout at a time of a single shared connection.

    With a StaticPool every session uses the same DBAPI connection, so an open
    transaction in one thread would otherwise be read, committed or rolled
    back by sessions in other threads.
    """
    lock = threading.RLock()

    @event.listens_for(engine, "checkout")
    def acquire(dbapi_connection, connection_record, connection_proxy):
        _ = lock.acquire()

    @event.listens_for(engine, "checkin")
    def release(dbapi_connection, connection_record):
        lock.release()


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine, handling SQLite's threading quirks.

    In-memory SQLite lives on one shared connection; sessions on such an
    engine are serialized, one transaction at a time.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        Engine bound to the database
    """
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every session sees an empty database
            engine = create_engine(
                database_url, connect_args=connect_args, poolclass=StaticPool, echo=echo
            )
            _serialize_checkouts(engine)
            return engine
        return create_engine(database_url, connect_args=connect_args, echo=echo)

    return create_engine(database_url, pool_pre_ping=True, echo=echo)


class Database:
    """Explicitly scoped database handle.

    Example:
        db = Database("sqlite:///salon_queue.db")
        store = QueueStore(db.session_factory)
        store.ensure_schema()
        ...
        db.dispose()
    """

    def __init__(self, database_url: str | None = None, *, echo: bool | None = None):
        self.database_url: str = database_url or Config.DATABASE_URL
        self._echo: bool = Config.DATABASE_ECHO if echo is None else echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        return self.ensure_connected()

    @property
    def session_factory(self) -> sessionmaker[Session]:
        _ = self.ensure_connected()
        assert self._session_factory is not None
        return self._session_factory

    def ensure_connected(self) -> Engine:
        """Create the engine on first use; later calls are no-ops.

        Tables are created by ``QueueStore.ensure_schema()``.
        """
        if self._engine is None:
            engine = create_db_engine(self.database_url, echo=self._echo)
            self._session_factory = sessionmaker(
                bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
            )
            self._engine = engine
            logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
        return self._engine

    def dispose(self) -> None:
        """Release pooled connections. The handle can be reconnected afterwards."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None

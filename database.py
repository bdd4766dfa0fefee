"""
Database engine and session management for the package registry.

The registry lives in a single SQLite file next to the launcher settings.
``Database.in_memory()`` builds a throwaway store for tests.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base

_log = logging.getLogger(__name__)


class StoreIntegrityError(Exception):
    """A uniqueness or foreign-key constraint rejected a write."""


class RecordNotFoundError(LookupError):
    """An update or delete referenced an id that is not in the store."""


@runtime_checkable
class DisposableStore(Protocol):
    """Administrative capability used for test isolation only."""

    def reset(self) -> None:
        """Remove every row, keep the schema."""

    def destroy(self) -> None:
        """Drop the schema and release the underlying storage."""


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine, the session factory and the write lock.

    All sessions are handed out under one re-entrant lock, so a whole
    install or uninstall is applied as one serialized transaction.
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        if make_url(url).get_backend_name() == "sqlite":
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        self.engine = create_engine(url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)
        self._lock = threading.RLock()
        Base.metadata.create_all(self.engine)
        _log.debug("Registry database ready at %s", url)

    @classmethod
    def for_file(cls, path: Path) -> Database:
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite:///{path}")

    @classmethod
    def in_memory(cls) -> Database:
        return cls("sqlite://", poolclass=StaticPool)

    @property
    def database_path(self) -> Path | None:
        database = make_url(self.url).database
        if not database or database == ":memory:":
            return None
        return Path(database)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise StoreIntegrityError(str(e.orig)) from e
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    # ── DisposableStore ───────────────────────────────────────────────

    def reset(self) -> None:
        with self._lock, self.engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())
        _log.debug("Registry database reset")

    def destroy(self) -> None:
        with self._lock:
            Base.metadata.drop_all(self.engine)
            self.engine.dispose()
            path = self.database_path
            if path is not None and path.exists():
                path.unlink()
        _log.debug("Registry database destroyed")

    def close(self) -> None:
        self.engine.dispose()

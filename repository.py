"""
Generic CRUD access to registry records.

Every method takes an optional ``session``.  Without one, the call runs in its
own transaction; with one, it joins the caller's transaction so several calls
commit or roll back together.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Generic, Iterator, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from database import Database, RecordNotFoundError
from models import Base, PackageEntity, PackageFileEntity

E = TypeVar("E", bound=Base)

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    """Naive UTC now (SQLite drops tzinfo, so the registry stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def next_timestamp(previous: datetime) -> datetime:
    """Current time, forced strictly past ``previous``."""
    return max(utcnow(), previous + _TICK)


class Repository(Generic[E]):
    entity: type[E]
    mutable_fields: tuple[str, ...] = ()

    def __init__(self, database: Database):
        self.database = database

    @contextmanager
    def _session(self, session: Optional[Session]) -> Iterator[Session]:
        if session is not None:
            yield session
        else:
            with self.database.session() as own:
                yield own

    def insert(self, record: E, session: Optional[Session] = None) -> E:
        now = utcnow()
        record.created_date = now
        record.updated_date = now
        with self._session(session) as s:
            s.add(record)
            s.flush()
        return record

    def find_by_id(self, record_id: int, session: Optional[Session] = None) -> Optional[E]:
        with self._session(session) as s:
            return s.get(self.entity, record_id)

    def find_by_ids(self, *record_ids: int, session: Optional[Session] = None) -> list[E]:
        """Return the records that exist; unknown ids are skipped."""
        if not record_ids:
            return []
        with self._session(session) as s:
            stmt = select(self.entity).where(self.entity.id.in_(record_ids))
            return list(s.scalars(stmt))

    def find_all(self, session: Optional[Session] = None) -> list[E]:
        with self._session(session) as s:
            return list(s.scalars(select(self.entity).order_by(self.entity.id)))

    def count_all(self, session: Optional[Session] = None) -> int:
        with self._session(session) as s:
            return s.scalar(select(func.count()).select_from(self.entity))

    def update(self, record: E, session: Optional[Session] = None) -> E:
        """Copy the non-None mutable fields of ``record`` onto the stored row."""
        with self._session(session) as s:
            current = s.get(self.entity, record.id) if record.id is not None else None
            if current is None:
                raise RecordNotFoundError(f"No {self.entity.__tablename__} row with id {record.id}")
            for name in self.mutable_fields:
                value = getattr(record, name)
                if value is not None:
                    setattr(current, name, value)
            current.updated_date = next_timestamp(current.updated_date)
            s.flush()
            return current

    def delete(self, record: E, session: Optional[Session] = None) -> None:
        with self._session(session) as s:
            current = s.get(self.entity, record.id) if record.id is not None else None
            if current is None:
                raise RecordNotFoundError(f"No {self.entity.__tablename__} row with id {record.id}")
            s.delete(current)
            s.flush()


class PackageRepository(Repository[PackageEntity]):
    entity = PackageEntity
    mutable_fields = ("name", "manifest")

    def find_by_name(self, name: str, session: Optional[Session] = None) -> Optional[PackageEntity]:
        with self._session(session) as s:
            return s.scalars(select(PackageEntity).where(PackageEntity.name == name)).first()


class PackageFileRepository(Repository[PackageFileEntity]):
    entity = PackageFileEntity
    mutable_fields = ("package_id", "path", "hash")

    def find_by_package_id(
        self, package_id: int, session: Optional[Session] = None
    ) -> list[PackageFileEntity]:
        with self._session(session) as s:
            stmt = (
                select(PackageFileEntity)
                .where(PackageFileEntity.package_id == package_id)
                .order_by(PackageFileEntity.path)
            )
            return list(s.scalars(stmt))

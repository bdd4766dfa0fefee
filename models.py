"""Registry tables: installed packages and the files they own."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class PackageEntity(Base):
    """An installed mod.  ``manifest`` holds the package's modinfo text verbatim."""

    __tablename__ = "packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    manifest: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    files: Mapped[list[PackageFileEntity]] = relationship(
        back_populates="package", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"PackageEntity(id={self.id!r}, name={self.name!r})"


class PackageFileEntity(Base):
    """One file of an installed package, keyed by its path inside the package tree."""

    __tablename__ = "package_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_id: Mapped[int] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"), nullable=False
    )
    path: Mapped[str] = mapped_column(Text, nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    package: Mapped[PackageEntity] = relationship(back_populates="files")

    __table_args__ = (
        UniqueConstraint("package_id", "path", name="uq_package_files_package_path"),
        Index("idx_package_files_package", "package_id"),
    )

    def __repr__(self) -> str:
        return (
            f"PackageFileEntity(id={self.id!r}, package_id={self.package_id!r}, "
            f"path={self.path!r}, hash={self.hash!r})"
        )

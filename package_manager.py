"""
CDDA Launcher - Mod registry

Installs, reinstalls and uninstalls mods while keeping the registry database
consistent with the live mods directory.

Workflow:
    1. install() / install_task() validates a source, hashes its files,
       reconciles the registry rows by path and materializes new or changed
       files on disk
    2. list_all() / get_package() / get_path_for() answer shell queries
    3. uninstall() moves the mod directory to trash and purges its rows

Every registry change for one install or uninstall happens in a single
transaction that commits only after the filesystem work succeeded.  Files that
get replaced or dropped go to the mods trash, never to oblivion.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from database import Database, StoreIntegrityError
from fileops import (
    copy_files,
    discard_dir,
    make_staging_dir,
    move_to_trash,
    prune_empty_dirs,
    trash_destination,
)
from hashing import hash_tree
from models import PackageEntity, PackageFileEntity
from package_validator import PackageValidator, ValidatedPackage
from repository import PackageFileRepository, PackageRepository
from results import (
    IntegrityFailure,
    NotFoundFailure,
    Result,
    Success,
    io_failure,
)
from tasks import DO_NOTHING, BackgroundTask, ProgressCallback, ProgressReporter

_log = logging.getLogger(__name__)


@dataclass
class PackageFile:
    """One tracked file of a mod: POSIX path relative to the mod root, plus digest."""

    path: str
    hash: str
    id: int | None = None
    package_id: int | None = None
    created_date: datetime | None = None
    updated_date: datetime | None = None

    @classmethod
    def from_entity(cls, entity: PackageFileEntity) -> PackageFile:
        return cls(
            path=entity.path,
            hash=entity.hash,
            id=entity.id,
            package_id=entity.package_id,
            created_date=entity.created_date,
            updated_date=entity.updated_date,
        )


@dataclass
class Package:
    """A registered mod."""

    name: str
    manifest: str = ""
    files: list[PackageFile] = field(default_factory=list)
    id: int | None = None
    created_date: datetime | None = None
    updated_date: datetime | None = None

    @classmethod
    def from_entity(cls, entity: PackageEntity, files: list[PackageFileEntity]) -> Package:
        return cls(
            name=entity.name,
            manifest=entity.manifest,
            files=[PackageFile.from_entity(f) for f in files],
            id=entity.id,
            created_date=entity.created_date,
            updated_date=entity.updated_date,
        )

    def file_hashes(self) -> dict[str, str]:
        return {f.path: f.hash for f in self.files}


class _Undo:
    """Compensating filesystem actions, run newest-first if the transaction fails."""

    def __init__(self):
        self._actions: list[tuple[str, Callable[[], None]]] = []

    def push(self, label: str, action: Callable[[], None]) -> None:
        self._actions.append((label, action))

    def run(self) -> None:
        while self._actions:
            label, action = self._actions.pop()
            try:
                action()
            except OSError as e:
                _log.error("Could not undo %s: %s", label, e)


def _move(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))


def _unlink_added(dst: Path, root: Path) -> None:
    dst.unlink(missing_ok=True)
    prune_empty_dirs(dst.parent, root)


class PackageManager:
    """
    Mod registry controller.

    Holds its own repositories on an injected ``Database``; construct one per
    launcher context rather than sharing a global.
    """

    def __init__(
        self,
        database: Database,
        packages_dir: str | Path,
        trash_dir: str | Path,
        validator: PackageValidator | None = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.database = database
        self.packages_dir = Path(packages_dir)
        self.trash_dir = Path(trash_dir)
        self.validator = validator or PackageValidator()
        self.packages = PackageRepository(database)
        self.package_files = PackageFileRepository(database)
        self._log_cb = log_callback
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str, level: int = logging.INFO):
        _log.log(level, msg)
        if self._log_cb:
            self._log_cb(msg)

    # ── Per-package serialization ─────────────────────────────────────

    @contextmanager
    def _package_lock(self, name: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(name, threading.Lock())
        with lock:
            yield

    # ── Queries ───────────────────────────────────────────────────────

    def list_all(self) -> list[Package]:
        with self.database.session() as session:
            entities = self.packages.find_all(session=session)
            files_by_package: dict[int, list[PackageFileEntity]] = {}
            for f in self.package_files.find_all(session=session):
                files_by_package.setdefault(f.package_id, []).append(f)
            return [
                Package.from_entity(e, sorted(files_by_package.get(e.id, []), key=lambda f: f.path))
                for e in entities
            ]

    def get_package(self, name: str) -> Optional[Package]:
        with self.database.session() as session:
            entity = self.packages.find_by_name(name, session=session)
            if entity is None:
                return None
            return Package.from_entity(
                entity, self.package_files.find_by_package_id(entity.id, session=session)
            )

    def get_package_for(self, path: str | Path) -> Optional[Package]:
        """Reverse lookup from an installed mod directory."""
        path = Path(path)
        if path.resolve().parent != self.packages_dir.resolve():
            return None
        return self.get_package(path.name)

    def get_path_for(self, package: Package) -> Path:
        return self.packages_dir / package.name

    # ── Install ───────────────────────────────────────────────────────

    def install_task(
        self, source: str | Path, on_progress: Optional[ProgressCallback] = None
    ) -> BackgroundTask[Result[Package]]:
        return BackgroundTask(self.install, source, on_progress, name=f"install:{Path(source).name}")

    def install(
        self, source: str | Path, on_progress: Optional[ProgressCallback] = None
    ) -> Result[Package]:
        progress = ProgressReporter(on_progress)
        self.log(f"Installing mod from {source}...")

        validated = self.validator.validate(source)
        if not validated.ok:
            self.log(f"  Validation failed: {validated}", logging.WARNING)
            return validated

        pkg: ValidatedPackage = validated.value
        try:
            with self._package_lock(pkg.name):
                result = self._install_validated(pkg, progress)
        finally:
            pkg.cleanup()

        if result.ok:
            progress.complete()
            self.log(f"  Successfully installed '{pkg.name}' ({len(result.value.files)} files)")
        else:
            self.log(f"  Install of '{pkg.name}' failed: {result}", logging.ERROR)
        return result

    def _install_validated(self, pkg: ValidatedPackage, progress: ProgressReporter) -> Result[Package]:
        try:
            digests = hash_tree(pkg.root, on_file=progress.stage(0, 40))
        except OSError as e:
            return io_failure("Could not hash package file", e)
        self.log(f"  Hashed {len(digests)} file(s)")

        undo = _Undo()
        try:
            with self.database.session() as session:
                existing = self.packages.find_by_name(pkg.name, session=session)
                if existing is None:
                    entity = self._install_new(session, pkg, digests, progress, undo)
                else:
                    entity = self._reinstall(session, existing, pkg, digests, progress, undo)
                package = Package.from_entity(
                    entity, self.package_files.find_by_package_id(entity.id, session=session)
                )
        except StoreIntegrityError as e:
            undo.run()
            return IntegrityFailure(f"Registry rejected '{pkg.name}': {e}", cause=e)
        except OSError as e:
            undo.run()
            return io_failure(f"Could not install '{pkg.name}'", e)
        return Success(package)

    def _install_new(
        self,
        session: Session,
        pkg: ValidatedPackage,
        digests: dict[str, str],
        progress: ProgressReporter,
        undo: _Undo,
    ) -> PackageEntity:
        entity = self.packages.insert(PackageEntity(name=pkg.name, manifest=pkg.manifest), session=session)
        for path, digest in digests.items():
            self.package_files.insert(
                PackageFileEntity(package_id=entity.id, path=path, hash=digest), session=session
            )

        target = self.packages_dir / pkg.name
        staging = make_staging_dir(self.packages_dir, pkg.name)
        undo.push("staging", lambda: discard_dir(staging))

        copy_stage = progress.stage(40, 99)
        copied = 0

        def _copied(_rel: str) -> None:
            nonlocal copied
            copied += 1
            copy_stage(copied, len(digests))

        copy_files(pkg.root, digests, staging, on_file=_copied)

        if target.exists():
            # directory present but unknown to the registry
            self.log(f"  Untracked directory {target} is in the way, moving it to trash", logging.WARNING)
            trashed = move_to_trash(target, self.trash_dir, qualify=True)
            undo.push("untracked directory", lambda: _move(trashed, target))

        staging.rename(target)
        undo.push("new install", lambda: discard_dir(target))
        self.log(f"  Copied {len(digests)} file(s) into {target}")
        return entity

    def _reinstall(
        self,
        session: Session,
        existing: PackageEntity,
        pkg: ValidatedPackage,
        digests: dict[str, str],
        progress: ProgressReporter,
        undo: _Undo,
    ) -> PackageEntity:
        target = self.packages_dir / pkg.name
        rows = {row.path: row for row in self.package_files.find_by_package_id(existing.id, session=session)}

        added = [p for p in digests if p not in rows]
        changed = [p for p in digests if p in rows and rows[p].hash != digests[p]]
        removed = [p for p in rows if p not in digests]
        # tracked and unchanged but gone from disk: put it back, no row change
        missing = [
            p for p in digests
            if p in rows and p not in changed and not (target / p).is_file()
        ]
        self.log(
            f"  Reinstalling '{pkg.name}': {len(added)} new, {len(changed)} changed, "
            f"{len(removed)} removed, {len(missing)} missing on disk"
        )

        for path in changed:
            self.package_files.update(PackageFileEntity(id=rows[path].id, hash=digests[path]), session=session)
        for path in removed:
            self.package_files.delete(rows[path], session=session)
        for path in added:
            self.package_files.insert(
                PackageFileEntity(package_id=existing.id, path=path, hash=digests[path]), session=session
            )

        if added or changed or removed or existing.manifest != pkg.manifest:
            existing = self.packages.update(
                PackageEntity(id=existing.id, manifest=pkg.manifest), session=session
            )

        to_copy = added + changed + missing
        if not to_copy and not removed:
            progress.report(99)
            return existing

        batch: Path | None = None

        def _trash_batch() -> Path:
            nonlocal batch
            if batch is None:
                batch = trash_destination(pkg.name, self.trash_dir, qualify=True)
            return batch

        if to_copy:
            staging = make_staging_dir(self.packages_dir, pkg.name)
            undo.push("staging", lambda: discard_dir(staging))
            copy_stage = progress.stage(40, 95)
            copied = 0

            def _copied(_rel: str) -> None:
                nonlocal copied
                copied += 1
                copy_stage(copied, len(to_copy))

            copy_files(pkg.root, to_copy, staging, on_file=_copied)

        # dropped paths leave first, a new file may reuse one as its parent directory
        for rel in removed:
            dst = target / rel
            if not dst.exists():
                continue
            old = _trash_batch() / rel
            _move(dst, old)
            undo.push(f"remove {rel}", lambda dst=dst, old=old: _move(old, dst))
            prune_empty_dirs(dst.parent, target)

        if to_copy:
            swap_stage = progress.stage(95, 99)
            for done, rel in enumerate(to_copy, start=1):
                dst = target / rel
                if dst.exists():
                    old = _trash_batch() / rel
                    _move(dst, old)
                    undo.push(f"replace {rel}", lambda dst=dst, old=old: _move(old, dst))
                else:
                    undo.push(f"add {rel}", lambda dst=dst: _unlink_added(dst, target))
                dst.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staging / rel, dst)
                swap_stage(done, len(to_copy))
            discard_dir(staging)

        if batch is not None:
            self.log(f"  Superseded files moved to trash at {batch}")
        return existing

    # ── Register / Unregister ─────────────────────────────────────────

    def register(self, package: Package) -> Result[Package]:
        """Record a package and its files without touching the filesystem."""
        try:
            with self.database.session() as session:
                entity = self.packages.insert(
                    PackageEntity(name=package.name, manifest=package.manifest), session=session
                )
                for f in package.files:
                    self.package_files.insert(
                        PackageFileEntity(package_id=entity.id, path=f.path, hash=f.hash), session=session
                    )
                registered = Package.from_entity(
                    entity, self.package_files.find_by_package_id(entity.id, session=session)
                )
        except StoreIntegrityError as e:
            self.log(f"Could not register '{package.name}': {e}", logging.ERROR)
            return IntegrityFailure(f"Registry rejected '{package.name}': {e}", cause=e)
        self.log(f"Registered '{package.name}' ({len(registered.files)} files)")
        return Success(registered)

    def unregister(self, package: Package) -> Result[None]:
        """Delete a package's registry rows, leaving the filesystem alone."""
        with self._package_lock(package.name):
            with self.database.session() as session:
                entity = self._find_entity(package, session)
                if entity is None:
                    return NotFoundFailure(f"Mod '{package.name}' is not registered")
                self.packages.delete(entity, session=session)
        self.log(f"Unregistered '{package.name}'")
        return Success(None)

    # ── Uninstall ─────────────────────────────────────────────────────

    def uninstall(
        self, package: Package, on_trashed: Callable[[Path], None] = DO_NOTHING
    ) -> Result[Path | None]:
        self.log(f"Uninstalling '{package.name}'...")
        undo = _Undo()
        trashed: Path | None = None
        with self._package_lock(package.name):
            try:
                with self.database.session() as session:
                    entity = self._find_entity(package, session)
                    if entity is None:
                        return NotFoundFailure(f"Mod '{package.name}' is not registered")
                    self.packages.delete(entity, session=session)

                    target = self.packages_dir / entity.name
                    if target.exists():
                        trashed = move_to_trash(target, self.trash_dir)
                        undo.push("uninstall", lambda: _move(trashed, target))
                    else:
                        self.log(
                            f"  {target} is already gone, purging registry rows only",
                            logging.WARNING,
                        )
            except StoreIntegrityError as e:
                undo.run()
                return IntegrityFailure(f"Registry rejected uninstall of '{package.name}': {e}", cause=e)
            except OSError as e:
                undo.run()
                return io_failure(f"Could not move '{package.name}' to trash", e)

        if trashed is not None:
            on_trashed(trashed)
        self.log(f"  Successfully uninstalled '{package.name}'")
        return Success(trashed)

    def _find_entity(self, package: Package, session: Session) -> Optional[PackageEntity]:
        if package.id is not None:
            return self.packages.find_by_id(package.id, session=session)
        return self.packages.find_by_name(package.name, session=session)

"""
CDDA Launcher - Save backups

Snapshots of the live save directory are plain .zip files in the backups
directory.  The directory itself is the registry: listing is always a fresh
scan, and a snapshot's mtime is its creation time.

Backups are written under a hidden ``.partial`` name and renamed into place
only once complete.  Restoring first moves the current saves to the save
trash, so a restore can always be undone by hand.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from archives import ArchiveError, extract_all, write_zip
from fileops import discard_dir, move_to_trash
from results import (
    NotFoundFailure,
    Result,
    Success,
    ValidationFailure,
    io_failure,
)
from tasks import BackgroundTask, ProgressCallback, ProgressReporter

_log = logging.getLogger(__name__)

BACKUP_EXTENSION = ".zip"
BACKUP_NAME_FORMAT = "%Y-%m-%d_%H-%M-%S"
PARTIAL_SUFFIX = ".partial"


@dataclass(frozen=True)
class Snapshot:
    path: Path
    name: str
    size: int
    modified: datetime

    @classmethod
    def from_path(cls, path: Path) -> Snapshot:
        st = path.stat()
        return cls(
            path=path,
            name=path.name,
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime),
        )

    def size_mb(self) -> float:
        return self.size / (1024 * 1024)


class SaveManager:
    """
    Save backup controller.

    Workflow:
        1. save_files_exist() to decide whether a backup makes sense
        2. backup_current_saves() / restore_backup() return background tasks
        3. list_all_backups(), rename_backup(), delete_backup() manage snapshots
    """

    def __init__(
        self,
        save_dir: str | Path,
        backups_dir: str | Path,
        trash_dir: str | Path,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.save_dir = Path(save_dir)
        self.backups_dir = Path(backups_dir)
        self.trash_dir = Path(trash_dir)
        self._log_cb = log_callback
        self._name_lock = threading.Lock()

    def log(self, msg: str, level: int = logging.INFO):
        _log.log(level, msg)
        if self._log_cb:
            self._log_cb(msg)

    # ── Queries ───────────────────────────────────────────────────────

    def save_files_exist(self) -> bool:
        if not self.save_dir.is_dir():
            return False
        return any(self.save_dir.iterdir())

    def get_latest_save(self) -> Optional[Path]:
        """Most recently modified world directory in the live save directory."""
        if not self.save_dir.is_dir():
            return None
        worlds = [p for p in self.save_dir.iterdir() if p.is_dir()]
        if not worlds:
            return None
        return max(worlds, key=lambda p: p.stat().st_mtime)

    def list_all_backups(self) -> list[Snapshot]:
        """Snapshots newest first.  Always a live scan of the backups directory."""
        if not self.backups_dir.is_dir():
            return []
        snapshots = []
        for f in self.backups_dir.iterdir():
            if (
                f.name.startswith(".")
                or not f.is_file()
                or f.suffix.lower() != BACKUP_EXTENSION
            ):
                continue
            try:
                snapshots.append(Snapshot.from_path(f))
            except FileNotFoundError:
                # deleted between iterdir() and stat()
                continue
        snapshots.sort(key=lambda s: s.modified, reverse=True)
        return snapshots

    def get_latest_backup(self) -> Optional[Snapshot]:
        backups = self.list_all_backups()
        return backups[0] if backups else None

    def get_backup(self, name: str) -> Optional[Snapshot]:
        path = self.backups_dir / name
        if not path.is_file() and not name.lower().endswith(BACKUP_EXTENSION):
            path = self.backups_dir / f"{name}{BACKUP_EXTENSION}"
        if not path.is_file():
            return None
        return Snapshot.from_path(path)

    # ── Backup ────────────────────────────────────────────────────────

    def backup_current_saves(
        self, on_progress: Optional[ProgressCallback] = None
    ) -> BackgroundTask[Result[Snapshot]]:
        return BackgroundTask(self.create_backup, on_progress, name="backup")

    def create_backup(self, on_progress: Optional[ProgressCallback] = None) -> Result[Snapshot]:
        progress = ProgressReporter(on_progress)
        if not self.save_files_exist():
            self.log(f"No save files found in {self.save_dir}, nothing to back up", logging.WARNING)
            return NotFoundFailure("No save files to back up", path=self.save_dir)

        try:
            self.backups_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return io_failure("Could not create backups directory", e, path=self.backups_dir)

        self.log(f"Backing up {self.save_dir} to {self.backups_dir}...")
        partial: Path | None = None
        try:
            fd, name = tempfile.mkstemp(
                prefix=".", suffix=f"{BACKUP_EXTENSION}{PARTIAL_SUFFIX}", dir=self.backups_dir
            )
            os.close(fd)
            partial = Path(name)
            count = write_zip(self.save_dir, partial, on_bytes=progress.stage(0, 99))
            with self._name_lock:
                # another backup may have claimed the name while this one was writing
                final = self._new_backup_path()
                os.replace(partial, final)
        except OSError as e:
            if partial is not None:
                partial.unlink(missing_ok=True)
            self.log(f"  Backup failed: {e}", logging.ERROR)
            return io_failure("Could not write backup", e)

        progress.complete()
        self.log(f"  Backup created: {final.name} ({count} files)")
        return Success(Snapshot.from_path(final))

    def _new_backup_path(self) -> Path:
        stem = datetime.now().strftime(BACKUP_NAME_FORMAT)
        path = self.backups_dir / f"{stem}{BACKUP_EXTENSION}"
        counter = 1
        while path.exists():
            path = self.backups_dir / f"{stem}_{counter}{BACKUP_EXTENSION}"
            counter += 1
        return path

    # ── Restore ───────────────────────────────────────────────────────

    def restore_backup(
        self, snapshot: Snapshot, on_progress: Optional[ProgressCallback] = None
    ) -> BackgroundTask[Result[Path | None]]:
        return BackgroundTask(self.restore, snapshot, on_progress, name=f"restore:{snapshot.name}")

    def restore(
        self, snapshot: Snapshot, on_progress: Optional[ProgressCallback] = None
    ) -> Result[Path | None]:
        """Replace the live saves with ``snapshot``.

        Returns the trash location of the previous saves (None if there were
        none).  On failure the previous saves are put back.
        """
        progress = ProgressReporter(on_progress)
        if not snapshot.path.is_file():
            return NotFoundFailure("Backup not found", path=snapshot.path)

        self.log(f"Restoring backup {snapshot.name} into {self.save_dir}...")
        trashed: Path | None = None
        if self.save_dir.exists():
            try:
                trashed = move_to_trash(self.save_dir, self.trash_dir, qualify=True)
            except OSError as e:
                return io_failure("Could not move current saves to trash", e, path=self.save_dir)
            self.log(f"  Current saves moved to {trashed}")

        try:
            extract_all(snapshot.path, self.save_dir, on_member=progress.stage(0, 99))
        except (ArchiveError, OSError) as e:
            self.log(f"  Restore failed: {e}", logging.ERROR)
            discard_dir(self.save_dir)
            if trashed is not None:
                try:
                    shutil.move(str(trashed), str(self.save_dir))
                except OSError as move_error:
                    self.log(
                        f"  Could not put previous saves back, they remain at {trashed}: {move_error}",
                        logging.ERROR,
                    )
                    return io_failure(
                        f"Restore failed ({e}) and previous saves remain at {trashed}",
                        move_error,
                        path=trashed,
                    )
                self.log(f"  Previous saves put back from {trashed}")
            if isinstance(e, ArchiveError):
                return ValidationFailure(str(e), path=e.path, cause=e)
            return io_failure("Could not extract backup", e)

        progress.complete()
        self.log(f"  Restored {snapshot.name}")
        return Success(trashed)

    # ── Rename / Delete ───────────────────────────────────────────────

    def rename_backup(self, snapshot: Snapshot, new_name: str) -> Result[Snapshot]:
        new_name = (new_name or "").strip()
        if not new_name:
            return ValidationFailure("Backup name cannot be blank")
        if "/" in new_name or "\\" in new_name or new_name in (".", ".."):
            return ValidationFailure(f"Invalid backup name: {new_name!r}")
        if not new_name.lower().endswith(BACKUP_EXTENSION):
            new_name += BACKUP_EXTENSION

        if not snapshot.path.is_file():
            return NotFoundFailure("Backup not found", path=snapshot.path)

        dest = snapshot.path.with_name(new_name)
        if dest == snapshot.path:
            return Success(Snapshot.from_path(dest))
        if os.path.lexists(dest):
            return ValidationFailure(f"A backup named {new_name!r} already exists", path=dest)

        try:
            snapshot.path.rename(dest)
        except OSError as e:
            return io_failure("Could not rename backup", e, path=snapshot.path)
        self.log(f"Renamed backup {snapshot.name} -> {new_name}")
        return Success(Snapshot.from_path(dest))

    def delete_backup(self, snapshot: Snapshot) -> Result[None]:
        """Delete outright.  Snapshots are already the backup layer; no trash."""
        try:
            snapshot.path.unlink()
        except FileNotFoundError:
            return NotFoundFailure("Backup not found", path=snapshot.path)
        except OSError as e:
            return io_failure("Could not delete backup", e, path=snapshot.path)
        self.log(f"Deleted backup {snapshot.name}")
        return Success(None)

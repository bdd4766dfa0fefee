"""
CDDA Launcher - Sound packs

Sound packs are installed as plain directories and tracked by the sound packs
directory alone (no registry rows).  Deleting one moves it to the sound pack
trash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from fileops import copy_files, directory_size, discard_dir, make_staging_dir, move_to_trash
from hashing import list_files
from package_validator import PackageValidator
from results import NotFoundFailure, Result, Success, ValidationFailure, io_failure
from tasks import BackgroundTask, ProgressCallback, ProgressReporter

_log = logging.getLogger(__name__)

SOUNDPACK_MANIFEST_FILENAME = "soundpack.txt"


@dataclass(frozen=True)
class Soundpack:
    path: Path
    name: str
    size: int
    modified: datetime

    @classmethod
    def from_path(cls, path: Path) -> Soundpack:
        return cls(
            path=path,
            name=path.name,
            size=directory_size(path),
            modified=datetime.fromtimestamp(path.stat().st_mtime),
        )


class SoundpackManager:
    def __init__(
        self,
        soundpacks_dir: str | Path,
        trash_dir: str | Path,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.soundpacks_dir = Path(soundpacks_dir)
        self.trash_dir = Path(trash_dir)
        self.validator = PackageValidator(SOUNDPACK_MANIFEST_FILENAME)
        self._log_cb = log_callback

    def log(self, msg: str, level: int = logging.INFO):
        _log.log(level, msg)
        if self._log_cb:
            self._log_cb(msg)

    def list_all(self) -> list[Soundpack]:
        if not self.soundpacks_dir.is_dir():
            return []
        packs = [
            Soundpack.from_path(p)
            for p in self.soundpacks_dir.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        ]
        packs.sort(key=lambda s: s.modified, reverse=True)
        return packs

    def install_task(
        self, source: str | Path, on_progress: Optional[ProgressCallback] = None
    ) -> BackgroundTask[Result[Soundpack]]:
        return BackgroundTask(self.install, source, on_progress, name=f"soundpack:{Path(source).name}")

    def install(
        self, source: str | Path, on_progress: Optional[ProgressCallback] = None
    ) -> Result[Soundpack]:
        progress = ProgressReporter(on_progress)
        self.log(f"Installing sound pack from {source}...")
        validated = self.validator.validate(source)
        if not validated.ok:
            self.log(f"  Validation failed: {validated}", logging.WARNING)
            return validated

        with validated.value as pkg:
            target = self.soundpacks_dir / pkg.name
            if target.exists():
                return ValidationFailure(f"Sound pack '{pkg.name}' is already installed", path=target)

            files = [f.relative_to(pkg.root).as_posix() for f in list_files(pkg.root)]
            copy_stage = progress.stage(0, 99)
            copied = 0

            def _copied(_rel: str) -> None:
                nonlocal copied
                copied += 1
                copy_stage(copied, len(files))

            staging = None
            try:
                staging = make_staging_dir(self.soundpacks_dir, pkg.name)
                copy_files(pkg.root, files, staging, on_file=_copied)
                staging.rename(target)
            except OSError as e:
                if staging is not None:
                    discard_dir(staging)
                self.log(f"  Sound pack install failed: {e}", logging.ERROR)
                return io_failure(f"Could not install sound pack '{pkg.name}'", e)

        progress.complete()
        self.log(f"  Installed sound pack '{target.name}' ({len(files)} files)")
        return Success(Soundpack.from_path(target))

    def delete(self, soundpack: Soundpack) -> Result[Path]:
        if not soundpack.path.is_dir():
            return NotFoundFailure("Sound pack not found", path=soundpack.path)
        try:
            trashed = move_to_trash(soundpack.path, self.trash_dir)
        except OSError as e:
            return io_failure("Could not move sound pack to trash", e, path=soundpack.path)
        self.log(f"Sound pack '{soundpack.name}' moved to {trashed}")
        return Success(trashed)

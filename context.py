"""
Explicit wiring of the launcher core.

Callers build one ``LauncherContext`` from settings and pass it (or the
managers it holds) to whatever needs them.  Nothing in the core reaches for a
global instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from database import Database
from package_manager import PackageManager
from results import Result
from save_manager import SaveManager, Snapshot
from settings import AppPaths, LauncherSettings
from soundpack_manager import SoundpackManager

_log = logging.getLogger(__name__)


@dataclass
class LauncherContext:
    settings: LauncherSettings
    paths: AppPaths
    database: Database
    packages: PackageManager
    saves: SaveManager
    soundpacks: SoundpackManager

    @classmethod
    def build(
        cls,
        settings: LauncherSettings,
        database: Database | None = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> LauncherContext:
        paths = AppPaths.from_settings(settings).ensure()
        database = database or Database.for_file(paths.database_path)
        return cls(
            settings=settings,
            paths=paths,
            database=database,
            packages=PackageManager(
                database, paths.packages_dir, paths.package_trash_dir, log_callback=log_callback
            ),
            saves=SaveManager(
                paths.save_dir, paths.backups_dir, paths.save_trash_dir, log_callback=log_callback
            ),
            soundpacks=SoundpackManager(
                paths.soundpacks_dir, paths.soundpack_trash_dir, log_callback=log_callback
            ),
        )

    def shutdown(self) -> Optional[Result[Snapshot]]:
        """Run the backup-on-exit hook, then release the database."""
        result = None
        try:
            if self.settings.backup_on_exit and self.saves.save_files_exist():
                _log.info("Backing up saves on exit")
                result = self.saves.create_backup()
        finally:
            self.database.close()
        return result

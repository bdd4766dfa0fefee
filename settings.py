"""
Launcher settings and the filesystem layout derived from them.

Settings live in ``<data_root>/settings.json``.  Every other path the core
touches is derived from ``data_root`` by ``AppPaths``:

    <data_root>/
    ├── settings.json
    ├── launcher.db           <- package registry
    ├── logs/
    ├── userdir/
    │   ├── mods/             <- one directory per installed mod
    │   └── sound/            <- one directory per sound pack
    ├── save/                 <- live save directory (one subdirectory per world)
    ├── save_backups/         <- snapshot .zip files
    └── trash/
        ├── mods/
        ├── sound/
        └── saves/
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

SETTINGS_FILENAME = "settings.json"
HOME_ENV_VAR = "CDDA_LAUNCHER_HOME"

_log = logging.getLogger(__name__)


def default_data_root() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / "CDDALauncher"
    return Path("~/.cddalauncher").expanduser()


class LauncherSettings(BaseModel):
    """Persisted user preferences."""

    data_root: Path = Field(default_factory=default_data_root)
    game_executable: str | None = None
    debug: bool = False
    backup_on_exit: bool = False

    @field_validator("data_root")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return Path(os.path.expandvars(str(v))).expanduser()

    @field_validator("game_executable")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def settings_path(self) -> Path:
        return self.data_root / SETTINGS_FILENAME

    @classmethod
    def load(cls, data_root: Path | None = None) -> LauncherSettings:
        """Read settings from ``data_root`` (defaults when missing or unreadable)."""
        root = data_root or default_data_root()
        path = root / SETTINGS_FILENAME
        if not path.exists():
            return cls(data_root=root)
        try:
            settings = cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            _log.warning("Could not load settings from %s, using defaults: %s", path, e)
            return cls(data_root=root)
        if data_root is not None:
            settings.data_root = data_root
        return settings

    def save(self) -> Path:
        path = self.settings_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path


@dataclass(frozen=True)
class AppPaths:
    data_root: Path
    packages_dir: Path
    soundpacks_dir: Path
    save_dir: Path
    backups_dir: Path
    package_trash_dir: Path
    soundpack_trash_dir: Path
    save_trash_dir: Path
    database_path: Path
    log_dir: Path

    @classmethod
    def from_settings(cls, settings: LauncherSettings) -> AppPaths:
        root = settings.data_root
        return cls(
            data_root=root,
            packages_dir=root / "userdir" / "mods",
            soundpacks_dir=root / "userdir" / "sound",
            save_dir=root / "save",
            backups_dir=root / "save_backups",
            package_trash_dir=root / "trash" / "mods",
            soundpack_trash_dir=root / "trash" / "sound",
            save_trash_dir=root / "trash" / "saves",
            database_path=root / "launcher.db",
            log_dir=root / "logs",
        )

    def ensure(self) -> AppPaths:
        """Create every managed directory (not the live save directory)."""
        for path in (
            self.packages_dir,
            self.soundpacks_dir,
            self.backups_dir,
            self.package_trash_dir,
            self.soundpack_trash_dir,
            self.save_trash_dir,
            self.log_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)
        return self

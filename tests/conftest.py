"""
Shared fixtures and helpers for the CDDA Launcher test suite.
"""

import json
import zipfile
from pathlib import Path

import pytest

from database import Database
from package_manager import PackageManager
from save_manager import SaveManager
from settings import AppPaths, LauncherSettings
from soundpack_manager import SoundpackManager


def modinfo(mod_id: str, name: str | None = None) -> str:
    return json.dumps([{"type": "MOD_INFO", "id": mod_id, "name": name or mod_id}], indent=2)


def make_tree(root: Path, members: dict) -> Path:
    """Write {relative path: str|bytes} under root and return root."""
    for member, data in members.items():
        path = root / member
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, bytes):
            path.write_bytes(data)
        else:
            path.write_text(data, encoding="utf-8")
    return root


def make_zip(path: Path, members: dict) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


@pytest.fixture
def database():
    """In-memory registry, destroyed after the test."""
    db = Database.in_memory()
    yield db
    db.destroy()


@pytest.fixture
def paths(tmp_path):
    return AppPaths.from_settings(LauncherSettings(data_root=tmp_path / "data")).ensure()


@pytest.fixture
def package_manager(database, paths):
    return PackageManager(database, paths.packages_dir, paths.package_trash_dir, log_callback=lambda _: None)


@pytest.fixture
def save_manager(paths):
    return SaveManager(paths.save_dir, paths.backups_dir, paths.save_trash_dir, log_callback=lambda _: None)


@pytest.fixture
def soundpack_manager(paths):
    return SoundpackManager(paths.soundpacks_dir, paths.soundpack_trash_dir, log_callback=lambda _: None)

"""
Archive reading and writing for package sources and save snapshots.

Package sources may be .zip, .7z or .rar.  Save snapshots are always written
as .zip.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Callable, Optional

import py7zr
import rarfile

from hashing import list_files

_log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}

ProgressHook = Optional[Callable[[int, int], None]]


class ArchiveError(Exception):
    """The archive is corrupt or in an unsupported format."""

    def __init__(self, message: str, path: Path):
        super().__init__(message)
        self.path = path


def is_archive(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS


def list_archive_names(filepath: Path) -> list[str]:
    ext = filepath.suffix.lower()
    try:
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                names = zf.namelist()
        elif ext == ".7z":
            with py7zr.SevenZipFile(filepath, "r") as sz:
                names = sz.getnames()
        elif ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                names = [info.filename for info in rf.infolist()]
        else:
            raise ArchiveError(f"Unsupported archive format: {ext}", filepath)
    except (zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error) as e:
        raise ArchiveError(f"Corrupt archive: {e}", filepath) from e
    return [name.replace("\\", "/") for name in names]


def extract_all(filepath: Path, dest: Path, on_member: ProgressHook = None) -> int:
    """Extract every member of ``filepath`` into ``dest``.

    ``on_member(done, total)`` is called as members land on disk.  Returns the
    number of members extracted.  OSErrors propagate untouched.
    """
    ext = filepath.suffix.lower()
    dest.mkdir(parents=True, exist_ok=True)
    try:
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                members = zf.infolist()
                for done, member in enumerate(members, start=1):
                    zf.extract(member, dest)
                    if on_member:
                        on_member(done, len(members))
                return len(members)
        if ext == ".7z":
            with py7zr.SevenZipFile(filepath, "r") as sz:
                total = len(sz.getnames())
                # py7zr decodes solid blocks in one pass; report once at the end
                sz.extractall(path=dest)
            if on_member:
                on_member(total, total)
            return total
        if ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                members = rf.infolist()
                for done, member in enumerate(members, start=1):
                    rf.extract(member, dest)
                    if on_member:
                        on_member(done, len(members))
                return len(members)
    except (zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error) as e:
        raise ArchiveError(f"Corrupt archive: {e}", filepath) from e
    raise ArchiveError(f"Unsupported archive format: {ext}", filepath)


def write_zip(source_dir: Path, dest: Path, on_bytes: ProgressHook = None) -> int:
    """Zip the contents of ``source_dir`` into ``dest`` with relative member names.

    Every directory gets its own entry so empty ones survive a round trip.
    ``on_bytes(done, total)`` reports uncompressed bytes written so far.
    Returns the number of files archived.
    """
    dirs = sorted(
        (p for p in source_dir.rglob("*") if p.is_dir()),
        key=lambda p: p.relative_to(source_dir).as_posix(),
    )
    files = list_files(source_dir)
    total = sum(f.stat().st_size for f in files)
    done = 0
    with zipfile.ZipFile(dest, "w", zipfile.ZIP_DEFLATED) as zf:
        for d in dirs:
            zf.write(d, d.relative_to(source_dir).as_posix() + "/")
        for f in files:
            zf.write(f, f.relative_to(source_dir).as_posix())
            done += f.stat().st_size
            if on_bytes:
                on_bytes(done, total)
    _log.debug("Wrote %d dir(s), %d file(s), %d byte(s) to %s", len(dirs), len(files), total, dest)
    return len(files)

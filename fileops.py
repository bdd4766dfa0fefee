"""
Filesystem helpers shared by the managers: trash relocation, staging and
directory sizing.

Uninstalling a mod, deleting a sound pack or restoring over live saves never
deletes anything: the affected entry is moved into a trash directory.  An
existing trash entry is never overwritten.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

_log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"


# ── Trash ─────────────────────────────────────────────────────────────


def trash_destination(name: str, trash_root: Path, *, qualify: bool = False) -> Path:
    """Pick a free path for ``name`` inside ``trash_root``.

    The bare name is used when free (unless ``qualify``); otherwise the name is
    suffixed with a timestamp, and with a counter if that is taken too.
    """
    dest = trash_root / name
    if not qualify and not os.path.lexists(dest):
        return dest

    stamped = f"{name}_{datetime.now().strftime(TIMESTAMP_FORMAT)}"
    dest = trash_root / stamped
    counter = 1
    while os.path.lexists(dest):
        dest = trash_root / f"{stamped}_{counter}"
        counter += 1
    return dest


def move_to_trash(path: Path, trash_root: Path, *, qualify: bool = False) -> Path:
    """Move ``path`` (file or directory) into ``trash_root`` and return where it landed."""
    trash_root.mkdir(parents=True, exist_ok=True)
    dest = trash_destination(path.name, trash_root, qualify=qualify)
    shutil.move(str(path), str(dest))
    _log.info("Moved %s to trash at %s", path, dest)
    return dest


# ── Staging ───────────────────────────────────────────────────────────


def make_staging_dir(parent: Path, name: str) -> Path:
    """Create a hidden scratch directory next to where ``name`` will live.

    Same parent means the final rename stays on one filesystem.
    """
    parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f".{name}.", suffix=".staging", dir=parent))


def copy_files(
    src_root: Path,
    rel_paths: Iterable[str],
    dest_root: Path,
    on_file: Optional[Callable[[str], None]] = None,
) -> None:
    """Copy each POSIX relative path from ``src_root`` to ``dest_root``, keeping mtimes."""
    for rel in rel_paths:
        src = src_root / rel
        dst = dest_root / rel
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
        if on_file:
            on_file(rel)


def discard_dir(path: Path) -> None:
    """Remove a scratch directory this process created itself."""
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)


def prune_empty_dirs(start: Path, stop_at: Path) -> None:
    """Remove empty directories from ``start`` upward, never touching ``stop_at``."""
    current = start
    while current != stop_at and stop_at in current.parents:
        if not current.is_dir() or any(current.iterdir()):
            break
        current.rmdir()
        current = current.parent


# ── Sizing ────────────────────────────────────────────────────────────


def directory_size(path: Path) -> int:
    """Total bytes under ``path``.  Unreadable entries are skipped."""
    total = 0
    for root, _dirs, files in os.walk(path, onerror=lambda e: _log.debug("Skipping %s: %s", e.filename, e)):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError as e:
                _log.debug("Skipping %s: %s", e.filename, e)
    return total

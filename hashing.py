"""
Content hashing for installed package files.

Digests depend on file bytes only, never on the path or timestamps, so a file
that is copied, moved or touched keeps its hash.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Optional

CHUNK_SIZE = 1024 * 1024


class HashingError(OSError):
    """A file could not be read while computing its digest."""


def hash_file(path: Path) -> str:
    """Return the SHA-256 hex digest of ``path``, streamed in 1 MiB chunks."""
    h = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(chunk)
    except OSError as e:
        raise HashingError(e.errno, f"Could not hash file: {e.strerror or e}", str(path)) from e
    return h.hexdigest()


def list_files(root: Path) -> list[Path]:
    """Recursively list regular files under root in stable order."""
    files = [p for p in root.rglob("*") if p.is_file()]
    files.sort(key=lambda p: p.relative_to(root).as_posix())
    return files


def hash_tree(
    root: Path, on_file: Optional[Callable[[int, int], None]] = None
) -> dict[str, str]:
    """Map every file under ``root`` (POSIX relative path) to its digest.

    ``on_file(done, total)`` is called after each file is hashed.
    """
    files = list_files(root)
    digests: dict[str, str] = {}
    for done, f in enumerate(files, start=1):
        digests[f.relative_to(root).as_posix()] = hash_file(f)
        if on_file:
            on_file(done, len(files))
    return digests

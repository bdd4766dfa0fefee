"""
Package source validation.

A package source is either a directory or an archive (.zip/.7z/.rar).  Both
are normalized into a working tree whose root holds the manifest file.

Root detection
--------------
1. Manifest at the top of the working tree -> that is the package root.
2. Otherwise, if the working tree contains exactly one entry and it is a
   directory holding the manifest, that directory is the root:

       my_mod.zip
       └── my_mod/
           ├── modinfo.json
           └── items/...

3. Anything else is rejected.  Deeper nesting is never searched.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from archives import SUPPORTED_EXTENSIONS, ArchiveError, extract_all
from results import Result, Success, ValidationFailure, io_failure

_log = logging.getLogger(__name__)

MOD_MANIFEST_FILENAME = "modinfo.json"


@dataclass
class ValidatedPackage:
    """A normalized package tree.  ``temp_dir`` is set when the source was extracted."""

    root: Path
    name: str
    manifest: str
    temp_dir: Path | None = None

    def cleanup(self) -> None:
        if self.temp_dir is not None and self.temp_dir.exists():
            shutil.rmtree(self.temp_dir, ignore_errors=True)
            _log.debug("Removed extraction directory %s", self.temp_dir)
        self.temp_dir = None

    def __enter__(self) -> ValidatedPackage:
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()


class PackageValidator:
    def __init__(self, manifest_filename: str = MOD_MANIFEST_FILENAME):
        self.manifest_filename = manifest_filename

    def validate(self, source: Path | str) -> Result[ValidatedPackage]:
        source = Path(source)
        if not source.exists():
            return ValidationFailure("Package source does not exist", path=source)

        if source.is_dir():
            return self._validate_tree(source, default_name=source.name, temp_dir=None)

        if source.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return ValidationFailure(
                f"Unsupported package source (expected a directory or one of "
                f"{', '.join(sorted(SUPPORTED_EXTENSIONS))})",
                path=source,
            )

        temp_dir = Path(tempfile.mkdtemp(prefix="cddalauncher-"))
        try:
            _log.debug("Extracting %s into %s", source, temp_dir)
            extract_all(source, temp_dir)
        except ArchiveError as e:
            shutil.rmtree(temp_dir, ignore_errors=True)
            return ValidationFailure(str(e), path=e.path, cause=e)
        except OSError as e:
            shutil.rmtree(temp_dir, ignore_errors=True)
            return io_failure("Could not extract package archive", e, path=source)

        result = self._validate_tree(temp_dir, default_name=source.stem, temp_dir=temp_dir)
        if not result.ok:
            shutil.rmtree(temp_dir, ignore_errors=True)
        return result

    def find_root(self, tree: Path) -> Path | None:
        if (tree / self.manifest_filename).is_file():
            return tree
        entries = list(tree.iterdir())
        if len(entries) == 1 and entries[0].is_dir():
            if (entries[0] / self.manifest_filename).is_file():
                return entries[0]
        return None

    def _validate_tree(
        self, tree: Path, default_name: str, temp_dir: Path | None
    ) -> Result[ValidatedPackage]:
        try:
            root = self.find_root(tree)
        except OSError as e:
            return io_failure("Could not read package source", e, path=tree)
        if root is None:
            return ValidationFailure(f"Missing manifest: {self.manifest_filename}", path=tree)

        manifest_path = root / self.manifest_filename
        try:
            manifest = manifest_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            return ValidationFailure("Manifest is not valid UTF-8", path=manifest_path, cause=e)
        except OSError as e:
            return io_failure("Could not read manifest", e, path=manifest_path)

        name = root.name if root != tree else default_name
        _log.debug("Validated package %r at %s", name, root)
        return Success(ValidatedPackage(root=root, name=name, manifest=manifest, temp_dir=temp_dir))

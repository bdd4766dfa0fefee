"""
Result values returned by every public launcher operation.

An operation either succeeds with a payload (``Success``) or fails with one of
the typed ``Failure`` subclasses below.  Expected failures are never raised;
callers branch on ``result.ok``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T = None

    ok = True

    @property
    def message(self) -> str:
        return "OK"


@dataclass(frozen=True)
class Failure:
    """Base failure.  ``path`` names the offending file when there is one."""

    message: str
    path: Path | None = None
    cause: BaseException | None = None

    ok = False
    kind = "failure"

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.message} [{self.path}]"
        return self.message


@dataclass(frozen=True)
class ValidationFailure(Failure):
    """Malformed or incomplete input (package source, snapshot name, ...)."""

    kind = "validation"


@dataclass(frozen=True)
class NotFoundFailure(Failure):
    """The referenced package, snapshot or sound pack does not exist."""

    kind = "not_found"


@dataclass(frozen=True)
class IOFailure(Failure):
    """Read/write/copy/archive error, tagged with the path that failed."""

    kind = "io"


@dataclass(frozen=True)
class IntegrityFailure(Failure):
    """Registry and filesystem (or the store's own constraints) disagree."""

    kind = "integrity"


Result = Union[Success[T], Failure]


def io_failure(message: str, exc: OSError, path: Path | str | None = None) -> IOFailure:
    """Build an IOFailure from an OSError, preferring the path the OS reported."""
    culprit = path if path is not None else exc.filename
    return IOFailure(
        f"{message}: {exc.strerror or exc}",
        path=Path(culprit) if culprit is not None else None,
        cause=exc,
    )

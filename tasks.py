"""
Background execution and progress reporting.

Long operations (install, backup, restore) are returned to the caller as a
``BackgroundTask``: nothing runs until the caller calls ``start()`` (or
``run()`` to execute inline).  Progress flows through a ``ProgressReporter``,
which guarantees the callback sees non-decreasing percentages and sees 100
exactly once, after the operation has finished writing.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

from results import Failure

_log = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int], None]


def DO_NOTHING(*_args, **_kwargs) -> None:
    """Collaborator stand-in for callers that do not need a callback."""


class ProgressReporter:
    """Thread-safe, monotonic 0..100 progress sink.

    ``report()`` is capped at 99; only ``complete()`` emits 100.  The current
    value can also be polled through ``percent``.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback or DO_NOTHING
        self._lock = threading.Lock()
        self._percent = 0
        self._completed = False

    @property
    def percent(self) -> int:
        return self._percent

    @property
    def completed(self) -> bool:
        return self._completed

    def report(self, percent: float) -> None:
        value = max(0, min(99, int(percent)))
        with self._lock:
            if self._completed or value <= self._percent:
                return
            self._percent = value
            self._callback(value)

    def stage(self, start: float, end: float) -> Callable[[int, int], None]:
        """Map ``(done, total)`` counts onto the ``start..end`` percent range."""

        def _advance(done: int, total: int) -> None:
            fraction = done / total if total else 1.0
            self.report(start + (end - start) * fraction)

        return _advance

    def complete(self) -> None:
        with self._lock:
            if self._completed:
                return
            self._completed = True
            self._percent = 100
            self._callback(100)


class TaskState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTask(Generic[T]):
    """Run a blocking operation off the caller's thread.

    ``func`` returns a result value; a ``Failure`` marks the task FAILED.  An
    unexpected exception also marks it FAILED, is logged, and is re-raised
    from ``join()``.
    """

    def __init__(self, func: Callable[..., T], *args, name: str | None = None, **kwargs):
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self.name = name or getattr(func, "__name__", "task")
        self.state = TaskState.IDLE
        self.result: Optional[T] = None
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None
        self._done = threading.Event()
        self._done_callbacks: list[Callable[[BackgroundTask[T]], None]] = []
        self._lock = threading.Lock()

    def add_done_callback(self, callback: Callable[[BackgroundTask[T]], None]) -> None:
        with self._lock:
            if not self._done.is_set():
                self._done_callbacks.append(callback)
                return
        callback(self)

    def start(self) -> BackgroundTask[T]:
        with self._lock:
            if self.state is not TaskState.IDLE:
                raise RuntimeError(f"Task {self.name!r} already started")
            self.state = TaskState.RUNNING
            self._thread = threading.Thread(target=self._execute, name=self.name, daemon=True)
        self._thread.start()
        return self

    def run(self) -> T:
        """Execute inline on the calling thread and return the result."""
        with self._lock:
            if self.state is not TaskState.IDLE:
                raise RuntimeError(f"Task {self.name!r} already started")
            self.state = TaskState.RUNNING
        self._execute()
        return self._outcome()

    def join(self, timeout: float | None = None) -> Optional[T]:
        """Wait for completion and return the result (None on timeout)."""
        if self.state is TaskState.IDLE:
            raise RuntimeError(f"Task {self.name!r} was never started")
        if not self._done.wait(timeout):
            return None
        return self._outcome()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def _outcome(self) -> T:
        if self.error is not None:
            raise self.error
        return self.result

    def _execute(self) -> None:
        try:
            self.result = self.func(*self.args, **self.kwargs)
            failed = isinstance(self.result, Failure)
            if failed:
                _log.warning("Task %s failed: %s", self.name, self.result)
        except Exception as e:
            _log.exception("Task %s crashed", self.name)
            self.error = e
            failed = True
        with self._lock:
            self.state = TaskState.FAILED if failed else TaskState.COMPLETED
            callbacks, self._done_callbacks = self._done_callbacks, []
            self._done.set()
        for callback in callbacks:
            callback(self)

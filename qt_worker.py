"""
Qt adapter for running launcher operations from a PySide6 shell.

The shell keeps its widgets on the GUI thread and hands long operations to a
``TaskWorker``; progress and the final outcome come back as queued signals.
"""

from __future__ import annotations

from PySide6.QtCore import QThread, Signal

from results import Failure


class TaskWorker(QThread):
    """Run one core operation off the GUI thread.

    ``func`` must accept an ``on_progress`` keyword and return a result
    value (``Success`` or ``Failure``).
    """

    progress_signal = Signal(int)
    finished_signal = Signal(bool, str)  # success, message

    def __init__(self, func, *args, **kwargs):
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self.result = None

    def run(self):
        try:
            self.result = self.func(*self.args, on_progress=self.progress_signal.emit, **self.kwargs)
        except Exception as e:
            self.finished_signal.emit(False, str(e))
            return
        if isinstance(self.result, Failure):
            self.finished_signal.emit(False, str(self.result))
        else:
            self.finished_signal.emit(True, "Done")

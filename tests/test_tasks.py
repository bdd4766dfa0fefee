"""
Tests for progress reporting and background tasks.
"""

import threading

import pytest

from results import NotFoundFailure, Success
from tasks import BackgroundTask, ProgressReporter, TaskState


def test_progress_is_clamped_and_monotonic():
    seen = []
    progress = ProgressReporter(seen.append)
    for value in (-5, 10, 5, 10, 42.7, 150, 30):
        progress.report(value)
    assert seen == [10, 42, 99]
    assert progress.percent == 99
    assert not progress.completed


def test_complete_emits_100_exactly_once():
    seen = []
    progress = ProgressReporter(seen.append)
    progress.report(50)
    progress.complete()
    progress.complete()
    progress.report(70)
    assert seen == [50, 100]
    assert progress.completed


def test_stage_maps_counts_onto_range():
    seen = []
    progress = ProgressReporter(seen.append)
    stage = progress.stage(40, 80)
    stage(1, 4)
    stage(2, 4)
    stage(4, 4)
    assert seen == [50, 60, 80]


def test_stage_with_nothing_to_do_jumps_to_end():
    progress = ProgressReporter()
    progress.stage(0, 40)(0, 0)
    assert progress.percent == 40


def test_task_is_idle_until_started():
    calls = []
    task = BackgroundTask(lambda: calls.append(1) or Success(1))
    assert task.state is TaskState.IDLE
    assert calls == []
    with pytest.raises(RuntimeError):
        task.join()


def test_task_runs_on_another_thread():
    threads = []

    def work():
        threads.append(threading.current_thread())
        return Success("done")

    task = BackgroundTask(work, name="worker")
    result = task.start().join(timeout=10)

    assert result.value == "done"
    assert task.state is TaskState.COMPLETED
    assert task.done
    assert threads[0] is not threading.current_thread()
    assert threads[0].name == "worker"


def test_task_cannot_start_twice():
    task = BackgroundTask(lambda: Success()).start()
    task.join(timeout=10)
    with pytest.raises(RuntimeError):
        task.start()


def test_failure_result_marks_task_failed():
    task = BackgroundTask(lambda: NotFoundFailure("gone"))
    result = task.run()
    assert isinstance(result, NotFoundFailure)
    assert task.state is TaskState.FAILED


def test_unexpected_exception_is_reraised_from_join():
    def boom():
        raise ValueError("bad")

    task = BackgroundTask(boom).start()
    with pytest.raises(ValueError):
        task.join(timeout=10)
    assert task.state is TaskState.FAILED
    assert isinstance(task.error, ValueError)


def test_join_times_out_while_running():
    release = threading.Event()
    task = BackgroundTask(lambda: release.wait(10) and Success()).start()
    assert task.join(timeout=0.01) is None
    assert not task.done
    release.set()
    assert task.join(timeout=10).ok


def test_done_callbacks_fire_before_and_after_completion():
    fired = []
    task = BackgroundTask(lambda: Success(3))
    task.add_done_callback(lambda t: fired.append(("early", t.state)))
    task.run()
    task.add_done_callback(lambda t: fired.append(("late", t.state)))
    assert fired == [("early", TaskState.COMPLETED), ("late", TaskState.COMPLETED)]


def test_args_are_forwarded():
    task = BackgroundTask(lambda a, b=0: Success(a + b), 2, b=3)
    assert task.run().value == 5

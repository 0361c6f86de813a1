"""Tests for the thread-pool scheduler."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator

import pytest
from conftest import ConcurrencyRecorder, make_batch, make_result

from cargs.batching import Batch, build_batches
from cargs.exceptions import SchedulerFault
from cargs.result import InvocationEvent, InvocationResult, Outcome
from cargs.scheduler import Scheduler, run_batches


def _batches(count: int) -> list[Batch]:
    return [make_batch(i, (f"t{i}",)) for i in range(count)]


def _wait_for(predicate, timeout: float = 5.0) -> bool:  # noqa: ANN001
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestRunBatches:
    def test_empty_input(self, recorder: ConcurrencyRecorder) -> None:
        run = run_batches([], recorder)
        assert len(run) == 0
        assert run.exit_code == 0
        assert not run.cancelled
        assert recorder.started == []

    def test_every_batch_launched_once(self, recorder: ConcurrencyRecorder) -> None:
        run = run_batches(_batches(6), recorder, max_procs=3)
        assert sorted(recorder.started) == [0, 1, 2, 3, 4, 5]
        assert [r.index for r in run.results] == [0, 1, 2, 3, 4, 5]
        assert run.all_succeeded
        assert run.exit_code == 0

    def test_launch_order_follows_batch_order(self, recorder: ConcurrencyRecorder) -> None:
        run_batches(_batches(5), recorder, max_procs=1)
        assert recorder.started == [0, 1, 2, 3, 4]

    def test_max_procs_one_runs_sequentially(self) -> None:
        log: list[str] = []
        lock = threading.Lock()

        def launch(batch: Batch) -> InvocationResult:
            with lock:
                log.append(f"start {batch.index}")
            time.sleep(0.02)
            with lock:
                log.append(f"end {batch.index}")
            return make_result(batch)

        run = run_batches(_batches(3), launch, max_procs=1)
        assert log == ["start 0", "end 0", "start 1", "end 1", "start 2", "end 2"]
        assert run.peak_active == 1

    def test_bound_is_never_exceeded(self) -> None:
        gate = threading.Event()
        recorder = ConcurrencyRecorder(gate=gate)
        scheduler = Scheduler(2)
        outcome: dict[str, object] = {}

        thread = threading.Thread(target=lambda: outcome.update(run=scheduler.run(_batches(5), recorder)))
        thread.start()
        try:
            assert _wait_for(lambda: recorder.active == 2)
            time.sleep(0.1)
            assert recorder.active == 2
            assert sorted(recorder.started) == [0, 1]
            assert scheduler.active == 2
        finally:
            gate.set()
            thread.join(timeout=10)

        run = outcome["run"]
        assert len(run) == 5  # type: ignore[arg-type]
        assert recorder.peak == 2
        assert scheduler.peak_active == 2

    def test_zero_means_unbounded(self) -> None:
        count = 6
        barrier = threading.Barrier(count, timeout=5)

        def launch(batch: Batch) -> InvocationResult:
            barrier.wait()
            return make_result(batch)

        run = run_batches(_batches(count), launch, max_procs=0)
        assert len(run) == count
        assert run.peak_active == count

    def test_completion_order_differs_from_submission_order(self) -> None:
        gate = threading.Event()

        def launch(batch: Batch) -> InvocationResult:
            if batch.index == 0:
                gate.wait(timeout=5)
            return make_result(batch)

        def on_result(event: InvocationEvent) -> None:
            if event.index == 1:
                gate.set()

        run = run_batches(_batches(2), launch, max_procs=2, on_result=on_result)
        assert run.completion_order == (1, 0)
        assert [r.index for r in run.results] == [0, 1]

    def test_on_result_called_in_completion_order(self, recorder: ConcurrencyRecorder) -> None:
        events: list[InvocationEvent] = []
        run_batches(_batches(4), recorder, max_procs=1, on_result=events.append)
        assert [e.index for e in events] == [0, 1, 2, 3]
        assert [e.completed for e in events] == [1, 2, 3, 4]
        assert all(e.active == 0 for e in events)

    def test_failures_do_not_stop_the_run(self) -> None:
        recorder = ConcurrencyRecorder(outcome_for=lambda b: (Outcome.EXITED, 1 if b.index == 1 else 0))
        run = run_batches(_batches(3), recorder, max_procs=1)
        assert len(run) == 3
        assert len(run.failed) == 1
        assert run.exit_code == 123
        assert not run.cancelled

    def test_spawn_failure_precedence(self) -> None:
        recorder = ConcurrencyRecorder(
            outcome_for=lambda b: (Outcome.NOT_FOUND, None) if b.index == 1 else (Outcome.EXITED, 0)
        )
        run = run_batches(_batches(3), recorder, max_procs=2)
        assert len(run.succeeded) == 2
        assert run.exit_code == 127

    def test_consumes_batches_lazily(self) -> None:
        first_started = threading.Event()
        waited: list[bool] = []

        def tokens() -> Iterator[str]:
            yield "a"
            waited.append(first_started.wait(timeout=5))
            yield "b"

        def launch(batch: Batch) -> InvocationResult:
            if batch.index == 0:
                first_started.set()
            return make_result(batch)

        run = run_batches(build_batches(tokens(), 1), launch, max_procs=1)
        assert waited == [True]
        assert len(run) == 2


class TestCancellation:
    def test_cancel_stops_admission(self, recorder: ConcurrencyRecorder) -> None:
        scheduler = Scheduler(1, on_result=lambda event: scheduler.cancel())
        run = scheduler.run(_batches(5), recorder)
        assert len(run) == 1
        assert run.cancelled
        assert run.status.cancelled
        assert recorder.started == [0]

    def test_cancel_lets_running_invocations_finish(self) -> None:
        gate = threading.Event()
        recorder = ConcurrencyRecorder(gate=gate)
        scheduler = Scheduler(2)
        outcome: dict[str, object] = {}

        thread = threading.Thread(target=lambda: outcome.update(run=scheduler.run(_batches(6), recorder)))
        thread.start()
        assert _wait_for(lambda: recorder.active == 2)
        scheduler.cancel()
        gate.set()
        thread.join(timeout=10)

        run = outcome["run"]
        assert len(run) == 2  # type: ignore[arg-type]
        assert run.all_succeeded  # type: ignore[attr-defined]
        assert run.cancelled  # type: ignore[attr-defined]

    def test_cancel_before_run(self, recorder: ConcurrencyRecorder) -> None:
        scheduler = Scheduler(1)
        scheduler.cancel()
        run = scheduler.run(_batches(3), recorder)
        assert len(run) == 0
        assert run.cancelled
        assert run.exit_code == 0

    def test_stop_on_error(self) -> None:
        recorder = ConcurrencyRecorder(outcome_for=lambda b: (Outcome.EXITED, 2 if b.index == 1 else 0))
        run = run_batches(_batches(5), recorder, max_procs=1, stop_on_error=True)
        assert [r.index for r in run.results] == [0, 1]
        assert run.cancelled
        assert run.exit_code == 123

    def test_stop_on_error_off_by_default(self) -> None:
        recorder = ConcurrencyRecorder(outcome_for=lambda b: (Outcome.EXITED, 2))
        run = run_batches(_batches(3), recorder, max_procs=1)
        assert len(run) == 3

    def test_failure_in_last_batch_is_not_an_early_stop(self) -> None:
        recorder = ConcurrencyRecorder(outcome_for=lambda b: (Outcome.EXITED, 2 if b.index == 2 else 0))
        run = run_batches(_batches(3), recorder, max_procs=3, stop_on_error=True)
        assert len(run) == 3
        assert not run.cancelled
        assert run.exit_code == 123

    def test_cancel_with_no_input_left_is_not_an_early_stop(self, recorder: ConcurrencyRecorder) -> None:
        scheduler = Scheduler(1)
        scheduler.cancel()
        run = scheduler.run([], recorder)
        assert len(run) == 0
        assert not run.cancelled


class TestSchedulerFaults:
    def test_launch_raising_is_fatal(self) -> None:
        def launch(batch: Batch) -> InvocationResult:
            if batch.index == 1:
                raise RuntimeError("boom")
            return make_result(batch)

        with pytest.raises(SchedulerFault, match="launch raised for batch #1") as excinfo:
            run_batches(_batches(4), launch, max_procs=1)
        assert isinstance(excinfo.value.cause, RuntimeError)

    def test_wrong_result_is_fatal(self) -> None:
        def launch(batch: Batch) -> InvocationResult:
            return make_result(make_batch(batch.index + 10))

        with pytest.raises(SchedulerFault, match="invalid result"):
            run_batches(_batches(2), launch)

    def test_on_result_raising_is_fatal(self, recorder: ConcurrencyRecorder) -> None:
        def on_result(event: InvocationEvent) -> None:
            raise ValueError("bad callback")

        with pytest.raises(SchedulerFault, match="on_result callback failed"):
            run_batches(_batches(2), recorder, on_result=on_result)

    def test_running_invocations_finish_before_fault_is_raised(self) -> None:
        second_started = threading.Event()
        finished: list[int] = []

        def launch(batch: Batch) -> InvocationResult:
            if batch.index == 0:
                second_started.wait(timeout=5)
                raise RuntimeError("boom")
            second_started.set()
            time.sleep(0.1)
            finished.append(batch.index)
            return make_result(batch)

        with pytest.raises(SchedulerFault):
            run_batches(_batches(2), launch, max_procs=2)
        assert finished == [1]

    def test_source_errors_propagate(self, recorder: ConcurrencyRecorder) -> None:
        def batches() -> Iterator[Batch]:
            yield make_batch(0)
            raise OSError("read failed")

        with pytest.raises(OSError, match="read failed"):
            run_batches(batches(), recorder)
        assert recorder.started == [0]


class TestScheduler:
    def test_negative_max_procs_rejected(self) -> None:
        with pytest.raises(ValueError, match="must not be negative"):
            Scheduler(-1)

    def test_runs_only_once(self, recorder: ConcurrencyRecorder) -> None:
        scheduler = Scheduler(1)
        scheduler.run(_batches(1), recorder)
        with pytest.raises(RuntimeError, match="only run once"):
            scheduler.run(_batches(1), recorder)

    def test_slot_accounting_returns_to_zero(self, recorder: ConcurrencyRecorder) -> None:
        scheduler = Scheduler(3)
        scheduler.run(_batches(10), recorder)
        assert scheduler.active == 0
        assert 1 <= scheduler.peak_active <= 3

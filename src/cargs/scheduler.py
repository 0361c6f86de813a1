"""Bounded concurrent scheduling with a thread pool.

Runs one ``launch(batch)`` call per batch on a
:class:`~concurrent.futures.ThreadPoolExecutor`.  Thread-based parallelism
is appropriate because launching delegates to :mod:`subprocess`, which
releases the GIL while waiting for the child.

The controlling thread pulls batches lazily, waits for a free slot, and
hands each batch to the pool.  All slot accounting and result collection
happens in one :class:`_SchedulerState` object under a single condition
variable, so completions from different worker threads are serialized.

Example::

    from cargs import CommandTemplate, build_batches, run_batches
    from cargs.runner import run_one

    template = CommandTemplate(("echo",))
    batches = build_batches(["a", "b", "c", "d", "e"], max_args=2)
    run = run_batches(batches, lambda b: run_one(template.instantiate(b)), max_procs=2)
    print(run.exit_code)
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from .batching import Batch
from .exceptions import SchedulerFault
from .result import InvocationEvent, InvocationResult, RunResult

log = logging.getLogger(__name__)

# Admission is gated by the scheduler state; the pool itself must never queue.
_UNBOUNDED_WORKERS = sys.maxsize


class _SchedulerState:
    """Slot counter and result collection shared with worker threads."""

    def __init__(
        self,
        bound: int | None,
        *,
        stop_on_error: bool,
        on_result: Callable[[InvocationEvent], object] | None,
    ) -> None:
        self._cond = threading.Condition()
        self.bound = bound
        self.stop_on_error = stop_on_error
        self.on_result = on_result
        self.active = 0
        self.peak_active = 0
        self.completed: list[InvocationResult] = []
        self.cancelled = False
        self.fault: SchedulerFault | None = None

    def admit(self) -> bool:
        """Block until a slot is free and take it.

        Returns:
            ``False`` if the run was cancelled while waiting.
        """
        with self._cond:
            while not self.cancelled and self.bound is not None and self.active >= self.bound:
                self._cond.wait()
            if self.cancelled:
                return False
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            return True

    def complete(self, batch: Batch, result: object) -> None:
        """Record *result* and release the slot taken for *batch*."""
        with self._cond:
            if self.active <= 0:
                self._fail(SchedulerFault(f"slot released twice (batch #{batch.index})"))
                return
            self.active -= 1
            self._cond.notify_all()

            if not isinstance(result, InvocationResult) or result.index != batch.index:
                self._fail(SchedulerFault(f"launch returned an invalid result for batch #{batch.index}"))
                return

            self.completed.append(result)
            if self.stop_on_error and not result.success and not self.cancelled:
                log.info("stopping admission after failure: %s", result.describe())
                self.cancelled = True

            if self.on_result is not None:
                event = InvocationEvent(result=result, completed=len(self.completed), active=self.active)
                try:
                    self.on_result(event)
                except Exception as exc:
                    self._fail(SchedulerFault("on_result callback failed", cause=exc))

    def abandon(self, batch: Batch, exc: BaseException) -> None:
        """Release the slot of a launch that raised instead of returning."""
        with self._cond:
            self.active -= 1
            self._fail(SchedulerFault(f"launch raised for batch #{batch.index}", cause=exc))

    def cancel(self) -> None:
        with self._cond:
            self.cancelled = True
            self._cond.notify_all()

    def _fail(self, fault: SchedulerFault) -> None:
        log.error("%s", fault)
        if self.fault is None:
            self.fault = fault
        self.cancelled = True
        self._cond.notify_all()


class Scheduler:
    """Runs batches with at most *max_procs* launches in flight.

    A scheduler runs once.  :meth:`cancel` may be called from any thread
    or from a signal handler; it stops admission of new batches while
    letting running invocations finish.

    Args:
        max_procs: Maximum number of concurrent launches.  ``0`` means no
            limit: every batch is launched as soon as it is available.
        stop_on_error: Stop admitting batches after the first result that
            is not a success.
        on_result: Optional callback invoked with an
            :class:`~cargs.result.InvocationEvent` for every finished
            invocation, in completion order.  Calls are serialized and
            should return quickly.
    """

    def __init__(
        self,
        max_procs: int = 1,
        *,
        stop_on_error: bool = False,
        on_result: Callable[[InvocationEvent], object] | None = None,
    ) -> None:
        if max_procs < 0:
            msg = f"max_procs must not be negative, got {max_procs}"
            raise ValueError(msg)
        self.max_procs = max_procs
        self._state = _SchedulerState(
            max_procs or None,
            stop_on_error=stop_on_error,
            on_result=on_result,
        )
        self._started = False

    @property
    def active(self) -> int:
        """Number of launches currently in flight."""
        return self._state.active

    @property
    def peak_active(self) -> int:
        return self._state.peak_active

    @property
    def cancelled(self) -> bool:
        return self._state.cancelled

    def cancel(self) -> None:
        """Stop admitting new batches.  Running launches are not interrupted."""
        self._state.cancel()

    def run(self, batches: Iterable[Batch], launch: Callable[[Batch], InvocationResult]) -> RunResult:
        """Launch every batch and wait for all launches to finish.

        Batches are launched in the order *batches* yields them.  Results
        are collected in completion order and returned in batch order.

        Args:
            batches: Batches to run.  Consumed lazily.
            launch: Runs one batch and returns its result.  It must not
                raise; per-invocation failures belong in the result.

        Returns:
            A :class:`~cargs.result.RunResult`.

        Raises:
            SchedulerFault: If *launch* raised, returned a result for the
                wrong batch, or slot accounting broke.  Raised after every
                running launch has finished.
            RuntimeError: If the scheduler has already run.
        """
        if self._started:
            msg = "a Scheduler can only run once"
            raise RuntimeError(msg)
        self._started = True

        state = self._state
        stopped_early = False
        start = time.monotonic()

        with ThreadPoolExecutor(
            max_workers=self.max_procs or _UNBOUNDED_WORKERS,
            thread_name_prefix="cargs",
        ) as executor:
            it = iter(batches)
            while True:
                # Pull first: a run stopped early only if a batch was refused.
                try:
                    batch = next(it)
                except StopIteration:
                    break
                if not state.admit():
                    stopped_early = True
                    break
                log.debug("admitting batch #%d (%d active)", batch.index, state.active)
                executor.submit(self._launch, launch, batch)

        elapsed = time.monotonic() - start

        if state.fault is not None:
            raise state.fault

        return RunResult.from_completed(
            state.completed,
            cancelled=stopped_early,
            total_runtime_seconds=elapsed,
            peak_active=state.peak_active,
        )

    def _launch(self, launch: Callable[[Batch], InvocationResult], batch: Batch) -> None:
        try:
            result = launch(batch)
        except Exception as exc:
            self._state.abandon(batch, exc)
            return
        self._state.complete(batch, result)


def run_batches(
    batches: Iterable[Batch],
    launch: Callable[[Batch], InvocationResult],
    *,
    max_procs: int = 1,
    stop_on_error: bool = False,
    on_result: Callable[[InvocationEvent], object] | None = None,
) -> RunResult:
    """Run *batches* with a fresh :class:`Scheduler`.

    See :meth:`Scheduler.run` for details.
    """
    scheduler = Scheduler(max_procs, stop_on_error=stop_on_error, on_result=on_result)
    return scheduler.run(batches, launch)

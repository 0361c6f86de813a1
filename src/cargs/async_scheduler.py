"""Async batch scheduling with semaphore-based admission.

Non-blocking counterpart to :mod:`cargs.scheduler` that uses
:mod:`asyncio` tasks instead of a thread pool.

Two entry points are provided:

* :func:`async_run_batches` - runs every batch and returns a
  :class:`~cargs.result.RunResult`, mirroring the sync API.
* :func:`async_run_batches_stream` - an async generator that yields
  :class:`~cargs.result.InvocationEvent` objects as invocations finish.

Batches may come from a regular or an asynchronous iterable.  A regular
iterable is advanced in a worker thread with :func:`asyncio.to_thread`,
so a token source that blocks on input never stalls the event loop.

Example::

    import asyncio
    from cargs import CommandTemplate, build_batches
    from cargs.async_runner import async_run_one
    from cargs.async_scheduler import async_run_batches_stream

    async def main():
        template = CommandTemplate(("gzip", "-9"))
        batches = build_batches(paths, max_args=8)
        launch = lambda b: async_run_one(template.instantiate(b))
        async for event in async_run_batches_stream(batches, launch, max_procs=4):
            print(event.result.describe())

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

from .batching import Batch
from .exceptions import SchedulerFault
from .result import InvocationEvent, InvocationResult, RunResult

log = logging.getLogger(__name__)

_FINISHED: Any = object()

AsyncLaunch = Callable[[Batch], Awaitable[InvocationResult]]


async def _iterate(batches: Iterable[Batch] | AsyncIterable[Batch]) -> AsyncIterator[Batch]:
    if isinstance(batches, AsyncIterable):
        async for batch in batches:
            yield batch
        return
    it = iter(batches)
    while True:
        batch = await asyncio.to_thread(next, it, _FINISHED)
        if batch is _FINISHED:
            return
        yield batch


class _AsyncRun:
    """State of one async run.  Only touched from the event loop thread."""

    def __init__(
        self,
        batches: Iterable[Batch] | AsyncIterable[Batch],
        launch: AsyncLaunch,
        *,
        max_procs: int,
        stop_on_error: bool,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if max_procs < 0:
            msg = f"max_procs must not be negative, got {max_procs}"
            raise ValueError(msg)
        self.batches = batches
        self.launch = launch
        self.semaphore = asyncio.Semaphore(max_procs) if max_procs else None
        self.stop_on_error = stop_on_error
        self.cancel_event = cancel_event
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.tasks: set[asyncio.Task[None]] = set()
        self.active = 0
        self.peak_active = 0
        self.completed: list[InvocationResult] = []
        self.stopped = False
        self.stopped_early = False
        self.fault: SchedulerFault | None = None
        self.start = time.monotonic()

    @property
    def cancelled(self) -> bool:
        return self.stopped or (self.cancel_event is not None and self.cancel_event.is_set())

    async def events(self) -> AsyncIterator[InvocationEvent]:
        producer = asyncio.create_task(self._produce())
        try:
            while True:
                item = await self.queue.get()
                if item is _FINISHED:
                    break
                yield item
            await producer
            if self.fault is not None:
                raise self.fault
        finally:
            # Consumer left early: stop admitting and kill running children.
            pending = [t for t in (producer, *self.tasks) if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def result(self) -> RunResult:
        return RunResult.from_completed(
            self.completed,
            cancelled=self.stopped_early,
            total_runtime_seconds=time.monotonic() - self.start,
            peak_active=self.peak_active,
        )

    async def _produce(self) -> None:
        try:
            async for batch in _iterate(self.batches):
                if self.cancelled:
                    self.stopped_early = True
                    break
                if self.semaphore is not None:
                    await self.semaphore.acquire()
                    if self.cancelled:
                        self.semaphore.release()
                        self.stopped_early = True
                        break
                self.active += 1
                self.peak_active = max(self.peak_active, self.active)
                log.debug("admitting batch #%d (%d active)", batch.index, self.active)
                task = asyncio.create_task(self._run_one(batch))
                self.tasks.add(task)
        finally:
            if self.tasks:
                await asyncio.gather(*self.tasks, return_exceptions=True)
            self.queue.put_nowait(_FINISHED)

    async def _run_one(self, batch: Batch) -> None:
        try:
            result: object = await self.launch(batch)
        except Exception as exc:
            self._release(batch)
            self._fail(SchedulerFault(f"launch raised for batch #{batch.index}", cause=exc))
            return
        self._release(batch)

        if not isinstance(result, InvocationResult) or result.index != batch.index:
            self._fail(SchedulerFault(f"launch returned an invalid result for batch #{batch.index}"))
            return

        self.completed.append(result)
        if self.stop_on_error and not result.success and not self.stopped:
            log.info("stopping admission after failure: %s", result.describe())
            self.stopped = True
        self.queue.put_nowait(InvocationEvent(result=result, completed=len(self.completed), active=self.active))

    def _release(self, batch: Batch) -> None:
        if self.active <= 0:
            self._fail(SchedulerFault(f"slot released twice (batch #{batch.index})"))
            return
        self.active -= 1
        if self.semaphore is not None:
            self.semaphore.release()

    def _fail(self, fault: SchedulerFault) -> None:
        log.error("%s", fault)
        if self.fault is None:
            self.fault = fault
        self.stopped = True


async def async_run_batches(
    batches: Iterable[Batch] | AsyncIterable[Batch],
    launch: AsyncLaunch,
    *,
    max_procs: int = 1,
    stop_on_error: bool = False,
    on_result: Callable[[InvocationEvent], Any] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> RunResult:
    """Run *batches* concurrently using asyncio.

    This is the async counterpart to :func:`cargs.scheduler.run_batches`.
    Concurrency is bounded by an :class:`asyncio.Semaphore` of size
    *max_procs*; ``0`` removes the bound.

    Args:
        batches: Batches to run, from a regular or async iterable.
        launch: Coroutine function that runs one batch.  It must not raise.
        max_procs: Maximum number of concurrent launches (``0`` = no limit).
        stop_on_error: Stop admitting batches after the first failure.
        on_result: Optional callback invoked for every finished invocation,
            in completion order.  Both sync and async callables are accepted.
        cancel_event: Setting this event stops admission of new batches;
            running invocations finish normally.

    Returns:
        A :class:`~cargs.result.RunResult` with results in batch order.

    Raises:
        SchedulerFault: If *launch* or *on_result* raised, a launch returned a
            result for the wrong batch, or slot accounting broke.
    """
    run = _AsyncRun(
        batches,
        launch,
        max_procs=max_procs,
        stop_on_error=stop_on_error,
        cancel_event=cancel_event,
    )
    is_async_cb = inspect.iscoroutinefunction(on_result)
    async with contextlib.aclosing(run.events()) as events:
        async for event in events:
            if on_result is None:
                continue
            try:
                if is_async_cb:
                    await on_result(event)
                else:
                    on_result(event)
            except Exception as exc:
                run.stopped = True
                msg = "on_result callback failed"
                raise SchedulerFault(msg, cause=exc) from exc
    return run.result()


async def async_run_batches_stream(
    batches: Iterable[Batch] | AsyncIterable[Batch],
    launch: AsyncLaunch,
    *,
    max_procs: int = 1,
    stop_on_error: bool = False,
    cancel_event: asyncio.Event | None = None,
) -> AsyncIterator[InvocationEvent]:
    """Run batches concurrently, yielding events as each one completes.

    .. code-block:: python

        async for event in async_run_batches_stream(batches, launch, max_procs=4):
            print(f"[{event.completed}] {event.result.describe()}")

    If the consumer stops iterating early, admission stops and running
    invocations are cancelled (which kills their child processes).

    Args:
        batches: Batches to run, from a regular or async iterable.
        launch: Coroutine function that runs one batch.
        max_procs: Maximum number of concurrent launches (``0`` = no limit).
        stop_on_error: Stop admitting batches after the first failure.
        cancel_event: Setting this event stops admission of new batches.

    Yields:
        :class:`~cargs.result.InvocationEvent` for each finished invocation,
        in the order they finish.

    Raises:
        SchedulerFault: Once the stream is exhausted, if the run broke an
            internal invariant.
    """
    run = _AsyncRun(
        batches,
        launch,
        max_procs=max_procs,
        stop_on_error=stop_on_error,
        cancel_event=cancel_event,
    )
    async with contextlib.aclosing(run.events()) as events:
        async for event in events:
            yield event

"""End-to-end pipeline: tokens to batches to scheduled invocations.

Example:
    >>> from cargs import RunConfig, xargs
    >>> run = xargs(["a", "b", "c", "d", "e"], RunConfig(max_args=2, command=("echo",)))
    a b
    c d
    e
    >>> run.exit_code
    0
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any, Literal

from .async_runner import async_run_one
from .async_scheduler import async_run_batches
from .batching import Batch, build_batches
from .command import CommandTemplate
from .config import RunConfig
from .progress import resolve_on_result
from .result import InvocationEvent, InvocationResult, RunResult
from .runner import run_one
from .scheduler import Scheduler


def make_launch(config: RunConfig) -> Callable[[Batch], InvocationResult]:
    """Return a blocking ``launch(batch)`` function for *config*."""
    template = CommandTemplate.from_argv(config.command)

    def launch(batch: Batch) -> InvocationResult:
        return run_one(template.instantiate(batch), timeout=config.timeout, trace=config.trace)

    return launch


def make_async_launch(config: RunConfig) -> Callable[[Batch], Any]:
    """Return a coroutine ``launch(batch)`` function for *config*."""
    template = CommandTemplate.from_argv(config.command)

    async def launch(batch: Batch) -> InvocationResult:
        return await async_run_one(template.instantiate(batch), timeout=config.timeout, trace=config.trace)

    return launch


def xargs(
    tokens: Iterable[str],
    config: RunConfig | None = None,
    *,
    on_result: Callable[[InvocationEvent], Any] | Literal["tqdm"] | None = None,
) -> RunResult:
    """Run the configured command over *tokens*.

    Tokens are grouped into batches of ``config.max_args`` and each batch
    is appended to ``config.command``.  At most ``config.max_procs``
    commands run at once.

    Args:
        tokens: Input tokens, consumed lazily.
        config: Run configuration (default: :class:`RunConfig` defaults).
        on_result: Optional completion callback, or ``"tqdm"`` for a
            progress bar (requires ``pip install cargs[progress]``).

    Returns:
        The collected :class:`~cargs.result.RunResult`.  Its
        :attr:`~cargs.result.RunResult.exit_code` is the conventional
        overall exit status.

    Raises:
        ConfigurationError: If the configuration is invalid.
        SchedulerFault: If the scheduler broke an internal invariant.
    """
    config = config if config is not None else RunConfig()
    with resolve_on_result(on_result) as callback:
        scheduler = Scheduler(config.max_procs, stop_on_error=config.stop_on_error, on_result=callback)
        return scheduler.run(build_batches(tokens, config.max_args), make_launch(config))


async def async_xargs(
    tokens: Iterable[str],
    config: RunConfig | None = None,
    *,
    on_result: Callable[[InvocationEvent], Any] | Literal["tqdm"] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> RunResult:
    """Async counterpart to :func:`xargs`.

    *tokens* may block while being read; it is advanced in a worker thread.
    Setting *cancel_event* stops admission of new batches.
    """
    config = config if config is not None else RunConfig()
    with resolve_on_result(on_result) as callback:
        return await async_run_batches(
            build_batches(tokens, config.max_args),
            make_async_launch(config),
            max_procs=config.max_procs,
            stop_on_error=config.stop_on_error,
            on_result=callback,
            cancel_event=cancel_event,
        )

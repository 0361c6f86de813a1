"""Async invocation runner.

Non-blocking counterpart to :mod:`cargs.runner` built on
:func:`asyncio.create_subprocess_exec`.  Children inherit standard output
and standard error exactly like the blocking runner.

Cancellation is supported: if the wrapping :class:`asyncio.Task` is
cancelled, the child process is killed and reaped before the
:class:`asyncio.CancelledError` propagates.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time

from .command import Invocation
from .exceptions import InvocationError, InvocationTimeoutError
from .result import InvocationResult
from .runner import exited_result, failed_result, spawn_error

log = logging.getLogger(__name__)


async def async_execute(invocation: Invocation, *, timeout: float | None = None) -> int:
    """Run *invocation* without blocking the event loop.

    Args:
        invocation: The command line to run.
        timeout: Seconds to wait before killing the child, or ``None``.

    Returns:
        The child's return code (negative for a terminating signal).

    Raises:
        InvocationError: If the child could not be started.
        InvocationTimeoutError: If the child was killed after *timeout*.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *invocation.argv,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except (OSError, ValueError, TypeError) as exc:
        raise spawn_error(invocation, exc) from exc

    log.debug("started #%d pid=%d: %s", invocation.index, proc.pid, invocation.display())

    try:
        return await asyncio.wait_for(proc.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        raise InvocationTimeoutError(timeout, argv=invocation.argv) from None  # type: ignore[arg-type]
    except asyncio.CancelledError:
        await _kill(proc)
        raise


async def async_run_one(
    invocation: Invocation,
    *,
    timeout: float | None = None,
    trace: bool = False,
) -> InvocationResult:
    """Run *invocation* and capture its outcome without raising.

    This is the async counterpart to :func:`cargs.runner.run_one`; the
    arguments and the returned result are identical.
    """
    if trace:
        print(invocation.display(), file=sys.stderr, flush=True)

    start = time.monotonic()
    try:
        returncode = await async_execute(invocation, timeout=timeout)
    except InvocationError as exc:
        return failed_result(invocation, exc, time.monotonic() - start)

    return exited_result(invocation, returncode, time.monotonic() - start)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()

"""Blocking invocation runner.

Starts one child process per invocation.  Children inherit the parent's
standard output and standard error, so their output appears as it is
produced; output of concurrently running children may interleave.
Standard input is redirected from the null device because the parent is
usually still reading its own input from it.
"""

from __future__ import annotations

import errno
import logging
import subprocess
import sys
import time

from .command import Invocation
from .exceptions import InvocationError, InvocationTimeoutError
from .result import InvocationResult, Outcome
from .status import ExitStatus

log = logging.getLogger(__name__)


def execute(invocation: Invocation, *, timeout: float | None = None) -> int:
    """Run *invocation* and return its raw return code.

    Args:
        invocation: The command line to run.
        timeout: Seconds to wait before killing the child, or ``None``.

    Returns:
        The child's return code.  Negative values mean the child was killed
        by that signal number (POSIX only).

    Raises:
        InvocationError: If the child could not be started.
        InvocationTimeoutError: If the child was killed after *timeout*.
    """
    try:
        proc = subprocess.Popen(  # noqa: S603
            invocation.argv,
            stdin=subprocess.DEVNULL,
        )
    except (OSError, ValueError, TypeError) as exc:
        raise spawn_error(invocation, exc) from exc

    log.debug("started #%d pid=%d: %s", invocation.index, proc.pid, invocation.display())

    try:
        return proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        raise InvocationTimeoutError(timeout, argv=invocation.argv) from None  # type: ignore[arg-type]


def run_one(
    invocation: Invocation,
    *,
    timeout: float | None = None,
    trace: bool = False,
) -> InvocationResult:
    """Run *invocation* and capture its outcome.

    Per-invocation failures are never raised: spawn failures, timeouts,
    non-zero exits and signals are all recorded in the returned
    :class:`InvocationResult`.

    Args:
        invocation: The command line to run.
        timeout: Per-invocation timeout in seconds, or ``None``.
        trace: Echo the command line to standard error before running it.

    Returns:
        The invocation's result.
    """
    if trace:
        print(invocation.display(), file=sys.stderr, flush=True)

    start = time.monotonic()
    try:
        returncode = execute(invocation, timeout=timeout)
    except InvocationError as exc:
        return failed_result(invocation, exc, time.monotonic() - start)

    return exited_result(invocation, returncode, time.monotonic() - start)


def spawn_error(invocation: Invocation, exc: Exception) -> InvocationError:
    """Classify an error raised while starting *invocation*.

    A missing program is "not found"; anything else that prevents the
    child from starting, including an argument the OS cannot accept such
    as one with an embedded NUL, is "not executable".
    """
    if isinstance(exc, FileNotFoundError) or (isinstance(exc, OSError) and exc.errno == errno.ENOENT):
        code = ExitStatus.NOT_FOUND
        msg = f"{invocation.program}: No such file or directory"
    elif isinstance(exc, OSError):
        code = ExitStatus.NOT_EXECUTABLE
        msg = f"{invocation.program}: {exc.strerror or exc}"
    else:
        code = ExitStatus.NOT_EXECUTABLE
        msg = f"{invocation.program}: invalid argument list: {exc}"
    return InvocationError(msg, exit_code=int(code), argv=invocation.argv)


def failed_result(invocation: Invocation, exc: InvocationError, elapsed: float) -> InvocationResult:
    """Build the result for an invocation that never ran to completion."""
    if isinstance(exc, InvocationTimeoutError):
        log.warning("#%d timed out after %s seconds: %s", invocation.index, exc.timeout, invocation.display())
        return InvocationResult(
            invocation=invocation,
            outcome=Outcome.TIMED_OUT,
            runtime_seconds=elapsed,
            error=exc.reason,
        )

    outcome = Outcome.NOT_FOUND if exc.exit_code == ExitStatus.NOT_FOUND else Outcome.NOT_EXECUTABLE
    log.warning("#%d could not be started: %s", invocation.index, exc.reason)
    return InvocationResult(
        invocation=invocation,
        outcome=outcome,
        runtime_seconds=elapsed,
        error=exc.reason,
    )


def exited_result(invocation: Invocation, returncode: int, elapsed: float) -> InvocationResult:
    """Build the result for a child that exited or was killed by a signal."""
    if returncode < 0:
        log.debug("#%d killed by signal %d", invocation.index, -returncode)
        return InvocationResult(
            invocation=invocation,
            outcome=Outcome.SIGNALED,
            signal=-returncode,
            runtime_seconds=elapsed,
        )
    log.debug("#%d exited %d after %.3fs", invocation.index, returncode, elapsed)
    return InvocationResult(
        invocation=invocation,
        outcome=Outcome.EXITED,
        exit_code=returncode,
        runtime_seconds=elapsed,
    )

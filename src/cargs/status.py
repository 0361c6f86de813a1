"""Overall exit status computation.

The overall status is a pure function of the collected invocation
results, so it does not depend on the order in which they completed.
Precedence, highest first:

1. ``127`` - some command could not be found.
2. ``126`` - some command was found but could not be executed.
3. ``124`` - some command was killed after exceeding its timeout.
4. ``123`` - some command exited non-zero or was killed by a signal.
5. ``0`` - every command exited with status 0 (including no commands).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .result import InvocationResult


class ExitStatus(IntEnum):
    """Process exit codes, compatible with GNU xargs."""

    SUCCESS = 0
    USAGE = 1
    INVOCATION_FAILED = 123
    TIMED_OUT = 124
    SCHEDULER_FAULT = 125
    NOT_EXECUTABLE = 126
    NOT_FOUND = 127


@dataclass(frozen=True, slots=True)
class OverallStatus:
    """Aggregate status of a run.

    Attributes:
        exit_code: The process exit code to report.
        total: Number of results considered.
        failed: Number of results that did not exit with status 0.
        cancelled: Whether the run stopped admitting work early.
    """

    exit_code: ExitStatus
    total: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code is ExitStatus.SUCCESS


def aggregate(results: Iterable[InvocationResult], *, cancelled: bool = False) -> OverallStatus:
    """Compute the overall status for *results*.

    Args:
        results: Every collected invocation result, in any order.
        cancelled: Whether the run was cancelled before input was exhausted.

    Returns:
        The aggregate :class:`OverallStatus`.
    """
    from .result import Outcome

    total = 0
    failed = 0
    seen: set[Outcome] = set()
    for result in results:
        total += 1
        if not result.success:
            failed += 1
            seen.add(result.outcome)

    if Outcome.NOT_FOUND in seen:
        code = ExitStatus.NOT_FOUND
    elif Outcome.NOT_EXECUTABLE in seen:
        code = ExitStatus.NOT_EXECUTABLE
    elif Outcome.TIMED_OUT in seen:
        code = ExitStatus.TIMED_OUT
    elif failed:
        code = ExitStatus.INVOCATION_FAILED
    else:
        code = ExitStatus.SUCCESS

    return OverallStatus(exit_code=code, total=total, failed=failed, cancelled=cancelled)

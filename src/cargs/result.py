"""Invocation and run result containers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .status import ExitStatus, OverallStatus, aggregate

if TYPE_CHECKING:
    from .batching import Batch
    from .command import Invocation


class Outcome(Enum):
    """How an invocation ended."""

    EXITED = "exited"
    NOT_FOUND = "not_found"
    NOT_EXECUTABLE = "not_executable"
    SIGNALED = "signaled"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """Outcome of running one invocation.

    Attributes:
        invocation: The invocation that was run.
        outcome: How the invocation ended.
        exit_code: Process exit code when :attr:`outcome` is ``EXITED``.
        signal: Signal number when :attr:`outcome` is ``SIGNALED``.
        runtime_seconds: Wall-clock time from spawn to exit.
        error: Human-readable reason for spawn failures and timeouts.
    """

    invocation: Invocation
    outcome: Outcome
    exit_code: int | None = None
    signal: int | None = None
    runtime_seconds: float = 0.0
    error: str | None = None

    @property
    def index(self) -> int:
        """Index of the batch that produced this result."""
        return self.invocation.index

    @property
    def batch(self) -> Batch:
        return self.invocation.batch

    @property
    def success(self) -> bool:
        """Whether the command ran and exited with status 0."""
        return self.outcome is Outcome.EXITED and self.exit_code == 0

    @property
    def spawn_failed(self) -> bool:
        """Whether the command could not be started at all."""
        return self.outcome in (Outcome.NOT_FOUND, Outcome.NOT_EXECUTABLE)

    @property
    def status_code(self) -> ExitStatus:
        """The overall exit status this result alone would produce."""
        return aggregate((self,)).exit_code

    def describe(self) -> str:
        """Short description for diagnostics, e.g. ``"#2 exited 1"``."""
        if self.outcome is Outcome.EXITED:
            detail = f"exited {self.exit_code}"
        elif self.outcome is Outcome.SIGNALED:
            detail = f"killed by signal {self.signal}"
        else:
            detail = self.outcome.value.replace("_", " ")
        return f"#{self.index} {detail}"


@dataclass(frozen=True, slots=True)
class InvocationEvent:
    """Completion event passed to ``on_result`` callbacks and streams.

    Events are emitted in *completion order*, not submission order.

    Attributes:
        result: The finished invocation's result.
        completed: Number of invocations completed so far, including this one.
        active: Invocations still running when this one finished.
    """

    result: InvocationResult
    completed: int
    active: int

    @property
    def index(self) -> int:
        return self.result.index


@dataclass(frozen=True, slots=True)
class RunResult:
    """Aggregated results from one scheduler run.

    Attributes:
        results: Results in submission (batch index) order.
        completion_order: Batch indices in the order invocations finished.
        cancelled: Whether admission was stopped before input was exhausted.
        total_runtime_seconds: Wall-clock time for the whole run.
        peak_active: Highest number of simultaneously running invocations.
    """

    results: tuple[InvocationResult, ...]
    completion_order: tuple[int, ...] = ()
    cancelled: bool = False
    total_runtime_seconds: float = 0.0
    peak_active: int = 0

    @classmethod
    def from_completed(
        cls,
        completed: Sequence[InvocationResult],
        *,
        cancelled: bool = False,
        total_runtime_seconds: float = 0.0,
        peak_active: int = 0,
    ) -> RunResult:
        """Build a run result from results listed in completion order."""
        return cls(
            results=tuple(sorted(completed, key=lambda r: r.index)),
            completion_order=tuple(r.index for r in completed),
            cancelled=cancelled,
            total_runtime_seconds=total_runtime_seconds,
            peak_active=peak_active,
        )

    @property
    def succeeded(self) -> tuple[InvocationResult, ...]:
        """Results that exited with status 0."""
        return tuple(r for r in self.results if r.success)

    @property
    def failed(self) -> tuple[InvocationResult, ...]:
        """Results that did not exit with status 0."""
        return tuple(r for r in self.results if not r.success)

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def status(self) -> OverallStatus:
        """Overall status derived from every collected result."""
        return aggregate(self.results, cancelled=self.cancelled)

    @property
    def exit_code(self) -> int:
        return int(self.status.exit_code)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> InvocationResult:
        return self.results[index]

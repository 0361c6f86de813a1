"""Shared fixtures and helpers for cargs tests."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from cargs.batching import Batch
from cargs.command import CommandTemplate, Invocation
from cargs.result import InvocationResult, Outcome


def make_batch(index: int = 0, tokens: Sequence[str] = ("a",)) -> Batch:
    return Batch(index=index, tokens=tuple(tokens))


def make_invocation(argv: Sequence[str], index: int = 0) -> Invocation:
    """Build an invocation whose batch holds the trailing argument."""
    return Invocation(batch=make_batch(index, argv[-1:]), argv=tuple(argv))


def make_result(batch: Batch, outcome: Outcome = Outcome.EXITED, exit_code: int | None = 0) -> InvocationResult:
    invocation = CommandTemplate(("true",)).instantiate(batch)
    return InvocationResult(
        invocation=invocation,
        outcome=outcome,
        exit_code=exit_code if outcome is Outcome.EXITED else None,
        signal=9 if outcome is Outcome.SIGNALED else None,
    )


def python_command(code: str) -> tuple[str, ...]:
    """Command prefix that runs *code* with the current interpreter."""
    return (sys.executable, "-c", code)


class ConcurrencyRecorder:
    """Fake launch function that records how many launches overlap.

    Each launch waits on *gate* (if given) so tests can hold invocations
    open and observe the scheduler's admission behaviour.
    """

    def __init__(
        self,
        *,
        gate: threading.Event | None = None,
        outcome_for: Callable[[Batch], tuple[Outcome, int | None]] | None = None,
    ) -> None:
        self.gate = gate
        self.outcome_for = outcome_for
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0
        self.started: list[int] = []

    def __call__(self, batch: Batch) -> InvocationResult:
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(batch.index)
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            outcome, code = self.outcome_for(batch) if self.outcome_for else (Outcome.EXITED, 0)
            return make_result(batch, outcome, code)
        finally:
            with self.lock:
                self.active -= 1


@pytest.fixture
def recorder() -> ConcurrencyRecorder:
    return ConcurrencyRecorder()


@pytest.fixture
def missing_program(tmp_path: Path) -> str:
    """Path to a program that does not exist."""
    return str(tmp_path / "no-such-program")


@pytest.fixture
def non_executable(tmp_path: Path) -> str:
    """Path to an existing file without execute permission."""
    script = tmp_path / "not-executable.sh"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)
    return str(script)

"""Custom exceptions for cargs."""

from __future__ import annotations

import shlex
from collections.abc import Sequence


class CargsError(Exception):
    """Base exception for all cargs errors."""

    pass


class ConfigurationError(CargsError):
    """Raised when a :class:`~cargs.config.RunConfig` value is invalid.

    Always raised before any batch is built, so no command has run yet.
    """

    def __init__(self, message: str, *, field: str | None = None, value: object = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message)


class SchedulerFault(CargsError):
    """Raised when the scheduler detects a broken internal invariant.

    The run is aborted once already running invocations have finished.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        msg = message
        if cause is not None:
            msg += f": {type(cause).__name__}: {cause}"
        super().__init__(msg)


class InvocationError(CargsError):
    """Raised when a command could not be started at all."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        argv: Sequence[str] | None = None,
    ) -> None:
        self.reason = message
        self.exit_code = exit_code
        self.argv = tuple(argv) if argv is not None else None
        msg = message
        if exit_code is not None:
            msg += f" (exit code {exit_code})"
        if self.argv:
            msg += f"\ncommand: {shlex.join(self.argv)}"
        super().__init__(msg)


class InvocationTimeoutError(InvocationError):
    """Raised when a command was killed after exceeding its timeout."""

    def __init__(self, timeout: float, *, argv: Sequence[str] | None = None) -> None:
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout} seconds", argv=argv)

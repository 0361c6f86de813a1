"""Run configuration.

A :class:`RunConfig` is validated once when it is created and never
changes afterwards.  Defaults can be taken from the ``CARGS_MAX_ARGS`` and
``CARGS_MAX_PROCS`` environment variables via :meth:`RunConfig.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import ConfigurationError

ENV_MAX_ARGS = "CARGS_MAX_ARGS"
ENV_MAX_PROCS = "CARGS_MAX_PROCS"


class InputMode(Enum):
    """How the token source splits input into items."""

    WHITESPACE = "whitespace"
    NULL = "null"
    DELIMITER = "delimiter"


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Validated configuration for one run.

    Attributes:
        max_args: Maximum number of input tokens per command line (>= 1).
        max_procs: Maximum number of commands running at once.  ``0`` means
            no limit.
        command: Base command and its fixed leading arguments.
        timeout: Per-invocation timeout in seconds, or ``None`` for no limit.
        stop_on_error: Stop admitting new batches after the first failure.
        trace: Print each command line to standard error before running it.
        input_mode: How input is split into tokens.
        delimiter: Item terminator for :attr:`InputMode.DELIMITER`.
        eof_str: Stop reading input at the first token equal to this string.
    """

    max_args: int = 1
    max_procs: int = 1
    command: tuple[str, ...] = ("echo",)
    timeout: float | None = None
    stop_on_error: bool = False
    trace: bool = False
    input_mode: InputMode = InputMode.WHITESPACE
    delimiter: str | None = None
    eof_str: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.max_args, bool) or not isinstance(self.max_args, int):
            msg = f"max-args must be an integer, got {self.max_args!r}"
            raise ConfigurationError(msg, field="max_args", value=self.max_args)
        if self.max_args < 1:
            msg = f"-n {self.max_args}: too small"
            raise ConfigurationError(msg, field="max_args", value=self.max_args)

        if isinstance(self.max_procs, bool) or not isinstance(self.max_procs, int):
            msg = f"max-procs must be an integer, got {self.max_procs!r}"
            raise ConfigurationError(msg, field="max_procs", value=self.max_procs)
        if self.max_procs < 0:
            msg = f"-P {self.max_procs}: must not be negative"
            raise ConfigurationError(msg, field="max_procs", value=self.max_procs)

        if self.timeout is not None and self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout!r}"
            raise ConfigurationError(msg, field="timeout", value=self.timeout)

        if self.input_mode is InputMode.DELIMITER:
            if self.delimiter is None or len(self.delimiter) != 1:
                msg = f"delimiter must be a single character, got {self.delimiter!r}"
                raise ConfigurationError(msg, field="delimiter", value=self.delimiter)
        elif self.delimiter is not None:
            msg = "delimiter is only valid with InputMode.DELIMITER"
            raise ConfigurationError(msg, field="delimiter", value=self.delimiter)

        # Normalise lists passed by callers so the snapshot stays immutable.
        if not isinstance(self.command, tuple):
            object.__setattr__(self, "command", tuple(self.command))

    @property
    def unbounded(self) -> bool:
        """Whether the number of concurrent invocations is unlimited."""
        return self.max_procs == 0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> RunConfig:
        """Create a config using environment variables as defaults.

        ``CARGS_MAX_ARGS`` and ``CARGS_MAX_PROCS`` are consulted when the
        corresponding keyword is not given explicitly.

        Args:
            environ: Mapping to read from (default: ``os.environ``).
            **overrides: Field values that take precedence over the environment.

        Returns:
            Validated RunConfig.

        Raises:
            ConfigurationError: If an environment value is not an integer or
                the resulting config is invalid.
        """
        env = os.environ if environ is None else environ
        for var, name in ((ENV_MAX_ARGS, "max_args"), (ENV_MAX_PROCS, "max_procs")):
            if name in overrides or var not in env:
                continue
            raw = env[var]
            try:
                overrides[name] = int(raw)
            except ValueError:
                msg = f"{var}={raw!r} is not an integer"
                raise ConfigurationError(msg, field=name, value=raw) from None
        return cls(**overrides)

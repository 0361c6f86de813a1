"""cargs - build and execute command lines from input, in parallel.

Groups input tokens into bounded batches, appends each batch to a base
command and runs the resulting command lines with a configurable number
of concurrent processes.

Example:
    >>> from cargs import RunConfig, xargs
    >>> run = xargs(["a", "b", "c"], RunConfig(max_args=2, max_procs=2))
    >>> run.exit_code
    0
"""

from __future__ import annotations

import logging

__version__ = "0.1.0"

from .async_scheduler import async_run_batches, async_run_batches_stream
from .batching import Batch, build_batches
from .command import DEFAULT_COMMAND, CommandTemplate, Invocation
from .config import InputMode, RunConfig
from .exceptions import (
    CargsError,
    ConfigurationError,
    InvocationError,
    InvocationTimeoutError,
    SchedulerFault,
)
from .result import InvocationEvent, InvocationResult, Outcome, RunResult
from .runner import run_one
from .scheduler import Scheduler, run_batches
from .status import ExitStatus, OverallStatus, aggregate
from .tokens import iter_tokens
from .xargs import async_xargs, xargs

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("cargs").addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_COMMAND",
    "Batch",
    "CargsError",
    "CommandTemplate",
    "ConfigurationError",
    "ExitStatus",
    "InputMode",
    "Invocation",
    "InvocationError",
    "InvocationEvent",
    "InvocationResult",
    "InvocationTimeoutError",
    "Outcome",
    "OverallStatus",
    "RunConfig",
    "RunResult",
    "Scheduler",
    "SchedulerFault",
    "__version__",
    "aggregate",
    "async_run_batches",
    "async_run_batches_stream",
    "async_xargs",
    "build_batches",
    "iter_tokens",
    "run_batches",
    "run_one",
    "xargs",
]

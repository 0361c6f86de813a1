"""Command-line front end: ``cargs [options] [command [initial-arguments]]``.

Builds and executes command lines from standard input, like ``xargs``.
"""

from __future__ import annotations

import argparse
import contextlib
import io
import logging
import signal
import sys
from collections.abc import Iterator, Sequence
from typing import Any, TextIO

from . import __version__
from .batching import build_batches
from .config import InputMode, RunConfig
from .exceptions import ConfigurationError, SchedulerFault
from .progress import resolve_on_result
from .result import Outcome, RunResult
from .scheduler import Scheduler
from .status import ExitStatus
from .tokens import iter_tokens
from .xargs import make_launch

PROG = "cargs"

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Build and execute command lines from standard input.",
        epilog=(
            "Exit status: 0 if all commands succeeded, 123 if any exited non-zero, "
            "124 if any timed out, 125 on an internal error, 126 if a command "
            "could not be executed and 127 if it was not found."
        ),
    )
    parser.add_argument(
        "-n",
        "--max-args",
        type=int,
        default=None,
        metavar="MAX_ARGS",
        help="Use at most MAX_ARGS arguments per command line (default: 1).",
    )
    parser.add_argument(
        "-P",
        "--max-procs",
        type=int,
        default=None,
        metavar="MAX_PROCS",
        help="Run up to MAX_PROCS processes at a time (default: 1). 0 runs as many as possible.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-0",
        "--null",
        action="store_true",
        help="Input items are terminated by a null character; every character is taken literally.",
    )
    mode.add_argument(
        "-d",
        "--delimiter",
        metavar="CHAR",
        help="Input items are terminated by CHAR; every character is taken literally.",
    )
    parser.add_argument(
        "-E",
        "--eof",
        dest="eof_str",
        metavar="EOF_STR",
        help="Stop reading input at the first item equal to EOF_STR (whitespace mode only).",
    )
    parser.add_argument(
        "-a",
        "--arg-file",
        metavar="FILE",
        help="Read items from FILE instead of standard input.",
    )
    parser.add_argument(
        "-t",
        "--verbose",
        action="store_true",
        help="Print each command line on standard error before running it.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Kill a command that runs longer than SECONDS.",
    )
    parser.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Start no further commands after the first one fails.",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar on standard error (requires tqdm).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Diagnostic logging level (default: WARNING).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="Command to run, followed by its initial arguments (default: echo).",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """Translate parsed options into a validated :class:`RunConfig`."""
    overrides: dict[str, Any] = {
        "command": tuple(args.command) if args.command else ("echo",),
        "timeout": args.timeout,
        "stop_on_error": args.stop_on_error,
        "trace": args.verbose,
        "eof_str": args.eof_str,
    }
    if args.max_args is not None:
        overrides["max_args"] = args.max_args
    if args.max_procs is not None:
        overrides["max_procs"] = args.max_procs
    if args.null:
        overrides["input_mode"] = InputMode.NULL
    elif args.delimiter is not None:
        overrides["input_mode"] = InputMode.DELIMITER
        overrides["delimiter"] = _unescape(args.delimiter)
    return RunConfig.from_env(**overrides)


def _unescape(value: str) -> str:
    r"""Decode backslash escapes such as ``\n`` or ``\t`` in a delimiter."""
    if value.startswith("\\") and len(value) > 1:
        return value.encode("latin-1", "backslashreplace").decode("unicode_escape")
    return value


@contextlib.contextmanager
def _open_input(path: str | None) -> Iterator[TextIO]:
    """Open the item source.

    Input is decoded like file names, with undecodable bytes kept as lone
    surrogates, so that ``subprocess`` hands the original bytes to the
    child.
    """
    encoding = sys.getfilesystemencoding()
    if path is None:
        if isinstance(sys.stdin, io.TextIOWrapper):
            sys.stdin.reconfigure(encoding=encoding, errors="surrogateescape")
        yield sys.stdin
        return
    with open(path, encoding=encoding, errors="surrogateescape") as fh:
        yield fh


@contextlib.contextmanager
def _cancel_on_signals(scheduler: Scheduler) -> Iterator[None]:
    """Stop admission on SIGINT/SIGTERM; a second signal acts normally."""

    def _handler(signum: int, frame: object) -> None:
        log.warning("received signal %d; waiting for running commands to finish", signum)
        scheduler.cancel()
        restored = previous.get(signum)
        signal.signal(signum, restored if restored is not None else signal.SIG_DFL)

    previous: dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


def _report(run: RunResult) -> None:
    for result in run.failed:
        if result.spawn_failed or result.outcome is Outcome.TIMED_OUT:
            print(f"{PROG}: {result.error}", file=sys.stderr)
    if run.cancelled:
        log.warning("run stopped early after %d command(s)", len(run))


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command-line interface and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(name)s: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = config_from_args(args)
    except ConfigurationError as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        return int(ExitStatus.USAGE)

    with contextlib.ExitStack() as stack:
        try:
            on_result = stack.enter_context(resolve_on_result("tqdm" if args.progress else None))
        except ImportError as exc:
            print(f"{PROG}: {exc}", file=sys.stderr)
            return int(ExitStatus.USAGE)

        scheduler = Scheduler(config.max_procs, stop_on_error=config.stop_on_error, on_result=on_result)
        try:
            stream = stack.enter_context(_open_input(args.arg_file))
            stack.enter_context(_cancel_on_signals(scheduler))
            tokens = iter_tokens(
                stream,
                mode=config.input_mode,
                delimiter=config.delimiter,
                eof_str=config.eof_str,
            )
            run = scheduler.run(build_batches(tokens, config.max_args), make_launch(config))
        except OSError as exc:
            print(f"{PROG}: {exc}", file=sys.stderr)
            return int(ExitStatus.USAGE)
        except SchedulerFault as exc:
            print(f"{PROG}: {exc}", file=sys.stderr)
            return int(ExitStatus.SCHEDULER_FAULT)

    _report(run)
    return run.exit_code

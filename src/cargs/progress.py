"""Built-in progress bar for completion callbacks.

Provides :func:`tqdm_progress`, a context manager that yields a ready-to-use
``on_result`` callback powered by `tqdm <https://tqdm.github.io/>`_.
Install the optional dependency with::

    pip install cargs[progress]

The bar counts finished commands; the total is unknown because input is
read lazily.  It is drawn on standard error, so it shares the terminal
with the output of the commands themselves.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from typing import Any

from .result import InvocationEvent

OnResult = Callable[[InvocationEvent], Any]


@contextmanager
def tqdm_progress(
    *,
    desc: str = "cargs",
    leave: bool = True,
    position: int | None = None,
    file: Any = None,
    **tqdm_kwargs: Any,
) -> Iterator[Callable[[InvocationEvent], None]]:
    """Context manager that yields a tqdm-based ``on_result`` callback.

    The progress bar is closed when the context exits, even if an
    exception is raised.

    Args:
        desc: Progress bar description (left label).
        leave: Whether the bar remains visible after completion.
        position: Line position for the bar.
        file: Output stream (default: ``sys.stderr``).
        **tqdm_kwargs: Extra keyword arguments forwarded to :class:`tqdm.tqdm`.

    Yields:
        A callback suitable for the ``on_result`` parameter.

    Raises:
        ImportError: If tqdm is not installed.

    Example::

        from cargs import RunConfig, xargs
        from cargs.progress import tqdm_progress

        with tqdm_progress(desc="compressing") as cb:
            run = xargs(paths, RunConfig(command=("gzip",), max_procs=4), on_result=cb)
    """
    try:
        from tqdm.auto import tqdm  # type: ignore[import-untyped]
    except ImportError:
        msg = "the progress bar needs tqdm; install it with: pip install cargs[progress]"
        raise ImportError(msg) from None

    bar = tqdm(
        total=None,
        desc=desc,
        unit="cmd",
        leave=leave,
        position=position,
        file=file,
        **tqdm_kwargs,
    )
    failed = 0

    def _callback(event: InvocationEvent) -> None:
        nonlocal failed
        if not event.result.success:
            failed += 1
        bar.set_postfix(active=event.active, failed=failed, refresh=False)
        bar.update(1)

    try:
        yield _callback
    finally:
        bar.close()


def resolve_on_result(on_result: OnResult | str | None) -> AbstractContextManager[OnResult | None]:
    """Turn an ``on_result`` argument into a context manager.

    ``None`` and callables pass through unchanged; ``"tqdm"`` opens a
    :func:`tqdm_progress` bar that is closed when the context exits.
    Entering the context raises :class:`ImportError` if tqdm is missing.

    Example::

        with resolve_on_result("tqdm") as callback:
            run = run_batches(batches, launch, max_procs=4, on_result=callback)
    """
    if isinstance(on_result, str):
        if on_result == "tqdm":
            return tqdm_progress()
        msg = f"on_result must be 'tqdm', a callable or None, got {on_result!r}"
        raise ValueError(msg)
    if on_result is not None and not callable(on_result):
        msg = f"on_result must be 'tqdm', a callable or None, got {type(on_result).__name__}"
        raise TypeError(msg)
    return nullcontext(on_result)

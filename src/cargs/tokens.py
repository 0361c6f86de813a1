"""Lazy tokenizers for command input.

Input is read incrementally so that the first batch can be scheduled
while the rest of the input is still arriving.  No quote or backslash
processing is done: every character is taken literally.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TextIO

from .config import InputMode

_CHUNK_SIZE = 8192


def iter_whitespace_tokens(stream: TextIO, *, eof_str: str | None = None) -> Iterator[str]:
    """Yield whitespace-separated tokens from *stream*.

    Any Unicode whitespace separates tokens, and blank lines carry no
    tokens.  When *eof_str* is given, reading stops at the first token equal
    to it; that token is not yielded.
    """
    for line in stream:
        for token in line.split():
            if eof_str is not None and token == eof_str:
                return
            yield token


def iter_delimited_tokens(stream: TextIO, delimiter: str) -> Iterator[str]:
    """Yield items terminated by *delimiter*, skipping empty ones.

    The final item does not need a terminator.  Item text is kept
    verbatim, so with a delimiter other than newline a trailing newline at
    the end of input stays part of the last item.
    """
    pending = ""
    while True:
        chunk = stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        pending += chunk
        *items, pending = pending.split(delimiter)
        for item in items:
            if item:
                yield item
    if pending:
        yield pending


def iter_tokens(
    stream: TextIO,
    *,
    mode: InputMode = InputMode.WHITESPACE,
    delimiter: str | None = None,
    eof_str: str | None = None,
) -> Iterator[str]:
    """Yield tokens from *stream* according to *mode*.

    Args:
        stream: Text stream to read (typically ``sys.stdin``).
        mode: Splitting policy.
        delimiter: Item terminator, required for :attr:`InputMode.DELIMITER`.
        eof_str: Logical end-of-input token (whitespace mode only).

    Returns:
        A lazy iterator of tokens.

    Raises:
        ValueError: If *mode* is DELIMITER and no delimiter is given.
    """
    if mode is InputMode.WHITESPACE:
        return iter_whitespace_tokens(stream, eof_str=eof_str)
    if mode is InputMode.NULL:
        return iter_delimited_tokens(stream, "\0")
    if delimiter is None:
        msg = "delimiter is required for InputMode.DELIMITER"
        raise ValueError(msg)
    return iter_delimited_tokens(stream, delimiter)

"""Grouping of input tokens into argument batches."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .exceptions import ConfigurationError


@dataclass(frozen=True, slots=True)
class Batch:
    """An ordered, non-empty group of tokens for one command line.

    Attributes:
        index: Zero-based position of this batch in the run.
        tokens: The tokens, in input order.
    """

    index: int
    tokens: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.tokens:
            msg = "a batch must contain at least one token"
            raise ValueError(msg)

    def __len__(self) -> int:
        return len(self.tokens)


def build_batches(tokens: Iterable[str], max_args: int) -> Iterator[Batch]:
    """Group *tokens* into batches of at most *max_args* tokens.

    A batch is yielded as soon as it is full, so the consumer can start
    work before the token source is exhausted.  Leftover tokens form a final,
    shorter batch.  Empty input yields nothing.

    Args:
        tokens: Tokens in input order.  Consumed lazily, exactly once.
        max_args: Maximum tokens per batch.

    Yields:
        Batches with consecutive indices starting at 0.

    Raises:
        ConfigurationError: If *max_args* is less than 1.  Raised on the
            first ``next()``, before any token is read.
    """
    if max_args < 1:
        msg = f"-n {max_args}: too small"
        raise ConfigurationError(msg, field="max_args", value=max_args)

    index = 0
    pending: list[str] = []
    for token in tokens:
        pending.append(token)
        if len(pending) == max_args:
            yield Batch(index=index, tokens=tuple(pending))
            index += 1
            pending = []
    if pending:
        yield Batch(index=index, tokens=tuple(pending))

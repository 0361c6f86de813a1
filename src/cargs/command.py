"""Command templates and concrete invocations."""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from .batching import Batch

DEFAULT_COMMAND: tuple[str, ...] = ("echo",)


@dataclass(frozen=True, slots=True)
class Invocation:
    """One concrete command line: the base command plus a batch.

    Attributes:
        batch: The batch whose tokens were appended.
        argv: Full argument vector, program name first.
    """

    batch: Batch
    argv: tuple[str, ...]

    @property
    def index(self) -> int:
        """Position of the originating batch in the run."""
        return self.batch.index

    @property
    def program(self) -> str:
        return self.argv[0]

    def display(self) -> str:
        """Return the command line quoted for a POSIX shell."""
        return shlex.join(self.argv)


@dataclass(frozen=True, slots=True)
class CommandTemplate:
    """A fixed command that batches are appended to.

    Attributes:
        base: Program name followed by its fixed leading arguments.
    """

    base: tuple[str, ...] = DEFAULT_COMMAND

    @classmethod
    def from_argv(cls, argv: Sequence[str] | None) -> CommandTemplate:
        """Build a template from positional CLI arguments.

        An empty or missing *argv* falls back to :data:`DEFAULT_COMMAND`.
        """
        if not argv:
            return cls()
        return cls(base=tuple(argv))

    def instantiate(self, batch: Batch) -> Invocation:
        """Bind *batch* to this template."""
        return Invocation(batch=batch, argv=(*self.base, *batch.tokens))

"""Dependency tracking for in-progress evaluations.

The tracker keeps a stack of frames, one per in-flight evaluation. Each
frame accumulates the keys fetched directly by that evaluation; outer
frames never see the fetches of inner ones.

Separately, the tracker keeps the set of keys whose evaluation is
currently open. Fetching an open key means it depends on itself.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from dip.engine.errors import CycleDetectedError
from dip.engine.keys import Key


@dataclass
class Frame:
    """Dependencies accumulated by one evaluation.

    Attributes:
        owner: Key whose evaluation this frame belongs to
        dependencies: Fetched keys in first-fetch order (dict used as an ordered set)
    """

    owner: Optional[Key]
    dependencies: dict[Key, None] = field(default_factory=dict)


class DependencyTracker:
    """Stack of dependency frames plus the open-evaluation guard."""

    def __init__(self) -> None:
        self._frames: list[Frame] = []
        self._open: list[Key] = []

    @property
    def depth(self) -> int:
        """Number of frames currently on the stack."""
        return len(self._frames)

    @property
    def is_active(self) -> bool:
        """Whether any evaluation is in progress."""
        return bool(self._frames) or bool(self._open)

    def push_frame(self, owner: Optional[Key] = None) -> None:
        """Begin accumulating dependencies for a new evaluation."""
        self._frames.append(Frame(owner=owner))

    def record(self, key: Key) -> None:
        """Record key as a dependency of the innermost evaluation, if any."""
        if self._frames:
            self._frames[-1].dependencies.setdefault(key, None)

    def pop_frame(self) -> tuple[Key, ...]:
        """End the innermost evaluation and return its dependencies.

        Raises:
            RuntimeError: If no frame is open
        """
        if not self._frames:
            raise RuntimeError("pop_frame called with no open frame")
        return tuple(self._frames.pop().dependencies)

    def is_open(self, key: Key) -> bool:
        return key in self._open

    def cycle_through(self, key: Key) -> list[Key]:
        """Return the open keys from the first evaluation of key, closed by key again."""
        start = self._open.index(key)
        return self._open[start:] + [key]

    def open(self, key: Key) -> None:
        """Mark key's evaluation as open.

        Raises:
            CycleDetectedError: If key's evaluation is already open
        """
        if key in self._open:
            raise CycleDetectedError(key, self.cycle_through(key))
        self._open.append(key)

    def close(self, key: Key) -> None:
        if self._open and self._open[-1] == key:
            self._open.pop()
        else:
            self._open.remove(key)

    @contextmanager
    def evaluating(self, key: Key) -> Iterator[None]:
        """Keep key open for the duration of the block."""
        self.open(key)
        try:
            yield
        finally:
            self.close(key)

    def open_keys(self) -> tuple[Key, ...]:
        return tuple(self._open)

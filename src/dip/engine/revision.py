"""Revision clock.

The revision identifies a point in time at which inputs may have changed.
It advances by exactly one on every input mutation and never decreases.
"""


class RevisionClock:
    """Monotonically increasing revision counter."""

    def __init__(self, initial: int = 0) -> None:
        """Initialize the clock.

        Args:
            initial: Starting revision (must be non-negative)

        Raises:
            ValueError: If initial is negative
        """
        if initial < 0:
            raise ValueError(f"Initial revision must be non-negative, got {initial}")
        self._revision = initial

    def current(self) -> int:
        """Return the current revision without side effects."""
        return self._revision

    def advance(self) -> int:
        """Increment the revision by one and return the new value."""
        self._revision += 1
        return self._revision

    def __repr__(self) -> str:
        return f"RevisionClock(revision={self._revision})"

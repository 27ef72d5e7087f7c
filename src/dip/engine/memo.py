"""Memo records and the memo store.

A Memo is the cached state attached to exactly one key: the last value,
the revision at which it was last confirmed current (``verified_at``) and
the revision at which the value last actually changed (``changed_at``),
plus the keys fetched while producing the value.

The store never evicts. Memos are created lazily on first fetch or
mutation and live for the lifetime of the database.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Iterator, Optional

from dip.engine.keys import Key, format_key


@dataclass(frozen=True)
class Memo:
    """Cached value for a key together with its revision bookkeeping.

    Attributes:
        value: Last computed or stored value
        verified_at: Most recent revision at which the value was confirmed current
        changed_at: Most recent revision at which the value actually changed
        dependencies: Keys fetched while producing the value, in fetch order
    """

    value: Any
    verified_at: int
    changed_at: int
    dependencies: tuple[Key, ...] = ()

    def __post_init__(self) -> None:
        if self.changed_at > self.verified_at:
            raise ValueError(
                f"changed_at ({self.changed_at}) cannot be later than "
                f"verified_at ({self.verified_at})"
            )

    def is_fresh(self, revision: int) -> bool:
        """Whether the memo can be used at ``revision`` with no further work."""
        return self.verified_at == revision

    def verified(self, revision: int) -> "Memo":
        """Return a copy re-confirmed at ``revision``.

        Raises:
            ValueError: If revision is earlier than the current verified_at
        """
        if revision < self.verified_at:
            raise ValueError(
                f"Cannot move verified_at backwards from {self.verified_at} to {revision}"
            )
        return replace(self, verified_at=revision)

    def describe(self) -> str:
        deps = ", ".join(format_key(dep) for dep in self.dependencies)
        return (
            f"(value: {self.value!r}, verified_at: {self.verified_at}, "
            f"changed_at: {self.changed_at}, dependencies: {{{deps}}})"
        )


@dataclass(frozen=True)
class StampedValue:
    """A fetched value with the revision at which it last changed."""

    value: Any
    changed_at: int


class MemoStore(ABC):
    """Abstract mapping from key to memo."""

    @abstractmethod
    def get(self, key: Key) -> Optional[Memo]:
        """Return the memo for key, or None if none has been stored."""

    @abstractmethod
    def put(self, key: Key, memo: Memo) -> Optional[Memo]:
        """Store memo for key and return the memo it replaced, if any."""

    @abstractmethod
    def keys(self) -> Iterator[Key]:
        """Iterate over every key that has a memo."""

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return sum(1 for _ in self.keys())


class InMemoryMemoStore(MemoStore):
    """Memo store backed by a plain dict. Entries are never removed."""

    def __init__(self) -> None:
        self._memos: dict[Key, Memo] = {}

    def get(self, key: Key) -> Optional[Memo]:
        return self._memos.get(key)

    def put(self, key: Key, memo: Memo) -> Optional[Memo]:
        old = self._memos.get(key)
        self._memos[key] = memo
        return old

    def keys(self) -> Iterator[Key]:
        return iter(list(self._memos))

    def __len__(self) -> int:
        return len(self._memos)

"""Key model for the query database.

Every cached value is addressed by a key. Keys come in two varieties:

- InputKey: a value supplied directly by the host through ``set_input``.
- DerivedKey: a value computed by a registered query function. The
  arguments passed to the function are part of the key's identity, so
  ``one_year_fee(16)`` and ``one_year_fee(17)`` are cached separately.

Keys are immutable and hashable so they can be used as store entries and
as members of dependency sets.
"""

from dataclasses import dataclass, field
from typing import Any, Hashable, Union


@dataclass(frozen=True)
class InputKey:
    """Identifies an input whose value is set by the host.

    Attributes:
        name: Input identifier (e.g. "base_fee")
    """

    name: str

    def __str__(self) -> str:
        return f"{self.name}()"


@dataclass(frozen=True)
class DerivedKey:
    """Identifies one evaluation of a registered query function.

    Attributes:
        name: Identifier of the registered query function
        args: Positional arguments the function is called with
    """

    name: str
    args: tuple[Hashable, ...] = field(default=())

    def __post_init__(self) -> None:
        if not isinstance(self.args, (tuple, list)):
            raise TypeError(
                f"Arguments for query '{self.name}' must be a tuple or list, "
                f"got {type(self.args).__name__}"
            )
        args = tuple(self.args)
        try:
            hash(args)
        except TypeError as exc:
            raise TypeError(
                f"Arguments for query '{self.name}' must be hashable, got {args!r}"
            ) from exc
        object.__setattr__(self, "args", args)

    def __str__(self) -> str:
        return f"{self.name}({', '.join(repr(arg) for arg in self.args)})"


Key = Union[InputKey, DerivedKey]


def format_key(key: Any) -> str:
    """Render a key as a function call, e.g. ``one_year_fee(17)``."""
    return str(key)

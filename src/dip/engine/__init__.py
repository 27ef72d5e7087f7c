"""Incremental query engine.

Provides the Database (fetch / set_input), the key model, the query
registry and the engine's exception hierarchy.
"""

from dip.engine.config import DatabaseConfig
from dip.engine.database import Database
from dip.engine.errors import (
    CycleDetectedError,
    DipError,
    InvalidMutationError,
    RegistrationError,
    UnsetInputError,
    WrongKeyKindError,
)
from dip.engine.keys import DerivedKey, InputKey, Key, format_key
from dip.engine.memo import InMemoryMemoStore, Memo, MemoStore, StampedValue
from dip.engine.registry import QueryRegistry
from dip.engine.revision import RevisionClock

__all__ = [
    "Database",
    "DatabaseConfig",
    "QueryRegistry",
    "InputKey",
    "DerivedKey",
    "Key",
    "format_key",
    "Memo",
    "MemoStore",
    "InMemoryMemoStore",
    "StampedValue",
    "RevisionClock",
    "DipError",
    "UnsetInputError",
    "CycleDetectedError",
    "InvalidMutationError",
    "WrongKeyKindError",
    "RegistrationError",
]

"""Diagnostic events emitted by the query engine.

Events are immutable records handed to an optional EventSink. Sinks are
pure observers: the engine ignores anything they return, and a database
behaves identically with or without one attached.

Sinks shipped here:
- LoggingEventSink: renders an indented, human-readable trace via structlog
- RecordingEventSink: keeps every event in a list for inspection
- FanOutEventSink: forwards each event to several sinks
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Protocol, Union

import structlog

from dip.observability.logging import get_logger

if TYPE_CHECKING:
    from dip.engine.keys import Key
    from dip.engine.memo import Memo


@dataclass(frozen=True)
class InputSet:
    """An input was set; ``revision`` is the new current revision."""

    key: "Key"
    value: Any
    revision: int


@dataclass(frozen=True)
class QueryStarted:
    key: "Key"


@dataclass(frozen=True)
class QueryCompleted:
    key: "Key"
    value: Any
    changed_at: int


@dataclass(frozen=True)
class QueryFailed:
    key: "Key"
    error: BaseException


@dataclass(frozen=True)
class MemoRead:
    """Result of looking up a key's memo (None when no memo exists yet)."""

    key: "Key"
    memo: Optional["Memo"]


@dataclass(frozen=True)
class InputMemoValid:
    key: "Key"


@dataclass(frozen=True)
class MemoVerifiedAtCurrentRevision:
    key: "Key"


@dataclass(frozen=True)
class DependencyChecksStarted:
    key: "Key"
    verified_at: int


@dataclass(frozen=True)
class DependencyChecked:
    """One dependency of ``key`` was brought up to date and inspected."""

    key: "Key"
    dependency: "Key"
    changed_at: int


@dataclass(frozen=True)
class DependencyChecksCompleted:
    key: "Key"
    any_changed: bool


@dataclass(frozen=True)
class FunctionStarted:
    key: "Key"


@dataclass(frozen=True)
class FunctionCompleted:
    key: "Key"


@dataclass(frozen=True)
class ValueCompared:
    key: "Key"
    old_value: Any
    new_value: Any
    revision: int


@dataclass(frozen=True)
class MemoStored:
    key: "Key"
    old: Optional["Memo"]
    new: "Memo"


@dataclass(frozen=True)
class FrameOpened:
    owner: Optional["Key"]


@dataclass(frozen=True)
class FrameClosed:
    owner: Optional["Key"]
    dependencies: tuple["Key", ...] = field(default=())


Event = Union[
    InputSet,
    QueryStarted,
    QueryCompleted,
    QueryFailed,
    MemoRead,
    InputMemoValid,
    MemoVerifiedAtCurrentRevision,
    DependencyChecksStarted,
    DependencyChecked,
    DependencyChecksCompleted,
    FunctionStarted,
    FunctionCompleted,
    ValueCompared,
    MemoStored,
    FrameOpened,
    FrameClosed,
]


class EventSink(Protocol):
    """Write-only receiver of engine events."""

    def handle(self, event: Event) -> None:
        """Receive one event. Must not raise and must not touch the database."""
        ...


class RecordingEventSink:
    """Collects events in order."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def handle(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Any]:
        """Return recorded events of the given type."""
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()


class FanOutEventSink:
    """Forwards every event to each wrapped sink in order."""

    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = list(sinks)

    def handle(self, event: Event) -> None:
        for sink in self.sinks:
            sink.handle(event)


class LoggingEventSink:
    """Renders events as an indented trace, one log line per event.

    Nested queries, function runs and dependency checks each indent the
    trace by one level so the output mirrors the recursion of a fetch.
    """

    TAB = "|  "

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None) -> None:
        self._logger = logger or get_logger("dip.trace")
        self._indent = 0
        # indent to restore when each open query finishes
        self._query_starts: list[int] = []

    @property
    def indent(self) -> int:
        return self._indent

    def handle(self, event: Event) -> None:
        # closing events are logged at the level of the block they close
        closing = isinstance(
            event, (QueryCompleted, QueryFailed, FunctionCompleted, DependencyChecksCompleted)
        )
        if closing:
            self._reindent(event)
        line = self._render(event)
        if line is not None:
            self._logger.info(self.TAB * self._indent + line)
        if not closing:
            self._reindent(event)

    def _render(self, event: Event) -> Optional[str]:
        if isinstance(event, InputSet):
            return (
                f"Setting {event.key} to {event.value!r}; "
                f"global revision is now {event.revision}"
            )
        if isinstance(event, QueryStarted):
            return f"Query {event.key}"
        if isinstance(event, QueryFailed):
            return f"Query {event.key} failed: {event.error}"
        if isinstance(event, MemoRead):
            if event.memo is None:
                return "No memo currently exists"
            return f"Existing memo: {event.memo.describe()}"
        if isinstance(event, InputMemoValid):
            return "Memo is valid as this is an input query"
        if isinstance(event, MemoVerifiedAtCurrentRevision):
            return "Memo is valid as it was verified at the current revision"
        if isinstance(event, DependencyChecksStarted):
            return (
                "Checking dependencies to see if any have changed since revision "
                f"{event.verified_at}, when this memo was last verified"
            )
        if isinstance(event, DependencyChecked):
            return (
                f"Dependency {event.dependency} last changed at revision "
                f"{event.changed_at}"
            )
        if isinstance(event, DependencyChecksCompleted):
            if event.any_changed:
                return "Memo is invalid as a dependency has changed"
            return "Memo is valid as no dependencies have changed"
        if isinstance(event, FunctionStarted):
            return "Running query function"
        if isinstance(event, ValueCompared):
            if event.old_value == event.new_value:
                return (
                    f"New value {event.new_value!r} is the same as the memo value, "
                    "so not updating changed_at"
                )
            return (
                f"New value {event.new_value!r} != memo value {event.old_value!r}, "
                f"so updating changed_at to {event.revision}"
            )
        if isinstance(event, MemoStored):
            if event.old is None:
                return f"Storing memo: {event.new.describe()}"
            return f"Updating stored memo to: {event.new.describe()}"
        return None

    def _reindent(self, event: Event) -> None:
        if isinstance(event, QueryStarted):
            self._query_starts.append(self._indent)
            self._indent += 1
        elif isinstance(event, (QueryCompleted, QueryFailed)):
            self._indent = self._query_starts.pop() if self._query_starts else 0
        elif isinstance(event, (FunctionStarted, DependencyChecksStarted)):
            self._indent += 1
        elif isinstance(event, DependencyChecksCompleted):
            self._indent = max(self._indent - 1, 0)
        elif isinstance(event, FunctionCompleted):
            self._indent = max(self._indent - 1, 0)

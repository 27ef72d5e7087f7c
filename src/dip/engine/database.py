"""Query database: memoized, lazily re-validated derived values.

The Database owns every piece of engine state: the revision clock, the
memo store and the dependency tracker. Hosts change data only through
``set_input``, which advances the revision, and read data through
``fetch``, which returns a value that is current for the revision:

1. No memo yet: run the query function, recording the keys it fetches.
2. Memo verified at the current revision: return it as is.
3. Input memo from an earlier revision: inputs only change through
   ``set_input``, so re-confirm it and return it.
4. Derived memo from an earlier revision: bring each recorded dependency
   up to date in order. If none of them changed after this memo was last
   verified, re-confirm the memo without running the function (early
   cutoff). Otherwise run the function again; if the new value equals the
   old one, ``changed_at`` is kept so dependents see no change.

Example:
    >>> registry = QueryRegistry()
    >>> registry.declare_input("base_fee")
    >>> registry.register("two_years", lambda db: 2 * db.get("base_fee"))
    >>> db = Database(registry)
    >>> db.set("base_fee", 100)
    >>> db.get("two_years")
    200
"""

from typing import Any, Hashable, Iterator, Optional

from structlog.contextvars import bound_contextvars

from dip.engine.config import DatabaseConfig
from dip.engine.errors import (
    CycleDetectedError,
    DipError,
    InvalidMutationError,
    UnsetInputError,
)
from dip.engine.keys import DerivedKey, InputKey, Key, format_key
from dip.engine.memo import InMemoryMemoStore, Memo, MemoStore, StampedValue
from dip.engine.registry import QueryRegistry
from dip.engine.revision import RevisionClock
from dip.engine.tracker import DependencyTracker
from dip.observability.events import (
    DependencyChecked,
    DependencyChecksCompleted,
    DependencyChecksStarted,
    Event,
    EventSink,
    FrameClosed,
    FrameOpened,
    FunctionCompleted,
    FunctionStarted,
    InputMemoValid,
    InputSet,
    LoggingEventSink,
    MemoRead,
    MemoStored,
    MemoVerifiedAtCurrentRevision,
    QueryCompleted,
    QueryFailed,
    QueryStarted,
    ValueCompared,
)
from dip.observability.logging import get_logger
from dip.observability.metrics import (
    PATH_CUTOFF,
    PATH_FRESH,
    PATH_INPUT,
    PATH_NEW,
    PATH_RECOMPUTED,
    QueryMetrics,
)

logger = get_logger(__name__)


class Database:
    """Memoizing query database.

    Not thread safe: a database has a single logical reader/writer, and
    ``set_input`` is rejected while any fetch is being evaluated.
    """

    def __init__(
        self,
        registry: QueryRegistry,
        config: Optional[DatabaseConfig] = None,
        sink: Optional[EventSink] = None,
        store: Optional[MemoStore] = None,
        metrics: Optional[QueryMetrics] = None,
    ) -> None:
        """Initialize the database and freeze its registry.

        Args:
            registry: Declared inputs and registered query functions
            config: Database settings (defaults to DatabaseConfig())
            sink: Optional receiver of diagnostic events
            store: Memo store backend (defaults to an in-memory store)
            metrics: Optional metrics collector
        """
        self.config = config or DatabaseConfig()
        self.registry = registry
        registry.freeze()

        if sink is None and self.config.trace:
            sink = LoggingEventSink()
        if metrics is None and self.config.metrics_enabled:
            metrics = QueryMetrics()

        self.sink = sink
        self.metrics = metrics
        self._clock = RevisionClock(self.config.initial_revision)
        self._store = store if store is not None else InMemoryMemoStore()
        self._tracker = DependencyTracker()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def revision(self) -> int:
        """The current revision."""
        return self._clock.current()

    @property
    def is_evaluating(self) -> bool:
        """Whether a fetch is in progress."""
        return self._tracker.is_active

    def memo(self, key: Key) -> Optional[Memo]:
        """Return the stored memo for key without fetching or emitting events."""
        return self._store.get(key)

    def keys(self) -> Iterator[Key]:
        """Iterate over every key that has a memo."""
        return self._store.keys()

    # ------------------------------------------------------------------
    # Host API
    # ------------------------------------------------------------------

    def key(self, name: str, *args: Hashable) -> Key:
        """Build the key for a registered name (see QueryRegistry.key)."""
        return self.registry.key(name, *args)

    def get(self, name: str, *args: Hashable) -> Any:
        """Fetch a query by name, e.g. ``db.get("one_year_fee", 17)``."""
        return self.fetch(self.registry.key(name, *args))

    def set(self, name: str, value: Any) -> None:
        """Set an input by name, e.g. ``db.set("base_fee", 100)``."""
        self.set_input(InputKey(name), value)

    def fetch(self, key: Key) -> Any:
        """Return the value of key, current for this revision.

        Args:
            key: Input or derived key

        Returns:
            The key's value

        Raises:
            UnsetInputError: If an input key has never been set
            CycleDetectedError: If key is fetched during its own evaluation
            WrongKeyKindError: If key does not match its registration
        """
        return self.fetch_stamped(key).value

    def fetch_stamped(self, key: Key) -> StampedValue:
        """Like :meth:`fetch`, but also return the revision the value last changed at."""
        # recorded even if the read fails, since the caller may handle the error
        self._tracker.record(key)
        with bound_contextvars(revision=self.revision):
            self._emit(QueryStarted(key))
            try:
                self.registry.check(key)
                stamped = self._read(key)
            except Exception as exc:
                self._emit(QueryFailed(key, exc))
                if not self.is_evaluating:
                    self._report_failure("fetch", key, exc)
                raise

        self._emit(QueryCompleted(key, stamped.value, stamped.changed_at))
        return stamped

    def set_input(self, key: Key, value: Any) -> None:
        """Set the value of an input key, advancing the revision.

        The revision advances and ``changed_at`` moves to it even when
        value equals the current value.

        Args:
            key: Input key
            value: New value

        Raises:
            InvalidMutationError: If key is not an input (including a derived
                query's name) or a fetch is in progress
            WrongKeyKindError: If key's name is not a declared input
        """
        try:
            if not isinstance(key, InputKey) or self.registry.is_query(key.name):
                raise InvalidMutationError(key, "only input keys can be set")
            self.registry.check(key)
            if self.is_evaluating:
                raise InvalidMutationError(
                    key, "inputs cannot be set while a query is being evaluated"
                )
        except Exception as exc:
            if not self.is_evaluating:
                self._report_failure("set_input", key, exc)
            raise

        revision = self._clock.advance()
        self._emit(InputSet(key, value, revision))
        logger.debug("input_set", key=format_key(key), revision=revision)
        if self.metrics is not None:
            self.metrics.record_input_set(key.name)

        self._store_memo(
            key, Memo(value=value, verified_at=revision, changed_at=revision, dependencies=())
        )

    # ------------------------------------------------------------------
    # Fetch algorithm
    # ------------------------------------------------------------------

    def _read(self, key: Key) -> StampedValue:
        revision = self.revision
        memo = self._read_memo(key)

        if isinstance(key, InputKey):
            return self._read_input(key, memo, revision)

        if self._tracker.is_open(key):
            raise CycleDetectedError(key, self._tracker.cycle_through(key))

        if memo is not None and memo.is_fresh(revision):
            self._emit(MemoVerifiedAtCurrentRevision(key))
            self._record_fetch("derived", PATH_FRESH)
            return StampedValue(memo.value, memo.changed_at)

        with self._tracker.evaluating(key):
            if memo is not None and not self._dependencies_changed(key, memo):
                self._store_memo(key, memo.verified(revision))
                self._record_fetch("derived", PATH_CUTOFF)
                if self.metrics is not None:
                    self.metrics.record_early_cutoff("dependencies")
                return StampedValue(memo.value, memo.changed_at)

            return self._execute(key, memo, revision)

    def _read_input(self, key: InputKey, memo: Optional[Memo], revision: int) -> StampedValue:
        if memo is None:
            raise UnsetInputError(key)

        self._emit(InputMemoValid(key))
        if memo.verified_at != revision:
            memo = self._store_memo(key, memo.verified(revision))
        self._record_fetch("input", PATH_INPUT)
        return StampedValue(memo.value, memo.changed_at)

    def _dependencies_changed(self, key: Key, memo: Memo) -> bool:
        """Bring memo's dependencies up to date and report whether any changed.

        Stops at the first dependency whose ``changed_at`` is later than the
        memo's ``verified_at``, or whose fetch raises an engine error.
        """
        self._emit(DependencyChecksStarted(key, memo.verified_at))
        any_changed = False

        # validation fetches belong to no evaluation
        self._open_frame(None)
        try:
            for dependency in memo.dependencies:
                try:
                    changed_at = self.fetch_stamped(dependency).changed_at
                except DipError:
                    # rerunning the function surfaces or handles the same error
                    any_changed = True
                    break
                self._emit(DependencyChecked(key, dependency, changed_at))
                if changed_at > memo.verified_at:
                    any_changed = True
                    break
        finally:
            self._close_frame(None)

        self._emit(DependencyChecksCompleted(key, any_changed))
        return any_changed

    def _execute(self, key: DerivedKey, previous: Optional[Memo], revision: int) -> StampedValue:
        """Run key's query function and store the result."""
        function = self.registry.function_for(key)

        self._open_frame(key)
        self._emit(FunctionStarted(key))
        try:
            new_value = function(self, *key.args)
        finally:
            dependencies = self._close_frame(key)
        self._emit(FunctionCompleted(key))
        if self.metrics is not None:
            self.metrics.record_function_run(key.name)

        if previous is None:
            changed_at = revision
            self._record_fetch("derived", PATH_NEW)
        else:
            self._emit(ValueCompared(key, previous.value, new_value, revision))
            if previous.value == new_value:
                changed_at = previous.changed_at
                if self.metrics is not None:
                    self.metrics.record_early_cutoff("value")
            else:
                changed_at = revision
            self._record_fetch("derived", PATH_RECOMPUTED)

        self._store_memo(
            key,
            Memo(
                value=new_value,
                verified_at=revision,
                changed_at=changed_at,
                dependencies=dependencies,
            ),
        )
        return StampedValue(new_value, changed_at)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _read_memo(self, key: Key) -> Optional[Memo]:
        memo = self._store.get(key)
        self._emit(MemoRead(key, memo))
        return memo

    def _store_memo(self, key: Key, memo: Memo) -> Memo:
        old = self._store.put(key, memo)
        self._emit(MemoStored(key, old, memo))
        return memo

    def _open_frame(self, owner: Optional[Key]) -> None:
        self._tracker.push_frame(owner)
        self._emit(FrameOpened(owner))

    def _close_frame(self, owner: Optional[Key]) -> tuple[Key, ...]:
        dependencies = self._tracker.pop_frame()
        self._emit(FrameClosed(owner, dependencies))
        return dependencies

    def _emit(self, event: Event) -> None:
        if self.sink is None:
            return
        try:
            self.sink.handle(event)
        except Exception:
            logger.warning("event_sink_failed", event_type=type(event).__name__, exc_info=True)

    def _record_fetch(self, kind: str, path: str) -> None:
        if self.metrics is not None:
            self.metrics.record_fetch(kind, path)

    def _report_failure(self, operation: str, key: Any, exc: Exception) -> None:
        error_code = getattr(exc, "error_code", type(exc).__name__)
        logger.warning(
            "query_failed",
            operation=operation,
            key=format_key(key),
            error_code=error_code,
            error=str(exc),
        )
        if self.metrics is not None:
            self.metrics.record_error(error_code)

    def __repr__(self) -> str:
        return f"Database(revision={self.revision}, memos={len(self._store)})"

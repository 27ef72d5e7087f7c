"""Query registry.

The registry knows about every query before the database is built:

- input identifiers, whose values the host sets directly, and
- derived query functions with signature ``(db, *args) -> value``.

Query functions must be pure with respect to everything except values
obtained through ``db.fetch`` (or the ``db.get`` shorthand). They must not
read or mutate outside state and must not call ``set_input``. Purity is a
precondition of the incremental algorithm and is not checked at runtime.
A function may catch an engine error raised by a nested fetch; the key it
failed to fetch is still recorded as a dependency.

Example:
    >>> registry = QueryRegistry()
    >>> registry.declare_input("base_fee", "discount_amount")
    >>> @registry.query()
    ... def discounted_fee(db):
    ...     return db.get("base_fee") - db.get("discount_amount")
"""

from typing import Any, Callable, Hashable, Optional

from dip.engine.errors import RegistrationError, WrongKeyKindError
from dip.engine.keys import DerivedKey, InputKey, Key

QueryFunction = Callable[..., Any]


class QueryRegistry:
    """Flat lookup table of input identifiers and derived query functions."""

    def __init__(self) -> None:
        self._inputs: set[str] = set()
        self._queries: dict[str, QueryFunction] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def declare_input(self, *names: str) -> None:
        """Declare one or more input identifiers.

        Args:
            names: Input identifiers

        Raises:
            RegistrationError: If the registry is frozen or a name is a derived query
        """
        for name in names:
            self._check_writable(name)
            if name in self._queries:
                raise RegistrationError(name, "already registered as a derived query")
            self._inputs.add(name)

    def register(self, name: str, function: QueryFunction) -> None:
        """Register the function computing derived query ``name``.

        Args:
            name: Query identifier
            function: Callable invoked as ``function(db, *args)``

        Raises:
            RegistrationError: If the name is taken or the registry is frozen
        """
        self._check_writable(name)
        if not callable(function):
            raise RegistrationError(name, "query function must be callable")
        if name in self._inputs:
            raise RegistrationError(name, "already declared as an input")
        if name in self._queries:
            raise RegistrationError(name, "a query function is already registered")
        self._queries[name] = function

    def query(self, name: Optional[str] = None) -> Callable[[QueryFunction], QueryFunction]:
        """Decorator form of :meth:`register`. Defaults to the function's name."""

        def decorator(function: QueryFunction) -> QueryFunction:
            self.register(name or function.__name__, function)
            return function

        return decorator

    def freeze(self) -> None:
        """Reject further registrations. Called when a database takes ownership."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self, name: str) -> None:
        if self._frozen:
            raise RegistrationError(name, "registry is frozen once a database is built")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def is_input(self, name: str) -> bool:
        return name in self._inputs

    def is_query(self, name: str) -> bool:
        return name in self._queries

    @property
    def inputs(self) -> frozenset[str]:
        return frozenset(self._inputs)

    @property
    def queries(self) -> frozenset[str]:
        return frozenset(self._queries)

    def key(self, name: str, *args: Hashable) -> Key:
        """Build the key for ``name``: derived if it is a registered query, else input.

        Raises:
            WrongKeyKindError: If arguments are given for an input
        """
        if name in self._queries:
            return DerivedKey(name, args)
        key = InputKey(name)
        if args:
            raise WrongKeyKindError(key, "inputs take no arguments")
        return key

    def check(self, key: Key) -> None:
        """Verify that key matches the kind its name is registered as.

        Raises:
            WrongKeyKindError: On a mismatch or an unknown name
        """
        if isinstance(key, DerivedKey):
            if key.name not in self._queries:
                expected = (
                    "declared as an input" if key.name in self._inputs else "no query function"
                )
                raise WrongKeyKindError(key, expected)
        elif isinstance(key, InputKey):
            if key.name not in self._inputs:
                expected = (
                    "registered as a derived query"
                    if key.name in self._queries
                    else "not declared as an input"
                )
                raise WrongKeyKindError(key, expected)
        else:
            raise WrongKeyKindError(key, "not a query key")

    def function_for(self, key: DerivedKey) -> QueryFunction:
        """Return the function registered for key.

        Raises:
            WrongKeyKindError: If no function is registered under key's name
        """
        try:
            return self._queries[key.name]
        except KeyError:
            raise WrongKeyKindError(key, "no query function") from None

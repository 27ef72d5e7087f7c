"""Custom exceptions for the query engine.

This module defines the exception hierarchy for engine errors, providing
structured error handling with error codes and context. None of these
errors is recovered from inside the engine: each aborts the in-flight
``fetch`` or ``set_input`` call and propagates to the host.
"""

from typing import Any, Optional, Sequence

from dip.engine.keys import format_key


class DipError(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context information about the error
    """

    def __init__(
        self, message: str, error_code: str, context: Optional[dict[str, Any]] = None
    ) -> None:
        """Initialize engine error.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code
            context: Optional additional context information
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class UnsetInputError(DipError):
    """Raised when an input key is fetched before any value was set for it."""

    def __init__(self, key: Any) -> None:
        """Initialize unset input error.

        Args:
            key: The input key that has no value
        """
        super().__init__(
            message=f"Input '{format_key(key)}' has not been set",
            error_code="unset_input",
            context={"key": format_key(key)},
        )
        self.key = key


class CycleDetectedError(DipError):
    """Raised when a key is fetched while its own evaluation is still open.

    This error indicates that the key depends on itself, either directly or
    through a chain of other derived keys.
    """

    def __init__(self, key: Any, cycle: Sequence[Any] = ()) -> None:
        """Initialize cycle detected error.

        Args:
            key: The key that was fetched again during its own evaluation
            cycle: Open keys from the first evaluation of key to the repeated fetch
        """
        path = list(cycle) or [key, key]
        rendered = " -> ".join(format_key(k) for k in path)
        super().__init__(
            message=f"Cycle detected while evaluating '{format_key(key)}': {rendered}",
            error_code="cycle_detected",
            context={"key": format_key(key), "cycle": [format_key(k) for k in path]},
        )
        self.key = key
        self.cycle = tuple(path)


class InvalidMutationError(DipError):
    """Raised when set_input is called on a non-input key or mid-evaluation."""

    def __init__(self, key: Any, reason: str) -> None:
        """Initialize invalid mutation error.

        Args:
            key: The key that was being set
            reason: Why the mutation was rejected
        """
        super().__init__(
            message=f"Cannot set '{format_key(key)}': {reason}",
            error_code="invalid_mutation",
            context={"key": format_key(key), "reason": reason},
        )
        self.key = key
        self.reason = reason


class WrongKeyKindError(DipError):
    """Raised when a key does not match the kind its name is registered as.

    Examples are a derived key with no registered function, or an input key
    whose name was never declared as an input.
    """

    def __init__(self, key: Any, expected: str) -> None:
        """Initialize wrong key kind error.

        Args:
            key: The offending key
            expected: Description of what the registry knows about the name
        """
        super().__init__(
            message=f"Key '{format_key(key)}' does not match its registration: {expected}",
            error_code="wrong_key_kind",
            context={"key": format_key(key), "expected": expected},
        )
        self.key = key
        self.expected = expected


class RegistrationError(DipError):
    """Raised when a query or input cannot be registered."""

    def __init__(self, name: str, reason: str) -> None:
        """Initialize registration error.

        Args:
            name: Identifier being registered
            reason: Why the registration was rejected
        """
        super().__init__(
            message=f"Cannot register '{name}': {reason}",
            error_code="registration_error",
            context={"name": name, "reason": reason},
        )
        self.name = name
        self.reason = reason

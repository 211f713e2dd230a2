"""
pipefold Exception Hierarchy

Contains all exception classes raised by the pipeline and FSM layers.
"""

from typing import Any


class PipefoldError(Exception):
    """
    Base exception for all pipefold operations.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class MatchError(PipefoldError):
    """
    Raised when a partial function is applied outside its domain.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"No case matched value {value!r}")


class UnsupportedOperationError(PipefoldError):
    """
    Raised at build time when the active execution strategy cannot
    perform a requested combinator (e.g. sorting).

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class EffectError(PipefoldError):
    """
    Raised when an effect value has the wrong shape for the effect
    context evaluating it.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class FSMError(PipefoldError):
    """
    Base exception for state machine declaration and execution.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class NoMatchingTransitionError(FSMError):
    """
    Raised when neither the rule for the current state nor the fallback
    rule applies to an element.

    This is an ordinary element failure: `handle_error` and
    `handle_error_with` attached after the FSM intercept it.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, state_name: Any, element: Any):
        self.state_name = state_name
        self.element = element
        super().__init__(
            f"No transition defined for element {element!r} in state {state_name!r}"
        )


class QueryError(PipefoldError):
    """
    Raised for malformed aggregation queries.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


__all__ = [
    "PipefoldError",
    "MatchError",
    "UnsupportedOperationError",
    "EffectError",
    "FSMError",
    "NoMatchingTransitionError",
    "QueryError",
]

"""
pipefold - lazy, effect-generic data pipelines

Build a chain of element-wise operations over a generic effect context and
evaluate it once. A finite-state-machine combinator folds elements through
per-state transition rules.
"""

__version__ = "0.1.0"

from .dsl import (
    Pipeline,
    Effect, TryEffect, IO, IOEffect,
    Execution, Sequential, Parallel,
    Case, case, PartialFunction,
    Result, Ok, Err,
)
from .fsm import State, InitialState, Transition, FSMBuilder, goto, stay
from .exceptions import (
    PipefoldError,
    MatchError,
    UnsupportedOperationError,
    EffectError,
    FSMError,
    NoMatchingTransitionError,
    QueryError,
)
from .logging_config import get_debug_trace_logger

# Attaches trace handlers only when PIPEFOLD_DEBUG_LOG is set
get_debug_trace_logger()

# The query evaluator is lazy-imported (it depends on pyarrow)
_QL_ATTRS = {"Query", "Aggregate", "QueryResult", "run_query"}


def __getattr__(name):
    if name in _QL_ATTRS:
        from . import ql
        return getattr(ql, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "Pipeline",
    "Effect",
    "TryEffect",
    "IO",
    "IOEffect",
    "Execution",
    "Sequential",
    "Parallel",
    "Case",
    "case",
    "PartialFunction",
    "Result",
    "Ok",
    "Err",
    "State",
    "InitialState",
    "Transition",
    "FSMBuilder",
    "goto",
    "stay",
    "PipefoldError",
    "MatchError",
    "UnsupportedOperationError",
    "EffectError",
    "FSMError",
    "NoMatchingTransitionError",
    "QueryError",
    "Query",
    "Aggregate",
    "QueryResult",
    "run_query",
]

"""
pipefold DSL - lazy pipeline combinators over a generic effect.

Category Theory:
- Pipeline is a Monad with bind/fmap/pure
- Effects (TryEffect, IOEffect) are capability objects passed to evaluate()
- Partial functions are explicit ordered Cases, lifted to Maybe

Example:
    from pipefold.dsl import Pipeline, TryEffect, case

    evens_squared = (
        Pipeline.of(1, 2, 3, 4)
        .collect(case(lambda x: x % 2 == 0, lambda x: x * x))
        .run(TryEffect())
    )
    # (4, 16)
"""

# Category theory foundations
from .catpy import (
    Functor, Applicative, Monad,
    Result, Ok, Err,
    Maybe, Just, Nothing,
    Case, case, PartialFunction,
    compose, identity, const,
)

# Effect contexts
from .effects import Effect, TryEffect, IO, IOEffect, from_result, from_io

# Execution strategies
from .execution import Execution, Sequential, Parallel

# Pipeline facade
from .pipeline import Pipeline

__all__ = [
    # Category Theory
    "Functor",
    "Applicative",
    "Monad",
    "Result",
    "Ok",
    "Err",
    "Maybe",
    "Just",
    "Nothing",
    "Case",
    "case",
    "PartialFunction",
    "compose",
    "identity",
    "const",
    # Effects
    "Effect",
    "TryEffect",
    "IO",
    "IOEffect",
    "from_result",
    "from_io",
    # Execution
    "Execution",
    "Sequential",
    "Parallel",
    # Pipeline
    "Pipeline",
]

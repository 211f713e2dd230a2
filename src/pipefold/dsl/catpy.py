"""
catpy.py - Category-theory-inspired programming foundations for pipefold.

This module provides the core typeclasses and types used throughout the DSL:
- Core typeclasses: Functor, Applicative, Monad
- Concrete instances: Maybe (Just/Nothing), Result (Ok/Err)
- PartialFunction: ordered predicate/handler cases with explicit "no match"
- Helpers: compose, identity, const
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Tuple,
    TypeVar,
)
from abc import ABC, abstractmethod

from ..exceptions import MatchError

T = TypeVar("T")
U = TypeVar("U")
V = TypeVar("V")
E = TypeVar("E")

# ---------------------------------------------------------------------------
# Core typeclasses
# ---------------------------------------------------------------------------

class Functor(ABC, Generic[T]):
    """
    A structure that supports mapping a function over the values it contains.

    Laws (for all f: a->b, g: b->c):
      1) Identity:     fmap(id)      == id
      2) Composition:  fmap(g)∘fmap(f) == fmap(g∘f)

    ::: This is-in-layer Functional-Foundation-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    @abstractmethod
    def fmap(self, f: Callable[[T], U]) -> "Functor[U]":
        """Map a pure function over the structure."""
        raise NotImplementedError

    # Convenience alias
    def map(self, f: Callable[[T], U]) -> "Functor[U]":
        return self.fmap(f)


class Applicative(Functor[T], ABC):
    """
    A Functor that can lift pure values and apply wrapped functions.

    Laws (for all x and functions u, v):
      1) Identity:     pure(id).ap(v) == v
      2) Homomorphism: pure(f).ap(pure(x)) == pure(f(x))

    ::: This is-in-layer Functional-Foundation-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    @classmethod
    @abstractmethod
    def pure(cls, x: U) -> "Applicative[U]":
        """Lift a value into the applicative context."""
        raise NotImplementedError

    @abstractmethod
    def ap(self: "Applicative[Callable[[T], U]]", x: "Applicative[T]") -> "Applicative[U]":
        """Apply a wrapped function to a wrapped value."""
        raise NotImplementedError


class Monad(Applicative[T], ABC):
    """
    A structure that supports flattening/sequencing (bind).

    Laws (for all x and functions f: a -> m b, g: b -> m c):
      1) Left identity:  pure(x).bind(f) == f(x)
      2) Right identity: m.bind(pure)    == m
      3) Associativity:  m.bind(f).bind(g) == m.bind(lambda x: f(x).bind(g))

    ::: This is-in-layer Functional-Foundation-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    @abstractmethod
    def bind(self, f: Callable[[T], "Monad[U]"]) -> "Monad[U]":
        """Chain a function that returns a wrapped value (aka flatMap)."""
        raise NotImplementedError

    # Default implementations in terms of bind/pure
    def fmap(self, f: Callable[[T], U]) -> "Monad[U]":  # type: ignore[override]
        return self.bind(lambda a: self.__class__.pure(f(a)))  # type: ignore[misc]

    def ap(self: "Monad[Callable[[T], U]]", x: "Monad[T]") -> "Monad[U]":  # type: ignore[override]
        return self.bind(lambda f: x.bind(lambda a: self.__class__.pure(f(a))))  # type: ignore[misc]

    def flat_map(self, f: Callable[[T], "Monad[U]"]) -> "Monad[U]":
        return self.bind(f)


# ---------------------------------------------------------------------------
# Maybe
# ---------------------------------------------------------------------------

class Maybe(Monad[T], ABC):
    """
    Optional value: either Just(value) or Nothing().

    ::: This is-in-layer Functional-Foundation-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """

    @classmethod
    def pure(cls, x: U) -> "Maybe[U]":  # type: ignore[override]
        return Just(x)

    def is_just(self) -> bool:
        return isinstance(self, Just)

    def get_or_else(self, default: T) -> T:
        """Get the value or return default if Nothing."""
        if isinstance(self, Just):
            return self.value
        return default

    def or_else(self, alternative: "Maybe[T]") -> "Maybe[T]":
        """Return self if Just, otherwise return alternative."""
        if isinstance(self, Just):
            return self
        return alternative

    def to_tuple(self) -> Tuple[T, ...]:
        """Zero or one element tuple."""
        if isinstance(self, Just):
            return (self.value,)
        return ()


@dataclass(frozen=True)
class Just(Maybe[T]):
    """Represents a present value in a Maybe context."""
    value: T

    def bind(self, f: Callable[[T], Maybe[U]]) -> Maybe[U]:
        return f(self.value)

    def fmap(self, f: Callable[[T], U]) -> Maybe[U]:  # type: ignore[override]
        return Just(f(self.value))

    def ap(self, x: Maybe[T]) -> Maybe[U]:  # type: ignore[override]
        if callable(self.value):
            if isinstance(x, Just):
                return Just(self.value(x.value))  # type: ignore[misc]
            return Nothing()
        raise TypeError("Just.ap expects a Just(function).")

    def __repr__(self) -> str:
        return f"Just({self.value!r})"


@dataclass(frozen=True)
class Nothing(Maybe[Any]):
    """Represents an absent value in a Maybe context."""

    def bind(self, f: Callable[[Any], Maybe[U]]) -> Maybe[U]:
        return self  # type: ignore[return-value]

    def fmap(self, f: Callable[[Any], U]) -> Maybe[U]:  # type: ignore[override]
        return self  # type: ignore[return-value]

    def ap(self, x: Maybe[Any]) -> Maybe[Any]:  # type: ignore[override]
        return self

    def __repr__(self) -> str:
        return "Nothing()"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class Result(Monad[T], ABC, Generic[T, E]):
    """
    Tagged union for success or failure with an error value.
    - Ok(value)
    - Err(error)

    TryEffect uses Result[T, Exception] as its effect value.

    ::: This is-in-layer Functional-Foundation-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """

    @classmethod
    def pure(cls, x: U) -> "Result[U, E]":  # type: ignore[override]
        return Ok(x)

    def is_err(self) -> bool:
        return isinstance(self, Err)

    def unwrap(self) -> T:
        """Get the value or raise if Err."""
        if isinstance(self, Ok):
            return self.value
        raise ValueError(f"Cannot unwrap Err: {self}")

    def unwrap_or(self, default: T) -> T:
        """Get the value or return default if Err."""
        if isinstance(self, Ok):
            return self.value
        return default


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Represents a successful result."""
    value: T

    def bind(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return f(self.value)

    def fmap(self, f: Callable[[T], U]) -> Result[U, E]:  # type: ignore[override]
        return Ok(f(self.value))

    def ap(self, x: Result[T, E]) -> Result[U, E]:  # type: ignore[override]
        if callable(self.value):
            if isinstance(x, Ok):
                return Ok(self.value(x.value))  # type: ignore[misc]
            return x  # Err propagates
        raise TypeError("Ok.ap expects an Ok(function).")

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Result[Any, E]):
    """Represents a failed result with error information."""
    error: E

    def bind(self, f: Callable[[Any], Result[U, E]]) -> Result[U, E]:
        return self  # type: ignore[return-value]

    def fmap(self, f: Callable[[Any], U]) -> Result[U, E]:  # type: ignore[override]
        return self  # type: ignore[return-value]

    def ap(self, x: Result[Any, E]) -> Result[Any, E]:  # type: ignore[override]
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# ---------------------------------------------------------------------------
# Partial functions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Case(Generic[T, U]):
    """One guarded branch of a partial function: `predicate(x) => handler(x)`."""
    predicate: Callable[[T], bool]
    handler: Callable[[T], U]


def case(predicate: Callable[[T], bool], handler: Callable[[T], U]) -> Case[T, U]:
    """Build a Case. Reads like a pattern-match arm at call sites."""
    return Case(predicate, handler)


class PartialFunction(Generic[T, U]):
    """
    A function defined only for some inputs.

    The primitive operation is `lift(x) -> Maybe[U]`, which evaluates the
    function at most once per input. Cases are tested in registration order
    and the first whose predicate holds wins.

    ::: This is-in-layer Functional-Foundation-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """

    __slots__ = ("_lift",)

    def __init__(self, lift: Callable[[T], Maybe[U]]):
        self._lift = lift

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def of(cls, *cases: Case[T, U]) -> "PartialFunction[T, U]":
        """Partial function from ordered cases."""
        frozen = tuple(cases)

        def lift(x: T) -> Maybe[U]:
            for c in frozen:
                if c.predicate(x):
                    return Just(c.handler(x))
            return Nothing()

        return cls(lift)

    @classmethod
    def guard(cls, predicate: Callable[[T], bool]) -> "PartialFunction[T, T]":
        """`{x if predicate(x) => x}`"""
        return cls(lambda x: Just(x) if predicate(x) else Nothing())

    @classmethod
    def total(cls, f: Callable[[T], U]) -> "PartialFunction[T, U]":
        """A partial function defined everywhere."""
        return cls(lambda x: Just(f(x)))

    @classmethod
    def coerce(cls, value: Any) -> "PartialFunction":
        """Accept a PartialFunction, a single Case or an iterable of Cases."""
        if isinstance(value, PartialFunction):
            return value
        if isinstance(value, Case):
            return cls.of(value)
        if isinstance(value, Iterable):
            cases = tuple(value)
            if all(isinstance(c, Case) for c in cases):
                return cls.of(*cases)
        raise TypeError(
            f"Expected a PartialFunction or Case objects, got {type(value).__name__}"
        )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    def lift(self, x: T) -> Maybe[U]:
        return self._lift(x)

    def is_defined_at(self, x: T) -> bool:
        return self._lift(x).is_just()

    def __call__(self, x: T) -> U:
        result = self._lift(x)
        if isinstance(result, Just):
            return result.value
        raise MatchError(x)

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def and_then(self, f: Callable[[U], V]) -> "PartialFunction[T, V]":
        """Post-compose a total function."""
        return PartialFunction(lambda x: self._lift(x).fmap(f))

    def and_then_partial(self, other: "PartialFunction[U, V]") -> "PartialFunction[T, V]":
        """Post-compose another partial function; undefined if either is."""
        return PartialFunction(lambda x: self._lift(x).bind(other.lift))

    def compose(self, f: Callable[[V], T]) -> "PartialFunction[V, U]":
        """Pre-compose a total function: `(pf ∘ f)(x) == pf(f(x))`."""
        return PartialFunction(lambda x: self._lift(f(x)))

    def or_else(self, other: "PartialFunction[T, U]") -> "PartialFunction[T, U]":
        """Fall through to `other` where self is undefined."""
        def lift(x: T) -> Maybe[U]:
            result = self._lift(x)
            return result if result.is_just() else other.lift(x)
        return PartialFunction(lift)

    def recover(self, fallback: Callable[[Exception], U]) -> "PartialFunction[T, U]":
        """Replace a failure raised while applying self with `fallback(exc)`."""
        def lift(x: T) -> Maybe[U]:
            try:
                return self._lift(x)
            except Exception as exc:
                return Just(fallback(exc))
        return PartialFunction(lift)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def compose(f: Callable[[U], V], g: Callable[[T], U]) -> Callable[[T], V]:
    """Function composition: compose(f, g)(x) == f(g(x))"""
    return lambda x: f(g(x))


def identity(x: T) -> T:
    """Identity function."""
    return x


def const(x: T) -> Callable[[Any], T]:
    """Constant function: const(x)(y) == x for all y."""
    return lambda _: x

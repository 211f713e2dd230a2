"""
Effect contexts for pipeline evaluation.

An Effect is an explicit capability object describing how computations are
sequenced and how they fail. Pipelines are generic over it: the same pipeline
can be evaluated with `TryEffect()` (strict, Result-valued) or `IOEffect()`
(lazy, run later with `IO.run()` / `IO.run_async()`).

Contract shared by every effect:
- `flat_map(fa, f)` and `delay(thunk)` capture any `Exception` raised by the
  user function into the effect's failure channel.
- Only `Exception` is captured. `BaseException` subclasses (cancellation,
  KeyboardInterrupt, SystemExit) propagate unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

from .catpy import Result, Ok, Err
from ..exceptions import EffectError

T = TypeVar("T")
U = TypeVar("U")


# =============================================================================
# Effect capability
# =============================================================================

class Effect(ABC):
    """
    Capability interface: pure-lift, flat-map, error raising and recovery.

    Everything else (map, defer, handle_error, traverse ...) is derived.

    ::: This is-in-layer Effect-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    name: str = "effect"

    @abstractmethod
    def pure(self, value: T) -> Any:
        """Lift a value into the effect."""

    @abstractmethod
    def raise_error(self, error: Exception) -> Any:
        """A failed computation."""

    @abstractmethod
    def delay(self, thunk: Callable[[], T]) -> Any:
        """Suspend a side-effecting thunk, capturing its failure."""

    @abstractmethod
    def flat_map(self, fa: Any, f: Callable[[T], Any]) -> Any:
        """Sequence `f` after `fa`."""

    @abstractmethod
    def handle_error_with(self, fa: Any, f: Callable[[Exception], Any]) -> Any:
        """Recover a failure of `fa` with another computation."""

    @abstractmethod
    def run_sync(self, fa: Any) -> Any:
        """Extract the result synchronously, raising the failure if any."""

    # -------------------------------------------------------------------------
    # Derived operations
    # -------------------------------------------------------------------------

    def unit(self) -> Any:
        return self.pure(None)

    def map(self, fa: Any, f: Callable[[T], U]) -> Any:
        return self.flat_map(fa, lambda a: self.pure(f(a)))

    def defer(self, thunk: Callable[[], Any]) -> Any:
        """Suspend a thunk that itself returns an effect value."""
        return self.flat_map(self.unit(), lambda _: thunk())

    def handle_error(self, fa: Any, f: Callable[[Exception], T]) -> Any:
        return self.handle_error_with(fa, lambda exc: self.delay(lambda: f(exc)))

    def attempt(self, fa: Any) -> Any:
        """Materialize failure as a Result value: F[Result[T, Exception]]."""
        return self.handle_error_with(
            self.map(fa, Ok),
            lambda exc: self.pure(Err(exc)),
        )

    def from_result(self, result: Result) -> Any:
        if isinstance(result, Ok):
            return self.pure(result.value)
        if isinstance(result, Err):
            error = result.error
            if not isinstance(error, Exception):
                error = EffectError(f"Err value is not an exception: {error!r}")
            return self.raise_error(error)
        raise EffectError(f"Expected Ok or Err, got {type(result).__name__}")

    def traverse(self, items: Iterable[T], f: Callable[[T], Any]) -> Any:
        """
        F[list] of `f(item)` for each item, sequenced strictly in order.

        `f` is only called once the previous element's effect has completed,
        so a failure stops the remaining elements from running. The
        accumulator is an immutable cons list, so re-running a lazy effect
        value never sees results from a previous run.
        """
        acc = self.pure(None)
        for item in items:
            acc = self.flat_map(acc, _Push(self, f, item))
        return self.map(acc, unwind_cons)

    def sequence(self, effects: Iterable[Any]) -> Any:
        return self.traverse(effects, lambda fa: fa)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class _Push:
    """flat_map continuation appending one element's result to a cons list."""

    __slots__ = ("effect", "f", "item")

    def __init__(self, effect: Effect, f: Callable[[Any], Any], item: Any):
        self.effect = effect
        self.f = f
        self.item = item

    def __call__(self, cell: Optional[Tuple[Any, Any]]) -> Any:
        return self.effect.map(self.f(self.item), lambda value: (value, cell))


def unwind_cons(cell: Optional[Tuple[Any, Any]]) -> List[Any]:
    out = []
    while cell is not None:
        value, cell = cell
        out.append(value)
    out.reverse()
    return out


# =============================================================================
# TryEffect: strict, Result-valued
# =============================================================================

class TryEffect(Effect):
    """
    Synchronous effect whose values are `Ok(value)` / `Err(exception)`.

    Work happens immediately when the effect value is built, which makes it
    the simplest context for tests and scripts.

    ::: This is-in-layer Effect-Layer.
    ::: This is a effect.
    ::: This is stateless.
    """

    name = "try"

    def pure(self, value: T) -> Result:
        return Ok(value)

    def raise_error(self, error: Exception) -> Result:
        return Err(error)

    def delay(self, thunk: Callable[[], T]) -> Result:
        try:
            return Ok(thunk())
        except Exception as exc:
            return Err(exc)

    def flat_map(self, fa: Result, f: Callable[[T], Result]) -> Result:
        fa = self._check(fa)
        if isinstance(fa, Err):
            return fa
        try:
            return self._check(f(fa.value))
        except Exception as exc:
            return Err(exc)

    def handle_error_with(self, fa: Result, f: Callable[[Exception], Result]) -> Result:
        fa = self._check(fa)
        if isinstance(fa, Ok):
            return fa
        try:
            return self._check(f(fa.error))
        except Exception as exc:
            return Err(exc)

    def run_sync(self, fa: Result) -> Any:
        fa = self._check(fa)
        if isinstance(fa, Ok):
            return fa.value
        raise fa.error

    @staticmethod
    def _check(fa: Any) -> Result:
        if not isinstance(fa, Result):
            raise EffectError(f"TryEffect expected Ok/Err, got {type(fa).__name__}")
        return fa


# =============================================================================
# IO: lazy, stack-safe effect value
# =============================================================================

class IO(Generic[T]):
    """
    A lazy description of a computation. Nothing runs until `run()` or
    `run_async()`; the same IO value can be run any number of times.

    The run loop keeps continuations on an explicit stack, so long
    flat_map chains (one per pipeline element) never hit the recursion limit.

    ::: This is-in-layer Effect-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """

    __slots__ = ()

    @staticmethod
    def pure(value: T) -> "IO[T]":
        return _Pure(value)

    @staticmethod
    def fail(error: Exception) -> "IO[Any]":
        return _Fail(error)

    @staticmethod
    def delay(thunk: Callable[[], T]) -> "IO[T]":
        return _Delay(thunk)

    @staticmethod
    def from_awaitable(thunk: Callable[[], Awaitable[T]]) -> "IO[T]":
        """Suspend an async function call. Only `run_async()` can execute it."""
        return _Suspend(thunk)

    def flat_map(self, f: Callable[[T], "IO[U]"]) -> "IO[U]":
        return _Bind(self, f)

    def map(self, f: Callable[[T], U]) -> "IO[U]":
        return _Bind(self, lambda a: _Pure(f(a)))

    def handle_error_with(self, f: Callable[[Exception], "IO[T]"]) -> "IO[T]":
        return _Recover(self, f)

    def run(self) -> T:
        stack: List[Tuple[bool, Callable]] = []
        current: Optional[IO] = self
        while True:
            leaf = _descend(current, stack)
            value, error = None, None
            try:
                if isinstance(leaf, _Suspend):
                    raise EffectError("IO contains an awaitable step; use run_async()")
                value = _eval_leaf(leaf)
            except Exception as exc:
                error = exc
            current, value, error = _unwind(stack, value, error)
            if current is None:
                if error is not None:
                    raise error
                return value

    async def run_async(self) -> T:
        stack: List[Tuple[bool, Callable]] = []
        current: Optional[IO] = self
        while True:
            leaf = _descend(current, stack)
            value, error = None, None
            try:
                if isinstance(leaf, _Suspend):
                    value = await leaf.thunk()
                else:
                    value = _eval_leaf(leaf)
            except Exception as exc:
                error = exc
            current, value, error = _unwind(stack, value, error)
            if current is None:
                if error is not None:
                    raise error
                return value


@dataclass(frozen=True, repr=False)
class _Pure(IO[T]):
    value: T

    def __repr__(self) -> str:
        return f"IO.pure({self.value!r})"


@dataclass(frozen=True, repr=False)
class _Fail(IO[Any]):
    error: Exception

    def __repr__(self) -> str:
        return f"IO.fail({self.error!r})"


@dataclass(frozen=True, repr=False)
class _Delay(IO[T]):
    thunk: Callable[[], T]

    def __repr__(self) -> str:
        return "IO.delay(...)"


@dataclass(frozen=True, repr=False)
class _Suspend(IO[T]):
    thunk: Callable[[], Awaitable[T]]

    def __repr__(self) -> str:
        return "IO.from_awaitable(...)"


@dataclass(frozen=True, repr=False)
class _Bind(IO[U]):
    source: IO
    f: Callable[[Any], IO[U]]

    def __repr__(self) -> str:
        return f"{self.source!r}.flat_map(...)"


@dataclass(frozen=True, repr=False)
class _Recover(IO[T]):
    source: IO[T]
    handler: Callable[[Exception], IO[T]]

    def __repr__(self) -> str:
        return f"{self.source!r}.handle_error_with(...)"


def _descend(io: IO, stack: List[Tuple[bool, Callable]]) -> IO:
    """Push continuations until a leaf is reached."""
    while True:
        if isinstance(io, _Bind):
            stack.append((False, io.f))
            io = io.source
        elif isinstance(io, _Recover):
            stack.append((True, io.handler))
            io = io.source
        else:
            return io


def _eval_leaf(leaf: IO) -> Any:
    if isinstance(leaf, _Pure):
        return leaf.value
    if isinstance(leaf, _Delay):
        return leaf.thunk()
    if isinstance(leaf, _Fail):
        raise leaf.error
    raise EffectError(f"Not an IO value: {leaf!r}")


def _unwind(stack, value, error):
    """
    Pop frames until one applies: bind frames on success, handler frames on
    failure. Returns (next_io, value, error); next_io is None when the stack
    is exhausted and (value, error) is the final outcome.
    """
    while stack:
        is_handler, fn = stack.pop()
        if (error is not None) != is_handler:
            continue
        try:
            next_io = fn(error) if is_handler else fn(value)
        except Exception as exc:
            error = exc
            continue
        if not isinstance(next_io, IO):
            error = EffectError(f"Continuation returned {type(next_io).__name__}, expected IO")
            continue
        return next_io, None, None
    return None, value, error


class IOEffect(Effect):
    """
    Lazy effect whose values are `IO` descriptions.

    `pipeline.evaluate(IOEffect())` only builds an IO; run it with
    `io.run()` or `await io.run_async()`. Asyncio cancellation raised inside
    `run_async()` propagates unchanged.

    ::: This is-in-layer Effect-Layer.
    ::: This is a effect.
    ::: This is stateless.
    """

    name = "io"

    def pure(self, value: T) -> IO[T]:
        return IO.pure(value)

    def raise_error(self, error: Exception) -> IO[Any]:
        return IO.fail(error)

    def delay(self, thunk: Callable[[], T]) -> IO[T]:
        return IO.delay(thunk)

    def from_awaitable(self, thunk: Callable[[], Awaitable[T]]) -> IO[T]:
        return IO.from_awaitable(thunk)

    def flat_map(self, fa: IO, f: Callable[[T], IO]) -> IO:
        return self._check(fa).flat_map(f)

    def handle_error_with(self, fa: IO, f: Callable[[Exception], IO]) -> IO:
        return self._check(fa).handle_error_with(f)

    def run_sync(self, fa: IO) -> Any:
        return self._check(fa).run()

    @staticmethod
    def _check(fa: Any) -> IO:
        if not isinstance(fa, IO):
            raise EffectError(f"IOEffect expected IO, got {type(fa).__name__}")
        return fa


# =============================================================================
# Cross-effect converters (for Pipeline.map_effect_across)
# =============================================================================

def from_result(effect: Effect, result: Result) -> Any:
    """Lift an Ok/Err value into any effect."""
    return effect.from_result(result)


def from_io(effect: Effect, io: IO) -> Any:
    """Lift an IO value into any effect by running it inside `effect.delay`."""
    if isinstance(effect, IOEffect):
        return io
    return effect.delay(io.run)

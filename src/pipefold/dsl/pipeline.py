"""
User-facing Pipeline.

A Pipeline pairs a node tree with the active execution strategy. Every
combinator returns a new Pipeline; nothing runs until `evaluate(effect)`.

Example:
    result = (
        Pipeline.of(1, 2, 0, 4)
        .map(lambda x: 10 / x)
        .handle_error(lambda exc: -1)
        .run(TryEffect())
    )
    # (10.0, 5.0, -1, 2.5)
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Optional, Tuple, TypeVar

from .catpy import Monad, PartialFunction, identity
from .effects import Effect
from .evaluation import evaluate_node
from .execution import Execution, Parallel, Sequential
from .nodes import (
    EMPTY, NODE_TYPES, Memoized, Node, Source,
    bridge_node, collect_node, describe, filter_node, flat_map_node,
    handle_error_node, handle_error_with_node, map_effect_node, map_node,
    sorted_node, stateful_node,
)
from ..exceptions import UnsupportedOperationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


def _as_node(value: Any) -> Node:
    """Unwrap a Pipeline returned by user code into its node."""
    if isinstance(value, Pipeline):
        return value.node
    if isinstance(value, NODE_TYPES):
        return value
    raise TypeError(f"Expected a Pipeline, got {type(value).__name__}")


def _iterable_source(values: Tuple[Any, ...], label: str = "iterable") -> Source:
    return Source(lambda F: F.pure(values), label)


@dataclass(frozen=True)
class Pipeline(Monad[T], Generic[T]):
    """
    A lazy, composable pipeline over a generic effect.

    Pipeline is a Monad where:
    - pure(x) is the one-element pipeline
    - bind(f) is flat_map: each element expands to a sub-pipeline
    - fmap(f) is map

    Compositions are fused while building (adjacent maps collapse into one
    node, map followed by map_effect into one effectful node ...), so the
    node tree stays shallow.

    ::: This is-in-layer Pipeline-Layer.
    ::: This is a facade.
    ::: This is stateless.
    """
    node: Node
    execution: Execution = field(default_factory=Sequential)

    def _with(self, node: Node, execution: Optional[Execution] = None) -> "Pipeline":
        return Pipeline(node, execution if execution is not None else self.execution)

    # -------------------------------------------------------------------------
    # Monad Implementation
    # -------------------------------------------------------------------------

    @classmethod
    def pure(cls, value: U) -> "Pipeline[U]":
        return cls.of(value)

    def bind(self, f: Callable[[T], "Pipeline[U]"]) -> "Pipeline[U]":
        return self.flat_map(f)

    def fmap(self, f: Callable[[T], U]) -> "Pipeline[U]":
        return self.map(f)

    def ap(self, x: "Pipeline[Any]") -> "Pipeline[Any]":
        return self.flat_map(lambda f: x.map(f))

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def of(cls, *items: T) -> "Pipeline[T]":
        return cls(_iterable_source(tuple(items)))

    @classmethod
    def from_iterable(cls, items: Iterable[T], execution: Optional[Execution] = None) -> "Pipeline[T]":
        """Pipeline over `items`, copied once at construction."""
        return cls(_iterable_source(tuple(items)), execution or Sequential())

    @classmethod
    def from_iterator(cls, thunk: Callable[[], Iterable[T]],
                      execution: Optional[Execution] = None) -> "Pipeline[T]":
        """`thunk()` is called inside the effect on every evaluation."""
        return cls(Source(lambda F: F.delay(thunk), "iterator"), execution or Sequential())

    @classmethod
    def from_effect(cls, produce: Callable[[Effect], Any],
                    execution: Optional[Execution] = None) -> "Pipeline[T]":
        """`produce(effect)` returns F[Iterable]."""
        return cls(Source(produce, "effect"), execution or Sequential())

    @classmethod
    def from_memoized(cls, values: Iterable[T], execution: Optional[Execution] = None) -> "Pipeline[T]":
        return cls(Memoized(tuple(values)), execution or Sequential())

    @classmethod
    def empty(cls, execution: Optional[Execution] = None) -> "Pipeline[Any]":
        return cls(EMPTY, execution or Sequential())

    # -------------------------------------------------------------------------
    # Element-wise combinators
    # -------------------------------------------------------------------------

    def map(self, f: Callable[[T], U]) -> "Pipeline[U]":
        return self._with(map_node(self.node, f))

    def flat_map(self, f: Callable[[T], "Pipeline[U]"]) -> "Pipeline[U]":
        """
        Expand each element into a sub-pipeline. Sub-pipelines are evaluated
        under this pipeline's strategy and concatenated in encounter order.
        """
        return self._with(flat_map_node(self.node, lambda a: _as_node(f(a))))

    def flatten(self) -> "Pipeline[Any]":
        """Pipeline of pipelines to pipeline."""
        return self.flat_map(identity)

    def filter(self, predicate: Callable[[T], bool]) -> "Pipeline[T]":
        return self._with(filter_node(self.node, predicate))

    def collect(self, *cases: Any) -> "Pipeline[Any]":
        """Keep the elements where the partial function is defined, mapped through it."""
        if not cases:
            raise ValueError("collect needs a partial function or at least one case")
        pf = PartialFunction.coerce(cases[0] if len(cases) == 1 else cases)
        return self._with(collect_node(self.node, pf))

    def map_effect(self, f: Callable[[T], Any]) -> "Pipeline[Any]":
        """`f(a)` returns a value of the evaluating effect, run in encounter order."""
        return self._with(map_effect_node(self.node, lambda F, a: f(a)))

    def map_effect_with(self, f: Callable[[Effect, T], Any]) -> "Pipeline[Any]":
        """Effect-generic variant: `f(effect, a)` returns F[B]."""
        return self._with(map_effect_node(self.node, f))

    def map_effect_across(self, f: Callable[[T], Any],
                          convert: Callable[[Effect, Any], Any]) -> "Pipeline[Any]":
        """
        `f(a)` returns a value of another effect; `convert(effect, value)`
        lifts it into the evaluating one (see effects.from_result / from_io).
        """
        return self._with(map_effect_node(self.node, lambda F, a: convert(F, f(a))))

    # -------------------------------------------------------------------------
    # Error recovery
    # -------------------------------------------------------------------------

    def handle_error(self, fallback: Callable[[Exception], T]) -> "Pipeline[T]":
        """Replace a failing element with `fallback(exc)`."""
        return self._with(handle_error_node(self.node, fallback))

    def handle_error_with(self, fallback: Callable[[Exception], "Pipeline[T]"]) -> "Pipeline[T]":
        """Splice the elements of `fallback(exc)` in place of a failing element."""
        return self._with(handle_error_with_node(self.node, lambda exc: _as_node(fallback(exc))))

    # -------------------------------------------------------------------------
    # Ordering and strategy
    # -------------------------------------------------------------------------

    def sorted(self, key: Optional[Callable[[T], Any]] = None, reverse: bool = False) -> "Pipeline[T]":
        if not self.execution.supports_sorting:
            raise UnsupportedOperationError(f"{self.execution!r} does not support sorting")
        return self._with(sorted_node(self.node, key, reverse))

    def bridge(self, execution: Execution) -> "Pipeline[T]":
        """Continue under `execution`; the upstream is drained and rebuilt."""
        return self._with(bridge_node(self.node, self.execution, execution), execution)

    def par(self, max_workers: Optional[int] = None) -> "Pipeline[T]":
        return self.bridge(Parallel(max_workers))

    def seq(self) -> "Pipeline[T]":
        return self.bridge(Sequential())

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def fsm(self, initial: Any, build: Callable[[Any], Any]) -> "Pipeline[Any]":
        """
        Fold the elements through a state machine.

        `build` receives an empty FSMBuilder and returns the configured one.
        Elements are processed one at a time in encounter order; under a
        Parallel strategy the upstream is drained and replayed sequentially.
        The state is local to each evaluation.
        """
        from ..fsm import FSMBuilder

        builder = build(FSMBuilder.empty())
        if not isinstance(builder, FSMBuilder):
            raise TypeError(f"fsm build function must return an FSMBuilder, got {type(builder).__name__}")
        return self._with(stateful_node(self.node, builder.build(initial)))

    # -------------------------------------------------------------------------
    # Terminal operations
    # -------------------------------------------------------------------------

    def evaluate(self, effect: Effect) -> Any:
        """F[tuple] of all elements."""
        logger.debug(f"Evaluating {describe(self.node)} with {effect!r} under {self.execution!r}")
        return evaluate_node(self.node, effect, self.execution)

    def run(self, effect: Effect) -> Tuple[Any, ...]:
        """Evaluate and extract synchronously, raising the failure if any."""
        return effect.run_sync(self.evaluate(effect))

    def memoize(self, effect: Effect) -> Any:
        """F[Pipeline] backed by the evaluated elements."""
        return effect.map(self.evaluate(effect), lambda vs: Pipeline(Memoized(tuple(vs)), self.execution))

    def fold_left(self, effect: Effect, zero: U, f: Callable[[U, T], U]) -> Any:
        return effect.map(self.evaluate(effect), lambda vs: functools.reduce(f, vs, zero))

    def reduce(self, effect: Effect, f: Callable[[T, T], T]) -> Any:
        """Fails with TypeError on an empty pipeline."""
        return effect.map(self.evaluate(effect), lambda vs: functools.reduce(f, vs))

    def sum(self, effect: Effect) -> Any:
        return effect.map(self.evaluate(effect), sum)

    def size(self, effect: Effect) -> Any:
        return effect.map(self.evaluate(effect), len)

    def to_list(self, effect: Effect) -> Any:
        return effect.map(self.evaluate(effect), list)

    def __repr__(self) -> str:
        return f"Pipeline({describe(self.node)}, {self.execution!r})"

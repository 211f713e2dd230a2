"""
Pipeline node graph.

A pipeline is a persistent tree of immutable nodes. The set of node kinds is
closed (see `Node`); each combinator is one function that dispatches over
every kind and returns a new node owning the previous one. No work happens
here: evaluation lives in `evaluation.py`.

Composition rules applied while building:
  map(f).map(g)          -> Map(g . f)
  flat_map(f).map(g)     -> FlatMap(x => f(x).map(g))
  filter(p)              -> collect({x if p(x) => x})
  map(f).map_effect(g)   -> EffectfulMap(g . f)
  map_effect(f).map_effect(g) -> EffectfulMap(x => f(x) >>= g)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Iterator, Optional, Tuple, Union

from .catpy import PartialFunction, compose, identity
from .effects import Effect
from .execution import Execution

# Payload type aliases
Produce = Callable[[Effect], Any]                 # effect -> F[Iterable[A]]
EffectFn = Callable[[Effect, Any], Any]           # (effect, a) -> F[B]
Fallback = Callable[[Exception], Any]             # exc -> B
NodeFallback = Callable[[Exception], "Node"]      # exc -> Node


# =============================================================================
# Node variants
# =============================================================================

@dataclass(frozen=True, eq=False)
class Source:
    """Elements produced inside the effect: `produce(effect) -> F[Iterable]`."""
    produce: Produce
    label: str = "source"


@dataclass(frozen=True, eq=False)
class Memoized:
    """An already materialized container. Cannot fail."""
    values: Tuple[Any, ...]


@dataclass(frozen=True, eq=False)
class Map:
    upstream: "Node"
    f: Callable[[Any], Any]


@dataclass(frozen=True, eq=False)
class FlatMap:
    """`f` maps an element to a sub-pipeline node."""
    upstream: "Node"
    f: Callable[[Any], "Node"]


@dataclass(frozen=True, eq=False)
class Collect:
    upstream: "Node"
    pf: PartialFunction


@dataclass(frozen=True, eq=False)
class EffectfulMap:
    """`f(effect, a)` returns an effect value."""
    upstream: "Node"
    f: EffectFn


@dataclass(frozen=True, eq=False)
class ErrorHandler:
    """`f` applied per element; a failure becomes `fallback(exc)`."""
    upstream: "Node"
    f: Callable[[Any], Any]
    fallback: Fallback


@dataclass(frozen=True, eq=False)
class Sorted:
    upstream: "Node"
    key: Optional[Callable[[Any], Any]] = None
    reverse: bool = False


@dataclass(frozen=True, eq=False)
class Bridge:
    """
    Strategy change: the upstream is evaluated under `source_execution`,
    drained to a list and rebuilt under the evaluating (target) strategy.
    """
    upstream: "Node"
    source_execution: Execution
    target_execution: Execution


@dataclass(frozen=True, eq=False)
class Stateful:
    """
    FSM attachment point. `machine.step(effect, state, element)` returns
    F[(new_state, outputs)]; the state is threaded through a sequential fold.
    `recover` splices a sub-pipeline for an element whose step failed.
    """
    upstream: "Node"
    machine: Any
    recover: Optional[NodeFallback] = None


Node = Union[
    Source, Memoized, Map, FlatMap, Collect, EffectfulMap,
    ErrorHandler, Sorted, Bridge, Stateful,
]

NODE_TYPES = (
    Source, Memoized, Map, FlatMap, Collect, EffectfulMap,
    ErrorHandler, Sorted, Bridge, Stateful,
)

# Kinds with no payload to fuse with: combinators simply stack on top of them.
_BARRIERS = (Source, Memoized, Sorted, Bridge, Stateful)


def _unknown(node: Any) -> TypeError:
    return TypeError(f"Unknown pipeline node: {node!r}")


# =============================================================================
# Helpers
# =============================================================================

def single(value: Any) -> Memoized:
    return Memoized((value,))


EMPTY = Memoized(())


def recovering(f: Callable[[Any], Any], fallback: Fallback) -> Callable[[Any], Any]:
    """`f`, with a raised Exception replaced by `fallback(exc)`."""
    def apply(a: Any) -> Any:
        try:
            return f(a)
        except Exception as exc:
            return fallback(exc)
    return apply


def _build_or(thunk: Callable[[], Node], on_error: NodeFallback) -> Node:
    try:
        return thunk()
    except Exception as exc:
        return on_error(exc)


def _recover_iter(items: Iterable[Any], fallback: Fallback) -> Iterator[Any]:
    """Yield items; the first failure yields `fallback(exc)` and stops."""
    iterator = iter(items)
    while True:
        try:
            item = next(iterator)
        except StopIteration:
            return
        except Exception as exc:
            yield fallback(exc)
            return
        yield item


# =============================================================================
# Combinators
# =============================================================================

def map_node(node: Node, f: Callable[[Any], Any]) -> Node:
    if isinstance(node, Map):
        return Map(node.upstream, compose(f, node.f))
    if isinstance(node, FlatMap):
        inner = node.f
        return FlatMap(node.upstream, lambda a: map_node(inner(a), f))
    if isinstance(node, Collect):
        return Collect(node.upstream, node.pf.and_then(f))
    if isinstance(node, EffectfulMap):
        inner_f = node.f
        return EffectfulMap(node.upstream, lambda F, a: F.map(inner_f(F, a), f))
    if isinstance(node, ErrorHandler):
        return Map(node.upstream, compose(f, recovering(node.f, node.fallback)))
    if isinstance(node, _BARRIERS):
        return Map(node, f)
    raise _unknown(node)


def flat_map_node(node: Node, f: Callable[[Any], Node]) -> Node:
    if isinstance(node, Map):
        inner = node.f
        return FlatMap(node.upstream, lambda a: f(inner(a)))
    if isinstance(node, FlatMap):
        inner = node.f
        return FlatMap(node.upstream, lambda a: flat_map_node(inner(a), f))
    if isinstance(node, (Collect, EffectfulMap, ErrorHandler) + _BARRIERS):
        return FlatMap(node, f)
    raise _unknown(node)


def collect_node(node: Node, pf: PartialFunction) -> Node:
    if isinstance(node, Map):
        return Collect(node.upstream, pf.compose(node.f))
    if isinstance(node, FlatMap):
        inner = node.f
        return FlatMap(node.upstream, lambda a: collect_node(inner(a), pf))
    if isinstance(node, Collect):
        return Collect(node.upstream, node.pf.and_then_partial(pf))
    if isinstance(node, (EffectfulMap, ErrorHandler) + _BARRIERS):
        return Collect(node, pf)
    raise _unknown(node)


def filter_node(node: Node, predicate: Callable[[Any], bool]) -> Node:
    return collect_node(node, PartialFunction.guard(predicate))


def map_effect_node(node: Node, f: EffectFn) -> Node:
    if isinstance(node, Map):
        inner = node.f
        return EffectfulMap(node.upstream, lambda F, a: f(F, inner(a)))
    if isinstance(node, FlatMap):
        inner = node.f
        return FlatMap(node.upstream, lambda a: map_effect_node(inner(a), f))
    if isinstance(node, EffectfulMap):
        inner_f = node.f
        return EffectfulMap(
            node.upstream,
            lambda F, a: F.flat_map(inner_f(F, a), lambda b: f(F, b)),
        )
    if isinstance(node, ErrorHandler):
        safe = recovering(node.f, node.fallback)
        return EffectfulMap(node.upstream, lambda F, a: F.flat_map(F.delay(lambda: safe(a)), lambda b: f(F, b)))
    if isinstance(node, (Collect,) + _BARRIERS):
        return EffectfulMap(node, f)
    raise _unknown(node)


def handle_error_node(node: Node, fallback: Fallback) -> Node:
    if isinstance(node, Source):
        produce = node.produce

        def guarded(F: Effect) -> Any:
            attempt = F.map(F.defer(lambda: produce(F)), lambda items: _recover_iter(items, fallback))
            return F.handle_error(attempt, lambda exc: [fallback(exc)])

        return Source(guarded, node.label)
    if isinstance(node, Memoized):
        return node
    if isinstance(node, Map):
        return ErrorHandler(node.upstream, node.f, fallback)
    if isinstance(node, FlatMap):
        inner = node.f
        return FlatMap(
            node.upstream,
            lambda a: handle_error_node(_build_or(lambda: inner(a), lambda exc: single(fallback(exc))), fallback),
        )
    if isinstance(node, Collect):
        return Collect(node.upstream, node.pf.recover(fallback))
    if isinstance(node, EffectfulMap):
        inner_f = node.f
        return EffectfulMap(
            node.upstream,
            lambda F, a: F.handle_error(F.defer(lambda: inner_f(F, a)), fallback),
        )
    if isinstance(node, ErrorHandler):
        return ErrorHandler(node.upstream, recovering(node.f, node.fallback), fallback)
    if isinstance(node, Sorted):
        return replace(node, upstream=handle_error_node(node.upstream, fallback))
    if isinstance(node, Bridge):
        return replace(node, upstream=handle_error_node(node.upstream, fallback))
    if isinstance(node, Stateful):
        previous = node.recover
        if previous is None:
            return replace(node, recover=lambda exc: single(fallback(exc)))
        return replace(node, recover=lambda exc: handle_error_node(previous(exc), fallback))
    raise _unknown(node)


def handle_error_with_node(node: Node, fallback: NodeFallback) -> Node:
    if isinstance(node, Source):
        produce = node.produce

        def per_element(F: Effect) -> Any:
            wrapped = F.map(
                F.defer(lambda: produce(F)),
                lambda items: _recover_iter((single(item) for item in items), fallback),
            )
            return F.handle_error(wrapped, lambda exc: [fallback(exc)])

        return FlatMap(Source(per_element, node.label), identity)
    if isinstance(node, Memoized):
        return node
    if isinstance(node, Map):
        inner = node.f
        return FlatMap(node.upstream, lambda a: _build_or(lambda: single(inner(a)), fallback))
    if isinstance(node, FlatMap):
        inner = node.f

        def sub(a: Any) -> Node:
            try:
                built = inner(a)
            except Exception as exc:
                return fallback(exc)
            return handle_error_with_node(built, fallback)

        return FlatMap(node.upstream, sub)
    if isinstance(node, Collect):
        pf = node.pf
        return FlatMap(node.upstream, lambda a: _build_or(lambda: Memoized(pf.lift(a).to_tuple()), fallback))
    if isinstance(node, EffectfulMap):
        inner_f = node.f
        as_nodes = EffectfulMap(
            node.upstream,
            lambda F, a: F.handle_error_with(
                F.map(F.defer(lambda: inner_f(F, a)), single),
                lambda exc: F.delay(lambda: fallback(exc)),
            ),
        )
        return FlatMap(as_nodes, identity)
    if isinstance(node, ErrorHandler):
        safe = recovering(node.f, node.fallback)
        return FlatMap(node.upstream, lambda a: _build_or(lambda: single(safe(a)), fallback))
    if isinstance(node, Sorted):
        return replace(node, upstream=handle_error_with_node(node.upstream, fallback))
    if isinstance(node, Bridge):
        # Recovery pipelines are built under the target strategy; bridge them
        # back to the source strategy before they join the upstream.
        source_ex, target_ex = node.source_execution, node.target_execution

        def rebridged(exc: Exception) -> Node:
            return Bridge(fallback(exc), source_execution=target_ex, target_execution=source_ex)

        return replace(node, upstream=handle_error_with_node(node.upstream, rebridged))
    if isinstance(node, Stateful):
        previous = node.recover
        if previous is None:
            return replace(node, recover=fallback)
        return replace(node, recover=lambda exc: handle_error_with_node(previous(exc), fallback))
    raise _unknown(node)


def sorted_node(node: Node, key: Optional[Callable[[Any], Any]] = None,
                reverse: bool = False) -> Node:
    return Sorted(node, key, reverse)


def bridge_node(node: Node, source: Execution, target: Execution) -> Node:
    return Bridge(node, source_execution=source, target_execution=target)


def stateful_node(node: Node, machine: Any) -> Node:
    return Stateful(node, machine)


def describe(node: Node) -> str:
    """Short chain description, upstream first: `Source -> Map -> Collect`."""
    parts = []
    current: Any = node
    while current is not None:
        parts.append(type(current).__name__)
        current = getattr(current, "upstream", None)
    return " -> ".join(reversed(parts))

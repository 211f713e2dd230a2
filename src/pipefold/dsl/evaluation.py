"""
Terminal evaluation driver.

`evaluate_node(node, effect, execution)` walks the node tree bottom-up and
returns one effect value wrapping the strategy's container. Upstream nodes are
always evaluated first; each node then applies its own transformation inside
the effect.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, List, Optional, Tuple

from .effects import Effect, unwind_cons
from .execution import Execution
from .nodes import (
    Node, Source, Memoized, Map, FlatMap, Collect, EffectfulMap,
    ErrorHandler, Sorted, Bridge, Stateful, recovering,
)

logger = logging.getLogger(__name__)


def evaluate_node(node: Node, effect: Effect, execution: Execution) -> Any:
    """F[Repr] for `node` under `execution`."""
    if isinstance(node, Source):
        return effect.map(
            effect.defer(lambda: node.produce(effect)),
            execution.from_iterable,
        )

    if isinstance(node, Memoized):
        return effect.pure(execution.from_iterable(node.values))

    if isinstance(node, Map):
        return effect.map(
            evaluate_node(node.upstream, effect, execution),
            lambda vs: execution.map(vs, node.f),
        )

    if isinstance(node, FlatMap):
        def expand(vs):
            evaluated = execution.traverse(
                effect, vs,
                lambda a: effect.defer(lambda: evaluate_node(node.f(a), effect, execution)),
            )
            return effect.map(evaluated, execution.flatten)

        return effect.flat_map(evaluate_node(node.upstream, effect, execution), expand)

    if isinstance(node, Collect):
        return effect.map(
            evaluate_node(node.upstream, effect, execution),
            lambda vs: execution.collect(vs, node.pf),
        )

    if isinstance(node, EffectfulMap):
        return effect.flat_map(
            evaluate_node(node.upstream, effect, execution),
            lambda vs: execution.traverse(
                effect, vs,
                lambda a: effect.defer(lambda: node.f(effect, a)),
            ),
        )

    if isinstance(node, ErrorHandler):
        safe = recovering(node.f, node.fallback)
        return effect.map(
            evaluate_node(node.upstream, effect, execution),
            lambda vs: execution.map(vs, safe),
        )

    if isinstance(node, Sorted):
        return effect.map(
            evaluate_node(node.upstream, effect, execution),
            lambda vs: execution.sorted(vs, node.key, node.reverse),
        )

    if isinstance(node, Bridge):
        source_ex = node.source_execution

        def rebuild(vs):
            logger.debug(f"Bridging {len(vs)} elements: {source_ex!r} -> {execution!r}")
            return execution.from_iterable(source_ex.to_list(vs))

        return effect.map(evaluate_node(node.upstream, effect, source_ex), rebuild)

    if isinstance(node, Stateful):
        return _evaluate_stateful(node, effect, execution)

    raise TypeError(f"Unknown pipeline node: {node!r}")


# =============================================================================
# FSM replay
# =============================================================================

# Carried through the fold: (current state or None before the first element,
# cons list of per-element output lists).
Carry = Tuple[Optional[Any], Optional[Tuple[List[Any], Any]]]


def _evaluate_stateful(node: Stateful, effect: Effect, execution: Execution) -> Any:
    if not execution.ordered:
        logger.debug(f"FSM attached under {execution!r}: replaying elements sequentially")

    def replay(vs):
        acc = effect.pure((None, None))
        for element in execution.to_list(vs):
            acc = effect.flat_map(acc, partial(_transition, node, effect, execution, element))
        return effect.map(acc, lambda carry: execution.flatten(unwind_cons(carry[1])))

    return effect.flat_map(evaluate_node(node.upstream, effect, execution), replay)


def _transition(node: Stateful, effect: Effect, execution: Execution,
                element: Any, carry: Carry) -> Any:
    state, outputs = carry
    step = effect.defer(lambda: node.machine.step(effect, state, element))

    if node.recover is not None:
        def recover(exc: Exception) -> Any:
            logger.debug(f"FSM step failed for {element!r}, splicing recovery: {exc}")
            spliced = effect.defer(lambda: evaluate_node(node.recover(exc), effect, execution))
            return effect.map(spliced, lambda vs: (state, execution.to_list(vs)))

        step = effect.handle_error_with(step, recover)

    return effect.map(step, lambda result: (result[0], (list(result[1]), outputs)))

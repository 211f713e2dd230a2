"""
Execution strategies: how a finished stream of elements is materialized.

A strategy owns the container representation (always a tuple here) and the
pure container operations. Effect sequencing (`traverse`) is always done in
encounter order, whatever the strategy, because effects must never
interleave.
"""

from __future__ import annotations

import logging
from abc import ABC
from concurrent.futures import ThreadPoolExecutor
from itertools import chain
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar

from .catpy import Just, PartialFunction
from .effects import Effect
from ..config import get_config

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

Repr = Tuple[Any, ...]


class Execution(ABC):
    """
    Collection-representation policy for pipeline results.

    Attributes:
        ordered: encounter order is part of the contract
        supports_sorting: `Pipeline.sorted()` may be used

    ::: This is-in-layer Execution-Layer.
    ::: This is a strategy.
    ::: This is stateless.
    """

    name: str = "execution"
    ordered: bool = True
    supports_sorting: bool = True

    def from_iterable(self, items: Iterable[T]) -> Repr:
        return tuple(items)

    def to_list(self, repr_: Repr) -> List[Any]:
        return list(repr_)

    def map(self, repr_: Repr, f: Callable[[T], U]) -> Repr:
        return tuple(f(a) for a in repr_)

    def collect(self, repr_: Repr, pf: PartialFunction) -> Repr:
        out = []
        for a in repr_:
            result = pf.lift(a)
            if isinstance(result, Just):
                out.append(result.value)
        return tuple(out)

    def flatten(self, reprs: Iterable[Repr]) -> Repr:
        return tuple(chain.from_iterable(reprs))

    def sorted(self, repr_: Repr, key: Optional[Callable[[T], Any]] = None,
               reverse: bool = False) -> Repr:
        return tuple(sorted(repr_, key=key, reverse=reverse))

    def traverse(self, effect: Effect, repr_: Repr, f: Callable[[T], Any]) -> Any:
        """F[Repr]: run `f(a)` for every element, one after another."""
        return effect.map(effect.traverse(self.to_list(repr_), f), self.from_iterable)

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Sequential(Execution):
    """Ordered, single-threaded materialization."""

    name = "sequential"
    ordered = True


class Parallel(Execution):
    """
    Throughput-oriented materialization.

    Pure `map` and `collect` run on a thread pool; element order is not
    part of this strategy's contract. Effect sequencing stays in encounter
    order.

    Args:
        max_workers: pool size; defaults to PIPEFOLD_PARALLEL_WORKERS
    """

    name = "parallel"
    ordered = False

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers

    @property
    def workers(self) -> int:
        if self.max_workers is not None:
            return self.max_workers
        return get_config().parallel_workers

    def map(self, repr_: Repr, f: Callable[[T], U]) -> Repr:
        if len(repr_) < 2 or self.workers < 2:
            return super().map(repr_, f)
        logger.debug(f"Parallel map over {len(repr_)} elements with {self.workers} workers")
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return tuple(pool.map(f, repr_))

    def collect(self, repr_: Repr, pf: PartialFunction) -> Repr:
        if len(repr_) < 2 or self.workers < 2:
            return super().collect(repr_, pf)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            lifted = list(pool.map(pf.lift, repr_))
        return tuple(r.value for r in lifted if isinstance(r, Just))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Parallel) and self.max_workers == other.max_workers

    def __hash__(self) -> int:
        return hash((Parallel, self.max_workers))

    def __repr__(self) -> str:
        return f"Parallel(max_workers={self.max_workers!r})"

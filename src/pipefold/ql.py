"""
Grouping and aggregation over pipeline records, backed by Apache Arrow.

The evaluator consumes a pipeline only through `filter`, `map` and
`evaluate`: records are materialized once, loaded into a `pyarrow.Table`
and grouped/aggregated/sorted with Arrow compute kernels.

Example:
    query = Query(
        where=lambda r: r["amount"] > 0,
        group_by=("region",),
        aggregates=(Aggregate("amount", "sum", "total"),),
        order_by=("-total",),
    )
    result = effect.run_sync(run_query(pipeline, effect, query))
    result.rows      # [{"region": "eu", "total": 120}, ...]
    result.totals    # {"total": 170}
    result.tree()    # {"eu": {"total": 120}, ...}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import pyarrow as pa
import pyarrow.compute as pc

from .dsl.effects import Effect
from .exceptions import QueryError

logger = logging.getLogger(__name__)

# Aggregate function name -> whole-column kernel used for totals
_TOTAL_KERNELS: Dict[str, Callable[[Any], Any]] = {
    "sum": pc.sum,
    "mean": pc.mean,
    "min": pc.min,
    "max": pc.max,
    "count": pc.count,
    "count_distinct": pc.count_distinct,
}

AGGREGATE_FUNCTIONS = tuple(_TOTAL_KERNELS)


@dataclass(frozen=True)
class Aggregate:
    """`function(column)` reported as `alias` (default `<column>_<function>`)."""
    column: str
    function: str
    alias: Optional[str] = None

    @property
    def output(self) -> str:
        return self.alias or f"{self.column}_{self.function}"


@dataclass(frozen=True)
class Query:
    """
    Declarative aggregation query.

    Attributes:
        where: element predicate applied before grouping
        group_by: record columns forming the group key, outermost first
        aggregates: aggregations computed per group and over all records
        order_by: output columns to sort by; prefix with - for descending
        record: element -> mapping, for pipelines not already yielding dicts
    """
    where: Optional[Callable[[Any], bool]] = None
    group_by: Tuple[str, ...] = ()
    aggregates: Tuple[Aggregate, ...] = ()
    order_by: Tuple[str, ...] = ()
    record: Optional[Callable[[Any], Mapping[str, Any]]] = None

    def validate(self) -> None:
        seen = set()
        for agg in self.aggregates:
            if agg.function not in _TOTAL_KERNELS:
                raise QueryError(
                    f"Unknown aggregate function {agg.function!r}; "
                    f"expected one of {', '.join(AGGREGATE_FUNCTIONS)}"
                )
            if agg.output in seen or agg.output in self.group_by:
                raise QueryError(f"Duplicate output column {agg.output!r}")
            seen.add(agg.output)


@dataclass(frozen=True)
class QueryResult:
    """Grouped rows plus totals over every matching record."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)
    group_by: Tuple[str, ...] = ()

    def tree(self) -> Dict[Any, Any]:
        """Rows nested by group values: {g1: {g2: {aggregate: value}}}."""
        if not self.group_by:
            return dict(self.totals)
        root: Dict[Any, Any] = {}
        for row in self.rows:
            node = root
            for key in self.group_by[:-1]:
                node = node.setdefault(row[key], {})
            node[row[self.group_by[-1]]] = {
                k: v for k, v in row.items() if k not in self.group_by
            }
        return root


def run_query(pipeline: Any, effect: Effect, query: Query) -> Any:
    """F[QueryResult] for the records of `pipeline`."""
    query.validate()
    records = pipeline
    if query.where is not None:
        records = records.filter(query.where)
    if query.record is not None:
        records = records.map(query.record)
    return effect.map(records.evaluate(effect), lambda rows: evaluate_query(rows, query))


def evaluate_query(records: Iterable[Mapping[str, Any]], query: Query) -> QueryResult:
    """Group, aggregate and order already materialized records."""
    query.validate()
    rows = [dict(r) for r in records]
    if not rows:
        return QueryResult([], {}, query.group_by)

    # Records may be sparse; missing keys become nulls
    columns = list(dict.fromkeys(k for row in rows for k in row))
    table = pa.Table.from_pylist([{k: row.get(k) for k in columns} for row in rows])
    _require_columns(table, list(query.group_by) + [a.column for a in query.aggregates])
    logger.debug(f"Query over {table.num_rows} records, group_by={list(query.group_by)}")

    totals = {
        agg.output: _TOTAL_KERNELS[agg.function](table.column(agg.column)).as_py()
        for agg in query.aggregates
    }

    if query.group_by:
        result = _grouped(table, query)
        order = query.order_by or query.group_by
    elif query.aggregates:
        return QueryResult([dict(totals)], totals, ())
    else:
        result = table
        order = query.order_by

    if order:
        result = _sort(result, order)
    return QueryResult(result.to_pylist(), totals, query.group_by)


def _grouped(table: pa.Table, query: Query) -> pa.Table:
    grouped = table.group_by(list(query.group_by)).aggregate(
        [(agg.column, agg.function) for agg in query.aggregates]
    )
    renames = {f"{agg.column}_{agg.function}": agg.output for agg in query.aggregates}
    return grouped.rename_columns([renames.get(name, name) for name in grouped.column_names])


def _sort(table: pa.Table, order_by: Iterable[str]) -> pa.Table:
    """Sort using Arrow compute - vectorized."""
    sort_keys = []
    for name in order_by:
        descending = name.startswith("-")
        column = name[1:] if descending else name
        sort_keys.append((column, "descending" if descending else "ascending"))
    _require_columns(table, [column for column, _ in sort_keys])
    indices = pc.sort_indices(table, sort_keys=sort_keys)
    return table.take(indices)


def _require_columns(table: pa.Table, columns: Iterable[str]) -> None:
    missing = [c for c in columns if c not in table.column_names]
    if missing:
        raise QueryError(f"Unknown column(s): {', '.join(missing)}")

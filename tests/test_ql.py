"""
Tests for the Arrow-backed query evaluator.
"""

import pytest

from pipefold.dsl import Pipeline
from pipefold.exceptions import QueryError
from pipefold.ql import Aggregate, Query, QueryResult, evaluate_query, run_query


@pytest.fixture
def sales():
    return Pipeline.of(
        {"region": "eu", "product": "a", "amount": 10},
        {"region": "eu", "product": "b", "amount": 30},
        {"region": "us", "product": "a", "amount": 5},
        {"region": "eu", "product": "a", "amount": 20},
        {"region": "us", "product": "b", "amount": -5},
    )


def query_result(effect, pipeline, query):
    return effect.run_sync(run_query(pipeline, effect, query))


# =============================================================================
# Grouping and aggregation
# =============================================================================

class TestGrouping:
    """Tests for grouped aggregation."""

    def test_group_sum_and_count(self, effect, sales):
        result = query_result(effect, sales, Query(
            group_by=("region",),
            aggregates=(Aggregate("amount", "sum", "total"), Aggregate("amount", "count", "n")),
        ))
        assert isinstance(result, QueryResult)
        assert result.rows == [
            {"region": "eu", "total": 60, "n": 3},
            {"region": "us", "total": 0, "n": 2},
        ]
        assert result.totals == {"total": 60, "n": 5}

    def test_where_filters_before_grouping(self, effect, sales):
        result = query_result(effect, sales, Query(
            where=lambda r: r["amount"] > 0,
            group_by=("region",),
            aggregates=(Aggregate("amount", "sum", "total"),),
        ))
        assert result.rows == [{"region": "eu", "total": 60}, {"region": "us", "total": 5}]
        assert result.totals == {"total": 65}

    def test_default_alias_and_mean(self, effect, sales):
        result = query_result(effect, sales, Query(
            group_by=("region",),
            aggregates=(Aggregate("amount", "mean"),),
        ))
        assert result.rows == [{"region": "eu", "amount_mean": 20.0}, {"region": "us", "amount_mean": 0.0}]
        assert result.totals == {"amount_mean": 12.0}

    def test_min_max_count_distinct(self, effect, sales):
        result = query_result(effect, sales, Query(
            group_by=("region",),
            aggregates=(
                Aggregate("amount", "min", "lo"),
                Aggregate("amount", "max", "hi"),
                Aggregate("product", "count_distinct", "products"),
            ),
        ))
        assert result.rows == [
            {"region": "eu", "lo": 10, "hi": 30, "products": 2},
            {"region": "us", "lo": -5, "hi": 5, "products": 2},
        ]
        assert result.totals == {"lo": -5, "hi": 30, "products": 2}

    def test_order_by_descending(self, effect, sales):
        result = query_result(effect, sales, Query(
            where=lambda r: r["amount"] > 0,
            group_by=("region",),
            aggregates=(Aggregate("amount", "sum", "total"),),
            order_by=("-total",),
        ))
        assert [row["region"] for row in result.rows] == ["eu", "us"]

    def test_nested_tree(self, effect, sales):
        result = query_result(effect, sales, Query(
            group_by=("region", "product"),
            aggregates=(Aggregate("amount", "sum", "total"),),
        ))
        assert result.tree() == {
            "eu": {"a": {"total": 30}, "b": {"total": 30}},
            "us": {"a": {"total": 5}, "b": {"total": -5}},
        }


# =============================================================================
# Ungrouped queries
# =============================================================================

class TestUngrouped:
    """Tests for queries without grouping."""

    def test_aggregates_only(self, effect, sales):
        result = query_result(effect, sales, Query(aggregates=(Aggregate("amount", "sum", "total"),)))
        assert result.rows == [{"total": 60}]
        assert result.tree() == {"total": 60}

    def test_plain_ordering(self, effect, sales):
        result = query_result(effect, sales, Query(order_by=("amount",)))
        assert [row["amount"] for row in result.rows] == [-5, 5, 10, 20, 30]
        assert result.totals == {}

    def test_record_mapping(self, effect):
        pairs = Pipeline.of(("x", 1), ("y", 2), ("x", 3))
        result = query_result(effect, pairs, Query(
            record=lambda t: {"key": t[0], "value": t[1]},
            group_by=("key",),
            aggregates=(Aggregate("value", "sum", "total"),),
        ))
        assert result.tree() == {"x": {"total": 4}, "y": {"total": 2}}

    def test_empty_input(self, effect):
        result = query_result(effect, Pipeline.empty(), Query(
            group_by=("region",),
            aggregates=(Aggregate("amount", "sum", "total"),),
        ))
        assert result.rows == []
        assert result.totals == {}
        assert result.tree() == {}

    def test_evaluate_query_directly(self):
        result = evaluate_query([{"k": 1}, {"k": 1}], Query(aggregates=(Aggregate("k", "count", "n"),)))
        assert result.totals == {"n": 2}

    def test_records_with_different_keys(self, effect):
        sparse = Pipeline.of({"a": 1}, {"a": 2, "b": 3}, {"c": 4, "a": 5})
        result = query_result(effect, sparse, Query(aggregates=(Aggregate("b", "sum"), Aggregate("c", "count", "n"))))
        assert result.totals == {"b_sum": 3, "n": 1}

        plain = query_result(effect, sparse, Query())
        assert plain.rows == [
            {"a": 1, "b": None, "c": None},
            {"a": 2, "b": 3, "c": None},
            {"a": 5, "b": None, "c": 4},
        ]


# =============================================================================
# Errors
# =============================================================================

class TestQueryErrors:
    """Tests for malformed queries."""

    def test_unknown_function(self, effect, sales):
        with pytest.raises(QueryError, match="Unknown aggregate function"):
            run_query(sales, effect, Query(aggregates=(Aggregate("amount", "median"),)))

    def test_duplicate_output(self, effect, sales):
        with pytest.raises(QueryError, match="Duplicate"):
            run_query(sales, effect, Query(aggregates=(
                Aggregate("amount", "sum", "x"),
                Aggregate("amount", "max", "x"),
            )))

    def test_unknown_column_fails_evaluation(self, effect, sales):
        with pytest.raises(QueryError, match="Unknown column"):
            query_result(effect, sales, Query(group_by=("country",)))

"""
Tests for the SQLite row source.
"""

import sqlite3

import pytest

from pipefold.ql import Aggregate, Query, run_query
from pipefold.sources import sqlite_rows


@pytest.fixture
def db_path(tmp_path):
    """Temporary database with a small events table."""
    path = tmp_path / "events.db"
    conn = sqlite3.connect(str(path))
    conn.executescript(
        """
        CREATE TABLE events (id INTEGER PRIMARY KEY, kind TEXT, value INTEGER);
        INSERT INTO events (kind, value) VALUES ('open', 1), ('close', 2), ('open', 3);
        """
    )
    conn.commit()
    conn.close()
    return path


class TestSqliteRows:
    """Tests for sqlite_rows."""

    def test_rows_are_dicts(self, effect, db_path):
        rows = sqlite_rows(db_path, "SELECT kind, value FROM events ORDER BY id").run(effect)
        assert rows == (
            {"kind": "open", "value": 1},
            {"kind": "close", "value": 2},
            {"kind": "open", "value": 3},
        )

    def test_params(self, effect, db_path):
        pipeline = sqlite_rows(db_path, "SELECT value FROM events WHERE kind = ? ORDER BY id", ("open",))
        assert pipeline.map(lambda r: r["value"]).run(effect) == (1, 3)

    def test_query_runs_on_each_evaluation(self, effect, db_path):
        pipeline = sqlite_rows(db_path, "SELECT value FROM events").map(lambda r: r["value"])
        assert pipeline.run(effect) == (1, 2, 3)

        conn = sqlite3.connect(str(db_path))
        conn.execute("INSERT INTO events (kind, value) VALUES ('close', 4)")
        conn.commit()
        conn.close()

        assert pipeline.run(effect) == (1, 2, 3, 4)

    def test_sql_error_surfaces_in_effect(self, try_effect, db_path):
        result = sqlite_rows(db_path, "SELECT * FROM missing").evaluate(try_effect)
        assert result.is_err()
        assert isinstance(result.error, sqlite3.OperationalError)

    def test_sql_error_recovered(self, effect, db_path):
        pipeline = sqlite_rows(db_path, "SELECT * FROM missing").handle_error(lambda exc: {"error": True})
        assert pipeline.run(effect) == ({"error": True},)

    def test_feeds_query_evaluator(self, effect, db_path):
        result = effect.run_sync(run_query(
            sqlite_rows(db_path, "SELECT kind, value FROM events"),
            effect,
            Query(group_by=("kind",), aggregates=(Aggregate("value", "sum", "total"),)),
        ))
        assert result.tree() == {"close": {"total": 2}, "open": {"total": 4}}

"""
Row sources: pipelines backed by external stores.

The query runs inside the effect at evaluation time, so every evaluation
opens its own connection and sees current data.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Union

from .dsl.execution import Execution
from .dsl.pipeline import Pipeline

logger = logging.getLogger(__name__)


@contextmanager
def _get_connection(database: Union[str, Path]):
    """Get a read connection with proper cleanup."""
    conn = sqlite3.connect(str(database))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def _iter_rows(database: Union[str, Path], sql: str, params: Sequence[Any]) -> Iterator[Dict[str, Any]]:
    logger.debug(f"sqlite query on {database}: {sql}")
    with _get_connection(database) as conn:
        for row in conn.execute(sql, tuple(params)):
            yield dict(row)


def sqlite_rows(database: Union[str, Path], sql: str, params: Sequence[Any] = (),
                execution: Optional[Execution] = None) -> Pipeline:
    """
    Pipeline of dict rows returned by `sql`.

    The connection is opened when the pipeline is evaluated and closed once
    the rows have been drained. Connection and query failures surface in the
    effect's failure channel.

    Args:
        database: path to the SQLite file
        sql: query text, with `?` placeholders
        params: placeholder values
        execution: strategy for the resulting pipeline
    """
    return Pipeline.from_iterator(lambda: _iter_rows(database, sql, params), execution)

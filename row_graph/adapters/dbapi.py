"""DB-API 2.0 helpers.

iter_result_sets splits one executed cursor into its result sets, and
DBAPIStatementRunner executes registered SQL on a DB-API connection.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator, Mapping
from typing import Any

import structlog

from row_graph.core.exceptions import StatementNotFoundError
from row_graph.mapping.plan import Statement

logger = structlog.get_logger(__name__)


class _ResultSetView:
    """One result set of a shared cursor. Closing it leaves the cursor open."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor
        self.description = cursor.description

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def close(self) -> None:
        pass


def iter_result_sets(cursor: Any) -> Iterator[Any]:
    """Yield one cursor-like view per result set, then close cursor.

    Drivers without nextset() (sqlite3, for one) yield a single result set.
    """
    try:
        while True:
            yield _ResultSetView(cursor)
            nextset = getattr(cursor, "nextset", None)
            if nextset is None:
                break
            try:
                has_more = nextset()
            except Exception as e:
                # Drivers raise NotSupportedError instead of returning None
                logger.debug("nextset_unsupported", error=str(e))
                break
            if not has_more:
                break
    finally:
        cursor.close()


def _bind(parameters: Any) -> Any:
    if parameters is None:
        return {}
    if isinstance(parameters, Mapping):
        return dict(parameters)
    if dataclasses.is_dataclass(parameters) and not isinstance(parameters, type):
        return dataclasses.asdict(parameters)
    if hasattr(parameters, "model_dump"):
        return parameters.model_dump()
    # Scalars bind positionally
    return (parameters,)


class DBAPIStatementRunner:
    """Runs SQL registered per statement id on a DB-API 2.0 connection.

    Mappings, dataclasses and Pydantic models bind as named parameters,
    scalars bind as the single positional parameter.

    Args:
        connection: An open DB-API connection.
        sql: SQL text keyed by statement id.
    """

    def __init__(self, connection: Any, sql: Mapping[str, str]) -> None:
        self._connection = connection
        self._sql = dict(sql)

    def run(self, statement: Statement, parameters: Any) -> Any:
        try:
            sql = self._sql[statement.id]
        except KeyError:
            raise StatementNotFoundError(statement.id) from None
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql, _bind(parameters))
        except Exception:
            cursor.close()
            raise
        return cursor

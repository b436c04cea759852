"""Mapping registry - holds the resolved result maps and statements.

Lookup convention:
    registry.get_result_map("order.detail")  -> ResultMap
    registry.get_statement("order.by_id")    -> Statement
"""

from __future__ import annotations

from collections.abc import Iterable

from row_graph.core.exceptions import (
    DuplicateMappingError,
    MappingNotFoundError,
    StatementNotFoundError,
)
from row_graph.mapping.plan import ResultMap, Statement


class MappingRegistry:
    """Resolved descriptor graph keyed by id.

    The registry is immutable after loading: build once at startup, then
    read-only access for the lifetime of the application.

    Args:
        result_maps: Resolved result maps.
        statements: Statements that nested queries refer to.

    Raises:
        DuplicateMappingError: If two result maps or statements share an id.
    """

    def __init__(
        self,
        result_maps: Iterable[ResultMap] = (),
        statements: Iterable[Statement] = (),
    ) -> None:
        self._result_maps: dict[str, ResultMap] = {}
        self._statements: dict[str, Statement] = {}
        for result_map in result_maps:
            if result_map.id in self._result_maps:
                raise DuplicateMappingError("result map", result_map.id)
            self._result_maps[result_map.id] = result_map
        for statement in statements:
            if statement.id in self._statements:
                raise DuplicateMappingError("statement", statement.id)
            self._statements[statement.id] = statement

    def get_result_map(self, map_id: str) -> ResultMap:
        """Look up a result map by id.

        Raises:
            MappingNotFoundError: If no result map has the given id.
        """
        try:
            return self._result_maps[map_id]
        except KeyError:
            raise MappingNotFoundError(map_id) from None

    def has_result_map(self, map_id: str | None) -> bool:
        return map_id is not None and map_id in self._result_maps

    def get_statement(self, statement_id: str) -> Statement:
        """Look up a statement by id.

        Raises:
            StatementNotFoundError: If no statement has the given id.
        """
        try:
            return self._statements[statement_id]
        except KeyError:
            raise StatementNotFoundError(statement_id) from None

    def has_statement(self, statement_id: str) -> bool:
        return statement_id in self._statements

    @property
    def result_map_ids(self) -> list[str]:
        """All registered result map ids, sorted alphabetically."""
        return sorted(self._result_maps)

    def __len__(self) -> int:
        """Number of registered result maps."""
        return len(self._result_maps)
